"""Stable fixture identifiers derived from participant names."""

from __future__ import annotations

import re
import unicodedata

_NON_ALNUM = re.compile(r"[^a-z0-9]")

UNKNOWN_A = "unknown-a"
UNKNOWN_B = "unknown-b"


def normalize_name(name: str | None) -> str:
    """Return ``name`` reduced to lowercase ASCII letters and digits.

    ``"Ölympique de Marseille"`` becomes ``"olympiquedemarseille"``.
    """

    if not name:
        return ""
    text = unicodedata.normalize("NFKD", str(name))
    text = "".join(ch for ch in text if not unicodedata.combining(ch))
    return _NON_ALNUM.sub("", text.lower())


def make_id(name_a: str | None, name_b: str | None) -> str:
    """Derive the order-sensitive entity key for a pair of participants."""

    left = normalize_name(name_a) or UNKNOWN_A
    right = normalize_name(name_b) or UNKNOWN_B
    return f"{left}-{right}"


__all__ = ["UNKNOWN_A", "UNKNOWN_B", "make_id", "normalize_name"]
