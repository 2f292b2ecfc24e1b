from __future__ import annotations

import json
import re
from typing import Any

from loguru import logger

_FENCE_RE = re.compile(r"```[a-zA-Z0-9_-]*\s*\n?|```")
_LINE_COMMENT_RE = re.compile(r'("(?:\\.|[^"\\])*")|//[^\n]*')
_TRAILING_COMMA_RE = re.compile(r",\s*([}\]])")
_CLOSERS = {"{": "}", "[": "]"}


def strip_code_fences(text: str) -> str:
    """Remove Markdown code fences (```json ... ```) around a payload."""
    return _FENCE_RE.sub("", text).strip()


def extract_json_block(text: str | None) -> str | None:
    """Return the substring from the first opening bracket to the last matching closer."""
    if not text:
        return None
    cleaned = strip_code_fences(str(text))
    starts = [index for index in (cleaned.find("{"), cleaned.find("[")) if index != -1]
    if not starts:
        return None
    start = min(starts)
    end = cleaned.rfind(_CLOSERS[cleaned[start]])
    if end <= start:
        return None
    return cleaned[start : end + 1]


def _strip_comments_and_commas(block: str) -> str:
    without_comments = _LINE_COMMENT_RE.sub(lambda match: match.group(1) or "", block)
    return _TRAILING_COMMA_RE.sub(r"\1", without_comments)


def parse_structured_text(text: str | None) -> Any | None:
    """Decode the JSON payload embedded in a free-form model response.

    Returns ``None`` when nothing decodable is found; callers treat that as an
    empty payload and let the repairer fill in defaults.
    """
    block = extract_json_block(text)
    if block is None:
        return None
    try:
        return json.loads(block)
    except json.JSONDecodeError:
        pass
    try:
        return json.loads(_strip_comments_and_commas(block))
    except json.JSONDecodeError as exc:
        logger.warning("Unable to decode structured response ({}): {}", exc.msg, block[:120])
        return None


__all__ = ["extract_json_block", "parse_structured_text", "strip_code_fences"]
