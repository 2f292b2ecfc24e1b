from __future__ import annotations

from app.services.identity import make_id, normalize_name


def test_make_id_ignores_accents_spacing_and_case() -> None:
    """Differently written names for the same clubs share one key."""
    assert make_id("Ölympique de Marseille", " OM ") == make_id("olympiquedemarseille", "om")
    assert make_id("Ölympique de Marseille", " OM ") == "olympiquedemarseille-om"


def test_make_id_is_order_sensitive() -> None:
    assert make_id("Lakers", "Celtics") != make_id("Celtics", "Lakers")


def test_make_id_uses_sentinels_for_empty_names() -> None:
    assert make_id("", None) == "unknown-a-unknown-b"
    assert make_id("!!!", "Real Madrid") == "unknown-a-realmadrid"


def test_normalize_name_strips_punctuation() -> None:
    assert normalize_name("São Paulo F.C.") == "saopaulofc"
