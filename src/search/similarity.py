from __future__ import annotations

from difflib import SequenceMatcher

# Default floor below which a fuzzy match is considered noise.
DEFAULT_SIMILARITY_FLOOR = 0.3


def text_similarity(a: str | None, b: str | None) -> float:
    """
    Simple string similarity using difflib.SequenceMatcher.

    Returns a float in [0.0, 1.0], where 1.0 is an exact (case-insensitive)
    match. None is treated as the empty string, and two empty strings score
    0.0 so blank columns never look like perfect matches.
    """
    left = (a or "").strip().lower()
    right = (b or "").strip().lower()
    if not left or not right:
        return 0.0
    return SequenceMatcher(None, left, right).ratio()


def best_similarity(
    term: str,
    values: dict[str, str | None],
    floor: float = DEFAULT_SIMILARITY_FLOOR,
) -> tuple[float, list[str]]:
    """
    Score `term` against each named value.

    Returns (best_score, names) where names lists every field whose score is
    at least `floor`, in the order given.
    """
    best = 0.0
    names: list[str] = []
    for name, value in values.items():
        score = text_similarity(term, value)
        if score > best:
            best = score
        if score >= floor:
            names.append(name)
    return best, names
