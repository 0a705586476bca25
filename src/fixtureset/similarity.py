"""Name suggestions for unresolvable fixture names."""

from difflib import SequenceMatcher
from typing import Iterable, Optional

__all__ = ["closest_name"]


def closest_name(name: str, candidates: Iterable[str]) -> Optional[str]:
    """Return the candidate most similar to `name`.

    Similarity is the `difflib.SequenceMatcher` ratio. Ties keep the candidate
    seen first. No cutoff is applied, so a suggestion is returned whenever there
    is at least one candidate.

    Example:
        >>> closest_name("fsat", ["fetch", "fast"])
        'fast'
    """
    best, best_score = None, -1.0
    for candidate in candidates:
        score = SequenceMatcher(None, name, candidate).ratio()
        if score > best_score:
            best, best_score = candidate, score
    return best
