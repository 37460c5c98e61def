"""Tokenizing and normalizing cigar names for comparison."""

from __future__ import annotations
import re
from typing import Iterable, List, Optional

# Words that show up in nearly every catalog entry. They never add match weight
NOISE_WORDS = frozenset({
    # articles and prepositions (english + spanish, band text is often spanish)
    "a", "an", "the", "of", "and", "or", "with", "by", "in", "on", "for", "from", "to",
    "de", "del", "la", "las", "el", "los", "y", "no", "nr",
    # generic product words
    "cigar", "cigars", "serie", "series", "edition", "box",
    # vitolas
    "robusto", "robustos", "toro", "toros", "corona", "coronas", "churchill", "torpedo",
    "belicoso", "belicosos", "lancero", "gordo", "petit", "figurado", "perfecto",
    "lonsdale", "panatela", "gigante", "rothschild", "double", "short",
})

_APOSTROPHES = re.compile(r"['‘’`]")
_SEPARATORS = re.compile(r"[\s\-–—/.,;:()]+")


def tokenize(text: Optional[str]) -> List[str]:
    """Lowercase and split on whitespace and punctuation that separates name parts.

    "My Father - Le Bijou 1922" -> ["my", "father", "le", "bijou", "1922"]
    """
    if not text:
        return []
    lowered = _APOSTROPHES.sub("", str(text).lower())
    return [t for t in _SEPARATORS.split(lowered) if t]


def meaningful_tokens(tokens: Iterable[str]) -> List[str]:
    return [t for t in tokens if t not in NOISE_WORDS]


def unique(tokens: Iterable[str]) -> List[str]:
    seen = set()
    out: List[str] = []
    for t in tokens:
        if t in seen:
            continue
        seen.add(t)
        out.append(t)
    return out


def contains_phrase(needle: str, haystack: str) -> bool:
    # Token-boundary containment on space-joined token strings ("le" is not inside "blue")
    if not needle or not haystack:
        return False
    return f" {needle} " in f" {haystack} "
