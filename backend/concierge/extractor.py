"""Pull the cigar someone is talking about out of a sentence.

Two callers use this. The chat flow reads the customer's latest message
("tell me about the Le Bijou", "do you have Padron 1964?") so a card can be shown
even when the model only answered in prose. The image flow reads the model's own
sentence ("I can see this is a My Father Blue!") when its structured list came back empty.
Whatever is captured still has to resolve through the matcher; nothing here is trusted on its own.
"""

from __future__ import annotations
import re
from dataclasses import dataclass
from typing import Iterable, List, Optional, Pattern

from .matcher import InventoryMatcher
from .models import CatalogEntry
from .text import meaningful_tokens, tokenize

_ARTICLE = r"(?:the |a |an |any |some )?"
_END = r"\s*[?!.]*\s*$"

# Order matters: the first pattern that matches wins
USER_PATTERNS: List[Pattern[str]] = [
    re.compile(r"tell me (?:more )?about " + _ARTICLE + r"(.+?)" + _END, re.I),
    re.compile(r"what(?:'s|’s| is| are)\s+" + _ARTICLE + r"(.+?) like" + _END, re.I),
    re.compile(r"what do you (?:think|know) (?:of|about) " + _ARTICLE + r"(.+?)" + _END, re.I),
    re.compile(r"(?:do|does) (?:you|the store|y'?all) (?:guys )?(?:have|carry|stock|sell) " + _ARTICLE + r"(.+?)" + _END, re.I),
    re.compile(r"(?:can you |could you )?(?:show|give) me " + _ARTICLE + r"(.+?)" + _END, re.I),
    re.compile(r"(?:info|information|details|more) (?:on|about) " + _ARTICLE + r"(.+?)" + _END, re.I),
    re.compile(r"\bis " + _ARTICLE + r"(.+?) (?:any good|good|worth it|in stock|available)" + _END, re.I),
    re.compile(r"(?:i'?d like|i want|can i (?:get|try)|i'?ll take) (?:to try )?" + _ARTICLE + r"(.+?)" + _END, re.I),
]

# The capture stops at sentence punctuation, but "No. 2" style periods stay inside the name
_NAME = r"(.{2,80}?)(?=[!?,;]|\.(?:\s+[A-Z]|\s*$)|\s+(?:with|which|because|based|from the|judging)\b|\n|$)"
IMAGE_PATTERNS: List[Pattern[str]] = [
    re.compile(r"(?i:i can see (?:that )?this is " + _ARTICLE + r")" + _NAME),
    re.compile(r"(?i:i (?:recognize|identified|identify|believe) this (?:as|is|to be) " + _ARTICLE + r")" + _NAME),
    re.compile(r"(?i:this (?:is|looks like|appears to be) " + _ARTICLE + r")" + _NAME),
    re.compile(r"(?i:(?:appears|seems) to be " + _ARTICLE + r")" + _NAME),
    re.compile(r"(?i:identified (?:this|it) as " + _ARTICLE + r")" + _NAME),
]


@dataclass(frozen=True)
class RequestedCigar:
    name: str
    brand: Optional[str] = None


def _clean(captured: str) -> str:
    return captured.strip().strip("\"'“”").rstrip("?!., ").strip()


def _split_brand(query: str, known_brands: Iterable[str]) -> RequestedCigar:
    tokens = tokenize(query)
    # longest brand first so "My Father" wins over a hypothetical "My"
    for brand in sorted(set(known_brands), key=lambda b: len(tokenize(b)), reverse=True):
        brand_tokens = tokenize(brand)
        if brand_tokens and tokens[: len(brand_tokens)] == brand_tokens and len(tokens) > len(brand_tokens):
            return RequestedCigar(name=" ".join(tokens[len(brand_tokens):]), brand=brand)
    return RequestedCigar(name=query)


def _usable(query: str) -> bool:
    return bool(meaningful_tokens(tokenize(query)))


def extract_requested_cigar(text: Optional[str], known_brands: Iterable[str] = ()) -> Optional[RequestedCigar]:
    """Find the cigar the customer asked about, or None.

    Falls back to the whole message when no phrasing matches, but one-word
    messages ("hi", "thanks") never count.
    """
    message = (text or "").strip()
    if len(tokenize(message)) < 2:
        return None
    query = message
    for pattern in USER_PATTERNS:
        m = pattern.search(message)
        if m:
            query = _clean(m.group(1))
            break
    if not _usable(query):
        return None
    return _split_brand(query, known_brands)


def extract_identified_cigar(text: Optional[str], known_brands: Iterable[str] = ()) -> Optional[RequestedCigar]:
    """Find the cigar named in the model's image description, or None."""
    message = (text or "").strip()
    if not message:
        return None
    for pattern in IMAGE_PATTERNS:
        for m in pattern.finditer(message):
            query = _clean(m.group(1))
            if _usable(query):
                return _split_brand(query, known_brands)
    return None


def resolve_requested_cigar(text: Optional[str], matcher: InventoryMatcher) -> Optional[CatalogEntry]:
    requested = extract_requested_cigar(text, matcher.brands)
    if requested is None:
        return None
    return matcher.find_match(requested.name, requested.brand)


def resolve_identified_cigar(text: Optional[str], matcher: InventoryMatcher) -> Optional[CatalogEntry]:
    identified = extract_identified_cigar(text, matcher.brands)
    if identified is None:
        return None
    return matcher.find_match(identified.name, identified.brand)
