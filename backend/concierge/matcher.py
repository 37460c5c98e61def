"""Resolve free-text cigar names from the model against the store catalog.

The model is good at cigar knowledge and bad at spelling our inventory back to us,
so every name it gives goes through here before we show anything.
Scoring is token based: numbers (model years, line numbers) are the most telling,
long words next, short words least. Generic words (see text.NOISE_WORDS) carry nothing.
"""

from __future__ import annotations
from dataclasses import dataclass
from typing import Iterable, List, Optional, Sequence, Tuple

from .config import MatcherConfig
from .models import CatalogEntry
from .text import contains_phrase, meaningful_tokens, tokenize, unique


def _compose(name: Optional[str], brand: Optional[str]) -> Tuple[List[str], List[str]]:
    """Return (brand tokens, name tokens without the brand repeated)."""
    brand_tokens = unique(tokenize(brand))
    brand_set = set(brand_tokens)
    # The model often repeats the brand inside the name field
    name_tokens = unique(t for t in tokenize(name) if t not in brand_set)
    return brand_tokens, name_tokens


@dataclass(frozen=True)
class _Prepared:
    brand_tokens: Tuple[str, ...]
    name_tokens: Tuple[str, ...]
    composite: str
    name: str
    core: str  # composite minus noise words

    @property
    def brand_set(self) -> frozenset:
        return frozenset(self.brand_tokens)

    @property
    def tokens(self) -> Tuple[str, ...]:
        return self.brand_tokens + self.name_tokens


def _prepare(name: Optional[str], brand: Optional[str]) -> _Prepared:
    brand_tokens, name_tokens = _compose(name, brand)
    tokens = brand_tokens + name_tokens
    return _Prepared(
        brand_tokens=tuple(brand_tokens),
        name_tokens=tuple(name_tokens),
        composite=" ".join(tokens),
        name=" ".join(name_tokens),
        core=" ".join(meaningful_tokens(tokens)),
    )


@dataclass(frozen=True)
class MatchResult:
    entry: CatalogEntry
    score: int
    exact: bool = False
    brand_match: bool = False

    def rank_key(self) -> Tuple[bool, int, bool, int]:
        # exact first, then score, then same brand, then the one we have more of
        return (self.exact, self.score, self.brand_match, self.entry.inventory_count)


class InventoryMatcher:
    """Scores catalog entries against a (name, brand) query and picks the best one."""

    def __init__(self, entries: Iterable[CatalogEntry], config: Optional[MatcherConfig] = None):
        self.config = config or MatcherConfig()
        self.entries: List[CatalogEntry] = list(entries)
        self._prepared = [(e, _prepare(e.name, e.brand)) for e in self.entries]

    @property
    def brands(self) -> List[str]:
        return unique(e.brand for e in self.entries if e.brand)

    def _brand_match(self, query: _Prepared, entry: _Prepared) -> bool:
        if not entry.brand_tokens:
            return False
        if query.brand_tokens:
            return bool(set(meaningful_tokens(query.brand_tokens)) & entry.brand_set)
        # No brand given: the whole brand has to be spelled out somewhere in the name
        return entry.brand_set.issubset(set(query.tokens))

    def score(self, query: _Prepared, entry: CatalogEntry, prepared: _Prepared) -> MatchResult:
        cfg = self.config
        brand_match = self._brand_match(query, prepared)

        if prepared.composite == query.composite or (
            query.name and prepared.name == query.name and (not query.brand_tokens or brand_match)
        ):
            return MatchResult(entry, cfg.exact_score, exact=True, brand_match=brand_match)

        if contains_phrase(query.composite, prepared.composite) or contains_phrase(prepared.composite, query.composite):
            return MatchResult(entry, cfg.containment_score, brand_match=brand_match)

        entry_tokens = set(prepared.tokens)
        matched = [t for t in meaningful_tokens(query.tokens) if t in entry_tokens]
        if not matched:
            return MatchResult(entry, 0, brand_match=brand_match)
        weight = sum(cfg.token_weight(t) for t in matched)
        non_brand = [t for t in matched if t not in query.brand_set and t not in prepared.brand_set]

        if brand_match and non_brand:
            score = cfg.brand_match_bonus + weight
        elif len(non_brand) >= 2:
            score = cfg.multi_token_bonus + weight
        else:
            return MatchResult(entry, 0, brand_match=brand_match)

        if contains_phrase(query.name, prepared.name) or contains_phrase(prepared.name, query.name):
            score += cfg.name_containment_bonus
        if contains_phrase(query.core, prepared.core) or contains_phrase(prepared.core, query.core):
            score += cfg.composite_containment_bonus
        return MatchResult(entry, score, brand_match=brand_match)

    def rank(self, name: Optional[str], brand: Optional[str] = None) -> List[MatchResult]:
        """Every entry with a positive score, best first."""
        query = _prepare(name, brand)
        if not meaningful_tokens(query.tokens):
            return []
        results = [self.score(query, entry, prepared) for entry, prepared in self._prepared]
        results = [r for r in results if r.score > 0]
        # stable sort keeps catalog order for full ties
        results.sort(key=lambda r: r.rank_key(), reverse=True)
        return results

    def best(self, name: Optional[str], brand: Optional[str] = None) -> Optional[MatchResult]:
        ranked = self.rank(name, brand)
        if not ranked or ranked[0].score < self.config.accept_floor:
            return None
        return ranked[0]

    def find_match(self, name: Optional[str], brand: Optional[str] = None) -> Optional[CatalogEntry]:
        result = self.best(name, brand)
        return result.entry if result else None


def find_match(
    name: Optional[str],
    brand: Optional[str],
    catalog: Sequence[CatalogEntry],
    config: Optional[MatcherConfig] = None,
) -> Optional[CatalogEntry]:
    return InventoryMatcher(catalog, config).find_match(name, brand)
