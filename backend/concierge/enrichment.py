from __future__ import annotations
from typing import Iterable, List, Optional, Sequence, Union

from .matcher import InventoryMatcher
from .models import CandidateCigar, CatalogEntry, DisplayCigar, Pairings
from .text import tokenize


def pick(a, b):
    # Catalog value wins unless it is empty
    return a if a not in (None, "", []) else b


def candidate_from_entry(entry: CatalogEntry) -> CandidateCigar:
    """Describe a catalog entry the way the model would."""
    return CandidateCigar(
        name=entry.name,
        brand=entry.brand,
        origin=entry.origin,
        wrapper=entry.wrapper,
        body=entry.body,
        strength=entry.strength,
        price=entry.price_range,
        time=entry.smoking_time,
        description=entry.description,
        tasting_notes=list(entry.tasting_notes),
        pairings=entry.pairings.model_copy(deep=True),
    )


def display_from_entry(entry: CatalogEntry, candidate: Optional[CandidateCigar] = None) -> DisplayCigar:
    """Build the card for a catalog entry, filling gaps from the model's candidate."""
    c = candidate or CandidateCigar()
    return DisplayCigar(
        id=entry.id,
        name=pick(entry.name, c.name),
        brand=pick(entry.brand, c.brand),
        origin=pick(entry.origin, c.origin),
        wrapper=pick(entry.wrapper, c.wrapper),
        body=pick(entry.body, c.body),
        strength=pick(entry.strength, c.strength),
        price=pick(entry.price_range, c.price),
        time=pick(entry.smoking_time, c.time),
        description=pick(entry.description, c.description),
        tasting_notes=list(pick(entry.tasting_notes, c.tasting_notes)),
        pairings=Pairings(
            alcoholic=list(pick(entry.pairings.alcoholic, c.pairings.alcoholic)),
            non_alcoholic=list(pick(entry.pairings.non_alcoholic, c.pairings.non_alcoholic)),
        ),
        image_url=entry.image_url or None,
        product_url=entry.product_url or None,
        in_stock=entry.inventory_count > 0,
    )


def _unresolved(candidate: CandidateCigar) -> DisplayCigar:
    data = candidate.model_dump(include=set(CandidateCigar.model_fields))
    return DisplayCigar(**data)


def enrich(
    candidates: Iterable[CandidateCigar],
    catalog: Union[InventoryMatcher, Sequence[CatalogEntry]],
) -> List[DisplayCigar]:
    """Swap the model's guessed details for our catalog's, one candidate at a time.

    Candidates that do not resolve pass through without image/product urls,
    which is how filter_to_inventory spots them.
    """
    matcher = catalog if isinstance(catalog, InventoryMatcher) else InventoryMatcher(catalog)
    out: List[DisplayCigar] = []
    for candidate in candidates:
        entry = matcher.find_match(candidate.name, candidate.brand or None)
        if entry is None:
            out.append(_unresolved(candidate))
        else:
            out.append(display_from_entry(entry, candidate))
    return out


def filter_to_inventory(cigars: Iterable[DisplayCigar]) -> List[DisplayCigar]:
    # Missing media means the cigar never matched anything we carry
    return [c for c in cigars if c.image_url or c.product_url]


def _key(cigar: CandidateCigar) -> str:
    if isinstance(cigar, DisplayCigar) and cigar.id:
        return f"id:{cigar.id}"
    return "name:" + " ".join(tokenize(f"{cigar.brand} {cigar.name}"))


def dedupe_cigars(cigars: Iterable[DisplayCigar]) -> List[DisplayCigar]:
    """Same cigar twice in one answer shows up once, first position kept."""
    seen = set()
    out: List[DisplayCigar] = []
    for c in cigars:
        k = _key(c)
        if k in seen:
            continue
        seen.add(k)
        out.append(c)
    return out


def _shown_key(text: str) -> str:
    return " ".join(tokenize(text))


def drop_previously_shown(
    cigars: Iterable[DisplayCigar],
    shown: Iterable[str],
    keep_ids: Iterable[str] = (),
) -> List[DisplayCigar]:
    """Remove cigars the customer has already been shown this session.

    `shown` holds display names as the frontend tracks them, either "Name" or
    "Brand Name". Ids in keep_ids survive, e.g. when the customer asked for that cigar again.
    """
    shown_keys = {_shown_key(s) for s in shown if s}
    keep = set(keep_ids)
    out: List[DisplayCigar] = []
    for c in cigars:
        if c.id and c.id in keep:
            out.append(c)
            continue
        if _shown_key(c.name) in shown_keys or _shown_key(f"{c.brand} {c.name}") in shown_keys:
            continue
        out.append(c)
    return out
