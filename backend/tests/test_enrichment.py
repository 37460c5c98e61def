from concierge.enrichment import (
    candidate_from_entry,
    dedupe_cigars,
    display_from_entry,
    drop_previously_shown,
    enrich,
    filter_to_inventory,
)
from concierge.matcher import find_match
from concierge.models import CandidateCigar, CatalogEntry

# Catalog details replace whatever the model guessed
def test_enrich_uses_catalog_values(entries):
    guess = CandidateCigar(name="1964 Anniversary", brand="Padron", price="$999", description="made up")
    [cigar] = enrich([guess], entries)
    padron = entries[0]
    assert cigar.id == "1"
    assert cigar.name == padron.name
    assert cigar.price == padron.price_range
    assert cigar.description == padron.description
    assert cigar.image_url == padron.image_url
    assert cigar.in_stock

# Empty catalog fields fall back to the model's value
def test_enrich_fills_gaps_from_candidate():
    catalog = [CatalogEntry(id="x", brand="Tatuaje", name="Havana VI Verocu", image_url="https://img/x.jpg")]
    [cigar] = enrich([CandidateCigar(name="Havana VI Verocu", brand="Tatuaje", wrapper="Habano")], catalog)
    assert cigar.wrapper == "Habano"
    assert cigar.product_url is None
    assert not cigar.in_stock

# Unmatched cigars come back without media and the inventory filter removes them
def test_unmatched_filtered_out(entries):
    cigars = enrich([
        CandidateCigar(name="Behike 52", brand="Cohiba"),
        CandidateCigar(name="Blue", brand="My Father"),
    ], entries)
    assert cigars[0].id is None and cigars[0].image_url is None
    kept = filter_to_inventory(cigars)
    assert [c.id for c in kept] == ["6"]

# Enriching an already enriched cigar changes nothing
def test_enrich_idempotent(entries):
    once = enrich([CandidateCigar(name="Le Bijou", brand="My Father")], entries)
    twice = enrich(once, entries)
    assert twice == once

# A cigar described from a catalog entry resolves back to that entry
def test_candidate_round_trip(entries):
    for e in entries:
        c = candidate_from_entry(e)
        assert find_match(c.name, c.brand, entries).id == e.id

# A catalog entry sent through enrich and the inventory filter comes back as its own card
def test_enrich_filter_round_trip(entries):
    for e in entries:
        assert filter_to_inventory(enrich([candidate_from_entry(e)], entries)) == [display_from_entry(e)]

# The same cigar named twice in one answer shows once, first position kept
def test_dedupe(entries):
    cigars = enrich([
        CandidateCigar(name="Blue", brand="My Father"),
        CandidateCigar(name="1964 Anniversary", brand="Padron"),
        CandidateCigar(name="My Father Blue"),
    ], entries)
    assert [c.id for c in dedupe_cigars(cigars)] == ["6", "1"]

# Already shown cigars are dropped by name or by "Brand Name"
def test_drop_previously_shown(entries):
    blue = display_from_entry(entries[5])
    padron = display_from_entry(entries[0])
    assert [c.id for c in drop_previously_shown([blue, padron], ["My Father Blue"])] == ["1"]
    assert [c.id for c in drop_previously_shown([blue, padron], ["1964 Anniversary Maduro"])] == ["6"]
    assert drop_previously_shown([blue, padron], []) == [blue, padron]

# A cigar the customer asked for again survives the shown filter
def test_keep_ids_survive(entries):
    blue = display_from_entry(entries[5])
    assert drop_previously_shown([blue], ["Blue"], keep_ids=["6"]) == [blue]

# Out of stock entries still show, flagged
def test_out_of_stock_flag(entries):
    opus = next(e for e in entries if e.inventory_count == 0)
    card = display_from_entry(opus)
    assert card.image_url and not card.in_stock
