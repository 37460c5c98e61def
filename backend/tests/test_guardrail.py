from concierge.enrichment import display_from_entry
from concierge.guardrail import (
    CLARIFY_MESSAGE,
    NOT_IN_STOCK_MESSAGE,
    IdentificationState,
    apply_confidence_guardrail,
)

# Confident and in inventory: show it
def test_confirmed(entries):
    blue = display_from_entry(entries[5])
    d = apply_confidence_guardrail(88, [blue], "I can see this is a My Father Blue!")
    assert d.state is IdentificationState.CONFIRMED
    assert d.cigars == [blue]
    assert d.confidence == 88
    assert not d.needs_clarification

# Below threshold: no card, ask instead
def test_low_confidence_asks(entries):
    blue = display_from_entry(entries[5])
    d = apply_confidence_guardrail(60, [blue], "Looks like a My Father.")
    assert d.state is IdentificationState.NEEDS_CLARIFICATION
    assert d.cigars == []
    assert d.message == CLARIFY_MESSAGE
    assert d.confidence == 60

# The model's own clarifying question is kept
def test_keeps_model_question(entries):
    d = apply_confidence_guardrail(45, [display_from_entry(entries[5])], "Is that a blue band with gold text?")
    assert d.message == "Is that a blue band with gold text?"
    assert d.needs_clarification

# Missing confidence counts as the default, which is below threshold
def test_missing_confidence(entries):
    d = apply_confidence_guardrail(None, [display_from_entry(entries[0])], "A Padron.")
    assert d.confidence == 50
    assert d.cigars == []

# Exactly at threshold passes, one below does not
def test_threshold_boundary(entries):
    blue = display_from_entry(entries[5])
    assert apply_confidence_guardrail(75, [blue], "").state is IdentificationState.CONFIRMED
    assert apply_confidence_guardrail(74, [blue], "").state is IdentificationState.NEEDS_CLARIFICATION

# Confident but nothing we carry
def test_confident_not_in_stock():
    d = apply_confidence_guardrail(92, [], "I can see this is a Cohiba Behike 52!")
    assert d.needs_clarification
    assert d.message == NOT_IN_STOCK_MESSAGE

# A catalog backfill lifts a low score to the backfill floor
def test_backfill_lifts_confidence(entries):
    blue = display_from_entry(entries[5])
    d = apply_confidence_guardrail(40, [blue], "I can see this is a My Father Blue!", backfilled=True)
    assert d.state is IdentificationState.CONFIRMED
    assert d.confidence == 80

# The floor never sits below a raised threshold
def test_backfill_respects_higher_threshold(entries):
    blue = display_from_entry(entries[5])
    d = apply_confidence_guardrail(40, [blue], "", threshold=90, backfilled=True)
    assert d.confidence == 90
    assert d.cigars == [blue]

# A backfill without a resolved cigar lifts nothing
def test_backfill_needs_a_cigar():
    d = apply_confidence_guardrail(40, [], "", backfilled=True)
    assert d.confidence == 40
    assert d.needs_clarification

# No confidence value ever produces a card below threshold
def test_never_shows_below_threshold(entries):
    blue = display_from_entry(entries[5])
    for confidence in [None, 0, 30, 74, 75, 99, 100]:
        d = apply_confidence_guardrail(confidence, [blue], "msg", threshold=75)
        assert not d.cigars or d.confidence >= 75
