import json

from concierge.parsing import coerce_confidence, parse_model_response, sanitize_image_message, strip_code_fences

# Code fences around the JSON are ignored
def test_fenced_json():
    raw = '```json\n{"message": "Try these", "cigars": [{"name": "Blue", "brand": "My Father"}]}\n```'
    parsed = parse_model_response(raw)
    assert parsed.message == "Try these"
    assert [c.name for c in parsed.cigars] == ["Blue"]
    assert parsed.confidence is None

def test_strip_code_fences():
    assert strip_code_fences("```\n{}\n```") == "{}"
    assert strip_code_fences("plain") == "plain"

# Output cut off mid-message still yields the confidence and what we have of the message
def test_truncated_message():
    parsed = parse_model_response('{"confidence": 82, "message": "I can see thi')
    assert parsed.confidence == 82
    assert parsed.message == "I can see thi"
    assert parsed.cigars == []

# Output cut off inside the cigar list resolves the cigar against the catalog
def test_truncated_cigar_recovered_from_catalog(entries):
    raw = ('{"confidence": 88, "message": "I can see this is a My Father Blue!", '
           '"cigars": [{"name": "Blue", "brand": "My Father", "origin": "Nicar')
    parsed = parse_model_response(raw, catalog=entries)
    assert parsed.recovered
    assert parsed.confidence == 88
    assert parsed.cigars[0].name == "Blue"
    assert parsed.cigars[0].origin == "Nicaragua"

# Without a catalog the partial cigar comes back as the model named it
def test_truncated_cigar_without_catalog():
    parsed = parse_model_response('{"message": "Sure", "cigars": [{"name": "Behike 52", "brand": "Cohiba", "ori')
    assert not parsed.recovered
    assert parsed.cigars[0].brand == "Cohiba"

# Plain prose is passed through as the message
def test_prose():
    parsed = parse_model_response("Happy to help with that.")
    assert parsed.message == "Happy to help with that."
    assert parsed.cigars == []

def test_empty():
    parsed = parse_model_response(None)
    assert parsed.message == "" and parsed.cigars == [] and parsed.confidence is None

# The scan prompt's single "cigar" object and a string confidence
def test_single_cigar_and_string_confidence():
    raw = json.dumps({"cigar": {"name": "Blue", "brand": "My Father"}, "confidence": "85%", "message": "Got it"})
    parsed = parse_model_response(raw)
    assert parsed.confidence == 85
    assert len(parsed.cigars) == 1

# Junk items in the list are dropped, loose field types are coerced
def test_malformed_items_dropped():
    raw = json.dumps({
        "message": "Two picks",
        "cigars": ["just a string", {"name": "Blue", "tastingNotes": "cocoa, cedar", "price": 12}, {}],
    })
    parsed = parse_model_response(raw)
    assert len(parsed.cigars) == 1
    assert parsed.cigars[0].tasting_notes == ["cocoa", "cedar"]
    assert parsed.cigars[0].price == "12"

def test_coerce_confidence():
    assert coerce_confidence(150) == 100
    assert coerce_confidence(-3) == 0
    assert coerce_confidence(72.6) == 73
    assert coerce_confidence("about 64") == 64
    assert coerce_confidence(True) is None
    assert coerce_confidence("high") is None

# Confidence numbers the model echoes into its answer are removed
def test_sanitize_image_message():
    assert sanitize_image_message("I can see this is a My Father Blue! (confidence: 85%)") == \
        "I can see this is a My Father Blue!"
    assert sanitize_image_message("My confidence is 90%. This looks like a Padron.") == "This looks like a Padron."
    assert sanitize_image_message(None) == ""
