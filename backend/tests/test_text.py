from concierge.text import contains_phrase, meaningful_tokens, tokenize, unique

# Splits on whitespace and name punctuation, lowercases
def test_tokenize_brand_and_line():
    assert tokenize("My Father - Le Bijou 1922") == ["my", "father", "le", "bijou", "1922"]

# "No. 9" keeps the number as its own token
def test_tokenize_line_numbers():
    assert tokenize("Liga Privada No. 9") == ["liga", "privada", "no", "9"]

# Apostrophes are dropped rather than splitting the word
def test_tokenize_apostrophes():
    assert tokenize("Romeo y Julieta's Reserva") == ["romeo", "y", "julietas", "reserva"]

# Nothing in, nothing out
def test_tokenize_empty():
    assert tokenize(None) == []
    assert tokenize("   ") == []

# Vitolas and filler words carry no weight
def test_meaningful_tokens_drop_noise():
    assert meaningful_tokens(["the", "robusto", "padron", "serie", "1964"]) == ["padron", "1964"]

def test_unique_keeps_first_order():
    assert unique(["fuente", "fuente", "opusx"]) == ["fuente", "opusx"]

# Containment respects token boundaries: "le" is not inside "blue"
def test_contains_phrase_token_boundary():
    assert contains_phrase("father blue", "my father blue")
    assert not contains_phrase("le", "my father blue")
    assert not contains_phrase("blue", "bluegrass reserve")
    assert not contains_phrase("", "my father blue")
