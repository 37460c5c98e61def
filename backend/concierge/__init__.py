from .models import CatalogEntry, CandidateCigar, DisplayCigar, ParsedResponse, ChatRequest, ChatResponse
from .text import tokenize, NOISE_WORDS
from .matcher import InventoryMatcher, find_match
from .extractor import extract_requested_cigar, extract_identified_cigar
from .parsing import parse_model_response, sanitize_image_message
from .enrichment import enrich, filter_to_inventory, candidate_from_entry, display_from_entry
from .guardrail import IdentificationState, apply_confidence_guardrail

__all__ = [
    'CatalogEntry','CandidateCigar','DisplayCigar','ParsedResponse','ChatRequest','ChatResponse',
    'tokenize','NOISE_WORDS','InventoryMatcher','find_match',
    'extract_requested_cigar','extract_identified_cigar',
    'parse_model_response','sanitize_image_message',
    'enrich','filter_to_inventory','candidate_from_entry','display_from_entry',
    'IdentificationState','apply_confidence_guardrail',
]
