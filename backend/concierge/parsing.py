"""Turn raw model output into message / cigars / confidence.

The model is asked for JSON but does not always deliver: it wraps it in code fences,
runs out of tokens halfway through an object, or just writes prose. None of that may
reach the customer as an error, so every path here returns a ParsedResponse.
"""

from __future__ import annotations
import json
import logging
import re
from typing import Any, List, Optional, Sequence

from pydantic import ValidationError

from .enrichment import candidate_from_entry
from .matcher import InventoryMatcher
from .models import CandidateCigar, CatalogEntry, ParsedResponse

logger = logging.getLogger(__name__)

_FENCE_START = re.compile(r"^\s*```[a-zA-Z]*\s*")
_FENCE_END = re.compile(r"\s*```\s*$")

_CONFIDENCE_RE = re.compile(r'"confidence"\s*:\s*"?(\d{1,3}(?:\.\d+)?)')
# the closing quote is optional: a truncated message just runs to the end of the text
_MESSAGE_RE = re.compile(r'"message"\s*:\s*"((?:[^"\\]|\\.)*)("?)', re.S)
_FIRST_CIGAR_RE = re.compile(r'"cigars?"\s*:\s*\[?\s*\{(.*)', re.S)
_NAME_RE = re.compile(r'"name"\s*:\s*"((?:[^"\\]|\\.)*)"')
_BRAND_RE = re.compile(r'"brand"\s*:\s*"((?:[^"\\]|\\.)*)"')

# Things like "(confidence: 82%)" or "Confidence score: 82/100" the model echoes into its prose
_CONFIDENCE_NOISE = [
    re.compile(r"\s*[\(\[]\s*(?:confidence|certainty)(?:\s+(?:level|score))?\s*[:=]?\s*\d{1,3}\s*(?:%|/\s*100)?\s*[\)\]]", re.I),
    re.compile(r"\s*\b(?:my\s+)?(?:confidence|certainty)(?:\s+(?:level|score))?\s*(?:is|:|=)\s*\d{1,3}\s*(?:%|/\s*100)?\.?", re.I),
    re.compile(r"\s*\bwith\s+(?:about\s+|around\s+|roughly\s+)?\d{1,3}\s*%\s+(?:confidence|certainty)", re.I),
    re.compile(r"\s*\(\s*\d{1,3}\s*%\s*(?:confident|sure)?\s*\)", re.I),
]


def strip_code_fences(text: str) -> str:
    return _FENCE_END.sub("", _FENCE_START.sub("", text or "")).strip()


def _json_span(text: str) -> Optional[str]:
    start = text.find("{")
    end = text.rfind("}")
    if start == -1 or end <= start:
        return None
    return text[start:end + 1]


def coerce_confidence(value: Any) -> Optional[int]:
    if isinstance(value, bool) or value is None:
        return None
    if isinstance(value, str):
        m = re.search(r"\d{1,3}(?:\.\d+)?", value)
        if not m:
            return None
        value = m.group(0)
    try:
        number = int(round(float(value)))
    except (TypeError, ValueError):
        return None
    return max(0, min(100, number))


def _unescape(raw: str) -> str:
    # a truncated escape like 'thi\' would break json decoding
    if raw.endswith("\\") and not raw.endswith("\\\\"):
        raw = raw[:-1]
    try:
        return json.loads(f'"{raw}"')
    except json.JSONDecodeError:
        return raw.replace('\\"', '"').replace("\\n", "\n").replace("\\\\", "\\")


def _candidates(items: Any) -> List[CandidateCigar]:
    if not isinstance(items, list):
        return []
    out: List[CandidateCigar] = []
    for item in items:
        if not isinstance(item, dict):
            continue
        try:
            cigar = CandidateCigar.model_validate(item)
        except ValidationError as e:
            logger.info("[Parse] Dropping malformed cigar: %s", e.errors()[:1])
            continue
        if cigar.name or cigar.brand:
            out.append(cigar)
    return out


def _from_object(data: dict) -> ParsedResponse:
    cigars = data.get("cigars")
    if cigars is None and isinstance(data.get("cigar"), dict):
        # the scan prompt answers with a single "cigar" object
        cigars = [data["cigar"]]
    message = data.get("message")
    return ParsedResponse(
        message=message.strip() if isinstance(message, str) else "",
        cigars=_candidates(cigars),
        confidence=coerce_confidence(data.get("confidence")),
    )


def _recover(text: str, catalog: Optional[Sequence[CatalogEntry]], matcher: Optional[InventoryMatcher]) -> ParsedResponse:
    """Regex fallback for JSON the model did not finish."""
    confidence = None
    m = _CONFIDENCE_RE.search(text)
    if m:
        confidence = coerce_confidence(m.group(1))

    message = ""
    m = _MESSAGE_RE.search(text)
    if m:
        message = _unescape(m.group(1)).strip()

    cigars: List[CandidateCigar] = []
    recovered = False
    m = _FIRST_CIGAR_RE.search(text)
    if m:
        body = m.group(1)
        name_m = _NAME_RE.search(body)
        brand_m = _BRAND_RE.search(body)
        name = _unescape(name_m.group(1)).strip() if name_m else ""
        brand = _unescape(brand_m.group(1)).strip() if brand_m else ""
        if name:
            if matcher is None and catalog is not None:
                matcher = InventoryMatcher(catalog)
            entry = matcher.find_match(name, brand or None) if matcher else None
            if entry is not None:
                cigars = [candidate_from_entry(entry)]
                recovered = True
            else:
                cigars = [CandidateCigar(name=name, brand=brand)]
    logger.info("[Parse] Recovered truncated response (confidence=%s, cigars=%d)", confidence, len(cigars))
    return ParsedResponse(message=message, cigars=cigars, confidence=confidence, recovered=recovered)


def parse_model_response(
    raw: Optional[str],
    catalog: Optional[Sequence[CatalogEntry]] = None,
    matcher: Optional[InventoryMatcher] = None,
) -> ParsedResponse:
    """Parse model output. Never raises.

    Pass the catalog (or a ready matcher) to let a truncated response still
    come back with a usable, inventory-backed cigar.
    """
    text = strip_code_fences(raw or "")
    if not text:
        return ParsedResponse()

    span = _json_span(text)
    if span is not None:
        try:
            data = json.loads(span)
            if isinstance(data, dict):
                return _from_object(data)
        except json.JSONDecodeError:
            logger.info("[Parse] Could not parse JSON, trying field recovery")

    if "{" in text and '"' in text:
        recovered = _recover(text, catalog, matcher)
        if recovered.message or recovered.cigars or recovered.confidence is not None:
            return recovered

    # Plain prose: show it as is
    return ParsedResponse(message=text)


def sanitize_image_message(message: Optional[str]) -> str:
    """Strip scoring artifacts the vision model sometimes echoes into its answer."""
    text = message or ""
    for pattern in _CONFIDENCE_NOISE:
        text = pattern.sub("", text)
    text = re.sub(r"[ \t]{2,}", " ", text)
    text = re.sub(r"\s+([.,!?])", r"\1", text)
    return text.strip()
