"""Confidence gate for image identification.

Each photo starts in AWAITING_RESULT and ends in CONFIRMED or NEEDS_CLARIFICATION.
Nothing carries over between requests.
"""

from __future__ import annotations
import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import List, Optional, Sequence

from .config import BACKFILL_CONFIDENCE, DEFAULT_CONFIDENCE, IMAGE_CONFIDENCE_THRESHOLD
from .models import DisplayCigar

logger = logging.getLogger(__name__)

CLARIFY_MESSAGE = (
    "I can see a cigar, but I want to be sure before I name it. "
    "Can you tell me what text you see on the band, or get a closer shot of it?"
)
NOT_IN_STOCK_MESSAGE = (
    "I couldn't match that to anything we carry. "
    "Can you tell me the brand or the text on the band so I can double-check?"
)


class IdentificationState(str, Enum):
    AWAITING_RESULT = "awaiting_result"
    CONFIRMED = "confirmed"
    NEEDS_CLARIFICATION = "needs_clarification"


@dataclass
class GuardrailDecision:
    state: IdentificationState
    confidence: int
    message: str
    cigars: List[DisplayCigar] = field(default_factory=list)

    @property
    def needs_clarification(self) -> bool:
        return self.state is IdentificationState.NEEDS_CLARIFICATION


def _clarifying(message: str, fallback: str) -> str:
    # Keep the model's own question when it asked one
    text = (message or "").strip()
    return text if text.endswith("?") else fallback


def apply_confidence_guardrail(
    confidence: Optional[int],
    cigars: Sequence[DisplayCigar],
    message: str,
    threshold: int = IMAGE_CONFIDENCE_THRESHOLD,
    default_confidence: int = DEFAULT_CONFIDENCE,
    backfill_confidence: int = BACKFILL_CONFIDENCE,
    backfilled: bool = False,
) -> GuardrailDecision:
    """Decide whether an identification may be shown.

    `cigars` must already be enriched and filtered to inventory. `backfilled`
    means the cigar came from our own catalog match rather than the model's list,
    which lifts a low self-reported score to the backfill floor.
    """
    state = IdentificationState.AWAITING_RESULT
    score = default_confidence if confidence is None else confidence
    resolved = list(cigars)

    if backfilled and resolved and score < threshold:
        lifted = max(backfill_confidence, threshold)
        logger.info("[Image] Catalog backfill raised confidence %s -> %s", score, lifted)
        score = lifted

    if resolved and score >= threshold:
        state = IdentificationState.CONFIRMED
        logger.info("[Image] Confidence: %s%%", score)
        return GuardrailDecision(state, score, (message or "").strip(), resolved)

    state = IdentificationState.NEEDS_CLARIFICATION
    if resolved:
        logger.info("[Image] Low confidence (%s%%), asking for clarification", score)
        text = _clarifying(message, CLARIFY_MESSAGE)
    elif score >= threshold:
        # Confident, but about something we do not carry
        text = _clarifying(message, NOT_IN_STOCK_MESSAGE)
    else:
        text = _clarifying(message, CLARIFY_MESSAGE)
    return GuardrailDecision(state, score, text, [])
