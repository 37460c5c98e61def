"""Request flows behind the HTTP routes: chat, photo identification, quiz and scan.

Every flow reads the catalog fresh, asks the model, and then only lets through
cigars that resolve to our own inventory.
"""

from __future__ import annotations
import logging
from typing import Any, Dict, List, Optional, Sequence

from .catalog import CatalogError, CatalogStore
from .config import Settings
from .enrichment import (
    dedupe_cigars,
    display_from_entry,
    drop_previously_shown,
    enrich,
    filter_to_inventory,
)
from .extractor import resolve_identified_cigar, resolve_requested_cigar
from .guardrail import GuardrailDecision, IdentificationState, apply_confidence_guardrail
from .images import ImagePayloadError, ImageTooLargeError, prepare_upload
from .llm import GenerationRequest, Generator, PayloadTooLargeError
from .matcher import InventoryMatcher
from .models import (
    CandidateCigar,
    CatalogEntry,
    ChatMessage,
    ChatRequest,
    ChatResponse,
    DisplayCigar,
    QuizRequest,
    ScanRequest,
    ScanResponse,
)
from .parsing import parse_model_response, sanitize_image_message
from .prompts import build_chat_prompt, build_image_prompt, build_quiz_prompt
from .references import ReferenceImageLoader

logger = logging.getLogger(__name__)

CONNECTION_MESSAGE = "Having trouble connecting. Try again!"
NO_PROVIDER_MESSAGE = "I'd be happy to help! What would you like to know about cigars?"
CARDS_MESSAGE = "Here's what we have on the shelf for you."
IMAGE_TOO_LARGE_MESSAGE = (
    "That image is too large for me to process. Could you try taking a closer photo "
    "of just the cigar band, or describe what you see on it?"
)
IMAGE_UNREADABLE_MESSAGE = "I couldn't process that image. Can you describe what you see on the cigar band?"
IMAGE_NO_ANSWER_MESSAGE = (
    "I'm having trouble analyzing that image. Could you tell me what text you see on the cigar band? "
    "Or describe the wrapper color?"
)
QUIZ_DEFAULT_MESSAGE = "Based on your preferences, here are my top picks for you!"
QUIZ_FALLBACK_MESSAGE = (
    "I'd be happy to help you find the perfect cigar! Try our chat assistant for personalized recommendations."
)
SCAN_NOT_FOUND = "Cigar not found. Try searching by brand or name, or ask our AI assistant for help!"
SCAN_NO_PROVIDER = "Image recognition requires API configuration. Please use our chat assistant for help!"
SCAN_EMPTY_REQUEST = "Please provide a barcode or image"


def _last_user_text(messages: Sequence[ChatMessage]) -> str:
    for m in reversed(messages):
        if m.role == "user" and m.content.strip():
            return m.content.strip()
    return ""


def _clarify(message: str, confidence: int = 0) -> GuardrailDecision:
    return GuardrailDecision(IdentificationState.NEEDS_CLARIFICATION, confidence, message, [])


class ConciergeService:
    def __init__(
        self,
        catalog: CatalogStore,
        generator: Generator,
        settings: Optional[Settings] = None,
        references: Optional[ReferenceImageLoader] = None,
    ):
        self.catalog = catalog
        self.generator = generator
        self.settings = settings or Settings()
        self.references = references

    @property
    def has_provider(self) -> bool:
        return getattr(self.generator, "available", True)

    def matcher(self, entries: Optional[List[CatalogEntry]] = None) -> InventoryMatcher:
        return InventoryMatcher(self.catalog.entries() if entries is None else entries, self.settings.matcher)

    def _recommendations(
        self,
        candidates: Sequence[CandidateCigar],
        matcher: InventoryMatcher,
        shown: Sequence[str] = (),
        keep_ids: Sequence[str] = (),
    ) -> List[DisplayCigar]:
        cigars = filter_to_inventory(enrich(candidates, matcher))
        cigars = dedupe_cigars(cigars)
        cigars = drop_previously_shown(cigars, shown, keep_ids)
        return cigars[: self.settings.max_recommendations]

    # chat

    def chat(self, request: ChatRequest) -> ChatResponse:
        last_user = _last_user_text(request.messages)
        if request.image:
            decision = self.identify_image(request.image, last_user)
            return ChatResponse(message=decision.message, cigars=decision.cigars, confidence=decision.confidence)

        if not self.has_provider:
            return ChatResponse(message=NO_PROVIDER_MESSAGE)

        try:
            entries = self.catalog.entries()
            matcher = self.matcher(entries)
            gen_request = GenerationRequest(
                system=build_chat_prompt(entries, request.shown_cigars),
                messages=[
                    {"role": m.role, "content": m.content}
                    for m in request.messages
                    if m.role in ("user", "assistant") and m.content
                ],
                temperature=0.7,
                max_tokens=1000,
            )
            raw = self.generator.generate(gen_request)
        except Exception:
            logger.exception("[Chat] API error")
            return ChatResponse(message=CONNECTION_MESSAGE)
        if not raw:
            return ChatResponse(message=CONNECTION_MESSAGE)

        parsed = parse_model_response(raw, matcher=matcher)
        requested = resolve_requested_cigar(last_user, matcher)
        keep_ids = [requested.id] if requested else []
        cigars = self._recommendations(parsed.cigars, matcher, request.shown_cigars, keep_ids)

        if not cigars and requested is not None:
            # the model answered in prose about a cigar we carry; show its card anyway
            logger.info("[Chat] Backfilled requested cigar %s %s", requested.brand, requested.name)
            cigars = [display_from_entry(requested)]

        # a JSON answer without a message still came from the model; pass its text through
        message = parsed.message or (CARDS_MESSAGE if cigars else raw.strip())
        return ChatResponse(message=message, cigars=cigars)

    # photos

    def identify_image(self, image: str, customer_text: str = "") -> GuardrailDecision:
        """Identify a cigar from a customer photo and run the result through the confidence guardrail."""
        s = self.settings
        try:
            prepared = prepare_upload(image, s.max_upload_bytes, s.compress_over_kb, s.max_model_image_bytes)
        except ImageTooLargeError as e:
            logger.info("[Image] Rejected upload: %s", e)
            return _clarify(IMAGE_TOO_LARGE_MESSAGE)
        except ImagePayloadError as e:
            logger.info("[Image] Unreadable upload: %s", e)
            return _clarify(IMAGE_UNREADABLE_MESSAGE)

        if not self.has_provider:
            return _clarify(IMAGE_NO_ANSWER_MESSAGE)

        try:
            entries = self.catalog.entries()
            references = self.references.load(entries) if self.references else []
        except CatalogError:
            logger.exception("[Image] Catalog unavailable")
            return _clarify(IMAGE_NO_ANSWER_MESSAGE)
        matcher = self.matcher(entries)
        gen_request = GenerationRequest(
            system=build_image_prompt(s.confidence_threshold, references, customer_text),
            images=[r.data_url for r in references] + [prepared],
            temperature=0.7,
            max_tokens=800,
        )
        try:
            raw = self.generator.generate(gen_request)
        except PayloadTooLargeError:
            return _clarify(IMAGE_TOO_LARGE_MESSAGE)
        except Exception:
            logger.exception("[Image] Vision error")
            return _clarify(IMAGE_NO_ANSWER_MESSAGE)
        if not raw:
            return _clarify(IMAGE_NO_ANSWER_MESSAGE)

        parsed = parse_model_response(raw, matcher=matcher)
        message = sanitize_image_message(parsed.message)
        cigars = dedupe_cigars(filter_to_inventory(enrich(parsed.cigars, matcher)))
        backfilled = parsed.recovered and bool(cigars)
        if not cigars:
            entry = resolve_identified_cigar(message, matcher)
            if entry is not None:
                logger.info("[Image] Backfilled from description: %s %s", entry.brand, entry.name)
                cigars = [display_from_entry(entry)]
                backfilled = True

        return apply_confidence_guardrail(
            parsed.confidence,
            cigars[: s.max_recommendations],
            message,
            threshold=s.confidence_threshold,
            default_confidence=s.default_confidence,
            backfill_confidence=s.backfill_confidence,
            backfilled=backfilled,
        )

    # quiz

    def quiz_recommendations(self, request: QuizRequest) -> ChatResponse:
        if not self.has_provider:
            return ChatResponse(message=QUIZ_DEFAULT_MESSAGE)
        try:
            entries = self.catalog.entries()
            matcher = self.matcher(entries)
            raw = self.generator.generate(GenerationRequest(
                system=build_quiz_prompt(entries),
                messages=[{"role": "user", "content": f"Customer quiz preferences:\n{request.preferences}"}],
                temperature=0.7,
                max_tokens=1500,
            ))
        except Exception:
            logger.exception("[Quiz] AI error")
            return ChatResponse(message=QUIZ_FALLBACK_MESSAGE)
        if not raw:
            return ChatResponse(message=QUIZ_FALLBACK_MESSAGE)

        parsed = parse_model_response(raw, matcher=matcher)
        cigars = self._recommendations(parsed.cigars, matcher)
        return ChatResponse(message=parsed.message or QUIZ_DEFAULT_MESSAGE, cigars=cigars)

    # scan

    def scan(self, request: ScanRequest) -> ScanResponse:
        if request.barcode and request.barcode.strip():
            code = request.barcode.strip()
            try:
                entry = self.catalog.find_by_barcode(code) or self.catalog.search(code)
            except CatalogError:
                logger.exception("[Scan] Catalog unavailable")
                return ScanResponse(error=CONNECTION_MESSAGE)
            if entry is None:
                logger.info("[Scan] No inventory match for %r", code)
                return ScanResponse(error=SCAN_NOT_FOUND)
            return ScanResponse(cigar=display_from_entry(entry))

        if request.image:
            if not self.has_provider:
                return ScanResponse(error=SCAN_NO_PROVIDER)
            decision = self.identify_image(request.image)
            logger.info("[Scan] Confidence: %s%% (%s)", decision.confidence, decision.state.value)
            if decision.state is IdentificationState.CONFIRMED:
                return ScanResponse(cigar=decision.cigars[0], confidence=decision.confidence, needs_clarification=False)
            return ScanResponse(error=decision.message, confidence=decision.confidence, needs_clarification=True)

        return ScanResponse(error=SCAN_EMPTY_REQUEST)

    # catalog overview

    def meta(self) -> Dict[str, Any]:
        df = self.catalog.frame()
        if df.empty:
            return {"brands": [], "origins": [], "strengths": [], "total": 0, "in_stock": 0, "units": 0}
        in_stock = df[df["inventory_count"] > 0]
        return {
            "brands": sorted(b for b in df["brand"].dropna().unique().tolist() if b),
            "origins": sorted(o for o in df["origin"].dropna().unique().tolist() if o),
            "strengths": sorted(s for s in df["strength"].dropna().unique().tolist() if s),
            "total": int(len(df)),
            "in_stock": int(len(in_stock)),
            "units": int(df["inventory_count"].sum()),
        }
