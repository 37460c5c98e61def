"""Eval API endpoints"""
from fastapi import APIRouter, HTTPException, Request
from pydantic import BaseModel
from typing import Optional, Dict, Any, List
import json
import secrets
import threading
import time
from pathlib import Path
from datetime import datetime, timezone

from concierge.config import IMAGE_CONFIDENCE_THRESHOLD
from evaluation.evaluate_identification import DEFAULT_PROMPT, TEST_CASES, IdentificationEvaluator
from evaluation.metrics import check_confidence_guardrail, confidence_level, history_stats

router = APIRouter()


class EvaluateRequest(BaseModel):
    image: Optional[str] = None
    message: Optional[str] = None
    notes: Optional[str] = None
    run_tests: bool = False


class EvaluationHistoryStore:
    """Single-image evaluations, newest first, in one JSON file"""

    def __init__(self, path: Path):
        self.path = Path(path)
        self._lock = threading.Lock()

    def load(self) -> List[Dict[str, Any]]:
        try:
            with open(self.path, "r") as f:
                return list(json.load(f).get("evaluations", []))
        except (OSError, json.JSONDecodeError, AttributeError):
            return []

    def _save(self, evaluations: List[Dict[str, Any]]):
        self.path.parent.mkdir(parents=True, exist_ok=True)
        with open(self.path, "w") as f:
            json.dump({"evaluations": evaluations}, f, indent=2)

    def add(self, record: Dict[str, Any]):
        with self._lock:
            evaluations = self.load()
            evaluations.insert(0, record)
            self._save(evaluations)

    def delete(self, eval_id: str):
        with self._lock:
            self._save([e for e in self.load() if e.get("id") != eval_id])

    def clear(self):
        with self._lock:
            self._save([])


def _service(request: Request):
    service = getattr(request.app.state, "service", None)
    if service is None:
        raise HTTPException(status_code=500, detail="Service not ready")
    return service


def _history(request: Request) -> EvaluationHistoryStore:
    store = getattr(request.app.state, "evaluations", None)
    if store is None:
        store = EvaluationHistoryStore(_service(request).settings.evaluations_path)
        request.app.state.evaluations = store
    return store


def _threshold(request: Request) -> int:
    service = getattr(request.app.state, "service", None)
    return service.settings.confidence_threshold if service else IMAGE_CONFIDENCE_THRESHOLD


@router.get("")
def evaluation_info(request: Request, action: Optional[str] = None):
    """Test case definitions, or stored history with stats when action=history"""
    if action == "history":
        evaluations = _history(request).load()
        return {"evaluations": evaluations, "stats": history_stats(evaluations)}

    threshold = _threshold(request)
    return {
        "status": "evaluation_framework_ready",
        "test_cases": [
            {
                "id": tc.id,
                "description": tc.description,
                "expected_confidence_range": list(tc.expected_confidence_range),
                "should_identify": tc.should_identify,
                "tags": tc.tags,
            }
            for tc in TEST_CASES
        ],
        "guardrail_threshold": threshold,
        "instructions": (
            "POST an image to /api/evaluate to score it for confidence and check it against "
            f"the {threshold}% guardrail, or POST {{\"run_tests\": true}} to evaluate catalog matching."
        ),
    }


@router.post("")
def evaluate(req: EvaluateRequest, request: Request):
    """Evaluate one photo through identification, or run the catalog matching eval"""
    service = _service(request)

    if req.image:
        start = time.time()
        decision = service.identify_image(req.image, req.message or DEFAULT_PROMPT)
        response_time = int((time.time() - start) * 1000)
        threshold = service.settings.confidence_threshold

        has_cigar = bool(decision.cigars)
        guardrail = check_confidence_guardrail(decision.confidence, has_cigar, threshold)
        record = {
            "id": f"eval_{int(time.time() * 1000)}_{secrets.token_hex(4)}",
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "confidence": decision.confidence,
            "confidence_level": confidence_level(decision.confidence),
            "identified": has_cigar,
            "identified_cigar": decision.cigars[0].name if has_cigar else None,
            "guardrail_passed": guardrail["passed"],
            "guardrail_message": guardrail["message"],
            "response_time": response_time,
            "meets_threshold": decision.confidence >= threshold,
            "ai_response": decision.message,
            "notes": req.notes,
            "image_data": req.image,
        }
        _history(request).add(record)
        return {
            "evaluation": record,
            "response": {
                "message": decision.message,
                "cigars": [c.model_dump(by_alias=True) for c in decision.cigars],
                "confidence": decision.confidence,
            },
        }

    if req.run_tests:
        evaluator = IdentificationEvaluator(service=service, threshold=service.settings.confidence_threshold)
        return {"matcher": evaluator.evaluate_matcher(), "test_cases": len(TEST_CASES)}

    raise HTTPException(status_code=400, detail="Please provide an image to evaluate or set run_tests: true")


@router.delete("")
def delete_evaluations(request: Request, id: Optional[str] = None):
    store = _history(request)
    if id:
        store.delete(id)
        return {"success": True, "deleted": id}
    store.clear()
    return {"success": True, "message": "All evaluations cleared"}
