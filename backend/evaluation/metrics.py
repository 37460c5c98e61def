"""Metrics for identification and matcher eval"""
from typing import List, Dict, Any, Optional, Tuple
import numpy as np
import pandas as pd

from concierge.config import IMAGE_CONFIDENCE_THRESHOLD


def confidence_level(confidence: int) -> str:
    if confidence >= 80:
        return "high"
    if confidence >= 60:
        return "medium"
    return "low"


def check_confidence_guardrail(confidence: int, has_cigar: bool,
                               threshold: int = IMAGE_CONFIDENCE_THRESHOLD) -> Dict[str, Any]:
    """Was a cigar shown only when confidence cleared the threshold"""
    if confidence < threshold and has_cigar:
        return {
            "passed": False,
            "message": f"GUARDRAIL VIOLATION: Confidence {confidence}% is below {threshold}% threshold "
                       f"but cigar was still identified. Should ask clarifying questions instead.",
        }
    if confidence >= threshold and not has_cigar:
        return {
            "passed": True,
            "message": f"Note: High confidence ({confidence}%) but no cigar shown. "
                       f"The identification may not be in inventory.",
        }
    if confidence >= threshold:
        return {"passed": True, "message": f"OK: Confidence {confidence}% meets threshold, cigar identified."}
    return {"passed": True, "message": f"OK: Confidence {confidence}% below threshold, asking for clarification."}


def in_range(value: float, bounds: Tuple[int, int]) -> bool:
    return bounds[0] <= value <= bounds[1]


def expected_rank(expected_id: str, ranked_ids: List[str]) -> Optional[int]:
    """1-based position of the expected entry in the matcher's ranking, None if it never scored"""
    if expected_id not in ranked_ids:
        return None
    return ranked_ids.index(expected_id) + 1


def match_metrics(expected_id: Optional[str], matched_id: Optional[str],
                  ranked_ids: List[str]) -> Dict[str, float]:
    """Per-query matcher metrics. expected_id None means the query should not resolve"""
    if expected_id is None:
        return {"correct": 1.0 if matched_id is None else 0.0, "false_positive": 1.0 if matched_id else 0.0}
    rank = expected_rank(expected_id, ranked_ids)
    return {
        "correct": 1.0 if matched_id == expected_id else 0.0,
        "false_positive": 1.0 if matched_id is not None and matched_id != expected_id else 0.0,
        "top1": 1.0 if rank == 1 else 0.0,
        "top3": 1.0 if rank is not None and rank <= 3 else 0.0,
        # 0 when the right entry did not even make the ranking
        "reciprocal_rank": 1.0 / rank if rank else 0.0,
    }


def summarize(results: List[Dict[str, Any]], threshold: int = IMAGE_CONFIDENCE_THRESHOLD) -> Dict[str, Any]:
    """Roll up identification case results into pass rate and accuracy figures (percent)"""
    total = len(results)
    if total == 0:
        return {
            "total_cases": 0, "passed": 0, "failed": 0, "pass_rate": 0.0,
            "average_confidence": 0.0, "average_response_time": 0.0,
            "confidence_accuracy": 0.0, "identification_accuracy": 0.0, "guardrail_accuracy": 0.0,
        }
    passed = sum(1 for r in results if r["passed"])
    confidences = np.array([r["actual_confidence"] for r in results], dtype=float)
    times = np.array([r["response_time"] for r in results], dtype=float)
    confidence_ok = sum(1 for r in results if in_range(r["actual_confidence"], r["expected_confidence_range"]))
    identification_ok = sum(1 for r in results if r["should_identify"] == r["did_identify"])
    guardrail_ok = sum(1 for r in results if r["actual_confidence"] >= threshold or not r["did_identify"])
    return {
        "total_cases": total,
        "passed": passed,
        "failed": total - passed,
        "pass_rate": passed / total * 100,
        "average_confidence": float(np.mean(confidences)),
        "average_response_time": float(np.mean(times)),
        "confidence_accuracy": confidence_ok / total * 100,
        "identification_accuracy": identification_ok / total * 100,
        "guardrail_accuracy": guardrail_ok / total * 100,
    }


def history_stats(evaluations: List[Dict[str, Any]]) -> Dict[str, int]:
    """Stats over stored single-image evaluations"""
    n = len(evaluations)
    if n == 0:
        return {"total_tests": 0, "avg_confidence": 0, "guardrail_pass_rate": 0,
                "avg_response_time": 0, "identification_rate": 0}
    return {
        "total_tests": n,
        "avg_confidence": round(sum(e.get("confidence", 0) for e in evaluations) / n),
        "guardrail_pass_rate": round(sum(1 for e in evaluations if e.get("guardrail_passed")) / n * 100),
        "avg_response_time": round(sum(e.get("response_time", 0) for e in evaluations) / n),
        "identification_rate": round(sum(1 for e in evaluations if e.get("identified")) / n * 100),
    }


def aggregate_metrics(per_query: List[Dict[str, Any]]) -> Dict[str, Dict[str, float]]:
    """mean/std/min/max/median of every numeric metric across queries.

    Queries that do not report a metric (no-match queries have no rank) are left out of that metric.
    """
    frame = pd.DataFrame(per_query)
    if frame.empty:
        return {}
    out: Dict[str, Dict[str, float]] = {}
    for name in frame.select_dtypes(include="number").columns:
        values = frame[name].dropna().to_numpy(dtype=float)
        out[name] = {
            "mean": float(values.mean()),
            "std": float(values.std()),
            "min": float(values.min()),
            "max": float(values.max()),
            "median": float(np.median(values)),
        }
    return out


def decision_metrics(should_identify: List[bool], did_identify: List[bool]) -> Dict[str, Any]:
    """Identify vs clarify: 2x2 table (rows expected, columns actual) and per-decision precision/recall"""
    if not should_identify or len(should_identify) != len(did_identify):
        return {}
    expected = np.asarray(should_identify, dtype=bool)
    actual = np.asarray(did_identify, dtype=bool)
    table = [
        [int(np.sum(expected & actual)), int(np.sum(expected & ~actual))],
        [int(np.sum(~expected & actual)), int(np.sum(~expected & ~actual))],
    ]

    per_class = {}
    for label, truth, predicted in (("identify", expected, actual), ("clarify", ~expected, ~actual)):
        hits = int(np.sum(truth & predicted))
        n_predicted = int(np.sum(predicted))
        support = int(np.sum(truth))
        precision = hits / n_predicted if n_predicted else 0.0
        recall = hits / support if support else 0.0
        f1 = 2 * precision * recall / (precision + recall) if precision + recall else 0.0
        per_class[label] = {"precision": precision, "recall": recall, "f1": f1, "support": support}

    return {
        "accuracy": float(np.mean(expected == actual)),
        "labels": ["identify", "clarify"],
        "table": table,
        "per_class": per_class,
    }
