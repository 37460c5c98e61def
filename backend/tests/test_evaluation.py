from evaluation.evaluate_identification import TEST_CASES, EvaluationCase, IdentificationEvaluator
from evaluation.metrics import (
    aggregate_metrics,
    check_confidence_guardrail,
    confidence_level,
    decision_metrics,
    history_stats,
    match_metrics,
    summarize,
)
from evaluation.report_generator import ReportGenerator
from conftest import reply

# Confidence buckets used in the history view
def test_confidence_level():
    assert confidence_level(85) == "high"
    assert confidence_level(65) == "medium"
    assert confidence_level(20) == "low"

# A card shown below threshold is a violation; asking below threshold is fine
def test_guardrail_check():
    assert not check_confidence_guardrail(60, True)["passed"]
    assert check_confidence_guardrail(60, False)["passed"]
    assert check_confidence_guardrail(90, True)["passed"]
    assert "Note" in check_confidence_guardrail(90, False)["message"]

# Queries that should not resolve score by staying unresolved
def test_match_metrics():
    assert match_metrics(None, None, [])["correct"] == 1.0
    assert match_metrics(None, "3", ["3"])["false_positive"] == 1.0
    m = match_metrics("5", "6", ["6", "5"])
    assert m["correct"] == 0.0
    assert m["reciprocal_rank"] == 0.5
    assert m["top3"] == 1.0 and m["top1"] == 0.0
    assert match_metrics("9", None, ["1", "2"])["reciprocal_rank"] == 0.0

def test_aggregate_metrics():
    agg = aggregate_metrics([{"correct": 1.0}, {"correct": 0.0}])
    assert agg["correct"]["mean"] == 0.5
    assert aggregate_metrics([]) == {}

# Rows are what should have happened, columns what did
def test_decision_metrics():
    out = decision_metrics([True, False, False], [True, True, False])
    assert out["table"] == [[1, 0], [1, 1]]
    assert out["per_class"]["clarify"]["recall"] == 0.5
    assert out["per_class"]["identify"]["precision"] == 0.5
    assert decision_metrics([], []) == {}

def test_summarize_and_history():
    results = [
        {"passed": True, "actual_confidence": 90, "expected_confidence_range": [75, 100],
         "should_identify": True, "did_identify": True, "response_time": 100},
        {"passed": False, "actual_confidence": 60, "expected_confidence_range": [0, 40],
         "should_identify": False, "did_identify": True, "response_time": 300},
    ]
    s = summarize(results, 75)
    assert s["pass_rate"] == 50.0
    assert s["guardrail_accuracy"] == 50.0
    assert s["average_response_time"] == 200.0
    assert summarize([])["total_cases"] == 0

    stats = history_stats([{"confidence": 80, "guardrail_passed": True, "identified": True, "response_time": 10}])
    assert stats["identification_rate"] == 100
    assert history_stats([])["total_tests"] == 0

# Every golden phrasing resolves to the labelled catalog entry (or to nothing)
def test_matcher_golden_set(catalog_path):
    out = IdentificationEvaluator(catalog_path=str(catalog_path)).evaluate_matcher()
    assert out["num_evaluated"] == len(out["per_query"]) > 0
    misses = [q["query_id"] for q in out["per_query"] if q["metrics"]["correct"] != 1.0]
    assert misses == []
    assert out["accuracy"] == 1.0

# One photo case scored against its expectations
def test_run_case(make_service, photo):
    service, _ = make_service(
        reply("I can see this is a Padron 1964 Anniversary Maduro!",
              [{"name": "1964 Anniversary Maduro", "brand": "Padron"}], confidence=91),
        reply("I can see a dark wrapper. Can you tell me what the band says?", [], confidence=35),
    )
    evaluator = IdentificationEvaluator(service=service)
    clear = evaluator.run_case(TEST_CASES[0], photo)
    assert clear["passed"], clear["errors"]
    assert clear["identified_cigar"] == "1964 Anniversary Maduro"

    blurry = next(c for c in TEST_CASES if c.id == "blurry-image")
    result = evaluator.run_case(blurry, photo)
    assert result["passed"], result["errors"]
    assert not result["did_identify"]

# Upstream errors fail the case instead of aborting the run
def test_full_evaluation(make_service, photo):
    service, _ = make_service(RuntimeError("down"))
    cases = [EvaluationCase("clear", "clear band", (75, 100), True)]
    out = IdentificationEvaluator(service=service).run_full_evaluation(cases, {"clear": photo})
    assert out["summary"]["failed"] == 1
    assert out["results"][0]["did_identify"] is False

# Reports render both matcher and identification sections
def test_reports(tmp_path, catalog_path):
    evaluator = IdentificationEvaluator(catalog_path=str(catalog_path))
    results = {
        "matcher": evaluator.evaluate_matcher(),
        "identification": {
            "summary": summarize([]),
            "decisions": {},
            "results": [{
                "case_id": "blurry-image", "passed": False, "actual_confidence": 60,
                "expected_confidence_range": [0, 40], "identified_cigar": "Blue", "expected_cigar": None,
                "should_identify": False, "did_identify": True, "response_time": 120, "message": "",
                "errors": ["Confidence 60 not in expected range [0, 40]"],
            }],
        },
        "metadata": {"start_time": "2026-01-01T00:00:00", "duration_seconds": 1.5, "catalog_size": 14, "threshold": 75},
    }
    generator = ReportGenerator(results)
    text = generator.format_text_report()
    assert "✗ FAIL | blurry-image" in text

    out = tmp_path / "report.html"
    generator.generate_html_report(str(out))
    html = out.read_text()
    assert "Catalog Matching" in html
    assert "Image Identification" in html
