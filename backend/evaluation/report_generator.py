"""Text and HTML reports for eval results"""
import html as html_lib
from typing import Dict, Any, List
from datetime import datetime
from pathlib import Path

RULE = "═" * 63
THIN = "─" * 63


class ReportGenerator:
    def __init__(self, results: Dict[str, Any]):
        self.results = results

    def _format_metric(self, value: float, metric_type: str = "default") -> str:
        if metric_type == "percent":
            return f"{value:.1f}%"
        elif metric_type == "ratio":
            return f"{value * 100:.1f}%"
        elif metric_type == "ms":
            return f"{value:.0f}ms"
        else:
            return f"{value:.4f}"

    def format_text_report(self) -> str:
        """Plain-text identification report for the terminal"""
        identification = self.results.get("identification", {})
        summary = identification.get("summary", {})
        lines: List[str] = [
            RULE,
            "                 IMAGE RECOGNITION EVALUATION REPORT",
            RULE,
            "",
            "OVERALL RESULTS",
            THIN,
            f"Total Test Cases:        {summary.get('total_cases', 0)}",
            f"Passed:                  {summary.get('passed', 0)} ({summary.get('pass_rate', 0.0):.1f}%)",
            f"Failed:                  {summary.get('failed', 0)}",
            "",
            "METRICS",
            THIN,
            f"Average Confidence:      {summary.get('average_confidence', 0.0):.1f}%",
            f"Avg Response Time:       {summary.get('average_response_time', 0.0):.0f}ms",
            f"Confidence Accuracy:     {summary.get('confidence_accuracy', 0.0):.1f}%",
            f"Identification Accuracy: {summary.get('identification_accuracy', 0.0):.1f}%",
            f"Guardrail Accuracy:      {summary.get('guardrail_accuracy', 0.0):.1f}%",
            "",
            "INDIVIDUAL RESULTS",
            THIN,
        ]
        for r in identification.get("results", []):
            low, high = r["expected_confidence_range"]
            status = "✓ PASS" if r["passed"] else "✗ FAIL"
            lines.append("")
            lines.append(f"{status} | {r['case_id']}")
            lines.append(f"  Confidence: {r['actual_confidence']}% (expected: {low}-{high}%)")
            lines.append(f"  Identified: {r['identified_cigar'] if r['did_identify'] else 'No'} "
                         f"(expected: {'Yes' if r['should_identify'] else 'No'})")
            lines.append(f"  Response Time: {r['response_time']}ms")
            if r["errors"]:
                lines.append(f"  Errors: {', '.join(r['errors'])}")
        lines += ["", RULE, "                         END OF REPORT", RULE]
        return "\n".join(lines)

    def _generate_summary_section(self) -> str:
        metadata = self.results.get("metadata", {})
        matcher = self.results.get("matcher", {})
        summary = self.results.get("identification", {}).get("summary", {})

        key_metrics = []
        if matcher:
            key_metrics.append(("Matcher Accuracy", self._format_metric(matcher.get("accuracy", 0.0), "ratio")))
            mrr = matcher.get("aggregated", {}).get("reciprocal_rank")
            if mrr:
                key_metrics.append(("Matcher MRR", self._format_metric(mrr["mean"])))
        if summary:
            key_metrics.append(("Pass Rate", self._format_metric(summary.get("pass_rate", 0.0), "percent")))
            key_metrics.append(("Guardrail Accuracy", self._format_metric(summary.get("guardrail_accuracy", 0.0), "percent")))
            key_metrics.append(("Avg Response", self._format_metric(summary.get("average_response_time", 0.0), "ms")))

        metrics_html = "\n".join([
            f'<div class="metric-card"><div class="metric-label">{label}</div><div class="metric-value">{value}</div></div>'
            for label, value in key_metrics
        ])
        return f"""
        <section class="summary">
            <h2>Summary</h2>
            <div class="info-grid">
                <div><strong>Evaluation Date:</strong> {metadata.get('start_time', '')}</div>
                <div><strong>Duration:</strong> {metadata.get('duration_seconds', 0):.1f}s</div>
                <div><strong>Catalog Size:</strong> {metadata.get('catalog_size', 'N/A')} cigars</div>
                <div><strong>Confidence Threshold:</strong> {metadata.get('threshold', 'N/A')}</div>
            </div>
            <div class="metrics-grid">
                {metrics_html}
            </div>
        </section>
        """

    def _generate_matcher_section(self) -> str:
        matcher = self.results.get("matcher")
        if not matcher:
            return ""
        rows = []
        for q in matcher.get("per_query", []):
            ok = q["metrics"].get("correct") == 1.0
            rows.append(f"""
            <tr class="{'ok' if ok else 'miss'}">
                <td><code>{html_lib.escape(q['query_id'])}</code></td>
                <td>{html_lib.escape(q['query'])}</td>
                <td>{q['expected_id'] or '-'}</td>
                <td>{q['matched_id'] or '-'}</td>
                <td>{q['top_score']}</td>
            </tr>
            """)
        return f"""
        <section>
            <h2>Catalog Matching</h2>
            <p>Evaluated on {matcher.get('num_evaluated', 0)} queries</p>
            <table>
                <thead><tr><th>Query ID</th><th>Query</th><th>Expected</th><th>Matched</th><th>Top Score</th></tr></thead>
                <tbody>{"".join(rows)}</tbody>
            </table>
        </section>
        """

    def _generate_identification_section(self) -> str:
        identification = self.results.get("identification")
        if not identification:
            return ""
        rows = []
        for r in identification.get("results", []):
            low, high = r["expected_confidence_range"]
            rows.append(f"""
            <tr class="{'ok' if r['passed'] else 'miss'}">
                <td><code>{html_lib.escape(r['case_id'])}</code></td>
                <td>{r['actual_confidence']}% ({low}-{high})</td>
                <td>{html_lib.escape(r['identified_cigar'] or 'No')}</td>
                <td>{'Yes' if r['should_identify'] else 'No'}</td>
                <td>{html_lib.escape('; '.join(r['errors']))}</td>
            </tr>
            """)
        decisions = identification.get("decisions", {})
        accuracy = decisions.get("accuracy")
        accuracy_html = (
            f'<div class="metric-highlight">Identify/clarify accuracy: {self._format_metric(accuracy, "ratio")}</div>'
            if accuracy is not None else ""
        )
        return f"""
        <section>
            <h2>Image Identification</h2>
            {accuracy_html}
            <table>
                <thead><tr><th>Case</th><th>Confidence (expected)</th><th>Identified</th><th>Should Identify</th><th>Errors</th></tr></thead>
                <tbody>{"".join(rows)}</tbody>
            </table>
        </section>
        """

    def generate_html_report(self, output_path: str):
        summary = self._generate_summary_section()
        matcher = self._generate_matcher_section()
        identification = self._generate_identification_section()

        html = f"""
<!DOCTYPE html>
<html lang="en">
<head>
    <meta charset="UTF-8">
    <title>Cigar Concierge - Evaluation Report</title>
    <style>
        body {{
            font-family: -apple-system, BlinkMacSystemFont, 'Segoe UI', Roboto, sans-serif;
            background: #f5f1ea;
            color: #2c2c2c;
            margin: 0;
            padding: 30px;
        }}

        .container {{
            max-width: 1100px;
            margin: 0 auto;
        }}

        .summary {{
            background: linear-gradient(135deg, #5b3a29 0%, #8a5a3b 100%);
            color: white;
            padding: 30px;
            border-radius: 10px;
        }}

        .info-grid {{
            display: grid;
            grid-template-columns: repeat(auto-fit, minmax(220px, 1fr));
            gap: 10px;
        }}

        .metrics-grid {{
            display: grid;
            grid-template-columns: repeat(auto-fit, minmax(180px, 1fr));
            gap: 20px;
            margin-top: 20px;
        }}

        .metric-card {{
            background: rgba(255, 255, 255, 0.15);
            padding: 20px;
            border-radius: 8px;
            text-align: center;
        }}

        .metric-value {{
            font-size: 1.8em;
            font-weight: bold;
        }}

        .metric-highlight {{
            background: #8a5a3b;
            color: white;
            padding: 12px 18px;
            border-radius: 6px;
            display: inline-block;
            font-weight: bold;
        }}

        table {{
            width: 100%;
            border-collapse: collapse;
            margin: 20px 0;
            background: white;
        }}

        th, td {{
            padding: 10px 14px;
            text-align: left;
            border-bottom: 1px solid #ece6dc;
        }}

        thead {{
            background: #3b2a20;
            color: white;
        }}

        tr.miss td {{
            background: #fbe3e0;
        }}

        .footer {{
            margin-top: 50px;
            text-align: center;
            color: #7f7367;
            font-size: 0.9em;
        }}
    </style>
</head>
<body>
    <div class="container">
        <h1>Cigar Concierge - Evaluation Report</h1>

        {summary}
        {matcher}
        {identification}

        <div class="footer">
            <p>Generated on {datetime.now().strftime('%Y-%m-%d %H:%M:%S')}</p>
        </div>
    </div>
</body>
</html>
        """

        Path(output_path).parent.mkdir(parents=True, exist_ok=True)
        with open(output_path, 'w') as f:
            f.write(html)

        print(f"[Report] HTML report generated: {output_path}")
        print(f"[Report] Open in browser: file://{Path(output_path).absolute()}")
