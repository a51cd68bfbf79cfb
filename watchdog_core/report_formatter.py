#!/usr/bin/env python3
"""
Report Formatter

Formats an AggregateResult for plain-text display and JSON output.
"""

import json
from typing import List

from watchdog_core.models import AggregateResult


class ReportFormatter:
    def format_for_display(self, result: AggregateResult) -> str:
        """Plain-text rendering: header, scores, numbered findings, recommendations."""
        summary = result.report.get('executive_summary', {})
        scores = result.scores
        lines: List[str] = [
            f"Contract: {result.contract_name}",
            f"Risk Level: {result.risk_level.value}",
            f"Deployment: {summary.get('deployment_recommendation', 'UNKNOWN')}",
            f"Scores: security={scores.security} gas={scores.gas_optimization} "
            f"quality={scores.code_quality} overall={scores.overall}",
        ]
        if summary.get('summary'):
            lines.append(summary['summary'])
        if result.used_pattern_fallback:
            lines.append("Note: no model pass produced findings; results come from the pattern scanner.")
        lines.append("")

        if not result.findings:
            lines.append("No findings to display")
        for i, finding in enumerate(result.findings, 1):
            reporters = ", ".join(finding.reported_by) or finding.source or "unknown"
            lines.append(f"[{i}] {finding.severity.value}: {finding.title} @ {finding.location}")
            lines.append(f"    category={finding.category} confidence={finding.confidence.value} "
                         f"consensus={finding.consensus_count} reported_by={reporters}")
            if finding.description:
                lines.append(f"    {finding.description[:200]}")
            if finding.recommendation:
                lines.append(f"    Fix: {finding.recommendation[:200]}")

        recommendations = result.report.get('recommendations', [])
        if recommendations:
            lines.append("")
            lines.append("Recommendations:")
            for rec in recommendations:
                lines.append(f"  [{rec['priority']}] {rec['title']} - {rec['description']} ({rec['timeline']})")

        return "\n".join(lines)

    def format_for_json(self, result: AggregateResult) -> str:
        return json.dumps(result.to_dict(), indent=2, default=str)
