"""
Tests for report assembly.
"""

import json

from watchdog_core.models import GAS_CATEGORY, RiskLevel, ScanPass, Severity
from watchdog_core.report_assembler import (
    DeploymentRecommendation,
    actionable_recommendations,
    assemble_report,
    deployment_recommendation,
    executive_summary,
    severity_counts,
)
from watchdog_core.scoring import compute_scores, risk_level_for


class TestDeploymentRecommendation:

    def test_critical_blocks(self, make_finding):
        assert deployment_recommendation([make_finding(severity=Severity.CRITICAL)]) == \
            DeploymentRecommendation.BLOCKED

    def test_many_highs_need_review(self, make_finding):
        findings = [make_finding(severity=Severity.HIGH) for _ in range(3)]
        assert deployment_recommendation(findings) == DeploymentRecommendation.REVIEW_REQUIRED

    def test_few_highs_approved(self, make_finding):
        findings = [make_finding(severity=Severity.HIGH) for _ in range(2)]
        assert deployment_recommendation(findings) == DeploymentRecommendation.APPROVED
        assert deployment_recommendation([]) == DeploymentRecommendation.APPROVED


class TestSummary:

    def test_severity_counts_cover_every_level(self, make_finding):
        counts = severity_counts([make_finding(severity=Severity.LOW)])
        assert counts == {"CRITICAL": 0, "HIGH": 0, "MEDIUM": 0, "LOW": 1, "INFO": 0}

    def test_executive_summary(self, make_finding):
        findings = [
            make_finding(severity=Severity.CRITICAL),
            make_finding(severity=Severity.HIGH, category="access-control"),
        ]
        scores = compute_scores(findings)
        risk = risk_level_for(scores.security)
        summary = executive_summary("Vault", findings, scores, risk)
        assert summary["contract_name"] == "Vault"
        assert summary["total_findings"] == 2
        assert summary["summary"] == "2 findings across 2 categories; 1 critical, 1 high"
        assert summary["deployment_recommendation"] == DeploymentRecommendation.BLOCKED
        assert summary["risk_level"] == risk.value
        assert summary["business_impact"].startswith(risk.name)


class TestRecommendations:

    def test_priority_order(self, make_finding):
        findings = [
            make_finding(severity=Severity.INFO, category=GAS_CATEGORY),
            make_finding(severity=Severity.MEDIUM),
            make_finding(severity=Severity.CRITICAL),
            make_finding(severity=Severity.HIGH),
        ]
        priorities = [r["priority"] for r in actionable_recommendations(findings)]
        assert priorities == ["IMMEDIATE", "HIGH", "MEDIUM", "OPTIMIZATION", "ONGOING"]

    def test_always_has_best_practices(self):
        recommendations = actionable_recommendations([])
        assert [r["priority"] for r in recommendations] == ["ONGOING"]
        assert recommendations[0]["actions"]


class TestAssembleReport:

    def test_report_sections(self, make_finding):
        findings = [
            make_finding(severity=Severity.HIGH),
            make_finding(title="Gas Optimization: Cache length", category=GAS_CATEGORY, severity=Severity.INFO),
        ]
        scores = compute_scores(findings)
        passes = [ScanPass(model_id="model-a", raw_findings=tuple(findings), succeeded=True,
                           parse_method="direct_json", duration=1.23456)]
        report = assemble_report("Vault", findings, scores, RiskLevel.LOW, passes, {"raw_findings": 2})

        assert set(report) == {
            "executive_summary", "findings_by_severity", "findings_by_category",
            "gas_optimizations", "recommendations", "model_performance", "metadata",
        }
        assert list(report["findings_by_category"]) == ["reentrancy"]
        assert len(report["gas_optimizations"]) == 1
        assert report["model_performance"][0]["findings_count"] == 2
        assert report["model_performance"][0]["duration"] == 1.235
        assert report["metadata"] == {"raw_findings": 2}
        json.dumps(report)
