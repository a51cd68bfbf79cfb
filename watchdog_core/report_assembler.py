"""
Report Assembler

Builds the structured audit report (executive summary, grouped findings,
prioritised recommendations, per-pass performance) from verified findings.
Pure data transformation.
"""

from collections import defaultdict
from typing import Any, Dict, List, Optional, Sequence

from watchdog_core.models import Finding, RiskLevel, ScanPass, Scores, Severity


class DeploymentRecommendation:
    APPROVED = "APPROVED"
    REVIEW_REQUIRED = "REVIEW_REQUIRED"
    BLOCKED = "BLOCKED"


BUSINESS_IMPACT = {
    RiskLevel.CRITICAL: "CRITICAL: Immediate threat to funds and operations. Do not deploy until all critical issues are resolved.",
    RiskLevel.HIGH: "HIGH: Significant security concerns that could impact user trust and platform integrity.",
    RiskLevel.MEDIUM: "MEDIUM: Moderate security issues that should be addressed before production deployment.",
    RiskLevel.LOW: "LOW: Contract demonstrates good security practices with only minor issues to address.",
    RiskLevel.SAFE: "SAFE: No significant security issues identified.",
}

BEST_PRACTICE_ACTIONS = [
    "Conduct thorough testing with a comprehensive test suite",
    "Consider a professional security audit before mainnet",
    "Implement monitoring and incident response procedures",
    "Keep dependencies and libraries up to date",
    "Establish a bug bounty program",
]


def severity_counts(findings: Sequence[Finding]) -> Dict[str, int]:
    counts = {severity.value: 0 for severity in Severity}
    for finding in findings:
        counts[finding.severity.value] += 1
    return counts


def deployment_recommendation(findings: Sequence[Finding]) -> str:
    counts = severity_counts(findings)
    if counts[Severity.CRITICAL.value] > 0:
        return DeploymentRecommendation.BLOCKED
    if counts[Severity.HIGH.value] > 2:
        return DeploymentRecommendation.REVIEW_REQUIRED
    return DeploymentRecommendation.APPROVED


def _group_by(findings: Sequence[Finding], key) -> Dict[str, List[Dict[str, Any]]]:
    grouped: Dict[str, List[Dict[str, Any]]] = defaultdict(list)
    for finding in findings:
        grouped[key(finding)].append(finding.to_dict())
    return dict(grouped)


def executive_summary(contract_name: str, findings: Sequence[Finding], scores: Scores,
                      risk_level: RiskLevel) -> Dict[str, Any]:
    counts = severity_counts(findings)
    categories = {f.category for f in findings}
    critical = counts[Severity.CRITICAL.value]
    high = counts[Severity.HIGH.value]
    return {
        "contract_name": contract_name,
        "total_findings": len(findings),
        "severity_counts": counts,
        "summary": f"{len(findings)} findings across {len(categories)} categories; {critical} critical, {high} high",
        "deployment_recommendation": deployment_recommendation(findings),
        "risk_level": risk_level.value,
        "scores": scores.to_dict(),
        "gas_optimizations": sum(1 for f in findings if f.is_gas_optimization),
        "business_impact": BUSINESS_IMPACT[risk_level],
    }


def actionable_recommendations(findings: Sequence[Finding]) -> List[Dict[str, Any]]:
    """Ordered IMMEDIATE, HIGH, MEDIUM, OPTIMIZATION, ONGOING."""
    security = [f for f in findings if not f.is_gas_optimization]
    critical = [f for f in security if f.severity == Severity.CRITICAL]
    high = [f for f in security if f.severity == Severity.HIGH]
    medium = [f for f in security if f.severity == Severity.MEDIUM]
    gas = [f for f in findings if f.is_gas_optimization]

    recommendations = []
    if critical:
        recommendations.append({
            "priority": "IMMEDIATE",
            "category": "SECURITY",
            "title": "Resolve Critical Security Vulnerabilities",
            "description": f"{len(critical)} critical vulnerabilities require immediate attention",
            "findings": [f.to_dict() for f in critical[:3]],
            "timeline": "Within 24 hours",
            "business_impact": "Deployment blocked until resolved",
        })
    if high:
        recommendations.append({
            "priority": "HIGH",
            "category": "SECURITY",
            "title": "Address High-Risk Security Issues",
            "description": f"{len(high)} high-risk issues should be resolved before production",
            "findings": [f.to_dict() for f in high[:3]],
            "timeline": "Within 1 week",
            "business_impact": "Significant security risk to operations",
        })
    if medium:
        recommendations.append({
            "priority": "MEDIUM",
            "category": "SECURITY",
            "title": "Resolve Medium-Risk Issues",
            "description": f"{len(medium)} medium-risk issues identified",
            "findings": [f.to_dict() for f in medium[:3]],
            "timeline": "Within 2 weeks",
            "business_impact": "Moderate risk to security posture",
        })
    if gas:
        recommendations.append({
            "priority": "OPTIMIZATION",
            "category": "OPTIMIZATION",
            "title": "Implement Gas Optimizations",
            "description": f"{len(gas)} gas optimization opportunities identified",
            "findings": [f.to_dict() for f in gas[:5]],
            "timeline": "Before mainnet deployment",
            "business_impact": "Reduced transaction costs for users",
        })
    recommendations.append({
        "priority": "ONGOING",
        "category": "BEST_PRACTICES",
        "title": "Security Best Practices",
        "description": "Maintain ongoing security practices",
        "actions": list(BEST_PRACTICE_ACTIONS),
        "timeline": "Ongoing",
        "business_impact": "Long-term security and reliability",
    })
    return recommendations


def model_performance(passes: Sequence[ScanPass]) -> List[Dict[str, Any]]:
    return [p.to_dict() for p in passes]


def assemble_report(contract_name: str, findings: Sequence[Finding], scores: Scores, risk_level: RiskLevel,
                    passes: Sequence[ScanPass] = (), metadata: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
    """
    Assemble the full report dictionary.

    Args:
        contract_name: Name shown in the summary
        findings: Verified, sorted findings
        scores: Score block for the findings
        risk_level: Label derived from the security score
        passes: ScanPass records for the performance table
        metadata: Analysis metadata (counts, timestamp)

    Returns:
        JSON-serialisable report dict
    """
    security = [f for f in findings if not f.is_gas_optimization]
    return {
        "executive_summary": executive_summary(contract_name, findings, scores, risk_level),
        "findings_by_severity": _group_by(findings, lambda f: f.severity.value),
        "findings_by_category": _group_by(security, lambda f: f.category),
        "gas_optimizations": [f.to_dict() for f in findings if f.is_gas_optimization],
        "recommendations": actionable_recommendations(findings),
        "model_performance": model_performance(passes),
        "metadata": dict(metadata or {}),
    }
