"""
Scoring & Risk-Level Engine

Pure functions over a finding list: security, gas and quality scores, the
weighted overall score, and the risk label derived from the security score.
"""

from typing import Any, Dict, Sequence

from watchdog_core.models import Finding, RiskLevel, Scores, Severity

SEVERITY_PENALTIES = {
    Severity.CRITICAL: 25,
    Severity.HIGH: 15,
    Severity.MEDIUM: 8,
    Severity.LOW: 3,
    Severity.INFO: 0,
}

GAS_BASE_SCORE = 95
GAS_PENALTY = 5
GAS_FLOOR = 50

QUALITY_BASE_SCORE = 85
QUALITY_PENALTY = 3
QUALITY_FLOOR = 60

OVERALL_WEIGHTS = {
    "security": 0.6,
    "gas_optimization": 0.25,
    "code_quality": 0.15,
}


def _clamp(value: float, low: int = 0, high: int = 100) -> int:
    return int(max(low, min(high, round(value))))


def security_score(findings: Sequence[Finding]) -> int:
    deduction = sum(
        SEVERITY_PENALTIES[f.severity] * f.confidence.weight
        for f in findings
        if f.is_security
    )
    return _clamp(100 - deduction)


def gas_score(findings: Sequence[Finding]) -> int:
    count = sum(1 for f in findings if f.is_gas_optimization)
    return _clamp(max(GAS_FLOOR, GAS_BASE_SCORE - GAS_PENALTY * count))


def quality_score(findings: Sequence[Finding]) -> int:
    count = sum(1 for f in findings if f.is_code_quality)
    return _clamp(max(QUALITY_FLOOR, QUALITY_BASE_SCORE - QUALITY_PENALTY * count))


def overall_score(security: int, gas_optimization: int, code_quality: int) -> int:
    return _clamp(
        OVERALL_WEIGHTS["security"] * security
        + OVERALL_WEIGHTS["gas_optimization"] * gas_optimization
        + OVERALL_WEIGHTS["code_quality"] * code_quality
    )


def risk_level_for(security: int) -> RiskLevel:
    """Map the security score to a risk label."""
    if security >= 90:
        return RiskLevel.SAFE
    if security >= 80:
        return RiskLevel.LOW
    if security >= 60:
        return RiskLevel.MEDIUM
    if security >= 40:
        return RiskLevel.HIGH
    return RiskLevel.CRITICAL


def compute_scores(findings: Sequence[Finding]) -> Scores:
    security = security_score(findings)
    gas = gas_score(findings)
    quality = quality_score(findings)
    return Scores(
        security=security,
        gas_optimization=gas,
        code_quality=quality,
        overall=overall_score(security, gas, quality),
    )


def score_findings(findings: Sequence[Finding]) -> Dict[str, Any]:
    """Scores plus risk level as a plain dict; deterministic and side-effect free."""
    scores = compute_scores(findings)
    result: Dict[str, Any] = scores.to_dict()
    result["risk_level"] = risk_level_for(scores.security).value
    return result
