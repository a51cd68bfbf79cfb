"""
Finding data model for DeFi Watchdog.

Standardized finding, pass and result representations shared by every stage
of the analysis pipeline, plus the normalizer that turns loosely-shaped
finding dictionaries (model output, JSON files) into fully-populated
``Finding`` objects.
"""

import json
import logging
import re
from dataclasses import dataclass, field, asdict, replace
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field, ValidationError

logger = logging.getLogger(__name__)


# ── Enums ──────────────────────────────────────────────────────────────

class Severity(Enum):
    """Finding severity, ordered CRITICAL > HIGH > MEDIUM > LOW > INFO."""
    CRITICAL = "CRITICAL"
    HIGH = "HIGH"
    MEDIUM = "MEDIUM"
    LOW = "LOW"
    INFO = "INFO"

    @property
    def rank(self) -> int:
        """Sort key, 0 for CRITICAL."""
        return _SEVERITY_RANK[self]

    @classmethod
    def parse(cls, value: Any, default: "Severity" = None) -> "Severity":
        """Lenient conversion from model-supplied strings."""
        if isinstance(value, Severity):
            return value
        default = default or cls.MEDIUM
        if not isinstance(value, str) or not value.strip():
            return default
        key = value.strip().upper()
        return _SEVERITY_ALIASES.get(key, default)


_SEVERITY_RANK = {
    Severity.CRITICAL: 0,
    Severity.HIGH: 1,
    Severity.MEDIUM: 2,
    Severity.LOW: 3,
    Severity.INFO: 4,
}

_SEVERITY_ALIASES = {
    "CRITICAL": Severity.CRITICAL,
    "HIGH": Severity.HIGH,
    "MEDIUM": Severity.MEDIUM,
    "MODERATE": Severity.MEDIUM,
    "LOW": Severity.LOW,
    "INFO": Severity.INFO,
    "INFORMATIONAL": Severity.INFO,
    "NOTE": Severity.INFO,
    "GAS": Severity.INFO,
}


class Confidence(Enum):
    """Derived trust level of a finding."""
    HIGH = "HIGH"
    MEDIUM = "MEDIUM"
    LOW = "LOW"

    @property
    def weight(self) -> float:
        return CONFIDENCE_WEIGHTS[self]


CONFIDENCE_WEIGHTS = {
    Confidence.HIGH: 1.2,
    Confidence.MEDIUM: 1.0,
    Confidence.LOW: 0.7,
}


class RiskLevel(Enum):
    """Discrete risk label derived from the security score."""
    SAFE = "Safe"
    LOW = "Low Risk"
    MEDIUM = "Medium Risk"
    HIGH = "High Risk"
    CRITICAL = "Critical Risk"


# Locations that do not point at anything in the source
NON_SPECIFIC_LOCATIONS = {
    "",
    "unknown",
    "contract",
    "multiple locations",
    "ai content analysis",
    "system",
    "n/a",
}

_RE_LINE_REFERENCE = re.compile(r'^(?:line|lines|l)\s*\.?\s*\d+', re.IGNORECASE)

GAS_CATEGORY = "gas-optimization"
QUALITY_CATEGORY = "code-quality"


def is_specific_location(location: Optional[str]) -> bool:
    """True when *location* names something that can be looked up in source."""
    if not location:
        return False
    text = location.strip()
    if text.lower() in NON_SPECIFIC_LOCATIONS:
        return False
    if _RE_LINE_REFERENCE.match(text):
        return False
    return len(text) > 3


# ── Data classes ───────────────────────────────────────────────────────

@dataclass(frozen=True)
class Finding:
    """Standardized finding representation"""
    severity: Severity
    category: str
    title: str
    description: str
    location: str = "Unknown"
    recommendation: str = ""
    confidence: Confidence = Confidence.LOW
    reported_by: Tuple[str, ...] = ()
    consensus_count: int = 1
    impact: str = ""
    code_snippet: str = ""
    line_number: int = 0
    proof_of_concept: str = ""
    parse_error: bool = False
    source: str = ""
    pattern_key: str = ""

    @property
    def is_gas_optimization(self) -> bool:
        return self.category == GAS_CATEGORY

    @property
    def is_code_quality(self) -> bool:
        return self.category == QUALITY_CATEGORY

    @property
    def is_security(self) -> bool:
        return not (self.is_gas_optimization or self.is_code_quality)

    def with_origin(self, model_id: str) -> "Finding":
        """Return a copy tagged with the pass that produced it."""
        if model_id in self.reported_by:
            return self
        return replace(self, reported_by=self.reported_by + (model_id,))

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data["severity"] = self.severity.value
        data["confidence"] = self.confidence.value
        data["reported_by"] = list(self.reported_by)
        return data


@dataclass(frozen=True)
class ScanPass:
    """One independent analysis attempt (one model)."""
    model_id: str
    raw_findings: Tuple[Finding, ...] = ()
    succeeded: bool = False
    parse_method: str = ""
    had_parse_error: bool = False
    error: str = ""
    duration: float = 0.0

    @property
    def real_findings(self) -> Tuple[Finding, ...]:
        """Findings that carry vulnerability information (not parse placeholders)."""
        return tuple(f for f in self.raw_findings if not f.parse_error)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "model_id": self.model_id,
            "succeeded": self.succeeded,
            "findings_count": len(self.raw_findings),
            "parse_method": self.parse_method,
            "had_parse_error": self.had_parse_error,
            "error": self.error,
            "duration": round(self.duration, 3),
        }


@dataclass(frozen=True)
class Scores:
    """Score block, every value an integer in [0, 100]."""
    security: int
    gas_optimization: int
    code_quality: int
    overall: int

    def to_dict(self) -> Dict[str, int]:
        return asdict(self)


@dataclass(frozen=True)
class AggregateResult:
    """Consolidated outcome of one contract analysis."""
    contract_name: str
    findings: Tuple[Finding, ...]
    scores: Scores
    risk_level: RiskLevel
    passes: Tuple[ScanPass, ...] = ()
    report: Dict[str, Any] = field(default_factory=dict)
    used_pattern_fallback: bool = False
    metadata: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "contract_name": self.contract_name,
            "findings": [f.to_dict() for f in self.findings],
            "scores": self.scores.to_dict(),
            "risk_level": self.risk_level.value,
            "passes": [p.to_dict() for p in self.passes],
            "report": self.report,
            "used_pattern_fallback": self.used_pattern_fallback,
            "metadata": self.metadata,
        }


# ── Normalization ──────────────────────────────────────────────────────

class RawFindingModel(BaseModel):
    """Schema-free view over a finding-like dict from model output."""
    model_config = ConfigDict(extra="allow", populate_by_name=True)

    severity: Optional[str] = None
    title: Optional[str] = None
    name: Optional[str] = None
    type: Optional[str] = None
    vulnerability_type: Optional[str] = None
    category: Optional[str] = None
    description: Optional[str] = None
    details: Optional[str] = None
    location: Optional[str] = None
    function: Optional[str] = None
    line: Optional[str] = None
    line_number: Optional[str] = None
    recommendation: Optional[str] = None
    mitigation: Optional[str] = None
    fix: Optional[str] = None
    impact: Optional[str] = None
    code_reference: Optional[str] = Field(default=None, alias="codeReference")
    code_snippet: Optional[str] = Field(default=None, alias="codeSnippet")
    proof_of_concept: Optional[str] = Field(default=None, alias="proofOfConcept")
    exploit_scenario: Optional[str] = None


FINDING_KEYS = {
    "severity", "title", "name", "type", "vulnerability_type", "category",
    "description", "details", "location", "function", "recommendation",
    "mitigation", "impact",
}

_CATEGORY_KEYWORDS = [
    ("reentrancy", ("reentrancy", "re-entrancy", "reentrant")),
    ("tx-origin-auth", ("tx.origin",)),
    ("access-control", ("access control", "access-control", "unauthorized", "onlyowner", "unprotected", "privilege")),
    ("arithmetic-overflow", ("overflow", "underflow", "arithmetic")),
    ("unchecked-external-call", ("unchecked", "return value", "low-level call", "delegatecall")),
    ("timestamp-dependence", ("timestamp", "block.timestamp")),
    (GAS_CATEGORY, ("gas",)),
    (QUALITY_CATEGORY, ("natspec", "documentation", "naming", "magic number", "code quality")),
    ("logic-error", ("logic",)),
]


def categorize(title: str, description: str = "") -> str:
    """Infer a category tag from finding text."""
    title_lower = (title or "").lower()
    desc_lower = (description or "").lower()
    for category, keywords in _CATEGORY_KEYWORDS:
        if any(k in title_lower for k in keywords):
            return category
    for category, keywords in _CATEGORY_KEYWORDS:
        if any(k in desc_lower for k in keywords):
            return category
    return "security"


def normalize_category(value: Optional[str], title: str, description: str) -> str:
    if not value or not str(value).strip():
        return categorize(title, description)
    return re.sub(r'[\s_]+', '-', str(value).strip().lower())


def derive_confidence(location: str, code_reference: str = "", proof_of_concept: str = "") -> Confidence:
    """Confidence from evidence only; model-asserted values are ignored."""
    if proof_of_concept:
        return Confidence.HIGH
    if code_reference or is_specific_location(location):
        return Confidence.MEDIUM
    return Confidence.LOW


def _first(*values: Optional[str]) -> str:
    for v in values:
        if v is not None and str(v).strip():
            return str(v).strip()
    return ""


def _as_text(value: Any) -> Optional[str]:
    if value is None or isinstance(value, str):
        return value
    if isinstance(value, (dict, list)):
        return json.dumps(value)
    return str(value)


def looks_like_finding(obj: Any) -> bool:
    return isinstance(obj, dict) and any(k in obj for k in FINDING_KEYS)


def normalize_finding(raw: Dict[str, Any], source: str = "", default_severity: Severity = Severity.MEDIUM) -> Finding:
    """
    Build a Finding from a loosely-shaped dict, filling every field.

    Args:
        raw: Finding-like dictionary (any casing of the usual keys)
        source: Identifier of the producer (model id, scanner name)
        default_severity: Severity used when the dict has none

    Returns:
        Fully-populated Finding
    """
    cleaned = {k: _as_text(v) for k, v in raw.items() if isinstance(k, str)}
    try:
        model = RawFindingModel.model_validate(cleaned)
    except ValidationError as e:
        logger.debug(f"Finding dict failed validation, using empty defaults: {e}")
        model = RawFindingModel()

    title = _first(model.title, model.name, model.type, model.vulnerability_type) or "Security Issue"
    description = _first(model.description, model.details, model.impact) or "Security concern identified"

    line_text = _first(model.line_number, model.line)
    line_number = 0
    if line_text:
        m = re.search(r'\d+', line_text)
        if m:
            line_number = int(m.group(0))

    location = _first(model.location, model.function)
    if not location and line_number > 0:
        location = f"Line {line_number}"
    location = location or "Unknown"

    code_reference = _first(model.code_reference, model.code_snippet)
    proof_of_concept = _first(model.proof_of_concept, model.exploit_scenario)

    return Finding(
        severity=Severity.parse(model.severity, default_severity),
        category=normalize_category(model.category, title, description),
        title=title,
        description=description,
        location=location,
        recommendation=_first(model.recommendation, model.mitigation, model.fix),
        confidence=derive_confidence(location, code_reference, proof_of_concept),
        impact=_first(model.impact),
        code_snippet=code_reference,
        line_number=line_number,
        proof_of_concept=proof_of_concept,
        source=source,
        reported_by=(source,) if source else (),
    )


def normalize_gas_optimization(raw: Dict[str, Any], source: str = "") -> Finding:
    """Turn a ``gasOptimizations`` entry into an INFO gas finding."""
    title = _first(raw.get("title")) or "Gas Optimization"
    savings = _first(raw.get("savings"))
    location = _first(raw.get("location")) or "Contract"
    return Finding(
        severity=Severity.INFO,
        category=GAS_CATEGORY,
        title=title if title.lower().startswith("gas") else f"Gas Optimization: {title}",
        description=_first(raw.get("description")) or "Gas optimization opportunity",
        location=location,
        recommendation=_first(raw.get("implementation"), raw.get("recommendation")) or "Apply optimization",
        confidence=Confidence.MEDIUM,
        impact=f"Gas savings: {savings or 'Unknown'}",
        source=source,
        reported_by=(source,) if source else (),
    )


def sort_findings(findings: List[Finding]) -> List[Finding]:
    """Sort by severity, then confidence, then consensus."""
    return sorted(
        findings,
        key=lambda f: (f.severity.rank, -f.confidence.weight, -f.consensus_count, f.line_number),
    )


def finding_from_dict(data: Dict[str, Any]) -> Finding:
    """
    Rebuild a Finding from a dict such as ``Finding.to_dict()`` output.

    An explicit ``confidence`` value is honoured; everything else goes through
    ``normalize_finding``.
    """
    source = _first(_as_text(data.get("source")))
    finding = normalize_finding(data, source=source)

    confidence = _as_text(data.get("confidence"))
    if confidence and confidence.strip().upper() in Confidence.__members__:
        finding = replace(finding, confidence=Confidence[confidence.strip().upper()])

    reported_by = data.get("reported_by")
    if isinstance(reported_by, (list, tuple)):
        finding = replace(finding, reported_by=tuple(str(r) for r in reported_by if r))

    consensus = data.get("consensus_count")
    if isinstance(consensus, int) and consensus > 0:
        finding = replace(finding, consensus_count=consensus)

    if data.get("parse_error") is True:
        finding = replace(finding, parse_error=True)
    return finding
