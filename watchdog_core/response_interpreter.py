"""
Model-Response Interpreter

Turns free-form model output into findings through a chain of increasingly
lenient strategies.  The first strategy that yields at least one finding-like
object wins; the last one always succeeds, so interpretation never fails.
"""

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Dict, List, Optional, Tuple

from watchdog_core.json_utils import extract_balanced_json, extract_fenced_blocks, safe_json_parse
from watchdog_core.models import (
    Confidence,
    Finding,
    Severity,
    looks_like_finding,
    normalize_finding,
    normalize_gas_optimization,
)
from watchdog_core.pattern_scanner import PatternScanner

logger = logging.getLogger(__name__)

RAW_TEXT_LIMIT = 500

CONTAINER_KEYS = ("findings", "keyFindings", "vulnerabilities", "issues")
GAS_KEYS = ("gasOptimizations", "gas_optimizations")


class ParseMethod(Enum):
    DIRECT_JSON = "direct_json"
    MARKDOWN_JSON_BLOCK = "markdown_json_block"
    CODE_BLOCK = "code_block"
    BRACE_EXTRACTION = "brace_extraction"
    TEXT_HEURISTICS = "text_heuristics"
    RAW_TEXT_FALLBACK = "raw_text_fallback"


@dataclass
class InterpretedResponse:
    findings: List[Finding] = field(default_factory=list)
    parse_method: str = ParseMethod.RAW_TEXT_FALLBACK.value

    @property
    def parse_error(self) -> bool:
        return any(f.parse_error for f in self.findings)


def collect_finding_dicts(data: Any, depth: int = 0) -> Tuple[List[Dict[str, Any]], List[Dict[str, Any]]]:
    """
    Pull finding-like dicts and gas-optimization dicts out of parsed JSON.

    Returns:
        (findings, gas_optimizations)
    """
    findings: List[Dict[str, Any]] = []
    gas: List[Dict[str, Any]] = []

    if isinstance(data, list):
        findings.extend(item for item in data if looks_like_finding(item))
        return findings, gas

    if not isinstance(data, dict):
        return findings, gas

    matched_container = False
    for key in CONTAINER_KEYS:
        items = data.get(key)
        if isinstance(items, list):
            matched_container = True
            findings.extend(item for item in items if looks_like_finding(item))
    for key in GAS_KEYS:
        items = data.get(key)
        if isinstance(items, list):
            matched_container = True
            gas.extend(item for item in items if isinstance(item, dict))

    if not matched_container:
        if looks_like_finding(data):
            findings.append(data)
        elif depth < 2:
            # e.g. {"analysis": {"findings": [...]}}
            for value in data.values():
                if isinstance(value, (dict, list)):
                    nested_findings, nested_gas = collect_finding_dicts(value, depth + 1)
                    findings.extend(nested_findings)
                    gas.extend(nested_gas)

    return findings, gas


class ResponseInterpreter:
    """Layered fallback parser for model output."""

    def __init__(self, scanner: Optional[PatternScanner] = None):
        self.scanner = scanner or PatternScanner()
        self._json_strategies: List[Tuple[ParseMethod, Callable[[str], List[str]]]] = [
            (ParseMethod.DIRECT_JSON, lambda text: [text.strip()]),
            (ParseMethod.MARKDOWN_JSON_BLOCK, lambda text: extract_fenced_blocks(text, label="json")),
            (ParseMethod.CODE_BLOCK, extract_fenced_blocks),
            (ParseMethod.BRACE_EXTRACTION, lambda text: [c for c in [extract_balanced_json(text)] if c]),
        ]

    def interpret(self, text: Optional[str], contract_name: str = "", model_id: str = "") -> InterpretedResponse:
        """Interpret one response; never raises."""
        text = text or ""
        try:
            return self._interpret(text, contract_name, model_id)
        except Exception as e:
            logger.exception(f"Interpreter failed on response from {model_id or 'unknown'}: {e}")
            return self._raw_text_fallback(text, contract_name, model_id)

    def _interpret(self, text: str, contract_name: str, model_id: str) -> InterpretedResponse:
        if text.strip():
            for method, candidates_of in self._json_strategies:
                for candidate in candidates_of(text):
                    findings = self._findings_from_json(candidate, model_id)
                    if findings:
                        logger.debug(f"{model_id or 'response'}: {len(findings)} findings via {method.value}")
                        return InterpretedResponse(findings=findings, parse_method=method.value)

            heuristic = self.scanner.scan_text(text, source=model_id or "text-heuristics")
            if heuristic:
                logger.debug(f"{model_id or 'response'}: {len(heuristic)} findings via text heuristics")
                return InterpretedResponse(findings=heuristic, parse_method=ParseMethod.TEXT_HEURISTICS.value)

        return self._raw_text_fallback(text, contract_name, model_id)

    @staticmethod
    def _findings_from_json(candidate: str, model_id: str) -> List[Finding]:
        data = safe_json_parse(candidate)
        if data is None:
            return []
        raw_findings, raw_gas = collect_finding_dicts(data)
        findings = [normalize_finding(item, source=model_id) for item in raw_findings]
        findings.extend(normalize_gas_optimization(item, source=model_id) for item in raw_gas)
        return findings

    @staticmethod
    def _raw_text_fallback(text: str, contract_name: str, model_id: str) -> InterpretedResponse:
        excerpt = text.strip()[:RAW_TEXT_LIMIT]
        subject = f" for {contract_name}" if contract_name else ""
        finding = Finding(
            severity=Severity.INFO,
            category="manual-review",
            title="Unstructured Analysis Output",
            description=excerpt or f"Model returned no analysis{subject}",
            location="Unknown",
            recommendation="Review the raw model output manually.",
            confidence=Confidence.LOW,
            reported_by=(model_id,) if model_id else (),
            parse_error=True,
            source=model_id,
        )
        return InterpretedResponse(findings=[finding], parse_method=ParseMethod.RAW_TEXT_FALLBACK.value)


def interpret_response(text: Optional[str], contract_name: str = "", model_id: str = "") -> InterpretedResponse:
    return ResponseInterpreter().interpret(text, contract_name, model_id)
