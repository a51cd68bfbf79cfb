"""
Code-presence verification.

Drops findings that point at code which does not exist in the analyzed
source, or whose category needs a construct the source never uses.
"""

import logging
import re
from typing import List, Optional, Sequence, Tuple

from watchdog_core.models import Finding, is_specific_location

logger = logging.getLogger(__name__)

_RE_IDENTIFIER_NOISE = re.compile(r'\(\s*\)|\bfunctions?\b|\bmodifier\b|\bcontract\b|`', re.IGNORECASE)
_RE_ARITHMETIC = re.compile(r'[\w)\]]\s*(?:\+\+|--|[+\-*/]=?)\s*[\w(]|\+\+|--')

# (title/category keywords, required constructs, waived for absence claims)
_CORROBORATION_RULES: List[Tuple[Tuple[str, ...], Tuple[str, ...], bool]] = [
    (("reentrancy", "re-entrancy", "reentrant"), (".call(", ".call{", ".transfer(", ".send("), False),
    (("access-control", "access control"), ("onlyowner", "require(", "modifier"), True),
]
_RE_ABSENCE_CLAIM = re.compile(r"\b(?:missing|unprotected|unrestricted|lacks?|lacking|without|no)\b")
_OVERFLOW_KEYWORDS = ("overflow", "underflow")


def bare_identifier(location: str) -> str:
    """'mint() function' -> 'mint'"""
    return _RE_IDENTIFIER_NOISE.sub(" ", location or "").strip()


class CodeVerifier:
    """Filters findings against the source they claim to describe."""

    def __init__(self, source_code: Optional[str]):
        self.source_code = source_code or ""
        self._source_lower = self.source_code.lower()
        self._source_compact = re.sub(r'\s+', '', self._source_lower)

    def verify(self, findings: Sequence[Finding]) -> List[Finding]:
        """Return the findings that survive verification, in input order."""
        if not self.source_code.strip():
            return list(findings)

        kept = []
        for finding in findings:
            reason = self.rejection_reason(finding)
            if reason:
                logger.debug(f"Rejected '{finding.title}' at {finding.location}: {reason}")
                continue
            kept.append(finding)

        rejected = len(findings) - len(kept)
        if rejected:
            logger.info(f"Verification dropped {rejected} of {len(findings)} findings")
        return kept

    def rejection_reason(self, finding: Finding) -> Optional[str]:
        """None when the finding is kept, otherwise why it was dropped."""
        if not self.source_code.strip() or finding.is_gas_optimization:
            return None

        if is_specific_location(finding.location) and not self._location_present(finding.location):
            return "location not found in source"

        text = f"{finding.category} {finding.title}".lower()

        for keywords, constructs, waived_for_absence in _CORROBORATION_RULES:
            if any(k in text for k in keywords):
                if waived_for_absence and _RE_ABSENCE_CLAIM.search(finding.title.lower()):
                    break
                if not any(c in self._source_compact for c in constructs):
                    return f"no {'/'.join(constructs)} in source"
                break

        if any(k in text for k in _OVERFLOW_KEYWORDS) and not _RE_ARITHMETIC.search(self.source_code):
            return "no arithmetic in source"

        return None

    def _location_present(self, location: str) -> bool:
        if location.lower() in self._source_lower:
            return True
        identifier = bare_identifier(location)
        return len(identifier) > 0 and identifier.lower() in self._source_lower


def verify_findings(findings: Sequence[Finding], source_code: Optional[str]) -> List[Finding]:
    return CodeVerifier(source_code).verify(findings)
