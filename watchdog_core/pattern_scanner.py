"""
Pattern Scanner: applies the vulnerability catalog to one Solidity source.

Function boundaries and line starts are indexed once per scan; every match is
then mapped to its enclosing function and line with a binary search, so each
rule costs a single pass over the source.  The same module also turns
unstructured model prose into low-confidence findings using the catalog's
text indicators.
"""

import logging
import re
from bisect import bisect_right
from typing import Iterable, List, Optional, Tuple

from watchdog_core.models import Confidence, Finding, derive_confidence
from watchdog_core.pattern_catalog import (
    TEXT_INDICATORS,
    VULNERABILITY_PATTERNS,
    Polarity,
    SafeguardScope,
    TextIndicator,
    VulnerabilityPattern,
)

logger = logging.getLogger(__name__)

SCANNER_SOURCE = "pattern-scanner"
TEXT_HEURISTICS_SOURCE = "text-heuristics"

_RE_DECLARATION = re.compile(
    r'\b(?:function\s+(\w+)|modifier\s+(\w+)|(constructor|fallback|receive)\s*\('
    r'|(?:abstract\s+)?(?:contract|interface|library)\s+\w+)'
)
_RE_COMMENT = re.compile(r'//[^\n]*|/\*.*?\*/', re.DOTALL)
_RE_WHITESPACE = re.compile(r'\s+')
_RE_NEGATION = re.compile(r'\b(?:no|not|none|without\s+any|free\s+of|safe\s+from|protected\s+against)\b',
                          re.IGNORECASE)

_SNIPPET_TRAILING_LINES = 2


def _compact(text: str) -> str:
    return _RE_WHITESPACE.sub("", text)


def _mask_comments(source: str) -> str:
    """Blank out comments while keeping offsets and newlines intact."""
    def blank(match: re.Match) -> str:
        return re.sub(r'[^\n]', ' ', match.group(0))
    return _RE_COMMENT.sub(blank, source)


class SourceIndex:
    """Offset tables for one source string."""

    def __init__(self, source: str):
        self.source = source
        self.lines = source.split("\n")
        self.line_starts: List[int] = [0]
        for i, ch in enumerate(source):
            if ch == "\n":
                self.line_starts.append(i + 1)

        self.masked = _mask_comments(source)

        # contract, interface and library headers close the previous segment with a None name
        self.decl_offsets: List[int] = []
        self.decl_names: List[Optional[str]] = []
        for match in _RE_DECLARATION.finditer(self.masked):
            self.decl_offsets.append(match.start())
            self.decl_names.append(match.group(1) or match.group(2) or match.group(3))

    def line_of(self, offset: int) -> int:
        """1-based line number for a character offset."""
        return bisect_right(self.line_starts, offset)

    def enclosing(self, offset: int) -> Optional[Tuple[Optional[str], int, int]]:
        """(name, start, end) of the nearest preceding declaration, if any.

        The name is None when the offset sits at contract level.
        """
        idx = bisect_right(self.decl_offsets, offset) - 1
        if idx < 0:
            return None
        end = self.decl_offsets[idx + 1] if idx + 1 < len(self.decl_offsets) else len(self.source)
        return self.decl_names[idx], self.decl_offsets[idx], end

    def segments(self) -> List[Tuple[Optional[str], int, int]]:
        """Every declaration segment, in source order."""
        return [self.enclosing(offset) for offset in self.decl_offsets]

    def snippet(self, line_number: int) -> str:
        start = max(line_number - 1, 0)
        return "\n".join(self.lines[start:start + 1 + _SNIPPET_TRAILING_LINES]).strip()


class PatternScanner:
    """Single-pass, deterministic scanner over the pattern catalog."""

    def __init__(self, patterns: Optional[Iterable[VulnerabilityPattern]] = None,
                 indicators: Optional[Iterable[TextIndicator]] = None):
        self.patterns = list(patterns) if patterns is not None else list(VULNERABILITY_PATTERNS.values())
        self.indicators = list(indicators) if indicators is not None else list(TEXT_INDICATORS)

    def scan(self, source_code: str) -> List[Finding]:
        """Return one finding per rule occurrence, in catalog order."""
        if not source_code or not source_code.strip():
            return []

        index = SourceIndex(source_code)
        masked = index.masked
        findings: List[Finding] = []

        for pattern in self.patterns:
            if pattern.regex is not None:
                hits = self._scan_regex(pattern, index, masked)
            else:
                hits = self._scan_keywords(pattern, index, masked)
            if pattern.max_matches is not None:
                hits = hits[:pattern.max_matches]
            findings.extend(hits)

        logger.debug(f"Pattern scan produced {len(findings)} findings")
        return findings

    def _safeguarded(self, pattern: VulnerabilityPattern, index: SourceIndex,
                     segment: Optional[Tuple[Optional[str], int, int]]) -> bool:
        if pattern.polarity is not Polarity.ABSENCE or not pattern.safeguards:
            return False
        text = index.source if pattern.safeguards_in_comments else index.masked
        if pattern.safeguard_scope is SafeguardScope.SOURCE or segment is None:
            scope = text
        else:
            scope = text[segment[1]:segment[2]]
        compact_scope = _compact(scope)
        return any(_compact(guard) in compact_scope for guard in pattern.safeguards)

    def _scan_regex(self, pattern: VulnerabilityPattern, index: SourceIndex, masked: str) -> List[Finding]:
        hits = []
        for match in pattern.compiled.finditer(masked):
            segment = index.enclosing(match.start())
            if self._safeguarded(pattern, index, segment):
                continue
            line_number = index.line_of(match.start())
            location = (segment[0] if segment else None) or "Contract"
            hits.append(self._make_finding(pattern, location, line_number, index.snippet(line_number)))
        return hits

    def _scan_keywords(self, pattern: VulnerabilityPattern, index: SourceIndex, masked: str) -> List[Finding]:
        segments = index.segments() or [("Contract", 0, len(index.source))]
        keywords = [_compact(k) for k in pattern.keywords]
        hits = []
        for segment in segments:
            body = _compact(masked[segment[1]:segment[2]])
            position = 0
            for keyword in keywords:
                position = body.find(keyword, position)
                if position < 0:
                    break
                position += len(keyword)
            if position < 0:
                continue
            if self._safeguarded(pattern, index, segment):
                continue
            line_number = index.line_of(segment[1])
            hits.append(self._make_finding(pattern, segment[0] or "Contract", line_number, index.snippet(line_number)))
        return hits

    @staticmethod
    def _make_finding(pattern: VulnerabilityPattern, location: str, line_number: int, snippet: str) -> Finding:
        return Finding(
            severity=pattern.severity,
            category=pattern.category,
            title=pattern.title,
            description=pattern.description,
            location=location,
            recommendation=pattern.recommendation,
            confidence=derive_confidence(location, code_reference=snippet),
            reported_by=(SCANNER_SOURCE,),
            code_snippet=snippet,
            line_number=line_number,
            source=SCANNER_SOURCE,
            pattern_key=pattern.key,
        )

    def scan_text(self, text: str, source: str = TEXT_HEURISTICS_SOURCE) -> List[Finding]:
        """Keyword heuristics over free text: one LOW finding per indicator, at its first line."""
        if not text or not text.strip():
            return []

        lines = text.splitlines()
        findings = []
        for indicator in self.indicators:
            regex = indicator.compiled
            for line_number, line in enumerate(lines, start=1):
                match = regex.search(line)
                if not match:
                    continue
                if _RE_NEGATION.search(line[max(0, match.start() - 40):match.start()]):
                    continue
                excerpt = line.strip()[:200]
                findings.append(Finding(
                    severity=indicator.severity,
                    category=indicator.category,
                    title=indicator.title,
                    description=f"{indicator.description} Context: \"{excerpt}\"",
                    location=f"Line {line_number}",
                    recommendation=indicator.recommendation,
                    confidence=Confidence.LOW,
                    reported_by=(source,),
                    line_number=line_number,
                    source=source,
                    pattern_key=indicator.key,
                ))
                break
        return findings


def scan_source(source_code: str) -> List[Finding]:
    """Scan with the default catalog."""
    return PatternScanner().scan(source_code)
