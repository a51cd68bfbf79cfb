"""
Finding Consolidator

Clusters findings reported by different passes that describe the same issue
and merges every cluster into one finding whose confidence reflects how many
passes agreed on it.
"""

import logging
from dataclasses import replace
from typing import Any, Dict, List, Sequence

from watchdog_core.models import Confidence, Finding

logger = logging.getLogger(__name__)

DEFAULT_SIMILARITY_THRESHOLD = 0.8

TITLE_WEIGHT = 0.4
CATEGORY_WEIGHT = 0.25
SEVERITY_WEIGHT = 0.15
LOCATION_WEIGHT = 0.15
DESCRIPTION_WEIGHT = 0.05


def _tokens(text: str) -> set:
    return set((text or "").lower().split())


def jaccard(a: str, b: str) -> float:
    """Token Jaccard index; 0 when either side has no tokens."""
    tokens_a, tokens_b = _tokens(a), _tokens(b)
    if not tokens_a or not tokens_b:
        return 0.0
    return len(tokens_a & tokens_b) / len(tokens_a | tokens_b)


def similarity(first: Finding, second: Finding) -> float:
    """Weighted similarity in [0, 1], rounded to 6 decimals."""
    score = (
        jaccard(first.title, second.title) * TITLE_WEIGHT
        + (CATEGORY_WEIGHT if first.category == second.category else 0.0)
        + (SEVERITY_WEIGHT if first.severity == second.severity else 0.0)
        + jaccard(first.location, second.location) * LOCATION_WEIGHT
        + jaccard(first.description, second.description) * DESCRIPTION_WEIGHT
    )
    return round(score, 6)


class FindingConsolidator:
    """Similarity-based clustering and merging of findings across passes."""

    def __init__(self, threshold: float = DEFAULT_SIMILARITY_THRESHOLD):
        self.threshold = threshold

    def cluster(self, findings: Sequence[Finding]) -> List[List[Finding]]:
        """Greedy first-fit: each finding joins the first cluster whose seed it matches."""
        clusters: List[List[Finding]] = []
        for finding in findings:
            for group in clusters:
                if similarity(group[0], finding) >= self.threshold:
                    group.append(finding)
                    break
            else:
                clusters.append([finding])
        return clusters

    def consolidate(self, findings: Sequence[Finding]) -> List[Finding]:
        """
        Merge duplicate findings.

        Args:
            findings: Raw findings from every pass, in pass order

        Returns:
            One finding per cluster, in cluster order
        """
        if not findings:
            return []
        consolidated = [self._merge_cluster(group) for group in self.cluster(findings)]
        logger.info(f"Consolidated {len(findings)} findings into {len(consolidated)}")
        return consolidated

    def _merge_cluster(self, group: List[Finding]) -> Finding:
        # sorted() is stable, so equal weights keep cluster order
        ordered = sorted(group, key=lambda f: f.confidence.weight, reverse=True)
        representative = ordered[0]

        reporters: List[str] = []
        for finding in group:
            for model_id in finding.reported_by:
                if model_id and model_id not in reporters:
                    reporters.append(model_id)

        if len(group) == 1:
            return replace(representative, reported_by=tuple(reporters), consensus_count=1)

        peer_descriptions = []
        for finding in group:
            if finding is representative:
                continue
            text = finding.description.strip()
            if text and text != representative.description and text not in peer_descriptions:
                peer_descriptions.append(text)
        description = representative.description
        if peer_descriptions:
            description = f"{description} Additional insights: {' '.join(peer_descriptions)}"

        recommendations = [f.recommendation for f in ordered if f.recommendation]
        recommendation = " Additionally: ".join(dict.fromkeys(recommendations))

        if len(group) >= 3:
            confidence = Confidence.HIGH
        elif len(group) == 2:
            confidence = Confidence.MEDIUM
        else:
            confidence = representative.confidence

        return replace(
            representative,
            description=description,
            recommendation=recommendation,
            confidence=confidence,
            reported_by=tuple(reporters),
            consensus_count=len(group),
        )

    @staticmethod
    def generate_consolidation_report(original_count: int, consolidated_count: int) -> Dict[str, Any]:
        """Statistics on the consolidation step"""
        return {
            'original_findings': original_count,
            'consolidated_findings': consolidated_count,
            'duplicates_removed': original_count - consolidated_count,
            'consolidation_rate': round((original_count - consolidated_count) / original_count * 100, 1) if original_count > 0 else 0
        }


def consolidate_findings(findings: Sequence[Finding], threshold: float = DEFAULT_SIMILARITY_THRESHOLD) -> List[Finding]:
    return FindingConsolidator(threshold).consolidate(findings)
