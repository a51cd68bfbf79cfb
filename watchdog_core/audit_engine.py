"""
Audit engine: the analyze / score entry points.

Pipeline: concurrent model passes (with pattern-scanner fallback) ->
similarity consolidation -> code-presence verification -> scoring ->
report assembly.  ``analyze`` is total: whatever happens inside, the caller
gets an AggregateResult.
"""

import asyncio
import logging
from dataclasses import replace
from datetime import datetime
from typing import Any, Dict, List, Optional, Sequence

from watchdog_core.audit_progress import ProgressCallback
from watchdog_core.code_verifier import CodeVerifier
from watchdog_core.config_manager import WatchdogConfig
from watchdog_core.finding_consolidator import FindingConsolidator
from watchdog_core.model_passes import ModelPass
from watchdog_core.models import (
    AggregateResult,
    Confidence,
    Finding,
    ScanPass,
    Severity,
    sort_findings,
)
from watchdog_core.multi_pass_aggregator import MultiPassAggregator
from watchdog_core.pattern_scanner import SCANNER_SOURCE, PatternScanner
from watchdog_core.report_assembler import assemble_report
from watchdog_core.scoring import compute_scores, overall_score, risk_level_for, score_findings

logger = logging.getLogger(__name__)

FALLBACK_SECURITY_NO_SOURCE = 50
FALLBACK_SECURITY_WITH_SOURCE = 75


class WatchdogAnalyzer:
    """Runs the full analysis pipeline for one contract at a time."""

    def __init__(self, config: Optional[WatchdogConfig] = None, scanner: Optional[PatternScanner] = None):
        self.config = config or WatchdogConfig()
        self.scanner = scanner or PatternScanner()
        self.aggregator = MultiPassAggregator(
            pass_timeout=self.config.pass_timeout,
            scanner=self.scanner,
            include_static_pass=self.config.include_static_pass,
        )
        self.consolidator = FindingConsolidator(self.config.similarity_threshold)

    async def analyze(self, source_code: str, contract_name: str = "Contract",
                      passes: Sequence[ModelPass] = (),
                      on_progress: Optional[ProgressCallback] = None) -> AggregateResult:
        """
        Analyze one contract.

        Args:
            source_code: Solidity source (may be empty)
            contract_name: Name used in prompts and the report
            passes: Model passes to run concurrently
            on_progress: Optional observer ``(model_id, status, data)``

        Returns:
            AggregateResult; never raises
        """
        source_code = source_code or ""
        try:
            return await self._analyze(source_code, contract_name, passes, on_progress)
        except Exception as e:
            logger.exception(f"Analysis of {contract_name} failed: {e}")
            return self._fallback_result(source_code, contract_name, (), error=str(e))

    async def _analyze(self, source_code: str, contract_name: str, passes: Sequence[ModelPass],
                       on_progress: Optional[ProgressCallback]) -> AggregateResult:
        logger.info(f"🧠 Analyzing {contract_name} with {len(passes)} model passes")
        scan_passes = await self.aggregator.run(source_code, contract_name, passes, on_progress)

        model_passes = [p for p in scan_passes if p.model_id != SCANNER_SOURCE]
        used_pattern_fallback = not any(p.real_findings for p in model_passes)

        real_findings: List[Finding] = [f for p in scan_passes for f in p.real_findings]
        logger.info(f"📊 Extracted {len(real_findings)} findings from {len(scan_passes)} passes")
        if not real_findings:
            return self._fallback_result(source_code, contract_name, scan_passes)

        consolidated = self.consolidator.consolidate(real_findings)
        verified = CodeVerifier(source_code).verify(consolidated)
        findings = tuple(sort_findings(verified))
        logger.info(f"✅ {len(findings)} verified findings for {contract_name}")

        scores = compute_scores(findings)
        risk_level = risk_level_for(scores.security)
        metadata = self._metadata(scan_passes, len(real_findings), len(consolidated), len(findings))
        metadata.update(self.consolidator.generate_consolidation_report(len(real_findings), len(consolidated)))

        return AggregateResult(
            contract_name=contract_name,
            findings=findings,
            scores=scores,
            risk_level=risk_level,
            passes=tuple(scan_passes),
            report=assemble_report(contract_name, findings, scores, risk_level, scan_passes, metadata),
            used_pattern_fallback=used_pattern_fallback,
            metadata=metadata,
        )

    def analyze_sync(self, source_code: str, contract_name: str = "Contract",
                     passes: Sequence[ModelPass] = (),
                     on_progress: Optional[ProgressCallback] = None) -> AggregateResult:
        """Blocking wrapper around ``analyze``."""
        return asyncio.run(self.analyze(source_code, contract_name, passes, on_progress))

    async def analyze_address(self, address: str, network: Optional[str] = None,
                              passes: Sequence[ModelPass] = (), fetcher=None,
                              on_progress: Optional[ProgressCallback] = None) -> AggregateResult:
        """Fetch verified source from an explorer, then analyze it."""
        if fetcher is None:
            from watchdog_core.explorer_fetcher import ExplorerFetcher
            fetcher = ExplorerFetcher()

        try:
            loop = asyncio.get_running_loop()
            contract = await loop.run_in_executor(None, fetcher.fetch_contract_source, address, network)
        except Exception as e:
            logger.exception(f"Fetching {address} failed: {e}")
            contract = {'error': str(e)}

        if contract.get('error'):
            logger.warning(f"Could not fetch source for {address}: {contract['error']}")
            result = self._fallback_result("", address, (), error=contract['error'])
        else:
            result = await self.analyze(contract['source_code'], contract.get('contract_name') or address,
                                        passes, on_progress)

        metadata = dict(result.metadata)
        metadata.update({'address': address, 'network': contract.get('network', network)})
        if not contract.get('error'):
            metadata['compiler'] = contract.get('compiler')
        return replace(result, metadata=metadata)

    @staticmethod
    def score_findings(findings: Sequence[Finding]) -> Dict[str, Any]:
        return score_findings(findings)

    @staticmethod
    def _metadata(scan_passes: Sequence[ScanPass], raw: int, consolidated: int, verified: int) -> Dict[str, Any]:
        return {
            'total_passes': len(scan_passes),
            'successful_passes': sum(1 for p in scan_passes if p.succeeded),
            'raw_findings': raw,
            'consolidated_findings_count': consolidated,
            'verified_findings': verified,
            'rejected_by_verification': consolidated - verified,
            'analysis_timestamp': datetime.now().isoformat(),
        }

    def _fallback_result(self, source_code: str, contract_name: str, scan_passes: Sequence[ScanPass],
                         error: str = "") -> AggregateResult:
        """Single manual-review finding when nothing could be recovered."""
        has_source = bool(source_code.strip())
        security = FALLBACK_SECURITY_WITH_SOURCE if has_source else FALLBACK_SECURITY_NO_SOURCE

        if has_source:
            description = ("Automated analysis recovered no findings for this contract. "
                           "A manual security review is recommended before deployment.")
        else:
            description = "No source code was available, so the contract could not be analyzed."
        if error:
            description = f"{description} Error: {error}"

        finding = Finding(
            severity=Severity.INFO,
            category="manual-review",
            title="Manual Review Required",
            description=description,
            location="Contract",
            recommendation="Have the contract reviewed manually by a security auditor.",
            confidence=Confidence.LOW,
            parse_error=True,
            source="watchdog",
        )
        findings = (finding,)

        base = compute_scores(findings)
        scores = replace(base, security=security,
                         overall=overall_score(security, base.gas_optimization, base.code_quality))
        risk_level = risk_level_for(security)

        metadata = self._metadata(scan_passes, 0, 0, 0)
        metadata['fallback'] = True
        if error:
            metadata['error'] = error

        return AggregateResult(
            contract_name=contract_name,
            findings=findings,
            scores=scores,
            risk_level=risk_level,
            passes=tuple(scan_passes),
            report=assemble_report(contract_name, findings, scores, risk_level, scan_passes, metadata),
            used_pattern_fallback=bool(scan_passes),
            metadata=metadata,
        )


def analyze(source_code: str, contract_name: str = "Contract", passes: Sequence[ModelPass] = (),
            config: Optional[WatchdogConfig] = None,
            on_progress: Optional[ProgressCallback] = None) -> AggregateResult:
    """Synchronous convenience entry point."""
    return WatchdogAnalyzer(config).analyze_sync(source_code, contract_name, passes, on_progress)


async def analyze_address(address: str, network: Optional[str] = None, passes: Sequence[ModelPass] = (),
                          config: Optional[WatchdogConfig] = None, fetcher=None) -> AggregateResult:
    return await WatchdogAnalyzer(config).analyze_address(address, network, passes, fetcher)
