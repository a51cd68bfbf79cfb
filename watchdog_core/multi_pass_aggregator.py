"""
Multi-Pass Aggregator

Runs every model pass concurrently, interprets each response, and records
per-pass success or failure.  When no pass yields real findings the pattern
scanner is run against the source and becomes a pass of its own.
"""

import asyncio
import logging
import time
from typing import Any, Dict, List, Optional, Sequence

from watchdog_core.audit_progress import PassStatus, ProgressCallback
from watchdog_core.model_passes import ModelPass
from watchdog_core.models import ScanPass
from watchdog_core.pattern_scanner import SCANNER_SOURCE, PatternScanner
from watchdog_core.response_interpreter import ResponseInterpreter

logger = logging.getLogger(__name__)

PATTERN_SCAN_METHOD = "pattern_scan"


class MultiPassAggregator:
    """Concurrent pass runner with pattern-scanner fallback."""

    def __init__(self, pass_timeout: float = 90.0,
                 interpreter: Optional[ResponseInterpreter] = None,
                 scanner: Optional[PatternScanner] = None,
                 include_static_pass: bool = False):
        self.pass_timeout = pass_timeout
        self.scanner = scanner or PatternScanner()
        self.interpreter = interpreter or ResponseInterpreter(self.scanner)
        self.include_static_pass = include_static_pass

    async def run(self, source_code: str, contract_name: str, passes: Sequence[ModelPass],
                  on_progress: Optional[ProgressCallback] = None) -> List[ScanPass]:
        """
        Run all passes and return one ScanPass per pass (plus the scanner pass when used).

        Args:
            source_code: Solidity source under analysis
            contract_name: Display name for prompts and logs
            passes: Objects exposing ``model_id`` and ``async invoke()``
            on_progress: Optional observer ``(model_id, status, data)``

        Returns:
            List of ScanPass records, in pass order
        """
        def notify(model_id: str, status: PassStatus, data: Optional[Dict[str, Any]] = None) -> None:
            if on_progress is None:
                return
            try:
                on_progress(model_id, status, data or {})
            except Exception as e:
                logger.warning(f"Progress observer failed for {model_id}: {e}")

        for model_pass in passes:
            notify(model_pass.model_id, PassStatus.QUEUED)

        tasks = [self._run_pass(p, source_code, contract_name, notify) for p in passes]
        results = await asyncio.gather(*tasks, return_exceptions=True)

        scan_passes: List[ScanPass] = []
        for model_pass, result in zip(passes, results):
            if isinstance(result, BaseException):
                logger.error(f"Pass {model_pass.model_id} crashed: {result}")
                notify(model_pass.model_id, PassStatus.FAILED, {"error": str(result)})
                scan_passes.append(ScanPass(model_id=model_pass.model_id, succeeded=False, error=str(result)))
            else:
                scan_passes.append(result)

        successful = [p for p in scan_passes if p.succeeded]
        logger.info(f"📊 {len(successful)}/{len(scan_passes)} passes succeeded for {contract_name}")

        models_found_nothing = not any(p.real_findings for p in scan_passes)
        if models_found_nothing or self.include_static_pass:
            if models_found_nothing:
                logger.info(f"No model pass produced findings for {contract_name}; running pattern scanner")
            scan_passes.append(self._scanner_pass(source_code, notify, fallback=models_found_nothing))

        return scan_passes

    async def _run_pass(self, model_pass: ModelPass, source_code: str, contract_name: str, notify) -> ScanPass:
        model_id = model_pass.model_id
        notify(model_id, PassStatus.STARTED)
        start_time = time.time()

        try:
            text = await asyncio.wait_for(model_pass.invoke(source_code, contract_name), timeout=self.pass_timeout)
        except asyncio.TimeoutError:
            error = f"Timed out after {self.pass_timeout}s"
            logger.warning(f"❌ Pass '{model_id}' failed: {error}")
            notify(model_id, PassStatus.TIMED_OUT, {"error": error})
            return ScanPass(model_id=model_id, succeeded=False, error=error, duration=time.time() - start_time)
        except Exception as e:
            logger.warning(f"❌ Pass '{model_id}' failed: {str(e)[:200]}")
            notify(model_id, PassStatus.FAILED, {"error": str(e)})
            return ScanPass(model_id=model_id, succeeded=False, error=str(e), duration=time.time() - start_time)

        if not isinstance(text, str) or not text.strip():
            logger.warning(f"❌ Pass '{model_id}' returned an empty response")
            notify(model_id, PassStatus.FAILED, {"error": "Empty response"})
            return ScanPass(model_id=model_id, succeeded=False, error="Empty response",
                            duration=time.time() - start_time)

        interpreted = self.interpreter.interpret(text, contract_name, model_id=model_id)
        findings = tuple(f.with_origin(model_id) for f in interpreted.findings)
        duration = time.time() - start_time

        logger.info(f"✅ Pass '{model_id}' produced {len(findings)} findings via {interpreted.parse_method}")
        notify(model_id, PassStatus.COMPLETED, {
            "findings": len(findings),
            "parse_method": interpreted.parse_method,
            "duration": duration,
        })
        return ScanPass(
            model_id=model_id,
            raw_findings=findings,
            succeeded=True,
            parse_method=interpreted.parse_method,
            had_parse_error=interpreted.parse_error,
            duration=duration,
        )

    def _scanner_pass(self, source_code: str, notify, fallback: bool) -> ScanPass:
        notify(SCANNER_SOURCE, PassStatus.STARTED)
        start_time = time.time()
        findings = tuple(self.scanner.scan(source_code))
        duration = time.time() - start_time
        notify(SCANNER_SOURCE, PassStatus.FALLBACK if fallback else PassStatus.COMPLETED, {
            "findings": len(findings),
            "parse_method": PATTERN_SCAN_METHOD,
            "duration": duration,
        })
        return ScanPass(
            model_id=SCANNER_SOURCE,
            raw_findings=findings,
            succeeded=True,
            parse_method=PATTERN_SCAN_METHOD,
            duration=duration,
        )
