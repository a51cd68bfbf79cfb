"""
Progress tracking for concurrent model passes.

The aggregator reports through an injected ``on_progress(model_id, status, data)``
callable.  ``PassProgressTracker`` is the stock observer: it keeps thread-safe
per-pass status that a Rich display (or anything else) can poll.
"""

import threading
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Dict, List, Optional


class PassStatus(Enum):
    """Lifecycle of a single model pass."""
    QUEUED = "Queued"
    STARTED = "Started"
    COMPLETED = "Completed"
    FAILED = "Failed"
    TIMED_OUT = "Timed Out"
    FALLBACK = "Pattern Fallback"


ProgressCallback = Callable[[str, PassStatus, Dict[str, Any]], None]


@dataclass
class PassProgress:
    """Thread-safe per-pass progress record."""

    model_id: str
    status: PassStatus = PassStatus.QUEUED
    findings_count: int = 0
    start_time: Optional[float] = None
    end_time: Optional[float] = None
    error: Optional[str] = None
    parse_method: str = ""
    _lock: threading.Lock = field(default_factory=threading.Lock, repr=False)

    def update(self, status: PassStatus, data: Dict[str, Any]) -> None:
        with self._lock:
            self.status = status
            if status == PassStatus.STARTED and self.start_time is None:
                self.start_time = time.time()
            if status in (PassStatus.COMPLETED, PassStatus.FAILED, PassStatus.TIMED_OUT, PassStatus.FALLBACK):
                self.end_time = time.time()
            if "findings" in data:
                self.findings_count = int(data["findings"])
            if data.get("error"):
                self.error = str(data["error"])
            if data.get("parse_method"):
                self.parse_method = str(data["parse_method"])

    @property
    def elapsed(self) -> Optional[float]:
        with self._lock:
            if self.start_time is None:
                return None
            end = self.end_time or time.time()
            return end - self.start_time

    @property
    def is_done(self) -> bool:
        with self._lock:
            return self.status not in (PassStatus.QUEUED, PassStatus.STARTED)


class PassProgressTracker:
    """Observer collecting PassProgress records; callable as ``on_progress``."""

    def __init__(self, listener: Optional[ProgressCallback] = None):
        self._lock = threading.Lock()
        self._passes: Dict[str, PassProgress] = {}
        self._listener = listener

    def __call__(self, model_id: str, status: PassStatus, data: Optional[Dict[str, Any]] = None) -> None:
        data = data or {}
        with self._lock:
            progress = self._passes.get(model_id)
            if progress is None:
                progress = PassProgress(model_id=model_id)
                self._passes[model_id] = progress
        progress.update(status, data)
        if self._listener is not None:
            self._listener(model_id, status, data)

    def get(self, model_id: str) -> Optional[PassProgress]:
        with self._lock:
            return self._passes.get(model_id)

    def snapshot(self) -> List[PassProgress]:
        with self._lock:
            return list(self._passes.values())

    @property
    def all_done(self) -> bool:
        return all(p.is_done for p in self.snapshot())
