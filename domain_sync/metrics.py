"""
Lightweight runtime metrics for observability.

Uses in-process counters so it works without extra dependencies.  These are
observational only: orchestration results are returned as values, never read
back from here.
"""

from __future__ import annotations

import threading
import time
from collections import deque
from typing import Deque, Dict


class _RuntimeMetrics:
    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._jobs_succeeded = 0
        self._jobs_failed = 0
        self._changes_recorded = 0
        self._notifications_created = 0
        self._channel_sends_ok = 0
        self._channel_sends_failed = 0
        self._error_timestamps: Deque[float] = deque()

    def record_job(self, ok: bool) -> None:
        with self._lock:
            if ok:
                self._jobs_succeeded += 1
            else:
                self._jobs_failed += 1

    def record_changes(self, changes: int, notifications: int) -> None:
        with self._lock:
            self._changes_recorded += max(0, int(changes))
            self._notifications_created += max(0, int(notifications))

    def record_channel_send(self, ok: bool) -> None:
        with self._lock:
            if ok:
                self._channel_sends_ok += 1
            else:
                self._channel_sends_failed += 1

    def record_error(self, ts: float | None = None) -> None:
        now = ts if ts is not None else time.time()
        with self._lock:
            self._error_timestamps.append(now)
            self._prune_locked(now)

    def snapshot(self) -> Dict[str, int]:
        now = time.time()
        with self._lock:
            self._prune_locked(now)
            return {
                "jobs_succeeded": self._jobs_succeeded,
                "jobs_failed": self._jobs_failed,
                "changes_recorded": self._changes_recorded,
                "notifications_created": self._notifications_created,
                "channel_sends_ok": self._channel_sends_ok,
                "channel_sends_failed": self._channel_sends_failed,
                "errors_last_hour": len(self._error_timestamps),
            }

    def reset_for_tests(self) -> None:
        with self._lock:
            self._jobs_succeeded = 0
            self._jobs_failed = 0
            self._changes_recorded = 0
            self._notifications_created = 0
            self._channel_sends_ok = 0
            self._channel_sends_failed = 0
            self._error_timestamps.clear()

    def _prune_locked(self, now: float) -> None:
        cutoff = now - 3600.0
        while self._error_timestamps and self._error_timestamps[0] < cutoff:
            self._error_timestamps.popleft()


_METRICS = _RuntimeMetrics()


def record_job(ok: bool) -> None:
    _METRICS.record_job(ok)


def record_changes(changes: int, notifications: int = 0) -> None:
    _METRICS.record_changes(changes, notifications)


def record_channel_send(ok: bool) -> None:
    _METRICS.record_channel_send(ok)


def record_error(ts: float | None = None) -> None:
    _METRICS.record_error(ts)


def metrics_snapshot() -> Dict[str, int]:
    return _METRICS.snapshot()


def reset_metrics_for_tests() -> None:
    _METRICS.reset_for_tests()
