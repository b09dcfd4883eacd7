"""Remediation session state: attempt tracking and metrics.

Both live in an explicit session object instead of process globals so a
long-running daemon can bound or reset them. The attempt store evicts
least-recently-used keys beyond ``max_entries`` and entries older than
``ttl``.
"""

import time
from collections import OrderedDict
from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime, timedelta

from ..config import RemediationConfig
from ..models import (
    ErrorType,
    ErrorTypeStats,
    RemediationMetrics,
    RemediationResult,
)

AttemptKey = tuple[str, ErrorType]


@dataclass
class _AttemptEntry:
    count: int
    updated: float


class AttemptTracker:
    """Bounded, TTL-evicting counter keyed by (subject_id, error_type)."""

    def __init__(
        self,
        max_entries: int = 1024,
        ttl: timedelta = timedelta(hours=24),
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.max_entries = max_entries
        self.ttl_seconds = ttl.total_seconds()
        self.clock = clock
        self._entries: OrderedDict[AttemptKey, _AttemptEntry] = OrderedDict()

    def __len__(self) -> int:
        self._evict_expired()
        return len(self._entries)

    def _evict_expired(self) -> None:
        cutoff = self.clock() - self.ttl_seconds
        expired = [key for key, entry in self._entries.items() if entry.updated < cutoff]
        for key in expired:
            del self._entries[key]

    def get(self, subject_id: str, error_type: ErrorType) -> int:
        self._evict_expired()
        entry = self._entries.get((subject_id, error_type))
        return entry.count if entry else 0

    def increment(self, subject_id: str, error_type: ErrorType) -> int:
        """Record one real attempt and return the new count."""
        self._evict_expired()
        key = (subject_id, error_type)
        entry = self._entries.pop(key, None)
        count = (entry.count if entry else 0) + 1
        self._entries[key] = _AttemptEntry(count=count, updated=self.clock())
        while len(self._entries) > self.max_entries:
            self._entries.popitem(last=False)
        return count

    def clear(self) -> None:
        self._entries.clear()


class RemediationSession:
    """Owns the attempt tracker and metrics for one remediation engine."""

    def __init__(
        self,
        attempts: AttemptTracker | None = None,
    ) -> None:
        self.attempts = attempts or AttemptTracker()
        self.metrics = RemediationMetrics()

    @classmethod
    def from_config(cls, config: RemediationConfig) -> "RemediationSession":
        return cls(AttemptTracker(max_entries=config.max_tracked_subjects, ttl=config.attempt_ttl))

    def record(
        self,
        error_type: ErrorType,
        result: RemediationResult,
        dry_run: bool,
        duration_ms: int,
    ) -> None:
        """Fold one ``attempt_fix`` outcome into the metrics."""
        metrics = self.metrics
        metrics.last_updated = datetime.now()
        metrics.total_fix_duration_ms += duration_ms

        if dry_run:
            metrics.dry_run_attempts += 1
            return

        metrics.total_attempts += 1
        if result.success:
            metrics.successful_fixes += 1
        else:
            metrics.failed_fixes += 1
        if result.rolled_back:
            metrics.rollback_count += 1
        if result.verification_failed:
            metrics.verification_failures += 1

        stats = metrics.by_error_type.setdefault(error_type, ErrorTypeStats())
        stats.attempts += 1
        if result.success:
            stats.successes += 1
        else:
            stats.failures += 1

        if result.reason is not None:
            key = result.reason.value
            metrics.by_reason[key] = metrics.by_reason.get(key, 0) + 1

        metrics.average_fix_duration_ms = metrics.total_fix_duration_ms / metrics.total_attempts

    def snapshot(self) -> RemediationMetrics:
        return self.metrics.model_copy(deep=True)

    def reset_metrics(self) -> None:
        self.metrics = RemediationMetrics()

    def export_metrics(self) -> str:
        return self.metrics.model_dump_json(indent=2)
