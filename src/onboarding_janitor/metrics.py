# Copyright 2024-2025 Amiable Development
# SPDX-License-Identifier: Apache-2.0

"""
SweepMetrics - Telemetry for onboarding sweeps.

Tracks per-sweep outcomes:
- Sweep duration (p50, p95)
- Channels evaluated, deletions, warnings, replays and kicks
- Failed operations
- Degraded status detection

Thread-safe; the CLI reads it from the scheduler loop and may export it
from elsewhere.
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, List
import threading
import logging

from onboarding_janitor.sweep.orchestrator import SweepResult
from onboarding_janitor.sweep.policy import ActionKind

logger = logging.getLogger(__name__)


@dataclass
class SweepRecord:
    """
    Metrics for a single sweep.

    Attributes:
        duration_ms: Wall time of the sweep
        channels: Channels evaluated
        deleted: Channels deleted
        warned: Warnings sent
        reprocessed: Messages replayed
        kicked: Members kicked
        failures: Operations that failed
        operations: Channel evaluations and kicks attempted
        max_waiting_time_ms: Idle window used
        timestamp: When the sweep started
    """

    duration_ms: float
    channels: int
    deleted: int
    warned: int
    reprocessed: int
    kicked: int
    failures: int
    operations: int
    max_waiting_time_ms: float
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    @classmethod
    def from_result(cls, result: SweepResult) -> "SweepRecord":
        return cls(
            duration_ms=result.duration_ms,
            channels=result.channels_evaluated,
            deleted=result.count(ActionKind.DELETE),
            warned=result.count(ActionKind.SEND_WARNING),
            reprocessed=result.count(ActionKind.REPROCESS),
            kicked=len(result.kicked),
            failures=len(result.failures),
            operations=result.channels_evaluated
            + len(result.kicked)
            + sum(1 for f in result.failures if f.operation == "kick"),
            max_waiting_time_ms=result.max_waiting_time_ms,
            timestamp=result.started_at,
        )


class SweepMetrics:
    """
    Telemetry for onboarding sweeps.

    Example:
        metrics = SweepMetrics()
        metrics.record_sweep(result)

        stats = metrics.get_duration_stats()
        print(f"p95 sweep: {stats['p95']}ms")
    """

    def __init__(
        self,
        degraded_duration_threshold_ms: float = 30_000,
        degraded_failure_rate_threshold: float = 0.1,
        window: int = 20,
    ):
        """
        Initialize SweepMetrics.

        Args:
            degraded_duration_threshold_ms: p95 duration above which sweeps are degraded
            degraded_failure_rate_threshold: Failed share of recent operations that is degraded
            window: Number of recent sweeps considered for degraded status
        """
        self._lock = threading.RLock()
        self._records: List[SweepRecord] = []

        self.degraded_duration_threshold_ms = degraded_duration_threshold_ms
        self.degraded_failure_rate_threshold = degraded_failure_rate_threshold
        self.window = window

    def record_sweep(self, result: SweepResult) -> SweepRecord:
        """Record the outcome of a sweep."""
        record = SweepRecord.from_result(result)

        with self._lock:
            self._records.append(record)

        logger.debug(
            f"Recorded sweep: duration={record.duration_ms:.1f}ms, "
            f"channels={record.channels}, failures={record.failures}"
        )
        return record

    def get_records(self) -> List[SweepRecord]:
        with self._lock:
            return list(self._records)

    def get_duration_stats(self) -> Dict[str, Any]:
        """
        Get sweep duration statistics.

        Returns:
            Dict with count, avg_ms, p50, p95
        """
        with self._lock:
            durations = [r.duration_ms for r in self._records]

        if not durations:
            return {"count": 0, "avg_ms": 0.0, "p50": 0.0, "p95": 0.0}

        durations_sorted = sorted(durations)
        count = len(durations)

        return {
            "count": count,
            "avg_ms": sum(durations) / count,
            "p50": self._percentile(durations_sorted, 50),
            "p95": self._percentile(durations_sorted, 95),
        }

    def _percentile(self, sorted_data: List[float], percentile: int) -> float:
        """Calculate percentile from sorted data."""
        if not sorted_data:
            return 0.0
        k = (len(sorted_data) - 1) * (percentile / 100)
        f = int(k)
        c = f + 1 if f < len(sorted_data) - 1 else f
        return sorted_data[f] + (sorted_data[c] - sorted_data[f]) * (k - f)

    def get_totals(self) -> Dict[str, int]:
        """Totals across every recorded sweep."""
        with self._lock:
            return {
                "sweeps": len(self._records),
                "channels": sum(r.channels for r in self._records),
                "deleted": sum(r.deleted for r in self._records),
                "warned": sum(r.warned for r in self._records),
                "reprocessed": sum(r.reprocessed for r in self._records),
                "kicked": sum(r.kicked for r in self._records),
                "failures": sum(r.failures for r in self._records),
            }

    def get_failure_rate(self) -> float:
        """Failed share of operations over the recent window."""
        with self._lock:
            recent = self._records[-self.window:]

        operations = sum(r.operations for r in recent)
        failures = sum(r.failures for r in recent)
        if operations == 0:
            return 0.0
        return failures / operations

    def is_degraded(self) -> bool:
        """
        Check if sweeps are degraded.

        Degraded when the recent p95 duration or the recent failure rate
        exceeds its threshold.
        """
        with self._lock:
            recent = sorted(r.duration_ms for r in self._records[-self.window:])

        if recent and self._percentile(recent, 95) > self.degraded_duration_threshold_ms:
            return True

        return self.get_failure_rate() > self.degraded_failure_rate_threshold

    def export(self) -> Dict[str, Any]:
        """Export metrics as a dictionary."""
        return {
            "totals": self.get_totals(),
            "duration": self.get_duration_stats(),
            "failure_rate": self.get_failure_rate(),
            "is_degraded": self.is_degraded(),
        }

    def reset(self) -> None:
        """Clear all recorded sweeps."""
        with self._lock:
            self._records.clear()
        logger.info("Metrics reset")
