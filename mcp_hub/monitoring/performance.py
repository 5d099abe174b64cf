"""Performance monitoring for tool calls.

Aggregates call outcomes into running counters plus a bounded buffer of
timestamped samples. Percentiles use the nearest-rank method: the p-th
percentile of n sorted samples is the value at 1-based rank ceil(p*n/100),
so results are reproducible for a fixed sample set and always one of the
observed values.
"""

from __future__ import annotations

import logging
import math
import threading
import time
from collections import deque
from contextlib import contextmanager
from dataclasses import dataclass
from typing import Any, Iterator, Sequence

import psutil

from ..logging_config import get_logger
from ..models import CallOutcome, PerformanceMetrics, PerformanceStats, SystemResourceUsage
from .resources import read_system_resource_usage


@dataclass
class PerformanceThresholds:
    """Limits used for alerts and admission."""

    max_request_time_ms: float = 5000.0
    max_error_rate: float = 0.05
    min_samples: int = 20  # Error rate is ignored below this many requests
    admission_window: float | None = 60.0  # Seconds; None uses all retained history


@dataclass
class ThresholdViolation:
    type: str  # "request_time" or "error_rate"
    value: float
    threshold: float

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for serialization."""
        return {"type": self.type, "value": self.value, "threshold": self.threshold}


@dataclass
class _Sample:
    timestamp: float  # time.monotonic()
    latency_ms: float
    success: bool
    cache_hit: bool


class RequestTracker:
    """Handle yielded by PerformanceMonitor.track()."""

    def __init__(self) -> None:
        self.success = True
        self.cache_hit = False

    def mark_failed(self) -> None:
        self.success = False

    def mark_cache_hit(self) -> None:
        self.cache_hit = True


def percentile(sorted_values: Sequence[float], p: float) -> float:
    """Nearest-rank percentile of an ascending sequence (0.0 when empty)."""
    n = len(sorted_values)
    if n == 0:
        return 0.0
    rank = max(1, math.ceil(p * n / 100))
    return sorted_values[min(rank, n) - 1]


class PerformanceMonitor:
    """Collects call outcomes and derives metrics and statistics.

    Safe to call from several threads or tasks at once: every mutation
    happens under one lock, and nothing here ever awaits.

    Example:
        monitor = PerformanceMonitor()

        with monitor.track() as call:
            response = send(request)
            if response.from_cache:
                call.mark_cache_hit()

        monitor.stats().p95_response_time
    """

    def __init__(
        self,
        max_history_size: int = 1000,
        thresholds: PerformanceThresholds | None = None,
        logger: logging.Logger | None = None,
    ):
        self.max_history_size = max_history_size
        self.thresholds = thresholds or PerformanceThresholds()
        self.logger = logger or get_logger("performance")

        self._lock = threading.Lock()
        self._samples: deque[_Sample] = deque(maxlen=max_history_size)
        self._total = 0
        self._successful = 0
        self._failed = 0
        self._cache_hits = 0
        self._in_flight = 0
        self._queued = 0
        # cpu_percent is measured between calls on the same Process object
        self._process = psutil.Process()
        self._process.cpu_percent(interval=None)

    def record(self, outcome: CallOutcome) -> None:
        """Record the outcome of one call."""
        sample = _Sample(
            timestamp=time.monotonic(),
            latency_ms=outcome.latency_ms,
            success=outcome.success,
            cache_hit=outcome.cache_hit,
        )
        with self._lock:
            self._total += 1
            if outcome.success:
                self._successful += 1
            else:
                self._failed += 1
            if outcome.cache_hit:
                self._cache_hits += 1
            self._samples.append(sample)

        if outcome.latency_ms > self.thresholds.max_request_time_ms:
            self.logger.warning(
                "Slow request: %.1fms exceeds %.1fms",
                outcome.latency_ms,
                self.thresholds.max_request_time_ms,
            )

    @contextmanager
    def track(self) -> Iterator[RequestTracker]:
        """Time a call and record it on exit.

        An exception escaping the block is recorded as a failure and
        re-raised unchanged.
        """
        tracker = RequestTracker()
        with self._lock:
            self._in_flight += 1
        started = time.perf_counter()
        success = False
        try:
            yield tracker
            success = tracker.success
        finally:
            latency_ms = (time.perf_counter() - started) * 1000
            with self._lock:
                self._in_flight -= 1
            self.record(
                CallOutcome(success=success, latency_ms=latency_ms, cache_hit=tracker.cache_hit)
            )

    @contextmanager
    def queued(self) -> Iterator[None]:
        """Count a caller as waiting in the queue for the duration of the block."""
        with self._lock:
            self._queued += 1
        try:
            yield
        finally:
            with self._lock:
                self._queued -= 1

    def _window(self, window: float | None) -> tuple[int, int, int, int, list[float]]:
        # Caller holds the lock
        if window is None:
            latencies = [s.latency_ms for s in self._samples]
            return self._total, self._successful, self._failed, self._cache_hits, latencies

        cutoff = time.monotonic() - window
        recent = [s for s in self._samples if s.timestamp >= cutoff]
        successful = sum(1 for s in recent if s.success)
        cache_hits = sum(1 for s in recent if s.cache_hit)
        return (
            len(recent),
            successful,
            len(recent) - successful,
            cache_hits,
            [s.latency_ms for s in recent],
        )

    def stats(self, window: float | None = None) -> PerformanceStats:
        """Aggregate statistics.

        Args:
            window: Only consider calls from the last ``window`` seconds.
                Without a window, counts are all-time and response times come
                from the retained samples.
        """
        with self._lock:
            total, successful, failed, _, latencies = self._window(window)
        return _build_stats(total, successful, failed, latencies)

    def snapshot(self, window: float | None = None) -> PerformanceMetrics:
        """Instantaneous metrics, from the same counters as stats()."""
        with self._lock:
            total, successful, failed, cache_hits, latencies = self._window(window)
            in_flight = self._in_flight
            queued = self._queued

        return PerformanceMetrics(
            latency=sum(latencies) / len(latencies) if latencies else 0.0,
            success_rate=successful / total if total else 0.0,
            error_rate=failed / total if total else 0.0,
            cache_hit_rate=cache_hits / total if total else 0.0,
            concurrent_connections=in_flight,
            queue_length=queued,
        )

    def check_thresholds(self, window: float | None = None) -> list[ThresholdViolation]:
        """Return every threshold currently exceeded."""
        stats = self.stats(window)
        violations = []

        if stats.p95_response_time > self.thresholds.max_request_time_ms:
            violations.append(
                ThresholdViolation(
                    "request_time", stats.p95_response_time, self.thresholds.max_request_time_ms
                )
            )

        if stats.total_requests >= self.thresholds.min_samples:
            error_rate = stats.failed_requests / stats.total_requests
            if error_rate > self.thresholds.max_error_rate:
                violations.append(
                    ThresholdViolation("error_rate", error_rate, self.thresholds.max_error_rate)
                )

        return violations

    def should_admit(self, window: float | None = None) -> bool:
        """False while the error-rate threshold is exceeded.

        Only the last ``thresholds.admission_window`` seconds count unless a
        window is given, so a tripped monitor recovers once failures age out.
        """
        if window is None:
            window = self.thresholds.admission_window
        return not any(v.type == "error_rate" for v in self.check_thresholds(window))

    def system_resource_usage(
        self, active_connections: int = 0, idle_connections: int = 0
    ) -> SystemResourceUsage:
        return read_system_resource_usage(
            active_connections, idle_connections, process=self._process
        )

    def reset(self) -> None:
        with self._lock:
            self._samples.clear()
            self._total = 0
            self._successful = 0
            self._failed = 0
            self._cache_hits = 0


def _build_stats(
    total: int, successful: int, failed: int, latencies: list[float]
) -> PerformanceStats:
    if not latencies:
        return PerformanceStats(
            total_requests=total, successful_requests=successful, failed_requests=failed
        )

    ordered = sorted(latencies)
    return PerformanceStats(
        total_requests=total,
        successful_requests=successful,
        failed_requests=failed,
        average_response_time=sum(ordered) / len(ordered),
        min_response_time=ordered[0],
        max_response_time=ordered[-1],
        p95_response_time=percentile(ordered, 95),
        p99_response_time=percentile(ordered, 99),
    )
