"""Call telemetry and host resource readout."""

from .performance import (
    PerformanceMonitor,
    PerformanceThresholds,
    RequestTracker,
    ThresholdViolation,
    percentile,
)
from .resources import read_system_resource_usage

__all__ = [
    "PerformanceMonitor",
    "PerformanceThresholds",
    "RequestTracker",
    "ThresholdViolation",
    "percentile",
    "read_system_resource_usage",
]
