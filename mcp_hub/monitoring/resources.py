"""Host process resource readout."""

from __future__ import annotations

import psutil

from ..models import SystemResourceUsage


def read_system_resource_usage(
    active_connections: int = 0,
    idle_connections: int = 0,
    process: psutil.Process | None = None,
) -> SystemResourceUsage:
    """Read cpu and memory of the current process.

    cpu_percent is measured since the previous call on the same process
    object, so the very first reading is 0.0.
    """
    process = process or psutil.Process()
    with process.oneshot():
        memory = process.memory_info()
        memory_percent = process.memory_percent()
        cpu = process.cpu_percent(interval=None)

    return SystemResourceUsage(
        cpu_usage=cpu,
        memory_usage=memory.rss,
        memory_usage_percent=memory_percent,
        active_connections=active_connections,
        idle_connections=idle_connections,
    )
