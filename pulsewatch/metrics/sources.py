"""Reference metric sources for the current Python process.

These cover the process-level counters the engine can read without any
external instrumentation. Application and business sources are expected
to be supplied by the host application.
"""

from __future__ import annotations

import asyncio
import gc
import sys
import time
from typing import Any

import psutil


class ProcessSource:
    """System-category source: process memory, CPU utilisation and load.

    ``memory.utilization`` is the process RSS as a percentage of physical
    memory. ``cpu.utilization`` is measured between consecutive calls, so
    the first call reports 0.
    """

    def __init__(self, process: psutil.Process | None = None) -> None:
        self._process = process or psutil.Process()

    def __call__(self) -> dict[str, Any]:
        proc = self._process
        with proc.oneshot():
            mem = proc.memory_info()
            mem_pct = proc.memory_percent()
            cpu_times = proc.cpu_times()
            cpu_pct = proc.cpu_percent(interval=None)
            created = proc.create_time()
            threads = proc.num_threads()
        host_mem = psutil.virtual_memory()

        try:
            load_1m, load_5m, load_15m = psutil.getloadavg()
        except (AttributeError, OSError):
            load_1m = load_5m = load_15m = 0.0

        return {
            "memory": {
                "rss_bytes": mem.rss,
                "vms_bytes": mem.vms,
                "total_bytes": host_mem.total,
                "utilization": round(mem_pct, 3),
                "host_utilization": host_mem.percent,
            },
            "cpu": {
                "user": cpu_times.user,
                "system": cpu_times.system,
                "utilization": round(cpu_pct, 3),
                "host_utilization": psutil.cpu_percent(interval=None),
            },
            "load": {"1m": load_1m, "5m": load_5m, "15m": load_15m},
            "process": {
                "pid": proc.pid,
                "threads": threads,
                "uptime_secs": max(time.time() - created, 0.0),
                "python": sys.version.split()[0],
                "platform": sys.platform,
            },
        }


def gc_source() -> dict[str, Any]:
    """Performance-category source: garbage collector counters."""
    stats = gc.get_stats()
    return {
        "gc": {
            "counts": list(gc.get_count()),
            "collections": sum(s.get("collections", 0) for s in stats),
            "collected": sum(s.get("collected", 0) for s in stats),
            "uncollectable": sum(s.get("uncollectable", 0) for s in stats),
        },
    }


async def event_loop_lag_source() -> dict[str, Any]:
    """Performance-category source: scheduling lag of the running event loop."""
    loop = asyncio.get_running_loop()
    started = loop.time()
    await asyncio.sleep(0)
    lag_ms = (loop.time() - started) * 1000.0
    return {
        "event_loop": {
            "lag_ms": round(lag_ms, 3),
            "tasks": len(asyncio.all_tasks(loop)),
        },
    }
