"""Reference health check functions."""

from __future__ import annotations

import asyncio
import time
from typing import Any

import httpx
import psutil

from pulsewatch.core.exceptions import HealthCheckFailure
from pulsewatch.health.runner import HealthCheckFn


def disk_space_check(path: str = "/", min_free_pct: float = 10.0) -> HealthCheckFn:
    """Fail when free space on *path* drops below *min_free_pct* percent."""

    async def _check() -> dict[str, Any]:
        usage = await asyncio.to_thread(psutil.disk_usage, path)
        free_pct = 100.0 - usage.percent
        details = {
            "path": path,
            "free_bytes": usage.free,
            "total_bytes": usage.total,
            "free_pct": round(free_pct, 2),
        }
        if free_pct < min_free_pct:
            raise HealthCheckFailure(
                f"free space {free_pct:.1f}% below {min_free_pct}% on {path}"
            )
        return details

    return _check


def http_check(
    url: str,
    expected_status: int = 200,
    client: httpx.AsyncClient | None = None,
) -> HealthCheckFn:
    """Fail unless ``GET url`` answers with *expected_status*.

    The runner's timeout bounds the request; pass a shared *client* to reuse
    connections across runs.
    """

    async def _check() -> dict[str, Any]:
        start = time.perf_counter()
        if client is not None:
            response = await _get(client, url)
        else:
            async with httpx.AsyncClient() as own_client:
                response = await _get(own_client, url)
        elapsed_ms = (time.perf_counter() - start) * 1000.0

        if response.status_code != expected_status:
            raise HealthCheckFailure(
                f"{url} returned {response.status_code}, expected {expected_status}"
            )
        return {
            "url": url,
            "status_code": response.status_code,
            "elapsed_ms": round(elapsed_ms, 2),
        }

    return _check


async def _get(client: httpx.AsyncClient, url: str) -> httpx.Response:
    try:
        return await client.get(url)
    except httpx.HTTPError as exc:
        raise HealthCheckFailure(f"request to {url} failed: {exc}") from exc
