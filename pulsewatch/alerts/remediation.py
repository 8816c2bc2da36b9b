"""RemediationDispatcher — runs the corrective action registered for an alert."""

from __future__ import annotations

import asyncio
import inspect
from collections.abc import Awaitable, Callable
from typing import Any

import structlog

from pulsewatch.core.exceptions import RemediationError

logger = structlog.stdlib.get_logger()

# Zero-argument callback, sync or async. Return value is ignored.
RemediationAction = Callable[[], Awaitable[Any] | Any]


class RemediationDispatcher:
    """Maps alert names to remediation actions and executes them in isolation.

    - At most one action per alert name; the last registration wins.
    - Dispatching a name with no action is a no-op.
    - Async actions are awaited under ``timeout_secs``; sync actions run in a
      worker thread under the same timeout.
    - Errors and timeouts are logged and never propagated.
    """

    def __init__(self, timeout_secs: float = 10.0) -> None:
        self._timeout_secs = timeout_secs
        self._actions: dict[str, RemediationAction] = {}
        self._success_count = 0
        self._failure_count = 0

    @property
    def success_count(self) -> int:
        return self._success_count

    @property
    def failure_count(self) -> int:
        return self._failure_count

    def register(self, alert_name: str, action: RemediationAction) -> None:
        if alert_name in self._actions:
            logger.info("remediation_replaced", alert_name=alert_name)
        self._actions[alert_name] = action

    def unregister(self, alert_name: str) -> None:
        self._actions.pop(alert_name, None)

    def has(self, alert_name: str) -> bool:
        return alert_name in self._actions

    @property
    def registered(self) -> list[str]:
        return list(self._actions)

    async def dispatch(
        self,
        alert_name: str,
        context: dict[str, Any] | None = None,
    ) -> bool:
        """Run the action for *alert_name*. Returns True if one ran and succeeded."""
        action = self._actions.get(alert_name)
        if action is None:
            return False

        try:
            await self._run(alert_name, action)
        except RemediationError as exc:
            self._failure_count += 1
            logger.error(
                "remediation_failed",
                alert_name=alert_name,
                error=str(exc),
                cause=repr(exc.__cause__) if exc.__cause__ else None,
                alert_id=(context or {}).get("alert_id"),
            )
            return False

        self._success_count += 1
        logger.info(
            "remediation_executed",
            alert_name=alert_name,
            alert_id=(context or {}).get("alert_id"),
        )
        return True

    async def _run(self, alert_name: str, action: RemediationAction) -> None:
        try:
            if inspect.iscoroutinefunction(action):
                await asyncio.wait_for(action(), self._timeout_secs)
                return
            result = await asyncio.wait_for(
                asyncio.to_thread(action), self._timeout_secs,
            )
            if inspect.isawaitable(result):
                await asyncio.wait_for(result, self._timeout_secs)
        except TimeoutError as exc:
            raise RemediationError(
                f"remediation for {alert_name!r} timed out after {self._timeout_secs}s"
            ) from exc
        except Exception as exc:
            raise RemediationError(f"remediation for {alert_name!r} raised: {exc}") from exc
