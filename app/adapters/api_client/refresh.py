"""Single-flight token refresh.

Every request that hits an expired token asks the coordinator for a refresh.
While one refresh is running, later askers await that same task instead of
starting another, and all of them receive its outcome. Once the task
finishes the slot is emptied, so the next expiry episode refreshes again.

Waiters resume only after the task has returned, which is after the new
credential was stored; their retries therefore read the new credential.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Awaitable, Callable

logger = logging.getLogger(__name__)


class RefreshCoordinator:
    """Collapse concurrent refresh requests into one call."""

    def __init__(self, refresh: Callable[[], Awaitable[bool]]) -> None:
        self._refresh = refresh
        self._in_flight: asyncio.Task[bool] | None = None

    @property
    def in_progress(self) -> bool:
        return self._in_flight is not None

    async def ensure_refreshed(self) -> bool:
        """Join the running refresh or start one; return its outcome."""

        # No await between the check and the assignment
        task = self._in_flight
        if task is None:
            task = asyncio.ensure_future(self._run())
            self._in_flight = task
        else:
            logger.debug("api_client.refresh_joined")

        # A cancelled waiter must not cancel the refresh other waiters share
        return await asyncio.shield(task)

    async def _run(self) -> bool:
        logger.info("api_client.refresh_started")
        try:
            refreshed = await self._refresh()
        except Exception as exc:
            logger.error(
                "api_client.refresh_error",
                extra={"error_type": type(exc).__name__, "error_message": str(exc)},
                exc_info=True,
            )
            refreshed = False
        finally:
            self._in_flight = None

        logger.info("api_client.refresh_finished", extra={"success": refreshed})
        return refreshed
