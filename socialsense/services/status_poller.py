"""
Status Poller - SocialSense Client Core
socialsense/services/status_poller.py

Keeps a view's copy of a tracked resource fresh while the backend is still
working on it.

Loop contract:
  - only starts when the last known status is "processing"
  - sleeps one interval, fetches (silently), hands the new state to on_update
  - stops as soon as the status leaves "processing"
  - a failed fetch is logged; the last good state stands and the loop goes on
  - the next fetch is only armed after the previous one settles, so there is
    never more than one request in flight per resource
"""

import asyncio
from typing import Any, Awaitable, Callable, Optional

import structlog

from socialsense.config import settings
from socialsense.models.enumerations import ResourceStatus

logger = structlog.get_logger(__name__)

FetchFn = Callable[..., Awaitable[Any]]
UpdateFn = Callable[[Any], None]
SleepFn = Callable[[float], Awaitable[None]]


def _status_of(state: Any) -> Optional[ResourceStatus]:
    status = state.get("status") if isinstance(state, dict) else getattr(state, "status", None)
    if status is None:
        return None
    try:
        return ResourceStatus(status)
    except ValueError:
        return None


class StatusPoller:
    """Background refresher for one tracked resource."""

    def __init__(
        self,
        interval: Optional[float] = None,
        sleep: SleepFn = asyncio.sleep,
    ):
        self.interval = interval if interval is not None else settings.POLL_INTERVAL_SECONDS
        self._sleep = sleep
        self._task: Optional[asyncio.Task] = None
        self._resource_id: Optional[str] = None
        self._stopped = True

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(
        self,
        resource_id: str,
        last_status: Any,
        fetch_fn: FetchFn,
        on_update: UpdateFn,
    ) -> bool:
        """
        Begin polling ``resource_id`` if its last known status is processing.

        Args:
            resource_id: Backend id passed to ``fetch_fn``
            last_status: Last known status (enum or raw string)
            fetch_fn: ``async fetch_fn(resource_id, silent=True)``
            on_update: Called with every successfully fetched state

        Returns:
            True if a poll loop was armed, False if this was a no-op.
        """
        try:
            status = ResourceStatus(last_status)
        except ValueError:
            status = None
        if status != ResourceStatus.PROCESSING:
            return False

        # never two loops for the same owner
        self.stop()
        self._resource_id = resource_id
        self._stopped = False
        self._task = asyncio.get_running_loop().create_task(
            self._run(resource_id, fetch_fn, on_update),
            name=f"status-poller:{resource_id}",
        )
        logger.debug("poller_started", resource_id=resource_id, interval=self.interval)
        return True

    def stop(self) -> None:
        """Cancel the loop. No on_update call is delivered after this returns."""
        self._stopped = True
        if self._task is not None and not self._task.done():
            self._task.cancel()
            logger.debug("poller_stopped", resource_id=self._resource_id)
        self._task = None

    async def wait(self) -> None:
        """Wait for the current loop to finish on its own (terminal status)."""
        if self._task is not None:
            try:
                await self._task
            except asyncio.CancelledError:
                pass

    async def __aenter__(self) -> "StatusPoller":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        self.stop()

    async def _run(self, resource_id: str, fetch_fn: FetchFn, on_update: UpdateFn) -> None:
        while not self._stopped:
            await self._sleep(self.interval)
            if self._stopped:
                return

            try:
                state = await fetch_fn(resource_id, silent=True)
            except asyncio.CancelledError:
                raise
            except Exception as e:
                logger.warning("poll_fetch_failed", resource_id=resource_id, error=str(e))
                continue

            if self._stopped:
                return
            on_update(state)

            status = _status_of(state)
            if status != ResourceStatus.PROCESSING:
                logger.info(
                    "poller_finished",
                    resource_id=resource_id,
                    status=status.value if status else None,
                )
                self._stopped = True
                return
