import asyncio
import time
from typing import Callable, Optional

from gridclient.core import RENDER_STATUS_INTERVAL, RENDER_STATUS_TIMEOUT, logger
from rendering.backend import RenderGridBackend
from rendering.models import RenderStatus, RenderStatusResults

# How often a sleeping poll re-checks the stop predicate (seconds)
STOP_CHECK_INTERVAL = 0.05


class RenderStatusError(Exception):
    """Base for every non-rendered outcome of waiting on a render."""

    def __init__(self, render_id: str, message: str):
        super().__init__(message)
        self.render_id = render_id


class RenderFailedError(RenderStatusError):
    """The grid reported the render as failed."""

    def __init__(self, render_id: str, grid_error: Optional[str] = None):
        super().__init__(render_id, f"failed to render screenshot for {render_id}: {grid_error}")
        self.grid_error = grid_error


class RenderStatusTimeoutError(RenderStatusError):
    """No terminal status within the configured timeout."""

    def __init__(self, render_id: str, timeout: float):
        super().__init__(render_id, f"failed to get render status for {render_id} within {timeout}s")
        self.timeout = timeout


class RenderCancelledError(RenderStatusError):
    """The caller asked to stop waiting."""

    def __init__(self, render_id: str):
        super().__init__(render_id, f"stopped waiting for render {render_id}")


class RenderStatusPoller:
    """
    FLOW: Polls the grid for a render's status -> Sleeps between polls while watching
    the stop predicate -> Returns on RENDERED, raises on ERROR, timeout or stop.
    """

    def __init__(self, backend: RenderGridBackend, interval: float = RENDER_STATUS_INTERVAL,
                 timeout: float = RENDER_STATUS_TIMEOUT, stop_check_interval: float = STOP_CHECK_INTERVAL):
        self._backend = backend
        self._interval = interval
        self._timeout = timeout
        self._stop_check_interval = stop_check_interval

    async def wait(self, render_id: str, should_stop: Callable[[], bool] = lambda: False) -> RenderStatusResults:
        deadline = time.monotonic() + self._timeout

        while True:
            if should_stop():
                logger.info(f"[RENDER] aborting wait for render status of {render_id}")
                raise RenderCancelledError(render_id)

            [result] = await self._backend.get_render_status([render_id])
            status = result.status

            if status == RenderStatus.RENDERED:
                logger.debug(f"[RENDER] render {render_id} is ready")
                return result
            if status == RenderStatus.ERROR:
                raise RenderFailedError(render_id, result.error)

            if time.monotonic() >= deadline:
                raise RenderStatusTimeoutError(render_id, self._timeout)

            await self._sleep(min(self._interval, max(0.0, deadline - time.monotonic())), should_stop)

    async def _sleep(self, seconds: float, should_stop: Callable[[], bool]) -> None:
        wake_at = time.monotonic() + seconds
        while not should_stop():
            remaining = wake_at - time.monotonic()
            if remaining <= 0:
                return
            await asyncio.sleep(min(remaining, self._stop_check_interval))
