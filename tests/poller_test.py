import asyncio
import time
import unittest
from unittest.mock import AsyncMock

from rendering.models import RenderStatus, RenderStatusResults
from rendering.poller import (
    RenderCancelledError,
    RenderFailedError,
    RenderStatusError,
    RenderStatusPoller,
    RenderStatusTimeoutError,
)


def status(value, **kwargs):
    return [RenderStatusResults(status=value, **kwargs)]


class TestRenderStatusPoller(unittest.IsolatedAsyncioTestCase):
    def setUp(self):
        self.backend = AsyncMock()

    async def test_polls_until_rendered(self):
        self.backend.get_render_status.side_effect = [
            status(RenderStatus.RENDERING),
            status(None),
            status(RenderStatus.RENDERED, image_location="https://images.test/1.png"),
        ]
        poller = RenderStatusPoller(self.backend, interval=0, timeout=5)

        result = await poller.wait("r1")

        self.assertEqual(result.image_location, "https://images.test/1.png")
        self.assertEqual(self.backend.get_render_status.await_count, 3)
        self.backend.get_render_status.assert_awaited_with(["r1"])

    async def test_pending_and_unknown_statuses_keep_polling(self):
        self.backend.get_render_status.side_effect = [
            [RenderStatusResults.from_json({"status": "pending", "renderId": "r1"})],
            [RenderStatusResults.from_json({"status": "queued-somewhere", "renderId": "r1"})],
            [RenderStatusResults.from_json({"status": "rendered", "renderId": "r1", "imageLocation": "https://img/r1"})],
        ]
        poller = RenderStatusPoller(self.backend, interval=0, timeout=5)

        result = await poller.wait("r1")

        self.assertEqual(result.image_location, "https://img/r1")
        self.assertEqual(self.backend.get_render_status.await_count, 3)
        self.assertEqual(RenderStatus.parse("pending"), RenderStatus.PENDING)
        self.assertIsNone(RenderStatus.parse("queued-somewhere"))

    async def test_grid_error_is_a_render_failure(self):
        self.backend.get_render_status.return_value = status(RenderStatus.ERROR, error="bad dom")
        poller = RenderStatusPoller(self.backend, interval=0, timeout=5)

        with self.assertRaises(RenderFailedError) as cm:
            await poller.wait("r1")
        self.assertEqual(cm.exception.grid_error, "bad dom")
        self.assertEqual(cm.exception.render_id, "r1")

    async def test_times_out(self):
        self.backend.get_render_status.return_value = status(RenderStatus.RENDERING)
        poller = RenderStatusPoller(self.backend, interval=0.01, timeout=0.05)

        with self.assertRaises(RenderStatusTimeoutError):
            await poller.wait("r1")

    async def test_stop_is_seen_without_waiting_for_next_poll(self):
        self.backend.get_render_status.return_value = status(RenderStatus.RENDERING)
        poller = RenderStatusPoller(self.backend, interval=30, timeout=60, stop_check_interval=0.01)
        stop = asyncio.Event()
        asyncio.get_running_loop().call_later(0.05, stop.set)

        started = time.monotonic()
        with self.assertRaises(RenderCancelledError):
            await asyncio.wait_for(poller.wait("r1", stop.is_set), timeout=5)

        self.assertLess(time.monotonic() - started, 5)
        self.assertEqual(self.backend.get_render_status.await_count, 1)

    async def test_stop_before_first_poll(self):
        poller = RenderStatusPoller(self.backend, interval=0, timeout=5)
        with self.assertRaises(RenderCancelledError):
            await poller.wait("r1", lambda: True)
        self.backend.get_render_status.assert_not_awaited()

    def test_outcomes_share_a_base(self):
        for error in (RenderFailedError("r", "x"), RenderStatusTimeoutError("r", 1), RenderCancelledError("r")):
            self.assertIsInstance(error, RenderStatusError)


if __name__ == "__main__":
    unittest.main()
