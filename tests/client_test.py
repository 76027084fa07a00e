import asyncio
import unittest
from unittest.mock import AsyncMock, MagicMock

from gridclient.client import API_KEY_FAIL_MSG, APP_NAME_FAIL_MSG, RenderingGridClient
from gridclient.core import GridClientConfig
from checkwindow.browsers import BrowserConfigError
from checkwindow.models import OpenEyesConfig
from rendering.backend import GridRequestError
from tests.fakes import FakeGridBackend, FakeSessionWrapper, FakeTransport, ok

SNAPSHOT = {"cdt": [{"nodeType": 9, "childNodeIndexes": []}], "resourceUrls": ["https://site.test/a.png"]}


def make_client(backend=None, transport=None, **config):
    config.setdefault("api_key", "test-key")
    config.setdefault("render_status_interval", 0.01)
    return RenderingGridClient(
        config=GridClientConfig(**config),
        backend=backend or FakeGridBackend(),
        transport=transport or FakeTransport(),
    )


class TestGridClientConfig(unittest.TestCase):
    def test_concurrency_must_be_numeric(self):
        with self.assertRaises(ValueError):
            GridClientConfig(concurrency="abc")

    def test_render_concurrency_is_derived(self):
        config = GridClientConfig(concurrency="2", render_concurrency_factor=5)
        self.assertEqual(config.open_concurrency, 2)
        self.assertEqual(config.render_concurrency, 10)

    def test_unbounded_by_default(self):
        config = GridClientConfig(concurrency=None)
        self.assertIsNone(config.open_concurrency)
        self.assertIsNone(config.render_concurrency)


class TestTakeScreenshot(unittest.IsolatedAsyncioTestCase):
    async def test_screenshot_in_every_browser(self):
        backend = FakeGridBackend()
        transport = FakeTransport({"https://site.test/a.png": ok(b"png", "image/png")})
        client = make_client(backend, transport)

        results = await client.take_screenshot(
            SNAPSHOT, url="https://site.test/",
            browsers=[{"name": "chrome", "width": 800, "height": 600}, {"name": "firefox", "width": 800, "height": 600}],
        )

        self.assertEqual(results, [
            {"render_id": "render-1", "image_location": "https://images.test/render-1.png"},
            {"render_id": "render-2", "image_location": "https://images.test/render-2.png"},
        ])
        self.assertEqual(transport.count("https://site.test/a.png"), 1)
        self.assertEqual([r.browser_name for r in backend.batches[0]], ["chrome", "firefox"])

        await client.take_screenshot(SNAPSHOT, url="https://site.test/")
        self.assertEqual(backend.render_info_calls, 1)
        self.assertEqual(transport.count("https://site.test/a.png"), 1)

    async def test_invalid_browser_fails_before_any_request(self):
        backend = FakeGridBackend()
        client = make_client(backend)
        with self.assertRaises(BrowserConfigError):
            await client.take_screenshot(SNAPSHOT, browsers=[{"name": "netscape", "width": 1, "height": 1}])
        self.assertEqual(backend.render_info_calls, 0)
        self.assertEqual(backend.batches, [])


class TestOpenEyes(unittest.IsolatedAsyncioTestCase):
    async def test_missing_api_key(self):
        client = make_client(api_key=None)
        with self.assertRaises(ValueError) as cm:
            await client.open_eyes(OpenEyesConfig(test_name="t", app_name="app"), wrappers=[FakeSessionWrapper()])
        self.assertEqual(str(cm.exception), API_KEY_FAIL_MSG)

    async def test_missing_app_name(self):
        client = make_client()
        with self.assertRaises(ValueError) as cm:
            await client.open_eyes(OpenEyesConfig(test_name="t"), wrappers=[FakeSessionWrapper()])
        self.assertEqual(str(cm.exception), APP_NAME_FAIL_MSG)

    async def test_invalid_browser_fails_before_any_request(self):
        backend = FakeGridBackend()
        client = make_client(backend)
        with self.assertRaises(BrowserConfigError):
            await client.open_eyes(
                OpenEyesConfig(test_name="t", app_name="app", browsers=[{"name": "firefox", "width": 800}]),
                wrappers=[FakeSessionWrapper()],
            )
        self.assertEqual(backend.render_info_calls, 0)

    async def test_wrapper_count_must_match_browsers(self):
        client = make_client()
        with self.assertRaises(ValueError):
            await client.open_eyes(OpenEyesConfig(test_name="t", app_name="app"),
                                   wrappers=[FakeSessionWrapper(), FakeSessionWrapper()])

    async def test_wrappers_from_factory(self):
        created = []

        def factory(browser):
            wrapper = FakeSessionWrapper(browser.get("name", "default"))
            created.append(wrapper)
            return wrapper

        client = RenderingGridClient(
            config=GridClientConfig(api_key="test-key", render_status_interval=0.01),
            backend=FakeGridBackend(), transport=FakeTransport(), wrapper_factory=factory,
        )
        test = await client.open_eyes(test_name="t", app_name="app",
                                      browsers=[{"name": "chrome", "width": 800, "height": 600}])
        await test.close()

        self.assertEqual([w.name for w in created], ["chrome"])
        self.assertTrue(created[0].closed)

    async def test_user_agents_are_fetched_once(self):
        backend = FakeGridBackend()
        client = make_client(backend)
        first = await client.get_user_agents()
        second = await client.get_user_agents()
        self.assertEqual(first, second)
        self.assertEqual(backend.user_agent_calls, 1)

    async def test_failed_user_agent_lookup_is_not_cached(self):
        backend = FakeGridBackend(user_agents_error=GridRequestError("grid down"))
        client = make_client(backend)

        with self.assertRaises(GridRequestError):
            await client.get_user_agents()
        await asyncio.sleep(0)

        backend.user_agents_error = None
        self.assertEqual(await client.get_user_agents(), {"chrome": "UA-chrome", "firefox": "UA-firefox"})
        self.assertEqual(backend.user_agent_calls, 2)


class TestCloseBatch(unittest.IsolatedAsyncioTestCase):
    async def open_with_close_batch(self, close_batch, **config):
        client = make_client(**config)
        test = await client.open_eyes(OpenEyesConfig(test_name="t", app_name="app"),
                                      wrappers=[FakeSessionWrapper(close_batch=close_batch)])
        await test.close()
        return client

    async def test_close_batch_runs_once(self):
        close_batch = AsyncMock()
        client = await self.open_with_close_batch(close_batch)

        await client.close_batch()
        await client.close_batch()

        close_batch.assert_awaited_once()

    async def test_dont_close_batches(self):
        close_batch = MagicMock()
        client = await self.open_with_close_batch(close_batch, dont_close_batches=True)
        await client.close_batch()
        close_batch.assert_not_called()

    async def test_nothing_registered(self):
        client = make_client()
        await client.close_batch()
        self.assertIsNone(client.global_state.get_close_batch())


class TestClientClose(unittest.TestCase):
    def test_injected_transport_is_left_open(self):
        transport = MagicMock()
        client = make_client(transport=transport)
        client.close()
        transport.close.assert_not_called()


if __name__ == "__main__":
    unittest.main()
