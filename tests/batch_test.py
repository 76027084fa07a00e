"""
Verification Scenarios for the render batch "need more resources" protocol
"""

import asyncio
import unittest

from resources.cache import ResourceCache
from resources.models import Resource
from rendering.batch import RenderBatchCoordinator, RenderProtocolError
from rendering.models import RenderInfo, RenderRequest, RenderStatus, RGridDom
from tests.fakes import FakeGridBackend

RENDERING = RenderStatus.RENDERING
NEED_MORE = RenderStatus.NEED_MORE_RESOURCES


def make_request(i, extra_resources=()):
    image = Resource.from_content(f"https://site.test/img{i}.png", "image/png", f"img-{i}".encode())
    css = Resource.from_content(f"https://site.test/s{i}.css", "text/css", f".c{i}{{}}".encode())
    resources = [image, css, *extra_resources]
    dom = RGridDom(cdt=[{"step": i}], resources={r.url: r for r in resources})
    return RenderRequest(url="https://site.test/", dom=dom, resources=resources,
                         render_info=RenderInfo(width=800, height=600))


class TestRenderBatchCoordinator(unittest.IsolatedAsyncioTestCase):
    def setUp(self):
        self.resource_cache = ResourceCache()
        self.fetch_cache = ResourceCache()

    def make_coordinator(self, backend):
        self.backend = backend
        return RenderBatchCoordinator(backend, self.resource_cache, self.fetch_cache)

    async def test_partial_need_more_resources_resubmits_whole_batch_once(self):
        """Scenario: 2 of 5 renders need more resources on the first round."""
        coordinator = self.make_coordinator(FakeGridBackend(batch_statuses=[
            [RENDERING, NEED_MORE, RENDERING, NEED_MORE, RENDERING],
            [RENDERING] * 5,
        ]))
        requests = [make_request(i) for i in range(5)]
        for request in requests:
            for resource in request.resources:
                self.fetch_cache.set_value(resource.url, asyncio.Future())

        render_ids = await coordinator.submit(requests)

        self.assertEqual(len(self.backend.batches), 2)
        self.assertEqual(self.backend.batches[1], requests)
        # Second-round ids, index-aligned with the requests
        self.assertEqual(render_ids, [f"render-{n}" for n in range(6, 11)])

        uploaded_for = {render_id for render_id, _, _ in self.backend.puts}
        self.assertEqual(uploaded_for, {"render-2", "render-4"})
        # dom + 2 resources for each of the two renders
        self.assertEqual(len(self.backend.puts), 6)
        self.assertEqual(requests[1].render_id, "render-2")
        self.assertIsNone(requests[0].render_id)

        for request in requests:
            for resource in request.resources:
                self.assertIn(resource.url, self.resource_cache)
                self.assertNotIn(resource.url, self.fetch_cache)

    async def test_only_parsable_resources_keep_content_in_cache(self):
        coordinator = self.make_coordinator(FakeGridBackend())
        await coordinator.submit([make_request(0)])

        self.assertIsNone(self.resource_cache.get_value("https://site.test/img0.png").content)
        self.assertEqual(self.resource_cache.get_value("https://site.test/s0.css").content, b".c0{}")

    async def test_second_need_more_resources_is_fatal(self):
        coordinator = self.make_coordinator(FakeGridBackend(batch_statuses=[
            [NEED_MORE, RENDERING],
            [RENDERING, NEED_MORE],
            [RENDERING, RENDERING],
        ]))

        with self.assertRaises(RenderProtocolError) as cm:
            await coordinator.submit([make_request(0), make_request(1)])

        self.assertEqual(str(cm.exception), "Unexpected error while taking screenshot")
        self.assertEqual(len(self.backend.batches), 2)

    async def test_no_resubmission_when_nothing_is_missing(self):
        coordinator = self.make_coordinator(FakeGridBackend())
        render_ids = await coordinator.submit([make_request(0), make_request(1)])
        self.assertEqual(render_ids, ["render-1", "render-2"])
        self.assertEqual(len(self.backend.batches), 1)
        self.assertEqual(self.backend.puts, [])

    async def test_shared_resource_is_uploaded_once(self):
        shared = Resource.from_content("https://cdn.test/lib.js", "application/javascript", b"lib()")
        coordinator = self.make_coordinator(FakeGridBackend(batch_statuses=[[NEED_MORE, NEED_MORE]]))

        await coordinator.submit([make_request(0, [shared]), make_request(1, [shared])])

        shared_puts = [p for p in self.backend.puts if p[1] == shared.url]
        self.assertEqual(len(shared_puts), 1)

    async def test_error_resources_are_not_uploaded(self):
        missing = Resource.from_error("https://site.test/missing.png", 404)
        coordinator = self.make_coordinator(FakeGridBackend(batch_statuses=[[NEED_MORE]]))

        await coordinator.submit([make_request(0, [missing])])

        self.assertNotIn(missing.url, [p[1] for p in self.backend.puts])
        self.assertEqual(self.resource_cache.get_value(missing.url).error_status_code, 404)


if __name__ == "__main__":
    unittest.main()
