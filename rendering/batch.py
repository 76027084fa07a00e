"""
FILE DESCRIPTION: Submits render batches and runs the "need more resources" upload-and-retry protocol.
KEY FUNCTIONS/CLASSES: RenderBatchCoordinator, RenderProtocolError
"""

import asyncio
from typing import List

from gridclient.core import logger
from resources.cache import ResourceCache
from resources.extractor import resource_type
from resources.models import to_cache_entry
from rendering.backend import RenderGridBackend
from rendering.models import RenderRequest, RenderStatus, RunningRender


class RenderProtocolError(Exception):
    """The grid kept asking for resources after they were uploaded."""

    def __init__(self, message="Unexpected error while taking screenshot"):
        super().__init__(message)


class RenderBatchCoordinator:
    """
    FLOW: Submits the batch -> Uploads resources for every render that needs more ->
    Refreshes the resource cache from every request -> Resubmits the whole batch exactly
    once if anything needed more -> Fails hard if the grid still needs more.
    """

    def __init__(self, backend: RenderGridBackend, resource_cache: ResourceCache, fetch_cache: ResourceCache):
        self._backend = backend
        self._resource_cache = resource_cache
        self._fetch_cache = fetch_cache
        self._put_cache = ResourceCache()

    async def submit(self, render_requests: List[RenderRequest]) -> List[str]:
        running_renders = await self._backend.render_batch(render_requests)

        await asyncio.gather(*(
            self._handle_running_render(running_render, render_request)
            for running_render, render_request in zip(running_renders, render_requests)
        ))

        if _needs_more_resources(running_renders):
            running_renders = await self._backend.render_batch(render_requests)
            if _needs_more_resources(running_renders):
                logger.error('[RENDER] unexpectedly got "need more resources" on second render request')
                raise RenderProtocolError()

        return [running_render.render_id for running_render in running_renders]

    async def _handle_running_render(self, running_render: RunningRender, render_request: RenderRequest):
        if running_render.render_status == RenderStatus.NEED_MORE_RESOURCES:
            render_request.render_id = running_render.render_id
            await self.put_resources(render_request.dom, running_render, render_request.resources)

        for resource in render_request.resources:
            logger.debug(f"[RENDER] setting resource to cache: {resource.url}")
            self._fetch_cache.remove(resource.url)
            does_require_processing = bool(resource_type(resource.content_type))
            self._resource_cache.set_value(resource.url, to_cache_entry(resource, does_require_processing))

    async def put_resources(self, dom, running_render: RunningRender, resources) -> None:
        to_put = [dom] + [r for r in resources if not r.error_status_code]
        await asyncio.gather(*(self._put_resource(running_render, r) for r in to_put))

    def _put_resource(self, running_render, resource):
        key = resource.content_hash
        in_flight = self._put_cache.get_value(key)
        if in_flight is not None:
            return in_flight

        in_flight = self._put_cache.set_value(
            key, asyncio.ensure_future(self._backend.put_resource(running_render, resource))
        )

        def forget_failed(future):
            if future.cancelled() or future.exception() is not None:
                self._put_cache.remove(key)

        in_flight.add_done_callback(forget_failed)
        return in_flight


def _needs_more_resources(running_renders) -> bool:
    return any(rr.render_status == RenderStatus.NEED_MORE_RESOURCES for rr in running_renders)
