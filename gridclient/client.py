"""
FILE DESCRIPTION: Client facade wiring caches, fetcher, grid backend, throats and tests together.
KEY FUNCTIONS/CLASSES: RenderingGridClient
"""

import asyncio
import dataclasses
import inspect
from functools import partial
from typing import Any, Callable, Dict, List, Optional, Sequence

from gridclient.core import GridClientConfig, logger
from gridclient.transport import RequestsTransport, Transport
from resources.cache import ResourceCache
from resources.fetcher import ResourceFetcher
from resources.resolver import ResourceGraphResolver
from rendering.backend import HttpRenderGridBackend, RenderGridBackend
from rendering.batch import RenderBatchCoordinator
from rendering.dom import DomAssembler
from rendering.models import RenderingInfo
from rendering.poller import RenderStatusPoller
from rendering.request_builder import create_render_requests
from checkwindow.browsers import validate_browsers
from checkwindow.models import GlobalState, OpenEyesConfig
from checkwindow.orchestrator import DisabledVisualTest, RenderServices, VisualTest
from checkwindow.session import SessionWrapper
from checkwindow.throttle import Throat

API_KEY_FAIL_MSG = "API key is missing. Set GRID_API_KEY or pass api_key in the client configuration."
APP_NAME_FAIL_MSG = "App name is missing. Pass app_name when opening a test."


class RenderingGridClient:
    """
    FLOW: Builds the shared resource cache, fetch-dedup table and grid pipeline once ->
    Opens tests that share them, bounded by the open and render throats -> Renders standalone
    screenshots without a diff backend.
    """

    def __init__(self, config: Optional[GridClientConfig] = None, backend: Optional[RenderGridBackend] = None,
                 transport: Optional[Transport] = None,
                 wrapper_factory: Optional[Callable[[Dict[str, Any]], SessionWrapper]] = None,
                 global_state: Optional[GlobalState] = None):
        self.config = config or GridClientConfig()
        cfg = self.config
        logger.debug(f"[CLIENT] concurrency is {cfg.concurrency}")

        self._owns_transport = transport is None
        self._transport = transport or RequestsTransport(timeout=cfg.fetch_resource_timeout)
        self.backend = backend or HttpRenderGridBackend(self._transport, cfg.server_url, cfg.api_key, cfg.proxy)
        self._wrapper_factory = wrapper_factory

        self.resource_cache = ResourceCache()
        self.fetcher = ResourceFetcher(
            self._transport,
            retries=cfg.fetch_retries,
            retry_delay=cfg.fetch_retry_delay,
            timeout=cfg.fetch_resource_timeout,
        )
        self.resolver = ResourceGraphResolver(self.resource_cache, self.fetcher)
        self.assembler = DomAssembler(self.resolver)
        self.batch = RenderBatchCoordinator(self.backend, self.resource_cache, self.fetcher.fetch_cache)
        self.poller = RenderStatusPoller(
            self.backend, interval=cfg.render_status_interval, timeout=cfg.render_status_timeout,
        )

        self.render_throat = Throat(cfg.render_concurrency, name="render")
        self.open_throat = Throat(cfg.open_concurrency, name="open")
        self.global_state = global_state or GlobalState()

        self._rendering_info: Optional["asyncio.Future"] = None
        self._user_agents: Optional["asyncio.Future"] = None
        self._batch_closed = False

    # === CACHED HANDSHAKES ===

    def get_rendering_info(self) -> "asyncio.Future[RenderingInfo]":
        if self._rendering_info is None:
            self._rendering_info = asyncio.ensure_future(self.backend.get_render_info())
        return self._rendering_info

    def get_user_agents(self) -> "asyncio.Future[Dict[str, str]]":
        if self._user_agents is None:
            self._user_agents = asyncio.ensure_future(self.backend.get_user_agents())
            self._user_agents.add_done_callback(self._forget_failed_user_agents)
        return self._user_agents

    def _forget_failed_user_agents(self, future):
        # A failed lookup is retried on the next call instead of being cached.
        if (future.cancelled() or future.exception() is not None) and self._user_agents is future:
            self._user_agents = None

    def _services(self, rendering_info: Optional[RenderingInfo]) -> RenderServices:
        return RenderServices(
            assembler=self.assembler,
            batch=self.batch,
            poller=self.poller,
            render_throat=self.render_throat,
            global_state=self.global_state,
            get_user_agents=self.get_user_agents,
            rendering_info=rendering_info,
            proxy=self.config.proxy,
        )

    # === TESTS ===

    async def open_eyes(self, config: Optional[OpenEyesConfig] = None,
                        wrappers: Optional[Sequence[SessionWrapper]] = None, **options):
        """
        FLOW: Validates api key, app name and browsers before any network activity ->
        Registers the batch-close callback -> Waits for render info -> Starts opening one
        session per browser through the open throat -> Returns the VisualTest.
        """
        config = config or OpenEyesConfig(**options)
        if config.user_agent is None:
            config = dataclasses.replace(config, user_agent=self.config.user_agent)
        ctx = {"context": config.test_name}
        logger.info(f"[CLIENT] opening test with browsers {config.browsers}", extra=ctx)

        if not self.config.api_key:
            raise ValueError(API_KEY_FAIL_MSG)

        if config.is_disabled or self.config.is_disabled:
            logger.debug("[CLIENT] open_eyes: is_disabled=True, skipping checks", extra=ctx)
            return DisabledVisualTest(config.test_name)

        if not config.app_name:
            raise ValueError(APP_NAME_FAIL_MSG)

        browsers = validate_browsers(config.browsers)

        if wrappers is None:
            if self._wrapper_factory is None:
                raise ValueError("no session wrappers given and no wrapper factory configured")
            wrappers = [self._wrapper_factory(browser) for browser in browsers]
        wrappers = list(wrappers)
        if len(wrappers) != len(browsers):
            raise ValueError(f"got {len(wrappers)} session wrappers for {len(browsers)} browsers")

        if not self.global_state.has_close_batch():
            close_batch = wrappers[0].get_close_batch() or self.backend.get_close_batch()
            if close_batch is not None:
                self.global_state.set_close_batch(close_batch)

        rendering_info = await self.get_rendering_info()

        logger.debug("[CLIENT] opening sessions", extra=ctx)
        session_options = config.session_options()
        open_tasks = [
            asyncio.ensure_future(self.open_throat.run(
                partial(wrapper.open, config.app_name, config.test_name, browser, **session_options)
            ))
            for wrapper, browser in zip(wrappers, browsers)
        ]

        controller = self.global_state.make_test_controller(config.test_name, len(wrappers))
        return VisualTest(config, browsers, wrappers, open_tasks, controller, self._services(rendering_info))

    async def take_screenshot(self, snapshot: Any, url: Optional[str] = None,
                              browsers: Any = ({"width": 1024, "height": 768},),
                              size_mode: str = "full-page", selector: Any = None,
                              region: Optional[Dict[str, Any]] = None,
                              script_hooks: Optional[Dict[str, Any]] = None) -> List[Dict[str, Any]]:
        """
        Renders one page (or one page per browser) in every browser and waits for the
        screenshots. Returns [{"render_id", "image_location"}] index-aligned with browsers.
        """
        browsers = validate_browsers(list(browsers) if not isinstance(browsers, dict) else browsers)
        snapshots = list(snapshot) if isinstance(snapshot, (list, tuple)) else [snapshot] * len(browsers)

        rendering_info = await self.get_rendering_info()
        pages = await asyncio.gather(*(self.assembler.assemble(s, referer=url, proxy=self.config.proxy)
                                       for s in snapshots))

        render_requests = create_render_requests(
            url=url,
            pages=pages,
            browsers=browsers,
            rendering_info=rendering_info,
            size_mode=size_mode,
            selector=selector,
            region=region,
            script_hooks=script_hooks,
            send_dom=True,
        )
        render_ids = await self.batch.submit(render_requests)
        results = await asyncio.gather(*(self.poller.wait(render_id) for render_id in render_ids))

        return [
            {"render_id": render_id, "image_location": result.image_location}
            for render_id, result in zip(render_ids, results)
        ]

    async def close_batch(self) -> None:
        if self.config.is_disabled or self.config.dont_close_batches or self._batch_closed:
            return
        close_batch = self.global_state.get_close_batch()
        if close_batch is None:
            return

        self._batch_closed = True
        logger.info("[CLIENT] closing batch")
        result = close_batch()
        if inspect.isawaitable(result):
            await result

    def close(self) -> None:
        if self._owns_transport:
            self._transport.close()
