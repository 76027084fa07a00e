"""
FILE DESCRIPTION: Runs check-window steps of a visual test across every browser of the test.
KEY FUNCTIONS/CLASSES: VisualTest, CheckWindowStep, DisabledVisualTest, RenderServices
"""

import asyncio
import dataclasses
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Dict, List, Optional, Sequence, Set, Tuple

from gridclient.core import logger
from checkwindow.models import (
    CheckArgs,
    CheckSettings,
    CheckWindowConfig,
    GlobalState,
    OpenEyesConfig,
    StepState,
    TestController,
)
from checkwindow.regions import (
    SELECTOR_SIZE_MODES,
    InvalidAccessibilityError,
    calculate_selectors_to_find_regions_for,
    validate_accessibility,
)
from checkwindow.session import SessionWrapper
from checkwindow.throttle import GateTicket, Throat
from rendering.batch import RenderBatchCoordinator
from rendering.dom import DomAssembler
from rendering.models import Region, RenderingInfo, RenderStatusResults
from rendering.poller import RenderStatusPoller
from rendering.request_builder import create_render_requests


class TestAbortedError(Exception):
    __test__ = False

    def __init__(self, test_name: str):
        super().__init__(f"test '{test_name}' was aborted")
        self.test_name = test_name


class VisualTestError(Exception):
    """One or more browsers of a test failed."""

    def __init__(self, test_name: str, errors: Sequence[Tuple[int, BaseException]]):
        details = "; ".join(f"browser #{index}: {error}" for index, error in errors)
        super().__init__(f"test '{test_name}' failed in {len(errors)} browser(s): {details}")
        self.test_name = test_name
        self.errors = list(errors)


@dataclass
class RenderServices:
    """Client-wide collaborators shared by every test and step."""
    assembler: DomAssembler
    batch: RenderBatchCoordinator
    poller: RenderStatusPoller
    render_throat: Throat
    global_state: GlobalState
    get_user_agents: Callable[[], Awaitable[Dict[str, str]]]
    rendering_info: Optional[RenderingInfo] = None
    proxy: Optional[str] = None


class CheckWindowStep:
    """
    FLOW: Assembles every browser's page -> Submits one render batch through the render
    throat -> Holds one gate ticket per browser until its screenshot is available ->
    Per browser: waits for rendered status, then for the previous step's delivery, then for
    the session to be open -> Delivers the check to the session wrapper.
    Invariants:
    - Both stop signals are checked at every state boundary.
    - A browser's delivery never overtakes the previous step's delivery for that browser.
    """

    def __init__(self, test: "VisualTest", step_number: int, config: CheckWindowConfig):
        self._test = test
        self.step_number = step_number
        self.config = config
        self.size_mode = config.resolve_size_mode()
        self.plan = calculate_selectors_to_find_regions_for(
            size_mode=self.size_mode,
            selector=config.selector,
            ignore=config.ignore,
            layout=config.layout,
            strict=config.strict,
            content=config.content,
            accessibility=config.accessibility,
            floating=config.floating,
        )
        self.states: List[StepState] = [StepState.PENDING] * len(test.browsers)
        self.tasks: List["asyncio.Task"] = []
        self._snapshots = config.snapshots_for(len(test.browsers))
        self._render_task: Optional["asyncio.Task"] = None
        self._tickets: Optional[List[GateTicket]] = None
        self._released: Set[int] = set()

    @property
    def _ctx(self):
        return {"context": self._test.test_name}

    def start(self, prev_tasks: Sequence[Optional["asyncio.Task"]]) -> List["asyncio.Task"]:
        self._render_task = asyncio.ensure_future(self._render_outcome())
        self.tasks = [
            asyncio.ensure_future(self._guarded_job(prev_tasks[index], index))
            for index in range(len(self._test.browsers))
        ]
        return self.tasks

    # === RENDER PHASE (shared by every browser of the step) ===

    async def _render_outcome(self) -> Tuple[Optional[BaseException], Optional[List[str]]]:
        try:
            return None, await self._start_render()
        except Exception as e:
            return e, None

    async def _start_render(self) -> Optional[List[str]]:
        test = self._test
        services = test.services

        if test.controller.should_stop_all_tests():
            logger.info("[CHECK] aborting render before assembling resources", extra=self._ctx)
            return None

        pages = await asyncio.gather(*(
            services.assembler.assemble(
                snapshot,
                user_agent=test.config.user_agent,
                referer=self.config.url,
                proxy=services.proxy,
            )
            for snapshot in self._snapshots
        ))

        if test.controller.should_stop_all_tests():
            logger.info("[CHECK] aborting render after assembling resources", extra=self._ctx)
            return None

        render_requests = create_render_requests(
            url=self.config.url,
            pages=pages,
            browsers=test.browsers,
            rendering_info=services.rendering_info,
            size_mode=self.size_mode,
            selector=self.config.selector,
            region=self.config.region,
            selectors_to_find_regions_for=self.plan.selectors_to_find_regions_for,
            script_hooks=self.config.script_hooks,
            send_dom=self.config.send_dom,
            visual_grid_options=self.config.visual_grid_options,
        )

        services.global_state.queued_renders_count += 1
        try:
            batch_task = asyncio.ensure_future(services.render_throat.run(
                lambda: self._submit(render_requests)
            ))
            self._create_tickets(len(render_requests))
            return await batch_task
        finally:
            services.global_state.queued_renders_count -= 1

    async def _submit(self, render_requests):
        logger.info(f"[CHECK] starting to render step #{self.step_number}", extra=self._ctx)
        return await self._test.services.batch.submit(render_requests)

    def _create_tickets(self, count: int) -> None:
        self._tickets = [self._test.services.render_throat.ticket() for _ in range(count)]
        for index in self._released:
            self._tickets[index].release()

    def _release_ticket(self, index: int) -> None:
        self._released.add(index)
        if self._tickets is not None:
            self._tickets[index].release()

    # === PER-BROWSER JOB ===

    async def _guarded_job(self, prev_task: Optional["asyncio.Task"], index: int) -> Any:
        try:
            return await self._run_job(prev_task, index)
        except Exception as e:
            self.states[index] = StepState.ABORTED
            self._test.controller.set_error(index, e)
            return None
        finally:
            self._release_ticket(index)

    def _advance(self, index: int, state: StepState) -> None:
        logger.debug(
            f"[CHECK] step #{self.step_number} browser #{index}: {self.states[index].value} -> {state.value}",
            extra=self._ctx,
        )
        self.states[index] = state

    def _abandon(self, index: int, reason: str) -> None:
        logger.info(f"[CHECK] aborting step #{self.step_number} browser #{index} {reason}", extra=self._ctx)
        self.states[index] = StepState.ABORTED
        self._release_ticket(index)

    async def _fail_test(self, index: int, error: BaseException, phase: str) -> None:
        test = self._test
        logger.warning(f"[CHECK] got {phase} error, aborting tests: {error}", extra=self._ctx)
        test.controller.set_fatal_error(error)
        self._abandon(index, f"after {phase} error")
        try:
            user_agents = await test.services.get_user_agents()
        except Exception as e:
            logger.warning(f"[CHECK] could not get user agents to record the environment: {e!r}", extra=self._ctx)
        else:
            test.wrappers[index].set_inferred_environment(
                f"useragent:{user_agents.get(test.browsers[index].get('name'))}"
            )
        finally:
            await asyncio.wait([test.open_tasks[index]])

    async def _run_job(self, prev_task: Optional["asyncio.Task"], index: int) -> Any:
        test = self._test
        controller = test.controller
        wrapper = test.wrappers[index]

        if controller.should_stop_test(index):
            self._abandon(index, "before render was requested")
            return None
        self._advance(index, StepState.RENDER_SUBMITTED)

        render_error, render_ids = await self._render_task

        if controller.should_stop_test(index):
            self._abandon(index, "after render request completed")
            return None

        if render_error is not None:
            await self._fail_test(index, render_error, "render")
            return None

        render_id = render_ids[index]
        controller.add_render_id(index, render_id)
        self._advance(index, StepState.AWAITING_STATUS)
        logger.debug(
            f"[CHECK] render request complete for {render_id}. step #{self.step_number} "
            f"tag={self.config.tag} target={self.config.target} browser={test.browsers[index]}",
            extra=self._ctx,
        )

        status_error = None
        result: Optional[RenderStatusResults] = None
        try:
            result = await test.services.poller.wait(render_id, lambda: controller.should_stop_test(index))
        except Exception as e:
            status_error = e

        if controller.should_stop_test(index):
            self._abandon(index, "after render status finished")
            return None

        if status_error is not None:
            await self._fail_test(index, status_error, "render status")
            return None

        self._advance(index, StepState.STATUS_RECEIVED)
        if result.image_location:
            logger.debug(f"[CHECK] screenshot available for {render_id} at {result.image_location}", extra=self._ctx)
        else:
            logger.info(f"[CHECK] screenshot NOT available for {render_id}", extra=self._ctx)

        self._release_ticket(index)

        wrapper.set_inferred_environment(f"useragent:{result.user_agent}")
        if result.device_size:
            wrapper.set_viewport_size(result.device_size)

        self._advance(index, StepState.AWAITING_PRIOR_STEP)
        if prev_task is not None:
            await prev_task

        if controller.should_stop_test(index):
            self._abandon(index, f"for {render_id} because a previous step failed")
            return None

        image_location_region, regions = self.plan.match_regions(result.selector_regions)
        image_location = None
        if self.size_mode in SELECTOR_SIZE_MODES and image_location_region:
            image_location = image_location_region.location
        elif self.size_mode == "region" and self.config.region:
            image_location = Region.from_json(self.config.region).location

        check_settings = CheckSettings(
            **regions,
            use_dom=self.config.use_dom,
            enable_patterns=self.config.enable_patterns,
            ignore_displacements=self.config.ignore_displacements,
            render_id=render_id,
            match_level=self.config.match_level,
        )

        await test.open_tasks[index]

        if controller.should_stop_test(index):
            self._abandon(index, "after waiting for the session to open")
            return None

        self._advance(index, StepState.DISPATCHED)
        return await wrapper.check_window(CheckArgs(
            screenshot_url=result.image_location,
            tag=self.config.tag,
            dom_url=result.dom_location,
            check_settings=check_settings,
            image_location=image_location,
            url=self.config.url,
        ))


class VisualTest:
    """
    One open test across several browsers. check_window() is fire-and-forget;
    failures surface through the controller and from close().
    """
    __test__ = False

    def __init__(self, config: OpenEyesConfig, browsers: List[Dict[str, Any]], wrappers: List[SessionWrapper],
                 open_tasks: List["asyncio.Task"], controller: TestController, services: RenderServices):
        self.config = config
        self.test_name = config.test_name
        self.browsers = browsers
        self.wrappers = wrappers
        self.open_tasks = open_tasks
        self.controller = controller
        self.services = services
        self.steps: List[CheckWindowStep] = []
        self._step_tasks: List[Optional["asyncio.Task"]] = [None] * len(wrappers)

    @property
    def _ctx(self):
        return {"context": self.test_name}

    def check_window(self, config: Optional[CheckWindowConfig] = None, **options) -> None:
        config = config or CheckWindowConfig(**options)
        config = dataclasses.replace(
            config,
            match_level=config.match_level if config.match_level is not None else self.config.match_level,
            visual_grid_options=(config.visual_grid_options if config.visual_grid_options is not None
                                 else self.config.visual_grid_options),
        )

        accessibility_error = validate_accessibility(config.accessibility)
        if accessibility_error:
            error = InvalidAccessibilityError(f"Invalid accessibility:\n{accessibility_error}")
            self.controller.set_fatal_error(error)
            raise error

        step_number = len(self.steps) + 1
        logger.info(f"[CHECK] running check window step #{step_number}", extra=self._ctx)
        if self.controller.should_stop_all_tests():
            logger.info("[CHECK] aborting check window synchronously", extra=self._ctx)
            return

        step = CheckWindowStep(self, step_number, config)
        self.steps.append(step)
        self._step_tasks = step.start(self._step_tasks)

    async def _drain(self) -> None:
        pending = [t for t in self._step_tasks if t is not None]
        if pending:
            await asyncio.gather(*pending)

    async def close(self, throw_ex: bool = True) -> List[Any]:
        """
        FLOW: Drains every step -> Waits for the sessions to open -> Aborts the sessions of
        failed browsers and closes the others -> Raises VisualTestError if anything failed.
        """
        await self._drain()
        opened = await asyncio.gather(*self.open_tasks, return_exceptions=True)

        fatal = self.controller.get_fatal_error()
        errors: List[Tuple[int, BaseException]] = []
        closing = []
        for index, wrapper in enumerate(self.wrappers):
            error = fatal or self.controller.get_error(index)
            if error is None and isinstance(opened[index], Exception):
                error = opened[index]
            if error is not None:
                errors.append((index, error))
                closing.append(wrapper.abort())
            else:
                closing.append(wrapper.close(throw_ex))

        outcomes = await asyncio.gather(*closing, return_exceptions=True)

        failed = dict(errors)
        results = []
        for index, outcome in enumerate(outcomes):
            if index in failed:
                results.append(failed[index])
            elif isinstance(outcome, Exception):
                errors.append((index, outcome))
                results.append(outcome)
            else:
                results.append(outcome)

        if errors:
            logger.warning(f"[CHECK] test finished with {len(errors)} failed browser(s)", extra=self._ctx)
            if throw_ex:
                raise VisualTestError(self.test_name, sorted(errors, key=lambda e: e[0]))
        else:
            logger.info("[CHECK] test closed", extra=self._ctx)
        return results

    async def abort(self) -> List[Any]:
        self.controller.set_fatal_error(TestAbortedError(self.test_name))
        await self._drain()
        if self.open_tasks:
            await asyncio.wait(self.open_tasks)
        return await asyncio.gather(*(wrapper.abort() for wrapper in self.wrappers))


class DisabledVisualTest:
    """Stand-in returned when the client is disabled; every call is a logged no-op."""

    def __init__(self, test_name: str):
        self.test_name = test_name

    def check_window(self, config=None, **options) -> None:
        logger.debug("[CHECK] check_window: is_disabled=True, skipping checks", extra={"context": self.test_name})

    async def close(self, throw_ex: bool = True) -> List[Any]:
        logger.debug("[CHECK] close: is_disabled=True, skipping checks", extra={"context": self.test_name})
        return []

    async def abort(self) -> None:
        logger.debug("[CHECK] abort: is_disabled=True, skipping checks", extra={"context": self.test_name})
