from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Dict, List, Optional, Sequence

from gridclient.core import logger


class StepState(Enum):
    """Lifecycle of one check-window step for one browser."""
    PENDING = "PENDING"
    RENDER_SUBMITTED = "RENDER_SUBMITTED"
    AWAITING_STATUS = "AWAITING_STATUS"
    STATUS_RECEIVED = "STATUS_RECEIVED"
    AWAITING_PRIOR_STEP = "AWAITING_PRIOR_STEP"
    DISPATCHED = "DISPATCHED"
    ABORTED = "ABORTED"


class TestController:
    """
    Shared cancellation state of one test, read by every concurrent step.
    Invariants: the fatal error is set once and the first one wins; each
    browser index keeps its first error; render ids are append-only.
    """
    __test__ = False

    def __init__(self, test_name: str, num_of_tests: int):
        self.test_name = test_name
        self.num_of_tests = num_of_tests
        self._fatal_error: Optional[BaseException] = None
        self._errors: List[Optional[BaseException]] = [None] * num_of_tests
        self._render_ids: List[List[str]] = [[] for _ in range(num_of_tests)]

    def set_fatal_error(self, error: BaseException) -> None:
        if self._fatal_error is not None:
            return
        logger.error(f"[TEST] fatal error: {error}", extra={"context": self.test_name})
        self._fatal_error = error

    def set_error(self, index: int, error: BaseException) -> None:
        if self._errors[index] is not None:
            return
        logger.error(f"[TEST] error in browser #{index}: {error}", extra={"context": self.test_name})
        self._errors[index] = error

    def add_render_id(self, index: int, render_id: str) -> None:
        self._render_ids[index].append(render_id)

    def should_stop_all_tests(self) -> bool:
        return self._fatal_error is not None

    def should_stop_test(self, index: int) -> bool:
        return self.should_stop_all_tests() or self._errors[index] is not None

    def get_fatal_error(self) -> Optional[BaseException]:
        return self._fatal_error

    def get_error(self, index: int) -> Optional[BaseException]:
        return self._errors[index]

    def get_render_ids(self, index: int) -> List[str]:
        return list(self._render_ids[index])


class GlobalState:
    """
    Process-wide state shared by every test of a client: the number of
    queued renders and the batch-close callback registered by the first test.
    """

    def __init__(self):
        self.queued_renders_count = 0
        self._close_batch: Optional[Callable] = None
        self.test_controllers: List[TestController] = []

    def has_close_batch(self) -> bool:
        return self._close_batch is not None

    def set_close_batch(self, close_batch: Callable) -> None:
        self._close_batch = close_batch

    def get_close_batch(self) -> Optional[Callable]:
        return self._close_batch

    def make_test_controller(self, test_name: str, num_of_tests: int) -> TestController:
        controller = TestController(test_name, num_of_tests)
        self.test_controllers.append(controller)
        return controller


@dataclass
class OpenEyesConfig:
    """Per-test options. Fields left as None were not provided by the caller."""
    test_name: str
    browsers: Sequence[Any] = field(default_factory=lambda: [{"width": 1024, "height": 768}])
    app_name: Optional[str] = None
    display_name: Optional[str] = None
    match_level: Optional[str] = None
    accessibility_settings: Optional[Dict[str, Any]] = None
    use_dom: Optional[bool] = None
    enable_patterns: Optional[bool] = None
    ignore_displacements: Optional[bool] = None
    user_agent: Optional[str] = None
    visual_grid_options: Optional[Dict[str, Any]] = None
    is_disabled: Optional[bool] = None
    batch_id: Optional[str] = None
    batch_name: Optional[str] = None
    properties: Optional[List[Dict[str, str]]] = None
    env_name: Optional[str] = None
    baseline_env_name: Optional[str] = None
    branch_name: Optional[str] = None
    parent_branch_name: Optional[str] = None

    def session_options(self) -> Dict[str, Any]:
        """Options handed to each session wrapper when it is opened."""
        return {k: v for k, v in {
            "display_name": self.display_name,
            "match_level": self.match_level,
            "accessibility_settings": self.accessibility_settings,
            "use_dom": self.use_dom,
            "enable_patterns": self.enable_patterns,
            "ignore_displacements": self.ignore_displacements,
            "batch_id": self.batch_id,
            "batch_name": self.batch_name,
            "properties": self.properties,
            "env_name": self.env_name,
            "baseline_env_name": self.baseline_env_name,
            "branch_name": self.branch_name,
            "parent_branch_name": self.parent_branch_name,
        }.items() if v is not None}


@dataclass
class CheckWindowConfig:
    """
    Per-step options. `snapshot` is one captured page for every browser or a
    list with one page per browser. Region lists accept a single region too.
    """
    snapshot: Any = None
    url: Optional[str] = None
    tag: Optional[str] = None
    target: str = "window"
    fully: bool = True
    size_mode: str = "full-page"
    selector: Any = None
    region: Optional[Dict[str, Any]] = None
    script_hooks: Optional[Dict[str, Any]] = None
    ignore: Any = None
    floating: Any = None
    accessibility: Any = None
    layout: Any = None
    strict: Any = None
    content: Any = None
    send_dom: bool = True
    match_level: Optional[str] = None
    use_dom: Optional[bool] = None
    enable_patterns: Optional[bool] = None
    ignore_displacements: Optional[bool] = None
    visual_grid_options: Optional[Dict[str, Any]] = None

    def resolve_size_mode(self) -> str:
        if self.target == "window" and not self.fully:
            return "viewport"
        if self.target == "region" and self.selector:
            return "full-selector" if self.fully else "selector"
        if self.target == "region" and self.region:
            return "region"
        return self.size_mode

    def snapshots_for(self, count: int) -> List[Any]:
        if isinstance(self.snapshot, (list, tuple)):
            if len(self.snapshot) != count:
                raise ValueError(f"got {len(self.snapshot)} snapshots for {count} browsers")
            return list(self.snapshot)
        return [self.snapshot] * count


@dataclass(frozen=True)
class CheckSettings:
    """Match settings delivered with a check to the diff backend."""
    ignore: List[Dict[str, Any]] = field(default_factory=list)
    floating: List[Dict[str, Any]] = field(default_factory=list)
    layout: List[Dict[str, Any]] = field(default_factory=list)
    strict: List[Dict[str, Any]] = field(default_factory=list)
    content: List[Dict[str, Any]] = field(default_factory=list)
    accessibility: List[Dict[str, Any]] = field(default_factory=list)
    use_dom: Optional[bool] = None
    enable_patterns: Optional[bool] = None
    ignore_displacements: Optional[bool] = None
    render_id: Optional[str] = None
    match_level: Optional[str] = None


@dataclass(frozen=True)
class CheckArgs:
    """Everything a session wrapper needs to record one check."""
    screenshot_url: Optional[str]
    tag: Optional[str]
    dom_url: Optional[str]
    check_settings: CheckSettings
    image_location: Any
    url: Optional[str]
