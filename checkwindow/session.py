from abc import ABC, abstractmethod
from typing import Any, Dict, Optional

from checkwindow.models import CheckArgs
from rendering.models import RectangleSize


class SessionWrapper(ABC):
    """
    One diff-backend session, i.e. one test running in one browser.
    Contractual Requirements for Implementers:
    - open() MUST complete before check_window() is called for the same session.
    - check_window() calls arrive in step order.
    - close() and abort() are called at most once, after every check.
    """

    @abstractmethod
    async def open(self, app_name: Optional[str], test_name: str, browser: Dict[str, Any],
                   **options) -> Any:
        pass

    @abstractmethod
    async def check_window(self, check_args: CheckArgs) -> Any:
        pass

    @abstractmethod
    def set_inferred_environment(self, inferred: str) -> None:
        pass

    @abstractmethod
    def set_viewport_size(self, size: RectangleSize) -> None:
        pass

    @abstractmethod
    async def close(self, throw_ex: bool = True) -> Any:
        """Returns the session's test results."""
        pass

    @abstractmethod
    async def abort(self) -> Any:
        pass

    def get_close_batch(self):
        """Callable that closes the batch this session reports into, if the backend has one."""
        return None
