from rendering.models import (
    RenderStatus,
    DomSnapshot,
    RGridDom,
    BrowserConfig,
    RenderRequest,
    RunningRender,
    RenderStatusResults,
    RenderingInfo,
    Region,
)
from rendering.backend import RenderGridBackend, HttpRenderGridBackend, GridRequestError, RenderInfoError
from rendering.dom import DomAssembler
from rendering.request_builder import create_render_requests
from rendering.batch import RenderBatchCoordinator, RenderProtocolError
from rendering.poller import (
    RenderStatusPoller,
    RenderStatusError,
    RenderFailedError,
    RenderStatusTimeoutError,
    RenderCancelledError,
)
