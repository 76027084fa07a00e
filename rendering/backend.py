import json
from abc import ABC, abstractmethod
from typing import Callable, Dict, List, Optional

from gridclient.core import logger
from gridclient.transport import HttpResponse, Transport
from rendering.models import RenderingInfo, RenderRequest, RenderStatusResults, RunningRender

AUTHORIZATION_ERR_MSG = "Unauthorized access to Eyes server. Please check your API key."
BLOCKED_ACCOUNT_ERR_MSG = "Account is blocked. Please contact Applitools support."
BAD_REQUEST_ERR_MSG = "Bad request sent to Eyes server. Please check your configuration."


class GridRequestError(Exception):
    """Raised when the grid answers with a non-success status."""

    def __init__(self, message: str, response: Optional[HttpResponse] = None):
        super().__init__(message)
        self.response = response


class RenderInfoError(GridRequestError):
    """Raised when the render-info handshake is refused."""
    pass


class RenderGridBackend(ABC):
    """
    Abstraction for the remote rendering grid.
    Contractual Requirements for Implementers:
    - render_batch returns one RunningRender per request, index-aligned.
    - get_render_status returns one RenderStatusResults per id, index-aligned.
    - Transport failures raise; they are never encoded as statuses.
    """

    @abstractmethod
    async def get_render_info(self) -> RenderingInfo:
        pass

    @abstractmethod
    async def render_batch(self, requests: List[RenderRequest]) -> List[RunningRender]:
        pass

    @abstractmethod
    async def put_resource(self, running_render: RunningRender, resource) -> None:
        pass

    @abstractmethod
    async def get_render_status(self, render_ids: List[str]) -> List[RenderStatusResults]:
        pass

    @abstractmethod
    async def get_user_agents(self) -> Dict[str, str]:
        pass

    def get_close_batch(self) -> Optional[Callable]:
        """Callback that closes the current batch, when the backend supports it."""
        return None


class HttpRenderGridBackend(RenderGridBackend):
    """
    FLOW: Obtains service url + access token from the server -> Sends render jobs,
    uploads and status polls to the grid with the X-Auth-Token header.
    """

    def __init__(self, transport: Transport, server_url: str, api_key: Optional[str],
                 proxy: Optional[str] = None):
        self._transport = transport
        self._server_url = server_url.rstrip("/")
        self._api_key = api_key
        self._proxy = proxy
        self._rendering_info: Optional[RenderingInfo] = None

    async def get_render_info(self) -> RenderingInfo:
        resp = await self._transport.request(
            "GET", f"{self._server_url}/api/sessions/renderinfo",
            params={"apiKey": self._api_key}, proxy=self._proxy,
        )
        if resp.status == 401:
            raise RenderInfoError(AUTHORIZATION_ERR_MSG, resp)
        if resp.status == 403:
            raise RenderInfoError(BLOCKED_ACCOUNT_ERR_MSG, resp)
        if resp.status == 400:
            raise RenderInfoError(BAD_REQUEST_ERR_MSG, resp)
        self._check(resp, "render info")
        self._rendering_info = RenderingInfo.from_json(resp.json())
        return self._rendering_info

    async def render_batch(self, requests):
        body = json.dumps([r.to_json() for r in requests]).encode("utf-8")
        resp = await self._grid_request("POST", "/render", body=body, content_type="application/json")
        return [RunningRender.from_json(item) for item in resp.json()]

    async def put_resource(self, running_render, resource):
        logger.debug(f"[GRID] putting resource {resource.url} ({resource.content_hash}) for render {running_render.render_id}")
        await self._grid_request(
            "PUT", f"/sha256/{resource.content_hash}",
            params={"render-id": running_render.render_id},
            body=resource.content,
            content_type=resource.content_type,
        )

    async def get_render_status(self, render_ids):
        body = json.dumps(list(render_ids)).encode("utf-8")
        resp = await self._grid_request("POST", "/render-status", body=body, content_type="application/json")
        return [RenderStatusResults.from_json(item) for item in resp.json()]

    async def get_user_agents(self):
        resp = await self._grid_request("GET", "/user-agents")
        return resp.json() or {}

    async def _grid_request(self, method, path, params=None, body=None, content_type=None):
        if self._rendering_info is None:
            self._rendering_info = await self.get_render_info()
        headers = {"X-Auth-Token": self._rendering_info.access_token, "Accept": "application/json"}
        if content_type:
            headers["Content-Type"] = content_type
        url = f"{self._rendering_info.service_url.rstrip('/')}{path}"
        resp = await self._transport.request(method, url, headers=headers, params=params, body=body, proxy=self._proxy)
        self._check(resp, f"{method} {path}")
        return resp

    @staticmethod
    def _check(resp: HttpResponse, what: str):
        if not resp.ok:
            raise GridRequestError(f"grid request {what} failed with status {resp.status}", resp)
