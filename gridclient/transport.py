"""
FILE DESCRIPTION: Network transport shared by the resource fetcher and the grid backend.
KEY FUNCTIONS/CLASSES: HttpResponse, Transport, RequestsTransport
"""

import asyncio
import json
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Dict, Optional

import requests

from gridclient.core import FETCH_RESOURCE_TIMEOUT, logger


@dataclass(frozen=True)
class HttpResponse:
    status: int
    headers: Dict[str, str] = field(default_factory=dict)
    body: bytes = b""

    @property
    def ok(self) -> bool:
        return 200 <= self.status < 300

    def header(self, name: str) -> Optional[str]:
        lowered = name.lower()
        for key, value in self.headers.items():
            if key.lower() == lowered:
                return value
        return None

    def json(self) -> Any:
        return json.loads(self.body.decode("utf-8")) if self.body else None


class Transport(ABC):
    """
    Abstraction for the HTTP layer.
    Implementers raise on connection-level failures and return an
    HttpResponse (whatever its status) otherwise.
    """

    @abstractmethod
    async def request(self, method: str, url: str, *, headers: Optional[Dict[str, str]] = None,
                      params: Optional[Dict[str, Any]] = None, body: Optional[bytes] = None,
                      timeout: Optional[float] = None, proxy: Optional[str] = None) -> HttpResponse:
        pass

    async def fetch(self, url: str, options: Optional[Dict[str, Any]] = None) -> HttpResponse:
        options = options or {}
        return await self.request(
            "GET", url,
            headers=options.get("headers"),
            timeout=options.get("timeout"),
            proxy=options.get("proxy"),
        )


class RequestsTransport(Transport):
    """
    FLOW: Builds a requests call with headers/proxy/timeout -> Runs it on a worker
    thread so the event loop keeps serving other fetches -> Returns HttpResponse.
    """

    def __init__(self, session: Optional[requests.Session] = None, verify: bool = True,
                 timeout: float = FETCH_RESOURCE_TIMEOUT):
        self._session = session or requests.Session()
        self._verify = verify
        self._timeout = timeout

    async def request(self, method, url, *, headers=None, params=None, body=None, timeout=None, proxy=None):
        return await asyncio.to_thread(
            self._do_request, method, url, headers, params, body, timeout or self._timeout, proxy,
        )

    def _do_request(self, method, url, headers, params, body, timeout, proxy):
        proxies = {"http": proxy, "https": proxy} if proxy else None
        r = self._session.request(
            method,
            url,
            headers={k: v for k, v in (headers or {}).items() if v is not None},
            params=params,
            data=body,
            timeout=timeout,
            proxies=proxies,
            verify=self._verify,
            allow_redirects=True,
        )
        logger.debug(f"[HTTP] {method} {url} -> {r.status_code}")
        return HttpResponse(status=r.status_code, headers=dict(r.headers), body=r.content)

    def close(self):
        self._session.close()
