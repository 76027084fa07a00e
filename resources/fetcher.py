"""
FILE DESCRIPTION: Deduplicating, retrying resource fetch layer.
KEY FUNCTIONS/CLASSES: ResourceFetcher, fetch_options, ResourceFetchError
"""

import asyncio
import re
from typing import Any, Dict, Optional

import requests

from gridclient.core import FETCH_RESOURCE_TIMEOUT, FETCH_RETRIES, FETCH_RETRY_DELAY, logger
from gridclient.transport import Transport
from resources.cache import ResourceCache
from resources.models import RawResource

GOOGLE_FONTS_RE = re.compile(r"https://fonts\.googleapis\.com")

# Statuses worth another attempt before settling for an error-coded resource
RETRY_STATUSES = (429, 503)
TRANSIENT_ERRORS = (
    asyncio.TimeoutError,
    requests.exceptions.ConnectionError,
    requests.exceptions.Timeout,
)
GATEWAY_TIMEOUT = 504


class ResourceFetchError(Exception):
    """Raised for non-transient failures while fetching a resource."""

    def __init__(self, url: str, cause: Exception):
        super().__init__(f"failed to fetch {url}: {cause}")
        self.url = url
        self.cause = cause


def fetch_options(url: str, referer: Optional[str] = None, user_agent: Optional[str] = None,
                  proxy: Optional[str] = None) -> Dict[str, Any]:
    """
    Headers for fetching a page resource. Google Fonts serves browser-specific
    CSS by user agent, so the agent is left out for it.
    """
    headers = {"Referer": referer}
    if not GOOGLE_FONTS_RE.match(url):
        headers["User-Agent"] = user_agent
    options: Dict[str, Any] = {"headers": headers}
    if proxy:
        options["proxy"] = proxy
    return options


class ResourceFetcher:
    """
    FLOW: Looks up an in-flight/finished fetch for the url -> Otherwise starts one and
    registers it before the first suspension point -> Retries transient failures with
    exponential backoff -> Resolves to a RawResource (error-coded on HTTP failure).
    """

    def __init__(self, transport: Transport, fetch_cache: Optional[ResourceCache] = None,
                 retries: int = FETCH_RETRIES, retry_delay: float = FETCH_RETRY_DELAY,
                 timeout: float = FETCH_RESOURCE_TIMEOUT):
        self._transport = transport
        self.fetch_cache = fetch_cache if fetch_cache is not None else ResourceCache()
        self._retries = retries
        self._retry_delay = retry_delay
        self._timeout = timeout

    def fetch(self, url: str, options: Optional[Dict[str, Any]] = None) -> "asyncio.Future[RawResource]":
        in_flight = self.fetch_cache.get_value(url)
        if in_flight is not None:
            return in_flight
        return self.fetch_cache.set_value(url, asyncio.ensure_future(self._do_fetch(url, options)))

    async def _do_fetch(self, url: str, options: Optional[Dict[str, Any]]) -> RawResource:
        retry_delay = self._retry_delay

        for attempt in range(self._retries + 1):
            retry_str = f" (retry {attempt}/{self._retries})" if attempt else ""
            logger.debug(f"[FETCH] fetching {url}{retry_str}")
            try:
                resp = await asyncio.wait_for(self._transport.fetch(url, options), self._timeout)
            except TRANSIENT_ERRORS as e:
                if attempt < self._retries:
                    logger.warning(f"[RETRY {attempt + 1}/{self._retries}] {type(e).__name__} for {url}. Waiting {retry_delay}s...")
                    await asyncio.sleep(retry_delay)
                    retry_delay *= 2
                    continue
                logger.error(f"[FETCH] giving up on {url} after {self._retries} retries: {e!r}")
                return RawResource(url=url, error_status_code=GATEWAY_TIMEOUT)
            except Exception as e:
                raise ResourceFetchError(url, e) from e

            if resp.status in RETRY_STATUSES and attempt < self._retries:
                logger.warning(f"[RETRY {attempt + 1}/{self._retries}] {resp.status} Error for {url}. Waiting {retry_delay}s...")
                await asyncio.sleep(retry_delay)
                retry_delay *= 2
                continue

            if not resp.ok:
                logger.debug(f"[FETCH] failed to fetch {url} status {resp.status}, returning errorStatusCode")
                return RawResource(url=url, error_status_code=resp.status)

            logger.debug(f"[FETCH] fetched {url}")
            return RawResource(url=url, content_type=resp.header("Content-Type"), value=resp.body)
