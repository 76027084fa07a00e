"""
FILE DESCRIPTION: Recursive resolution of a page's transitive resource graph.
KEY FUNCTIONS/CLASSES: ResourceGraphResolver, assign_contentful_resources
"""

import asyncio
from typing import Dict, Iterable, Mapping, Optional
from urllib.parse import urlparse

from gridclient.core import logger
from resources.cache import ResourceCache
from resources.extractor import absolutize_url, extract_dependent_urls, resource_type
from resources.fetcher import GATEWAY_TIMEOUT, ResourceFetcher, fetch_options
from resources.models import RawResource, Resource, from_cache_entry, from_raw_resource, to_cache_entry


def assign_contentful_resources(target: Dict[str, Resource], source: Mapping[str, Resource]) -> None:
    """
    Merge source into target without letting a content-less resource replace
    one that already has content (first content wins).
    """
    for url, resource in source.items():
        existing = target.get(url)
        if existing is None or not existing.content:
            target[url] = resource


def is_fetchable(url: str) -> bool:
    try:
        return urlparse(url).scheme.lower() in ("http", "https")
    except ValueError:
        return False


class ResourceGraphResolver:
    """
    FLOW: Seeds results from caller-supplied resources -> Serves cached urls with their
    dependency closure -> Fetches the rest concurrently -> Parses CSS/SVG for nested urls
    and resolves those recursively -> Persists resources and dependency edges to the cache.
    A single unreachable resource degrades to an error-coded stub and never aborts the graph.
    """

    def __init__(self, resource_cache: ResourceCache, fetcher: ResourceFetcher):
        self._resource_cache = resource_cache
        self._fetcher = fetcher

    async def resolve(self, resource_urls: Optional[Iterable[str]] = None,
                      pre_resources: Optional[Mapping[str, RawResource]] = None,
                      user_agent: Optional[str] = None, referer: Optional[str] = None,
                      proxy: Optional[str] = None) -> Dict[str, Resource]:
        run = _ResolveRun(self._resource_cache, self._fetcher, user_agent, referer, proxy)
        return await run.get_or_fetch(list(resource_urls or []), pre_resources or {})


class _ResolveRun:
    """State of one resolve() call; handled urls are tracked per call."""

    def __init__(self, resource_cache, fetcher, user_agent, referer, proxy):
        self._resource_cache = resource_cache
        self._fetcher = fetcher
        self._user_agent = user_agent
        self._referer = referer
        self._proxy = proxy
        self._handled = set()

    async def get_or_fetch(self, resource_urls, pre_resources=None) -> Dict[str, Resource]:
        resources: Dict[str, Resource] = {}

        for url, raw in (pre_resources or {}).items():
            # Pre-supplied resources never pass through the fetch cache, so cache them here.
            resource = from_raw_resource(raw, log=logger.debug)
            self._resource_cache.set_value(url, to_cache_entry(resource))
            self._handled.add(url)
            assign_contentful_resources(resources, {url: resource})

        missing = []
        for url in resource_urls:
            if url in self._handled:
                continue
            self._handled.add(url)
            cached = self._resource_cache.get_with_dependencies(url)
            if cached:
                assign_contentful_resources(
                    resources, {u: from_cache_entry(entry) for u, entry in cached.items()}
                )
            elif is_fetchable(url):
                missing.append(url)

        results = await asyncio.gather(*(self._fetch_and_process(url) for url in missing))
        for fetched in results:
            assign_contentful_resources(resources, fetched)

        return resources

    async def _fetch_and_process(self, url) -> Dict[str, Resource]:
        options = fetch_options(url, referer=self._referer, user_agent=self._user_agent, proxy=self._proxy)
        try:
            raw = await self._fetcher.fetch(url, options)
            return await self._process(raw)
        except Exception as e:
            logger.warning(f"[RESOURCES] error fetching resource at {url}, setting errorStatusCode to {GATEWAY_TIMEOUT}. err={e!r}")
            return {url: Resource.from_error(url, GATEWAY_TIMEOUT)}

    async def _process(self, raw: RawResource) -> Dict[str, Resource]:
        dependent_urls, fetched = await self._get_dependent_resources(raw)
        resource = from_raw_resource(raw, log=logger.debug)

        # CSS/SVG parsing is the expensive part, so keep their content in the cache.
        if resource_type(resource.content_type):
            self._resource_cache.set_value(raw.url, to_cache_entry(resource))
        self._resource_cache.set_dependencies(raw.url, dependent_urls)

        result = {raw.url: resource}
        if fetched:
            assign_contentful_resources(result, fetched)
        return result

    async def _get_dependent_resources(self, raw: RawResource):
        if raw.error_status_code:
            return None, None

        rtype = resource_type(raw.content_type)
        dependent_urls = None
        try:
            dependent_urls = extract_dependent_urls(rtype, raw.value or b"")
        except Exception as e:
            logger.warning(f"[RESOURCES] could not parse {rtype} {raw.url}: {e!r}")

        if not dependent_urls:
            return dependent_urls, None

        dependent_urls = [absolutize_url(u, raw.url) for u in dependent_urls]
        fetched = await self.get_or_fetch(dependent_urls)
        return dependent_urls, fetched
