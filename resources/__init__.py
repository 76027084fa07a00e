from resources.models import (
    RawResource,
    Resource,
    CacheEntry,
    to_cache_entry,
    from_cache_entry,
)
from resources.cache import ResourceCache
from resources.fetcher import ResourceFetcher, ResourceFetchError, fetch_options
from resources.resolver import ResourceGraphResolver
