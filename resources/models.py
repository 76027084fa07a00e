import hashlib
from dataclasses import dataclass, field
from typing import Dict, Optional

from gridclient.core import MAX_RESOURCE_SIZE, TRIMMED_RESOURCE_SIZE

UNKNOWN_CONTENT_TYPE = "application/x-applitools-unknown"


def sha256_hex(content: bytes) -> str:
    return hashlib.sha256(content or b"").hexdigest()


def trim_content(content: Optional[bytes]) -> Optional[bytes]:
    if content and len(content) > MAX_RESOURCE_SIZE:
        return content[:TRIMMED_RESOURCE_SIZE]
    return content


@dataclass(frozen=True)
class RawResource:
    """
    A resource as it comes off the wire (or from the page capture):
    either value+type or an error status code.
    """
    url: str
    content_type: Optional[str] = None
    value: Optional[bytes] = None
    error_status_code: Optional[int] = None


@dataclass(frozen=True)
class Resource:
    """
    Render-ready resource. Identity is the url.
    Invariant: content+hash XOR error_status_code.
    """
    url: str
    content_type: Optional[str] = None
    content: Optional[bytes] = None
    content_hash: Optional[str] = None
    error_status_code: Optional[int] = None

    def __post_init__(self):
        if self.error_status_code and (self.content or self.content_hash):
            raise ValueError(f"resource {self.url} cannot carry both content and an error status code")

    @classmethod
    def from_content(cls, url: str, content_type: Optional[str], content: Optional[bytes]) -> "Resource":
        content = trim_content(content or b"")
        return cls(url=url, content_type=content_type, content=content, content_hash=sha256_hex(content))

    @classmethod
    def from_error(cls, url: str, error_status_code: int) -> "Resource":
        return cls(url=url, error_status_code=error_status_code)

    def hash_as_object(self) -> Dict:
        if self.error_status_code:
            return {"errorStatusCode": self.error_status_code}
        return {"hashFormat": "sha256", "hash": self.content_hash, "contentType": self.content_type}


@dataclass(frozen=True)
class CacheEntry:
    """
    Persisted projection of a Resource. Content is optional; dependency
    edges are kept by the cache itself and survive content eviction.
    """
    url: str
    content_type: Optional[str] = None
    content_hash: Optional[str] = None
    content: Optional[bytes] = field(default=None, repr=False)
    error_status_code: Optional[int] = None


def to_cache_entry(resource, is_content_needed: bool = True) -> CacheEntry:
    if resource.error_status_code:
        return CacheEntry(url=resource.url, error_status_code=resource.error_status_code)
    return CacheEntry(
        url=resource.url,
        content_type=resource.content_type,
        content_hash=resource.content_hash,
        content=resource.content if is_content_needed else None,
    )


def from_cache_entry(entry: CacheEntry) -> Resource:
    if entry.error_status_code:
        return Resource.from_error(entry.url, entry.error_status_code)
    # Content may have been dropped to save space; the hash is what the grid needs.
    return Resource(
        url=entry.url,
        content_type=entry.content_type,
        content=entry.content or b"",
        content_hash=entry.content_hash,
    )


def from_raw_resource(raw: RawResource, log=None) -> Resource:
    if raw.error_status_code:
        return Resource.from_error(raw.url, raw.error_status_code)
    if not raw.value and log:
        log(f"warning! the resource {raw.url} {raw.content_type} has no content.")
    return Resource.from_content(raw.url, raw.content_type or UNKNOWN_CONTENT_TYPE, raw.value)
