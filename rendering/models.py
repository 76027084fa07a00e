import base64
import json
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional, Union

from resources.models import RawResource, Resource, sha256_hex

CDT_CONTENT_TYPE = "x-applitools-html/cdt"


class RenderStatus(Enum):
    PENDING = "pending"
    RENDERING = "rendering"
    RENDERED = "rendered"
    ERROR = "error"
    NEED_MORE_RESOURCES = "need-more-resources"

    @classmethod
    def parse(cls, value) -> Optional["RenderStatus"]:
        if value is None or value == "":
            return None
        if isinstance(value, cls):
            return value
        try:
            return cls(value)
        except ValueError:
            # Statuses this client does not know about are treated as still in progress
            return None


@dataclass(frozen=True)
class Location:
    x: int
    y: int


@dataclass(frozen=True)
class RectangleSize:
    width: int
    height: int

    @classmethod
    def from_json(cls, data):
        if data is None or isinstance(data, cls):
            return data
        return cls(width=data["width"], height=data["height"])

    def to_json(self):
        return {"width": self.width, "height": self.height}


@dataclass(frozen=True)
class Region:
    left: int
    top: int
    width: int
    height: int
    error: Optional[str] = None

    @classmethod
    def from_json(cls, data) -> "Region":
        if isinstance(data, cls):
            return data
        left = data["left"] if "left" in data else data.get("x", 0)
        top = data["top"] if "top" in data else data.get("y", 0)
        return cls(left=left, top=top, width=data.get("width", 0), height=data.get("height", 0),
                   error=data.get("error"))

    @property
    def location(self) -> Location:
        return Location(self.left, self.top)

    def to_json(self):
        return {"left": self.left, "top": self.top, "width": self.width, "height": self.height}


@dataclass
class DomSnapshot:
    """
    A captured page: content-description tree, the urls it references,
    resources captured client-side, and nested frames (same shape).
    """
    cdt: Any
    url: Optional[str] = None
    resource_urls: List[str] = field(default_factory=list)
    resource_contents: Dict[str, RawResource] = field(default_factory=dict)
    frames: List["DomSnapshot"] = field(default_factory=list)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "DomSnapshot":
        if isinstance(data, cls):
            return data
        contents = data.get("resourceContents") or {}
        if isinstance(contents, dict):
            contents = list(contents.values())
        contents = list(contents) + list(data.get("blobs") or [])
        resource_contents = {}
        for blob in contents:
            resource_contents[blob["url"]] = _raw_resource_from_dict(blob)
        return cls(
            cdt=data.get("cdt"),
            url=data.get("url"),
            resource_urls=list(data.get("resourceUrls") or []),
            resource_contents=resource_contents,
            frames=[cls.from_dict(frame) for frame in data.get("frames") or []],
        )


def _raw_resource_from_dict(blob: Dict[str, Any]) -> RawResource:
    if blob.get("errorStatusCode"):
        return RawResource(url=blob["url"], error_status_code=blob["errorStatusCode"])
    value = blob.get("value")
    if isinstance(value, str):
        value = base64.b64decode(value)
    return RawResource(url=blob["url"], content_type=blob.get("type"), value=value)


@dataclass
class RGridDom:
    """
    Document bundle: a cdt bound to every resource it needs. Frames are
    RGridDom instances stored in the parent's resources under the frame url.
    """
    cdt: Any
    resources: Dict[str, Union[Resource, "RGridDom"]] = field(default_factory=dict)
    url: Optional[str] = None

    content_type = CDT_CONTENT_TYPE
    error_status_code = None

    @property
    def content(self) -> bytes:
        resources = {url: self.resources[url].hash_as_object() for url in sorted(self.resources)}
        return json.dumps({"resources": resources, "domNodes": self.cdt}, separators=(",", ":")).encode("utf-8")

    @property
    def content_hash(self) -> str:
        return sha256_hex(self.content)

    def hash_as_object(self) -> Dict:
        return {"hashFormat": "sha256", "hash": self.content_hash, "contentType": self.content_type}


@dataclass
class BrowserConfig:
    name: Optional[str] = None
    width: Optional[int] = None
    height: Optional[int] = None
    device_name: Optional[str] = None
    screen_orientation: Optional[str] = None
    device_scale_factor: Optional[float] = None
    mobile: Optional[bool] = None
    platform: Optional[str] = None
    ios_device_info: Optional[Dict[str, Any]] = None
    chrome_emulation_info: Optional[Dict[str, Any]] = None

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "BrowserConfig":
        if isinstance(data, cls):
            return data
        return cls(
            name=data.get("name"),
            width=data.get("width"),
            height=data.get("height"),
            device_name=data.get("deviceName"),
            screen_orientation=data.get("screenOrientation"),
            device_scale_factor=data.get("deviceScaleFactor"),
            mobile=data.get("mobile"),
            platform=data.get("platform"),
            ios_device_info=data.get("iosDeviceInfo"),
            chrome_emulation_info=data.get("chromeEmulationInfo"),
        )

    @property
    def is_emulation(self) -> bool:
        return bool(self.device_name or self.mobile)


@dataclass(frozen=True)
class EmulationInfo:
    device_name: Optional[str] = None
    screen_orientation: Optional[str] = None
    device_scale_factor: Optional[float] = None
    mobile: Optional[bool] = None
    width: Optional[int] = None
    height: Optional[int] = None

    def to_json(self):
        if self.device_name:
            return _compact({"deviceName": self.device_name, "screenOrientation": self.screen_orientation})
        return _compact({
            "deviceScaleFactor": self.device_scale_factor,
            "mobile": self.mobile,
            "width": self.width,
            "height": self.height,
            "screenOrientation": self.screen_orientation,
        })


@dataclass(frozen=True)
class RenderInfo:
    width: Optional[int] = None
    height: Optional[int] = None
    size_mode: Optional[str] = None
    selector: Any = None
    region: Optional[Dict[str, Any]] = None
    emulation_info: Optional[EmulationInfo] = None
    ios_device_info: Optional[Dict[str, Any]] = None

    def to_json(self):
        return _compact({
            "width": self.width,
            "height": self.height,
            "sizeMode": self.size_mode,
            "selector": self.selector,
            "region": self.region,
            "emulationInfo": self.emulation_info.to_json() if self.emulation_info else None,
            "iosDeviceInfo": self.ios_device_info,
        })


@dataclass(frozen=True)
class RenderingInfo:
    """Grid access details handed out by the server's render-info handshake."""
    service_url: str
    access_token: str
    results_url: Optional[str] = None
    stitching_service_url: Optional[str] = None

    @classmethod
    def from_json(cls, data):
        return cls(
            service_url=data["serviceUrl"],
            access_token=data["accessToken"],
            results_url=data.get("resultsUrl"),
            stitching_service_url=data.get("stitchingServiceUrl"),
        )


@dataclass
class RenderRequest:
    """One render job: a page bundle rendered in one browser configuration."""
    url: str
    dom: RGridDom
    resources: List[Union[Resource, RGridDom]]
    render_info: RenderInfo
    browser_name: Optional[str] = None
    platform: Optional[str] = None
    webhook: Optional[str] = None
    stitching_service: Optional[str] = None
    script_hooks: Optional[Dict[str, Any]] = None
    selectors_to_find_regions_for: Optional[List[Any]] = None
    send_dom: Optional[bool] = None
    visual_grid_options: Optional[Dict[str, Any]] = None
    render_id: Optional[str] = None

    def to_json(self):
        return _compact({
            "webhook": self.webhook,
            "stitchingService": self.stitching_service,
            "url": self.url,
            "dom": self.dom.hash_as_object(),
            "resources": {r.url: r.hash_as_object() for r in self.resources},
            "browser": _compact({"name": self.browser_name, "platform": self.platform}),
            "renderInfo": self.render_info.to_json(),
            "renderId": self.render_id,
            "scriptHooks": self.script_hooks,
            "selectorsToFindRegionsFor": self.selectors_to_find_regions_for,
            "sendDom": self.send_dom,
            "options": self.visual_grid_options,
        })


@dataclass
class RunningRender:
    render_id: Optional[str] = None
    job_id: Optional[str] = None
    render_status: Optional[RenderStatus] = None
    need_more_resources: Optional[List[str]] = None
    need_more_dom: Optional[bool] = None

    @classmethod
    def from_json(cls, data):
        return cls(
            render_id=data.get("renderId"),
            job_id=data.get("jobId"),
            render_status=RenderStatus.parse(data.get("renderStatus")),
            need_more_resources=data.get("needMoreResources"),
            need_more_dom=data.get("needMoreDom"),
        )


@dataclass
class RenderStatusResults:
    status: Optional[RenderStatus] = None
    image_location: Optional[str] = None
    dom_location: Optional[str] = None
    error: Optional[str] = None
    os: Optional[str] = None
    user_agent: Optional[str] = None
    device_size: Optional[RectangleSize] = None
    selector_regions: Optional[List[List[Region]]] = None
    render_id: Optional[str] = None

    @classmethod
    def from_json(cls, data):
        if data is None:
            return cls()
        selector_regions = data.get("selectorRegions")
        if selector_regions:
            selector_regions = [[Region.from_json(r) for r in regions] for regions in selector_regions]
        return cls(
            status=RenderStatus.parse(data.get("status")),
            image_location=data.get("imageLocation"),
            dom_location=data.get("domLocation"),
            error=data.get("error"),
            os=data.get("os"),
            user_agent=data.get("userAgent"),
            device_size=RectangleSize.from_json(data.get("deviceSize")),
            selector_regions=selector_regions,
            render_id=data.get("renderId"),
        )


def _compact(d):
    return {k: v for k, v in d.items() if v is not None}
