from typing import Any, Dict, List, Optional, Sequence, Tuple

from rendering.models import BrowserConfig, EmulationInfo, RenderInfo, RenderingInfo, RenderRequest, RGridDom


def create_emulation_info(browser: BrowserConfig) -> Optional[EmulationInfo]:
    if browser.device_name:
        return EmulationInfo(device_name=browser.device_name, screen_orientation=browser.screen_orientation)
    if browser.mobile or browser.device_scale_factor:
        return EmulationInfo(
            device_scale_factor=browser.device_scale_factor,
            mobile=browser.mobile,
            width=browser.width,
            height=browser.height,
            screen_orientation=browser.screen_orientation,
        )
    return None


def create_render_requests(url: str, pages: Sequence[Tuple[RGridDom, Dict[str, Any]]],
                           browsers: Sequence[BrowserConfig], rendering_info: Optional[RenderingInfo] = None,
                           size_mode: Optional[str] = None, selector: Any = None,
                           region: Optional[Dict[str, Any]] = None,
                           selectors_to_find_regions_for: Optional[List[Any]] = None,
                           script_hooks: Optional[Dict[str, Any]] = None, send_dom: Optional[bool] = None,
                           visual_grid_options: Optional[Dict[str, Any]] = None) -> List[RenderRequest]:
    """
    One RenderRequest per browser; pages[i] is the (bundle, all resources) pair
    assembled for browsers[i].
    """
    if len(pages) != len(browsers):
        raise ValueError(f"got {len(pages)} pages for {len(browsers)} browsers")

    requests = []
    for (dom, all_resources), browser in zip(pages, browsers):
        browser = BrowserConfig.from_dict(browser)
        # iOS simulators only run Safari
        browser_name = "safari" if browser.ios_device_info and not browser.name else browser.name
        platform = "ios" if browser.ios_device_info and not browser.platform else browser.platform

        requests.append(RenderRequest(
            webhook=rendering_info.results_url if rendering_info else None,
            stitching_service=rendering_info.stitching_service_url if rendering_info else None,
            url=url,
            resources=list(all_resources.values()),
            dom=dom,
            render_info=RenderInfo(
                width=browser.width,
                height=browser.height,
                size_mode=size_mode,
                selector=selector,
                region=region,
                emulation_info=create_emulation_info(browser),
                ios_device_info=browser.ios_device_info,
            ),
            browser_name=browser_name,
            platform=platform,
            script_hooks=script_hooks,
            selectors_to_find_regions_for=selectors_to_find_regions_for,
            send_dom=send_dom,
            visual_grid_options=visual_grid_options,
        ))
    return requests
