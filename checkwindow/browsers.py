"""
FILE DESCRIPTION: Browser configuration normalization and pre-flight validation.
KEY FUNCTIONS/CLASSES: validate_browsers, translate_browser_name_version, get_device_info, BrowserConfigError
"""

import re
from typing import Any, Dict, List, Optional

from gridclient.core import logger

VERSION_BACK_RE = re.compile(r"^(chrome|firefox|safari|edgechromium)-(1|2)$")

DEPRECATED_EDGE = "edge"

EDGE_WARNING = (
    "The 'edge' option that is being used in your browsers' configuration will soon be deprecated. "
    "Please change it to either 'edgelegacy' for the legacy version or to 'edgechromium' for the "
    "new Chromium-based version."
)


class BrowserConfigError(ValueError):
    pass


def translate_browser_name_version(browser_name: str) -> str:
    """chrome-1 -> chrome-one-version-back, firefox-2 -> firefox-two-versions-back"""
    if browser_name and VERSION_BACK_RE.match(browser_name):
        return browser_name.replace("1", "one-version-back").replace("2", "two-versions-back")
    return browser_name


def _build_supported_browsers() -> Dict[str, str]:
    # user-facing name -> name sent to the grid
    supported = {name: name for name in (
        "chrome", "chrome-canary", "firefox", "ie10", "ie11", DEPRECATED_EDGE,
        "edgechromium", "edgelegacy", "ie", "safari",
    )}
    for family in ("chrome", "firefox", "safari", "edgechromium"):
        for back in ("1", "2"):
            name = f"{family}-{back}"
            supported[name] = translate_browser_name_version(name)
            supported[supported[name]] = supported[name]
    return supported


SUPPORTED_BROWSERS = _build_supported_browsers()


def map_chrome_emulation_info(browser: Dict[str, Any]) -> Dict[str, Any]:
    emulation = browser.get("chromeEmulationInfo")
    if emulation and emulation.get("deviceName"):
        flattened = {**browser, **emulation}
        flattened.pop("chromeEmulationInfo", None)
        return flattened
    return browser


def _is_emulation(browser: Dict[str, Any]) -> bool:
    return bool(browser.get("deviceName") or browser.get("mobile"))


def get_browser_error(browser: Optional[Dict[str, Any]]) -> Optional[str]:
    if not browser:
        return "invalid browser configuration provided."

    name = browser.get("name")
    if name and name not in SUPPORTED_BROWSERS:
        listed = "\n* ".join(k for k in SUPPORTED_BROWSERS if k != DEPRECATED_EDGE)
        return f"browser name should be one of the following:\n* {listed}\n\nReceived: '{name}'."

    if name and not browser.get("deviceName") and not browser.get("iosDeviceInfo") \
            and (not browser.get("height") or not browser.get("width")):
        return f"browser '{name}' should include 'height' and 'width' parameters."

    if _is_emulation(browser) and name and not name.startswith("chrome"):
        return (f"browser '{name}' does not support mobile device emulation. "
                f"Please remove 'mobile:true' or 'deviceName' from the browser configuration")
    return None


def validate_browsers(browsers: Any) -> List[Dict[str, Any]]:
    """
    FLOW: Flattens chrome emulation info -> Validates every browser before any network
    activity -> Warns about deprecated names -> Returns browsers with grid names.
    """
    if isinstance(browsers, dict):
        browsers = [browsers]
    browsers = [map_chrome_emulation_info(b) if b else b for b in (browsers or [])]

    error = next((e for e in map(get_browser_error, browsers) if e), None) if browsers \
        else get_browser_error(None)
    if error:
        logger.error(f"[BROWSER] Invalid browser: {error}")
        raise BrowserConfigError(error)

    if any(b.get("name") == DEPRECATED_EDGE for b in browsers):
        logger.warning(f"[BROWSER] {EDGE_WARNING}")

    return [{**b, "name": SUPPORTED_BROWSERS.get(b["name"], b["name"])} if b.get("name") else dict(b)
            for b in browsers]


def get_device_info(browser: Dict[str, Any]) -> str:
    emulation = browser.get("chromeEmulationInfo") or {}
    device_name = browser.get("deviceName") or emulation.get("deviceName")
    if device_name:
        return f"{device_name} (Chrome emulation)"
    if browser.get("iosDeviceInfo"):
        return browser["iosDeviceInfo"].get("deviceName")
    return "Desktop"
