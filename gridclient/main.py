import argparse
import asyncio
import json
import logging
import sys

from gridclient.core import GridClientConfig, setup_logger
from gridclient.client import RenderingGridClient
from checkwindow.browsers import BrowserConfigError


def parse_browser(value):
    """
    "chrome:1024x768" -> {"name": "chrome", "width": 1024, "height": 768}
    "1280x800" -> {"width": 1280, "height": 800}
    """
    name, _, size = value.rpartition(":")
    try:
        width, height = (int(v) for v in size.lower().split("x"))
    except ValueError:
        raise argparse.ArgumentTypeError(f"invalid browser '{value}', expected [name:]WIDTHxHEIGHT")
    browser = {"width": width, "height": height}
    if name:
        browser["name"] = name
    return browser


def build_parser():
    parser = argparse.ArgumentParser(description="Render a captured DOM snapshot on the rendering grid")
    parser.add_argument("snapshot", help="Path to a snapshot JSON file (cdt, resourceUrls, resourceContents, frames)")
    parser.add_argument("--url", help="Page URL; used as the referer for resource fetches")
    parser.add_argument("--browser", action="append", type=parse_browser, dest="browsers",
                        help="[name:]WIDTHxHEIGHT, may be repeated (default 1024x768)")
    parser.add_argument("--size-mode", default="full-page",
                        choices=["full-page", "viewport", "selector", "full-selector", "region"])
    parser.add_argument("--selector", help="CSS selector of the element to capture")
    parser.add_argument("--server-url", help="Override GRID_SERVER_URL")
    parser.add_argument("--log-file", help="Also write logs to this file")
    parser.add_argument("--verbose", action="store_true", help="Log at DEBUG level")
    return parser


async def run(args):
    with open(args.snapshot, "r", encoding="utf-8") as f:
        snapshot = json.load(f)

    config = GridClientConfig()
    if args.server_url:
        config.server_url = args.server_url

    client = RenderingGridClient(config=config)
    try:
        return await client.take_screenshot(
            snapshot,
            url=args.url or snapshot.get("url"),
            browsers=args.browsers or [{"width": 1024, "height": 768}],
            size_mode=args.size_mode,
            selector=args.selector,
        )
    finally:
        client.close()


def main(argv=None):
    args = build_parser().parse_args(argv)
    log = setup_logger(log_file=args.log_file, level=logging.DEBUG if args.verbose else logging.INFO)

    try:
        results = asyncio.run(run(args))
    except BrowserConfigError as e:
        log.error(f"[CLI] invalid browser: {e}")
        return 2
    except Exception as e:
        log.error(f"[CLI] screenshot failed: {e}", exc_info=args.verbose)
        return 1

    print(json.dumps(results, indent=2))
    return 0


if __name__ == "__main__":
    sys.exit(main())
