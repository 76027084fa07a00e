import argparse
import io
import json
import os
import tempfile
import unittest
from contextlib import redirect_stdout
from unittest.mock import AsyncMock, patch

from checkwindow.browsers import BrowserConfigError
from gridclient.main import build_parser, main, parse_browser


class TestParseBrowser(unittest.TestCase):
    def test_named_and_anonymous(self):
        self.assertEqual(parse_browser("chrome:1024x768"), {"name": "chrome", "width": 1024, "height": 768})
        self.assertEqual(parse_browser("1280X800"), {"width": 1280, "height": 800})

    def test_invalid(self):
        with self.assertRaises(argparse.ArgumentTypeError):
            parse_browser("chrome:wide")

    def test_parser_collects_browsers(self):
        args = build_parser().parse_args(["snap.json", "--browser", "chrome:800x600", "--browser", "640x480"])
        self.assertEqual(args.browsers, [{"name": "chrome", "width": 800, "height": 600}, {"width": 640, "height": 480}])
        self.assertEqual(args.size_mode, "full-page")


class TestMain(unittest.TestCase):
    def setUp(self):
        fd, self.snapshot_path = tempfile.mkstemp(suffix=".json")
        with os.fdopen(fd, "w", encoding="utf-8") as f:
            json.dump({"cdt": [], "resourceUrls": [], "url": "https://site.test/"}, f)
        self.addCleanup(os.remove, self.snapshot_path)

        patcher = patch("gridclient.main.RenderingGridClient")
        self.client_cls = patcher.start()
        self.addCleanup(patcher.stop)
        self.client = self.client_cls.return_value
        self.client.take_screenshot = AsyncMock(return_value=[{"render_id": "r1", "image_location": "https://img/r1"}])

    def test_prints_results(self):
        out = io.StringIO()
        with redirect_stdout(out):
            code = main([self.snapshot_path, "--browser", "chrome:800x600"])

        self.assertEqual(code, 0)
        self.assertEqual(json.loads(out.getvalue()), [{"render_id": "r1", "image_location": "https://img/r1"}])
        _, kwargs = self.client.take_screenshot.call_args
        self.assertEqual(kwargs["url"], "https://site.test/")
        self.assertEqual(kwargs["browsers"], [{"name": "chrome", "width": 800, "height": 600}])
        self.client.close.assert_called_once()

    def test_invalid_browser_exit_code(self):
        self.client.take_screenshot.side_effect = BrowserConfigError("bad browser")
        self.assertEqual(main([self.snapshot_path]), 2)

    def test_failure_exit_code(self):
        self.client.take_screenshot.side_effect = RuntimeError("grid down")
        self.assertEqual(main([self.snapshot_path]), 1)
        self.client.close.assert_called_once()


if __name__ == "__main__":
    unittest.main()
