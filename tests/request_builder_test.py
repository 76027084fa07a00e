import unittest

from resources.models import Resource
from rendering.models import RenderingInfo, RGridDom
from rendering.request_builder import create_render_requests

URL = "https://site.test/"


def page(tag="page"):
    css = Resource.from_content("https://site.test/a.css", "text/css", b"body{}")
    return RGridDom(cdt=[{"tag": tag}], resources={css.url: css}), {css.url: css}


class TestCreateRenderRequests(unittest.TestCase):
    def test_one_request_per_browser(self):
        browsers = [{"name": "chrome", "width": 800, "height": 600}, {"name": "firefox", "width": 1024, "height": 768}]
        requests = create_render_requests(
            url=URL,
            pages=[page("a"), page("b")],
            browsers=browsers,
            rendering_info=RenderingInfo("https://grid.test", "token", results_url="https://results.test/x"),
            size_mode="full-page",
            script_hooks={"beforeCaptureScreenshot": "1+1"},
            send_dom=True,
            visual_grid_options={"polyfillAdoptedStyleSheets": True},
        )

        self.assertEqual([r.browser_name for r in requests], ["chrome", "firefox"])
        self.assertEqual(requests[1].render_info.width, 1024)
        self.assertEqual(requests[0].webhook, "https://results.test/x")
        self.assertEqual([r.url for r in requests[0].resources], ["https://site.test/a.css"])

        wire = requests[0].to_json()
        self.assertEqual(wire["renderInfo"], {"width": 800, "height": 600, "sizeMode": "full-page"})
        self.assertEqual(wire["browser"], {"name": "chrome"})
        self.assertEqual(wire["options"], {"polyfillAdoptedStyleSheets": True})
        self.assertEqual(wire["dom"], requests[0].dom.hash_as_object())
        self.assertNotIn("renderId", wire)

    def test_ios_device_implies_safari_on_ios(self):
        [request] = create_render_requests(
            url=URL, pages=[page()], browsers=[{"iosDeviceInfo": {"deviceName": "iPhone 12"}}],
        )
        self.assertEqual(request.browser_name, "safari")
        self.assertEqual(request.platform, "ios")
        self.assertIsNone(request.render_info.emulation_info)
        self.assertEqual(request.render_info.to_json()["iosDeviceInfo"], {"deviceName": "iPhone 12"})

    def test_device_emulation(self):
        [request] = create_render_requests(
            url=URL, pages=[page()],
            browsers=[{"name": "chrome", "deviceName": "Pixel 2", "screenOrientation": "landscape"}],
        )
        self.assertEqual(request.render_info.to_json()["emulationInfo"],
                         {"deviceName": "Pixel 2", "screenOrientation": "landscape"})

    def test_mobile_emulation_without_device_name(self):
        [request] = create_render_requests(
            url=URL, pages=[page()],
            browsers=[{"name": "chrome", "width": 400, "height": 800, "mobile": True, "deviceScaleFactor": 2}],
        )
        self.assertEqual(request.render_info.to_json()["emulationInfo"],
                         {"deviceScaleFactor": 2, "mobile": True, "width": 400, "height": 800})

    def test_page_browser_mismatch_is_rejected(self):
        with self.assertRaises(ValueError):
            create_render_requests(url=URL, pages=[page()], browsers=[{"width": 1, "height": 1}] * 2)


if __name__ == "__main__":
    unittest.main()
