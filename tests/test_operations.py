"""
Tests for the navigate / screenshot / extract / inject operations.

Runs the real engine and page sessions against fake Playwright pages.
"""

import shutil
import tempfile
import unittest
from pathlib import Path

from playwright.async_api import Error as PlaywrightError
from playwright.async_api import TimeoutError as PlaywrightTimeoutError

import config
from browser.engine import BrowserEngine
from browser.operations import (
    EXTRACT_ELEMENTS_JS,
    RUN_SCRIPT_JS,
    ProxyOperations,
    script_preview,
    validate_url,
)
from concurrency.locks import LockManager
from core.errors import (
    BrowserUnavailable,
    InvalidInput,
    NavigationFailed,
    NavigationTimeout,
    NotFound,
)
from storage.history import HistoryStore
from tests.fakes import FakeLauncher, FakePage, PNG_BYTES


class OperationsTestCase(unittest.TestCase):

    def setUp(self):
        self.screenshots_dir = Path(tempfile.mkdtemp(prefix="webcompass_test_")) / "screenshots"
        self.addCleanup(shutil.rmtree, self.screenshots_dir.parent, ignore_errors=True)
        self.history = HistoryStore(lock_manager=LockManager())

    def make_operations(self, page_factory=FakePage, **launcher_kwargs):
        self.launcher = FakeLauncher(page_factory=page_factory, **launcher_kwargs)
        engine = BrowserEngine(launcher=self.launcher)
        self.addCleanup(engine.shutdown)
        return ProxyOperations(
            engine=engine,
            history=self.history,
            screenshots_dir=self.screenshots_dir,
            operation_timeout_s=10,
        )

    @property
    def pages(self):
        return self.launcher.pages


class TestValidation(unittest.TestCase):

    def test_accepts_absolute_http_urls(self):
        self.assertEqual(validate_url("  https://example.com/path?q=1 "), "https://example.com/path?q=1")
        self.assertEqual(validate_url("http://localhost:8080"), "http://localhost:8080")

    def test_rejects_malformed_urls(self):
        for bad in ["", "   ", None, 42, "example.com", "not a url", "ftp://example.com", "https://", "javascript:alert(1)",
                    "http://exa mple.com", "https://:80", "http://@/", "https://a b/c", "https://example.com\t/x",
                    "https://example.com:99999", "https://example.com:port"]:
            with self.assertRaises(InvalidInput, msg=repr(bad)):
                validate_url(bad)

    def test_script_preview(self):
        self.assertEqual(script_preview("return 1;"), "return 1;")
        self.assertEqual(script_preview("x" * 100), "x" * 100)
        self.assertEqual(script_preview("x" * 150), "x" * 100 + "...")


class TestNavigate(OperationsTestCase):

    def test_successful_navigation_is_recorded(self):
        content = "<html><body>héllo</body></html>"
        ops = self.make_operations(lambda: FakePage(title="Hello", content=content, status=200))

        result = ops.navigate("https://example.com")

        self.assertEqual(result.url, "https://example.com")
        self.assertEqual(result.title, "Hello")
        self.assertEqual(result.status_code, 200)
        self.assertEqual(result.content_size, len(content.encode("utf-8")))
        self.assertGreaterEqual(result.response_time, 0)

        records = self.history.list()
        self.assertEqual(len(records), 1)
        self.assertEqual(records[0].id, result.history_id)
        self.assertEqual(records[0].title, "Hello")

    def test_page_configuration_and_cleanup(self):
        ops = self.make_operations()
        ops.navigate("https://example.com")

        page = self.pages[0]
        self.assertEqual(page.viewport, {"width": 1920, "height": 1080})
        self.assertEqual(page.goto_calls[0]["wait_until"], "networkidle")
        self.assertEqual(page.goto_calls[0]["timeout"], config.NAVIGATION_TIMEOUT_MS)
        self.assertTrue(page.closed)

    def test_each_call_appends_one_record_at_head(self):
        ops = self.make_operations()
        first = ops.navigate("https://a.example")
        second = ops.navigate("https://b.example")

        self.assertGreater(second.history_id, first.history_id)
        self.assertEqual(self.history.list()[0].id, second.history_id)
        self.assertEqual(len(self.history), 2)
        self.assertEqual(self.launcher.calls, 1, "browser is shared across operations")

    def test_error_status_is_still_a_success(self):
        ops = self.make_operations(lambda: FakePage(status=404, title="Not Found"))
        result = ops.navigate("https://example.com/missing")

        self.assertEqual(result.status_code, 404)
        self.assertEqual(self.history.get(result.history_id).status_code, 404)

    def test_missing_response_reports_status_zero(self):
        ops = self.make_operations(lambda: FakePage(status=None))
        self.assertEqual(ops.navigate("https://example.com").status_code, 0)

    def test_invalid_url_never_touches_browser(self):
        ops = self.make_operations()
        with self.assertRaises(InvalidInput):
            ops.navigate("not-a-url")
        self.assertEqual(self.launcher.calls, 0)
        self.assertEqual(len(self.history), 0)

    def test_timeout_is_recorded_with_full_bound(self):
        ops = self.make_operations(
            lambda: FakePage(goto_error=PlaywrightTimeoutError("Timeout 30000ms exceeded."))
        )

        with self.assertRaises(NavigationTimeout) as ctx:
            ops.navigate("https://slow.example")

        record = self.history.get(ctx.exception.history_id)
        self.assertEqual(record.status_code, 0)
        self.assertEqual(record.content_size, 0)
        self.assertIsNone(record.title)
        self.assertGreaterEqual(record.response_time, config.NAVIGATION_TIMEOUT_MS)
        self.assertTrue(self.pages[0].closed)

    def test_network_failure_is_recorded(self):
        ops = self.make_operations(
            lambda: FakePage(goto_error=PlaywrightError("net::ERR_NAME_NOT_RESOLVED at https://nope.invalid/"))
        )

        with self.assertRaises(NavigationFailed) as ctx:
            ops.navigate("https://nope.invalid")

        self.assertIn("ERR_NAME_NOT_RESOLVED", ctx.exception.reason)
        self.assertIsNotNone(ctx.exception.history_id)
        self.assertEqual(self.history.list()[0].status_code, 0)
        self.assertTrue(self.pages[0].closed)

    def test_browser_launch_failure_is_recorded(self):
        ops = self.make_operations(error=RuntimeError("no chromium"))

        with self.assertRaises(BrowserUnavailable) as ctx:
            ops.navigate("https://example.com")

        self.assertEqual(len(self.history), 1)
        self.assertEqual(self.history.list()[0].id, ctx.exception.history_id)


class TestScreenshot(OperationsTestCase):

    def test_writes_png_and_returns_served_path(self):
        ops = self.make_operations()
        result = ops.screenshot("https://example.com")

        self.assertTrue(result.screenshot_path.startswith("/screenshots/screenshot-"))
        self.assertTrue(result.screenshot_path.endswith(".png"))
        filename = result.screenshot_path.rsplit("/", 1)[1]
        self.assertEqual((self.screenshots_dir / filename).read_bytes(), PNG_BYTES)

        page = self.pages[0]
        self.assertTrue(page.screenshot_calls[0]["full_page"])
        self.assertEqual(page.screenshot_calls[0]["type"], "png")
        self.assertTrue(page.closed)

    def test_custom_viewport_and_visible_area(self):
        ops = self.make_operations()
        ops.screenshot("https://example.com", full_page=False, width=800, height=600)

        page = self.pages[0]
        self.assertEqual(page.viewport, {"width": 800, "height": 600})
        self.assertFalse(page.screenshot_calls[0]["full_page"])

    def test_does_not_write_history(self):
        ops = self.make_operations()
        result = ops.screenshot("https://example.com")
        self.assertIsNone(result.history_id)
        self.assertEqual(len(self.history), 0)

    def test_attaches_to_history_record(self):
        ops = self.make_operations()
        nav = ops.navigate("https://example.com")

        shot = ops.screenshot("https://example.com", history_id=nav.history_id)

        self.assertEqual(shot.history_id, nav.history_id)
        self.assertEqual(self.history.get(nav.history_id).screenshot_path, shot.screenshot_path)
        self.assertEqual(len(self.history), 1)

    def test_unknown_history_record(self):
        ops = self.make_operations()
        with self.assertRaises(NotFound):
            ops.screenshot("https://example.com", history_id=99)
        self.assertEqual(self.launcher.calls, 0)

    def test_rejects_bad_dimensions(self):
        ops = self.make_operations()
        for width in (0, -10, "wide", 1.5, True, config.MAX_VIEWPORT_DIMENSION + 1):
            with self.assertRaises(InvalidInput, msg=repr(width)):
                ops.screenshot("https://example.com", width=width)
        with self.assertRaises(InvalidInput):
            ops.screenshot("https://example.com", full_page="yes")

    def test_page_closed_when_navigation_fails(self):
        ops = self.make_operations(lambda: FakePage(goto_error=PlaywrightError("net::ERR_CONNECTION_REFUSED")))
        with self.assertRaises(NavigationFailed):
            ops.screenshot("https://example.com")
        self.assertTrue(self.pages[0].closed)


class TestExtract(OperationsTestCase):

    def test_without_selector_returns_document(self):
        html = "<html><body><p>Hi</p></body></html>"
        ops = self.make_operations(lambda: FakePage(content=html))

        result = ops.extract("https://example.com")

        self.assertEqual(result.selector, "html")
        self.assertEqual(result.content, html)
        self.assertEqual(result.kind, "markup")
        self.assertEqual(result.to_dict()["selector"], "html")

    def test_empty_selector_means_whole_document(self):
        ops = self.make_operations()
        self.assertEqual(ops.extract("https://example.com", "").selector, "html")

    def test_zero_matches_is_empty_list(self):
        ops = self.make_operations(lambda: FakePage(evaluate_result={"elements": []}))

        result = ops.extract("https://example.com", ".does-not-exist")

        self.assertEqual(result.content, [])
        self.assertEqual(result.kind, "elements")
        self.assertEqual(result.selector, ".does-not-exist")

    def test_matched_elements(self):
        raw = {
            "elements": [
                {
                    "tagName": "A",
                    "textContent": "Docs",
                    "innerHTML": "Docs",
                    "attributes": {"href": "/docs", "class": "nav"},
                },
            ]
        }
        ops = self.make_operations(lambda: FakePage(evaluate_result=raw))

        result = ops.extract("https://example.com", "a.nav")

        expression, arg = self.pages[0].evaluate_calls[0]
        self.assertEqual(expression, EXTRACT_ELEMENTS_JS)
        self.assertEqual(arg, "a.nav")
        self.assertEqual(result.content[0].tag_name, "A")
        self.assertEqual(result.content[0].attributes, {"href": "/docs", "class": "nav"})
        self.assertEqual(result.to_dict()["content"][0]["innerHTML"], "Docs")
        self.assertTrue(self.pages[0].closed)

    def test_invalid_selector(self):
        ops = self.make_operations(
            lambda: FakePage(evaluate_result={"invalidSelector": "'##' is not a valid selector."})
        )
        with self.assertRaises(InvalidInput):
            ops.extract("https://example.com", "##")
        self.assertTrue(self.pages[0].closed)


class TestInject(OperationsTestCase):

    def test_returns_script_value(self):
        ops = self.make_operations(lambda: FakePage(evaluate_result={"ok": True, "value": {"title": "Example"}}))

        result = ops.inject("https://example.com", "return {title: document.title};")

        expression, arg = self.pages[0].evaluate_calls[0]
        self.assertEqual(expression, RUN_SCRIPT_JS)
        self.assertEqual(arg, "return {title: document.title};")
        self.assertFalse(result.failed)
        self.assertEqual(result.to_dict()["result"], {"title": "Example"})
        self.assertTrue(self.pages[0].closed)

    def test_script_exception_is_a_result(self):
        ops = self.make_operations(lambda: FakePage(evaluate_result={"ok": False, "error": "boom is not defined"}))

        result = ops.inject("https://example.com", "boom();")

        self.assertTrue(result.failed)
        self.assertEqual(result.to_dict()["result"], {"error": "boom is not defined"})

    def test_preview_is_truncated(self):
        ops = self.make_operations(lambda: FakePage(evaluate_result={"ok": True, "value": None}))
        script = "// " + "x" * 200 + "\nreturn 1;"

        result = ops.inject("https://example.com", script)

        self.assertEqual(result.script_preview, script[:100] + "...")
        self.assertEqual(self.pages[0].evaluate_calls[0][1], script, "full script is evaluated")

    def test_requires_script(self):
        ops = self.make_operations()
        with self.assertRaises(InvalidInput):
            ops.inject("https://example.com", "   ")
        self.assertEqual(self.launcher.calls, 0)

    def test_lost_page_context_is_a_failure(self):
        ops = self.make_operations(
            lambda: FakePage(evaluate_error=PlaywrightError("Execution context was destroyed"))
        )
        with self.assertRaises(NavigationFailed):
            ops.inject("https://example.com", "location.href = '/elsewhere';")
        self.assertTrue(self.pages[0].closed)


if __name__ == "__main__":
    unittest.main()
