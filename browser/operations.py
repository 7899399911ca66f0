"""
WebCompass Proxy - Browser Operations

The four things a caller can ask the browser to do:
    navigate(url)                          - Load a page, record it in history
    screenshot(url, full_page, w, h)       - Capture a PNG of the page
    extract(url, selector)                 - Pull matching elements or full HTML
    inject(url, script)                    - Run a script inside the page

Each operation validates its input before touching the browser, opens its
own PageSession, navigates with the same quiescence/timeout policy, collects
a typed result and releases the page. Called from request threads; the
browser work itself runs on the engine loop.
"""

import time
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Optional, Tuple
from urllib.parse import urlparse

import config
from browser.engine import BrowserEngine
from browser.session import PageSession
from core.errors import (
    BrowserTimeout,
    InvalidInput,
    NavigationFailed,
    NotFound,
    ProxyError,
)
from core.logger import log_info, log_success, log_warning, log_error
from core.models import (
    ExtractedElement,
    ExtractionResult,
    NavigationResult,
    ScreenshotResult,
    ScriptResult,
)
from storage.history import HistoryStore


# =============================================================================
# IN-PAGE FUNCTIONS
# =============================================================================

# Collects every element matching a selector. An unparseable selector is
# reported back instead of thrown so it can be told apart from page errors.
EXTRACT_ELEMENTS_JS = """
(selector) => {
    let elements;
    try {
        elements = document.querySelectorAll(selector);
    } catch (error) {
        return { invalidSelector: String((error && error.message) || error) };
    }
    return {
        elements: Array.from(elements).map(el => ({
            tagName: el.tagName,
            textContent: (el.textContent || '').trim(),
            innerHTML: el.innerHTML,
            attributes: Array.from(el.attributes).reduce((acc, attr) => {
                acc[attr.name] = attr.value;
                return acc;
            }, {})
        }))
    };
}
"""

# Runs the user script as a function body. Anything it throws (including a
# syntax error or a rejected promise) is caught inside the page.
RUN_SCRIPT_JS = """
async (source) => {
    try {
        const run = new Function(source);
        return { ok: true, value: await run() };
    } catch (error) {
        const message = (error && error.message !== undefined) ? error.message : error;
        return { ok: false, error: String(message) };
    }
}
"""


# =============================================================================
# INPUT VALIDATION
# =============================================================================

def validate_url(url: Any) -> str:
    """
    Check that a URL is absolute and uses an allowed scheme.

    Raises:
        InvalidInput: If the URL is missing or malformed
    """
    if not isinstance(url, str) or not url.strip():
        raise InvalidInput("A URL is required")

    url = url.strip()
    if any(ch.isspace() or ord(ch) < 0x20 or ord(ch) == 0x7f for ch in url):
        raise InvalidInput(f"Invalid URL (contains whitespace or control characters): {url!r}")

    try:
        parsed = urlparse(url)
        parsed.port  # raises ValueError for a non-numeric or out-of-range port
    except ValueError as e:
        raise InvalidInput(f"Invalid URL: {e}") from e

    if parsed.scheme.lower() not in config.ALLOWED_URL_SCHEMES or not parsed.hostname:
        raise InvalidInput(f"Invalid URL: {url}")
    return url


def validate_dimension(name: str, value: Any, default: int) -> int:
    if value is None:
        return default
    if isinstance(value, bool) or not isinstance(value, int):
        raise InvalidInput(f"{name} must be an integer")
    if not 1 <= value <= config.MAX_VIEWPORT_DIMENSION:
        raise InvalidInput(f"{name} must be between 1 and {config.MAX_VIEWPORT_DIMENSION}")
    return value


def script_preview(script: str, limit: int = config.SCRIPT_PREVIEW_CHARS) -> str:
    """First `limit` characters of a script, with an ellipsis if cut."""
    return script[:limit] + ("..." if len(script) > limit else "")


def _elapsed_ms(started: float) -> int:
    return int((time.monotonic() - started) * 1000)


def _now() -> datetime:
    return datetime.now(timezone.utc)


# =============================================================================
# OPERATIONS
# =============================================================================

class ProxyOperations:
    """
    Runs navigation, screenshot, extraction and script operations against
    the shared browser.

    Navigation always leaves exactly one record in history once its input
    is valid, whether the page loaded, returned an error status, timed out
    or failed outright.
    """

    def __init__(
        self,
        engine: BrowserEngine,
        history: HistoryStore,
        screenshots_dir: Path = config.SCREENSHOTS_DIR,
        navigation_timeout_ms: int = config.NAVIGATION_TIMEOUT_MS,
        operation_timeout_s: float = config.OPERATION_TIMEOUT_S
    ):
        """
        Initialize the operations.

        Args:
            engine: Shared browser engine
            history: Store that receives one record per navigation
            screenshots_dir: Where captured PNGs are written
            navigation_timeout_ms: Bound for each navigation/capture/evaluation
            operation_timeout_s: Outer bound for a whole operation
        """
        self._engine = engine
        self._history = history
        self._screenshots_dir = Path(screenshots_dir)
        self._navigation_timeout_ms = navigation_timeout_ms
        self._operation_timeout_s = operation_timeout_s

    @property
    def engine(self) -> BrowserEngine:
        return self._engine

    def _run(self, coro):
        return self._engine.run(coro, timeout=self._operation_timeout_s)

    # -------------------------------------------------------------------------
    # navigate
    # -------------------------------------------------------------------------

    def navigate(self, url: str) -> NavigationResult:
        """
        Load a page at 1920x1080 and record the outcome in history.

        Raises:
            InvalidInput: Before any browser work, for a bad URL
            ProxyError: For browser/navigation failures, with history_id
                        set to the record written for the failed attempt
        """
        url = validate_url(url)
        log_info(f"Navigating to {url}", prefix="🧭")

        started = time.monotonic()
        try:
            title, status_code, response_time, content_size = self._run(self._load(url))
        except ProxyError as e:
            self._record_failure(url, e, started)
            raise
        except Exception as e:
            failure = NavigationFailed(str(e))
            self._record_failure(url, failure, started)
            raise failure from e

        record = self._history.add(
            url=url,
            title=title,
            response_time=response_time,
            status_code=status_code,
            content_size=content_size,
        )
        log_success(
            f"Loaded {url} ({status_code}, {response_time}ms, {content_size} bytes) "
            f"-> history #{record.id}"
        )
        return NavigationResult(
            url=url,
            title=title,
            response_time=response_time,
            status_code=status_code,
            content_size=content_size,
            history_id=record.id,
        )

    async def _load(self, url: str) -> Tuple[str, int, int, int]:
        started = time.monotonic()
        async with PageSession(self._engine) as session:
            response = await session.navigate_to(url, self._navigation_timeout_ms)
            response_time = _elapsed_ms(started)
            title = await session.read_title()
            status_code = response.status if response is not None else 0
            content = await session.read_content()
        return title, status_code, response_time, len(content.encode("utf-8"))

    def _record_failure(self, url: str, error: ProxyError, started: float) -> None:
        response_time = _elapsed_ms(started)
        if isinstance(error, BrowserTimeout):
            response_time = max(response_time, self._navigation_timeout_ms)

        record = self._history.add(
            url=url,
            title=None,
            response_time=response_time,
            status_code=0,
            content_size=0,
        )
        error.history_id = record.id
        log_error(f"Navigation to {url} failed: {error.message} -> history #{record.id}")

    # -------------------------------------------------------------------------
    # screenshot
    # -------------------------------------------------------------------------

    def screenshot(
        self,
        url: str,
        full_page: Optional[bool] = True,
        width: Optional[int] = None,
        height: Optional[int] = None,
        history_id: Optional[int] = None
    ) -> ScreenshotResult:
        """
        Capture a PNG of a page and store it under the screenshots directory.

        Args:
            url: Page to capture
            full_page: Whole scrollable page (True) or just the viewport
            width: Viewport width, default 1920
            height: Viewport height, default 1080
            history_id: Optional navigation record to attach the capture to

        Returns:
            ScreenshotResult with the served path (/screenshots/<file>)
        """
        url = validate_url(url)
        if full_page is None:
            full_page = True
        if not isinstance(full_page, bool):
            raise InvalidInput("fullPage must be a boolean")
        width = validate_dimension("width", width, config.BROWSER_VIEWPORT_WIDTH)
        height = validate_dimension("height", height, config.BROWSER_VIEWPORT_HEIGHT)
        if history_id is not None:
            if isinstance(history_id, bool) or not isinstance(history_id, int):
                raise InvalidInput("historyId must be an integer")
            if self._history.get(history_id) is None:
                raise NotFound(f"History record {history_id} not found")

        log_info(f"Capturing {url} ({width}x{height}, full_page={full_page})", prefix="📸")
        filename = self._run(self._capture(url, full_page, width, height))
        screenshot_path = f"{config.SCREENSHOTS_URL_PREFIX}/{filename}"

        if history_id is not None:
            if self._history.attach_screenshot(history_id, screenshot_path) is None:
                log_warning(f"History record {history_id} was removed before the capture finished")
                history_id = None

        log_success(f"Screenshot saved: {screenshot_path}")
        return ScreenshotResult(screenshot_path=screenshot_path, history_id=history_id)

    async def _capture(self, url: str, full_page: bool, width: int, height: int) -> str:
        self._screenshots_dir.mkdir(parents=True, exist_ok=True)
        filename = f"screenshot-{time.time_ns() // 1000}.png"
        filepath = self._screenshots_dir / filename

        async with PageSession(self._engine, width=width, height=height) as session:
            await session.navigate_to(url, self._navigation_timeout_ms)
            await session.capture(str(filepath), full_page, self._navigation_timeout_ms)
        return filename

    # -------------------------------------------------------------------------
    # extract
    # -------------------------------------------------------------------------

    def extract(self, url: str, selector: Optional[str] = None) -> ExtractionResult:
        """
        Extract DOM content from a page.

        With a selector, every matching element (possibly none); without
        one, the full serialized document.

        Raises:
            InvalidInput: For a bad URL or a selector the page can't parse
        """
        url = validate_url(url)
        if selector is not None and not isinstance(selector, str):
            raise InvalidInput("selector must be a string")
        selector = selector.strip() if selector else None

        log_info(f"Extracting {selector or 'document'} from {url}", prefix="🔎")
        content = self._run(self._extract(url, selector))

        return ExtractionResult(
            url=url,
            selector=selector or "html",
            content=content,
            extracted_at=_now(),
        )

    async def _extract(self, url: str, selector: Optional[str]):
        async with PageSession(self._engine) as session:
            await session.navigate_to(url, self._navigation_timeout_ms)
            if not selector:
                return await session.read_content()
            found = await session.evaluate(EXTRACT_ELEMENTS_JS, selector, self._navigation_timeout_ms)

        if found.get("invalidSelector"):
            raise InvalidInput(f"Invalid selector '{selector}': {found['invalidSelector']}")
        return [ExtractedElement.from_page(raw) for raw in found.get("elements", [])]

    # -------------------------------------------------------------------------
    # inject
    # -------------------------------------------------------------------------

    def inject(self, url: str, script: str) -> ScriptResult:
        """
        Run a script inside a loaded page.

        The script is the body of a function; its return value (awaited if
        it is a promise) becomes the result. Exceptions thrown by the script
        come back in ScriptResult.error rather than being raised.
        """
        url = validate_url(url)
        if not isinstance(script, str) or not script.strip():
            raise InvalidInput("A script is required")

        log_info(f"Injecting script ({len(script)} chars) into {url}", prefix="💉")
        outcome = self._run(self._inject(url, script))

        result = ScriptResult(
            url=url,
            script_preview=script_preview(script),
            executed_at=_now(),
        )
        if outcome.get("ok"):
            result.value = outcome.get("value")
            log_success(f"Script executed on {url}")
        else:
            result.error = outcome.get("error") or "Script failed"
            log_warning(f"Script raised inside {url}: {result.error}")
        return result

    async def _inject(self, url: str, script: str) -> dict:
        async with PageSession(self._engine) as session:
            await session.navigate_to(url, self._navigation_timeout_ms)
            return await session.evaluate(RUN_SCRIPT_JS, script, self._navigation_timeout_ms)
