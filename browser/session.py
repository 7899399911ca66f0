"""
WebCompass Proxy - Page Session

One disposable page inside the shared browser, scoped to a single
operation and closed on every exit path:

    async with PageSession(engine, width=1280, height=720) as session:
        response = await session.navigate_to(url, timeout_ms=30000)
        html = await session.read_content()

Playwright errors are translated into the proxy's own error types here so
operations never see driver exceptions.
"""

import asyncio
from contextlib import contextmanager
from typing import Any, Dict, Type

from playwright.async_api import Error as PlaywrightError
from playwright.async_api import TimeoutError as PlaywrightTimeoutError

import config
from core.errors import (
    BrowserTimeout,
    BrowserUnavailable,
    NavigationFailed,
    NavigationTimeout,
)
from core.logger import log_warning


def error_reason(error: Exception) -> str:
    """First line of a driver error; Playwright appends a multi-line call log."""
    text = str(error).strip()
    return text.splitlines()[0] if text else error.__class__.__name__


@contextmanager
def translate_errors(action: str, timeout_error: Type[BrowserTimeout] = BrowserTimeout):
    """Map Playwright timeouts and failures onto proxy errors."""
    try:
        yield
    except PlaywrightTimeoutError as e:
        raise timeout_error(f"{action} timed out: {error_reason(e)}") from e
    except PlaywrightError as e:
        raise NavigationFailed(f"{action} failed: {error_reason(e)}") from e


class PageSession:
    """
    Short-lived handle to one page of the shared browser.

    Never shared between operations. Each page is created with
    browser.new_page(), which gives it its own browser context (cookies,
    storage) that is discarded with the page.
    """

    def __init__(
        self,
        engine,
        width: int = config.BROWSER_VIEWPORT_WIDTH,
        height: int = config.BROWSER_VIEWPORT_HEIGHT
    ):
        self._engine = engine
        self.viewport: Dict[str, int] = {"width": width, "height": height}
        self.page = None

    async def __aenter__(self) -> "PageSession":
        await self.open()
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.close()

    async def open(self):
        """
        Open a new page at the configured viewport.

        Raises:
            BrowserUnavailable: If the browser can't be started or can't
                                open a page
        """
        browser = await self._engine.acquire()
        try:
            self.page = await browser.new_page(viewport=self.viewport)
        except PlaywrightError as e:
            raise BrowserUnavailable(f"Could not open a page: {error_reason(e)}") from e
        return self.page

    async def navigate_to(self, url: str, timeout_ms: int = config.NAVIGATION_TIMEOUT_MS):
        """
        Load a URL and wait for network quiescence.

        Returns:
            The main resource Response, or None (e.g. same-document or
            about: navigations)

        Raises:
            NavigationTimeout: If quiescence isn't reached within timeout_ms
            NavigationFailed: On DNS, network or browser errors
        """
        with translate_errors(f"Navigation to {url}", NavigationTimeout):
            return await self.page.goto(
                url,
                wait_until=config.NAVIGATION_WAIT_UNTIL,
                timeout=timeout_ms
            )

    async def read_title(self) -> str:
        with translate_errors("Reading page title"):
            return await self.page.title()

    async def read_content(self) -> str:
        """Serialize the full rendered document."""
        with translate_errors("Serializing page content"):
            return await self.page.content()

    async def evaluate(self, expression: str, arg: Any = None,
                       timeout_ms: int = config.NAVIGATION_TIMEOUT_MS) -> Any:
        """
        Evaluate a function expression in the page with a time bound.

        Raises:
            BrowserTimeout: If evaluation takes longer than timeout_ms
            NavigationFailed: If the page context is lost mid-evaluation
        """
        with translate_errors("Page evaluation"):
            try:
                return await asyncio.wait_for(
                    self.page.evaluate(expression, arg),
                    timeout=timeout_ms / 1000
                )
            except asyncio.TimeoutError as e:
                raise BrowserTimeout(f"Page evaluation exceeded {timeout_ms}ms") from e

    async def capture(self, path: str, full_page: bool,
                      timeout_ms: int = config.NAVIGATION_TIMEOUT_MS) -> None:
        """Write a PNG of the viewport or the whole scrollable page."""
        with translate_errors("Screenshot capture"):
            await self.page.screenshot(
                path=path,
                full_page=full_page,
                type="png",
                timeout=timeout_ms
            )

    async def close(self) -> None:
        """Release the page. Safe to call more than once."""
        page, self.page = self.page, None
        if page is None:
            return
        try:
            await page.close()
        except Exception as e:
            log_warning(f"Failed to close page: {error_reason(e)}")
