"""
WebCompass Proxy - Browser Engine

Owns the one shared headless Chromium process and the event loop every
Playwright call runs on:
- Lazy initialization (the browser starts on first use)
- Headless-only operation with container hardening flags
- Concurrent first callers share a single in-flight launch
- Synchronous bridge for Flask worker threads
- Clean, idempotent shutdown

Usage:
    engine = BrowserEngine()

    # Lazy: browser starts inside the first coroutine that acquires it
    async def title(url):
        browser = await engine.acquire()
        page = await browser.new_page()
        ...

    engine.run(title("https://example.com"), timeout=90)

    # On SIGTERM
    engine.shutdown()
"""

import asyncio
import concurrent.futures
import threading
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Coroutine, List, Optional, TypeVar

from playwright.async_api import async_playwright

import config
from core.errors import BrowserTimeout, BrowserUnavailable
from core.logger import log_info, log_warning, log_error

T = TypeVar("T")


@dataclass
class BrowserHandle:
    """A launched browser and the Playwright driver that owns it."""
    browser: Any
    playwright: Any = None


async def launch_chromium(headless: bool, args: List[str]) -> BrowserHandle:
    """Start the Playwright driver and launch Chromium."""
    playwright = await async_playwright().start()
    try:
        browser = await playwright.chromium.launch(headless=headless, args=args)
    except Exception:
        await playwright.stop()
        raise
    return BrowserHandle(browser=browser, playwright=playwright)


Launcher = Callable[[bool, List[str]], Awaitable[BrowserHandle]]


class BrowserEngine:
    """
    Lazily started, process-wide browser shared by all operations.

    All Playwright objects live on one private asyncio loop running in a
    daemon thread. Request threads submit coroutines through run(); inside
    those coroutines, acquire() hands out the running browser, launching it
    on first use. The launch is a single task that every concurrent first
    caller awaits, so only one process is ever started per launch.
    """

    def __init__(
        self,
        launcher: Optional[Launcher] = None,
        headless: bool = config.BROWSER_HEADLESS,
        launch_args: Optional[List[str]] = None,
        operation_timeout: float = config.OPERATION_TIMEOUT_S
    ):
        """
        Initialize the browser engine.

        Args:
            launcher: Coroutine function (headless, args) -> BrowserHandle.
                      Defaults to launching Chromium through Playwright.
            headless: Run the browser without a window
            launch_args: Chromium command line flags
            operation_timeout: Default bound in seconds for run()
        """
        self._launcher = launcher or launch_chromium
        self._headless = headless
        self._launch_args = list(config.BROWSER_LAUNCH_ARGS if launch_args is None else launch_args)
        self._operation_timeout = operation_timeout

        self._handle: Optional[BrowserHandle] = None
        self._launch_task: Optional[asyncio.Task] = None
        self._launch_count = 0

        self._loop: Optional[asyncio.AbstractEventLoop] = None
        self._thread: Optional[threading.Thread] = None
        self._guard = threading.Lock()  # Protects loop creation and _closed
        self._closed = False

    @property
    def is_running(self) -> bool:
        """Check if a browser process is currently up."""
        return self._handle is not None and not self._closed

    @property
    def is_closed(self) -> bool:
        return self._closed

    @property
    def launch_count(self) -> int:
        """Number of launch attempts made so far."""
        return self._launch_count

    @property
    def status(self) -> str:
        if self._closed:
            return "stopped"
        return "running" if self._handle is not None else "not started"

    # =========================================================================
    # EVENT LOOP BRIDGE
    # =========================================================================

    def _submit(self, coro: Coroutine[Any, Any, T]) -> "concurrent.futures.Future[T]":
        """
        Schedule a coroutine on the engine loop, starting the loop thread on
        first use.

        Holds the same guard shutdown() takes to mark the engine closed, so a
        submitted coroutine is always queued ahead of the shutdown sweep that
        cancels it.
        """
        with self._guard:
            if self._closed:
                raise BrowserUnavailable("Browser engine has been shut down")
            if self._loop is None:
                loop = asyncio.new_event_loop()
                ready = threading.Event()
                thread = threading.Thread(
                    target=self._run_loop,
                    args=(loop, ready),
                    daemon=True,
                    name="BrowserEngine"
                )
                thread.start()
                ready.wait()
                self._loop = loop
                self._thread = thread
            return asyncio.run_coroutine_threadsafe(coro, self._loop)

    @staticmethod
    def _run_loop(loop: asyncio.AbstractEventLoop, ready: threading.Event) -> None:
        asyncio.set_event_loop(loop)
        loop.call_soon(ready.set)
        try:
            loop.run_forever()
        finally:
            loop.close()

    def run(self, coro: Coroutine[Any, Any, T], timeout: Optional[float] = None) -> T:
        """
        Run a coroutine on the engine loop and block until it finishes.

        Args:
            coro: Coroutine that drives the browser
            timeout: Outer bound in seconds, defaults to the engine's
                     operation timeout

        Returns:
            Whatever the coroutine returns

        Raises:
            BrowserUnavailable: If the engine is (or gets) shut down
            BrowserTimeout: If the timeout elapses first
        """
        if timeout is None:
            timeout = self._operation_timeout

        try:
            future = self._submit(coro)
        except BrowserUnavailable:
            coro.close()
            raise

        try:
            return future.result(timeout=timeout)
        except concurrent.futures.TimeoutError:
            future.cancel()
            raise BrowserTimeout(f"Browser operation exceeded {timeout:g}s")
        except concurrent.futures.CancelledError:
            raise BrowserUnavailable("Browser engine shut down during the operation")

    # =========================================================================
    # BROWSER LIFECYCLE
    # =========================================================================

    async def acquire(self):
        """
        Get the shared Playwright Browser, launching it if needed.

        Must be awaited on the engine loop (i.e. inside a coroutine passed
        to run()).

        Raises:
            BrowserUnavailable: If the launch fails or the engine is shut down
        """
        if self._closed:
            raise BrowserUnavailable("Browser engine has been shut down")

        handle = self._handle
        if handle is not None:
            if handle.browser.is_connected():
                return handle.browser
            log_warning("Browser process disconnected, relaunching")
            self._handle = None

        if self._launch_task is None:
            self._launch_task = asyncio.get_running_loop().create_task(self._launch())

        task = self._launch_task
        try:
            # Shielded so one waiter's cancellation doesn't abort the launch
            handle = await asyncio.shield(task)
        finally:
            if task.done() and self._launch_task is task:
                self._launch_task = None
        return handle.browser

    async def _launch(self) -> BrowserHandle:
        """Launch the browser process (runs once per launch task)."""
        self._launch_count += 1
        log_info("Starting headless browser", prefix="🌐")

        try:
            handle = await self._launcher(self._headless, self._launch_args)
        except Exception as e:
            log_error(f"Browser launch failed: {e}")
            raise BrowserUnavailable(f"Browser failed to launch: {e}") from e

        if self._closed:
            await self._close_handle(handle)
            raise BrowserUnavailable("Browser engine shut down during launch")

        self._handle = handle
        log_info("Headless browser ready", prefix="🌐")
        return handle

    @staticmethod
    async def _close_handle(handle: BrowserHandle) -> None:
        try:
            await handle.browser.close()
        finally:
            if handle.playwright is not None:
                await handle.playwright.stop()

    async def _shutdown_async(self, drain_timeout: float) -> None:
        """Close the browser, then cancel whatever is still in flight."""
        handle, self._handle = self._handle, None
        try:
            if handle is not None:
                await self._close_handle(handle)
        finally:
            current = asyncio.current_task()
            pending = [task for task in asyncio.all_tasks() if task is not current]
            for task in pending:
                task.cancel()
            if pending:
                await asyncio.wait(pending, timeout=drain_timeout)

    def shutdown(self, timeout: float = config.BROWSER_SHUTDOWN_TIMEOUT_S) -> None:
        """
        Terminate the browser process and stop the engine loop.

        Idempotent. In-flight operations are not drained: they fail with
        NavigationFailed or BrowserUnavailable once the browser is gone.
        """
        with self._guard:
            if self._closed:
                return
            self._closed = True
            loop, thread = self._loop, self._thread

        if loop is None:
            log_info("Browser engine stopped (browser was never started)", prefix="🌐")
            return

        future = asyncio.run_coroutine_threadsafe(self._shutdown_async(timeout), loop)
        try:
            future.result(timeout=timeout * 2)
        except Exception as e:
            log_error(f"Error closing browser: {e}")

        loop.call_soon_threadsafe(loop.stop)
        if thread is not None:
            thread.join(timeout=timeout)

        log_info("Headless browser shut down", prefix="🌐")
