#!/usr/bin/env python3
"""
WebCompass Proxy - Main Entry Point
HTTP service that drives a shared headless browser

Usage:
    python main.py                   # Serve on HTTP_HOST:HTTP_PORT (default 0.0.0.0:5000)
    python main.py --port 8080       # Serve on another port
    python main.py --headful         # Show the browser window (debugging)
    python main.py --log-level DEBUG
"""

import sys
import signal
import threading
import argparse
from pathlib import Path
from typing import Optional

# Ensure we can import from project root
sys.path.insert(0, str(Path(__file__).parent))

import config
from core.logger import (
    setup_logging,
    log_banner,
    log_section,
    log_subsection,
    log_success,
    log_warning,
    log_error,
)
from concurrency.locks import init_lock_manager, get_lock_manager
from browser.engine import BrowserEngine
from browser.operations import ProxyOperations
from storage.history import HistoryStore
from storage.scripts import ScriptLibrary
from interface.http_api import create_app, init_http_server, get_http_server


# Global shutdown event
_shutdown_event = threading.Event()

# The one browser engine for this process
_engine: Optional[BrowserEngine] = None


def signal_handler(signum, frame):
    """Handle shutdown signals gracefully."""
    print()  # New line after ^C
    log_warning("Shutdown signal received...")
    _shutdown_event.set()


def initialize_system(args: argparse.Namespace) -> bool:
    """
    Initialize all system components.

    Returns:
        True if successful, False otherwise
    """
    global _engine

    setup_logging(
        log_file_path=config.DIAGNOSTIC_LOG_PATH,
        level=args.log_level or config.LOG_LEVEL,
        log_to_file=config.LOG_TO_FILE,
        log_to_console=config.LOG_TO_CONSOLE
    )

    log_banner(f"🧭 {config.PROJECT_NAME} v{config.VERSION} - Headless Browser Proxy")

    headless = config.BROWSER_HEADLESS and not args.headful
    host = args.host or config.HTTP_HOST
    port = args.port or config.HTTP_PORT

    print_configuration(headless, host, port)

    init_lock_manager()

    # Browser starts lazily on the first operation, not here
    _engine = BrowserEngine(headless=headless)
    history = HistoryStore()
    scripts = ScriptLibrary()
    operations = ProxyOperations(
        engine=_engine,
        history=history,
        screenshots_dir=config.SCREENSHOTS_DIR,
    )

    app = create_app(operations, history, scripts, screenshots_dir=config.SCREENSHOTS_DIR)
    init_http_server(app, host=host, port=port)

    return True


def print_configuration(headless: bool, host: str, port: int) -> None:
    """Print configuration summary."""
    log_section("Configuration", "📡")
    log_subsection(f"HTTP API: http://{host}:{port}")
    log_subsection(f"Diagnostic Log: {config.DIAGNOSTIC_LOG_PATH}")
    log_subsection(f"Screenshots: {config.SCREENSHOTS_DIR}")

    log_section("Browser", "🌐")
    log_subsection(f"Mode: {'headless' if headless else 'headful'} (lazy start)")
    log_subsection(f"Viewport: {config.BROWSER_VIEWPORT_WIDTH}x{config.BROWSER_VIEWPORT_HEIGHT}")
    log_subsection(f"Navigation: wait for {config.NAVIGATION_WAIT_UNTIL}, timeout {config.NAVIGATION_TIMEOUT_MS}ms")
    log_subsection(f"Operation backstop: {config.OPERATION_TIMEOUT_S:g}s")
    log_subsection(f"Launch flags: {' '.join(config.BROWSER_LAUNCH_ARGS)}")


def start_background_services() -> None:
    """Start all background services."""
    log_section("Starting Services", "🔧")

    http_server = get_http_server()
    http_server.start()
    log_subsection(f"HTTP API listening on http://{http_server.host}:{http_server.port}")


def stop_background_services() -> None:
    """Stop all background services gracefully."""
    log_section("Stopping Services", "🛑")

    try:
        http_server = get_http_server()
        if http_server:
            http_server.stop()
            log_subsection("HTTP API stopped")
    except Exception as e:
        log_error(f"Error stopping HTTP API: {e}")

    # In-flight operations fail once the browser is gone; they are not drained
    try:
        if _engine is not None:
            _engine.shutdown()
            log_subsection("Browser engine stopped")
    except Exception as e:
        log_error(f"Error stopping browser engine: {e}")

    get_lock_manager().log_stats()


def main() -> int:
    """
    Main entry point.

    Returns:
        Exit code (0 for success, non-zero for error)
    """
    parser = argparse.ArgumentParser(
        description="WebCompass Proxy - Headless browser HTTP service",
        formatter_class=argparse.RawDescriptionHelpFormatter
    )
    parser.add_argument("--host", help=f"Bind address (default {config.HTTP_HOST})")
    parser.add_argument("--port", "-p", type=int, help=f"Port (default {config.HTTP_PORT})")
    parser.add_argument(
        "--headful",
        action="store_true",
        help="Run the browser with a visible window"
    )
    parser.add_argument(
        "--log-level",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        help=f"Logging level (default {config.LOG_LEVEL})"
    )
    args = parser.parse_args()

    signal.signal(signal.SIGINT, signal_handler)
    signal.signal(signal.SIGTERM, signal_handler)

    try:
        if not initialize_system(args):
            log_error("System initialization failed")
            return 1

        start_background_services()
        log_banner(f"✅ {config.PROJECT_NAME.upper()} READY")

        # Block until SIGINT/SIGTERM
        while not _shutdown_event.wait(timeout=1.0):
            pass

        stop_background_services()
        log_success(f"{config.PROJECT_NAME} shutdown complete")
        return 0

    except KeyboardInterrupt:
        log_warning("Interrupted")
        stop_background_services()
        return 130

    except Exception as e:
        log_error(f"Fatal error: {e}")
        import traceback
        traceback.print_exc()
        stop_background_services()
        return 1


if __name__ == "__main__":
    sys.exit(main())
