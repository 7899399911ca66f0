"""
WebCompass Proxy - Configuration
Paths, constants, timeouts and browser launch settings
"""

import os
from pathlib import Path
from dotenv import load_dotenv

# Load environment variables
load_dotenv()

# =============================================================================
# PATHS
# =============================================================================
PROJECT_ROOT = Path(__file__).parent
DATA_DIR = PROJECT_ROOT / "data"
LOGS_DIR = PROJECT_ROOT / "logs"
DIAGNOSTIC_LOG_PATH = LOGS_DIR / "diagnostic.log"

# Captured PNGs live here and are served back under /screenshots/.
# Nothing else is written to disk; history and scripts are memory-only.
SCREENSHOTS_DIR = Path(os.getenv("SCREENSHOTS_DIR", str(DATA_DIR / "screenshots")))
SCREENSHOTS_URL_PREFIX = "/screenshots"

# =============================================================================
# VERSION
# =============================================================================
VERSION = "0.1.0"
PROJECT_NAME = "WebCompass Proxy"

# =============================================================================
# HTTP API CONFIGURATION
# =============================================================================
HTTP_HOST = os.getenv("HTTP_HOST", "0.0.0.0")
HTTP_PORT = int(os.getenv("HTTP_PORT", "5000"))
HTTP_MAX_CONTENT_LENGTH = 10 * 1024 * 1024     # 10MB request body limit
SCREENSHOT_CACHE_MAX_AGE = 86400                # 1 day

# =============================================================================
# BROWSER CONFIGURATION
# =============================================================================
BROWSER_HEADLESS = os.getenv("BROWSER_HEADLESS", "true").lower() == "true"

# Hardening flags for running Chromium inside containers:
# no sandbox, no GPU, no first-run dialogs.
BROWSER_LAUNCH_ARGS = [
    "--no-sandbox",
    "--disable-setuid-sandbox",
    "--disable-dev-shm-usage",
    "--disable-accelerated-2d-canvas",
    "--no-first-run",
    "--no-zygote",
    "--disable-gpu",
]

BROWSER_VIEWPORT_WIDTH = 1920
BROWSER_VIEWPORT_HEIGHT = 1080
MAX_VIEWPORT_DIMENSION = 10000

# Navigation waits for network quiescence ("networkidle": no connections
# for 500ms) or the timeout, whichever comes first.
NAVIGATION_TIMEOUT_MS = int(os.getenv("NAVIGATION_TIMEOUT_MS", "30000"))
NAVIGATION_WAIT_UNTIL = "networkidle"

# Outer backstop for a whole operation (navigate + capture/evaluate + close).
OPERATION_TIMEOUT_S = float(os.getenv("OPERATION_TIMEOUT_S", "90"))
BROWSER_SHUTDOWN_TIMEOUT_S = 10.0

ALLOWED_URL_SCHEMES = ("http", "https")

# =============================================================================
# SCRIPT INJECTION
# =============================================================================
SCRIPT_PREVIEW_CHARS = 100

# =============================================================================
# LOGGING CONFIGURATION
# =============================================================================
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")
LOG_TO_FILE = True
LOG_TO_CONSOLE = True
