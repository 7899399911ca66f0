"""
Tests for console/file logging.
"""

import shutil
import tempfile
import unittest
from pathlib import Path
from unittest.mock import patch

from core import logger


class TestLogger(unittest.TestCase):

    def setUp(self):
        self.tmp = Path(tempfile.mkdtemp(prefix="webcompass_log_"))
        self.addCleanup(shutil.rmtree, self.tmp, ignore_errors=True)
        self.log_path = self.tmp / "logs" / "diagnostic.log"

        patcher = patch.multiple(logger, _logger=None, _log_to_console=True)
        patcher.start()
        self.addCleanup(patcher.stop)

    def configure(self):
        configured = logger.setup_logging(self.log_path, level="DEBUG", log_to_console=False)
        self.addCleanup(self.close_handlers, configured)
        return configured

    @staticmethod
    def close_handlers(configured):
        for handler in configured.handlers:
            handler.close()
        configured.handlers.clear()

    def read_log(self):
        for handler in logger._logger.handlers:
            handler.flush()
        return self.log_path.read_text(encoding="utf-8")

    def test_messages_are_mirrored_to_file(self):
        self.configure()

        logger.log_info("Navigating to https://example.com", prefix="🧭")
        logger.log_error("Navigation failed")

        text = self.read_log()
        self.assertIn("INFO", text)
        self.assertIn("🧭 Navigating to https://example.com", text)
        self.assertIn("ERROR", text)
        self.assertIn("❌ Navigation failed", text)

    def test_markup_in_messages_is_printed_literally(self):
        self.configure()

        with patch.object(logger, "_log_to_console", True), \
                patch.object(logger.console, "print") as printed:
            logger.log_warning("Selector [data-x] not found")

        markup = printed.call_args[0][0]
        self.assertIn(r"\[data-x]", markup)
        self.assertIn("Selector [data-x] not found", self.read_log())

    def test_console_only_without_setup(self):
        with patch.object(logger.console, "print") as printed:
            logger.log_info("hello")
        printed.assert_called_once()
        self.assertFalse(self.log_path.exists())

    def test_banner_is_framed(self):
        self.configure()
        logger.log_banner("WEBCOMPASS PROXY READY")
        lines = [line for line in self.read_log().splitlines() if line]
        self.assertTrue(lines[0].endswith("=" * 60))
        self.assertTrue(lines[1].endswith("WEBCOMPASS PROXY READY"))
        self.assertTrue(lines[2].endswith("=" * 60))


if __name__ == "__main__":
    unittest.main()
