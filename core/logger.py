"""
WebCompass Proxy - Logging
Rich console output mirrored into the diagnostic log file
"""

import logging
from datetime import datetime
from pathlib import Path
from typing import Optional

from rich.console import Console
from rich.markup import escape
from rich.theme import Theme

console = Console(theme=Theme({
    "info": "cyan",
    "warning": "yellow",
    "error": "bold red",
    "clock": "dim white",
    "banner": "bold magenta",
    "detail": "dim cyan",
}))

_logger: Optional[logging.Logger] = None
_log_to_console: bool = True

_LEVELS = {
    "info": logging.INFO,
    "warning": logging.WARNING,
    "error": logging.ERROR,
}


def setup_logging(
    log_file_path: Path,
    level: str = "INFO",
    log_to_file: bool = True,
    log_to_console: bool = True
) -> logging.Logger:
    """
    Configure the "webcompass" logger.

    The file handler records everything at DEBUG and above with the thread
    name, since operations run on request threads and the engine thread.
    """
    global _logger, _log_to_console

    _log_to_console = log_to_console
    _logger = logging.getLogger("webcompass")
    _logger.setLevel(getattr(logging, level.upper()))
    _logger.handlers.clear()

    if log_to_file:
        log_file_path.parent.mkdir(parents=True, exist_ok=True)
        handler = logging.FileHandler(log_file_path, encoding="utf-8")
        handler.setLevel(logging.DEBUG)
        handler.setFormatter(logging.Formatter(
            "[%(asctime)s] %(levelname)s - %(threadName)s - %(message)s",
            datefmt="%Y-%m-%d %H:%M:%S"
        ))
        _logger.addHandler(handler)

    return _logger


def _print(markup: str) -> None:
    if _log_to_console:
        stamp = datetime.now().strftime("%H:%M:%S")
        console.print(f"[clock][{stamp}][/clock] {markup}", highlight=False)


def _file(level: int, text: str) -> None:
    if _logger:
        _logger.log(level, text)


def log(message: str, level: str = "info", prefix: str = "") -> None:
    """Log a message to the console and the diagnostic file."""
    text = f"{prefix} {message}" if prefix else message
    style = level if level in _LEVELS else "info"
    _print(f"[{style}]{escape(text)}[/{style}]")
    _file(_LEVELS.get(level, logging.INFO), text)


def log_info(message: str, prefix: str = "") -> None:
    log(message, "info", prefix)


def log_success(message: str, prefix: str = "") -> None:
    log(message, "info", prefix or "✅")


def log_warning(message: str, prefix: str = "") -> None:
    log(message, "warning", prefix or "⚠️")


def log_error(message: str, prefix: str = "") -> None:
    log(message, "error", prefix or "❌")


def log_banner(title: str) -> None:
    """Framed title line, used for startup and ready."""
    rule = "=" * 60
    for line in (rule, title, rule):
        _print(f"[banner]{escape(line)}[/banner]")
        _file(logging.INFO, line)


def log_section(title: str, emoji: str = "📋") -> None:
    _print(f"[banner]{emoji} {escape(title)}:[/banner]")
    _file(logging.INFO, f"{title}:")


def log_subsection(message: str, indent: int = 1) -> None:
    """Indented detail line under a section."""
    text = "   " * indent + message
    _print(f"[detail]{escape(text)}[/detail]")
    _file(logging.INFO, text)
