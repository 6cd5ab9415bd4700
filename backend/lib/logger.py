"""
Logging Utility for the Backend

- Colour-coded levels (only when stdout is a terminal)
- Component icons keyed by logger name
- Section banners for request processing
- Request/response lines with timing
"""

import logging
import sys
from datetime import datetime
from typing import Any, Dict, Optional


class Colors:
    """ANSI color codes for terminal output."""
    RESET = '\033[0m'
    BOLD = '\033[1m'

    DEBUG = '\033[36m'      # Cyan
    INFO = '\033[32m'       # Green
    WARNING = '\033[33m'    # Yellow
    ERROR = '\033[31m'      # Red
    CRITICAL = '\033[35m'   # Magenta

    SECTION = '\033[94m'    # Bright Blue
    KEY = '\033[93m'        # Bright Yellow
    TIMESTAMP = '\033[90m'  # Dark Gray


LEVEL_COLORS = {
    'DEBUG': Colors.DEBUG,
    'INFO': Colors.INFO,
    'WARNING': Colors.WARNING,
    'ERROR': Colors.ERROR,
    'CRITICAL': Colors.CRITICAL,
}


class ColoredFormatter(logging.Formatter):
    """Formatter with colours and component icons."""

    ICONS = {
        'DEBUG': '🔍',
        'INFO': 'ℹ️',
        'WARNING': '⚠️',
        'ERROR': '❌',
        'CRITICAL': '🚨',
    }

    # Last dotted component of the logger name
    COMPONENT_ICONS = {
        'main': '🌐',
        'orchestrator': '🧭',
        'openai_service': '🧠',
        'persistence': '💾',
        'auth': '🔐',
    }

    def __init__(self, use_colors: bool = True):
        super().__init__()
        self.use_colors = use_colors and sys.stdout.isatty()

    def format(self, record: logging.LogRecord) -> str:
        icon = self.COMPONENT_ICONS.get(record.name.split('.')[-1], self.ICONS.get(record.levelname, '•'))
        timestamp = datetime.fromtimestamp(record.created).strftime('%H:%M:%S.%f')[:-3]

        if self.use_colors:
            level_color = LEVEL_COLORS.get(record.levelname, Colors.RESET)
            reset, bold, timestamp_color = Colors.RESET, Colors.BOLD, Colors.TIMESTAMP
        else:
            level_color = reset = bold = timestamp_color = ''

        formatted = (
            f"{timestamp_color}[{timestamp}]{reset} "
            f"{icon} {level_color}{record.levelname:8s}{reset} "
            f"{bold}{record.name}{reset} "
            f"| {record.getMessage()}"
        )

        if record.exc_info:
            formatted += f"\n{self.formatException(record.exc_info)}"

        return formatted


def _format_data(data: Dict[str, Any]) -> str:
    return "\n".join(f"  {key}: {value}" for key, value in data.items())


def _short_id(user_id: Optional[str]) -> Optional[str]:
    return user_id[:20] + "..." if user_id and len(user_id) > 20 else user_id


class StructuredLogger:
    """Logger wrapper that accepts a data dict alongside each message."""

    def __init__(self, name: str, logger: Optional[logging.Logger] = None):
        self.name = name
        self.logger = logger or logging.getLogger(name)

    def _log(self, level: int, message: str, data: Optional[Dict[str, Any]] = None, **kwargs):
        if data:
            message = f"{message}\n{_format_data(data)}"
        self.logger.log(level, message, **kwargs)

    def section(self, title: str, data: Optional[Dict[str, Any]] = None):
        """Banner for a unit of work, e.g. one orchestrated turn."""
        separator = "=" * 80
        lines = [separator, f"📋 {title.upper()}"]
        if data:
            lines.append(_format_data(data))
        lines.append(separator)
        self.logger.info("\n" + "\n".join(lines))

    def debug(self, message: str, data: Optional[Dict[str, Any]] = None):
        self._log(logging.DEBUG, message, data)

    def info(self, message: str, data: Optional[Dict[str, Any]] = None):
        self._log(logging.INFO, message, data)

    def warning(self, message: str, data: Optional[Dict[str, Any]] = None):
        self._log(logging.WARNING, message, data)

    def error(self, message: str, error: Optional[Exception] = None, data: Optional[Dict[str, Any]] = None):
        if error:
            message = f"{message} Error: {type(error).__name__}: {error}"
        self._log(logging.ERROR, message, data, exc_info=error)

    def success(self, message: str, data: Optional[Dict[str, Any]] = None):
        self._log(logging.INFO, f"✅ {message}", data)

    def request(self, method: str, path: str, user_id: Optional[str] = None, data: Optional[Dict[str, Any]] = None):
        request_data = {"user_id": _short_id(user_id) or "guest"}
        if data:
            request_data.update(data)
        self._log(logging.INFO, f"📥 REQUEST: {method} {path}", request_data)

    def response(self, status: int, path: str, duration: Optional[float] = None, data: Optional[Dict[str, Any]] = None):
        response_data = {"duration_ms": f"{duration * 1000:.2f}" if duration is not None else None}
        if data:
            response_data.update(data)
        self._log(logging.INFO, f"📤 RESPONSE: {status} {path}", response_data)


def setup_logging(level: int = logging.INFO, use_colors: bool = True):
    """Route all logging through one coloured stdout handler."""
    root_logger = logging.getLogger()
    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setLevel(level)
    console_handler.setFormatter(ColoredFormatter(use_colors=use_colors))

    root_logger.setLevel(level)
    root_logger.addHandler(console_handler)

    # Suppress noisy loggers
    for noisy in ('asyncio', 'httpx', 'httpcore', 'openai', 'urllib3'):
        logging.getLogger(noisy).setLevel(logging.WARNING)

    return root_logger


def get_logger(name: str) -> StructuredLogger:
    """Get a structured logger instance."""
    return StructuredLogger(name, logging.getLogger(name))
