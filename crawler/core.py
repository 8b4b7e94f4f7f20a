"""
FILE DESCRIPTION: Foundational module for crawl configuration and logging.
KEY FUNCTIONS/CLASSES: CrawlConfig, ConfigError, CrawlFormatter, setup_logger
"""

import logging
import os
import sys
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, Optional

from dotenv import load_dotenv

# === CONFIGURATION SECTION ===

load_dotenv(Path(__file__).resolve().parents[1] / '.env')


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    try:
        return int(raw.strip())
    except ValueError:
        return default


def _env_float(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    try:
        return float(raw.strip())
    except ValueError:
        return default


def _env_bool(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None:
        return default
    return raw.strip().lower() in ("1", "true", "yes", "y", "on")


# Crawl session defaults
MAX_DEPTH = _env_int("CRAWL_MAX_DEPTH", 3)
MAX_PAGES = _env_int("CRAWL_MAX_PAGES", 20)
CONCURRENCY = _env_int("CRAWL_CONCURRENCY", 5)

# Playwright waiting periods (seconds)
NAV_TIMEOUT = _env_float("NAV_TIMEOUT", 30.0)
NETWORK_IDLE_TIMEOUT = _env_float("NETWORK_IDLE_TIMEOUT", 5.0)

# Number of discovered links forwarded in a success event
LINK_PREVIEW_LIMIT = _env_int("LINK_PREVIEW_LIMIT", 10)

# Browser
HEADLESS = _env_bool("HEADLESS", True)
VIEWPORT_WIDTH = _env_int("VIEWPORT_WIDTH", 1280)
VIEWPORT_HEIGHT = _env_int("VIEWPORT_HEIGHT", 720)
SCREENSHOT_QUALITY = _env_int("SCREENSHOT_QUALITY", 80)
USER_AGENT = os.getenv(
    "USER_AGENT",
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36",
)

# HTTP surface
PORT = _env_int("PORT", 3000)

LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()
LOG_FILE = os.getenv("LOG_FILE") or None


class ConfigError(ValueError):
    """Raised when a crawl cannot start because its parameters are invalid."""
    pass


def _positive_int(name: str, value: Any, minimum: int = 1) -> int:
    # bool is an int subclass; "true" is not a page count
    if isinstance(value, bool):
        raise ConfigError(f"{name} must be an integer, got {value!r}")
    try:
        number = int(value)
    except (TypeError, ValueError):
        raise ConfigError(f"{name} must be an integer, got {value!r}") from None
    if isinstance(value, float) and not value.is_integer():
        raise ConfigError(f"{name} must be an integer, got {value!r}")
    if number < minimum:
        raise ConfigError(f"{name} must be >= {minimum}, got {number}")
    return number


@dataclass(frozen=True)
class CrawlConfig:
    """
    Parameters accepted by CrawlOrchestrator.start().
    The url is validated by the orchestrator (it needs the canonicalizer),
    numeric bounds are validated here.
    """
    url: str
    max_depth: int = MAX_DEPTH
    max_pages: int = MAX_PAGES
    concurrency: int = CONCURRENCY
    nav_timeout: float = NAV_TIMEOUT

    def __post_init__(self):
        if not isinstance(self.url, str) or not self.url.strip():
            raise ConfigError("URL is required")
        object.__setattr__(self, "url", self.url.strip())
        object.__setattr__(self, "max_depth", _positive_int("maxDepth", self.max_depth, minimum=0))
        object.__setattr__(self, "max_pages", _positive_int("maxPages", self.max_pages))
        object.__setattr__(self, "concurrency", _positive_int("concurrency", self.concurrency))
        try:
            timeout = float(self.nav_timeout)
        except (TypeError, ValueError):
            raise ConfigError(f"timeout must be a number, got {self.nav_timeout!r}") from None
        if timeout <= 0:
            raise ConfigError(f"timeout must be > 0, got {timeout}")
        object.__setattr__(self, "nav_timeout", timeout)

    @classmethod
    def from_request(cls, body: Optional[Dict[str, Any]]) -> "CrawlConfig":
        """Build a config from a JSON request body using the wire names (maxDepth, maxPages)."""
        if body is None:
            body = {}
        if not isinstance(body, dict):
            raise ConfigError("URL is required")
        url = body.get("url")
        if not url:
            raise ConfigError("URL is required")
        return cls(
            url=url,
            max_depth=body.get("maxDepth", MAX_DEPTH),
            max_pages=body.get("maxPages", MAX_PAGES),
            concurrency=body.get("concurrency", CONCURRENCY),
            nav_timeout=body.get("timeout", NAV_TIMEOUT),
        )


# === LOGGING SECTION ===

class CrawlFormatter(logging.Formatter):
    """
    [ Tue Jan 06 05:32:41 AM UTC 2026 ] : INFO : Worker_2 : Message

    The context column is taken from extra={"context": ...} and falls back to
    the emitting thread name, so pool workers are identifiable without extra.
    """
    def format(self, record):
        dt = datetime.fromtimestamp(record.created, tz=timezone.utc)
        timestamp = dt.strftime("%a %b %d %I:%M:%S %p UTC %Y")
        context = getattr(record, 'context', None) or record.threadName or 'root'
        message = f"[ {timestamp} ] : {record.levelname} : {context} : {record.getMessage()}"
        if record.exc_info:
            message = f"{message}\n{self.formatException(record.exc_info)}"
        return message


def setup_logger(name="crawler", log_file=LOG_FILE, level=LOG_LEVEL):
    """
    Initializes/retrieves a logger. Only the root 'crawler' logger gets handlers;
    child loggers (crawler.engine, crawler.rendering) propagate to it.
    """
    logger = logging.getLogger(name)
    logger.setLevel(level)

    if logger.handlers:
        return logger

    if name != "crawler":
        logger.propagate = True
        setup_logger("crawler", log_file=log_file, level=level)
        return logger

    formatter = CrawlFormatter()

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setFormatter(formatter)
    logger.addHandler(console_handler)

    if log_file:
        file_handler = logging.FileHandler(log_file)
        file_handler.setFormatter(formatter)
        logger.addHandler(file_handler)

    return logger


# Global logger instance
logger = setup_logger()
