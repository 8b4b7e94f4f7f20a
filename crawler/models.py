from dataclasses import dataclass, field
from enum import Enum
from typing import List, Optional


class CrawlState(Enum):
    IDLE = "IDLE"
    RUNNING = "RUNNING"
    DRAINING = "DRAINING"
    CANCELLED = "CANCELLED"


class ErrorKind(Enum):
    NAVIGATION = "navigation"
    EXTRACTION = "extraction"
    SCREENSHOT = "screenshot"
    INTERNAL = "internal"


@dataclass(frozen=True)
class CrawlTarget:
    """
    A unit of crawl work.
    Invariants: url is canonical and is the identity; depth >= 0.
    """
    url: str
    depth: int = 0


@dataclass(frozen=True)
class ErrorInfo:
    kind: ErrorKind
    message: str


@dataclass(frozen=True)
class PageResult:
    """
    Output of a Page Worker for one target.
    error set => screenshot is None and discovered_links is empty,
    except for a failed capture, which keeps the links found before it.
    """
    url: str
    depth: int
    screenshot: Optional[bytes] = None
    discovered_links: List[str] = field(default_factory=list)
    error: Optional[ErrorInfo] = None

    @property
    def ok(self) -> bool:
        return self.error is None


@dataclass
class CrawlSummary:
    """Counters reported when a crawl session ends."""
    seed_url: str
    pages_processed: int = 0
    successes: int = 0
    errors: int = 0
    screenshots: int = 0
    links_enqueued: int = 0
    elapsed_seconds: float = 0.0
    cancelled: bool = False
