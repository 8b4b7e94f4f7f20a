"""
Site screenshot crawler: breadth-first, same-site crawl that captures one
full-page screenshot per reachable page and streams progress events.
"""
from crawler.core import ConfigError, CrawlConfig
from crawler.engine import CrawlOrchestrator
from crawler.events import CrawlEvent
from crawler.frontier import Frontier
from crawler.models import CrawlState, CrawlSummary, CrawlTarget, PageResult
from crawler.policy import canonicalize, is_crawlable
from crawler.worker import PageWorker

__version__ = "1.0.0"
__all__ = [
    "ConfigError",
    "CrawlConfig",
    "CrawlOrchestrator",
    "CrawlEvent",
    "Frontier",
    "CrawlState",
    "CrawlSummary",
    "CrawlTarget",
    "PageResult",
    "PageWorker",
    "canonicalize",
    "is_crawlable",
]
