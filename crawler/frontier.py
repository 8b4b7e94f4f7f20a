"""
Thread-safe frontier for the screenshot crawler.
Holds the pending queue plus the visited / in-flight / screenshotted sets
for one crawl session, and guarantees no URL is queued or processed twice.
"""

import os
from collections import deque
from threading import Lock
from typing import Deque, Dict, Optional, Set

import psutil

from crawler.core import ConfigError, setup_logger
from crawler.models import CrawlTarget
from crawler.policy import canonicalize, origin_host

logger = setup_logger("crawler.frontier")


class Frontier:
    """
    FIFO frontier with mutually exclusive pending / in-flight / visited membership.

    Every collection is guarded by the same lock: a URL moves between sets
    atomically, so no reader can observe it in two of them.
    """

    def __init__(self, max_depth: int = 3, concurrency: int = 5):
        self.max_depth = max_depth
        self.concurrency = concurrency

        self.state_lock = Lock()
        self.pending: Deque[CrawlTarget] = deque()
        self._pending_urls: Set[str] = set()
        self.in_flight: Set[str] = set()
        self.visited: Set[str] = set()
        self.screenshotted: Set[str] = set()
        self.base_origin: Optional[str] = None
        self.base_url: Optional[str] = None

    def set_base_origin(self, url: str) -> str:
        """
        Register the seed URL. Its host (without www.) defines same-site
        membership for the rest of the session. Returns the canonical seed.
        """
        canonical = canonicalize(url)
        if canonical is None:
            raise ConfigError(f"Invalid base URL: {url!r}")
        with self.state_lock:
            self.base_url = canonical
            self.base_origin = origin_host(canonical)
        logger.info(f"set_base_origin: {self.base_origin} (seed={canonical})")
        return canonical

    def enqueue(self, url: str, depth: int) -> bool:
        """
        Append url at depth to the tail of pending.
        Silent no-op (returns False) for invalid URLs, depth beyond max_depth,
        or a URL already pending, in flight or visited.
        """
        normalized = canonicalize(url, self.base_url)
        if normalized is None:
            logger.debug(f"enqueue: skipped (invalid): {url!r}")
            return False
        if depth < 0 or depth > self.max_depth:
            logger.debug(f"enqueue: skipped (depth {depth} > {self.max_depth}): {normalized}")
            return False

        with self.state_lock:
            if normalized in self.visited:
                logger.debug(f"enqueue: skipped (already visited): {normalized}")
                return False
            if normalized in self.in_flight:
                logger.debug(f"enqueue: skipped (in flight): {normalized}")
                return False
            if normalized in self._pending_urls:
                logger.debug(f"enqueue: skipped (already pending): {normalized}")
                return False

            self.pending.append(CrawlTarget(url=normalized, depth=depth))
            self._pending_urls.add(normalized)
            queue_size = len(self.pending)

        logger.debug(f"enqueue: queued {normalized} (depth={depth}) qsize={queue_size}")
        return True

    def try_dequeue(self) -> Optional[CrawlTarget]:
        """
        Pop the head of pending into in_flight.
        Returns None when pending is empty or the concurrency bound is reached.
        """
        with self.state_lock:
            if not self.pending or len(self.in_flight) >= self.concurrency:
                return None
            target = self.pending.popleft()
            self._pending_urls.discard(target.url)
            self.in_flight.add(target.url)
            return target

    def complete(self, url: str) -> None:
        """Move url from in_flight to visited. Idempotent."""
        normalized = canonicalize(url, self.base_url) or url
        with self.state_lock:
            self.in_flight.discard(normalized)
            self.visited.add(normalized)

    def needs_screenshot(self, url: str) -> bool:
        normalized = canonicalize(url, self.base_url) or url
        with self.state_lock:
            return normalized not in self.screenshotted

    def mark_screenshotted(self, url: str) -> None:
        normalized = canonicalize(url, self.base_url) or url
        with self.state_lock:
            self.screenshotted.add(normalized)

    def has_work(self) -> bool:
        with self.state_lock:
            return bool(self.pending) or bool(self.in_flight)

    def in_flight_count(self) -> int:
        with self.state_lock:
            return len(self.in_flight)

    def discard_pending(self) -> int:
        """Drop every pending target. Returns how many were dropped."""
        with self.state_lock:
            dropped = len(self.pending)
            self.pending.clear()
            self._pending_urls.clear()
        if dropped:
            logger.info(f"discard_pending: dropped {dropped} pending target(s)")
        return dropped

    def reset(self) -> None:
        """Clear all crawl state between independent sessions."""
        with self.state_lock:
            self.pending.clear()
            self._pending_urls.clear()
            self.in_flight.clear()
            self.visited.clear()
            self.screenshotted.clear()
            self.base_origin = None
            self.base_url = None

    def get_stats(self) -> Dict[str, int]:
        with self.state_lock:
            return {
                "queue_size": len(self.pending),
                "in_flight_count": len(self.in_flight),
                "visited_count": len(self.visited),
                "screenshot_count": len(self.screenshotted),
            }

    def get_memory_stats(self) -> Dict[str, float]:
        """
        Process RSS plus a rough estimate of the frontier's own footprint.
        """
        process = psutil.Process(os.getpid())
        total_memory = process.memory_info().rss / 1024 / 1024  # MB
        with self.state_lock:
            queue_memory = len(self.pending) * 0.0002  # ~200 bytes per target
            url_count = len(self.in_flight) + len(self.visited) + len(self.screenshotted)
        set_memory = url_count * 0.0001  # ~100 bytes per URL string
        return {
            "total_process_memory_mb": total_memory,
            "frontier_memory_mb": queue_memory + set_memory,
        }
