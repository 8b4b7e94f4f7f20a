"""
Page worker for the crawler.
Drives one isolated renderer session through
navigate -> extract links -> screenshot -> report for a single target.
Workers never touch the frontier: they only return a PageResult.
"""

import os
import threading
from typing import List
from urllib.parse import urljoin

import psutil

from crawler.core import NAV_TIMEOUT, ConfigError, setup_logger
from crawler.models import CrawlTarget, ErrorInfo, ErrorKind, PageResult
from crawler.policy import canonicalize
from rendering.engine import (
    ExtractionError,
    NavigationError,
    RenderingEngine,
    ScreenshotError,
)

logger = setup_logger("crawler.worker")

# Navigation failures worth one more attempt in a one-off capture
TRANSIENT_ERROR_MARKERS = ("ERR_SOCKET_NOT_CONNECTED", "net::ERR", "Navigation failed")
CAPTURE_RETRIES = 1


def _rss_mb() -> float:
    return psutil.Process(os.getpid()).memory_info().rss / 1024 / 1024


def _dedupe(links: List[str]) -> List[str]:
    seen = set()
    unique = []
    for link in links:
        if link not in seen:
            seen.add(link)
            unique.append(link)
    return unique


class PageWorker:
    """
    FLOW: open session -> navigate (bounded timeout) -> extract hrefs ->
    capture once if asked -> close session on every exit path.
    Per-page failures become PageResult.error; RendererFatalError propagates.
    """

    def __init__(self, engine: RenderingEngine, nav_timeout: float = NAV_TIMEOUT):
        self.engine = engine
        self.nav_timeout = nav_timeout

    def process(self, target: CrawlTarget, take_screenshot: bool = True) -> PageResult:
        worker_name = threading.current_thread().name
        start_rss = _rss_mb()
        logger.info(f"[PAGE] {target.url} (depth={target.depth})", extra={"context": worker_name})

        try:
            session = self.engine.new_session()
        except NavigationError as e:
            logger.warning(f"[PAGE] could not open session: {e}", extra={"context": worker_name})
            return PageResult(
                url=target.url,
                depth=target.depth,
                error=ErrorInfo(ErrorKind.NAVIGATION, str(e)),
            )

        try:
            try:
                outcome = session.navigate(target.url, self.nav_timeout)
            except NavigationError as e:
                logger.warning(f"[PAGE] navigation failed: {e}", extra={"context": worker_name})
                return PageResult(
                    url=target.url,
                    depth=target.depth,
                    error=ErrorInfo(ErrorKind.NAVIGATION, str(e)),
                )

            try:
                raw_links = session.extract_links()
            except ExtractionError as e:
                logger.warning(f"[PAGE] link extraction failed: {e}", extra={"context": worker_name})
                return PageResult(
                    url=target.url,
                    depth=target.depth,
                    error=ErrorInfo(ErrorKind.EXTRACTION, str(e)),
                )

            # hrefs from the DOM are absolute; resolve anything relative against the final URL
            links = _dedupe([urljoin(outcome.final_url or target.url, link) for link in raw_links])

            screenshot = None
            if take_screenshot:
                try:
                    screenshot = session.screenshot()
                except ScreenshotError as e:
                    logger.warning(f"[PAGE] screenshot failed: {e}", extra={"context": worker_name})
                    return PageResult(
                        url=target.url,
                        depth=target.depth,
                        discovered_links=links,
                        error=ErrorInfo(ErrorKind.SCREENSHOT, str(e)),
                    )
            else:
                logger.debug(f"[PAGE] screenshot already taken for {target.url}", extra={"context": worker_name})

            logger.info(
                f"[PAGE] done {target.url} links={len(links)} screenshot={screenshot is not None}",
                extra={"context": worker_name},
            )
            return PageResult(
                url=target.url,
                depth=target.depth,
                screenshot=screenshot,
                discovered_links=links,
            )
        finally:
            session.close()
            logger.debug(
                f"[PAGE] memory {target.url}: rss={_rss_mb():.1f}MB delta={_rss_mb() - start_rss:+.1f}MB",
                extra={"context": worker_name},
            )

    def capture(self, url: str) -> bytes:
        """
        One-off full-page capture of url outside a crawl session.
        Only http(s) URLs are accepted (ConfigError otherwise). A transient
        network failure is retried once on a fresh session.
        Raises NavigationError / ScreenshotError / RendererFatalError.
        """
        if canonicalize(url) is None:
            raise ConfigError(f"Invalid URL: {url!r}")

        attempt = 0
        while True:
            try:
                with self.engine.new_session() as session:
                    session.navigate(url, self.nav_timeout)
                    return session.screenshot()
            except NavigationError as e:
                if attempt >= CAPTURE_RETRIES or not any(m in str(e) for m in TRANSIENT_ERROR_MARKERS):
                    raise
                attempt += 1
                logger.warning(f"[CAPTURE] retrying {url} after: {e}", extra={"context": "capture"})
