"""
FILE DESCRIPTION: Crawl orchestration. Owns the frontier, dispatches page
workers onto a bounded thread pool, feeds discovered links back and emits
progress events until the crawl terminates.
KEY FUNCTIONS/CLASSES: CrawlOrchestrator

State machine: IDLE -> RUNNING -> (DRAINING | CANCELLED) -> IDLE
- DRAINING: page cap reached, in-flight pages finish, nothing new is dispatched.
- CANCELLED: stop() was called, pending work dropped, results no longer enqueue.
"""

import threading
import time
from concurrent.futures import FIRST_COMPLETED, Future, ThreadPoolExecutor, wait
from typing import Dict, Optional, Union

from crawler.core import (
    CONCURRENCY,
    MAX_DEPTH,
    MAX_PAGES,
    NAV_TIMEOUT,
    ConfigError,
    CrawlConfig,
    setup_logger,
)
from crawler.events import CrawlEvent, EventListener
from crawler.frontier import Frontier
from crawler.models import (
    CrawlState,
    CrawlSummary,
    CrawlTarget,
    ErrorInfo,
    ErrorKind,
    PageResult,
)
from crawler.policy import URLPolicy, canonicalize, is_crawlable
from crawler.worker import PageWorker
from rendering.engine import RendererFatalError, RenderingEngine

logger = setup_logger("crawler.engine")

LOG_CONTEXT = {"context": "orchestrator"}


class CrawlOrchestrator:
    """
    FLOW: start() seeds a fresh frontier -> run() loops: dequeue while capacity
    allows, submit to the pool, wait for the first completion, feed its links
    back, emit its event -> completed event once nothing is left in flight.

    The orchestrator thread is the only one that mutates the frontier;
    workers just return PageResults.
    """

    def __init__(self, engine: RenderingEngine, listener: Optional[EventListener] = None,
                 worker: Optional[PageWorker] = None):
        self.engine = engine
        self.listener = listener
        self.worker = worker
        self.frontier = Frontier()
        self.config: Optional[CrawlConfig] = None
        self.summary: Optional[CrawlSummary] = None

        self._state = CrawlState.IDLE
        self._state_lock = threading.Lock()
        self._dispatched = 0
        self._started_at = 0.0

    # ------------------------------------------------------------
    # State
    # ------------------------------------------------------------
    @property
    def state(self) -> CrawlState:
        with self._state_lock:
            return self._state

    def _set_state(self, new_state: CrawlState, expected=None) -> bool:
        """Transition to new_state, optionally only from one of the expected states."""
        with self._state_lock:
            if expected is not None and self._state not in expected:
                return False
            logger.debug(f"state {self._state.value} -> {new_state.value}", extra=LOG_CONTEXT)
            self._state = new_state
            return True

    def is_active(self) -> bool:
        return self.state is not CrawlState.IDLE

    def status(self) -> Dict:
        summary = self.summary
        return {
            "state": self.state.value,
            "seed": self.config.url if self.config else None,
            "pages_processed": summary.pages_processed if summary else 0,
            "frontier": self.frontier.get_stats(),
        }

    # ------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------
    def start(self, config: Union[CrawlConfig, str], max_depth: int = MAX_DEPTH,
              max_pages: int = MAX_PAGES, concurrency: int = CONCURRENCY,
              nav_timeout: float = NAV_TIMEOUT) -> str:
        """
        Validate the configuration and seed a fresh frontier. Returns the
        canonical seed URL. Raises ConfigError before any crawl work begins.
        """
        if not isinstance(config, CrawlConfig):
            config = CrawlConfig(
                url=config,
                max_depth=max_depth,
                max_pages=max_pages,
                concurrency=concurrency,
                nav_timeout=nav_timeout,
            )

        seed = canonicalize(config.url)
        if seed is None:
            raise ConfigError(f"Invalid seed URL: {config.url!r}")

        with self._state_lock:
            if self._state is not CrawlState.IDLE:
                raise ConfigError("A crawl is already running")

            self.frontier.reset()
            self.frontier.max_depth = config.max_depth
            self.frontier.concurrency = config.concurrency
            self.frontier.set_base_origin(seed)
            self.frontier.enqueue(seed, 0)

            self.config = config
            self.summary = CrawlSummary(seed_url=seed)
            self._dispatched = 0
            self._started_at = time.monotonic()
            self._state = CrawlState.RUNNING

        URLPolicy.reset_stats()
        logger.info(
            f"[CRAWL] started seed={seed} max_depth={config.max_depth} "
            f"max_pages={config.max_pages} concurrency={config.concurrency}",
            extra=LOG_CONTEXT,
        )
        return seed

    def stop(self) -> bool:
        """
        Cancel the running crawl: pending work is dropped at once, in-flight
        pages finish but cannot enqueue anything. Returns False when idle.
        """
        # held across the discard; the enqueue step in _handle_completion takes it too
        with self._state_lock:
            if self._state not in (CrawlState.RUNNING, CrawlState.DRAINING):
                return False
            self._state = CrawlState.CANCELLED
            dropped = self.frontier.discard_pending()
            if self.summary is not None:
                self.summary.cancelled = True
        logger.info(f"[CRAWL] stop requested, dropped {dropped} pending target(s)", extra=LOG_CONTEXT)
        return True

    def crawl(self, config: Union[CrawlConfig, str], **kwargs) -> CrawlSummary:
        self.start(config, **kwargs)
        return self.run()

    def run(self) -> CrawlSummary:
        """
        Drive the session started by start() to termination.
        Raises RendererFatalError (after releasing every session) if the browser dies.
        """
        if self.config is None or self.state is CrawlState.IDLE:
            raise ConfigError("start() must be called before run()")

        config = self.config
        worker = self.worker or PageWorker(self.engine, nav_timeout=config.nav_timeout)
        futures: Dict[Future, CrawlTarget] = {}
        fatal: Optional[RendererFatalError] = None

        with ThreadPoolExecutor(max_workers=config.concurrency, thread_name_prefix="Worker") as executor:
            try:
                while True:
                    if self.state is CrawlState.RUNNING:
                        self._dispatch(executor, worker, futures)
                    if not futures:
                        break

                    done, _ = wait(futures, return_when=FIRST_COMPLETED)
                    for future in done:
                        target = futures.pop(future)
                        self._handle_completion(future, target)
            except RendererFatalError as e:
                fatal = e
                self._set_state(CrawlState.CANCELLED)
                self.frontier.discard_pending()
                logger.critical(
                    f"[CRAWL] renderer failure, aborting session: {e} "
                    f"(waiting for {len(futures)} in-flight page(s) to release)",
                    extra=LOG_CONTEXT,
                )
                # leaving the with-block joins the pool; each worker closes its session
                for future in futures:
                    future.cancel()

        summary = self.summary
        summary.elapsed_seconds = time.monotonic() - self._started_at
        self._set_state(CrawlState.IDLE)

        if fatal is not None:
            logger.error(f"[CRAWL] aborted after {summary.pages_processed} page(s)", extra=LOG_CONTEXT)
            raise fatal

        stats = self.frontier.get_stats()
        logger.info(
            f"[CRAWL] completed pages={summary.pages_processed} success={summary.successes} "
            f"errors={summary.errors} screenshots={summary.screenshots} "
            f"visited={stats['visited_count']} left_pending={stats['queue_size']} "
            f"elapsed={summary.elapsed_seconds:.1f}s cancelled={summary.cancelled}",
            extra=LOG_CONTEXT,
        )
        logger.debug(f"[CRAWL] policy stats {URLPolicy.get_stats()}", extra=LOG_CONTEXT)
        self._emit(CrawlEvent.completed())
        return summary

    # ------------------------------------------------------------
    # Loop internals
    # ------------------------------------------------------------
    def _dispatch(self, executor: ThreadPoolExecutor, worker: PageWorker,
                  futures: Dict[Future, CrawlTarget]) -> None:
        # pages already dispatched count against the cap, so it is never overshot
        while self._dispatched < self.config.max_pages and self.state is CrawlState.RUNNING:
            target = self.frontier.try_dequeue()
            if target is None:
                return
            take_screenshot = self.frontier.needs_screenshot(target.url)
            self._dispatched += 1
            self._emit(CrawlEvent.processing(target.url))
            futures[executor.submit(worker.process, target, take_screenshot)] = target

    def _handle_completion(self, future: Future, target: CrawlTarget) -> None:
        try:
            result = future.result()
        except RendererFatalError:
            self.frontier.complete(target.url)
            raise
        except Exception as e:
            logger.exception(f"[CRAWL] worker crashed on {target.url}: {e}", extra=LOG_CONTEXT)
            result = PageResult(
                url=target.url,
                depth=target.depth,
                error=ErrorInfo(ErrorKind.INTERNAL, str(e) or e.__class__.__name__),
            )

        summary = self.summary
        summary.pages_processed += 1

        with self._state_lock:
            if self._state is not CrawlState.CANCELLED:
                for link in result.discovered_links:
                    if is_crawlable(link, self.frontier.base_url) and self.frontier.enqueue(link, target.depth + 1):
                        summary.links_enqueued += 1

        if result.screenshot is not None:
            self.frontier.mark_screenshotted(target.url)
            summary.screenshots += 1
        self.frontier.complete(target.url)

        if result.ok:
            summary.successes += 1
            self._emit(CrawlEvent.success(result))
        else:
            summary.errors += 1
            self._emit(CrawlEvent.error(target.url, result.error.message))

        if summary.pages_processed >= self.config.max_pages:
            if self._set_state(CrawlState.DRAINING, expected=(CrawlState.RUNNING,)):
                logger.info(f"[CRAWL] page cap {self.config.max_pages} reached, draining", extra=LOG_CONTEXT)

    def _emit(self, event: CrawlEvent) -> None:
        if self.listener is None:
            return
        try:
            self.listener(event)
        except Exception:
            logger.exception(f"[CRAWL] event listener failed on {event.type}", extra=LOG_CONTEXT)
