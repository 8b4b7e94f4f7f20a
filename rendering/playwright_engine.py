"""
FILE DESCRIPTION: Playwright-backed rendering engine.
Runs ONE browser on a DEDICATED THREAD that owns an asyncio loop and the async
Playwright API. Worker threads never touch Playwright objects directly: every
call is submitted to the render loop with run_coroutine_threadsafe and the
worker blocks on the result. Pages therefore render concurrently inside one
browser process, each in its own BrowserContext.
KEY FUNCTIONS/CLASSES: PlaywrightEngine, PlaywrightSession
"""

import asyncio
import concurrent.futures
import threading
from typing import List, Optional

from playwright.async_api import Error as PlaywrightError
from playwright.async_api import TimeoutError as PlaywrightTimeoutError
from playwright.async_api import async_playwright

from crawler.core import (
    HEADLESS,
    NETWORK_IDLE_TIMEOUT,
    SCREENSHOT_QUALITY,
    USER_AGENT,
    VIEWPORT_HEIGHT,
    VIEWPORT_WIDTH,
    setup_logger,
)
from rendering.engine import (
    ExtractionError,
    NavigationError,
    PageRenderer,
    RendererFatalError,
    RenderingEngine,
    ScreenshotError,
)
from rendering.models import NavigationOutcome

logger = setup_logger("crawler.rendering")

# Clicked (first match only) to get cookie/consent overlays out of the capture
OVERLAY_SELECTORS = (
    'button:has-text("Accept")',
    'button:has-text("Accept All")',
    'button:has-text("OK")',
    'button:has-text("I Accept")',
    'button:has-text("Close")',
    '[aria-label="Accept cookies"]',
    '#cookie-notice button',
    '.cookie-banner button',
    '.consent-banner button',
)

EXTRA_HEADERS = {
    "Accept-Language": "en-US,en;q=0.9",
    "Accept": "text/html,application/xhtml+xml,application/xml;q=0.9,image/webp,*/*;q=0.8",
    "DNT": "1",
}

LAUNCH_ARGS = ["--disable-gpu", "--no-sandbox", "--disable-dev-shm-usage"]

# Margin on top of a renderer call's own timeout before the worker gives up waiting
CALL_GRACE_SECONDS = 10.0
SHUTDOWN_TIMEOUT = 15.0


class PlaywrightSession(PageRenderer):
    """One BrowserContext + Page. All methods block the calling worker thread."""

    def __init__(self, engine: "PlaywrightEngine", context, page):
        self._engine = engine
        self._context = context
        self._page = page
        self._closed = False

    def _fatal_or(self, exc: Exception, error_cls, message: str):
        if not self._engine.is_connected():
            return RendererFatalError(f"Browser disconnected: {exc}")
        return error_cls(f"{message}: {exc}")

    def navigate(self, url: str, timeout: float) -> NavigationOutcome:
        async def _goto():
            response = await self._page.goto(
                url, wait_until="domcontentloaded", timeout=timeout * 1000
            )
            await self._dismiss_overlays()
            return NavigationOutcome(
                requested_url=url,
                final_url=self._page.url,
                status_code=response.status if response else None,
            )

        try:
            return self._engine.call(_goto(), timeout + CALL_GRACE_SECONDS)
        except RendererFatalError:
            raise
        except (PlaywrightTimeoutError, concurrent.futures.TimeoutError) as e:
            raise NavigationError(f"Navigation to {url} timed out after {timeout:.0f}s") from e
        except PlaywrightError as e:
            raise self._fatal_or(e, NavigationError, f"Navigation to {url} failed") from e

    async def _dismiss_overlays(self):
        for selector in OVERLAY_SELECTORS:
            try:
                button = await self._page.query_selector(selector)
                if button:
                    await button.click(timeout=2000)
                    break
            except PlaywrightError as e:
                logger.debug(f"overlay dismissal failed for {selector}: {e}")
                break

    def extract_links(self) -> List[str]:
        async def _links():
            return await self._page.eval_on_selector_all(
                "a[href]", "links => links.map(link => link.href)"
            )

        try:
            links = self._engine.call(_links(), CALL_GRACE_SECONDS + NETWORK_IDLE_TIMEOUT)
        except RendererFatalError:
            raise
        except concurrent.futures.TimeoutError as e:
            raise ExtractionError("Link extraction timed out") from e
        except PlaywrightError as e:
            raise self._fatal_or(e, ExtractionError, "Link extraction failed") from e
        return [link for link in links if isinstance(link, str) and link]

    def screenshot(self) -> bytes:
        async def _capture():
            # single idle wait for late content, then capture from the top
            try:
                await self._page.wait_for_load_state("networkidle", timeout=NETWORK_IDLE_TIMEOUT * 1000)
            except PlaywrightTimeoutError:
                logger.debug(f"network idle wait timed out for {self._page.url}, capturing anyway")
            await self._page.evaluate("() => window.scrollTo(0, 0)")
            return await self._page.screenshot(
                full_page=True, type="jpeg", quality=SCREENSHOT_QUALITY
            )

        try:
            return self._engine.call(_capture(), self._engine.screenshot_timeout)
        except RendererFatalError:
            raise
        except (PlaywrightTimeoutError, concurrent.futures.TimeoutError) as e:
            raise ScreenshotError("Screenshot timed out") from e
        except PlaywrightError as e:
            raise self._fatal_or(e, ScreenshotError, "Screenshot failed") from e

    def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        if not self._engine.is_running():
            return
        try:
            self._engine.call(self._context.close(), SHUTDOWN_TIMEOUT)
        except (PlaywrightError, RendererFatalError, concurrent.futures.TimeoutError) as e:
            logger.warning(f"session close failed: {e}")


class PlaywrightEngine(RenderingEngine):
    """
    FLOW: start() spawns the render thread -> thread launches Chromium and
    serves coroutines until close() -> new_session() opens a fresh context per page.
    """

    def __init__(self, headless: bool = HEADLESS, user_agent: str = USER_AGENT,
                 viewport: Optional[dict] = None, screenshot_timeout: float = 60.0,
                 launch_timeout: float = 60.0):
        self.headless = headless
        self.user_agent = user_agent
        self.viewport = viewport or {"width": VIEWPORT_WIDTH, "height": VIEWPORT_HEIGHT}
        self.screenshot_timeout = screenshot_timeout
        self.launch_timeout = launch_timeout

        self._loop: Optional[asyncio.AbstractEventLoop] = None
        self._thread: Optional[threading.Thread] = None
        self._ready = threading.Event()
        self._init_lock = threading.Lock()
        self._launch_error: Optional[BaseException] = None
        self._playwright = None
        self._browser = None
        self._disconnected = False
        self._closed = False

    # ------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------
    def start(self) -> "PlaywrightEngine":
        with self._init_lock:
            if self._thread and self._thread.is_alive():
                return self
            if self._closed:
                raise RendererFatalError("Engine already closed")
            self._ready.clear()
            self._thread = threading.Thread(target=self._render_loop, daemon=True, name="RenderEngine")
            self._thread.start()

        if not self._ready.wait(self.launch_timeout):
            raise RendererFatalError(f"Browser did not start within {self.launch_timeout:.0f}s")
        if self._launch_error is not None:
            raise RendererFatalError(f"Browser launch failed: {self._launch_error}") from self._launch_error
        return self

    def _render_loop(self):
        loop = asyncio.new_event_loop()
        asyncio.set_event_loop(loop)
        self._loop = loop
        try:
            loop.run_until_complete(self._launch())
        except Exception as e:
            logger.critical(f"[ENGINE] Browser launch failed: {e}", extra={"context": "engine"})
            self._launch_error = e
            self._ready.set()
            loop.close()
            return

        logger.info("[ENGINE] Dedicated render thread started.", extra={"context": "engine"})
        self._ready.set()
        try:
            loop.run_forever()
        finally:
            loop.close()
            logger.info("[ENGINE] Render thread stopped.", extra={"context": "engine"})

    async def _launch(self):
        self._playwright = await async_playwright().start()
        self._browser = await self._playwright.chromium.launch(headless=self.headless, args=LAUNCH_ARGS)
        self._browser.on("disconnected", self._on_disconnected)

    def _on_disconnected(self, *_):
        if not self._closed:
            logger.critical("[ENGINE] Browser disconnected.", extra={"context": "engine"})
        self._disconnected = True

    def is_running(self) -> bool:
        return (
            self._loop is not None
            and self._thread is not None
            and self._thread.is_alive()
            and not self._loop.is_closed()
        )

    def is_connected(self) -> bool:
        return (
            self.is_running()
            and not self._disconnected
            and self._browser is not None
            and self._browser.is_connected()
        )

    def call(self, coro, timeout: float):
        """Run coro on the render loop and block until it finishes or timeout elapses."""
        if not self.is_running():
            coro.close()
            raise RendererFatalError("Rendering engine is not running")
        future = asyncio.run_coroutine_threadsafe(coro, self._loop)
        try:
            return future.result(timeout)
        except concurrent.futures.TimeoutError:
            future.cancel()
            raise
        except concurrent.futures.CancelledError as e:
            raise RendererFatalError("Rendering call cancelled by engine shutdown") from e

    def new_session(self) -> PlaywrightSession:
        if not self.is_connected():
            raise RendererFatalError("Browser is not connected")

        async def _open():
            context = await self._browser.new_context(
                user_agent=self.user_agent,
                viewport=self.viewport,
                device_scale_factor=1,
                ignore_https_errors=True,
                extra_http_headers=EXTRA_HEADERS,
            )
            page = await context.new_page()
            return context, page

        try:
            context, page = self.call(_open(), SHUTDOWN_TIMEOUT)
        except (PlaywrightError, concurrent.futures.TimeoutError) as e:
            if not self.is_connected():
                raise RendererFatalError(f"Browser disconnected: {e}") from e
            raise NavigationError(f"Could not open a browser context: {e}") from e
        return PlaywrightSession(self, context, page)

    def close(self) -> None:
        with self._init_lock:
            if self._closed:
                return
            self._closed = True

        if not self.is_running():
            return

        async def _shutdown():
            try:
                if self._browser is not None:
                    await self._browser.close()
            finally:
                if self._playwright is not None:
                    await self._playwright.stop()

        try:
            asyncio.run_coroutine_threadsafe(_shutdown(), self._loop).result(SHUTDOWN_TIMEOUT)
        except (PlaywrightError, concurrent.futures.TimeoutError) as e:
            logger.warning(f"[ENGINE] Browser shutdown failed: {e}", extra={"context": "engine"})
        finally:
            self._loop.call_soon_threadsafe(self._loop.stop)
            self._thread.join(SHUTDOWN_TIMEOUT)
        logger.info("[ENGINE] Closed.", extra={"context": "engine"})
