"""
Error translation in the Playwright adapter. No browser is launched:
the engine's call() is mocked to raise what Playwright would.
"""

import concurrent.futures
import unittest
from unittest.mock import MagicMock

from playwright.async_api import Error as PlaywrightError
from playwright.async_api import TimeoutError as PlaywrightTimeoutError

from rendering.engine import (
    ExtractionError,
    NavigationError,
    RendererFatalError,
    ScreenshotError,
)
from rendering.playwright_engine import PlaywrightEngine, PlaywrightSession


def failing_call(exc):
    def call(coro, timeout):
        coro.close()
        raise exc
    return call


class TestPlaywrightSession(unittest.TestCase):
    def make_session(self, exc, connected=True):
        engine = MagicMock()
        engine.call.side_effect = failing_call(exc)
        engine.is_connected.return_value = connected
        engine.screenshot_timeout = 60
        return PlaywrightSession(engine, MagicMock(), MagicMock()), engine

    def test_navigation_timeout(self):
        session, _ = self.make_session(PlaywrightTimeoutError("Timeout 30000ms exceeded"))
        with self.assertRaises(NavigationError) as ctx:
            session.navigate("https://example.com", 30)
        self.assertIn("timed out after 30s", str(ctx.exception))

    def test_navigation_failure(self):
        session, _ = self.make_session(PlaywrightError("net::ERR_NAME_NOT_RESOLVED"))
        with self.assertRaises(NavigationError):
            session.navigate("https://nope.invalid", 30)

    def test_error_after_disconnect_is_fatal(self):
        session, _ = self.make_session(PlaywrightError("Target closed"), connected=False)
        with self.assertRaises(RendererFatalError):
            session.navigate("https://example.com", 30)

    def test_extraction_failure(self):
        session, _ = self.make_session(PlaywrightError("Execution context was destroyed"))
        with self.assertRaises(ExtractionError):
            session.extract_links()

    def test_screenshot_timeout(self):
        session, _ = self.make_session(concurrent.futures.TimeoutError())
        with self.assertRaises(ScreenshotError):
            session.screenshot()

    def test_extract_links_filters_empty(self):
        engine = MagicMock()

        def call(coro, timeout):
            coro.close()
            return ["https://example.com/a", "", None]

        engine.call.side_effect = call
        session = PlaywrightSession(engine, MagicMock(), MagicMock())
        self.assertEqual(session.extract_links(), ["https://example.com/a"])

    def test_close_is_idempotent_and_tolerates_failures(self):
        session, engine = self.make_session(PlaywrightError("context already closed"))
        engine.is_running.return_value = True
        session.close()
        session.close()
        self.assertEqual(engine.call.call_count, 1)


class TestPlaywrightEngineNotStarted(unittest.TestCase):
    def test_not_running(self):
        engine = PlaywrightEngine()
        self.assertFalse(engine.is_running())
        self.assertFalse(engine.is_connected())
        with self.assertRaises(RendererFatalError):
            engine.new_session()

    def test_close_without_start(self):
        engine = PlaywrightEngine()
        engine.close()
        with self.assertRaises(RendererFatalError):
            engine.start()


if __name__ == "__main__":
    unittest.main()
