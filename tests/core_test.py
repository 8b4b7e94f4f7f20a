import logging
import unittest

from crawler.core import (
    CONCURRENCY,
    MAX_DEPTH,
    MAX_PAGES,
    ConfigError,
    CrawlConfig,
    CrawlFormatter,
    setup_logger,
)


class TestCrawlConfig(unittest.TestCase):
    def test_defaults(self):
        config = CrawlConfig(url=" https://example.com ")
        self.assertEqual(config.url, "https://example.com")
        self.assertEqual(config.max_depth, MAX_DEPTH)
        self.assertEqual(config.max_pages, MAX_PAGES)
        self.assertEqual(config.concurrency, CONCURRENCY)

    def test_numeric_strings_and_whole_floats_accepted(self):
        config = CrawlConfig(url="https://example.com", max_depth="2", max_pages=5.0, nav_timeout="12.5")
        self.assertEqual(config.max_depth, 2)
        self.assertEqual(config.max_pages, 5)
        self.assertEqual(config.nav_timeout, 12.5)

    def test_zero_depth_allowed(self):
        self.assertEqual(CrawlConfig(url="https://example.com", max_depth=0).max_depth, 0)

    def test_invalid_values(self):
        cases = [
            {"url": ""},
            {"url": None},
            {"url": "https://example.com", "max_pages": 0},
            {"url": "https://example.com", "max_pages": "many"},
            {"url": "https://example.com", "max_pages": True},
            {"url": "https://example.com", "max_pages": 2.5},
            {"url": "https://example.com", "concurrency": 0},
            {"url": "https://example.com", "max_depth": -1},
            {"url": "https://example.com", "nav_timeout": 0},
            {"url": "https://example.com", "nav_timeout": "soon"},
        ]
        for kwargs in cases:
            with self.subTest(kwargs=kwargs):
                with self.assertRaises(ConfigError):
                    CrawlConfig(**kwargs)

    def test_config_error_is_value_error(self):
        self.assertTrue(issubclass(ConfigError, ValueError))

    def test_from_request_wire_names(self):
        config = CrawlConfig.from_request({
            "url": "https://example.com",
            "maxDepth": 1,
            "maxPages": 7,
            "concurrency": 2,
            "timeout": 10,
        })
        self.assertEqual(
            (config.max_depth, config.max_pages, config.concurrency, config.nav_timeout),
            (1, 7, 2, 10.0),
        )

    def test_from_request_rejects_non_object_bodies(self):
        for body in (["https://example.com"], "https://example.com", 42, True):
            with self.subTest(body=body):
                with self.assertRaises(ConfigError):
                    CrawlConfig.from_request(body)

    def test_from_request_requires_url(self):
        for body in (None, {}, {"url": ""}, {"maxPages": 3}):
            with self.subTest(body=body):
                with self.assertRaises(ConfigError):
                    CrawlConfig.from_request(body)


class TestLogging(unittest.TestCase):
    def make_record(self, **extra):
        record = logging.LogRecord("crawler.engine", logging.INFO, __file__, 1, "page done", None, None)
        record.threadName = "Worker_1"
        for key, value in extra.items():
            setattr(record, key, value)
        return record

    def test_format_uses_thread_name_by_default(self):
        line = CrawlFormatter().format(self.make_record())
        self.assertTrue(line.startswith("[ "))
        self.assertIn("UTC", line)
        self.assertTrue(line.endswith(" : INFO : Worker_1 : page done"))

    def test_format_prefers_explicit_context(self):
        line = CrawlFormatter().format(self.make_record(context="orchestrator"))
        self.assertTrue(line.endswith(" : INFO : orchestrator : page done"))

    def test_child_loggers_propagate_to_root_crawler_logger(self):
        child = setup_logger("crawler.test_child")
        self.assertEqual(child.handlers, [])
        self.assertTrue(child.propagate)
        self.assertTrue(logging.getLogger("crawler").handlers)


if __name__ == "__main__":
    unittest.main()
