"""
Frontier state tracking: dedup, depth bound, FIFO order, concurrency bound.
"""

import threading
import unittest

from crawler.core import ConfigError
from crawler.frontier import Frontier
from crawler.models import CrawlTarget


def pending_urls(frontier):
    return [t.url for t in frontier.pending]


class TestFrontier(unittest.TestCase):
    def setUp(self):
        self.frontier = Frontier(max_depth=2, concurrency=2)
        self.frontier.set_base_origin("https://www.example.com/")

    def assert_disjoint(self):
        pending = set(pending_urls(self.frontier))
        in_flight = set(self.frontier.in_flight)
        visited = set(self.frontier.visited)
        self.assertFalse(pending & in_flight)
        self.assertFalse(pending & visited)
        self.assertFalse(in_flight & visited)

    def test_base_origin_strips_www(self):
        self.assertEqual(self.frontier.base_origin, "example.com")
        self.assertEqual(self.frontier.base_url, "https://example.com")

    def test_invalid_base_origin_raises(self):
        with self.assertRaises(ConfigError):
            Frontier().set_base_origin("not-a-url")

    def test_enqueue_is_idempotent(self):
        self.assertTrue(self.frontier.enqueue("https://example.com/a", 1))
        self.assertFalse(self.frontier.enqueue("https://example.com/a", 1))
        self.assertFalse(self.frontier.enqueue("https://www.example.com/a/#top", 2))
        self.assertEqual(pending_urls(self.frontier), ["https://example.com/a"])

    def test_relative_links_resolve_against_seed(self):
        self.assertTrue(self.frontier.enqueue("/docs/", 1))
        self.assertEqual(pending_urls(self.frontier), ["https://example.com/docs"])

    def test_depth_bound(self):
        self.assertFalse(self.frontier.enqueue("https://example.com/deep", 3))
        self.assertFalse(self.frontier.enqueue("https://example.com/neg", -1))
        self.assertTrue(self.frontier.enqueue("https://example.com/ok", 2))
        self.assertTrue(all(t.depth <= self.frontier.max_depth for t in self.frontier.pending))

    def test_invalid_url_is_silent_noop(self):
        self.assertFalse(self.frontier.enqueue("mailto:someone@example.com", 1))
        self.assertEqual(len(self.frontier.pending), 0)

    def test_fifo_breadth_first_order(self):
        self.frontier.enqueue("https://example.com", 0)
        self.frontier.enqueue("https://example.com/a", 1)
        self.frontier.enqueue("https://example.com/b", 1)
        self.frontier.concurrency = 10
        order = []
        while True:
            target = self.frontier.try_dequeue()
            if target is None:
                break
            order.append(target)
        self.assertEqual(order, [
            CrawlTarget("https://example.com", 0),
            CrawlTarget("https://example.com/a", 1),
            CrawlTarget("https://example.com/b", 1),
        ])

    def test_try_dequeue_respects_concurrency(self):
        for path in ("a", "b", "c"):
            self.frontier.enqueue(f"https://example.com/{path}", 1)
        self.assertIsNotNone(self.frontier.try_dequeue())
        self.assertIsNotNone(self.frontier.try_dequeue())
        self.assertIsNone(self.frontier.try_dequeue())
        self.assertEqual(len(self.frontier.in_flight), 2)

        self.frontier.complete("https://example.com/a")
        self.assertEqual(self.frontier.try_dequeue(), CrawlTarget("https://example.com/c", 1))
        self.assert_disjoint()

    def test_try_dequeue_empty(self):
        self.assertIsNone(self.frontier.try_dequeue())

    def test_no_requeue_while_in_flight_or_visited(self):
        self.frontier.enqueue("https://example.com/a", 1)
        target = self.frontier.try_dequeue()
        self.assertFalse(self.frontier.enqueue("https://example.com/a", 2))
        self.frontier.complete(target.url)
        self.assertFalse(self.frontier.enqueue("https://example.com/a/", 1))
        self.assertEqual(len(self.frontier.pending), 0)
        self.assert_disjoint()

    def test_complete_is_idempotent(self):
        self.frontier.enqueue("https://example.com/a", 1)
        target = self.frontier.try_dequeue()
        self.frontier.complete(target.url)
        self.frontier.complete(target.url)
        self.assertEqual(self.frontier.visited, {"https://example.com/a"})
        self.assertEqual(self.frontier.in_flight, set())

    def test_screenshot_tracking(self):
        url = "https://example.com/a"
        self.assertTrue(self.frontier.needs_screenshot(url))
        self.frontier.mark_screenshotted("https://www.example.com/a/")
        self.assertFalse(self.frontier.needs_screenshot(url))
        self.frontier.mark_screenshotted(url)
        self.assertEqual(len(self.frontier.screenshotted), 1)

    def test_has_work(self):
        self.assertFalse(self.frontier.has_work())
        self.frontier.enqueue("https://example.com/a", 1)
        self.assertTrue(self.frontier.has_work())
        target = self.frontier.try_dequeue()
        self.assertTrue(self.frontier.has_work())
        self.frontier.complete(target.url)
        self.assertFalse(self.frontier.has_work())

    def test_discard_pending_keeps_in_flight(self):
        for path in ("a", "b", "c"):
            self.frontier.enqueue(f"https://example.com/{path}", 1)
        self.frontier.try_dequeue()
        self.assertEqual(self.frontier.discard_pending(), 2)
        self.assertEqual(len(self.frontier.pending), 0)
        self.assertEqual(self.frontier.in_flight, {"https://example.com/a"})
        self.assertFalse(self.frontier.enqueue("https://example.com/a", 1))
        self.assertTrue(self.frontier.enqueue("https://example.com/b", 1))

    def test_reset_clears_everything(self):
        self.frontier.enqueue("https://example.com/a", 1)
        self.frontier.enqueue("https://example.com/b", 1)
        target = self.frontier.try_dequeue()
        self.frontier.mark_screenshotted(target.url)
        self.frontier.complete(target.url)
        self.frontier.try_dequeue()

        self.frontier.reset()

        self.assertEqual(self.frontier.get_stats(), {
            "queue_size": 0,
            "in_flight_count": 0,
            "visited_count": 0,
            "screenshot_count": 0,
        })
        self.assertIsNone(self.frontier.base_origin)

    def test_concurrent_enqueue_keeps_single_entry(self):
        self.frontier.concurrency = 100
        barrier = threading.Barrier(8)

        def hammer():
            barrier.wait()
            for i in range(50):
                self.frontier.enqueue(f"https://example.com/p{i}", 1)
                self.frontier.enqueue(f"https://www.example.com/p{i}/", 1)

        threads = [threading.Thread(target=hammer) for _ in range(8)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        urls = pending_urls(self.frontier)
        self.assertEqual(len(urls), 50)
        self.assertEqual(len(set(urls)), 50)

    def test_memory_stats(self):
        self.frontier.enqueue("https://example.com/a", 1)
        stats = self.frontier.get_memory_stats()
        self.assertGreater(stats["total_process_memory_mb"], 0)
        self.assertGreater(stats["frontier_memory_mb"], 0)


if __name__ == "__main__":
    unittest.main()
