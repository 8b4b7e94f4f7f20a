"""
Command-line entry point: crawl one site, print one JSON event per line,
optionally write the screenshots to a directory, and print a summary.
"""

import argparse
import base64
import json
import re
import sys
from pathlib import Path

from crawler.core import (
    CONCURRENCY,
    MAX_DEPTH,
    MAX_PAGES,
    NAV_TIMEOUT,
    ConfigError,
    CrawlConfig,
)
from crawler.engine import CrawlOrchestrator
from crawler.events import SUCCESS, CrawlEvent
from crawler.models import CrawlSummary
from crawler.policy import canonicalize
from rendering.engine import RendererFatalError


def screenshot_filename(url: str, index: int) -> str:
    """Filesystem-safe name: 003_example_com_about.jpeg"""
    slug = re.sub(r"^https?://", "", url)
    slug = re.sub(r"[^A-Za-z0-9]+", "_", slug).strip("_")[:100] or "page"
    return f"{index:03d}_{slug}.jpeg"


class EventPrinter:
    """Writes events as JSON lines; with an output dir, screenshots go to files instead."""

    def __init__(self, out_dir=None, stream=sys.stdout):
        self.out_dir = Path(out_dir) if out_dir else None
        self.stream = stream
        self.saved = 0
        if self.out_dir:
            self.out_dir.mkdir(parents=True, exist_ok=True)

    def __call__(self, event: CrawlEvent) -> None:
        payload = event.to_dict()
        data = payload["data"]
        if event.type == SUCCESS and "screenshot" in data:
            if self.out_dir:
                self.saved += 1
                path = self.out_dir / screenshot_filename(data["url"], self.saved)
                path.write_bytes(base64.b64decode(data["screenshot"]))
                data["screenshot"] = str(path)
            else:
                data["screenshot"] = f"<{len(data['screenshot'])} chars>"
        self.stream.write(json.dumps(payload) + "\n")
        self.stream.flush()


def print_summary(summary: CrawlSummary) -> None:
    sys.stderr.write("=" * 50 + "\n")
    sys.stderr.write("CRAWL SUMMARY\n")
    sys.stderr.write("=" * 50 + "\n")
    sys.stderr.write(f"Seed:               {summary.seed_url}\n")
    sys.stderr.write(f"Pages processed:    {summary.pages_processed}\n")
    sys.stderr.write(f"Succeeded:          {summary.successes}\n")
    sys.stderr.write(f"Failed:             {summary.errors}\n")
    sys.stderr.write(f"Screenshots:        {summary.screenshots}\n")
    sys.stderr.write(f"Elapsed:            {summary.elapsed_seconds:.1f}s\n")
    if summary.cancelled:
        sys.stderr.write("Crawl was cancelled.\n")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Crawl a site breadth-first and take one full-page screenshot per page."
    )
    parser.add_argument("url", help="Seed URL (e.g. https://example.com)")
    parser.add_argument("--max-depth", type=int, default=MAX_DEPTH, help=f"Maximum link depth (default: {MAX_DEPTH})")
    parser.add_argument("--max-pages", type=int, default=MAX_PAGES, help=f"Maximum pages to process (default: {MAX_PAGES})")
    parser.add_argument("--concurrency", type=int, default=CONCURRENCY, help=f"Pages rendered at once (default: {CONCURRENCY})")
    parser.add_argument("--timeout", type=float, default=NAV_TIMEOUT, help=f"Navigation timeout in seconds (default: {NAV_TIMEOUT:.0f})")
    parser.add_argument("--out", help="Directory to write screenshots to")
    parser.add_argument("--verbose", action="store_true", help="Print a summary to stderr")
    return parser


def main(argv=None) -> int:
    args = build_parser().parse_args(argv)

    try:
        config = CrawlConfig(
            url=args.url,
            max_depth=args.max_depth,
            max_pages=args.max_pages,
            concurrency=args.concurrency,
            nav_timeout=args.timeout,
        )
        if canonicalize(config.url) is None:
            raise ConfigError(f"Invalid seed URL: {config.url!r}")
    except ConfigError as e:
        sys.stderr.write(f"CONFIG_ERROR: {e}\n")
        return 2

    from rendering.playwright_engine import PlaywrightEngine

    printer = EventPrinter(args.out)
    try:
        with PlaywrightEngine() as engine:
            orchestrator = CrawlOrchestrator(engine, listener=printer)
            try:
                summary = orchestrator.crawl(config)
            except KeyboardInterrupt:
                orchestrator.stop()
                return 130
    except ConfigError as e:
        sys.stderr.write(f"CONFIG_ERROR: {e}\n")
        return 2
    except RendererFatalError as e:
        sys.stderr.write(f"RENDERER_ERROR: {e}\n")
        return 1

    if args.verbose:
        print_summary(summary)
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
