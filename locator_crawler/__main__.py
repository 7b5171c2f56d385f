#!/usr/bin/env python3
"""
Locator Crawler CLI
===================
Crawls a site (or a single page), extracts locators and writes the
configured artifacts.

All configuration flows through ``CrawlerRunConfig``: environment
(``LOCATOR_CRAWLER_*`` / ``.env``) first, then flags.

Exit codes:
    0  success (possibly partial results)
    1  unexpected error
    2  target unreachable
    3  crawl deadline exceeded
    4  browser failure

Run with: python -m locator_crawler https://example.com
"""

import argparse
import asyncio
import logging
import sys
import time
from pathlib import Path
from typing import Awaitable, List, Optional, Tuple, Union
from urllib.parse import urlparse

from dotenv import load_dotenv

from .errors import BrowserLaunchError
from .exporter import export_csv, export_docx, export_json, export_pages
from .models import CrawlStats, PageResult
from .orchestrator import LocatorCrawler
from .run_config import CrawlerRunConfig

logger = logging.getLogger(__name__)

EXIT_OK = 0
EXIT_ERROR = 1
EXIT_UNREACHABLE = 2
EXIT_TIMEOUT = 3
EXIT_BROWSER = 4

_UNREACHABLE_MARKERS = ("err_name_not_resolved", "net::", "enotfound", "econnrefused")
_BROWSER_MARKERS = ("protocol error", "browser", "target closed")


def _load_env() -> None:
    # Repo-root .env first, then the working directory
    env_path = Path(__file__).resolve().parent.parent / '.env'
    if env_path.exists():
        load_dotenv(env_path)
    else:
        load_dotenv()


def exit_code_for(error: Optional[Union[BaseException, str]]) -> int:
    """Map a failure (exception or message) to a process exit code."""
    if error is None:
        return EXIT_OK
    if isinstance(error, BrowserLaunchError):
        return EXIT_BROWSER
    message = str(error).lower()
    if "timeout" in message or "timed out" in message:
        return EXIT_TIMEOUT
    if any(marker in message for marker in _UNREACHABLE_MARKERS):
        return EXIT_UNREACHABLE
    if any(marker in message for marker in _BROWSER_MARKERS):
        return EXIT_BROWSER
    return EXIT_ERROR


async def run_with_deadline(
    crawler: LocatorCrawler,
    run: Awaitable[List[PageResult]],
    deadline: float,
) -> Tuple[List[PageResult], bool]:
    """
    Await *run* for at most *deadline* seconds.

    On expiry the crawler is asked to stop before its next page and the
    pages accumulated so far are returned; in-flight browser calls are not
    cancelled.

    Returns:
        ``(results, timed_out)``
    """
    task = asyncio.ensure_future(run)
    done, _ = await asyncio.wait({task}, timeout=deadline)
    if task in done:
        return task.result(), False

    crawler.stop()
    partial = crawler.results
    logger.warning(
        f"[CRAWL] Deadline of {deadline:.0f}s exceeded, returning {len(partial)} partial pages"
    )
    return partial, True


def _base_name_from_url(url: str) -> str:
    parsed = urlparse(url)
    host = parsed.netloc.replace("www.", "").split(":")[0]
    return host.replace(".", "_") or "locators"


def export_results(results: List[PageResult], cfg: CrawlerRunConfig,
                   stats: Optional[CrawlStats], url: str) -> List[str]:
    """Write every configured artifact; returns the written paths."""
    exported: List[str] = []
    if cfg.output_json:
        exported.append(export_json(results, cfg.output_json, stats=stats, start_url=url))
    if cfg.output_csv:
        exported.append(export_csv(results, cfg.output_csv))
    if cfg.output_docx:
        exported.append(export_docx(results, cfg.output_docx, stats=stats, start_url=url))
    if cfg.output_dir:
        exported.extend(export_pages(results, cfg.output_dir))
    return exported


def print_summary(results: List[PageResult], stats: CrawlStats, elapsed: float,
                  exported: List[str]) -> None:
    """Print crawl summary."""
    print("\n" + "=" * 65)
    print("CRAWL COMPLETE")
    print("=" * 65)
    print(f"  Pages with locators: {len(results)}")
    print(f"  Total locators:      {sum(len(p.locators) for p in results)}")
    print(f"  Pages visited:       {stats.pages_visited}")
    print(f"  Failed pages:        {stats.pages_failed}")
    if stats.session_restarts:
        print(f"  Session restarts:    {stats.session_restarts}")
    if stats.static_fallbacks:
        print(f"  Static fallbacks:    {stats.static_fallbacks}")
    ext = stats.extraction
    print(f"  Candidates:          {ext.candidates} "
          f"(hidden {ext.hidden}, useless {ext.useless}, filtered {ext.filtered_out}, "
          f"duplicates {ext.duplicates})")
    print(f"  Total time:          {elapsed:.1f}s")
    print(f"  Stop reason:         {stats.stop_reason}")
    for path in exported:
        print(f"  Exported:            {path}")
    print("=" * 65)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog='locator-crawler',
        description='Crawl a site and extract ranked automation locators',
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python -m locator_crawler https://example.com
  python -m locator_crawler https://example.com --depth 1 --output-csv out.csv
  python -m locator_crawler https://example.com/login --single-page --exclude link,form
        """
    )
    parser.add_argument('url', help='URL to crawl')
    parser.add_argument('--depth', type=int, default=None, help='Maximum crawl depth (default: 3)')
    parser.add_argument('--single-page', action='store_true', help='Extract only the given page')
    parser.add_argument('--exclude', type=str, default=None,
                        help='Comma-separated categories to skip: input,button,link,select,'
                             'textarea,checkbox,radio,form')
    parser.add_argument('--guess-links', action='store_true',
                        help='Also try speculative URLs (data-* attributes, common sections, pagination)')
    parser.add_argument('--static-fallback', action='store_true',
                        help='Fetch pages with requests when the browser cannot load them')
    parser.add_argument('--timeout', type=int, default=None,
                        help='Timeout per navigation strategy in seconds (default: 45)')
    parser.add_argument('--deadline', type=int, default=None,
                        help='Deadline for the whole run in seconds (default: 480, single page 270)')
    parser.add_argument('--headed', action='store_true', help='Show the browser window')
    parser.add_argument('--verbose', '-v', action='store_true', help='Debug logging')

    auth_group = parser.add_argument_group('Authentication', 'Basic HTTP credentials')
    auth_group.add_argument('--username', type=str, default=None,
                            help='Username (env: LOCATOR_CRAWLER_USERNAME)')
    auth_group.add_argument('--password', type=str, default=None,
                            help='Password (env: LOCATOR_CRAWLER_PASSWORD)')

    out_group = parser.add_argument_group('Output')
    out_group.add_argument('--output-json', type=str, help='Combined JSON output file path')
    out_group.add_argument('--output-csv', type=str, help='CSV output file path')
    out_group.add_argument('--output-docx', type=str, help='DOCX report file path')
    out_group.add_argument('--output-dir', type=str, help='Directory for one JSON file per page')
    return parser


def main(argv: Optional[List[str]] = None) -> int:
    """Parse *argv*, run the crawl and export; returns the exit code."""
    _load_env()
    args = build_parser().parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format='%(asctime)s | %(levelname)s | %(message)s',
        datefmt='%H:%M:%S'
    )

    url = args.url
    if not url.startswith(('http://', 'https://')):
        url = 'https://' + url

    try:
        cfg = CrawlerRunConfig.from_cli_args(args)
    except ValueError as e:
        print(f"Invalid arguments: {e}", file=sys.stderr)
        return EXIT_ERROR

    if not (cfg.output_json or cfg.output_csv or cfg.output_docx or cfg.output_dir):
        cfg.output_json = f"{_base_name_from_url(url)}_locators.json"

    cfg.log_summary(url)

    crawler = LocatorCrawler(cfg)
    run = crawler.crawl_single_page(url) if cfg.single_page else crawler.crawl(url)

    start = time.time()
    try:
        results, timed_out = asyncio.run(run_with_deadline(crawler, run, cfg.deadline_seconds))
    except BrowserLaunchError as e:
        logger.error(f"Browser could not be started: {e}")
        return EXIT_BROWSER
    elapsed = time.time() - start

    stats = crawler.stats
    if timed_out:
        stats.stop_reason = "deadline"

    exported: List[str] = []
    try:
        exported = export_results(results, cfg, stats, url)
    except Exception as exc:
        logger.error(f"Export failed: {exc}", exc_info=True)

    print_summary(results, stats, elapsed, exported)

    if timed_out:
        return EXIT_TIMEOUT
    errors = [p.error for p in results if p.error]
    if errors and len(errors) == len(results):
        return exit_code_for(errors[0])
    return EXIT_OK


def run_cli_with_args() -> None:
    sys.exit(main())


if __name__ == "__main__":
    run_cli_with_args()
