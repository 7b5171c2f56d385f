"""
Locator Crawler Package
A resilient crawl-and-extract engine that catalogs interactive elements across
a site and ranks automation-friendly selectors for each one.

CLI Usage:
    python -m locator_crawler <url> [options]

    Options:
        --depth           Maximum crawl depth (default: 3)
        --single-page     Extract only the given page
        --exclude         Categories to skip (e.g. checkbox,radio)
        --guess-links     Also try speculative URLs
        --static-fallback Fetch with requests when the browser cannot load a page
        --output-json / --output-csv / --output-docx / --output-dir
"""

from .errors import (
    BrowserLaunchError,
    CrawlerError,
    ExtractionTimeout,
    NavigationError,
    SessionFault,
    is_session_fault,
)
from .models import (
    CrawlStats,
    CrawlTask,
    ElementSnapshot,
    ExtractionStats,
    Locator,
    LocatorFilters,
    PageResult,
    StrategyCandidate,
)
from .extractor import build_locators, extract
from .orchestrator import LocatorCrawler, TraversalContext
from .run_config import CrawlerRunConfig
from .scoring import Recommendation, recommend, score
from .session import BrowserSession, BrowserSupervisor, SessionConfig
from .static_snapshot import extract_html, snapshot_html
from .strategies import LocatorExpression, expressions_for

__all__ = [
    # Errors
    'CrawlerError',
    'NavigationError',
    'ExtractionTimeout',
    'SessionFault',
    'BrowserLaunchError',
    'is_session_fault',
    # Data model
    'ElementSnapshot',
    'Locator',
    'PageResult',
    'CrawlTask',
    'StrategyCandidate',
    'LocatorFilters',
    'ExtractionStats',
    'CrawlStats',
    # Engine
    'LocatorCrawler',
    'TraversalContext',
    'BrowserSupervisor',
    'BrowserSession',
    'SessionConfig',
    'CrawlerRunConfig',
    'extract',
    'build_locators',
    'snapshot_html',
    'extract_html',
    # Scoring
    'score',
    'recommend',
    'Recommendation',
    'LocatorExpression',
    'expressions_for',
]

__version__ = '1.0.0'
