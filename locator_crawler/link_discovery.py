"""
Link Discovery
==============
Finds same-host URLs to descend into from the current page.

Three passes, unioned in first-seen order:

1. every ``a[href]`` on the page;
2. a catalog of structural/component selectors (nav, menu, card, list,
   content, CTA ...) that catches links pass 1 would see too but also
   ``[href]`` on non-anchor elements;
3. *guessed links* (opt-in): URLs built from ``data-*`` attributes, path
   segments already seen on the page, common section names and low-index
   pagination.  These are speculative and will often 404.

The page script only collects raw values; absolutizing, filtering and URL
construction happen here.
"""

from __future__ import annotations

import asyncio
import logging
import re
from typing import Dict, Iterable, List, Optional, Sequence
from urllib.parse import urldefrag, urljoin, urlparse, urlunparse

from .errors import SessionFault, is_session_fault

logger = logging.getLogger(__name__)

LINK_TIMEOUT = 15.0

EXCLUDED_SCHEMES = ("javascript:", "mailto:", "tel:")

STRUCTURAL_LINK_SELECTORS = (
    # Navigation and menus
    'nav a[href]', '.navbar a[href]', '.nav a[href]', '.navigation a[href]',
    '.menu a[href]', '.main-menu a[href]', '.header-menu a[href]', '.sidebar a[href]',
    # Cards and content blocks
    '.card a[href]', '.category a[href]', '.item a[href]', '.product a[href]',
    '.service a[href]', '.feature a[href]',
    # Lists and grids
    '.list a[href]', '.grid a[href]', 'ul a[href]', 'ol a[href]', 'li a[href]',
    # Content sections
    '.content a[href]', '.section a[href]', '.container a[href]', '.wrapper a[href]',
    'main a[href]', 'article a[href]',
    # Buttons and CTAs
    '.button[href]', '.btn[href]', '.cta[href]', '.link[href]',
    # Generic component patterns
    '[class*="link"] a[href]', '[class*="nav"] a[href]', '[class*="menu"] a[href]',
    '[class*="card"] a[href]', '[class*="item"] a[href]', '[class*="category"] a[href]',
    # Framework components
    '.list-group a[href]', '.dropdown a[href]', '.accordion a[href]',
    '.tab a[href]', '.breadcrumb a[href]',
    # Shop and blog layouts
    '.shop a[href]', '.store a[href]', '.catalog a[href]', '.category-grid a[href]',
    '.product-grid a[href]', '.blog a[href]', '.post a[href]', '.article a[href]',
    '.news a[href]', '.portfolio a[href]',
)

CLICKABLE_SELECTORS = (
    '[data-href]', '[data-url]', '[data-link]', '[data-route]', '[data-navigate]',
    '[data-id]', '[data-section]', '[data-page]', '[data-target]',
    '[role="tab"]', '[role="menuitem"]',
    '.clickable', '.navigable', '.router-link', '.nav-link', '.page-link',
    '[ng-click]', '[v-on\\:click]', '[onclick*="location"]', '[onclick*="window.open"]',
    '[onclick*="href"]', '[data-testid*="link"]', '[data-testid*="nav"]',
    '[data-testid*="menu"]',
)

# Attribute values used as-is (resolved against the base URL)
DATA_LINK_ATTRIBUTES = ("data-href", "data-url", "data-link", "data-route")
# Attribute values appended to the base URL as a path segment
DATA_SEGMENT_ATTRIBUTES = ("data-id", "data-section", "data-page")

COMMON_SECTIONS = (
    'about', 'services', 'products', 'portfolio', 'blog', 'news',
    'contact', 'support', 'help', 'docs', 'documentation',
    'features', 'pricing', 'solutions', 'resources', 'downloads',
    'gallery', 'team', 'careers', 'jobs', 'events', 'testimonials',
    'faq', 'terms', 'privacy', 'policy', 'legal', 'sitemap',
)
PAGINATION_PARAMS = ('page', 'p', 'offset')
PAGINATION_PAGES = range(1, 4)

_NUMERIC_RE = re.compile(r"^\d+$")

LINK_SCRIPT = """
({structural, clickable, dataAttributes, guess}) => {
    const pairs = (nodes) => Array.from(nodes).map(el => [el.getAttribute('href') || '', el.href || '']);
    const query = (selector) => {
        try { return document.querySelectorAll(selector); }
        catch (e) { return []; }
    };
    const result = {anchors: pairs(query('a[href]')), structural: [], data: []};
    for (const selector of structural) result.structural.push(...pairs(query(selector)));
    if (guess) {
        for (const selector of clickable) {
            for (const el of query(selector)) {
                const values = {};
                for (const name of dataAttributes) {
                    const value = el.getAttribute(name);
                    if (value) values[name] = value;
                }
                if (Object.keys(values).length) result.data.push(values);
            }
        }
    }
    return result;
}
"""


def normalize_url(url: str) -> str:
    """Drop the fragment and any trailing slash from the path."""
    url, _ = urldefrag(url.strip())
    parsed = urlparse(url)
    return urlunparse(parsed._replace(path=parsed.path.rstrip('/')))


def in_scope(url: str, scope: str) -> bool:
    """Prefix test of *url* against *scope*, trailing slashes ignored."""
    return url.rstrip('/').startswith(scope.rstrip('/'))


def same_host(url: str, base_url: str) -> bool:
    return (urlparse(url).hostname or "") == (urlparse(base_url).hostname or "")


def absolutize(raw: str, resolved: str, current_url: str) -> Optional[str]:
    """Absolute http(s) URL for an ``href``, or None if it is not navigable."""
    raw = (raw or "").strip()
    if not raw or raw.startswith('#') or raw.lower().startswith(EXCLUDED_SCHEMES):
        return None
    absolute = resolved or urljoin(current_url, raw)
    if not absolute.startswith(('http://', 'https://')):
        return None
    return absolute


def _path_segments(urls: Iterable[str]) -> List[str]:
    segments: List[str] = []
    for url in urls:
        for segment in urlparse(url).path.split('/'):
            if (1 < len(segment) < 20 and '.' not in segment
                    and not _NUMERIC_RE.match(segment) and segment not in segments):
                segments.append(segment)
    return segments


def guess_urls(
    base_url: str,
    data_values: Sequence[Dict[str, str]],
    known_urls: Sequence[str],
) -> List[str]:
    """Speculative URLs for SPA-style sites with few real anchors."""
    root = base_url.rstrip('/')
    guesses: List[str] = []

    for values in data_values:
        for attr in DATA_LINK_ATTRIBUTES:
            if values.get(attr):
                guesses.append(urljoin(root + '/', values[attr]))
        for attr in DATA_SEGMENT_ATTRIBUTES:
            if values.get(attr):
                guesses.append(f"{root}/{values[attr].strip('/')}")

    for section in _path_segments(known_urls) + list(COMMON_SECTIONS):
        guesses.append(f"{root}/{section}")

    for param in PAGINATION_PARAMS:
        for n in PAGINATION_PAGES:
            guesses.append(f"{root}/{param}/{n}")
            guesses.append(f"{root}/?{param}={n}")

    return guesses


def collect_links(
    raw: dict,
    current_url: str,
    base_url: str,
    guess_links: bool = False,
) -> List[str]:
    """
    Turn the page script's raw output into normalized same-host URLs.

    Order is first-seen: anchors, then structural matches, then guesses.
    The current URL is never returned.
    """
    current = normalize_url(current_url)
    found: List[str] = []
    seen = set()

    def add(url: Optional[str]) -> None:
        if not url or not same_host(url, base_url):
            return
        normalized = normalize_url(url)
        if normalized == current or normalized in seen:
            return
        seen.add(normalized)
        found.append(normalized)

    for raw_href, resolved in list(raw.get("anchors") or []) + list(raw.get("structural") or []):
        add(absolutize(raw_href, resolved, current_url))

    if guess_links:
        for url in guess_urls(base_url, raw.get("data") or [], list(found)):
            add(url)

    return found


async def discover_links(
    page,
    base_url: str,
    *,
    guess_links: bool = False,
    timeout: float = LINK_TIMEOUT,
) -> List[str]:
    """
    Same-host links reachable from the page loaded in *page*.

    Script errors and timeouts give an empty list; a dead session raises
    ``SessionFault``.
    """
    current_url = page.url
    try:
        raw = await asyncio.wait_for(
            page.evaluate(LINK_SCRIPT, {
                "structural": list(STRUCTURAL_LINK_SELECTORS),
                "clickable": list(CLICKABLE_SELECTORS),
                "dataAttributes": list(DATA_LINK_ATTRIBUTES + DATA_SEGMENT_ATTRIBUTES),
                "guess": guess_links,
            }),
            timeout=timeout,
        )
    except asyncio.TimeoutError:
        logger.warning(f"[LINKS] Link script exceeded {timeout:.0f}s on {current_url[:70]}")
        return []
    except Exception as e:
        if is_session_fault(e):
            raise SessionFault(str(e), url=current_url) from e
        logger.warning(f"[LINKS] Failed to extract links from {current_url[:70]}: {e}")
        return []

    links = collect_links(raw or {}, current_url, base_url, guess_links)
    logger.info(f"[LINKS] Found {len(links)} internal links on {current_url[:70]}")
    if links:
        preview = ", ".join(links[:5])
        logger.debug(f"[LINKS] {preview}{'...' if len(links) > 5 else ''}")
    return links
