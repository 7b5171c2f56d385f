"""
Static Snapshot
===============
Builds ``ElementSnapshot`` records from raw HTML with BeautifulSoup, without a
browser.  Used as the crawl's fallback when every navigation strategy fails
and as the basis of browser-free extraction.

Computed style is approximated from inline ``style`` declarations and the
``hidden`` attribute; everything else mirrors the in-page snapshot script.
"""

from __future__ import annotations

import asyncio
import logging
import re
from functools import partial
from typing import Dict, List, Optional, Tuple

import requests
from bs4 import BeautifulSoup
from bs4.element import Tag

from .extractor import (
    ANCESTOR_LIMIT,
    CHILD_LIMIT,
    DESCENDANT_LIMIT,
    ELEMENT_SELECTORS,
    TEXT_LIMIT,
    build_locators,
)
from .link_discovery import STRUCTURAL_LINK_SELECTORS
from .models import ElementSnapshot, ExtractionStats, Locator, LocatorFilters, TEST_ATTRIBUTES

logger = logging.getLogger(__name__)

_BS_PARSER = "lxml"

_STYLE_RE = re.compile(r"\s*([\w-]+)\s*:\s*([^;]+)")

FETCH_TIMEOUT = 15


def _inline_style(tag: Tag) -> Dict[str, str]:
    return {
        m.group(1).lower(): m.group(2).strip().lower()
        for m in _STYLE_RE.finditer(tag.get("style") or "")
    }


def _attr_string(value) -> str:
    # bs4 returns multi-valued attributes (class, rel, ...) as lists
    if isinstance(value, (list, tuple)):
        return " ".join(value)
    return str(value)


def _clip(text: str) -> str:
    return (text or "").strip()[:TEXT_LIMIT]


def _select_candidates(soup: BeautifulSoup) -> List[Tag]:
    nodes: List[Tag] = []
    seen = set()
    for selector in ELEMENT_SELECTORS:
        try:
            found = soup.select(selector)
        except Exception as e:
            logger.debug(f"[STATIC] Selector {selector!r} not supported: {e}")
            continue
        for node in found:
            if id(node) not in seen:
                seen.add(id(node))
                nodes.append(node)
    return nodes


def _display(tag: Tag, style: Dict[str, str]) -> str:
    if tag.has_attr("hidden"):
        return "none"
    if tag.name == "input" and (tag.get("type") or "").lower() == "hidden":
        return "none"
    return style.get("display", "")


def _match_counts(soup: BeautifulSoup, tag: Tag) -> Dict[str, int]:
    counts: Dict[str, int] = {}
    for attr in TEST_ATTRIBUTES:
        value = tag.get(attr)
        if value:
            counts["testId"] = len(soup.find_all(attrs={attr: value}))
            break

    name = (tag.get("name") or "").strip()
    if name:
        counts["name"] = len(soup.find_all(attrs={"name": name}))

    tokens = set(tag.get("class") or [])
    if tokens:
        counts["class"] = len(soup.find_all(lambda t: tokens <= set(t.get("class") or [])))
    return counts


def _ancestors(tag: Tag) -> List[Dict[str, str]]:
    ancestors = []
    for parent in tag.parents:
        if len(ancestors) >= ANCESTOR_LIMIT or not isinstance(parent, Tag) or parent.name == "[document]":
            break
        ancestors.append({
            "tag": parent.name,
            "className": _attr_string(parent.get("class") or ""),
            "role": parent.get("role") or "",
            "type": parent.get("type") or "",
        })
    return ancestors


def _snapshot(soup: BeautifulSoup, tag: Tag) -> ElementSnapshot:
    style = _inline_style(tag)
    attrs = {name: _attr_string(value) for name, value in tag.attrs.items()}

    element_id = (tag.get("id") or "").strip()
    id_count = -1
    label_text = ""
    if element_id:
        id_count = len(soup.find_all(attrs={"id": element_id}))
        label = soup.find("label", attrs={"for": element_id})
        if label is not None:
            label_text = _clip(label.get_text())

    return ElementSnapshot(
        tag=tag.name.lower(),
        attrs=attrs,
        node_type=1,
        text=_clip(tag.get_text()),
        display=_display(tag, style),
        visibility=style.get("visibility", ""),
        cursor=style.get("cursor", ""),
        has_handler_property=False,
        content_editable=(tag.get("contenteditable") or "").lower(),
        label_text=label_text,
        id_count=id_count,
        match_counts=_match_counts(soup, tag),
        descendants=[
            {"tag": d.name, "text": _clip(d.get_text())}
            for d in tag.find_all(True, limit=DESCENDANT_LIMIT)
        ],
        children=[
            {"tag": c.name, "text": _clip(c.get_text())}
            for c in tag.find_all(True, recursive=False, limit=CHILD_LIMIT)
        ],
        ancestors=_ancestors(tag),
    )


def snapshot_html(html: str) -> List[ElementSnapshot]:
    """Element snapshots for *html*, in catalog enumeration order."""
    soup = BeautifulSoup(html, _BS_PARSER)
    snapshots = []
    for tag in _select_candidates(soup):
        try:
            snapshots.append(_snapshot(soup, tag))
        except Exception as e:
            logger.debug(f"[STATIC] Skipping <{tag.name}>: {e}")
    return snapshots


def page_title(html: str) -> str:
    """``<title>`` text, falling back to the first ``<h1>``."""
    soup = BeautifulSoup(html, _BS_PARSER)
    for name in ("title", "h1"):
        node = soup.find(name)
        if node is not None and node.get_text(strip=True):
            return node.get_text(strip=True)
    return ""


def extract_html(
    html: str,
    filters: Optional[LocatorFilters] = None,
    stats: Optional[ExtractionStats] = None,
) -> List[Locator]:
    """Locators for a static HTML document (same pipeline as the browser path)."""
    return build_locators(snapshot_html(html), filters, stats)


def _sync_fetch(
    url: str,
    timeout: float,
    user_agent: Optional[str],
    credentials: Optional[Tuple[str, str]],
) -> str:
    headers = {
        'Accept': 'text/html,application/xhtml+xml',
        'Accept-Language': 'en-US,en;q=0.9',
    }
    if user_agent:
        headers['User-Agent'] = user_agent
    response = requests.get(url, headers=headers, timeout=timeout, auth=credentials)
    response.raise_for_status()
    return response.text


async def fetch_html(
    url: str,
    *,
    timeout: float = FETCH_TIMEOUT,
    user_agent: Optional[str] = None,
    credentials: Optional[Tuple[str, str]] = None,
) -> str:
    """GET *url* with requests on an executor thread and return the body."""
    logger.info(f"[STATIC] Fetching {url[:70]}")
    loop = asyncio.get_running_loop()
    return await loop.run_in_executor(
        None, partial(_sync_fetch, url, timeout, user_agent, credentials)
    )


def raw_links(html: str) -> dict:
    """Static counterpart of the link script's output (anchors and structural matches)."""
    soup = BeautifulSoup(html, _BS_PARSER)
    anchors = [[a.get("href") or "", ""] for a in soup.select("a[href]")]
    structural = []
    for selector in STRUCTURAL_LINK_SELECTORS:
        try:
            structural.extend([node.get("href") or "", ""] for node in soup.select(selector))
        except Exception as e:
            logger.debug(f"[STATIC] Selector {selector!r} not supported: {e}")
    return {"anchors": anchors, "structural": structural, "data": []}
