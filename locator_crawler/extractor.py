"""
DOM Locator Extractor
=====================
Turns a live page into a deduplicated list of ``Locator`` records.

The browser side is deliberately dumb: one ``page.evaluate`` call walks the
element catalog below and reports plain facts (``ElementSnapshot`` dicts).
Everything that decides *what* a locator looks like (classification,
selector synthesis, filtering, dedup) runs here in Python, so the same code
path serves both the Playwright page and the static HTML fallback.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Iterable, List, Mapping, Optional, Union

from .classifier import is_interactive, is_useless
from .errors import ExtractionTimeout, SessionFault, is_session_fault
from .models import ElementSnapshot, ExtractionStats, Locator, LocatorFilters
from .synthesizer import css_selector, describe, id_is_unique, normalize_text, xpath

logger = logging.getLogger(__name__)

EXTRACTION_TIMEOUT = 30.0
READY_STATE_TIMEOUT = 10.0

# Candidate enumeration order; the first occurrence of a node wins.
ELEMENT_SELECTORS = (
    # Form and interactive elements
    'input', 'button', 'select', 'textarea', 'a[href]', 'form',
    # ARIA roles
    '[role="button"]', '[role="link"]', '[role="textbox"]', '[role="combobox"]',
    '[role="checkbox"]', '[role="radio"]', '[role="slider"]', '[role="tab"]',
    '[role="menuitem"]', '[role="option"]', '[role="searchbox"]',
    # Test automation attributes
    '[data-testid]', '[data-test]', '[data-cy]', '[data-test-id]',
    '[data-automation]', '[data-qa]', '[data-e2e]', '[id^="test-"]',
    '[class*="test-"]', '[data-selenium]', '[data-robot]',
    # Common UI component classes
    '.btn', '.button', '.link', '.form-control', '.input', '.field',
    '.control', '.widget', '.component', '.element', '.item',
    # Framework markers
    '[ng-click]', '[v-on\\:click]', '[onclick]',
    '[ng-model]', '[v-model]',
    '[data-target]', '[data-toggle]', '[data-dismiss]',
    '[class*="button"]', '[class*="input"]', '[class*="select"]',
    '[class*="checkbox"]', '[class*="radio"]', '[class*="toggle"]',
    # Navigation and menus
    'nav *[href]', '.menu *[href]', '.navigation *[href]',
    '.nav-item', '.menu-item', '.nav-link', '.menu-link',
    # Content interaction
    '.card [href]', '.tile [href]', '.panel [href]',
    '.accordion [href]', '.tab [href]', '.modal [href]',
    # E-commerce and form actions
    '.product [href]', '.item [href]', '.category [href]',
    '.submit', '.cancel', '.save', '.delete', '.edit',
    '.add', '.remove', '.update', '.confirm', '.close',
)

# Class fragments that make an otherwise anonymous element worth keeping
AUTOMATION_CLASS_HINTS = ("btn", "form", "input", "control", "slider", "range")

DESCENDANT_LIMIT = 25
CHILD_LIMIT = 10
ANCESTOR_LIMIT = 2
TEXT_LIMIT = 300

# Runs in the page.  Receives the selector catalog and the limits, returns a
# list of ElementSnapshot dicts (see models.ElementSnapshot.from_dict).
SNAPSHOT_SCRIPT = """
({selectors, descendantLimit, childLimit, ancestorLimit, textLimit}) => {
    const clip = (s) => (s || '').trim().slice(0, textLimit);
    const count = (selector) => {
        try { return document.querySelectorAll(selector).length; }
        catch (e) { return -1; }
    };
    const attrValue = (v) => '"' + String(v).replace(/\\\\/g, '\\\\\\\\').replace(/"/g, '\\\\"') + '"';

    const nodes = [];
    const seen = new Set();
    for (const selector of selectors) {
        let found;
        try { found = document.querySelectorAll(selector); }
        catch (e) { continue; }
        for (const node of found) {
            if (!seen.has(node)) { seen.add(node); nodes.push(node); }
        }
    }

    const snapshots = [];
    for (const el of nodes) {
        try {
            if (!el || el.nodeType !== 1) {
                snapshots.push({nodeType: el ? el.nodeType : 0});
                continue;
            }
            const attrs = {};
            for (const a of Array.from(el.attributes)) attrs[a.name] = a.value;
            const style = window.getComputedStyle(el);
            const id = el.getAttribute('id');

            let idCount = -1;
            let labelText = '';
            if (id && id.trim()) {
                idCount = count('#' + CSS.escape(id.trim()));
                try {
                    const label = document.querySelector('label[for=' + attrValue(id) + ']');
                    if (label) labelText = clip(label.textContent);
                } catch (e) {}
            }

            const matchCounts = {};
            const testAttr = ['data-testid', 'data-test', 'data-cy'].find(a => el.getAttribute(a));
            if (testAttr) matchCounts.testId = count('[' + testAttr + '=' + attrValue(el.getAttribute(testAttr)) + ']');
            const name = el.getAttribute('name');
            if (name && name.trim()) matchCounts.name = count('[name=' + attrValue(name.trim()) + ']');
            const cls = el.getAttribute('class');
            if (cls && cls.trim()) matchCounts.class = document.getElementsByClassName(cls.trim()).length;

            const descendants = Array.from(el.querySelectorAll('*'))
                .slice(0, descendantLimit)
                .map(d => ({tag: d.tagName.toLowerCase(), text: clip(d.textContent)}));
            const children = Array.from(el.children)
                .slice(0, childLimit)
                .map(c => ({tag: c.tagName.toLowerCase(), text: clip(c.textContent)}));
            const ancestors = [];
            let parent = el.parentElement;
            while (parent && ancestors.length < ancestorLimit) {
                ancestors.push({
                    tag: parent.tagName.toLowerCase(),
                    className: typeof parent.className === 'string' ? parent.className : '',
                    role: parent.getAttribute('role') || '',
                    type: parent.getAttribute('type') || '',
                });
                parent = parent.parentElement;
            }

            snapshots.push({
                tag: el.tagName.toLowerCase(),
                attrs,
                nodeType: el.nodeType,
                text: clip(el.textContent),
                display: style.display,
                visibility: style.visibility,
                cursor: style.cursor,
                hasHandlerProperty: typeof el.onclick === 'function' || typeof el.onchange === 'function',
                contentEditable: String(el.contentEditable || ''),
                labelText,
                idCount,
                matchCounts,
                descendants,
                children,
                ancestors,
            });
        } catch (e) {
            snapshots.push({error: String(e)});
        }
    }
    return snapshots;
}
"""

SnapshotLike = Union[ElementSnapshot, Mapping[str, Any]]


def _as_snapshot(raw: SnapshotLike) -> ElementSnapshot:
    if isinstance(raw, ElementSnapshot):
        return raw
    if raw.get("error"):
        raise ValueError(raw["error"])
    return ElementSnapshot.from_dict(raw)


def to_locator(el: ElementSnapshot) -> Locator:
    """Apply the classifier and the selector synthesizer to one element."""
    return Locator(
        tag_name=el.tag or "unknown",
        id=el.element_id,
        name=el.name,
        class_name=el.class_name,
        test_id=el.test_id,
        test_attribute=el.test_attribute,
        xpath=xpath(el),
        css_selector=css_selector(el),
        is_unique=id_is_unique(el),
        description=describe(el),
        is_interactive=is_interactive(el),
        type=el.type_attr,
        placeholder=el.attr("placeholder"),
        value=el.attr("value"),
        href=el.attr("href"),
        role=el.role,
        aria_label=el.attr("aria-label"),
        text=normalize_text(el.text) or None,
        match_counts=dict(el.match_counts),
    )


def is_acceptable(locator: Locator) -> bool:
    """A locator is kept only if a test could plausibly target it."""
    if locator.id or locator.name or locator.test_id or locator.is_interactive:
        return True
    class_name = (locator.class_name or "").lower()
    return any(hint in class_name for hint in AUTOMATION_CLASS_HINTS)


def build_locators(
    snapshots: Iterable[SnapshotLike],
    filters: Optional[LocatorFilters] = None,
    stats: Optional[ExtractionStats] = None,
) -> List[Locator]:
    """
    Classify, synthesize, filter and deduplicate element snapshots.

    Snapshots are processed in enumeration order and the first locator
    per signature wins.  Per-element failures are counted and skipped.

    Args:
        snapshots: ElementSnapshot objects or the raw dicts from the page.
        filters: Category switches; ``None`` keeps everything.
        stats: Accumulator for debug counters (updated in place).

    Returns:
        Accepted locators, in enumeration order.
    """
    filters = filters or LocatorFilters()
    if stats is None:
        stats = ExtractionStats()

    locators: List[Locator] = []
    seen = set()

    for raw in snapshots:
        stats.candidates += 1
        try:
            el = _as_snapshot(raw)
            if el.node_type != 1:
                stats.not_elements += 1
                continue
            if el.is_hidden:
                stats.hidden += 1
                continue
            if is_useless(el):
                stats.useless += 1
                continue

            locator = to_locator(el)

            if not filters.allows(locator):
                stats.filtered_out += 1
                continue
            if not is_acceptable(locator):
                stats.rejected += 1
                continue

            signature = locator.signature()
            if signature in seen:
                stats.duplicates += 1
                continue
            seen.add(signature)
            locators.append(locator)
            stats.accepted += 1
        except Exception as e:
            stats.element_errors += 1
            logger.debug(f"[EXTRACT] Skipping element: {e}")

    return locators


async def wait_for_ready(page, timeout: float = READY_STATE_TIMEOUT) -> None:
    """Wait for ``document.readyState == 'complete'``; a miss is only logged."""
    try:
        await page.wait_for_function(
            "() => document.readyState === 'complete'",
            timeout=int(timeout * 1000),
        )
    except Exception as e:
        logger.debug(f"[EXTRACT] readyState wait gave up: {e}")


async def collect_snapshots(page, timeout: float = EXTRACTION_TIMEOUT) -> List[dict]:
    """Run the snapshot script in *page*, bounded by *timeout* seconds."""
    try:
        raw = await asyncio.wait_for(
            page.evaluate(SNAPSHOT_SCRIPT, {
                "selectors": list(ELEMENT_SELECTORS),
                "descendantLimit": DESCENDANT_LIMIT,
                "childLimit": CHILD_LIMIT,
                "ancestorLimit": ANCESTOR_LIMIT,
                "textLimit": TEXT_LIMIT,
            }),
            timeout=timeout,
        )
    except asyncio.TimeoutError:
        raise ExtractionTimeout(f"Locator extraction exceeded {timeout:.0f}s")
    return list(raw or [])


async def extract(
    page,
    filters: Optional[LocatorFilters] = None,
    *,
    timeout: float = EXTRACTION_TIMEOUT,
    stats: Optional[ExtractionStats] = None,
) -> List[Locator]:
    """
    Extract locators from the page currently loaded in *page*.

    Returns an empty list on timeout or on a script error.  Errors that mean
    the browser session is gone are raised as ``SessionFault``.
    """
    url = getattr(page, "url", "")
    await wait_for_ready(page)

    try:
        snapshots = await collect_snapshots(page, timeout)
    except ExtractionTimeout as e:
        logger.warning(f"[EXTRACT] {e} on {url[:70]}")
        return []
    except Exception as e:
        if is_session_fault(e):
            raise SessionFault(str(e), url=url) from e
        logger.error(f"[EXTRACT] Snapshot script failed on {url[:70]}: {e}")
        return []

    locators = build_locators(snapshots, filters, stats)
    logger.info(f"[EXTRACT] {len(locators)} locators from {len(snapshots)} candidates")
    return locators
