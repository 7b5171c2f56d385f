"""
Crawl Orchestrator
==================
Depth-first, domain-bounded traversal that turns a site into an ordered list
of ``PageResult``.

Architecture::

    crawl()
      └─ launch ─┬─ crawl_pages(ctx)  ── pop CrawlTask ── navigate ── extract
                 │        │                                 └── discover links
                 │        └─ SessionFault ─→ restart (≤ 2) ─→ resume stack
                 └─ close (always)

Traversal state (visited set, work stack, results, counters, current
session) lives in a ``TraversalContext``; the only thing a restart changes
is ``ctx.session``.
"""

from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass, field
from typing import List, Optional, Sequence, Set

from .errors import NavigationError, SessionFault, is_session_fault
from .extractor import extract
from .link_discovery import collect_links, discover_links, in_scope, normalize_url
from .models import CrawlStats, CrawlTask, Locator, LocatorFilters, PageResult
from .run_config import CrawlerRunConfig
from .session import BrowserSession, BrowserSupervisor
from .static_snapshot import extract_html, fetch_html, page_title, raw_links

logger = logging.getLogger(__name__)

SINGLE_PAGE_STRATEGIES = ("domcontentloaded",)


@dataclass
class TraversalContext:
    """Mutable state of one crawl run."""
    base_url: str
    scope: str
    max_depth: int
    filters: LocatorFilters = field(default_factory=LocatorFilters)
    session: Optional[BrowserSession] = None
    visited: Set[str] = field(default_factory=set)
    stack: List[CrawlTask] = field(default_factory=list)
    results: List[PageResult] = field(default_factory=list)
    stats: CrawlStats = field(default_factory=CrawlStats)

    def should_visit(self, task: CrawlTask) -> bool:
        return (
            task.depth <= self.max_depth
            and normalize_url(task.url) not in self.visited
            and in_scope(task.url, self.scope)
        )

    def mark_visited(self, url: str) -> None:
        self.visited.add(normalize_url(url))

    def push_children(self, links: Sequence[str], depth: int) -> int:
        """Push unvisited in-scope *links* so they pop in discovery order."""
        if depth > self.max_depth:
            return 0
        fresh = [
            link for link in links
            if normalize_url(link) not in self.visited and in_scope(link, self.scope)
        ]
        for link in reversed(fresh):
            self.stack.append(CrawlTask(url=link, depth=depth))
        return len(fresh)


def _fallback_title(depth: int) -> str:
    return f"Page_{depth}_{int(time.time() * 1000)}"


class LocatorCrawler:
    """
    Crawls a site and extracts locators page by page.

    Usage::

        crawler = LocatorCrawler(CrawlerRunConfig(max_depth=2))
        results = await crawler.crawl("https://example.com")
    """

    def __init__(self, config: Optional[CrawlerRunConfig] = None,
                 supervisor: Optional[BrowserSupervisor] = None):
        self.config = config or CrawlerRunConfig()
        self.supervisor = supervisor or BrowserSupervisor(self.config.to_session_config())
        self.context: Optional[TraversalContext] = None
        self._stop_requested = False

    @property
    def results(self) -> List[PageResult]:
        """Pages accumulated so far (safe to read while a crawl is running)."""
        return list(self.context.results) if self.context else []

    @property
    def stats(self) -> CrawlStats:
        return self.context.stats if self.context else CrawlStats()

    def stop(self) -> None:
        """Ask the traversal to stop before its next page."""
        self._stop_requested = True
        logger.info("Stop requested")

    # ------------------------------------------------------------------
    # Top-level driver
    # ------------------------------------------------------------------

    async def crawl(
        self,
        start_url: str,
        max_depth: Optional[int] = None,
        filters: Optional[LocatorFilters] = None,
        domain_scope: Optional[str] = None,
    ) -> List[PageResult]:
        """
        Crawl from *start_url* and return the pages that yielded locators.

        Session faults trigger a restart (bounded by
        ``max_session_restarts``) and traversal resumes with the remaining
        work stack.  Only ``BrowserLaunchError`` from the initial launch
        escapes; everything else ends in (possibly partial) results.
        """
        cfg = self.config
        self._stop_requested = False
        ctx = TraversalContext(
            base_url=start_url,
            scope=domain_scope or start_url,
            max_depth=cfg.max_depth if max_depth is None else max_depth,
            filters=filters or cfg.locator_filters,
        )
        ctx.stack.append(CrawlTask(url=start_url, depth=0))
        self.context = ctx

        logger.info("=" * 65)
        logger.info("LOCATOR CRAWL STARTED")
        logger.info(f"Start URL: {start_url}")
        logger.info(f"Scope: {ctx.scope}")
        logger.info(f"Max depth: {ctx.max_depth}")
        logger.info("=" * 65)
        start = time.time()

        ctx.session = await self.supervisor.launch()
        try:
            while True:
                try:
                    await self.crawl_pages(ctx)
                    break
                except SessionFault as e:
                    logger.error(f"[CRAWL] Session fault{' on ' + e.url[:70] if e.url else ''}: {e}")
                    if ctx.stats.session_restarts >= cfg.max_session_restarts:
                        logger.error("[CRAWL] Restart budget exhausted, returning partial results")
                        ctx.stats.stop_reason = "session_fault"
                        break
                    ctx.stats.session_restarts += 1
                    try:
                        ctx.session = await self.supervisor.restart(ctx.session, ctx.base_url)
                    except Exception as restart_error:
                        logger.error(f"[CRAWL] Session restart failed: {restart_error}")
                        ctx.stats.stop_reason = "restart_failed"
                        break
        finally:
            await self.supervisor.close(ctx.session)

        elapsed = time.time() - start
        logger.info("=" * 65)
        logger.info(
            f"LOCATOR CRAWL FINISHED: {len(ctx.results)} pages with locators, "
            f"{ctx.stats.pages_visited} visited, {ctx.stats.pages_failed} failed, "
            f"{ctx.stats.session_restarts} restarts in {elapsed:.1f}s "
            f"({ctx.stats.stop_reason})"
        )
        logger.info("=" * 65)
        return list(ctx.results)

    async def crawl_pages(self, ctx: TraversalContext) -> None:
        """
        Drain the work stack of *ctx*.

        ``SessionFault`` propagates with the faulted task already marked
        visited, so a resumed call carries on with the next task.
        """
        while ctx.stack:
            if self._stop_requested:
                ctx.stats.stop_reason = "stopped"
                return
            task = ctx.stack.pop()
            if not ctx.should_visit(task):
                continue
            await self._visit(ctx, task)

    # ------------------------------------------------------------------
    # Per-page work
    # ------------------------------------------------------------------

    async def _visit(self, ctx: TraversalContext, task: CrawlTask) -> None:
        cfg = self.config
        ctx.mark_visited(task.url)
        ctx.stats.pages_visited += 1
        logger.info(f"[{task.depth}] Crawling: {task.url[:80]}")

        try:
            await self.supervisor.navigate(ctx.session, task.url)
        except NavigationError as e:
            if cfg.static_fallback:
                await self._visit_static(ctx, task)
            else:
                ctx.stats.pages_failed += 1
                logger.warning(f"[CRAWL] Skipping subtree: {e}")
            return

        page = ctx.session.page
        try:
            locators = await extract(
                page, ctx.filters,
                timeout=cfg.extraction_timeout_seconds,
                stats=ctx.stats.extraction,
            )
            title = await self._page_title(page, task.depth)
            self._record(ctx, task, title, locators)
            links = await discover_links(page, ctx.base_url, guess_links=cfg.guess_links)
        except SessionFault:
            raise
        except Exception as e:
            if is_session_fault(e):
                raise SessionFault(str(e), url=task.url) from e
            ctx.stats.pages_failed += 1
            logger.error(f"[CRAWL] Error on {task.url[:70]}: {e}")
            return

        self._follow(ctx, task, links)

    async def _visit_static(self, ctx: TraversalContext, task: CrawlTask) -> None:
        cfg = self.config
        try:
            html = await fetch_html(
                task.url,
                timeout=cfg.timeout_seconds,
                user_agent=cfg.user_agent,
                credentials=cfg.credentials,
            )
        except Exception as e:
            ctx.stats.pages_failed += 1
            logger.warning(f"[STATIC] Fallback failed for {task.url[:70]}: {e}")
            return

        ctx.stats.static_fallbacks += 1
        locators = extract_html(html, ctx.filters, ctx.stats.extraction)
        title = page_title(html) or _fallback_title(task.depth)
        self._record(ctx, task, title, locators)
        links = collect_links(raw_links(html), task.url, ctx.base_url)
        self._follow(ctx, task, links)

    def _record(self, ctx: TraversalContext, task: CrawlTask, title: str,
                locators: List[Locator]) -> None:
        if not locators:
            logger.info(f"[CRAWL] No locators on {task.url[:70]}")
            return
        ctx.results.append(PageResult(
            page_name=title,
            page_url=task.url,
            depth=task.depth,
            locators=tuple(locators),
        ))
        ctx.stats.pages_with_locators += 1
        logger.info(f"[CRAWL] {len(locators)} locators on '{title[:50]}'")

    def _follow(self, ctx: TraversalContext, task: CrawlTask, links: List[str]) -> None:
        ctx.stats.links_discovered += len(links)
        pushed = ctx.push_children(links, task.depth + 1)
        if links and not pushed and task.depth >= ctx.max_depth:
            logger.debug(f"[CRAWL] Max depth reached, not following {len(links)} links")

    async def _page_title(self, page, depth: int) -> str:
        try:
            title = await asyncio.wait_for(page.title(), timeout=self.config.title_timeout_seconds)
        except asyncio.TimeoutError:
            logger.debug("[CRAWL] Title retrieval timed out")
            return _fallback_title(depth)
        except Exception as e:
            if is_session_fault(e):
                raise SessionFault(str(e)) from e
            logger.debug(f"[CRAWL] Title retrieval failed: {e}")
            return _fallback_title(depth)
        return (title or "").strip() or _fallback_title(depth)

    # ------------------------------------------------------------------
    # Single page
    # ------------------------------------------------------------------

    async def crawl_single_page(
        self,
        url: str,
        filters: Optional[LocatorFilters] = None,
    ) -> List[PageResult]:
        """
        Extract one page and return it as a one-element list.

        The page is returned even without locators.  Load failures produce an
        error page (``pageName`` ``Error - Timeout`` or ``Error - Failed to
        load``) instead of raising; only ``BrowserLaunchError`` escapes.
        """
        cfg = self.config
        filters = filters or cfg.locator_filters
        self.context = TraversalContext(base_url=url, scope=url, max_depth=0, filters=filters)
        stats = self.context.stats
        stats.pages_visited = 1
        logger.info(f"[CRAWL] Single page crawl: {url}")

        session = await self.supervisor.launch()
        self.context.session = session
        try:
            try:
                await self.supervisor.navigate(session, url, strategies=SINGLE_PAGE_STRATEGIES)
            except NavigationError as e:
                if not cfg.static_fallback:
                    raise
                logger.warning(f"[CRAWL] Browser load failed, trying static fallback: {e}")
                html = await fetch_html(url, timeout=cfg.timeout_seconds,
                                        user_agent=cfg.user_agent, credentials=cfg.credentials)
                stats.static_fallbacks += 1
                locators = extract_html(html, filters, stats.extraction)
                title = page_title(html) or _fallback_title(0)
            else:
                locators = await extract(session.page, filters,
                                         timeout=cfg.extraction_timeout_seconds,
                                         stats=stats.extraction)
                title = await self._page_title(session.page, 0)
        except Exception as e:
            stats.pages_failed = 1
            stats.stop_reason = "error"
            timed_out = isinstance(e.__cause__, asyncio.TimeoutError) or "timeout" in str(e).lower()
            label = "Timeout" if timed_out else "Failed to load"
            logger.error(f"[CRAWL] Single page crawl failed ({label}): {e}")
            result = PageResult(page_name=f"Error - {label}", page_url=url, depth=0, error=str(e))
        else:
            if locators:
                stats.pages_with_locators = 1
            result = PageResult(page_name=title, page_url=url, depth=0, locators=tuple(locators))
            logger.info(f"[CRAWL] {len(locators)} locators on '{title[:50]}'")
        finally:
            await self.supervisor.close(session)

        self.context.results.append(result)
        return [result]
