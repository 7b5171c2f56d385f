"""
Tests for the crawl orchestrator.

Covers:
  1. Depth / scope / visited-set bounds
  2. Depth-first, pre-order visitation
  3. Session-fault recovery (restart, resume, budget)
  4. Static fallback and single-page mode
"""

import asyncio

import pytest

from conftest import BASE, FakePageSpec, FakeSite, FakeSupervisor, button
from locator_crawler.errors import BrowserLaunchError, NavigationError
from locator_crawler.orchestrator import LocatorCrawler, TraversalContext
from locator_crawler.models import CrawlTask
from locator_crawler.run_config import CrawlerRunConfig


def _crawl(site, config, start=BASE, faults=None, launch_error=False, restart_error=False,
           **kwargs):
    supervisor = FakeSupervisor(site, faults=faults, launch_error=launch_error,
                                restart_error=restart_error)
    crawler = LocatorCrawler(config, supervisor=supervisor)
    results = asyncio.run(crawler.crawl(start, **kwargs))
    return crawler, supervisor, results


# ====================================================================
# 1. Bounds
# ====================================================================

class TestBounds:
    """Depth, scope and visited-set guarantees."""

    def test_max_depth_zero_visits_only_start(self, fast_config):
        """Links are discovered on the start page but never followed."""
        site = FakeSite.tree({"": ["/a", "/b"], "/a": [], "/b": []})
        crawler, supervisor, results = _crawl(site, fast_config, max_depth=0)
        assert supervisor.navigations == [BASE]
        assert len(results) == 1
        assert crawler.stats.links_discovered == 2

    def test_out_of_scope_never_navigated(self, fast_config):
        """Same-host URLs outside the start prefix are skipped, as are other hosts."""
        start = BASE + "/app"
        site = FakeSite.tree({
            "/app": ["/app/x", "/other", "https://elsewhere.test/y"],
            "/app/x": [],
            "/other": [],
        })
        _, supervisor, _ = _crawl(site, fast_config, start=start)
        assert supervisor.navigations == [start, BASE + "/app/x"]

    def test_explicit_domain_scope(self, fast_config):
        """domain_scope widens the prefix used for the scope test."""
        start = BASE + "/app"
        site = FakeSite.tree({"/app": ["/other"], "/other": []})
        _, supervisor, _ = _crawl(site, fast_config, start=start, domain_scope=BASE)
        assert supervisor.navigations == [start, BASE + "/other"]

    def test_no_url_navigated_twice(self, fast_config):
        """Cycles and shared children are visited once."""
        site = FakeSite.tree({
            "": ["/a", "/b"],
            "/a": ["/", "/c", "/a"],
            "/b": ["/c", "/a/"],
            "/c": ["/"],
        })
        _, supervisor, _ = _crawl(site, fast_config)
        assert len(supervisor.navigations) == len(set(supervisor.navigations)) == 4

    def test_depth_limit(self, fast_config):
        """Pages deeper than max_depth are not visited."""
        site = FakeSite.tree({"": ["/1"], "/1": ["/1/2"], "/1/2": ["/1/2/3"], "/1/2/3": []})
        _, supervisor, results = _crawl(site, fast_config, max_depth=2)
        assert supervisor.navigations == [BASE, BASE + "/1", BASE + "/1/2"]
        assert [r.depth for r in results] == [0, 1, 2]

    def test_page_without_locators_not_recorded(self, fast_config):
        """Empty pages are traversed but produce no PageResult."""
        site = FakeSite({
            BASE: FakePageSpec(title="Home", elements=[], links=[BASE + "/a"]),
            BASE + "/a": FakePageSpec(title="A", elements=[button("x")]),
        })
        crawler, supervisor, results = _crawl(site, fast_config)
        assert supervisor.navigations == [BASE, BASE + "/a"]
        assert [r.page_name for r in results] == ["A"]
        assert crawler.stats.pages_with_locators == 1

    def test_navigation_error_skips_subtree(self, fast_config):
        """A page that cannot load is counted and the crawl carries on."""
        site = FakeSite.tree({"": ["/missing", "/b"], "/b": []})
        crawler, supervisor, results = _crawl(site, fast_config)
        assert supervisor.navigations == [BASE, BASE + "/missing", BASE + "/b"]
        assert crawler.stats.pages_failed == 1
        assert len(results) == 2


class TestTraversalContext:
    """Stack and visited-set helpers."""

    def test_push_children_pops_in_discovery_order(self):
        ctx = TraversalContext(base_url=BASE, scope=BASE, max_depth=2)
        ctx.push_children([BASE + "/a", BASE + "/b", BASE + "/c"], 1)
        assert [ctx.stack.pop().url for _ in range(3)] == [BASE + "/a", BASE + "/b", BASE + "/c"]

    def test_push_children_beyond_max_depth(self):
        ctx = TraversalContext(base_url=BASE, scope=BASE, max_depth=0)
        assert ctx.push_children([BASE + "/a"], 1) == 0
        assert ctx.stack == []

    def test_visited_ignores_trailing_slash(self):
        ctx = TraversalContext(base_url=BASE, scope=BASE, max_depth=2)
        ctx.mark_visited(BASE + "/a/")
        assert not ctx.should_visit(CrawlTask(url=BASE + "/a", depth=1))


# ====================================================================
# 2. Ordering
# ====================================================================

class TestOrdering:
    """Depth-first, pre-order traversal in discovery order."""

    def test_preorder_dfs(self, fast_config):
        site = FakeSite.tree({"": ["/a", "/b"], "/a": ["/c"], "/b": [], "/c": []})
        _, supervisor, results = _crawl(site, fast_config)
        expected = [BASE, BASE + "/a", BASE + "/c", BASE + "/b"]
        assert supervisor.navigations == expected
        assert [r.page_url for r in results] == expected

    def test_results_carry_titles_and_depths(self, fast_config):
        site = FakeSite.tree({"": ["/a"], "/a": []})
        _, _, results = _crawl(site, fast_config)
        assert [(r.page_name, r.depth) for r in results] == [("Title", 0), ("Title /a", 1)]

    def test_missing_title_uses_fallback_name(self, fast_config):
        site = FakeSite({BASE: FakePageSpec(title="", elements=[button("x")])})
        _, _, results = _crawl(site, fast_config)
        assert results[0].page_name.startswith("Page_0_")


# ====================================================================
# 3. Session faults
# ====================================================================

class TestSessionRecovery:
    """Faults restart the session and the crawl resumes with the remaining stack."""

    SITE = {"": ["/a", "/b"], "/a": ["/a/c"], "/a/c": [], "/b": []}

    def test_fault_at_depth_two_restarts_once(self, fast_config):
        """The session restarts once, re-navigates to the base URL and does not raise."""
        site = FakeSite.tree(self.SITE)
        _, _, clean = _crawl(site, fast_config)

        crawler, supervisor, results = _crawl(site, fast_config, faults={BASE + "/a/c"})

        assert supervisor.restarts == [BASE]
        fault_at = supervisor.navigations.index(BASE + "/a/c")
        assert supervisor.navigations[fault_at + 1] == BASE
        assert len(results) < len(clean)
        assert [r.page_url for r in results] == [BASE, BASE + "/a", BASE + "/b"]
        assert crawler.stats.session_restarts == 1
        assert crawler.stats.stop_reason == "completed"

    def test_faulted_url_not_retried(self, fast_config):
        site = FakeSite.tree(self.SITE)
        _, supervisor, _ = _crawl(site, fast_config, faults={BASE + "/a"})
        assert supervisor.navigations.count(BASE + "/a") == 1
        # /a/c is only reachable through /a
        assert BASE + "/a/c" not in supervisor.navigations

    def test_restart_budget_exhausted(self, fast_config):
        """A third fault ends the crawl with partial results instead of raising."""
        site = FakeSite.tree({"": ["/a", "/b", "/c", "/d"], "/a": [], "/b": [], "/c": [], "/d": []})
        faults = {BASE + "/a", BASE + "/b", BASE + "/c"}
        crawler, supervisor, results = _crawl(site, fast_config, faults=faults)
        assert len(supervisor.restarts) == 2
        assert crawler.stats.stop_reason == "session_fault"
        assert BASE + "/d" not in supervisor.navigations
        assert [r.page_url for r in results] == [BASE]

    def test_restart_failure_returns_partial(self, fast_config):
        site = FakeSite.tree(self.SITE)
        crawler, _, results = _crawl(site, fast_config, faults={BASE + "/a"}, restart_error=True)
        assert crawler.stats.stop_reason == "restart_failed"
        assert [r.page_url for r in results] == [BASE]

    def test_session_always_closed(self, fast_config):
        site = FakeSite.tree(self.SITE)
        _, supervisor, _ = _crawl(site, fast_config, faults={BASE + "/b"})
        # old session closed by restart, new one closed at the end
        assert len(supervisor.closed) == 2
        assert supervisor.closed[-1].generation == 1

    def test_launch_failure_propagates(self, fast_config):
        site = FakeSite.tree({"": []})
        with pytest.raises(BrowserLaunchError):
            _crawl(site, fast_config, launch_error=True)


# ====================================================================
# 4. Static fallback / single page
# ====================================================================

class TestStaticFallback:
    """requests + BeautifulSoup path when the browser cannot load a page."""

    def test_fallback_extracts_static_html(self, fast_config, login_html, monkeypatch):
        async def fake_fetch(url, **kwargs):
            return login_html

        monkeypatch.setattr("locator_crawler.orchestrator.fetch_html", fake_fetch)
        fast_config.static_fallback = True
        site = FakeSite.tree({"": ["/static"]})

        crawler, _, results = _crawl(site, fast_config, max_depth=1)

        assert crawler.stats.static_fallbacks == 1
        static_page = results[-1]
        assert static_page.page_name == "Login"
        assert static_page.page_url == BASE + "/static"
        assert any(loc.test_id == "go" for loc in static_page.locators)

    def test_fallback_fetch_error_counts_failure(self, fast_config, monkeypatch):
        async def failing_fetch(url, **kwargs):
            raise OSError("connection refused")

        monkeypatch.setattr("locator_crawler.orchestrator.fetch_html", failing_fetch)
        fast_config.static_fallback = True
        site = FakeSite.tree({"": ["/static"]})

        crawler, _, results = _crawl(site, fast_config)
        assert crawler.stats.pages_failed == 1
        assert len(results) == 1


class _TimeoutSupervisor(FakeSupervisor):
    async def navigate(self, session, url, strategies=()):
        self.navigations.append(url)
        message = f"All navigation strategies failed for {url}: TimeoutError()"
        raise NavigationError(url, message) from asyncio.TimeoutError()


class TestSinglePage:
    """crawl_single_page always returns exactly one PageResult."""

    def test_single_page_uses_domcontentloaded(self, fast_config):
        site = FakeSite.tree({"": ["/a"], "/a": []})
        supervisor = FakeSupervisor(site)
        crawler = LocatorCrawler(fast_config, supervisor=supervisor)

        results = asyncio.run(crawler.crawl_single_page(BASE))

        assert len(results) == 1
        assert results[0].error is None
        assert len(results[0].locators) == 1
        assert supervisor.strategies == [("domcontentloaded",)]
        assert supervisor.navigations == [BASE]
        assert len(supervisor.closed) == 1

    def test_single_page_without_locators_still_returned(self, fast_config):
        site = FakeSite({BASE: FakePageSpec(title="Empty")})
        crawler = LocatorCrawler(fast_config, supervisor=FakeSupervisor(site))
        results = asyncio.run(crawler.crawl_single_page(BASE))
        assert results[0].page_name == "Empty"
        assert results[0].locators == ()

    def test_single_page_load_failure_gives_error_page(self, fast_config):
        supervisor = FakeSupervisor(FakeSite({}))
        crawler = LocatorCrawler(fast_config, supervisor=supervisor)
        results = asyncio.run(crawler.crawl_single_page(BASE + "/nope"))
        assert results[0].page_name == "Error - Failed to load"
        assert "ERR_NAME_NOT_RESOLVED" in results[0].error
        assert len(supervisor.closed) == 1

    def test_single_page_timeout_label(self, fast_config):
        crawler = LocatorCrawler(fast_config, supervisor=_TimeoutSupervisor(FakeSite({})))
        results = asyncio.run(crawler.crawl_single_page(BASE))
        assert results[0].page_name == "Error - Timeout"

    def test_single_page_launch_failure_raises(self):
        supervisor = FakeSupervisor(FakeSite({}), launch_error=True)
        crawler = LocatorCrawler(CrawlerRunConfig(), supervisor=supervisor)
        with pytest.raises(BrowserLaunchError):
            asyncio.run(crawler.crawl_single_page(BASE))
