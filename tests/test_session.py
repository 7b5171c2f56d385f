"""
Tests for the browser session supervisor, driven through a fake Playwright
object chain (driver -> chromium -> browser -> context -> page).

Covers:
  1. Launch: context options, resource blocking, retries, exhaustion
  2. Navigation: strategy fallthrough, NavigationError, SessionFault
  3. Probe / restart / close
"""

import asyncio
from types import SimpleNamespace

import pytest

from locator_crawler.errors import BrowserLaunchError, NavigationError, SessionFault
from locator_crawler.session import BROWSER_ARGS, BrowserSupervisor, SessionConfig


class FakeRoute:
    def __init__(self, resource_type):
        self.request = SimpleNamespace(resource_type=resource_type)
        self.outcome = None

    async def abort(self):
        self.outcome = "aborted"

    async def continue_(self):
        self.outcome = "continued"


class FakePWPage:
    def __init__(self, goto_errors=None, goto_delay=0.0, evaluate_error=None):
        self.goto_errors = dict(goto_errors or {})
        self.goto_delay = goto_delay
        self.evaluate_error = evaluate_error
        self.gotos = []
        self.listeners = []
        self.closed = False

    async def goto(self, url, wait_until=None):
        self.gotos.append((url, wait_until))
        if self.goto_delay:
            await asyncio.sleep(self.goto_delay)
        error = self.goto_errors.get(wait_until)
        if error is not None:
            raise error

    async def evaluate(self, script, arg=None):
        if self.evaluate_error is not None:
            raise self.evaluate_error
        return "complete"

    def on(self, event, handler):
        self.listeners.append(event)

    async def close(self):
        self.closed = True


class FakeContext:
    def __init__(self, page):
        self.page = page
        self.routes = []
        self.timeouts = {}
        self.closed = False

    def set_default_timeout(self, ms):
        self.timeouts["default"] = ms

    def set_default_navigation_timeout(self, ms):
        self.timeouts["navigation"] = ms

    async def route(self, pattern, handler):
        self.routes.append((pattern, handler))

    async def new_page(self):
        return self.page

    async def close(self):
        self.closed = True


class FakeBrowser:
    version = "122.0.6261.0"

    def __init__(self, page, connected=True):
        self.page = page
        self.connected = connected
        self.context_kwargs = None
        self.context = None
        self.closed = False

    def is_connected(self):
        return self.connected

    async def new_context(self, **kwargs):
        self.context_kwargs = kwargs
        self.context = FakeContext(self.page)
        return self.context

    def on(self, event, handler):
        pass

    async def close(self):
        self.closed = True


class FakeChromium:
    def __init__(self, driver):
        self.driver = driver

    async def launch(self, headless=True, args=None):
        d = self.driver
        d.launch_calls.append((headless, list(args or [])))
        if d.launch_delay:
            await asyncio.sleep(d.launch_delay)
        if len(d.launch_calls) <= d.failures:
            raise RuntimeError("Executable doesn't exist at /ms-playwright/chromium")
        page = d.page_factory()
        d.pages.append(page)
        return FakeBrowser(page, connected=d.connected)


class FakePlaywright:
    def __init__(self, driver):
        self.chromium = FakeChromium(driver)
        self.driver = driver

    async def stop(self):
        self.driver.stops += 1


class FakeDriver:
    """Stand-in for ``async_playwright()``; counts launches and stops."""

    def __init__(self, failures=0, connected=True, launch_delay=0.0, page_factory=FakePWPage):
        self.failures = failures
        self.connected = connected
        self.launch_delay = launch_delay
        self.page_factory = page_factory
        self.launch_calls = []
        self.pages = []
        self.stops = 0

    def __call__(self):
        return self

    async def start(self):
        return FakePlaywright(self)


def fast_config(**overrides):
    values = dict(launch_backoff=0, retry_pause=0, settle_delay=0)
    values.update(overrides)
    return SessionConfig(**values)


def supervisor(driver, **overrides):
    return BrowserSupervisor(fast_config(**overrides), driver_factory=driver)


# ====================================================================
# 1. Launch
# ====================================================================

class TestLaunch:

    def test_context_options(self):
        driver = FakeDriver()
        session = asyncio.run(supervisor(driver).launch())

        headless, args = driver.launch_calls[0]
        assert headless is True
        assert args == BROWSER_ARGS
        kwargs = session.browser.context_kwargs
        assert kwargs["viewport"] == {"width": 1366, "height": 768}
        assert kwargs["ignore_https_errors"] is True
        assert "http_credentials" not in kwargs
        assert session.context.timeouts == {"default": 45000, "navigation": 45000}
        assert session.generation == 0
        assert {"crash", "pageerror", "requestfailed"} <= set(session.page.listeners)

    def test_basic_auth_credentials(self):
        driver = FakeDriver()
        session = asyncio.run(supervisor(driver, username="u", password="p").launch())
        assert session.browser.context_kwargs["http_credentials"] == {"username": "u", "password": "p"}

    def test_heavy_resources_blocked(self):
        session = asyncio.run(supervisor(FakeDriver()).launch())
        pattern, handler = session.context.routes[0]
        assert pattern == "**/*"

        outcomes = {}
        for kind in ("image", "stylesheet", "font", "media", "document", "script", "xhr"):
            route = FakeRoute(kind)
            asyncio.run(handler(route))
            outcomes[kind] = route.outcome
        assert outcomes == {
            "image": "aborted", "stylesheet": "aborted", "font": "aborted", "media": "aborted",
            "document": "continued", "script": "continued", "xhr": "continued",
        }

    def test_retries_then_succeeds(self):
        driver = FakeDriver(failures=2)
        session = asyncio.run(supervisor(driver).launch())
        assert session is not None
        assert len(driver.launch_calls) == 3
        # failed attempts stop their driver
        assert driver.stops == 2

    def test_exhausted_attempts(self):
        driver = FakeDriver(failures=99)
        with pytest.raises(BrowserLaunchError) as exc_info:
            asyncio.run(supervisor(driver).launch())
        assert len(driver.launch_calls) == 3
        assert "3 attempts" in str(exc_info.value)
        assert isinstance(exc_info.value.__cause__, RuntimeError)

    def test_disconnected_browser_rejected(self):
        driver = FakeDriver(connected=False)
        with pytest.raises(BrowserLaunchError):
            asyncio.run(supervisor(driver, launch_attempts=1).launch())

    def test_launch_timeout(self):
        driver = FakeDriver(launch_delay=1.0)
        with pytest.raises(BrowserLaunchError) as exc_info:
            asyncio.run(supervisor(driver, launch_attempts=2, launch_timeout=0.05).launch())
        assert len(driver.launch_calls) == 2
        assert isinstance(exc_info.value.__cause__, asyncio.TimeoutError)


# ====================================================================
# 2. Navigation
# ====================================================================

def _launched(page_factory, **overrides):
    driver = FakeDriver(page_factory=page_factory)
    sup = supervisor(driver, **overrides)
    return sup, asyncio.run(sup.launch())


class TestNavigate:

    def test_first_strategy_succeeds(self):
        sup, session = _launched(FakePWPage)
        asyncio.run(sup.navigate(session, "https://site.test"))
        assert session.page.gotos == [("https://site.test", "networkidle")]

    def test_strategies_loosen_after_failures(self):
        errors = {
            "networkidle": RuntimeError("Timeout 45000ms exceeded"),
            "load": RuntimeError("net::ERR_ABORTED"),
        }
        sup, session = _launched(lambda: FakePWPage(goto_errors=errors))
        asyncio.run(sup.navigate(session, "https://site.test"))
        assert [w for _, w in session.page.gotos] == ["networkidle", "load", "domcontentloaded"]

    def test_custom_strategy_list(self):
        sup, session = _launched(FakePWPage)
        asyncio.run(sup.navigate(session, "https://site.test", strategies=("domcontentloaded",)))
        assert session.page.gotos == [("https://site.test", "domcontentloaded")]

    def test_all_strategies_fail(self):
        last = RuntimeError("net::ERR_NAME_NOT_RESOLVED")
        errors = {
            "networkidle": RuntimeError("a"),
            "load": RuntimeError("b"),
            "domcontentloaded": RuntimeError("c"),
            "commit": last,
        }
        sup, session = _launched(lambda: FakePWPage(goto_errors=errors))
        with pytest.raises(NavigationError) as exc_info:
            asyncio.run(sup.navigate(session, "https://nowhere.test"))
        assert exc_info.value.url == "https://nowhere.test"
        assert exc_info.value.__cause__ is last
        assert "ERR_NAME_NOT_RESOLVED" in str(exc_info.value)
        assert len(session.page.gotos) == 4

    def test_hanging_goto_times_out(self):
        sup, session = _launched(lambda: FakePWPage(goto_delay=1.0), navigation_timeout=0.05)
        with pytest.raises(NavigationError):
            asyncio.run(sup.navigate(session, "https://slow.test", strategies=("load", "commit")))
        assert len(session.page.gotos) == 2

    def test_dead_connection_is_a_session_fault(self):
        errors = {"networkidle": RuntimeError("Protocol error (Page.navigate): Target closed.")}
        sup, session = _launched(lambda: FakePWPage(goto_errors=errors))
        with pytest.raises(SessionFault) as exc_info:
            asyncio.run(sup.navigate(session, "https://site.test/x"))
        assert exc_info.value.url == "https://site.test/x"
        # no looser strategy is attempted on a dead session
        assert len(session.page.gotos) == 1


# ====================================================================
# 3. Probe / restart / close
# ====================================================================

class TestProbe:

    def test_closed_page_faults(self):
        error = RuntimeError("Target page, context or browser has been closed")
        sup, session = _launched(lambda: FakePWPage(evaluate_error=error))
        with pytest.raises(SessionFault):
            asyncio.run(sup.probe(session))
        with pytest.raises(SessionFault):
            asyncio.run(sup.navigate(session, "https://site.test"))
        assert session.page.gotos == []

    def test_other_errors_tolerated(self):
        error = RuntimeError("Execution context was destroyed, most likely because of a navigation")
        sup, session = _launched(lambda: FakePWPage(evaluate_error=error))
        asyncio.run(sup.probe(session))


class TestRestart:

    def test_restart_replaces_session(self):
        driver = FakeDriver()
        sup = supervisor(driver)

        async def run():
            first = await sup.launch()
            second = await sup.restart(first, "https://site.test")
            return first, second

        first, second = asyncio.run(run())
        assert second is not first
        assert second.generation == 1
        assert first.page.closed and first.context.closed and first.browser.closed
        assert driver.stops == 1
        assert second.page.gotos == [("https://site.test", "networkidle")]

    def test_restart_tolerates_unreachable_base(self):
        errors = {s: RuntimeError("net::ERR_CONNECTION_RESET")
                  for s in ("networkidle", "load", "domcontentloaded", "commit")}
        driver = FakeDriver(page_factory=lambda: FakePWPage(goto_errors=errors))
        sup = supervisor(driver)

        async def run():
            return await sup.restart(await sup.launch(), "https://site.test")

        fresh = asyncio.run(run())
        assert fresh.generation == 1

    def test_restart_launch_failure_propagates(self):
        driver = FakeDriver()
        sup = supervisor(driver, launch_attempts=1)

        async def run():
            session = await sup.launch()
            driver.failures = 99
            await sup.restart(session, "https://site.test")

        with pytest.raises(BrowserLaunchError):
            asyncio.run(run())

    def test_fault_after_relaunch_closes_fresh_session(self):
        pages = iter([
            FakePWPage(),
            FakePWPage(goto_errors={"networkidle": RuntimeError("Target closed")}),
        ])
        driver = FakeDriver(page_factory=lambda: next(pages))
        sup = supervisor(driver)

        async def run():
            await sup.restart(await sup.launch(), "https://site.test")

        with pytest.raises(SessionFault):
            asyncio.run(run())
        assert len(driver.launch_calls) == 2
        assert driver.stops == 2
        fresh = driver.pages[1]
        assert fresh.closed


class TestClose:

    def test_close_none(self):
        asyncio.run(supervisor(FakeDriver()).close(None))

    def test_close_errors_swallowed(self):
        class BrokenPage(FakePWPage):
            async def close(self):
                raise RuntimeError("Target closed")

        driver = FakeDriver(page_factory=BrokenPage)
        sup = supervisor(driver)
        session = asyncio.run(sup.launch())
        asyncio.run(sup.close(session))
        assert session.context.closed
        assert session.browser.closed
        assert driver.stops == 1
