"""
Browser Session Supervisor
==========================
Owns the Playwright driver, browser, context and page for a crawl.

* ``launch()``   starts Chromium with bounded retries and a fixed backoff.
* ``navigate()`` walks the load strategies from strictest to loosest, probing
  the session before each attempt.
* ``restart()``  tears everything down and returns a *new* ``BrowserSession``
  that has already been pointed back at the crawl's base URL.
* ``close()``    is best-effort and never raises.

Errors that mean the browser connection is gone are surfaced as
``SessionFault`` so the orchestrator can ask for a restart.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Any, Callable, Optional, Sequence

from playwright.async_api import async_playwright

from .errors import BrowserLaunchError, NavigationError, SessionFault, is_session_fault

logger = logging.getLogger(__name__)

# Strictest first
NAVIGATION_STRATEGIES = ("networkidle", "load", "domcontentloaded", "commit")

BLOCKED_RESOURCE_TYPES = frozenset([
    "image", "stylesheet", "font", "media",
])

BROWSER_ARGS = [
    '--disable-gpu',
    '--no-sandbox',
    '--disable-dev-shm-usage',
    '--disable-background-networking',
    '--disable-default-apps',
    '--disable-extensions',
    '--disable-sync',
    '--disable-translate',
    '--no-first-run',
]

DEFAULT_USER_AGENT = (
    "Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) "
    "AppleWebKit/537.36 (KHTML, like Gecko) Chrome/122.0.0.0 Safari/537.36"
)


@dataclass
class SessionConfig:
    """Everything needed to (re)create an identical browser session."""
    headless: bool = True
    user_agent: str = DEFAULT_USER_AGENT
    viewport_width: int = 1366
    viewport_height: int = 768
    username: Optional[str] = None
    password: Optional[str] = None

    # Timeouts (seconds)
    navigation_timeout: float = 45.0
    launch_timeout: float = 90.0
    probe_timeout: float = 5.0

    launch_attempts: int = 3
    launch_backoff: float = 3.0
    retry_pause: float = 1.0        # between navigation strategies
    settle_delay: float = 1.0       # after a successful load

    @property
    def http_credentials(self) -> Optional[dict]:
        if self.username and self.password:
            return {'username': self.username, 'password': self.password}
        return None


@dataclass
class BrowserSession:
    """One live browser stack.  Replaced (never repaired) on restart."""
    playwright: Any
    browser: Any
    context: Any
    page: Any
    generation: int = 0


async def _route_handler(route) -> None:
    """Abort heavy static resources, continue everything else."""
    if route.request.resource_type in BLOCKED_RESOURCE_TYPES:
        await route.abort()
        return
    await route.continue_()


def _attach_listeners(browser, page) -> None:
    page.on("crash", lambda _: logger.warning("[SESSION] Page crashed"))
    page.on("pageerror", lambda err: logger.debug(f"[SESSION] Page error: {err}"))
    page.on(
        "requestfailed",
        lambda req: logger.debug(f"[SESSION] Request failed: {req.url[:80]} ({req.failure})"),
    )
    browser.on("disconnected", lambda _: logger.debug("[SESSION] Browser disconnected"))


class BrowserSupervisor:
    """
    Launches, navigates, restarts and closes browser sessions.

    Args:
        config: Session settings reused verbatim by every (re)launch.
        driver_factory: Returns an object with an async ``start()`` that
            yields a Playwright driver.  Defaults to ``async_playwright``.
    """

    def __init__(self, config: Optional[SessionConfig] = None,
                 driver_factory: Optional[Callable[[], Any]] = None):
        self.config = config or SessionConfig()
        self._driver_factory = driver_factory or async_playwright

    # ------------------------------------------------------------------
    # Launch / close
    # ------------------------------------------------------------------

    async def _launch_once(self) -> BrowserSession:
        cfg = self.config
        playwright = await self._driver_factory().start()
        try:
            browser = await playwright.chromium.launch(headless=cfg.headless, args=BROWSER_ARGS)

            # Version probe: a browser that cannot answer is not usable
            version = browser.version
            if not browser.is_connected():
                raise BrowserLaunchError("Browser launched but is not connected")

            ctx_kwargs = dict(
                user_agent=cfg.user_agent,
                viewport={'width': cfg.viewport_width, 'height': cfg.viewport_height},
                ignore_https_errors=True,
            )
            if cfg.http_credentials:
                ctx_kwargs['http_credentials'] = cfg.http_credentials
            context = await browser.new_context(**ctx_kwargs)

            timeout_ms = int(cfg.navigation_timeout * 1000)
            context.set_default_timeout(timeout_ms)
            context.set_default_navigation_timeout(timeout_ms)
            await context.route("**/*", _route_handler)

            page = await context.new_page()
            _attach_listeners(browser, page)
        except BaseException:
            await playwright.stop()
            raise

        logger.info(
            f"[SESSION] Browser ready (chromium {version}, headless={cfg.headless}, "
            f"auth={'basic' if cfg.http_credentials else 'none'})"
        )
        return BrowserSession(playwright=playwright, browser=browser, context=context, page=page)

    async def launch(self) -> BrowserSession:
        """Start a browser session, retrying with a fixed backoff."""
        cfg = self.config
        last_error: Optional[BaseException] = None

        for attempt in range(1, cfg.launch_attempts + 1):
            try:
                return await asyncio.wait_for(self._launch_once(), timeout=cfg.launch_timeout)
            except asyncio.TimeoutError as e:
                last_error = e
                logger.warning(
                    f"[SESSION] Launch attempt {attempt}/{cfg.launch_attempts} "
                    f"timed out after {cfg.launch_timeout:.0f}s"
                )
            except Exception as e:
                last_error = e
                logger.warning(f"[SESSION] Launch attempt {attempt}/{cfg.launch_attempts} failed: {e}")

            if attempt < cfg.launch_attempts:
                await asyncio.sleep(cfg.launch_backoff)

        raise BrowserLaunchError(
            f"Failed to launch browser after {cfg.launch_attempts} attempts: {last_error}"
        ) from last_error

    async def close(self, session: Optional[BrowserSession]) -> None:
        """Close page, context, browser and driver; errors are only logged."""
        if session is None:
            return
        steps = (
            ("page", session.page, "close"),
            ("context", session.context, "close"),
            ("browser", session.browser, "close"),
            ("driver", session.playwright, "stop"),
        )
        for label, obj, method in steps:
            if obj is None:
                continue
            try:
                await getattr(obj, method)()
            except Exception as e:
                logger.debug(f"[SESSION] Error closing {label}: {e}")

    # ------------------------------------------------------------------
    # Navigation
    # ------------------------------------------------------------------

    async def probe(self, session: BrowserSession) -> None:
        """Cheap liveness check; raises ``SessionFault`` if the session is gone."""
        try:
            await asyncio.wait_for(
                session.page.evaluate("document.readyState"),
                timeout=self.config.probe_timeout,
            )
        except asyncio.TimeoutError:
            logger.debug("[SESSION] Liveness probe timed out (page busy)")
        except Exception as e:
            if is_session_fault(e):
                raise SessionFault(str(e)) from e
            logger.debug(f"[SESSION] Liveness probe error: {e}")

    async def navigate(
        self,
        session: BrowserSession,
        url: str,
        strategies: Sequence[str] = NAVIGATION_STRATEGIES,
    ) -> None:
        """
        Load *url*, loosening the wait condition after each failure.

        Raises:
            SessionFault: the browser connection is gone.
            NavigationError: every strategy failed.
        """
        cfg = self.config
        last_error: Optional[BaseException] = None

        for i, strategy in enumerate(strategies):
            await self.probe(session)
            try:
                await asyncio.wait_for(
                    session.page.goto(url, wait_until=strategy),
                    timeout=cfg.navigation_timeout,
                )
                logger.debug(f"[NAV] Loaded {url[:70]} ({strategy})")
                await asyncio.sleep(cfg.settle_delay)
                return
            except asyncio.TimeoutError as e:
                last_error = e
                logger.warning(f"[NAV] {strategy} timed out after {cfg.navigation_timeout:.0f}s: {url[:70]}")
            except Exception as e:
                if is_session_fault(e):
                    raise SessionFault(str(e), url=url) from e
                last_error = e
                logger.warning(f"[NAV] {strategy} failed for {url[:70]}: {e}")

            if i < len(strategies) - 1:
                await asyncio.sleep(cfg.retry_pause)

        raise NavigationError(
            url, f"All navigation strategies failed for {url}: {last_error!r}"
        ) from last_error

    # ------------------------------------------------------------------
    # Restart
    # ------------------------------------------------------------------

    async def restart(self, session: BrowserSession, base_url: str) -> BrowserSession:
        """
        Replace *session* with a fresh one positioned on *base_url*.

        The old session is closed first.  A failure to reach the base URL
        is logged; a failure to launch or a new fault propagates, and the
        fresh session is closed before it does.
        """
        logger.warning("[SESSION] Restarting browser session...")
        await self.close(session)

        fresh = await self.launch()
        fresh.generation = session.generation + 1

        try:
            await self.navigate(fresh, base_url)
        except NavigationError as e:
            logger.warning(f"[SESSION] Restarted, but base URL did not load: {e}")
        except BaseException:
            await self.close(fresh)
            raise

        logger.info(f"[SESSION] Session restarted (generation {fresh.generation})")
        return fresh
