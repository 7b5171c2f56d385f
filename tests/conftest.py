"""
Shared fakes for browser-free tests.

``FakeSite`` models a small web site as ``url -> (title, elements, links)``;
``FakeSupervisor`` drives a ``FakePage`` over it with the same contract as
``BrowserSupervisor`` (launch / navigate / restart / close).
"""

from dataclasses import dataclass, field
from typing import Dict, List, Optional, Set

import pytest

from locator_crawler.errors import BrowserLaunchError, NavigationError, SessionFault
from locator_crawler.extractor import SNAPSHOT_SCRIPT
from locator_crawler.link_discovery import LINK_SCRIPT
from locator_crawler.run_config import CrawlerRunConfig

BASE = "https://site.test"


def button(element_id: str, text: str = "Go") -> dict:
    """Raw snapshot dict for a visible, uniquely identified button."""
    return {
        "tag": "button",
        "attrs": {"id": element_id},
        "nodeType": 1,
        "text": text,
        "display": "inline-block",
        "visibility": "visible",
        "idCount": 1,
    }


@dataclass
class FakePageSpec:
    title: str = ""
    elements: List[dict] = field(default_factory=list)
    links: List[str] = field(default_factory=list)


class FakeSite:
    def __init__(self, pages: Dict[str, FakePageSpec]):
        self.pages = pages

    @classmethod
    def tree(cls, links: Dict[str, List[str]], base: str = BASE) -> "FakeSite":
        """Site where every page has one button and the given outbound links."""
        pages = {}
        for path, children in links.items():
            url = (base + path).rstrip("/")
            pages[url] = FakePageSpec(
                title=f"Title {path}",
                elements=[button(f"btn{path.replace('/', '-') or '-root'}")],
                links=[base + c if c.startswith("/") else c for c in children],
            )
        return cls(pages)


class FakePage:
    def __init__(self, site: FakeSite):
        self.site = site
        self.url = "about:blank"
        self.closed = False

    def _spec(self) -> FakePageSpec:
        return self.site.pages.get(self.url.rstrip("/"), FakePageSpec())

    async def wait_for_function(self, expression, timeout=None):
        return True

    async def evaluate(self, script, arg=None):
        if self.closed:
            raise RuntimeError("Target page, context or browser has been closed")
        if script is SNAPSHOT_SCRIPT:
            return [dict(e) for e in self._spec().elements]
        if script is LINK_SCRIPT:
            return {"anchors": [[link, link] for link in self._spec().links], "structural": []}
        return "complete"

    async def title(self):
        return self._spec().title

    async def close(self):
        self.closed = True


@dataclass
class FakeSession:
    page: FakePage
    generation: int = 0


class FakeSupervisor:
    """
    In-memory stand-in for ``BrowserSupervisor``.

    Args:
        site: Pages that load successfully.
        faults: URLs whose navigation raises ``SessionFault`` (once each).
        launch_error: Raise ``BrowserLaunchError`` from ``launch``.
        restart_error: Raise from ``restart`` after closing the old session.
    """

    def __init__(self, site: FakeSite, faults: Optional[Set[str]] = None,
                 launch_error: bool = False, restart_error: bool = False):
        self.site = site
        self.faults = set(faults or ())
        self.launch_error = launch_error
        self.restart_error = restart_error
        self.navigations: List[str] = []
        self.strategies: List[tuple] = []
        self.restarts: List[str] = []
        self.closed: List[FakeSession] = []
        self.launches = 0

    async def launch(self):
        if self.launch_error:
            raise BrowserLaunchError("Failed to launch browser after 3 attempts: boom")
        self.launches += 1
        return FakeSession(page=FakePage(self.site))

    async def navigate(self, session, url, strategies=("networkidle", "load", "domcontentloaded", "commit")):
        self.navigations.append(url)
        self.strategies.append(tuple(strategies))
        if url in self.faults:
            self.faults.discard(url)
            session.page.closed = True
            raise SessionFault("Protocol error (Page.navigate): Target closed", url=url)
        if url.rstrip("/") not in self.site.pages:
            raise NavigationError(url, f"All navigation strategies failed for {url}: net::ERR_NAME_NOT_RESOLVED")
        session.page.url = url

    async def restart(self, session, base_url):
        await self.close(session)
        self.restarts.append(base_url)
        if self.restart_error:
            raise BrowserLaunchError("relaunch failed")
        fresh = await self.launch()
        fresh.generation = session.generation + 1
        await self.navigate(fresh, base_url)
        return fresh

    async def close(self, session):
        if session is not None:
            self.closed.append(session)


@pytest.fixture
def fast_config():
    return CrawlerRunConfig(max_depth=3, title_timeout_seconds=1, extraction_timeout_seconds=1)


LOGIN_FORM_HTML = """
<html><head><title>Login</title></head>
<body>
  <form id="login" action="/session">
    <label for="u">Username</label>
    <input id="u" name="user">
    <input type="password" name="pass" placeholder="Password">
    <input type="checkbox" name="remember">
    <button data-testid="go">Go</button>
  </form>
  <a href="/help" title="Help centre">Help</a>
</body></html>
"""


@pytest.fixture
def login_html():
    return LOGIN_FORM_HTML
