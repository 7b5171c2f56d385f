"""
Crawler Errors
==============
Exception taxonomy shared by the session supervisor, the extractor and the
orchestrator.

Only ``BrowserLaunchError`` is meant to cross the public crawl boundary;
everything else is recovered (or converted into partial results) inside
the engine.
"""

from __future__ import annotations

from typing import Optional

# Message fragments (lower-case) that mean the browser connection is gone and
# only a full session restart can help.
SESSION_FAULT_MARKERS = (
    "connection lost",
    "protocol error",
    "target closed",
    "target page, context or browser has been closed",
    "session closed",
    "connection closed",
    "browser has been closed",
    "browser closed",
)


class CrawlerError(Exception):
    """Base class for all crawler errors."""


class NavigationError(CrawlerError):
    """Every load strategy failed for a URL."""

    def __init__(self, url: str, message: str = ""):
        self.url = url
        super().__init__(message or f"All navigation strategies failed for {url}")


class ExtractionTimeout(CrawlerError):
    """Locator extraction exceeded its time bound."""


class SessionFault(CrawlerError):
    """The browser process/connection is no longer usable."""

    def __init__(self, message: str = "Browser connection lost - protocol error detected",
                 url: Optional[str] = None):
        self.url = url
        super().__init__(message)


class BrowserLaunchError(CrawlerError):
    """The browser could not be started within the retry budget."""


def is_session_fault(exc: BaseException) -> bool:
    """Return True if *exc* indicates a dead browser session."""
    if isinstance(exc, SessionFault):
        return True
    message = str(exc).lower()
    return any(marker in message for marker in SESSION_FAULT_MARKERS)
