"""
Unified Run Configuration
=========================
Single source of truth for crawler defaults and runtime limits.

The CLI, the orchestrator and the session supervisor all read from this
object.  Environment variables and CLI flags populate it; the supervisor's
``SessionConfig`` is built *from* it.
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field
from typing import Optional

from .models import LocatorFilters
from .session import DEFAULT_USER_AGENT, SessionConfig

logger = logging.getLogger(__name__)

ENV_PREFIX = "LOCATOR_CRAWLER_"

# ---------------------------------------------------------------------------
# Canonical defaults (the only place these numbers live)
# ---------------------------------------------------------------------------
_DEFAULTS = {
    "max_depth": 3,
    "timeout_seconds": 45,               # per navigation strategy
    "extraction_timeout_seconds": 30,
    "title_timeout_seconds": 5,
    "launch_timeout_seconds": 90,
    "crawl_deadline_seconds": 480,
    "single_page_deadline_seconds": 270,
    "max_session_restarts": 2,
    "headless": True,
    "user_agent": DEFAULT_USER_AGENT,
    "viewport_width": 1366,
    "viewport_height": 768,
    "parallel_tabs": 1,                  # reserved; traversal is sequential
    "single_page": False,
    "guess_links": False,
    "static_fallback": False,
    "output_json": None,
    "output_csv": None,
    "output_docx": None,
    "output_dir": None,
}

_TRUE_VALUES = ("1", "true", "yes", "on")


def _env_bool(name: str) -> Optional[bool]:
    value = os.environ.get(ENV_PREFIX + name)
    if value is None or not value.strip():
        return None
    return value.strip().lower() in _TRUE_VALUES


def _env_int(name: str) -> Optional[int]:
    value = os.environ.get(ENV_PREFIX + name)
    if value is None or not value.strip():
        return None
    try:
        return int(value)
    except ValueError:
        logger.warning(f"Ignoring {ENV_PREFIX}{name}={value!r}: not an integer")
        return None


def parse_exclude(value: Optional[str]) -> LocatorFilters:
    """``"checkbox,radio"`` -> filters with those categories switched off."""
    if not value:
        return LocatorFilters()
    categories = [c.strip().lower() for c in value.split(",") if c.strip()]
    return LocatorFilters.excluding(*categories)


@dataclass
class CrawlerRunConfig:
    """
    Configuration consumed by every crawler subsystem.

    Populate via:
      - ``CrawlerRunConfig()``                 -> all defaults
      - ``CrawlerRunConfig(max_depth=1)``      -> override one value
      - ``CrawlerRunConfig.from_env()``        -> defaults + environment
      - ``CrawlerRunConfig.from_cli_args(ns)`` -> environment + argparse Namespace
    """

    # ---- Crawl limits ----
    max_depth: int = _DEFAULTS["max_depth"]
    timeout_seconds: float = _DEFAULTS["timeout_seconds"]
    extraction_timeout_seconds: float = _DEFAULTS["extraction_timeout_seconds"]
    title_timeout_seconds: float = _DEFAULTS["title_timeout_seconds"]
    launch_timeout_seconds: float = _DEFAULTS["launch_timeout_seconds"]
    crawl_deadline_seconds: Optional[float] = None     # None = mode default
    max_session_restarts: int = _DEFAULTS["max_session_restarts"]

    # ---- Browser ----
    headless: bool = _DEFAULTS["headless"]
    user_agent: str = _DEFAULTS["user_agent"]
    viewport_width: int = _DEFAULTS["viewport_width"]
    viewport_height: int = _DEFAULTS["viewport_height"]
    parallel_tabs: int = _DEFAULTS["parallel_tabs"]

    # ---- Mode ----
    single_page: bool = _DEFAULTS["single_page"]
    guess_links: bool = _DEFAULTS["guess_links"]
    static_fallback: bool = _DEFAULTS["static_fallback"]

    # ---- Extraction ----
    locator_filters: LocatorFilters = field(default_factory=LocatorFilters)

    # ---- Authentication (basic HTTP credentials only) ----
    username: Optional[str] = None
    password: Optional[str] = None

    # ---- Output paths (None = skip) ----
    output_json: Optional[str] = _DEFAULTS["output_json"]
    output_csv: Optional[str] = _DEFAULTS["output_csv"]
    output_docx: Optional[str] = _DEFAULTS["output_docx"]
    output_dir: Optional[str] = _DEFAULTS["output_dir"]

    @property
    def deadline_seconds(self) -> float:
        """Parent deadline for the whole run."""
        if self.crawl_deadline_seconds:
            return float(self.crawl_deadline_seconds)
        if self.single_page:
            return float(_DEFAULTS["single_page_deadline_seconds"])
        return float(_DEFAULTS["crawl_deadline_seconds"])

    # -----------------------------------------------------------------------
    # Factory helpers
    # -----------------------------------------------------------------------
    @classmethod
    def from_env(cls) -> "CrawlerRunConfig":
        """Defaults overridden by ``LOCATOR_CRAWLER_*`` environment variables."""
        cfg = cls(
            username=os.environ.get(ENV_PREFIX + "USERNAME") or None,
            password=os.environ.get(ENV_PREFIX + "PASSWORD") or None,
        )
        headless = _env_bool("HEADLESS")
        if headless is not None:
            cfg.headless = headless
        max_depth = _env_int("MAX_DEPTH")
        if max_depth is not None:
            cfg.max_depth = max_depth
        return cfg

    @classmethod
    def from_cli_args(cls, args) -> "CrawlerRunConfig":
        """Build config from an argparse Namespace (``__main__.py``).

        Flags left unset fall back to the environment, then to defaults.
        """
        cfg = cls.from_env()

        overrides = {
            "max_depth": getattr(args, "depth", None),
            "timeout_seconds": getattr(args, "timeout", None),
            "crawl_deadline_seconds": getattr(args, "deadline", None),
            "username": getattr(args, "username", None),
            "password": getattr(args, "password", None),
            "output_json": getattr(args, "output_json", None),
            "output_csv": getattr(args, "output_csv", None),
            "output_docx": getattr(args, "output_docx", None),
            "output_dir": getattr(args, "output_dir", None),
        }
        for name, value in overrides.items():
            if value is not None:
                setattr(cfg, name, value)

        cfg.single_page = bool(getattr(args, "single_page", False))
        cfg.guess_links = bool(getattr(args, "guess_links", False))
        cfg.static_fallback = bool(getattr(args, "static_fallback", False))
        if getattr(args, "headed", False):
            cfg.headless = False
        cfg.locator_filters = parse_exclude(getattr(args, "exclude", None))
        return cfg

    # -----------------------------------------------------------------------
    # Converters
    # -----------------------------------------------------------------------
    def to_session_config(self) -> SessionConfig:
        """Return the supervisor's ``SessionConfig`` for this run."""
        return SessionConfig(
            headless=self.headless,
            user_agent=self.user_agent,
            viewport_width=self.viewport_width,
            viewport_height=self.viewport_height,
            username=self.username,
            password=self.password,
            navigation_timeout=float(self.timeout_seconds),
            launch_timeout=float(self.launch_timeout_seconds),
        )

    @property
    def credentials(self):
        """``(username, password)`` for requests, or None."""
        if self.username and self.password:
            return (self.username, self.password)
        return None

    # -----------------------------------------------------------------------
    # Logging helper
    # -----------------------------------------------------------------------
    def log_summary(self, url: str) -> None:
        """Emit a structured summary to the logger."""
        logger.info("=" * 60)
        logger.info("CRAWL RUN CONFIG")
        logger.info("=" * 60)
        logger.info(f"  URL:              {url}")
        logger.info(f"  Mode:             {'single page' if self.single_page else 'recursive'}")
        if not self.single_page:
            logger.info(f"  Max Depth:        {self.max_depth}")
        logger.info(f"  Timeout:          {self.timeout_seconds}s per navigation strategy")
        logger.info(f"  Extraction:       {self.extraction_timeout_seconds}s per page")
        logger.info(f"  Deadline:         {self.deadline_seconds:.0f}s")
        logger.info(f"  Headless:         {self.headless}")
        logger.info(f"  Guessed Links:    {self.guess_links}")
        logger.info(f"  Static Fallback:  {self.static_fallback}")
        excluded = [k for k, v in self.locator_filters.to_dict().items() if not v]
        if excluded:
            logger.info(f"  Excluded:         {', '.join(sorted(excluded))}")
        if self.username:
            logger.info(f"  Auth:             basic ({self.username})")
        logger.info("=" * 60)
