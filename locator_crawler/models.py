"""
Data Model
==========
Value records passed between the extractor, the scorer and the orchestrator.

``ElementSnapshot`` is what the in-page script (or the static HTML parser)
reports for a single DOM node; ``Locator`` is what survives classification,
synthesis, filtering and deduplication.  ``PageResult`` groups the locators of
one visited URL.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping, Optional, Tuple

# Attributes recognised as test-automation hooks, in priority order.
TEST_ATTRIBUTES = ("data-testid", "data-test", "data-cy")
EXTRA_TEST_ATTRIBUTES = ("data-automation", "data-qa")

FILTER_CATEGORIES = (
    "input", "button", "link", "select", "textarea", "checkbox", "radio", "form",
)

# Input types reported under the "input" category
_TEXTUAL_INPUT_TYPES = frozenset({"", "text", "password", "email", "number", "search"})


def _clean(value: Any) -> Optional[str]:
    """Trimmed string, or None for empty / non-string values."""
    if isinstance(value, str):
        value = value.strip()
        return value or None
    return None


# ---------------------------------------------------------------------------
# Element snapshot (raw facts collected per DOM node)
# ---------------------------------------------------------------------------

@dataclass
class ElementSnapshot:
    """Facts about one DOM element, as collected in the page context."""
    tag: str = ""
    attrs: Dict[str, str] = field(default_factory=dict)
    node_type: int = 1
    text: str = ""
    display: str = ""
    visibility: str = ""
    cursor: str = ""
    has_handler_property: bool = False
    content_editable: str = ""
    label_text: str = ""
    id_count: int = -1              # -1 = no id or #id is not a valid selector
    match_counts: Dict[str, int] = field(default_factory=dict)
    descendants: List[Dict[str, str]] = field(default_factory=list)
    children: List[Dict[str, str]] = field(default_factory=list)
    ancestors: List[Dict[str, str]] = field(default_factory=list)

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "ElementSnapshot":
        """Build a snapshot from the JSON object returned by the page script."""
        return cls(
            tag=(data.get("tag") or "").lower(),
            attrs={str(k): str(v) for k, v in (data.get("attrs") or {}).items()},
            node_type=int(data.get("nodeType", 1) or 0),
            text=data.get("text") or "",
            display=data.get("display") or "",
            visibility=data.get("visibility") or "",
            cursor=data.get("cursor") or "",
            has_handler_property=bool(data.get("hasHandlerProperty")),
            content_editable=data.get("contentEditable") or "",
            label_text=data.get("labelText") or "",
            id_count=int(data.get("idCount", -1)),
            match_counts={k: int(v) for k, v in (data.get("matchCounts") or {}).items()},
            descendants=list(data.get("descendants") or []),
            children=list(data.get("children") or []),
            ancestors=list(data.get("ancestors") or []),
        )

    def attr(self, name: str) -> Optional[str]:
        """Raw attribute value (untrimmed), or None when absent."""
        return self.attrs.get(name)

    def has_attr(self, name: str) -> bool:
        return name in self.attrs

    @property
    def element_id(self) -> Optional[str]:
        return _clean(self.attrs.get("id"))

    @property
    def name(self) -> Optional[str]:
        return _clean(self.attrs.get("name"))

    @property
    def class_name(self) -> Optional[str]:
        return _clean(self.attrs.get("class"))

    @property
    def test_id(self) -> Optional[str]:
        for attr in TEST_ATTRIBUTES:
            value = self.attrs.get(attr)
            if value:
                return value
        return None

    @property
    def test_attribute(self) -> Optional[str]:
        """Which of ``TEST_ATTRIBUTES`` supplied ``test_id``."""
        for attr in TEST_ATTRIBUTES:
            if self.attrs.get(attr):
                return attr
        return None

    @property
    def role(self) -> Optional[str]:
        return self.attrs.get("role") or None

    @property
    def type_attr(self) -> Optional[str]:
        return self.attrs.get("type") or None

    @property
    def class_tokens(self) -> List[str]:
        return (self.class_name or "").split()

    @property
    def is_hidden(self) -> bool:
        return self.display == "none" or self.visibility == "hidden"


# ---------------------------------------------------------------------------
# Locator
# ---------------------------------------------------------------------------

@dataclass
class Locator:
    """How to re-find one DOM element, with its supporting metadata."""
    tag_name: str
    id: Optional[str] = None
    name: Optional[str] = None
    class_name: Optional[str] = None
    test_id: Optional[str] = None
    test_attribute: Optional[str] = None
    xpath: str = ""
    css_selector: str = ""
    is_unique: bool = False
    description: str = ""
    is_interactive: bool = False
    type: Optional[str] = None
    placeholder: Optional[str] = None
    value: Optional[str] = None
    href: Optional[str] = None
    role: Optional[str] = None
    aria_label: Optional[str] = None
    text: Optional[str] = None
    match_counts: Dict[str, int] = field(default_factory=dict)

    def signature(self) -> str:
        """Composite identity used for per-page deduplication."""
        parts = []
        if self.id:
            parts.append(f"id:{self.id}")
        if self.name:
            parts.append(f"name:{self.name}")
        if self.test_id:
            parts.append(f"testId:{self.test_id}")
        if self.class_name:
            parts.append(f"class:{self.class_name}")
        parts.append(f"tag:{self.tag_name}")
        parts.append(f"desc:{' '.join(self.description.split())}")
        return "|".join(parts)

    def to_dict(self) -> dict:
        return {
            'id': self.id,
            'name': self.name,
            'class': self.class_name,
            'tagName': self.tag_name,
            'testId': self.test_id,
            'testAttribute': self.test_attribute,
            'xpath': self.xpath,
            'cssSelector': self.css_selector,
            'isUnique': self.is_unique,
            'description': self.description,
            'isInteractive': self.is_interactive,
            'type': self.type,
            'placeholder': self.placeholder,
            'value': self.value,
            'href': self.href,
            'role': self.role,
            'ariaLabel': self.aria_label,
            'text': self.text,
            'matchCounts': dict(self.match_counts),
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "Locator":
        return cls(
            tag_name=data.get('tagName') or 'unknown',
            id=data.get('id'),
            name=data.get('name'),
            class_name=data.get('class'),
            test_id=data.get('testId'),
            test_attribute=data.get('testAttribute'),
            xpath=data.get('xpath') or '',
            css_selector=data.get('cssSelector') or '',
            is_unique=bool(data.get('isUnique')),
            description=data.get('description') or '',
            is_interactive=bool(data.get('isInteractive')),
            type=data.get('type'),
            placeholder=data.get('placeholder'),
            value=data.get('value'),
            href=data.get('href'),
            role=data.get('role'),
            aria_label=data.get('ariaLabel'),
            text=data.get('text'),
            match_counts=dict(data.get('matchCounts') or {}),
        )


# ---------------------------------------------------------------------------
# Page / crawl records
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class PageResult:
    """Extraction output for one visited URL."""
    page_name: str
    page_url: str
    depth: int
    locators: Tuple[Locator, ...] = ()
    error: Optional[str] = None

    def to_dict(self) -> dict:
        data = {
            'pageName': self.page_name,
            'pageUrl': self.page_url,
            'depth': self.depth,
            'locators': [loc.to_dict() for loc in self.locators],
        }
        if self.error:
            data['error'] = self.error
        return data


@dataclass(frozen=True)
class CrawlTask:
    """One pending visit on the traversal stack."""
    url: str
    depth: int


@dataclass(frozen=True)
class StrategyCandidate:
    """One scored selector strategy."""
    strategy: str
    score: float
    confidence: float


# ---------------------------------------------------------------------------
# Filters
# ---------------------------------------------------------------------------

@dataclass
class LocatorFilters:
    """
    Per-category include switches.

    A category explicitly set to ``False`` is suppressed; anything not
    mentioned is included.
    """
    categories: Dict[str, bool] = field(default_factory=dict)

    @classmethod
    def from_mapping(cls, mapping: Optional[Mapping[str, Any]]) -> "LocatorFilters":
        if not mapping:
            return cls()
        unknown = set(mapping) - set(FILTER_CATEGORIES)
        if unknown:
            raise ValueError(f"Unknown locator filter categories: {sorted(unknown)}")
        return cls({k: bool(v) for k, v in mapping.items()})

    @classmethod
    def excluding(cls, *categories: str) -> "LocatorFilters":
        return cls.from_mapping({c: False for c in categories})

    def _off(self, category: str) -> bool:
        return self.categories.get(category) is False

    def allows(self, locator: Locator) -> bool:
        """Return True if *locator* survives the category switches."""
        if not self.categories:
            return True

        tag = locator.tag_name or ''
        input_type = (locator.type or '').lower()

        if tag == 'input':
            if input_type == 'checkbox':
                return not self._off('checkbox')
            if input_type == 'radio':
                return not self._off('radio')
            if input_type in ('submit', 'button'):
                return not self._off('button')
            if input_type in _TEXTUAL_INPUT_TYPES:
                return not self._off('input')
            return True
        if tag == 'button':
            return not self._off('button')
        if tag == 'a':
            return not self._off('link')
        if tag in ('select', 'textarea', 'form'):
            return not self._off(tag)
        return True

    def to_dict(self) -> Dict[str, bool]:
        return dict(self.categories)


# ---------------------------------------------------------------------------
# Accumulators (passed by the caller, never global)
# ---------------------------------------------------------------------------

@dataclass
class ExtractionStats:
    """Debug counters for one or more extraction passes."""
    candidates: int = 0
    not_elements: int = 0
    hidden: int = 0
    useless: int = 0
    rejected: int = 0
    filtered_out: int = 0
    duplicates: int = 0
    element_errors: int = 0
    accepted: int = 0

    def to_dict(self) -> Dict[str, int]:
        return dict(self.__dict__)


@dataclass
class CrawlStats:
    """Counters for one crawl run."""
    pages_visited: int = 0
    pages_with_locators: int = 0
    pages_failed: int = 0
    links_discovered: int = 0
    session_restarts: int = 0
    static_fallbacks: int = 0
    stop_reason: str = "completed"
    extraction: ExtractionStats = field(default_factory=ExtractionStats)

    def to_dict(self) -> Dict[str, Any]:
        data = {k: v for k, v in self.__dict__.items() if k != 'extraction'}
        data['extraction'] = self.extraction.to_dict()
        return data
