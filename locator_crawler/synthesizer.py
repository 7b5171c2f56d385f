"""
Selector Synthesizer
====================
Turns one ``ElementSnapshot`` into a CSS selector, an XPath and a short
human-readable description.

Each output is produced by an ordered rule table of ``(name, applies, build)``
entries evaluated top to bottom; the first rule whose predicate holds wins.
The tables are module-level so callers (and tests) can inspect the order.
"""

from __future__ import annotations

import re
from typing import Callable, List, NamedTuple, Optional, Sequence

from .models import ElementSnapshot, TEST_ATTRIBUTES


class Rule(NamedTuple):
    name: str
    applies: Callable[[ElementSnapshot], bool]
    build: Callable[[ElementSnapshot], Optional[str]]


def first_match(rules: Sequence[Rule], el: ElementSnapshot) -> Optional[str]:
    """Evaluate *rules* in order; return the first non-empty build result."""
    for rule in rules:
        if rule.applies(el):
            result = rule.build(el)
            if result:
                return result
    return None


# ---------------------------------------------------------------------------
# Escaping helpers
# ---------------------------------------------------------------------------

def css_escape(ident: str) -> str:
    """Python port of the CSSOM ``CSS.escape()`` algorithm."""
    out = []
    length = len(ident)
    for i, ch in enumerate(ident):
        code = ord(ch)
        if code == 0:
            out.append("\ufffd")
        elif 0x1 <= code <= 0x1F or code == 0x7F:
            out.append(f"\\{code:x} ")
        elif i == 0 and "0" <= ch <= "9":
            out.append(f"\\{code:x} ")
        elif i == 1 and "0" <= ch <= "9" and ident[0] == "-":
            out.append(f"\\{code:x} ")
        elif i == 0 and ch == "-" and length == 1:
            out.append("\\-")
        elif code >= 0x80 or ch in "-_" or ch.isascii() and ch.isalnum():
            out.append(ch)
        else:
            out.append("\\" + ch)
    return "".join(out)


def css_attr_value(value: str) -> str:
    """Quote *value* for use inside ``[attr="..."]``."""
    return '"' + value.replace("\\", "\\\\").replace('"', '\\"') + '"'


def xpath_literal(value: str) -> str:
    """Quote *value* as an XPath 1.0 string literal."""
    if "'" not in value:
        return f"'{value}'"
    if '"' not in value:
        return f'"{value}"'
    parts = value.split("'")
    return "concat(" + ", \"'\", ".join(f"'{p}'" for p in parts) + ")"


def normalize_text(text: str) -> str:
    return " ".join((text or "").split())


# ---------------------------------------------------------------------------
# Description
# ---------------------------------------------------------------------------

_UTILITY_CLASS_RE = re.compile(r"^(col|row|d-|m-|p-|text-|bg-|border-|flex-|justify-|align-)")

DESCRIPTION_TEXT_LIMIT = 50
SHORT_VALUE_LIMIT = 30


def _short_text(el: ElementSnapshot) -> str:
    return (el.text or "").strip()[:DESCRIPTION_TEXT_LIMIT]


def _attr_text(el: ElementSnapshot, name: str) -> str:
    return (el.attr(name) or "").strip()


def meaningful_class(el: ElementSnapshot) -> Optional[str]:
    """First class token that is not a layout/utility class."""
    for token in el.class_tokens:
        if len(token) > 2 and not _UTILITY_CLASS_RE.match(token):
            return token
    return None


def _labelled(attr: str) -> Rule:
    return Rule(
        name=attr,
        applies=lambda el: bool(_attr_text(el, attr)),
        build=lambda el: f"{el.tag} - {_attr_text(el, attr)}",
    )


def _typed_hint(el: ElementSnapshot) -> str:
    return f"{el.tag}[{el.type_attr}] - {_short_text(el) or 'input'}"


def _role_hint(el: ElementSnapshot) -> str:
    return f"{el.tag}[{el.role}] - {_short_text(el) or 'element'}"


DESCRIPTION_RULES: List[Rule] = [
    _labelled("aria-label"),
    Rule("label-for", lambda el: bool(el.element_id and el.label_text.strip()),
         lambda el: f"{el.tag} - {el.label_text.strip()}"),
    _labelled("placeholder"),
    _labelled("title"),
    _labelled("alt"),
    Rule("short-value", lambda el: 0 < len(el.attr("value") or "") < SHORT_VALUE_LIMIT,
         lambda el: f"{el.tag} - {el.attr('value')}"),
    Rule("typed-input", lambda el: bool(el.type_attr) and el.type_attr != "text", _typed_hint),
    Rule("role", lambda el: bool(el.role), _role_hint),
    Rule("text", lambda el: bool(_short_text(el)), lambda el: f"{el.tag} - {_short_text(el)}"),
    Rule("class", lambda el: meaningful_class(el) is not None,
         lambda el: f"{el.tag}.{meaningful_class(el)} element"),
    Rule("tag", lambda el: True, lambda el: f"{el.tag} element"),
]


def describe(el: ElementSnapshot) -> str:
    """Human-readable description of *el*."""
    return first_match(DESCRIPTION_RULES, el) or f"{el.tag} element"


# ---------------------------------------------------------------------------
# Uniqueness
# ---------------------------------------------------------------------------

def id_is_unique(el: ElementSnapshot) -> bool:
    """True only when the escaped ``#id`` selector matched exactly one node."""
    return bool(el.element_id) and el.id_count == 1


# ---------------------------------------------------------------------------
# CSS selector
# ---------------------------------------------------------------------------

_GENERATED_CLASS_RES = (
    re.compile(r"^[a-z]+\d+$"),             # css123
    re.compile(r"^_[a-zA-Z0-9]+$"),          # webpack/css-modules hashes
    re.compile(r"^[a-z]{1,3}\d{3,}$"),       # short prefix + number
)

SEMANTIC_CLASS_HINTS = (
    "btn", "button", "input", "form", "nav", "menu", "header", "footer",
    "content", "main",
)


def stable_classes(el: ElementSnapshot) -> List[str]:
    """Class tokens that do not look auto-generated."""
    return [
        c for c in el.class_tokens
        if len(c) > 2 and not any(rx.match(c) for rx in _GENERATED_CLASS_RES)
    ]


def best_class(el: ElementSnapshot) -> Optional[str]:
    classes = stable_classes(el)
    if not classes:
        return None
    for c in classes:
        if any(hint in c for hint in SEMANTIC_CLASS_HINTS):
            return c
    return classes[0]


def _test_attr_css(attr: str) -> Rule:
    return Rule(
        name=attr,
        applies=lambda el: bool(el.attr(attr)),
        build=lambda el: f"[{attr}={css_attr_value(el.attr(attr))}]",
    )


CSS_RULES: List[Rule] = [
    *(_test_attr_css(attr) for attr in TEST_ATTRIBUTES),
    Rule("unique-id", id_is_unique, lambda el: "#" + css_escape(el.element_id)),
    Rule("name", lambda el: bool(el.name), lambda el: f"[name={css_attr_value(el.name)}]"),
    Rule("class", lambda el: best_class(el) is not None, lambda el: "." + css_escape(best_class(el))),
    Rule("input-type", lambda el: el.tag == "input" and bool(el.type_attr),
         lambda el: f"input[type={css_attr_value(el.type_attr)}]"),
    Rule("role", lambda el: bool(el.role), lambda el: f"[role={css_attr_value(el.role)}]"),
    Rule("tag", lambda el: True, lambda el: el.tag),
]


def css_selector(el: ElementSnapshot) -> str:
    return first_match(CSS_RULES, el) or el.tag


# ---------------------------------------------------------------------------
# XPath
# ---------------------------------------------------------------------------

XPATH_TEXT_LIMIT = 50
CHILD_TEXT_LIMIT = 100
TEXT_XPATH_TAGS = frozenset({"button", "a", "span", "div", "p"})
CLOSE_GLYPHS = frozenset({"×", "X", "✕", "✖"})
ANCHOR_TEXT_TAGS = frozenset({
    "span", "div", "p", "strong", "em", "b", "i", "small",
    "h1", "h2", "h3", "h4", "h5", "h6",
})
STRUCTURAL_DEPTH = 3

_NUMBERED_CLASS_RE = re.compile(r"^[a-z]+\d+$")


def _text_xpath(tag: str, text: str) -> str:
    return f"//{tag}[normalize-space(text())={xpath_literal(text)}]"


def _node_text(el: ElementSnapshot) -> str:
    return normalize_text(el.text)


def _has_short_text(el: ElementSnapshot) -> bool:
    text = _node_text(el)
    return 0 < len(text) < XPATH_TEXT_LIMIT and el.tag in TEXT_XPATH_TAGS


def _first_span(el: ElementSnapshot) -> Optional[dict]:
    for node in el.descendants:
        if node.get("tag") == "span":
            return node
    return None


def _close_button_xpath(el: ElementSnapshot) -> Optional[str]:
    text = _node_text(el)
    span = _first_span(el)
    if span and normalize_text(span.get("text", "")) == text:
        return _text_xpath("span", text)
    return None


def _anchor_title(el: ElementSnapshot) -> Optional[str]:
    title = (el.attr("title") or "").strip()
    if 0 < len(title) < XPATH_TEXT_LIMIT:
        return f"//a[@title={xpath_literal(title)}]"
    return None


def _anchor_span(el: ElementSnapshot) -> Optional[str]:
    span = _first_span(el)
    text = normalize_text(span.get("text", "")) if span else ""
    return _text_xpath("span", text) if text else None


def _anchor_dominant_descendant(el: ElementSnapshot) -> Optional[str]:
    anchor_text = _node_text(el)
    for node in el.descendants:
        text = normalize_text(node.get("text", ""))
        tag = node.get("tag", "")
        if 0 < len(text) < XPATH_TEXT_LIMIT and tag in ANCHOR_TEXT_TAGS:
            if len(text) / (len(anchor_text) or 1) > 0.5:
                return _text_xpath(tag, text)
    return None


def _anchor_child(el: ElementSnapshot) -> Optional[str]:
    for node in el.children:
        text = normalize_text(node.get("text", ""))
        if 0 < len(text) < CHILD_TEXT_LIMIT:
            return _text_xpath(node.get("tag", "*"), text)
    return None


def _anchor_href(el: ElementSnapshot) -> Optional[str]:
    href = el.attr("href")
    if href and href != "#":
        return f"//a[@href={xpath_literal(href)}]"
    return None


ANCHOR_XPATH_RULES: List[Rule] = [
    Rule("title", lambda el: True, _anchor_title),
    Rule("span", lambda el: True, _anchor_span),
    Rule("dominant-descendant", lambda el: True, _anchor_dominant_descendant),
    Rule("child", lambda el: True, _anchor_child),
    Rule("href", lambda el: True, _anchor_href),
    Rule("text", lambda el: True, lambda el: _text_xpath("a", _node_text(el))),
]


def _structural_part(node: dict) -> str:
    part = (node.get("tag") or "*").lower()
    classes = [
        c for c in (node.get("className") or "").split()
        if len(c) > 2 and not _NUMBERED_CLASS_RE.match(c)
    ]
    if classes:
        part += (
            "[contains(concat(' ', normalize-space(@class), ' '), "
            f"{xpath_literal(' ' + classes[0] + ' ')})]"
        )
    elif node.get("role"):
        part += f"[@role={xpath_literal(node['role'])}]"
    elif node.get("type"):
        part += f"[@type={xpath_literal(node['type'])}]"
    return part


def structural_xpath(el: ElementSnapshot) -> str:
    """Short ancestor path (at most three levels, element included)."""
    own = {
        "tag": el.tag,
        "className": el.class_name or "",
        "role": el.role or "",
        "type": el.type_attr or "",
    }
    levels = [own] + list(el.ancestors[: STRUCTURAL_DEPTH - 1])
    return "//" + "/".join(_structural_part(n) for n in reversed(levels))


def _text_rule_xpath(el: ElementSnapshot) -> Optional[str]:
    text = _node_text(el)
    if el.tag == "button" and text in CLOSE_GLYPHS:
        close = _close_button_xpath(el)
        if close:
            return close
    if el.tag == "a":
        return first_match(ANCHOR_XPATH_RULES, el)
    return _text_xpath(el.tag, text)


def _test_attr_xpath(attr: str) -> Rule:
    return Rule(
        name=attr,
        applies=lambda el: bool(el.attr(attr)),
        build=lambda el: f"//*[@{attr}={xpath_literal(el.attr(attr))}]",
    )


def _attr_xpath(name: str, value: Callable[[ElementSnapshot], Optional[str]]) -> Rule:
    return Rule(
        name=name,
        applies=lambda el: bool(value(el)),
        build=lambda el: f"//*[@{name}={xpath_literal(value(el))}]",
    )


XPATH_RULES: List[Rule] = [
    *(_test_attr_xpath(attr) for attr in TEST_ATTRIBUTES),
    _attr_xpath("id", lambda el: el.element_id),
    _attr_xpath("name", lambda el: el.name),
    Rule("text", _has_short_text, _text_rule_xpath),
    _attr_xpath("placeholder", lambda el: el.attr("placeholder")),
    _attr_xpath("type", lambda el: el.type_attr),
    _attr_xpath("role", lambda el: el.role),
    Rule("structural", lambda el: True, structural_xpath),
]


def xpath(el: ElementSnapshot) -> str:
    return first_match(XPATH_RULES, el) or structural_xpath(el)
