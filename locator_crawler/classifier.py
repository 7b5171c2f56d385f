"""
Element Classifier
==================
Pure predicates over ``ElementSnapshot``: is the node something a test would
interact with, and is it worth reporting at all.
"""

from __future__ import annotations

from .models import ElementSnapshot, EXTRA_TEST_ATTRIBUTES, TEST_ATTRIBUTES

INTERACTIVE_TAGS = frozenset({
    "input", "button", "select", "textarea", "a", "form", "details", "summary",
})

INTERACTIVE_ROLES = frozenset({
    "button", "link", "textbox", "combobox", "checkbox", "radio", "slider",
    "tab", "menuitem", "option", "searchbox", "switch", "scrollbar",
})

INTERACTIVE_TYPES = frozenset({
    "submit", "button", "reset", "image", "file", "range", "color",
    "date", "time", "email", "url", "search", "tel", "number",
})

INTERACTIVE_CLASS_HINTS = (
    "btn", "button", "link", "input", "clickable", "interactive", "control",
    "field", "toggle", "switch", "select", "dropdown", "menu", "tab",
    "accordion", "modal", "dialog", "popup",
)

EVENT_HANDLER_ATTRIBUTES = (
    "onclick", "onchange", "onmousedown", "onmouseup", "onkeydown", "onkeyup",
    "oninput", "onsubmit", "ontouchstart",
)

_CONTAINER_TAGS = frozenset({"div", "span", "p"})

_ALL_TEST_ATTRIBUTES = TEST_ATTRIBUTES + EXTRA_TEST_ATTRIBUTES


def has_test_attribute(el: ElementSnapshot) -> bool:
    return any(el.has_attr(attr) for attr in _ALL_TEST_ATTRIBUTES)


def _is_focusable(el: ElementSnapshot) -> bool:
    tabindex = el.attr("tabindex")
    if tabindex is None:
        return False
    try:
        return int(tabindex.strip()) >= 0
    except ValueError:
        # Browsers treat an unparsable tabindex as absent
        return False


def _has_interactive_class(el: ElementSnapshot) -> bool:
    class_name = (el.class_name or "").lower()
    return bool(class_name) and any(hint in class_name for hint in INTERACTIVE_CLASS_HINTS)


def is_interactive(el: ElementSnapshot) -> bool:
    """Return True if *el* looks like something a user (or a test) acts on."""
    return (
        el.tag in INTERACTIVE_TAGS
        or (el.role or "") in INTERACTIVE_ROLES
        or (el.type_attr or "") in INTERACTIVE_TYPES
        or bool(el.attr("href"))
        or any(el.has_attr(a) for a in EVENT_HANDLER_ATTRIBUTES)
        or el.has_handler_property
        or el.cursor == "pointer"
        or _has_interactive_class(el)
        or has_test_attribute(el)
        or _is_focusable(el)
        or el.content_editable == "true"
    )


def is_useless(el: ElementSnapshot) -> bool:
    """Return True if *el* carries nothing an automation script could anchor on."""
    if not (el.element_id or el.name or el.class_name or el.test_id or el.tag):
        return True
    if el.tag in _CONTAINER_TAGS:
        return not (el.element_id or el.class_name or has_test_attribute(el))
    return False
