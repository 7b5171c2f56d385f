"""
Strategy Templates
==================
Renders a scored locator as ready-to-paste expressions for Selenium (Java
``By``), Playwright and Cypress.

``expressions_for()`` returns the recommended expression first, followed by
alternates (test id, id) the element also supports.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, List, Optional

from .models import TEST_ATTRIBUTES, Locator
from .scoring import CLASS, ID, NAME, TEST_ID, XPATH, Recommendation, recommend
from .synthesizer import css_attr_value, css_escape, xpath_literal

SMART_XPATH_TEXT_LIMIT = 30
DEFAULT_TEST_ATTRIBUTE = TEST_ATTRIBUTES[0]

# Fixed confidences for alternates that were not the recommendation
ALTERNATE_CONFIDENCE = {TEST_ID: 0.9, ID: 0.85}


@dataclass(frozen=True)
class LocatorExpression:
    """One way to find an element, rendered for each framework."""
    strategy: str
    value: str
    selenium: str
    playwright: str
    cypress: str
    priority: int
    confidence: float

    def to_dict(self) -> Dict[str, Any]:
        return {
            'type': self.strategy,
            'value': self.value,
            'selenium': self.selenium,
            'playwright': self.playwright,
            'cypress': self.cypress,
            'priority': self.priority,
            'confidence': round(self.confidence, 3),
        }


def _java(value: str) -> str:
    """Java/JS double-quoted string literal."""
    return '"' + value.replace('\\', '\\\\').replace('"', '\\"') + '"'


def _js(value: str) -> str:
    """JS single-quoted string literal."""
    return "'" + value.replace('\\', '\\\\').replace("'", "\\'") + "'"


def testid_expression(
    test_id: str,
    confidence: float,
    attribute: Optional[str] = None,
) -> LocatorExpression:
    attribute = attribute or DEFAULT_TEST_ATTRIBUTE
    css = f"[{attribute}={css_attr_value(test_id)}]"
    # getByTestId only knows the default attribute
    if attribute == DEFAULT_TEST_ATTRIBUTE:
        playwright = f"page.getByTestId({_js(test_id)})"
    else:
        playwright = f"page.locator({_js(css)})"
    return LocatorExpression(
        strategy=TEST_ID,
        value=css,
        selenium=f"By.cssSelector({_java(css)})",
        playwright=playwright,
        cypress=f"cy.get({_js(css)})",
        priority=1,
        confidence=confidence,
    )


def id_expression(element_id: str, confidence: float) -> LocatorExpression:
    css = "#" + css_escape(element_id)
    return LocatorExpression(
        strategy=ID,
        value=css,
        selenium=f"By.id({_java(element_id)})",
        playwright=f"page.locator({_js(css)})",
        cypress=f"cy.get({_js(css)})",
        priority=1,
        confidence=confidence,
    )


def name_expression(name: str, confidence: float) -> LocatorExpression:
    css = f"[name={css_attr_value(name)}]"
    return LocatorExpression(
        strategy=NAME,
        value=css,
        selenium=f"By.name({_java(name)})",
        playwright=f"page.locator({_js(css)})",
        cypress=f"cy.get({_js(css)})",
        priority=2,
        confidence=confidence,
    )


def class_expression(class_name: str, confidence: float) -> Optional[LocatorExpression]:
    classes = class_name.split()
    if not classes:
        return None
    shortest = min(classes, key=len)
    css = "." + css_escape(shortest)
    return LocatorExpression(
        strategy=CLASS,
        value=css,
        selenium=f"By.className({_java(shortest)})",
        playwright=f"page.locator({_js(css)})",
        cypress=f"cy.get({_js(css)})",
        priority=3,
        confidence=confidence,
    )


def smart_xpath(locator: Locator) -> str:
    """Readable XPath: text, then placeholder, then type, then the stored one."""
    tag = locator.tag_name or "*"
    text = (locator.text or "")[:SMART_XPATH_TEXT_LIMIT].strip()
    if text:
        return f"//{tag}[contains(normalize-space(.), {xpath_literal(text)})]"
    if locator.placeholder:
        return f"//{tag}[@placeholder={xpath_literal(locator.placeholder)}]"
    if locator.type:
        return f"//{tag}[@type={xpath_literal(locator.type)}]"
    return locator.xpath or f"//{tag}"


def xpath_expression(locator: Locator, confidence: float) -> LocatorExpression:
    expr = smart_xpath(locator)
    return LocatorExpression(
        strategy=XPATH,
        value=expr,
        selenium=f"By.xpath({_java(expr)})",
        playwright=f"page.locator({_js('xpath=' + expr)})",
        cypress=f"cy.xpath({_js(expr)})",
        priority=4,
        confidence=confidence,
    )


def _primary(locator: Locator, rec: Recommendation) -> LocatorExpression:
    confidence = rec.confidence
    if rec.strategy == TEST_ID and locator.test_id:
        return testid_expression(locator.test_id, confidence, locator.test_attribute)
    if rec.strategy == ID and locator.id:
        return id_expression(locator.id, confidence)
    if rec.strategy == NAME and locator.name:
        return name_expression(locator.name, confidence)
    if rec.strategy == CLASS and locator.class_name:
        expr = class_expression(locator.class_name, confidence)
        if expr is not None:
            return expr
    return xpath_expression(locator, confidence)


def expressions_for(locator: Locator, rec: Optional[Recommendation] = None) -> List[LocatorExpression]:
    """
    Recommended expression for *locator*, then its alternates.

    Args:
        locator: The extracted locator.
        rec: A precomputed recommendation; scored on the fly when omitted.
    """
    rec = rec or recommend(locator)
    expressions = [_primary(locator, rec)]
    present = {expressions[0].strategy}

    if locator.test_id and TEST_ID not in present:
        expressions.append(testid_expression(
            locator.test_id, ALTERNATE_CONFIDENCE[TEST_ID], locator.test_attribute,
        ))
    if locator.id and ID not in present:
        expressions.append(id_expression(locator.id, ALTERNATE_CONFIDENCE[ID]))
    return expressions
