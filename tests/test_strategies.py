"""
Tests for framework expression templates (Selenium / Playwright / Cypress).

The module is imported whole: pytest would otherwise collect
``testid_expression`` as a test function.
"""

import lxml.html
import pytest
from bs4 import BeautifulSoup

from locator_crawler import strategies
from locator_crawler.models import Locator
from locator_crawler.scoring import CLASS, ID, NAME, TEST_ID, XPATH, recommend
from locator_crawler.static_snapshot import extract_html
from locator_crawler.strategies import class_expression, expressions_for, id_expression, smart_xpath


class TestTemplates:

    def test_testid(self):
        expr = strategies.testid_expression("login-btn", 1.0)
        assert expr.value == '[data-testid="login-btn"]'
        assert expr.selenium == 'By.cssSelector("[data-testid=\\"login-btn\\"]")'
        assert expr.playwright == "page.getByTestId('login-btn')"
        assert expr.cypress == "cy.get('[data-testid=\"login-btn\"]')"

    def test_other_test_attribute(self):
        expr = strategies.testid_expression("go", 1.0, "data-cy")
        assert expr.value == '[data-cy="go"]'
        assert expr.playwright == "page.locator('[data-cy=\"go\"]')"
        assert expr.cypress == "cy.get('[data-cy=\"go\"]')"

    def test_id_escaped(self):
        expr = id_expression("1st", 0.5)
        assert expr.value == "#\\31 st"
        assert expr.selenium == 'By.id("1st")'
        assert expr.playwright == "page.locator('#\\\\31 st')"

    def test_quotes_escaped(self):
        expr = id_expression("it's", 0.5)
        assert expr.playwright == "page.locator('#it\\\\\\'s')"
        assert expr.selenium == 'By.id("it\'s")'

    def test_class_uses_shortest(self):
        expr = class_expression("btn-primary btn wide-button", 0.7)
        assert expr.value == ".btn"
        assert expr.selenium == 'By.className("btn")'

    def test_class_empty(self):
        assert class_expression("   ", 0.7) is None

    def test_to_dict(self):
        data = strategies.testid_expression("x", 0.12345).to_dict()
        assert data["type"] == TEST_ID
        assert data["priority"] == 1
        assert data["confidence"] == 0.123


class TestSmartXPath:

    def test_text_first(self):
        loc = Locator(tag_name="button", description="button - Save", text="Save", placeholder="p")
        assert smart_xpath(loc) == "//button[contains(normalize-space(.), 'Save')]"

    def test_text_truncated(self):
        loc = Locator(tag_name="a", description="a - long", text="x" * 50)
        assert smart_xpath(loc) == "//a[contains(normalize-space(.), '{}')]".format("x" * 30)

    def test_description_is_not_text(self):
        loc = Locator(tag_name="input", description="input - Email", placeholder="Email")
        assert smart_xpath(loc) == "//input[@placeholder='Email']"

    def test_placeholder_then_type(self):
        assert smart_xpath(Locator(tag_name="input", placeholder="Email")) == "//input[@placeholder='Email']"
        assert smart_xpath(Locator(tag_name="input", type="file")) == "//input[@type='file']"

    def test_stored_xpath_last(self):
        assert smart_xpath(Locator(tag_name="div", xpath="//div[1]")) == "//div[1]"
        assert smart_xpath(Locator(tag_name="div")) == "//div"

    @pytest.mark.parametrize("tag,html", [
        ("a", '<a class="nav-link" href="/x">Docs</a>'),
        ("button", '<button class="btn"><span>Save</span> changes</button>'),
        ("input", '<input type="file" class="upload">'),
    ])
    def test_matches_extracted_element(self, tag, html):
        page = f"<html><body><main>{html}</main></body></html>"
        locator = next(loc for loc in extract_html(page) if loc.tag_name == tag)
        tree = lxml.html.fromstring(page)
        assert len(tree.xpath(smart_xpath(locator))) == 1


class TestExpressionsFor:

    def test_recommended_first_then_alternates(self):
        loc = Locator(tag_name="button", test_id="go", id="submit", is_unique=True, is_interactive=True)
        exprs = expressions_for(loc)
        assert [e.strategy for e in exprs] == [TEST_ID, ID]
        assert exprs[0].confidence == pytest.approx(recommend(loc).confidence)
        assert exprs[1].confidence == pytest.approx(0.85)

    def test_duplicate_id_becomes_alternate(self):
        # class: 60 + unique 30 + interactive 20 + btn 10, id: 90 + interactive 20
        loc = Locator(tag_name="button", id="dup", class_name="btn-primary", is_interactive=True,
                      match_counts={"class": 1})
        exprs = expressions_for(loc)
        assert [e.strategy for e in exprs] == [CLASS, ID]
        assert exprs[0].value == ".btn-primary"
        assert exprs[1].confidence == pytest.approx(0.85)

    @pytest.mark.parametrize("loc,strategy", [
        (Locator(tag_name="input", name="q", is_interactive=True), NAME),
        (Locator(tag_name="div", class_name="btn card", match_counts={"class": 1}), CLASS),
        (Locator(tag_name="span", description="span - Hi"), XPATH),
    ])
    def test_single_strategy(self, loc, strategy):
        exprs = expressions_for(loc)
        assert len(exprs) == 1
        assert exprs[0].strategy == strategy

    @pytest.mark.parametrize("attr", ["data-testid", "data-test", "data-cy"])
    def test_test_id_expression_matches_element(self, attr):
        html = f'<html><body><button {attr}="go">Go</button><button>Other</button></body></html>'
        locator = next(loc for loc in extract_html(html) if loc.test_id)
        assert locator.test_attribute == attr
        expr = expressions_for(locator)[0]
        assert expr.strategy == TEST_ID
        assert expr.value == locator.css_selector
        assert len(BeautifulSoup(html, "lxml").select(expr.value)) == 1

    def test_precomputed_recommendation_reused(self):
        loc = Locator(tag_name="input", name="q")
        rec = recommend(loc)
        assert expressions_for(loc, rec)[0].confidence == rec.confidence
