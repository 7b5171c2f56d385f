"""
Locator Quality Scorer
======================
Rule-weighted ranking of competing selector strategies for one locator.

Every strategy whose underlying fact is present gets a base weight plus
additive bonuses (uniqueness, interactivity, automation-friendly class
names).  Confidence is the score normalised against a fixed per-strategy
ceiling and clamped to ``[0, 1]``.

``score()`` never raises: if anything goes wrong while ranking, the fixed
decision ladder in ``fallback_ladder()`` answers instead.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping, NamedTuple, Tuple, Union

from .models import Locator, StrategyCandidate

logger = logging.getLogger(__name__)

TEST_ID = "TEST_ID"
ID = "ID"
NAME = "NAME"
CLASS = "CLASS"
XPATH = "XPATH"
TAG = "TAG"

STRATEGY_WEIGHTS = {
    TEST_ID: 100,
    ID: 90,
    NAME: 80,
    CLASS: 60,
    XPATH: 40,
    TAG: 20,
}

QUALITY_BONUS = {
    "unique": 30,
    "interactive": 20,
    "has_text": 15,
    "automation_class": 10,
}

# Score at which a strategy reaches confidence 1.0
STRATEGY_NORMALIZERS = {
    TEST_ID: 150,
    ID: 140,
    NAME: 130,
    CLASS: 100,
    XPATH: 80,
    TAG: 60,
}

AUTOMATION_CLASS_HINTS = ("btn", "button", "form", "input", "control")

# Fixed decision ladder used when ranking fails
FALLBACK_CONFIDENCE = {
    TEST_ID: 0.95,
    ID: 0.9,
    NAME: 0.85,
    CLASS: 0.7,
    XPATH: 0.6,
}


class LocatorFacts(NamedTuple):
    """The subset of a locator the scorer looks at."""
    test_id: str = ""
    id: str = ""
    name: str = ""
    class_name: str = ""
    description: str = ""
    is_unique: bool = False
    is_interactive: bool = False
    match_counts: Mapping[str, int] = {}

    @classmethod
    def of(cls, source: Union[Locator, Mapping[str, Any], "LocatorFacts"]) -> "LocatorFacts":
        if isinstance(source, LocatorFacts):
            return source
        if isinstance(source, Locator):
            return cls(
                test_id=source.test_id or "",
                id=source.id or "",
                name=source.name or "",
                class_name=source.class_name or "",
                description=source.description or "",
                is_unique=source.is_unique,
                is_interactive=source.is_interactive,
                match_counts=dict(source.match_counts),
            )
        return cls(
            test_id=source.get("testId") or "",
            id=source.get("id") or "",
            name=source.get("name") or "",
            class_name=source.get("class") or "",
            description=source.get("description") or "",
            is_unique=bool(source.get("isUnique")),
            is_interactive=bool(source.get("isInteractive")),
            match_counts=dict(source.get("matchCounts") or {}),
        )

    def unique_for(self, strategy: str) -> bool:
        """Uniqueness evidence for *strategy*."""
        if self.is_unique:
            return True
        key = {TEST_ID: "testId", NAME: "name", CLASS: "class"}.get(strategy)
        return key is not None and self.match_counts.get(key) == 1


@dataclass
class Recommendation:
    """Best strategy plus the full ranked list for callers needing alternates."""
    strategy: str
    confidence: float
    candidates: List[StrategyCandidate] = field(default_factory=list)
    fallback: bool = False

    def to_dict(self) -> Dict[str, Any]:
        return {
            'strategy': self.strategy,
            'confidence': round(self.confidence, 3),
            'probabilities': [
                {'strategy': c.strategy, 'confidence': round(c.confidence, 3)}
                for c in self.candidates
            ],
        }


def _candidate(strategy: str, score: float) -> StrategyCandidate:
    confidence = max(0.0, min(score / STRATEGY_NORMALIZERS[strategy], 1.0))
    return StrategyCandidate(strategy=strategy, score=score, confidence=confidence)


def _attribute_score(facts: LocatorFacts, strategy: str) -> int:
    score = STRATEGY_WEIGHTS[strategy]
    if facts.unique_for(strategy):
        score += QUALITY_BONUS["unique"]
    if facts.is_interactive:
        score += QUALITY_BONUS["interactive"]
    return score


def _rank(facts: LocatorFacts) -> List[StrategyCandidate]:
    candidates: List[StrategyCandidate] = []

    if facts.test_id:
        candidates.append(_candidate(TEST_ID, _attribute_score(facts, TEST_ID)))
    if facts.id:
        candidates.append(_candidate(ID, _attribute_score(facts, ID)))
    if facts.name:
        candidates.append(_candidate(NAME, _attribute_score(facts, NAME)))
    if facts.class_name:
        class_score = _attribute_score(facts, CLASS)
        lowered = facts.class_name.lower()
        if any(hint in lowered for hint in AUTOMATION_CLASS_HINTS):
            class_score += QUALITY_BONUS["automation_class"]
        candidates.append(_candidate(CLASS, class_score))

    # XPath is always available as the last resort
    xpath_score = STRATEGY_WEIGHTS[XPATH]
    if facts.description:
        xpath_score += QUALITY_BONUS["has_text"]
    if facts.is_interactive:
        xpath_score += QUALITY_BONUS["interactive"]
    candidates.append(_candidate(XPATH, xpath_score))

    # Stable sort keeps declaration order (TEST_ID first) on ties
    candidates.sort(key=lambda c: c.score, reverse=True)
    return candidates


def fallback_ladder(facts: Union[Locator, Mapping[str, Any], LocatorFacts]) -> StrategyCandidate:
    """Deterministic decision used when ranking is unavailable."""
    try:
        f = LocatorFacts.of(facts)
    except Exception:
        f = LocatorFacts()

    if f.test_id:
        strategy = TEST_ID
    elif f.id and f.unique_for(ID):
        strategy = ID
    elif f.name and f.unique_for(NAME):
        strategy = NAME
    elif f.class_name and f.unique_for(CLASS):
        strategy = CLASS
    else:
        strategy = XPATH
    return StrategyCandidate(
        strategy=strategy,
        score=float(STRATEGY_WEIGHTS[strategy]),
        confidence=FALLBACK_CONFIDENCE[strategy],
    )


def _score(facts) -> Tuple[List[StrategyCandidate], bool]:
    try:
        return _rank(LocatorFacts.of(facts)), False
    except Exception as e:
        logger.error(f"[SCORE] Ranking failed ({e}), using fallback ladder")
        return [fallback_ladder(facts)], True


def score(facts: Union[Locator, Mapping[str, Any], LocatorFacts]) -> List[StrategyCandidate]:
    """Ranked strategy candidates for *facts*, best first."""
    candidates, _ = _score(facts)
    return candidates


def recommend(facts: Union[Locator, Mapping[str, Any], LocatorFacts]) -> Recommendation:
    """Best strategy for *facts*, with the ranked alternates attached."""
    candidates, used_fallback = _score(facts)
    best = candidates[0]
    if best.confidence >= 0.9:
        logger.debug(f"[SCORE] Best strategy: {best.strategy} (confidence: {best.confidence:.3f})")
    return Recommendation(
        strategy=best.strategy,
        confidence=best.confidence,
        candidates=candidates,
        fallback=used_fallback,
    )
