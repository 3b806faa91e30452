"""Deterministic element extraction.

Applies the ordered pattern table from ``patterns`` to judgment text and
turns matches into rule-sourced ``ExtractedElement`` objects.
"""

import logging

from .models import (
    AmountValue,
    ClauseValue,
    DateValue,
    ElementCategory,
    ElementSource,
    ElementValue,
    ExtractedElement,
    FactValue,
    PartyValue,
)
from .patterns import PATTERN_RULES, PatternRule, classify_case_type

logger = logging.getLogger(__name__)


def element_key(value: ElementValue) -> str:
    """Normalized identity of a payload, used for deduplication and matching."""
    if isinstance(value, DateValue):
        return value.date
    if isinstance(value, PartyValue):
        return normalize_name(value.name)
    if isinstance(value, AmountValue):
        return f"{value.currency}:{value.value.normalize():f}"
    if isinstance(value, ClauseValue):
        return normalize_text(f"{value.law}{value.article or ''}")
    if isinstance(value, FactValue):
        return normalize_text(value.content)
    raise TypeError(f"Unknown element payload: {type(value).__name__}")


def normalize_name(name: str) -> str:
    """Case-fold a name and unify whitespace and brackets."""
    return (
        "".join(name.split())
        .replace("（", "(")
        .replace("）", ")")
        .casefold()
    )


def normalize_text(text: str) -> str:
    """Strip whitespace, punctuation and the PRC prefix for text comparison."""
    text = text.replace("中华人民共和国", "")
    return "".join(ch for ch in text if ch.isalnum()).casefold()


class RuleExtractor:
    """Pattern-based element extractor.

    Extracts:
    - Dates (labelled, numeric, Chinese numeral, anchored deadlines)
    - Parties (plaintiff / defendant / third-party markers, companies, law firms)
    - Amounts (labelled, numeric with unit, Chinese numeral)
    - Legal clauses (statute articles, judicial interpretations, contract articles)
    - Facts (claims, court findings, statements, agreed facts)

    Rules run in table order. Within a category a match is dropped when its
    normalized value was already accepted or its span overlaps an accepted
    span, so earlier rows take precedence.
    """

    def __init__(self, rules: tuple[PatternRule, ...] = PATTERN_RULES):
        """Initialize the extractor.

        Args:
            rules: Ordered pattern table to apply
        """
        self.rules = rules

    def extract(self, text: str) -> list[ExtractedElement]:
        """Extract elements from text.

        Never raises: a row that fails on some input is logged and skipped.

        Args:
            text: Preprocessed judgment text

        Returns:
            Rule-sourced elements in category then table order
        """
        if not text:
            return []

        elements: list[ExtractedElement] = []
        seen_keys: dict[ElementCategory, set[str]] = {c: set() for c in ElementCategory}
        taken_spans: dict[ElementCategory, list[tuple[int, int]]] = {
            c: [] for c in ElementCategory
        }

        for rule in self.rules:
            try:
                found = self._apply_rule(rule, text)
            except Exception as e:
                logger.warning(f"Pattern rule {rule.name} failed: {e}")
                continue

            for element in found:
                key = element_key(element.value)
                if key in seen_keys[rule.category]:
                    continue
                if self._overlaps(element.span, taken_spans[rule.category]):
                    continue
                seen_keys[rule.category].add(key)
                elements.append(element)

            # Register spans after the whole row so one match may yield several elements
            for element in found:
                if element in elements:
                    taken_spans[rule.category].append(element.span)

        elements.sort(key=lambda e: list(ElementCategory).index(e.category))
        logger.debug(f"Rule extraction found {len(elements)} elements")
        return elements

    def classify_case_type(self, text: str) -> str:
        """Classify the case type of a document."""
        return classify_case_type(text)

    def _apply_rule(self, rule: PatternRule, text: str) -> list[ExtractedElement]:
        """Run one pattern row over the text.

        A match whose normalizer raises is logged and dropped; the row
        keeps its other matches.
        """
        elements = []
        for match in rule.pattern.finditer(text):
            try:
                elements.extend(
                    ExtractedElement(
                        category=rule.category,
                        value=candidate.value,
                        description=candidate.description,
                        confidence=rule.confidence,
                        source=ElementSource.RULE,
                        span=candidate.span,
                        rule=rule.name,
                    )
                    for candidate in rule.normalizer(match, text)
                )
            except Exception as e:
                logger.warning(f"Pattern rule {rule.name} failed at {match.start()}: {e}")
        return elements

    def _overlaps(self, span: tuple[int, int] | None, taken: list[tuple[int, int]]) -> bool:
        if span is None:
            return False
        start, end = span
        return any(start < t_end and t_start < end for t_start, t_end in taken)


# Singleton instance
_extractor: RuleExtractor | None = None


def get_rule_extractor() -> RuleExtractor:
    """Get the rule extractor singleton."""
    global _extractor
    if _extractor is None:
        _extractor = RuleExtractor()
    return _extractor
