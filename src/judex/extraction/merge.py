"""Merging of rule and AI extraction results.

The merge is a union, never an override: every element either side found
survives, and elements both sides found are fused into one ``merged``
element. Disagreements on a fused element are resolved by confidence,
with exact ties going to the rule side, and always recorded.
"""

import logging
from typing import Any

from pydantic import ValidationError
from rapidfuzz import fuzz

from ..logging import log_merge_conflict
from .deterministic import element_key, normalize_name, normalize_text
from .models import (
    CONFLICT_FIELDS,
    AmountValue,
    ClauseValue,
    ConflictRecord,
    DateValue,
    ElementCategory,
    ElementSource,
    ElementValue,
    ExtractedElement,
    FactValue,
    MergedResult,
    PartyValue,
    Resolution,
    ResultSource,
)

logger = logging.getLogger(__name__)

# Weights for the overall confidence of a result
CATEGORY_WEIGHTS: dict[ElementCategory, float] = {
    ElementCategory.DATE: 1.5,
    ElementCategory.PARTY: 1.5,
    ElementCategory.AMOUNT: 1.2,
    ElementCategory.CLAUSE: 1.0,
    ElementCategory.FACT: 0.6,
}

AGREEMENT_BOOST = 0.05


class MergeEngine:
    """Fuses rule and AI elements into one ``MergedResult``.

    Pure and deterministic: the same inputs always give the same output.
    """

    def __init__(self, amount_tolerance: float = 0.005, text_similarity: float = 0.6):
        """Initialize the engine.

        Args:
            amount_tolerance: Max relative difference for two amounts to match
            text_similarity: Min lexical similarity (0..1) for clause/fact matches
        """
        self.amount_tolerance = amount_tolerance
        self.text_similarity = text_similarity

    def merge(
        self,
        rule_elements: list[ExtractedElement],
        ai_elements: list[ExtractedElement],
    ) -> MergedResult:
        """Merge both element sets.

        Args:
            rule_elements: Normalized rule-sourced elements
            ai_elements: Normalized AI-sourced elements (empty on fallback)

        Returns:
            MergedResult with elements per category, conflicts and provenance
        """
        rules = self._sanitize(rule_elements, ElementSource.RULE)
        ais = self._sanitize(ai_elements, ElementSource.AI)

        paired_ai: set[int] = set()
        conflicts: list[ConflictRecord] = []
        by_category: dict[ElementCategory, list[ExtractedElement]] = {
            category: [] for category in ElementCategory
        }

        for rule_element in rules:
            partner_index = self._find_partner(rule_element, ais, paired_ai)
            if partner_index is None:
                by_category[rule_element.category].append(rule_element)
                continue

            paired_ai.add(partner_index)
            merged, conflict = self._fuse(rule_element, ais[partner_index])
            by_category[merged.category].append(merged)
            if conflict is not None:
                conflicts.append(conflict)
                log_merge_conflict(
                    conflict.key, conflict.differing_fields, conflict.resolution.value
                )

        for index, ai_element in enumerate(ais):
            if index not in paired_ai:
                by_category[ai_element.category].append(ai_element)

        by_category[ElementCategory.DATE].sort(key=lambda e: e.value.date)

        elements = {category: items for category, items in by_category.items() if items}
        # Every valid AI element lands in the result, fused or on its own
        ai_contributed = bool(ais)

        result = MergedResult(
            elements=elements,
            conflicts=conflicts,
            overall_confidence=self.overall_confidence(elements),
            source=ResultSource.MERGED if ai_contributed else ResultSource.RULE,
        )
        logger.debug(
            f"Merged {len(rules)} rule and {len(ais)} AI elements into "
            f"{result.element_count} ({len(conflicts)} conflicts)"
        )
        return result

    def overall_confidence(
        self, elements: dict[ElementCategory, list[ExtractedElement]]
    ) -> float:
        """Weighted mean of element confidences, 0.0 when there are none."""
        total = 0.0
        weight_sum = 0.0
        for category, items in elements.items():
            weight = CATEGORY_WEIGHTS.get(category, 1.0)
            for element in items:
                total += element.confidence * weight
                weight_sum += weight
        if weight_sum == 0:
            return 0.0
        return round(total / weight_sum, 4)

    def matches(self, rule_element: ExtractedElement, ai_element: ExtractedElement) -> bool:
        """Whether two elements describe the same fact."""
        if rule_element.category != ai_element.category:
            return False
        left, right = rule_element.value, ai_element.value

        if isinstance(left, DateValue) and isinstance(right, DateValue):
            return left.date == right.date
        if isinstance(left, PartyValue) and isinstance(right, PartyValue):
            return normalize_name(left.name) == normalize_name(right.name)
        if isinstance(left, AmountValue) and isinstance(right, AmountValue):
            return self._amounts_match(left, right)
        if isinstance(left, ClauseValue) and isinstance(right, ClauseValue):
            # Different articles of one law are different clauses
            if left.article and right.article and left.article != right.article:
                return False
            return self._texts_match(normalize_text(left.law), normalize_text(right.law))
        if isinstance(left, FactValue) and isinstance(right, FactValue):
            return self._texts_match(element_key(left), element_key(right))
        return False

    def _amounts_match(self, left: AmountValue, right: AmountValue) -> bool:
        if left.currency != right.currency:
            return False
        largest = max(left.value, right.value)
        if largest == 0:
            return True
        difference = abs(left.value - right.value) / largest
        return float(difference) <= self.amount_tolerance

    def _texts_match(self, left: str, right: str) -> bool:
        if not left or not right:
            return False
        if left in right or right in left:
            return True
        return fuzz.ratio(left, right) / 100.0 >= self.text_similarity

    def _find_partner(
        self,
        rule_element: ExtractedElement,
        ais: list[ExtractedElement],
        paired: set[int],
    ) -> int | None:
        """Index of the first unpaired AI element matching a rule element."""
        for index, ai_element in enumerate(ais):
            if index not in paired and self.matches(rule_element, ai_element):
                return index
        return None

    def _fuse(
        self, rule_element: ExtractedElement, ai_element: ExtractedElement
    ) -> tuple[ExtractedElement, ConflictRecord | None]:
        """Fuse a matched pair, resolving conflicting attributes."""
        category = rule_element.category
        differing = [
            name
            for name in CONFLICT_FIELDS[category]
            if getattr(rule_element.value, name) != getattr(ai_element.value, name)
        ]

        if rule_element.confidence > ai_element.confidence:
            resolution = Resolution.RULE_CONFIDENCE_HIGHER
        elif ai_element.confidence > rule_element.confidence:
            resolution = Resolution.AI_CONFIDENCE_HIGHER
        else:
            resolution = Resolution.RULE_WINS_TIE

        if resolution == Resolution.AI_CONFIDENCE_HIGHER:
            winner, loser = ai_element, rule_element
        else:
            winner, loser = rule_element, ai_element

        conflict = None
        if differing:
            confidence = winner.confidence
            conflict = ConflictRecord(
                key=f"{category.value}:{element_key(rule_element.value)}",
                category=category,
                differing_fields=differing,
                rule_value=rule_element.value,
                ai_value=ai_element.value,
                rule_confidence=rule_element.confidence,
                ai_confidence=ai_element.confidence,
                resolution=resolution,
            )
        else:
            confidence = min(1.0, max(rule_element.confidence, ai_element.confidence) + AGREEMENT_BOOST)

        merged = ExtractedElement(
            category=category,
            value=_fill_missing(winner.value, loser.value),
            description=winner.description or loser.description,
            confidence=round(confidence, 4),
            source=ElementSource.MERGED,
            span=rule_element.span,
            rule=rule_element.rule,
            contributors=(rule_element, ai_element),
        )
        return merged, conflict

    def _sanitize(self, elements: list[Any], source: ElementSource) -> list[ExtractedElement]:
        """Drop malformed inputs with a warning instead of aborting."""
        valid: list[ExtractedElement] = []
        for position, element in enumerate(elements or []):
            if isinstance(element, dict):
                try:
                    element = ExtractedElement.model_validate(element)
                except ValidationError as e:
                    logger.warning(
                        f"Skipping malformed {source.value} element #{position}: "
                        f"{e.error_count()} validation errors"
                    )
                    continue
            if not isinstance(element, ExtractedElement):
                logger.warning(
                    f"Skipping malformed {source.value} element #{position}: "
                    f"{type(element).__name__}"
                )
                continue
            if element.source != source:
                logger.warning(
                    f"Skipping {element.source.value} element #{position} "
                    f"passed as {source.value} input"
                )
                continue
            valid.append(element)
        return valid


def _fill_missing(primary: ElementValue, secondary: ElementValue) -> ElementValue:
    """Fill optional fields the primary payload lacks from the secondary one."""
    updates = {
        name: getattr(secondary, name)
        for name in type(primary).model_fields
        if getattr(primary, name) is None and getattr(secondary, name, None) is not None
    }
    return primary.model_copy(update=updates) if updates else primary
