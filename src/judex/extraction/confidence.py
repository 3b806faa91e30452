"""Confidence normalization.

Rule and AI confidences come from different calibrations: rule rows carry
fixed baselines, the model self-reports. Both are rescaled per
``(source, category)`` onto one scale before merging.
"""

from dataclasses import dataclass, field

from .models import ElementCategory, ElementSource, ExtractedElement

DEFAULT_SCALES: dict[ElementSource, dict[ElementCategory, float]] = {
    ElementSource.RULE: {category: 1.0 for category in ElementCategory},
    ElementSource.AI: {
        ElementCategory.DATE: 0.95,
        ElementCategory.PARTY: 0.9,
        ElementCategory.AMOUNT: 0.95,
        ElementCategory.CLAUSE: 0.9,
        ElementCategory.FACT: 0.85,
    },
}

DEFAULT_CEILINGS: dict[ElementSource, float] = {
    ElementSource.RULE: 1.0,
    ElementSource.AI: 0.95,
}


def clamp01(value: float) -> float:
    return min(max(value, 0.0), 1.0)


@dataclass(frozen=True)
class ConfidenceNormalizer:
    """Rescales element confidence per source and category.

    ``normalized = min(clamp01(raw * scale[source][category]), ceiling[source])``

    Pure and deterministic; elements are copied, never mutated.
    """

    scales: dict[ElementSource, dict[ElementCategory, float]] = field(
        default_factory=lambda: DEFAULT_SCALES
    )
    ceilings: dict[ElementSource, float] = field(
        default_factory=lambda: DEFAULT_CEILINGS
    )

    def normalize_value(
        self, raw: float, source: ElementSource, category: ElementCategory
    ) -> float:
        """Normalize one raw confidence value."""
        scale = self.scales.get(source, {}).get(category, 1.0)
        ceiling = self.ceilings.get(source, 1.0)
        return round(min(clamp01(raw * scale), ceiling), 4)

    def normalize(self, element: ExtractedElement) -> ExtractedElement:
        """Return a copy of the element with normalized confidence."""
        confidence = self.normalize_value(element.confidence, element.source, element.category)
        if confidence == element.confidence:
            return element
        return element.model_copy(update={"confidence": confidence})

    def normalize_all(self, elements: list[ExtractedElement]) -> list[ExtractedElement]:
        """Normalize a sequence of elements, preserving order."""
        return [self.normalize(element) for element in elements]
