"""Pydantic models for judgment extraction.

This module defines the extracted element (a closed tagged union of
per-category payloads), conflict records, the merged result, document
metadata, and the request/response envelopes used by the API layer.
"""

from decimal import Decimal
from datetime import datetime
from enum import Enum
from typing import Annotated, Literal, Union

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    PlainSerializer,
    field_validator,
    model_validator,
)
from pydantic.alias_generators import to_camel


# =============================================================================
# Enumerations
# =============================================================================


class ElementCategory(str, Enum):
    """Categories of extracted elements."""

    DATE = "date"
    PARTY = "party"
    AMOUNT = "amount"
    CLAUSE = "clause"
    FACT = "fact"


class ElementSource(str, Enum):
    """Provenance of an extracted element."""

    RULE = "rule"
    AI = "ai"
    MERGED = "merged"


class ResultSource(str, Enum):
    """Provenance of a whole merged result."""

    RULE = "rule"
    MERGED = "merged"


class Resolution(str, Enum):
    """How a rule/AI conflict was resolved."""

    RULE_CONFIDENCE_HIGHER = "rule-confidence-higher"
    AI_CONFIDENCE_HIGHER = "ai-confidence-higher"
    RULE_WINS_TIE = "rule-wins-tie"


DateType = Literal[
    "filing", "hearing", "judgment", "contract", "payment", "deadline", "incident"
]
Importance = Literal["critical", "important", "reference"]
PartyRole = Literal["plaintiff", "defendant", "third-party", "agent"]
Currency = Literal["CNY", "USD", "EUR"]
AmountPurpose = Literal[
    "principal", "interest", "penalty", "compensation", "fee", "deposit", "other"
]
ClauseKind = Literal["statute", "judicial-interpretation", "regulation", "contract"]
FactKind = Literal["claimed", "disputed", "proven", "agreed"]
DocumentType = Literal["judgment", "complaint", "contract", "evidence", "unknown"]


class CamelModel(BaseModel):
    """Base model that serializes with camelCase aliases."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        frozen=True,
    )


# =============================================================================
# Element payloads (one variant per category)
# =============================================================================


class DateValue(CamelModel):
    """A calendar date with its procedural meaning."""

    kind: Literal["date"] = "date"
    date: str = Field(..., description="ISO date YYYY-MM-DD")
    type: DateType = "incident"
    importance: Importance = "reference"

    @field_validator("date")
    @classmethod
    def _validate_iso(cls, v: str) -> str:
        datetime.strptime(v, "%Y-%m-%d")
        return v


class PartyValue(CamelModel):
    """A litigant or participant."""

    kind: Literal["party"] = "party"
    name: str = Field(..., min_length=1)
    role: PartyRole = "third-party"
    legal_representative: str | None = None


class AmountValue(CamelModel):
    """A monetary amount."""

    kind: Literal["amount"] = "amount"
    value: Annotated[
        Decimal,
        PlainSerializer(lambda v: float(v), return_type=float, when_used="json"),
    ]
    currency: Currency = "CNY"
    purpose: AmountPurpose = "other"

    @field_validator("value")
    @classmethod
    def _non_negative(cls, v: Decimal) -> Decimal:
        if v < 0:
            raise ValueError("amount must be non-negative")
        return v


class ClauseValue(CamelModel):
    """A cited law, interpretation or contract article."""

    kind: Literal["clause"] = "clause"
    law: str = Field(..., min_length=1)
    article: str | None = None
    law_type: ClauseKind = "statute"

    @property
    def label(self) -> str:
        """Display label such as 《民法典》第667条."""
        return f"《{self.law}》{self.article or ''}"


class FactValue(CamelModel):
    """A statement of fact and who asserts it."""

    kind: Literal["fact"] = "fact"
    content: str = Field(..., min_length=1)
    stance: FactKind = "claimed"
    party: str | None = None
    significance: str | None = None


ElementValue = Annotated[
    Union[DateValue, PartyValue, AmountValue, ClauseValue, FactValue],
    Field(discriminator="kind"),
]

# Attributes compared when two elements are judged to describe the same fact
CONFLICT_FIELDS: dict[ElementCategory, tuple[str, ...]] = {
    ElementCategory.DATE: ("type",),
    ElementCategory.PARTY: ("role",),
    ElementCategory.AMOUNT: ("purpose",),
    ElementCategory.CLAUSE: ("law_type",),
    ElementCategory.FACT: ("stance",),
}


# =============================================================================
# Elements, conflicts and merged results
# =============================================================================


class ExtractedElement(CamelModel):
    """The atomic unit of extraction.

    Every element carries exactly one source. Merged elements keep the
    contributing rule and AI elements for audit.
    """

    category: ElementCategory
    value: ElementValue
    description: str = ""
    confidence: float = Field(..., ge=0.0, le=1.0)
    source: ElementSource
    span: tuple[int, int] | None = None
    rule: str | None = Field(default=None, description="Pattern row that produced it")
    contributors: tuple["ExtractedElement", ...] = ()

    @model_validator(mode="after")
    def _check_consistency(self) -> "ExtractedElement":
        if self.value.kind != self.category.value:
            raise ValueError(
                f"{self.category.value} element cannot carry a {self.value.kind} payload"
            )
        if self.source == ElementSource.MERGED:
            if len(self.contributors) < 2:
                raise ValueError("merged elements need at least two contributors")
        elif self.contributors:
            raise ValueError("only merged elements carry contributors")
        if self.span is not None and not (0 <= self.span[0] <= self.span[1]):
            raise ValueError(f"invalid span {self.span}")
        return self


ExtractedElement.model_rebuild()


class ConflictRecord(CamelModel):
    """Evidence that the rule engine and the model disagreed on one fact."""

    key: str
    category: ElementCategory
    differing_fields: list[str]
    rule_value: ElementValue
    ai_value: ElementValue
    rule_confidence: float
    ai_confidence: float
    resolution: Resolution

    @property
    def winner(self) -> ElementSource:
        """Which side's value was kept."""
        if self.resolution == Resolution.AI_CONFIDENCE_HIGHER:
            return ElementSource.AI
        return ElementSource.RULE


class MergedResult(CamelModel):
    """Aggregate of merged elements with conflicts and provenance."""

    elements: dict[ElementCategory, list[ExtractedElement]]
    conflicts: list[ConflictRecord] = Field(default_factory=list)
    overall_confidence: float = 0.0
    source: ResultSource = ResultSource.RULE

    def by_category(self, category: ElementCategory) -> list[ExtractedElement]:
        """Get merged elements of one category (empty if none)."""
        return self.elements.get(category, [])

    def all_elements(self) -> list[ExtractedElement]:
        """All merged elements in category order."""
        return [
            element
            for category in ElementCategory
            for element in self.by_category(category)
        ]

    @property
    def element_count(self) -> int:
        return sum(len(items) for items in self.elements.values())


# =============================================================================
# Document metadata
# =============================================================================


class DocumentMetadata(CamelModel):
    """Metadata detected from the raw document."""

    document_type: DocumentType = "unknown"
    court: str | None = None
    case_number: str | None = None
    judgment_date: str | None = None
    page_count: int = 0
    language: Literal["zh", "en"] = "zh"


# =============================================================================
# API envelopes
# =============================================================================


class ExtractionOptions(CamelModel):
    """Per-request extraction switches."""

    enable_ai: bool = Field(default=True, alias="enableAI")
    enhance_with_provisions: bool = True


class ExtractionRequest(CamelModel):
    """Inbound extraction request.

    ``text`` is optional at the schema level so that a missing or empty
    text is reported as a 400 by the route rather than a 422.
    """

    text: str | None = None
    options: ExtractionOptions = Field(default_factory=ExtractionOptions)


class LegalProvision(CamelModel):
    """A statute article suggested for a case type."""

    code: str
    title: str
    article: str
    content: str
    relevance: float = Field(..., ge=0.0, le=1.0)
    tags: list[str] = Field(default_factory=list)


class ExtractionData(CamelModel):
    """The ``data`` block of an extraction response."""

    dates: list[ExtractedElement] = Field(default_factory=list)
    parties: list[ExtractedElement] = Field(default_factory=list)
    amounts: list[ExtractedElement] = Field(default_factory=list)
    legal_clauses: list[ExtractedElement] = Field(default_factory=list)
    facts: list[ExtractedElement] = Field(default_factory=list)
    source: ResultSource
    confidence: float
    case_type: str | None = None
    provisions: list[LegalProvision] | None = None
    legal_references: list[str] | None = None
    conflicts: list[ConflictRecord] = Field(default_factory=list)


class ExtractionMetadata(CamelModel):
    """The ``metadata`` block of an extraction response."""

    extraction_method: Literal["rule-based", "hybrid"]
    confidence: float
    processing_time: float = Field(..., description="Milliseconds")
    document_type: DocumentType
    court: str | None = None
    case_number: str | None = None


class ExtractionResponse(CamelModel):
    """Successful extraction response."""

    success: bool = True
    data: ExtractionData
    metadata: ExtractionMetadata
    suggestions: list[str] = Field(default_factory=list)
