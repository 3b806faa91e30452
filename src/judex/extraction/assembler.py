"""Response assembly.

Packages a merged result with case type, provisions, metadata and
reviewer suggestions into the API response shape.
"""

from decimal import Decimal

from .llm import AIExtractionFailure
from .models import (
    ClauseValue,
    DocumentMetadata,
    ElementCategory,
    ExtractionData,
    ExtractionMetadata,
    ExtractionOptions,
    ExtractionResponse,
    MergedResult,
    ResultSource,
)
from .provisions import ProvisionMapper, get_provision_mapper

LARGE_AMOUNT_THRESHOLD = Decimal(100_000)


class ResultAssembler:
    """Builds ``ExtractionResponse`` objects from merged results."""

    def __init__(self, provision_mapper: ProvisionMapper | None = None):
        self.provision_mapper = provision_mapper or get_provision_mapper()

    def assemble(
        self,
        merged: MergedResult,
        metadata: DocumentMetadata,
        case_type: str,
        options: ExtractionOptions,
        processing_time_ms: float,
        ai_failure: AIExtractionFailure | None = None,
    ) -> ExtractionResponse:
        """Assemble the response for one extraction.

        Args:
            merged: Merged elements with conflicts and provenance
            metadata: Detected document metadata
            case_type: Classified case type
            options: Request options (controls provision enhancement)
            processing_time_ms: Wall-clock time of the extraction
            ai_failure: Why the AI branch was dropped, if it was

        Returns:
            ExtractionResponse ready for serialization
        """
        provisions = None
        references = None
        if options.enhance_with_provisions:
            clauses = [
                e.value for e in merged.by_category(ElementCategory.CLAUSE)
                if isinstance(e.value, ClauseValue)
            ]
            provisions = self.provision_mapper.provisions_for(case_type)
            references = self.provision_mapper.legal_references(case_type, clauses)

        data = ExtractionData(
            dates=merged.by_category(ElementCategory.DATE),
            parties=merged.by_category(ElementCategory.PARTY),
            amounts=merged.by_category(ElementCategory.AMOUNT),
            legal_clauses=merged.by_category(ElementCategory.CLAUSE),
            facts=merged.by_category(ElementCategory.FACT),
            source=merged.source,
            confidence=merged.overall_confidence,
            case_type=case_type,
            provisions=provisions,
            legal_references=references,
            conflicts=merged.conflicts,
        )

        response_metadata = ExtractionMetadata(
            extraction_method="hybrid" if merged.source == ResultSource.MERGED else "rule-based",
            confidence=merged.overall_confidence,
            processing_time=round(processing_time_ms, 2),
            document_type=metadata.document_type,
            court=metadata.court,
            case_number=metadata.case_number,
        )

        return ExtractionResponse(
            success=True,
            data=data,
            metadata=response_metadata,
            suggestions=self.suggestions(merged, case_type, ai_failure),
        )

    def suggestions(
        self,
        merged: MergedResult,
        case_type: str | None,
        ai_failure: AIExtractionFailure | None = None,
    ) -> list[str]:
        """Reviewer hints derived from the merged result."""
        suggestions: list[str] = []

        if case_type:
            suggestions.append(f"检测到案件类型：{case_type}")

        critical_dates = [
            e for e in merged.by_category(ElementCategory.DATE)
            if e.value.importance == "critical"
        ]
        if critical_dates:
            labels = [f"{e.value.date}（{e.description}）" for e in critical_dates]
            suggestions.append(f"注意关键日期：{'、'.join(labels)}")

        if any(
            e.value.value > LARGE_AMOUNT_THRESHOLD
            for e in merged.by_category(ElementCategory.AMOUNT)
        ):
            suggestions.append("涉及较大金额，建议重点审查相关证据")

        defendants = [
            e for e in merged.by_category(ElementCategory.PARTY)
            if e.value.role == "defendant"
        ]
        if len(defendants) > 1:
            suggestions.append("多名被告，注意连带责任问题")

        disputed = [
            e for e in merged.by_category(ElementCategory.FACT)
            if e.value.stance == "disputed"
        ]
        if disputed:
            suggestions.append(f"存在{len(disputed)}个争议事实，需要充分举证")

        core_clauses = sorted(
            (
                e for e in merged.by_category(ElementCategory.CLAUSE)
                if e.value.law_type == "statute" and e.value.article
            ),
            key=lambda e: e.confidence,
            reverse=True,
        )
        if core_clauses:
            suggestions.append(f"重点研究核心法律条款：{core_clauses[0].value.label}")

        if merged.conflicts:
            suggestions.append(
                f"规则与AI结果存在{len(merged.conflicts)}处分歧，已按置信度裁决，建议人工复核"
            )

        if ai_failure is not None:
            suggestions.append("AI分析暂不可用，本次结果仅基于规则提取")

        return suggestions
