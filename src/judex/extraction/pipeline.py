"""Extraction pipeline.

Orchestrates preprocessing, rule and AI extraction, confidence
normalization, merging and response assembly.

Flow:
1. Preprocess the document (clean text, detect metadata)
2. Launch AI extraction (optional) and run rule extraction concurrently
3. Normalize both element sets onto one confidence scale
4. Merge (union with conflict resolution)
5. Classify case type and assemble the response
"""

import asyncio
import logging
import time
from collections.abc import Callable
from dataclasses import dataclass, field
from enum import Enum

from ..config import Settings, get_settings
from ..logging import get_context_logger, log_ai_fallback, log_extraction_complete
from .assembler import ResultAssembler
from .confidence import ConfidenceNormalizer
from .deterministic import RuleExtractor, get_rule_extractor
from .llm import AIExtractionFailure, AIExtractor, FailureReason, LLMClient, get_ai_extractor
from .merge import MergeEngine
from .models import (
    ExtractedElement,
    ExtractionOptions,
    ExtractionResponse,
    MergedResult,
)
from .patterns import classify_case_type
from .preprocess import DocumentPreprocessor, PreprocessedDocument

logger = logging.getLogger(__name__)

SpanMap = Callable[[tuple[int, int]], tuple[int, int]]


class InvalidInputError(ValueError):
    """Raised when the document text is missing or empty."""


class ExtractionState(str, Enum):
    """States of one controlled extraction run."""

    IDLE = "idle"
    RULE_RUNNING = "rule_running"
    AI_RUNNING = "ai_running"
    SKIPPED = "skipped"
    MERGING = "merging"
    DONE = "done"


@dataclass
class ControlledResult:
    """Output of the fallback controller."""

    merged: MergedResult
    ai_failure: AIExtractionFailure | None = None
    trace: list[ExtractionState] = field(default_factory=list)


class FallbackController:
    """Runs rule and AI extraction and always yields a merged result.

    The AI task is started before rule extraction so both run concurrently.
    A failed AI branch is logged and replaced by an empty element set, so
    the caller sees a rule-only result instead of an error. Cancelling the
    caller cancels the in-flight AI call.
    """

    def __init__(
        self,
        rule_extractor: RuleExtractor,
        ai_extractor: AIExtractor | None,
        normalizer: ConfidenceNormalizer,
        merge_engine: MergeEngine,
    ):
        self.rule_extractor = rule_extractor
        self.ai_extractor = ai_extractor
        self.normalizer = normalizer
        self.merge_engine = merge_engine

    async def run(
        self, text: str, enable_ai: bool = True, span_map: SpanMap | None = None
    ) -> ControlledResult:
        """Extract and merge.

        Args:
            text: Preprocessed document text
            enable_ai: Whether to call the AI extractor at all
            span_map: Translates rule spans over ``text`` into caller offsets

        Returns:
            ControlledResult with the merged result and the state trace
        """
        trace = [ExtractionState.IDLE]
        use_ai = enable_ai and self.ai_extractor is not None

        ai_task: asyncio.Task | None = None
        if use_ai:
            ai_task = asyncio.create_task(self.ai_extractor.extract(text))

        try:
            trace.append(ExtractionState.RULE_RUNNING)
            rule_elements = await asyncio.to_thread(self.rule_extractor.extract, text)
            if span_map is not None:
                rule_elements = [
                    e.model_copy(update={"span": span_map(e.span)}) if e.span is not None else e
                    for e in rule_elements
                ]

            ai_elements: list[ExtractedElement] = []
            ai_failure: AIExtractionFailure | None = None
            if ai_task is None:
                trace.append(ExtractionState.SKIPPED)
            else:
                trace.append(ExtractionState.AI_RUNNING)
                outcome = await self._await_ai(ai_task)
                if isinstance(outcome, AIExtractionFailure):
                    ai_failure = outcome
                    log_ai_fallback(outcome.reason, outcome.detail)
                else:
                    ai_elements = outcome
        finally:
            if ai_task is not None and not ai_task.done():
                ai_task.cancel()

        trace.append(ExtractionState.MERGING)
        merged = self.merge_engine.merge(
            self.normalizer.normalize_all(rule_elements),
            self.normalizer.normalize_all(ai_elements),
        )
        trace.append(ExtractionState.DONE)

        logger.debug(f"Extraction trace: {' -> '.join(s.value for s in trace)}")
        return ControlledResult(merged=merged, ai_failure=ai_failure, trace=trace)

    async def _await_ai(
        self, task: asyncio.Task
    ) -> list[ExtractedElement] | AIExtractionFailure:
        try:
            return await task
        except asyncio.CancelledError:
            raise
        except Exception as e:
            logger.error(f"AI extractor raised unexpectedly: {e}")
            return AIExtractionFailure(FailureReason.UNEXPECTED, str(e))


@dataclass
class ExtractionConfig:
    """Configuration for the extraction pipeline."""

    amount_tolerance: float = 0.005
    text_similarity: float = 0.6


class ExtractionPipeline:
    """End-to-end extraction service used by the API and CLI."""

    def __init__(
        self,
        ai_extractor: AIExtractor | None = None,
        config: ExtractionConfig | None = None,
        rule_extractor: RuleExtractor | None = None,
        preprocessor: DocumentPreprocessor | None = None,
        assembler: ResultAssembler | None = None,
    ):
        """Initialize the pipeline.

        Args:
            ai_extractor: AI extractor, or None to run rule-only
            config: Merge configuration
            rule_extractor: Rule extractor (defaults to the singleton)
            preprocessor: Document preprocessor
            assembler: Response assembler
        """
        self.config = config or ExtractionConfig()
        self.preprocessor = preprocessor or DocumentPreprocessor()
        self.assembler = assembler or ResultAssembler()
        self.controller = FallbackController(
            rule_extractor=rule_extractor or get_rule_extractor(),
            ai_extractor=ai_extractor,
            normalizer=ConfidenceNormalizer(),
            merge_engine=MergeEngine(
                amount_tolerance=self.config.amount_tolerance,
                text_similarity=self.config.text_similarity,
            ),
        )

    async def analyze(
        self, text: str, enable_ai: bool = True
    ) -> tuple[PreprocessedDocument, ControlledResult]:
        """Preprocess and extract without assembling a response.

        Rule element spans index into the raw ``text``, not the cleaned copy.
        """
        document = self.preprocessor.process(text)
        result = await self.controller.run(
            document.text, enable_ai=enable_ai, span_map=document.source_span
        )
        return document, result

    async def extract(
        self, text: str | None, options: ExtractionOptions | None = None
    ) -> ExtractionResponse:
        """Extract elements from a document.

        Args:
            text: Raw document text
            options: Request options

        Returns:
            ExtractionResponse

        Raises:
            InvalidInputError: If text is missing or blank
        """
        if text is None or not text.strip():
            raise InvalidInputError("text is required and must not be empty")

        options = options or ExtractionOptions()
        started = time.perf_counter()

        document, result = await self.analyze(text, enable_ai=options.enable_ai)
        case_type = classify_case_type(document.text)
        get_context_logger(
            __name__,
            document_type=document.metadata.document_type,
            text_chars=len(document.text),
        ).debug(f"Case type: {case_type}")

        elapsed_ms = (time.perf_counter() - started) * 1000
        response = self.assembler.assemble(
            merged=result.merged,
            metadata=document.metadata,
            case_type=case_type,
            options=options,
            processing_time_ms=elapsed_ms,
            ai_failure=result.ai_failure,
        )

        log_extraction_complete(
            source=result.merged.source.value,
            element_count=result.merged.element_count,
            conflict_count=len(result.merged.conflicts),
            confidence=result.merged.overall_confidence,
            duration_ms=round(elapsed_ms, 2),
        )
        return response


# Factory function
def get_extraction_pipeline(
    client: LLMClient | None = None,
    batch: bool = False,
    settings: Settings | None = None,
) -> ExtractionPipeline:
    """Get an extraction pipeline configured from settings.

    Args:
        client: LLM client override (defaults to the HTTP chat-completion client)
        batch: Use the batch retry policy for AI calls
        settings: Settings override

    Returns:
        ExtractionPipeline instance
    """
    settings = settings or get_settings()
    config = ExtractionConfig(
        amount_tolerance=settings.merge_amount_tolerance,
        text_similarity=settings.merge_text_similarity,
    )
    return ExtractionPipeline(
        ai_extractor=get_ai_extractor(client=client, batch=batch, settings=settings),
        config=config,
    )
