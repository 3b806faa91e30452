"""Element extraction for court judgments.

Provides both rule-based and LLM-based extraction of dates, parties,
amounts, legal clauses and facts, merged into one result.

Components:
- DocumentPreprocessor: Text cleaning and document metadata detection
- RuleExtractor: Ordered pattern table (dates, parties, amounts, clauses, facts)
- AIExtractor: One chat-completion call per document, failures as values
- ConfidenceNormalizer: Per-source, per-category confidence rescaling
- MergeEngine: Union of both results with confidence-based conflict resolution
- FallbackController: Concurrent rule/AI runs with graceful AI fallback
- ResultAssembler: Response packaging, provisions and suggestions
- ExtractionPipeline: End-to-end service used by the API and CLI
"""

from .assembler import ResultAssembler
from .confidence import ConfidenceNormalizer
from .deterministic import RuleExtractor, get_rule_extractor
from .llm import (
    AIExtractionFailure,
    AIExtractor,
    ChatCompletionClient,
    FailureReason,
    LLMClient,
    LLMError,
    ParseFailure,
    RetryConfig,
    get_ai_extractor,
    unwrap_json,
)
from .merge import MergeEngine
from .models import (
    ElementCategory,
    ElementSource,
    ExtractedElement,
    ExtractionOptions,
    ExtractionRequest,
    ExtractionResponse,
    MergedResult,
    ResultSource,
)
from .pipeline import (
    ExtractionConfig,
    ExtractionPipeline,
    ExtractionState,
    FallbackController,
    InvalidInputError,
    get_extraction_pipeline,
)
from .preprocess import DocumentPreprocessor
from .provisions import ProvisionMapper, get_provision_mapper

__all__ = [
    "ResultAssembler",
    "ConfidenceNormalizer",
    "RuleExtractor",
    "get_rule_extractor",
    "AIExtractionFailure",
    "AIExtractor",
    "ChatCompletionClient",
    "FailureReason",
    "LLMClient",
    "LLMError",
    "ParseFailure",
    "RetryConfig",
    "get_ai_extractor",
    "unwrap_json",
    "MergeEngine",
    "ElementCategory",
    "ElementSource",
    "ExtractedElement",
    "ExtractionOptions",
    "ExtractionRequest",
    "ExtractionResponse",
    "MergedResult",
    "ResultSource",
    "ExtractionConfig",
    "ExtractionPipeline",
    "ExtractionState",
    "FallbackController",
    "InvalidInputError",
    "get_extraction_pipeline",
    "DocumentPreprocessor",
    "ProvisionMapper",
    "get_provision_mapper",
]
