"""API endpoint for judgment element extraction."""

from functools import lru_cache

from fastapi import APIRouter, Depends

from ..config import get_settings
from ..extraction import (
    ChatCompletionClient,
    ExtractionPipeline,
    ExtractionRequest,
    ExtractionResponse,
    InvalidInputError,
    LLMClient,
    get_extraction_pipeline,
)
from . import BadRequestError, ErrorResponse

router = APIRouter()


@lru_cache
def get_llm_client() -> ChatCompletionClient:
    """Shared LLM client for extraction requests (overridden in tests).

    Closed by the application lifespan on shutdown.
    """
    return ChatCompletionClient.from_settings()


def get_pipeline(client: LLMClient = Depends(get_llm_client)) -> ExtractionPipeline:
    """Interactive extraction pipeline (no AI retries)."""
    return get_extraction_pipeline(client=client)


@router.post(
    "/extract",
    response_model=ExtractionResponse,
    responses={400: {"model": ErrorResponse}},
)
async def extract_elements(
    request: ExtractionRequest,
    pipeline: ExtractionPipeline = Depends(get_pipeline),
) -> ExtractionResponse:
    """Extract dates, parties, amounts, clauses and facts from a judgment."""
    if request.text is None or not request.text.strip():
        raise BadRequestError("text is required and must not be empty")

    options = request.options
    if "enable_ai" not in options.model_fields_set:
        options = options.model_copy(update={"enable_ai": get_settings().enable_ai_default})

    try:
        return await pipeline.extract(request.text, options)
    except InvalidInputError as e:
        raise BadRequestError(str(e))
