"""LLM-based element extraction.

Sends judgment text to an OpenAI-compatible chat-completion endpoint
(DeepSeek by default) and maps the JSON answer onto ``ExtractedElement``
objects. Every failure is returned as an ``AIExtractionFailure`` value so
the caller can fall back to rule output.
"""

import asyncio
import json
import logging
from dataclasses import dataclass
from decimal import Decimal, InvalidOperation
from typing import Any, Protocol

import httpx
import openai
from pydantic import BaseModel, ValidationError

from ..config import Settings, get_settings
from .models import (
    AmountValue,
    ClauseValue,
    DateValue,
    ElementCategory,
    ElementSource,
    ExtractedElement,
    FactValue,
    PartyValue,
)
from .patterns import date_importance, normalize_article

logger = logging.getLogger(__name__)


# =============================================================================
# Failures
# =============================================================================


class FailureReason:
    """Reason codes for a failed AI extraction."""

    MISSING_API_KEY = "missing_api_key"
    TIMEOUT = "timeout"
    HTTP_ERROR = "http_error"
    NETWORK_ERROR = "network_error"
    INVALID_JSON = "invalid_json"
    EMPTY_RESPONSE = "empty_response"
    UNEXPECTED = "unexpected_error"


class LLMError(Exception):
    """Raised by an LLM client when a completion cannot be obtained."""

    def __init__(self, reason: str, detail: str | None = None):
        self.reason = reason
        self.detail = detail
        super().__init__(f"{reason}: {detail}" if detail else reason)


@dataclass(frozen=True)
class AIExtractionFailure:
    """An AI extraction that produced no usable output."""

    reason: str
    detail: str | None = None
    attempts: int = 1


@dataclass(frozen=True)
class ParseFailure:
    """A model answer that could not be read as a JSON object."""

    reason: str
    detail: str | None = None


# =============================================================================
# Clients
# =============================================================================


class LLMClient(Protocol):
    """Anything that turns chat messages into completion text."""

    async def complete(self, messages: list[dict[str, str]]) -> str:
        ...


class ChatCompletionClient:
    """OpenAI SDK client for OpenAI-compatible chat-completion endpoints."""

    def __init__(
        self,
        api_key: str,
        base_url: str = "https://api.deepseek.com/v1",
        model: str = "deepseek-chat",
        temperature: float = 0.1,
        max_tokens: int = 2000,
        timeout: float = 60.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        """Initialize the client.

        Args:
            api_key: Bearer token for the provider
            base_url: API base URL (without /chat/completions)
            model: Model name
            temperature: Sampling temperature
            max_tokens: Completion token limit
            timeout: HTTP-level timeout in seconds
            transport: Optional httpx transport (tests use MockTransport)
        """
        self.api_key = api_key
        self.base_url = base_url.rstrip("/")
        self.model = model
        self.temperature = temperature
        self.max_tokens = max_tokens
        self.timeout = timeout
        self.transport = transport
        self._client: openai.AsyncOpenAI | None = None

    @classmethod
    def from_settings(cls, settings: Settings | None = None) -> "ChatCompletionClient":
        """Build a client from application settings."""
        settings = settings or get_settings()
        return cls(
            api_key=settings.llm_api_key,
            base_url=settings.llm_base_url,
            model=settings.llm_model,
            temperature=settings.llm_temperature,
            max_tokens=settings.llm_max_tokens,
        )

    def _get_client(self) -> openai.AsyncOpenAI:
        """Get or create the SDK client."""
        if self._client is None:
            http_client = (
                httpx.AsyncClient(transport=self.transport)
                if self.transport is not None
                else None
            )
            # Retries are handled by AIExtractor
            self._client = openai.AsyncOpenAI(
                api_key=self.api_key,
                base_url=self.base_url,
                timeout=self.timeout,
                max_retries=0,
                http_client=http_client,
            )
        return self._client

    async def complete(self, messages: list[dict[str, str]]) -> str:
        """Send one chat-completion request and return the answer text.

        Raises:
            LLMError: On missing key, HTTP status, network error or empty answer
        """
        if not self.api_key.strip():
            raise LLMError(FailureReason.MISSING_API_KEY, "LLM API key is not configured")

        try:
            response = await self._get_client().chat.completions.create(
                model=self.model,
                messages=messages,
                temperature=self.temperature,
                max_tokens=self.max_tokens,
            )
        except openai.APITimeoutError as e:
            raise LLMError(FailureReason.TIMEOUT, str(e) or "request timed out") from e
        except openai.APIStatusError as e:
            raise LLMError(FailureReason.HTTP_ERROR, f"HTTP {e.status_code}") from e
        except openai.APIConnectionError as e:
            raise LLMError(FailureReason.NETWORK_ERROR, str(e)) from e

        content = response.choices[0].message.content if response.choices else None
        if not content or not content.strip():
            raise LLMError(FailureReason.EMPTY_RESPONSE, "completion has no content")
        return content

    async def aclose(self) -> None:
        """Close the SDK client and its connection pool."""
        if self._client is not None:
            await self._client.close()
            self._client = None


# =============================================================================
# Retry
# =============================================================================


class RetryConfig(BaseModel):
    """Configuration for retry behavior."""

    max_retries: int = 0
    base_delay: float = 1.0  # seconds
    max_delay: float = 10.0  # seconds
    exponential_base: float = 2.0

    # Soft failures worth another attempt
    retry_on: tuple[str, ...] = (
        FailureReason.TIMEOUT,
        FailureReason.HTTP_ERROR,
        FailureReason.NETWORK_ERROR,
    )

    def delay_for(self, attempt: int) -> float:
        """Backoff delay after the given zero-based attempt."""
        return min(self.base_delay * (self.exponential_base ** attempt), self.max_delay)


# =============================================================================
# JSON unwrapping
# =============================================================================


def unwrap_json(raw: str | None) -> dict[str, Any] | ParseFailure:
    """Parse a model answer into a JSON object.

    Strips a surrounding Markdown code fence (```json ... ```) and requires
    the payload to be an object. Returns a ``ParseFailure`` instead of raising.
    """
    if raw is None or not raw.strip():
        return ParseFailure(FailureReason.EMPTY_RESPONSE, "empty answer")

    text = raw.strip()
    if text.startswith("```"):
        lines = text.split("\n")
        lines = lines[1:]
        if lines and lines[-1].strip().startswith("```"):
            lines = lines[:-1]
        text = "\n".join(lines).strip()

    try:
        data = json.loads(text)
    except json.JSONDecodeError as e:
        return ParseFailure(FailureReason.INVALID_JSON, f"{e.msg} at position {e.pos}")

    if not isinstance(data, dict):
        return ParseFailure(
            FailureReason.INVALID_JSON, f"expected an object, got {type(data).__name__}"
        )
    return data


# =============================================================================
# Extractor
# =============================================================================


class AIExtractor:
    """LLM-based element extractor.

    One chat-completion call per document. The call is bounded by its own
    timeout, independent of the HTTP client default. Malformed items in an
    otherwise valid answer are skipped; the rest are kept.
    """

    SYSTEM_PROMPT = (
        "你是一名中国法律文书信息抽取助手。请始终使用简体中文填写字段内容，"
        "并且只输出一个合法的JSON对象，不要输出任何解释性文字。"
    )

    EXTRACTION_PROMPT = """请从下面的法律文书中提取结构化要素。

输出一个JSON对象，字段如下（没有的字段输出空数组）：
{{
  "dates": [{{"date": "YYYY-MM-DD", "type": "filing|hearing|judgment|contract|payment|deadline|incident", "description": "说明", "confidence": 0.9}}],
  "parties": [{{"name": "名称", "role": "plaintiff|defendant|third-party|agent", "legalRepresentative": "法定代表人或null", "confidence": 0.9}}],
  "amounts": [{{"value": 1000000, "currency": "CNY|USD|EUR", "purpose": "principal|interest|penalty|compensation|fee|deposit|other", "description": "说明", "confidence": 0.9}}],
  "legalClauses": [{{"law": "法律名称（不含书名号）", "article": "第N条或null", "type": "statute|judicial-interpretation|regulation|contract", "confidence": 0.9}}],
  "facts": [{{"content": "事实内容", "type": "claimed|disputed|proven|agreed", "party": "主张方或null", "significance": "法律意义", "confidence": 0.8}}]
}}

要求：
1. 只提取文书中明确出现的内容，不要推测或编造。
2. 金额统一换算为以元为单位的数字（例如100万元写作1000000）。
3. 日期统一为YYYY-MM-DD格式。
4. confidence为0到1之间的数字，表示你对该项的把握。

法律文书：
---
{text}
---"""

    # JSON array name -> element category
    SECTIONS = {
        "dates": ElementCategory.DATE,
        "parties": ElementCategory.PARTY,
        "amounts": ElementCategory.AMOUNT,
        "legalClauses": ElementCategory.CLAUSE,
        "facts": ElementCategory.FACT,
    }

    def __init__(
        self,
        client: LLMClient,
        timeout: float = 30.0,
        max_input_chars: int = 2000,
        default_confidence: float = 0.7,
        retry: RetryConfig | None = None,
    ):
        """Initialize the extractor.

        Args:
            client: LLM client used for the completion call
            timeout: Hard bound on one call, in seconds
            max_input_chars: Document prefix sent to the model
            default_confidence: Confidence for items without one
            retry: Retry policy (defaults to no retries)
        """
        self.client = client
        self.timeout = timeout
        self.max_input_chars = max_input_chars
        self.default_confidence = default_confidence
        self.retry = retry or RetryConfig()

    def build_messages(self, text: str) -> list[dict[str, str]]:
        """Build the system and user messages for a document."""
        if len(text) > self.max_input_chars:
            text = text[: self.max_input_chars]
        return [
            {"role": "system", "content": self.SYSTEM_PROMPT},
            {"role": "user", "content": self.EXTRACTION_PROMPT.format(text=text)},
        ]

    async def extract(self, text: str) -> list[ExtractedElement] | AIExtractionFailure:
        """Extract elements from text using the LLM.

        Only ``asyncio.CancelledError`` propagates; every other problem is
        returned as an ``AIExtractionFailure``.
        """
        messages = self.build_messages(text)
        failure: AIExtractionFailure | None = None

        for attempt in range(self.retry.max_retries + 1):
            outcome = await self._attempt(messages, attempt + 1)
            if not isinstance(outcome, AIExtractionFailure):
                return outcome

            failure = outcome
            if attempt < self.retry.max_retries and failure.reason in self.retry.retry_on:
                delay = self.retry.delay_for(attempt)
                logger.warning(
                    f"AI extraction attempt {attempt + 1} failed: {failure.reason}. "
                    f"Retrying in {delay:.1f}s"
                )
                await asyncio.sleep(delay)
                continue
            break

        return failure

    async def _attempt(
        self, messages: list[dict[str, str]], attempt: int
    ) -> list[ExtractedElement] | AIExtractionFailure:
        try:
            raw = await asyncio.wait_for(self.client.complete(messages), timeout=self.timeout)
        except asyncio.TimeoutError:
            return AIExtractionFailure(
                FailureReason.TIMEOUT, f"no answer within {self.timeout}s", attempt
            )
        except LLMError as e:
            return AIExtractionFailure(e.reason, e.detail, attempt)
        except Exception as e:
            logger.error(f"LLM client raised unexpectedly: {e}")
            return AIExtractionFailure(FailureReason.UNEXPECTED, str(e), attempt)

        data = unwrap_json(raw)
        if isinstance(data, ParseFailure):
            return AIExtractionFailure(data.reason, data.detail, attempt)

        return self.parse_elements(data)

    def parse_elements(self, data: dict[str, Any]) -> list[ExtractedElement]:
        """Map a parsed answer onto AI-sourced elements.

        Missing or non-list sections count as empty. Items that fail
        validation are skipped with a warning.
        """
        elements: list[ExtractedElement] = []
        for section, category in self.SECTIONS.items():
            items = data.get(section) or []
            if not isinstance(items, list):
                logger.warning(f"AI section {section} is not a list, ignoring it")
                continue
            for item in items:
                if not isinstance(item, dict):
                    continue
                try:
                    element = self._to_element(category, item)
                except (ValidationError, ValueError, TypeError, InvalidOperation) as e:
                    logger.warning(f"Skipping malformed AI {category.value} item: {e}")
                    continue
                if element is not None:
                    elements.append(element)
        return elements

    def _to_element(
        self, category: ElementCategory, item: dict[str, Any]
    ) -> ExtractedElement | None:
        if category == ElementCategory.DATE:
            date_type = item.get("type") or "incident"
            value = DateValue(
                date=str(item.get("date", "")),
                type=date_type,
                importance=item.get("importance") or date_importance(date_type),
            )
        elif category == ElementCategory.PARTY:
            value = PartyValue(
                name=str(item.get("name", "")).strip(),
                role=item.get("role") or "third-party",
                legal_representative=item.get("legalRepresentative")
                or item.get("legal_representative"),
            )
        elif category == ElementCategory.AMOUNT:
            raw_value = item.get("value")
            if raw_value is None or isinstance(raw_value, bool):
                return None
            value = AmountValue(
                value=Decimal(str(raw_value).replace(",", "")),
                currency=item.get("currency") or "CNY",
                purpose=item.get("purpose") or "other",
            )
        elif category == ElementCategory.CLAUSE:
            value = ClauseValue(
                law=str(item.get("law", "")).strip().strip("《》"),
                article=_normalize_ai_article(item.get("article")),
                law_type=item.get("type") or "statute",
            )
        else:
            value = FactValue(
                content=str(item.get("content", "")).strip(),
                stance=item.get("type") or "claimed",
                party=item.get("party") or None,
                significance=item.get("significance") or None,
            )

        confidence = item.get("confidence")
        if isinstance(confidence, bool) or not isinstance(confidence, (int, float)):
            confidence = self.default_confidence

        return ExtractedElement(
            category=category,
            value=value,
            description=str(item.get("description") or ""),
            confidence=min(max(float(confidence), 0.0), 1.0),
            source=ElementSource.AI,
        )


def _normalize_ai_article(raw: Any) -> str | None:
    """Bring an article reference into the 第N条 form used by rule output."""
    if raw is None or isinstance(raw, bool) or raw == "":
        return None
    if isinstance(raw, (int, float)):
        return f"第{int(raw)}条"
    raw = str(raw).strip()
    if raw.isdigit():
        return f"第{raw}条"
    return normalize_article(raw) or raw


# Factory function
def get_ai_extractor(
    client: LLMClient | None = None,
    batch: bool = False,
    settings: Settings | None = None,
) -> AIExtractor:
    """Get an AI extractor configured from settings.

    Args:
        client: LLM client to use. Defaults to a ChatCompletionClient.
        batch: Use the batch retry policy instead of the interactive one
        settings: Settings override

    Returns:
        AIExtractor instance
    """
    settings = settings or get_settings()
    retries = settings.llm_batch_max_retries if batch else settings.llm_max_retries
    return AIExtractor(
        client=client or ChatCompletionClient.from_settings(settings),
        timeout=settings.llm_timeout_seconds,
        max_input_chars=settings.llm_max_input_chars,
        default_confidence=settings.ai_default_confidence,
        retry=RetryConfig(max_retries=retries),
    )
