"""Unit tests for LLM-based extraction.

Tests JSON unwrapping, the OpenAI SDK chat-completion client (over
httpx.MockTransport) and the AI extractor's failure handling.

Run with: pytest tests/unit/extraction/test_llm.py -v
"""

import json
from decimal import Decimal

import httpx
import pytest

from judex.config import Settings
from judex.extraction.llm import (
    AIExtractionFailure,
    AIExtractor,
    ChatCompletionClient,
    FailureReason,
    LLMError,
    ParseFailure,
    RetryConfig,
    get_ai_extractor,
    unwrap_json,
)
from judex.extraction.models import ElementCategory, ElementSource


def _completion(content: str | None) -> dict:
    return {"choices": [{"message": {"role": "assistant", "content": content}}]}


class TestUnwrapJson:
    """Tests for unwrap_json()."""

    def test_plain_object(self):
        """Test a bare JSON object is parsed."""
        assert unwrap_json('{"dates": []}') == {"dates": []}

    def test_strips_markdown_fence(self):
        """Test ```json fences around the answer are removed."""
        raw = '```json\n{"parties": [{"name": "张三"}]}\n```'

        assert unwrap_json(raw) == {"parties": [{"name": "张三"}]}

    def test_rejects_non_object(self):
        """Test a JSON array is reported as invalid."""
        result = unwrap_json("[1, 2, 3]")

        assert isinstance(result, ParseFailure)
        assert result.reason == FailureReason.INVALID_JSON

    def test_rejects_prose(self):
        """Test free text is reported as invalid JSON."""
        result = unwrap_json("测试文本")

        assert isinstance(result, ParseFailure)
        assert result.reason == FailureReason.INVALID_JSON

    def test_empty_answer(self):
        """Test an empty answer is reported as empty."""
        result = unwrap_json("   ")

        assert isinstance(result, ParseFailure)
        assert result.reason == FailureReason.EMPTY_RESPONSE


class TestChatCompletionClient:
    """Tests for ChatCompletionClient against a mock transport."""

    @pytest.mark.asyncio
    async def test_returns_completion_content(self):
        """Test a 200 answer returns the message content."""
        seen = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen["url"] = str(request.url)
            seen["auth"] = request.headers["Authorization"]
            seen["body"] = json.loads(request.content)
            return httpx.Response(200, json=_completion('{"dates": []}'))

        client = ChatCompletionClient(
            api_key="sk-test",
            base_url="https://llm.example.com/v1/",
            model="test-model",
            transport=httpx.MockTransport(handler),
        )

        content = await client.complete([{"role": "user", "content": "你好"}])

        assert content == '{"dates": []}'
        assert seen["url"] == "https://llm.example.com/v1/chat/completions"
        assert seen["auth"] == "Bearer sk-test"
        assert seen["body"]["model"] == "test-model"
        assert seen["body"]["messages"] == [{"role": "user", "content": "你好"}]

    @pytest.mark.asyncio
    async def test_http_error(self):
        """Test a 5xx answer raises an http_error LLMError."""
        client = ChatCompletionClient(
            api_key="sk-test",
            transport=httpx.MockTransport(lambda request: httpx.Response(500)),
        )

        with pytest.raises(LLMError) as exc_info:
            await client.complete([])

        assert exc_info.value.reason == FailureReason.HTTP_ERROR
        assert "500" in exc_info.value.detail

    @pytest.mark.asyncio
    async def test_network_error(self):
        """Test a connection failure raises a network_error LLMError."""
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("connection refused", request=request)

        client = ChatCompletionClient(api_key="sk-test", transport=httpx.MockTransport(handler))

        with pytest.raises(LLMError) as exc_info:
            await client.complete([])

        assert exc_info.value.reason == FailureReason.NETWORK_ERROR

    @pytest.mark.asyncio
    async def test_timeout(self):
        """Test an HTTP timeout raises a timeout LLMError."""
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ReadTimeout("timed out", request=request)

        client = ChatCompletionClient(api_key="sk-test", transport=httpx.MockTransport(handler))

        with pytest.raises(LLMError) as exc_info:
            await client.complete([])

        assert exc_info.value.reason == FailureReason.TIMEOUT

    @pytest.mark.asyncio
    async def test_empty_content(self):
        """Test a completion without content raises empty_response."""
        client = ChatCompletionClient(
            api_key="sk-test",
            transport=httpx.MockTransport(
                lambda request: httpx.Response(200, json=_completion(""))
            ),
        )

        with pytest.raises(LLMError) as exc_info:
            await client.complete([])

        assert exc_info.value.reason == FailureReason.EMPTY_RESPONSE

    @pytest.mark.asyncio
    async def test_missing_api_key_skips_request(self):
        """Test no request is sent without an API key."""
        calls = []

        def handler(request: httpx.Request) -> httpx.Response:
            calls.append(request)
            return httpx.Response(200, json=_completion("{}"))

        client = ChatCompletionClient(api_key="", transport=httpx.MockTransport(handler))

        with pytest.raises(LLMError) as exc_info:
            await client.complete([])

        assert exc_info.value.reason == FailureReason.MISSING_API_KEY
        assert calls == []

    @pytest.mark.asyncio
    async def test_aclose_releases_connections(self):
        """Test aclose closes the SDK client and a later call opens a new one."""
        client = ChatCompletionClient(
            api_key="sk-test",
            transport=httpx.MockTransport(
                lambda request: httpx.Response(200, json=_completion("{}"))
            ),
        )
        await client.complete([])
        sdk_client = client._client

        await client.aclose()

        assert sdk_client.is_closed()
        assert client._client is None
        assert await client.complete([]) == "{}"
        assert client._client is not sdk_client
        await client.aclose()

    @pytest.mark.asyncio
    async def test_aclose_without_requests(self):
        """Test closing a client that never sent a request is a no-op."""
        client = ChatCompletionClient(api_key="sk-test")

        await client.aclose()

        assert client._client is None

    def test_from_settings(self):
        """Test the client is configured from settings."""
        settings = Settings(llm_api_key="sk-x", llm_model="m", llm_base_url="https://x/v1")

        client = ChatCompletionClient.from_settings(settings)

        assert client.api_key == "sk-x"
        assert client.model == "m"
        assert client.base_url == "https://x/v1"


class TestRetryConfig:
    """Tests for RetryConfig."""

    def test_exponential_delay_is_capped(self):
        """Test delays grow exponentially up to max_delay."""
        retry = RetryConfig(base_delay=1.0, max_delay=5.0)

        assert retry.delay_for(0) == 1.0
        assert retry.delay_for(1) == 2.0
        assert retry.delay_for(2) == 4.0
        assert retry.delay_for(3) == 5.0


class TestAIExtractor:
    """Tests for AIExtractor."""

    @pytest.mark.asyncio
    async def test_maps_answer_to_elements(self, fake_client, ai_answer):
        """Test a valid answer becomes AI-sourced elements."""
        extractor = AIExtractor(client=fake_client(ai_answer))

        elements = await extractor.extract("原告张三诉被告李四民间借贷纠纷一案")

        assert not isinstance(elements, AIExtractionFailure)
        assert all(e.source == ElementSource.AI for e in elements)
        categories = [e.category for e in elements]
        assert categories.count(ElementCategory.PARTY) == 2
        assert categories.count(ElementCategory.AMOUNT) == 2
        principal = next(e for e in elements if e.category == ElementCategory.AMOUNT)
        assert principal.value.value == Decimal("1000000")

    @pytest.mark.asyncio
    async def test_default_confidence(self, fake_client):
        """Test items without a confidence get the default."""
        answer = {"parties": [{"name": "张三", "role": "plaintiff"}]}
        extractor = AIExtractor(client=fake_client(answer), default_confidence=0.7)

        elements = await extractor.extract("原告张三")

        assert elements[0].confidence == 0.7

    @pytest.mark.asyncio
    async def test_confidence_is_clamped(self, fake_client):
        """Test out-of-range confidences are clamped to [0, 1]."""
        answer = {"parties": [{"name": "张三", "role": "plaintiff", "confidence": 1.7}]}
        extractor = AIExtractor(client=fake_client(answer))

        elements = await extractor.extract("原告张三")

        assert elements[0].confidence == 1.0

    @pytest.mark.asyncio
    async def test_skips_malformed_items(self, fake_client):
        """Test invalid items are dropped while valid ones are kept."""
        answer = {
            "dates": [
                {"date": "2024-13-45", "type": "filing"},
                {"date": "2024-03-15", "type": "filing"},
            ],
            "parties": [{"name": "张三", "role": "judge"}, "not an object"],
            "amounts": [{"value": "abc"}, {"value": -5}],
            "facts": "not a list",
        }
        extractor = AIExtractor(client=fake_client(answer))

        elements = await extractor.extract("文书")

        assert [e.value.date for e in elements] == ["2024-03-15"]

    @pytest.mark.asyncio
    async def test_normalizes_clause_fields(self, fake_client):
        """Test book-title marks and numeric articles are normalized."""
        answer = {"legalClauses": [{"law": "《民法典》", "article": 667}]}
        extractor = AIExtractor(client=fake_client(answer))

        elements = await extractor.extract("文书")

        assert elements[0].value.law == "民法典"
        assert elements[0].value.article == "第667条"
        assert elements[0].value.law_type == "statute"

    @pytest.mark.asyncio
    async def test_missing_sections_are_empty(self, fake_client):
        """Test an empty object is a successful empty extraction."""
        extractor = AIExtractor(client=fake_client({}))

        assert await extractor.extract("文书") == []

    @pytest.mark.asyncio
    async def test_invalid_json_is_failure(self, fake_client):
        """Test a non-JSON answer is returned as a failure value."""
        extractor = AIExtractor(client=fake_client("测试文本"))

        result = await extractor.extract("文书")

        assert isinstance(result, AIExtractionFailure)
        assert result.reason == FailureReason.INVALID_JSON

    @pytest.mark.asyncio
    async def test_client_error_is_failure(self, failing_client):
        """Test client errors are returned, not raised."""
        extractor = AIExtractor(client=failing_client)

        result = await extractor.extract("文书")

        assert isinstance(result, AIExtractionFailure)
        assert result.reason == FailureReason.NETWORK_ERROR
        assert failing_client.calls == 1

    @pytest.mark.asyncio
    async def test_unexpected_exception_is_failure(self, fake_client):
        """Test arbitrary client exceptions become unexpected_error failures."""
        extractor = AIExtractor(client=fake_client(error=RuntimeError("boom")))

        result = await extractor.extract("文书")

        assert isinstance(result, AIExtractionFailure)
        assert result.reason == FailureReason.UNEXPECTED

    @pytest.mark.asyncio
    async def test_timeout_bounds_the_call(self, fake_client):
        """Test a slow client is cut off by the extractor timeout."""
        client = fake_client({}, delay=5.0)
        extractor = AIExtractor(client=client, timeout=0.05)

        result = await extractor.extract("文书")

        assert isinstance(result, AIExtractionFailure)
        assert result.reason == FailureReason.TIMEOUT
        assert client.cancelled is True

    @pytest.mark.asyncio
    async def test_retries_soft_failures(self, flaky_client, ai_answer):
        """Test network errors are retried up to max_retries."""
        client = flaky_client(
            [LLMError("network_error"), LLMError("http_error", "HTTP 503")], ai_answer
        )
        extractor = AIExtractor(client=client, retry=RetryConfig(max_retries=2, base_delay=0.0))

        result = await extractor.extract("文书")

        assert not isinstance(result, AIExtractionFailure)
        assert client.calls == 3

    @pytest.mark.asyncio
    async def test_no_retry_by_default(self, flaky_client, ai_answer):
        """Test the interactive policy fails fast after one call."""
        client = flaky_client([LLMError("network_error")], ai_answer)
        extractor = AIExtractor(client=client)

        result = await extractor.extract("文书")

        assert isinstance(result, AIExtractionFailure)
        assert client.calls == 1

    @pytest.mark.asyncio
    async def test_invalid_json_not_retried(self, fake_client):
        """Test hard failures are not retried."""
        client = fake_client("not json")
        extractor = AIExtractor(client=client, retry=RetryConfig(max_retries=3, base_delay=0.0))

        result = await extractor.extract("文书")

        assert result.reason == FailureReason.INVALID_JSON
        assert client.calls == 1

    def test_truncates_input(self):
        """Test only the configured prefix of the document is sent."""
        extractor = AIExtractor(client=None, max_input_chars=100)

        messages = extractor.build_messages("甲" * 150 + "乙")

        assert messages[0]["role"] == "system"
        assert "甲" * 100 in messages[1]["content"]
        assert "甲" * 101 not in messages[1]["content"]
        assert "乙" not in messages[1]["content"]


class TestGetAIExtractor:
    """Tests for the get_ai_extractor() factory."""

    def test_interactive_and_batch_retry_policies(self, fake_client):
        """Test batch extractors get the batch retry budget."""
        settings = Settings(llm_max_retries=0, llm_batch_max_retries=2, llm_timeout_seconds=12)

        interactive = get_ai_extractor(client=fake_client({}), settings=settings)
        batch = get_ai_extractor(client=fake_client({}), batch=True, settings=settings)

        assert interactive.retry.max_retries == 0
        assert batch.retry.max_retries == 2
        assert interactive.timeout == 12
