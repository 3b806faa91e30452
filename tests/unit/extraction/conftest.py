"""Pytest fixtures for extraction unit tests."""

import asyncio
import json

import pytest

from judex.extraction.deterministic import RuleExtractor
from judex.extraction.llm import LLMError
from judex.extraction.merge import MergeEngine
from judex.extraction.models import (
    AmountValue,
    DateValue,
    ElementCategory,
    ElementSource,
    ExtractedElement,
    PartyValue,
)


SAMPLE_JUDGMENT = """北京市朝阳区人民法院
民事判决书
（2024）京0105民初12345号
原告：张三，男，1980年5月1日出生。
被告：李四贸易有限公司，住所地北京市朝阳区。
法定代表人：王五，该公司经理。
原告于2024年3月15日向本院提起诉讼，请求判令被告归还借款本金100万元。
本院于2024年4月10日公开开庭进行了审理。
根据《民法典》第667条的规定，判决如下："""


class FakeLLMClient:
    """LLM client double that returns a canned answer or raises.

    Counts calls and records the messages it was given.
    """

    def __init__(self, answer: str | dict | None = None, error: Exception | None = None, delay: float = 0.0):
        self.answer = json.dumps(answer, ensure_ascii=False) if isinstance(answer, dict) else answer
        self.error = error
        self.delay = delay
        self.calls = 0
        self.messages: list[list[dict[str, str]]] = []
        self.cancelled = False

    async def complete(self, messages: list[dict[str, str]]) -> str:
        self.calls += 1
        self.messages.append(messages)
        try:
            if self.delay:
                await asyncio.sleep(self.delay)
        except asyncio.CancelledError:
            self.cancelled = True
            raise
        if self.error is not None:
            raise self.error
        return self.answer


class FlakyLLMClient:
    """Fails with the given errors first, then returns the answer."""

    def __init__(self, errors: list[Exception], answer: dict):
        self.errors = list(errors)
        self.answer = json.dumps(answer, ensure_ascii=False)
        self.calls = 0

    async def complete(self, messages: list[dict[str, str]]) -> str:
        self.calls += 1
        if self.errors:
            raise self.errors.pop(0)
        return self.answer


def _make_element(
    value,
    confidence: float = 0.9,
    source: ElementSource = ElementSource.RULE,
    description: str = "",
) -> ExtractedElement:
    """Build a single-source element from a payload."""
    return ExtractedElement(
        category=ElementCategory(value.kind),
        value=value,
        description=description,
        confidence=confidence,
        source=source,
    )


@pytest.fixture
def make_element():
    """Factory for single-source elements."""
    return _make_element


@pytest.fixture
def fake_client():
    """Factory for LLM client doubles with canned answers."""
    return FakeLLMClient


@pytest.fixture
def flaky_client():
    """Factory for LLM client doubles that fail before succeeding."""
    return FlakyLLMClient


@pytest.fixture
def sample_judgment() -> str:
    """A short but complete first-instance judgment."""
    return SAMPLE_JUDGMENT


@pytest.fixture
def rule_extractor() -> RuleExtractor:
    """Create a rule extractor over the default pattern table."""
    return RuleExtractor()


@pytest.fixture
def merge_engine() -> MergeEngine:
    """Create a merge engine with default tolerances."""
    return MergeEngine()


@pytest.fixture
def ai_answer() -> dict:
    """A well-formed model answer for the sample loan case."""
    return {
        "dates": [
            {"date": "2024-03-15", "type": "filing", "description": "立案日期", "confidence": 0.9},
        ],
        "parties": [
            {"name": "张三", "role": "plaintiff", "confidence": 0.95},
            {"name": "李四", "role": "defendant", "confidence": 0.95},
        ],
        "amounts": [
            {"value": 1000000, "currency": "CNY", "purpose": "principal", "confidence": 0.9},
            {"value": 50000, "currency": "CNY", "purpose": "interest", "confidence": 0.8},
        ],
        "legalClauses": [],
        "facts": [],
    }


@pytest.fixture
def failing_client() -> FakeLLMClient:
    """A client whose every call fails with a network error."""
    return FakeLLMClient(error=LLMError("network_error", "connection refused"))


@pytest.fixture
def filing_date() -> ExtractedElement:
    """A rule-sourced filing date."""
    return _make_element(DateValue(date="2024-03-15", type="filing", importance="critical"))


@pytest.fixture
def plaintiff() -> ExtractedElement:
    """A rule-sourced plaintiff."""
    return _make_element(PartyValue(name="张三", role="plaintiff"), confidence=0.95)


@pytest.fixture
def principal() -> ExtractedElement:
    """A rule-sourced loan principal."""
    return _make_element(AmountValue(value=1000000, purpose="principal"))
