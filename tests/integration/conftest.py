"""Pytest fixtures for API integration tests."""

import json

import pytest
from fastapi.testclient import TestClient

from judex.api.extraction import get_llm_client
from judex.extraction.llm import LLMError
from judex.main import app


FULL_JUDGMENT = """北京市朝阳区人民法院
民 事 判 决 书
（２０２４）京0105民初12345号
原告：张三，男，1980年5月1日出生。
被告：李四贸易有限公司，住所地北京市朝阳区。
法定代表人：王五，该公司经理。
原告于2024年3月15日向本院提起诉讼，请求判令被告归还借款本金100万元。
本院于2024年4月10日公开开庭进行了审理。
本院认为，原告提供的借条能够证明双方之间的借贷关系。
根据《民法典》第667条的规定，判决如下："""


class StubLLMClient:
    """LLM client stand-in returning a fixed answer or raising."""

    def __init__(self, answer: dict | str | None = None, error: Exception | None = None):
        self.answer = json.dumps(answer, ensure_ascii=False) if isinstance(answer, dict) else answer
        self.error = error
        self.calls = 0

    async def complete(self, messages: list[dict[str, str]]) -> str:
        self.calls += 1
        if self.error is not None:
            raise self.error
        return self.answer


@pytest.fixture
def full_judgment() -> str:
    """A judgment with full-width digits and spaced headings."""
    return FULL_JUDGMENT


@pytest.fixture
def stub_llm():
    """Install an LLM client stub for the duration of a test.

    Call the fixture with the answer (or error) the stub should produce;
    it returns the stub so tests can inspect its call count.
    """
    def install(answer: dict | str | None = None, error: Exception | None = None) -> StubLLMClient:
        stub = StubLLMClient(answer=answer, error=error)
        app.dependency_overrides[get_llm_client] = lambda: stub
        return stub

    yield install
    app.dependency_overrides.pop(get_llm_client, None)


@pytest.fixture
def unreachable_llm(stub_llm) -> StubLLMClient:
    """An LLM that always fails with a network error."""
    return stub_llm(error=LLMError("network_error", "connection refused"))


@pytest.fixture
def client():
    """Create a test client with the application lifespan running."""
    with TestClient(app) as test_client:
        yield test_client
