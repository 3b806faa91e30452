"""Integration tests for the extraction API.

Tests the complete flow through FastAPI:
1. Validate the request body
2. Run rule and AI extraction (AI stubbed via dependency override)
3. Merge, classify and assemble the camelCase response

Run with: pytest tests/integration/test_extract_api.py -v
"""

from fastapi.testclient import TestClient

from judex.api.extraction import get_llm_client
from judex.extraction.llm import LLMError
from judex.main import app

EXTRACT_URL = "/api/v1/extract"

LOAN_TEXT = "原告张三于2024年3月15日起诉被告李四，要求返还借款100万元。"
LABOR_TEXT = "原告王五要求被告支付拖欠工资及经济补偿金。"
CONTRACT_TEXT = "双方签订买卖合同，被告违约未履行。"

AI_ANSWER = {
    "dates": [{"date": "2024-03-15", "type": "filing", "confidence": 0.9}],
    "parties": [
        {"name": "张三", "role": "plaintiff", "confidence": 0.95},
        {"name": "李四", "role": "defendant", "confidence": 0.95},
    ],
    "amounts": [
        {"value": 1000000, "currency": "CNY", "purpose": "principal", "confidence": 0.9},
        {"value": 50000, "currency": "CNY", "purpose": "interest", "confidence": 0.8},
    ],
}


class TestRequestValidation:
    """Tests for malformed requests."""

    def test_empty_text_rejected(self, client, stub_llm):
        """Test an empty text gives 400 INVALID_INPUT."""
        stub = stub_llm(AI_ANSWER)

        response = client.post(EXTRACT_URL, json={"text": ""})

        assert response.status_code == 400
        body = response.json()
        assert body["success"] is False
        assert body["errorCode"] == "INVALID_INPUT"
        assert body["error"]
        assert response.headers["X-Error-Code"] == "INVALID_INPUT"
        assert stub.calls == 0

    def test_blank_text_rejected(self, client, stub_llm):
        """Test whitespace-only text gives 400."""
        stub_llm(AI_ANSWER)

        response = client.post(EXTRACT_URL, json={"text": "   \n  "})

        assert response.status_code == 400
        assert response.json()["errorCode"] == "INVALID_INPUT"

    def test_missing_text_rejected(self, client, stub_llm):
        """Test a body without text gives 400."""
        stub_llm(AI_ANSWER)

        response = client.post(EXTRACT_URL, json={"options": {"enableAI": False}})

        assert response.status_code == 400
        assert response.json()["errorCode"] == "INVALID_INPUT"

    def test_malformed_json_rejected(self, client, stub_llm):
        """Test a body that is not JSON gives 400 with details."""
        stub_llm(AI_ANSWER)

        response = client.post(
            EXTRACT_URL,
            content=b"not json",
            headers={"Content-Type": "application/json"},
        )

        assert response.status_code == 400
        body = response.json()
        assert body["errorCode"] == "INVALID_INPUT"
        assert body["details"]

    def test_wrong_type_rejected(self, client, stub_llm):
        """Test a non-string text gives 400."""
        stub_llm(AI_ANSWER)

        response = client.post(EXTRACT_URL, json={"text": ["原告张三"]})

        assert response.status_code == 400


class TestExtraction:
    """Tests for successful extractions."""

    def test_rule_only_loan_case(self, client, stub_llm):
        """Test enableAI false skips the model and returns rule output."""
        stub = stub_llm(AI_ANSWER)

        response = client.post(
            EXTRACT_URL, json={"text": LOAN_TEXT, "options": {"enableAI": False}}
        )

        assert response.status_code == 200
        body = response.json()
        data = body["data"]
        assert body["success"] is True
        assert stub.calls == 0
        assert data["source"] == "rule"
        assert data["caseType"] == "民间借贷纠纷"
        assert [d["value"]["date"] for d in data["dates"]] == ["2024-03-15"]
        assert data["dates"][0]["value"]["type"] == "filing"
        assert {p["value"]["name"]: p["value"]["role"] for p in data["parties"]} == {
            "张三": "plaintiff",
            "李四": "defendant",
        }
        assert data["amounts"][0]["value"]["value"] == 1000000
        assert data["amounts"][0]["value"]["purpose"] == "principal"
        assert body["metadata"]["extractionMethod"] == "rule-based"

    def test_hybrid_loan_case(self, client, stub_llm):
        """Test AI output is merged into the response."""
        stub = stub_llm(AI_ANSWER)

        response = client.post(EXTRACT_URL, json={"text": LOAN_TEXT})

        assert response.status_code == 200
        body = response.json()
        assert stub.calls == 1
        assert body["data"]["source"] == "merged"
        assert body["metadata"]["extractionMethod"] == "hybrid"
        purposes = sorted(a["value"]["purpose"] for a in body["data"]["amounts"])
        assert purposes == ["interest", "principal"]
        merged_parties = [p for p in body["data"]["parties"] if p["source"] == "merged"]
        assert len(merged_parties) == 2
        assert all(len(p["contributors"]) == 2 for p in merged_parties)

    def test_role_conflict_keeps_confident_rule(self, client, stub_llm):
        """Test a less confident AI role is reported as a conflict the rule wins."""
        stub_llm({"parties": [{"name": "张三", "role": "defendant", "confidence": 0.7}]})

        response = client.post(EXTRACT_URL, json={"text": LOAN_TEXT})

        assert response.status_code == 200
        data = response.json()["data"]
        roles = {p["value"]["name"]: p["value"]["role"] for p in data["parties"]}
        assert roles["张三"] == "plaintiff"
        assert len(data["conflicts"]) == 1
        conflict = data["conflicts"][0]
        assert conflict["key"] == "party:张三"
        assert conflict["differingFields"] == ["role"]
        assert conflict["resolution"] == "rule-confidence-higher"
        assert conflict["aiValue"]["role"] == "defendant"

    def test_case_types(self, client, stub_llm):
        """Test labor and contract disputes are classified."""
        stub_llm(AI_ANSWER)

        labor = client.post(EXTRACT_URL, json={"text": LABOR_TEXT, "options": {"enableAI": False}})
        contract = client.post(
            EXTRACT_URL, json={"text": CONTRACT_TEXT, "options": {"enableAI": False}}
        )

        assert labor.json()["data"]["caseType"] == "劳动争议"
        assert contract.json()["data"]["caseType"] == "合同纠纷"

    def test_ai_failure_falls_back(self, client, unreachable_llm):
        """Test an unreachable model still gives a 200 rule-based response."""
        response = client.post(EXTRACT_URL, json={"text": LOAN_TEXT})

        assert response.status_code == 200
        body = response.json()
        assert unreachable_llm.calls == 1
        assert body["data"]["source"] == "rule"
        assert body["metadata"]["extractionMethod"] == "rule-based"
        assert body["suggestions"][-1] == "AI分析暂不可用，本次结果仅基于规则提取"
        assert body["data"]["parties"]

    def test_invalid_model_answer_falls_back(self, client, stub_llm):
        """Test a non-JSON model answer gives the rule-based response."""
        stub_llm("测试文本")

        response = client.post(EXTRACT_URL, json={"text": LOAN_TEXT})

        assert response.status_code == 200
        assert response.json()["data"]["source"] == "rule"

    def test_timeout_error_falls_back(self, client, stub_llm):
        """Test a timed-out model call gives the rule-based response."""
        stub_llm(error=LLMError("timeout", "no answer"))

        response = client.post(EXTRACT_URL, json={"text": LOAN_TEXT})

        assert response.status_code == 200
        assert response.json()["data"]["source"] == "rule"

    def test_full_judgment(self, client, stub_llm, full_judgment):
        """Test a complete judgment yields metadata, clauses and references."""
        stub_llm(error=LLMError("missing_api_key"))

        response = client.post(EXTRACT_URL, json={"text": full_judgment})

        assert response.status_code == 200
        body = response.json()
        data, metadata = body["data"], body["metadata"]
        assert metadata["documentType"] == "judgment"
        assert metadata["court"] == "北京市朝阳区人民法院"
        assert metadata["caseNumber"] == "（2024）京0105民初12345号"
        assert data["caseType"] == "民间借贷纠纷"
        assert [c["value"]["law"] for c in data["legalClauses"]] == ["民法典"]
        assert data["legalClauses"][0]["value"]["article"] == "第667条"
        assert data["legalReferences"][0] == "《民法典》第667条"
        assert data["provisions"][0]["code"] == "CC-667"
        parties = {p["value"]["name"]: p["value"] for p in data["parties"]}
        assert parties["李四贸易有限公司"]["legalRepresentative"] == "王五"
        assert [d["value"]["date"] for d in data["dates"]] == [
            "1980-05-01",
            "2024-03-15",
            "2024-04-10",
        ]
        assert 0.0 < data["confidence"] <= 1.0

    def test_provisions_disabled(self, client, stub_llm):
        """Test provisions are omitted when enhancement is off."""
        stub_llm(AI_ANSWER)

        response = client.post(
            EXTRACT_URL,
            json={
                "text": LOAN_TEXT,
                "options": {"enableAI": False, "enhanceWithProvisions": False},
            },
        )

        data = response.json()["data"]
        assert data["provisions"] is None
        assert data["legalReferences"] is None

    def test_request_id_header(self, client, stub_llm):
        """Test the request ID is echoed back."""
        stub_llm(AI_ANSWER)

        response = client.post(
            EXTRACT_URL,
            json={"text": LOAN_TEXT, "options": {"enableAI": False}},
            headers={"X-Request-ID": "req-123"},
        )

        assert response.headers["X-Request-ID"] == "req-123"


class TestHealth:
    """Tests for the health endpoints."""

    def test_health(self, client):
        """Test the health endpoint reports the service."""
        response = client.get("/health")

        assert response.status_code == 200
        body = response.json()
        assert body["status"] == "healthy"
        assert body["service"] == "judex-api"
        assert "ai_configured" in body

    def test_root(self, client):
        """Test the root endpoint reports name and version."""
        response = client.get("/")

        assert response.status_code == 200
        assert response.json()["name"] == "judex API"


class TestLLMClientLifecycle:
    """Tests for the shared LLM client."""

    def test_client_is_shared_and_closed_on_shutdown(self):
        """Test requests share one client and shutdown closes it."""
        get_llm_client.cache_clear()
        shared = get_llm_client()
        assert get_llm_client() is shared

        with TestClient(app):
            shared._get_client()

        assert shared._client is None
        assert get_llm_client.cache_info().currsize == 0
