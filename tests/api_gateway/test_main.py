# tests/api_gateway/test_main.py
from unittest.mock import AsyncMock, MagicMock, patch

import pytest
from fastapi import status
from fastapi.testclient import TestClient

from conftest import RECOMMENDATIONS_ANSWER, FakeLLM, FakeStore, answer_from_input, make_txn
from footprint.analysis import CarbonAnalyzer, get_analyzer
from footprint.exceptions import TransactionNotFound, UpstreamGenerationError, UpstreamQueryError
from footprint.predictor import SpendingPredictor
from footprint.transactions import TransactionStore, get_transaction_store
from services.api_gateway.main import app


@pytest.fixture
def crud_store() -> MagicMock:
    store = MagicMock(spec=TransactionStore)
    for name in (
        "list_transactions",
        "get_transaction",
        "create_transaction",
        "update_transaction",
        "delete_transaction",
        "fetch_transactions",
    ):
        setattr(store, name, AsyncMock())
    return store


@pytest.fixture
def analysis_store() -> FakeStore:
    return FakeStore({"2024-07": [make_txn("a", "Transport", 100), make_txn("b", "Utility", 50)]})


@pytest.fixture
def llm() -> FakeLLM:
    return FakeLLM({"emissions": answer_from_input, "recommendations": RECOMMENDATIONS_ANSWER})


@pytest.fixture
def client(crud_store, analysis_store, llm) -> TestClient:
    """TestClient with PocketBase and Gemini swapped out for fakes."""
    analyzer = CarbonAnalyzer(store=analysis_store, llm=llm, predictor=SpendingPredictor())
    app.dependency_overrides[get_transaction_store] = lambda: crud_store
    app.dependency_overrides[get_analyzer] = lambda: analyzer
    with TestClient(app, raise_server_exceptions=False) as c:
        yield c
    app.dependency_overrides.clear()


class TestServiceRoutes:
    def test_health(self, client: TestClient):
        response = client.get("/api/health")
        assert response.status_code == status.HTTP_200_OK
        body = response.json()
        assert body["ok"] is True
        assert isinstance(body["ts"], int)

    def test_root(self, client: TestClient):
        assert client.get("/api").json() == {"status": "ok", "service": "carbonTransactions API"}

    def test_favicon(self, client: TestClient):
        assert client.get("/favicon.ico").status_code == status.HTTP_204_NO_CONTENT


class TestTransactions:
    def test_list(self, client: TestClient, crud_store):
        crud_store.list_transactions.return_value = [make_txn("a", "Travel", 300)]

        response = client.get("/api/transactions")

        assert response.status_code == status.HTTP_200_OK
        (txn,) = response.json()["transactions"]
        assert txn["id"] == "a"
        assert txn["category"] == "Travel"
        assert txn["createDatetime"].startswith("2024-07-05T10:00:00")

    def test_create(self, client: TestClient, crud_store):
        crud_store.create_transaction.return_value = make_txn("new", "Shopping", 12.5)

        response = client.post("/api/transactions", json={"title": "Shoes", "category": "shopping", "amount": "12.50"})

        assert response.status_code == status.HTTP_201_CREATED
        assert response.json()["id"] == "new"
        sent = crud_store.create_transaction.await_args.args[0]
        assert sent["title"] == "Shoes"
        assert sent["amount"] == 12.5
        assert sent["category"] == "Shopping"
        assert "createDatetime" not in sent

    def test_create_without_category_defaults_to_others(self, client: TestClient, crud_store):
        crud_store.create_transaction.return_value = make_txn("new")
        client.post("/api/transactions", json={"title": "Misc", "amount": 3})
        assert crud_store.create_transaction.await_args.args[0]["category"] == "Others"

    def test_create_rejects_bad_amount(self, client: TestClient, crud_store):
        response = client.post("/api/transactions", json={"title": "x", "amount": "lots"})
        assert response.status_code == status.HTTP_400_BAD_REQUEST
        assert response.json()["success"] is False
        crud_store.create_transaction.assert_not_awaited()

    def test_get_missing_is_404(self, client: TestClient, crud_store):
        crud_store.get_transaction.return_value = None
        response = client.get("/api/transactions/nope")
        assert response.status_code == status.HTTP_404_NOT_FOUND
        assert response.json() == {"error": "Not found"}

    def test_update_sends_only_given_fields(self, client: TestClient, crud_store):
        crud_store.update_transaction.return_value = make_txn("a", amount=99)

        response = client.put("/api/transactions/a", json={"amount": 99})

        assert response.status_code == status.HTTP_200_OK
        txn_id, sent = crud_store.update_transaction.await_args.args
        assert txn_id == "a"
        assert sent == {"amount": 99.0}

    def test_update_missing_is_404(self, client: TestClient, crud_store):
        crud_store.update_transaction.side_effect = TransactionNotFound("nope")
        assert client.put("/api/transactions/nope", json={"amount": 1}).status_code == status.HTTP_404_NOT_FOUND

    def test_delete(self, client: TestClient, crud_store):
        crud_store.delete_transaction.return_value = True
        response = client.delete("/api/transactions/a")
        assert response.json() == {"ok": True}
        crud_store.delete_transaction.assert_awaited_once_with("a")

    def test_malformed_store_answer_is_json_500(self, client: TestClient, crud_store):
        crud_store.get_transaction.side_effect = KeyError("token")
        response = client.get("/api/transactions/a")
        assert response.status_code == status.HTTP_500_INTERNAL_SERVER_ERROR
        assert response.json()["success"] is False
        assert response.json()["error"] == "Internal error"

    def test_pocketbase_failure_is_502(self, client: TestClient, crud_store):
        crud_store.list_transactions.side_effect = UpstreamQueryError("refused")
        response = client.get("/api/transactions")
        assert response.status_code == status.HTTP_502_BAD_GATEWAY
        assert response.json()["error"] == "PocketBase request failed"


class TestAIRoutes:
    def test_predict_spending(self, client: TestClient):
        response = client.get("/api/ai/predict-spending", params={"month": "2024-07"})
        assert response.status_code == status.HTTP_200_OK
        body = response.json()
        assert body["success"] is True
        assert body["data"]["predictedSpending"] == 1300.0
        assert body["data"]["season"] == "Summer"

    def test_predict_spending_requires_month(self, client: TestClient):
        response = client.get("/api/ai/predict-spending")
        assert response.status_code == status.HTTP_400_BAD_REQUEST
        body = response.json()
        assert body["success"] is False
        assert body["example"] == "2024-07"

    def test_emissions(self, client: TestClient, llm):
        response = client.get("/api/ai/emissions", params={"month": "2024-07"})
        assert response.status_code == status.HTTP_200_OK
        body = response.json()
        assert body["month"] == "2024-07"
        assert len(body["items"]) == 2
        assert body["totals"]["totalEmissionsKg"] == pytest.approx(75.0)
        assert llm.calls_for("emissions") == 1

    def test_emissions_bad_month(self, client: TestClient, llm):
        response = client.get("/api/ai/emissions", params={"month": "2024-7"})
        assert response.status_code == status.HTTP_400_BAD_REQUEST
        assert llm.calls == 0

    def test_comprehensive_analysis(self, client: TestClient):
        response = client.get("/api/ai/comprehensive-analysis", params={"month": "2024-07"})
        assert response.status_code == status.HTTP_200_OK
        data = response.json()["data"]
        assert data["actualSpending"] == 150.0
        assert data["comparison"]["predictedVsActual"] == pytest.approx(-1150.0)
        assert data["recommendations"]["alternatives"][0]["greenerOption"] == "MRT"

    def test_comprehensive_analysis_defaults_to_current_month(self, client: TestClient, analysis_store):
        with patch("services.api_gateway.main.current_month_key", return_value="2024-02"):
            response = client.get("/api/ai/comprehensive-analysis")
        assert response.status_code == status.HTTP_200_OK
        assert response.json()["data"]["prediction"]["month"] == "2024-02"
        assert analysis_store.fetched == ["2024-02"]

    def test_gemini_failure_is_502(self, client: TestClient, llm):
        llm.answers["emissions"] = UpstreamGenerationError("quota exceeded", status=429)
        response = client.get("/api/ai/comprehensive-analysis", params={"month": "2024-07"})
        assert response.status_code == status.HTTP_502_BAD_GATEWAY
        body = response.json()
        assert body["success"] is False
        assert body["error"] == "Gemini request failed"
        assert "quota exceeded" in body["message"]

    def test_unexpected_failure_is_json_500(self, client: TestClient, llm):
        llm.answers["emissions"] = ConnectionError("socket closed")
        with patch("services.api_gateway.main.sentry_capture") as mock_sentry:
            response = client.get("/api/ai/comprehensive-analysis", params={"month": "2024-07"})
        assert response.status_code == status.HTTP_500_INTERNAL_SERVER_ERROR
        assert response.headers["content-type"].startswith("application/json")
        assert response.json() == {"success": False, "error": "Internal error", "message": "socket closed"}
        mock_sentry.assert_called_once()

    def test_compare_months(self, client: TestClient):
        response = client.post("/api/ai/compare-months", json={"months": ["2024-06", "2024-07"]})
        assert response.status_code == status.HTTP_200_OK
        data = response.json()["data"]
        assert [c["month"] for c in data["comparisons"]] == ["2024-06", "2024-07"]
        assert data["summary"]["totalMonthsAnalyzed"] == 2
        assert data["summary"]["highestEmissionMonth"]["month"] == "2024-07"
        assert data["summary"]["trend"] == "stable"

    @pytest.mark.parametrize(
        "payload",
        [{}, {"months": []}, {"months": "2024-07"}, {"months": [f"2023-{m:02d}" for m in range(1, 13)] + ["2024-01"]}],
    )
    def test_compare_months_rejects_bad_input(self, client: TestClient, analysis_store, payload):
        response = client.post("/api/ai/compare-months", json=payload)
        assert response.status_code == status.HTTP_400_BAD_REQUEST
        assert response.json()["success"] is False
        assert analysis_store.fetched == []

    def test_handprint_suggestions(self, client: TestClient):
        response = client.get("/api/ai/handprint-suggestions", params={"month": "2024-07"})
        data = response.json()["data"]
        assert data["season"] == "Summer"
        assert data["handprintActions"][0]["action"] == "Plant a tree"

    def test_greener_alternatives(self, client: TestClient):
        response = client.get("/api/ai/greener-alternatives", params={"month": "2024-07"})
        data = response.json()["data"]
        assert len(data["alternatives"]) == 2
        assert data["potentialSavings"].startswith("Average ")
