"""
Integration tests for the Expense AI HTTP endpoints.
"""
import base64
import datetime as dt
import json

import pytest

from expense_ai.main import app

from .conftest import ScriptedProvider

WALMART = (
    "Walmart\n123 Main St\n01/15/2024\nMilk 3.99\nBread 2.50\n"
    "SUBTOTAL 6.49\nTAX 0.52\nTOTAL 7.01\nCREDIT CARD"
)
HEADERS = {"X-User-Id": "1"}


class FakeOCR:
    enabled = True

    def __init__(self, text):
        self.text = text

    async def extract_text(self, image_bytes):
        return self.text

    def shutdown(self):
        pass


@pytest.fixture()
def today_expense(add_expense):
    return lambda amount, **kw: add_expense(amount, on=dt.date.today(), **kw)


class TestService:
    def test_root(self, client):
        assert client.get("/").json()["status"] == "running"

    def test_health(self, client):
        body = client.get("/health").json()
        assert body["status"] == "healthy"
        assert body["ai_enabled"] is False


class TestReceiptParse:
    def test_parse(self, client):
        resp = client.post("/api/receipts/parse", json={"receipt_text": WALMART})
        assert resp.status_code == 200
        data = resp.json()["data"]
        assert data["store"]["name"] == "Walmart"
        assert data["totals"] == {"subtotal": 6.49, "tax": 0.52, "total": 7.01}
        assert data["items_total"] == 6.49
        assert data["totals_mismatch"] is True

    def test_empty_text(self, client):
        resp = client.post("/api/receipts/parse", json={"receipt_text": "   "})
        assert resp.status_code == 400
        assert resp.json() == {"success": False, "detail": "receipt_text must not be empty"}

    def test_missing_body_field(self, client):
        assert client.post("/api/receipts/parse", json={}).status_code == 422


class TestAnalyzeReceipt:
    def test_disabled_falls_back_to_parser(self, client):
        resp = client.post("/api/ai/analyze-receipt", json={"receipt_text": WALMART})
        body = resp.json()
        assert resp.status_code == 200
        assert body["success"] is True
        assert body["source"] == "heuristic"
        assert body["degraded"] is True
        assert len(body["data"]["items"]) == 2

    def test_image(self, client):
        app.state.ocr = FakeOCR(WALMART)
        image = "data:image/png;base64," + base64.b64encode(b"fake-png").decode()
        resp = client.post("/api/ai/analyze-receipt-image", json={"image": image})
        assert resp.status_code == 200
        assert resp.json()["data"]["store"]["name"] == "Walmart"

    def test_image_not_base64(self, client):
        resp = client.post("/api/ai/analyze-receipt-image", json={"image": "%%%not-base64%%%"})
        assert resp.status_code == 400

    def test_image_without_text(self, client):
        app.state.ocr = FakeOCR("")
        image = base64.b64encode(b"fake-png").decode()
        resp = client.post("/api/ai/analyze-receipt-image", json={"image": image})
        assert resp.status_code == 400


class TestInsights:
    def test_requires_user_header(self, client):
        assert client.get("/api/ai/insights").status_code == 422

    def test_no_data(self, client):
        body = client.get("/api/ai/insights", headers=HEADERS).json()
        assert body["source"] == "no_data"
        assert "health_score" in body["data"]
        assert body["data"]["recommendations"]

    def test_ai_insights_cached(self, client, today_expense):
        today_expense(120, description="Groceries")
        app.state.provider = ScriptedProvider(json.dumps({"trends": "steady", "health_score": 70}))

        first = client.get("/api/ai/insights", headers=HEADERS).json()
        cached = client.get("/api/ai/cached-insights/financial_overview", headers=HEADERS)

        assert first["source"] == "ai"
        assert first["data"]["health_score"] == 70
        assert cached.status_code == 200
        assert cached.json()["data"]["content"]["trends"] == "steady"

    def test_cached_insight_missing(self, client):
        resp = client.get("/api/ai/cached-insights/trends", headers=HEADERS)
        assert resp.status_code == 404

    def test_cached_insight_unknown_type(self, client):
        assert client.get("/api/ai/cached-insights/horoscope", headers=HEADERS).status_code == 422

    @pytest.mark.parametrize(
        "path",
        [
            "/api/ai/budget-recommendations",
            "/api/ai/savings-opportunities",
            "/api/ai/financial-goals",
            "/api/ai/spending-predictions?timeframe=quarter",
            "/api/ai/trends-analysis?period=1year",
            "/api/ai/health-score",
        ],
    )
    def test_degraded_endpoints_answer(self, client, today_expense, path):
        today_expense(80)
        resp = client.get(path, headers=HEADERS)
        assert resp.status_code == 200
        assert resp.json()["degraded"] is True

    def test_invalid_period(self, client):
        resp = client.get("/api/ai/trends-analysis?period=forever", headers=HEADERS)
        assert resp.status_code == 422


class TestProviderOnlyEndpoints:
    def test_analyze_expense_unavailable(self, client):
        resp = client.post(
            "/api/ai/analyze-expense",
            json={"amount": 12.5, "description": "Lunch"},
            headers=HEADERS,
        )
        assert resp.status_code == 503
        assert resp.json()["success"] is False

    def test_analyze_expense_validation(self, client):
        resp = client.post("/api/ai/analyze-expense", json={"amount": -1, "description": "x"}, headers=HEADERS)
        assert resp.status_code == 422

    def test_analyze_expense_fallback(self, client):
        app.state.provider = ScriptedProvider("not json")
        resp = client.post(
            "/api/ai/analyze-expense",
            json={"amount": 12.5, "description": "Lunch"},
            headers=HEADERS,
        )
        body = resp.json()
        assert resp.status_code == 200
        assert body["source"] == "fallback"
        assert set(body["data"]) == {"pattern", "comparison", "suggestions", "category_feedback", "impact_score"}

    def test_optimize_budget_unavailable(self, client):
        resp = client.post("/api/ai/optimize-budget", json={"current_budget": {}}, headers=HEADERS)
        assert resp.status_code == 503

    def test_chat(self, client):
        app.state.provider = ScriptedProvider("Consider a high-yield savings account.")
        resp = client.post(
            "/api/ai/chat",
            json={"message": "Where should I save?", "conversation_history": []},
            headers=HEADERS,
        )
        body = resp.json()
        assert body["data"]["message"] == "Consider a high-yield savings account."
        assert body["data"]["suggestions"] == ["Consider a high-yield savings account."]

    def test_chat_blank(self, client):
        app.state.provider = ScriptedProvider("hi")
        resp = client.post("/api/ai/chat", json={"message": "  "}, headers=HEADERS)
        assert resp.status_code == 400


class TestCategorize:
    def test_heuristic(self, client):
        resp = client.post("/api/ai/categorize", json={"description": "Monthly groceries", "amount": 80})
        body = resp.json()
        assert body["source"] == "heuristic"
        assert body["data"]["category_name"] == "Groceries"

    def test_blank(self, client):
        resp = client.post("/api/ai/categorize", json={"description": ""})
        assert resp.status_code == 400
