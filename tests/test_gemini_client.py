"""Tests for the Gemini insight client."""

import json
from decimal import Decimal
from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from shopbooks.clients.gemini import (
    EMPTY_INSIGHT,
    INSIGHT_UNAVAILABLE,
    FinancialSnapshot,
    InsightClient,
)


@pytest.fixture
def mock_genai():
    """Patch the SDK client constructor and expose the async generate mock."""
    with patch("shopbooks.clients.gemini.genai.Client") as client_cls:
        generate = AsyncMock(return_value=MagicMock(text="Cash flow is healthy."))
        client_cls.return_value.aio.models.generate_content = generate
        yield client_cls, generate


class TestFinancialSnapshot:
    """Tests for the snapshot handed to the model."""

    def test_snapshot_from_seeded_books(self, seeded_session):
        snapshot = FinancialSnapshot.from_store(seeded_session.store)

        assert snapshot.total_revenue == Decimal("250.00")
        assert snapshot.total_expenses == Decimal("0")
        assert len(snapshot.recent_transactions) == 1
        assert snapshot.recent_transactions[0]["description"] == "Cash Sale - Walk in"
        assert snapshot.low_stock_alerts == []
        assert snapshot.pending_invoices == 0

    def test_recent_transactions_are_capped(self, session):
        for _ in range(25):
            session.store.record_expense(Decimal("1"), "Utilities", "acc_2")

        snapshot = FinancialSnapshot.from_store(session.store)

        assert len(snapshot.recent_transactions) == 20
        assert snapshot.total_expenses == Decimal("-25.00")

    def test_to_json_is_valid(self, seeded_session):
        data = json.loads(FinancialSnapshot.from_store(seeded_session.store).to_json())

        assert data["total_revenue"] == "250.00"
        assert data["pending_invoices"] == 0


class TestInsightClient:
    """Tests for InsightClient."""

    def test_client_initialization_with_defaults(self):
        """Test client initializes with settings defaults."""
        client = InsightClient()

        assert client._model_name == "gemini-2.5-flash"
        assert client._api_key == "test-key"
        assert client._max_tokens > 0

    def test_client_initialization_with_custom_params(self):
        client = InsightClient(api_key="k", model="gemini-pro", max_tokens=256, temperature=0.0)

        assert client._api_key == "k"
        assert client._model_name == "gemini-pro"
        assert client._max_tokens == 256
        assert client._temperature == 0.0

    @pytest.mark.asyncio
    async def test_financial_insight_returns_model_text(self, mock_genai, seeded_session):
        client_cls, generate = mock_genai
        client = InsightClient(business_name="Papa's Signs")
        snapshot = FinancialSnapshot.from_store(seeded_session.store)

        answer = await client.financial_insight("How are sales?", snapshot)

        assert answer == "Cash flow is healthy."
        client_cls.assert_called_once_with(api_key="test-key")
        prompt = generate.call_args.kwargs["contents"]
        assert "Papa's Signs" in prompt
        assert "How are sales?" in prompt
        assert "Cash Sale - Walk in" in prompt
        assert generate.call_args.kwargs["model"] == "gemini-2.5-flash"

    @pytest.mark.asyncio
    async def test_empty_reply_falls_back(self, mock_genai, seeded_session):
        _, generate = mock_genai
        generate.return_value = MagicMock(text=None)
        client = InsightClient()

        answer = await client.financial_insight(
            "Anything?", FinancialSnapshot.from_store(seeded_session.store)
        )

        assert answer == EMPTY_INSIGHT

    @pytest.mark.asyncio
    async def test_sdk_error_falls_back(self, mock_genai, seeded_session):
        """Test that SDK failures never escape the client."""
        _, generate = mock_genai
        generate.side_effect = RuntimeError("quota exceeded")
        client = InsightClient()

        answer = await client.financial_insight(
            "Anything?", FinancialSnapshot.from_store(seeded_session.store)
        )

        assert answer == INSIGHT_UNAVAILABLE

    @pytest.mark.asyncio
    async def test_client_construction_error_falls_back(self, seeded_session):
        with patch("shopbooks.clients.gemini.genai.Client", side_effect=ValueError("no key")):
            answer = await InsightClient().financial_insight(
                "Anything?", FinancialSnapshot.from_store(seeded_session.store)
            )

        assert answer == INSIGHT_UNAVAILABLE

    @pytest.mark.asyncio
    async def test_parse_invoice_text_requests_json(self, mock_genai):
        _, generate = mock_genai
        generate.return_value = MagicMock(text='{"customerName": "Acme Corp", "total": 187}')

        result = await InsightClient().parse_invoice_text("2x business cards for Acme, R187")

        assert json.loads(result)["customerName"] == "Acme Corp"
        config = generate.call_args.kwargs["config"]
        assert config.response_mime_type == "application/json"

    @pytest.mark.asyncio
    async def test_parse_invoice_text_failure_returns_empty_object(self, mock_genai):
        _, generate = mock_genai
        generate.side_effect = RuntimeError("boom")

        assert await InsightClient().parse_invoice_text("garbage") == "{}"
