"""Google Gemini client for free-text financial insights.

Uses the google-genai SDK. The client sits at the edge of the ledger: it
reads a snapshot, never mutates the store, and never raises past its
public methods. Any SDK, network or auth failure becomes a fixed fallback
string.
"""

import json
from dataclasses import asdict, dataclass, field
from decimal import Decimal
from typing import Any

import structlog
from google import genai
from google.genai import types

from shopbooks.config import get_settings
from shopbooks.models import InvoiceStatus, Transaction
from shopbooks.reports import expense_total, revenue_total
from shopbooks.store import LedgerStore

logger = structlog.get_logger(__name__)

EMPTY_INSIGHT = "I couldn't generate an insight at this moment."
INSIGHT_UNAVAILABLE = (
    "Sorry, I am currently unable to analyze the financial data. "
    "Please check your API configuration."
)
RECENT_TRANSACTION_LIMIT = 20

ANALYST_PROMPT = """
You are a senior financial analyst for a signage and printing company called "{business_name}".
The currency used is {currency} (South African Rand), symbol 'R'.
Here is the current financial snapshot JSON:
```json
{snapshot}
```

User Query: "{query}"

Provide a concise, professional, and actionable response. If the data suggests a problem (like low stock or high expenses), point it out.
"""

INVOICE_EXTRACTION_PROMPT = """
Extract invoice details from this raw text and format it as a JSON object with keys: customerName, items (array of name, quantity, price), total.
The currency is {currency}.
Raw text: "{raw_text}"
"""


@dataclass
class FinancialSnapshot:
    """Read-only view of the books handed to the model."""

    total_revenue: Decimal
    total_expenses: Decimal
    recent_transactions: list[dict[str, Any]] = field(default_factory=list)
    low_stock_alerts: list[str] = field(default_factory=list)
    pending_invoices: int = 0

    @classmethod
    def from_store(cls, store: LedgerStore) -> "FinancialSnapshot":
        transactions = store.transactions()
        threshold = store.config.low_stock_threshold
        return cls(
            total_revenue=revenue_total(transactions),
            # Signed like the ledger so the model sees outflows as negative
            total_expenses=-expense_total(transactions),
            recent_transactions=[
                _transaction_to_dict(t) for t in transactions[:RECENT_TRANSACTION_LIMIT]
            ],
            low_stock_alerts=[p.name for p in store.products() if p.stock < threshold],
            pending_invoices=sum(
                1 for inv in store.invoices() if inv.status is InvoiceStatus.SENT
            ),
        )

    def to_json(self) -> str:
        return json.dumps(asdict(self), indent=2, default=str)


def _transaction_to_dict(tx: Transaction) -> dict[str, Any]:
    return {
        "id": tx.id,
        "date": tx.date.isoformat(),
        "type": tx.type.value,
        "amount": str(tx.amount),
        "description": tx.description,
        "accountId": tx.account_id,
    }


class InsightClient:
    """Asks Gemini questions about a financial snapshot."""

    def __init__(
        self,
        api_key: str | None = None,
        model: str | None = None,
        max_tokens: int | None = None,
        temperature: float | None = None,
        business_name: str = "Papa's Signs",
    ):
        settings = get_settings()
        configured_key = settings.google_api_key
        self._api_key = api_key or (
            configured_key.get_secret_value() if configured_key else None
        )
        self._model_name = model or settings.gemini_model
        self._max_tokens = max_tokens or settings.llm_max_tokens
        self._temperature = (
            temperature if temperature is not None else settings.llm_temperature
        )
        self._currency = settings.currency
        self._business_name = business_name
        self._client: genai.Client | None = None

        self._logger = logger.bind(client="gemini", model=self._model_name)

    def _get_client(self) -> genai.Client:
        """Create the SDK client on first use so a missing key fails softly."""
        if self._client is None:
            self._client = genai.Client(api_key=self._api_key)
        return self._client

    async def _generate(self, prompt: str, response_mime_type: str | None = None) -> str:
        config = types.GenerateContentConfig(
            max_output_tokens=self._max_tokens,
            temperature=self._temperature,
            response_mime_type=response_mime_type,
        )
        response = await self._get_client().aio.models.generate_content(
            model=self._model_name,
            contents=prompt,
            config=config,
        )
        return response.text or ""

    async def financial_insight(self, query: str, snapshot: FinancialSnapshot) -> str:
        """Answer ``query`` about the snapshot, or return a fallback message."""
        prompt = ANALYST_PROMPT.format(
            business_name=self._business_name,
            currency=self._currency,
            snapshot=snapshot.to_json(),
            query=query,
        )
        self._logger.debug("requesting_insight", query_length=len(query))
        try:
            text = await self._generate(prompt)
        except Exception as e:
            self._logger.error("insight_failed", error=str(e))
            return INSIGHT_UNAVAILABLE

        self._logger.info("insight_generated", response_length=len(text))
        return text or EMPTY_INSIGHT

    async def parse_invoice_text(self, raw_text: str) -> str:
        """Extract invoice fields from free text as a JSON string (``"{}"`` on failure)."""
        prompt = INVOICE_EXTRACTION_PROMPT.format(currency=self._currency, raw_text=raw_text)
        try:
            text = await self._generate(prompt, response_mime_type="application/json")
        except Exception as e:
            self._logger.error("invoice_extraction_failed", error=str(e))
            return "{}"
        return text or "{}"
