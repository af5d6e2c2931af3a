"""External collaborator clients for shopbooks."""

from shopbooks.clients.gemini import (
    EMPTY_INSIGHT,
    INSIGHT_UNAVAILABLE,
    FinancialSnapshot,
    InsightClient,
)

__all__ = [
    "EMPTY_INSIGHT",
    "INSIGHT_UNAVAILABLE",
    "FinancialSnapshot",
    "InsightClient",
]
