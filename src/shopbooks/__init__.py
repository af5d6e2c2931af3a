"""Shopbooks - point of sale, invoicing and job costing ledger for a small shop."""

__version__ = "0.1.0"

from shopbooks.clients import FinancialSnapshot, InsightClient
from shopbooks.config import LedgerConfig, configure_logging, get_settings
from shopbooks.errors import (
    InsufficientTender,
    InvalidTransition,
    InvariantViolation,
    LedgerError,
    NotFound,
    ValidationError,
)
from shopbooks.inventory import InventoryController
from shopbooks.invoices import InvoiceDraft, InvoiceEngine
from shopbooks.jobs import JobEngine
from shopbooks.recurring import RecurringScheduler
from shopbooks.sales import Cart, CheckoutEngine, Receipt
from shopbooks.session import LedgerSession
from shopbooks.store import LedgerStore

__all__ = [
    # Version
    "__version__",
    # Session & store
    "LedgerSession",
    "LedgerStore",
    "LedgerConfig",
    # Engines
    "InventoryController",
    "CheckoutEngine",
    "Cart",
    "Receipt",
    "InvoiceEngine",
    "InvoiceDraft",
    "RecurringScheduler",
    "JobEngine",
    # AI insights
    "InsightClient",
    "FinancialSnapshot",
    # Errors
    "LedgerError",
    "ValidationError",
    "NotFound",
    "InsufficientTender",
    "InvalidTransition",
    "InvariantViolation",
    # Config
    "get_settings",
    "configure_logging",
]
