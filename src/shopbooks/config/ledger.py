"""Ledger policy built from settings and handed to the store."""

from dataclasses import dataclass, field
from datetime import timedelta
from decimal import Decimal

from shopbooks.config.settings import FlatSettings, get_settings
from shopbooks.models import PaymentMethod


@dataclass(frozen=True)
class LedgerConfig:
    """Tax constants, thresholds and account routing for one store.

    The three tax rates are independent on purpose: POS sales, manual
    invoices and recurring invoices each carry their own rate.
    """

    pos_tax_rate: Decimal = Decimal("0.10")
    invoice_tax_rate: Decimal = Decimal("0.15")
    recurring_tax_rate: Decimal = Decimal("0.10")
    low_stock_threshold: int = 10
    reminder_interval: timedelta = timedelta(days=3)
    payment_terms: timedelta = timedelta(days=14)
    allow_negative_stock: bool = True
    cash_account_id: str = "acc_2"
    clearing_account_id: str = "acc_3"
    currency: str = "ZAR"
    payment_accounts: dict[PaymentMethod, str] = field(default_factory=dict)

    def __post_init__(self) -> None:
        if not self.payment_accounts:
            routing = {
                PaymentMethod.CASH: self.cash_account_id,
                PaymentMethod.CARD: self.clearing_account_id,
                PaymentMethod.EFT: self.clearing_account_id,
            }
            object.__setattr__(self, "payment_accounts", routing)

    def account_for(self, method: PaymentMethod) -> str:
        """Account that receives money tendered with ``method``."""
        return self.payment_accounts.get(method, self.clearing_account_id)

    @property
    def restock_account_id(self) -> str:
        return self.cash_account_id

    @property
    def job_cost_account_id(self) -> str:
        return self.cash_account_id

    @property
    def invoice_payment_account_id(self) -> str:
        return self.clearing_account_id

    @classmethod
    def from_settings(cls, settings: FlatSettings | None = None) -> "LedgerConfig":
        settings = settings or get_settings()
        return cls(
            pos_tax_rate=Decimal(str(settings.pos_tax_rate)),
            invoice_tax_rate=Decimal(str(settings.invoice_tax_rate)),
            recurring_tax_rate=Decimal(str(settings.recurring_tax_rate)),
            low_stock_threshold=settings.low_stock_threshold,
            reminder_interval=timedelta(days=settings.reminder_interval_days),
            payment_terms=timedelta(days=settings.invoice_payment_terms_days),
            allow_negative_stock=settings.allow_negative_stock,
            cash_account_id=settings.cash_account_id,
            clearing_account_id=settings.clearing_account_id,
            currency=settings.currency,
        )
