"""Derived financial figures. Every figure is a fold over store snapshots."""

from collections.abc import Iterable
from dataclasses import dataclass
from datetime import date, timedelta
from decimal import Decimal

from shopbooks.models import (
    ZERO,
    AccountType,
    InvoiceStatus,
    Transaction,
    TransactionType,
)
from shopbooks.store import LedgerStore

REVENUE_TYPES = frozenset({TransactionType.SALE, TransactionType.INVOICE_PAYMENT})
EXPENSE_TYPES = frozenset({TransactionType.EXPENSE, TransactionType.RESTOCK})


def revenue_total(transactions: Iterable[Transaction]) -> Decimal:
    return sum((t.amount for t in transactions if t.type in REVENUE_TYPES), ZERO)


def expense_total(transactions: Iterable[Transaction]) -> Decimal:
    """Money spent, as a positive figure."""
    return abs(sum((t.amount for t in transactions if t.type in EXPENSE_TYPES), ZERO))


def daily_revenue(
    transactions: Iterable[Transaction], today: date, days: int = 7
) -> list[tuple[date, Decimal]]:
    """Inflows per day for the ``days`` days ending ``today``, oldest first."""
    window = [today - timedelta(days=offset) for offset in range(days - 1, -1, -1)]
    totals = dict.fromkeys(window, ZERO)
    for tx in transactions:
        day = tx.date.date()
        if day in totals and tx.amount > 0:
            totals[day] += tx.amount
    return [(day, totals[day]) for day in window]


def balance_by_type(
    store: LedgerStore, account_type: AccountType, as_of: date | None = None
) -> Decimal:
    """Combined balance of every account of one type."""
    return sum(
        (store.balance(account.id, as_of) for account in store.accounts_of_type(account_type)),
        ZERO,
    )


@dataclass
class FinancialSummary:
    """Headline figures for the dashboard and the CLI."""

    business_name: str
    as_of: date
    total_revenue: Decimal
    total_expenses: Decimal
    pending_invoices: int
    low_stock: list[str]
    account_balances: dict[str, Decimal]

    @property
    def net_profit(self) -> Decimal:
        return self.total_revenue - self.total_expenses

    def to_text(self) -> str:
        balances = "\n".join(
            f"  {name}: R{amount:,.2f}" for name, amount in self.account_balances.items()
        )
        low_stock = ", ".join(self.low_stock) if self.low_stock else "none"
        return f"""
Financial Summary for {self.business_name} - {self.as_of}
{'=' * 50}

Revenue: R{self.total_revenue:,.2f}
Expenses: R{self.total_expenses:,.2f}
Net Profit: R{self.net_profit:,.2f}

Pending Invoices: {self.pending_invoices}
Low Stock: {low_stock}

Account Balances:
{balances}
""".strip()


def build_summary(
    store: LedgerStore, business_name: str = "", as_of: date | None = None
) -> FinancialSummary:
    as_of = as_of or store.today()
    transactions = [t for t in store.transactions() if t.date.date() <= as_of]
    threshold = store.config.low_stock_threshold
    return FinancialSummary(
        business_name=business_name,
        as_of=as_of,
        total_revenue=revenue_total(transactions),
        total_expenses=expense_total(transactions),
        pending_invoices=sum(
            1 for inv in store.invoices() if inv.status is InvoiceStatus.SENT
        ),
        low_stock=[
            p.name for p in store.products() if not p.is_service and p.stock < threshold
        ],
        account_balances={
            account.name: store.balance(account.id, as_of)
            for account in store.bank_accounts()
        },
    )
