"""Entity, enum and patch definitions for the ledger."""

from dataclasses import dataclass, field, fields, replace
from datetime import date, datetime
from decimal import ROUND_HALF_UP, Decimal
from enum import Enum
from typing import Any, TypeVar

CENT = Decimal("0.01")
ZERO = Decimal("0")

SERVICE_CATEGORY = "Service"

# Categories offered by the expense capture form
EXPENSE_CATEGORIES: tuple[str, ...] = (
    "Advertising & Marketing",
    "Automobile Expense",
    "Consultant Expense",
    "Contract Assets",
    "Cost of Goods Sold",
    "Depreciation Expense",
    "IT and Computer Expenses",
    "Janitorial Expense",
    "Meals and Entertainment",
    "Office Supplies",
    "Rent Expense",
    "Repairs and Maintenance",
    "Salaries and Employee Wages",
    "Travel Expense",
    "Utilities",
)


def to_money(value: Any) -> Decimal:
    """Coerce a number to a Decimal rounded to cents."""
    if not isinstance(value, Decimal):
        value = Decimal(str(value))
    return value.quantize(CENT, rounding=ROUND_HALF_UP)


class TransactionType(str, Enum):
    """Kinds of cash-affecting ledger entries."""

    SALE = "SALE"
    EXPENSE = "EXPENSE"
    RESTOCK = "RESTOCK"
    INVOICE_PAYMENT = "INVOICE_PAYMENT"
    DEPOSIT = "DEPOSIT"


class InvoiceStatus(str, Enum):
    DRAFT = "DRAFT"
    SENT = "SENT"
    PAID = "PAID"
    OVERDUE = "OVERDUE"


class JobStatus(str, Enum):
    """Production job workflow states, in forward order."""

    QUOTE = "QUOTE"
    APPROVED = "APPROVED"
    DEPOSIT_REQUESTED = "DEPOSIT_REQUESTED"
    DEPOSIT_RECEIVED = "DEPOSIT_RECEIVED"  # Ready for production
    IN_PRODUCTION = "IN_PRODUCTION"
    COMPLETED = "COMPLETED"  # Ready for install/pickup
    CLOSED = "CLOSED"  # Paid in full


class RecurrenceInterval(str, Enum):
    WEEKLY = "WEEKLY"
    MONTHLY = "MONTHLY"
    ANNUALLY = "ANNUALLY"


class PaymentMethod(str, Enum):
    CASH = "CASH"
    CARD = "CARD"
    EFT = "EFT"


class AccountType(str, Enum):
    BANK = "BANK"
    CASH = "CASH"
    OTHER = "OTHER"


class StockDirection(str, Enum):
    RESTOCK = "RESTOCK"
    DEDUCT = "DEDUCT"


class JobCostCategory(str, Enum):
    MATERIALS = "Materials"
    LABOR = "Labor"
    SUBCONTRACTING = "Subcontracting"
    VEHICLE_FUEL = "Vehicle Fuel"
    EQUIPMENT_MAINTENANCE = "Equipment Maintenance"
    OTHER = "Other"


# ---------------------------------------------------------------------------
# Entities
# ---------------------------------------------------------------------------


@dataclass
class Product:
    """A catalog item. Stock may go negative when overselling is allowed."""

    id: str
    name: str
    category: str
    price: Decimal
    cost: Decimal
    stock: int
    unit: str = "pc"

    @property
    def is_service(self) -> bool:
        return self.category == SERVICE_CATEGORY


@dataclass(frozen=True)
class Transaction:
    """Immutable ledger entry. Positive amounts are inflows."""

    id: str
    date: datetime
    type: TransactionType
    amount: Decimal
    description: str
    account_id: str
    reference_id: str | None = None
    job_id: str | None = None
    customer_id: str | None = None
    payment_method: PaymentMethod | None = None
    vendor: str | None = None
    expense_category: str | None = None


@dataclass
class BankAccount:
    """Cash or bank account. Its balance is always derived from the ledger."""

    id: str
    name: str
    type: AccountType
    account_number: str
    currency: str = "ZAR"
    bank_name: str | None = None


@dataclass
class Customer:
    id: str
    name: str
    email: str = ""
    phone: str = ""
    address: str = ""
    notes: str = ""


@dataclass
class InvoiceItem:
    """A document line; ``total`` is always quantity times unit price."""

    description: str
    quantity: int
    unit_price: Decimal
    product_id: str | None = None
    id: str = ""

    @property
    def total(self) -> Decimal:
        return to_money(self.unit_price) * self.quantity


@dataclass
class Invoice:
    id: str
    customer_id: str | None
    customer_name: str
    customer_email: str
    date: date
    due_date: date
    items: list[InvoiceItem]
    subtotal: Decimal
    tax: Decimal
    total: Decimal
    status: InvoiceStatus
    tax_rate: Decimal
    notes: str | None = None


@dataclass
class RecurringInvoiceTemplate:
    id: str
    customer_id: str
    customer_name: str
    customer_email: str
    items: list[InvoiceItem]
    interval: RecurrenceInterval
    next_due_date: date
    active: bool = True


@dataclass(frozen=True)
class JobCost:
    id: str
    description: str
    amount: Decimal
    category: JobCostCategory
    date: datetime


@dataclass
class Job:
    """A quoted production job tracked from quote to close.

    ``balance_due`` always equals ``quote_total - deposit_paid``.
    """

    id: str
    client_id: str
    client_name: str
    title: str
    description: str
    status: JobStatus
    quote_total: Decimal
    deposit_required: Decimal
    start_date: date
    deposit_paid: Decimal = ZERO
    balance_due: Decimal = ZERO
    costs: list[JobCost] = field(default_factory=list)
    items: list[InvoiceItem] | None = None
    deadline: date | None = None
    notes: str | None = None
    last_reminder_date: datetime | None = None

    @property
    def total_costs(self) -> Decimal:
        return sum((cost.amount for cost in self.costs), ZERO)


@dataclass
class CartItem:
    """A product snapshot plus the quantity being sold."""

    product: Product
    quantity: int

    @property
    def line_total(self) -> Decimal:
        return to_money(self.product.price) * self.quantity


@dataclass
class HeldSale:
    id: str
    items: list[CartItem]
    customer: Customer | None
    date: datetime
    note: str


# ---------------------------------------------------------------------------
# Patches
# ---------------------------------------------------------------------------
# Each patch names the fields that may be edited on an entity. ``None`` means
# "leave unchanged". Derived fields (totals, balances, status) are never
# patchable; engines recompute them after merging.


@dataclass(frozen=True)
class ProductPatch:
    name: str | None = None
    category: str | None = None
    price: Decimal | None = None
    cost: Decimal | None = None
    stock: int | None = None
    unit: str | None = None


@dataclass(frozen=True)
class CustomerPatch:
    name: str | None = None
    email: str | None = None
    phone: str | None = None
    address: str | None = None
    notes: str | None = None


@dataclass(frozen=True)
class InvoicePatch:
    customer_id: str | None = None
    due_date: date | None = None
    items: list[InvoiceItem] | None = None
    notes: str | None = None


@dataclass(frozen=True)
class TemplatePatch:
    items: list[InvoiceItem] | None = None
    interval: RecurrenceInterval | None = None
    next_due_date: date | None = None


@dataclass(frozen=True)
class JobPatch:
    title: str | None = None
    description: str | None = None
    deadline: date | None = None
    notes: str | None = None


EntityT = TypeVar("EntityT")


def merge(entity: EntityT, patch: Any) -> EntityT:
    """Return a copy of ``entity`` with every non-None patch field applied."""
    changes = {
        f.name: getattr(patch, f.name)
        for f in fields(patch)
        if getattr(patch, f.name) is not None
    }
    return replace(entity, **changes)  # type: ignore[type-var]
