"""Load the opening books (catalog, customers, accounts, jobs) from YAML."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import UTC, date, datetime, time
from decimal import Decimal, InvalidOperation
from functools import lru_cache
from pathlib import Path
from typing import Any

import yaml  # type: ignore[import-untyped]

from shopbooks.models import (
    AccountType,
    BankAccount,
    Customer,
    Invoice,
    InvoiceItem,
    InvoiceStatus,
    Job,
    JobCost,
    JobCostCategory,
    JobStatus,
    PaymentMethod,
    Product,
    TransactionType,
    to_money,
)

SEED_PATH = Path(__file__).resolve().parent / "seed.yaml"


@dataclass(frozen=True)
class OpeningEntry:
    """A ledger entry that predates the session."""

    date: date
    type: TransactionType
    amount: Decimal
    description: str
    account_id: str
    payment_method: PaymentMethod | None = None


@dataclass(frozen=True)
class SeedData:
    business_name: str
    business_details: dict[str, str]
    bank_accounts: tuple[BankAccount, ...]
    products: tuple[Product, ...]
    customers: tuple[Customer, ...]
    opening_transactions: tuple[OpeningEntry, ...]
    invoices: tuple[Invoice, ...]
    jobs: tuple[Job, ...]


def _money(value: Any, label: str, path_name: str) -> Decimal:
    try:
        return to_money(value)
    except (TypeError, InvalidOperation) as exc:
        raise ValueError(f"{path_name}: {label} must be numeric") from exc


def _date(value: Any, label: str, path_name: str) -> date:
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    try:
        return date.fromisoformat(str(value))
    except ValueError as exc:
        raise ValueError(f"{path_name}: {label} must be an ISO date") from exc


def _enum(enum_cls: Any, value: Any, label: str, path_name: str) -> Any:
    try:
        return enum_cls(value)
    except ValueError as exc:
        raise ValueError(f"{path_name}: {label} has unknown value {value!r}") from exc


def _entries(data: dict[str, Any], key: str, path_name: str) -> list[dict[str, Any]]:
    items = data.get(key) or []
    if not isinstance(items, list):
        raise ValueError(f"{path_name}: {key} must be a list")
    for idx, item in enumerate(items):
        if not isinstance(item, dict):
            raise ValueError(f"{path_name}: {key}[{idx}] must be a mapping")
        if key != "opening_transactions" and not item.get("id"):
            raise ValueError(f"{path_name}: {key}[{idx}] missing id")
    return items


def _items(raw_items: Any, label: str, path_name: str) -> list[InvoiceItem]:
    if not isinstance(raw_items, list):
        raise ValueError(f"{path_name}: {label}.items must be a list")
    items = []
    for idx, raw in enumerate(raw_items):
        try:
            quantity = int(raw["quantity"])
            description = str(raw["description"])
        except (KeyError, TypeError, ValueError) as exc:
            raise ValueError(
                f"{path_name}: {label}.items[{idx}] needs description and quantity"
            ) from exc
        items.append(
            InvoiceItem(
                description=description,
                quantity=quantity,
                unit_price=_money(raw.get("unit_price"), f"{label}.items[{idx}].unit_price", path_name),
                product_id=str(raw["product_id"]) if raw.get("product_id") else None,
                id=str(raw.get("id", "")),
            )
        )
    return items


def parse_seed(data: Any, path_name: str) -> SeedData:
    """Validate a parsed seed document and build model objects from it."""
    if not isinstance(data, dict):
        raise ValueError(f"{path_name}: seed file must be a mapping")

    business = data.get("business") or {}
    if not isinstance(business, dict):
        raise ValueError(f"{path_name}: business must be a mapping")

    accounts = tuple(
        BankAccount(
            id=str(raw["id"]),
            name=str(raw.get("name", raw["id"])),
            type=_enum(AccountType, raw.get("type", "OTHER"), f"bank_accounts[{idx}].type", path_name),
            account_number=str(raw.get("account_number", "")),
            currency=str(raw.get("currency", "ZAR")),
            bank_name=raw.get("bank_name"),
        )
        for idx, raw in enumerate(_entries(data, "bank_accounts", path_name))
    )

    products = tuple(
        Product(
            id=str(raw["id"]),
            name=str(raw.get("name", "")),
            category=str(raw.get("category", "")),
            price=_money(raw.get("price"), f"products[{idx}].price", path_name),
            cost=_money(raw.get("cost", 0), f"products[{idx}].cost", path_name),
            stock=int(raw.get("stock", 0)),
            unit=str(raw.get("unit", "pc")),
        )
        for idx, raw in enumerate(_entries(data, "products", path_name))
    )

    customers = tuple(
        Customer(
            id=str(raw["id"]),
            name=str(raw.get("name", "")),
            email=str(raw.get("email", "")),
            phone=str(raw.get("phone", "")),
            address=str(raw.get("address", "")),
            notes=str(raw.get("notes", "")),
        )
        for raw in _entries(data, "customers", path_name)
    )
    customers_by_id = {c.id: c for c in customers}

    opening = []
    for idx, raw in enumerate(_entries(data, "opening_transactions", path_name)):
        label = f"opening_transactions[{idx}]"
        method = raw.get("payment_method")
        opening.append(
            OpeningEntry(
                date=_date(raw.get("date"), f"{label}.date", path_name),
                type=_enum(TransactionType, raw.get("type"), f"{label}.type", path_name),
                amount=_money(raw.get("amount"), f"{label}.amount", path_name),
                description=str(raw.get("description", "")),
                account_id=str(raw.get("account_id", "")),
                payment_method=(
                    _enum(PaymentMethod, method, f"{label}.payment_method", path_name)
                    if method
                    else None
                ),
            )
        )

    invoices = []
    for idx, raw in enumerate(_entries(data, "invoices", path_name)):
        label = f"invoices[{idx}]"
        customer = customers_by_id.get(str(raw.get("customer_id")))
        if customer is None:
            raise ValueError(f"{path_name}: {label} references unknown customer")
        items = _items(raw.get("items"), label, path_name)
        tax_rate = Decimal(str(raw.get("tax_rate", "0.15")))
        subtotal = to_money(sum(item.total for item in items))
        tax = to_money(subtotal * tax_rate)
        invoices.append(
            Invoice(
                id=str(raw["id"]),
                customer_id=customer.id,
                customer_name=customer.name,
                customer_email=customer.email,
                date=_date(raw.get("date"), f"{label}.date", path_name),
                due_date=_date(raw.get("due_date"), f"{label}.due_date", path_name),
                items=items,
                subtotal=subtotal,
                tax=tax,
                total=subtotal + tax,
                status=_enum(InvoiceStatus, raw.get("status", "DRAFT"), f"{label}.status", path_name),
                tax_rate=tax_rate,
                notes=raw.get("notes"),
            )
        )

    jobs = []
    for idx, raw in enumerate(_entries(data, "jobs", path_name)):
        label = f"jobs[{idx}]"
        client = customers_by_id.get(str(raw.get("client_id")))
        if client is None:
            raise ValueError(f"{path_name}: {label} references unknown client")
        quote_total = _money(raw.get("quote_total"), f"{label}.quote_total", path_name)
        deposit_paid = _money(raw.get("deposit_paid", 0), f"{label}.deposit_paid", path_name)
        costs = [
            JobCost(
                id=str(cost["id"]),
                description=str(cost.get("description", "")),
                amount=_money(cost.get("amount"), f"{label}.costs[{c_idx}].amount", path_name),
                category=_enum(
                    JobCostCategory, cost.get("category"), f"{label}.costs[{c_idx}].category", path_name
                ),
                date=datetime.combine(
                    _date(cost.get("date"), f"{label}.costs[{c_idx}].date", path_name),
                    time.min,
                    tzinfo=UTC,
                ),
            )
            for c_idx, cost in enumerate(raw.get("costs") or [])
        ]
        jobs.append(
            Job(
                id=str(raw["id"]),
                client_id=client.id,
                client_name=client.name,
                title=str(raw.get("title", "")),
                description=str(raw.get("description", "")),
                status=_enum(JobStatus, raw.get("status", "QUOTE"), f"{label}.status", path_name),
                quote_total=quote_total,
                deposit_required=_money(
                    raw.get("deposit_required", 0), f"{label}.deposit_required", path_name
                ),
                start_date=_date(raw.get("start_date"), f"{label}.start_date", path_name),
                deposit_paid=deposit_paid,
                balance_due=quote_total - deposit_paid,
                costs=costs,
                items=_items(raw["items"], label, path_name) if raw.get("items") else None,
                deadline=(
                    _date(raw["deadline"], f"{label}.deadline", path_name)
                    if raw.get("deadline")
                    else None
                ),
                notes=raw.get("notes"),
            )
        )

    return SeedData(
        business_name=str(business.get("name", "")),
        business_details={str(k): str(v) for k, v in business.items()},
        bank_accounts=accounts,
        products=products,
        customers=customers,
        opening_transactions=tuple(opening),
        invoices=tuple(invoices),
        jobs=tuple(jobs),
    )


@lru_cache
def load_seed_data(path: Path = SEED_PATH) -> SeedData:
    """Load and validate the seed file (the bundled one by default)."""
    raw = path.read_text(encoding="utf-8")
    data = yaml.safe_load(raw)
    if data is None:
        raise ValueError(f"{path.name}: seed file is empty")
    return parse_seed(data, path.name)
