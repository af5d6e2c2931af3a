"""In-memory ledger store.

The store owns every entity table plus the append-only transaction log and
is the only place state lives. Engines mutate it exclusively inside
``atomic()``, which serializes writers and rolls every table back if the
block raises, so cross-entity updates (stock and ledger, deposit and status,
template due date and generated invoice) land together or not at all.
"""

import copy
import re
import threading
from collections import deque
from collections.abc import Callable, Iterator
from contextlib import contextmanager
from dataclasses import dataclass, field, replace
from datetime import UTC, date, datetime
from decimal import Decimal, InvalidOperation
from typing import Any, TypeVar

import structlog

from shopbooks.config.ledger import LedgerConfig
from shopbooks.errors import InvariantViolation, NotFound, ValidationError
from shopbooks.events import LedgerEvent, transaction_posted
from shopbooks.models import (
    ZERO,
    AccountType,
    BankAccount,
    Customer,
    CustomerPatch,
    HeldSale,
    Invoice,
    Job,
    PaymentMethod,
    Product,
    ProductPatch,
    RecurringInvoiceTemplate,
    Transaction,
    TransactionType,
    merge,
    to_money,
)

logger = structlog.get_logger(__name__)

EVENT_BUFFER_SIZE = 500

T = TypeVar("T")


@dataclass
class _Tables:
    products: dict[str, Product] = field(default_factory=dict)
    customers: dict[str, Customer] = field(default_factory=dict)
    invoices: dict[str, Invoice] = field(default_factory=dict)
    recurring_templates: dict[str, RecurringInvoiceTemplate] = field(default_factory=dict)
    held_sales: dict[str, HeldSale] = field(default_factory=dict)
    jobs: dict[str, Job] = field(default_factory=dict)
    bank_accounts: dict[str, BankAccount] = field(default_factory=dict)
    # Newest first
    transactions: list[Transaction] = field(default_factory=list)
    sequences: dict[str, int] = field(default_factory=dict)
    events: deque[LedgerEvent] = field(
        default_factory=lambda: deque(maxlen=EVENT_BUFFER_SIZE)
    )


class LedgerStore:
    """Single source of truth for products, documents, jobs and the ledger.

    Usage:
        store = LedgerStore(config)
        with store.atomic():
            store.post(TransactionType.EXPENSE, Decimal("-50"), "Fuel", "acc_2")

        store.balance("acc_2")
    """

    def __init__(
        self,
        config: LedgerConfig | None = None,
        clock: Callable[[], datetime] | None = None,
    ):
        self.config = config or LedgerConfig.from_settings()
        self._clock = clock or (lambda: datetime.now(UTC))
        self._lock = threading.RLock()
        self._depth = 0
        self._owner: int | None = None
        self._tables = _Tables()
        self._logger = logger.bind(component="ledger_store")

    # === Time ===

    def now(self) -> datetime:
        return self._clock()

    def today(self) -> date:
        return self._clock().date()

    # === Atomicity ===

    @contextmanager
    def atomic(self) -> Iterator["LedgerStore"]:
        """Serialize a mutation and roll back every table if it raises.

        Nested blocks join the outermost one; only the outermost block takes
        a snapshot.
        """
        with self._lock:
            outermost = self._depth == 0
            snapshot = copy.deepcopy(self._tables) if outermost else None
            if outermost:
                self._owner = threading.get_ident()
            self._depth += 1
            try:
                yield self
            except BaseException:
                if snapshot is not None:
                    self._tables = snapshot
                    self._logger.debug("atomic_block_rolled_back")
                raise
            finally:
                self._depth -= 1
                if outermost:
                    self._owner = None

    def _require_writer(self) -> None:
        if self._depth == 0 or self._owner != threading.get_ident():
            raise InvariantViolation("Ledger mutation attempted outside an atomic block")

    def next_id(self, prefix: str, width: int = 6) -> str:
        """Allocate the next sequential id for ``prefix`` (e.g. ``INV-000001``)."""
        self._require_writer()
        value = self._tables.sequences.get(prefix, 0) + 1
        self._tables.sequences[prefix] = value
        return f"{prefix}-{value:0{width}d}"

    def claim_id(self, prefix: str, identifier: str) -> None:
        """Move the ``prefix`` sequence past a caller-supplied id such as ``INV-000007``.

        Ids outside the ``<prefix>-<digits>`` form leave the sequence alone.
        """
        self._require_writer()
        match = re.fullmatch(rf"{re.escape(prefix)}-(\d+)", identifier)
        if match is None:
            return
        claimed = int(match.group(1))
        if claimed > self._tables.sequences.get(prefix, 0):
            self._tables.sequences[prefix] = claimed

    # === Events ===

    def emit(self, event: LedgerEvent) -> None:
        self._require_writer()
        self._tables.events.append(event)

    def events(self) -> tuple[LedgerEvent, ...]:
        """Recorded events, oldest first."""
        with self._lock:
            return tuple(copy.deepcopy(list(self._tables.events)))

    # === Ledger ===

    def post(
        self,
        transaction_type: TransactionType,
        amount: Decimal,
        description: str,
        account_id: str,
        *,
        when: datetime | None = None,
        reference_id: str | None = None,
        job_id: str | None = None,
        customer_id: str | None = None,
        payment_method: PaymentMethod | None = None,
        vendor: str | None = None,
        expense_category: str | None = None,
    ) -> Transaction:
        """Append one immutable transaction to the ledger."""
        self._require_writer()
        if account_id not in self._tables.bank_accounts:
            raise NotFound("BankAccount", account_id)

        transaction = Transaction(
            id=self.next_id("TX"),
            date=when or self.now(),
            type=transaction_type,
            amount=to_money(amount),
            description=description,
            account_id=account_id,
            reference_id=reference_id,
            job_id=job_id,
            customer_id=customer_id,
            payment_method=payment_method,
            vendor=vendor,
            expense_category=expense_category,
        )
        self._tables.transactions.insert(0, transaction)
        self.emit(
            transaction_posted(
                transaction.date,
                transaction.id,
                transaction.type.value,
                transaction.amount,
                account_id,
            )
        )
        self._logger.info(
            "transaction_posted",
            transaction_id=transaction.id,
            type=transaction.type.value,
            amount=str(transaction.amount),
            account_id=account_id,
        )
        return transaction

    def balance(self, account_id: str, as_of: date | None = None) -> Decimal:
        """Sum of ledger amounts for an account dated on or before ``as_of``."""
        with self._lock:
            if account_id not in self._tables.bank_accounts:
                raise NotFound("BankAccount", account_id)
            return sum(
                (
                    tx.amount
                    for tx in self._tables.transactions
                    if tx.account_id == account_id
                    and (as_of is None or tx.date.date() <= as_of)
                ),
                ZERO,
            )

    def record_expense(
        self,
        amount: Decimal,
        category: str,
        account_id: str,
        *,
        vendor: str | None = None,
        reference: str | None = None,
        customer_id: str | None = None,
        when: datetime | None = None,
    ) -> Transaction:
        """Post a manual expense paid through ``account_id``."""
        amount = to_money(amount)
        if amount <= 0:
            raise ValidationError("Expense amount must be positive", {"amount": str(amount)})
        if not category:
            raise ValidationError("Expense category is required")

        with self.atomic():
            if customer_id is not None:
                self._get(self._tables.customers, "Customer", customer_id)
            return self.post(
                TransactionType.EXPENSE,
                -amount,
                f"{category} - {vendor or 'Unknown Vendor'}",
                account_id,
                when=when,
                reference_id=reference,
                customer_id=customer_id,
                vendor=vendor,
                expense_category=category,
            )

    # === Catalog ===

    def add_product(self, product: Product) -> Product:
        if not product.id or not product.name:
            raise ValidationError("Product id and name are required")
        product = self._priced(product)
        self._validate_product(product)
        with self.atomic():
            if product.id in self._tables.products:
                raise ValidationError(f"Product {product.id!r} already exists")
            self._tables.products[product.id] = copy.deepcopy(product)
        self._logger.info("product_added", product_id=product.id, name=product.name)
        return copy.deepcopy(product)

    def update_product(self, product_id: str, patch: ProductPatch) -> Product:
        with self.atomic():
            current = self._get(self._tables.products, "Product", product_id)
            updated = self._priced(merge(current, patch))
            self._validate_product(updated)
            self._tables.products[product_id] = updated
        self._logger.info("product_updated", product_id=product_id)
        return copy.deepcopy(updated)

    def delete_product(self, product_id: str) -> None:
        with self.atomic():
            self._get(self._tables.products, "Product", product_id)
            referencing = [
                template.id
                for template in self._tables.recurring_templates.values()
                if any(item.product_id == product_id for item in template.items)
            ]
            if referencing:
                raise ValidationError(
                    f"Product {product_id!r} is billed by recurring templates",
                    {"product_id": product_id, "template_ids": referencing},
                )
            del self._tables.products[product_id]
        self._logger.info("product_deleted", product_id=product_id)

    @staticmethod
    def _priced(product: Product) -> Product:
        try:
            return replace(
                product, price=to_money(product.price), cost=to_money(product.cost)
            )
        except (TypeError, InvalidOperation):
            raise ValidationError(
                "Product price and cost must be numeric", {"product_id": product.id}
            ) from None

    def _validate_product(self, product: Product) -> None:
        if product.price < 0 or product.cost < 0:
            raise ValidationError(
                "Product price and cost must be non-negative",
                {"product_id": product.id},
            )
        if not self.config.allow_negative_stock and product.stock < 0:
            raise ValidationError(
                "Negative stock is not allowed", {"product_id": product.id}
            )

    # === Customers ===

    def add_customer(self, customer: Customer) -> Customer:
        if not customer.id or not customer.name.strip():
            raise ValidationError("Customer id and name are required")
        with self.atomic():
            if customer.id in self._tables.customers:
                raise ValidationError(f"Customer {customer.id!r} already exists")
            self._tables.customers[customer.id] = copy.deepcopy(customer)
        self._logger.info("customer_added", customer_id=customer.id)
        return copy.deepcopy(customer)

    def update_customer(self, customer_id: str, patch: CustomerPatch) -> Customer:
        if patch.name is not None and not patch.name.strip():
            raise ValidationError("Customer name cannot be blank")
        with self.atomic():
            current = self._get(self._tables.customers, "Customer", customer_id)
            updated = merge(current, patch)
            self._tables.customers[customer_id] = updated
        self._logger.info("customer_updated", customer_id=customer_id)
        return copy.deepcopy(updated)

    # === Bank accounts ===

    def add_bank_account(self, account: BankAccount) -> BankAccount:
        if not account.id or not account.name:
            raise ValidationError("Bank account id and name are required")
        if account.currency != self.config.currency:
            raise ValidationError(
                f"Account currency {account.currency} differs from ledger currency "
                f"{self.config.currency}"
            )
        with self.atomic():
            if account.id in self._tables.bank_accounts:
                raise ValidationError(f"Bank account {account.id!r} already exists")
            self._tables.bank_accounts[account.id] = copy.deepcopy(account)
        self._logger.info(
            "bank_account_added", account_id=account.id, type=account.type.value
        )
        return copy.deepcopy(account)

    def accounts_of_type(self, account_type: AccountType) -> tuple[BankAccount, ...]:
        return tuple(a for a in self.bank_accounts() if a.type == account_type)

    # === Read accessors (copies; mutation goes through operations) ===

    def products(self) -> tuple[Product, ...]:
        return self._snapshot(self._tables.products.values())

    def customers(self) -> tuple[Customer, ...]:
        return self._snapshot(self._tables.customers.values())

    def invoices(self) -> tuple[Invoice, ...]:
        """Invoices, newest first."""
        return self._snapshot(reversed(self._tables.invoices.values()))

    def recurring_templates(self) -> tuple[RecurringInvoiceTemplate, ...]:
        return self._snapshot(self._tables.recurring_templates.values())

    def held_sales(self) -> tuple[HeldSale, ...]:
        return self._snapshot(self._tables.held_sales.values())

    def jobs(self) -> tuple[Job, ...]:
        """Jobs, newest first."""
        return self._snapshot(reversed(self._tables.jobs.values()))

    def bank_accounts(self) -> tuple[BankAccount, ...]:
        return self._snapshot(self._tables.bank_accounts.values())

    def transactions(self) -> tuple[Transaction, ...]:
        """Ledger entries, newest first."""
        with self._lock:
            return tuple(self._tables.transactions)

    def get_product(self, product_id: str) -> Product:
        return self._copy_of(self._tables.products, "Product", product_id)

    def get_customer(self, customer_id: str) -> Customer:
        return self._copy_of(self._tables.customers, "Customer", customer_id)

    def get_invoice(self, invoice_id: str) -> Invoice:
        return self._copy_of(self._tables.invoices, "Invoice", invoice_id)

    def get_template(self, template_id: str) -> RecurringInvoiceTemplate:
        return self._copy_of(
            self._tables.recurring_templates, "RecurringInvoiceTemplate", template_id
        )

    def get_held_sale(self, held_sale_id: str) -> HeldSale:
        return self._copy_of(self._tables.held_sales, "HeldSale", held_sale_id)

    def get_job(self, job_id: str) -> Job:
        return self._copy_of(self._tables.jobs, "Job", job_id)

    # === Live handles for engines (writer only) ===

    def product_for_update(self, product_id: str) -> Product:
        self._require_writer()
        return self._get(self._tables.products, "Product", product_id)

    def invoice_for_update(self, invoice_id: str) -> Invoice:
        self._require_writer()
        return self._get(self._tables.invoices, "Invoice", invoice_id)

    def template_for_update(self, template_id: str) -> RecurringInvoiceTemplate:
        self._require_writer()
        return self._get(
            self._tables.recurring_templates, "RecurringInvoiceTemplate", template_id
        )

    def job_for_update(self, job_id: str) -> Job:
        self._require_writer()
        return self._get(self._tables.jobs, "Job", job_id)

    def insert_invoice(self, invoice: Invoice) -> None:
        self._insert(self._tables.invoices, "Invoice", invoice.id, invoice)

    def insert_template(self, template: RecurringInvoiceTemplate) -> None:
        self._insert(
            self._tables.recurring_templates,
            "RecurringInvoiceTemplate",
            template.id,
            template,
        )

    def insert_job(self, job: Job) -> None:
        self._insert(self._tables.jobs, "Job", job.id, job)

    def insert_held_sale(self, held_sale: HeldSale) -> None:
        self._insert(self._tables.held_sales, "HeldSale", held_sale.id, held_sale)

    def remove_held_sale(self, held_sale_id: str) -> HeldSale:
        self._require_writer()
        held = self._get(self._tables.held_sales, "HeldSale", held_sale_id)
        del self._tables.held_sales[held_sale_id]
        return held

    def live_templates(self) -> list[RecurringInvoiceTemplate]:
        self._require_writer()
        return list(self._tables.recurring_templates.values())

    def live_jobs(self) -> list[Job]:
        self._require_writer()
        return list(self._tables.jobs.values())

    # === Lifecycle ===

    def reset(self) -> None:
        """Drop every table and the ledger."""
        with self._lock:
            self._tables = _Tables()
        self._logger.info("store_reset")

    # === Helpers ===

    def _insert(self, table: dict[str, Any], entity: str, entity_id: str, value: Any) -> None:
        self._require_writer()
        if entity_id in table:
            raise ValidationError(f"{entity} {entity_id!r} already exists")
        table[entity_id] = value

    @staticmethod
    def _get(table: dict[str, T], entity: str, entity_id: str) -> T:
        try:
            return table[entity_id]
        except KeyError:
            raise NotFound(entity, entity_id) from None

    def _copy_of(self, table: dict[str, T], entity: str, entity_id: str) -> T:
        with self._lock:
            return copy.deepcopy(self._get(table, entity, entity_id))

    def _snapshot(self, values: Any) -> tuple[Any, ...]:
        with self._lock:
            return tuple(copy.deepcopy(list(values)))
