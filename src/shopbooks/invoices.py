"""Invoice totals, issuance, status transitions and payment posting."""

import copy
from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal

import structlog

from shopbooks.errors import InvalidTransition, ValidationError
from shopbooks.events import invoice_issued, invoice_paid
from shopbooks.inventory import InventoryController
from shopbooks.models import (
    ZERO,
    Invoice,
    InvoiceItem,
    InvoicePatch,
    InvoiceStatus,
    Transaction,
    TransactionType,
    merge,
    to_money,
)
from shopbooks.store import LedgerStore

logger = structlog.get_logger(__name__)

INVOICE_TAX_RATE = Decimal("0.15")


@dataclass(frozen=True)
class DocumentTotals:
    subtotal: Decimal
    tax: Decimal
    total: Decimal


def compute_totals(
    items: list[InvoiceItem], tax_rate: Decimal = INVOICE_TAX_RATE
) -> DocumentTotals:
    """Subtotal, tax and total for a list of document lines."""
    subtotal = to_money(sum((item.total for item in items), ZERO))
    tax = to_money(subtotal * tax_rate)
    return DocumentTotals(subtotal=subtotal, tax=tax, total=subtotal + tax)


@dataclass
class InvoiceDraft:
    """Unsaved invoice input. Totals are never supplied by the caller."""

    customer_id: str | None
    items: list[InvoiceItem] = field(default_factory=list)
    issue_date: date | None = None
    due_date: date | None = None
    notes: str | None = None
    invoice_id: str | None = None


def validate_items(items: list[InvoiceItem]) -> None:
    if not items:
        raise ValidationError("At least one line item is required")
    for item in items:
        if not item.description:
            raise ValidationError("Line item description is required")
        if item.quantity <= 0:
            raise ValidationError(
                "Line item quantity must be positive",
                {"description": item.description, "quantity": item.quantity},
            )
        if item.unit_price < 0:
            raise ValidationError(
                "Line item unit price cannot be negative",
                {"description": item.description},
            )


class InvoiceEngine:
    """Creates invoices and moves them through DRAFT -> SENT -> OVERDUE -> PAID.

    Issuing (or sending a saved draft) deducts stock for every line linked
    to a non-service product. Payment is a separate step that posts one
    INVOICE_PAYMENT transaction. Nothing moves an invoice out of PAID and
    OVERDUE is only ever set explicitly.
    """

    def __init__(self, store: LedgerStore, inventory: InventoryController):
        self._store = store
        self._inventory = inventory
        self._logger = logger.bind(component="invoices")

    def compute_totals(self, items: list[InvoiceItem]) -> DocumentTotals:
        return compute_totals(items, self._store.config.invoice_tax_rate)

    # === Creation ===

    def save_draft(self, draft: InvoiceDraft) -> Invoice:
        """Store a DRAFT invoice. Drafts have no stock or ledger effect."""
        with self._store.atomic():
            invoice = self._build(
                draft, InvoiceStatus.DRAFT, self._store.config.invoice_tax_rate, "INV"
            )
            self._store.insert_invoice(invoice)
        self._logger.info("invoice_draft_saved", invoice_id=invoice.id)
        return copy.deepcopy(invoice)

    def issue(
        self,
        draft: InvoiceDraft,
        *,
        tax_rate: Decimal | None = None,
        id_prefix: str = "INV",
    ) -> Invoice:
        """Create a SENT invoice and deduct stock for its linked products.

        Raises:
            ValidationError: No customer attached, no items, or bad lines.
            NotFound: Unknown customer or linked product.
        """
        rate = self._store.config.invoice_tax_rate if tax_rate is None else tax_rate
        with self._store.atomic():
            invoice = self._build(draft, InvoiceStatus.SENT, rate, id_prefix)
            self._store.insert_invoice(invoice)
            self._deduct_stock(invoice)
            self._store.emit(
                invoice_issued(
                    self._store.now(), invoice.id, invoice.customer_name, invoice.total
                )
            )
        self._logger.info(
            "invoice_issued",
            invoice_id=invoice.id,
            customer=invoice.customer_name,
            total=str(invoice.total),
        )
        return copy.deepcopy(invoice)

    def send(self, invoice_id: str) -> Invoice:
        """Issue a saved draft: DRAFT -> SENT with stock deduction."""
        with self._store.atomic():
            invoice = self._store.invoice_for_update(invoice_id)
            if invoice.status is not InvoiceStatus.DRAFT:
                raise InvalidTransition("send", invoice.status.value, "only drafts can be sent")
            invoice.status = InvoiceStatus.SENT
            self._deduct_stock(invoice)
            self._store.emit(
                invoice_issued(
                    self._store.now(), invoice.id, invoice.customer_name, invoice.total
                )
            )
        self._logger.info("invoice_issued", invoice_id=invoice_id, total=str(invoice.total))
        return copy.deepcopy(invoice)

    def update_draft(self, invoice_id: str, patch: InvoicePatch) -> Invoice:
        """Edit a draft and recompute its totals from the (possibly new) items."""
        with self._store.atomic():
            invoice = self._store.invoice_for_update(invoice_id)
            if invoice.status is not InvoiceStatus.DRAFT:
                raise InvalidTransition(
                    "edit", invoice.status.value, "only drafts can be edited"
                )
            updated = merge(invoice, patch)
            validate_items(updated.items)
            if patch.items is not None:
                updated.items = self._normalize_items(invoice.id, patch.items)
            if patch.customer_id is not None:
                customer = self._store.get_customer(patch.customer_id)
                updated.customer_name = customer.name
                updated.customer_email = customer.email
            self._apply_totals(updated)
            if updated.due_date < updated.date:
                raise ValidationError("Due date cannot precede the issue date")
            # Replace field by field so the stored object keeps its identity
            for name, value in vars(updated).items():
                setattr(invoice, name, value)
        self._logger.info("invoice_draft_updated", invoice_id=invoice_id)
        return copy.deepcopy(invoice)

    # === Status transitions ===

    def mark_paid(self, invoice_id: str) -> Transaction:
        """Move an unpaid invoice to PAID and post the payment.

        Raises:
            InvalidTransition: The invoice is already PAID.
        """
        with self._store.atomic():
            invoice = self._store.invoice_for_update(invoice_id)
            if invoice.status is InvoiceStatus.PAID:
                self._logger.warning("invoice_already_paid", invoice_id=invoice_id)
                raise InvalidTransition(
                    "mark paid", invoice.status.value, "invoice is already paid"
                )
            invoice.status = InvoiceStatus.PAID
            transaction = self._store.post(
                TransactionType.INVOICE_PAYMENT,
                invoice.total,
                f"Payment for {invoice.id} - {invoice.customer_name}",
                self._store.config.invoice_payment_account_id,
                reference_id=invoice.id,
                customer_id=invoice.customer_id,
            )
            self._store.emit(invoice_paid(transaction.date, invoice.id, invoice.total))
        self._logger.info("invoice_paid", invoice_id=invoice_id, total=str(invoice.total))
        return transaction

    def mark_overdue(self, invoice_id: str) -> Invoice:
        """Explicitly flag a SENT invoice as OVERDUE."""
        with self._store.atomic():
            invoice = self._store.invoice_for_update(invoice_id)
            if invoice.status is not InvoiceStatus.SENT:
                raise InvalidTransition("mark overdue", invoice.status.value)
            invoice.status = InvoiceStatus.OVERDUE
        self._logger.info("invoice_marked_overdue", invoice_id=invoice_id)
        return copy.deepcopy(invoice)

    def overdue_candidates(self, as_of: date) -> tuple[Invoice, ...]:
        """SENT invoices past their due date. Read-only; nothing is flagged."""
        return tuple(
            inv
            for inv in self._store.invoices()
            if inv.status is InvoiceStatus.SENT and inv.due_date < as_of
        )

    # === Helpers ===

    def _build(
        self,
        draft: InvoiceDraft,
        status: InvoiceStatus,
        tax_rate: Decimal,
        id_prefix: str,
    ) -> Invoice:
        if not draft.customer_id:
            raise ValidationError("An invoice requires a customer")
        customer = self._store.get_customer(draft.customer_id)
        validate_items(draft.items)

        if draft.invoice_id:
            invoice_id = draft.invoice_id
            self._store.claim_id(id_prefix, invoice_id)
        else:
            invoice_id = self._store.next_id(id_prefix)
        issue_date = draft.issue_date or self._store.today()
        due_date = draft.due_date or issue_date + self._store.config.payment_terms
        if due_date < issue_date:
            raise ValidationError("Due date cannot precede the issue date")

        items = self._normalize_items(invoice_id, draft.items)
        invoice = Invoice(
            id=invoice_id,
            customer_id=customer.id,
            customer_name=customer.name,
            customer_email=customer.email,
            date=issue_date,
            due_date=due_date,
            items=items,
            subtotal=ZERO,
            tax=ZERO,
            total=ZERO,
            status=status,
            tax_rate=tax_rate,
            notes=draft.notes,
        )
        self._apply_totals(invoice)
        return invoice

    @staticmethod
    def _normalize_items(invoice_id: str, items: list[InvoiceItem]) -> list[InvoiceItem]:
        normalized = copy.deepcopy(items)
        for index, item in enumerate(normalized, start=1):
            item.unit_price = to_money(item.unit_price)
            if not item.id:
                item.id = f"{invoice_id}-{index}"
        return normalized

    @staticmethod
    def _apply_totals(invoice: Invoice) -> None:
        totals = compute_totals(invoice.items, invoice.tax_rate)
        invoice.subtotal = totals.subtotal
        invoice.tax = totals.tax
        invoice.total = totals.total

    def _deduct_stock(self, invoice: Invoice) -> None:
        for item in invoice.items:
            if item.product_id:
                self._inventory.deduct(item.product_id, item.quantity)
