"""Domain events recorded by the ledger store.

Events are an in-memory audit trail for the presentation layer. Reminders
in particular are only ever logged here; nothing is delivered.
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from decimal import Decimal
from enum import Enum
from typing import Any
from uuid import UUID, uuid4


class EventType(str, Enum):
    """Types of events emitted by ledger operations."""

    # Ledger
    TRANSACTION_POSTED = "transaction.posted"

    # Inventory
    STOCK_LOW = "stock.low"

    # Point of sale
    SALE_COMPLETED = "sale.completed"
    SALE_PARKED = "sale.parked"

    # Invoicing
    INVOICE_ISSUED = "invoice.issued"
    INVOICE_PAID = "invoice.paid"
    RECURRING_INVOICE_GENERATED = "recurring.invoice_generated"

    # Jobs
    JOB_STATUS_CHANGED = "job.status_changed"
    JOB_DEPOSIT_REQUESTED = "job.deposit_requested"
    JOB_REMINDER_SENT = "job.reminder_sent"


@dataclass
class LedgerEvent:
    """Base event structure for all ledger events."""

    event_type: EventType
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    event_id: UUID = field(default_factory=uuid4)
    data: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        """Serialize event to a JSON-friendly dictionary."""
        return {
            "id": str(self.event_id),
            "type": self.event_type.value,
            "timestamp": self.timestamp.isoformat(),
            "data": self.data,
        }


# Factory functions for creating events


def transaction_posted(
    timestamp: datetime,
    transaction_id: str,
    transaction_type: str,
    amount: Decimal,
    account_id: str,
) -> LedgerEvent:
    return LedgerEvent(
        event_type=EventType.TRANSACTION_POSTED,
        timestamp=timestamp,
        data={
            "transaction_id": transaction_id,
            "type": transaction_type,
            "amount": str(amount),
            "account_id": account_id,
        },
    )


def stock_low(
    timestamp: datetime, product_id: str, product_name: str, stock: int
) -> LedgerEvent:
    """Create an event for a product that dropped under the alert threshold."""
    return LedgerEvent(
        event_type=EventType.STOCK_LOW,
        timestamp=timestamp,
        data={"product_id": product_id, "name": product_name, "stock": stock},
    )


def sale_completed(
    timestamp: datetime, transaction_id: str, total: Decimal, method: str
) -> LedgerEvent:
    return LedgerEvent(
        event_type=EventType.SALE_COMPLETED,
        timestamp=timestamp,
        data={"transaction_id": transaction_id, "total": str(total), "method": method},
    )


def sale_parked(timestamp: datetime, held_sale_id: str, line_count: int) -> LedgerEvent:
    return LedgerEvent(
        event_type=EventType.SALE_PARKED,
        timestamp=timestamp,
        data={"held_sale_id": held_sale_id, "lines": line_count},
    )


def invoice_issued(
    timestamp: datetime, invoice_id: str, customer_name: str, total: Decimal
) -> LedgerEvent:
    return LedgerEvent(
        event_type=EventType.INVOICE_ISSUED,
        timestamp=timestamp,
        data={"invoice_id": invoice_id, "customer": customer_name, "total": str(total)},
    )


def invoice_paid(timestamp: datetime, invoice_id: str, total: Decimal) -> LedgerEvent:
    return LedgerEvent(
        event_type=EventType.INVOICE_PAID,
        timestamp=timestamp,
        data={"invoice_id": invoice_id, "total": str(total)},
    )


def recurring_invoice_generated(
    timestamp: datetime, template_id: str, invoice_id: str, next_due_date: str
) -> LedgerEvent:
    return LedgerEvent(
        event_type=EventType.RECURRING_INVOICE_GENERATED,
        timestamp=timestamp,
        data={
            "template_id": template_id,
            "invoice_id": invoice_id,
            "next_due_date": next_due_date,
        },
    )


def job_status_changed(
    timestamp: datetime, job_id: str, from_status: str, to_status: str
) -> LedgerEvent:
    return LedgerEvent(
        event_type=EventType.JOB_STATUS_CHANGED,
        timestamp=timestamp,
        data={"job_id": job_id, "from": from_status, "to": to_status},
    )


def job_deposit_requested(
    timestamp: datetime, job_id: str, client_name: str, amount: Decimal
) -> LedgerEvent:
    """Create a deposit request event (simulated client email)."""
    return LedgerEvent(
        event_type=EventType.JOB_DEPOSIT_REQUESTED,
        timestamp=timestamp,
        data={"job_id": job_id, "client": client_name, "amount": str(amount)},
    )


def job_reminder_sent(
    timestamp: datetime,
    job_id: str,
    client_name: str,
    reminder_kind: str,
    amount_due: Decimal,
    automatic: bool,
) -> LedgerEvent:
    """Create a payment reminder event.

    ``reminder_kind`` is ``"Deposit"`` or ``"Balance"``.
    """
    return LedgerEvent(
        event_type=EventType.JOB_REMINDER_SENT,
        timestamp=timestamp,
        data={
            "job_id": job_id,
            "client": client_name,
            "kind": reminder_kind,
            "amount_due": str(amount_due),
            "automatic": automatic,
        },
    )
