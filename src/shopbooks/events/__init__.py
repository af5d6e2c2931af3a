"""Domain event definitions for shopbooks."""

from shopbooks.events.types import (
    EventType,
    LedgerEvent,
    invoice_issued,
    invoice_paid,
    job_deposit_requested,
    job_reminder_sent,
    job_status_changed,
    recurring_invoice_generated,
    sale_completed,
    sale_parked,
    stock_low,
    transaction_posted,
)

__all__ = [
    "EventType",
    "LedgerEvent",
    "invoice_issued",
    "invoice_paid",
    "job_deposit_requested",
    "job_reminder_sent",
    "job_status_changed",
    "recurring_invoice_generated",
    "sale_completed",
    "sale_parked",
    "stock_low",
    "transaction_posted",
]
