"""Recurring invoice templates and the due-date scheduler."""

import calendar
import copy
from datetime import date, datetime, timedelta

import structlog

from shopbooks.errors import LedgerError, ValidationError
from shopbooks.events import recurring_invoice_generated
from shopbooks.invoices import InvoiceDraft, InvoiceEngine, validate_items
from shopbooks.models import (
    InvoiceItem,
    RecurrenceInterval,
    RecurringInvoiceTemplate,
    TemplatePatch,
    merge,
)
from shopbooks.store import LedgerStore

logger = structlog.get_logger(__name__)

RECURRING_INVOICE_NOTE = "Automatically generated recurring invoice."
RECURRING_INVOICE_PREFIX = "INV-REC"


def _add_months(current: date, months: int) -> date:
    """Shift by whole calendar months, clamping to the last day of the month."""
    month_index = current.month - 1 + months
    year = current.year + month_index // 12
    month = month_index % 12 + 1
    last_day = calendar.monthrange(year, month)[1]
    return date(year, month, min(current.day, last_day))


def advance_due_date(current: date, interval: RecurrenceInterval) -> date:
    """Next due date one interval after ``current``."""
    if interval is RecurrenceInterval.WEEKLY:
        return current + timedelta(days=7)
    if interval is RecurrenceInterval.MONTHLY:
        return _add_months(current, 1)
    return _add_months(current, 12)


class RecurringScheduler:
    """Deterministic scheduler that turns due templates into issued invoices.

    Each run advances a due template by exactly one interval measured from
    its previous due date, so a template several periods behind catches up
    one invoice per run rather than billing every missed period at once.
    """

    def __init__(self, store: LedgerStore, invoices: InvoiceEngine):
        self._store = store
        self._invoices = invoices
        self._logger = logger.bind(component="recurring_scheduler")

    # === Template management ===

    def add_template(
        self,
        customer_id: str,
        items: list[InvoiceItem],
        interval: RecurrenceInterval,
        next_due_date: date,
        active: bool = True,
    ) -> RecurringInvoiceTemplate:
        if not customer_id:
            raise ValidationError("A recurring template requires a customer")
        validate_items(items)

        with self._store.atomic():
            customer = self._store.get_customer(customer_id)
            for item in items:
                if item.product_id:
                    self._store.get_product(item.product_id)
            template = RecurringInvoiceTemplate(
                id=self._store.next_id("REC", width=4),
                customer_id=customer.id,
                customer_name=customer.name,
                customer_email=customer.email,
                items=copy.deepcopy(items),
                interval=RecurrenceInterval(interval),
                next_due_date=next_due_date,
                active=active,
            )
            self._store.insert_template(template)

        self._logger.info(
            "recurring_template_added",
            template_id=template.id,
            interval=template.interval.value,
            next_due_date=template.next_due_date.isoformat(),
        )
        return copy.deepcopy(template)

    def update_template(
        self, template_id: str, patch: TemplatePatch
    ) -> RecurringInvoiceTemplate:
        with self._store.atomic():
            template = self._store.template_for_update(template_id)
            updated = merge(template, patch)
            validate_items(updated.items)
            for item in updated.items:
                if item.product_id:
                    self._store.get_product(item.product_id)
            template.items = copy.deepcopy(updated.items)
            template.interval = RecurrenceInterval(updated.interval)
            template.next_due_date = updated.next_due_date
        self._logger.info("recurring_template_updated", template_id=template_id)
        return copy.deepcopy(template)

    def set_active(self, template_id: str, active: bool) -> RecurringInvoiceTemplate:
        with self._store.atomic():
            template = self._store.template_for_update(template_id)
            template.active = active
        self._logger.info(
            "recurring_template_toggled", template_id=template_id, active=active
        )
        return copy.deepcopy(template)

    # === Scheduling ===

    @staticmethod
    def _as_date(as_of: date | datetime) -> date:
        # datetime is a date subclass; drop the time of day
        return as_of.date() if isinstance(as_of, datetime) else as_of

    def due_templates(self, as_of: date | datetime) -> tuple[RecurringInvoiceTemplate, ...]:
        cutoff = self._as_date(as_of)
        return tuple(
            t
            for t in self._store.recurring_templates()
            if t.active and t.next_due_date <= cutoff
        )

    def run_due(self, as_of: date | datetime | None = None) -> int:
        """Generate one invoice per due template and advance its due date.

        Each template is its own atomic unit: the invoice and the due-date
        advance land together. A template that fails to issue is logged and
        left due; the remaining templates still run.

        Returns:
            Number of invoices generated.
        """
        cutoff = self._as_date(as_of) if as_of is not None else self._store.today()
        generated = 0

        for due in self.due_templates(cutoff):
            try:
                invoice_id, previous, next_due = self._generate(due.id, cutoff)
            except LedgerError as e:
                self._logger.warning(
                    "recurring_template_failed",
                    template_id=due.id,
                    error_code=e.code,
                    error=e.message,
                )
                continue
            if invoice_id is None:
                continue
            generated += 1
            self._logger.debug(
                "recurring_invoice_generated",
                template_id=due.id,
                invoice_id=invoice_id,
                previous_due=previous.isoformat(),
                next_due=next_due.isoformat(),
            )

        self._logger.info(
            "recurring_run_completed", as_of=cutoff.isoformat(), generated=generated
        )
        return generated

    def _generate(
        self, template_id: str, cutoff: date
    ) -> tuple[str | None, date, date]:
        with self._store.atomic():
            template = self._store.template_for_update(template_id)
            previous = template.next_due_date
            # Another writer may have run or paused it since the due scan
            if not template.active or previous > cutoff:
                return None, previous, previous

            invoice = self._invoices.issue(
                InvoiceDraft(
                    customer_id=template.customer_id,
                    items=copy.deepcopy(template.items),
                    issue_date=cutoff,
                    notes=RECURRING_INVOICE_NOTE,
                ),
                tax_rate=self._store.config.recurring_tax_rate,
                id_prefix=RECURRING_INVOICE_PREFIX,
            )
            template.next_due_date = advance_due_date(previous, template.interval)
            self._store.emit(
                recurring_invoice_generated(
                    self._store.now(),
                    template.id,
                    invoice.id,
                    template.next_due_date.isoformat(),
                )
            )
        return invoice.id, previous, template.next_due_date
