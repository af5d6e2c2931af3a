"""Production job workflow: quote to close, deposits, costs and reminders.

Jobs move strictly forward:

    QUOTE -> APPROVED -> DEPOSIT_REQUESTED -> DEPOSIT_RECEIVED
          -> IN_PRODUCTION -> COMPLETED -> CLOSED

Recording a deposit can jump ahead. Once the deposit requirement is met an
early job advances to DEPOSIT_RECEIVED, and a payment that clears the whole
balance closes the job from any state.
"""

import copy
from dataclasses import dataclass
from datetime import UTC, date, datetime, timedelta
from decimal import Decimal

import structlog

from shopbooks.errors import InvalidTransition, ValidationError
from shopbooks.events import job_deposit_requested, job_reminder_sent, job_status_changed
from shopbooks.invoices import validate_items
from shopbooks.models import (
    ZERO,
    InvoiceItem,
    Job,
    JobCost,
    JobCostCategory,
    JobPatch,
    JobStatus,
    PaymentMethod,
    TransactionType,
    merge,
    to_money,
)
from shopbooks.store import LedgerStore

logger = structlog.get_logger(__name__)

DEFAULT_DEPOSIT_PERCENT = Decimal("50")
DEFAULT_REMINDER_INTERVAL = timedelta(days=3)

# action -> (required status, resulting status)
_TRANSITIONS: dict[str, tuple[JobStatus, JobStatus]] = {
    "approve": (JobStatus.QUOTE, JobStatus.APPROVED),
    "request deposit": (JobStatus.APPROVED, JobStatus.DEPOSIT_REQUESTED),
    "start production": (JobStatus.DEPOSIT_RECEIVED, JobStatus.IN_PRODUCTION),
    "complete": (JobStatus.IN_PRODUCTION, JobStatus.COMPLETED),
    "close": (JobStatus.COMPLETED, JobStatus.CLOSED),
}

_PRE_DEPOSIT = frozenset(
    {JobStatus.QUOTE, JobStatus.APPROVED, JobStatus.DEPOSIT_REQUESTED}
)


@dataclass(frozen=True)
class JobProfitability:
    total_costs: Decimal
    profit: Decimal
    margin: Decimal  # percent of quote total


def profitability(job: Job) -> JobProfitability:
    """Profit and margin of a job against its quote (0% margin on a zero quote)."""
    total_costs = job.total_costs
    profit = job.quote_total - total_costs
    margin = (
        (profit / job.quote_total * 100).quantize(Decimal("0.01"))
        if job.quote_total > 0
        else ZERO
    )
    return JobProfitability(total_costs=total_costs, profit=profit, margin=margin)


def needs_payment_chase(job: Job) -> bool:
    """True for an unmet deposit request or a completed job with money owing."""
    if job.status is JobStatus.DEPOSIT_REQUESTED and job.deposit_paid < job.deposit_required:
        return True
    return job.status is JobStatus.COMPLETED and job.balance_due > 0


def as_utc(moment: datetime) -> datetime:
    """Treat a naive datetime as UTC."""
    return moment.replace(tzinfo=UTC) if moment.tzinfo is None else moment


def is_reminder_due(
    job: Job, now: datetime, interval: timedelta = DEFAULT_REMINDER_INTERVAL
) -> bool:
    """Whether a payment reminder should go out for ``job`` at ``now``."""
    if not needs_payment_chase(job):
        return False
    if job.last_reminder_date is None:
        return True
    return as_utc(now) - as_utc(job.last_reminder_date) >= interval


def reminder_kind(job: Job) -> str:
    return "Deposit" if job.deposit_paid == 0 else "Balance"


class JobEngine:
    """Runs the job state machine and posts job money to the ledger."""

    def __init__(self, store: LedgerStore):
        self._store = store
        self._logger = logger.bind(component="jobs")

    # === Creation and editing ===

    def create_job(
        self,
        client_id: str,
        title: str,
        *,
        description: str = "",
        quote_total: Decimal | None = None,
        items: list[InvoiceItem] | None = None,
        deposit_percent: Decimal = DEFAULT_DEPOSIT_PERCENT,
        start_date: date | None = None,
        deadline: date | None = None,
        notes: str | None = None,
    ) -> Job:
        """Open a job in QUOTE status.

        The quote total comes from ``items`` (pre-tax) when given, otherwise
        from ``quote_total``. The deposit requirement is fixed here as a
        percentage of the quote.
        """
        if not title:
            raise ValidationError("A job requires a title")
        if items:
            validate_items(items)
            quote = to_money(sum((item.total for item in items), ZERO))
        elif quote_total is not None:
            quote = to_money(quote_total)
        else:
            raise ValidationError("A job requires a quote total or quote items")
        if quote < 0:
            raise ValidationError("Quote total cannot be negative")

        percent = Decimal(str(deposit_percent))
        if not (0 <= percent <= 100):
            raise ValidationError(
                "Deposit percent must be between 0 and 100", {"percent": str(percent)}
            )

        with self._store.atomic():
            client = self._store.get_customer(client_id)
            job = Job(
                id=self._store.next_id("JOB", width=4),
                client_id=client.id,
                client_name=client.name,
                title=title,
                description=description,
                status=JobStatus.QUOTE,
                quote_total=quote,
                deposit_required=to_money(quote * percent / 100),
                start_date=start_date or self._store.today(),
                deposit_paid=ZERO,
                balance_due=quote,
                items=copy.deepcopy(items) if items else None,
                deadline=deadline,
                notes=notes,
            )
            self._store.insert_job(job)

        self._logger.info(
            "job_created",
            job_id=job.id,
            client=job.client_name,
            quote_total=str(job.quote_total),
            deposit_required=str(job.deposit_required),
        )
        return copy.deepcopy(job)

    def update_job(self, job_id: str, patch: JobPatch) -> Job:
        """Edit descriptive fields. Money and status are not patchable."""
        if patch.title is not None and not patch.title:
            raise ValidationError("A job requires a title")
        with self._store.atomic():
            job = self._store.job_for_update(job_id)
            updated = merge(job, patch)
            job.title = updated.title
            job.description = updated.description
            job.deadline = updated.deadline
            job.notes = updated.notes
        self._logger.info("job_updated", job_id=job_id)
        return copy.deepcopy(job)

    # === Workflow ===

    def approve(self, job_id: str) -> Job:
        return self._advance(job_id, "approve")

    def request_deposit(self, job_id: str) -> Job:
        """Ask the client for the deposit. The request is logged, not delivered."""
        with self._store.atomic():
            job = self._advance(job_id, "request deposit")
            self._store.emit(
                job_deposit_requested(
                    self._store.now(),
                    job.id,
                    job.client_name,
                    job.deposit_required - job.deposit_paid,
                )
            )
        return job

    def start_production(self, job_id: str) -> Job:
        return self._advance(job_id, "start production")

    def complete(self, job_id: str) -> Job:
        return self._advance(job_id, "complete")

    def close(self, job_id: str) -> Job:
        """Close a completed job. Only allowed once nothing is owed."""
        with self._store.atomic():
            job = self._store.job_for_update(job_id)
            if job.status is JobStatus.COMPLETED and job.balance_due > 0:
                raise InvalidTransition(
                    "close",
                    job.status.value,
                    f"balance of {job.balance_due} is still due",
                )
            return self._advance(job_id, "close")

    def _advance(self, job_id: str, action: str) -> Job:
        required, target = _TRANSITIONS[action]
        with self._store.atomic():
            job = self._store.job_for_update(job_id)
            if job.status is not required:
                self._logger.warning(
                    "job_transition_rejected",
                    job_id=job_id,
                    action=action,
                    status=job.status.value,
                )
                raise InvalidTransition(action, job.status.value)
            self._set_status(job, target)
        return copy.deepcopy(job)

    def _set_status(self, job: Job, target: JobStatus) -> None:
        previous = job.status
        if previous is target:
            return
        job.status = target
        self._store.emit(
            job_status_changed(self._store.now(), job.id, previous.value, target.value)
        )
        self._logger.info(
            "job_status_changed",
            job_id=job.id,
            from_status=previous.value,
            to_status=target.value,
        )

    # === Money ===

    def record_deposit(self, job_id: str, amount: Decimal, method: PaymentMethod) -> Job:
        """Apply a client payment against the quote.

        Raises:
            ValidationError: Amount is not positive.
            InvalidTransition: The job is already closed.
        """
        amount = to_money(amount)
        if amount <= 0:
            raise ValidationError("Deposit amount must be positive", {"amount": str(amount)})

        with self._store.atomic():
            job = self._store.job_for_update(job_id)
            if job.status is JobStatus.CLOSED:
                raise InvalidTransition("record deposit", job.status.value, "job is closed")

            self._store.post(
                TransactionType.DEPOSIT,
                amount,
                f"Deposit for Job {job.id}: {job.title}",
                self._store.config.account_for(method),
                job_id=job.id,
                customer_id=job.client_id,
                payment_method=method,
            )
            job.deposit_paid += amount
            job.balance_due = job.quote_total - job.deposit_paid

            if job.status in _PRE_DEPOSIT and job.deposit_paid >= job.deposit_required:
                self._set_status(job, JobStatus.DEPOSIT_RECEIVED)
            if job.balance_due <= 0:
                self._set_status(job, JobStatus.CLOSED)

        self._logger.info(
            "deposit_recorded",
            job_id=job_id,
            amount=str(amount),
            deposit_paid=str(job.deposit_paid),
            balance_due=str(job.balance_due),
            status=job.status.value,
        )
        return copy.deepcopy(job)

    def add_cost(
        self,
        job_id: str,
        description: str,
        amount: Decimal,
        category: JobCostCategory | str,
        when: datetime | None = None,
    ) -> JobCost:
        """Append a cost to the job and post it as an EXPENSE."""
        amount = to_money(amount)
        if amount <= 0:
            raise ValidationError("Cost amount must be positive", {"amount": str(amount)})
        if not description:
            raise ValidationError("Cost description is required")
        try:
            category = JobCostCategory(category)
        except ValueError:
            raise ValidationError(f"Unknown cost category {category!r}") from None

        with self._store.atomic():
            job = self._store.job_for_update(job_id)
            cost = JobCost(
                id=self._store.next_id("COST", width=4),
                description=description,
                amount=amount,
                category=category,
                date=when or self._store.now(),
            )
            job.costs.append(cost)
            self._store.post(
                TransactionType.EXPENSE,
                -amount,
                f"Job Expense [{category.value}]: {description}",
                self._store.config.job_cost_account_id,
                when=cost.date,
                job_id=job.id,
            )

        self._logger.info(
            "job_cost_added", job_id=job_id, amount=str(amount), category=category.value
        )
        return cost

    def profitability(self, job_id: str) -> JobProfitability:
        return profitability(self._store.get_job(job_id))

    # === Reminders ===

    def is_reminder_due(self, job: Job, now: datetime | None = None) -> bool:
        return is_reminder_due(
            job, now or self._store.now(), self._store.config.reminder_interval
        )

    def send_reminder(self, job_id: str, now: datetime | None = None) -> Job:
        """Log a manual reminder for one job regardless of the reminder window."""
        now = as_utc(now or self._store.now())
        with self._store.atomic():
            job = self._store.job_for_update(job_id)
            self._stamp_reminder(job, now, automatic=False)
        return copy.deepcopy(job)

    def process_reminders(self, now: datetime | None = None) -> int:
        """Stamp and log a reminder for every job that is due one.

        Re-running inside the reminder window stamps nothing.

        Returns:
            Number of reminders sent.
        """
        now = as_utc(now or self._store.now())
        interval = self._store.config.reminder_interval
        sent = 0
        with self._store.atomic():
            for job in self._store.live_jobs():
                if is_reminder_due(job, now, interval):
                    self._stamp_reminder(job, now, automatic=True)
                    sent += 1
        self._logger.info("job_reminders_processed", sent=sent, at=now.isoformat())
        return sent

    def _stamp_reminder(self, job: Job, now: datetime, automatic: bool) -> None:
        kind = reminder_kind(job)
        amount_due = (
            job.deposit_required - job.deposit_paid if kind == "Deposit" else job.balance_due
        )
        job.last_reminder_date = now
        self._store.emit(
            job_reminder_sent(now, job.id, job.client_name, kind, amount_due, automatic)
        )
        self._logger.info(
            "job_reminder_sent",
            job_id=job.id,
            client=job.client_name,
            kind=kind,
            automatic=automatic,
        )
