"""Session facade composing the store with every engine."""

import copy
from collections.abc import Callable
from datetime import UTC, date, datetime, time
from pathlib import Path

import structlog

from shopbooks.config.ledger import LedgerConfig
from shopbooks.config.seed_loader import SEED_PATH, SeedData, load_seed_data
from shopbooks.inventory import InventoryController
from shopbooks.invoices import InvoiceEngine
from shopbooks.jobs import JobEngine
from shopbooks.recurring import RecurringScheduler
from shopbooks.reports import FinancialSummary, build_summary
from shopbooks.sales import CheckoutEngine
from shopbooks.store import LedgerStore

logger = structlog.get_logger(__name__)


class LedgerSession:
    """One shop's books: a store plus the engines that mutate it.

    The presentation layer holds a session rather than a global; tests build
    a fresh one per case.

    Usage:
        session = LedgerSession.from_seed()
        session.recurring.run_due()
        print(session.summary().to_text())
    """

    def __init__(
        self,
        config: LedgerConfig | None = None,
        clock: Callable[[], datetime] | None = None,
        business_name: str = "",
    ):
        self.business_name = business_name
        self.store = LedgerStore(config, clock)
        self._build_engines()

    def _build_engines(self) -> None:
        self.inventory = InventoryController(self.store)
        self.checkout = CheckoutEngine(self.store, self.inventory)
        self.invoices = InvoiceEngine(self.store, self.inventory)
        self.recurring = RecurringScheduler(self.store, self.invoices)
        self.jobs = JobEngine(self.store)

    @classmethod
    def from_seed(
        cls,
        config: LedgerConfig | None = None,
        clock: Callable[[], datetime] | None = None,
        path: Path = SEED_PATH,
    ) -> "LedgerSession":
        """Build a session holding the opening books from the seed file."""
        seed = load_seed_data(path)
        session = cls(config, clock, business_name=seed.business_name)
        session.load(seed)
        return session

    def load(self, seed: SeedData) -> None:
        """Add seed entities to the store. Opening entries are posted as-is."""
        for account in seed.bank_accounts:
            self.store.add_bank_account(account)
        for product in seed.products:
            self.store.add_product(product)
        for customer in seed.customers:
            self.store.add_customer(customer)

        with self.store.atomic():
            for entry in seed.opening_transactions:
                self.store.post(
                    entry.type,
                    entry.amount,
                    entry.description,
                    entry.account_id,
                    when=datetime.combine(entry.date, time.min, tzinfo=UTC),
                    payment_method=entry.payment_method,
                )
            for invoice in seed.invoices:
                self.store.insert_invoice(copy.deepcopy(invoice))
            for job in seed.jobs:
                self.store.insert_job(copy.deepcopy(job))

        logger.info(
            "seed_loaded",
            products=len(seed.products),
            customers=len(seed.customers),
            invoices=len(seed.invoices),
            jobs=len(seed.jobs),
        )

    def summary(self, as_of: date | None = None) -> FinancialSummary:
        return build_summary(self.store, self.business_name, as_of)

    def reset(self) -> None:
        """Drop all state and rebuild the engines around the empty store."""
        self.store.reset()
        self._build_engines()
