"""Pytest configuration and fixtures."""

import os
from datetime import UTC, datetime, timedelta
from decimal import Decimal

import pytest

# Set test environment variables before importing settings
os.environ.setdefault("GOOGLE_API_KEY", "test-key")
os.environ.setdefault("LOG_LEVEL", "WARNING")

from shopbooks.config.ledger import LedgerConfig  # noqa: E402
from shopbooks.models import AccountType, BankAccount, Customer, Product  # noqa: E402
from shopbooks.session import LedgerSession  # noqa: E402


class FixedClock:
    """Controllable clock handed to the store."""

    def __init__(self, now: datetime):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now += timedelta(**kwargs)


@pytest.fixture
def clock():
    """Clock frozen at 2024-03-01 09:00 UTC."""
    return FixedClock(datetime(2024, 3, 1, 9, 0, tzinfo=UTC))


@pytest.fixture
def config():
    """Default ledger policy, independent of the environment."""
    return LedgerConfig()


@pytest.fixture
def session(config, clock):
    """Session with the two routing accounts, a small catalog and one customer."""
    session = LedgerSession(config, clock, business_name="Test Signs")
    store = session.store
    store.add_bank_account(
        BankAccount(id="acc_2", name="Petty Cash", type=AccountType.CASH, account_number="N/A")
    )
    store.add_bank_account(
        BankAccount(
            id="acc_3", name="Undeposited Funds", type=AccountType.OTHER, account_number="Clearing"
        )
    )
    store.add_product(
        Product(
            id="p1",
            name="Vinyl Roll",
            category="Stock",
            price=Decimal("100.00"),
            cost=Decimal("40.00"),
            stock=10,
            unit="roll",
        )
    )
    store.add_product(
        Product(
            id="p2",
            name="Banner",
            category="Print",
            price=Decimal("20.00"),
            cost=Decimal("8.00"),
            stock=50,
        )
    )
    store.add_product(
        Product(
            id="svc",
            name="Design Hour",
            category="Service",
            price=Decimal("75.00"),
            cost=Decimal("0"),
            stock=0,
            unit="hour",
        )
    )
    store.add_customer(Customer(id="c1", name="Acme Corp", email="billing@acme.com"))
    return session


@pytest.fixture
def store(session):
    return session.store


@pytest.fixture
def seeded_session(config, clock):
    """Session loaded from the bundled seed file."""
    return LedgerSession.from_seed(config=config, clock=clock)
