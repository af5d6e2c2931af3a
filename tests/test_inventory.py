"""Tests for stock adjustment."""

from dataclasses import replace
from decimal import Decimal

import pytest

from shopbooks.errors import NotFound, ValidationError
from shopbooks.events import EventType
from shopbooks.models import Product, StockDirection, TransactionType
from shopbooks.session import LedgerSession


class TestAdjustStock:
    """Tests for InventoryController.adjust_stock."""

    def test_restock_with_cost_posts_outflow(self, session):
        """Test that a paid restock raises stock and posts a RESTOCK."""
        product = session.inventory.adjust_stock(
            "p1", 5, StockDirection.RESTOCK, cost=Decimal("200")
        )

        assert product.stock == 15
        (tx,) = session.store.transactions()
        assert tx.type == TransactionType.RESTOCK
        assert tx.amount == Decimal("-200.00")
        assert tx.account_id == "acc_2"
        assert tx.description == "Restock: Vinyl Roll (5 units)"

    def test_restock_without_cost_posts_nothing(self, session):
        product = session.inventory.adjust_stock("p1", 5, StockDirection.RESTOCK)

        assert product.stock == 15
        assert session.store.transactions() == ()

    def test_deduct_has_no_ledger_effect(self, session):
        product = session.inventory.adjust_stock("p1", 3, StockDirection.DEDUCT)

        assert product.stock == 7
        assert session.store.transactions() == ()

    def test_service_products_are_untouched(self, session):
        """Test that services carry no stock in either direction."""
        session.inventory.adjust_stock("svc", 4, StockDirection.RESTOCK, cost=Decimal("10"))
        session.inventory.adjust_stock("svc", 4, StockDirection.DEDUCT)

        assert session.store.get_product("svc").stock == 0
        assert session.store.transactions() == ()

    @pytest.mark.parametrize("quantity", [0, -2])
    def test_quantity_must_be_positive(self, session, quantity):
        with pytest.raises(ValidationError):
            session.inventory.adjust_stock("p1", quantity, StockDirection.RESTOCK)

    def test_unknown_product(self, session):
        with pytest.raises(NotFound):
            session.inventory.adjust_stock("nope", 1, StockDirection.DEDUCT)


class TestNegativeStock:
    """Tests for the overselling policy."""

    def test_oversell_allowed_by_default(self, session):
        product = session.inventory.adjust_stock("p1", 12, StockDirection.DEDUCT)
        assert product.stock == -2

    def test_oversell_rejected_when_disabled(self, config, clock):
        """Test that a strict store refuses to go below zero and keeps stock intact."""
        strict = LedgerSession(replace(config, allow_negative_stock=False), clock)

        strict.store.add_product(
            Product(id="p1", name="Vinyl Roll", category="Stock", price=Decimal("1"), cost=Decimal("1"), stock=2)
        )

        with pytest.raises(ValidationError):
            strict.inventory.adjust_stock("p1", 3, StockDirection.DEDUCT)

        assert strict.store.get_product("p1").stock == 2


class TestLowStock:
    """Tests for low-stock signaling."""

    def test_crossing_threshold_emits_event(self, session):
        """Test that dropping under the threshold records one stock.low event."""
        session.inventory.adjust_stock("p1", 1, StockDirection.DEDUCT)
        session.inventory.adjust_stock("p1", 1, StockDirection.DEDUCT)

        low_events = [e for e in session.store.events() if e.event_type == EventType.STOCK_LOW]
        assert len(low_events) == 1
        assert low_events[0].data == {"product_id": "p1", "name": "Vinyl Roll", "stock": 9}

    def test_alert_count_excludes_services(self, session):
        """Test that a zero-stock service never counts as low stock."""
        assert session.inventory.low_stock_alert_count() == 0

        session.inventory.adjust_stock("p1", 1, StockDirection.DEDUCT)

        assert session.inventory.low_stock_alert_count() == 1
        assert [p.id for p in session.inventory.low_stock_products()] == ["p1"]
