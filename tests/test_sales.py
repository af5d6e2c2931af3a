"""Tests for the point-of-sale cart and checkout."""

from decimal import Decimal

import pytest

from shopbooks.errors import InsufficientTender, NotFound, ValidationError
from shopbooks.events import EventType
from shopbooks.models import PaymentMethod, ProductPatch, TransactionType
from shopbooks.sales import DEFAULT_PARK_NOTE, Cart


@pytest.fixture
def cart(store):
    cart = Cart()
    cart.add(store.get_product("p1"))
    return cart


class TestCart:
    """Tests for cart editing and pricing."""

    def test_add_merges_same_product(self, store):
        cart = Cart()
        cart.add(store.get_product("p2"), 2)
        cart.add(store.get_product("p2"), 3)

        assert len(cart.items) == 1
        assert cart.items[0].quantity == 5

    def test_change_quantity_never_drops_below_one(self, cart):
        cart.change_quantity("p1", -5)
        assert cart.items[0].quantity == 1

        cart.change_quantity("p1", 2)
        assert cart.items[0].quantity == 3

    def test_set_quantity_rejects_zero(self, cart):
        with pytest.raises(ValidationError):
            cart.set_quantity("p1", 0)

    def test_remove_unknown_line(self, cart):
        with pytest.raises(NotFound):
            cart.remove("p2")

    def test_lines_snapshot_the_product(self, store, cart):
        """Test that later catalog edits do not reprice an open cart."""
        store.update_product("p1", ProductPatch(price=Decimal("500")))

        assert cart.items[0].product.price == Decimal("100.00")

    def test_totals_apply_tax_then_discount(self, store, cart):
        """Test subtotal, POS tax and flat discount."""
        cart.add(store.get_product("p2"), 2)
        cart.discount = Decimal("5")

        totals = cart.totals(Decimal("0.10"))

        assert totals.subtotal == Decimal("140.00")
        assert totals.tax == Decimal("14.00")
        assert totals.discount == Decimal("5.00")
        assert totals.total == Decimal("149.00")


class TestCheckout:
    """Tests for CheckoutEngine.checkout."""

    def test_cash_sale_returns_change(self, session, cart):
        """Test a cash sale of 100 tendered with 150."""
        cart.discount = Decimal("10")  # 100 + 10 tax - 10

        receipt = session.checkout.checkout(cart, PaymentMethod.CASH, tendered=Decimal("150"))

        assert receipt.total == Decimal("100.00")
        assert receipt.change == Decimal("50.00")
        (tx,) = session.store.transactions()
        assert tx.type == TransactionType.SALE
        assert tx.amount == Decimal("100.00")
        assert tx.account_id == "acc_2"
        assert tx.payment_method == PaymentMethod.CASH
        assert session.store.get_product("p1").stock == 9
        assert cart.is_empty

    def test_insufficient_tender_changes_nothing(self, session, cart):
        """Test that a short cash tender leaves stock, ledger and cart alone."""
        with pytest.raises(InsufficientTender) as exc_info:
            session.checkout.checkout(cart, PaymentMethod.CASH, tendered=Decimal("50"))

        assert exc_info.value.total == Decimal("110.00")
        assert session.store.transactions() == ()
        assert session.store.get_product("p1").stock == 10
        assert not cart.is_empty

    def test_cash_requires_tender(self, session, cart):
        with pytest.raises(ValidationError):
            session.checkout.checkout(cart, PaymentMethod.CASH)

    @pytest.mark.parametrize("method", [PaymentMethod.CARD, PaymentMethod.EFT])
    def test_non_cash_goes_to_clearing_account(self, session, cart, method):
        receipt = session.checkout.checkout(cart, method)

        assert receipt.change == Decimal("0")
        assert receipt.tendered == receipt.total
        assert session.store.balance("acc_3") == Decimal("110.00")
        assert session.store.balance("acc_2") == Decimal("0")

    def test_description_counts_lines_and_names_customer(self, session, store, cart):
        cart.add(store.get_product("svc"))

        session.checkout.checkout(cart, PaymentMethod.CARD, customer_id="c1")

        (tx,) = store.transactions()
        assert tx.description == "POS Sale - 2 items (Acme Corp)"
        assert tx.customer_id == "c1"

    def test_services_are_not_deducted(self, session, store):
        cart = Cart()
        cart.add(store.get_product("svc"), 3)

        session.checkout.checkout(cart, PaymentMethod.CARD)

        assert store.get_product("svc").stock == 0

    def test_empty_cart_rejected(self, session):
        with pytest.raises(ValidationError):
            session.checkout.checkout(Cart(), PaymentMethod.CARD)

    def test_discount_larger_than_total_rejected(self, session, cart):
        cart.discount = Decimal("500")
        with pytest.raises(ValidationError):
            session.checkout.checkout(cart, PaymentMethod.CARD)
        assert session.store.transactions() == ()

    def test_sale_completed_event(self, session, cart):
        session.checkout.checkout(cart, PaymentMethod.CARD)

        types = [e.event_type for e in session.store.events()]
        assert EventType.SALE_COMPLETED in types


class TestHeldSales:
    """Tests for parking and resuming carts."""

    def test_park_clears_cart(self, session, cart):
        held = session.checkout.park(cart)

        assert held.id == "HOLD-0001"
        assert held.note == DEFAULT_PARK_NOTE
        assert cart.is_empty
        assert len(session.store.held_sales()) == 1
        # Parking never touches stock
        assert session.store.get_product("p1").stock == 10

    def test_resume_restores_and_removes(self, session, store, cart):
        customer = store.get_customer("c1")
        held = session.checkout.park(cart, customer=customer, note="Back at 3pm")

        resumed = session.checkout.resume(held.id)

        assert [line.product.id for line in resumed.items] == ["p1"]
        assert resumed.customer.name == "Acme Corp"
        assert resumed.note == "Back at 3pm"
        assert store.held_sales() == ()

    def test_park_empty_cart_rejected(self, session):
        with pytest.raises(ValidationError):
            session.checkout.park(Cart())

    def test_discard_unknown(self, session):
        with pytest.raises(NotFound):
            session.checkout.discard("HOLD-9999")
