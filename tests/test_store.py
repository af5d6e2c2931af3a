"""Tests for the ledger store."""

from datetime import date, timedelta
from decimal import Decimal

import pytest

from shopbooks.errors import InvariantViolation, NotFound, ValidationError
from shopbooks.events import EventType
from shopbooks.models import (
    AccountType,
    BankAccount,
    CustomerPatch,
    Product,
    ProductPatch,
    TransactionType,
)
from shopbooks.sales import Cart


class TestPosting:
    """Tests for ledger posting and balances."""

    def test_post_outside_atomic_is_rejected(self, store):
        """Test that the ledger cannot be written without the writer lock."""
        with pytest.raises(InvariantViolation):
            store.post(TransactionType.EXPENSE, Decimal("-5"), "Fuel", "acc_2")

    def test_post_to_unknown_account(self, store):
        """Test that postings must target a registered account."""
        with pytest.raises(NotFound) as exc_info:
            with store.atomic():
                store.post(TransactionType.EXPENSE, Decimal("-5"), "Fuel", "acc_99")

        assert exc_info.value.entity == "BankAccount"
        assert store.transactions() == ()

    def test_transactions_are_newest_first(self, store, clock):
        """Test that the log keeps the latest entry at the front."""
        with store.atomic():
            store.post(TransactionType.SALE, Decimal("10"), "First", "acc_2")
        clock.advance(minutes=5)
        with store.atomic():
            store.post(TransactionType.SALE, Decimal("20"), "Second", "acc_2")

        descriptions = [t.description for t in store.transactions()]
        assert descriptions == ["Second", "First"]
        assert [t.id for t in store.transactions()] == ["TX-000002", "TX-000001"]

    def test_balance_is_sum_of_account_amounts(self, store):
        """Test that balances are derived from the ledger."""
        with store.atomic():
            store.post(TransactionType.SALE, Decimal("110"), "Sale", "acc_2")
            store.post(TransactionType.EXPENSE, Decimal("-30.50"), "Paper", "acc_2")
            store.post(TransactionType.INVOICE_PAYMENT, Decimal("46"), "Inv", "acc_3")

        assert store.balance("acc_2") == Decimal("79.50")
        assert store.balance("acc_3") == Decimal("46")

    def test_balance_as_of_excludes_later_entries(self, store, clock):
        """Test that a historical balance ignores later postings."""
        with store.atomic():
            store.post(TransactionType.SALE, Decimal("100"), "Day one", "acc_2")
        clock.advance(days=2)
        with store.atomic():
            store.post(TransactionType.SALE, Decimal("50"), "Day three", "acc_2")

        assert store.balance("acc_2", date(2024, 3, 1)) == Decimal("100")
        assert store.balance("acc_2", date(2024, 3, 1) + timedelta(days=2)) == Decimal("150")

    def test_balance_of_unknown_account(self, store):
        with pytest.raises(NotFound):
            store.balance("missing")

    def test_post_emits_event(self, store):
        """Test that every posting lands in the event log."""
        with store.atomic():
            store.post(TransactionType.SALE, Decimal("12"), "Sale", "acc_2")

        events = store.events()
        assert events[-1].event_type == EventType.TRANSACTION_POSTED
        assert events[-1].data["amount"] == "12.00"


class TestAtomic:
    """Tests for rollback semantics."""

    def test_failed_block_rolls_back_everything(self, store):
        """Test that a raising block leaves no trace in any table."""
        with pytest.raises(RuntimeError):
            with store.atomic():
                store.post(TransactionType.SALE, Decimal("10"), "Sale", "acc_2")
                store.product_for_update("p1").stock = 0
                raise RuntimeError("boom")

        assert store.transactions() == ()
        assert store.get_product("p1").stock == 10
        assert store.events() == ()

        # Sequences are rolled back too
        with store.atomic():
            tx = store.post(TransactionType.SALE, Decimal("10"), "Sale", "acc_2")
        assert tx.id == "TX-000001"

    def test_nested_blocks_join_outer(self, store):
        """Test that inner blocks roll back with the outermost block."""
        with pytest.raises(ValueError):
            with store.atomic():
                store.post(TransactionType.SALE, Decimal("10"), "Outer", "acc_2")
                with store.atomic():
                    store.post(TransactionType.SALE, Decimal("20"), "Inner", "acc_2")
                raise ValueError("outer failure")

        assert store.transactions() == ()

    def test_next_id_format(self, store):
        with store.atomic():
            assert store.next_id("INV") == "INV-000001"
            assert store.next_id("INV") == "INV-000002"
            assert store.next_id("JOB", width=4) == "JOB-0001"

    def test_claim_id_moves_sequence_forward(self, store):
        with store.atomic():
            store.claim_id("INV", "INV-000007")
            store.claim_id("INV", "INV-000003")
            store.claim_id("INV", "INV-2024-009")
            assert store.next_id("INV") == "INV-000008"


class TestExpenses:
    """Tests for manual expense capture."""

    def test_record_expense_posts_negative_amount(self, store):
        """Test that an expense reduces the paying account."""
        tx = store.record_expense(
            Decimal("50"), "Office Supplies", "acc_2", vendor="Stationers"
        )

        assert tx.type == TransactionType.EXPENSE
        assert tx.amount == Decimal("-50.00")
        assert tx.description == "Office Supplies - Stationers"
        assert tx.expense_category == "Office Supplies"
        assert store.balance("acc_2") == Decimal("-50.00")

    def test_record_expense_without_vendor(self, store):
        tx = store.record_expense(Decimal("12"), "Utilities", "acc_2")
        assert tx.description == "Utilities - Unknown Vendor"

    @pytest.mark.parametrize("amount", [Decimal("0"), Decimal("-5")])
    def test_record_expense_requires_positive_amount(self, store, amount):
        with pytest.raises(ValidationError):
            store.record_expense(amount, "Utilities", "acc_2")

    def test_record_expense_requires_category(self, store):
        with pytest.raises(ValidationError):
            store.record_expense(Decimal("5"), "", "acc_2")

    def test_record_expense_unknown_customer(self, store):
        with pytest.raises(NotFound):
            store.record_expense(Decimal("5"), "Utilities", "acc_2", customer_id="nobody")
        assert store.transactions() == ()


class TestCatalog:
    """Tests for product, customer and account management."""

    def test_duplicate_product_rejected(self, store):
        with pytest.raises(ValidationError):
            store.add_product(
                Product(id="p1", name="Dup", category="Stock", price=Decimal("1"), cost=Decimal("1"), stock=1)
            )

    def test_negative_price_rejected(self, store):
        with pytest.raises(ValidationError):
            store.add_product(
                Product(id="p9", name="Bad", category="Stock", price=Decimal("-1"), cost=Decimal("0"), stock=1)
            )

    def test_float_prices_stored_as_money(self, store):
        """Test that float prices become cent-rounded Decimals and price a cart."""
        added = store.add_product(
            Product(id="p9", name="Sticker", category="Stock", price=0.1, cost=0.05, stock=5)
        )
        updated = store.update_product("p9", ProductPatch(price=2.675))

        assert added.price == Decimal("0.10")
        assert added.cost == Decimal("0.05")
        assert updated.price == Decimal("2.68")
        cart = Cart()
        cart.add(store.get_product("p9"), 2)
        assert cart.totals(Decimal("0.10")).subtotal == Decimal("5.36")

    def test_non_numeric_price_rejected(self, store):
        with pytest.raises(ValidationError):
            store.add_product(
                Product(id="p9", name="Bad", category="Stock", price="lots", cost=Decimal("0"), stock=1)
            )

    def test_update_product_applies_patch(self, store):
        """Test that only patched fields change."""
        updated = store.update_product("p1", ProductPatch(price=Decimal("120.00")))

        assert updated.price == Decimal("120.00")
        assert updated.name == "Vinyl Roll"
        assert store.get_product("p1").price == Decimal("120.00")

    def test_delete_product(self, store):
        store.delete_product("p2")
        with pytest.raises(NotFound):
            store.get_product("p2")

    def test_update_customer_rejects_blank_name(self, store):
        with pytest.raises(ValidationError):
            store.update_customer("c1", CustomerPatch(name="  "))

    def test_update_customer(self, store):
        customer = store.update_customer("c1", CustomerPatch(phone="555-0000"))
        assert customer.phone == "555-0000"
        assert customer.name == "Acme Corp"

    def test_account_currency_must_match(self, store):
        with pytest.raises(ValidationError):
            store.add_bank_account(
                BankAccount(id="usd", name="Dollars", type=AccountType.BANK, account_number="1", currency="USD")
            )

    def test_accounts_of_type(self, store):
        cash = store.accounts_of_type(AccountType.CASH)
        assert [a.id for a in cash] == ["acc_2"]

    def test_reads_return_copies(self, store):
        """Test that mutating a returned entity does not touch the store."""
        product = store.get_product("p1")
        product.stock = 999

        assert store.get_product("p1").stock == 10
        assert store.products()[0] is not store.products()[0]

    def test_reset_clears_tables(self, store):
        with store.atomic():
            store.post(TransactionType.SALE, Decimal("10"), "Sale", "acc_2")

        store.reset()

        assert store.products() == ()
        assert store.transactions() == ()
        assert store.bank_accounts() == ()
