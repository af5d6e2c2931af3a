"""Point-of-sale cart pricing, checkout and held sales."""

import copy
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal

import structlog

from shopbooks.errors import InsufficientTender, NotFound, ValidationError
from shopbooks.events import sale_completed, sale_parked
from shopbooks.inventory import InventoryController
from shopbooks.models import (
    ZERO,
    CartItem,
    Customer,
    HeldSale,
    PaymentMethod,
    Product,
    TransactionType,
    to_money,
)
from shopbooks.store import LedgerStore

logger = structlog.get_logger(__name__)

DEFAULT_PARK_NOTE = "Parked order"


@dataclass(frozen=True)
class CartTotals:
    subtotal: Decimal
    tax: Decimal
    discount: Decimal
    total: Decimal


@dataclass(frozen=True)
class Receipt:
    """Summary returned to the till after a completed sale."""

    transaction_id: str
    items: tuple[CartItem, ...]
    customer: Customer | None
    subtotal: Decimal
    tax: Decimal
    discount: Decimal
    total: Decimal
    method: PaymentMethod
    tendered: Decimal
    change: Decimal
    timestamp: datetime


class Cart:
    """An in-progress sale. Lines snapshot the product at the time it was added."""

    def __init__(
        self,
        items: list[CartItem] | None = None,
        customer: Customer | None = None,
        discount: Decimal = ZERO,
        note: str = "",
    ):
        self.items: list[CartItem] = items or []
        self.customer = customer
        self.discount = discount
        self.note = note

    @property
    def is_empty(self) -> bool:
        return not self.items

    def _line(self, product_id: str) -> CartItem:
        for line in self.items:
            if line.product.id == product_id:
                return line
        raise NotFound("CartItem", product_id)

    def add(self, product: Product, quantity: int = 1) -> CartItem:
        """Add a product, merging with an existing line for the same product."""
        if quantity < 1:
            raise ValidationError("Quantity must be at least 1", {"quantity": quantity})
        for line in self.items:
            if line.product.id == product.id:
                line.quantity += quantity
                return line
        line = CartItem(product=copy.deepcopy(product), quantity=quantity)
        self.items.append(line)
        return line

    def set_quantity(self, product_id: str, quantity: int) -> None:
        if quantity < 1:
            raise ValidationError("Quantity must be at least 1", {"quantity": quantity})
        self._line(product_id).quantity = quantity

    def change_quantity(self, product_id: str, delta: int) -> None:
        """Nudge a line quantity; it never drops below 1."""
        line = self._line(product_id)
        line.quantity = max(1, line.quantity + delta)

    def remove(self, product_id: str) -> None:
        self.items.remove(self._line(product_id))

    def clear(self) -> None:
        self.items = []
        self.customer = None
        self.discount = ZERO
        self.note = ""

    def totals(self, tax_rate: Decimal) -> CartTotals:
        """Subtotal, tax and total after the flat discount.

        The total is not clamped; a discount larger than subtotal plus tax
        yields a negative total which checkout rejects.
        """
        subtotal = to_money(sum((line.line_total for line in self.items), ZERO))
        tax = to_money(subtotal * tax_rate)
        discount = to_money(self.discount)
        return CartTotals(
            subtotal=subtotal,
            tax=tax,
            discount=discount,
            total=subtotal + tax - discount,
        )


class CheckoutEngine:
    """Completes sales against the ledger and manages parked carts."""

    def __init__(self, store: LedgerStore, inventory: InventoryController):
        self._store = store
        self._inventory = inventory
        self._logger = logger.bind(component="checkout")

    def price(self, cart: Cart) -> CartTotals:
        return cart.totals(self._store.config.pos_tax_rate)

    def checkout(
        self,
        cart: Cart,
        method: PaymentMethod,
        tendered: Decimal | None = None,
        customer_id: str | None = None,
    ) -> Receipt:
        """Complete a sale.

        Deducts stock for every non-service line, posts one SALE transaction
        routed by payment method and clears the cart.

        Raises:
            ValidationError: Empty cart, negative discount or negative total.
            InsufficientTender: Cash tendered is below the total.
            NotFound: Unknown customer or a product removed from the catalog.
        """
        if cart.is_empty:
            raise ValidationError("Cannot check out an empty cart")
        if cart.discount < 0:
            raise ValidationError("Discount cannot be negative")

        totals = self.price(cart)
        if totals.total < 0:
            self._logger.warning(
                "checkout_rejected", reason="negative_total", total=str(totals.total)
            )
            raise ValidationError(
                "Discount exceeds the amount due", {"total": str(totals.total)}
            )

        if method is PaymentMethod.CASH:
            if tendered is None:
                raise ValidationError("Cash tendered is required for cash sales")
            tendered = to_money(tendered)
            if tendered < totals.total:
                self._logger.warning(
                    "checkout_rejected",
                    reason="insufficient_tender",
                    total=str(totals.total),
                    tendered=str(tendered),
                )
                raise InsufficientTender(totals.total, tendered)
            change = tendered - totals.total
        else:
            tendered = totals.total
            change = ZERO

        customer = (
            self._store.get_customer(customer_id) if customer_id else cart.customer
        )
        lines = tuple(copy.deepcopy(cart.items))
        description = f"POS Sale - {len(lines)} items"
        if customer:
            description = f"{description} ({customer.name})"

        with self._store.atomic():
            for line in lines:
                if not line.product.is_service:
                    self._inventory.deduct(line.product.id, line.quantity)
            transaction = self._store.post(
                TransactionType.SALE,
                totals.total,
                description,
                self._store.config.account_for(method),
                payment_method=method,
                customer_id=customer.id if customer else None,
            )
            self._store.emit(
                sale_completed(
                    transaction.date, transaction.id, totals.total, method.value
                )
            )

        cart.clear()
        self._logger.info(
            "sale_completed",
            transaction_id=transaction.id,
            total=str(totals.total),
            method=method.value,
            change=str(change),
        )
        return Receipt(
            transaction_id=transaction.id,
            items=lines,
            customer=customer,
            subtotal=totals.subtotal,
            tax=totals.tax,
            discount=totals.discount,
            total=totals.total,
            method=method,
            tendered=tendered,
            change=change,
            timestamp=transaction.date,
        )

    def park(
        self, cart: Cart, customer: Customer | None = None, note: str = ""
    ) -> HeldSale:
        """Suspend the cart as a held sale and clear it."""
        if cart.is_empty:
            raise ValidationError("Cannot park an empty cart")

        with self._store.atomic():
            held = HeldSale(
                id=self._store.next_id("HOLD", width=4),
                items=copy.deepcopy(cart.items),
                customer=copy.deepcopy(customer or cart.customer),
                date=self._store.now(),
                note=note or cart.note or DEFAULT_PARK_NOTE,
            )
            self._store.insert_held_sale(held)
            self._store.emit(sale_parked(held.date, held.id, len(held.items)))

        cart.clear()
        self._logger.info("sale_parked", held_sale_id=held.id, lines=len(held.items))
        return copy.deepcopy(held)

    def resume(self, held_sale_id: str) -> Cart:
        """Restore a held sale into a new cart and remove it from the hold list."""
        with self._store.atomic():
            held = self._store.remove_held_sale(held_sale_id)
        self._logger.info("sale_resumed", held_sale_id=held_sale_id)
        return Cart(items=held.items, customer=held.customer, note=held.note)

    def discard(self, held_sale_id: str) -> None:
        with self._store.atomic():
            self._store.remove_held_sale(held_sale_id)
        self._logger.info("held_sale_discarded", held_sale_id=held_sale_id)
