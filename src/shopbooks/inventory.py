"""Stock mutation with restock/deduct semantics and low-stock signaling."""

import copy
from decimal import Decimal

import structlog

from shopbooks.errors import ValidationError
from shopbooks.events import stock_low
from shopbooks.models import Product, StockDirection, TransactionType, to_money
from shopbooks.store import LedgerStore

logger = structlog.get_logger(__name__)


class InventoryController:
    """Adjusts product stock and posts restock costs to the ledger.

    Service products carry no stock and are never mutated. Deductions are
    allowed to drive stock negative unless the store config disables it.
    """

    def __init__(self, store: LedgerStore):
        self._store = store
        self._logger = logger.bind(component="inventory")

    def adjust_stock(
        self,
        product_id: str,
        quantity: int,
        direction: StockDirection,
        cost: Decimal | None = None,
    ) -> Product:
        """Restock or deduct ``quantity`` units of a product.

        Args:
            product_id: Product to adjust.
            quantity: Units to add or remove (must be positive).
            direction: RESTOCK or DEDUCT.
            cost: Total purchase cost for a restock. A positive cost posts a
                RESTOCK transaction against the restock account.

        Returns:
            Copy of the product after adjustment.
        """
        if quantity <= 0:
            raise ValidationError(
                "Stock adjustment quantity must be positive", {"quantity": quantity}
            )

        with self._store.atomic():
            product = self._store.product_for_update(product_id)
            if product.is_service:
                self._logger.debug("service_stock_ignored", product_id=product_id)
                return copy.deepcopy(product)

            if direction is StockDirection.RESTOCK:
                product.stock += quantity
                if cost is not None and cost > 0:
                    self._store.post(
                        TransactionType.RESTOCK,
                        -to_money(cost),
                        f"Restock: {product.name} ({quantity} units)",
                        self._store.config.restock_account_id,
                        reference_id=product.id,
                    )
            else:
                self.deduct(product_id, quantity)

            self._logger.info(
                "stock_adjusted",
                product_id=product_id,
                direction=direction.value,
                quantity=quantity,
                stock=product.stock,
            )
            return copy.deepcopy(product)

    def deduct(self, product_id: str, quantity: int) -> None:
        """Remove stock for a sale or issued document.

        Must be called inside an atomic block. Service products are skipped.
        """
        product = self._store.product_for_update(product_id)
        if product.is_service:
            return

        config = self._store.config
        new_stock = product.stock - quantity
        if new_stock < 0 and not config.allow_negative_stock:
            raise ValidationError(
                f"Insufficient stock for {product.name}",
                {"product_id": product_id, "stock": product.stock, "requested": quantity},
            )
        if new_stock < 0:
            self._logger.warning(
                "stock_oversold", product_id=product_id, stock=new_stock
            )

        was_low = product.stock < config.low_stock_threshold
        product.stock = new_stock
        if not was_low and new_stock < config.low_stock_threshold:
            self._store.emit(
                stock_low(self._store.now(), product.id, product.name, new_stock)
            )

    def low_stock_products(self) -> tuple[Product, ...]:
        threshold = self._store.config.low_stock_threshold
        return tuple(
            p for p in self._store.products() if not p.is_service and p.stock < threshold
        )

    def low_stock_alert_count(self) -> int:
        """Number of non-service products below the alert threshold."""
        return len(self.low_stock_products())
