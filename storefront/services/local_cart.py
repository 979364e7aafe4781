# storefront/services/local_cart.py
import json
import logging

from storefront.repositories.storage_repo import KeyValueStorage
from storefront.schemas.cart import CartLine, CartSnapshot
from storefront.services.normalizer import (
    DEFAULT_PRODUCT_NAME,
    cart_count,
    cart_subtotal,
    normalize_lines,
)

logger = logging.getLogger(__name__)


class LocalCartStore:
    """
    The guest cart, persisted as one JSON array under a fixed storage key.

    Responsibilities:
      - never raise on missing or corrupted storage (read returns [])
      - re-normalize on every write, and hand back what was persisted
      - keep sku unique (adding an existing sku increments its quantity)

    No network, no locking: concurrent writers race, last write wins.
    """

    def __init__(
        self,
        storage: KeyValueStorage,
        key: str = "guestCart",
        default_name: str = DEFAULT_PRODUCT_NAME,
    ):
        self.storage = storage
        self.key = key
        self.default_name = default_name

    # ---- primitives ----

    def read(self) -> list[CartLine]:
        raw = self.storage.get_item(self.key)
        if not raw:
            return []

        try:
            decoded = json.loads(raw)
        except ValueError:
            logger.warning("Discarding unreadable guest cart under %r", self.key)
            return []

        return normalize_lines(decoded, self.default_name)

    def write(self, lines: list) -> list[CartLine]:
        """
        Persist `lines` (CartLine objects or raw dicts) after normalization.

        Returns the normalized lines, i.e. exactly what was stored.
        """
        normalized = normalize_lines(lines, self.default_name)
        self.storage.set_item(
            self.key,
            json.dumps([line.as_payload() for line in normalized]),
        )
        return normalized

    def clear(self) -> None:
        self.storage.remove_item(self.key)

    # ---- guest cart operations ----

    def add_line(self, line: CartLine | dict) -> list[CartLine]:
        """Add a line, or increment the quantity of the line with the same sku."""
        return self.write([*self.read(), line])

    def update_quantity(self, sku: str, quantity: int) -> list[CartLine]:
        """
        Set the quantity of `sku`. A non-positive quantity drops the line
        on write.
        """
        updated = [
            {**line.as_payload(), "quantity": quantity} if line.sku == sku else line
            for line in self.read()
        ]
        return self.write(updated)

    def remove_line(self, sku: str) -> list[CartLine]:
        return self.write([line for line in self.read() if line.sku != sku])

    def snapshot(self) -> CartSnapshot:
        lines = self.read()
        return CartSnapshot(
            items=lines,
            total_quantity=cart_count(lines),
            subtotal=cart_subtotal(lines),
        )
