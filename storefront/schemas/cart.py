# storefront/schemas/cart.py
from enum import Enum
from typing import Any

from sqlmodel import SQLModel, Field


class SessionMode(str, Enum):
    """
    The client's belief about who is shopping.

    UNKNOWN is transient: it resolves once to GUEST or AUTHENTICATED
    and never comes back within the same session object.
    """

    GUEST = "guest"
    AUTHENTICATED = "authenticated"
    UNKNOWN = "unknown"


class CartLine(SQLModel):
    """
    One sku within a cart (guest or remote).

    Only ever built by the normalizer, so every instance is valid:
      - sku is non-empty and unique within its cart
      - quantity >= 1
      - price is finite (not authoritative; the server reprices)
    """

    sku: str = Field(min_length=1)
    product_name: str = Field(min_length=1)
    variant_name: str | None = None
    price: float = 0.0
    quantity: int = Field(gt=0)

    @property
    def line_total(self) -> float:
        return self.price * self.quantity

    def as_payload(self) -> dict[str, Any]:
        """camelCase shape used in storage and on the wire."""
        return {
            "sku": self.sku,
            "productName": self.product_name,
            "variantName": self.variant_name,
            "price": self.price,
            "quantity": self.quantity,
        }


class CartSnapshot(SQLModel):
    """
    Full cart as last seen, with simple totals.
    """

    items: list[CartLine] = Field(default_factory=list)
    total_quantity: int = 0
    subtotal: float = 0.0


class AddLinePayload(SQLModel):
    """
    Body for adding a line to the remote cart.
    """

    sku: str = Field(min_length=1)
    quantity: int = Field(gt=0)


class UpdateLinePayload(SQLModel):
    """
    Body for changing the quantity of a remote line.
    """

    quantity: int = Field(gt=0)


class ApiEnvelope(SQLModel):
    """
    Uniform response envelope of the storefront API.
    """

    data: Any = None
    message: str | None = "OK"
    errors: list[Any] | None = Field(default_factory=list)
    meta: dict[str, Any] | None = Field(default_factory=dict)
