# storefront/services/cart_gateway.py
from urllib.parse import quote

from storefront.core.api_client import ApiClient
from storefront.schemas.cart import (
    AddLinePayload,
    ApiEnvelope,
    CartSnapshot,
    UpdateLinePayload,
)
from storefront.services.normalizer import (
    DEFAULT_PRODUCT_NAME,
    cart_count,
    cart_subtotal,
    normalize_lines,
)


class RemoteCartGateway:
    """
    The only component that talks to the server's cart endpoints.

    Every operation:
      - requires a bearer credential (UnauthorizedError otherwise)
      - returns the full cart snapshot from the response, normalized
      - lets ApiError / TransportError / UnauthorizedError propagate;
        nothing is retried here
    """

    def __init__(
        self,
        client: ApiClient,
        api_prefix: str = "/api/v1",
        default_name: str = DEFAULT_PRODUCT_NAME,
    ):
        self.client = client
        self.api_prefix = api_prefix.rstrip("/")
        self.default_name = default_name

    # ---- internal helpers ----

    def _cart_path(self) -> str:
        return f"{self.api_prefix}/cart"

    def _line_path(self, sku: str) -> str:
        return f"{self._cart_path()}/items/{quote(sku, safe='')}"

    def _to_snapshot(self, envelope: ApiEnvelope) -> CartSnapshot:
        data = envelope.data if isinstance(envelope.data, dict) else {}
        lines = normalize_lines(data.get("items"), self.default_name)
        return CartSnapshot(
            items=lines,
            total_quantity=cart_count(lines),
            subtotal=cart_subtotal(lines),
        )

    # ---- public operations ----

    async def get_cart(self) -> CartSnapshot:
        envelope = await self.client.get(self._cart_path())
        return self._to_snapshot(envelope)

    async def add_line(self, sku: str, quantity: int) -> CartSnapshot:
        """
        Add `quantity` of `sku`. The server merges into an existing line
        with the same sku.
        """
        payload = AddLinePayload(sku=sku, quantity=quantity)
        envelope = await self.client.post(self._cart_path() + "/items", json=payload.model_dump())
        return self._to_snapshot(envelope)

    async def update_line(self, sku: str, quantity: int) -> CartSnapshot:
        payload = UpdateLinePayload(quantity=quantity)
        envelope = await self.client.patch(self._line_path(sku), json=payload.model_dump())
        return self._to_snapshot(envelope)

    async def remove_line(self, sku: str) -> CartSnapshot:
        envelope = await self.client.delete(self._line_path(sku))
        return self._to_snapshot(envelope)

    async def clear(self) -> CartSnapshot:
        envelope = await self.client.delete(self._cart_path())
        return self._to_snapshot(envelope)
