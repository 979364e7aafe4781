from pathlib import Path

import httpx
import pytest

from fake_cart_api import FakeCartState, create_fake_cart_api
from storefront.core.api_client import ApiClient
from storefront.core.config import Settings
from storefront.core.errors import ApiError, TransportError
from storefront.core.flash import FlashMessages
from storefront.core.session import AuthTokenStore, SessionContext
from storefront.main import create_storefront
from storefront.repositories.storage_repo import MemoryKeyValueStorage
from storefront.schemas.cart import CartLine, CartSnapshot
from storefront.services.cart_gateway import RemoteCartGateway
from storefront.services.local_cart import LocalCartStore
from storefront.services.normalizer import cart_count, cart_subtotal

VALID_TOKEN = "token-shopper-001"


def pytest_collection_modifyitems(config, items):
    """Mark tests by the layer they exercise."""
    for item in items:
        name = Path(item.fspath).name
        if name in {"test_cart_gateway.py", "test_storefront_flow.py"}:
            item.add_marker(pytest.mark.integration)
        else:
            item.add_marker(pytest.mark.unit)


class FakeGateway:
    """
    Stand-in for RemoteCartGateway.add_line.

    Records every call in order; skus in `reject` answer with an ApiError,
    skus in `unreachable` with a TransportError.
    """

    def __init__(self, reject=(), unreachable=()):
        self.reject = set(reject)
        self.unreachable = set(unreachable)
        self.calls: list[tuple[str, int]] = []
        self.lines: dict[str, CartLine] = {}

    async def add_line(self, sku: str, quantity: int) -> CartSnapshot:
        self.calls.append((sku, quantity))
        if sku in self.unreachable:
            raise TransportError("Network error")
        if sku in self.reject:
            raise ApiError("Could not add item", 500)

        existing = self.lines.get(sku)
        if existing:
            self.lines[sku] = existing.model_copy(update={"quantity": existing.quantity + quantity})
        else:
            self.lines[sku] = CartLine(sku=sku, product_name="Producto", quantity=quantity)
        items = list(self.lines.values())
        return CartSnapshot(items=items, total_quantity=cart_count(items), subtotal=cart_subtotal(items))


@pytest.fixture
def settings():
    return Settings(_env_file=None, API_BASE_URL="http://testserver")


@pytest.fixture
def storage():
    return MemoryKeyValueStorage()


@pytest.fixture
def local_store(storage):
    return LocalCartStore(storage)


@pytest.fixture
def flash():
    return FlashMessages(MemoryKeyValueStorage())


@pytest.fixture
def cart_api():
    return FakeCartState(valid_tokens={VALID_TOKEN})


@pytest.fixture
def transport(cart_api):
    return httpx.ASGITransport(app=create_fake_cart_api(cart_api))


@pytest.fixture
def token_store(storage):
    return AuthTokenStore(storage)


@pytest.fixture
async def api_client(transport, token_store):
    client = ApiClient("http://testserver", token_store.get, transport=transport)
    yield client
    await client.aclose()


@pytest.fixture
def gateway(api_client):
    return RemoteCartGateway(api_client)


@pytest.fixture
def session(token_store):
    return SessionContext(token_store)


@pytest.fixture
async def storefront(settings, storage, transport):
    app = create_storefront(settings=settings, storage=storage, transport=transport)
    yield app
    await app.aclose()


@pytest.fixture
def fake_gateway_factory():
    return FakeGateway
