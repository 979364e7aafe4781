# storefront/main.py
from contextlib import asynccontextmanager
import logging

import httpx

from storefront.core.api_client import ApiClient
from storefront.core.config import Settings, get_settings
from storefront.core.flash import FlashMessages
from storefront.core.session import AuthTokenStore, SessionContext
from storefront.database import build_engine
from storefront.repositories.storage_repo import (
    KeyValueStorage,
    MemoryKeyValueStorage,
    SqlKeyValueStorage,
)
from storefront.services.cart_gateway import RemoteCartGateway
from storefront.services.cart_view import CartViewModel
from storefront.services.local_cart import LocalCartStore
from storefront.services.reconciliation import ReconciliationCoordinator

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger("storefront")


class Storefront:
    """
    Composition root: one instance per running application.

    Wiring:
      settings -> storage -> token store -> session
               -> api client -> gateway
               -> guest cart store -> flash -> reconciliation coordinator

    The coordinator is subscribed to the session's credential event, so
    every fresh sign-in merges the guest cart exactly once. Pages get
    their own CartViewModel via `cart_view()`, all sharing this state.
    """

    def __init__(
        self,
        settings: Settings,
        storage: KeyValueStorage,
        session_storage: KeyValueStorage,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.settings = settings
        self.storage = storage

        self.token_store = AuthTokenStore(storage, settings.AUTH_TOKEN_KEY)
        self.session = SessionContext(self.token_store)

        self.api_client = ApiClient(
            settings.API_BASE_URL,
            self.token_store.get,
            csrf_cookie_name=settings.CSRF_COOKIE_NAME,
            csrf_header_name=settings.CSRF_HEADER_NAME,
            timeout=settings.HTTP_TIMEOUT_SECONDS,
            transport=transport,
        )
        self.gateway = RemoteCartGateway(
            self.api_client,
            api_prefix=settings.API_V1_STR,
            default_name=settings.DEFAULT_PRODUCT_NAME,
        )
        self.local_cart = LocalCartStore(
            storage,
            key=settings.GUEST_CART_KEY,
            default_name=settings.DEFAULT_PRODUCT_NAME,
        )
        self.flash = FlashMessages(session_storage, settings.FLASH_PREFIX)
        self.coordinator = ReconciliationCoordinator(
            self.local_cart,
            self.gateway,
            flash=self.flash,
            session=self.session,
            warning_message=settings.CART_SYNC_WARNING,
        )
        self.session.subscribe(self.coordinator.handle_credential_obtained)

    def cart_view(self) -> CartViewModel:
        return CartViewModel(
            self.session,
            self.local_cart,
            self.gateway,
            coordinator=self.coordinator,
            flash=self.flash,
        )

    async def aclose(self) -> None:
        await self.api_client.aclose()


def create_storefront(
    settings: Settings | None = None,
    storage: KeyValueStorage | None = None,
    session_storage: KeyValueStorage | None = None,
    transport: httpx.AsyncBaseTransport | None = None,
) -> Storefront:
    """
    Build a Storefront. Defaults:
      - settings from env / .env
      - durable storage in the SQLite file from STORAGE_DATABASE_URL
      - session storage in memory (gone when the process exits)
    """
    settings = settings or get_settings()
    if storage is None:
        storage = SqlKeyValueStorage(build_engine(settings.STORAGE_DATABASE_URL))
    if session_storage is None:
        session_storage = MemoryKeyValueStorage()
    return Storefront(settings, storage, session_storage, transport=transport)


@asynccontextmanager
async def storefront_lifespan(**kwargs):
    """
    Application lifespan handler.

    Startup:
      - open client storage, build the cart subsystem.

    Shutdown:
      - close the HTTP client.
    """
    logger.info("🔄 Startup: opening client storage...")
    try:
        storefront = create_storefront(**kwargs)
    except Exception as e:
        logger.error(f"❌ Startup: storage unavailable: {e}")
        raise
    logger.info("✅ Startup: %s ready.", storefront.settings.PROJECT_NAME)
    try:
        yield storefront
    finally:
        await storefront.aclose()
