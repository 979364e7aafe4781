# storefront/core/config.py
from functools import lru_cache
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """
    Centralized client settings loaded from environment.

    Optional env vars (.env):
      - API_BASE_URL (origin of the storefront API)
      - STORAGE_DATABASE_URL (durable key-value storage, SQLite by default)
      - HTTP_TIMEOUT_SECONDS (unset => transport default)

    Storage keys and cookie/header names match what the web storefront
    already writes, so an existing guest cart is picked up as-is.
    """

    PROJECT_NAME: str = "Storefront Cart Client"
    API_BASE_URL: str = "http://localhost:8000"
    API_V1_STR: str = "/api/v1"

    # Durable client-side storage
    STORAGE_DATABASE_URL: str = "sqlite:///./storefront_storage.db"
    GUEST_CART_KEY: str = "guestCart"
    AUTH_TOKEN_KEY: str = "authToken"
    FLASH_PREFIX: str = "flash:"

    # CSRF double-submit cookie echoed on mutating requests
    CSRF_COOKIE_NAME: str = "sg_csrf"
    CSRF_HEADER_NAME: str = "X-CSRF-Token"

    HTTP_TIMEOUT_SECONDS: float | None = None

    DEFAULT_PRODUCT_NAME: str = "Producto"
    CART_SYNC_WARNING: str = "No se pudo sincronizar el carrito local."

    model_config = SettingsConfigDict(env_file=".env", extra="ignore")


@lru_cache
def get_settings() -> Settings:
    """
    Cached settings loader.
    Ensures we don't re-parse .env on every import.
    """
    return Settings()
