# storefront/models/storage.py
from datetime import datetime, timezone

from sqlmodel import SQLModel, Field


class StorageEntry(SQLModel, table=True):
    """
    One key of the client's durable key-value storage.

    Values are opaque strings (the guest cart is a JSON array,
    the auth token a raw bearer credential).
    """

    __tablename__ = "storage_entries"

    key: str = Field(primary_key=True, max_length=255)

    value: str

    updated_at: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc),
    )
