# storefront/repositories/storage_repo.py
from abc import ABC, abstractmethod
from datetime import datetime, timezone

from sqlalchemy.engine import Engine
from sqlmodel import Session

from storefront.database import create_db_and_tables
from storefront.models.storage import StorageEntry


class KeyValueStorage(ABC):
    """
    Minimal origin-scoped key-value storage, shaped after Web Storage.

    Implementations never lock: two writers racing on the same key
    resolve as last write wins.
    """

    @abstractmethod
    def get_item(self, key: str) -> str | None: ...

    @abstractmethod
    def set_item(self, key: str, value: str) -> None: ...

    @abstractmethod
    def remove_item(self, key: str) -> None: ...


class SqlKeyValueStorage(KeyValueStorage):
    """Durable storage backed by the `storage_entries` table."""

    def __init__(self, engine: Engine):
        self.engine = engine
        create_db_and_tables(engine)

    def get_item(self, key: str) -> str | None:
        with Session(self.engine) as session:
            entry = session.get(StorageEntry, key)
            return entry.value if entry else None

    def set_item(self, key: str, value: str) -> None:
        with Session(self.engine) as session:
            entry = session.get(StorageEntry, key)
            if entry:
                entry.value = value
                entry.updated_at = datetime.now(timezone.utc)
            else:
                entry = StorageEntry(key=key, value=value)
            session.add(entry)
            session.commit()

    def remove_item(self, key: str) -> None:
        with Session(self.engine) as session:
            entry = session.get(StorageEntry, key)
            if entry:
                session.delete(entry)
                session.commit()


class MemoryKeyValueStorage(KeyValueStorage):
    """
    Process-lifetime storage.

    Used as "session storage" for one-shot flash messages and as the
    in-memory fake in tests.
    """

    def __init__(self, initial: dict[str, str] | None = None):
        self._data: dict[str, str] = dict(initial or {})

    def get_item(self, key: str) -> str | None:
        return self._data.get(key)

    def set_item(self, key: str, value: str) -> None:
        self._data[key] = value

    def remove_item(self, key: str) -> None:
        self._data.pop(key, None)

    def keys(self) -> list[str]:
        return list(self._data)
