# storefront/core/flash.py
from storefront.repositories.storage_repo import KeyValueStorage


class FlashMessages:
    """
    One-shot messages handed from one page to the next
    (e.g. the "could not sync local cart" warning set at sign-in).
    """

    def __init__(self, storage: KeyValueStorage, prefix: str = "flash:"):
        self.storage = storage
        self.prefix = prefix

    def _key(self, key: str) -> str:
        return f"{self.prefix}{key}"

    def set(self, key: str, value: str) -> None:
        if not isinstance(value, str) or not value:
            self.storage.remove_item(self._key(key))
            return
        self.storage.set_item(self._key(key), value)

    def consume(self, key: str) -> str:
        """Return the message (or "") and remove it."""
        value = self.storage.get_item(self._key(key)) or ""
        self.storage.remove_item(self._key(key))
        return value
