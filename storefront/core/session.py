# storefront/core/session.py
import asyncio
import logging
import time
from collections.abc import Awaitable, Callable
from typing import Any

from jose import jwt, JWTError

from storefront.core.errors import ApiError, UnauthorizedError
from storefront.repositories.storage_repo import KeyValueStorage
from storefront.schemas.cart import SessionMode

logger = logging.getLogger(__name__)

CredentialListener = Callable[[str, str], Awaitable[Any]]
ModeListener = Callable[[SessionMode, SessionMode], Any]


class AuthTokenStore:
    """
    Bearer credential persisted in durable storage.
    Blank values are never stored.
    """

    def __init__(self, storage: KeyValueStorage, key: str = "authToken"):
        self.storage = storage
        self.key = key

    def get(self) -> str:
        return self.storage.get_item(self.key) or ""

    def set(self, token: str) -> None:
        value = token.strip() if isinstance(token, str) else ""
        if not value:
            self.storage.remove_item(self.key)
            return
        self.storage.set_item(self.key, value)

    def clear(self) -> None:
        self.storage.remove_item(self.key)


def token_is_expired(token: str, now: float | None = None) -> bool:
    """
    Check the `exp` claim without verifying the signature.

    Only the server can say a credential is valid; this just avoids a
    round-trip for one that has visibly expired. Opaque (non-JWT) tokens
    and tokens without `exp` are not considered expired.
    """
    try:
        claims = jwt.get_unverified_claims(token)
    except JWTError:
        return False

    exp = claims.get("exp")
    if isinstance(exp, bool) or not isinstance(exp, (int, float)):
        return False
    return exp <= (time.time() if now is None else now)


class SessionContext:
    """
    Explicit session state, constructed once per application instance.

    Holds the SessionMode and the credential store, and publishes:
      - credential events ("credential just became valid") to subscribers
      - mode transitions to mode listeners

    UNKNOWN resolves exactly once; there is no way back to it.
    """

    def __init__(
        self,
        token_store: AuthTokenStore,
        mode: SessionMode = SessionMode.UNKNOWN,
    ):
        self.token_store = token_store
        self._mode = mode
        self._resolved = asyncio.Event()
        if mode != SessionMode.UNKNOWN:
            self._resolved.set()
        self._resolving: asyncio.Task | None = None
        self._credential_listeners: list[CredentialListener] = []
        self._mode_listeners: list[ModeListener] = []

    @property
    def mode(self) -> SessionMode:
        return self._mode

    @property
    def token(self) -> str:
        return self.token_store.get()

    @property
    def is_authenticated(self) -> bool:
        return self._mode == SessionMode.AUTHENTICATED

    def subscribe(self, listener: CredentialListener) -> None:
        self._credential_listeners.append(listener)

    def on_mode_change(self, listener: ModeListener) -> None:
        self._mode_listeners.append(listener)

    def remove_mode_listener(self, listener: ModeListener) -> None:
        if listener in self._mode_listeners:
            self._mode_listeners.remove(listener)

    async def wait_resolved(self) -> SessionMode:
        await self._resolved.wait()
        return self._mode

    # ---- transitions ----

    def _set_mode(self, mode: SessionMode, reason: str) -> None:
        previous = self._mode
        self._mode = mode
        self._resolved.set()
        if previous == mode:
            return

        logger.info("Session %s -> %s (%s)", previous.value, mode.value, reason)
        for listener in list(self._mode_listeners):
            listener(previous, mode)

    async def resolve(self, probe: Callable[[], Awaitable[Any]]) -> SessionMode:
        """
        Settle an UNKNOWN session.

        Flow:
          1. no stored credential           => GUEST
          2. credential visibly expired     => GUEST (credential dropped)
          3. otherwise await `probe()`, an authenticated read:
               - UnauthorizedError          => GUEST (credential dropped)
               - success or any other error => AUTHENTICATED

        Concurrent callers share one resolution. No-op once resolved.
        """
        if self._mode != SessionMode.UNKNOWN:
            return self._mode

        if self._resolving is None:
            self._resolving = asyncio.ensure_future(self._resolve(probe))
        try:
            await asyncio.shield(self._resolving)
        except Exception:
            # still UNKNOWN; let the next caller probe again
            self._resolving = None
            raise
        return self._mode

    async def _resolve(self, probe: Callable[[], Awaitable[Any]]) -> None:
        token = self.token
        if not token:
            self._set_mode(SessionMode.GUEST, "no credential")
            return

        if token_is_expired(token):
            self.token_store.clear()
            self._set_mode(SessionMode.GUEST, "credential expired")
            return

        try:
            await probe()
        except UnauthorizedError:
            self.token_store.clear()
            self._set_mode(SessionMode.GUEST, "credential rejected")
            return
        except ApiError as exc:
            logger.warning("Session probe failed with status %s; keeping credential", exc.status)

        self._set_mode(SessionMode.AUTHENTICATED, "credential accepted")

    async def credential_obtained(self, token: str, source: str = "login") -> None:
        """
        Record a freshly issued credential and notify subscribers.

        This is the single "login completed" event, whatever the source
        (login, register, verify, oauth).
        """
        value = token.strip() if isinstance(token, str) else ""
        if not value:
            return

        self.token_store.set(value)
        self._set_mode(SessionMode.AUTHENTICATED, source)

        for listener in list(self._credential_listeners):
            await listener(value, source)

    def mark_guest(self, reason: str = "sign-out") -> None:
        """Drop the credential and switch to GUEST (sign-out or 401)."""
        self.token_store.clear()
        self._set_mode(SessionMode.GUEST, reason)
