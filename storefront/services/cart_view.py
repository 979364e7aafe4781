# storefront/services/cart_view.py
import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from enum import Enum

from storefront.core.errors import ApiError, UnauthorizedError
from storefront.core.flash import FlashMessages
from storefront.core.session import SessionContext
from storefront.schemas.cart import CartLine, CartSnapshot, SessionMode
from storefront.services.cart_gateway import RemoteCartGateway
from storefront.services.local_cart import LocalCartStore
from storefront.services.normalizer import cart_count, cart_subtotal, parse_quantity
from storefront.services.reconciliation import SYNC_WARNING_KEY, ReconciliationCoordinator

logger = logging.getLogger(__name__)


class ResponsePolicy(str, Enum):
    """
    How a remote response updates the in-memory lines.

    OVERWRITE_ON_RESPONSE: every response replaces the whole list, in
    arrival order. Remote mutations are not sequenced, so a slow earlier
    response can overwrite a newer one (last write wins).
    """

    OVERWRITE_ON_RESPONSE = "overwrite-on-response"


class MutationStatus(str, Enum):
    OK = "ok"
    UNAUTHORIZED = "unauthorized"
    FAILED = "failed"


@dataclass
class MutationOutcome:
    """
    Result of a cart read or mutation, as seen by the UI.

    OK           => `lines` is the fresh authoritative list
    UNAUTHORIZED => the session fell back to guest; `lines` is the guest cart
    FAILED       => nothing changed; `error` says why
    """

    status: MutationStatus
    lines: list[CartLine] = field(default_factory=list)
    error: str = ""

    @property
    def ok(self) -> bool:
        return self.status == MutationStatus.OK


class CartViewModel:
    """
    Per-page cart state (catalog, product detail, cart, checkout).

    Routing by session mode:
      - GUEST         => LocalCartStore only
      - AUTHENTICATED => RemoteCartGateway only
      - UNKNOWN       => no writes; mutations wait until the session is
                         resolved, then run against the resolved target

    A 401 from the gateway flips the session to GUEST and the view shows
    the guest cart as stored; the last remote snapshot is never copied
    into it.
    """

    response_policy = ResponsePolicy.OVERWRITE_ON_RESPONSE

    def __init__(
        self,
        session: SessionContext,
        local_store: LocalCartStore,
        gateway: RemoteCartGateway,
        coordinator: ReconciliationCoordinator | None = None,
        flash: FlashMessages | None = None,
    ):
        self.session = session
        self.local_store = local_store
        self.gateway = gateway
        self.coordinator = coordinator
        self.flash = flash

        self.lines: list[CartLine] = []
        self.status = "idle"
        self.error = ""
        self.sync_warning = ""
        self.mounted = True

        self.session.on_mode_change(self._on_mode_change)

    # ---- derived state ----

    @property
    def mode(self) -> SessionMode:
        return self.session.mode

    @property
    def is_verifying(self) -> bool:
        return self.session.mode == SessionMode.UNKNOWN

    @property
    def count(self) -> int:
        return cart_count(self.lines)

    @property
    def subtotal(self) -> float:
        return cart_subtotal(self.lines)

    def snapshot(self) -> CartSnapshot:
        return CartSnapshot(items=list(self.lines), total_quantity=self.count, subtotal=self.subtotal)

    # ---- internal helpers ----

    def _apply(self, lines: list[CartLine]) -> None:
        # overwrite-on-response; late callbacks on a closed view are no-ops
        if not self.mounted:
            return
        self.lines = list(lines)

    def _on_mode_change(self, previous: SessionMode, current: SessionMode) -> None:
        if current == SessionMode.GUEST and previous == SessionMode.AUTHENTICATED:
            self._apply(self.local_store.read())

    def _fall_back_to_guest(self) -> MutationOutcome:
        logger.info("Cart request unauthorized; continuing as guest")
        self.session.mark_guest("unauthorized")
        if self.coordinator is not None:
            self.coordinator.reset()
        self._apply(self.local_store.read())
        return MutationOutcome(MutationStatus.UNAUTHORIZED, list(self.lines))

    def _failed(self, message: str) -> MutationOutcome:
        if self.mounted:
            self.error = message
        return MutationOutcome(MutationStatus.FAILED, list(self.lines), message)

    async def _remote(
        self,
        call: Callable[..., Awaitable[CartSnapshot]],
        *args,
    ) -> MutationOutcome:
        try:
            snapshot = await call(*args)
        except UnauthorizedError:
            return self._fall_back_to_guest()
        except ApiError as exc:
            return self._failed(exc.message)

        self._apply(snapshot.items)
        return MutationOutcome(MutationStatus.OK, list(snapshot.items))

    def _local(self, lines: list[CartLine]) -> MutationOutcome:
        self._apply(lines)
        return MutationOutcome(MutationStatus.OK, list(lines))

    async def _resolved_mode(self) -> SessionMode:
        """Queue behind session resolution; never write while UNKNOWN."""
        if self.session.mode != SessionMode.UNKNOWN:
            return self.session.mode
        return await self.session.resolve(self.gateway.get_cart)

    # ---- public operations ----

    async def load(self) -> MutationOutcome:
        """Initial page load: settle the session and show the current cart."""
        self.status = "loading"
        self.error = ""
        try:
            if self.session.mode == SessionMode.UNKNOWN:
                outcome = await self._load_while_verifying()
            else:
                outcome = await self.refresh()
        finally:
            if self.mounted:
                self.status = "idle"

        if self.flash is not None and self.mounted:
            self.sync_warning = self.flash.consume(SYNC_WARNING_KEY) or self.sync_warning
        return outcome

    async def _load_while_verifying(self) -> MutationOutcome:
        # The probe doubles as the first read when the credential is accepted.
        probed: list[CartSnapshot] = []

        async def probe() -> None:
            probed.append(await self.gateway.get_cart())

        mode = await self.session.resolve(probe)
        if mode == SessionMode.AUTHENTICATED and probed:
            self._apply(probed[0].items)
            return MutationOutcome(MutationStatus.OK, list(probed[0].items))
        return await self.refresh()

    async def refresh(self) -> MutationOutcome:
        mode = await self._resolved_mode()
        if mode == SessionMode.AUTHENTICATED:
            return await self._remote(self.gateway.get_cart)
        return self._local(self.local_store.read())

    async def add_line(
        self,
        sku: str,
        quantity: int = 1,
        product_name: str | None = None,
        variant_name: str | None = None,
        price: float | None = None,
    ) -> MutationOutcome:
        """
        Add `quantity` of `sku`. Guest carts keep the display data given
        here; the remote cart takes it from the catalog.
        """
        sku = sku.strip() if isinstance(sku, str) else ""
        qty = parse_quantity(quantity)
        if not sku or qty is None:
            return self._failed("Invalid cart line")

        self.error = ""
        mode = await self._resolved_mode()
        if mode == SessionMode.AUTHENTICATED:
            return await self._remote(self.gateway.add_line, sku, qty)

        return self._local(
            self.local_store.add_line(
                {
                    "sku": sku,
                    "productName": product_name,
                    "variantName": variant_name,
                    "price": price,
                    "quantity": qty,
                }
            )
        )

    async def update_quantity(self, sku: str, quantity: int) -> MutationOutcome:
        sku = sku.strip() if isinstance(sku, str) else ""
        qty = parse_quantity(quantity)
        if not sku or qty is None:
            return self._failed("Invalid quantity")

        self.error = ""
        mode = await self._resolved_mode()
        if mode == SessionMode.AUTHENTICATED:
            return await self._remote(self.gateway.update_line, sku, qty)
        return self._local(self.local_store.update_quantity(sku, qty))

    async def remove_line(self, sku: str) -> MutationOutcome:
        sku = sku.strip() if isinstance(sku, str) else ""
        if not sku:
            return self._failed("Invalid cart line")

        self.error = ""
        mode = await self._resolved_mode()
        if mode == SessionMode.AUTHENTICATED:
            return await self._remote(self.gateway.remove_line, sku)
        return self._local(self.local_store.remove_line(sku))

    async def clear(self) -> MutationOutcome:
        self.error = ""
        mode = await self._resolved_mode()
        if mode == SessionMode.AUTHENTICATED:
            return await self._remote(self.gateway.clear)

        self.local_store.clear()
        return self._local([])

    async def sign_in(self, token: str, source: str = "login") -> MutationOutcome:
        """
        Handle a fresh credential (login, register, verify, oauth).

        The session event runs reconciliation; afterwards the view reads
        from the server cart.
        """
        await self.session.credential_obtained(token, source)
        if self.flash is not None and self.mounted:
            self.sync_warning = self.flash.consume(SYNC_WARNING_KEY)
        return await self.refresh()

    def sign_out(self) -> None:
        """
        Explicit sign-out. The guest cart starts empty: nothing from the
        remote cart is carried over to this device.
        """
        self.local_store.clear()
        self.session.mark_guest("sign-out")
        if self.coordinator is not None:
            self.coordinator.reset()
        self._apply([])

    def close(self) -> None:
        """Unmount: responses still in flight no longer touch this view."""
        self.mounted = False
        self.session.remove_mode_listener(self._on_mode_change)
