# storefront/services/reconciliation.py
import asyncio
import logging
from dataclasses import dataclass, field
from enum import Enum

from storefront.core.errors import ApiError, UnauthorizedError
from storefront.core.flash import FlashMessages
from storefront.core.session import SessionContext
from storefront.schemas.cart import CartLine
from storefront.services.cart_gateway import RemoteCartGateway
from storefront.services.local_cart import LocalCartStore

logger = logging.getLogger(__name__)

SYNC_WARNING_KEY = "cartSyncError"


class ReconciliationState(str, Enum):
    IDLE = "idle"
    RUNNING = "running"
    DONE = "done"


@dataclass
class ReconciliationResult:
    ok: bool
    merged_items: list[CartLine] = field(default_factory=list)
    failed_items: list[CartLine] = field(default_factory=list)

    @property
    def failed_count(self) -> int:
        return len(self.failed_items)


class ReconciliationCoordinator:
    """
    Merges the guest cart into the server cart when a credential is obtained.

    Algorithm:
      1. read the guest cart; empty => success, no requests
      2. add each line to the server cart, one request at a time, in order;
         a failing line does not stop the others
         (a 401 does: the remaining lines are kept and the session falls
         back to guest)
      3. all accepted  => guest cart deleted, success
         some rejected => guest cart rewritten with exactly the rejected
                          lines (quantities as read in step 1), failure

    Lines that made it to the server are gone locally, so running again
    only resubmits what failed. The server merges by sku, so a crash
    between a successful request and the local delete can over-count a
    quantity on retry but never duplicate a line.

    State machine: IDLE -> RUNNING -> DONE (success) or back to IDLE
    (partial failure, retry allowed). Triggers while RUNNING join the
    in-flight run; triggers while DONE are no-ops.
    """

    def __init__(
        self,
        local_store: LocalCartStore,
        gateway: RemoteCartGateway,
        flash: FlashMessages | None = None,
        session: SessionContext | None = None,
        warning_message: str = "No se pudo sincronizar el carrito local.",
    ):
        self.local_store = local_store
        self.gateway = gateway
        self.flash = flash
        self.session = session
        self.warning_message = warning_message
        self.state = ReconciliationState.IDLE
        self.last_result: ReconciliationResult | None = None
        self._run: asyncio.Future | None = None

    async def reconcile(self) -> ReconciliationResult:
        if self.state == ReconciliationState.DONE and self.last_result is not None:
            return self.last_result

        if self.state != ReconciliationState.RUNNING or self._run is None:
            self.state = ReconciliationState.RUNNING
            self._run = asyncio.ensure_future(self._reconcile())

        return await asyncio.shield(self._run)

    async def handle_credential_obtained(self, token: str, source: str) -> ReconciliationResult:
        """Session subscriber: each fresh credential is a new sign-in transition."""
        if self.state == ReconciliationState.DONE:
            self.reset()
        logger.info("Credential obtained via %s; reconciling guest cart", source)
        return await self.reconcile()

    def reset(self) -> None:
        """Back to IDLE (sign-out). An in-flight run is left to finish."""
        if self.state == ReconciliationState.RUNNING:
            return
        self.state = ReconciliationState.IDLE
        self.last_result = None

    # ---- internal helpers ----

    async def _reconcile(self) -> ReconciliationResult:
        try:
            result = await self._merge()
        except BaseException:
            self.state = ReconciliationState.IDLE
            raise

        self.last_result = result
        self.state = ReconciliationState.DONE if result.ok else ReconciliationState.IDLE
        return result

    async def _merge(self) -> ReconciliationResult:
        lines = self.local_store.read()
        if not lines:
            return ReconciliationResult(ok=True)

        logger.info("Merging %d guest cart line(s) into the server cart", len(lines))

        merged: list[CartLine] = []
        failed: list[CartLine] = []
        unauthorized = False
        try:
            for index, line in enumerate(lines):
                try:
                    await self.gateway.add_line(line.sku, line.quantity)
                except UnauthorizedError:
                    # the credential is gone; the rest would be rejected too
                    logger.warning("Credential rejected while merging sku %r", line.sku)
                    failed.extend(lines[index:])
                    unauthorized = True
                    break
                except ApiError as exc:
                    logger.warning(
                        "Could not merge sku %r (status %s): %s",
                        line.sku,
                        exc.status,
                        exc.message,
                    )
                    failed.append(line)
                    continue
                except Exception:
                    logger.exception("Unexpected error merging sku %r", line.sku)
                    failed.append(line)
                    continue
                merged.append(line)
        except BaseException:
            # cancelled mid-run: accepted lines must not be resubmitted
            accepted = {line.sku for line in merged}
            self.local_store.write([line for line in lines if line.sku not in accepted])
            raise

        if not failed:
            self.local_store.clear()
            logger.info("Guest cart merged; local copy cleared")
            return ReconciliationResult(ok=True, merged_items=merged)

        kept = self.local_store.write(failed)
        logger.warning("%d of %d guest cart line(s) kept for retry", len(kept), len(lines))
        if self.flash is not None:
            self.flash.set(SYNC_WARNING_KEY, self.warning_message)
        if unauthorized and self.session is not None:
            self.session.mark_guest("unauthorized")

        return ReconciliationResult(ok=False, merged_items=merged, failed_items=kept)
