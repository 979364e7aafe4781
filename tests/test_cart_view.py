"""Tests for the per-page cart view model and its session-mode routing."""

import asyncio

import pytest

from conftest import VALID_TOKEN
from storefront.core.errors import ApiError, UnauthorizedError
from storefront.core.session import SessionContext
from storefront.schemas.cart import CartLine, CartSnapshot, SessionMode
from storefront.services.cart_view import CartViewModel, MutationStatus, ResponsePolicy


def _snapshot(*lines):
    items = [CartLine(sku=sku, product_name="Producto", quantity=qty) for sku, qty in lines]
    return CartSnapshot(items=items, total_quantity=sum(q for _, q in lines))


class ScriptedGateway:
    """Gateway whose responses are queued per call; records call names."""

    def __init__(self):
        self.calls: list[tuple] = []
        self.responses: list = []

    async def _next(self, name, *args):
        self.calls.append((name, *args))
        response = self.responses.pop(0) if self.responses else _snapshot()
        if isinstance(response, Exception):
            raise response
        if asyncio.iscoroutine(response):
            return await response
        return response

    async def get_cart(self):
        return await self._next("get_cart")

    async def add_line(self, sku, quantity):
        return await self._next("add_line", sku, quantity)

    async def update_line(self, sku, quantity):
        return await self._next("update_line", sku, quantity)

    async def remove_line(self, sku):
        return await self._next("remove_line", sku)

    async def clear(self):
        return await self._next("clear")


@pytest.fixture
def scripted():
    return ScriptedGateway()


@pytest.fixture
def guest_view(token_store, local_store, scripted):
    session = SessionContext(token_store, mode=SessionMode.GUEST)
    return CartViewModel(session, local_store, scripted)


@pytest.fixture
def authed_view(token_store, local_store, scripted):
    token_store.set(VALID_TOKEN)
    session = SessionContext(token_store, mode=SessionMode.AUTHENTICATED)
    return CartViewModel(session, local_store, scripted)


class TestGuestMode:
    async def test_mutations_go_to_local_store_only(self, guest_view, local_store, scripted):
        await guest_view.add_line("A", 2, product_name="Pie", price=4.5)
        await guest_view.add_line("A", 1)
        await guest_view.add_line("B", 1)
        await guest_view.update_quantity("B", 3)
        outcome = await guest_view.remove_line("A")

        assert outcome.ok
        assert [(line.sku, line.quantity) for line in outcome.lines] == [("B", 3)]
        assert [(line.sku, line.quantity) for line in local_store.read()] == [("B", 3)]
        assert scripted.calls == []

    async def test_add_keeps_display_data(self, guest_view):
        await guest_view.add_line("A", 2, product_name="Pie", variant_name="Small", price=4.5)

        assert guest_view.lines[0].product_name == "Pie"
        assert guest_view.count == 2
        assert guest_view.subtotal == 9.0

    async def test_clear(self, guest_view, local_store):
        await guest_view.add_line("A", 1)
        outcome = await guest_view.clear()

        assert outcome.ok
        assert guest_view.lines == []
        assert local_store.read() == []

    @pytest.mark.parametrize("sku,quantity", [("", 1), ("A", 0), ("A", -2), ("A", "x")])
    async def test_invalid_input_fails_without_io(self, guest_view, local_store, sku, quantity):
        outcome = await guest_view.add_line(sku, quantity)

        assert outcome.status == MutationStatus.FAILED
        assert guest_view.error
        assert local_store.read() == []

    async def test_refresh_reads_local_cart(self, guest_view, local_store):
        local_store.write([{"sku": "A", "quantity": 1}])
        outcome = await guest_view.refresh()
        assert [line.sku for line in outcome.lines] == ["A"]


class TestAuthenticatedMode:
    async def test_mutations_go_to_gateway_only(self, authed_view, local_store, scripted):
        scripted.responses = [_snapshot(("A", 1)), _snapshot(("A", 5)), _snapshot(), _snapshot()]

        await authed_view.add_line("A", 1)
        await authed_view.update_quantity("A", 5)
        await authed_view.remove_line("A")
        await authed_view.clear()

        assert scripted.calls == [
            ("add_line", "A", 1),
            ("update_line", "A", 5),
            ("remove_line", "A"),
            ("clear",),
        ]
        assert local_store.read() == []

    async def test_response_replaces_lines_wholesale(self, authed_view, scripted):
        scripted.responses = [_snapshot(("A", 1), ("B", 2))]
        await authed_view.add_line("A", 1)

        assert [(line.sku, line.quantity) for line in authed_view.lines] == [("A", 1), ("B", 2)]
        assert authed_view.response_policy == ResponsePolicy.OVERWRITE_ON_RESPONSE

    async def test_late_response_overwrites_newer_state(self, authed_view, scripted):
        slow = asyncio.get_running_loop().create_future()

        async def slow_response():
            return await slow

        scripted.responses = [slow_response(), _snapshot(("A", 2))]

        first = asyncio.ensure_future(authed_view.add_line("A", 1))
        await asyncio.sleep(0)
        await authed_view.add_line("A", 1)
        assert authed_view.lines[0].quantity == 2

        slow.set_result(_snapshot(("A", 1)))
        await first
        assert authed_view.lines[0].quantity == 1

    async def test_api_error_is_a_failed_outcome(self, authed_view, scripted):
        scripted.responses = [ApiError("Not enough stock", 400)]

        outcome = await authed_view.add_line("A", 1)

        assert outcome.status == MutationStatus.FAILED
        assert outcome.error == "Not enough stock"
        assert authed_view.mode == SessionMode.AUTHENTICATED


class TestUnauthorizedFallback:
    async def test_401_flips_to_guest_without_raising(self, authed_view, token_store, local_store, scripted):
        scripted.responses = [_snapshot(("A", 3)), UnauthorizedError()]
        await authed_view.refresh()

        outcome = await authed_view.update_quantity("A", 1)

        assert outcome.status == MutationStatus.UNAUTHORIZED
        assert authed_view.mode == SessionMode.GUEST
        assert token_store.get() == ""
        assert authed_view.lines == []
        assert local_store.read() == []

    async def test_next_mutation_goes_to_local_store(self, authed_view, local_store, scripted):
        scripted.responses = [UnauthorizedError()]
        await authed_view.add_line("A", 1)

        outcome = await authed_view.add_line("A", 2)

        assert outcome.ok
        assert [(line.sku, line.quantity) for line in local_store.read()] == [("A", 2)]
        assert len(scripted.calls) == 1


class TestUnknownMode:
    async def test_mutation_waits_for_resolution(self, token_store, local_store, scripted):
        session = SessionContext(token_store)
        view = CartViewModel(session, local_store, scripted)
        assert view.is_verifying

        outcome = await view.add_line("A", 1)

        assert outcome.ok
        assert view.mode == SessionMode.GUEST
        assert [line.sku for line in local_store.read()] == ["A"]
        assert scripted.calls == []

    async def test_mutation_after_accepted_credential_goes_remote(self, token_store, local_store, scripted):
        token_store.set(VALID_TOKEN)
        session = SessionContext(token_store)
        view = CartViewModel(session, local_store, scripted)
        scripted.responses = [_snapshot(), _snapshot(("A", 1))]

        outcome = await view.add_line("A", 1)

        assert outcome.ok
        assert scripted.calls == [("get_cart",), ("add_line", "A", 1)]
        assert local_store.read() == []

    async def test_load_uses_probe_as_first_read(self, token_store, local_store, scripted):
        token_store.set(VALID_TOKEN)
        view = CartViewModel(SessionContext(token_store), local_store, scripted)
        scripted.responses = [_snapshot(("A", 2))]

        outcome = await view.load()

        assert outcome.ok
        assert view.mode == SessionMode.AUTHENTICATED
        assert scripted.calls == [("get_cart",)]
        assert view.lines[0].quantity == 2
        assert view.status == "idle"


class TestSignOutAndUnmount:
    async def test_sign_out_starts_an_empty_guest_cart(self, authed_view, local_store, scripted):
        local_store.write([{"sku": "LEFTOVER", "quantity": 1}])
        scripted.responses = [_snapshot(("A", 3))]
        await authed_view.refresh()

        authed_view.sign_out()

        assert authed_view.mode == SessionMode.GUEST
        assert authed_view.lines == []
        assert local_store.read() == []

    async def test_closed_view_ignores_late_responses(self, authed_view, scripted):
        pending = asyncio.get_running_loop().create_future()

        async def late():
            return await pending

        scripted.responses = [late()]
        request = asyncio.ensure_future(authed_view.add_line("A", 1))
        await asyncio.sleep(0)

        authed_view.close()
        pending.set_result(_snapshot(("A", 1)))
        outcome = await request

        assert outcome.ok
        assert authed_view.lines == []
