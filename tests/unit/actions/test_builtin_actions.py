"""Unit tests for the built-in commerce actions."""

import pytest

from chandler.actions.builtin import BUILTIN_DEFINITIONS, BUILTIN_HANDLERS
from chandler.actions.models import ActionContext
from chandler.actions.registry import ActionRegistry
from chandler.commerce.inmemory import InMemoryCommerceClient
from chandler.conversation.commands import UpdateCart, UpdateContext
from chandler.conversation.models import ConversationState
from chandler.errors import CommerceError, SecurityViolation
from chandler.security.judge import SecurityJudge


def make_context(
    state: ConversationState,
    commerce: InMemoryCommerceClient,
    judge: SecurityJudge | None = None,
) -> ActionContext:
    return ActionContext(
        thread_id=state.thread_id,
        state=state,
        commerce=commerce,
        judge=judge,
        authenticated=True,
    )


class TestBuiltinCatalog:
    """Tests for the built-in definitions."""

    def test_every_definition_has_a_handler(self) -> None:
        """Definitions and handlers line up one to one."""
        assert {d["id"] for d in BUILTIN_DEFINITIONS} == set(BUILTIN_HANDLERS)

    def test_all_register(self, registry: ActionRegistry) -> None:
        """Every built-in definition is valid."""
        assert len(registry) == len(BUILTIN_DEFINITIONS)

    def test_auth_requirements(self, registry: ActionRegistry) -> None:
        """Checkout and b2b account actions require authentication."""
        requires_auth = {d.id for d in registry.get_definitions() if d.requires_auth}
        assert {
            "checkout",
            "request_quote",
            "request_tax_exemption",
            "get_orders",
            "track_order",
            "create_purchase_order",
            "get_account_credit",
        } <= requires_auth
        assert "clear_cart" not in requires_auth
        assert "search_products" not in requires_auth


class TestSearchAndDetails:
    """Tests for catalog lookups."""

    @pytest.mark.asyncio
    async def test_search_respects_mode(
        self,
        registry: ActionRegistry,
        commerce: InMemoryCommerceClient,
        b2c_state: ConversationState,
        b2b_state: ConversationState,
    ) -> None:
        """b2b-only products appear only in b2b searches."""
        tool = registry.get_tool("search_products")
        assert tool is not None

        b2c = await tool({"query": "paper"}, make_context(b2c_state, commerce))
        b2b = await tool({"query": "paper"}, make_context(b2b_state, commerce))

        assert b2c.data["count"] == 0
        assert [p["sku"] for p in b2b.data["products"]] == ["SKU-PAPER-CASE"]

    @pytest.mark.asyncio
    async def test_search_records_context(
        self, registry: ActionRegistry, commerce: InMemoryCommerceClient, b2c_state: ConversationState
    ) -> None:
        """A search stores the query and result SKUs in context."""
        tool = registry.get_tool("search_products")
        result = await tool({"query": "laptops"}, make_context(b2c_state, commerce))

        [command] = result.commands
        assert isinstance(command, UpdateContext)
        assert command.values["last_search"] == "laptops"
        assert command.values["last_results"] == ["SKU-LAPTOP-14", "SKU-LAPTOP-16"]
        assert "$899.00" in (result.message or "")

    @pytest.mark.asyncio
    async def test_unknown_product_details(
        self, registry: ActionRegistry, commerce: InMemoryCommerceClient, b2c_state: ConversationState
    ) -> None:
        """Unknown SKUs produce a not-found result rather than an error."""
        tool = registry.get_tool("get_product_details")
        result = await tool({"sku": "SKU-NOPE"}, make_context(b2c_state, commerce))
        assert result.data == {"sku": "SKU-NOPE", "found": False}


class TestCartActions:
    """Tests for cart mutations."""

    @pytest.mark.asyncio
    async def test_add_to_cart_emits_cart_command(
        self, registry: ActionRegistry, commerce: InMemoryCommerceClient, b2c_state: ConversationState
    ) -> None:
        """Adding an item returns the updated cart as a command."""
        tool = registry.get_tool("add_to_cart")
        result = await tool({"sku": "SKU-MUG", "quantity": 2}, make_context(b2c_state, commerce))

        assert result.data["added"] is True
        cart_command = result.commands[0]
        assert isinstance(cart_command, UpdateCart)
        assert cart_command.cart["items"][0]["quantity"] == 2
        assert (await commerce.get_cart(b2c_state.thread_id)).item_count == 2

    @pytest.mark.asyncio
    async def test_add_out_of_stock(
        self, registry: ActionRegistry, commerce: InMemoryCommerceClient, b2c_state: ConversationState
    ) -> None:
        """Unavailable stock is reported without touching the cart."""
        tool = registry.get_tool("add_to_cart")
        result = await tool({"sku": "SKU-CHAIR-ERGO", "quantity": 1}, make_context(b2c_state, commerce))

        assert result.data["added"] is False
        assert result.commands == []

    @pytest.mark.asyncio
    async def test_cart_id_from_context(
        self, registry: ActionRegistry, commerce: InMemoryCommerceClient
    ) -> None:
        """A cart_id in conversation context overrides the thread id."""
        state = ConversationState(thread_id="t-1", mode="b2c", context={"cart_id": "cart-9"})
        tool = registry.get_tool("add_to_cart")
        await tool({"sku": "SKU-MUG", "quantity": 1}, make_context(state, commerce))

        assert (await commerce.get_cart("cart-9")).item_count == 1
        assert (await commerce.get_cart("t-1")).item_count == 0

    @pytest.mark.asyncio
    async def test_apply_coupon(
        self,
        registry: ActionRegistry,
        commerce: InMemoryCommerceClient,
        judge: SecurityJudge,
        b2c_state: ConversationState,
    ) -> None:
        """A known coupon discounts the cart."""
        await commerce.add_to_cart(b2c_state.thread_id, "SKU-HEADPHONES", 1)
        tool = registry.get_tool("apply_coupon")

        result = await tool({"code": "welcome10"}, make_context(b2c_state, commerce, judge))

        assert result.data["discount"] == 19.9
        assert "WELCOME10" in (result.message or "")

    @pytest.mark.asyncio
    @pytest.mark.parametrize("code", ["TEST50", "test50", "Test50"])
    async def test_internal_coupon_blocked_in_any_case(
        self,
        registry: ActionRegistry,
        judge: SecurityJudge,
        b2c_state: ConversationState,
        code: str,
    ) -> None:
        """Staff-style codes are refused however the shopper capitalises them."""
        commerce = InMemoryCommerceClient(coupons={"TEST50": 50.0})
        await commerce.add_to_cart(b2c_state.thread_id, "SKU-HEADPHONES", 1)
        tool = registry.get_tool("apply_coupon")

        with pytest.raises(SecurityViolation):
            await tool({"code": code}, make_context(b2c_state, commerce, judge))

        assert (await commerce.get_cart(b2c_state.thread_id)).applied_coupons == []

    @pytest.mark.asyncio
    async def test_unknown_coupon_raises(
        self, registry: ActionRegistry, commerce: InMemoryCommerceClient, b2c_state: ConversationState
    ) -> None:
        """Unknown coupons surface the backend error."""
        tool = registry.get_tool("apply_coupon")
        with pytest.raises(CommerceError):
            await tool({"code": "NOPE"}, make_context(b2c_state, commerce))


class TestCheckoutAndQuotes:
    """Tests for order placement."""

    @pytest.mark.asyncio
    async def test_checkout_places_order_and_empties_cart(
        self,
        registry: ActionRegistry,
        commerce: InMemoryCommerceClient,
        judge: SecurityJudge,
        b2c_state: ConversationState,
    ) -> None:
        """Checkout returns the order and an empty cart command."""
        await commerce.add_to_cart(b2c_state.thread_id, "SKU-MUG", 4)
        tool = registry.get_tool("checkout")

        result = await tool({}, make_context(b2c_state, commerce, judge))

        assert result.data["order_id"].startswith("ord_")
        cart_command = result.commands[0]
        assert isinstance(cart_command, UpdateCart)
        assert cart_command.cart["items"] == []
        assert (await commerce.get_product("SKU-MUG")).stock == 496

    @pytest.mark.asyncio
    async def test_request_quote(
        self, registry: ActionRegistry, commerce: InMemoryCommerceClient, b2b_state: ConversationState
    ) -> None:
        """A b2b quote covers the cart subtotal."""
        await commerce.add_to_cart(b2b_state.thread_id, "SKU-PAPER-CASE", 10)
        tool = registry.get_tool("request_quote")

        result = await tool({"notes": "net 30"}, make_context(b2b_state, commerce))

        assert result.data["total"] == 540.0
        assert result.data["notes"] == "net 30"
