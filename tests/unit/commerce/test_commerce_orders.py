"""Unit tests for order history, shipping and business account operations."""

import json

import httpx
import pytest

from chandler.commerce.http import HttpCommerceClient
from chandler.commerce.inmemory import InMemoryCommerceClient
from chandler.commerce.models import CustomerProfile
from chandler.errors import CommerceError


async def place_order(commerce: InMemoryCommerceClient, customer_id: str, sku: str, qty: int):
    await commerce.add_to_cart(customer_id, sku, qty)
    return await commerce.checkout(customer_id, customer_id=customer_id)


class TestInMemoryOrders:
    """Tests for order history and tracking."""

    @pytest.mark.asyncio
    async def test_orders_are_scoped_to_customer(self, commerce: InMemoryCommerceClient) -> None:
        """A customer only sees their own orders, newest first."""
        first = await place_order(commerce, "cust-1", "SKU-MUG", 2)
        second = await place_order(commerce, "cust-1", "SKU-HEADPHONES", 1)
        await place_order(commerce, "cust-2", "SKU-MUG", 1)

        orders = await commerce.list_orders("cust-1")

        assert [o.order_id for o in orders] == [second.order_id, first.order_id]
        assert orders[1].items[0].sku == "SKU-MUG"
        assert await commerce.list_orders("cust-1", status="shipped") == []
        assert len(await commerce.list_orders("cust-1", limit=1)) == 1

    @pytest.mark.asyncio
    async def test_get_order(self, commerce: InMemoryCommerceClient) -> None:
        """Orders are found by id; unknown ids return None."""
        order = await place_order(commerce, "cust-1", "SKU-MUG", 4)

        found = await commerce.get_order(order.order_id)

        assert found is not None
        assert found.total == order.total
        assert found.customer_id == "cust-1"
        assert await commerce.get_order("ord_missing") is None

    @pytest.mark.asyncio
    async def test_tracking_before_and_after_shipment(
        self, commerce: InMemoryCommerceClient
    ) -> None:
        """An order is unshipped until a tracking number is attached."""
        order = await place_order(commerce, "cust-1", "SKU-MUG", 1)

        pending = await commerce.track_order(order.order_id)
        commerce.mark_shipped(order.order_id, "1Z999", carrier="UPS")
        shipped = await commerce.track_order(order.order_id)

        assert pending.shipped is False
        assert pending.tracking_number is None
        assert shipped.shipped is True
        assert shipped.status == "shipped"
        assert shipped.tracking_number == "1Z999"
        assert shipped.estimated_delivery is not None
        assert [e.status for e in shipped.events] == ["confirmed", "shipped"]

    @pytest.mark.asyncio
    async def test_tracking_unknown_order(self, commerce: InMemoryCommerceClient) -> None:
        """Tracking an unknown order is a 404."""
        with pytest.raises(CommerceError) as exc_info:
            await commerce.track_order("ord_missing")

        assert exc_info.value.status_code == 404

    @pytest.mark.asyncio
    async def test_clear_cart(self, commerce: InMemoryCommerceClient) -> None:
        """Clearing removes lines and coupons and zeroes the totals."""
        await commerce.add_to_cart("c", "SKU-HEADPHONES", 1)
        await commerce.apply_coupon("c", "WELCOME10")

        cart = await commerce.clear_cart("c")

        assert cart.items == []
        assert cart.applied_coupons == []
        assert cart.total == 0


class TestInMemoryShippingAndPricing:
    """Tests for shipping options and volume pricing."""

    @pytest.mark.asyncio
    async def test_domestic_options(self, commerce: InMemoryCommerceClient) -> None:
        """Standard shipping is free over the threshold; express is always offered."""
        await commerce.add_to_cart("c", "SKU-HEADPHONES", 1)

        options = {o.method: o for o in await commerce.calculate_shipping("c")}

        assert options["standard"].price == 0
        assert options["express"].price == 14.99
        assert "freight" not in options

    @pytest.mark.asyncio
    async def test_freight_for_large_orders(self, commerce: InMemoryCommerceClient) -> None:
        """Fifty or more units add a freight option."""
        await commerce.add_to_cart("c", "SKU-MUG", 60)

        methods = [o.method for o in await commerce.calculate_shipping("c", postal_code="94107")]

        assert methods == ["standard", "express", "freight"]

    @pytest.mark.asyncio
    async def test_international(self, commerce: InMemoryCommerceClient) -> None:
        """Destinations outside the US get the international rate only."""
        await commerce.add_to_cart("c", "SKU-MUG", 1)

        [option] = await commerce.calculate_shipping("c", country="de")

        assert option.method == "international"
        assert option.price == 29.99

    @pytest.mark.asyncio
    async def test_empty_cart_shipping(self, commerce: InMemoryCommerceClient) -> None:
        """Shipping cannot be priced for an empty cart."""
        with pytest.raises(CommerceError, match="empty cart"):
            await commerce.calculate_shipping("c")

    @pytest.mark.asyncio
    async def test_volume_discount_ladder(self, commerce: InMemoryCommerceClient) -> None:
        """Each quantity gets the discount of the highest threshold it reaches."""
        tiers = await commerce.get_bulk_pricing("SKU-PAPER-CASE", [10, 50, 100, 500, 1000])

        assert [t.discount_percent for t in tiers] == [0, 5, 10, 15, 20]
        assert tiers[2].unit_price == 48.6
        assert tiers[2].total == 4860.0

    @pytest.mark.asyncio
    async def test_bulk_pricing_unknown_product(self, commerce: InMemoryCommerceClient) -> None:
        """Pricing an unknown SKU is a 404."""
        with pytest.raises(CommerceError, match="Unknown product"):
            await commerce.get_bulk_pricing("SKU-NOPE", [100])


class TestInMemoryAccounts:
    """Tests for trade credit, purchase orders and profiles."""

    @pytest.mark.asyncio
    async def test_purchase_order_draws_on_credit(self) -> None:
        """Orders on terms reduce available credit; prepaid orders do not."""
        commerce = InMemoryCommerceClient(credit_limits={"acme": 5000.0})
        await commerce.add_to_cart("c", "SKU-PAPER-CASE", 20)

        order = await commerce.create_purchase_order(
            "c", customer_id="acme", po_number="PO-2024-001"
        )
        credit = await commerce.get_account_credit("acme")

        assert order.status == "pending"
        assert order.po_number == "PO-2024-001"
        assert order.payment_terms == "net_30"
        assert credit.used_credit == order.total
        assert credit.available_credit == round(5000.0 - order.total, 2)

        await commerce.add_to_cart("c", "SKU-MUG", 2)
        await commerce.create_purchase_order(
            "c", customer_id="acme", po_number="PO-2024-002", payment_terms="prepaid"
        )
        assert (await commerce.get_account_credit("acme")).used_credit == order.total

    @pytest.mark.asyncio
    async def test_purchase_order_over_credit(self) -> None:
        """A total above available credit is refused and leaves the cart intact."""
        commerce = InMemoryCommerceClient(default_credit_limit=100.0)
        await commerce.add_to_cart("c", "SKU-LAPTOP-14", 1)

        with pytest.raises(CommerceError, match="exceeds available credit") as exc_info:
            await commerce.create_purchase_order("c", customer_id="acme", po_number="PO-1")

        assert exc_info.value.status_code == 409
        assert len((await commerce.get_cart("c")).items) == 1

    @pytest.mark.asyncio
    @pytest.mark.parametrize("po_number", ["po-1", "PO 1", "P!"])
    async def test_invalid_po_number(self, commerce: InMemoryCommerceClient, po_number: str) -> None:
        """PO numbers are upper-case letters, digits and hyphens."""
        await commerce.add_to_cart("c", "SKU-MUG", 1)

        with pytest.raises(CommerceError, match="Invalid purchase order number"):
            await commerce.create_purchase_order("c", customer_id="acme", po_number=po_number)

    @pytest.mark.asyncio
    async def test_duplicate_po_number(self, commerce: InMemoryCommerceClient) -> None:
        """A PO number can only be used once."""
        await commerce.add_to_cart("c", "SKU-MUG", 1)
        await commerce.create_purchase_order("c", customer_id="acme", po_number="PO-7")
        await commerce.add_to_cart("c", "SKU-MUG", 1)

        with pytest.raises(CommerceError, match="already exists"):
            await commerce.create_purchase_order("c", customer_id="acme", po_number="PO-7")

    @pytest.mark.asyncio
    async def test_profile_merges_order_stats(self, commerce: InMemoryCommerceClient) -> None:
        """Stored details are combined with order count and lifetime value."""
        commerce.add_profile(
            CustomerProfile(customer_id="cust-1", name="Dana", account_type="business")
        )
        order = await place_order(commerce, "cust-1", "SKU-MUG", 2)

        profile = await commerce.get_customer_profile("cust-1")
        unknown = await commerce.get_customer_profile("cust-9")

        assert profile.name == "Dana"
        assert profile.order_count == 1
        assert profile.lifetime_value == order.total
        assert unknown.order_count == 0
        assert unknown.name is None


def backend(handler) -> HttpCommerceClient:
    return HttpCommerceClient("https://commerce.test/api/", transport=httpx.MockTransport(handler))


class TestHttpOrderEndpoints:
    """Tests for the order and account routes of HttpCommerceClient."""

    @pytest.mark.asyncio
    async def test_list_orders_request(self) -> None:
        """Order history passes the customer and filters as query params."""
        seen: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return httpx.Response(
                200, json={"orders": [{"order_id": "ord_1", "cart_id": "c", "total": 10.0}]}
            )

        async with backend(handler) as client:
            [order] = await client.list_orders("cust-1", status="shipped", limit=5)

        assert order.order_id == "ord_1"
        assert seen[0].url.path == "/api/orders"
        assert seen[0].url.params["customer_id"] == "cust-1"
        assert seen[0].url.params["status"] == "shipped"
        assert seen[0].url.params["limit"] == "5"

    @pytest.mark.asyncio
    async def test_purchase_order_body(self) -> None:
        """Purchase orders post the cart, account, PO number and terms."""
        bodies: list[dict] = []

        def handler(request: httpx.Request) -> httpx.Response:
            bodies.append(json.loads(request.content))
            return httpx.Response(
                200,
                json={"order_id": "ord_2", "cart_id": "c", "total": 99.0, "po_number": "PO-9"},
            )

        async with backend(handler) as client:
            order = await client.create_purchase_order(
                "c", customer_id="acme", po_number="PO-9", payment_terms="net_60"
            )

        assert order.po_number == "PO-9"
        assert bodies == [
            {"cart_id": "c", "customer_id": "acme", "po_number": "PO-9", "payment_terms": "net_60"}
        ]

    @pytest.mark.asyncio
    async def test_bulk_pricing_query(self) -> None:
        """Requested quantities are sent comma separated."""
        seen: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return httpx.Response(
                200, json={"tiers": [{"quantity": 100, "unit_price": 9.0, "total": 900.0}]}
            )

        async with backend(handler) as client:
            [tier] = await client.get_bulk_pricing("SKU-1", [100, 500])

        assert tier.total == 900.0
        assert seen[0].url.path == "/api/products/SKU-1/bulk-pricing"
        assert seen[0].url.params["quantities"] == "100,500"

    @pytest.mark.asyncio
    async def test_unknown_order_is_none(self) -> None:
        """A 404 on order lookup returns None."""
        async with backend(lambda request: httpx.Response(404)) as client:
            assert await client.get_order("ord_missing") is None
