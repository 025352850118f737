"""HTTP implementation of CommerceClient.

Talks to a REST commerce backend with httpx. Transport failures and 5xx
responses are raised as transient CommerceErrors so callers can retry.
"""

from typing import Any

import httpx

from chandler.commerce.client import CommerceClient
from chandler.commerce.models import (
    AccountCredit,
    Cart,
    CustomerProfile,
    Order,
    OrderStatus,
    OrderTracking,
    PaymentTerms,
    PriceTier,
    Product,
    ProductAvailability,
    ProductMode,
    Quote,
    ShippingOption,
)
from chandler.errors import CommerceError
from chandler.observability.logging import get_logger

logger = get_logger(__name__)


class HttpCommerceClient(CommerceClient):
    """Async client for a REST commerce backend.

    Attributes:
        base_url: Base URL of the commerce API
    """

    def __init__(
        self,
        base_url: str,
        *,
        api_key: str | None = None,
        timeout: float = 10.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self._api_key = api_key
        self._client = httpx.AsyncClient(
            base_url=self.base_url,
            timeout=timeout,
            transport=transport,
        )

    async def __aenter__(self) -> "HttpCommerceClient":
        return self

    async def __aexit__(self, *args: Any) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        """Close the HTTP client."""
        await self._client.aclose()

    def _headers(self) -> dict[str, str]:
        headers = {"Content-Type": "application/json"}
        if self._api_key:
            headers["Authorization"] = f"Bearer {self._api_key}"
        return headers

    async def _request(
        self,
        method: str,
        path: str,
        *,
        json: dict[str, Any] | None = None,
        params: dict[str, Any] | None = None,
        allow_404: bool = False,
    ) -> Any:
        try:
            response = await self._client.request(
                method=method,
                url=path,
                headers=self._headers(),
                json=json,
                params=params,
            )
        except httpx.TransportError as e:
            logger.warning("commerce_transport_error", method=method, path=path, error=str(e))
            raise CommerceError(f"Commerce backend unreachable: {e}", transient=True) from e

        if allow_404 and response.status_code == 404:
            return None

        if response.status_code >= 400:
            try:
                message = response.json().get("error", {}).get("message", response.text)
            except ValueError:
                message = response.text
            logger.warning(
                "commerce_request_failed",
                method=method,
                path=path,
                status_code=response.status_code,
            )
            raise CommerceError(
                message,
                status_code=response.status_code,
                transient=response.status_code >= 500 or response.status_code == 429,
            )

        if response.status_code == 204:
            return {}

        return response.json()

    async def search_products(
        self,
        query: str,
        *,
        mode: ProductMode | None = None,
        category: str | None = None,
        limit: int = 10,
    ) -> list[Product]:
        params: dict[str, Any] = {"q": query, "limit": limit}
        if mode:
            params["mode"] = mode
        if category:
            params["category"] = category
        data = await self._request("GET", "/products", params=params)
        return [Product.model_validate(p) for p in data.get("products", [])]

    async def get_product(self, sku: str) -> Product | None:
        data = await self._request("GET", f"/products/{sku}", allow_404=True)
        return Product.model_validate(data) if data else None

    async def check_availability(self, sku: str, quantity: int) -> ProductAvailability:
        data = await self._request(
            "GET", f"/products/{sku}/availability", params={"quantity": quantity}
        )
        return ProductAvailability.model_validate(data)

    async def find_alternatives(self, sku: str, *, limit: int = 3) -> list[Product]:
        data = await self._request(
            "GET", f"/products/{sku}/alternatives", params={"limit": limit}
        )
        return [Product.model_validate(p) for p in data.get("products", [])]

    async def get_cart(self, cart_id: str) -> Cart:
        data = await self._request("GET", f"/carts/{cart_id}")
        return Cart.model_validate(data)

    async def add_to_cart(self, cart_id: str, sku: str, quantity: int) -> Cart:
        data = await self._request(
            "POST", f"/carts/{cart_id}/items", json={"sku": sku, "quantity": quantity}
        )
        return Cart.model_validate(data)

    async def update_cart_item(self, cart_id: str, sku: str, quantity: int) -> Cart:
        data = await self._request(
            "PUT", f"/carts/{cart_id}/items/{sku}", json={"quantity": quantity}
        )
        return Cart.model_validate(data)

    async def remove_from_cart(self, cart_id: str, sku: str) -> Cart:
        data = await self._request("DELETE", f"/carts/{cart_id}/items/{sku}")
        return Cart.model_validate(data) if data else await self.get_cart(cart_id)

    async def apply_coupon(self, cart_id: str, code: str) -> Cart:
        data = await self._request("POST", f"/carts/{cart_id}/coupons", json={"code": code})
        return Cart.model_validate(data)

    async def clear_cart(self, cart_id: str) -> Cart:
        data = await self._request("DELETE", f"/carts/{cart_id}/items")
        return Cart.model_validate(data) if data else await self.get_cart(cart_id)

    async def calculate_shipping(
        self, cart_id: str, *, country: str = "US", postal_code: str | None = None
    ) -> list[ShippingOption]:
        params: dict[str, Any] = {"country": country}
        if postal_code:
            params["postal_code"] = postal_code
        data = await self._request("GET", f"/carts/{cart_id}/shipping", params=params)
        return [ShippingOption.model_validate(o) for o in data.get("options", [])]

    async def get_bulk_pricing(self, sku: str, quantities: list[int]) -> list[PriceTier]:
        data = await self._request(
            "GET",
            f"/products/{sku}/bulk-pricing",
            params={"quantities": ",".join(str(q) for q in quantities)},
        )
        return [PriceTier.model_validate(t) for t in data.get("tiers", [])]

    async def checkout(self, cart_id: str, *, customer_id: str | None = None) -> Order:
        body = {"customer_id": customer_id} if customer_id else None
        data = await self._request("POST", f"/carts/{cart_id}/checkout", json=body)
        return Order.model_validate(data)

    async def request_quote(self, cart_id: str, *, notes: str | None = None) -> Quote:
        data = await self._request("POST", "/quotes", json={"cart_id": cart_id, "notes": notes})
        return Quote.model_validate(data)

    async def create_purchase_order(
        self,
        cart_id: str,
        *,
        customer_id: str,
        po_number: str,
        payment_terms: PaymentTerms = "net_30",
    ) -> Order:
        data = await self._request(
            "POST",
            "/purchase-orders",
            json={
                "cart_id": cart_id,
                "customer_id": customer_id,
                "po_number": po_number,
                "payment_terms": payment_terms,
            },
        )
        return Order.model_validate(data)

    async def list_orders(
        self,
        customer_id: str,
        *,
        status: OrderStatus | None = None,
        limit: int = 10,
    ) -> list[Order]:
        params: dict[str, Any] = {"customer_id": customer_id, "limit": limit}
        if status:
            params["status"] = status
        data = await self._request("GET", "/orders", params=params)
        return [Order.model_validate(o) for o in data.get("orders", [])]

    async def get_order(self, order_id: str) -> Order | None:
        data = await self._request("GET", f"/orders/{order_id}", allow_404=True)
        return Order.model_validate(data) if data else None

    async def track_order(self, order_id: str) -> OrderTracking:
        data = await self._request("GET", f"/orders/{order_id}/tracking")
        return OrderTracking.model_validate(data)

    async def get_account_credit(self, customer_id: str) -> AccountCredit:
        data = await self._request("GET", f"/accounts/{customer_id}/credit")
        return AccountCredit.model_validate(data)

    async def get_customer_profile(self, customer_id: str) -> CustomerProfile:
        data = await self._request("GET", f"/customers/{customer_id}")
        return CustomerProfile.model_validate(data)
