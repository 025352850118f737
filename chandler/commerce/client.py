"""CommerceClient abstract interface."""

from abc import ABC, abstractmethod

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


class CommerceClient(ABC):
    """Abstract interface to the commerce backend.

    Covers catalog search, stock checks, cart mutation, checkout, order
    history and business accounts. Implementations raise CommerceError on
    backend failures.
    """

    @abstractmethod
    async def search_products(
        self,
        query: str,
        *,
        mode: ProductMode | None = None,
        category: str | None = None,
        limit: int = 10,
    ) -> list[Product]:
        """Search the catalog."""
        pass

    @abstractmethod
    async def get_product(self, sku: str) -> Product | None:
        """Get a product by SKU."""
        pass

    @abstractmethod
    async def check_availability(self, sku: str, quantity: int) -> ProductAvailability:
        """Check whether ``quantity`` units of a SKU can be ordered."""
        pass

    @abstractmethod
    async def find_alternatives(self, sku: str, *, limit: int = 3) -> list[Product]:
        """Suggest in-stock substitutes for a SKU."""
        pass

    @abstractmethod
    async def get_bulk_pricing(self, sku: str, quantities: list[int]) -> list[PriceTier]:
        """Quote volume prices for each requested quantity.

        Args:
            sku: Product to price
            quantities: Candidate order sizes

        Returns:
            One tier per quantity, in the order given
        """
        pass

    @abstractmethod
    async def get_cart(self, cart_id: str) -> Cart:
        """Get a cart, creating an empty one if needed."""
        pass

    @abstractmethod
    async def add_to_cart(self, cart_id: str, sku: str, quantity: int) -> Cart:
        """Add units of a SKU to a cart."""
        pass

    @abstractmethod
    async def update_cart_item(self, cart_id: str, sku: str, quantity: int) -> Cart:
        """Set the quantity of a cart line."""
        pass

    @abstractmethod
    async def remove_from_cart(self, cart_id: str, sku: str) -> Cart:
        """Remove a cart line."""
        pass

    @abstractmethod
    async def clear_cart(self, cart_id: str) -> Cart:
        """Remove every line and coupon from a cart."""
        pass

    @abstractmethod
    async def apply_coupon(self, cart_id: str, code: str) -> Cart:
        """Apply a coupon code to a cart."""
        pass

    @abstractmethod
    async def calculate_shipping(
        self, cart_id: str, *, country: str = "US", postal_code: str | None = None
    ) -> list[ShippingOption]:
        """List shipping methods and prices for a cart and destination."""
        pass

    @abstractmethod
    async def checkout(self, cart_id: str, *, customer_id: str | None = None) -> Order:
        """Place an order for a cart."""
        pass

    @abstractmethod
    async def request_quote(self, cart_id: str, *, notes: str | None = None) -> Quote:
        """Request a B2B quote for a cart."""
        pass

    @abstractmethod
    async def create_purchase_order(
        self,
        cart_id: str,
        *,
        customer_id: str,
        po_number: str,
        payment_terms: PaymentTerms = "net_30",
    ) -> Order:
        """Place an order for a cart against the account's trade credit.

        Raises:
            CommerceError: 409 when the cart total exceeds available credit
        """
        pass

    @abstractmethod
    async def list_orders(
        self,
        customer_id: str,
        *,
        status: OrderStatus | None = None,
        limit: int = 10,
    ) -> list[Order]:
        """List a customer's orders, newest first."""
        pass

    @abstractmethod
    async def get_order(self, order_id: str) -> Order | None:
        """Get an order by id."""
        pass

    @abstractmethod
    async def track_order(self, order_id: str) -> OrderTracking:
        """Get shipment status for an order."""
        pass

    @abstractmethod
    async def get_account_credit(self, customer_id: str) -> AccountCredit:
        """Get the trade credit of a business account."""
        pass

    @abstractmethod
    async def get_customer_profile(self, customer_id: str) -> CustomerProfile:
        """Get profile details and order statistics for a customer."""
        pass

    async def aclose(self) -> None:  # noqa: B027
        """Release network resources."""
