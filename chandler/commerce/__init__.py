"""Commerce backend contract and implementations."""

from chandler.commerce.client import CommerceClient
from chandler.commerce.http import HttpCommerceClient
from chandler.commerce.inmemory import InMemoryCommerceClient
from chandler.commerce.models import (
    AccountCredit,
    Cart,
    CartItem,
    CustomerProfile,
    Order,
    OrderTracking,
    PriceTier,
    Product,
    ProductAvailability,
    Quote,
    ShippingOption,
)
from chandler.config.models.commerce import CommerceConfig


def create_commerce_client(config: CommerceConfig) -> CommerceClient:
    """Build the commerce client selected by configuration."""
    if config.backend == "http":
        api_key = config.api_key.get_secret_value() if config.api_key else None
        return HttpCommerceClient(config.base_url, api_key=api_key, timeout=config.timeout)
    return InMemoryCommerceClient(tax_rate=config.tax_rate, currency=config.currency)


__all__ = [
    "AccountCredit",
    "Cart",
    "CartItem",
    "CommerceClient",
    "CustomerProfile",
    "HttpCommerceClient",
    "InMemoryCommerceClient",
    "Order",
    "OrderTracking",
    "PriceTier",
    "Product",
    "ProductAvailability",
    "Quote",
    "ShippingOption",
    "create_commerce_client",
]
