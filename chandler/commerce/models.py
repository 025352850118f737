"""Commerce domain models shared by the client contract and the engine."""

from datetime import UTC, datetime
from typing import Literal

from pydantic import BaseModel, Field

ProductMode = Literal["b2c", "b2b", "both"]


def utc_now() -> datetime:
    return datetime.now(UTC)


class Product(BaseModel):
    """Catalog entry."""

    sku: str
    name: str
    description: str = ""
    category: str = "general"
    price: float = Field(ge=0)
    currency: str = "USD"
    stock: int = Field(default=0, ge=0)
    mode: ProductMode = "both"
    min_order_quantity: int = Field(default=1, ge=1)
    tags: list[str] = Field(default_factory=list)

    @property
    def in_stock(self) -> bool:
        return self.stock > 0


class ProductAvailability(BaseModel):
    """Stock check for a requested quantity."""

    sku: str
    requested: int
    quantity_available: int
    available: bool
    price: float | None = None


class CartItem(BaseModel):
    """One cart line."""

    sku: str
    name: str
    quantity: int = Field(ge=1)
    unit_price: float = Field(ge=0)
    line_total: float = Field(default=0, ge=0)


class Cart(BaseModel):
    """Shopping cart snapshot."""

    cart_id: str | None = None
    items: list[CartItem] = Field(default_factory=list)
    subtotal: float = 0.0
    discount: float = 0.0
    tax: float = 0.0
    shipping: float = 0.0
    total: float = 0.0
    currency: str = "USD"
    applied_coupons: list[str] = Field(default_factory=list)
    last_updated: datetime | None = None

    @property
    def item_count(self) -> int:
        return sum(item.quantity for item in self.items)


OrderStatus = Literal["pending", "confirmed", "processing", "shipped", "delivered", "cancelled"]
PaymentTerms = Literal["net_15", "net_30", "net_45", "net_60", "prepaid"]


class Order(BaseModel):
    """Result of a checkout or purchase order."""

    order_id: str
    cart_id: str
    total: float
    currency: str = "USD"
    status: OrderStatus = "confirmed"
    customer_id: str | None = None
    items: list[CartItem] = Field(default_factory=list)
    po_number: str | None = None
    payment_terms: PaymentTerms | None = None
    tracking_number: str | None = None
    carrier: str | None = None
    created_at: datetime = Field(default_factory=utc_now)


class TrackingEvent(BaseModel):
    status: str
    timestamp: datetime
    location: str | None = None


class OrderTracking(BaseModel):
    """Shipment state of an order. ``shipped`` is False until a tracking number exists."""

    order_id: str
    status: OrderStatus
    shipped: bool = False
    tracking_number: str | None = None
    carrier: str | None = None
    estimated_delivery: datetime | None = None
    events: list[TrackingEvent] = Field(default_factory=list)


class ShippingOption(BaseModel):
    method: str
    name: str
    price: float = Field(ge=0)
    estimated_days: int = Field(ge=0)
    currency: str = "USD"


class PriceTier(BaseModel):
    """Volume price for one requested quantity."""

    quantity: int = Field(gt=0)
    unit_price: float = Field(ge=0)
    discount_percent: float = Field(default=0.0, ge=0, le=100)
    total: float = Field(ge=0)


class AccountCredit(BaseModel):
    """Trade credit of a business account."""

    customer_id: str
    credit_limit: float = Field(ge=0)
    used_credit: float = Field(default=0.0, ge=0)
    currency: str = "USD"
    status: Literal["active", "on_hold"] = "active"

    @property
    def available_credit(self) -> float:
        return round(max(self.credit_limit - self.used_credit, 0.0), 2)


class CustomerProfile(BaseModel):
    customer_id: str
    name: str | None = None
    email: str | None = None
    company: str | None = None
    account_type: Literal["personal", "business"] = "personal"
    order_count: int = 0
    lifetime_value: float = 0.0


class Quote(BaseModel):
    """B2B price quote request."""

    quote_id: str
    cart_id: str
    items: list[CartItem] = Field(default_factory=list)
    total: float = 0.0
    notes: str | None = None
    status: Literal["requested", "approved", "rejected"] = "requested"
    created_at: datetime = Field(default_factory=utc_now)
