"""In-memory implementation of CommerceClient."""

import re
from collections.abc import Iterable
from datetime import datetime, timedelta
from uuid import uuid4

from chandler.commerce.client import CommerceClient
from chandler.commerce.models import (
    AccountCredit,
    Cart,
    CartItem,
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
    TrackingEvent,
    utc_now,
)
from chandler.errors import CommerceError

FREE_SHIPPING_THRESHOLD = 50.0
FLAT_SHIPPING = 5.99
EXPRESS_SHIPPING = 14.99
INTERNATIONAL_SHIPPING = 29.99
FREIGHT_SHIPPING = 149.0
FREIGHT_MIN_UNITS = 50

# (minimum quantity, percent off), highest threshold first
VOLUME_DISCOUNTS: tuple[tuple[int, float], ...] = (
    (1000, 20.0),
    (500, 15.0),
    (100, 10.0),
    (50, 5.0),
)

DEFAULT_CREDIT_LIMIT = 10000.0
PO_NUMBER = re.compile(r"[A-Z0-9-]{3,32}")

DEFAULT_PRODUCTS: list[Product] = [
    Product(
        sku="SKU-LAPTOP-14",
        name="14-inch Laptop",
        description="Lightweight laptop with 16GB RAM",
        category="electronics",
        price=899.0,
        stock=40,
        tags=["laptop", "computer", "notebook"],
    ),
    Product(
        sku="SKU-LAPTOP-16",
        name="16-inch Pro Laptop",
        description="Performance laptop with 32GB RAM",
        category="electronics",
        price=1499.0,
        stock=12,
        tags=["laptop", "computer", "pro"],
    ),
    Product(
        sku="SKU-HEADPHONES",
        name="Wireless Headphones",
        description="Noise cancelling over-ear headphones",
        category="electronics",
        price=199.0,
        stock=150,
        tags=["audio", "headphones"],
    ),
    Product(
        sku="SKU-MUG",
        name="Ceramic Mug",
        description="12oz ceramic coffee mug",
        category="home",
        price=12.5,
        stock=500,
        tags=["kitchen", "mug", "coffee"],
    ),
    Product(
        sku="SKU-PAPER-CASE",
        name="Copy Paper (case of 10 reams)",
        description="Letter size multipurpose paper",
        category="office",
        price=54.0,
        stock=2000,
        mode="b2b",
        min_order_quantity=5,
        tags=["paper", "office", "bulk"],
    ),
    Product(
        sku="SKU-CHAIR-ERGO",
        name="Ergonomic Office Chair",
        description="Adjustable mesh office chair",
        category="office",
        price=329.0,
        stock=0,
        tags=["chair", "office", "furniture"],
    ),
]

DEFAULT_COUPONS: dict[str, float] = {"WELCOME10": 10.0, "SPRING15": 15.0}


class InMemoryCommerceClient(CommerceClient):
    """In-memory commerce backend for testing and development.

    Keeps the catalog and carts in dicts. Totals are recomputed on every
    cart mutation. Not suitable for production use.
    """

    def __init__(
        self,
        products: Iterable[Product] | None = None,
        *,
        coupons: dict[str, float] | None = None,
        tax_rate: float = 0.08,
        currency: str = "USD",
        credit_limits: dict[str, float] | None = None,
        default_credit_limit: float = DEFAULT_CREDIT_LIMIT,
    ) -> None:
        source = DEFAULT_PRODUCTS if products is None else products
        self._products: dict[str, Product] = {p.sku: p.model_copy() for p in source}
        self._coupons = dict(DEFAULT_COUPONS if coupons is None else coupons)
        self._tax_rate = tax_rate
        self._currency = currency
        self._carts: dict[str, Cart] = {}
        self._orders: dict[str, Order] = {}
        self._quotes: dict[str, Quote] = {}
        self._shipped_at: dict[str, datetime] = {}
        self._credit_limits = dict(credit_limits or {})
        self._default_credit_limit = default_credit_limit
        self._profiles: dict[str, CustomerProfile] = {}

    async def search_products(
        self,
        query: str,
        *,
        mode: ProductMode | None = None,
        category: str | None = None,
        limit: int = 10,
    ) -> list[Product]:
        """Search the catalog by name, description and tags."""
        # Plural-insensitive: "laptops" matches "laptop"
        terms = [t[:-1] if len(t) > 3 and t.endswith("s") else t for t in query.lower().split()]
        results = []
        for product in self._products.values():
            if mode is not None and product.mode not in ("both", mode):
                continue
            if category is not None and product.category != category:
                continue
            haystack = " ".join(
                [product.name, product.description, product.category, *product.tags]
            ).lower()
            if terms and not any(term in haystack for term in terms):
                continue
            results.append(product)
        results.sort(key=lambda p: (not p.in_stock, p.price))
        return results[:limit]

    async def get_product(self, sku: str) -> Product | None:
        """Get a product by SKU."""
        return self._products.get(sku)

    async def check_availability(self, sku: str, quantity: int) -> ProductAvailability:
        """Check stock for a SKU."""
        product = self._require_product(sku)
        return ProductAvailability(
            sku=sku,
            requested=quantity,
            quantity_available=product.stock,
            available=product.stock >= quantity,
            price=product.price,
        )

    async def find_alternatives(self, sku: str, *, limit: int = 3) -> list[Product]:
        """Suggest in-stock products from the same category."""
        product = self._products.get(sku)
        if product is None:
            return []
        candidates = [
            p
            for p in self._products.values()
            if p.sku != sku and p.category == product.category and p.in_stock
        ]
        candidates.sort(key=lambda p: abs(p.price - product.price))
        return candidates[:limit]

    async def get_cart(self, cart_id: str) -> Cart:
        """Get a cart, creating an empty one if needed."""
        cart = self._carts.get(cart_id)
        if cart is None:
            cart = Cart(cart_id=cart_id, currency=self._currency, last_updated=utc_now())
            self._carts[cart_id] = cart
        return cart.model_copy(deep=True)

    async def add_to_cart(self, cart_id: str, sku: str, quantity: int) -> Cart:
        """Add units of a SKU, merging with an existing line."""
        if quantity < 1:
            raise CommerceError(f"Invalid quantity {quantity}", status_code=400)
        product = self._require_product(sku)
        cart = await self.get_cart(cart_id)
        existing = next((item for item in cart.items if item.sku == sku), None)
        new_quantity = quantity + (existing.quantity if existing else 0)
        if new_quantity > product.stock:
            raise CommerceError(
                f"Only {product.stock} units of {sku} available",
                status_code=409,
                details={"sku": sku, "available": product.stock},
            )
        if existing:
            existing.quantity = new_quantity
        else:
            cart.items.append(
                CartItem(sku=sku, name=product.name, quantity=quantity, unit_price=product.price)
            )
        return self._save(cart)

    async def update_cart_item(self, cart_id: str, sku: str, quantity: int) -> Cart:
        """Set a line quantity; zero removes the line."""
        if quantity <= 0:
            return await self.remove_from_cart(cart_id, sku)
        product = self._require_product(sku)
        cart = await self.get_cart(cart_id)
        item = next((item for item in cart.items if item.sku == sku), None)
        if item is None:
            raise CommerceError(f"{sku} is not in the cart", status_code=404)
        if quantity > product.stock:
            raise CommerceError(f"Only {product.stock} units of {sku} available", status_code=409)
        item.quantity = quantity
        return self._save(cart)

    async def remove_from_cart(self, cart_id: str, sku: str) -> Cart:
        """Remove a cart line if present."""
        cart = await self.get_cart(cart_id)
        cart.items = [item for item in cart.items if item.sku != sku]
        return self._save(cart)

    async def apply_coupon(self, cart_id: str, code: str) -> Cart:
        """Apply a known coupon code."""
        normalized = code.strip().upper()
        if normalized not in self._coupons:
            raise CommerceError(f"Unknown coupon '{code}'", status_code=404)
        cart = await self.get_cart(cart_id)
        if normalized not in cart.applied_coupons:
            cart.applied_coupons.append(normalized)
        return self._save(cart)

    async def clear_cart(self, cart_id: str) -> Cart:
        """Drop every line and coupon."""
        cart = await self.get_cart(cart_id)
        cart.items = []
        cart.applied_coupons = []
        return self._save(cart)

    async def calculate_shipping(
        self, cart_id: str, *, country: str = "US", postal_code: str | None = None
    ) -> list[ShippingOption]:
        """Price the shipping methods available for a cart and destination."""
        cart = await self.get_cart(cart_id)
        if not cart.items:
            raise CommerceError("Cannot calculate shipping for an empty cart", status_code=400)
        currency = cart.currency
        if country.strip().upper() != "US":
            return [
                ShippingOption(
                    method="international",
                    name="International",
                    price=INTERNATIONAL_SHIPPING,
                    estimated_days=10,
                    currency=currency,
                )
            ]
        standard = 0.0 if cart.subtotal >= FREE_SHIPPING_THRESHOLD else FLAT_SHIPPING
        options = [
            ShippingOption(
                method="standard",
                name="Standard",
                price=standard,
                estimated_days=5,
                currency=currency,
            ),
            ShippingOption(
                method="express",
                name="Express",
                price=EXPRESS_SHIPPING,
                estimated_days=2,
                currency=currency,
            ),
        ]
        if cart.item_count >= FREIGHT_MIN_UNITS:
            options.append(
                ShippingOption(
                    method="freight",
                    name="LTL Freight",
                    price=FREIGHT_SHIPPING,
                    estimated_days=7,
                    currency=currency,
                )
            )
        return options

    async def get_bulk_pricing(self, sku: str, quantities: list[int]) -> list[PriceTier]:
        """Apply the volume discount ladder to each quantity."""
        product = self._require_product(sku)
        tiers = []
        for quantity in quantities:
            if quantity < 1:
                raise CommerceError(f"Invalid quantity {quantity}", status_code=400)
            percent = next(
                (pct for threshold, pct in VOLUME_DISCOUNTS if quantity >= threshold), 0.0
            )
            unit_price = round(product.price * (100 - percent) / 100, 2)
            tiers.append(
                PriceTier(
                    quantity=quantity,
                    unit_price=unit_price,
                    discount_percent=percent,
                    total=round(unit_price * quantity, 2),
                )
            )
        return tiers

    async def checkout(self, cart_id: str, *, customer_id: str | None = None) -> Order:
        """Place an order and decrement stock."""
        return await self._place_order(cart_id, customer_id=customer_id)

    async def request_quote(self, cart_id: str, *, notes: str | None = None) -> Quote:
        """Record a quote request for the cart contents."""
        cart = await self.get_cart(cart_id)
        if not cart.items:
            raise CommerceError("Cannot request a quote for an empty cart", status_code=400)
        quote = Quote(
            quote_id=f"quo_{uuid4().hex[:12]}",
            cart_id=cart_id,
            items=cart.items,
            total=cart.subtotal,
            notes=notes,
        )
        self._quotes[quote.quote_id] = quote
        return quote

    async def create_purchase_order(
        self,
        cart_id: str,
        *,
        customer_id: str,
        po_number: str,
        payment_terms: PaymentTerms = "net_30",
    ) -> Order:
        """Place an order on account. Terms other than prepaid draw on trade credit."""
        if not PO_NUMBER.fullmatch(po_number):
            raise CommerceError(
                f"Invalid purchase order number '{po_number}'",
                status_code=400,
                details={"po_number": po_number},
            )
        if any(order.po_number == po_number for order in self._orders.values()):
            raise CommerceError(f"Purchase order {po_number} already exists", status_code=409)
        if payment_terms != "prepaid":
            cart = await self.get_cart(cart_id)
            credit = await self.get_account_credit(customer_id)
            if cart.total > credit.available_credit:
                raise CommerceError(
                    "Order total exceeds available credit",
                    status_code=409,
                    details={"total": cart.total, "available_credit": credit.available_credit},
                )
        return await self._place_order(
            cart_id,
            customer_id=customer_id,
            po_number=po_number,
            payment_terms=payment_terms,
            status="pending",
        )

    async def list_orders(
        self,
        customer_id: str,
        *,
        status: OrderStatus | None = None,
        limit: int = 10,
    ) -> list[Order]:
        """Orders placed by a customer, newest first."""
        # _orders keeps placement order
        orders = [
            order
            for order in reversed(self._orders.values())
            if order.customer_id == customer_id and (status is None or order.status == status)
        ]
        return [order.model_copy(deep=True) for order in orders[:limit]]

    async def get_order(self, order_id: str) -> Order | None:
        order = self._orders.get(order_id)
        return order.model_copy(deep=True) if order else None

    async def track_order(self, order_id: str) -> OrderTracking:
        """Shipment state; an order without a tracking number has not shipped."""
        order = self._orders.get(order_id)
        if order is None:
            raise CommerceError(f"Unknown order '{order_id}'", status_code=404)
        events = [TrackingEvent(status="confirmed", timestamp=order.created_at)]
        if order.tracking_number is None:
            return OrderTracking(order_id=order_id, status=order.status, events=events)
        shipped_at = self._shipped_at.get(order_id, order.created_at)
        events.append(TrackingEvent(status="shipped", timestamp=shipped_at))
        return OrderTracking(
            order_id=order_id,
            status=order.status,
            shipped=True,
            tracking_number=order.tracking_number,
            carrier=order.carrier,
            estimated_delivery=shipped_at + timedelta(days=3),
            events=events,
        )

    def mark_shipped(self, order_id: str, tracking_number: str, carrier: str = "UPS") -> Order:
        """Attach a tracking number to an order, as a fulfilment system would."""
        order = self._orders.get(order_id)
        if order is None:
            raise CommerceError(f"Unknown order '{order_id}'", status_code=404)
        shipped = order.model_copy(
            update={"status": "shipped", "tracking_number": tracking_number, "carrier": carrier}
        )
        self._orders[order_id] = shipped
        self._shipped_at[order_id] = utc_now()
        return shipped.model_copy(deep=True)

    async def get_account_credit(self, customer_id: str) -> AccountCredit:
        """Credit limit minus every open purchase order on terms."""
        used = sum(
            order.total
            for order in self._orders.values()
            if order.customer_id == customer_id
            and order.po_number is not None
            and order.payment_terms != "prepaid"
            and order.status != "cancelled"
        )
        return AccountCredit(
            customer_id=customer_id,
            credit_limit=self._credit_limits.get(customer_id, self._default_credit_limit),
            used_credit=round(used, 2),
            currency=self._currency,
        )

    async def get_customer_profile(self, customer_id: str) -> CustomerProfile:
        """Stored profile details merged with order statistics."""
        orders = [order for order in self._orders.values() if order.customer_id == customer_id]
        stored = self._profiles.get(customer_id)
        profile = stored.model_copy() if stored else CustomerProfile(customer_id=customer_id)
        profile.order_count = len(orders)
        profile.lifetime_value = round(sum(order.total for order in orders), 2)
        return profile

    def add_profile(self, profile: CustomerProfile) -> None:
        self._profiles[profile.customer_id] = profile

    async def _place_order(
        self,
        cart_id: str,
        *,
        customer_id: str | None = None,
        po_number: str | None = None,
        payment_terms: PaymentTerms | None = None,
        status: OrderStatus = "confirmed",
    ) -> Order:
        cart = await self.get_cart(cart_id)
        if not cart.items:
            raise CommerceError("Cannot check out an empty cart", status_code=400)
        for item in cart.items:
            product = self._require_product(item.sku)
            if product.stock < item.quantity:
                raise CommerceError(f"Insufficient stock for {item.sku}", status_code=409)
        for item in cart.items:
            product = self._products[item.sku]
            self._products[item.sku] = product.model_copy(
                update={"stock": product.stock - item.quantity}
            )
        order = Order(
            order_id=f"ord_{uuid4().hex[:12]}",
            cart_id=cart_id,
            total=cart.total,
            currency=cart.currency,
            status=status,
            customer_id=customer_id,
            items=cart.items,
            po_number=po_number,
            payment_terms=payment_terms,
        )
        self._orders[order.order_id] = order
        self._carts[cart_id] = Cart(
            cart_id=cart_id, currency=self._currency, last_updated=utc_now()
        )
        return order.model_copy(deep=True)

    def _require_product(self, sku: str) -> Product:
        product = self._products.get(sku)
        if product is None:
            raise CommerceError(f"Unknown product '{sku}'", status_code=404)
        return product

    def _save(self, cart: Cart) -> Cart:
        for item in cart.items:
            item.line_total = round(item.unit_price * item.quantity, 2)
        subtotal = round(sum(item.line_total for item in cart.items), 2)
        percent = sum(self._coupons.get(code, 0.0) for code in cart.applied_coupons)
        discount = round(subtotal * min(percent, 100.0) / 100, 2)
        taxable = subtotal - discount
        shipping = 0.0 if subtotal == 0 or subtotal >= FREE_SHIPPING_THRESHOLD else FLAT_SHIPPING
        tax = round(taxable * self._tax_rate, 2)

        cart.subtotal = subtotal
        cart.discount = discount
        cart.tax = tax
        cart.shipping = shipping
        cart.total = round(taxable + tax + shipping, 2)
        cart.last_updated = utc_now()
        self._carts[cart.cart_id or ""] = cart
        return cart.model_copy(deep=True)
