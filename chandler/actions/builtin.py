"""Built-in commerce actions.

Each handler talks to the CommerceClient from its ActionContext and
returns state changes as commands. Financially significant actions ask
the security judge before touching the backend.
"""

from typing import Any
from urllib.parse import quote_plus

from chandler.actions.models import ActionContext, ActionResult
from chandler.actions.registry import ActionRegistry
from chandler.bulk.models import BulkOrderRow
from chandler.bulk.processor import BulkProcessor
from chandler.commerce.models import Cart, Order, Product
from chandler.conversation.commands import UpdateCart, UpdateContext
from chandler.errors import SecurityViolation


def _money(amount: float, currency: str = "USD") -> str:
    symbol = {"USD": "$", "EUR": "€", "GBP": "£"}.get(currency)
    return f"{symbol}{amount:,.2f}" if symbol else f"{amount:,.2f} {currency}"


def _product_summary(product: Product) -> dict[str, Any]:
    return {
        "sku": product.sku,
        "name": product.name,
        "price": product.price,
        "currency": product.currency,
        "in_stock": product.in_stock,
        "category": product.category,
    }


def _cart_command(cart: Cart) -> UpdateCart:
    return UpdateCart(cart=cart.model_dump(mode="json"))


def _guard(context: ActionContext, content: str, intent: str | None = None, cart: Cart | None = None) -> None:
    """Ask the judge about a financially significant operation."""
    if context.judge is None:
        return
    update: dict[str, Any] = {}
    if intent is not None:
        update["context"] = {**context.state.context, "detected_intent": intent}
    if cart is not None:
        update["cart"] = cart
    state = context.state.model_copy(update=update) if update else context.state
    result = context.judge.validate(content, state)
    if not result.is_valid:
        raise SecurityViolation(
            result.reason or "Request rejected",
            result.severity.value,
            result.category.value,
            result.metadata,
        )


async def search_products(params: dict[str, Any], context: ActionContext) -> ActionResult:
    query = params["query"]
    products = await context.commerce.search_products(
        query,
        mode=context.mode,  # type: ignore[arg-type]
        category=params.get("category"),
        limit=params.get("limit", 5),
    )
    if products:
        lines = [f"- {p.name} ({p.sku}): {_money(p.price, p.currency)}" for p in products]
        message = f"I found {len(products)} products for \"{query}\":\n" + "\n".join(lines)
    else:
        message = f"I couldn't find any products matching \"{query}\"."
    return ActionResult(
        data={"query": query, "count": len(products), "products": [_product_summary(p) for p in products]},
        commands=[UpdateContext(values={"last_search": query, "last_results": [p.sku for p in products]})],
        message=message,
    )


async def get_product_details(params: dict[str, Any], context: ActionContext) -> ActionResult:
    sku = params["sku"]
    product = await context.commerce.get_product(sku)
    if product is None:
        return ActionResult(data={"sku": sku, "found": False}, message=f"I couldn't find product {sku}.")
    stock = "in stock" if product.in_stock else "currently out of stock"
    message = f"{product.name} ({product.sku}) costs {_money(product.price, product.currency)} and is {stock}."
    if product.description:
        message += f" {product.description}."
    return ActionResult(
        data={"found": True, "product": product.model_dump(mode="json")},
        commands=[UpdateContext(values={"last_viewed": sku})],
        message=message,
    )


async def add_to_cart(params: dict[str, Any], context: ActionContext) -> ActionResult:
    sku = params["sku"]
    quantity = params.get("quantity", 1)
    availability = await context.commerce.check_availability(sku, quantity)
    if not availability.available:
        return ActionResult(
            data={"sku": sku, "added": False, "available": availability.quantity_available},
            message=f"Sorry, only {availability.quantity_available} units of {sku} are available.",
        )
    cart = await context.commerce.add_to_cart(context.cart_id, sku, quantity)
    return ActionResult(
        data={"sku": sku, "added": True, "quantity": quantity, "cart_total": cart.total},
        commands=[_cart_command(cart), UpdateContext(values={"last_added": sku})],
        message=f"Added {quantity} x {sku} to your cart. Cart total: {_money(cart.total, cart.currency)}.",
    )


async def update_cart_item(params: dict[str, Any], context: ActionContext) -> ActionResult:
    cart = await context.commerce.update_cart_item(context.cart_id, params["sku"], params["quantity"])
    return ActionResult(
        data={"sku": params["sku"], "quantity": params["quantity"], "cart_total": cart.total},
        commands=[_cart_command(cart)],
        message=f"Updated {params['sku']} to {params['quantity']}. Cart total: {_money(cart.total, cart.currency)}.",
    )


async def remove_from_cart(params: dict[str, Any], context: ActionContext) -> ActionResult:
    cart = await context.commerce.remove_from_cart(context.cart_id, params["sku"])
    return ActionResult(
        data={"sku": params["sku"], "removed": True, "cart_total": cart.total},
        commands=[_cart_command(cart)],
        message=f"Removed {params['sku']} from your cart.",
    )


async def get_cart(params: dict[str, Any], context: ActionContext) -> ActionResult:  # noqa: ARG001
    cart = await context.commerce.get_cart(context.cart_id)
    if not cart.items:
        message = "Your cart is empty."
    else:
        lines = [f"- {i.quantity} x {i.name}: {_money(i.line_total, cart.currency)}" for i in cart.items]
        message = "Your cart:\n" + "\n".join(lines) + f"\nTotal: {_money(cart.total, cart.currency)}"
    return ActionResult(
        data=cart.model_dump(mode="json"),
        commands=[_cart_command(cart)],
        message=message,
    )


async def apply_coupon(params: dict[str, Any], context: ActionContext) -> ActionResult:
    code = params["code"].strip().upper()
    _guard(context, f"apply coupon {code}")
    cart = await context.commerce.apply_coupon(context.cart_id, code)
    return ActionResult(
        data={"code": code, "applied": True, "discount": cart.discount, "cart_total": cart.total},
        commands=[_cart_command(cart)],
        message=f"Coupon {code} applied. You save {_money(cart.discount, cart.currency)}.",
    )


async def compare_products(params: dict[str, Any], context: ActionContext) -> ActionResult:
    products = []
    for sku in params["skus"]:
        product = await context.commerce.get_product(sku)
        if product is not None:
            products.append(product)
    if len(products) < 2:
        return ActionResult(
            data={"products": [_product_summary(p) for p in products]},
            message="I need at least two known products to compare.",
        )
    lines = [
        f"- {p.name}: {_money(p.price, p.currency)}, {'in stock' if p.in_stock else 'out of stock'}"
        for p in products
    ]
    cheapest = min(products, key=lambda p: p.price)
    return ActionResult(
        data={"products": [_product_summary(p) for p in products], "cheapest": cheapest.sku},
        commands=[UpdateContext(values={"last_compared": [p.sku for p in products]})],
        message="Comparison:\n" + "\n".join(lines) + f"\n{cheapest.name} is the most affordable.",
    )


async def checkout(params: dict[str, Any], context: ActionContext) -> ActionResult:  # noqa: ARG001
    cart = await context.commerce.get_cart(context.cart_id)
    _guard(context, "checkout", intent="checkout", cart=cart)
    order = await context.commerce.checkout(context.cart_id, customer_id=context.customer_id)
    empty = Cart(cart_id=context.cart_id, currency=cart.currency)
    return ActionResult(
        data=order.model_dump(mode="json"),
        commands=[_cart_command(empty), UpdateContext(values={"last_order_id": order.order_id})],
        message=f"Order {order.order_id} placed. Total charged: {_money(order.total, order.currency)}.",
    )


async def request_quote(params: dict[str, Any], context: ActionContext) -> ActionResult:
    quote = await context.commerce.request_quote(context.cart_id, notes=params.get("notes"))
    return ActionResult(
        data=quote.model_dump(mode="json"),
        commands=[UpdateContext(values={"last_quote_id": quote.quote_id})],
        message=f"Quote {quote.quote_id} requested for {_money(quote.total)}. Our sales team will follow up.",
    )


async def request_tax_exemption(params: dict[str, Any], context: ActionContext) -> ActionResult:
    certificate = params["certificate_id"]
    _guard(context, f"tax exemption certificate {certificate}")
    request = {
        "certificate_id": certificate,
        "jurisdiction": params.get("jurisdiction"),
        "status": "pending_review",
    }
    return ActionResult(
        data=request,
        commands=[UpdateContext(values={"tax_exemption": request})],
        message="Your tax exemption certificate was submitted for review.",
    )


async def clear_cart(params: dict[str, Any], context: ActionContext) -> ActionResult:  # noqa: ARG001
    cart = await context.commerce.clear_cart(context.cart_id)
    return ActionResult(
        data={"cleared": True, "cart_total": cart.total},
        commands=[_cart_command(cart)],
        message="Your cart is now empty.",
    )


async def calculate_shipping(params: dict[str, Any], context: ActionContext) -> ActionResult:
    country = params.get("country", "US")
    options = await context.commerce.calculate_shipping(
        context.cart_id, country=country, postal_code=params.get("postal_code")
    )
    lines = [
        f"- {o.name}: {_money(o.price, o.currency) if o.price else 'free'} "
        f"({o.estimated_days} business days)"
        for o in options
    ]
    return ActionResult(
        data={"country": country, "options": [o.model_dump(mode="json") for o in options]},
        message="Shipping options:\n" + "\n".join(lines),
    )


def _order_line(order: Order) -> str:
    placed = order.created_at.strftime("%Y-%m-%d")
    return f"- {order.order_id} ({placed}): {order.status}, {_money(order.total, order.currency)}"


async def _own_order(context: ActionContext, order_id: str) -> Order | None:
    """Look up an order placed by the current customer; other accounts' orders read as missing."""
    order = await context.commerce.get_order(order_id)
    if order is None or (order.customer_id and order.customer_id != context.customer_id):
        return None
    return order


async def get_orders(params: dict[str, Any], context: ActionContext) -> ActionResult:
    orders = await context.commerce.list_orders(
        context.customer_id, status=params.get("status"), limit=params.get("limit", 10)
    )
    if orders:
        message = "Your recent orders:\n" + "\n".join(_order_line(o) for o in orders)
    else:
        message = "You don't have any orders yet."
    return ActionResult(
        data={"count": len(orders), "orders": [o.model_dump(mode="json") for o in orders]},
        message=message,
    )


async def get_order_details(params: dict[str, Any], context: ActionContext) -> ActionResult:
    order_id = params["order_id"]
    order = await _own_order(context, order_id)
    if order is None:
        return ActionResult(
            data={"order_id": order_id, "found": False},
            message=f"I couldn't find order {order_id}.",
        )
    lines = [f"- {i.quantity} x {i.name}: {_money(i.line_total, order.currency)}" for i in order.items]
    return ActionResult(
        data={"found": True, "order": order.model_dump(mode="json")},
        commands=[UpdateContext(values={"last_order_id": order_id})],
        message=_order_line(order)[2:] + ("\n" + "\n".join(lines) if lines else ""),
    )


async def track_order(params: dict[str, Any], context: ActionContext) -> ActionResult:
    order_id = params["order_id"]
    if await _own_order(context, order_id) is None:
        return ActionResult(
            data={"order_id": order_id, "found": False},
            message=f"I couldn't find order {order_id}.",
        )
    tracking = await context.commerce.track_order(order_id)
    if not tracking.shipped:
        message = f"Order {order_id} is {tracking.status} and has not shipped yet."
    else:
        message = f"Order {order_id} shipped with {tracking.carrier}, tracking number {tracking.tracking_number}."
        if tracking.estimated_delivery:
            message += f" Estimated delivery: {tracking.estimated_delivery.strftime('%Y-%m-%d')}."
    return ActionResult(data=tracking.model_dump(mode="json"), message=message)


async def reorder_items(params: dict[str, Any], context: ActionContext) -> ActionResult:
    order_id = params["order_id"]
    order = await _own_order(context, order_id)
    if order is None:
        return ActionResult(
            data={"order_id": order_id, "found": False},
            message=f"I couldn't find order {order_id}.",
        )
    added: list[str] = []
    skipped: list[str] = []
    cart: Cart | None = None
    for item in order.items:
        availability = await context.commerce.check_availability(item.sku, item.quantity)
        if not availability.available:
            skipped.append(item.sku)
            continue
        cart = await context.commerce.add_to_cart(context.cart_id, item.sku, item.quantity)
        added.append(item.sku)
    message = f"Added {len(added)} item(s) from order {order_id} to your cart."
    if skipped:
        message += f" Not available right now: {', '.join(skipped)}."
    return ActionResult(
        data={"order_id": order_id, "added": added, "unavailable": skipped},
        commands=[_cart_command(cart)] if cart is not None else [],
        message=message,
    )


async def get_profile(params: dict[str, Any], context: ActionContext) -> ActionResult:  # noqa: ARG001
    profile = await context.commerce.get_customer_profile(context.customer_id)
    name = profile.name or "there"
    message = (
        f"Hi {name}. You have placed {profile.order_count} order(s) "
        f"totalling {_money(profile.lifetime_value)}."
    )
    return ActionResult(data=profile.model_dump(mode="json"), message=message)


async def request_bulk_pricing(params: dict[str, Any], context: ActionContext) -> ActionResult:
    sku = params["sku"]
    tiers = await context.commerce.get_bulk_pricing(sku, params["quantities"])
    lines = [
        f"- {t.quantity} units: {_money(t.unit_price)} each ({t.discount_percent:g}% off), "
        f"{_money(t.total)} total"
        for t in tiers
    ]
    return ActionResult(
        data={"sku": sku, "tiers": [t.model_dump(mode="json") for t in tiers]},
        message=f"Volume pricing for {sku}:\n" + "\n".join(lines),
    )


async def check_bulk_availability(params: dict[str, Any], context: ActionContext) -> ActionResult:
    results = []
    for item in params["items"]:
        availability = await context.commerce.check_availability(item["sku"], item["quantity"])
        results.append(availability.model_dump(mode="json"))
    short = [r["sku"] for r in results if not r["available"]]
    if short:
        message = f"{len(results) - len(short)} of {len(results)} items are available. Short: {', '.join(short)}."
    else:
        message = f"All {len(results)} items are available in the requested quantities."
    return ActionResult(data={"items": results, "all_available": not short}, message=message)


async def get_account_credit(params: dict[str, Any], context: ActionContext) -> ActionResult:  # noqa: ARG001
    credit = await context.commerce.get_account_credit(context.customer_id)
    data = {**credit.model_dump(mode="json"), "available_credit": credit.available_credit}
    return ActionResult(
        data=data,
        message=(
            f"Available credit: {_money(credit.available_credit, credit.currency)} "
            f"of {_money(credit.credit_limit, credit.currency)}."
        ),
    )


async def create_purchase_order(params: dict[str, Any], context: ActionContext) -> ActionResult:
    po_number = params["po_number"].strip().upper()
    terms = params.get("payment_terms", "net_30")
    cart = await context.commerce.get_cart(context.cart_id)
    _guard(context, f"purchase order {po_number}", intent="checkout", cart=cart)
    order = await context.commerce.create_purchase_order(
        context.cart_id, customer_id=context.customer_id, po_number=po_number, payment_terms=terms
    )
    empty = Cart(cart_id=context.cart_id, currency=cart.currency)
    return ActionResult(
        data=order.model_dump(mode="json"),
        commands=[_cart_command(empty), UpdateContext(values={"last_order_id": order.order_id})],
        message=(
            f"Purchase order {po_number} submitted as order {order.order_id} "
            f"for {_money(order.total, order.currency)} on {terms.replace('_', ' ')} terms."
        ),
    )


async def process_bulk_order(params: dict[str, Any], context: ActionContext) -> ActionResult:
    rows = [BulkOrderRow.model_validate(item) for item in params["items"]]
    result = await BulkProcessor(context.commerce).process(rows, context.mode, cart_id=context.cart_id)
    message = f"Added {result.items_added} of {result.items_processed} lines to your cart."
    if result.errors:
        message += " Issues: " + "; ".join(f"{e.sku}: {e.error}" for e in result.errors)
    return ActionResult(
        data={
            **result.summary(),
            "errors": [e.model_dump(mode="json") for e in result.errors],
            "alternatives": {
                sku: [p.sku for p in products] for sku, products in result.alternatives.items()
            },
        },
        commands=result.cart_commands,
        message=message,
    )


NAVIGATION_PATHS = {
    "home": "/",
    "cart": "/cart",
    "checkout": "/checkout",
    "orders": "/account/orders",
    "account": "/account",
    "quotes": "/account/quotes",
    "search": "/search",
}


async def navigate(params: dict[str, Any], context: ActionContext) -> ActionResult:  # noqa: ARG001
    destination = params["destination"]
    path = NAVIGATION_PATHS[destination]
    if destination == "search" and params.get("query"):
        path += f"?q={quote_plus(params['query'])}"
    return ActionResult(
        data={"destination": destination, "path": path},
        commands=[UpdateContext(values={"navigate_to": path})],
        message=f"Taking you to {destination}.",
    )


_SKU = {"type": "string", "minLength": 1, "maxLength": 100, "description": "Product SKU"}
_QUANTITY = {"type": "integer", "minimum": 1, "maximum": 10000, "description": "Units"}
_ORDER_ID = {"type": "string", "pattern": r"^[A-Za-z0-9_-]{3,64}$", "description": "Order id"}
_ORDER_STATUSES = ("pending", "confirmed", "processing", "shipped", "delivered", "cancelled")
_BULK_ITEMS = {
    "type": "array",
    "items": {
        "type": "object",
        "properties": {
            "sku": _SKU,
            "quantity": _QUANTITY,
            "notes": {"type": "string", "maxLength": 500},
            "priority": {"type": "string", "enum": ["high", "normal", "low"]},
        },
        "required": ["sku", "quantity"],
    },
    "minItems": 1,
    "maxItems": 500,
}

BUILTIN_DEFINITIONS: list[dict[str, Any]] = [
    {
        "id": "search_products",
        "name": "Search products",
        "description": "Search the catalog by keywords",
        "category": "search",
        "mode": "both",
        "parameters": {
            "type": "object",
            "properties": {
                "query": {"type": "string", "minLength": 1, "maxLength": 200},
                "category": {"type": "string"},
                "limit": {"type": "integer", "minimum": 1, "maximum": 20, "default": 5},
            },
            "required": ["query"],
        },
    },
    {
        "id": "get_product_details",
        "name": "Product details",
        "description": "Show details for one product",
        "category": "product",
        "mode": "both",
        "parameters": {"type": "object", "properties": {"sku": _SKU}, "required": ["sku"]},
    },
    {
        "id": "add_to_cart",
        "name": "Add to cart",
        "description": "Add a product to the cart",
        "category": "cart",
        "mode": "both",
        "parameters": {
            "type": "object",
            "properties": {"sku": _SKU, "quantity": {**_QUANTITY, "default": 1}},
            "required": ["sku"],
        },
        "rateLimit": {"maxCalls": 30, "windowMs": 60000},
    },
    {
        "id": "update_cart_item",
        "name": "Update cart item",
        "description": "Change the quantity of a cart line",
        "category": "cart",
        "mode": "both",
        "parameters": {
            "type": "object",
            "properties": {"sku": _SKU, "quantity": {"type": "integer", "minimum": 0}},
            "required": ["sku", "quantity"],
        },
    },
    {
        "id": "remove_from_cart",
        "name": "Remove from cart",
        "description": "Remove a product from the cart",
        "category": "cart",
        "mode": "both",
        "parameters": {"type": "object", "properties": {"sku": _SKU}, "required": ["sku"]},
    },
    {
        "id": "get_cart",
        "name": "View cart",
        "description": "Show the cart contents",
        "category": "cart",
        "mode": "both",
        "parameters": {"type": "object", "properties": {}},
    },
    {
        "id": "apply_coupon",
        "name": "Apply coupon",
        "description": "Apply a coupon code to the cart",
        "category": "cart",
        "mode": "b2c",
        "parameters": {
            "type": "object",
            "properties": {"code": {"type": "string", "pattern": r"^[A-Za-z0-9_-]{3,32}$"}},
            "required": ["code"],
        },
        "rateLimit": {"maxCalls": 5, "windowMs": 60000},
    },
    {
        "id": "compare_products",
        "name": "Compare products",
        "description": "Compare two to four products",
        "category": "comparison",
        "mode": "both",
        "parameters": {
            "type": "object",
            "properties": {"skus": {"type": "array", "items": _SKU, "minItems": 2, "maxItems": 4}},
            "required": ["skus"],
        },
    },
    {
        "id": "checkout",
        "name": "Checkout",
        "description": "Place an order for the cart",
        "category": "cart",
        "mode": "both",
        "parameters": {"type": "object", "properties": {}},
        "security": {"requireAuth": True, "validateInput": True},
        "monitoring": {"trackPerformance": True, "logLevel": "info"},
    },
    {
        "id": "request_quote",
        "name": "Request quote",
        "description": "Request a volume price quote for the cart",
        "category": "customer",
        "mode": "b2b",
        "parameters": {
            "type": "object",
            "properties": {"notes": {"type": "string", "maxLength": 500}},
        },
        "security": {"requireAuth": True, "permissions": ["quotes:create"]},
    },
    {
        "id": "request_tax_exemption",
        "name": "Request tax exemption",
        "description": "Submit a tax exemption certificate",
        "category": "customer",
        "mode": "b2b",
        "parameters": {
            "type": "object",
            "properties": {
                "certificate_id": {"type": "string", "minLength": 3, "maxLength": 64},
                "jurisdiction": {"type": "string", "maxLength": 64},
            },
            "required": ["certificate_id"],
        },
        "security": {"requireAuth": True, "permissions": ["tax:exempt"]},
    },
    {
        "id": "clear_cart",
        "name": "Clear cart",
        "description": "Remove every item from the cart",
        "category": "cart",
        "mode": "both",
        "parameters": {"type": "object", "properties": {}},
    },
    {
        "id": "calculate_shipping",
        "name": "Calculate shipping",
        "description": "Price the shipping options for the cart",
        "category": "cart",
        "mode": "both",
        "parameters": {
            "type": "object",
            "properties": {
                "country": {"type": "string", "pattern": r"^[A-Za-z]{2}$", "default": "US"},
                "postal_code": {"type": "string", "maxLength": 16},
            },
        },
    },
    {
        "id": "get_orders",
        "name": "Order history",
        "description": "List the customer's recent orders",
        "category": "customer",
        "mode": "both",
        "parameters": {
            "type": "object",
            "properties": {
                "status": {"type": "string", "enum": list(_ORDER_STATUSES)},
                "limit": {"type": "integer", "minimum": 1, "maximum": 50, "default": 10},
            },
        },
        "security": {"requireAuth": True},
    },
    {
        "id": "get_order_details",
        "name": "Order details",
        "description": "Show the lines and totals of one order",
        "category": "customer",
        "mode": "both",
        "parameters": {"type": "object", "properties": {"order_id": _ORDER_ID}, "required": ["order_id"]},
        "security": {"requireAuth": True},
    },
    {
        "id": "track_order",
        "name": "Track order",
        "description": "Show shipment status and tracking for an order",
        "category": "customer",
        "mode": "both",
        "parameters": {"type": "object", "properties": {"order_id": _ORDER_ID}, "required": ["order_id"]},
        "security": {"requireAuth": True},
    },
    {
        "id": "reorder_items",
        "name": "Reorder",
        "description": "Add the items of a previous order to the cart",
        "category": "cart",
        "mode": "both",
        "parameters": {"type": "object", "properties": {"order_id": _ORDER_ID}, "required": ["order_id"]},
        "security": {"requireAuth": True},
        "rateLimit": {"maxCalls": 10, "windowMs": 60000},
    },
    {
        "id": "get_profile",
        "name": "Customer profile",
        "description": "Show account details and order statistics",
        "category": "customer",
        "mode": "both",
        "parameters": {"type": "object", "properties": {}},
        "security": {"requireAuth": True},
    },
    {
        "id": "request_bulk_pricing",
        "name": "Bulk pricing",
        "description": "Quote volume prices for a product",
        "category": "product",
        "mode": "b2b",
        "parameters": {
            "type": "object",
            "properties": {
                "sku": _SKU,
                "quantities": {
                    "type": "array",
                    "items": {"type": "integer", "minimum": 50, "maximum": 100000},
                    "minItems": 1,
                    "maxItems": 5,
                },
            },
            "required": ["sku", "quantities"],
        },
    },
    {
        "id": "check_bulk_availability",
        "name": "Check bulk availability",
        "description": "Check stock for several products at once",
        "category": "product",
        "mode": "b2b",
        "parameters": {
            "type": "object",
            "properties": {"items": {**_BULK_ITEMS, "maxItems": 50}},
            "required": ["items"],
        },
    },
    {
        "id": "get_account_credit",
        "name": "Account credit",
        "description": "Show the business account's credit limit and balance",
        "category": "customer",
        "mode": "b2b",
        "parameters": {"type": "object", "properties": {}},
        "security": {"requireAuth": True, "permissions": ["account:read"]},
    },
    {
        "id": "create_purchase_order",
        "name": "Create purchase order",
        "description": "Place the cart as an order on account with a PO number",
        "category": "cart",
        "mode": "b2b",
        "parameters": {
            "type": "object",
            "properties": {
                "po_number": {"type": "string", "pattern": r"^[A-Za-z0-9-]{3,32}$"},
                "payment_terms": {
                    "type": "string",
                    "enum": ["net_15", "net_30", "net_45", "net_60", "prepaid"],
                    "default": "net_30",
                },
            },
            "required": ["po_number"],
        },
        "security": {"requireAuth": True, "permissions": ["orders:create"], "validateInput": True},
        "monitoring": {"trackPerformance": True, "logLevel": "info"},
    },
    {
        "id": "process_bulk_order",
        "name": "Bulk order",
        "description": "Add many SKU and quantity lines to the cart in one step",
        "category": "cart",
        "mode": "b2b",
        "parameters": {
            "type": "object",
            "properties": {"items": _BULK_ITEMS},
            "required": ["items"],
        },
        "rateLimit": {"maxCalls": 5, "windowMs": 60000},
    },
    {
        "id": "navigate",
        "name": "Navigate",
        "description": "Send the shopper to a storefront page",
        "category": "navigation",
        "mode": "both",
        "parameters": {
            "type": "object",
            "properties": {
                "destination": {"type": "string", "enum": list(NAVIGATION_PATHS)},
                "query": {"type": "string", "maxLength": 200},
            },
            "required": ["destination"],
        },
    },
]

BUILTIN_HANDLERS = {
    "search_products": search_products,
    "get_product_details": get_product_details,
    "add_to_cart": add_to_cart,
    "update_cart_item": update_cart_item,
    "remove_from_cart": remove_from_cart,
    "get_cart": get_cart,
    "apply_coupon": apply_coupon,
    "compare_products": compare_products,
    "checkout": checkout,
    "request_quote": request_quote,
    "request_tax_exemption": request_tax_exemption,
    "clear_cart": clear_cart,
    "calculate_shipping": calculate_shipping,
    "get_orders": get_orders,
    "get_order_details": get_order_details,
    "track_order": track_order,
    "reorder_items": reorder_items,
    "get_profile": get_profile,
    "request_bulk_pricing": request_bulk_pricing,
    "check_bulk_availability": check_bulk_availability,
    "get_account_credit": get_account_credit,
    "create_purchase_order": create_purchase_order,
    "process_bulk_order": process_bulk_order,
    "navigate": navigate,
}


def register_builtin_actions(registry: ActionRegistry) -> dict[str, bool]:
    """Register every built-in action that is not already present."""
    return registry.load_from_config(BUILTIN_DEFINITIONS, BUILTIN_HANDLERS)
