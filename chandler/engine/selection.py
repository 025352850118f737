"""Map a detected intent to registry actions and their arguments."""

from dataclasses import dataclass, field
from typing import Any

from chandler.actions.factory import CompiledTool
from chandler.actions.registry import ActionRegistry
from chandler.conversation.models import ConversationState
from chandler.engine.intent import IntentEntities, IntentResult
from chandler.observability.logging import get_logger

logger = get_logger(__name__)

BULK_PRICING_MIN = 50
DEFAULT_TIERS = (50, 100, 500, 1000)


@dataclass
class SelectedAction:
    """An action chosen for this turn, in commit order."""

    tool: CompiledTool
    args: dict[str, Any] = field(default_factory=dict)

    @property
    def action_id(self) -> str:
        return self.tool.id


class ActionSelector:
    """Chooses actions for an intent from the tools available in the mode.

    Zero or more actions may be selected. The returned order is the
    order in which their commands are committed.
    """

    def __init__(self, registry: ActionRegistry, max_actions: int = 3) -> None:
        self._registry = registry
        self._max_actions = max_actions

    def select(self, intent: IntentResult, state: ConversationState) -> list[SelectedAction]:
        available = {tool.id: tool for tool in self._registry.get_tools_by(mode=intent.mode)}
        selected: list[SelectedAction] = []
        for action_id, args in self._plan(intent, state):
            tool = available.get(action_id)
            if tool is None:
                logger.debug(
                    "action_unavailable",
                    action_id=action_id,
                    mode=intent.mode,
                    thread_id=state.thread_id,
                )
                continue
            selected.append(SelectedAction(tool=tool, args=args))
            if len(selected) >= self._max_actions:
                break
        return selected

    def _plan(self, intent: IntentResult, state: ConversationState) -> list[tuple[str, dict[str, Any]]]:
        plan = self._account_plan(intent, state) or self._intent_plan(intent, state)

        coupon_code = intent.entities.coupon_code
        if coupon_code:
            # Coupons go after cart changes and before checkout
            coupon = ("apply_coupon", {"code": coupon_code})
            position = len(plan) - 1 if plan and plan[-1][0] == "checkout" else len(plan)
            plan.insert(position, coupon)

        return plan

    def _intent_plan(
        self, intent: IntentResult, state: ConversationState
    ) -> list[tuple[str, dict[str, Any]]]:
        entities = intent.entities
        plan: list[tuple[str, dict[str, Any]]] = []

        if intent.intent == "search":
            plan.append(("search_products", {"query": entities.query or "all"}))

        elif intent.intent == "compare":
            skus = entities.skus or list(state.context.get("last_results", []))[:2]
            if len(skus) >= 2:
                plan.append(("compare_products", {"skus": skus[:4]}))
            elif entities.query:
                plan.append(("search_products", {"query": entities.query}))

        elif intent.intent == "get_details":
            skus = entities.skus or _recent_skus(state)[:1]
            plan.extend(("get_product_details", {"sku": sku}) for sku in skus)
            if not skus and entities.query:
                plan.append(("search_products", {"query": entities.query}))

        elif intent.intent == "add_to_cart":
            plan.extend(self._cart_plan(entities, state))

        elif intent.intent == "checkout":
            if intent.mode == "b2b" and entities.po_number:
                plan.append(("create_purchase_order", {"po_number": entities.po_number}))
            elif intent.mode == "b2b" and entities.wants_quote:
                plan.append(("request_quote", {}))
            else:
                plan.append(("checkout", {}))

        else:
            if entities.wants_tax_exemption and entities.certificate_id:
                plan.append(("request_tax_exemption", {"certificate_id": entities.certificate_id}))
            elif entities.wants_quote:
                plan.append(("request_quote", {}))
            elif entities.wants_shipping:
                plan.append(("calculate_shipping", _shipping_args(entities)))
            elif entities.mentions_cart:
                plan.append(("get_cart", {}))

        return plan

    def _account_plan(
        self, intent: IntentResult, state: ConversationState
    ) -> list[tuple[str, dict[str, Any]]]:
        """Requests that name their own action and take precedence over the intent.

        "take me to checkout" navigates rather than placing an order, and
        "order it again" reorders rather than adding an unnamed product.
        """
        entities = intent.entities
        order_id = entities.order_id or state.context.get("last_order_id")

        if entities.navigate_to:
            return [("navigate", {"destination": entities.navigate_to})]
        if entities.clear_cart:
            return [("clear_cart", {})]
        if entities.wants_reorder and order_id:
            return [("reorder_items", {"order_id": order_id})]
        if entities.wants_tracking and order_id:
            return [("track_order", {"order_id": order_id})]
        if entities.wants_tracking or entities.wants_reorder or entities.wants_orders:
            return [("get_orders", {})]
        if entities.order_id:
            return [("get_order_details", {"order_id": entities.order_id})]
        if entities.wants_credit:
            return [("get_account_credit", {})]
        if entities.wants_profile:
            return [("get_profile", {})]
        if entities.po_number and intent.intent != "checkout":
            return [("create_purchase_order", {"po_number": entities.po_number})]
        if entities.wants_bulk_pricing:
            skus = entities.skus or _recent_skus(state)[:1]
            quantities = [q for q in entities.quantities if q >= BULK_PRICING_MIN][:5]
            tiers = quantities or list(DEFAULT_TIERS)
            return [("request_bulk_pricing", {"sku": sku, "quantities": tiers}) for sku in skus]
        if entities.wants_bulk_order and entities.skus and not entities.removal:
            items = [args for _, args in self._cart_plan(entities, state)]
            return [("process_bulk_order", {"items": items})]
        return []

    def _cart_plan(self, entities: IntentEntities, state: ConversationState) -> list[tuple[str, dict[str, Any]]]:
        skus = entities.skus or _recent_skus(state)[:1]
        if entities.removal:
            return [("remove_from_cart", {"sku": sku}) for sku in skus]

        plan = []
        for index, sku in enumerate(skus):
            if index < len(entities.quantities):
                quantity = entities.quantities[index]
            elif len(entities.quantities) == 1:
                quantity = entities.quantities[0]
            else:
                quantity = 1
            plan.append(("add_to_cart", {"sku": sku, "quantity": quantity}))
        return plan


def _recent_skus(state: ConversationState) -> list[str]:
    """SKUs the customer most likely refers to with "it" or "that"."""
    recent = []
    if state.context.get("last_viewed"):
        recent.append(state.context["last_viewed"])
    recent.extend(state.context.get("last_results", []))
    return list(dict.fromkeys(recent))


def _shipping_args(entities: IntentEntities) -> dict[str, Any]:
    return {"postal_code": entities.postal_code} if entities.postal_code else {}
