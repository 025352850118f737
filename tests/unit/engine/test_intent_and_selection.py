"""Unit tests for intent detection, action selection and response formatting."""

import pytest

from chandler.actions.models import ActionResult
from chandler.actions.registry import ActionRegistry
from chandler.conversation.commands import SetMode, UpdateContext
from chandler.conversation.models import ConversationState
from chandler.engine.formatter import FALLBACK_REPLIES, ActionOutcome, ResponseFormatter
from chandler.engine.intent import (
    IntentDetector,
    IntentEntities,
    IntentResult,
    ModeDetector,
    classify_intent,
    extract_entities,
)
from chandler.engine.selection import ActionSelector
from chandler.errors import CommerceError
from chandler.providers.llm import MockLLMProvider, ProviderError


def intent_result(intent: str, mode: str = "b2c", **entities) -> IntentResult:
    return IntentResult(
        intent=intent,
        confidence=0.8,
        mode=mode,
        mode_confidence=1.0,
        entities=IntentEntities(**entities),
    )


class TestModeDetector:
    """Tests for rule-based b2b/b2c scoring."""

    def test_business_purchase_is_b2b(self) -> None:
        """Large quantities and company language indicate b2b."""
        detection = ModeDetector().detect("We need 500 units for our company")

        assert detection.mode == "b2b"
        assert detection.confidence == 1.0
        assert "Quantity of 500 detected" in detection.indicators
        assert detection.signals["business_language"] == 1

    def test_personal_purchase_is_b2c(self) -> None:
        """Personal language indicates b2c."""
        assert ModeDetector().detect("a gift for my mom").mode == "b2c"

    def test_no_signals_is_unknown(self) -> None:
        """Without signals or state the mode is unknown."""
        detection = ModeDetector().detect("laptops")
        assert detection.mode == "unknown"
        assert detection.confidence == 0.0

    def test_previous_mode_counts(self) -> None:
        """The conversation's current mode adds a point."""
        state = ConversationState(thread_id="t", mode="b2b")
        assert ModeDetector().detect("laptops", state).mode == "b2b"


class TestClassifyIntent:
    """Tests for classify_intent and extract_entities."""

    @pytest.mark.parametrize(
        ("message", "expected"),
        [
            ("checkout please", "checkout"),
            ("compare SKU-LAPTOP-14 vs SKU-LAPTOP-16", "compare"),
            ("add SKU-MUG to my cart", "add_to_cart"),
            ("tell me more about the mug", "get_details"),
            ("show me headphones", "search"),
            ("what are your store hours", "ask_question"),
        ],
    )
    def test_classification(self, message: str, expected: str) -> None:
        """The first matching pattern decides the intent."""
        intent, _ = classify_intent(message)
        assert intent == expected

    def test_sku_and_quantity_extraction(self) -> None:
        """SKU digits are not mistaken for quantities."""
        entities = extract_entities("add 2 SKU-LAPTOP-14 to my cart")
        assert entities.skus == ["SKU-LAPTOP-14"]
        assert entities.quantities == [2]
        assert entities.mentions_cart

    def test_number_words(self) -> None:
        """Spelled-out quantities are recognized."""
        entities = extract_entities("I want two mugs")
        assert entities.quantities == [2]
        assert entities.query == "mugs"

    def test_coupon_and_certificate(self) -> None:
        """Coupon codes and certificate ids are pulled out."""
        coupon = extract_entities("apply coupon WELCOME10")
        exemption = extract_entities("tax exemption certificate TX4410")

        assert coupon.coupon_code == "WELCOME10"
        assert exemption.wants_tax_exemption
        assert exemption.certificate_id == "TX4410"

    @pytest.mark.parametrize(
        ("message", "code"),
        [
            ("apply coupon code WELCOME10", "WELCOME10"),
            ("use promo code SPRING15 please", "SPRING15"),
            ("promocode SPRING15", "SPRING15"),
            ("discount code save-20", "save-20"),
            ("coupon WELCOME10!", "WELCOME10"),
        ],
    )
    def test_coupon_phrasings(self, message: str, code: str) -> None:
        """The filler word "code" is never taken as the coupon itself."""
        assert extract_entities(message).coupon_code == code

    def test_postal_code_is_not_a_coupon(self) -> None:
        """A zip code is read as a destination, not a discount."""
        entities = extract_entities("shipping cost to zip code 94107")

        assert entities.coupon_code is None
        assert entities.postal_code == "94107"
        assert entities.wants_shipping

    @pytest.mark.parametrize(
        "message",
        [
            "check certificate TX-4410",
            "tax exempt cert #TX-4410.",
            "my tax exemption certificate is TX-4410",
            "certificate number TX-4410, thanks",
        ],
    )
    def test_hyphenated_certificate(self, message: str) -> None:
        """Hyphenated certificate ids survive whole and are not reported as SKUs."""
        entities = extract_entities(message)

        assert entities.certificate_id == "TX-4410"
        assert entities.skus == []
        assert 4410 not in entities.quantities

    def test_certificate_next_to_sku(self) -> None:
        """Only the SKU that is not the certificate stays in the SKU list."""
        entities = extract_entities("cert TX-4410 covers SKU-PAPER-CASE")

        assert entities.certificate_id == "TX-4410"
        assert entities.skus == ["SKU-PAPER-CASE"]

    def test_purchase_order_number(self) -> None:
        """PO numbers are pulled out and kept off the SKU list."""
        entities = extract_entities("check out with PO-2024-117 for SKU-PAPER-CASE")

        assert entities.po_number == "PO-2024-117"
        assert entities.skus == ["SKU-PAPER-CASE"]

    def test_po_needs_an_identifier(self) -> None:
        """A purchase order mention without a number yields no PO."""
        assert extract_entities("can I pay by purchase order?").po_number is None

    @pytest.mark.parametrize(
        ("message", "skus"),
        [
            ("add SKU-MUG, SKU-HEADPHONES.", ["SKU-MUG", "SKU-HEADPHONES"]),
            ("(SKU-LAPTOP-14) or [SKU-LAPTOP-16]?", ["SKU-LAPTOP-14", "SKU-LAPTOP-16"]),
            ("is SKU-PAPER-CASE's price final", ["SKU-PAPER-CASE"]),
            ("SKU-MUG;SKU-MUG", ["SKU-MUG"]),
        ],
    )
    def test_skus_next_to_punctuation(self, message: str, skus: list[str]) -> None:
        """Punctuation around a SKU is not part of it; repeats collapse."""
        assert extract_entities(message).skus == skus

    @pytest.mark.parametrize(
        ("message", "expected"),
        [
            ("take out SKU-MUG from the basket", "add_to_cart"),
            ("I'm looking for a desk lamp", "search"),
            ("do you carry standing desks", "search"),
            ("proceed to checkout now", "checkout"),
            ("what's the difference between SKU-LAPTOP-14 and SKU-LAPTOP-16", "compare"),
            ("could you tell me more about SKU-MUG", "get_details"),
        ],
    )
    def test_multi_word_triggers(self, message: str, expected: str) -> None:
        """Triggers spanning several words classify like single-word ones."""
        intent, _ = classify_intent(message)
        assert intent == expected

    def test_multi_word_removal_entities(self) -> None:
        """"take out" marks removal and keeps the hyphenated SKU whole."""
        entities = extract_entities("take out SKU-LAPTOP-14 from the basket")

        assert entities.removal
        assert entities.mentions_cart
        assert entities.skus == ["SKU-LAPTOP-14"]
        assert entities.quantities == []

    @pytest.mark.parametrize(
        ("message", "flag"),
        [
            ("show my order history", "wants_orders"),
            ("where is my package?", "wants_tracking"),
            ("please reorder that", "wants_reorder"),
            ("buy the same things again", "wants_reorder"),
            ("empty my cart", "clear_cart"),
            ("what's our credit limit", "wants_credit"),
            ("show my account details", "wants_profile"),
            ("do you offer volume pricing", "wants_bulk_pricing"),
            ("what are the delivery options", "wants_shipping"),
        ],
    )
    def test_topic_flags(self, message: str, flag: str) -> None:
        """Account and order topics are flagged for routing."""
        assert getattr(extract_entities(message), flag) is True

    @pytest.mark.parametrize(
        ("message", "order_id"),
        [
            ("track ord_1a2b3c4d5e6f", "ord_1a2b3c4d5e6f"),
            ("details for order #A-1001.", "A-1001"),
        ],
    )
    def test_order_ids(self, message: str, order_id: str) -> None:
        """Order ids are recognised and not reported as SKUs."""
        entities = extract_entities(message)

        assert entities.order_id == order_id
        assert entities.skus == []

    @pytest.mark.parametrize(
        ("message", "destination"),
        [
            ("take me to the checkout page", "checkout"),
            ("go to my orders", "orders"),
            ("open the home page", "home"),
            ("navigate to basket", "cart"),
        ],
    )
    def test_navigation_targets(self, message: str, destination: str) -> None:
        """Page requests resolve to a storefront destination."""
        assert extract_entities(message).navigate_to == destination


class TestIntentDetector:
    """Tests for IntentDetector."""

    @pytest.mark.asyncio
    async def test_fixed_mode(self, b2c_state: ConversationState) -> None:
        """A fixed mode overrides detection with full confidence."""
        result = await IntentDetector().detect("show me laptops", b2c_state, fixed_mode="b2b")
        assert result.mode == "b2b"
        assert result.mode_confidence == 1.0
        assert result.source == "rules"

    def test_commands_record_detection(self, b2c_state: ConversationState) -> None:
        """Detection results become SetMode and UpdateContext commands."""
        result = IntentDetector().detect_rules("show me laptops", b2c_state)
        set_mode, update = result.commands()

        assert isinstance(set_mode, SetMode)
        assert isinstance(update, UpdateContext)
        assert update.values["detected_intent"] == "search"
        assert update.values["intent_entities"] == {"query": "laptops"}

    @pytest.mark.asyncio
    async def test_llm_classification(self, b2c_state: ConversationState) -> None:
        """An LLM intent replaces the rule intent; a weaker LLM mode does not."""
        llm = MockLLMProvider(default_response='{"intent": "compare", "confidence": 0.9, "mode": "b2b"}')
        detector = IntentDetector(llm, use_llm=True)

        result = await detector.detect("which one should I get", b2c_state)

        assert result.intent == "compare"
        assert result.source == "llm"
        assert result.mode == "b2c"
        assert "which one should I get" in llm.call_history[0]["messages"][0].content

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "llm",
        [
            MockLLMProvider(default_response="not json"),
            MockLLMProvider(default_response='{"intent": "dance"}'),
            MockLLMProvider(error=ProviderError("provider down")),
        ],
    )
    async def test_llm_failure_falls_back(self, llm: MockLLMProvider, b2c_state: ConversationState) -> None:
        """Bad or failing LLM output falls back to the rule result."""
        result = await IntentDetector(llm, use_llm=True).detect("show me laptops", b2c_state)
        assert result.intent == "search"
        assert result.source == "rules"


class TestActionSelector:
    """Tests for ActionSelector."""

    def test_search(self, registry: ActionRegistry, b2c_state: ConversationState) -> None:
        """Search intents select search_products with the extracted query."""
        [selected] = ActionSelector(registry).select(intent_result("search", query="laptops"), b2c_state)
        assert selected.action_id == "search_products"
        assert selected.args == {"query": "laptops"}

    def test_add_several_skus(self, registry: ActionRegistry, b2c_state: ConversationState) -> None:
        """A single quantity applies to every SKU."""
        selected = ActionSelector(registry).select(
            intent_result("add_to_cart", skus=["SKU-MUG", "SKU-HEADPHONES"], quantities=[3]),
            b2c_state,
        )
        assert [(s.action_id, s.args["sku"], s.args["quantity"]) for s in selected] == [
            ("add_to_cart", "SKU-MUG", 3),
            ("add_to_cart", "SKU-HEADPHONES", 3),
        ]

    def test_coupon_before_checkout(self, registry: ActionRegistry, b2c_state: ConversationState) -> None:
        """Coupons are applied before the checkout action."""
        selected = ActionSelector(registry).select(
            intent_result("checkout", coupon_code="WELCOME10"), b2c_state
        )
        assert [s.action_id for s in selected] == ["apply_coupon", "checkout"]

    def test_mode_availability(self, registry: ActionRegistry, b2b_state: ConversationState) -> None:
        """b2c-only actions are dropped in b2b; quotes replace checkout."""
        selected = ActionSelector(registry).select(
            intent_result("checkout", mode="b2b", coupon_code="WELCOME10", wants_quote=True),
            b2b_state,
        )
        assert [s.action_id for s in selected] == ["request_quote"]

    def test_max_actions(self, registry: ActionRegistry, b2c_state: ConversationState) -> None:
        """Selection stops at the configured maximum."""
        selected = ActionSelector(registry, max_actions=1).select(
            intent_result("add_to_cart", skus=["SKU-MUG", "SKU-HEADPHONES"]), b2c_state
        )
        assert len(selected) == 1

    def test_details_use_last_viewed(self, registry: ActionRegistry) -> None:
        """Without a SKU, details refer to the last viewed product."""
        state = ConversationState(thread_id="t", context={"last_viewed": "SKU-MUG"})
        [selected] = ActionSelector(registry).select(intent_result("get_details"), state)
        assert selected.args == {"sku": "SKU-MUG"}

    def test_questions_select_nothing(self, registry: ActionRegistry, b2c_state: ConversationState) -> None:
        """Plain questions need no action."""
        assert ActionSelector(registry).select(intent_result("ask_question"), b2c_state) == []

    def test_navigation_beats_checkout(self, registry: ActionRegistry, b2c_state: ConversationState) -> None:
        """Asking to see the checkout page does not place an order."""
        result = IntentDetector().detect_rules("take me to checkout", b2c_state)

        [selected] = ActionSelector(registry).select(result, b2c_state)

        assert result.intent == "checkout"
        assert selected.action_id == "navigate"
        assert selected.args == {"destination": "checkout"}

    def test_clear_cart(self, registry: ActionRegistry, b2c_state: ConversationState) -> None:
        """Clearing the cart is not read as viewing it."""
        result = IntentDetector().detect_rules("please empty my cart", b2c_state)
        [selected] = ActionSelector(registry).select(result, b2c_state)
        assert selected.action_id == "clear_cart"

    @pytest.mark.parametrize(
        ("message", "action_id", "args"),
        [
            ("track my last order", "track_order", {"order_id": "ord_abc123def456"}),
            ("order it again", "reorder_items", {"order_id": "ord_abc123def456"}),
            ("show me details for ord_0000aaaa1111", "get_order_details", {"order_id": "ord_0000aaaa1111"}),
            ("show my order history", "get_orders", {}),
        ],
    )
    def test_order_routing(
        self, registry: ActionRegistry, message: str, action_id: str, args: dict
    ) -> None:
        """Order requests use the named or most recent order."""
        state = ConversationState(thread_id="t", context={"last_order_id": "ord_abc123def456"})
        result = IntentDetector().detect_rules(message, state, fixed_mode="b2c")

        [selected] = ActionSelector(registry).select(result, state)

        assert (selected.action_id, selected.args) == (action_id, args)

    def test_tracking_without_known_order(self, registry: ActionRegistry, b2c_state: ConversationState) -> None:
        """With no order to track, the history is shown instead."""
        result = IntentDetector().detect_rules("where is my order", b2c_state)
        [selected] = ActionSelector(registry).select(result, b2c_state)
        assert selected.action_id == "get_orders"

    def test_purchase_order_checkout(self, registry: ActionRegistry, b2b_state: ConversationState) -> None:
        """A b2b checkout with a PO number becomes a purchase order."""
        result = IntentDetector().detect_rules(
            "checkout with PO-2024-117", b2b_state, fixed_mode="b2b"
        )
        [selected] = ActionSelector(registry).select(result, b2b_state)

        assert selected.action_id == "create_purchase_order"
        assert selected.args == {"po_number": "PO-2024-117"}

    def test_bulk_pricing_tiers(self, registry: ActionRegistry, b2b_state: ConversationState) -> None:
        """Volume pricing uses quantities of fifty or more, else the default ladder."""
        selector = ActionSelector(registry)
        named = IntentDetector().detect_rules(
            "bulk pricing for SKU-PAPER-CASE at 100 and 500 units", b2b_state, fixed_mode="b2b"
        )
        default = IntentDetector().detect_rules(
            "volume pricing for SKU-PAPER-CASE", b2b_state, fixed_mode="b2b"
        )

        [with_quantities] = selector.select(named, b2b_state)
        [with_ladder] = selector.select(default, b2b_state)

        assert with_quantities.args == {"sku": "SKU-PAPER-CASE", "quantities": [100, 500]}
        assert with_ladder.args["quantities"] == [50, 100, 500, 1000]

    def test_bulk_order_from_chat(self, registry: ActionRegistry, b2b_state: ConversationState) -> None:
        """A bulk order message becomes one process_bulk_order call with every line."""
        result = IntentDetector().detect_rules(
            "bulk order 100 SKU-PAPER-CASE and 40 SKU-MUG", b2b_state, fixed_mode="b2b"
        )

        [selected] = ActionSelector(registry).select(result, b2b_state)

        assert selected.action_id == "process_bulk_order"
        assert selected.args == {
            "items": [
                {"sku": "SKU-PAPER-CASE", "quantity": 100},
                {"sku": "SKU-MUG", "quantity": 40},
            ]
        }

    def test_account_actions_are_b2b_only(self, registry: ActionRegistry, b2c_state: ConversationState) -> None:
        """Consumers asking about trade credit get no account action."""
        result = IntentDetector().detect_rules("what is my credit limit", b2c_state, fixed_mode="b2c")
        assert ActionSelector(registry).select(result, b2c_state) == []

    def test_shipping_with_postal_code(self, registry: ActionRegistry, b2c_state: ConversationState) -> None:
        """Shipping questions pass the postal code through."""
        result = IntentDetector().detect_rules(
            "how much is shipping to zip 94107", b2c_state, fixed_mode="b2c"
        )
        [selected] = ActionSelector(registry).select(result, b2c_state)

        assert selected.action_id == "calculate_shipping"
        assert selected.args == {"postal_code": "94107"}


class TestResponseFormatter:
    """Tests for ResponseFormatter."""

    def _outcome(self, message: str) -> ActionOutcome:
        return ActionOutcome("search_products", {}, result=ActionResult(message=message))

    def test_compose_joins_messages(self) -> None:
        """Action messages are joined with blank lines."""
        text = ResponseFormatter().compose([self._outcome("One."), self._outcome("Two.")], "search")
        assert text == "One.\n\nTwo."

    def test_fallback_without_actions(self) -> None:
        """No actions yields the intent's fallback reply."""
        assert ResponseFormatter().compose([], "compare") == FALLBACK_REPLIES["compare"]

    def test_failures_produce_no_text(self) -> None:
        """Failed actions are reported elsewhere and add no text."""
        failed = ActionOutcome("checkout", {}, error=CommerceError("boom"))
        assert ResponseFormatter().compose([failed], "checkout") == ""

    @pytest.mark.asyncio
    async def test_llm_formatting(self) -> None:
        """With an LLM the facts are rendered into the prompt."""
        llm = MockLLMProvider(default_response="We have two laptops for you.", stream_chunk_size=4)
        formatter = ResponseFormatter(llm, use_llm=True)

        text = await formatter.format(
            "laptops?", [self._outcome("Found 2 laptops.")], intent="search", mode="b2c", thread_id="t"
        )

        assert text == "We have two laptops for you."
        prompt = llm.call_history[0]["messages"][0].content
        assert "- Found 2 laptops." in prompt
        assert "shoppers" in prompt

    @pytest.mark.asyncio
    async def test_llm_failure_uses_draft(self) -> None:
        """Provider errors fall back to the deterministic reply."""
        formatter = ResponseFormatter(MockLLMProvider(error=ProviderError("down")), use_llm=True)
        text = await formatter.format(
            "laptops?", [self._outcome("Found 2 laptops.")], intent="search", mode="b2c", thread_id="t"
        )
        assert text == "Found 2 laptops."

    def test_fragments(self) -> None:
        """Text is split into fixed-size pieces."""
        assert list(ResponseFormatter(chunk_size=4).fragments("abcdefghij")) == ["abcd", "efgh", "ij"]
