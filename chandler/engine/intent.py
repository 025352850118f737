"""Shopping mode and intent detection.

Rule-based scoring decides between b2c and b2b and classifies the
message into one of a fixed set of intents. An LLM classifier can be
layered on top; the rule result is the fallback whenever it fails.
"""

import json
import re
from dataclasses import dataclass, field
from typing import Any, Literal

from pydantic import BaseModel, Field

from chandler.conversation.commands import Command, SetMode, UpdateContext
from chandler.conversation.models import ConversationState, Mode
from chandler.observability.logging import get_logger
from chandler.providers.llm.base import LLMMessage, LLMProvider, ProviderError
from chandler.providers.llm.prompts import TemplateLoader

logger = get_logger(__name__)

Intent = Literal["search", "compare", "add_to_cart", "get_details", "checkout", "ask_question"]
INTENTS: tuple[str, ...] = ("search", "compare", "add_to_cart", "get_details", "checkout", "ask_question")

B2B_PATTERNS: dict[str, tuple[re.Pattern[str], int, str]] = {
    "quantities": (
        re.compile(
            r"\b(\d+\s*(?:units?|pieces?|boxes?|cases?|pallets?|bulk|wholesale|dozen|gross))\b", re.I
        ),
        2,
        "Large quantity mentioned",
    ),
    "business_terms": (
        re.compile(
            r"\b(company|business|organization|corporate|enterprise|firm|procurement|"
            r"purchase order|po|quote|rfq|invoice|net \d+|terms|vendor|supplier|reseller|"
            r"distributor|tax exempt|ein|vat|wholesale account)\b",
            re.I,
        ),
        2,
        "Business terminology used",
    ),
    "bulk_pricing": (
        re.compile(
            r"\b(bulk\s*(?:pricing|discount|order)|volume\s*(?:pricing|discount)|"
            r"tier(?:ed)?\s*pricing|quantity\s*(?:discount|break)|wholesale\s*price)\b",
            re.I,
        ),
        3,
        "Bulk pricing request",
    ),
    "account_types": (
        re.compile(
            r"\b(business\s*account|corporate\s*account|trade\s*account|wholesale\s*account|"
            r"dealer|reseller|b2b)\b",
            re.I,
        ),
        3,
        "Business account reference",
    ),
    "logistics": (
        re.compile(
            r"\b(freight|pallet\s*shipping|ltl|full\s*truck|loading\s*dock|commercial\s*address)\b",
            re.I,
        ),
        2,
        "Commercial logistics mentioned",
    ),
}
LARGE_NUMBER = re.compile(r"\b([1-9]\d{2,})\s*(?:items?|products?|units?)?\b", re.I)

B2C_PATTERNS: dict[str, tuple[re.Pattern[str], int, str]] = {
    "personal_terms": (
        re.compile(r"\b(my|me|i|personal|home|family|gift|present)\b", re.I),
        2,
        "Personal context detected",
    ),
    "small_quantities": (
        re.compile(r"\b(one|a|an|single|couple|few)\b", re.I),
        1,
        "Small quantity mentioned",
    ),
    "consumer_shipping": (
        re.compile(r"\b(home\s*delivery|residential|apartment|free\s*shipping)\b", re.I),
        1,
        "Residential shipping",
    ),
    "consumer_payment": (
        re.compile(r"\b(credit\s*card|paypal|afterpay|klarna|personal\s*check)\b", re.I),
        1,
        "Consumer payment method",
    ),
}

INTENT_PATTERNS: list[tuple[str, re.Pattern[str]]] = [
    (
        "checkout",
        re.compile(
            r"\b(check\s*out|checkout|place\s+(?:my\s+|the\s+|an\s+)?order|"
            r"proceed\s+to\s+(?:payment|checkout)|pay\s+now|complete\s+(?:my\s+)?(?:order|purchase))\b",
            re.I,
        ),
    ),
    (
        "compare",
        re.compile(r"\b(compare|comparison|versus|vs\.?|difference\s+between|which\s+is\s+better)\b", re.I),
    ),
    (
        "add_to_cart",
        re.compile(
            r"\b(add|put|remove|delete|take\s+out)\b.*\b(cart|basket)\b|"
            r"\b(add|i'?ll\s+take|order)\s+(?:\d+|an?|one|two|three|this|that|it|these|those)\b|"
            r"\badd\s+[A-Z0-9]+(?:-[A-Z0-9]+)+",
            re.I,
        ),
    ),
    (
        "get_details",
        re.compile(
            r"\b(details?|specs?|specifications?|tell\s+me\s+more|more\s+about|"
            r"info(?:rmation)?\s+(?:on|about))\b",
            re.I,
        ),
    ),
    (
        "search",
        re.compile(
            r"\b(show|find|search|looking\s+for|look\s+for|need|browse|recommend|"
            r"do\s+you\s+(?:have|sell|carry)|any)\b",
            re.I,
        ),
    ),
]

SKU_PATTERN = re.compile(r"\b[A-Z][A-Z0-9]*(?:-[A-Z0-9]+)+\b")
NUMBER = re.compile(r"\b(\d{1,6})\b")
NUMBER_WORDS = {"a": 1, "an": 1, "one": 1, "two": 2, "three": 3, "four": 4, "five": 5, "ten": 10}
COUPON = re.compile(
    r"\b(?:(?:coupon|promo)(?:\s*code)?|discount\s+code|(?<!zip )(?<!postal )code)"
    r"\s+(?!code\b)([A-Za-z0-9_-]{3,32})\b",
    re.I,
)
# Identifiers must contain a digit so "certificate for ..." captures nothing
_IDENTIFIER = r"(?=[A-Za-z-]*\d)([A-Za-z0-9](?:[A-Za-z0-9-]{1,62}[A-Za-z0-9]))"
CERTIFICATE = re.compile(
    r"\bcert(?:ificate)?\b(?:\s+is|\s*:)?\s*(?:#|no\.?|number)?\s*" + _IDENTIFIER, re.I
)
PO_NUMBER = re.compile(
    r"\b(PO-[A-Za-z0-9](?:[A-Za-z0-9-]{0,29}[A-Za-z0-9])?)\b|"
    r"\b(?:po|purchase\s+order)\b\s*(?:#|no\.?|number)?\s*:?\s*" + _IDENTIFIER,
    re.I,
)
ORDER_ID = re.compile(r"\b(ord_[a-z0-9]{6,32})\b|\border\s*#\s*([A-Za-z0-9_-]{3,64})", re.I)
POSTAL_CODE = re.compile(r"\b(?:zip|postal)(?:\s*code)?\s*:?\s*(\d{5})\b", re.I)
QUOTE = re.compile(r"\b(quote|rfq)\b", re.I)
TAX_EXEMPTION = re.compile(r"\btax[\s-]*exempt(?:ion)?\b", re.I)
CART_MENTION = re.compile(r"\b(?:my|the)\s+(?:cart|basket)\b|\bcart\b", re.I)
REMOVAL = re.compile(r"\b(remove|delete|take\s+out)\b", re.I)
CLEAR_CART = re.compile(
    r"\b(?:clear|empty|reset)\s+(?:out\s+)?(?:my\s+|the\s+)?(?:cart|basket)\b|"
    r"\bremove\s+everything\s+from\s+(?:my\s+|the\s+)?(?:cart|basket)\b",
    re.I,
)
ORDER_HISTORY = re.compile(
    r"\b(?:order\s+history|(?:my|past|previous|recent)\s+orders|"
    r"orders?\s+i(?:'ve|\s+have)?\s+(?:placed|made))\b",
    re.I,
)
TRACKING = re.compile(
    r"\b(?:track(?:ing)?|where\s+is\s+my\s+(?:order|package|delivery|shipment)|"
    r"(?:has|did)\s+(?:my\s+order|it)\s+ship(?:ped)?)\b",
    re.I,
)
REORDER = re.compile(
    r"\b(?:re-?order|(?:order|buy)\s+(?:it|that|those|the\s+same(?:\s+things?)?)\s+again)\b", re.I
)
SHIPPING = re.compile(
    r"\b(?:shipping|delivery)\s+(?:costs?|prices?|options?|rates?|fees?|estimates?)\b|"
    r"\bhow\s+much\s+(?:is|for|does)\s+(?:shipping|delivery)\b",
    re.I,
)
ACCOUNT_CREDIT = re.compile(
    r"\b(?:credit\s+(?:limit|line|balance)|account\s+(?:credit|balance)|available\s+credit)\b", re.I
)
PROFILE = re.compile(
    r"\b(?:my\s+(?:profile|account\s+(?:details|info(?:rmation)?))|account\s+details)\b",
    re.I,
)
BULK_PRICING = re.compile(
    r"\b(?:bulk|volume|wholesale)\s*(?:pricing|prices?|discounts?)\b|"
    r"\btier(?:ed)?\s*pricing\b|\bquantity\s*(?:discounts?|breaks?)\b",
    re.I,
)
BULK_ORDER = re.compile(r"\b(?:bulk|wholesale|volume)\s+(?:order|purchase)\b", re.I)
NAVIGATION = re.compile(
    r"\b(?:go\s+to|take\s+me\s+to|open|navigate\s+to|bring\s+me\s+to)\s+(?:the\s+|my\s+)?"
    r"(home(?:\s*page)?|cart|basket|checkout(?:\s+page)?|orders?|account|quotes?)\b",
    re.I,
)
NAVIGATION_TARGETS = {
    "home": "home",
    "homepage": "home",
    "cart": "cart",
    "basket": "cart",
    "checkout": "checkout",
    "order": "orders",
    "orders": "orders",
    "account": "account",
    "quote": "quotes",
    "quotes": "quotes",
}
WORD = re.compile(r"[a-z0-9']+")

STOPWORDS = frozenset(
    """a an the some any me my i i'm im you your we our us to for of with and or in on at
    please can could would will do does have has show find search looking look need want
    browse recommend get buy see got is are there it this that these those what which
    sell carry about more tell details info information""".split()
)


@dataclass
class ModeDetection:
    """Outcome of rule-based mode scoring."""

    mode: Mode | Literal["unknown"]
    confidence: float
    b2b_score: int = 0
    b2c_score: int = 0
    indicators: list[str] = field(default_factory=list)
    signals: dict[str, int] = field(default_factory=dict)


class IntentEntities(BaseModel):
    """Values pulled out of the message for action arguments."""

    query: str | None = None
    skus: list[str] = Field(default_factory=list)
    quantities: list[int] = Field(default_factory=list)
    coupon_code: str | None = None
    certificate_id: str | None = None
    wants_quote: bool = False
    wants_tax_exemption: bool = False
    mentions_cart: bool = False
    removal: bool = False
    order_id: str | None = None
    po_number: str | None = None
    postal_code: str | None = None
    navigate_to: str | None = None
    clear_cart: bool = False
    wants_orders: bool = False
    wants_tracking: bool = False
    wants_reorder: bool = False
    wants_shipping: bool = False
    wants_credit: bool = False
    wants_profile: bool = False
    wants_bulk_pricing: bool = False
    wants_bulk_order: bool = False


class IntentResult(BaseModel):
    """Detected intent, mode and entities for one message."""

    intent: Intent
    confidence: float = Field(ge=0, le=1)
    mode: Mode
    mode_confidence: float = Field(ge=0, le=1)
    entities: IntentEntities = Field(default_factory=IntentEntities)
    indicators: list[str] = Field(default_factory=list)
    source: Literal["rules", "llm"] = "rules"

    def commands(self) -> list[Command]:
        """State changes recording this detection."""
        return [
            SetMode(mode=self.mode),
            UpdateContext(
                values={
                    "detected_intent": self.intent,
                    "intent_confidence": self.confidence,
                    "intent_entities": self.entities.model_dump(exclude_defaults=True),
                    "mode_indicators": self.indicators,
                }
            ),
        ]


class ModeDetector:
    """Scores b2b and b2c signals in messages."""

    def detect(self, message: str, state: ConversationState | None = None) -> ModeDetection:
        """Score b2b and b2c signals and pick the stronger side.

        Runs before any per-mode limit is applied. A b2c shopper who writes
        "order 150 units" without a pinned mode therefore scores as b2b, and
        the quantity is later checked against the b2b ceiling rather than the
        b2c one. Callers that must hold a shopper to b2c limits pin the mode.
        """
        b2b = 0
        b2c = 0
        indicators: list[str] = []
        signals = {"quantity": 0, "business_language": 0, "account_type": 0, "bulk_pricing": 0}

        for name, (pattern, score, indicator) in B2B_PATTERNS.items():
            if pattern.search(message):
                b2b += score
                indicators.append(indicator)
                if name == "quantities":
                    signals["quantity"] += 1
                elif name == "business_terms":
                    signals["business_language"] += 1
                elif name == "bulk_pricing":
                    signals["bulk_pricing"] += 1
                elif name == "account_types":
                    signals["account_type"] += 1

        large = LARGE_NUMBER.search(message)
        if large and int(large.group(1)) >= 100:
            b2b += 3
            signals["quantity"] += 1
            indicators.append(f"Quantity of {large.group(1)} detected")

        for _, (pattern, score, indicator) in B2C_PATTERNS.items():
            if pattern.search(message):
                b2c += score
                indicators.append(indicator)

        if state is not None:
            if state.mode == "b2b":
                b2b += 1
                indicators.append("Previous B2B context")
            else:
                b2c += 1
                indicators.append("Previous B2C context")
            cart_quantity = sum(item.quantity for item in state.cart.items)
            if cart_quantity >= 50:
                b2b += 2
                signals["quantity"] += 1
                indicators.append(f"Cart contains {cart_quantity} items")

        total = b2b + b2c
        if total == 0:
            return ModeDetection("unknown", 0.0, b2b, b2c, indicators, signals)
        if b2b > b2c:
            mode: Mode = "b2b"
            confidence = b2b / total
        elif b2c > b2b:
            mode = "b2c"
            confidence = b2c / total
        else:
            strong = signals["quantity"] >= 2 or signals["bulk_pricing"] >= 1
            mode = "b2b" if strong else "b2c"
            confidence = 0.5
        return ModeDetection(mode, round(confidence, 2), b2b, b2c, indicators, signals)


def classify_intent(message: str) -> tuple[Intent, float]:
    """First matching intent pattern wins; questions are the fallback."""
    for intent, pattern in INTENT_PATTERNS:
        if pattern.search(message):
            return intent, 0.8  # type: ignore[return-value]
    return "ask_question", 0.5


def extract_entities(message: str) -> IntentEntities:
    """Pull identifiers, quantities and topic flags out of a message.

    Coupon, certificate, purchase order and order ids are read from the
    original text and never reported as SKUs, even when they are shaped
    like one.
    """
    coupon = COUPON.search(message)
    certificate = CERTIFICATE.search(message)
    po_number = PO_NUMBER.search(message)
    order = ORDER_ID.search(message)
    postal = POSTAL_CODE.search(message)
    navigation = NAVIGATION.search(message)

    found = {
        name: next(g for g in match.groups() if g) if match else None
        for name, match in (
            ("coupon", coupon),
            ("certificate", certificate),
            ("po_number", po_number),
            ("order_id", order),
            ("postal_code", postal),
        )
    }
    identifiers = [value for value in found.values() if value]
    taken = {i.upper() for i in identifiers}

    skus = [s for s in dict.fromkeys(SKU_PATTERN.findall(message)) if s.upper() not in taken]
    remainder = SKU_PATTERN.sub(" ", message)
    for identifier in identifiers:
        remainder = remainder.replace(identifier, " ")

    quantities = [int(n) for n in NUMBER.findall(remainder)]
    if not quantities:
        words = WORD.findall(remainder.lower())
        quantities = [NUMBER_WORDS[w] for w in words if w in NUMBER_WORDS][:1]

    terms = [
        w
        for w in WORD.findall(remainder.lower())
        if w not in STOPWORDS and not w.isdigit() and w not in NUMBER_WORDS
    ]

    destination = None
    if navigation:
        target = re.sub(r"\s+(?:page)$|\s+", "", navigation.group(1).lower())
        destination = NAVIGATION_TARGETS.get(target)

    return IntentEntities(
        query=" ".join(terms) or None,
        skus=skus,
        quantities=quantities,
        coupon_code=found["coupon"],
        certificate_id=found["certificate"],
        wants_quote=bool(QUOTE.search(message)),
        wants_tax_exemption=bool(TAX_EXEMPTION.search(message)),
        mentions_cart=bool(CART_MENTION.search(message)),
        removal=bool(REMOVAL.search(message)),
        order_id=found["order_id"],
        po_number=found["po_number"],
        postal_code=found["postal_code"],
        navigate_to=destination,
        clear_cart=bool(CLEAR_CART.search(message)),
        wants_orders=bool(ORDER_HISTORY.search(message)),
        wants_tracking=bool(TRACKING.search(message)),
        wants_reorder=bool(REORDER.search(message)),
        wants_shipping=bool(SHIPPING.search(message)),
        wants_credit=bool(ACCOUNT_CREDIT.search(message)),
        wants_profile=bool(PROFILE.search(message)),
        wants_bulk_pricing=bool(BULK_PRICING.search(message)),
        wants_bulk_order=bool(BULK_ORDER.search(message)),
    )


class IntentDetector:
    """Detects intent and shopping mode for a turn."""

    def __init__(
        self,
        llm: LLMProvider | None = None,
        *,
        use_llm: bool = False,
        templates: TemplateLoader | None = None,
        mode_detector: ModeDetector | None = None,
    ) -> None:
        self._llm = llm
        self._use_llm = use_llm and llm is not None
        self._templates = templates or TemplateLoader()
        self._modes = mode_detector or ModeDetector()

    async def detect(
        self,
        message: str,
        state: ConversationState,
        *,
        fixed_mode: Mode | None = None,
    ) -> IntentResult:
        """Detect intent and mode.

        ``fixed_mode`` pins the mode, for callers that already know it.
        """
        result = self.detect_rules(message, state, fixed_mode=fixed_mode)
        if not self._use_llm:
            return result
        try:
            return await self._detect_llm(message, state, result, fixed_mode)
        except (ProviderError, ValueError, KeyError, TypeError) as e:
            logger.warning("intent_llm_failed", thread_id=state.thread_id, error=str(e))
            return result

    def detect_rules(
        self,
        message: str,
        state: ConversationState,
        *,
        fixed_mode: Mode | None = None,
    ) -> IntentResult:
        """Classify with patterns only.

        Mode is decided here, ahead of the security judge, so an unpinned
        conversation can move to b2b on a large quantity and be judged
        under b2b limits for that same message.
        """
        detection = self._modes.detect(message, state)
        if fixed_mode is not None:
            mode, mode_confidence = fixed_mode, 1.0
        elif detection.mode == "unknown":
            mode, mode_confidence = state.mode, 0.0
        else:
            mode, mode_confidence = detection.mode, detection.confidence

        intent, confidence = classify_intent(message)
        return IntentResult(
            intent=intent,
            confidence=confidence,
            mode=mode,
            mode_confidence=mode_confidence,
            entities=extract_entities(message),
            indicators=detection.indicators,
        )

    async def _detect_llm(
        self,
        message: str,
        state: ConversationState,
        fallback: IntentResult,
        fixed_mode: Mode | None,
    ) -> IntentResult:
        assert self._llm is not None
        prompt = self._templates.render(
            "intent_classification.jinja2",
            message=message,
            mode=state.mode,
            intents=INTENTS,
            last_search=state.context.get("last_search"),
            cart_items=len(state.cart.items),
        )
        response = await self._llm.generate(
            [LLMMessage(role="user", content=prompt)],
            max_tokens=200,
            temperature=0.3,
        )
        data: dict[str, Any] = json.loads(response.content)
        intent = data["intent"]
        if intent not in INTENTS:
            raise ValueError(f"Unknown intent '{intent}'")
        confidence = float(data.get("confidence", 0.7))

        mode = fallback.mode
        mode_confidence = fallback.mode_confidence
        if fixed_mode is None and data.get("mode") in ("b2c", "b2b") and confidence > mode_confidence:
            mode = data["mode"]
            mode_confidence = confidence

        return fallback.model_copy(
            update={
                "intent": intent,
                "confidence": max(0.0, min(1.0, confidence)),
                "mode": mode,
                "mode_confidence": mode_confidence,
                "source": "llm",
            }
        )
