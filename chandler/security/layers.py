"""Independent validation layers used by the security judge.

Each layer inspects one concern and returns its first (most relevant)
failure or a passing result. Severities and thresholds come from
SecurityConfig so product policy can be tuned without code changes.
"""

import re
from abc import ABC, abstractmethod
from collections.abc import Mapping
from typing import Any, Protocol

from chandler.config.models.security import SecurityConfig
from chandler.security.models import Severity, ValidationCategory, ValidationResult


class CartView(Protocol):
    total: float


class JudgedState(Protocol):
    """Conversation state as seen by the judge."""

    mode: str
    cart: CartView
    context: Mapping[str, Any]


PROMPT_INJECTION_PATTERNS: dict[str, list[re.Pattern[str]]] = {
    "system_override": [
        re.compile(r"ignore\s+(?:all\s+)?(?:previous|prior|above)\s+(?:instructions?|context|prompts?)", re.I),
        re.compile(r"forget\s+(?:all\s+)?(?:your|previous|prior)\s+(?:instructions?|rules)|forget\s+everything", re.I),
        re.compile(r"you\s+are\s+now\s+(?:a|an)\s+(?:\w+\s+)*?(?:assistant|ai|bot)\b", re.I),
        re.compile(r"new\s+instructions?\s*:", re.I),
        re.compile(r"\bsystem\s*prompt\s*:", re.I),
        re.compile(r"(?:^|\n)\s*system\s*:", re.I),
        re.compile(r"\brole\s*:\s*system\b", re.I),
        re.compile(r"<<SYS>>.*<</SYS>>", re.S),
        re.compile(r"\[SYSTEM\].*\[/SYSTEM\]", re.S),
        re.compile(r"<\|im_start\|>"),
    ],
    "role_play": [
        re.compile(r"pretend\s+(?:you\s+are|to\s+be)", re.I),
        re.compile(r"act\s+as\s+if", re.I),
        re.compile(r"roleplay\s+as", re.I),
        re.compile(r"you\s+are\s+playing", re.I),
        re.compile(r"simulate\s+being", re.I),
    ],
    "instruction_injection": [
        re.compile(r"###\s*(?:instruction|system)", re.I),
        re.compile(r"\[INST\]"),
        re.compile(r"<instruction>", re.I),
        re.compile(r":::\s*instruction", re.I),
        re.compile(r"\|\s*instruction\s*\|", re.I),
    ],
    "context_manipulation": [
        re.compile(r"previous\s+conversation\s+was", re.I),
        re.compile(r"actually\s+you\s+said", re.I),
        re.compile(r"remember\s+when\s+you", re.I),
        re.compile(r"in\s+our\s+last\s+chat", re.I),
        re.compile(r"you\s+already\s+agreed", re.I),
    ],
}

PRICE_MANIPULATION_PATTERNS: dict[str, list[re.Pattern[str]]] = {
    "direct_manipulation": [
        re.compile(r"set\s+(?:the\s+)?price\s+to\s+\$?0", re.I),
        re.compile(r"change\s+.*\s+price\s+.*\s+0", re.I),
        re.compile(r"change\s+.*\s+to\s+\$0\b", re.I),
        re.compile(r"make\s+it\s+free", re.I),
        re.compile(r"price\s*=\s*0", re.I),
        re.compile(r"override\s+(?:the\s+)?pric(?:e|ing)", re.I),
    ],
    "discount_manipulation": [
        re.compile(r"apply\s+(?:a\s+)?100\s*%?\s+discount", re.I),
        re.compile(r"discount\s*=\s*100", re.I),
        re.compile(r"unlimited\s+discount", re.I),
        re.compile(r"max(?:imum)?\s+discount", re.I),
        re.compile(r"bypass\s+discount\s+limit", re.I),
    ],
    "coupon_exploits": [
        re.compile(r"generate\s+(?:a\s+)?coupon", re.I),
        re.compile(r"create\s+.*\s+coupon\s+code", re.I),
        re.compile(r"(?:admin|test|debug|staff)\s+coupon", re.I),
        re.compile(r"\b(?:ADMIN|TEST|DEBUG|STAFF)[A-Z0-9_-]*\b"),
    ],
    "system_exploits": [
        re.compile(r"admin\s+mode", re.I),
        re.compile(r"debug\s+mode", re.I),
        re.compile(r"developer\s+access", re.I),
        re.compile(r"backdoor", re.I),
        re.compile(r"\bexploit", re.I),
        re.compile(r"hack\w*\s+.*price", re.I),
    ],
}

BASE64_TOKEN = re.compile(r"^[A-Za-z0-9+/]+={0,2}$")
PERCENT_ENCODED = re.compile(r"%[0-9A-Fa-f]{2}")
UNICODE_ESCAPE = re.compile(r"\\u[0-9A-Fa-f]{4}")
SPECIAL_CHAR = re.compile(r"[^a-zA-Z0-9\s.,!?'\"()-]")

CURRENCY_AMOUNT = re.compile(
    r"[$€£]\s*(\d+(?:\.\d+)?)"
    r"|(\d+(?:\.\d+)?)\s*(?:dollars?|cents?|euros?|pounds?|usd|eur|gbp)\b",
    re.I,
)
PERCENTAGE = re.compile(r"(\d+(?:\.\d+)?)\s*%")

QUANTITY_MENTION = re.compile(r"\b(\d+)\s*(?:units?|items?|pieces?|products?|boxes?|cases?)\b", re.I)
AVAILABILITY_OVERRIDE = re.compile(r"force\s+in\s+stock|override\s+availability|ignore\s+stock", re.I)

SENSITIVE_OUTPUT_PATTERNS: list[tuple[str, re.Pattern[str]]] = [
    ("credit_card", re.compile(r"\b\d{4}[\s-]?\d{4}[\s-]?\d{4}[\s-]?\d{4}\b")),
    ("ssn", re.compile(r"\b\d{3}-\d{2}-\d{4}\b")),
    ("api_key", re.compile(r"api[_-]?key\s*[:=]\s*[\w-]+", re.I)),
    ("password", re.compile(r"password\s*[:=]\s*\S+", re.I)),
]


class ValidationLayer(ABC):
    """One independent validation concern."""

    category: ValidationCategory = ValidationCategory.OTHER

    def __init__(self, config: SecurityConfig) -> None:
        self._config = config

    def _severity(self, name: str) -> Severity:
        return Severity(getattr(self._config.severities, name))

    def _fail(self, severity_key: str, reason: str, **metadata: Any) -> ValidationResult:
        return ValidationResult(
            is_valid=False,
            severity=self._severity(severity_key),
            category=self.category,
            reason=reason,
            metadata=metadata,
        )

    @abstractmethod
    def validate(self, content: str, state: JudgedState) -> ValidationResult:
        """Validate content in the context of a conversation state."""


class PromptInjectionLayer(ValidationLayer):
    """Detects attempts to override or subvert the assistant's instructions."""

    category = ValidationCategory.PROMPT_INJECTION

    def validate(self, content: str, state: JudgedState) -> ValidationResult:  # noqa: ARG002
        for family, patterns in PROMPT_INJECTION_PATTERNS.items():
            for pattern in patterns:
                if pattern.search(content):
                    return self._fail(
                        "prompt_injection",
                        f"Prompt injection detected: {family}",
                        family=family,
                        pattern=pattern.pattern,
                        excerpt=content[:100],
                    )

        encoding = self._detect_encoding(content)
        if encoding:
            return self._fail(
                "encoded_content",
                "Encoded content detected - possible injection attempt",
                encoding=encoding,
            )

        ratio = special_character_ratio(content)
        if ratio > self._config.max_special_char_ratio:
            return self._fail(
                "special_characters",
                "Excessive special characters detected",
                special_char_ratio=round(ratio, 3),
            )

        return ValidationResult.passed(self.category)

    def _detect_encoding(self, content: str) -> str | None:
        min_length = self._config.base64_min_length
        for word in content.split():
            if len(word) > min_length and BASE64_TOKEN.match(word):
                return "base64"

        if len(PERCENT_ENCODED.findall(content)) > self._config.max_percent_encoded:
            return "percent"

        if len(UNICODE_ESCAPE.findall(content)) > self._config.max_unicode_escapes:
            return "unicode_escape"

        return None


class PriceManipulationLayer(ValidationLayer):
    """Detects attempts to alter prices, discounts or coupons."""

    category = ValidationCategory.PRICE_MANIPULATION

    def validate(self, content: str, state: JudgedState) -> ValidationResult:
        for family, patterns in PRICE_MANIPULATION_PATTERNS.items():
            for pattern in patterns:
                if pattern.search(content):
                    return self._fail(
                        "price_manipulation",
                        f"Price manipulation attempt: {family}",
                        family=family,
                        pattern=pattern.pattern,
                        cart_value=state.cart.total,
                    )

        for match in CURRENCY_AMOUNT.finditer(content):
            value = float(match.group(1) or match.group(2))
            if value < self._config.min_price:
                return self._fail(
                    "suspicious_price",
                    "Suspicious price value detected",
                    suspicious_value=value,
                )

        for match in PERCENTAGE.finditer(content):
            value = float(match.group(1))
            if value > self._config.max_discount_percent:
                return self._fail(
                    "suspicious_percentage",
                    "Suspicious discount percentage",
                    percentage=value,
                )

        return ValidationResult.passed(self.category)


class BusinessRuleLayer(ValidationLayer):
    """Enforces mode-dependent quantity, cart value and operation rules."""

    category = ValidationCategory.BUSINESS_RULE

    def validate(self, content: str, state: JudgedState) -> ValidationResult:
        mode = state.mode
        for check in (
            self._check_quantities(content, mode),
            self._check_operations(content, mode),
            self._check_cart_value(state),
            self._check_availability(content),
        ):
            if check is not None:
                return check
        return ValidationResult.passed(self.category)

    def _check_quantities(self, content: str, mode: str) -> ValidationResult | None:
        limits = self._config.quantity_limits.get(mode)
        if limits is None:
            return None
        for match in QUANTITY_MENTION.finditer(content):
            quantity = int(match.group(1))
            if quantity > limits.max:
                return self._fail(
                    "quantity_above_max",
                    f"Quantity {quantity} exceeds maximum limit of {int(limits.max)} for {mode}",
                    quantity=quantity,
                    limit=int(limits.max),
                    mode=mode,
                )
            if quantity < limits.min:
                return self._fail(
                    "quantity_below_min",
                    f"Quantity {quantity} below minimum of {int(limits.min)}",
                    quantity=quantity,
                    limit=int(limits.min),
                    mode=mode,
                )
        return None

    def _check_operations(self, content: str, mode: str) -> ValidationResult | None:
        for operation in self._config.restricted_operations.get(mode, []):
            pattern = r"\b" + operation.replace("_", r"\s+") + r"\b"
            if re.search(pattern, content, re.I):
                return self._fail(
                    "restricted_operation",
                    f'Operation "{operation}" not available in {mode} mode',
                    operation=operation,
                    mode=mode,
                )
        return None

    def _check_cart_value(self, state: JudgedState) -> ValidationResult | None:
        limits = self._config.cart_value_limits.get(state.mode)
        if limits is None:
            return None
        cart_value = state.cart.total or 0
        if cart_value > limits.max:
            return self._fail(
                "cart_above_max",
                f"Cart value {cart_value} exceeds maximum of {limits.max:g}",
                cart_value=cart_value,
                limit=limits.max,
            )
        if state.context.get("detected_intent") == "checkout" and cart_value < limits.min:
            return self._fail(
                "cart_below_min",
                f"Minimum order value is {limits.min:g}",
                cart_value=cart_value,
                limit=limits.min,
            )
        return None

    def _check_availability(self, content: str) -> ValidationResult | None:
        if AVAILABILITY_OVERRIDE.search(content):
            return self._fail(
                "availability_override",
                "Attempt to override product availability",
                attempt_type="availability_override",
            )
        return None


class OutputLayer(ValidationLayer):
    """Checks assistant output for leaked sensitive data and excessive length."""

    category = ValidationCategory.DATA_EXFILTRATION

    def validate(self, content: str, state: JudgedState) -> ValidationResult:  # noqa: ARG002
        for kind, pattern in SENSITIVE_OUTPUT_PATTERNS:
            if pattern.search(content):
                return self._fail(
                    "sensitive_output",
                    "Sensitive data detected in output",
                    data_type=kind,
                )

        if len(content) > self._config.max_output_length:
            result = self._fail(
                "output_too_long",
                "Message exceeds maximum length",
                length=len(content),
                max_length=self._config.max_output_length,
            )
            return result.model_copy(update={"category": ValidationCategory.OTHER})

        return ValidationResult.passed(self.category)


def special_character_ratio(content: str) -> float:
    """Share of characters outside letters, digits, whitespace and basic punctuation."""
    if not content:
        return 0.0
    return len(SPECIAL_CHAR.findall(content)) / len(content)
