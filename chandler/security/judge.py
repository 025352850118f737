"""Multi-layer security judge.

The judge runs every input layer against a message, keeps the worst
finding and tracks per-conversation threat and trust scores.
"""

import re
from datetime import UTC, datetime

from chandler.config.models.security import SecurityConfig
from chandler.observability.logging import get_logger
from chandler.observability.metrics import SECURITY_REJECTIONS
from chandler.security.layers import (
    SENSITIVE_OUTPUT_PATTERNS,
    BusinessRuleLayer,
    JudgedState,
    OutputLayer,
    PriceManipulationLayer,
    PromptInjectionLayer,
    ValidationLayer,
)
from chandler.security.models import (
    SecurityContext,
    Severity,
    ThreatLevel,
    ValidationCategory,
    ValidationRecord,
    ValidationResult,
)

logger = get_logger(__name__)

CONTROL_CHARS = re.compile(r"[\x00-\x08\x0b\x0c\x0e-\x1f\x7f]")
SCRIPT_BLOCK = re.compile(r"<script\b[^<]*(?:(?!</script>)<[^<]*)*</script>", re.I)
WHITESPACE = re.compile(r"\s+")

OUTPUT_REMOVALS: list[re.Pattern[str]] = [
    re.compile(r"\[SYSTEM\].*?\[/SYSTEM\]", re.S),
    re.compile(r"###\s*System:.*?###", re.S | re.I),
    re.compile(r"<!--.*?-->", re.S),
]

OUTPUT_REPLACEMENTS: list[tuple[re.Pattern[str], str]] = [
    (re.compile(r"\$0\.0+\b"), "[PRICE REMOVED]"),
    (re.compile(r"free\s+forever", re.I), "[OFFER REMOVED]"),
    (re.compile(r"internal\s+use\s+only", re.I), "[REDACTED]"),
    (re.compile(r"\bconfidential\b", re.I), "[REDACTED]"),
    (re.compile(r"do\s+not\s+share", re.I), "[REDACTED]"),
    (re.compile(r"api\s+endpoint\s*:?\s*\S*", re.I), "[REDACTED]"),
]

THREAT_WINDOW = 10
TRUST_WINDOW = 20


class SecurityJudge:
    """Validates user input and assistant output against security policy."""

    def __init__(self, config: SecurityConfig | None = None) -> None:
        self._config = config or SecurityConfig()
        self._layers: list[ValidationLayer] = [
            PromptInjectionLayer(self._config),
            PriceManipulationLayer(self._config),
            BusinessRuleLayer(self._config),
        ]
        self._output_layer = OutputLayer(self._config)

    @property
    def config(self) -> SecurityConfig:
        return self._config

    def score(self, severity: Severity) -> int:
        """Numeric weight of a severity, used for ranking and trust."""
        return self._config.severity_scores.get(severity.value, 0)

    def validate(self, content: str, state: JudgedState) -> ValidationResult:
        """Run every input layer and return the worst failure.

        Ties keep the first finding in layer order. A passing result
        carries the sanitized input.
        """
        worst: ValidationResult | None = None
        for layer in self._layers:
            result = layer.validate(content, state)
            if result.is_valid:
                continue
            if worst is None or self.score(result.severity) > self.score(worst.severity):
                worst = result

        if worst is None:
            return ValidationResult(
                is_valid=True,
                severity=Severity.LOW,
                category=ValidationCategory.OTHER,
                sanitized_input=self.sanitize_input(content),
            )

        SECURITY_REJECTIONS.labels(
            category=worst.category.value,
            severity=worst.severity.value,
        ).inc()
        logger.warning(
            "security_validation_failed",
            category=worst.category.value,
            severity=worst.severity.value,
            reason=worst.reason,
            mode=state.mode,
        )
        return worst

    def validate_output(self, content: str, state: JudgedState) -> ValidationResult:
        """Check an outgoing response for leaked data or excessive length."""
        result = self._output_layer.validate(content, state)
        if not result.is_valid:
            SECURITY_REJECTIONS.labels(
                category=result.category.value,
                severity=result.severity.value,
            ).inc()
            logger.warning(
                "output_validation_failed",
                category=result.category.value,
                severity=result.severity.value,
                reason=result.reason,
            )
        return result

    def record(self, context: SecurityContext, result: ValidationResult) -> SecurityContext:
        """Return a new security context with ``result`` folded in."""
        now = datetime.now(UTC)
        history = [
            *context.validation_history,
            ValidationRecord(
                timestamp=now,
                is_valid=result.is_valid,
                severity=result.severity,
                category=result.category,
                reason=result.reason,
            ),
        ][-self._config.history_size :]

        blocked = context.blocked_attempts
        patterns = list(context.detected_patterns)
        if not result.is_valid:
            blocked += 1
            pattern = str(result.metadata.get("family") or result.category.value)
            if pattern not in patterns:
                patterns.append(pattern)

        return SecurityContext(
            threat_level=self._threat_level(history),
            detected_patterns=patterns,
            validation_history=history,
            blocked_attempts=blocked,
            trust_score=self._trust_score(history),
            last_validation=now,
        )

    def should_block(self, context: SecurityContext) -> bool:
        """True when the conversation is too risky to keep serving."""
        return (
            context.threat_level == ThreatLevel.CRITICAL
            or context.trust_score < self._config.block_trust_threshold
        )

    def sanitize_input(self, content: str) -> str:
        """Strip control characters and script blocks, collapse whitespace."""
        cleaned = SCRIPT_BLOCK.sub("", content)
        cleaned = CONTROL_CHARS.sub("", cleaned)
        return WHITESPACE.sub(" ", cleaned).strip()

    def filter_output(self, content: str) -> str:
        """Remove leaked system blocks and redact sensitive data."""
        filtered = content
        for pattern in OUTPUT_REMOVALS:
            filtered = pattern.sub("", filtered)
        for pattern, replacement in OUTPUT_REPLACEMENTS:
            filtered = pattern.sub(replacement, filtered)
        for _, pattern in SENSITIVE_OUTPUT_PATTERNS:
            filtered = pattern.sub("[REDACTED]", filtered)
        return filtered.strip()

    def _threat_level(self, history: list[ValidationRecord]) -> ThreatLevel:
        failures = sum(1 for record in history[-THREAT_WINDOW:] if not record.is_valid)
        if failures == 0:
            return ThreatLevel.NONE
        if failures <= 2:
            return ThreatLevel.LOW
        if failures <= 5:
            return ThreatLevel.MEDIUM
        if failures <= 8:
            return ThreatLevel.HIGH
        return ThreatLevel.CRITICAL

    def _trust_score(self, history: list[ValidationRecord]) -> int:
        recent = history[-TRUST_WINDOW:]
        if not recent:
            return 100
        success_rate = sum(1 for record in recent if record.is_valid) / len(recent)
        penalty = sum(self.score(record.severity) for record in recent if not record.is_valid)
        return max(0, min(100, round(success_rate * 100 - penalty)))
