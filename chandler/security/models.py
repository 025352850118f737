"""Security judge data models."""

from datetime import UTC, datetime
from enum import Enum
from typing import Any

from pydantic import BaseModel, Field


class Severity(str, Enum):
    """Ordinal ranking of a validation finding."""

    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


class ValidationCategory(str, Enum):
    """Layer or concern that produced a finding."""

    PROMPT_INJECTION = "prompt_injection"
    PRICE_MANIPULATION = "price_manipulation"
    BUSINESS_RULE = "business_rule"
    DATA_EXFILTRATION = "data_exfiltration"
    OTHER = "other"


class ThreatLevel(str, Enum):
    """Aggregate threat level of a conversation."""

    NONE = "none"
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


class ValidationResult(BaseModel):
    """Outcome of one judge or layer validation."""

    is_valid: bool
    severity: Severity = Severity.LOW
    category: ValidationCategory = ValidationCategory.OTHER
    reason: str | None = None
    metadata: dict[str, Any] = Field(default_factory=dict)
    sanitized_input: str | None = None

    @classmethod
    def passed(cls, category: ValidationCategory = ValidationCategory.OTHER) -> "ValidationResult":
        return cls(is_valid=True, severity=Severity.LOW, category=category)


class ValidationRecord(BaseModel):
    """Entry in a conversation's validation history."""

    timestamp: datetime = Field(default_factory=lambda: datetime.now(UTC))
    is_valid: bool
    severity: Severity
    category: ValidationCategory
    reason: str | None = None


class SecurityContext(BaseModel):
    """Accumulated security findings for one conversation."""

    threat_level: ThreatLevel = ThreatLevel.NONE
    detected_patterns: list[str] = Field(default_factory=list)
    validation_history: list[ValidationRecord] = Field(default_factory=list)
    blocked_attempts: int = 0
    trust_score: int = Field(default=100, ge=0, le=100)
    last_validation: datetime | None = None
