"""Security judge configuration models.

Every severity and numeric threshold used by the judge lives here so
product policy can be tuned from TOML or environment variables.
"""

from typing import Literal

from pydantic import BaseModel, Field

SeverityLevel = Literal["low", "medium", "high", "critical"]


class SeverityTable(BaseModel):
    """Severity assigned to each kind of finding."""

    prompt_injection: SeverityLevel = "high"
    encoded_content: SeverityLevel = "high"
    special_characters: SeverityLevel = "medium"
    price_manipulation: SeverityLevel = "critical"
    suspicious_price: SeverityLevel = "high"
    suspicious_percentage: SeverityLevel = "medium"
    quantity_above_max: SeverityLevel = "medium"
    quantity_below_min: SeverityLevel = "low"
    restricted_operation: SeverityLevel = "medium"
    cart_above_max: SeverityLevel = "medium"
    cart_below_min: SeverityLevel = "low"
    availability_override: SeverityLevel = "high"
    sensitive_output: SeverityLevel = "critical"
    output_too_long: SeverityLevel = "low"


class ModeBounds(BaseModel):
    """Inclusive lower and upper bound."""

    min: float
    max: float


def _default_scores() -> dict[SeverityLevel, int]:
    return {"low": 1, "medium": 5, "high": 10, "critical": 20}


def _default_quantity_limits() -> dict[str, ModeBounds]:
    return {"b2c": ModeBounds(min=1, max=100), "b2b": ModeBounds(min=1, max=10_000)}


def _default_cart_limits() -> dict[str, ModeBounds]:
    return {"b2c": ModeBounds(min=1, max=50_000), "b2b": ModeBounds(min=100, max=1_000_000)}


def _default_restricted_operations() -> dict[str, list[str]]:
    return {
        "b2c": ["purchase_order", "net_terms", "tax_exemption", "bulk_pricing", "wholesale_account"],
        "b2b": ["save_for_later", "wishlist", "gift_card"],
    }


class SecurityConfig(BaseModel):
    """Security judge policy."""

    severities: SeverityTable = Field(default_factory=SeverityTable)
    severity_scores: dict[SeverityLevel, int] = Field(default_factory=_default_scores)
    quantity_limits: dict[str, ModeBounds] = Field(default_factory=_default_quantity_limits)
    cart_value_limits: dict[str, ModeBounds] = Field(default_factory=_default_cart_limits)
    restricted_operations: dict[str, list[str]] = Field(
        default_factory=_default_restricted_operations
    )
    base64_min_length: int = Field(default=20, gt=0)
    max_percent_encoded: int = Field(default=5, ge=0)
    max_unicode_escapes: int = Field(default=3, ge=0)
    max_special_char_ratio: float = Field(default=0.3, ge=0.0, le=1.0)
    min_price: float = Field(default=0.01, ge=0.0)
    max_discount_percent: int = Field(default=90, ge=0, le=100)
    max_output_length: int = Field(default=5000, gt=0)
    block_trust_threshold: int = Field(default=20, ge=0, le=100)
    history_size: int = Field(default=100, gt=0)
