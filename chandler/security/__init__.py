"""Security judge: layered validation of inputs and outputs."""

from chandler.security.judge import SecurityJudge
from chandler.security.layers import (
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

__all__ = [
    "BusinessRuleLayer",
    "JudgedState",
    "OutputLayer",
    "PriceManipulationLayer",
    "PromptInjectionLayer",
    "SecurityContext",
    "SecurityJudge",
    "Severity",
    "ThreatLevel",
    "ValidationCategory",
    "ValidationLayer",
    "ValidationRecord",
    "ValidationResult",
]
