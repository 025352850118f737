"""Configuration model exports.

This module exports all configuration models for easy access:

    from chandler.config.models import APIConfig, SecurityConfig
"""

from chandler.config.models.actions import ActionsConfig
from chandler.config.models.api import APIConfig
from chandler.config.models.bulk import BulkConfig, RetryConfig
from chandler.config.models.commerce import CommerceConfig
from chandler.config.models.engine import EngineConfig
from chandler.config.models.observability import (
    LoggingConfig,
    ObservabilityConfig,
    TracingConfig,
)
from chandler.config.models.providers import LLMProviderConfig, ProvidersConfig
from chandler.config.models.rate_limit import RateLimitConfig, RateLimitTierConfig
from chandler.config.models.security import ModeBounds, SecurityConfig, SeverityTable

__all__ = [
    # API
    "APIConfig",
    # Observability
    "LoggingConfig",
    "ObservabilityConfig",
    "TracingConfig",
    # Core components
    "ActionsConfig",
    "BulkConfig",
    "EngineConfig",
    "ModeBounds",
    "RateLimitConfig",
    "RateLimitTierConfig",
    "RetryConfig",
    "SecurityConfig",
    "SeverityTable",
    # Collaborators
    "CommerceConfig",
    "LLMProviderConfig",
    "ProvidersConfig",
]
