"""Execution engine configuration models."""

from typing import Literal

from pydantic import BaseModel, Field

LockBackend = Literal["memory", "redis"]


class EngineConfig(BaseModel):
    """Turn execution settings."""

    default_mode: Literal["b2c", "b2b"] = Field(default="b2c", description="Initial shopping mode")
    keepalive_seconds: float = Field(default=15.0, gt=0, description="Idle stream ping interval")
    max_actions_per_turn: int = Field(default=3, ge=1, description="Upper bound on selected actions")
    action_timeout_seconds: float = Field(default=30.0, gt=0, description="Per-action timeout")
    use_llm_intent: bool = Field(default=False, description="Classify intent with the LLM")
    use_llm_formatter: bool = Field(default=False, description="Stream responses from the LLM")
    lock_backend: LockBackend = Field(default="memory", description="Per-thread lock backend")
    redis_url: str = Field(default="redis://localhost:6379", description="Redis URL for locks")
    lock_timeout_seconds: int = Field(default=30, gt=0, description="Redis lock auto-release")
