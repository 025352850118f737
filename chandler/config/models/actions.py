"""Action registry configuration models."""

from pydantic import BaseModel, Field


class ActionsConfig(BaseModel):
    """Action registry and configuration loading settings."""

    cache_size: int = Field(default=50, gt=0, description="Compiled tool LRU capacity")
    config_path: str | None = Field(
        default=None,
        description="JSON file or directory of action definitions",
    )
    hot_reload: bool = Field(default=False, description="Watch config_path for changes")
    reload_debounce_ms: int = Field(default=300, ge=0, description="Debounce for file changes")
    poll_interval_seconds: float = Field(default=1.0, gt=0, description="File watch interval")
    metrics_retention_seconds: int = Field(
        default=3600,
        gt=0,
        description="How long per-action performance samples are kept",
    )
    register_builtin: bool = Field(default=True, description="Register built-in commerce actions")
