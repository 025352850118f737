"""Root settings model for Chandler configuration."""

from typing import Any, Literal

from pydantic import Field
from pydantic.fields import FieldInfo
from pydantic_settings import (
    BaseSettings,
    PydanticBaseSettingsSource,
    SettingsConfigDict,
)

from chandler.config.models.actions import ActionsConfig
from chandler.config.models.api import APIConfig
from chandler.config.models.bulk import BulkConfig
from chandler.config.models.commerce import CommerceConfig
from chandler.config.models.engine import EngineConfig
from chandler.config.models.observability import ObservabilityConfig
from chandler.config.models.providers import ProvidersConfig
from chandler.config.models.rate_limit import RateLimitConfig
from chandler.config.models.security import SecurityConfig

LogLevel = Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]


class TomlConfigSettingsSource(PydanticBaseSettingsSource):
    """Settings source backed by the merged TOML tables.

    The tables are installed once per load with ``set_toml_config`` and
    shared by every Settings instance built afterwards.
    """

    tables: dict[str, Any] = {}

    def get_field_value(self, field: FieldInfo, field_name: str) -> tuple[Any, str, bool]:  # noqa: ARG002
        value = self.tables.get(field_name)
        return value, field_name, value is not None

    def __call__(self) -> dict[str, Any]:
        return {key: value for key, value in self.tables.items() if value is not None}


def set_toml_config(config: dict[str, Any]) -> None:
    """Install merged TOML tables for subsequent Settings instances."""
    TomlConfigSettingsSource.tables = dict(config)


class Settings(BaseSettings):
    """Every configuration section of the service.

    Precedence, lowest first: model defaults, ``config/default.toml``,
    ``config/{CHANDLER_ENV}.toml``, ``CHANDLER_*`` environment variables,
    then constructor keyword arguments. Nested env keys use ``__``, as in
    ``CHANDLER_RATE_LIMIT__ENABLED=false``.
    """

    model_config = SettingsConfigDict(
        env_prefix="CHANDLER_",
        env_nested_delimiter="__",
        case_sensitive=False,
        extra="ignore",
    )

    app_name: str = Field(default="chandler", description="Application name for logging")
    debug: bool = Field(default=False, description="Enable debug mode")
    log_level: LogLevel = Field(default="INFO", description="Logging level")

    api: APIConfig = Field(default_factory=APIConfig, description="HTTP server")
    observability: ObservabilityConfig = Field(
        default_factory=ObservabilityConfig,
        description="Logging, metrics and tracing",
    )
    rate_limit: RateLimitConfig = Field(
        default_factory=RateLimitConfig,
        description="Request rate limiting",
    )
    security: SecurityConfig = Field(
        default_factory=SecurityConfig,
        description="Security judge policy",
    )
    actions: ActionsConfig = Field(
        default_factory=ActionsConfig,
        description="Action registry configuration",
    )
    engine: EngineConfig = Field(
        default_factory=EngineConfig,
        description="Turn execution configuration",
    )
    bulk: BulkConfig = Field(
        default_factory=BulkConfig,
        description="Bulk order ingestion",
    )
    commerce: CommerceConfig = Field(
        default_factory=CommerceConfig,
        description="Commerce backend",
    )
    providers: ProvidersConfig = Field(
        default_factory=ProvidersConfig,
        description="Language model providers",
    )

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls: type[BaseSettings],
        init_settings: PydanticBaseSettingsSource,
        env_settings: PydanticBaseSettingsSource,
        dotenv_settings: PydanticBaseSettingsSource,  # noqa: ARG003
        file_secret_settings: PydanticBaseSettingsSource,  # noqa: ARG003
    ) -> tuple[PydanticBaseSettingsSource, ...]:
        return (
            init_settings,
            env_settings,
            TomlConfigSettingsSource(settings_cls),
        )
