"""Action definition and execution models."""

from dataclasses import dataclass, field
from enum import Enum
from typing import TYPE_CHECKING, Any, Literal

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from chandler.commerce.client import CommerceClient
from chandler.conversation.commands import Command
from chandler.conversation.models import ConversationState

if TYPE_CHECKING:
    from chandler.security.judge import SecurityJudge


class ActionCategory(str, Enum):
    """Functional grouping of actions."""

    SEARCH = "search"
    CART = "cart"
    PRODUCT = "product"
    COMPARISON = "comparison"
    NAVIGATION = "navigation"
    CUSTOMER = "customer"


class ActionMode(str, Enum):
    """Shopping mode an action is available in."""

    B2C = "b2c"
    B2B = "b2b"
    BOTH = "both"


class _ConfigModel(BaseModel):
    """Frozen model accepting snake_case or camelCase keys."""

    model_config = ConfigDict(
        frozen=True,
        alias_generator=to_camel,
        populate_by_name=True,
        use_enum_values=False,
    )


class ActionSecurity(_ConfigModel):
    require_auth: bool = False
    permissions: list[str] = Field(default_factory=list)
    validate_input: bool = True


class ActionRateLimit(_ConfigModel):
    max_calls: int = Field(gt=0)
    window_ms: int = Field(gt=0)


class ActionMonitoring(_ConfigModel):
    track_performance: bool = True
    log_level: Literal["debug", "info", "warning", "error"] = "info"


class ActionDefinition(_ConfigModel):
    """Declarative, immutable description of an action."""

    id: str = Field(min_length=1)
    name: str = Field(min_length=1)
    description: str = Field(min_length=1)
    category: ActionCategory
    mode: ActionMode = ActionMode.BOTH
    parameters: dict[str, Any]
    returns: dict[str, Any] | None = None
    security: ActionSecurity | None = None
    rate_limit: ActionRateLimit | None = None
    monitoring: ActionMonitoring | None = None

    def available_in(self, mode: str) -> bool:
        return self.mode == ActionMode.BOTH or self.mode.value == mode

    @property
    def requires_auth(self) -> bool:
        return bool(self.security and self.security.require_auth)


@dataclass
class ActionContext:
    """Everything a handler may use besides its parameters."""

    thread_id: str
    state: ConversationState
    commerce: CommerceClient
    judge: "SecurityJudge | None" = None
    authenticated: bool = False
    identity: str | None = None

    @property
    def mode(self) -> str:
        return self.state.mode

    @property
    def cart_id(self) -> str:
        return str(self.state.context.get("cart_id") or self.thread_id)

    @property
    def customer_id(self) -> str:
        """Account the turn acts for: the storefront customer id, else the caller identity."""
        return str(self.state.context.get("customer_id") or self.identity or self.thread_id)


class ActionResult(BaseModel):
    """Handler output: data for the formatter plus state commands."""

    data: Any = None
    commands: list[Command] = Field(default_factory=list)
    message: str | None = None


@dataclass
class PerformanceSample:
    """One recorded action invocation."""

    action_id: str
    duration_ms: float
    success: bool
    timestamp: float
    error: str | None = None


@dataclass
class RegistryEvent:
    """Change notification delivered to registry listeners."""

    type: Literal["registered", "updated", "unregistered"]
    action_id: str
    definition: ActionDefinition | None = None
    metadata: dict[str, Any] = field(default_factory=dict)
