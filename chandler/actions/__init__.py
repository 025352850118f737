"""Action registry: declarative definitions compiled into monitored tools."""

from chandler.actions.builtin import BUILTIN_DEFINITIONS, BUILTIN_HANDLERS, register_builtin_actions
from chandler.actions.factory import ActionFactory, ActionHandler, CompiledTool, tool_cache_key
from chandler.actions.loader import ActionConfigWatcher, load_action_definitions
from chandler.actions.models import (
    ActionCategory,
    ActionContext,
    ActionDefinition,
    ActionMode,
    ActionMonitoring,
    ActionRateLimit,
    ActionResult,
    ActionSecurity,
    PerformanceSample,
    RegistryEvent,
)
from chandler.actions.monitoring import PerformanceTracker
from chandler.actions.registry import ActionRegistry, parse_definition

__all__ = [
    "BUILTIN_DEFINITIONS",
    "BUILTIN_HANDLERS",
    "ActionCategory",
    "ActionConfigWatcher",
    "ActionContext",
    "ActionDefinition",
    "ActionFactory",
    "ActionHandler",
    "ActionMode",
    "ActionMonitoring",
    "ActionRateLimit",
    "ActionRegistry",
    "ActionResult",
    "ActionSecurity",
    "CompiledTool",
    "PerformanceSample",
    "PerformanceTracker",
    "RegistryEvent",
    "load_action_definitions",
    "parse_definition",
    "register_builtin_actions",
    "tool_cache_key",
]
