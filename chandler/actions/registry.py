"""Action registry with an LRU cache of compiled tools."""

from collections import OrderedDict
from collections.abc import Callable, Iterable, Mapping
from typing import Any

from pydantic import ValidationError as PydanticValidationError

from chandler.actions.factory import ActionFactory, ActionHandler, CompiledTool, tool_cache_key
from chandler.actions.models import ActionCategory, ActionDefinition, ActionMode, RegistryEvent
from chandler.actions.schema import schema_problems
from chandler.errors import (
    ActionDefinitionError,
    ActionNotFoundError,
    ChandlerError,
    DuplicateActionError,
)
from chandler.observability.logging import get_logger
from chandler.observability.metrics import ACTION_CACHE_EVENTS, REGISTERED_ACTIONS

logger = get_logger(__name__)

RegistryListener = Callable[[RegistryEvent], None]
DefinitionInput = ActionDefinition | Mapping[str, Any]


def parse_definition(raw: DefinitionInput) -> ActionDefinition:
    """Validate a raw definition, reporting every problem at once."""
    if isinstance(raw, ActionDefinition):
        problems = schema_problems(raw.parameters)
        if problems:
            raise ActionDefinitionError(raw.id, problems)
        return raw

    action_id = raw.get("id") if isinstance(raw, Mapping) else None
    problems: list[str] = []
    if not isinstance(raw, Mapping):
        raise ActionDefinitionError(None, ["definition must be an object"])

    for name in ("id", "name", "description"):
        value = raw.get(name)
        if not isinstance(value, str) or not value.strip():
            problems.append(f"'{name}' is required")
    if "parameters" not in raw:
        problems.append("'parameters' is required")
    else:
        problems.extend(schema_problems(raw["parameters"]))
    categories = [c.value for c in ActionCategory]
    if raw.get("category") not in categories:
        problems.append(f"'category' must be one of {categories}")
    modes = [m.value for m in ActionMode]
    if raw.get("mode", ActionMode.BOTH.value) not in modes:
        problems.append(f"'mode' must be one of {modes}")

    if problems:
        raise ActionDefinitionError(action_id, problems)

    try:
        return ActionDefinition.model_validate(dict(raw))
    except PydanticValidationError as e:
        raise ActionDefinitionError(
            action_id,
            [f"{'.'.join(str(p) for p in err['loc'])}: {err['msg']}" for err in e.errors()],
        ) from e


class ActionRegistry:
    """Registry of action definitions and their compiled tools.

    Compiled tools live in an LRU keyed by a hash of the definition, so
    re-registering an identical definition reuses the compiled tool.
    Evicted tools are recompiled on demand from the stored definition.
    """

    def __init__(self, factory: ActionFactory | None = None, cache_size: int = 50) -> None:
        self._factory = factory or ActionFactory()
        self._max_size = cache_size
        self._definitions: dict[str, ActionDefinition] = {}
        self._handlers: dict[str, ActionHandler] = {}
        self._keys: dict[str, str] = {}
        self._cache: OrderedDict[str, CompiledTool] = OrderedDict()
        self._listeners: list[RegistryListener] = []
        self._hits = 0
        self._misses = 0

    @property
    def factory(self) -> ActionFactory:
        return self._factory

    def register(self, definition: DefinitionInput, handler: ActionHandler) -> CompiledTool:
        """Register a new action.

        Raises:
            ActionDefinitionError: If the definition is invalid
            DuplicateActionError: If the id is already registered
        """
        parsed = parse_definition(definition)
        if parsed.id in self._definitions:
            raise DuplicateActionError(parsed.id)

        tool = self._install(parsed, handler)
        logger.info("action_registered", action_id=parsed.id, category=parsed.category.value)
        self._emit(RegistryEvent(type="registered", action_id=parsed.id, definition=parsed))
        return tool

    def update(self, action_id: str, partial: Mapping[str, Any]) -> CompiledTool:
        """Merge ``partial`` into a definition and recompile.

        The id is immutable; a differing ``id`` in ``partial`` is ignored.
        """
        current = self._definitions.get(action_id)
        if current is None:
            raise ActionNotFoundError(action_id)

        merged = {**current.model_dump(mode="json", exclude_none=True), **_snake_keys(partial)}
        merged["id"] = action_id
        updated = parse_definition(merged)

        return self._supersede(updated, fields=sorted(partial))

    def _supersede(self, definition: ActionDefinition, fields: list[str]) -> CompiledTool:
        action_id = definition.id
        old_key = self._keys.get(action_id)
        if old_key is not None and old_key != tool_cache_key(definition):
            self._cache.pop(old_key, None)

        tool = self._install(definition, self._handlers[action_id])
        logger.info("action_updated", action_id=action_id, fields=fields)
        self._emit(
            RegistryEvent(
                type="updated",
                action_id=action_id,
                definition=definition,
                metadata={"fields": fields},
            )
        )
        return tool

    def unregister(self, action_id: str) -> bool:
        """Remove an action. Returns False if it was not registered."""
        definition = self._definitions.pop(action_id, None)
        if definition is None:
            return False
        self._handlers.pop(action_id, None)
        key = self._keys.pop(action_id, None)
        if key is not None:
            self._cache.pop(key, None)
        self._factory.tracker.forget(action_id)
        REGISTERED_ACTIONS.set(len(self._definitions))
        logger.info("action_unregistered", action_id=action_id)
        self._emit(RegistryEvent(type="unregistered", action_id=action_id, definition=definition))
        return True

    def register_bulk(
        self,
        pairs: Iterable[tuple[DefinitionInput, ActionHandler]],
    ) -> dict[str, bool]:
        """Register many actions, reporting success per id."""
        outcome: dict[str, bool] = {}
        for definition, handler in pairs:
            action_id = (
                definition.id
                if isinstance(definition, ActionDefinition)
                else str(definition.get("id"))
            )
            try:
                self.register(definition, handler)
                outcome[action_id] = True
            except ChandlerError as e:
                logger.warning("action_registration_failed", action_id=action_id, error=e.message)
                outcome[action_id] = False
        return outcome

    def load_from_config(
        self,
        definitions: Iterable[DefinitionInput],
        handlers: Mapping[str, ActionHandler],
    ) -> dict[str, bool]:
        """Register or update every definition that has a handler."""
        outcome: dict[str, bool] = {}
        for raw in definitions:
            try:
                definition = parse_definition(raw)
            except ActionDefinitionError as e:
                logger.error("action_config_invalid", action_id=e.action_id, problems=e.problems)
                if e.action_id:
                    outcome[str(e.action_id)] = False
                continue

            handler = handlers.get(definition.id)
            if handler is None:
                logger.warning("action_handler_missing", action_id=definition.id)
                outcome[definition.id] = False
                continue

            if definition.id in self._definitions:
                self._handlers[definition.id] = handler
                self._supersede(definition, fields=["*"])
            else:
                self.register(definition, handler)
            outcome[definition.id] = True
        return outcome

    def get_tool(self, action_id: str) -> CompiledTool | None:
        """Get the compiled tool for an action, or None."""
        definition = self._definitions.get(action_id)
        if definition is None:
            return None
        return self._compiled(definition, self._handlers[action_id])

    def get_tools(self) -> list[CompiledTool]:
        """Get compiled tools for every registered action.

        Returns:
            Tools in registration order, compiled on demand through the cache
        """
        return [tool for action_id in list(self._definitions) if (tool := self.get_tool(action_id))]

    def get_tools_by(
        self,
        category: ActionCategory | str | None = None,
        mode: str | None = None,
    ) -> list[CompiledTool]:
        """Filter tools by category and mode.

        Args:
            category: Category enum or its string value; None matches all
            mode: ``b2c`` or ``b2b``; matches tools whose mode is ``both`` or equal

        Returns:
            Matching tools in registration order
        """
        category_value = category.value if isinstance(category, ActionCategory) else category
        tools = []
        for tool in self.get_tools():
            definition = tool.definition
            if category_value is not None and definition.category.value != category_value:
                continue
            if mode is not None and not definition.available_in(mode):
                continue
            tools.append(tool)
        return tools

    def get_definition(self, action_id: str) -> ActionDefinition | None:
        return self._definitions.get(action_id)

    def get_definitions(self) -> list[ActionDefinition]:
        return list(self._definitions.values())

    def get_cache_stats(self) -> dict[str, Any]:
        total = self._hits + self._misses
        return {
            "size": len(self._cache),
            "max_size": self._max_size,
            "hits": self._hits,
            "misses": self._misses,
            "hit_rate": self._hits / total if total else 0.0,
        }

    def get_metrics(self, action_id: str | None = None) -> list[dict[str, Any]]:
        """Performance summaries for one action or for all registered actions."""
        tracker = self._factory.tracker
        if action_id is not None:
            return [tracker.summary(action_id)]
        return [tracker.summary(a) for a in self._definitions]

    def on_change(self, listener: RegistryListener) -> Callable[[], None]:
        """Subscribe to registry events. Returns an unsubscribe callable."""
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def clear(self) -> None:
        """Remove every action and empty the cache."""
        self._definitions.clear()
        self._handlers.clear()
        self._keys.clear()
        self._cache.clear()
        self._factory.tracker.clear()
        self._hits = 0
        self._misses = 0
        REGISTERED_ACTIONS.set(0)

    def __contains__(self, action_id: object) -> bool:
        return action_id in self._definitions

    def __len__(self) -> int:
        return len(self._definitions)

    def _install(self, definition: ActionDefinition, handler: ActionHandler) -> CompiledTool:
        self._definitions[definition.id] = definition
        self._handlers[definition.id] = handler
        tool = self._compiled(definition, handler)
        self._keys[definition.id] = tool.cache_key
        REGISTERED_ACTIONS.set(len(self._definitions))
        return tool

    def _compiled(self, definition: ActionDefinition, handler: ActionHandler) -> CompiledTool:
        key = tool_cache_key(definition)
        tool = self._cache.get(key)
        if tool is not None and tool.handler is handler:
            self._cache.move_to_end(key)
            self._hits += 1
            ACTION_CACHE_EVENTS.labels(event="hit").inc()
            return tool

        self._misses += 1
        ACTION_CACHE_EVENTS.labels(event="miss").inc()
        tool = self._factory.compile(definition, handler)
        self._cache[key] = tool
        self._cache.move_to_end(key)
        while len(self._cache) > self._max_size:
            evicted_key, _ = self._cache.popitem(last=False)
            ACTION_CACHE_EVENTS.labels(event="eviction").inc()
            logger.debug("action_cache_evicted", cache_key=evicted_key)
        return tool

    def _emit(self, event: RegistryEvent) -> None:
        for listener in list(self._listeners):
            try:
                listener(event)
            except Exception:
                logger.exception("registry_listener_error", event_type=event.type)


def _snake_keys(partial: Mapping[str, Any]) -> dict[str, Any]:
    aliases = {
        field.alias: name
        for name, field in ActionDefinition.model_fields.items()
        if field.alias and field.alias != name
    }
    return {aliases.get(key, key): value for key, value in partial.items()}
