"""Unit tests for ActionRegistry and action definition parsing."""

from typing import Any

import pytest
from pydantic import ValidationError as PydanticValidationError

from chandler.actions.factory import ActionFactory
from chandler.actions.models import ActionCategory, ActionContext, ActionDefinition, ActionResult, RegistryEvent
from chandler.actions.registry import ActionRegistry, parse_definition
from chandler.errors import (
    ActionDefinitionError,
    ActionNotFoundError,
    ActionRateLimitError,
    DuplicateActionError,
    ValidationError,
)


class FakeClock:
    def __init__(self, now: float = 1_000.0) -> None:
        self.now = now

    def __call__(self) -> float:
        return self.now


async def echo(params: dict[str, Any], context: ActionContext) -> ActionResult:
    return ActionResult(data=params, message="ok")


async def explode(params: dict[str, Any], context: ActionContext) -> ActionResult:
    raise RuntimeError("backend down")


def make_definition(**overrides: Any) -> dict[str, Any]:
    definition = {
        "id": "set_quantity",
        "name": "Set quantity",
        "description": "Set a quantity",
        "category": "cart",
        "mode": "both",
        "parameters": {
            "type": "object",
            "properties": {
                "sku": {"type": "string", "minLength": 1},
                "quantity": {"type": "integer", "minimum": 1, "maximum": 10},
            },
            "required": ["sku", "quantity"],
        },
    }
    definition.update(overrides)
    return definition


@pytest.fixture
def context(commerce, b2c_state) -> ActionContext:
    return ActionContext(thread_id=b2c_state.thread_id, state=b2c_state, commerce=commerce)


class TestParseDefinition:
    """Tests for parse_definition."""

    def test_camel_case_keys_accepted(self) -> None:
        """Config files may use camelCase keys."""
        definition = parse_definition(
            make_definition(
                rateLimit={"maxCalls": 2, "windowMs": 1000},
                security={"requireAuth": True},
            )
        )
        assert definition.rate_limit is not None
        assert definition.rate_limit.max_calls == 2
        assert definition.requires_auth

    def test_reports_every_problem(self) -> None:
        """Missing fields and bad enums are reported together."""
        with pytest.raises(ActionDefinitionError) as exc_info:
            parse_definition({"id": "broken", "category": "nope", "parameters": {"type": "array"}})

        problems = exc_info.value.problems
        assert exc_info.value.action_id == "broken"
        assert any("'name'" in p for p in problems)
        assert any("'category'" in p for p in problems)
        assert any("parameters.type" in p for p in problems)

    def test_undeclared_required_parameter(self) -> None:
        """Required names must be declared as properties."""
        parameters = {"type": "object", "properties": {}, "required": ["sku"]}
        with pytest.raises(ActionDefinitionError, match="not declared"):
            parse_definition(make_definition(parameters=parameters))

    def test_definition_is_immutable(self) -> None:
        """Parsed definitions are frozen."""
        definition = parse_definition(make_definition())
        with pytest.raises(PydanticValidationError):
            definition.name = "changed"  # type: ignore[misc]


class TestRegistration:
    """Tests for register, update and unregister."""

    def test_register_and_lookup(self) -> None:
        """A registered action is retrievable as a compiled tool."""
        registry = ActionRegistry()
        registry.register(make_definition(), echo)

        tool = registry.get_tool("set_quantity")
        assert tool is not None
        assert tool.name == "Set quantity"
        assert "set_quantity" in registry
        assert len(registry) == 1

    def test_duplicate_id_rejected(self) -> None:
        """Registering the same id twice fails."""
        registry = ActionRegistry()
        registry.register(make_definition(), echo)
        with pytest.raises(DuplicateActionError):
            registry.register(make_definition(), echo)

    def test_update_merges_and_notifies(self) -> None:
        """update merges partial fields, keeps the id and emits an event."""
        registry = ActionRegistry()
        registry.register(make_definition(), echo)
        events: list[RegistryEvent] = []
        registry.on_change(events.append)

        tool = registry.update("set_quantity", {"description": "Changed", "id": "other"})

        assert tool.definition.description == "Changed"
        assert tool.id == "set_quantity"
        assert events[-1].type == "updated"
        assert events[-1].metadata["fields"] == ["description", "id"]

    def test_update_unknown_action(self) -> None:
        """Updating an unregistered action raises ActionNotFoundError."""
        with pytest.raises(ActionNotFoundError):
            ActionRegistry().update("missing", {"name": "x"})

    def test_unregister(self) -> None:
        """unregister removes the action and reports whether it existed."""
        registry = ActionRegistry()
        registry.register(make_definition(), echo)
        events: list[RegistryEvent] = []
        unsubscribe = registry.on_change(events.append)

        assert registry.unregister("set_quantity") is True
        assert registry.unregister("set_quantity") is False
        assert registry.get_tool("set_quantity") is None
        assert [e.type for e in events] == ["unregistered"]

        unsubscribe()
        registry.register(make_definition(), echo)
        assert len(events) == 1

    def test_register_bulk_reports_per_id(self) -> None:
        """Bulk registration continues past invalid entries."""
        registry = ActionRegistry()
        outcome = registry.register_bulk(
            [
                (make_definition(), echo),
                (make_definition(id="bad", category="unknown"), echo),
            ]
        )
        assert outcome == {"set_quantity": True, "bad": False}

    def test_load_from_config_requires_handler(self) -> None:
        """Definitions without a handler are skipped."""
        registry = ActionRegistry()
        outcome = registry.load_from_config(
            [make_definition(), make_definition(id="orphan")],
            {"set_quantity": echo},
        )
        assert outcome == {"set_quantity": True, "orphan": False}

    def test_listener_errors_do_not_propagate(self) -> None:
        """A failing listener does not break registration."""
        registry = ActionRegistry()

        def broken(event: RegistryEvent) -> None:
            raise RuntimeError("listener bug")

        registry.on_change(broken)
        registry.register(make_definition(), echo)
        assert "set_quantity" in registry


class TestQueries:
    """Tests for filtering and cache statistics."""

    def test_mode_filter_includes_both(self, registry: ActionRegistry) -> None:
        """A b2b filter includes 'both' actions and excludes b2c-only ones."""
        ids = {tool.id for tool in registry.get_tools_by(mode="b2b")}
        assert "search_products" in ids
        assert "request_quote" in ids
        assert "apply_coupon" not in ids

    def test_category_filter(self, registry: ActionRegistry) -> None:
        """Category filters accept enum or string values."""
        by_enum = {t.id for t in registry.get_tools_by(category=ActionCategory.SEARCH)}
        by_str = {t.id for t in registry.get_tools_by(category="search")}
        assert by_enum == by_str == {"search_products"}

    def test_get_tools_in_registration_order(self) -> None:
        """get_tools returns every action in the order it was registered."""
        registry = ActionRegistry(cache_size=1)
        for action_id in ("c_action", "a_action", "b_action"):
            registry.register(make_definition(id=action_id), echo)

        assert [tool.id for tool in registry.get_tools()] == ["c_action", "a_action", "b_action"]

    def test_cache_hits_and_misses(self) -> None:
        """Compiling on register is a miss and later lookups are hits."""
        registry = ActionRegistry()
        registry.register(make_definition(), echo)
        registry.get_tool("set_quantity")

        stats = registry.get_cache_stats()
        assert stats["misses"] == 1
        assert stats["hits"] == 1
        assert stats["hit_rate"] == 0.5

    def test_lru_eviction_recompiles(self) -> None:
        """Evicted tools are rebuilt from the stored definition."""
        registry = ActionRegistry(cache_size=1)
        registry.register(make_definition(), echo)
        registry.register(make_definition(id="second"), echo)

        assert registry.get_cache_stats()["size"] == 1
        assert registry.get_tool("set_quantity") is not None
        assert registry.get_cache_stats()["misses"] == 3

    def test_clear(self, registry: ActionRegistry) -> None:
        """clear empties definitions and cache."""
        registry.clear()
        assert len(registry) == 0
        assert registry.get_cache_stats()["size"] == 0


class TestCompiledTool:
    """Tests for the wrapping applied by ActionFactory."""

    @pytest.mark.asyncio
    async def test_valid_call_returns_result(self, context: ActionContext) -> None:
        """Validated parameters reach the handler."""
        registry = ActionRegistry()
        tool = registry.register(make_definition(), echo)

        result = await tool({"sku": "SKU-MUG", "quantity": 2, "extra": "ignored"}, context)

        assert result.data == {"sku": "SKU-MUG", "quantity": 2}

    @pytest.mark.asyncio
    async def test_invalid_parameters_raise(self, context: ActionContext) -> None:
        """Parameters outside the schema raise ValidationError."""
        tool = ActionRegistry().register(make_definition(), echo)

        with pytest.raises(ValidationError) as exc_info:
            await tool({"sku": "SKU-MUG", "quantity": 0}, context)

        assert exc_info.value.details["action_id"] == "set_quantity"
        assert any("quantity" in p for p in exc_info.value.details["problems"])

    @pytest.mark.asyncio
    async def test_per_action_rate_limit(self, context: ActionContext) -> None:
        """Calls beyond the action's rateLimit raise ActionRateLimitError."""
        clock = FakeClock()
        registry = ActionRegistry(ActionFactory(clock=clock))
        tool = registry.register(
            make_definition(rateLimit={"maxCalls": 1, "windowMs": 60_000}),
            echo,
        )
        await tool({"sku": "A", "quantity": 1}, context)

        clock.now += 15
        with pytest.raises(ActionRateLimitError) as exc_info:
            await tool({"sku": "A", "quantity": 1}, context)
        assert exc_info.value.retry_after == 45

        clock.now += 45
        await tool({"sku": "A", "quantity": 1}, context)

    @pytest.mark.asyncio
    async def test_failures_are_tracked(self, context: ActionContext) -> None:
        """Handler exceptions propagate and are recorded in metrics."""
        registry = ActionRegistry()
        tool = registry.register(make_definition(id="fails"), explode)

        with pytest.raises(RuntimeError):
            await tool({"sku": "A", "quantity": 1}, context)

        [summary] = registry.get_metrics("fails")
        assert summary["calls"] == 1
        assert summary["success_rate"] == 0.0
        assert summary["last_error"] == "backend down"

    @pytest.mark.asyncio
    async def test_validation_can_be_disabled(self, context: ActionContext) -> None:
        """security.validateInput=false passes raw parameters through."""
        tool = ActionRegistry().register(
            make_definition(security={"validateInput": False}),
            echo,
        )
        result = await tool({"quantity": "many"}, context)
        assert result.data == {"quantity": "many"}

    def test_definition_model_round_trip(self) -> None:
        """ActionDefinition instances can be registered directly."""
        definition = ActionDefinition.model_validate(make_definition(id="direct"))
        tool = ActionRegistry().register(definition, echo)
        assert tool.definition is definition
