"""Compile action definitions into monitored, invocable tools."""

import hashlib
import json
import math
import time
from collections import deque
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from typing import Any

from pydantic import BaseModel
from pydantic import ValidationError as PydanticValidationError

from chandler.actions.models import ActionContext, ActionDefinition, ActionResult
from chandler.actions.monitoring import PerformanceTracker
from chandler.actions.schema import compile_schema
from chandler.errors import ActionRateLimitError, ValidationError
from chandler.observability.logging import get_logger

logger = get_logger(__name__)

ActionHandler = Callable[[dict[str, Any], ActionContext], Awaitable[ActionResult]]


def tool_cache_key(definition: ActionDefinition) -> str:
    """Stable key derived from the fields that affect compilation."""
    payload = json.dumps(
        [
            definition.id,
            definition.name,
            definition.mode.value,
            definition.category.value,
            definition.parameters,
        ],
        sort_keys=True,
        default=str,
    )
    digest = hashlib.sha256(payload.encode()).hexdigest()[:16]
    return f"tool_{definition.id}_{digest}"


class ActionCallWindow:
    """Sliding window of recent call timestamps for one action."""

    def __init__(self, max_calls: int, window_ms: int, clock: Callable[[], float]) -> None:
        self.max_calls = max_calls
        self.window_ms = window_ms
        self._clock = clock
        self._calls: deque[float] = deque()

    def acquire(self, action_id: str) -> None:
        """Record a call or raise ActionRateLimitError."""
        now_ms = self._clock() * 1000
        cutoff = now_ms - self.window_ms
        while self._calls and self._calls[0] <= cutoff:
            self._calls.popleft()
        if len(self._calls) >= self.max_calls:
            retry_after = max(1, math.ceil((self._calls[0] + self.window_ms - now_ms) / 1000))
            raise ActionRateLimitError(action_id, retry_after)
        self._calls.append(now_ms)


@dataclass
class CompiledTool:
    """Invocable form of an action definition."""

    definition: ActionDefinition
    handler: ActionHandler
    cache_key: str
    parameter_model: type[BaseModel]
    call_window: ActionCallWindow | None = field(default=None, repr=False)
    invoke: ActionHandler = field(init=False, repr=False)

    @property
    def id(self) -> str:
        return self.definition.id

    @property
    def name(self) -> str:
        return self.definition.name

    async def __call__(self, params: dict[str, Any], context: ActionContext) -> ActionResult:
        return await self.invoke(params, context)


class ActionFactory:
    """Builds CompiledTools that validate, rate limit, log and time each call."""

    def __init__(
        self,
        tracker: PerformanceTracker | None = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.tracker = tracker or PerformanceTracker(clock=clock)
        self._clock = clock

    def compile(self, definition: ActionDefinition, handler: ActionHandler) -> CompiledTool:
        """Wrap ``handler`` according to ``definition``."""
        model_name = "".join(part.title() for part in definition.id.split("_")) + "Params"
        parameter_model = compile_schema(model_name, definition.parameters)
        call_window = None
        if definition.rate_limit is not None:
            call_window = ActionCallWindow(
                definition.rate_limit.max_calls,
                definition.rate_limit.window_ms,
                self._clock,
            )

        tool = CompiledTool(
            definition=definition,
            handler=handler,
            cache_key=tool_cache_key(definition),
            parameter_model=parameter_model,
            call_window=call_window,
        )
        tool.invoke = self._wrap(tool)
        return tool

    def _wrap(self, tool: CompiledTool) -> ActionHandler:
        definition = tool.definition
        validate = definition.security.validate_input if definition.security else True
        monitoring = definition.monitoring
        track = monitoring.track_performance if monitoring else True
        level = monitoring.log_level if monitoring else "info"
        log = getattr(logger, level)

        async def invoke(params: dict[str, Any], context: ActionContext) -> ActionResult:
            start = time.perf_counter()
            log(
                "action_started",
                action_id=definition.id,
                thread_id=context.thread_id,
                mode=context.mode,
            )
            try:
                if validate:
                    params = _validate_params(tool, params)
                if tool.call_window is not None:
                    tool.call_window.acquire(definition.id)
                result = await tool.handler(params, context)
            except Exception as e:
                duration_ms = (time.perf_counter() - start) * 1000
                if track:
                    self.tracker.record(definition.id, duration_ms, False, str(e))
                logger.warning(
                    "action_failed",
                    action_id=definition.id,
                    thread_id=context.thread_id,
                    duration_ms=round(duration_ms, 2),
                    error=str(e),
                    error_type=type(e).__name__,
                )
                raise

            duration_ms = (time.perf_counter() - start) * 1000
            if track:
                self.tracker.record(definition.id, duration_ms, True)
            log(
                "action_completed",
                action_id=definition.id,
                thread_id=context.thread_id,
                duration_ms=round(duration_ms, 2),
                commands=len(result.commands),
            )
            return result

        return invoke


def _validate_params(tool: CompiledTool, params: dict[str, Any]) -> dict[str, Any]:
    try:
        model = tool.parameter_model.model_validate(params)
    except PydanticValidationError as e:
        problems = [
            f"{'.'.join(str(p) for p in err['loc']) or 'params'}: {err['msg']}"
            for err in e.errors()
        ]
        raise ValidationError(
            f"Invalid parameters for action '{tool.id}'",
            {"action_id": tool.id, "problems": problems},
        ) from e
    return model.model_dump(exclude_none=True)
