"""Execution engine: drives one conversation turn end to end.

A turn is rate limited, then runs under the thread's lock through
intent detection, enrichment, input validation, action selection and
execution, output validation and formatting. Every state change is a
command committed in order; expected failures become commands and
in-band error chunks instead of exceptions.
"""

import asyncio
from collections.abc import AsyncIterator
from typing import Any

from pydantic import BaseModel, Field

from chandler.actions.models import ActionContext
from chandler.actions.registry import ActionRegistry
from chandler.commerce.client import CommerceClient
from chandler.config.models.engine import EngineConfig
from chandler.conversation.commands import (
    AddMessage,
    Command,
    SetError,
    UpdateCart,
    UpdateContext,
    UpdateSecurity,
    apply_commands,
)
from chandler.conversation.models import ConversationState, Mode
from chandler.conversation.store import ConversationStore
from chandler.engine.buffer import TextBuffer
from chandler.engine.cancellation import CancellationToken, TurnCancelled
from chandler.engine.chunks import (
    EndChunk,
    ErrorChunk,
    MetadataChunk,
    StreamChunk,
    TextDelta,
    ToolEnd,
    ToolStart,
)
from chandler.engine.formatter import ActionOutcome, ResponseFormatter
from chandler.engine.intent import IntentDetector, IntentResult
from chandler.engine.locks import ThreadLock, ThreadLockRegistry
from chandler.engine.machine import TurnState, TurnStateMachine
from chandler.engine.selection import ActionSelector, SelectedAction
from chandler.errors import (
    ActionExecutionError,
    ChandlerError,
    CommerceError,
    ErrorKind,
    SecurityViolation,
    user_message_for,
)
from chandler.observability.logging import get_logger
from chandler.observability.metrics import TURNS
from chandler.ratelimit.tiers import TieredRateLimiter
from chandler.security.judge import SecurityJudge
from chandler.security.models import ValidationCategory

logger = get_logger(__name__)


class TurnRequest(BaseModel):
    """One user message to process."""

    thread_id: str = Field(min_length=1)
    message: str
    identity: str
    tier: str = "anonymous"
    mode: Mode | None = None
    authenticated: bool = False
    context: dict[str, Any] = Field(default_factory=dict)


class TurnSummary(BaseModel):
    """Collected outcome of a non-streaming turn."""

    thread_id: str
    mode: str
    final_state: str
    message: str
    tools_used: list[str] = Field(default_factory=list)
    errors: list[ErrorChunk] = Field(default_factory=list)
    metadata: MetadataChunk | None = None


class ExecutionEngine:
    """Runs conversation turns against the registry, judge and commerce client."""

    def __init__(
        self,
        *,
        registry: ActionRegistry,
        judge: SecurityJudge,
        commerce: CommerceClient,
        store: ConversationStore,
        rate_limiter: TieredRateLimiter | None = None,
        locks: ThreadLock | None = None,
        intent_detector: IntentDetector | None = None,
        selector: ActionSelector | None = None,
        formatter: ResponseFormatter | None = None,
        config: EngineConfig | None = None,
    ) -> None:
        self._config = config or EngineConfig()
        self._registry = registry
        self._judge = judge
        self._commerce = commerce
        self._store = store
        self._rate_limiter = rate_limiter
        self._locks = locks or ThreadLockRegistry()
        self._intents = intent_detector or IntentDetector()
        self._selector = selector or ActionSelector(registry, self._config.max_actions_per_turn)
        self._formatter = formatter or ResponseFormatter()

    @property
    def store(self) -> ConversationStore:
        return self._store

    async def run_turn(
        self,
        request: TurnRequest,
        cancel_token: CancellationToken | None = None,
    ) -> AsyncIterator[StreamChunk]:
        """Process one message, yielding chunks as the turn progresses.

        The last chunk is always an EndChunk unless an unexpected error
        escapes, which is re-raised for the transport to report.
        """
        token = cancel_token or CancellationToken()
        machine = TurnStateMachine(request.thread_id)
        log = logger.bind(thread_id=request.thread_id, tier=request.tier)

        if self._rate_limiter is not None:
            admission = self._rate_limiter.check(request.identity, request.tier)
            if not admission.allowed:
                machine.transition(TurnState.RATE_LIMITED)
                TURNS.labels(final_state=machine.state.value).inc()
                yield ErrorChunk(
                    kind=ErrorKind.RATE_LIMITED.value,
                    message=user_message_for(ErrorKind.RATE_LIMITED),
                    retry_after=admission.retry_after,
                )
                yield EndChunk(
                    thread_id=request.thread_id,
                    mode=request.mode or self._config.default_mode,
                    final_state=machine.state.value,
                )
                return

        log.info("turn_started", message_length=len(request.message))
        try:
            async with self._locks.hold(request.thread_id):
                async for chunk in self._run_locked(request, token, machine):
                    yield chunk
        except TurnCancelled:
            machine.fail()
            log.info("turn_cancelled", reason=token.reason, stage=machine.history[-2].value)
            yield EndChunk(
                thread_id=request.thread_id,
                mode=request.mode or self._config.default_mode,
                final_state=machine.state.value,
            )
        except (Exception, asyncio.CancelledError):
            machine.fail()
            raise
        finally:
            if machine.state != TurnState.RATE_LIMITED:
                TURNS.labels(final_state=machine.state.value).inc()
                log.info(
                    "turn_finished",
                    final_state=machine.state.value,
                    stage_timings=machine.timings,
                )

    async def run(
        self,
        request: TurnRequest,
        cancel_token: CancellationToken | None = None,
    ) -> TurnSummary:
        """Run a turn to completion and collect its output."""
        text: list[str] = []
        errors: list[ErrorChunk] = []
        metadata: MetadataChunk | None = None
        end: EndChunk | None = None
        async for chunk in self.run_turn(request, cancel_token):
            if isinstance(chunk, TextDelta):
                text.append(chunk.text)
            elif isinstance(chunk, ErrorChunk):
                errors.append(chunk)
            elif isinstance(chunk, MetadataChunk):
                metadata = chunk
            elif isinstance(chunk, EndChunk):
                end = chunk

        if end is None:
            raise RuntimeError("Turn ended without an end chunk")
        message = "".join(text) or (errors[-1].message if errors else "")
        return TurnSummary(
            thread_id=end.thread_id,
            mode=end.mode,
            final_state=end.final_state,
            message=message,
            tools_used=end.tools_used,
            errors=errors,
            metadata=metadata,
        )

    async def _commit(
        self,
        state: ConversationState,
        commands: list[Command],
        token: CancellationToken,
    ) -> ConversationState:
        token.raise_if_cancelled()
        state = apply_commands(state, commands)
        await self._store.save(state)
        return state

    async def _run_locked(
        self,
        request: TurnRequest,
        token: CancellationToken,
        machine: TurnStateMachine,
    ) -> AsyncIterator[StreamChunk]:
        state = await self._store.get_or_create(
            request.thread_id, request.mode or self._config.default_mode
        )
        state = await self._commit(
            state,
            [AddMessage(content=request.message, role="user"), SetError(message=None)],
            token,
        )

        # Intent
        intent = await self._intents.detect(request.message, state, fixed_mode=request.mode)
        state = await self._commit(state, intent.commands(), token)
        machine.transition(TurnState.INTENT_DETECTED)

        # Enrichment
        state = await self._enrich(state, request, token)
        machine.transition(TurnState.CONTEXT_ENRICHED)

        # Input validation
        verdict = self._judge.validate(request.message, state)
        security = self._judge.record(state.security, verdict)
        state = await self._commit(state, [UpdateSecurity(security=security)], token)
        if not verdict.is_valid or self._judge.should_block(security):
            text = user_message_for(ErrorKind.SECURITY)
            state = await self._commit(
                state,
                [SetError(message=text, kind=ErrorKind.SECURITY), AddMessage(content=text)],
                token,
            )
            machine.fail()
            yield ErrorChunk(
                kind=ErrorKind.SECURITY.value,
                message=text,
                severity=verdict.severity.value,
                reason=verdict.reason or "Conversation blocked after repeated violations",
            )
            yield EndChunk(
                thread_id=state.thread_id,
                mode=state.mode,
                final_state=machine.state.value,
            )
            return
        machine.transition(TurnState.INPUT_VALIDATED)

        # Selection and authorization
        selected = self._selector.select(intent, state)
        machine.transition(TurnState.ACTIONS_SELECTED)
        if not request.authenticated:
            permitted = [s for s in selected if not s.tool.definition.requires_auth]
            skipped = [s.action_id for s in selected if s.tool.definition.requires_auth]
            if skipped:
                logger.info("actions_require_auth", thread_id=state.thread_id, skipped=skipped)
            if selected and not permitted:
                text = user_message_for(ErrorKind.UNAUTHORIZED)
                state = await self._commit(
                    state,
                    [SetError(message=text, kind=ErrorKind.UNAUTHORIZED), AddMessage(content=text)],
                    token,
                )
                machine.transition(TurnState.UNAUTHORIZED)
                yield ErrorChunk(kind=ErrorKind.UNAUTHORIZED.value, message=text)
                yield EndChunk(
                    thread_id=state.thread_id,
                    mode=state.mode,
                    final_state=machine.state.value,
                )
                return
            selected = permitted

        # Execution
        outcomes: list[ActionOutcome] = []
        async for chunk, state in self._execute(selected, request, state, token, outcomes):
            yield chunk
        machine.transition(TurnState.ACTIONS_EXECUTED)

        # Output validation
        text = await self._formatter.format(
            request.message,
            outcomes,
            intent=intent.intent,
            mode=state.mode,
            thread_id=state.thread_id,
        )
        text = self._validated_output(text, state)
        machine.transition(TurnState.OUTPUT_VALIDATED)

        # Formatting
        buffer = TextBuffer()
        for fragment in self._formatter.fragments(text):
            token.raise_if_cancelled()
            ready = buffer.push(fragment)
            if ready:
                yield TextDelta(text=ready)
        tail = buffer.flush()
        if tail:
            yield TextDelta(text=tail)
        if text:
            state = await self._commit(state, [AddMessage(content=text)], token)
        machine.transition(TurnState.RESPONSE_FORMATTED)

        # Emission
        tools_used = [outcome.action_id for outcome in outcomes]
        machine.transition(TurnState.EMITTED)
        yield self._metadata(intent, state, tools_used, machine)
        machine.transition(TurnState.COMPLETED)
        yield EndChunk(
            thread_id=state.thread_id,
            mode=state.mode,
            final_state=machine.state.value,
            tools_used=tools_used,
        )

    async def _enrich(
        self,
        state: ConversationState,
        request: TurnRequest,
        token: CancellationToken,
    ) -> ConversationState:
        cart_id = str(request.context.get("cart_id") or state.context.get("cart_id") or state.thread_id)
        commands: list[Command] = []
        try:
            cart = await self._commerce.get_cart(cart_id)
            commands.append(UpdateCart(cart=cart.model_dump(mode="json")))
        except CommerceError as e:
            logger.warning("cart_snapshot_failed", thread_id=state.thread_id, error=e.message)

        values: dict[str, Any] = {
            "cart_id": cart_id,
            "locale": request.context.get("locale") or state.context.get("locale") or "en-US",
            "currency": (
                request.context.get("currency")
                or state.context.get("currency")
                or state.cart.currency
            ),
            "authenticated": request.authenticated,
        }
        if request.context.get("customer_id"):
            values["customer_id"] = request.context["customer_id"]
        commands.append(UpdateContext(values=values))
        return await self._commit(state, commands, token)

    async def _execute(
        self,
        selected: list[SelectedAction],
        request: TurnRequest,
        state: ConversationState,
        token: CancellationToken,
        outcomes: list[ActionOutcome],
    ) -> AsyncIterator[tuple[StreamChunk, ConversationState]]:
        """Run selected actions concurrently and commit in selection order."""
        if not selected:
            return

        context = ActionContext(
            thread_id=state.thread_id,
            state=state,
            commerce=self._commerce,
            judge=self._judge,
            authenticated=request.authenticated,
            identity=request.identity,
        )
        tasks: list[asyncio.Task[ActionOutcome]] = []
        for action in selected:
            token.raise_if_cancelled()
            yield ToolStart(name=action.action_id, args=action.args), state
            tasks.append(token.track(asyncio.create_task(self._invoke(action, context))))

        try:
            for action, task in zip(selected, tasks, strict=True):
                try:
                    outcome = await task
                except asyncio.CancelledError:
                    if token.cancelled:
                        raise TurnCancelled(token.reason or "cancelled") from None
                    raise
                outcomes.append(outcome)

                if outcome.error is None and outcome.result is not None:
                    state = await self._commit(state, list(outcome.result.commands), token)
                    yield ToolEnd(name=action.action_id, success=True, result=outcome.result.data), state
                    continue

                error = outcome.error or ActionExecutionError(action.action_id, RuntimeError("no result"))
                text = error.user_message
                state = await self._commit(
                    state,
                    [SetError(message=text, kind=error.kind), AddMessage(content=text)],
                    token,
                )
                yield ToolEnd(name=action.action_id, success=False), state
                yield self._error_chunk(error), state
        finally:
            for task in tasks:
                if not task.done():
                    task.cancel()

    async def _invoke(self, action: SelectedAction, context: ActionContext) -> ActionOutcome:
        try:
            result = await asyncio.wait_for(
                action.tool(action.args, context),
                timeout=self._config.action_timeout_seconds,
            )
        except ChandlerError as e:
            return ActionOutcome(action.action_id, action.args, error=e)
        except asyncio.TimeoutError as e:
            return ActionOutcome(
                action.action_id, action.args, error=ActionExecutionError(action.action_id, e)
            )
        except Exception as e:
            logger.error(
                "action_handler_error",
                action_id=action.action_id,
                thread_id=context.thread_id,
                error=str(e),
                error_type=type(e).__name__,
            )
            return ActionOutcome(
                action.action_id, action.args, error=ActionExecutionError(action.action_id, e)
            )
        return ActionOutcome(action.action_id, action.args, result=result)

    def _error_chunk(self, error: ChandlerError) -> ErrorChunk:
        if isinstance(error, SecurityViolation):
            return ErrorChunk(
                kind=error.kind.value,
                message=error.user_message,
                severity=error.severity,
                reason=error.reason,
            )
        return ErrorChunk(
            kind=error.kind.value,
            message=error.user_message,
            retry_after=getattr(error, "retry_after", None),
        )

    def _validated_output(self, text: str, state: ConversationState) -> str:
        if not text:
            return text
        verdict = self._judge.validate_output(text, state)
        if verdict.is_valid:
            return text
        if verdict.category == ValidationCategory.DATA_EXFILTRATION:
            return self._judge.filter_output(text)
        return user_message_for(ErrorKind.SECURITY)

    def _metadata(
        self,
        intent: IntentResult,
        state: ConversationState,
        tools_used: list[str],
        machine: TurnStateMachine,
    ) -> MetadataChunk:
        return MetadataChunk(
            intent=intent.intent,
            mode=state.mode,
            tools_used=tools_used,
            stage_timings=dict(machine.timings),
        )
