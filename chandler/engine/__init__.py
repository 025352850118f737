"""Turn execution engine."""

from redis.asyncio import Redis

from chandler.config.models.engine import EngineConfig
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
from chandler.engine.engine import ExecutionEngine, TurnRequest, TurnSummary
from chandler.engine.formatter import ActionOutcome, ResponseFormatter
from chandler.engine.intent import IntentDetector, IntentEntities, IntentResult, ModeDetector
from chandler.engine.locks import RedisThreadLock, ThreadLock, ThreadLockRegistry
from chandler.engine.machine import TERMINAL_STATES, TurnState, TurnStateMachine
from chandler.engine.selection import ActionSelector, SelectedAction


def create_thread_lock(config: EngineConfig) -> ThreadLock:
    """Build the per-thread lock backend selected by configuration."""
    if config.lock_backend == "redis":
        return RedisThreadLock(
            Redis.from_url(config.redis_url),
            lock_timeout=config.lock_timeout_seconds,
        )
    return ThreadLockRegistry()


__all__ = [
    "TERMINAL_STATES",
    "ActionOutcome",
    "ActionSelector",
    "CancellationToken",
    "EndChunk",
    "ErrorChunk",
    "ExecutionEngine",
    "IntentDetector",
    "IntentEntities",
    "IntentResult",
    "MetadataChunk",
    "ModeDetector",
    "RedisThreadLock",
    "ResponseFormatter",
    "SelectedAction",
    "StreamChunk",
    "TextBuffer",
    "TextDelta",
    "ThreadLock",
    "ThreadLockRegistry",
    "ToolEnd",
    "ToolStart",
    "TurnCancelled",
    "TurnRequest",
    "TurnState",
    "TurnStateMachine",
    "TurnSummary",
    "create_thread_lock",
]
