"""Typed chunks yielded by a streaming turn."""

from typing import Annotated, Any, Literal

from pydantic import BaseModel, Field


class TextDelta(BaseModel):
    """A fragment of the assistant response."""

    type: Literal["text-delta"] = "text-delta"
    text: str


class ToolStart(BaseModel):
    """An action is about to run."""

    type: Literal["tool_start"] = "tool_start"
    name: str
    args: dict[str, Any] = Field(default_factory=dict)


class ToolEnd(BaseModel):
    """An action finished."""

    type: Literal["tool_end"] = "tool_end"
    name: str
    success: bool = True
    result: Any = None


class MetadataChunk(BaseModel):
    """Turn summary sent before the end chunk."""

    type: Literal["metadata"] = "metadata"
    intent: str | None = None
    mode: str
    tools_used: list[str] = Field(default_factory=list)
    stage_timings: dict[str, float] = Field(default_factory=dict)


class ErrorChunk(BaseModel):
    """An in-band error. ``message`` is always user-safe."""

    type: Literal["error"] = "error"
    kind: str
    message: str
    severity: str | None = None
    reason: str | None = None
    retry_after: int | None = None


class EndChunk(BaseModel):
    """Last chunk of every turn."""

    type: Literal["end"] = "end"
    thread_id: str
    mode: str
    final_state: str
    tools_used: list[str] = Field(default_factory=list)


StreamChunk = Annotated[
    TextDelta | ToolStart | ToolEnd | MetadataChunk | ErrorChunk | EndChunk,
    Field(discriminator="type"),
]
