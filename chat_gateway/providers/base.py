"""Wire models shared by the provider adapters and the HTTP layer."""

from __future__ import annotations

from collections.abc import AsyncIterable
from dataclasses import dataclass, field
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field

MessageRole = Literal["system", "user", "assistant", "tool"]


class ChatMessage(BaseModel):
    model_config = ConfigDict(extra="ignore")

    role: MessageRole
    content: str
    name: str | None = None
    tool_call_id: str | None = None
    tool_calls: list[dict[str, Any]] | None = None


class ChatCompletionRequest(BaseModel):
    """Inbound OpenAI-style request body accepted by the HTTP layer."""

    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    messages: Any
    model: str | None = None
    temperature: float | None = None
    max_tokens: int | None = None
    stream: bool | None = None
    seed: int | None = None
    json_mode: bool | None = Field(default=None, alias="jsonMode")
    response_format: dict[str, Any] | None = None
    tools: list[dict[str, Any]] | None = None
    tool_choice: Any | None = None

    def options(self) -> dict[str, Any]:
        """Return the generation options the caller explicitly supplied."""
        return self.model_dump(exclude={"messages"}, exclude_none=True)


class Usage(BaseModel):
    model_config = ConfigDict(extra="allow")

    prompt_tokens: int | float | None = 0
    completion_tokens: int | float | None = 0
    total_tokens: int | float | None = 0


class ChatCompletionResponse(BaseModel):
    """Successful completion as returned upstream, with envelope fields backfilled.

    Only ``id`` is required; other fields keep whatever types the upstream sent.
    """

    model_config = ConfigDict(extra="allow")

    id: str | int
    object: str = "chat.completion"
    created: int | float | None = None
    model: str | None = None
    choices: list[Any] = Field(default_factory=list)
    usage: Usage = Field(default_factory=Usage)


class ErrorDetail(BaseModel):
    message: str
    type: str = "internal_error"
    status_code: int | None = None


class ErrorResponse(BaseModel):
    """Uniform error value returned (not raised) on the non-streaming path."""

    error: ErrorDetail
    provider_name: str

    @property
    def message(self) -> str:
        return self.error.message


@dataclass
class StreamingEnvelope:
    """Metadata wrapper around an unread upstream response body.

    ``response_stream`` yields the raw upstream bytes exactly as received; the
    adapter never reads from it. Whoever consumes the envelope owns the stream
    and must either exhaust it or call :meth:`aclose`.
    """

    id: str
    created: int
    model: str
    response_stream: AsyncIterable[bytes]
    provider_name: str
    is_sse: bool
    object: str = "chat.completion.chunk"
    stream: bool = True
    choices: list[dict[str, Any]] = field(
        default_factory=lambda: [
            {"delta": {"content": ""}, "finish_reason": None, "index": 0}
        ]
    )
    error: dict[str, Any] | None = None

    async def aclose(self) -> None:
        closer = getattr(self.response_stream, "aclose", None)
        if closer is not None:
            await closer()


__all__ = [
    "ChatCompletionRequest",
    "ChatCompletionResponse",
    "ChatMessage",
    "ErrorDetail",
    "ErrorResponse",
    "MessageRole",
    "StreamingEnvelope",
    "Usage",
]
