"""Helper utilities for provider adapters."""

from __future__ import annotations

import uuid
from collections.abc import Mapping
from dataclasses import asdict, dataclass
from typing import Any

import httpx
from pydantic import ValidationError

from chat_gateway.core.exceptions import GatewayError, MessageValidationError

from .base import ChatMessage, ErrorDetail, ErrorResponse

BASE_OPTIONS: dict[str, Any] = {
    "model": None,
    "temperature": None,
    "stream": False,
    "seed": None,
    "max_tokens": None,
    "json_mode": False,
    "tools": None,
    "tool_choice": None,
}

_OPTION_ALIASES = {
    "maxTokens": "max_tokens",
    "jsonMode": "json_mode",
    "toolChoice": "tool_choice",
}

_FLAG_OPTIONS = frozenset({"stream", "json_mode"})
_TRUE_STRINGS = frozenset({"true", "1", "yes", "on"})
_FALSE_STRINGS = frozenset({"false", "0", "no", "off", ""})

DEFAULT_SYSTEM_PROMPT = "You are a helpful assistant."


@dataclass(frozen=True)
class NormalizedOptions:
    model: str | None = None
    temperature: float | None = None
    stream: bool = False
    seed: int | None = None
    max_tokens: int | None = None
    json_mode: bool = False
    tools: list[dict[str, Any]] | None = None
    tool_choice: Any | None = None

    def as_dict(self) -> dict[str, Any]:
        return asdict(self)


def _extract_text(content: Any) -> str | None:
    if isinstance(content, str):
        return content
    if isinstance(content, list):
        pieces: list[str] = []
        for item in content:
            if isinstance(item, dict):
                if isinstance(item.get("text"), str):
                    pieces.append(item["text"])
                elif isinstance(item.get("content"), str):
                    pieces.append(item["content"])
            elif isinstance(item, str):
                pieces.append(item)
        return "".join(pieces)
    if isinstance(content, dict):
        value = content.get("text") or content.get("content")
        return value if isinstance(value, str) else None
    return None


def validate_and_normalize_messages(messages: Any) -> list[dict[str, Any]]:
    """Return a role-normalized copy of ``messages`` or raise ``MessageValidationError``.

    Roles are lower-cased and default to ``user``. Content may be a string or a
    list of text parts; parts are joined into one string. Assistant turns that
    only carry ``tool_calls`` are accepted with empty content.
    """

    if not isinstance(messages, (list, tuple)) or not messages:
        raise MessageValidationError()

    normalized: list[dict[str, Any]] = []
    for index, message in enumerate(messages):
        if not isinstance(message, Mapping):
            raise MessageValidationError(f"item {index} is not an object")

        role = message.get("role") or "user"
        if isinstance(role, str):
            role = role.strip().lower()

        content = _extract_text(message.get("content"))
        if content is None:
            if not message.get("tool_calls"):
                raise MessageValidationError(f"item {index} has no usable content")
            content = ""

        try:
            validated = ChatMessage.model_validate({**message, "role": role, "content": content})
        except ValidationError as exc:
            raise MessageValidationError(f"item {index} has unsupported role {role!r}") from exc
        normalized.append(validated.model_dump(exclude_none=True))
    return normalized


def clean_null_and_undefined(value: Any) -> Any:
    """Recursively drop ``None`` valued keys from mappings.

    Lists are kept as-is except that mapping elements are cleaned too.
    Applying the function to its own output returns an equal value.
    """

    if isinstance(value, Mapping):
        return {
            key: clean_null_and_undefined(item)
            for key, item in value.items()
            if item is not None
        }
    if isinstance(value, list):
        return [
            clean_null_and_undefined(item) if isinstance(item, Mapping) else item
            for item in value
        ]
    return value


def _as_flag(value: Any) -> bool | None:
    if isinstance(value, bool):
        return value
    if isinstance(value, str):
        lowered = value.strip().lower()
        if lowered in _TRUE_STRINGS:
            return True
        if lowered in _FALSE_STRINGS:
            return False
    return None


def _recognized_options(options: Any) -> dict[str, Any]:
    if not isinstance(options, Mapping):
        return {}

    result: dict[str, Any] = {}
    for key, value in options.items():
        name = _OPTION_ALIASES.get(key, key)
        if name == "response_format":
            if isinstance(value, Mapping) and value.get("type") == "json_object":
                result.setdefault("json_mode", True)
            continue
        if name in _FLAG_OPTIONS:
            value = _as_flag(value)
        if name in BASE_OPTIONS and value is not None:
            result[name] = value
    return result


def normalize_options(
    options: Mapping[str, Any] | None,
    default_options: Mapping[str, Any] | None = None,
) -> NormalizedOptions:
    """Merge caller options over provider defaults over the built-in base.

    Accepts both snake_case and camelCase keys; unrecognized keys and ``None``
    values are ignored so a caller can never erase a provider default. The
    ``stream`` and ``json_mode`` flags take booleans or "true"/"false" style
    strings; anything else leaves the default in place.
    """

    merged = dict(BASE_OPTIONS)
    merged.update(_recognized_options(default_options))
    merged.update(_recognized_options(options))
    return NormalizedOptions(**merged)


def ensure_system_message(
    messages: list[dict[str, Any]], default_prompt: str | None
) -> list[dict[str, Any]]:
    """Prepend a system message when none exists.

    Falls back to ``DEFAULT_SYSTEM_PROMPT`` when the provider configures none.
    """

    if any(message.get("role") == "system" for message in messages):
        return messages
    return [{"role": "system", "content": default_prompt or DEFAULT_SYSTEM_PROMPT}, *messages]


def generate_request_id() -> str:
    return uuid.uuid4().hex


def create_error_response(error: BaseException, provider_name: str) -> ErrorResponse:
    """Convert any exception into the uniform error value."""

    if isinstance(error, GatewayError):
        message = error.message
        error_type = error.error_type
    else:
        message = str(error) or error.__class__.__name__
        error_type = "internal_error"

    return ErrorResponse(
        error=ErrorDetail(
            message=message,
            type=error_type,
            status_code=getattr(error, "status_code", None),
        ),
        provider_name=provider_name,
    )


def extract_error_body(response: httpx.Response) -> Any:
    """Return structured error details if available, else a trimmed text body."""

    try:
        return response.json()
    except ValueError:
        text = getattr(response, "text", None)
        if text:
            stripped = text.strip()
            if stripped:
                return stripped
        return None


def build_error_log(
    *,
    error_type: str,
    message: str,
    status_code: int | None = None,
    response_body: Any | None = None,
) -> dict[str, Any]:
    """Assemble a consistent provider error log payload."""

    payload: dict[str, Any] = {
        "error": {
            "type": error_type,
            "message": message,
        }
    }
    if status_code is not None:
        payload["error"]["status_code"] = status_code
    if response_body is not None:
        payload["response"] = response_body
    return payload


def mask_headers(headers: Mapping[str, str], secret_header: str) -> dict[str, str]:
    """Return ``headers`` with the credential header value redacted for logging."""

    masked = dict(headers)
    if secret_header in masked:
        masked[secret_header] = "***"
    return masked


__all__ = [
    "BASE_OPTIONS",
    "DEFAULT_SYSTEM_PROMPT",
    "NormalizedOptions",
    "build_error_log",
    "clean_null_and_undefined",
    "create_error_response",
    "ensure_system_message",
    "extract_error_body",
    "generate_request_id",
    "mask_headers",
    "normalize_options",
    "validate_and_normalize_messages",
]
