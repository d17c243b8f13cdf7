"""Named request hooks that provider configuration can refer to."""

from __future__ import annotations

from collections.abc import Callable
from typing import Any

from chat_gateway.core.exceptions import ConfigurationError

from .utils import clean_null_and_undefined

RequestHook = Callable[[dict[str, Any]], dict[str, Any]]


def strip_nulls_strict(body: dict[str, Any]) -> dict[str, Any]:
    """Second null pass for APIs that reject literal nulls anywhere.

    Runs after ``transform_request`` so nulls a transform reintroduced are
    removed too, and drops ``response_format`` once it has no keys left.
    """

    cleaned = clean_null_and_undefined(body)
    response_format = cleaned.get("response_format")
    if isinstance(response_format, dict) and not response_format:
        del cleaned["response_format"]
    return cleaned


def use_max_completion_tokens(body: dict[str, Any]) -> dict[str, Any]:
    """Rename ``max_tokens`` for APIs that only accept ``max_completion_tokens``."""

    if "max_tokens" not in body:
        return body
    transformed = dict(body)
    transformed["max_completion_tokens"] = transformed.pop("max_tokens")
    return transformed


def drop_seed(body: dict[str, Any]) -> dict[str, Any]:
    return {key: value for key, value in body.items() if key != "seed"}


def drop_tools(body: dict[str, Any]) -> dict[str, Any]:
    return {
        key: value for key, value in body.items() if key not in {"tools", "tool_choice"}
    }


POST_SANITIZERS: dict[str, RequestHook] = {
    "strict_nulls": strip_nulls_strict,
}

REQUEST_TRANSFORMS: dict[str, RequestHook] = {
    "max_completion_tokens": use_max_completion_tokens,
    "drop_seed": drop_seed,
    "drop_tools": drop_tools,
}


def resolve_hook(
    registry: dict[str, RequestHook], name: str | None, provider_name: str
) -> RequestHook | None:
    if not name:
        return None
    hook = registry.get(name)
    if hook is None:
        raise ConfigurationError(provider_name, message=f"Unknown request hook '{name}'")
    return hook


__all__ = [
    "POST_SANITIZERS",
    "REQUEST_TRANSFORMS",
    "RequestHook",
    "drop_seed",
    "drop_tools",
    "resolve_hook",
    "strip_nulls_strict",
    "use_max_completion_tokens",
]
