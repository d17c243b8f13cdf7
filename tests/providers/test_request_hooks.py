import pytest

from chat_gateway.core.exceptions import ConfigurationError
from chat_gateway.providers.hooks import (
    POST_SANITIZERS,
    REQUEST_TRANSFORMS,
    drop_seed,
    drop_tools,
    resolve_hook,
    strip_nulls_strict,
    use_max_completion_tokens,
)


def test_strict_nulls_drops_emptied_response_format():
    body = {"model": "m", "response_format": {"type": None}, "seed": None}

    assert strip_nulls_strict(body) == {"model": "m"}


def test_strict_nulls_keeps_populated_response_format():
    body = {"model": "m", "response_format": {"type": "json_object", "schema": None}}

    assert strip_nulls_strict(body) == {"model": "m", "response_format": {"type": "json_object"}}


def test_strict_nulls_is_idempotent():
    body = {"a": {"b": None}, "response_format": {}, "tools": [{"x": None}]}

    once = strip_nulls_strict(body)
    assert strip_nulls_strict(once) == once
    assert "response_format" not in once


def test_max_completion_tokens_rename():
    assert use_max_completion_tokens({"max_tokens": 10, "model": "m"}) == {
        "model": "m",
        "max_completion_tokens": 10,
    }
    body = {"model": "m"}
    assert use_max_completion_tokens(body) is body


def test_drop_seed_and_tools():
    body = {"model": "m", "seed": 1, "tools": [], "tool_choice": "auto"}

    assert drop_seed(body) == {"model": "m", "tools": [], "tool_choice": "auto"}
    assert drop_tools(body) == {"model": "m", "seed": 1}


def test_resolve_hook_by_name():
    assert resolve_hook(POST_SANITIZERS, "strict_nulls", "Cloudflare") is strip_nulls_strict
    assert resolve_hook(REQUEST_TRANSFORMS, None, "Cloudflare") is None

    with pytest.raises(ConfigurationError) as excinfo:
        resolve_hook(REQUEST_TRANSFORMS, "nope", "Cloudflare")
    assert excinfo.value.provider_name == "Cloudflare"
