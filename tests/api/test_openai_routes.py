from http import HTTPStatus

import httpx
import pytest
from fastapi.testclient import TestClient

import chat_gateway.main as app_main
from chat_gateway.api import openai
from chat_gateway.core import config as config_module
from chat_gateway.core.config import GatewaySettings, ProviderSettings
from chat_gateway.core.exceptions import MessageValidationError, UpstreamHTTPError
from chat_gateway.main import app
from chat_gateway.providers import openai_compatible
from chat_gateway.providers.base import ChatCompletionResponse, StreamingEnvelope
from chat_gateway.providers.utils import create_error_response
from chat_gateway.router.selector import ProviderRegistry

_RealAsyncClient = httpx.AsyncClient


class FakeClient:
    provider_name = "Demo"

    def __init__(self, result=None, exc: Exception | None = None) -> None:
        self.result = result
        self.exc = exc
        self.calls: list = []

    async def __call__(self, messages, options=None):
        self.calls.append((messages, options))
        if self.exc is not None:
            raise self.exc
        return self.result


class FakeRegistry:
    def __init__(self, client: FakeClient) -> None:
        self.client = client
        self.requested: list = []

    def get_client(self, provider_name=None):
        self.requested.append(provider_name)
        return self.client

    def providers(self):
        return [
            ProviderSettings(
                name="Demo",
                endpoint="https://demo.example/chat",
                model_mapping={"demo": "demo-1", "demo-large": "demo-2"},
            )
        ]

    def get_states(self):
        return []


def _completion() -> ChatCompletionResponse:
    return ChatCompletionResponse.model_validate(
        {
            "id": "chatcmpl-test",
            "object": "chat.completion",
            "created": 123,
            "model": "demo-1",
            "choices": [
                {
                    "index": 0,
                    "message": {"role": "assistant", "content": "ok"},
                    "finish_reason": "stop",
                }
            ],
            "usage": {"prompt_tokens": 1, "completion_tokens": 1, "total_tokens": 2},
        }
    )


@pytest.fixture
def install(monkeypatch):
    monkeypatch.setattr(app_main, "init_db", lambda: None)

    def _install(registry) -> TestClient:
        monkeypatch.setattr(openai, "registry", registry)
        monkeypatch.setattr(app_main, "registry", registry)
        return TestClient(app)

    return _install


def test_chat_completion_success(install):
    fake = FakeClient(result=_completion())
    registry = FakeRegistry(fake)

    with install(registry) as client:
        response = client.post(
            "/v1/chat/completions",
            json={
                "model": "demo",
                "messages": [{"role": "user", "content": "hi"}],
                "jsonMode": True,
                "max_tokens": 12,
            },
            headers={"x-provider-id": "demo"},
        )

    assert response.status_code == HTTPStatus.OK
    assert response.json()["choices"][0]["message"]["content"] == "ok"
    assert registry.requested == ["demo"]
    assert fake.calls[0][1] == {"model": "demo", "max_tokens": 12, "json_mode": True}
    assert response.headers["x-request-id"]


def test_chat_completion_keeps_null_envelope_keys(install):
    completion = ChatCompletionResponse.model_validate(
        {"id": "demo-req1", "choices": [], "usage": {"prompt_tokens": 0}}
    )

    with install(FakeRegistry(FakeClient(result=completion))) as client:
        response = client.post(
            "/v1/chat/completions", json={"messages": [{"role": "user", "content": "hi"}]}
        )

    body = response.json()
    assert response.status_code == HTTPStatus.OK
    assert body["created"] is None
    assert body["model"] is None
    assert body["object"] == "chat.completion"
    assert body["usage"] == {"prompt_tokens": 0, "completion_tokens": 0, "total_tokens": 0}


def test_invalid_messages_map_to_bad_request(install):
    fake = FakeClient(result=create_error_response(MessageValidationError(), "Demo"))

    with install(FakeRegistry(fake)) as client:
        response = client.post("/v1/chat/completions", json={"messages": "invalid"})

    assert response.status_code == HTTPStatus.BAD_REQUEST
    assert "Invalid messages" in response.json()["error"]["message"]
    assert fake.calls[0][0] == "invalid"


def test_returned_upstream_error_keeps_status(install):
    error = create_error_response(
        UpstreamHTTPError("Demo", 503, "Service Unavailable", "down", include_body=True), "Demo"
    )

    with install(FakeRegistry(FakeClient(result=error))) as client:
        response = client.post(
            "/v1/chat/completions", json={"messages": [{"role": "user", "content": "hi"}]}
        )

    assert response.status_code == HTTPStatus.SERVICE_UNAVAILABLE
    body = response.json()
    assert body["provider_name"] == "Demo"
    assert body["error"]["type"] == "upstream_http_error"


def test_streaming_envelope_is_proxied(install):
    chunks = [b"data: {\"choices\": []}\n\n", b"data: [DONE]\n\n"]

    async def body():
        for chunk in chunks:
            yield chunk

    envelope = StreamingEnvelope(
        id="demo-req1",
        created=123,
        model="demo-1",
        response_stream=body(),
        provider_name="Demo",
        is_sse=True,
    )

    with install(FakeRegistry(FakeClient(result=envelope))) as client:
        response = client.post(
            "/v1/chat/completions",
            json={"messages": [{"role": "user", "content": "hi"}], "stream": True},
        )

    assert response.status_code == HTTPStatus.OK
    assert response.headers["content-type"].startswith("text/event-stream")
    assert response.headers["x-provider"] == "Demo"
    assert response.content == b"".join(chunks)


def test_streaming_preflight_failure_is_reported_before_headers(install):
    fake = FakeClient(exc=UpstreamHTTPError("Demo", 500, "Internal Server Error"))

    with install(FakeRegistry(fake)) as client:
        response = client.post(
            "/v1/chat/completions",
            json={"messages": [{"role": "user", "content": "hi"}], "stream": True},
        )

    assert response.status_code == HTTPStatus.INTERNAL_SERVER_ERROR
    assert response.json()["error"]["message"] == "Demo API error: 500 Internal Server Error"


def test_unknown_provider_is_not_found(install, monkeypatch):
    monkeypatch.setattr(config_module, "resolve_api_key", lambda name, env_var=None: None)
    registry = ProviderRegistry(
        GatewaySettings(providers=[ProviderSettings(name="Demo", endpoint="https://demo.example")])
    )

    with install(registry) as client:
        response = client.post(
            "/v1/chat/completions",
            json={"messages": [{"role": "user", "content": "hi"}]},
            headers={"x-provider-id": "missing"},
        )

    assert response.status_code == HTTPStatus.NOT_FOUND
    assert response.json()["error"]["type"] == "configuration_error"


def test_list_models(install):
    with install(FakeRegistry(FakeClient())) as client:
        response = client.get("/v1/models")

    assert response.status_code == HTTPStatus.OK
    assert [item["id"] for item in response.json()["data"]] == ["demo", "demo-large"]


def test_end_to_end_streaming_and_non_streaming_upstream_failure(install, monkeypatch):
    monkeypatch.setattr(config_module, "resolve_api_key", lambda name, env_var=None: "secret")
    monkeypatch.setattr(openai_compatible, "record_provider_log", lambda *args, **kwargs: None)
    monkeypatch.setattr(
        "chat_gateway.providers.openai_compatible.httpx.AsyncClient",
        lambda *args, **kwargs: _RealAsyncClient(
            transport=httpx.MockTransport(lambda request: httpx.Response(500, text="boom"))
        ),
    )
    registry = ProviderRegistry(
        GatewaySettings(
            providers=[
                ProviderSettings(
                    name="Demo",
                    endpoint="https://demo.example/chat",
                    model_mapping={"demo": "demo-1"},
                )
            ]
        )
    )

    with install(registry) as client:
        streamed = client.post(
            "/v1/chat/completions",
            json={"messages": [{"role": "user", "content": "hi"}], "stream": True},
        )
        buffered = client.post(
            "/v1/chat/completions",
            json={"messages": [{"role": "user", "content": "hi"}]},
        )

    assert streamed.status_code == HTTPStatus.INTERNAL_SERVER_ERROR
    assert streamed.json()["error"]["message"] == "Demo API error: 500 Internal Server Error"
    assert buffered.status_code == HTTPStatus.INTERNAL_SERVER_ERROR
    assert buffered.json()["error"]["message"].endswith("- boom")
