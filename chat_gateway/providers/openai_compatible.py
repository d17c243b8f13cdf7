"""Generic adapter for upstream APIs speaking an OpenAI-style chat dialect."""

from __future__ import annotations

import logging
import time
from collections.abc import AsyncIterator, Callable, Mapping
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any

import httpx

from chat_gateway.core.exceptions import (
    ConfigurationError,
    ProviderNetworkError,
    ResponseParseError,
    UpstreamHTTPError,
)
from chat_gateway.storage.provider_logs import record_provider_log

from .base import ChatCompletionResponse, ErrorResponse, StreamingEnvelope
from .hooks import RequestHook
from .utils import (
    NormalizedOptions,
    build_error_log,
    clean_null_and_undefined,
    create_error_response,
    ensure_system_message,
    extract_error_body,
    generate_request_id,
    mask_headers,
    normalize_options,
    validate_and_normalize_messages,
)

ResponseFormatter = Callable[[dict[str, Any], str, float, str | None], Any]


@dataclass(frozen=True)
class FixedEndpoint:
    url: str

    def resolve(self, model_name: str | None) -> str:
        return self.url


@dataclass(frozen=True)
class ModelEndpoint:
    """Endpoint whose URL depends on the provider's native model name."""

    resolver: Callable[[str], str]

    def resolve(self, model_name: str | None) -> str:
        return self.resolver(model_name or "")

    @classmethod
    def from_template(cls, template: str) -> "ModelEndpoint":
        return cls(lambda model_name: template.format(model=model_name))


Endpoint = FixedEndpoint | ModelEndpoint


def _first_value(mapping: Mapping[str, str]) -> str | None:
    return next(iter(mapping.values()), None)


@dataclass(frozen=True)
class ProviderConfig:
    """Immutable description of one upstream API and its quirks."""

    endpoint: Endpoint
    auth_header_value: Callable[[], str | None]
    provider_name: str = "unknown"
    auth_header_name: str = "Authorization"
    model_mapping: Mapping[str, str] = field(default_factory=dict)
    system_prompts: Mapping[str, str] = field(default_factory=dict)
    default_options: Mapping[str, Any] = field(default_factory=dict)
    additional_headers: Mapping[str, str] = field(default_factory=dict)
    format_response: ResponseFormatter | None = None
    transform_request: RequestHook | None = None
    post_sanitize: RequestHook | None = None

    def __post_init__(self) -> None:
        if isinstance(self.endpoint, str):
            object.__setattr__(self, "endpoint", FixedEndpoint(self.endpoint))
        for name in ("model_mapping", "system_prompts", "default_options", "additional_headers"):
            object.__setattr__(self, name, MappingProxyType(dict(getattr(self, name))))

    def resolve_model(self, model_key: str | None) -> str | None:
        """Map a caller-facing model key to the provider's native identifier.

        Unknown keys fall back to the first mapping entry. Without any mapping
        the caller's key is forwarded unchanged.
        """
        if not self.model_mapping:
            return model_key
        if model_key and model_key in self.model_mapping:
            return self.model_mapping[model_key]
        return _first_value(self.model_mapping)

    def default_system_prompt(self, model_key: str | None) -> str | None:
        if model_key and model_key in self.system_prompts:
            return self.system_prompts[model_key]
        return _first_value(self.system_prompts)


@dataclass(frozen=True)
class PreparedRequest:
    request_id: str
    start_time: float
    options: NormalizedOptions
    model_name: str | None
    body: dict[str, Any]


class UpstreamStream:
    """Async byte iterator over a still-open upstream response.

    Bytes are relayed chunk by chunk as the transport delivers them. The HTTP
    response and its client are released once the iterator is exhausted or
    :meth:`aclose` is called.
    """

    def __init__(self, response: httpx.Response, client: httpx.AsyncClient) -> None:
        self._response = response
        self._client = client
        self._closed = False

    @property
    def status_code(self) -> int:
        return self._response.status_code

    @property
    def headers(self) -> httpx.Headers:
        return self._response.headers

    def __aiter__(self) -> AsyncIterator[bytes]:
        return self._iterate()

    async def _iterate(self) -> AsyncIterator[bytes]:
        try:
            async for chunk in self._response.aiter_bytes():
                yield chunk
        finally:
            await self.aclose()

    async def aclose(self) -> None:
        if self._closed:
            return
        self._closed = True
        await self._response.aclose()
        await self._client.aclose()


class OpenAICompatibleClient:
    """Callable adapter producing normalized chat completions for one provider.

    ``await client(messages, options)`` returns a ``ChatCompletionResponse``
    (or whatever ``format_response`` returns), a ``StreamingEnvelope`` when
    streaming was requested, or an ``ErrorResponse``. Failures are returned
    as ``ErrorResponse`` values, except for failures after a streaming request
    was dispatched: those are raised so the caller can abort its own response
    before committing headers.
    """

    def __init__(self, config: ProviderConfig) -> None:
        self._config = config
        self._logger = logging.getLogger(f"gateway.provider.{config.provider_name.lower()}")

    @property
    def config(self) -> ProviderConfig:
        return self._config

    @property
    def provider_name(self) -> str:
        return self._config.provider_name

    async def __call__(
        self, messages: Any, options: Mapping[str, Any] | None = None
    ) -> ChatCompletionResponse | StreamingEnvelope | ErrorResponse | Any:
        start_time = time.time()
        request_id = generate_request_id()
        self._log(
            logging.INFO,
            "Starting generation request",
            request_id,
            event="request_start",
            message_count=len(messages) if isinstance(messages, (list, tuple)) else 0,
        )

        try:
            credential = self._credential()
            prepared = self.build_request(
                messages, options, request_id=request_id, start_time=start_time
            )
        except Exception as exc:
            return self._classify(exc, request_id, start_time)

        if prepared.options.stream:
            return await self._open_stream(prepared, credential)

        try:
            return await self._complete(prepared, credential)
        except Exception as exc:
            return self._classify(exc, request_id, start_time)

    def build_request(
        self,
        messages: Any,
        options: Mapping[str, Any] | None = None,
        *,
        request_id: str | None = None,
        start_time: float | None = None,
    ) -> PreparedRequest:
        """Validate the inputs and build the sanitized outbound body."""

        request_id = request_id or generate_request_id()
        normalized = normalize_options(options, self._config.default_options)
        model_key = normalized.model
        model_name = self._config.resolve_model(model_key)

        validated = validate_and_normalize_messages(messages)
        with_system = ensure_system_message(
            validated, self._config.default_system_prompt(model_key)
        )

        body = {
            "model": model_name,
            "messages": with_system,
            "temperature": normalized.temperature,
            "stream": normalized.stream,
            "seed": normalized.seed,
            "max_tokens": normalized.max_tokens,
            "response_format": {"type": "json_object"} if normalized.json_mode else None,
            "tools": normalized.tools,
            "tool_choice": normalized.tool_choice,
        }
        cleaned = clean_null_and_undefined(body)

        final_body = cleaned
        if self._config.transform_request is not None:
            final_body = self._config.transform_request(final_body)
        if self._config.post_sanitize is not None:
            final_body = self._config.post_sanitize(final_body)

        self._log(
            logging.DEBUG,
            "Final request body",
            request_id,
            event="request_body",
            model=model_name,
            body=final_body,
        )
        return PreparedRequest(
            request_id=request_id,
            start_time=start_time if start_time is not None else time.time(),
            options=normalized,
            model_name=model_name,
            body=final_body,
        )

    def _credential(self) -> str:
        credential = self._config.auth_header_value()
        if not credential:
            raise ConfigurationError(
                self.provider_name, message=f"{self.provider_name} API key is not set"
            )
        return credential

    async def _dispatch(
        self,
        client: httpx.AsyncClient,
        prepared: PreparedRequest,
        credential: str,
        *,
        stream: bool,
    ) -> tuple[httpx.Response, float]:
        url = self._config.endpoint.resolve(prepared.model_name)
        headers = {
            self._config.auth_header_name: credential,
            "Content-Type": "application/json",
            **self._config.additional_headers,
        }
        self._log(
            logging.INFO,
            f"Sending request to {self.provider_name} API",
            prepared.request_id,
            event="request_sent",
            url=url,
            model=prepared.model_name,
            headers=mask_headers(headers, self._config.auth_header_name),
        )

        started = time.perf_counter()
        request = client.build_request("POST", url, json=prepared.body, headers=headers)
        try:
            response = await client.send(request, stream=stream)
        except httpx.RequestError as exc:
            record_provider_log(
                self.provider_name,
                request_body=prepared.body,
                response_body=build_error_log(error_type="network", message=str(exc)),
                request_id=prepared.request_id,
            )
            raise ProviderNetworkError(
                self.provider_name, message=f"{self.provider_name} request failed: {exc}"
            ) from exc
        return response, (time.perf_counter() - started) * 1000

    async def _open_stream(self, prepared: PreparedRequest, credential: str) -> StreamingEnvelope:
        client = httpx.AsyncClient(timeout=None)
        try:
            response, elapsed_ms = await self._dispatch(client, prepared, credential, stream=True)
        except Exception:
            await client.aclose()
            raise

        if not response.is_success:
            try:
                await response.aread()
                error_body = extract_error_body(response)
            finally:
                await response.aclose()
                await client.aclose()

            self._log(
                logging.ERROR,
                f"{self.provider_name} API error in streaming mode",
                prepared.request_id,
                event="stream_error",
                status_code=response.status_code,
                error_body=error_body,
            )
            record_provider_log(
                self.provider_name,
                request_body=prepared.body,
                response_body=build_error_log(
                    error_type="http_error",
                    message=f"HTTP {response.status_code}",
                    status_code=response.status_code,
                    response_body=error_body,
                ),
                request_id=prepared.request_id,
                status_code=response.status_code,
                elapsed_ms=elapsed_ms,
            )
            raise UpstreamHTTPError(
                self.provider_name,
                response.status_code,
                response.reason_phrase,
                error_body,
            )

        is_sse = "text/event-stream" in response.headers.get("content-type", "")
        self._log(
            logging.INFO,
            f"Streaming response from {self.provider_name} API",
            prepared.request_id,
            event="stream_opened",
            status_code=response.status_code,
            is_sse=is_sse,
        )
        record_provider_log(
            self.provider_name,
            request_body=prepared.body,
            response_body={"stream": True, "is_sse": is_sse},
            request_id=prepared.request_id,
            status_code=response.status_code,
            elapsed_ms=elapsed_ms,
        )
        return StreamingEnvelope(
            id=f"{self.provider_name.lower()}-{prepared.request_id}",
            created=int(prepared.start_time),
            model=prepared.model_name or "",
            response_stream=UpstreamStream(response, client),
            provider_name=self.provider_name,
            is_sse=is_sse,
        )

    async def _complete(
        self, prepared: PreparedRequest, credential: str
    ) -> ChatCompletionResponse | ErrorResponse | Any:
        async with httpx.AsyncClient(timeout=None) as client:
            response, elapsed_ms = await self._dispatch(client, prepared, credential, stream=False)

        if not response.is_success:
            error_text = response.text.strip()
            self._log(
                logging.ERROR,
                f"{self.provider_name} API error",
                prepared.request_id,
                event="upstream_error",
                status_code=response.status_code,
                error_body=error_text,
            )
            record_provider_log(
                self.provider_name,
                request_body=prepared.body,
                response_body=build_error_log(
                    error_type="http_error",
                    message=f"HTTP {response.status_code}",
                    status_code=response.status_code,
                    response_body=extract_error_body(response),
                ),
                request_id=prepared.request_id,
                status_code=response.status_code,
                elapsed_ms=elapsed_ms,
            )
            return create_error_response(
                UpstreamHTTPError(
                    self.provider_name,
                    response.status_code,
                    response.reason_phrase,
                    error_text,
                    include_body=True,
                ),
                self.provider_name,
            )

        try:
            data = response.json()
        except ValueError as exc:
            raise ResponseParseError(
                self.provider_name, message=f"{self.provider_name} returned invalid JSON"
            ) from exc
        if not isinstance(data, dict):
            raise ResponseParseError(
                self.provider_name, message=f"{self.provider_name} returned unexpected response format"
            )

        completion_time_ms = (time.time() - prepared.start_time) * 1000
        usage = data.get("usage") if isinstance(data.get("usage"), dict) else {}
        self._log(
            logging.INFO,
            "Successfully generated text",
            prepared.request_id,
            event="completion",
            completion_time_ms=round(completion_time_ms, 1),
            model=data.get("model") or prepared.model_name,
            prompt_tokens=usage.get("prompt_tokens"),
            completion_tokens=usage.get("completion_tokens"),
            total_tokens=usage.get("total_tokens"),
        )
        record_provider_log(
            self.provider_name,
            request_body=prepared.body,
            response_body=data,
            request_id=prepared.request_id,
            status_code=response.status_code,
            elapsed_ms=elapsed_ms,
        )

        if self._config.format_response is not None:
            return self._config.format_response(
                data, prepared.request_id, prepared.start_time, prepared.model_name
            )

        if not data.get("id"):
            data["id"] = f"{self.provider_name.lower()}-{prepared.request_id}"
        if not data.get("object"):
            data["object"] = "chat.completion"
        if not data.get("usage"):
            data["usage"] = {"prompt_tokens": 0, "completion_tokens": 0, "total_tokens": 0}
        return ChatCompletionResponse.model_validate(data)

    def _classify(self, exc: Exception, request_id: str, start_time: float) -> ErrorResponse:
        self._log(
            logging.ERROR,
            "Error in text generation",
            request_id,
            event="request_failed",
            error_type=type(exc).__name__,
            error_message=str(exc),
            completion_time_ms=round((time.time() - start_time) * 1000, 1),
        )
        return create_error_response(exc, self.provider_name)

    def _log(self, level: int, message: str, request_id: str, **fields: Any) -> None:
        self._logger.log(
            level,
            f"[{request_id}] {message}",
            extra={"provider": self.provider_name, "provider_request_id": request_id, **fields},
        )


def create_openai_compatible_client(config: ProviderConfig) -> OpenAICompatibleClient:
    return OpenAICompatibleClient(config)


__all__ = [
    "Endpoint",
    "FixedEndpoint",
    "ModelEndpoint",
    "OpenAICompatibleClient",
    "PreparedRequest",
    "ProviderConfig",
    "UpstreamStream",
    "create_openai_compatible_client",
]
