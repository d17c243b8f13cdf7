"""OpenAI-compatible API routes."""

from __future__ import annotations

import logging
from typing import Annotated, Any, Optional

from fastapi import APIRouter, Header
from fastapi.responses import JSONResponse, Response, StreamingResponse
from pydantic import BaseModel
from starlette.background import BackgroundTask

from chat_gateway.core.exceptions import ConfigurationError, GatewayError
from chat_gateway.providers.base import ChatCompletionRequest, ErrorResponse, StreamingEnvelope
from chat_gateway.providers.utils import create_error_response
from chat_gateway.router.selector import registry

logger = logging.getLogger("gateway.api")

router = APIRouter(prefix="/v1")

_STATUS_BY_ERROR_TYPE = {
    "invalid_messages": 400,
    "configuration_error": 500,
}


CHAT_COMPLETION_EXAMPLES = {
    "default": {
        "summary": "Default provider",
        "value": {
            "messages": [{"role": "user", "content": "Summarize HTTP/2 in two sentences."}],
            "temperature": 0.2,
        },
    },
    "json_mode": {
        "summary": "JSON mode",
        "value": {
            "model": "openai",
            "messages": [{"role": "user", "content": "Return a JSON object with a greeting."}],
            "jsonMode": True,
        },
    },
    "streaming": {
        "summary": "Streaming",
        "value": {
            "messages": [{"role": "user", "content": "Count to five."}],
            "stream": True,
        },
    },
}


def _status_for(error: ErrorResponse) -> int:
    status_code = error.error.status_code
    if status_code and status_code >= 400:
        return status_code
    return _STATUS_BY_ERROR_TYPE.get(error.error.type, 502)


def _error_json(error: ErrorResponse, status_code: int | None = None) -> JSONResponse:
    return JSONResponse(
        status_code=status_code or _status_for(error),
        content=error.model_dump(exclude_none=True),
    )


def _stream_response(envelope: StreamingEnvelope) -> StreamingResponse:
    media_type = "text/event-stream" if envelope.is_sse else "application/octet-stream"
    return StreamingResponse(
        envelope.response_stream,
        media_type=media_type,
        headers={
            "Cache-Control": "no-cache",
            "x-provider": envelope.provider_name,
            "x-completion-id": envelope.id,
        },
        background=BackgroundTask(envelope.aclose),
    )


def _render(result: Any) -> Response:
    if isinstance(result, ErrorResponse):
        return _error_json(result)
    if isinstance(result, StreamingEnvelope):
        return _stream_response(result)
    if isinstance(result, BaseModel):
        return JSONResponse(result.model_dump())
    return JSONResponse(result)


@router.post(
    "/chat/completions",
    openapi_extra={
        "requestBody": {
            "content": {
                "application/json": {
                    "examples": CHAT_COMPLETION_EXAMPLES,
                }
            }
        }
    },
)
async def create_chat_completion(
    payload: ChatCompletionRequest,
    provider_name: Annotated[
        Optional[str],
        Header(
            alias="x-provider-id",
            description="Route to a specific configured provider",
        ),
    ] = None,
) -> Response:
    try:
        client = registry.get_client(provider_name)
    except ConfigurationError as exc:
        return _error_json(create_error_response(exc, exc.provider_name), status_code=404)

    try:
        result = await client(payload.messages, payload.options())
    except GatewayError as exc:
        # Only a streaming call that already reached the upstream ends up here;
        # nothing has been sent to our caller yet.
        logger.warning(
            "Streaming pre-flight failed",
            extra={
                "event": "stream_preflight_failed",
                "provider": client.provider_name,
                "error_message": exc.message,
            },
        )
        return _error_json(create_error_response(exc, client.provider_name))

    return _render(result)


@router.get("/models")
def list_models() -> dict:
    data = []
    for provider in registry.providers():
        for model_key in provider.model_mapping:
            data.append({"id": model_key, "object": "model", "owned_by": provider.name})
    return {"object": "list", "data": data}
