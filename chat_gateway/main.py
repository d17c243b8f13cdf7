"""FastAPI application entry point."""

from __future__ import annotations

import logging

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from chat_gateway.api import admin, openai
from chat_gateway.logging import configure_logging, get_request_id
from chat_gateway.middleware.request_context import RequestContextMiddleware
from chat_gateway.router.selector import registry
from chat_gateway.storage.database import init_db

configure_logging()

logger = logging.getLogger("gateway.app")

app = FastAPI(
    title="Chat Gateway",
    version="0.1.0",
    openapi_url="/api/openapi.json",
    docs_url="/api/docs",
    redoc_url=None,
)
app.include_router(openai.router)
app.include_router(admin.router)
app.add_middleware(RequestContextMiddleware)


@app.on_event("startup")
def on_startup() -> None:
    init_db()
    # Fail fast on malformed provider configuration or unknown hook names.
    for state in registry.get_states():
        logger.info(
            "Provider ready",
            extra={"event": "provider_ready", "provider": state.name},
        )


@app.get("/health")
def health() -> dict:
    return {"status": "ok"}


@app.exception_handler(Exception)
async def unexpected_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.exception(
        "Unhandled error",
        extra={
            "event": "request_error",
            "path": request.url.path,
            "request_id": get_request_id(),
        },
    )
    return JSONResponse(
        status_code=500,
        content={
            "error": {
                "message": "Internal server error",
                "type": "internal_error",
            }
        },
    )
