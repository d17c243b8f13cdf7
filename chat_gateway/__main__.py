"""CLI entry point for running the gateway with the default dev settings."""

from __future__ import annotations

import os

import uvicorn


def main() -> None:
    """Run the FastAPI application with host/port overrides from the environment."""
    host = os.getenv("GATEWAY_HOST", os.getenv("HOST", "127.0.0.1"))
    port = int(os.getenv("GATEWAY_PORT", os.getenv("PORT", "16385")))
    reload_enabled = os.getenv("GATEWAY_RELOAD", os.getenv("RELOAD", "false")).lower() == "true"

    uvicorn.run("chat_gateway.main:app", host=host, port=port, reload=reload_enabled)


if __name__ == "__main__":  # pragma: no cover - convenience entry point
    main()
