"""Admin endpoints for provider credentials and call logs."""

from __future__ import annotations

import logging
from typing import Annotated

from fastapi import APIRouter, Body, HTTPException

from chat_gateway.core.config import ProviderSettings
from chat_gateway.core.exceptions import ConfigurationError
from chat_gateway.router.selector import registry
from chat_gateway.storage.credentials import delete_api_key, upsert_api_key
from chat_gateway.storage.provider_logs import list_provider_logs

logger = logging.getLogger("gateway.admin")

router = APIRouter(prefix="/admin")


def _provider_or_404(provider_name: str) -> ProviderSettings:
    try:
        return registry.lookup(provider_name)
    except ConfigurationError as exc:
        raise HTTPException(status_code=404, detail="Provider not configured") from exc


@router.get("/providers")
def list_providers() -> dict:
    data = [
        {
            "name": state.name,
            "models": state.models,
            "has_api_key": state.has_api_key,
            "default": state.name == registry.default_provider().name,
        }
        for state in registry.get_states()
    ]
    return {"providers": data}


@router.put("/providers/{provider_name}/credentials")
def set_provider_key(
    provider_name: str,
    api_key: Annotated[str | None, Body(embed=True)] = None,
) -> dict:
    if not api_key:
        raise HTTPException(status_code=400, detail="Missing api_key")
    provider = _provider_or_404(provider_name)
    upsert_api_key(provider.name, api_key)
    logger.info(
        "API key saved via admin",
        extra={"event": "provider_credentials_updated", "provider": provider.name},
    )
    return {"status": "ok"}


@router.delete("/providers/{provider_name}/credentials")
def remove_provider_key(provider_name: str) -> dict:
    provider = _provider_or_404(provider_name)
    if not delete_api_key(provider.name):
        raise HTTPException(status_code=404, detail="No stored API key")
    logger.info(
        "API key removed via admin",
        extra={"event": "provider_credentials_removed", "provider": provider.name},
    )
    return {"status": "ok"}


@router.get("/providers/{provider_name}/logs")
def provider_logs(provider_name: str, limit: int = 50) -> dict:
    provider = _provider_or_404(provider_name)
    limit_value = max(1, min(limit, 200))
    return {"provider": provider.name, "logs": list_provider_logs(provider.name, limit=limit_value)}
