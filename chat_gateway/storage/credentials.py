"""Storage helpers for provider credentials."""

from __future__ import annotations

import logging
import os
from typing import cast

from sqlalchemy import delete, select, update
from sqlalchemy.exc import SQLAlchemyError

from .database import session_scope
from .models import ProviderCredential

logger = logging.getLogger("gateway.credentials")


def upsert_api_key(provider_name: str, api_key: str) -> None:
    """Insert or update the API key for a provider."""
    with session_scope() as session:
        existing = session.scalar(
            select(ProviderCredential).where(ProviderCredential.provider_name == provider_name)
        )
        if existing:
            session.execute(
                update(ProviderCredential)
                .where(ProviderCredential.id == existing.id)
                .values(api_key=api_key)
            )
        else:
            session.add(ProviderCredential(provider_name=provider_name, api_key=api_key))


def get_api_key(provider_name: str) -> str | None:
    """Return the stored API key for the given provider, if any."""
    with session_scope() as session:
        result = session.scalar(
            select(ProviderCredential.api_key).where(
                ProviderCredential.provider_name == provider_name
            )
        )
        return cast(str | None, result)


def delete_api_key(provider_name: str) -> bool:
    """Remove a stored API key. Returns True when a row was deleted."""
    with session_scope() as session:
        result = session.execute(
            delete(ProviderCredential).where(ProviderCredential.provider_name == provider_name)
        )
        return bool(result.rowcount)


def list_credentials() -> list[ProviderCredential]:
    with session_scope() as session:
        return list(session.scalars(select(ProviderCredential)).all())


def resolve_api_key(provider_name: str, env_var: str | None = None) -> str | None:
    """Return the stored key for ``provider_name``, else the value of ``env_var``.

    Read on every call so that rotated or revoked keys take effect immediately.
    """
    try:
        stored = get_api_key(provider_name)
    except SQLAlchemyError:
        logger.warning(
            "Credential store unavailable",
            extra={"event": "credential_lookup_failed", "provider": provider_name},
            exc_info=True,
        )
        stored = None
    if stored:
        return stored
    if env_var:
        return os.getenv(env_var) or None
    return None


__all__ = [
    "delete_api_key",
    "get_api_key",
    "list_credentials",
    "resolve_api_key",
    "upsert_api_key",
]
