"""Provider request/response log storage helpers."""

from __future__ import annotations

import json
import logging
from datetime import datetime, timezone
from typing import Any

from sqlalchemy import delete, select

from chat_gateway.logging import get_request_id

from .database import session_scope
from .models import ProviderLog

logger = logging.getLogger("gateway.provider_logs")


def _start_of_today() -> datetime:
    now = datetime.now(timezone.utc)
    return datetime(now.year, now.month, now.day, tzinfo=timezone.utc)


def _encode(payload: Any) -> str | None:
    if payload is None:
        return None
    try:
        return json.dumps(payload, ensure_ascii=True)
    except (TypeError, ValueError):
        logger.debug("Unable to encode payload for provider log", exc_info=True)
        return json.dumps(str(payload), ensure_ascii=True)


def _decode(serialized: str | None) -> Any:
    if not serialized:
        return None
    try:
        return json.loads(serialized)
    except json.JSONDecodeError:
        return serialized


def record_provider_log(
    provider_name: str,
    *,
    request_body: Any,
    response_body: Any,
    request_id: str | None = None,
    status_code: int | None = None,
    elapsed_ms: float | None = None,
) -> None:
    """Persist one upstream call, keeping only entries from the current day.

    ``request_id`` is the adapter's correlation id; when omitted the inbound
    HTTP request id bound to the logging context is used.
    """

    entry = ProviderLog(
        created_at=datetime.now(timezone.utc),
        provider_name=provider_name,
        request_id=request_id or get_request_id(),
        status_code=status_code,
        elapsed_ms=elapsed_ms,
        request_body=_encode(request_body),
        response_body=_encode(response_body),
    )

    try:
        with session_scope() as session:
            session.execute(delete(ProviderLog).where(ProviderLog.created_at < _start_of_today()))
            session.add(entry)
    except Exception:
        logger.exception(
            "Failed to persist provider log", extra={"provider": provider_name}
        )


def list_provider_logs(provider_name: str, limit: int = 100) -> list[dict[str, Any]]:
    """Return today's logs for a provider, newest first."""

    with session_scope() as session:
        stmt = (
            select(ProviderLog)
            .where(ProviderLog.provider_name == provider_name)
            .where(ProviderLog.created_at >= _start_of_today())
            .order_by(ProviderLog.created_at.desc(), ProviderLog.id.desc())
            .limit(limit)
        )
        rows = session.scalars(stmt).all()

    return [
        {
            "id": row.id,
            "created_at": row.created_at.isoformat() if row.created_at else None,
            "request_id": row.request_id,
            "status_code": row.status_code,
            "elapsed_ms": row.elapsed_ms,
            "request_body": _decode(row.request_body),
            "response_body": _decode(row.response_body),
        }
        for row in rows
    ]


__all__ = ["list_provider_logs", "record_provider_log"]
