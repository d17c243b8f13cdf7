from __future__ import annotations

from contextlib import contextmanager

import pytest
from sqlalchemy import create_engine, select
from sqlalchemy.orm import sessionmaker

from chat_gateway.storage import credentials
from chat_gateway.storage.database import Base
from chat_gateway.storage.models import ProviderCredential


@pytest.fixture(autouse=True)
def in_memory_db(monkeypatch):
    engine = create_engine("sqlite:///:memory:", future=True)
    TestingSession = sessionmaker(
        bind=engine,
        autoflush=False,
        autocommit=False,
        expire_on_commit=False,
        future=True,
    )
    Base.metadata.create_all(engine)

    @contextmanager
    def session_scope():
        session = TestingSession()
        try:
            yield session
            session.commit()
        except Exception:  # pragma: no cover - defensive
            session.rollback()
            raise
        finally:
            session.close()

    monkeypatch.setattr(credentials, "session_scope", session_scope)

    yield

    engine.dispose()


def _fetch_credentials(provider_name: str) -> ProviderCredential | None:
    with credentials.session_scope() as session:  # type: ignore[attr-defined]
        stmt = select(ProviderCredential).where(ProviderCredential.provider_name == provider_name)
        return session.scalar(stmt)


def test_upsert_and_get_api_key():
    assert credentials.get_api_key("Example") is None

    credentials.upsert_api_key("Example", "secret")
    assert credentials.get_api_key("Example") == "secret"

    credentials.upsert_api_key("Example", "rotated")
    assert credentials.get_api_key("Example") == "rotated"
    assert len(credentials.list_credentials()) == 1


def test_delete_api_key_removes_record():
    credentials.upsert_api_key("Example", "secret")

    assert credentials.delete_api_key("Example") is True
    assert _fetch_credentials("Example") is None
    assert credentials.delete_api_key("Example") is False


def test_resolve_api_key_prefers_store_over_environment(monkeypatch):
    monkeypatch.setenv("EXAMPLE_API_KEY", "from-env")

    assert credentials.resolve_api_key("Example", "EXAMPLE_API_KEY") == "from-env"

    credentials.upsert_api_key("Example", "from-store")
    assert credentials.resolve_api_key("Example", "EXAMPLE_API_KEY") == "from-store"


def test_resolve_api_key_treats_empty_environment_as_missing(monkeypatch):
    monkeypatch.setenv("EXAMPLE_API_KEY", "")

    assert credentials.resolve_api_key("Example", "EXAMPLE_API_KEY") is None
    assert credentials.resolve_api_key("Example") is None
