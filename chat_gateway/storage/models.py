"""ORM models for provider credentials and provider call logs."""

from __future__ import annotations

from sqlalchemy import Column, DateTime, Float, Index, Integer, String, Text, UniqueConstraint, func

from .database import Base


class ProviderCredential(Base):
    __tablename__ = "provider_credentials"
    __table_args__ = (
        UniqueConstraint("provider_name", name="uq_provider_credentials_provider_name"),
    )

    id = Column(Integer, primary_key=True, autoincrement=True)
    provider_name = Column(String(100), nullable=False)
    api_key = Column(String(512), nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())


class ProviderLog(Base):
    __tablename__ = "provider_logs"

    id = Column(Integer, primary_key=True, autoincrement=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    provider_name = Column(String(100), nullable=False)
    request_id = Column(String(64))
    status_code = Column(Integer)
    elapsed_ms = Column(Float)
    request_body = Column(Text)
    response_body = Column(Text)

    __table_args__ = (
        Index("ix_provider_logs_provider_created", "provider_name", "created_at"),
    )
