"""Integration models — store credentials, operation log, alerts."""

from sqlalchemy import JSON, Boolean, Column, Index, Integer, String, Text

from ..database import UTCDateTime, utcnow
from .base import Base, new_id


class StoreIntegration(Base):
    """A store's connection to an external provider.

    api_key_encrypted is written by the credential layer; it arrives here
    base64-encoded and is decoded by sync_service.get_integration_credential.
    """

    __tablename__ = "store_integrations"
    id = Column(Integer, primary_key=True)
    store_id = Column(String(36), nullable=False)
    integration_type = Column(String(50), nullable=False)
    api_key_encrypted = Column(Text)
    configuration = Column(JSON, default=dict)
    is_active = Column(Boolean, default=True)
    created_at = Column(UTCDateTime, default=utcnow)
    updated_at = Column(UTCDateTime, default=utcnow, onupdate=utcnow)

    __table_args__ = (
        Index("ix_store_integration_type", "store_id", "integration_type", unique=True),
    )


class IntegrationLog(Base):
    """One row per integration operation outcome. Append-only."""

    __tablename__ = "integration_logs"
    id = Column(String(36), primary_key=True, default=new_id)
    store_id = Column(String(36), nullable=False)
    integration_type = Column(String(50), nullable=False)
    operation = Column(String(100), nullable=False)
    status = Column(String(20), nullable=False)
    request_data = Column(JSON, default=dict)
    response_data = Column(JSON, default=dict)
    execution_time_ms = Column(Integer)
    error_message = Column(Text)
    created_at = Column(UTCDateTime, default=utcnow, nullable=False)

    __table_args__ = (
        Index("ix_integration_logs_store_type", "store_id", "integration_type"),
        Index("ix_integration_logs_operation", "operation"),
        Index("ix_integration_logs_status", "status"),
        Index("ix_integration_logs_created_at", "created_at"),
    )


class IntegrationAlert(Base):
    """Alert emitted by the alert engine. Append-only, never deduplicated."""

    __tablename__ = "integration_alerts"
    id = Column(String(36), primary_key=True, default=new_id)
    store_id = Column(String(36), nullable=False)
    integration_type = Column(String(50), nullable=False)
    operation = Column(String(100), nullable=False)
    level = Column(String(20), nullable=False)
    type = Column(String(50), nullable=False)
    message = Column(Text, nullable=False)
    # "metadata" is reserved on declarative classes
    alert_metadata = Column("metadata", JSON, default=dict)
    created_at = Column(UTCDateTime, default=utcnow, nullable=False)

    __table_args__ = (
        Index("ix_integration_alerts_store_level", "store_id", "level"),
        Index("ix_integration_alerts_created_at", "created_at"),
    )
