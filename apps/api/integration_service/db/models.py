import uuid

from sqlalchemy import JSON, Column, DateTime, Index, Integer, String, func

from .session import Base


def uuid4_str():
    return str(uuid.uuid4())


class IdempotencyKey(Base):
    """Stored response for a client-supplied Idempotency-Key, replayed on retry."""
    __tablename__ = "idempotency_keys"

    id = Column(String(36), primary_key=True, default=uuid4_str)
    key = Column(String(255), nullable=False, index=True)
    endpoint = Column(String(100), nullable=False)
    response_status = Column(Integer, nullable=True)
    response_body = Column(JSON, nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    __table_args__ = (Index("ix_idempotency_keys_key_endpoint", "key", "endpoint", unique=True),)


class WebhookDelivery(Base):
    """One row per processed VC webhook delivery (X-Gitea-Delivery)."""
    __tablename__ = "webhook_deliveries"

    id = Column(String(36), primary_key=True, default=uuid4_str)
    delivery_id = Column(String(255), nullable=False, unique=True)
    event = Column(String(50), nullable=True)
    action = Column(String(50), nullable=True)
    pull_request_number = Column(Integer, nullable=True)
    outcome = Column(String(50), nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
