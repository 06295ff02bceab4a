import uuid
from datetime import datetime, timezone
from sqlalchemy import Column, DateTime, Uuid
from src.database import Base


def utcnow() -> datetime:
    """Naive UTC timestamp, the representation stored in every table."""
    return datetime.now(timezone.utc).replace(tzinfo=None)

class UUIDMixin:
    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)

class TimestampMixin:
    created_at = Column(DateTime, default=utcnow, nullable=False)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow, nullable=False)

class AuditMixin(UUIDMixin, TimestampMixin):
    """Combines UUID and Timestamps for standard entities."""
    pass

class CreatedMixin(UUIDMixin):
    """UUID plus creation time, for append-only rows."""
    created_at = Column(DateTime, default=utcnow, nullable=False)
