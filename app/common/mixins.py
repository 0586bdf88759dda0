"""
Common mixins for models
"""
from sqlalchemy import Column, DateTime
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.sql import func
from uuid import uuid4


class UUIDPrimaryKeyMixin:
    """Primary key UUID generada en la aplicación"""

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid4)


class TimestampMixin:
    """Mixin for models that need timestamp tracking"""

    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)
