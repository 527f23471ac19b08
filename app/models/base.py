"""Shared columns for the billing tables"""

import uuid
from sqlalchemy import Column, DateTime, Boolean, Uuid

from app.database import Base
from app.utils.time import get_utc_now


class BaseModel(Base):
    """UUID primary key plus naive-UTC created/updated timestamps."""
    __abstract__ = True

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    created_at = Column(DateTime, default=get_utc_now, nullable=False)
    # Bulk UPDATEs in the invoice store set this explicitly
    updated_at = Column(DateTime, default=get_utc_now, onupdate=get_utc_now, nullable=False)


class StatusMixin:
    """Soft on/off switch; billing rows are deactivated, never deleted."""
    is_active = Column(Boolean, default=True, nullable=False, index=True)
