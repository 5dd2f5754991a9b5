"""Businesses offering loyalty programs."""

from sqlalchemy import JSON, Boolean, Column, DateTime, String, Text

from casero_api.core.clock import utcnow
from casero_api.db.base import Base, new_document_id

MAX_BUSINESS_CATEGORIES = 2


class Business(Base):
    __tablename__ = "businesses"

    id = Column(String(64), primary_key=True, default=new_document_id)
    name = Column(String, nullable=False, index=True)
    description = Column(Text, nullable=False, default="")
    owner_id = Column(String(64), nullable=False, index=True)
    logo_url = Column(String, nullable=True)
    address = Column(String, nullable=True)
    phone = Column(String(32), nullable=True)
    city = Column(String, nullable=True)
    instagram = Column(String, nullable=True)
    facebook = Column(String, nullable=True)
    tiktok = Column(String, nullable=True)
    categories = Column(JSON, nullable=False, default=list)
    is_active = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)
    updated_at = Column(DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow)
