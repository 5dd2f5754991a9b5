"""Stamp events and the denormalized activity feed."""

from sqlalchemy import Column, DateTime, Integer, String, Text

from casero_api.core.clock import utcnow
from casero_api.db.base import Base, new_document_id


class Stamp(Base):
    """Immutable record of one stamp granted to a membership."""

    __tablename__ = "stamps"

    id = Column(String(64), primary_key=True, default=new_document_id)
    customer_card_id = Column(String(64), nullable=False, index=True)
    customer_id = Column(String(64), nullable=False, index=True)
    business_id = Column(String(64), nullable=False, index=True)
    loyalty_card_id = Column(String(64), nullable=False, index=True)
    timestamp = Column(DateTime(timezone=True), nullable=False, default=utcnow)


class StampActivity(Base):
    """Feed row written alongside stamps and reward claims."""

    __tablename__ = "stamp_activity"

    id = Column(String(64), primary_key=True, default=new_document_id)
    customer_card_id = Column(String(64), nullable=False, index=True)
    customer_id = Column(String(64), nullable=False, index=True)
    business_id = Column(String(64), nullable=False, index=True)
    loyalty_card_id = Column(String(64), nullable=False, index=True)
    timestamp = Column(DateTime(timezone=True), nullable=False, default=utcnow)
    customer_name = Column(String, nullable=False, default="")
    business_name = Column(String, nullable=False, default="")
    stamp_count = Column(Integer, nullable=False)
    note = Column(Text, nullable=True)
