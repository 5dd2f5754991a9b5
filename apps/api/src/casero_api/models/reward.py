from sqlalchemy import Boolean, Column, DateTime, String, Text

from casero_api.core.clock import utcnow
from casero_api.db.base import Base, new_document_id


class Reward(Base):
    """Audit record written once when a membership is claimed."""

    __tablename__ = "rewards"

    id = Column(String(64), primary_key=True, default=new_document_id)
    customer_card_id = Column(String(64), nullable=False, unique=True, index=True)
    customer_id = Column(String(64), nullable=False, index=True)
    business_id = Column(String(64), nullable=False, index=True)
    loyalty_card_id = Column(String(64), nullable=False, index=True)
    claimed_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)
    redeemed_at = Column(DateTime(timezone=True), nullable=True)
    is_redeemed = Column(Boolean, nullable=False, default=False)
    note = Column(Text, nullable=True)
