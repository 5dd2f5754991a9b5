"""Loyalty programs ("loyalty cards") defined by a business."""

from enum import Enum

from sqlalchemy import Boolean, CheckConstraint, Column, DateTime, Integer, String, Text

from casero_api.core.clock import utcnow
from casero_api.db.base import Base, new_document_id

MIN_TOTAL_SLOTS = 3
MAX_TOTAL_SLOTS = 20


class StampShape(str, Enum):
    CIRCLE = "circle"
    SQUARE = "square"
    STAR = "star"
    HEART = "heart"


class LoyaltyCard(Base):
    __tablename__ = "loyalty_cards"
    __table_args__ = (
        CheckConstraint(
            f"total_slots >= {MIN_TOTAL_SLOTS} AND total_slots <= {MAX_TOTAL_SLOTS}",
            name="ck_loyalty_cards_total_slots_range",
        ),
    )

    id = Column(String(64), primary_key=True, default=new_document_id)
    business_id = Column(String(64), nullable=False, index=True)
    total_slots = Column(Integer, nullable=False)
    reward_description = Column(Text, nullable=False)
    stamp_description = Column(Text, nullable=True)
    card_color = Column(String(16), nullable=True)
    stamp_shape = Column(String(16), nullable=True, default=StampShape.CIRCLE.value)
    background_image = Column(String, nullable=True)
    is_active = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)
    updated_at = Column(DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow)
    deactivated_at = Column(DateTime(timezone=True), nullable=True)
