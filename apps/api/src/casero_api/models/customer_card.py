"""Customer memberships in a loyalty program."""

from sqlalchemy import Boolean, CheckConstraint, Column, DateTime, Index, Integer, String, text

from casero_api.core.clock import utcnow
from casero_api.db.base import Base, new_document_id


class CustomerCard(Base):
    __tablename__ = "customer_cards"
    __table_args__ = (
        CheckConstraint("current_stamps >= 0", name="ck_customer_cards_stamps_non_negative"),
        # One unclaimed membership per customer and program.
        Index(
            "uq_customer_cards_active_membership",
            "customer_id",
            "loyalty_card_id",
            unique=True,
            sqlite_where=text("is_reward_claimed = 0"),
            postgresql_where=text("NOT is_reward_claimed"),
        ),
        # Staff look cards up by code alone, so unclaimed codes are unique per business.
        Index(
            "uq_customer_cards_active_code",
            "business_id",
            "card_code",
            unique=True,
            sqlite_where=text("is_reward_claimed = 0"),
            postgresql_where=text("NOT is_reward_claimed"),
        ),
        Index("ix_customer_cards_customer_created", "customer_id", "created_at"),
    )

    id = Column(String(64), primary_key=True, default=new_document_id)
    customer_id = Column(String(64), nullable=False, index=True)
    loyalty_card_id = Column(String(64), nullable=False, index=True)
    business_id = Column(String(64), nullable=False, index=True)
    current_stamps = Column(Integer, nullable=False, default=0)
    is_reward_claimed = Column(Boolean, nullable=False, default=False)
    reward_claimed_at = Column(DateTime(timezone=True), nullable=True)
    card_code = Column(String(8), nullable=False)
    customer_name = Column(String, nullable=False, default="")
    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)
    last_stamp_date = Column(DateTime(timezone=True), nullable=True)
