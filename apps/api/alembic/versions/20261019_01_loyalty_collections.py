"""Loyalty collections.

Revision ID: 20261019_01
Revises:
Create Date: 2026-10-19
"""

from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = "20261019_01"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

_UNCLAIMED_SQLITE = sa.text("is_reward_claimed = 0")
_UNCLAIMED_POSTGRES = sa.text("NOT is_reward_claimed")


def _card_refs() -> list[sa.Column]:
    return [
        sa.Column("customer_card_id", sa.String(length=64), nullable=False),
        sa.Column("customer_id", sa.String(length=64), nullable=False),
        sa.Column("business_id", sa.String(length=64), nullable=False),
        sa.Column("loyalty_card_id", sa.String(length=64), nullable=False),
    ]


def _index_refs(table: str) -> None:
    for column in ("customer_card_id", "customer_id", "business_id", "loyalty_card_id"):
        op.create_index(f"ix_{table}_{column}", table, [column])


def upgrade() -> None:
    op.create_table(
        "users",
        sa.Column("id", sa.String(length=64), primary_key=True),
        sa.Column("email", sa.String(), nullable=False),
        sa.Column("display_name", sa.String(), nullable=False, server_default=""),
        sa.Column("user_type", sa.String(length=16), nullable=False, server_default="customer"),
        sa.Column("profile_image", sa.String(), nullable=True),
        sa.Column("push_token", sa.String(length=128), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
    )
    op.create_index("ix_users_email", "users", ["email"], unique=True)

    op.create_table(
        "businesses",
        sa.Column("id", sa.String(length=64), primary_key=True),
        sa.Column("name", sa.String(), nullable=False),
        sa.Column("description", sa.Text(), nullable=False, server_default=""),
        sa.Column("owner_id", sa.String(length=64), nullable=False),
        sa.Column("logo_url", sa.String(), nullable=True),
        sa.Column("address", sa.String(), nullable=True),
        sa.Column("phone", sa.String(length=32), nullable=True),
        sa.Column("city", sa.String(), nullable=True),
        sa.Column("instagram", sa.String(), nullable=True),
        sa.Column("facebook", sa.String(), nullable=True),
        sa.Column("tiktok", sa.String(), nullable=True),
        sa.Column("categories", sa.JSON(), nullable=False),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
    )
    op.create_index("ix_businesses_name", "businesses", ["name"])
    op.create_index("ix_businesses_owner_id", "businesses", ["owner_id"])

    op.create_table(
        "loyalty_cards",
        sa.Column("id", sa.String(length=64), primary_key=True),
        sa.Column("business_id", sa.String(length=64), nullable=False),
        sa.Column("total_slots", sa.Integer(), nullable=False),
        sa.Column("reward_description", sa.Text(), nullable=False),
        sa.Column("stamp_description", sa.Text(), nullable=True),
        sa.Column("card_color", sa.String(length=16), nullable=True),
        sa.Column("stamp_shape", sa.String(length=16), nullable=True),
        sa.Column("background_image", sa.String(), nullable=True),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("deactivated_at", sa.DateTime(timezone=True), nullable=True),
        sa.CheckConstraint(
            "total_slots >= 3 AND total_slots <= 20",
            name="ck_loyalty_cards_total_slots_range",
        ),
    )
    op.create_index("ix_loyalty_cards_business_id", "loyalty_cards", ["business_id"])

    op.create_table(
        "customer_cards",
        sa.Column("id", sa.String(length=64), primary_key=True),
        sa.Column("customer_id", sa.String(length=64), nullable=False),
        sa.Column("loyalty_card_id", sa.String(length=64), nullable=False),
        sa.Column("business_id", sa.String(length=64), nullable=False),
        sa.Column("current_stamps", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("is_reward_claimed", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("reward_claimed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("card_code", sa.String(length=8), nullable=False),
        sa.Column("customer_name", sa.String(), nullable=False, server_default=""),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("last_stamp_date", sa.DateTime(timezone=True), nullable=True),
        sa.CheckConstraint("current_stamps >= 0", name="ck_customer_cards_stamps_non_negative"),
    )
    op.create_index("ix_customer_cards_customer_id", "customer_cards", ["customer_id"])
    op.create_index("ix_customer_cards_loyalty_card_id", "customer_cards", ["loyalty_card_id"])
    op.create_index("ix_customer_cards_business_id", "customer_cards", ["business_id"])
    op.create_index("ix_customer_cards_customer_created", "customer_cards", ["customer_id", "created_at"])
    op.create_index(
        "uq_customer_cards_active_membership",
        "customer_cards",
        ["customer_id", "loyalty_card_id"],
        unique=True,
        sqlite_where=_UNCLAIMED_SQLITE,
        postgresql_where=_UNCLAIMED_POSTGRES,
    )
    op.create_index(
        "uq_customer_cards_active_code",
        "customer_cards",
        ["business_id", "card_code"],
        unique=True,
        sqlite_where=_UNCLAIMED_SQLITE,
        postgresql_where=_UNCLAIMED_POSTGRES,
    )

    op.create_table(
        "stamps",
        sa.Column("id", sa.String(length=64), primary_key=True),
        *_card_refs(),
        sa.Column("timestamp", sa.DateTime(timezone=True), nullable=False),
    )
    _index_refs("stamps")

    op.create_table(
        "stamp_activity",
        sa.Column("id", sa.String(length=64), primary_key=True),
        *_card_refs(),
        sa.Column("timestamp", sa.DateTime(timezone=True), nullable=False),
        sa.Column("customer_name", sa.String(), nullable=False, server_default=""),
        sa.Column("business_name", sa.String(), nullable=False, server_default=""),
        sa.Column("stamp_count", sa.Integer(), nullable=False),
        sa.Column("note", sa.Text(), nullable=True),
    )
    _index_refs("stamp_activity")

    op.create_table(
        "rewards",
        sa.Column("id", sa.String(length=64), primary_key=True),
        *_card_refs(),
        sa.Column("claimed_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("redeemed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("is_redeemed", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("note", sa.Text(), nullable=True),
    )
    op.create_index("ix_rewards_customer_card_id", "rewards", ["customer_card_id"], unique=True)
    for column in ("customer_id", "business_id", "loyalty_card_id"):
        op.create_index(f"ix_rewards_{column}", "rewards", [column])


def downgrade() -> None:
    for table in ("rewards", "stamp_activity", "stamps", "customer_cards", "loyalty_cards", "businesses", "users"):
        op.drop_table(table)
