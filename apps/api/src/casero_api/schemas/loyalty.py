from datetime import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from casero_api.core.clock import ensure_utc


class _Record(BaseModel):
    model_config = ConfigDict(populate_by_name=True, from_attributes=True)

    @field_validator("*", mode="after")
    @classmethod
    def _normalize_datetimes(cls, value):
        if isinstance(value, datetime):
            return ensure_utc(value)
        return value


class BusinessRecord(_Record):
    id: str
    name: str
    description: str = ""
    owner_id: str = Field(..., alias="ownerId")
    logo_url: Optional[str] = Field(None, alias="logoUrl")
    address: Optional[str] = None
    phone: Optional[str] = None
    city: Optional[str] = None
    instagram: Optional[str] = None
    facebook: Optional[str] = None
    tiktok: Optional[str] = None
    categories: list[str] = Field(default_factory=list)
    is_active: bool = Field(True, alias="isActive")
    created_at: datetime = Field(..., alias="createdAt")


class LoyaltyCardRecord(_Record):
    """Program snapshot; business name and logo are copied in at read time."""

    id: str
    business_id: str = Field(..., alias="businessId")
    business_name: str = Field("", alias="businessName")
    business_logo: Optional[str] = Field(None, alias="businessLogo")
    total_slots: int = Field(..., alias="totalSlots")
    reward_description: str = Field(..., alias="rewardDescription")
    stamp_description: Optional[str] = Field(None, alias="stampDescription")
    card_color: Optional[str] = Field(None, alias="cardColor")
    stamp_shape: Optional[str] = Field(None, alias="stampShape")
    background_image: Optional[str] = Field(None, alias="backgroundImage")
    is_active: bool = Field(True, alias="isActive")
    created_at: datetime = Field(..., alias="createdAt")


class CustomerCardRecord(_Record):
    id: str
    customer_id: str = Field(..., alias="customerId")
    loyalty_card_id: str = Field(..., alias="loyaltyCardId")
    business_id: str = Field(..., alias="businessId")
    current_stamps: int = Field(0, alias="currentStamps")
    is_reward_claimed: bool = Field(False, alias="isRewardClaimed")
    reward_claimed_at: Optional[datetime] = Field(None, alias="rewardClaimedAt")
    card_code: str = Field(..., alias="cardCode")
    customer_name: str = Field("", alias="customerName")
    created_at: datetime = Field(..., alias="createdAt")
    last_stamp_date: Optional[datetime] = Field(None, alias="lastStampDate")
    # Populated only by MembershipHydrator, never persisted.
    loyalty_card: Optional[LoyaltyCardRecord] = Field(None, alias="loyaltyCard")

    @property
    def is_hydrated(self) -> bool:
        return self.loyalty_card is not None


class StampRecord(_Record):
    id: str
    customer_card_id: str = Field(..., alias="customerCardId")
    customer_id: str = Field(..., alias="customerId")
    business_id: str = Field(..., alias="businessId")
    loyalty_card_id: str = Field(..., alias="loyaltyCardId")
    timestamp: datetime


class StampActivityRecord(_Record):
    id: str
    customer_card_id: str = Field(..., alias="customerCardId")
    customer_id: str = Field(..., alias="customerId")
    business_id: str = Field(..., alias="businessId")
    loyalty_card_id: str = Field(..., alias="loyaltyCardId")
    timestamp: datetime
    customer_name: str = Field("", alias="customerName")
    business_name: str = Field("", alias="businessName")
    stamp_count: int = Field(..., alias="stampCount")
    note: Optional[str] = None


class RewardRecord(_Record):
    id: str
    customer_card_id: str = Field(..., alias="customerCardId")
    customer_id: str = Field(..., alias="customerId")
    business_id: str = Field(..., alias="businessId")
    loyalty_card_id: str = Field(..., alias="loyaltyCardId")
    claimed_at: datetime = Field(..., alias="claimedAt")
    redeemed_at: Optional[datetime] = Field(None, alias="redeemedAt")
    is_redeemed: bool = Field(False, alias="isRedeemed")
    note: Optional[str] = None


class BusinessWithCards(BusinessRecord):
    """Discovery entry: a business, its active programs and the viewer's memberships."""

    loyalty_cards: list[LoyaltyCardRecord] = Field(default_factory=list, alias="loyaltyCards")
    customer_cards: list[CustomerCardRecord] = Field(default_factory=list, alias="customerCards")
    claimed_rewards_count: dict[str, int] = Field(default_factory=dict, alias="claimedRewardsCount")


class DiscoveryPage(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    businesses: list[BusinessWithCards] = Field(default_factory=list)
    has_more_data: bool = Field(True, alias="hasMoreData")
    next_cursor: Optional[str] = Field(None, alias="nextCursor")


__all__ = [
    "BusinessRecord",
    "BusinessWithCards",
    "CustomerCardRecord",
    "DiscoveryPage",
    "LoyaltyCardRecord",
    "RewardRecord",
    "StampActivityRecord",
    "StampRecord",
]
