"""Reward claim workflow for completed memberships."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum

from loguru import logger

from casero_api.core.clock import Clock, utcnow
from casero_api.db.store import ConflictError, DocumentStore, where
from casero_api.models import Business, CustomerCard, LoyaltyCard, Reward, StampActivity
from casero_api.observability.memberships import get_membership_store
from casero_api.schemas.loyalty import CustomerCardRecord, RewardRecord, StampActivityRecord
from casero_api.services.notifications import PushNotifier
from casero_api.services.notifications.templates import render_reward_redeemed
from casero_api.services.refresh_flags import RefreshFlags

from .codes import find_code_holder
from .errors import IneligibleClaimError, NotFoundError

REWARD_REDEEMED_NOTE = "Reward redeemed"


class CardState(str, Enum):
    ACTIVE = "active"
    ELIGIBLE = "eligible"
    CLAIMED = "claimed"


def state_of(card: CustomerCard | CustomerCardRecord, total_slots: int) -> CardState:
    if card.is_reward_claimed:
        return CardState.CLAIMED
    if card.current_stamps >= total_slots:
        return CardState.ELIGIBLE
    return CardState.ACTIVE


@dataclass(slots=True)
class RedemptionReceipt:
    """Reward plus the activity row written when a business redeems by code."""

    reward: RewardRecord
    activity: StampActivityRecord
    customer_card_id: str


@dataclass(slots=True)
class _ClaimOutcome:
    reward: Reward
    activity: StampActivity | None
    card: CustomerCard
    business_name: str


class RewardClaimWorkflow:
    """Moves memberships from Eligible to Claimed exactly once.

    The flip is a conditional update guarded on the unclaimed flag and the
    stamp count, and the Reward row is unique per customer card, so two racing
    claims produce one Reward and one ``IneligibleClaimError``.
    """

    _ALLOWED_TRANSITIONS: dict[CardState, set[CardState]] = {
        CardState.ACTIVE: {CardState.ELIGIBLE},
        CardState.ELIGIBLE: {CardState.CLAIMED},
        CardState.CLAIMED: set(),
    }

    def __init__(
        self,
        store: DocumentStore,
        *,
        notifier: PushNotifier | None = None,
        refresh_flags: RefreshFlags | None = None,
        clock: Clock = utcnow,
    ) -> None:
        self._store = store
        self._notifier = notifier or PushNotifier(store)
        self._refresh_flags = refresh_flags
        self._clock = clock

    @classmethod
    def can_transition(cls, current: CardState, target: CardState) -> bool:
        return target in cls._ALLOWED_TRANSITIONS.get(current, set())

    async def claim(self, customer_card_id: str, *, note: str | None = None) -> RewardRecord:
        """Claim the reward of an Eligible card.

        Raises:
            NotFoundError: the card or its program does not exist.
            IneligibleClaimError: the card is still collecting stamps or was already claimed.
        """
        outcome = await self._claim(customer_card_id, note=note, record_activity=False)
        return RewardRecord.model_validate(outcome.reward)

    async def claim_by_code(self, card_code: str, business_id: str) -> RedemptionReceipt:
        """Redeem the unclaimed card holding ``card_code`` at ``business_id``.

        Eligibility is checked again against the stored card, so a stale client
        view cannot redeem an incomplete card.
        """
        card = await find_code_holder(self._store, business_id, card_code)
        if card is None:
            raise NotFoundError(
                "customer_cards",
                card_code,
                f"no active card with this code at business '{business_id}'",
            )

        outcome = await self._claim(card.id, note=REWARD_REDEEMED_NOTE, record_activity=True)
        self._notifier.schedule(outcome.card.customer_id, render_reward_redeemed(business_name=outcome.business_name))
        return RedemptionReceipt(
            reward=RewardRecord.model_validate(outcome.reward),
            activity=StampActivityRecord.model_validate(outcome.activity),
            customer_card_id=outcome.card.id,
        )

    async def state(self, customer_card_id: str) -> CardState:
        card = await self._store.get(CustomerCard, customer_card_id)
        if card is None:
            raise NotFoundError("customer_cards", customer_card_id)
        program = await self._store.get(LoyaltyCard, card.loyalty_card_id)
        if program is None:
            raise NotFoundError("loyalty_cards", card.loyalty_card_id)
        return state_of(card, program.total_slots)

    async def list_for_customer(self, customer_id: str) -> list[RewardRecord]:
        rewards = await self._store.query(Reward, where("customer_id", "==", customer_id))
        return sorted(
            (RewardRecord.model_validate(reward) for reward in rewards),
            key=lambda record: record.claimed_at,
            reverse=True,
        )

    async def _claim(self, customer_card_id: str, *, note: str | None, record_activity: bool) -> _ClaimOutcome:
        metrics = get_membership_store()
        card = await self._store.get(CustomerCard, customer_card_id)
        if card is None:
            raise NotFoundError("customer_cards", customer_card_id)
        program = await self._store.get(LoyaltyCard, card.loyalty_card_id)
        if program is None:
            raise NotFoundError("loyalty_cards", card.loyalty_card_id)

        state = state_of(card, program.total_slots)
        if not self.can_transition(state, CardState.CLAIMED):
            metrics.record_claim(f"rejected_{state.value}")
            raise IneligibleClaimError(customer_card_id, f"card is {state.value}")

        business_name = ""
        if record_activity:
            business = await self._store.get(Business, card.business_id)
            business_name = business.name if business is not None else ""

        claimed_at = self._clock()
        reward: Reward | None = None
        activity: StampActivity | None = None
        try:
            async with self._store.transaction() as tx:
                flipped = await tx.update(
                    CustomerCard,
                    customer_card_id,
                    {"is_reward_claimed": True, "reward_claimed_at": claimed_at},
                    when=[
                        where("is_reward_claimed", "==", False),
                        where("current_stamps", ">=", program.total_slots),
                    ],
                )
                if flipped:
                    reward = await tx.add(
                        Reward,
                        customer_card_id=customer_card_id,
                        customer_id=card.customer_id,
                        business_id=card.business_id,
                        loyalty_card_id=card.loyalty_card_id,
                        claimed_at=claimed_at,
                        redeemed_at=claimed_at,
                        is_redeemed=True,
                        note=note,
                    )
                if flipped and record_activity:
                    activity = await tx.add(
                        StampActivity,
                        customer_card_id=customer_card_id,
                        customer_id=card.customer_id,
                        business_id=card.business_id,
                        loyalty_card_id=card.loyalty_card_id,
                        timestamp=claimed_at,
                        customer_name=card.customer_name or "",
                        business_name=business_name,
                        stamp_count=program.total_slots,
                        note=REWARD_REDEEMED_NOTE,
                    )
        except ConflictError as exc:
            metrics.record_claim("rejected_duplicate")
            raise IneligibleClaimError(customer_card_id, "reward already recorded") from exc

        if reward is None:
            metrics.record_claim("rejected_race")
            raise IneligibleClaimError(customer_card_id, "card changed while claiming")

        metrics.record_claim("claimed")
        logger.info(
            "Reward claimed",
            customer_card_id=customer_card_id,
            customer_id=card.customer_id,
            loyalty_card_id=card.loyalty_card_id,
            reward_id=reward.id,
        )
        if self._refresh_flags is not None:
            self._refresh_flags.mark_all()
        card.is_reward_claimed = True
        card.reward_claimed_at = claimed_at
        return _ClaimOutcome(reward=reward, activity=activity, card=card, business_name=business_name)


__all__ = [
    "CardState",
    "REWARD_REDEEMED_NOTE",
    "RedemptionReceipt",
    "RewardClaimWorkflow",
    "state_of",
]
