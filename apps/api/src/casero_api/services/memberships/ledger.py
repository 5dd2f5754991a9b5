"""Stamp ledger: accrue stamps and project them into the activity feed."""

from __future__ import annotations

import asyncio
from dataclasses import dataclass

from loguru import logger

from casero_api.core.clock import Clock, latest, utcnow
from casero_api.core.settings import settings
from casero_api.db.store import DocumentStore, TransientStoreError, where
from casero_api.models import Business, CustomerCard, LoyaltyCard, Stamp, StampActivity
from casero_api.observability.memberships import get_membership_store
from casero_api.schemas.loyalty import CustomerCardRecord, StampActivityRecord, StampRecord
from casero_api.services.notifications import PushNotifier, stamp_message
from casero_api.services.refresh_flags import RefreshFlags

from .codes import find_code_holder
from .errors import NotFoundError, StampRejectedError
from .hydration import program_record

STAMP_ADDED_NOTE = "Stamp added"


@dataclass(slots=True)
class StampReceipt:
    """Result of one accepted stamp."""

    customer_card: CustomerCardRecord
    stamp: StampRecord
    activity: StampActivityRecord
    new_count: int
    total_slots: int

    @property
    def is_completed(self) -> bool:
        return self.new_count >= self.total_slots


class StampLedger:
    """Adds stamps with a compare-and-set on the card's counter.

    The counter update, the Stamp event and the StampActivity row commit in one
    store transaction; a concurrent stamp that changed the counter first makes
    the write miss and the whole attempt is retried from a fresh read. The push
    notification is scheduled after the commit and is not awaited.
    """

    def __init__(
        self,
        store: DocumentStore,
        *,
        notifier: PushNotifier | None = None,
        refresh_flags: RefreshFlags | None = None,
        max_attempts: int | None = None,
        clock: Clock = utcnow,
    ) -> None:
        self._store = store
        self._notifier = notifier or PushNotifier(store)
        self._refresh_flags = refresh_flags
        self._max_attempts = settings.stamp_write_max_attempts if max_attempts is None else max_attempts
        self._clock = clock

    async def add_stamp(
        self,
        customer_card_id: str,
        customer_id: str,
        business_id: str,
        loyalty_card_id: str,
    ) -> StampReceipt:
        program, business = await asyncio.gather(
            self._store.get(LoyaltyCard, loyalty_card_id),
            self._store.get(Business, business_id),
        )
        if program is None:
            raise NotFoundError("loyalty_cards", loyalty_card_id)
        business_name = business.name if business is not None else ""

        metrics = get_membership_store()
        for attempt in range(1, self._max_attempts + 1):
            card = await self._store.get(CustomerCard, customer_card_id)
            if card is None:
                raise NotFoundError("customer_cards", customer_card_id)
            if (
                card.customer_id != customer_id
                or card.business_id != business_id
                or card.loyalty_card_id != loyalty_card_id
            ):
                raise NotFoundError(
                    "customer_cards",
                    customer_card_id,
                    "card does not belong to the given customer, business and program",
                )
            if card.is_reward_claimed:
                raise StampRejectedError(customer_card_id, "reward already claimed")
            if card.current_stamps >= program.total_slots:
                raise StampRejectedError(customer_card_id, "card is already complete")

            observed = card.current_stamps
            new_count = observed + 1
            stamped_at = latest(self._clock(), card.last_stamp_date)

            async with self._store.transaction() as tx:
                written = await tx.update(
                    CustomerCard,
                    customer_card_id,
                    {"current_stamps": new_count, "last_stamp_date": stamped_at},
                    when=[
                        where("current_stamps", "==", observed),
                        where("is_reward_claimed", "==", False),
                    ],
                )
                if written:
                    stamp = await tx.add(
                        Stamp,
                        customer_card_id=customer_card_id,
                        customer_id=customer_id,
                        business_id=business_id,
                        loyalty_card_id=loyalty_card_id,
                        timestamp=stamped_at,
                    )
                    activity = await tx.add(
                        StampActivity,
                        customer_card_id=customer_card_id,
                        customer_id=customer_id,
                        business_id=business_id,
                        loyalty_card_id=loyalty_card_id,
                        timestamp=stamped_at,
                        customer_name=card.customer_name or "",
                        business_name=business_name,
                        stamp_count=new_count,
                        note=STAMP_ADDED_NOTE,
                    )

            if not written:
                metrics.record_stamp_conflict()
                logger.info(
                    "Stamp write lost a race; retrying",
                    customer_card_id=customer_card_id,
                    attempt=attempt,
                )
                continue

            record = CustomerCardRecord.model_validate(card).model_copy(
                update={
                    "current_stamps": new_count,
                    "last_stamp_date": stamped_at,
                    "loyalty_card": program_record(program, business),
                }
            )
            receipt = StampReceipt(
                customer_card=record,
                stamp=StampRecord.model_validate(stamp),
                activity=StampActivityRecord.model_validate(activity),
                new_count=new_count,
                total_slots=program.total_slots,
            )
            metrics.record_stamp(completed=receipt.is_completed)
            logger.info(
                "Stamp added",
                customer_card_id=customer_card_id,
                business_id=business_id,
                stamp_count=new_count,
                total_slots=program.total_slots,
                completed=receipt.is_completed,
            )
            if self._refresh_flags is not None:
                self._refresh_flags.mark_all()
            self._notifier.schedule(
                customer_id,
                stamp_message(
                    business_name=business_name,
                    current_stamps=new_count,
                    total_slots=program.total_slots,
                ),
            )
            return receipt

        raise TransientStoreError(
            f"Customer card '{customer_card_id}' kept changing; gave up after {self._max_attempts} attempts"
        )

    async def add_stamp_by_code(self, card_code: str, business_id: str) -> StampReceipt:
        """Stamp the unclaimed card a business knows only by its code."""

        card = await find_code_holder(self._store, business_id, card_code)
        if card is None:
            raise NotFoundError("customer_cards", card_code, f"no active card with this code at business '{business_id}'")
        return await self.add_stamp(card.id, card.customer_id, business_id, card.loyalty_card_id)


__all__ = ["STAMP_ADDED_NOTE", "StampLedger", "StampReceipt"]
