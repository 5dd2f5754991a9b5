"""Attach program snapshots to membership records."""

from __future__ import annotations

from typing import Iterable, Mapping, Sequence

from loguru import logger

from casero_api.db.store import DocumentStore
from casero_api.models import Business, CustomerCard, LoyaltyCard
from casero_api.schemas.loyalty import CustomerCardRecord, LoyaltyCardRecord


def program_record(card: LoyaltyCard, business: Business | None) -> LoyaltyCardRecord:
    """Build a program snapshot, copying the business name and logo at read time."""

    record = LoyaltyCardRecord.model_validate(card)
    if business is None:
        return record
    return record.model_copy(update={"business_name": business.name or "", "business_logo": business.logo_url})


def membership_record(card: CustomerCard | CustomerCardRecord) -> CustomerCardRecord:
    if isinstance(card, CustomerCardRecord):
        return card
    return CustomerCardRecord.model_validate(card)


class MembershipHydrator:
    """Populates ``CustomerCardRecord.loyalty_card`` with batched reads."""

    def __init__(self, store: DocumentStore) -> None:
        self._store = store

    async def load_programs(
        self,
        loyalty_card_ids: Iterable[str],
        *,
        businesses: Mapping[str, Business] | None = None,
    ) -> dict[str, LoyaltyCardRecord]:
        """Read programs by id and their businesses, reusing already known businesses."""

        programs = await self._store.batch_get(LoyaltyCard, loyalty_card_ids)
        known = dict(businesses or {})
        missing_business_ids = {card.business_id for card in programs.values()} - set(known)
        if missing_business_ids:
            known.update(await self._store.batch_get(Business, missing_business_ids))
        return {
            card_id: program_record(card, known.get(card.business_id))
            for card_id, card in programs.items()
        }

    async def hydrate(
        self,
        cards: Sequence[CustomerCard | CustomerCardRecord],
        *,
        programs: Mapping[str, LoyaltyCardRecord] | None = None,
    ) -> list[CustomerCardRecord]:
        records = [membership_record(card) for card in cards]
        if not records:
            return []

        snapshots = dict(programs or {})
        unresolved = {record.loyalty_card_id for record in records} - set(snapshots)
        if unresolved:
            snapshots.update(await self.load_programs(unresolved))

        hydrated: list[CustomerCardRecord] = []
        for record in records:
            snapshot = snapshots.get(record.loyalty_card_id)
            if snapshot is None:
                logger.warning(
                    "Loyalty program missing for customer card",
                    customer_card_id=record.id,
                    loyalty_card_id=record.loyalty_card_id,
                )
                hydrated.append(record)
                continue
            hydrated.append(record.model_copy(update={"loyalty_card": snapshot}))
        return hydrated


__all__ = ["MembershipHydrator", "membership_record", "program_record"]
