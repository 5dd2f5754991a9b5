"""Loyalty program catalog."""

from __future__ import annotations

import asyncio
from typing import Any, Sequence

from loguru import logger

from casero_api.core.clock import utcnow
from casero_api.db.store import DocumentStore, chunked, desc, where
from casero_api.models import Business, LoyaltyCard, StampShape
from casero_api.models.loyalty_card import MAX_TOTAL_SLOTS, MIN_TOTAL_SLOTS
from casero_api.schemas.loyalty import LoyaltyCardRecord
from casero_api.services.memberships.errors import NotFoundError
from casero_api.services.memberships.hydration import program_record

_EDITABLE_FIELDS = {
    "reward_description",
    "stamp_description",
    "card_color",
    "stamp_shape",
    "background_image",
    "total_slots",
}


def _validate_total_slots(total_slots: int) -> int:
    if not MIN_TOTAL_SLOTS <= total_slots <= MAX_TOTAL_SLOTS:
        raise ValueError(f"total_slots must be between {MIN_TOTAL_SLOTS} and {MAX_TOTAL_SLOTS}")
    return total_slots


def _validate_stamp_shape(stamp_shape: str | StampShape | None) -> str | None:
    if stamp_shape is None:
        return None
    return StampShape(stamp_shape).value


class LoyaltyProgramCatalog:
    """Programs a business offers; business name and logo are attached on read."""

    def __init__(self, store: DocumentStore) -> None:
        self._store = store

    async def create(
        self,
        *,
        business_id: str,
        total_slots: int,
        reward_description: str,
        stamp_description: str | None = None,
        card_color: str | None = None,
        stamp_shape: str | StampShape | None = StampShape.CIRCLE,
        background_image: str | None = None,
    ) -> LoyaltyCardRecord:
        if not business_id:
            raise ValueError("business_id is required")
        if not reward_description or not reward_description.strip():
            raise ValueError("reward_description is required")
        business = await self._store.get(Business, business_id)
        if business is None:
            raise NotFoundError("businesses", business_id)

        program = await self._store.add(
            LoyaltyCard,
            business_id=business_id,
            total_slots=_validate_total_slots(total_slots),
            reward_description=reward_description.strip(),
            stamp_description=stamp_description or None,
            card_color=card_color or None,
            stamp_shape=_validate_stamp_shape(stamp_shape),
            background_image=background_image or None,
            is_active=True,
        )
        logger.info(
            "Loyalty program created",
            loyalty_card_id=program.id,
            business_id=business_id,
            total_slots=program.total_slots,
        )
        return program_record(program, business)

    async def get(self, loyalty_card_id: str) -> LoyaltyCardRecord | None:
        program = await self._store.get(LoyaltyCard, loyalty_card_id)
        if program is None:
            return None
        business = await self._store.get(Business, program.business_id)
        return program_record(program, business)

    async def update(self, loyalty_card_id: str, **changes: Any) -> LoyaltyCardRecord:
        """Edit presentation fields of a program.

        ``total_slots`` is accepted only when unchanged: existing memberships
        count stamps against it.
        """
        unknown = set(changes) - _EDITABLE_FIELDS
        if unknown:
            raise ValueError(f"Fields cannot be changed: {', '.join(sorted(unknown))}")

        program = await self._store.get(LoyaltyCard, loyalty_card_id)
        if program is None:
            raise NotFoundError("loyalty_cards", loyalty_card_id)

        values = {key: value for key, value in changes.items() if value is not None and value != ""}
        slots = values.pop("total_slots", None)
        if slots is not None and slots != program.total_slots:
            raise ValueError("total_slots cannot change after a program is created")
        if "stamp_shape" in values:
            values["stamp_shape"] = _validate_stamp_shape(values["stamp_shape"])

        if values:
            values["updated_at"] = utcnow()
            await self._store.update(LoyaltyCard, loyalty_card_id, values)
        result = await self.get(loyalty_card_id)
        if result is None:
            raise NotFoundError("loyalty_cards", loyalty_card_id)
        return result

    async def deactivate(self, loyalty_card_id: str) -> bool:
        """Stop accepting new members; existing memberships are kept."""

        now = utcnow()
        changed = await self._store.update(
            LoyaltyCard,
            loyalty_card_id,
            {"is_active": False, "deactivated_at": now, "updated_at": now},
            when=[where("is_active", "==", True)],
        )
        if changed:
            logger.info("Loyalty program deactivated", loyalty_card_id=loyalty_card_id)
        elif await self._store.get(LoyaltyCard, loyalty_card_id) is None:
            raise NotFoundError("loyalty_cards", loyalty_card_id)
        return changed

    async def list_for_business(self, business_id: str, *, active_only: bool = False) -> list[LoyaltyCardRecord]:
        filters = [where("business_id", "==", business_id)]
        if active_only:
            filters.append(where("is_active", "==", True))
        programs, business = await asyncio.gather(
            self._store.query(LoyaltyCard, *filters, order_by=[desc("created_at")]),
            self._store.get(Business, business_id),
        )
        return [program_record(program, business) for program in programs]

    async def list_active(self) -> list[LoyaltyCardRecord]:
        programs = await self._store.query(LoyaltyCard, where("is_active", "==", True), order_by=[desc("created_at")])
        businesses = await self._store.batch_get(Business, {program.business_id for program in programs})
        return [program_record(program, businesses.get(program.business_id)) for program in programs]

    async def list_for_businesses(
        self,
        business_ids: Sequence[str],
        *,
        active_only: bool = True,
    ) -> list[LoyaltyCardRecord]:
        """Programs for many businesses, one query per group of ids the store accepts."""

        unique_ids = list(dict.fromkeys(business_ids))
        if not unique_ids:
            return []

        def _filters(chunk: list[str]):
            filters = [where("business_id", "in", chunk)]
            if active_only:
                filters.append(where("is_active", "==", True))
            return filters

        batches, businesses = await asyncio.gather(
            asyncio.gather(
                *[
                    self._store.query(LoyaltyCard, *_filters(chunk), order_by=[desc("created_at")])
                    for chunk in chunked(unique_ids, self._store.in_filter_limit)
                ]
            ),
            self._store.batch_get(Business, unique_ids),
        )
        return [
            program_record(program, businesses.get(program.business_id))
            for batch in batches
            for program in batch
        ]


__all__ = ["LoyaltyProgramCatalog"]
