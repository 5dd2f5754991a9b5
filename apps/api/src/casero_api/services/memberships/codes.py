"""Short, human-typeable membership codes scoped to a business."""

from __future__ import annotations

import random
from dataclasses import dataclass

from loguru import logger

from casero_api.core.settings import settings
from casero_api.db.store import DocumentStore, where
from casero_api.models import CustomerCard
from casero_api.observability.memberships import get_membership_store

from .errors import CodeExhaustedError


async def find_code_holder(store: DocumentStore, business_id: str, code: str) -> CustomerCard | None:
    """Return the unclaimed card holding ``code`` in the business, if any."""

    return await store.first(
        CustomerCard,
        where("card_code", "==", code),
        where("business_id", "==", business_id),
        where("is_reward_claimed", "==", False),
    )


@dataclass(frozen=True, slots=True)
class CodeAllocation:
    """Outcome of one allocation run; ``code`` is None when the budget ran out."""

    business_id: str
    code: str | None
    attempts: int

    @property
    def ok(self) -> bool:
        return self.code is not None

    def unwrap(self) -> str:
        if self.code is None:
            raise CodeExhaustedError(self.business_id, self.attempts)
        return self.code


class CardCodeAllocator:
    """Draws random codes until one is free among the business's unclaimed cards.

    The check is advisory: the unique index on unclaimed (business_id, card_code)
    is what finally rejects a code taken by a concurrent join.
    """

    def __init__(
        self,
        store: DocumentStore,
        *,
        min_code: int | None = None,
        max_code: int | None = None,
        max_attempts: int | None = None,
        rng: random.Random | None = None,
    ) -> None:
        self._store = store
        self._min_code = settings.card_code_min if min_code is None else min_code
        self._max_code = settings.card_code_max if max_code is None else max_code
        self._max_attempts = settings.card_code_max_attempts if max_attempts is None else max_attempts
        if self._min_code > self._max_code:
            raise ValueError("min_code must not exceed max_code")
        if self._max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")
        self._rng = rng or random.SystemRandom()
        self._width = len(str(self._max_code))

    @property
    def max_attempts(self) -> int:
        return self._max_attempts

    def draw(self) -> str:
        return str(self._rng.randint(self._min_code, self._max_code)).zfill(self._width)

    async def is_taken(self, business_id: str, code: str) -> bool:
        return await find_code_holder(self._store, business_id, code) is not None

    async def allocate(self, business_id: str, *, max_attempts: int | None = None) -> CodeAllocation:
        budget = self._max_attempts if max_attempts is None else max_attempts
        attempts = 0
        code: str | None = None
        while attempts < budget:
            attempts += 1
            candidate = self.draw()
            if not await self.is_taken(business_id, candidate):
                code = candidate
                break

        get_membership_store().record_code_allocation(attempts, exhausted=code is None)
        if code is None:
            logger.warning("Card code space exhausted", business_id=business_id, attempts=attempts)
        else:
            logger.debug("Allocated card code", business_id=business_id, attempts=attempts)
        return CodeAllocation(business_id=business_id, code=code, attempts=attempts)


__all__ = ["CardCodeAllocator", "CodeAllocation", "find_code_holder"]
