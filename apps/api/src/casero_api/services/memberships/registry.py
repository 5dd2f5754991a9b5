"""Membership registry: joining programs and reading customer cards."""

from __future__ import annotations

import asyncio
from typing import Sequence

from loguru import logger

from casero_api.core.settings import settings
from casero_api.db.store import ConflictError, DocumentStore, chunked, desc, where
from casero_api.models import Business, CustomerCard, LoyaltyCard, User
from casero_api.observability.memberships import get_membership_store
from casero_api.schemas.loyalty import CustomerCardRecord
from casero_api.services.refresh_flags import RefreshFlags

from .codes import CardCodeAllocator, find_code_holder
from .errors import AlreadyMemberError, CodeExhaustedError, NotFoundError
from .hydration import MembershipHydrator, program_record


def _newest_first(cards: Sequence[CustomerCard]) -> list[CustomerCard]:
    return sorted(cards, key=lambda card: (card.created_at, card.id), reverse=True)


class MembershipRegistry:
    """Creates memberships and serves the customer/business read models."""

    def __init__(
        self,
        store: DocumentStore,
        *,
        allocator: CardCodeAllocator | None = None,
        hydrator: MembershipHydrator | None = None,
        refresh_flags: RefreshFlags | None = None,
        conflict_retries: int | None = None,
    ) -> None:
        self._store = store
        self._allocator = allocator or CardCodeAllocator(store)
        self._hydrator = hydrator or MembershipHydrator(store)
        self._refresh_flags = refresh_flags
        self._conflict_retries = (
            settings.join_conflict_retries if conflict_retries is None else conflict_retries
        )

    @property
    def hydrator(self) -> MembershipHydrator:
        return self._hydrator

    async def join(self, customer_id: str, loyalty_card_id: str) -> CustomerCardRecord:
        """Create a customer's membership in a program.

        Args:
            customer_id: Caller-supplied customer id (trusted).
            loyalty_card_id: Program to join.

        Returns:
            The new membership, hydrated with the program snapshot.

        Raises:
            AlreadyMemberError: an unclaimed card already exists for the pair.
            NotFoundError: the program is missing or deactivated.
            CodeExhaustedError: no free code within the allocator budget.
        """
        metrics = get_membership_store()
        if await self._active_membership(customer_id, loyalty_card_id) is not None:
            metrics.record_join("already_member")
            raise AlreadyMemberError(customer_id, loyalty_card_id)

        program = await self._store.get(LoyaltyCard, loyalty_card_id)
        if program is None:
            raise NotFoundError("loyalty_cards", loyalty_card_id)
        if not program.is_active:
            raise NotFoundError("loyalty_cards", loyalty_card_id, "program is not accepting members")

        business = await self._store.get(Business, program.business_id)
        customer_name = await self._customer_name(customer_id)

        budget = self._allocator.max_attempts
        used = 0
        for _ in range(self._conflict_retries + 1):
            remaining = budget - used
            if remaining <= 0:
                break
            allocation = await self._allocator.allocate(program.business_id, max_attempts=remaining)
            used += allocation.attempts
            if not allocation.ok:
                break

            try:
                card = await self._store.add(
                    CustomerCard,
                    customer_id=customer_id,
                    loyalty_card_id=loyalty_card_id,
                    business_id=program.business_id,
                    current_stamps=0,
                    is_reward_claimed=False,
                    card_code=allocation.code,
                    customer_name=customer_name,
                )
            except ConflictError:
                if await self._active_membership(customer_id, loyalty_card_id) is not None:
                    metrics.record_join("already_member")
                    raise AlreadyMemberError(customer_id, loyalty_card_id) from None
                logger.info(
                    "Card code claimed by a concurrent join; reallocating",
                    business_id=program.business_id,
                    card_code=allocation.code,
                )
                continue

            metrics.record_join("created")
            logger.info(
                "Customer joined loyalty program",
                customer_id=customer_id,
                loyalty_card_id=loyalty_card_id,
                customer_card_id=card.id,
                business_id=program.business_id,
            )
            if self._refresh_flags is not None:
                self._refresh_flags.mark_all()
            snapshot = program_record(program, business)
            return CustomerCardRecord.model_validate(card).model_copy(update={"loyalty_card": snapshot})

        metrics.record_join("code_exhausted")
        raise CodeExhaustedError(program.business_id, used)

    async def get(self, customer_card_id: str) -> CustomerCardRecord | None:
        card = await self._store.get(CustomerCard, customer_card_id)
        if card is None:
            return None
        hydrated = await self._hydrator.hydrate([card])
        return hydrated[0]

    async def require(self, customer_card_id: str) -> CustomerCardRecord:
        record = await self.get(customer_card_id)
        if record is None:
            raise NotFoundError("customer_cards", customer_card_id)
        return record

    async def list_for_customer(
        self,
        customer_id: str,
        *,
        unclaimed_only: bool = False,
    ) -> list[CustomerCardRecord]:
        """All cards (statistics) or unclaimed cards (active view), newest first."""

        filters = [where("customer_id", "==", customer_id)]
        if unclaimed_only:
            filters.append(where("is_reward_claimed", "==", False))
        cards = await self._store.query(CustomerCard, *filters, order_by=[desc("created_at")])
        return await self._hydrator.hydrate(cards)

    async def list_for_customer_at_business(
        self,
        customer_id: str,
        business_id: str,
    ) -> list[CustomerCardRecord]:
        """Unclaimed cards the customer holds on the business's active programs."""

        programs = await self._store.query(
            LoyaltyCard,
            where("business_id", "==", business_id),
            where("is_active", "==", True),
        )
        if not programs:
            return []
        business = await self._store.get(Business, business_id)
        snapshots = {program.id: program_record(program, business) for program in programs}

        batches = await asyncio.gather(
            *[
                self._store.query(
                    CustomerCard,
                    where("customer_id", "==", customer_id),
                    where("loyalty_card_id", "in", chunk),
                    where("is_reward_claimed", "==", False),
                )
                for chunk in chunked(list(snapshots), self._store.in_filter_limit)
            ]
        )
        cards = _newest_first([card for batch in batches for card in batch])
        return await self._hydrator.hydrate(cards, programs=snapshots)

    async def list_for_program(
        self,
        loyalty_card_id: str,
        *,
        unclaimed_only: bool = False,
    ) -> list[CustomerCardRecord]:
        filters = [where("loyalty_card_id", "==", loyalty_card_id)]
        if unclaimed_only:
            filters.append(where("is_reward_claimed", "==", False))
        cards = await self._store.query(CustomerCard, *filters, order_by=[desc("created_at")])
        return await self._hydrator.hydrate(cards)

    async def list_for_businesses(
        self,
        business_ids: Sequence[str],
        *,
        unclaimed_only: bool = False,
    ) -> list[CustomerCardRecord]:
        """Memberships across several businesses without one query per business.

        Program lookups are grouped by the store's 'in' limit and merged before
        the memberships are fetched the same way.
        """
        unique_ids = list(dict.fromkeys(business_ids))
        if not unique_ids:
            return []
        limit = self._store.in_filter_limit

        program_batches = await asyncio.gather(
            *[
                self._store.query(LoyaltyCard, where("business_id", "in", chunk))
                for chunk in chunked(unique_ids, limit)
            ]
        )
        programs = [program for batch in program_batches for program in batch]
        if not programs:
            return []

        businesses = await self._store.batch_get(Business, unique_ids)
        snapshots = {
            program.id: program_record(program, businesses.get(program.business_id))
            for program in programs
        }

        def _filters(chunk: list[str]):
            filters = [where("loyalty_card_id", "in", chunk)]
            if unclaimed_only:
                filters.append(where("is_reward_claimed", "==", False))
            return filters

        card_batches = await asyncio.gather(
            *[
                self._store.query(CustomerCard, *_filters(chunk))
                for chunk in chunked(list(snapshots), limit)
            ]
        )
        cards = _newest_first([card for batch in card_batches for card in batch])
        logger.debug(
            "Loaded memberships for businesses",
            businesses=len(unique_ids),
            programs=len(programs),
            cards=len(cards),
        )
        return await self._hydrator.hydrate(cards, programs=snapshots)

    async def find_unclaimed_by_code(self, card_code: str, business_id: str) -> CustomerCardRecord | None:
        card = await find_code_holder(self._store, business_id, card_code)
        if card is None:
            return None
        hydrated = await self._hydrator.hydrate([card])
        return hydrated[0]

    async def redemption_count(self, customer_id: str, loyalty_card_id: str) -> int:
        return await self._store.count(
            CustomerCard,
            where("customer_id", "==", customer_id),
            where("loyalty_card_id", "==", loyalty_card_id),
            where("is_reward_claimed", "==", True),
        )

    async def _active_membership(self, customer_id: str, loyalty_card_id: str) -> CustomerCard | None:
        return await self._store.first(
            CustomerCard,
            where("customer_id", "==", customer_id),
            where("loyalty_card_id", "==", loyalty_card_id),
            where("is_reward_claimed", "==", False),
        )

    async def _customer_name(self, customer_id: str) -> str:
        user = await self._store.get(User, customer_id)
        if user is None:
            return ""
        return user.display_name or ""


__all__ = ["MembershipRegistry"]
