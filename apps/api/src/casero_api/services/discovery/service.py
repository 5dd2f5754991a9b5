"""Paginated business discovery feed for customers."""

from __future__ import annotations

import asyncio
from collections import defaultdict

from loguru import logger

from casero_api.core.settings import settings
from casero_api.schemas.loyalty import (
    BusinessRecord,
    BusinessWithCards,
    CustomerCardRecord,
    DiscoveryPage,
    LoyaltyCardRecord,
)
from casero_api.services.businesses import BusinessDirectory
from casero_api.services.memberships.registry import MembershipRegistry
from casero_api.services.programs import LoyaltyProgramCatalog
from casero_api.services.refresh_flags import RefreshFlags, RefreshTarget

from .cache import CustomerCardsCache, CustomerCardsSnapshot


class DiscoveryService:
    """Builds discovery pages from the business directory and cached memberships.

    One instance lives for one customer session; it owns the card cache and
    reads the shared refresh flags that mutating services mark.
    """

    def __init__(
        self,
        registry: MembershipRegistry,
        directory: BusinessDirectory,
        catalog: LoyaltyProgramCatalog,
        *,
        cache: CustomerCardsCache | None = None,
        refresh_flags: RefreshFlags | None = None,
        page_size: int | None = None,
    ) -> None:
        self._registry = registry
        self._directory = directory
        self._catalog = catalog
        self._cache = cache or CustomerCardsCache()
        self._refresh_flags = refresh_flags or RefreshFlags()
        self._page_size = page_size or settings.discovery_page_size

    @property
    def cache(self) -> CustomerCardsCache:
        return self._cache

    async def customer_cards(self, customer_id: str, *, force_refresh: bool = False) -> CustomerCardsSnapshot:
        """Return the customer's memberships, reading through the cache."""

        if self._refresh_flags.consume(RefreshTarget.BUSINESS_DISCOVERY):
            force_refresh = True
        if not force_refresh:
            cached = self._cache.get(customer_id)
            if cached is not None:
                logger.debug("Using cached customer cards", customer_id=customer_id)
                return cached

        all_cards, unclaimed_cards = await asyncio.gather(
            self._registry.list_for_customer(customer_id),
            self._registry.list_for_customer(customer_id, unclaimed_only=True),
        )
        logger.debug(
            "Fetched customer cards",
            customer_id=customer_id,
            all_cards=len(all_cards),
            unclaimed_cards=len(unclaimed_cards),
        )
        return self._cache.set(customer_id, all_cards=all_cards, unclaimed_cards=unclaimed_cards)

    async def load_page(
        self,
        customer_id: str,
        *,
        cursor: str | None = None,
        force_refresh: bool = False,
    ) -> DiscoveryPage:
        snapshot = await self.customer_cards(customer_id, force_refresh=force_refresh)
        page = await self._directory.page(self._page_size, cursor)
        if not page.items:
            return DiscoveryPage(businesses=[], has_more_data=False, next_cursor=None)

        programs = await self._catalog.list_for_businesses([business.id for business in page.items])
        programs_by_business: dict[str, list[LoyaltyCardRecord]] = defaultdict(list)
        for program in programs:
            programs_by_business[program.business_id].append(program)

        entries = []
        for business in page.items:
            active_programs = [program for program in programs_by_business.get(business.id, []) if program.is_active]
            if not active_programs:
                continue
            entries.append(
                _business_entry(
                    BusinessRecord.model_validate(business),
                    active_programs,
                    snapshot.all_cards,
                    snapshot.unclaimed_cards,
                )
            )

        logger.info(
            "Discovery page loaded",
            customer_id=customer_id,
            cursor=cursor,
            businesses=len(page.items),
            with_programs=len(entries),
            has_more=page.has_more,
        )
        return DiscoveryPage(
            businesses=entries,
            has_more_data=page.has_more,
            next_cursor=page.next_cursor,
        )

    async def refresh(self, customer_id: str) -> DiscoveryPage:
        self._cache.invalidate(customer_id)
        return await self.load_page(customer_id, force_refresh=True)


def _business_entry(
    business: BusinessRecord,
    programs: list[LoyaltyCardRecord],
    all_cards: list[CustomerCardRecord],
    unclaimed_cards: list[CustomerCardRecord],
) -> BusinessWithCards:
    claimed: dict[str, int] = {}
    for card in all_cards:
        if card.business_id == business.id and card.is_reward_claimed:
            claimed[card.loyalty_card_id] = claimed.get(card.loyalty_card_id, 0) + 1
    return BusinessWithCards(
        **business.model_dump(),
        loyalty_cards=programs,
        customer_cards=[card for card in unclaimed_cards if card.business_id == business.id],
        claimed_rewards_count=claimed,
    )


__all__ = ["DiscoveryService"]
