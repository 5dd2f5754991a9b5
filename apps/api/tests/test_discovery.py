from datetime import datetime, timedelta, timezone

import pytest

from casero_api.models import Business, LoyaltyCard
from casero_api.services.businesses import BusinessDirectory
from casero_api.services.discovery import CustomerCardsCache, DiscoveryService, RefreshFlags, RefreshTarget
from casero_api.services.memberships import MembershipRegistry, RewardClaimWorkflow, StampLedger
from casero_api.services.programs import LoyaltyProgramCatalog


class _CountingRegistry(MembershipRegistry):
    def __init__(self, *args, **kwargs):
        super().__init__(*args, **kwargs)
        self.customer_reads = 0

    async def list_for_customer(self, customer_id, *, unclaimed_only=False):
        self.customer_reads += 1
        return await super().list_for_customer(customer_id, unclaimed_only=unclaimed_only)


class _ManualClock:
    def __init__(self) -> None:
        self.now = datetime(2026, 3, 1, 12, 0, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, seconds: int) -> None:
        self.now += timedelta(seconds=seconds)


def _discovery(store, *, flags=None, clock=None, page_size=10):
    registry = _CountingRegistry(store, refresh_flags=flags)
    cache = CustomerCardsCache(300, clock=clock or _ManualClock())
    service = DiscoveryService(
        registry,
        BusinessDirectory(store),
        LoyaltyProgramCatalog(store),
        cache=cache,
        refresh_flags=flags,
        page_size=page_size,
    )
    return service, registry


@pytest.mark.asyncio
async def test_page_groups_programs_and_memberships_by_business(store, seed) -> None:
    registry = MembershipRegistry(store)
    card = await registry.join(seed.customer.id, seed.program.id)
    await store.add(Business, name="Empty Shop", owner_id="owner")
    service, _ = _discovery(store)

    page = await service.load_page(seed.customer.id)

    assert [entry.name for entry in page.businesses] == ["Café Aurora"]
    entry = page.businesses[0]
    assert [program.id for program in entry.loyalty_cards] == [seed.program.id]
    assert entry.loyalty_cards[0].business_name == "Café Aurora"
    assert [membership.id for membership in entry.customer_cards] == [card.id]
    assert entry.claimed_rewards_count == {}
    assert page.has_more_data is False
    assert page.next_cursor is None


@pytest.mark.asyncio
async def test_claimed_rewards_are_counted_per_program(store, seed) -> None:
    registry = MembershipRegistry(store)
    ledger = StampLedger(store)
    for _ in range(2):
        card = await registry.join(seed.customer.id, seed.program.id)
        for _ in range(seed.program.total_slots):
            await ledger.add_stamp(card.id, seed.customer.id, seed.business.id, seed.program.id)
        await RewardClaimWorkflow(store).claim(card.id)
    service, _ = _discovery(store)

    page = await service.load_page(seed.customer.id)

    entry = page.businesses[0]
    assert entry.claimed_rewards_count == {seed.program.id: 2}
    assert entry.customer_cards == []
    dumped = page.model_dump(by_alias=True)
    assert dumped["businesses"][0]["claimedRewardsCount"] == {seed.program.id: 2}


@pytest.mark.asyncio
async def test_inactive_programs_are_hidden(store, seed) -> None:
    await store.update(LoyaltyCard, seed.program.id, {"is_active": False})
    service, _ = _discovery(store)

    page = await service.load_page(seed.customer.id)

    assert page.businesses == []


@pytest.mark.asyncio
async def test_customer_cards_are_cached_until_ttl(store, seed) -> None:
    clock = _ManualClock()
    service, registry = _discovery(store, clock=clock)

    await service.load_page(seed.customer.id)
    await service.load_page(seed.customer.id)
    assert registry.customer_reads == 2

    clock.advance(299)
    await service.load_page(seed.customer.id)
    assert registry.customer_reads == 2

    clock.advance(1)
    await service.load_page(seed.customer.id)
    assert registry.customer_reads == 4


@pytest.mark.asyncio
async def test_force_refresh_and_refresh_bypass_cache(store, seed) -> None:
    service, registry = _discovery(store)

    await service.load_page(seed.customer.id)
    await service.load_page(seed.customer.id, force_refresh=True)
    assert registry.customer_reads == 4

    await service.refresh(seed.customer.id)
    assert registry.customer_reads == 6


@pytest.mark.asyncio
async def test_join_marks_flag_and_next_load_sees_new_card(store, seed) -> None:
    flags = RefreshFlags()
    service, registry = _discovery(store, flags=flags)
    first = await service.load_page(seed.customer.id)
    assert first.businesses[0].customer_cards == []

    card = await registry.join(seed.customer.id, seed.program.id)
    assert flags.is_set(RefreshTarget.BUSINESS_DISCOVERY)

    second = await service.load_page(seed.customer.id)
    assert [membership.id for membership in second.businesses[0].customer_cards] == [card.id]
    assert not flags.is_set(RefreshTarget.BUSINESS_DISCOVERY)
    assert flags.is_set(RefreshTarget.CUSTOMER_HOME)


@pytest.mark.asyncio
async def test_pages_follow_name_order_with_cursor(store, seed) -> None:
    for index in range(12):
        business = await store.add(Business, name=f"Shop {index:02d}", owner_id="owner")
        await store.add(LoyaltyCard, business_id=business.id, total_slots=4, reward_description="Gift")
    service, _ = _discovery(store, page_size=5)

    names = []
    cursor = None
    pages = 0
    while True:
        page = await service.load_page(seed.customer.id, cursor=cursor)
        pages += 1
        names.extend(entry.name for entry in page.businesses)
        if not page.has_more_data:
            break
        assert page.next_cursor == page.businesses[-1].id
        cursor = page.next_cursor

    assert pages == 3
    assert names == ["Café Aurora"] + [f"Shop {index:02d}" for index in range(12)]


@pytest.mark.asyncio
async def test_directory_page_size_is_clamped(store, seed) -> None:
    directory = BusinessDirectory(store)

    page = await directory.page(0)

    assert len(page.items) == 1
    assert page.has_more is False


def test_cache_invalidate_and_clear() -> None:
    clock = _ManualClock()
    cache = CustomerCardsCache(60, clock=clock)
    cache.set("a", all_cards=[], unclaimed_cards=[])
    cache.set("b", all_cards=[], unclaimed_cards=[])

    cache.invalidate("a")
    assert cache.get("a") is None
    assert cache.get("b") is not None
    assert cache.get("b").fetched_at == clock.now

    cache.clear()
    assert cache.get("b") is None


def test_refresh_flags_consume_clears_only_that_target() -> None:
    flags = RefreshFlags()
    flags.mark_all()

    assert flags.consume(RefreshTarget.BUSINESS_DISCOVERY) is True
    assert flags.consume(RefreshTarget.BUSINESS_DISCOVERY) is False
    assert flags.is_set(RefreshTarget.CUSTOMER_HOME)

    flags.clear_all()
    assert not flags.is_set(RefreshTarget.CUSTOMER_HOME)
