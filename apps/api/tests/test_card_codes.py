import random

import pytest

from casero_api.models import CustomerCard
from casero_api.observability.memberships import get_membership_store
from casero_api.services.memberships import CardCodeAllocator, CodeExhaustedError, find_code_holder


class _ScriptedRandom(random.Random):
    """Returns the scripted values in order, then repeats the last one."""

    def __init__(self, values):
        super().__init__()
        self._values = list(values)

    def randint(self, a, b):  # noqa: D401
        value = self._values.pop(0) if len(self._values) > 1 else self._values[0]
        assert a <= value <= b
        return value


async def _hold(store, code, *, business_id="business-1", claimed=False, customer_id="someone"):
    return await store.add(
        CustomerCard,
        customer_id=customer_id,
        loyalty_card_id=f"program-{code}-{customer_id}",
        business_id=business_id,
        card_code=code,
        is_reward_claimed=claimed,
    )


@pytest.mark.asyncio
async def test_draws_three_digit_codes_in_range(store) -> None:
    allocator = CardCodeAllocator(store, rng=random.Random(7))

    codes = {allocator.draw() for _ in range(200)}

    assert all(len(code) == 3 and 100 <= int(code) <= 999 for code in codes)


@pytest.mark.asyncio
async def test_skips_codes_held_by_unclaimed_cards(store) -> None:
    await _hold(store, "100")
    allocator = CardCodeAllocator(store, rng=_ScriptedRandom([100, 100, 101]))

    allocation = await allocator.allocate("business-1")

    assert allocation.code == "101"
    assert allocation.attempts == 3
    snapshot = get_membership_store().snapshot()
    assert snapshot.codes == {"allocations": 1, "attempts": 3}


@pytest.mark.asyncio
async def test_claimed_cards_and_other_businesses_release_codes(store) -> None:
    await _hold(store, "100", claimed=True)
    await _hold(store, "101", business_id="business-2")
    allocator = CardCodeAllocator(store, rng=_ScriptedRandom([100]))

    assert (await allocator.allocate("business-1")).code == "100"
    allocator = CardCodeAllocator(store, rng=_ScriptedRandom([101]))
    assert (await allocator.allocate("business-1")).code == "101"


@pytest.mark.asyncio
async def test_exhausted_budget_reports_failure(store) -> None:
    await _hold(store, "100")
    allocator = CardCodeAllocator(store, min_code=100, max_code=100, max_attempts=5)

    allocation = await allocator.allocate("business-1")

    assert not allocation.ok
    assert allocation.attempts == 5
    with pytest.raises(CodeExhaustedError):
        allocation.unwrap()
    assert get_membership_store().snapshot().codes["exhausted"] == 1


def test_rejects_inverted_range() -> None:
    with pytest.raises(ValueError):
        CardCodeAllocator(None, min_code=500, max_code=100)


@pytest.mark.asyncio
async def test_find_code_holder_ignores_claimed_cards(store) -> None:
    claimed = await _hold(store, "555", claimed=True, customer_id="old")
    active = await _hold(store, "555", customer_id="new")

    holder = await find_code_holder(store, "business-1", "555")

    assert holder is not None
    assert holder.id == active.id != claimed.id
