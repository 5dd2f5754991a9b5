import asyncio

import pytest

from casero_api.models import CustomerCard, Reward, StampActivity
from casero_api.observability.memberships import get_membership_store
from casero_api.services.memberships import (
    CardState,
    IneligibleClaimError,
    MembershipRegistry,
    NotFoundError,
    RewardClaimWorkflow,
    StampLedger,
    state_of,
)
from casero_api.services.refresh_flags import RefreshTarget


async def _completed_card(store, seed):
    card = await MembershipRegistry(store).join(seed.customer.id, seed.program.id)
    ledger = StampLedger(store)
    for _ in range(seed.program.total_slots):
        await ledger.add_stamp(card.id, seed.customer.id, seed.business.id, seed.program.id)
    return await store.get(CustomerCard, card.id)


def test_state_of_follows_stamp_count() -> None:
    card = CustomerCard(current_stamps=2, is_reward_claimed=False)
    assert state_of(card, 3) is CardState.ACTIVE
    card.current_stamps = 3
    assert state_of(card, 3) is CardState.ELIGIBLE
    card.is_reward_claimed = True
    assert state_of(card, 3) is CardState.CLAIMED


def test_claimed_is_terminal() -> None:
    assert RewardClaimWorkflow.can_transition(CardState.ELIGIBLE, CardState.CLAIMED)
    assert not RewardClaimWorkflow.can_transition(CardState.ACTIVE, CardState.CLAIMED)
    assert not RewardClaimWorkflow.can_transition(CardState.CLAIMED, CardState.ELIGIBLE)


@pytest.mark.asyncio
async def test_claim_flips_card_and_records_reward(store, seed, refresh_flags) -> None:
    card = await _completed_card(store, seed)
    workflow = RewardClaimWorkflow(store, refresh_flags=refresh_flags)

    reward = await workflow.claim(card.id, note="At the counter")

    assert reward.customer_card_id == card.id
    assert reward.is_redeemed is True
    assert reward.note == "At the counter"
    stored = await store.get(CustomerCard, card.id)
    assert stored.is_reward_claimed is True
    assert stored.reward_claimed_at is not None
    assert await workflow.state(card.id) is CardState.CLAIMED
    assert refresh_flags.consume(RefreshTarget.BUSINESS_DISCOVERY)
    assert [item.id for item in await workflow.list_for_customer(seed.customer.id)] == [reward.id]


@pytest.mark.asyncio
async def test_incomplete_card_cannot_be_claimed(store, seed) -> None:
    card = await MembershipRegistry(store).join(seed.customer.id, seed.program.id)

    with pytest.raises(IneligibleClaimError) as excinfo:
        await RewardClaimWorkflow(store).claim(card.id)

    assert excinfo.value.code == "INELIGIBLE_CLAIM"
    assert await store.count(Reward) == 0
    assert get_membership_store().snapshot().claims == {"rejected_active": 1}


@pytest.mark.asyncio
async def test_second_claim_is_rejected(store, seed) -> None:
    card = await _completed_card(store, seed)
    workflow = RewardClaimWorkflow(store)
    await workflow.claim(card.id)

    with pytest.raises(IneligibleClaimError):
        await workflow.claim(card.id)

    assert await store.count(Reward) == 1


@pytest.mark.asyncio
async def test_concurrent_claims_produce_one_reward(store, seed) -> None:
    card = await _completed_card(store, seed)
    workflow = RewardClaimWorkflow(store)

    results = await asyncio.gather(*[workflow.claim(card.id) for _ in range(3)], return_exceptions=True)

    successes = [result for result in results if not isinstance(result, Exception)]
    failures = [result for result in results if isinstance(result, IneligibleClaimError)]
    assert len(successes) == 1
    assert len(failures) == 2
    assert await store.count(Reward) == 1


@pytest.mark.asyncio
async def test_claim_missing_card(store) -> None:
    with pytest.raises(NotFoundError):
        await RewardClaimWorkflow(store).claim("missing")


@pytest.mark.asyncio
async def test_claim_by_code_records_activity_and_notifies(store, seed, notifier, push_backend) -> None:
    card = await _completed_card(store, seed)
    workflow = RewardClaimWorkflow(store, notifier=notifier)

    receipt = await workflow.claim_by_code(card.card_code, seed.business.id)

    assert receipt.customer_card_id == card.id
    assert receipt.activity.note == "Reward redeemed"
    assert receipt.activity.stamp_count == seed.program.total_slots
    assert receipt.activity.business_name == "Café Aurora"
    assert await store.count(StampActivity) == seed.program.total_slots + 1
    await notifier.drain()
    assert push_backend.delivered[-1].message.data["type"] == "reward_redeemed"


@pytest.mark.asyncio
async def test_claim_by_code_revalidates_completion(store, seed) -> None:
    card = await MembershipRegistry(store).join(seed.customer.id, seed.program.id)
    workflow = RewardClaimWorkflow(store)

    with pytest.raises(IneligibleClaimError):
        await workflow.claim_by_code(card.card_code, seed.business.id)
    with pytest.raises(NotFoundError):
        await workflow.claim_by_code("000", seed.business.id)

    assert await store.count(StampActivity) == 0


@pytest.mark.asyncio
async def test_code_is_released_after_claim(store, seed) -> None:
    card = await _completed_card(store, seed)
    await RewardClaimWorkflow(store).claim(card.id)

    registry = MembershipRegistry(store)
    assert await registry.find_unclaimed_by_code(card.card_code, seed.business.id) is None
    rejoined = await registry.join(seed.customer.id, seed.program.id)
    assert rejoined.current_stamps == 0
