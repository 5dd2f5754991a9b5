import pytest

from casero_api.db.store import TransientStoreError
from casero_api.models import CustomerCard, LoyaltyCard, Reward, Stamp, StampActivity, User
from casero_api.observability.memberships import get_membership_store
from casero_api.services.memberships import (
    CascadeDeletionOrchestrator,
    IncompleteDeletionError,
    MembershipRegistry,
    RewardClaimWorkflow,
    StampLedger,
)
from casero_api.services.memberships.deletion import PHASE_EVENTS, PHASE_MEMBERSHIPS, PHASE_PROGRAM


async def _program_with_history(store, seed):
    """Two memberships: one claimed with a reward, one with a single stamp."""

    registry = MembershipRegistry(store)
    ledger = StampLedger(store)
    claimed = await registry.join(seed.customer.id, seed.program.id)
    for _ in range(seed.program.total_slots):
        await ledger.add_stamp(claimed.id, seed.customer.id, seed.business.id, seed.program.id)
    await RewardClaimWorkflow(store).claim(claimed.id)

    other = await store.add(User, email="second@example.com", display_name="Sofía")
    active = await registry.join(other.id, seed.program.id)
    await ledger.add_stamp(active.id, other.id, seed.business.id, seed.program.id)
    return claimed, active


async def _remaining(store):
    return {
        "stamps": await store.count(Stamp),
        "activity": await store.count(StampActivity),
        "rewards": await store.count(Reward),
        "cards": await store.count(CustomerCard),
        "programs": await store.count(LoyaltyCard),
    }


@pytest.mark.asyncio
async def test_plan_orders_children_before_parents(store, seed) -> None:
    await _program_with_history(store, seed)
    orchestrator = CascadeDeletionOrchestrator(store)

    plan = await orchestrator.plan_loyalty_card(seed.program.id)

    by_phase = {phase: {item.collection for item in plan.items_in_phase(phase)} for phase in plan.phases}
    assert by_phase == {
        PHASE_EVENTS: {"stamps", "stamp_activity", "rewards"},
        PHASE_MEMBERSHIPS: {"customer_cards"},
        PHASE_PROGRAM: {"loyalty_cards"},
    }
    assert len(plan.items_in_phase(PHASE_EVENTS)) == 4 + 4 + 1


@pytest.mark.asyncio
async def test_delete_loyalty_card_removes_everything(store, seed, refresh_flags) -> None:
    await _program_with_history(store, seed)
    orchestrator = CascadeDeletionOrchestrator(store, refresh_flags=refresh_flags)

    plan = await orchestrator.delete_loyalty_card(seed.program.id)

    assert plan.is_complete
    assert await _remaining(store) == {"stamps": 0, "activity": 0, "rewards": 0, "cards": 0, "programs": 0}
    assert get_membership_store().snapshot().deletions["records_deleted"] == len(plan.items)
    assert refresh_flags.is_set("business_discovery")


@pytest.mark.asyncio
async def test_delete_customer_card_keeps_other_memberships(store, seed) -> None:
    claimed, active = await _program_with_history(store, seed)
    orchestrator = CascadeDeletionOrchestrator(store)

    await orchestrator.delete_customer_card(claimed.id)

    assert await store.get(CustomerCard, claimed.id) is None
    assert await store.get(CustomerCard, active.id) is not None
    assert await _remaining(store) == {"stamps": 1, "activity": 1, "rewards": 0, "cards": 1, "programs": 1}


@pytest.mark.asyncio
async def test_failure_stops_before_next_phase_and_resume_finishes(store, seed) -> None:
    await _program_with_history(store, seed)
    orchestrator = CascadeDeletionOrchestrator(store)
    original_delete = store.delete
    failed_once = []

    async def flaky_delete(model, doc_id):
        if model is Reward and not failed_once:
            failed_once.append(doc_id)
            raise TransientStoreError("store unavailable")
        return await original_delete(model, doc_id)

    store.delete = flaky_delete
    try:
        with pytest.raises(IncompleteDeletionError) as excinfo:
            await orchestrator.delete_loyalty_card(seed.program.id)

        error = excinfo.value
        assert error.code == "INCOMPLETE_DELETION"
        assert [(item.collection, item.doc_id) for item in error.failed] == [("rewards", failed_once[0])]
        # Parents stay until every child is gone.
        assert await _remaining(store) == {"stamps": 0, "activity": 0, "rewards": 1, "cards": 2, "programs": 1}

        plan = await orchestrator.resume(error.plan)
    finally:
        del store.delete

    assert plan.is_complete
    assert plan.failed == []
    assert await _remaining(store) == {"stamps": 0, "activity": 0, "rewards": 0, "cards": 0, "programs": 0}
    deletions = get_membership_store().snapshot().deletions
    assert deletions["loyalty_cards:incomplete"] == 1
    assert deletions["records_failed"] == 1


@pytest.mark.asyncio
async def test_rerunning_a_finished_plan_is_a_no_op(store, seed) -> None:
    await _program_with_history(store, seed)
    orchestrator = CascadeDeletionOrchestrator(store)
    plan = await orchestrator.delete_loyalty_card(seed.program.id)

    for item in plan.items:
        item.completed = False
    again = await orchestrator.execute(plan)

    assert again.is_complete
    assert all(item.existed is False for item in again.items)


@pytest.mark.asyncio
async def test_delete_customer_card_twice_does_not_raise(store, seed) -> None:
    registry = MembershipRegistry(store)
    card = await registry.join(seed.customer.id, seed.program.id)
    await StampLedger(store).add_stamp(card.id, seed.customer.id, seed.business.id, seed.program.id)
    orchestrator = CascadeDeletionOrchestrator(store)

    first = await orchestrator.delete_customer_card(card.id)
    second = await orchestrator.delete_customer_card(card.id)

    assert first.is_complete
    assert all(item.existed for item in first.items)
    assert second.is_complete
    assert [item.collection for item in second.items] == ["customer_cards"]
    assert all(item.existed is False for item in second.items)
    assert await registry.get(card.id) is None


@pytest.mark.asyncio
async def test_deleting_missing_program_only_reports_the_root(store) -> None:
    plan = await CascadeDeletionOrchestrator(store).delete_loyalty_card("missing")

    assert [(item.collection, item.existed) for item in plan.items] == [("loyalty_cards", False)]
