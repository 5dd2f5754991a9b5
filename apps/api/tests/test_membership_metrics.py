from casero_api.observability.memberships import MembershipObservabilityStore


def test_snapshot_aggregates_lifecycle_counters() -> None:
    metrics = MembershipObservabilityStore()

    metrics.record_join("joined")
    metrics.record_join("already_member")
    metrics.record_code_allocation(3, exhausted=False)
    metrics.record_code_allocation(1000, exhausted=True)
    metrics.record_stamp(completed=False)
    metrics.record_stamp(completed=True)
    metrics.record_stamp_conflict()
    metrics.record_claim("claimed")
    metrics.record_deletion("loyalty_cards", deleted=4, failed=1)

    snapshot = metrics.snapshot().as_dict()

    assert snapshot["joins"] == {"joined": 1, "already_member": 1}
    assert snapshot["codes"] == {"allocations": 2, "attempts": 1003, "exhausted": 1}
    assert snapshot["stamps"] == {"total": 2, "completed_cards": 1, "write_conflicts": 1}
    assert snapshot["claims"] == {"claimed": 1}
    assert snapshot["deletions"] == {
        "loyalty_cards:runs": 1,
        "records_deleted": 4,
        "records_failed": 1,
        "loyalty_cards:incomplete": 1,
    }


def test_reset_clears_every_counter() -> None:
    metrics = MembershipObservabilityStore()
    metrics.record_stamp(completed=True)
    metrics.record_deletion("customer_cards", deleted=2, failed=0)

    metrics.reset()

    assert metrics.snapshot().as_dict() == {"joins": {}, "codes": {}, "stamps": {}, "claims": {}, "deletions": {}}
