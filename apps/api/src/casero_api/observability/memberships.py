from __future__ import annotations

from collections import defaultdict
from dataclasses import dataclass
from typing import Dict


@dataclass
class MembershipSnapshot:
    joins: Dict[str, int]
    codes: Dict[str, int]
    stamps: Dict[str, int]
    claims: Dict[str, int]
    deletions: Dict[str, int]

    def as_dict(self) -> Dict[str, object]:
        return {
            "joins": dict(self.joins),
            "codes": dict(self.codes),
            "stamps": dict(self.stamps),
            "claims": dict(self.claims),
            "deletions": dict(self.deletions),
        }


class MembershipObservabilityStore:
    """Counts membership lifecycle events for dashboards and alerting."""

    def __init__(self) -> None:
        self._joins: Dict[str, int] = defaultdict(int)
        self._codes: Dict[str, int] = defaultdict(int)
        self._stamps: Dict[str, int] = defaultdict(int)
        self._claims: Dict[str, int] = defaultdict(int)
        self._deletions: Dict[str, int] = defaultdict(int)

    def record_join(self, outcome: str) -> None:
        self._joins[outcome] += 1

    def record_code_allocation(self, attempts: int, *, exhausted: bool) -> None:
        self._codes["allocations"] += 1
        self._codes["attempts"] += attempts
        if exhausted:
            self._codes["exhausted"] += 1

    def record_stamp(self, *, completed: bool) -> None:
        self._stamps["total"] += 1
        if completed:
            self._stamps["completed_cards"] += 1

    def record_stamp_conflict(self) -> None:
        self._stamps["write_conflicts"] += 1

    def record_claim(self, outcome: str) -> None:
        self._claims[outcome] += 1

    def record_deletion(self, root: str, *, deleted: int, failed: int) -> None:
        self._deletions[f"{root}:runs"] += 1
        self._deletions["records_deleted"] += deleted
        if failed:
            self._deletions["records_failed"] += failed
            self._deletions[f"{root}:incomplete"] += 1

    def snapshot(self) -> MembershipSnapshot:
        return MembershipSnapshot(
            joins=dict(self._joins),
            codes=dict(self._codes),
            stamps=dict(self._stamps),
            claims=dict(self._claims),
            deletions=dict(self._deletions),
        )

    def reset(self) -> None:
        self._joins.clear()
        self._codes.clear()
        self._stamps.clear()
        self._claims.clear()
        self._deletions.clear()


_STORE = MembershipObservabilityStore()


def get_membership_store() -> MembershipObservabilityStore:
    return _STORE


__all__ = ["get_membership_store", "MembershipObservabilityStore", "MembershipSnapshot"]
