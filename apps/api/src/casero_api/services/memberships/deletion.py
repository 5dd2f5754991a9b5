"""Cascade deletes as a resumable, phase-ordered saga.

Children go before parents: events and rewards first, then memberships, then
the program. A phase only starts once every item of the previous phase is gone,
so a failure never strands children under a deleted parent.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from typing import Sequence, Type

from loguru import logger

from casero_api.db.base import Base
from casero_api.db.store import DocumentStore, chunked, where
from casero_api.models import CustomerCard, LoyaltyCard, Reward, Stamp, StampActivity
from casero_api.observability.memberships import get_membership_store
from casero_api.services.refresh_flags import RefreshFlags

from .errors import FailedDeletion, IncompleteDeletionError

PHASE_EVENTS = 0
PHASE_MEMBERSHIPS = 1
PHASE_PROGRAM = 2

_EVENT_MODELS: tuple[Type[Base], ...] = (Stamp, StampActivity, Reward)


@dataclass(slots=True)
class DeletionWorkItem:
    model: Type[Base]
    doc_id: str
    phase: int
    completed: bool = False
    existed: bool | None = None
    error: str | None = None

    @property
    def collection(self) -> str:
        return self.model.__tablename__


@dataclass(slots=True)
class DeletionPlan:
    """Ordered work list for deleting one root record and its dependents."""

    root_collection: str
    root_id: str
    items: list[DeletionWorkItem] = field(default_factory=list)

    @property
    def phases(self) -> list[int]:
        return sorted({item.phase for item in self.items})

    @property
    def pending(self) -> list[DeletionWorkItem]:
        return [item for item in self.items if not item.completed]

    @property
    def failed(self) -> list[DeletionWorkItem]:
        return [item for item in self.items if item.error is not None]

    @property
    def is_complete(self) -> bool:
        return all(item.completed for item in self.items)

    def items_in_phase(self, phase: int) -> list[DeletionWorkItem]:
        return [item for item in self.items if item.phase == phase]


class CascadeDeletionOrchestrator:
    def __init__(self, store: DocumentStore, *, refresh_flags: RefreshFlags | None = None) -> None:
        self._store = store
        self._refresh_flags = refresh_flags

    async def plan_loyalty_card(self, loyalty_card_id: str) -> DeletionPlan:
        memberships = await self._store.query(CustomerCard, where("loyalty_card_id", "==", loyalty_card_id))
        membership_ids = [card.id for card in memberships]

        plan = DeletionPlan(root_collection=LoyaltyCard.__tablename__, root_id=loyalty_card_id)
        plan.items.extend(await self._event_items(membership_ids))
        plan.items.extend(
            DeletionWorkItem(model=CustomerCard, doc_id=card_id, phase=PHASE_MEMBERSHIPS)
            for card_id in membership_ids
        )
        plan.items.append(DeletionWorkItem(model=LoyaltyCard, doc_id=loyalty_card_id, phase=PHASE_PROGRAM))
        return plan

    async def plan_customer_card(self, customer_card_id: str) -> DeletionPlan:
        plan = DeletionPlan(root_collection=CustomerCard.__tablename__, root_id=customer_card_id)
        plan.items.extend(await self._event_items([customer_card_id]))
        plan.items.append(DeletionWorkItem(model=CustomerCard, doc_id=customer_card_id, phase=PHASE_MEMBERSHIPS))
        return plan

    async def _event_items(self, customer_card_ids: Sequence[str]) -> list[DeletionWorkItem]:
        if not customer_card_ids:
            return []
        lookups = [
            (model, self._store.query(model, where("customer_card_id", "in", chunk)))
            for model in _EVENT_MODELS
            for chunk in chunked(list(customer_card_ids), self._store.in_filter_limit)
        ]
        batches = await asyncio.gather(*[lookup for _, lookup in lookups])
        return [
            DeletionWorkItem(model=model, doc_id=row.id, phase=PHASE_EVENTS)
            for (model, _), rows in zip(lookups, batches)
            for row in rows
        ]

    async def execute(self, plan: DeletionPlan) -> DeletionPlan:
        """Run the plan phase by phase.

        Raises:
            IncompleteDeletionError: some item of a phase failed. Later phases
                were not started; pass ``error.plan`` to ``resume``.
        """
        deleted = 0
        for phase in plan.phases:
            pending = [item for item in plan.items_in_phase(phase) if not item.completed]
            if not pending:
                continue
            results = await asyncio.gather(
                *[self._store.delete(item.model, item.doc_id) for item in pending],
                return_exceptions=True,
            )
            for item, result in zip(pending, results):
                if isinstance(result, BaseException):
                    if not isinstance(result, Exception):
                        raise result
                    item.error = f"{type(result).__name__}: {result}"
                    continue
                item.completed = True
                item.existed = bool(result)
                item.error = None
                deleted += int(item.existed)

            failures = [item for item in pending if not item.completed]
            if failures:
                get_membership_store().record_deletion(plan.root_collection, deleted=deleted, failed=len(failures))
                logger.warning(
                    "Cascade delete stopped with records left behind",
                    root_collection=plan.root_collection,
                    root_id=plan.root_id,
                    phase=phase,
                    failed=len(failures),
                )
                raise IncompleteDeletionError(
                    plan.root_collection,
                    plan.root_id,
                    [FailedDeletion(item.collection, item.doc_id, item.error or "") for item in failures],
                    plan=plan,
                )

        get_membership_store().record_deletion(plan.root_collection, deleted=deleted, failed=0)
        logger.info(
            "Cascade delete finished",
            root_collection=plan.root_collection,
            root_id=plan.root_id,
            deleted=deleted,
            planned=len(plan.items),
        )
        if self._refresh_flags is not None:
            self._refresh_flags.mark_all()
        return plan

    async def resume(self, plan: DeletionPlan) -> DeletionPlan:
        """Retry only the items that have not completed yet."""

        logger.info(
            "Resuming cascade delete",
            root_collection=plan.root_collection,
            root_id=plan.root_id,
            pending=len(plan.pending),
        )
        return await self.execute(plan)

    async def delete_loyalty_card(self, loyalty_card_id: str) -> DeletionPlan:
        return await self.execute(await self.plan_loyalty_card(loyalty_card_id))

    async def delete_customer_card(self, customer_card_id: str) -> DeletionPlan:
        return await self.execute(await self.plan_customer_card(customer_card_id))


__all__ = [
    "CascadeDeletionOrchestrator",
    "DeletionPlan",
    "DeletionWorkItem",
    "PHASE_EVENTS",
    "PHASE_MEMBERSHIPS",
    "PHASE_PROGRAM",
]
