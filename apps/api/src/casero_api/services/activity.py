"""Read side of the stamp activity feed."""

from __future__ import annotations

from casero_api.db.store import DocumentStore, desc, where
from casero_api.models import StampActivity
from casero_api.schemas.loyalty import StampActivityRecord


class StampActivityFeed:
    """Newest-first activity rows; written only by the stamp ledger and reward workflow."""

    def __init__(self, store: DocumentStore) -> None:
        self._store = store

    async def list_for_customer_card(self, customer_card_id: str, *, limit: int | None = None) -> list[StampActivityRecord]:
        return await self._list(where("customer_card_id", "==", customer_card_id), limit=limit)

    async def list_for_business(self, business_id: str, *, limit: int | None = None) -> list[StampActivityRecord]:
        return await self._list(where("business_id", "==", business_id), limit=limit)

    async def list_for_customer(self, customer_id: str, *, limit: int | None = None) -> list[StampActivityRecord]:
        return await self._list(where("customer_id", "==", customer_id), limit=limit)

    async def _list(self, clause, *, limit: int | None) -> list[StampActivityRecord]:
        rows = await self._store.query(StampActivity, clause, order_by=[desc("timestamp")], limit=limit)
        return [StampActivityRecord.model_validate(row) for row in rows]


__all__ = ["StampActivityFeed"]
