"""Per-session cache of a customer's memberships for the discovery feed."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timedelta

from loguru import logger

from casero_api.core.clock import Clock, utcnow
from casero_api.core.settings import settings
from casero_api.schemas.loyalty import CustomerCardRecord


@dataclass(frozen=True)
class CustomerCardsSnapshot:
    """Cached snapshot of one customer's memberships."""

    customer_id: str
    all_cards: list[CustomerCardRecord] = field(default_factory=list)
    unclaimed_cards: list[CustomerCardRecord] = field(default_factory=list)
    fetched_at: datetime = field(default_factory=utcnow)

    def expires_at(self, ttl: timedelta) -> datetime:
        return self.fetched_at + ttl


class CustomerCardsCache:
    """TTL cache keyed by customer id.

    Snapshots are replaced wholesale, never patched, so a reader always sees a
    consistent pair of card lists.
    """

    def __init__(self, ttl_seconds: int | None = None, *, clock: Clock = utcnow) -> None:
        seconds = settings.discovery_cache_ttl_seconds if ttl_seconds is None else ttl_seconds
        self._ttl = timedelta(seconds=seconds)
        self._clock = clock
        self._snapshots: dict[str, CustomerCardsSnapshot] = {}

    @property
    def ttl(self) -> timedelta:
        return self._ttl

    def get(self, customer_id: str) -> CustomerCardsSnapshot | None:
        snapshot = self._snapshots.get(customer_id)
        if snapshot is None:
            return None
        if snapshot.expires_at(self._ttl) <= self._clock():
            logger.debug("Customer cards cache expired", customer_id=customer_id)
            del self._snapshots[customer_id]
            return None
        return snapshot

    def set(
        self,
        customer_id: str,
        *,
        all_cards: list[CustomerCardRecord],
        unclaimed_cards: list[CustomerCardRecord],
    ) -> CustomerCardsSnapshot:
        snapshot = CustomerCardsSnapshot(
            customer_id=customer_id,
            all_cards=list(all_cards),
            unclaimed_cards=list(unclaimed_cards),
            fetched_at=self._clock(),
        )
        self._snapshots[customer_id] = snapshot
        return snapshot

    def invalidate(self, customer_id: str) -> None:
        self._snapshots.pop(customer_id, None)

    def clear(self) -> None:
        self._snapshots.clear()


__all__ = ["CustomerCardsCache", "CustomerCardsSnapshot"]
