"""Fire-and-forget push notifications for membership facts."""

from __future__ import annotations

import asyncio
from typing import Optional

from loguru import logger

from casero_api.core.settings import settings
from casero_api.db.store import DocumentStore
from casero_api.models import User

from .backend import ExpoPushBackend, PushBackend
from .templates import RenderedPush, render_card_completed, render_reward_redeemed, render_stamp_added


def stamp_message(*, business_name: str, current_stamps: int, total_slots: int) -> RenderedPush:
    """Completion message once the card is full, a progress message otherwise."""

    if current_stamps >= total_slots:
        return render_card_completed(business_name=business_name, total_slots=total_slots)
    return render_stamp_added(business_name=business_name, current_stamps=current_stamps, total_slots=total_slots)


class PushNotifier:
    """Looks up the customer's push token and hands the message to a backend.

    Delivery is best effort: failures are logged and never reach the caller.
    Workflows use :meth:`schedule` so a stamp or claim returns without waiting
    on the push gateway; :meth:`drain` awaits whatever is still in flight.
    """

    def __init__(self, store: DocumentStore, backend: Optional[PushBackend] = None) -> None:
        self._store = store
        self._backend = backend or self._build_default_backend()
        self._sent: list[RenderedPush] = []
        self._pending: set[asyncio.Task[None]] = set()

    @property
    def sent(self) -> list[RenderedPush]:
        return self._sent

    @property
    def enabled(self) -> bool:
        return self._backend is not None

    @staticmethod
    def _build_default_backend() -> Optional[PushBackend]:
        if not settings.push_notifications_enabled:
            return None
        return ExpoPushBackend()

    async def stamp_added(
        self,
        customer_id: str,
        *,
        business_name: str,
        current_stamps: int,
        total_slots: int,
    ) -> None:
        message = stamp_message(business_name=business_name, current_stamps=current_stamps, total_slots=total_slots)
        await self._deliver(customer_id, message)

    async def reward_redeemed(self, customer_id: str, *, business_name: str) -> None:
        await self._deliver(customer_id, render_reward_redeemed(business_name=business_name))

    def schedule(self, customer_id: str, message: RenderedPush) -> None:
        """Deliver ``message`` in the background on the running loop."""

        if self._backend is None:
            return
        task = asyncio.get_running_loop().create_task(self._deliver(customer_id, message))
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)

    async def drain(self) -> None:
        while self._pending:
            await asyncio.gather(*list(self._pending))

    async def _deliver(self, customer_id: str, message: RenderedPush) -> None:
        if self._backend is None:
            return
        try:
            user = await self._store.get(User, customer_id)
            if user is None or not user.push_token:
                logger.debug("No push token for customer", customer_id=customer_id)
                return
            await self._backend.deliver(user.push_token, message)
        except Exception as exc:  # noqa: BLE001
            logger.exception("Push notification dispatch failed", customer_id=customer_id, error=str(exc))
            return
        self._sent.append(message)
        logger.info("Push notification sent", customer_id=customer_id, type=message.data.get("type"))
