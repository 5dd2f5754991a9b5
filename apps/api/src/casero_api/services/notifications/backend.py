"""Push delivery backends."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Protocol

import httpx
from loguru import logger

from casero_api.core.settings import settings

from .templates import RenderedPush


class PushBackend(Protocol):
    async def deliver(self, token: str, message: RenderedPush) -> None: ...


class ExpoPushBackend:
    """Sends push messages through the Expo push API."""

    def __init__(
        self,
        *,
        api_url: str | None = None,
        timeout_seconds: float | None = None,
        ttl_seconds: int | None = None,
        http_client: httpx.AsyncClient | None = None,
    ) -> None:
        self._api_url = api_url or settings.push_api_url
        self._timeout = timeout_seconds or settings.push_timeout_seconds
        self._ttl = ttl_seconds or settings.push_message_ttl_seconds
        self._http_client = http_client

    @staticmethod
    def is_expo_token(token: str) -> bool:
        return (token.startswith("ExponentPushToken[") or token.startswith("ExpoPushToken[")) and token.endswith("]")

    async def deliver(self, token: str, message: RenderedPush) -> None:
        if not self.is_expo_token(token):
            logger.warning("Skipping push to non-Expo token", token=token[:24])
            return

        payload = {
            "to": token,
            "sound": "default",
            "title": message.title,
            "body": message.body,
            "data": message.data,
            "priority": "high",
            "ttl": self._ttl,
        }

        close_client = False
        client = self._http_client
        if client is None:
            client = httpx.AsyncClient(timeout=self._timeout)
            close_client = True

        try:
            response = await client.post(self._api_url, json=payload, headers={"Accept": "application/json"})
            response.raise_for_status()
        finally:
            if close_client:
                await client.aclose()


@dataclass(frozen=True)
class DeliveredPush:
    token: str
    message: RenderedPush


@dataclass
class InMemoryPushBackend:
    """Keeps delivered pushes in memory; used by tests and local runs."""

    delivered: list[DeliveredPush] = field(default_factory=list)

    async def deliver(self, token: str, message: RenderedPush) -> None:
        self.delivered.append(DeliveredPush(token=token, message=message))
