"""Notification service package."""

from .backend import DeliveredPush, ExpoPushBackend, InMemoryPushBackend, PushBackend
from .service import PushNotifier, stamp_message
from .templates import RenderedPush

__all__ = [
    "DeliveredPush",
    "ExpoPushBackend",
    "InMemoryPushBackend",
    "PushBackend",
    "PushNotifier",
    "RenderedPush",
    "stamp_message",
]
