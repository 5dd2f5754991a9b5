from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any


@dataclass(frozen=True)
class RenderedPush:
    title: str
    body: str
    data: dict[str, Any] = field(default_factory=dict)


def render_stamp_added(*, business_name: str, current_stamps: int, total_slots: int) -> RenderedPush:
    remaining = max(total_slots - current_stamps, 0)
    noun = "stamp" if remaining == 1 else "stamps"
    return RenderedPush(
        title="Stamp added!",
        body=f"You got a stamp at {business_name}. {remaining} more {noun} until your reward.",
        data={
            "type": "stamp_added",
            "businessName": business_name,
            "currentStamps": current_stamps,
            "totalSlots": total_slots,
        },
    )


def render_card_completed(*, business_name: str, total_slots: int) -> RenderedPush:
    return RenderedPush(
        title="Card completed!",
        body=f"Congratulations! Your {business_name} card is full. Your reward is ready to claim.",
        data={
            "type": "card_completed",
            "businessName": business_name,
            "currentStamps": total_slots,
            "totalSlots": total_slots,
        },
    )


def render_reward_redeemed(*, business_name: str) -> RenderedPush:
    return RenderedPush(
        title="Reward redeemed!",
        body=f"You redeemed your reward at {business_name}. Thanks for your loyalty!",
        data={"type": "reward_redeemed", "businessName": business_name},
    )
