"""Membership domain errors.

Each error carries a stable ``code`` so callers can branch without parsing
messages; user-facing wording belongs to the presentation layer.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Sequence


class MembershipError(RuntimeError):
    """Base exception for membership and stamp workflows."""

    code = "MEMBERSHIP_ERROR"


class NotFoundError(MembershipError):
    """Raised when a business, program or membership does not exist."""

    code = "NOT_FOUND"

    def __init__(self, collection: str, doc_id: str, detail: str | None = None) -> None:
        message = f"{collection} '{doc_id}' not found"
        if detail:
            message = f"{message}: {detail}"
        super().__init__(message)
        self.collection = collection
        self.doc_id = doc_id


class AlreadyMemberError(MembershipError):
    """Raised when a customer already holds an unclaimed card for the program."""

    code = "ALREADY_MEMBER"

    def __init__(self, customer_id: str, loyalty_card_id: str) -> None:
        super().__init__(
            f"Customer '{customer_id}' already holds an active card for program '{loyalty_card_id}'"
        )
        self.customer_id = customer_id
        self.loyalty_card_id = loyalty_card_id


class CodeExhaustedError(MembershipError):
    """Raised when no free card code was found within the attempt budget."""

    code = "CODE_EXHAUSTED"

    def __init__(self, business_id: str, attempts: int) -> None:
        super().__init__(f"No free card code for business '{business_id}' after {attempts} attempts")
        self.business_id = business_id
        self.attempts = attempts


class IneligibleClaimError(MembershipError):
    """Raised when a reward is claimed on a card that is not eligible."""

    code = "INELIGIBLE_CLAIM"

    def __init__(self, customer_card_id: str, reason: str) -> None:
        super().__init__(f"Customer card '{customer_card_id}' cannot claim its reward: {reason}")
        self.customer_card_id = customer_card_id
        self.reason = reason


class StampRejectedError(MembershipError):
    """Raised when a stamp would push a card past its slots or onto a claimed card."""

    code = "STAMP_REJECTED"

    def __init__(self, customer_card_id: str, reason: str) -> None:
        super().__init__(f"Customer card '{customer_card_id}' cannot receive a stamp: {reason}")
        self.customer_card_id = customer_card_id
        self.reason = reason


@dataclass(frozen=True, slots=True)
class FailedDeletion:
    collection: str
    doc_id: str
    error: str


class IncompleteDeletionError(MembershipError):
    """Raised when a cascade delete left records behind; the plan can be resumed."""

    code = "INCOMPLETE_DELETION"

    def __init__(self, root_collection: str, root_id: str, failed: Sequence[FailedDeletion], plan=None) -> None:
        super().__init__(
            f"Deleting {root_collection} '{root_id}' left {len(failed)} record(s) behind"
        )
        self.root_collection = root_collection
        self.root_id = root_id
        self.failed = list(failed)
        self.plan = plan


__all__ = [
    "AlreadyMemberError",
    "CodeExhaustedError",
    "FailedDeletion",
    "IncompleteDeletionError",
    "IneligibleClaimError",
    "MembershipError",
    "NotFoundError",
    "StampRejectedError",
]
