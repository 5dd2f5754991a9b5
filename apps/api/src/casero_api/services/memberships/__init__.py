"""Membership, stamp and reward workflows."""

from .codes import CardCodeAllocator, CodeAllocation, find_code_holder  # noqa: F401
from .deletion import (  # noqa: F401
    CascadeDeletionOrchestrator,
    DeletionPlan,
    DeletionWorkItem,
)
from .errors import (  # noqa: F401
    AlreadyMemberError,
    CodeExhaustedError,
    FailedDeletion,
    IncompleteDeletionError,
    IneligibleClaimError,
    MembershipError,
    NotFoundError,
    StampRejectedError,
)
from .hydration import MembershipHydrator  # noqa: F401
from .ledger import StampLedger, StampReceipt  # noqa: F401
from .registry import MembershipRegistry  # noqa: F401
from .rewards import CardState, RedemptionReceipt, RewardClaimWorkflow, state_of  # noqa: F401
