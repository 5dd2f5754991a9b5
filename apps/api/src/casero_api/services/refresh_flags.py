"""Cross-view invalidation flags.

A mutation on one surface (joining a program, receiving a stamp) marks the
flags; each consuming view checks-and-clears its own flag before deciding
whether to reload.
"""

from __future__ import annotations

from enum import Enum

from loguru import logger


class RefreshTarget(str, Enum):
    BUSINESS_DISCOVERY = "business_discovery"
    CUSTOMER_HOME = "customer_home"


class RefreshFlags:
    def __init__(self) -> None:
        self._pending: set[RefreshTarget] = set()

    def mark(self, *targets: RefreshTarget) -> None:
        resolved = [RefreshTarget(target) for target in targets]
        self._pending.update(resolved)
        logger.debug("Refresh flags set", targets=[target.value for target in resolved])

    def mark_all(self) -> None:
        self.mark(*RefreshTarget)

    def is_set(self, target: RefreshTarget) -> bool:
        return RefreshTarget(target) in self._pending

    def consume(self, target: RefreshTarget) -> bool:
        """Return whether ``target`` was flagged, clearing it."""
        target = RefreshTarget(target)
        if target in self._pending:
            self._pending.discard(target)
            return True
        return False

    def clear_all(self) -> None:
        self._pending.clear()


__all__ = ["RefreshFlags", "RefreshTarget"]
