"""Background execution grants.

Mobile hosts hand out a short, finite window of background execution time
per wake-up.  The scheduler asks for a grant at the start of every cycle and
must give it back exactly once, whatever happens to the cycle.  If the host
reclaims the window early, ``on_expire`` fires and the cycle is abandoned.
"""

from __future__ import annotations

import asyncio
import logging
from abc import ABC, abstractmethod
from typing import Callable

logger = logging.getLogger("healthsync.sync.grant")


class ExecutionGrant(ABC):
    """A host-issued background execution window."""

    @abstractmethod
    def begin(self, on_expire: Callable[[], None]) -> None:
        """Acquire the grant.  ``on_expire`` runs if the window runs out."""

    @abstractmethod
    def end(self) -> None:
        """Release the grant.  Safe to call when nothing is held."""


class UnlimitedExecutionGrant(ExecutionGrant):
    """Grant for hosts without a background time limit (servers, tests)."""

    def begin(self, on_expire: Callable[[], None]) -> None:
        return None

    def end(self) -> None:
        return None


class TimedExecutionGrant(ExecutionGrant):
    """Grant that expires after a fixed budget on the running event loop.

    Mirrors the iOS background-task contract: roughly thirty seconds per
    wake-up, with an expiration handler.
    """

    def __init__(self, budget_seconds: float = 30.0) -> None:
        if budget_seconds <= 0:
            raise ValueError("budget_seconds must be positive")
        self._budget = budget_seconds
        self._handle: asyncio.TimerHandle | None = None

    @property
    def active(self) -> bool:
        return self._handle is not None

    def begin(self, on_expire: Callable[[], None]) -> None:
        self.end()
        loop = asyncio.get_running_loop()

        def _expired() -> None:
            self._handle = None
            logger.warning("Background execution grant expired after %.1fs", self._budget)
            on_expire()

        self._handle = loop.call_later(self._budget, _expired)

    def end(self) -> None:
        if self._handle is not None:
            self._handle.cancel()
            self._handle = None


class GrantScope:
    """Wrap one cycle's use of a grant so it is released exactly once."""

    def __init__(self, grant: ExecutionGrant) -> None:
        self._grant = grant
        self._released = False

    def begin(self, on_expire: Callable[[], None]) -> None:
        self._grant.begin(on_expire)

    def release(self) -> None:
        if self._released:
            return
        self._released = True
        self._grant.end()
