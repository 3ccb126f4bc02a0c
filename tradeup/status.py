"""
TRADE-UP Escrow Status Evaluator

Status is never stored. It is recomputed on every query from the ledger
contents, the escrow configuration and the current time, so it cannot go
stale. Rules are evaluated in order, first match wins:

    1. last deposit matches the final spec      -> SUCCEEDED
    2. now >= expires_at                        -> EXPIRED
    3. ledger empty                             -> INACTIVE
    4. first deposit is exactly the start spec  -> ACTIVE
    5. otherwise                                -> INACTIVE

Success dominates expiry so a qualifying deposit in the last second still
wins. Expiry dominates the start check so deposits in a chain that never
started correctly can still be reclaimed.

Copyright (c) 2026 Momentum. All rights reserved.
"""

from __future__ import annotations

import time
from enum import Enum
from typing import Optional, Sequence, TYPE_CHECKING

from tradeup.assets import DepositRecord

if TYPE_CHECKING:
    from tradeup.config import EscrowConfig


class EscrowStatus(Enum):
    """Derived lifecycle status of an escrow."""
    INACTIVE = "inactive"
    ACTIVE = "active"
    SUCCEEDED = "succeeded"
    EXPIRED = "expired"

    @property
    def is_terminal(self) -> bool:
        return self in (EscrowStatus.SUCCEEDED, EscrowStatus.EXPIRED)

    @property
    def accepts_deposits(self) -> bool:
        return self in (EscrowStatus.INACTIVE, EscrowStatus.ACTIVE)


def evaluate_status(
    records: Sequence[DepositRecord],
    now: int,
    config: "EscrowConfig",
) -> EscrowStatus:
    """Pure status function of (ledger contents, clock, configuration)."""
    if records and config.final.matches(records[-1].asset):
        return EscrowStatus.SUCCEEDED
    if now >= config.expires_at:
        return EscrowStatus.EXPIRED
    if not records:
        return EscrowStatus.INACTIVE
    if config.starting.matches_exactly(records[0].asset):
        return EscrowStatus.ACTIVE
    return EscrowStatus.INACTIVE


# =============================================================================
# CLOCKS
# =============================================================================

class SystemClock:
    """Wall-clock time in whole seconds since the epoch."""

    def __call__(self) -> int:
        return int(time.time())


class ManualClock:
    """
    Caller-driven clock for simulations and tests.

    Example:
        clock = ManualClock(start=0)
        clock.advance(10)
        clock()  # -> 10
    """

    def __init__(self, start: int = 0):
        self._now = start

    def __call__(self) -> int:
        return self._now

    def set(self, now: int) -> None:
        self._now = now

    def advance(self, seconds: int) -> int:
        if seconds < 0:
            raise ValueError("Clock cannot move backwards")
        self._now += seconds
        return self._now


def resolve_now(clock, now: Optional[int] = None) -> int:
    return clock() if now is None else now
