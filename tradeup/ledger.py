"""
TRADE-UP Custody Ledger

Append-only, insertion-ordered sequence of deposit records.

Invariants:
    - the ledger never shrinks and never reorders
    - a record's asset and depositor never change after append
    - `consumed` only moves false -> true, at most once per index

The ledger itself performs no acceptance checks; the deposit-acceptance gate in
`tradeup.escrow` decides what may be appended.

Copyright (c) 2026 Momentum. All rights reserved.
"""

from __future__ import annotations

from contextlib import contextmanager
from typing import Iterator, List, Optional, Tuple

from tradeup.assets import DepositRecord
from tradeup.hardening import InvariantViolation


class CustodyLedger:
    """
    Ordered custody history of an escrow.

    Example:
        ledger = CustodyLedger()
        index = ledger.append(DepositRecord(asset=ref, depositor="alice"))
        with ledger.transaction():
            ledger.mark_consumed(index)
            provider.transfer_from(...)   # raising here undoes the flip
    """

    def __init__(self) -> None:
        self._records: List[DepositRecord] = []
        # Indices flipped inside the innermost open transaction
        self._journal: Optional[List[int]] = None

    def __len__(self) -> int:
        return len(self._records)

    def __getitem__(self, index: int) -> DepositRecord:
        return self._records[index]

    def __iter__(self) -> Iterator[DepositRecord]:
        return iter(tuple(self._records))

    @property
    def is_empty(self) -> bool:
        return not self._records

    def snapshot(self) -> Tuple[DepositRecord, ...]:
        """Immutable view of the current contents."""
        return tuple(self._records)

    def last_index(self) -> int:
        if not self._records:
            raise InvariantViolation("Empty ledger has no last index")
        return len(self._records) - 1

    def append(self, record: DepositRecord) -> int:
        """Append an unconsumed record and return its index."""
        if record.consumed:
            raise InvariantViolation("Records enter the ledger unconsumed")
        self._records.append(record)
        return len(self._records) - 1

    def mark_consumed(self, index: int) -> DepositRecord:
        """Flip `consumed` at `index`; a second flip is an invariant violation."""
        current = self._records[index]
        if current.consumed:
            raise InvariantViolation(f"Deposit {index} already consumed")
        consumed = current.as_consumed()
        self._records[index] = consumed
        if self._journal is not None:
            self._journal.append(index)
        return consumed

    @contextmanager
    def transaction(self) -> Iterator["CustodyLedger"]:
        """
        Group consumed flips into one unit.

        If the block raises, every flip made inside it is reverted before the
        exception propagates, so the flip is never observed as committed.
        A nested transaction that completes is committed on its own; a later
        failure of the enclosing block does not revert it.
        """
        outer = self._journal
        self._journal = []
        try:
            yield self
        except BaseException:
            for index in reversed(self._journal):
                record = self._records[index]
                self._records[index] = DepositRecord(
                    asset=record.asset,
                    depositor=record.depositor,
                    consumed=False,
                )
            raise
        finally:
            self._journal = outer

    def predecessor_index(self, index: int) -> int:
        """
        Index whose asset the depositor at `index` receives on success.

        The predecessor of index 0 is the last index: the chain's originator
        receives the winning asset.
        """
        if not 0 <= index < len(self._records):
            raise IndexError(f"No deposit at index {index}")
        return self.last_index() if index == 0 else index - 1
