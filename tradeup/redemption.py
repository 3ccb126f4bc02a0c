"""
TRADE-UP Redemption Engine

Pays out a concluded chain one ledger entry at a time.

Redemption rule for the entry at index i (record `cur`):

    precondition    caller == cur.depositor and not cur.consumed
    EXPIRED         cur's own asset goes back to cur.depositor   (reclaim)
    SUCCEEDED       the asset at prev(i) goes to cur.depositor   (trade)
                    prev(i) = i - 1, and prev(0) = last index (wrap-around),
                    so the chain's originator receives the winning asset

Ordering within one entry:

    1. flip cur.consumed           (ledger, inside a transaction)
    2. issue the transfer          (external; may call back into the escrow)
    3. commit                      (a raising transfer reverts step 1)
    4. mint reward, if configured  (SUCCEEDED only)

Because step 1 precedes step 2, a re-entrant redemption of the same index made
from inside the transfer sees consumed == True and fails its precondition.

Copyright (c) 2026 Momentum. All rights reserved.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, List, Optional

from tradeup.assets import AssetRef, DepositRecord, asset_class_name
from tradeup.config import EscrowConfig
from tradeup.events import AssetRedeemed, EventBus, TokenMinted
from tradeup.hardening import ChainStillActive, NothingToRedeem, Validators
from tradeup.ledger import CustodyLedger
from tradeup.observability import EscrowLayer, get_correlation_id, get_logger
from tradeup.status import EscrowStatus

_logger = get_logger("engine", EscrowLayer.REDEMPTION)


class RedemptionKind(Enum):
    """What a redemption pays out."""
    TRADE = "trade"
    RECLAIM = "reclaim"


@dataclass(frozen=True)
class Redemption:
    """Outcome of one successful per-index redemption."""
    index: int
    recipient: str
    asset: AssetRef
    kind: RedemptionKind
    source_index: int
    minted: Any = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "index": self.index,
            "recipient": self.recipient,
            **self.asset.to_dict(),
            "kind": self.kind.value,
            "source_index": self.source_index,
            "minted": self.minted,
        }


class RedemptionEngine:
    """
    Executes redemptions against a custody ledger.

    The engine is handed the status evaluated by its caller for the current
    operation; it never caches status between calls.

    Minting runs only after a trade has committed. If the minter raises, the
    error propagates to the caller but the entry stays consumed and the asset
    has already moved to the caller; neither is undone.
    """

    def __init__(
        self,
        ledger: CustodyLedger,
        config: EscrowConfig,
        escrow_address: str,
        event_bus: Optional[EventBus] = None,
    ):
        self._ledger = ledger
        self._config = config
        self._address = escrow_address
        self._bus = event_bus

    def redeem_at(self, caller: str, index: int, status: EscrowStatus) -> Redemption:
        """Redeem one index or raise NothingToRedeem."""
        self._require_not_active(status)
        checked = Validators.validate_index(index, len(self._ledger))
        if not checked.is_valid:
            raise NothingToRedeem(str(checked.errors[0]))

        redemption = self._try_redeem(caller, index, status)
        if redemption is None:
            raise NothingToRedeem(
                f"Nothing to redeem at index {index} for {caller} (status {status.value})"
            )
        return redemption

    def redeem_all(self, caller: str, status: EscrowStatus) -> List[Redemption]:
        """Redeem every index the caller may redeem; others are skipped."""
        self._require_not_active(status)
        redemptions: List[Redemption] = []
        for index in range(len(self._ledger)):
            redemption = self._try_redeem(caller, index, status)
            if redemption is not None:
                redemptions.append(redemption)
        return redemptions

    @staticmethod
    def _precondition(caller: str, record: DepositRecord) -> bool:
        return record.depositor == caller and not record.consumed

    @staticmethod
    def _require_not_active(status: EscrowStatus) -> None:
        if status is EscrowStatus.ACTIVE:
            raise ChainStillActive("Chain is still active; redemption opens on success or expiry")

    def _try_redeem(
        self,
        caller: str,
        index: int,
        status: EscrowStatus,
    ) -> Optional[Redemption]:
        record = self._ledger[index]
        if not self._precondition(caller, record):
            return None

        if status is EscrowStatus.EXPIRED:
            kind = RedemptionKind.RECLAIM
            source_index = index
        elif status is EscrowStatus.SUCCEEDED:
            kind = RedemptionKind.TRADE
            source_index = self._ledger.predecessor_index(index)
        else:
            # INACTIVE has no payout branch
            return None

        asset = self._ledger[source_index].asset
        with self._ledger.transaction():
            self._ledger.mark_consumed(index)
            asset.asset_class.transfer_from(self._address, record.depositor, asset.asset_id)

        _logger.info(
            "redeemed",
            operation="redeem",
            index=index,
            recipient=record.depositor,
            kind=kind.value,
            source_index=source_index,
            asset_class=asset_class_name(asset.asset_class),
            asset_id=asset.asset_id,
        )
        self._publish(AssetRedeemed(
            index=index,
            recipient=record.depositor,
            asset_class=asset_class_name(asset.asset_class),
            asset_id=asset.asset_id,
            kind=kind.value,
            source_index=source_index,
        ))

        minted = None
        if kind is RedemptionKind.TRADE and self._config.minter is not None:
            minted = self._config.minter.mint_for(record.depositor)
            _logger.info("reward minted", operation="mint", index=index, recipient=record.depositor, token=minted)
            self._publish(TokenMinted(index=index, recipient=record.depositor, token=str(minted)))

        return Redemption(
            index=index,
            recipient=record.depositor,
            asset=asset,
            kind=kind,
            source_index=source_index,
            minted=minted,
        )

    def _publish(self, event) -> None:
        if self._bus is None:
            return
        event.correlation_id = get_correlation_id()
        event.escrow_address = self._address
        self._bus.publish(event)
