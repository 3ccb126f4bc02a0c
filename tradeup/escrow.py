"""
TRADE-UP Escrow

Chain-of-custody escrow for non-fungible assets. Participants deposit one asset
each; once the last deposit matches the final spec the chain has succeeded and
each participant may claim the asset deposited just before theirs. If the
chain expires first, every depositor may reclaim their own asset.

Operations:

    on_asset_received   inbound deposit notification from a custody provider;
                        verifies the notification, then runs the gate
    supports_interface  capability query used by providers before transferring
    status              derived status at the current (or given) time
    redeem_at           redeem one ledger index
    redeem_all          redeem every index the caller may redeem

Deposit-acceptance gate:

    before append   status must be INACTIVE or ACTIVE
    after append    status must be ACTIVE or SUCCEEDED

The post-check is evaluated on the prospective ledger before the record is
committed, so a rejected deposit never appears in the ledger.

Each public operation runs under one re-entrant per-escrow lock.

Copyright (c) 2026 Momentum. All rights reserved.
"""

from __future__ import annotations

from typing import Any, Callable, Dict, List, Optional, Tuple
from uuid import uuid4

from tradeup.assets import AssetRef, AssetSpec, DepositRecord, asset_class_name
from tradeup.config import EscrowConfig
from tradeup.custody import (
    ASSET_RECEIVED_ACK,
    ASSET_RECEIVER_INTERFACE,
    CAPABILITY_QUERY_INTERFACE,
    AssetCustodyProvider,
    AssetReceiver,
    CustodyError,
    MintingCollaborator,
)
from tradeup.events import ChainSucceeded, DepositAccepted, Event, EventBus
from tradeup.hardening import (
    DepositRejected,
    MalformedDeposit,
    Validators,
    new_serialization_lock,
    serialized,
)
from tradeup.ledger import CustodyLedger
from tradeup.observability import EscrowLayer, get_correlation_id, get_logger, timed_operation
from tradeup.redemption import Redemption, RedemptionEngine
from tradeup.status import EscrowStatus, SystemClock, evaluate_status, resolve_now

_logger = get_logger("escrow", EscrowLayer.GATE)

SUPPORTED_INTERFACES = frozenset({CAPABILITY_QUERY_INTERFACE, ASSET_RECEIVER_INTERFACE})


class TradeUpEscrow(AssetReceiver):
    """
    One trade-up chain.

    Example:
        clock = ManualClock(start=0)
        escrow = TradeUpEscrow.create(
            starting=AssetSpec(kittens, 1),
            final=AssetSpec.any_of(dragons),
            ttl_seconds=100,
            clock=clock,
        )
        kittens.safe_transfer_from("alice", escrow, 1)    # chain ACTIVE
        dragons.safe_transfer_from("bob", escrow, 42)     # chain SUCCEEDED
        escrow.redeem_at("bob", 1)      # bob receives kitten #1
        escrow.redeem_at("alice", 0)    # alice receives dragon #42
    """

    def __init__(
        self,
        config: EscrowConfig,
        clock: Optional[Callable[[], int]] = None,
        address: Optional[str] = None,
        event_bus: Optional[EventBus] = None,
    ):
        if config.minter is not None and not isinstance(config.minter, MintingCollaborator):
            raise TypeError(f"minter must be a MintingCollaborator, got {type(config.minter).__name__}")

        self._config = config
        self._clock = clock or SystemClock()
        self._address = address or f"escrow-{uuid4().hex[:12]}"
        self._ledger = CustodyLedger()
        self._bus = event_bus or EventBus()
        self._engine = RedemptionEngine(self._ledger, config, self._address, self._bus)
        self._lock = new_serialization_lock()

    @classmethod
    def create(
        cls,
        starting: AssetSpec,
        final: AssetSpec,
        ttl_seconds: Optional[int] = None,
        clock: Optional[Callable[[], int]] = None,
        minter: Optional[MintingCollaborator] = None,
        address: Optional[str] = None,
        event_bus: Optional[EventBus] = None,
        max_chain_length: Optional[int] = None,
    ) -> "TradeUpEscrow":
        """Create an escrow expiring `ttl_seconds` from the clock's current time."""
        clock = clock or SystemClock()
        config = EscrowConfig.create(
            starting=starting,
            final=final,
            now=clock(),
            ttl_seconds=ttl_seconds,
            minter=minter,
            max_chain_length=max_chain_length,
        )
        return cls(config, clock=clock, address=address, event_bus=event_bus)

    # -------------------------------------------------------------------------
    # Read access
    # -------------------------------------------------------------------------

    @property
    def address(self) -> str:
        return self._address

    @property
    def config(self) -> EscrowConfig:
        return self._config

    @property
    def event_bus(self) -> EventBus:
        return self._bus

    def deposits(self) -> Tuple[DepositRecord, ...]:
        return self._ledger.snapshot()

    def deposit_at(self, index: int) -> DepositRecord:
        return self._ledger[index]

    def __len__(self) -> int:
        return len(self._ledger)

    def status(self, now: Optional[int] = None) -> EscrowStatus:
        """Status derived from the ledger and the clock; never cached."""
        return evaluate_status(self._ledger.snapshot(), resolve_now(self._clock, now), self._config)

    def supports_interface(self, interface_id: str) -> bool:
        return interface_id in SUPPORTED_INTERFACES

    def describe(self, now: Optional[int] = None) -> Dict[str, Any]:
        now = resolve_now(self._clock, now)
        return {
            "address": self._address,
            "status": self.status(now).value,
            "now": now,
            "config": self._config.to_dict(),
            "deposits": [record.to_dict() for record in self._ledger],
        }

    # -------------------------------------------------------------------------
    # Deposit notification
    # -------------------------------------------------------------------------

    @timed_operation(_logger, "on_asset_received")
    @serialized
    def on_asset_received(
        self,
        asset_class: Any,
        from_identity: str,
        asset_id: int,
        data: bytes = b"",
    ) -> str:
        """
        Accept custody of an asset just transferred to this escrow.

        Returns ASSET_RECEIVED_ACK. Raises MalformedDeposit if the notification
        cannot be trusted, and DepositRejected if the gate refuses it.
        """
        depositor = self._verify_notification(asset_class, from_identity, asset_id, data)
        self._accept(DepositRecord(asset=AssetRef(asset_class, asset_id), depositor=depositor))
        return ASSET_RECEIVED_ACK

    def _verify_notification(
        self,
        asset_class: Any,
        from_identity: Any,
        asset_id: Any,
        data: Any,
    ) -> str:
        if data:
            self._refuse("auxiliary data not accepted", asset_id=asset_id)

        if not isinstance(asset_class, AssetCustodyProvider):
            self._refuse(
                "caller is not an asset custody provider",
                caller_type=type(asset_class).__name__,
            )

        checked_id = Validators.validate_asset_id(asset_id)
        if not checked_id.is_valid:
            self._refuse(str(checked_id.errors[0]), asset_id=asset_id)

        identity = Validators.validate_identity(from_identity, "from_identity")
        if not identity.is_valid:
            self._refuse(str(identity.errors[0]))

        try:
            owner = asset_class.owner_of(asset_id)
        except CustodyError as e:
            raise self._refusal(f"ownership query failed: {e}", asset_id=asset_id) from e
        if owner != self._address:
            self._refuse(
                "asset is not held by this escrow",
                asset_class=asset_class_name(asset_class),
                asset_id=asset_id,
                owner=owner,
            )

        # One ledger entry per asset held in custody.
        incoming = AssetRef(asset_class, asset_id)
        if any(record.asset.same_asset(incoming) for record in self._ledger):
            self._refuse(
                "asset already recorded in this escrow",
                asset_class=asset_class_name(asset_class),
                asset_id=asset_id,
            )

        return identity.sanitized_value

    def _refusal(self, reason: str, **context: Any) -> MalformedDeposit:
        _logger.warning(
            f"deposit notification refused: {reason}",
            operation="on_asset_received",
            error_code=MalformedDeposit.error_code,
            **context,
        )
        return MalformedDeposit(reason)

    def _refuse(self, reason: str, **context: Any) -> None:
        raise self._refusal(reason, **context)

    def _accept(self, record: DepositRecord) -> int:
        """Deposit-acceptance gate."""
        now = self._clock()
        current = self._ledger.snapshot()

        before = evaluate_status(current, now, self._config)
        if not before.accepts_deposits:
            self._reject(f"chain already concluded ({before.value})", record, before)

        after = evaluate_status(current + (record,), now, self._config)
        if after not in (EscrowStatus.ACTIVE, EscrowStatus.SUCCEEDED):
            self._reject(f"deposit leaves the chain {after.value}", record, after)

        limit = self._config.max_chain_length
        if limit and len(current) + 1 > limit:
            self._reject(f"chain length limit {limit} reached", record, before)

        index = self._ledger.append(record)
        _logger.info(
            "deposit accepted",
            operation="deposit",
            index=index,
            depositor=record.depositor,
            asset_class=asset_class_name(record.asset.asset_class),
            asset_id=record.asset.asset_id,
            status=after.value,
        )
        self._publish(DepositAccepted(
            index=index,
            depositor=record.depositor,
            asset_class=asset_class_name(record.asset.asset_class),
            asset_id=record.asset.asset_id,
            status=after.value,
            chain_time=now,
        ))
        if after is EscrowStatus.SUCCEEDED:
            _logger.info("chain succeeded", operation="deposit", chain_length=index + 1)
            self._publish(ChainSucceeded(final_index=index, chain_length=index + 1, chain_time=now))
        return index

    def _reject(self, reason: str, record: DepositRecord, status: EscrowStatus) -> None:
        _logger.warning(
            f"deposit rejected: {reason}",
            operation="deposit",
            error_code=DepositRejected.error_code,
            depositor=record.depositor,
            asset_class=asset_class_name(record.asset.asset_class),
            asset_id=record.asset.asset_id,
            status=status.value,
        )
        raise DepositRejected(reason)

    # -------------------------------------------------------------------------
    # Redemption
    # -------------------------------------------------------------------------

    @timed_operation(_logger, "redeem_at")
    @serialized
    def redeem_at(self, caller: str, index: int) -> Redemption:
        """Redeem the entry at `index` for `caller`."""
        return self._engine.redeem_at(caller, index, self.status())

    @timed_operation(_logger, "redeem_all")
    @serialized
    def redeem_all(self, caller: str) -> List[Redemption]:
        """Redeem every entry `caller` deposited and has not yet redeemed."""
        return self._engine.redeem_all(caller, self.status())

    def _publish(self, event: Event) -> None:
        event.correlation_id = get_correlation_id()
        event.escrow_address = self._address
        self._bus.publish(event)
