"""
TRADE-UP: Chain-of-Custody Escrow for Non-Fungible Assets

A trade-up chain lets a sequence of participants each deposit one
non-fungible asset into an escrow. The chain starts with one exact asset and
succeeds when someone deposits an asset matching the final spec. On success
every participant claims the asset deposited immediately before theirs, and
the originator claims the final asset. If the chain expires first, every
participant reclaims their own deposit.

Architecture
────────────

    ┌─────────────────────────────────────────────────────────────────────────┐
    │                          TRADE-UP ESCROW                                 │
    │                                                                          │
    │  SURFACE                                                                 │
    │    escrow.py       Deposit notification, acceptance gate, redemption API │
    │    scenario.py     Schema-validated scenario replay                      │
    │    cli.py          simulate / validate / config commands                 │
    │                                                                          │
    │  CORE                                                                    │
    │    ledger.py       Append-only custody ledger with consumed flags        │
    │    status.py       Pure status evaluator and clocks                      │
    │    redemption.py   Trade and reclaim payouts, wrap-around rule           │
    │    assets.py       Asset references, specs and deposit records           │
    │                                                                          │
    │  COLLABORATORS                                                           │
    │    custody.py      Custody provider, receiver and minter interfaces      │
    │                                                                          │
    │  AMBIENT                                                                 │
    │    config.py       YAML/environment configuration, escrow parameters     │
    │    observability.py Structured logging with correlation ids             │
    │    events.py       Escrow event bus                                      │
    │    hardening.py    Error hierarchy, validators, serialization lock       │
    │                                                                          │
    └─────────────────────────────────────────────────────────────────────────┘

Status Precedence
─────────────────

    SUCCEEDED   last deposit matches the final spec (wins over expiry)
    EXPIRED     now >= expires_at
    INACTIVE    no deposits, or the first deposit is not the starting asset
    ACTIVE      otherwise

Copyright © 2026 Momentum. All rights reserved.
"""

__version__ = "0.1.0"

# Lazy imports to avoid circular dependencies
def __getattr__(name):
    """Lazy import TRADE-UP modules on first access."""

    if name in ("WILDCARD_ASSET_ID", "AssetRef", "AssetSpec", "DepositRecord"):
        from tradeup import assets
        return getattr(assets, name)

    if name in ("TradeUpEscrow", "SUPPORTED_INTERFACES"):
        from tradeup import escrow
        return getattr(escrow, name)

    if name in ("EscrowStatus", "evaluate_status", "ManualClock", "SystemClock"):
        from tradeup import status
        return getattr(status, name)

    if name in ("CustodyLedger",):
        from tradeup import ledger
        return getattr(ledger, name)

    if name in ("Redemption", "RedemptionKind", "RedemptionEngine"):
        from tradeup import redemption
        return getattr(redemption, name)

    if name in ("AssetCustodyProvider", "AssetReceiver", "MintingCollaborator",
                "InMemoryAssetCollection", "CustodyError", "NotOwner", "UnknownAsset",
                "UnsupportedReceiver"):
        from tradeup import custody
        return getattr(custody, name)

    if name in ("EscrowError", "MalformedDeposit", "DepositRejected",
                "ChainStillActive", "NothingToRedeem", "InvariantViolation"):
        from tradeup import hardening
        return getattr(hardening, name)

    if name in ("EscrowConfig", "ConfigManager", "get_config"):
        from tradeup import config
        return getattr(config, name)

    if name in ("EventBus", "DepositAccepted", "ChainSucceeded", "AssetRedeemed",
                "TokenMinted"):
        from tradeup import events
        return getattr(events, name)

    raise AttributeError(f"module 'tradeup' has no attribute '{name}'")

__all__ = [
    "__version__",
    # Assets
    "WILDCARD_ASSET_ID",
    "AssetRef",
    "AssetSpec",
    "DepositRecord",
    # Escrow
    "TradeUpEscrow",
    "EscrowStatus",
    "evaluate_status",
    "ManualClock",
    "SystemClock",
    "CustodyLedger",
    "Redemption",
    "RedemptionKind",
    # Collaborators
    "AssetCustodyProvider",
    "AssetReceiver",
    "MintingCollaborator",
    "InMemoryAssetCollection",
    # Errors
    "EscrowError",
    "MalformedDeposit",
    "DepositRejected",
    "ChainStillActive",
    "NothingToRedeem",
    # Config
    "EscrowConfig",
    "get_config",
]
