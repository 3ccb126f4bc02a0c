"""
TRADE-UP Asset Identity

Value types shared by every escrow component:

    AssetRef        one concrete asset instance (class handle + id)
    AssetSpec       a pattern over assets; the final spec may use the wildcard
    DepositRecord   one accepted deposit in the custody ledger

Asset classes are opaque handles. Two references name the same class only if
they hold the *same object*; equality of class objects is never consulted.

Copyright (c) 2026 Momentum. All rights reserved.
"""

from __future__ import annotations

from dataclasses import dataclass, replace
from typing import Any, Dict

# Reserved asset id: "any instance of this class". Largest 256-bit value so it
# can never collide with a real instance id.
WILDCARD_ASSET_ID = 2**256 - 1


def asset_class_name(asset_class: Any) -> str:
    """Human-readable label for an asset class handle."""
    name = getattr(asset_class, "name", None)
    if isinstance(name, str) and name:
        return name
    return f"{type(asset_class).__name__}@{id(asset_class):x}"


@dataclass(frozen=True)
class AssetRef:
    """A specific asset instance held (or once held) by the escrow."""
    asset_class: Any
    asset_id: int

    def same_asset(self, other: "AssetRef") -> bool:
        return self.asset_class is other.asset_class and self.asset_id == other.asset_id

    def to_dict(self) -> Dict[str, Any]:
        return {
            "asset_class": asset_class_name(self.asset_class),
            "asset_id": self.asset_id,
        }


@dataclass(frozen=True)
class AssetSpec:
    """
    Asset specification used for the starting and final links of a chain.

    An exact spec matches exactly one instance. A wildcard spec
    (asset_id == WILDCARD_ASSET_ID) matches every instance of its class.
    """
    asset_class: Any
    asset_id: int

    @classmethod
    def any_of(cls, asset_class: Any) -> "AssetSpec":
        return cls(asset_class=asset_class, asset_id=WILDCARD_ASSET_ID)

    @property
    def is_wildcard(self) -> bool:
        return self.asset_id == WILDCARD_ASSET_ID

    def matches(self, asset: AssetRef) -> bool:
        """Exact id match, or any id of the same class for a wildcard spec."""
        if asset.asset_class is not self.asset_class:
            return False
        return self.is_wildcard or asset.asset_id == self.asset_id

    def matches_exactly(self, asset: AssetRef) -> bool:
        return asset.asset_class is self.asset_class and asset.asset_id == self.asset_id

    def to_dict(self) -> Dict[str, Any]:
        return {
            "asset_class": asset_class_name(self.asset_class),
            "asset_id": "*" if self.is_wildcard else self.asset_id,
        }


@dataclass(frozen=True)
class DepositRecord:
    """
    One accepted deposit.

    Records are immutable; redemption replaces a record with its consumed copy
    via `as_consumed()`, so asset and depositor can never change after append.
    """
    asset: AssetRef
    depositor: str
    consumed: bool = False

    def as_consumed(self) -> "DepositRecord":
        return replace(self, consumed=True)

    def to_dict(self) -> Dict[str, Any]:
        return {
            **self.asset.to_dict(),
            "depositor": self.depositor,
            "consumed": self.consumed,
        }
