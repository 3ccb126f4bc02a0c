"""
TRADE-UP Custody Collaborators

Interfaces the escrow needs from the outside world, and an in-memory
reference collection implementing them.

    AssetCustodyProvider   ownership query + transfer for one asset class
    AssetReceiver          inbound notification + capability query
    MintingCollaborator    optional reward minting on successful redemption

The provider object *is* the asset class handle: an AssetRef's asset_class is
the provider that custodies it, so the escrow transfers an asset by calling
`ref.asset_class.transfer_from(...)`.

Receiver protocol (mirrors safe-transfer semantics of NFT collections):

    ┌──────────┐ safe_transfer_from ┌────────────┐ on_asset_received ┌────────┐
    │ depositor│───────────────────▶│ collection │──────────────────▶│ escrow │
    └──────────┘                    └────────────┘◀──────────────────└────────┘
                                       ack == ASSET_RECEIVED_ACK, or revert

Copyright (c) 2026 Momentum. All rights reserved.
"""

from __future__ import annotations

import itertools
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Dict, Iterable, List, Optional, Union

from tradeup.observability import EscrowLayer, get_logger

# Capability identifiers understood by supports_interface()
CAPABILITY_QUERY_INTERFACE = "0x01ffc9a7"
ASSET_RECEIVER_INTERFACE = "0x150b7a02"

# Value a receiver must return to accept an inbound transfer
ASSET_RECEIVED_ACK = ASSET_RECEIVER_INTERFACE

_logger = get_logger("collection", EscrowLayer.CUSTODY)


class CustodyError(Exception):
    """Asset provider refused a transfer."""


class NotOwner(CustodyError):
    """Sender does not own the asset."""


class UnknownAsset(CustodyError):
    """No such asset in the collection."""


class UnsupportedReceiver(CustodyError):
    """Recipient does not accept assets, or refused this one."""


# =============================================================================
# INTERFACES
# =============================================================================

class AssetCustodyProvider(ABC):
    """Ownership registry and transfer mechanism for one asset class."""

    @abstractmethod
    def owner_of(self, asset_id: int) -> str:
        """Current owner identity of `asset_id`."""

    @abstractmethod
    def transfer_from(self, sender: str, recipient: str, asset_id: int) -> None:
        """Move `asset_id` from `sender` to `recipient`."""


class MintingCollaborator(ABC):
    """Credits a participant with a newly minted token."""

    @abstractmethod
    def mint_for(self, identity: str) -> Any:
        """Mint a token owned by `identity` and return its id."""


class AssetReceiver(ABC):
    """A party that can take custody of assets through safe transfers."""

    @property
    @abstractmethod
    def address(self) -> str:
        """Identity under which received assets are owned."""

    @abstractmethod
    def supports_interface(self, interface_id: str) -> bool:
        """Capability query."""

    @abstractmethod
    def on_asset_received(
        self,
        asset_class: Any,
        from_identity: str,
        asset_id: int,
        data: bytes = b"",
    ) -> str:
        """Inbound notification; must return ASSET_RECEIVED_ACK to accept."""


# =============================================================================
# REFERENCE COLLECTION
# =============================================================================

@dataclass(frozen=True)
class TransferRecord:
    """One completed ownership change."""
    asset_id: int
    sender: str
    recipient: str

    def to_dict(self) -> Dict[str, Any]:
        return {"asset_id": self.asset_id, "sender": self.sender, "recipient": self.recipient}


class InMemoryAssetCollection(AssetCustodyProvider, MintingCollaborator):
    """
    Non-fungible collection held in memory.

    Example:
        kittens = InMemoryAssetCollection("kittens")
        kittens.mint("alice", 1)
        kittens.safe_transfer_from("alice", escrow, 1)
        kittens.owner_of(1)  # -> escrow.address
    """

    def __init__(self, name: str, first_mint_id: int = 1):
        self.name = name
        self._owners: Dict[int, str] = {}
        self._next_id = itertools.count(first_mint_id)
        self.transfers: List[TransferRecord] = []

    def __repr__(self) -> str:
        return f"InMemoryAssetCollection({self.name!r})"

    def __len__(self) -> int:
        return len(self._owners)

    def mint(self, owner: str, asset_id: Optional[int] = None) -> int:
        """Create an asset owned by `owner`; picks the next free id if none given."""
        if asset_id is None:
            asset_id = next(self._next_id)
            while asset_id in self._owners:
                asset_id = next(self._next_id)
        elif asset_id in self._owners:
            raise CustodyError(f"{self.name}#{asset_id} already exists")
        self._owners[asset_id] = owner
        return asset_id

    def mint_for(self, identity: str) -> int:
        asset_id = self.mint(identity)
        _logger.debug("minted", collection=self.name, asset_id=asset_id, owner=identity)
        return asset_id

    def owner_of(self, asset_id: int) -> str:
        try:
            return self._owners[asset_id]
        except KeyError:
            raise UnknownAsset(f"{self.name}#{asset_id} does not exist") from None

    def assets_of(self, owner: str) -> List[int]:
        return sorted(a for a, o in self._owners.items() if o == owner)

    def ownership(self) -> Dict[int, str]:
        return dict(sorted(self._owners.items()))

    def transfer_from(self, sender: str, recipient: str, asset_id: int) -> None:
        owner = self.owner_of(asset_id)
        if owner != sender:
            raise NotOwner(f"{sender} does not own {self.name}#{asset_id} (owner: {owner})")
        self._owners[asset_id] = recipient
        self.transfers.append(TransferRecord(asset_id, sender, recipient))
        _logger.debug(
            "transferred",
            collection=self.name, asset_id=asset_id, sender=sender, recipient=recipient,
        )

    def safe_transfer_from(
        self,
        sender: str,
        recipient: Union[str, AssetReceiver],
        asset_id: int,
        data: bytes = b"",
    ) -> None:
        """
        Transfer and, for receiver recipients, require an acknowledgement.

        Ownership moves before the receiver is notified, so the receiver can
        verify custody. If the receiver raises or does not acknowledge, the
        transfer is undone and the error propagates.
        """
        if not isinstance(recipient, AssetReceiver):
            self.transfer_from(sender, recipient, asset_id)
            return

        if not recipient.supports_interface(ASSET_RECEIVER_INTERFACE):
            raise UnsupportedReceiver(f"{recipient.address} does not accept assets")

        self.transfer_from(sender, recipient.address, asset_id)
        record = self.transfers[-1]
        try:
            ack = recipient.on_asset_received(self, sender, asset_id, data)
        except BaseException:
            self._undo(record)
            raise
        if ack != ASSET_RECEIVED_ACK:
            self._undo(record)
            raise UnsupportedReceiver(f"{recipient.address} did not acknowledge {self.name}#{asset_id}")

    def _undo(self, record: TransferRecord) -> None:
        self._owners[record.asset_id] = record.sender
        for i in range(len(self.transfers) - 1, -1, -1):
            if self.transfers[i] is record:
                del self.transfers[i]
                break


def collections_by_name(collections: Iterable[InMemoryAssetCollection]) -> Dict[str, InMemoryAssetCollection]:
    out: Dict[str, InMemoryAssetCollection] = {}
    for collection in collections:
        if collection.name in out:
            raise CustodyError(f"Duplicate collection name: {collection.name}")
        out[collection.name] = collection
    return out
