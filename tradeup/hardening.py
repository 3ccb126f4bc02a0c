"""
TRADE-UP Validation and Hardening Module

Error taxonomy, input validation and the serialization primitive used by the
escrow. It addresses:

1. Rejection types for every failure the escrow can surface
2. Validation of identities and asset ids arriving from collaborators
3. The single per-escrow serialization point

Security Model:
    - Inputs from custody providers are untrusted until validated
    - A rejected operation leaves the ledger untouched
    - State is mutated before any external call is issued

Copyright (c) 2026 Momentum. All rights reserved.
Contact: engineering@momentum.inc
"""

from __future__ import annotations

import threading
from dataclasses import dataclass, field
from functools import wraps
from typing import Any, Callable, List

from tradeup.assets import WILDCARD_ASSET_ID


# =============================================================================
# ERROR TYPES
# =============================================================================

class EscrowError(Exception):
    """Base class for every escrow rejection."""

    error_code = "escrow_error"


class ValidationError(EscrowError):
    """A single field failed validation."""

    error_code = "validation_failed"

    def __init__(self, field: str, message: str, value: Any = None):
        self.field = field
        self.message = message
        self.value = value
        super().__init__(f"{field}: {message}")


class SecurityViolation(EscrowError):
    """Security constraint violated."""

    error_code = "security_violation"


class MalformedDeposit(SecurityViolation):
    """Deposit notification refused before touching the ledger."""

    error_code = "malformed_deposit"


class DepositRejected(EscrowError):
    """Deposit-acceptance gate refused the deposit."""

    error_code = "deposit_rejected"


class ChainStillActive(EscrowError):
    """Redemption attempted while the chain is still collecting deposits."""

    error_code = "chain_active"


class NothingToRedeem(EscrowError):
    """Caller is not the depositor at that index, or it is already consumed."""

    error_code = "nothing_to_redeem"


class InvariantViolation(EscrowError):
    """Ledger invariant violated."""

    error_code = "invariant_violation"


# =============================================================================
# VALIDATION RESULT
# =============================================================================

@dataclass
class ValidationResult:
    """Result of a validation operation."""
    is_valid: bool
    errors: List[ValidationError] = field(default_factory=list)
    sanitized_value: Any = None

    def raise_if_invalid(self) -> None:
        """Raise the first error if validation failed."""
        if not self.is_valid:
            raise self.errors[0]

    @classmethod
    def success(cls, sanitized_value: Any = None) -> "ValidationResult":
        return cls(is_valid=True, sanitized_value=sanitized_value)

    @classmethod
    def failure(cls, errors: List[ValidationError]) -> "ValidationResult":
        return cls(is_valid=False, errors=errors)


# =============================================================================
# INPUT VALIDATORS
# =============================================================================

class Validators:
    """Collection of input validators."""

    MAX_IDENTITY_LENGTH = 256

    @classmethod
    def validate_identity(cls, value: Any, field_name: str = "identity") -> ValidationResult:
        """Validate a participant identity (non-empty string)."""
        if not isinstance(value, str):
            return ValidationResult.failure([
                ValidationError(field_name, f"Expected string, got {type(value).__name__}", value)
            ])

        sanitized = value.strip().replace("\x00", "")
        if not sanitized:
            return ValidationResult.failure([
                ValidationError(field_name, "Identity cannot be empty", value)
            ])
        if len(sanitized) > cls.MAX_IDENTITY_LENGTH:
            return ValidationResult.failure([
                ValidationError(field_name, f"Too long (max {cls.MAX_IDENTITY_LENGTH} chars)", value)
            ])
        return ValidationResult.success(sanitized)

    @classmethod
    def validate_asset_id(
        cls,
        value: Any,
        field_name: str = "asset_id",
        allow_wildcard: bool = False,
    ) -> ValidationResult:
        """Validate an asset instance id (non-negative integer)."""
        # bool is an int subclass; True is not an asset id
        if isinstance(value, bool) or not isinstance(value, int):
            return ValidationResult.failure([
                ValidationError(field_name, f"Expected integer, got {type(value).__name__}", value)
            ])
        if value < 0 or value > WILDCARD_ASSET_ID:
            return ValidationResult.failure([
                ValidationError(field_name, "Out of range", value)
            ])
        if value == WILDCARD_ASSET_ID and not allow_wildcard:
            return ValidationResult.failure([
                ValidationError(field_name, "Wildcard id cannot identify a concrete asset", value)
            ])
        return ValidationResult.success(value)

    @classmethod
    def validate_index(cls, value: Any, length: int) -> ValidationResult:
        """Validate a ledger index against the current ledger length."""
        if isinstance(value, bool) or not isinstance(value, int):
            return ValidationResult.failure([
                ValidationError("index", f"Expected integer, got {type(value).__name__}", value)
            ])
        if not 0 <= value < length:
            return ValidationResult.failure([
                ValidationError("index", f"No deposit at index {value} (ledger length {length})", value)
            ])
        return ValidationResult.success(value)


# =============================================================================
# SERIALIZATION
# =============================================================================

def serialized(func: Callable) -> Callable:
    """
    Run a method under the instance's `_lock`.

    The lock is re-entrant: a collaborator called from inside an operation may
    call back into the same escrow on the same thread, and that nested call
    observes the state already committed by the outer one.
    """
    @wraps(func)
    def wrapper(self, *args, **kwargs):
        with self._lock:
            return func(self, *args, **kwargs)
    return wrapper


def new_serialization_lock() -> "threading.RLock":
    return threading.RLock()
