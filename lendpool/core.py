"""
Core types for the lending pool accounting engine.

This module provides the foundational data structures and protocols:
1. Constants: fixed-point scale, sentinels and pool defaults
2. Protocols: external capabilities (price oracle, rate model, asset transfer, vault)
3. Exceptions: LendingError and the domain-specific error taxonomy
4. Immutable configuration: AssetConfig, PoolParameters
5. Mutable ledger records: AssetTotals, AccountAssetState
6. Audit records: PoolEvent

All numeric values are Python ints in fixed point. A "wad" is a value
scaled by 10**18 (so WAD itself represents 1.0).
"""

from __future__ import annotations
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from enum import Enum
from typing import Any, Dict, Optional, Protocol, runtime_checkable


# ============================================================================
# CONSTANTS
# ============================================================================

# Fixed-point base for factors, prices, rates and health factors.
WAD = 10 ** 18

# Upper bound for every stored quantity (mirrors an unsigned 256-bit word).
MAX_UINT256 = 2 ** 256 - 1

# Health factor reported for an account without debt.
MAX_HEALTH_FACTOR = MAX_UINT256

# Pool parameter defaults.
DEFAULT_LIQUIDATION_BONUS = 5 * 10 ** 16          # 5%
DEFAULT_TARGET_HEALTH_FACTOR = 12 * 10 ** 17      # 1.2
DEFAULT_MIN_HEALTH_FACTOR = WAD                   # 1.0
DEFAULT_ACCRUAL_PERIOD = timedelta(seconds=1)

# Default identifier of the pool's own wallet at the asset-transfer layer.
POOL_WALLET = "pool"


# ============================================================================
# ENUMS
# ============================================================================

class Side(Enum):
    """Which side of the ledger an exchange rate or unit count refers to."""
    BALANCE = "balance"
    DEBT = "debt"


class EventType(Enum):
    """Kinds of audit events appended to the pool's event log."""
    CONFIGURED = "configured"
    CONFIGURATION_UPDATED = "configuration_updated"
    INTEREST_ACCRUED = "interest_accrued"
    DEPOSIT = "deposit"
    WITHDRAW = "withdraw"
    BORROW = "borrow"
    REPAY = "repay"
    LIQUIDATED = "liquidated"
    BAD_DEBT_WRITTEN_OFF = "bad_debt_written_off"


# ============================================================================
# PROTOCOLS - External capabilities
# ============================================================================

@runtime_checkable
class PriceOracle(Protocol):
    """
    Price source for configured assets.

    Prices are wads: the value, in the pool's common unit of account, of one
    whole token (base_unit smallest units). A missing price is reported as 0.
    """

    def price(self, asset: str) -> int:
        ...


@runtime_checkable
class InterestRateModel(Protocol):
    """Borrow-rate curve. Returns the per-period rate as a wad."""

    def borrow_rate(self, cash: int, borrows: int, reserves: int) -> int:
        ...


@runtime_checkable
class AssetTransfer(Protocol):
    """
    Underlying token movement between user wallets and the pool.

    Implementations must either move the full amount or raise; the pool
    treats any exception as TransferFailed.
    """

    def transfer_in(self, asset: str, source: str, amount: int) -> None:
        ...

    def transfer_out(self, asset: str, dest: str, amount: int) -> None:
        ...

    def decimals(self, asset: str) -> int:
        ...


@runtime_checkable
class YieldVault(Protocol):
    """Share-based vault custodying the pool's idle liquidity for one asset."""

    def deposit(self, owner: str, assets: int) -> int:
        ...

    def withdraw(self, owner: str, assets: int) -> int:
        ...

    def max_withdraw(self, owner: str) -> int:
        ...


# ============================================================================
# EXCEPTIONS
# ============================================================================

class LendingError(Exception):
    """Base exception for all lending pool errors."""
    pass


# Configuration errors

class AlreadyConfigured(LendingError):
    """Raised when configuring an asset that already has a vault reference."""
    pass


class NotConfigured(LendingError):
    """Raised when updating the configuration of an unknown asset."""
    pass


# Input validation errors

class InvalidAmount(LendingError):
    """Raised for zero, negative or dust amounts."""
    pass


class AssetNotConfigured(LendingError):
    """Raised when a ledger operation references an unregistered asset."""
    pass


# Solvency errors

class InsufficientHealthFactor(LendingError):
    """Raised when an operation would leave the account below the minimum health factor."""
    pass


class RepaymentExceedsDebt(LendingError):
    """Raised when a repayment converts to more debt units than the account owes."""
    pass


class InsufficientBalance(LendingError):
    """Raised when a withdrawal converts to more balance units than the account holds."""
    pass


class HealthyAccount(LendingError):
    """Raised when liquidating an account whose health factor is above the minimum."""
    pass


# Liveness errors

class RateModelUnset(LendingError):
    """Raised when a debt-bearing asset has no interest rate model linked."""
    pass


class TransferFailed(LendingError):
    """Raised when the asset-transfer capability or the vault rejects a movement."""
    pass


class InsufficientLiquidity(LendingError):
    """Raised when the vault cannot release the requested underlying amount."""
    pass


class PriceUnavailable(LendingError):
    """Raised when an operation needs a nonzero price and the oracle returned 0."""
    pass


# Invariant violations

class InternalInvariantViolated(LendingError):
    """Raised on arithmetic overflow, division by zero or other broken invariants."""
    pass


class ReentrantCall(LendingError):
    """Raised when a pool entry point is re-entered while an operation is in flight."""
    pass


# ============================================================================
# CONFIGURATION
# ============================================================================

@dataclass(frozen=True, slots=True)
class AssetConfig:
    """
    Risk configuration for one asset.

    Attributes:
        lend_factor: Fraction of collateral value usable as borrowing power (wad, 0..WAD).
        borrow_factor: Debt weight divisor (wad, 0 < f <= WAD). Debt value is
            divided by it, so a factor below WAD amplifies effective debt.
        interest_rate_model: Borrow-rate curve. Required before the asset can be borrowed.
        reserve_factor: Fraction of accrued interest kept as protocol reserves (wad).
    """
    lend_factor: int
    borrow_factor: int
    interest_rate_model: Optional[InterestRateModel] = None
    reserve_factor: int = 0

    def __post_init__(self):
        for name in ("lend_factor", "borrow_factor", "reserve_factor"):
            value = getattr(self, name)
            if not isinstance(value, int) or isinstance(value, bool):
                raise ValueError(f"{name} must be an int wad, got {type(value).__name__}")
        if not 0 <= self.lend_factor <= WAD:
            raise ValueError(f"lend_factor must be within [0, {WAD}], got {self.lend_factor}")
        if not 0 < self.borrow_factor <= WAD:
            raise ValueError(f"borrow_factor must be within (0, {WAD}], got {self.borrow_factor}")
        if not 0 <= self.reserve_factor < WAD:
            raise ValueError(f"reserve_factor must be within [0, {WAD}), got {self.reserve_factor}")


@dataclass(frozen=True, slots=True)
class PoolParameters:
    """
    Pool-wide protocol parameters.

    Attributes:
        liquidation_bonus: Extra collateral value paid to liquidators (wad).
        target_health_factor: Health factor a liquidation restores an account to.
        min_health_factor: Solvency threshold every non-liquidation operation must keep.
        accrual_period: Length of one interest compounding period.
    """
    liquidation_bonus: int = DEFAULT_LIQUIDATION_BONUS
    target_health_factor: int = DEFAULT_TARGET_HEALTH_FACTOR
    min_health_factor: int = DEFAULT_MIN_HEALTH_FACTOR
    accrual_period: timedelta = DEFAULT_ACCRUAL_PERIOD

    def __post_init__(self):
        if self.liquidation_bonus < 0:
            raise ValueError(f"liquidation_bonus cannot be negative, got {self.liquidation_bonus}")
        if self.min_health_factor <= 0:
            raise ValueError(f"min_health_factor must be positive, got {self.min_health_factor}")
        if self.target_health_factor <= self.min_health_factor:
            raise ValueError(
                f"target_health_factor ({self.target_health_factor}) must exceed "
                f"min_health_factor ({self.min_health_factor})"
            )
        if self.accrual_period <= timedelta(0):
            raise ValueError(f"accrual_period must be positive, got {self.accrual_period}")


# ============================================================================
# LEDGER RECORDS
# ============================================================================

@dataclass(slots=True)
class AssetTotals:
    """
    Pool-wide totals for one asset.

    cached_total_borrows and total_reserves are only valid as of
    last_accrual_time; readers project them forward before use.

    pending_cash_delta is the underlying committed to enter (+) or leave (-)
    the vault by the operation in flight. It is zero between operations.
    """
    last_accrual_time: datetime
    total_balance_units: int = 0
    total_debt_units: int = 0
    cached_total_borrows: int = 0
    total_reserves: int = 0
    pending_cash_delta: int = 0


@dataclass(slots=True)
class AccountAssetState:
    """Per (account, asset) unit counts. Zeroed, never deleted."""
    balance_units: int = 0
    debt_units: int = 0


# ============================================================================
# AUDIT EVENTS
# ============================================================================

@dataclass(frozen=True, slots=True)
class PoolEvent:
    """
    Immutable audit record of a committed pool operation.

    Attributes:
        sequence: Monotonic position in the pool's event log
        event_type: What happened
        timestamp: Pool time when the event was committed
        asset: Asset concerned (None for account-wide events)
        account: Account concerned (None for asset-wide events)
        amount: Underlying amount moved, if any
        units: Internal units minted or burned, if any
        details: Extra event-specific fields
    """
    sequence: int
    event_type: EventType
    timestamp: datetime
    asset: Optional[str] = None
    account: Optional[str] = None
    amount: int = 0
    units: int = 0
    details: Dict[str, Any] = field(default_factory=dict)

    def __repr__(self) -> str:
        parts = [f"#{self.sequence}", self.event_type.value]
        if self.asset:
            parts.append(f"asset={self.asset}")
        if self.account:
            parts.append(f"account={self.account}")
        if self.amount:
            parts.append(f"amount={self.amount}")
        if self.units:
            parts.append(f"units={self.units}")
        return f"PoolEvent({', '.join(parts)})"
