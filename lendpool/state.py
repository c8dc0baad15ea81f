"""
state.py - Explicit ledger-state handle

All mutable engine state lives in one LedgerState object that is passed to
every engine operation:

    LedgerState
      assets:   asset -> AssetRecord (config, totals, per-account positions)
      accounts: account -> AccountRecord (collateral set, loan set)

The engines themselves hold only their collaborators (oracle, transfer
capability, parameters), never ledger data. clone() produces a fully
independent copy, which is how the pool rolls back failed operations.
"""

from __future__ import annotations
from dataclasses import dataclass, field, replace
from datetime import datetime
from typing import TYPE_CHECKING, Dict, Optional

from .core import (
    AssetConfig, AssetTotals, AccountAssetState, YieldVault,
    AssetNotConfigured,
)

if TYPE_CHECKING:
    from .collateral import IndexedSet


@dataclass(slots=True)
class PoolCustody:
    """
    Underlying of one asset held in the pool wallet outside the vault.

    idle is tokens withdrawn from the vault whose onward transfer failed; it
    counts as available liquidity and is paid out before the vault is
    touched again. unrefunded is deposits that could neither enter the vault
    nor be returned, owed back per source wallet and not counted as cash.

    These are physical holdings, so clones share one instance and a rollback
    leaves them as they are, like the vault itself.
    """
    idle: int = 0
    unrefunded: Dict[str, int] = field(default_factory=dict)


@dataclass(slots=True)
class AssetRecord:
    """
    Everything the engine knows about one configured asset.

    base_unit and vault are fixed at configuration; config may be replaced
    by an update (lend/borrow factors only).
    """
    symbol: str
    config: AssetConfig
    base_unit: int
    vault: YieldVault
    totals: AssetTotals
    positions: Dict[str, AccountAssetState] = field(default_factory=dict)
    custody: PoolCustody = field(default_factory=PoolCustody)


@dataclass(slots=True)
class AccountRecord:
    """Enablement sets for one account."""
    collateral: IndexedSet
    loans: IndexedSet


class LedgerState:
    """
    Arena of asset and account records plus the logical clock.

    Not thread-safe; the pool serializes every operation.
    """

    def __init__(self, current_time: Optional[datetime] = None):
        self.current_time: datetime = current_time or datetime(1970, 1, 1)
        self.assets: Dict[str, AssetRecord] = {}
        self.accounts: Dict[str, AccountRecord] = {}

    # ------------------------------------------------------------------
    # Lookups
    # ------------------------------------------------------------------

    def asset(self, symbol: str) -> AssetRecord:
        """Return the record for a configured asset."""
        record = self.assets.get(symbol)
        if record is None:
            raise AssetNotConfigured(f"Asset {symbol} is not configured")
        return record

    def is_configured(self, symbol: str) -> bool:
        return symbol in self.assets

    def position(self, symbol: str, account: str) -> AccountAssetState:
        """Return the (account, asset) position, creating it lazily."""
        record = self.asset(symbol)
        position = record.positions.get(account)
        if position is None:
            position = AccountAssetState()
            record.positions[account] = position
        return position

    def find_position(self, symbol: str, account: str) -> Optional[AccountAssetState]:
        """Return the position if it exists, without creating it."""
        record = self.assets.get(symbol)
        if record is None:
            return None
        return record.positions.get(account)

    def account(self, account: str) -> AccountRecord:
        """Return the account's enablement record, creating it lazily."""
        from .collateral import IndexedSet

        record = self.accounts.get(account)
        if record is None:
            record = AccountRecord(collateral=IndexedSet(), loans=IndexedSet())
            self.accounts[account] = record
        return record

    # ------------------------------------------------------------------
    # Copying
    # ------------------------------------------------------------------

    def clone(self) -> LedgerState:
        """
        Create an independent copy of this state.

        Configs are frozen, and vault, custody and rate-model references are
        external holdings, so they are shared; every mutable record is copied.
        """
        cloned = LedgerState.__new__(LedgerState)
        cloned.current_time = self.current_time
        cloned.assets = {
            symbol: replace(
                record,
                totals=replace(record.totals),
                positions={
                    account: replace(position)
                    for account, position in record.positions.items()
                },
            )
            for symbol, record in self.assets.items()
        }
        cloned.accounts = {
            account: AccountRecord(
                collateral=record.collateral.copy(),
                loans=record.loans.copy(),
            )
            for account, record in self.accounts.items()
        }
        return cloned

    def restore(self, snapshot: LedgerState) -> None:
        """Replace this state's contents with those of a snapshot."""
        self.current_time = snapshot.current_time
        self.assets = snapshot.assets
        self.accounts = snapshot.accounts
