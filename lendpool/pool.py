"""
pool.py - LendingPool: the public entry points

LendingPool owns one LedgerState and wires the engines around it:

    AssetRegistry          configure / update assets
    InterestAccrualModule  compound borrows per asset
    CollateralManager      per-account enablement sets
    LedgerEngine           deposit / withdraw / borrow / repay
    RiskEngine             health factor and solvency gate
    LiquidationEngine      close unhealthy accounts

Every mutating entry point runs inside an atomic, non-reentrant scope: the
state is cloned on entry and restored if anything raises, and the events
the operation staged are committed to event_log only on success.

Example:
    bank = TokenBank()
    bank.register_token("ETH", 18)
    pool = LendingPool("main", oracle, bank, verbose=False)
    pool.configure_asset("ETH", ShareVault(bank, "ETH"), AssetConfig(8 * 10**17, WAD, rate_model))
    pool.deposit("alice", "ETH", 10 * WAD)
"""

from __future__ import annotations
from contextlib import contextmanager
from datetime import datetime
from typing import Any, Iterator, List, Optional

from .core import (
    POOL_WALLET, Side, EventType, PoolEvent, PoolParameters,
    AssetConfig, AssetTransfer, PriceOracle, YieldVault,
    ReentrantCall,
)
from .collateral import CollateralManager
from .interest import InterestAccrualModule
from .ledger import LedgerEngine
from .liquidation import LiquidationEngine, LiquidationQuote, LiquidationResult
from .registry import AssetRegistry
from .risk import HealthSnapshot, RiskEngine
from .state import LedgerState


class LendingPool:
    """
    Multi-asset over-collateralized lending pool.

    Args:
        name: Pool identifier
        oracle: External price oracle
        transfer: External asset-transfer capability
        params: Pool parameters (default: PoolParameters())
        initial_time: Starting time (default: 1970-01-01)
        verbose: Print one line per committed or rejected operation
        pool_wallet: The pool's wallet id at the transfer and vault layer
    """

    def __init__(
        self,
        name: str,
        oracle: PriceOracle,
        transfer: AssetTransfer,
        params: Optional[PoolParameters] = None,
        initial_time: Optional[datetime] = None,
        verbose: bool = True,
        pool_wallet: str = POOL_WALLET,
    ):
        self.name = name
        self.oracle = oracle
        self.transfer = transfer
        self.params = params or PoolParameters()
        self.pool_wallet = pool_wallet
        self.verbose = verbose

        self.state = LedgerState(initial_time)
        self.registry = AssetRegistry(transfer)
        self.accrual = InterestAccrualModule(self.params, pool_wallet)
        self.collateral = CollateralManager()
        self.ledger = LedgerEngine(self.accrual, self.collateral, transfer, pool_wallet)
        self.risk = RiskEngine(self.ledger, self.collateral, oracle, self.params)
        self.ledger.check_health = self.risk.check_health
        self.liquidation = LiquidationEngine(self.ledger, self.risk, self.params)

        self.event_log: List[PoolEvent] = []
        self._staged: List[PoolEvent] = []
        self._in_operation = False

    # ========================================================================
    # CLOCK
    # ========================================================================

    @property
    def current_time(self) -> datetime:
        return self.state.current_time

    def advance_time(self, new_time: datetime) -> None:
        """
        Move the pool's logical clock forward.

        Interest is not accrued here; every read and write projects it.

        Raises:
            ValueError: If new_time is before the current time
        """
        if self._in_operation:
            raise ReentrantCall("Cannot move time during an operation")
        if new_time < self.state.current_time:
            raise ValueError(f"Cannot move time backwards: {new_time} < {self.state.current_time}")
        self.state.current_time = new_time

    # ========================================================================
    # ADMINISTRATION
    # ========================================================================

    def configure_asset(self, asset: str, vault_ref: YieldVault, config: AssetConfig) -> None:
        with self._operation(f"configure {asset}"):
            record = self.registry.configure(self.state, asset, vault_ref, config)
            self._emit(
                EventType.CONFIGURED, asset=asset,
                lend_factor=config.lend_factor,
                borrow_factor=config.borrow_factor,
                base_unit=record.base_unit,
            )

    def update_configuration(
        self,
        asset: str,
        lend_factor: Optional[int] = None,
        borrow_factor: Optional[int] = None,
    ) -> AssetConfig:
        with self._operation(f"update {asset}"):
            config = self.registry.update(self.state, asset, lend_factor, borrow_factor)
            self._emit(
                EventType.CONFIGURATION_UPDATED, asset=asset,
                lend_factor=config.lend_factor,
                borrow_factor=config.borrow_factor,
            )
        return config

    # ========================================================================
    # USER OPERATIONS
    # ========================================================================

    def deposit(self, account: str, asset: str, amount: int) -> int:
        """Supply amount of asset; returns balance units minted."""
        with self._operation(f"deposit {amount} {asset} by {account}"):
            self._accrue(asset)
            units = self.ledger.deposit(self.state, account, asset, amount)
            self._emit(EventType.DEPOSIT, asset=asset, account=account, amount=amount, units=units)
        return units

    def withdraw(self, account: str, asset: str, amount: int) -> int:
        """Withdraw amount of asset; returns balance units burned."""
        with self._operation(f"withdraw {amount} {asset} by {account}"):
            self._accrue(asset)
            units = self.ledger.withdraw(self.state, account, asset, amount)
            self._emit(EventType.WITHDRAW, asset=asset, account=account, amount=amount, units=units)
        return units

    def borrow(self, account: str, asset: str, amount: int) -> int:
        """Borrow amount of asset; returns debt units minted."""
        with self._operation(f"borrow {amount} {asset} by {account}"):
            self._accrue(asset)
            units = self.ledger.borrow(self.state, account, asset, amount)
            self._emit(EventType.BORROW, asset=asset, account=account, amount=amount, units=units)
        return units

    def repay(self, account: str, asset: str, amount: int, payer: Optional[str] = None) -> int:
        """Repay amount of the account's debt (paid by payer, default the account)."""
        with self._operation(f"repay {amount} {asset} for {account}"):
            self._accrue(asset)
            units = self.ledger.repay(self.state, account, asset, amount, payer)
            self._emit(
                EventType.REPAY, asset=asset, account=account, amount=amount, units=units,
                payer=payer or account,
            )
        return units

    def liquidate(
        self,
        liquidator: str,
        account: str,
        repay_asset: str,
        collateral_asset: str,
        repay_amount: int,
    ) -> LiquidationResult:
        """Repay up to repay_amount of an unhealthy account's debt and seize its collateral."""
        label = f"liquidate {account} by {liquidator} ({repay_asset} -> {collateral_asset})"
        with self._operation(label):
            for asset in self._touched_assets(account, repay_asset, collateral_asset):
                self._accrue(asset)
            result = self.liquidation.liquidate(
                self.state, liquidator, account, repay_asset, collateral_asset, repay_amount,
            )
            self._emit(
                EventType.LIQUIDATED, asset=repay_asset, account=account,
                amount=result.repay_amount, units=result.seize_units,
                liquidator=liquidator,
                collateral_asset=collateral_asset,
                seize_amount=result.seize_amount,
                health_before=result.health_before,
                health_after=result.health_after,
            )
            for asset, amount in result.written_off.items():
                self._emit(EventType.BAD_DEBT_WRITTEN_OFF, asset=asset, account=account, amount=amount)
        return result

    # ========================================================================
    # READ ACCESSORS (projected to current_time, never mutate)
    # ========================================================================

    def balance_of(self, asset: str, account: str) -> int:
        return self.ledger.balance_of(self.state, asset, account)

    def borrow_balance(self, asset: str, account: str) -> int:
        return self.ledger.borrow_balance(self.state, asset, account)

    def total_underlying(self, asset: str) -> int:
        return self.ledger.total_underlying(self.state, asset)

    def exchange_rate(self, asset: str, side: Side = Side.BALANCE) -> int:
        return self.ledger.exchange_rate(self.state, asset, side)

    def health_factor(
        self,
        account: str,
        hypothetical_asset: Optional[str] = None,
        hypothetical_delta: int = 0,
    ) -> int:
        return self.risk.health_factor(self.state, account, hypothetical_asset, hypothetical_delta)

    def is_healthy(self, account: str) -> bool:
        return self.risk.is_healthy(self.state, account)

    def enabled_collateral(self, account: str) -> List[str]:
        return self.collateral.enabled_collateral(self.state, account)

    def enabled_loan(self, account: str) -> List[str]:
        return self.collateral.enabled_loans(self.state, account)

    def max_liquidation(self, account: str, repay_asset: str, collateral_asset: str) -> LiquidationQuote:
        """Largest useful liquidation of account at the current state."""
        return self.liquidation.quote(self.state, account, repay_asset, collateral_asset)

    def account_summary(self, account: str) -> HealthSnapshot:
        return self.risk.snapshot(self.state, account)

    def asset_config(self, asset: str) -> AssetConfig:
        return self.registry.get(self.state, asset)

    def snapshot(self) -> LedgerState:
        """Independent copy of the current ledger state."""
        return self.state.clone()

    # ========================================================================
    # INTERNALS
    # ========================================================================

    @contextmanager
    def _operation(self, label: str) -> Iterator[None]:
        if self._in_operation:
            raise ReentrantCall(f"Pool {self.name} re-entered during an operation: {label}")
        self._in_operation = True
        snapshot = self.state.clone()
        self._staged = []
        try:
            yield
        except Exception as exc:
            self.state.restore(snapshot)
            self._staged = []
            if self.verbose:
                print(f"✗ REJECTED {label}: {type(exc).__name__}: {exc}")
            raise
        else:
            for event in self._staged:
                self.event_log.append(event)
                if self.verbose:
                    print(f"✓ {event!r}")
            self._staged = []
        finally:
            self._in_operation = False

    def _emit(
        self,
        event_type: EventType,
        asset: Optional[str] = None,
        account: Optional[str] = None,
        amount: int = 0,
        units: int = 0,
        **details: Any,
    ) -> None:
        self._staged.append(PoolEvent(
            sequence=len(self.event_log) + len(self._staged),
            event_type=event_type,
            timestamp=self.state.current_time,
            asset=asset,
            account=account,
            amount=amount,
            units=units,
            details=details,
        ))

    def _accrue(self, asset: str) -> None:
        interest = self.accrual.accrue(self.state, asset)
        if interest:
            totals = self.state.asset(asset).totals
            self._emit(
                EventType.INTEREST_ACCRUED, asset=asset, amount=interest,
                total_borrows=totals.cached_total_borrows,
                total_reserves=totals.total_reserves,
            )

    def _touched_assets(self, account: str, *assets: str) -> List[str]:
        touched = list(dict.fromkeys(assets))
        for asset in self.collateral.enabled_loans(self.state, account):
            if asset not in touched:
                touched.append(asset)
        return touched

    def __repr__(self):
        return (
            f"LendingPool({self.name}, {len(self.state.assets)} assets, "
            f"{len(self.state.accounts)} accounts, t={self.state.current_time})"
        )
