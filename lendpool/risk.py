"""
risk.py - Cross-asset health factor

Key Formulas:
    collateral_value = sum(balance * price / base_unit * lend_factor)     over collateral set
    debt_value       = sum(debt * price / base_unit / borrow_factor)      over loan set
    health_factor    = collateral_value * WAD / debt_value

An account without debt reports MAX_HEALTH_FACTOR. Collateral rounds down
and debt rounds up, so rounding never makes an account look healthier.

Zero prices:
    - collateral priced at zero contributes nothing (no failure), so one
      stale feed cannot freeze accounts that merely hold the asset
    - debt priced at zero raises PriceUnavailable; treating it as worthless
      would let the account borrow it without limit

ARCHITECTURE:
    - calculate_*(): pure functions over explicit AssetValuation inputs
    - RiskEngine: loads valuations from the ledger and oracle, then calls them
"""

from __future__ import annotations
from dataclasses import dataclass
from typing import Iterable, List, Optional

from .core import (
    WAD, MAX_HEALTH_FACTOR,
    PoolParameters, PriceOracle,
    InsufficientHealthFactor, PriceUnavailable, InternalInvariantViolated,
)
from .collateral import CollateralManager
from .fixed_point import mul_div_down, mul_div_up
from .ledger import LedgerEngine
from .state import LedgerState


# ============================================================================
# FROZEN DATACLASSES
# ============================================================================

@dataclass(frozen=True, slots=True)
class AssetValuation:
    """
    One asset's contribution inputs.

    factor is the lend factor on the collateral side and the borrow factor
    on the debt side.
    """
    asset: str
    amount: int
    price: int
    base_unit: int
    factor: int


@dataclass(frozen=True, slots=True)
class HealthSnapshot:
    """Risk-weighted account values at one point in time."""
    collateral_value: int
    debt_value: int
    health_factor: int

    @property
    def has_debt(self) -> bool:
        return self.debt_value > 0


# ============================================================================
# PURE CALCULATION FUNCTIONS
# ============================================================================

def calculate_collateral_value(valuations: Iterable[AssetValuation]) -> int:
    """
    Lend-factor-weighted collateral value.

    PURE FUNCTION - zero-priced assets contribute zero.
    """
    total = 0
    for v in valuations:
        if v.amount == 0 or v.price == 0:
            continue
        value = mul_div_down(v.amount, v.price, v.base_unit)
        total += mul_div_down(value, v.factor, WAD)
    return total


def calculate_debt_value(valuations: Iterable[AssetValuation]) -> int:
    """
    Borrow-factor-weighted debt value.

    PURE FUNCTION

    Raises:
        PriceUnavailable: If an asset with outstanding debt is priced at zero
    """
    total = 0
    for v in valuations:
        if v.amount == 0:
            continue
        if v.price == 0:
            raise PriceUnavailable(f"No price for borrowed asset {v.asset}")
        value = mul_div_up(v.amount, v.price, v.base_unit)
        total += mul_div_up(value, WAD, v.factor)
    return total


def calculate_health_factor(collateral_value: int, debt_value: int) -> int:
    """collateral_value * WAD / debt_value, or MAX_HEALTH_FACTOR without debt."""
    if debt_value == 0:
        return MAX_HEALTH_FACTOR
    return min(MAX_HEALTH_FACTOR, mul_div_down(collateral_value, WAD, debt_value))


# ============================================================================
# RISK ENGINE
# ============================================================================

class RiskEngine:
    """
    Values accounts and gates state-mutating operations.

    Args:
        ledger: Source of projected balances and debts
        collateral: Source of each account's enabled assets
        oracle: External price oracle
        params: Pool parameters (min_health_factor)
    """

    def __init__(
        self,
        ledger: LedgerEngine,
        collateral: CollateralManager,
        oracle: PriceOracle,
        params: PoolParameters,
    ):
        self.ledger = ledger
        self.collateral = collateral
        self.oracle = oracle
        self.params = params

    def price(self, asset: str) -> int:
        """Oracle price, with a missing price read as zero."""
        price = self.oracle.price(asset) or 0
        if price < 0:
            raise InternalInvariantViolated(f"Oracle returned negative price for {asset}: {price}")
        return price

    def collateral_valuations(self, state: LedgerState, account: str) -> List[AssetValuation]:
        valuations = []
        for asset in self.collateral.enabled_collateral(state, account):
            record = state.asset(asset)
            valuations.append(AssetValuation(
                asset=asset,
                amount=self.ledger.balance_of(state, asset, account),
                price=self.price(asset),
                base_unit=record.base_unit,
                factor=record.config.lend_factor,
            ))
        return valuations

    def debt_valuations(
        self,
        state: LedgerState,
        account: str,
        hypothetical_asset: Optional[str] = None,
        hypothetical_delta: int = 0,
    ) -> List[AssetValuation]:
        assets = self.collateral.enabled_loans(state, account)
        if hypothetical_asset is not None and hypothetical_asset not in assets:
            assets.append(hypothetical_asset)
        valuations = []
        for asset in assets:
            record = state.asset(asset)
            amount = self.ledger.borrow_balance(state, asset, account)
            if asset == hypothetical_asset:
                amount += hypothetical_delta
            valuations.append(AssetValuation(
                asset=asset,
                amount=amount,
                price=self.price(asset),
                base_unit=record.base_unit,
                factor=record.config.borrow_factor,
            ))
        return valuations

    def snapshot(
        self,
        state: LedgerState,
        account: str,
        hypothetical_asset: Optional[str] = None,
        hypothetical_delta: int = 0,
    ) -> HealthSnapshot:
        """
        Value the account, optionally with extra debt in one asset.

        The hypothetical delta evaluates a post-borrow state without
        committing it.
        """
        collateral_value = calculate_collateral_value(self.collateral_valuations(state, account))
        debt_value = calculate_debt_value(
            self.debt_valuations(state, account, hypothetical_asset, hypothetical_delta)
        )
        return HealthSnapshot(
            collateral_value=collateral_value,
            debt_value=debt_value,
            health_factor=calculate_health_factor(collateral_value, debt_value),
        )

    def health_factor(
        self,
        state: LedgerState,
        account: str,
        hypothetical_asset: Optional[str] = None,
        hypothetical_delta: int = 0,
    ) -> int:
        return self.snapshot(state, account, hypothetical_asset, hypothetical_delta).health_factor

    def is_healthy(self, state: LedgerState, account: str) -> bool:
        return self.health_factor(state, account) >= self.params.min_health_factor

    def check_health(
        self,
        state: LedgerState,
        account: str,
        hypothetical_asset: Optional[str] = None,
        hypothetical_delta: int = 0,
    ) -> None:
        """
        Raise unless the account (plus any hypothetical debt) is healthy.

        Raises:
            InsufficientHealthFactor: If health factor < min_health_factor
        """
        health = self.health_factor(state, account, hypothetical_asset, hypothetical_delta)
        if health < self.params.min_health_factor:
            raise InsufficientHealthFactor(
                f"{account} health factor {health} below minimum {self.params.min_health_factor}"
            )
