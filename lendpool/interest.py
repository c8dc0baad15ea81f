"""
interest.py - Interest accrual without per-account iteration

Borrowers never hold an amount; they hold debt units. The pool tracks one
cached_total_borrows figure per asset and compounds it forward in whole
accrual periods:

    cached_total_borrows *= (1 + rate) ** periods

Every debt unit is re-valued by the same factor through the debt exchange
rate, so a single update per asset accrues interest for all borrowers.

ARCHITECTURE:
    - Rate models (ConstantRateModel, KinkedRateModel): the external
      borrow-rate capability, with two reference curves
    - calculate_accrual(): pure compounding step, all inputs explicit
    - InterestAccrualModule.project(): read-only view of the totals at "now"
    - InterestAccrualModule.accrue(): project() and commit
"""

from __future__ import annotations
from dataclasses import dataclass, replace
from typing import Optional, Tuple

from .core import (
    WAD, POOL_WALLET,
    AssetConfig, AssetTotals, PoolParameters,
    RateModelUnset, InternalInvariantViolated,
)
from .fixed_point import rpow, wad_mul, wad_div, checked_sub
from .state import AssetRecord, LedgerState


# ============================================================================
# RATE MODELS
# ============================================================================

@dataclass(frozen=True, slots=True)
class ConstantRateModel:
    """Flat per-period borrow rate, independent of utilization."""
    rate: int

    def borrow_rate(self, cash: int, borrows: int, reserves: int) -> int:
        return self.rate


@dataclass(frozen=True, slots=True)
class KinkedRateModel:
    """
    Utilization-based curve with a jump slope above the kink.

        utilization = borrows / (cash + borrows - reserves)
        rate = base + utilization * multiplier                      (u <= kink)
        rate = base + kink * multiplier + (u - kink) * jump         (u > kink)

    All parameters are per-period wads.
    """
    base_rate: int
    multiplier: int
    jump_multiplier: int
    kink: int

    def utilization(self, cash: int, borrows: int, reserves: int) -> int:
        if borrows == 0:
            return 0
        supplied = cash + borrows - reserves
        if supplied <= 0:
            return WAD
        return min(WAD, wad_div(borrows, supplied))

    def borrow_rate(self, cash: int, borrows: int, reserves: int) -> int:
        utilization = self.utilization(cash, borrows, reserves)
        if utilization <= self.kink:
            return self.base_rate + wad_mul(utilization, self.multiplier)
        normal = self.base_rate + wad_mul(self.kink, self.multiplier)
        return normal + wad_mul(utilization - self.kink, self.jump_multiplier)


# ============================================================================
# PURE CALCULATION
# ============================================================================

def calculate_accrual(
    cached_total_borrows: int,
    total_reserves: int,
    rate: int,
    periods: int,
    reserve_factor: int,
) -> Tuple[int, int]:
    """
    Compound borrows over a number of whole periods.

    PURE FUNCTION - All inputs explicit.

    Debt grows rounding up; the reserve cut rounds down.

    Returns:
        (new_cached_total_borrows, new_total_reserves)
    """
    if rate < 0:
        raise InternalInvariantViolated(f"negative borrow rate: {rate}")
    if periods <= 0 or cached_total_borrows == 0 or rate == 0:
        return cached_total_borrows, total_reserves
    growth = rpow(WAD + rate, periods)
    new_borrows = wad_mul(cached_total_borrows, growth, round_up=True)
    interest = checked_sub(new_borrows, cached_total_borrows)
    return new_borrows, total_reserves + wad_mul(interest, reserve_factor)


def available_liquidity(record: AssetRecord, pool_wallet: str = POOL_WALLET) -> int:
    """Underlying the pool could release right now: the vault's redeemable cash plus idle custody."""
    return record.vault.max_withdraw(pool_wallet) + record.custody.idle


# ============================================================================
# ACCRUAL MODULE
# ============================================================================

class InterestAccrualModule:
    """
    Projects and commits interest accrual per asset.

    Args:
        params: Pool parameters (accrual_period)
        pool_wallet: Owner id of the pool's vault shares
    """

    def __init__(self, params: PoolParameters, pool_wallet: str = POOL_WALLET):
        self.params = params
        self.pool_wallet = pool_wallet

    def elapsed_periods(self, state: LedgerState, totals: AssetTotals) -> int:
        elapsed = state.current_time - totals.last_accrual_time
        if elapsed.total_seconds() <= 0:
            return 0
        return elapsed // self.params.accrual_period

    def project(self, state: LedgerState, asset: str) -> AssetTotals:
        """
        Return the asset's totals as of state.current_time without mutating state.

        Fractional periods are carried: last_accrual_time advances by whole
        periods only.

        Raises:
            AssetNotConfigured: If the asset is unknown
            RateModelUnset: If the asset carries debt but has no rate model
        """
        record = state.asset(asset)
        totals = record.totals
        periods = self.elapsed_periods(state, totals)
        if periods == 0:
            return totals

        advanced_to = totals.last_accrual_time + periods * self.params.accrual_period
        if totals.cached_total_borrows == 0:
            return replace(totals, last_accrual_time=advanced_to)

        model = record.config.interest_rate_model
        if model is None:
            raise RateModelUnset(f"Asset {asset} carries debt but has no interest rate model")

        rate = model.borrow_rate(
            available_liquidity(record, self.pool_wallet),
            totals.cached_total_borrows,
            totals.total_reserves,
        )
        borrows, reserves = calculate_accrual(
            totals.cached_total_borrows,
            totals.total_reserves,
            rate,
            periods,
            record.config.reserve_factor,
        )
        return replace(
            totals,
            cached_total_borrows=borrows,
            total_reserves=reserves,
            last_accrual_time=advanced_to,
        )

    def accrue(self, state: LedgerState, asset: str) -> Optional[int]:
        """
        Bring the asset's totals up to state.current_time.

        Returns:
            Interest added to cached_total_borrows, or None when no whole
            period has elapsed (no-op)
        """
        record = state.asset(asset)
        if self.elapsed_periods(state, record.totals) == 0:
            return None
        before = record.totals.cached_total_borrows
        record.totals = self.project(state, asset)
        return record.totals.cached_total_borrows - before

    def requires_rate_model(self, config: AssetConfig, asset: str) -> None:
        """Raise RateModelUnset unless the asset can carry debt."""
        if config.interest_rate_model is None:
            raise RateModelUnset(f"Asset {asset} has no interest rate model")
