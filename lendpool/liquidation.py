"""
liquidation.py - Third-party liquidation of unhealthy accounts

A liquidator repays part of an unhealthy account's debt in one asset and
receives the account's collateral in another, worth the repaid value plus
a bonus:

    seize_value = repay * price_repay / base_repay * (1 + bonus)
    seize       = seize_value * base_collateral / price_collateral

The repay is capped at the amount that brings the account back to the
pool's target health factor. With C and D the risk-weighted collateral
and debt values, T the target, b the bonus, lf the collateral's lend factor
and bf the repaid asset's borrow factor, repaying value v gives

    (C - v * (1 + b) * lf) / (D - v / bf) = T
    v = (T * D - C) / (T / bf - (1 + b) * lf)

When the denominator is not positive no repay reaches the target and the
whole debt in the repaid asset may be closed.

Seized collateral moves as balance units from the account to the
liquidator; the liquidator pays the repay through the asset-transfer
capability. If the account is left with debt but no collateral, the
position is closed and the residual debt is written off.
"""

from __future__ import annotations
from dataclasses import dataclass, field
from typing import Dict, Optional

from .core import (
    WAD, PoolParameters,
    HealthyAccount, InsufficientBalance, InsufficientHealthFactor, InvalidAmount,
    PriceUnavailable, RepaymentExceedsDebt,
)
from .fixed_point import mul_div_down, mul_div_up, wad_div, wad_mul
from .ledger import LedgerEngine, require_positive_amount
from .risk import HealthSnapshot, RiskEngine
from .state import LedgerState


# ============================================================================
# RESULT TYPES
# ============================================================================

@dataclass(frozen=True, slots=True)
class LiquidationQuote:
    """Amounts a liquidation would use at the current state."""
    repay_amount: int
    seize_amount: int
    seizes_all_collateral: bool


@dataclass(frozen=True, slots=True)
class LiquidationResult:
    """
    Outcome of an applied liquidation.

    Attributes:
        repay_amount: Underlying of repay_asset paid by the liquidator
        seize_amount: Underlying of collateral_asset moved to the liquidator
        seize_units: Balance units moved to the liquidator
        health_before: Account health factor before the liquidation
        health_after: Account health factor after the liquidation
        written_off: Residual debt erased per asset when the position was closed
    """
    account: str
    liquidator: str
    repay_asset: str
    collateral_asset: str
    repay_amount: int
    seize_amount: int
    seize_units: int
    health_before: int
    health_after: int
    written_off: Dict[str, int] = field(default_factory=dict)

    @property
    def position_closed(self) -> bool:
        return bool(self.written_off)


# ============================================================================
# PURE CALCULATION FUNCTIONS
# ============================================================================

def calculate_max_repay_value(
    before: HealthSnapshot,
    target_health_factor: int,
    liquidation_bonus: int,
    collateral_lend_factor: int,
    repay_borrow_factor: int,
) -> Optional[int]:
    """
    Risk-free value of repay that restores the target health factor.

    PURE FUNCTION

    Returns:
        The value (same unit as HealthSnapshot values), or None when no
        repay can reach the target (unbounded).
    """
    shortfall = wad_mul(target_health_factor, before.debt_value, round_up=True) - before.collateral_value
    if shortfall <= 0:
        return 0
    denominator = (
        wad_div(target_health_factor, repay_borrow_factor)
        - wad_mul(WAD + liquidation_bonus, collateral_lend_factor, round_up=True)
    )
    if denominator <= 0:
        return None
    return mul_div_down(shortfall, WAD, denominator)


def calculate_seize_amount(
    repay_amount: int,
    repay_price: int,
    repay_base_unit: int,
    collateral_price: int,
    collateral_base_unit: int,
    liquidation_bonus: int,
) -> int:
    """Collateral underlying owed for repay_amount, bonus included (rounded down)."""
    return mul_div_down(
        repay_amount * repay_price * (WAD + liquidation_bonus),
        collateral_base_unit,
        repay_base_unit * WAD * collateral_price,
    )


def calculate_repay_for_seize(
    seize_amount: int,
    repay_price: int,
    repay_base_unit: int,
    collateral_price: int,
    collateral_base_unit: int,
    liquidation_bonus: int,
) -> int:
    """Inverse of calculate_seize_amount (rounded up)."""
    return mul_div_up(
        seize_amount * collateral_price * repay_base_unit,
        WAD,
        collateral_base_unit * repay_price * (WAD + liquidation_bonus),
    )


# ============================================================================
# LIQUIDATION ENGINE
# ============================================================================

class LiquidationEngine:
    """
    Detects unhealthy accounts and applies liquidations.

    Args:
        ledger: Unit ledger (debt burn, unit transfer, underlying collection)
        risk: Health factor computation and prices
        params: Pool parameters (bonus, target and minimum health factor)
    """

    def __init__(self, ledger: LedgerEngine, risk: RiskEngine, params: PoolParameters):
        self.ledger = ledger
        self.risk = risk
        self.params = params

    def is_liquidatable(self, state: LedgerState, account: str) -> bool:
        snapshot = self.risk.snapshot(state, account)
        return snapshot.has_debt and snapshot.health_factor < self.params.min_health_factor

    def quote(
        self,
        state: LedgerState,
        account: str,
        repay_asset: str,
        collateral_asset: str,
        repay_amount: Optional[int] = None,
    ) -> LiquidationQuote:
        """
        Compute the repay and seize a liquidation would apply, without mutating.

        repay_amount=None asks for the maximum useful repay.

        Raises:
            HealthyAccount: If the account is not below the minimum health factor
            PriceUnavailable: If either asset is priced at zero
            RepaymentExceedsDebt: If the account owes nothing in repay_asset
            InsufficientBalance: If the account holds no collateral_asset
        """
        before = self.risk.snapshot(state, account)
        if not before.has_debt or before.health_factor >= self.params.min_health_factor:
            raise HealthyAccount(f"{account} health factor {before.health_factor} is not below minimum")

        repay_record = state.asset(repay_asset)
        collateral_record = state.asset(collateral_asset)
        repay_price = self.risk.price(repay_asset)
        collateral_price = self.risk.price(collateral_asset)
        if repay_price == 0:
            raise PriceUnavailable(f"No price for repay asset {repay_asset}")
        if collateral_price == 0:
            raise PriceUnavailable(f"No price for collateral asset {collateral_asset}")

        debt = self.ledger.borrow_balance(state, repay_asset, account)
        if debt == 0:
            raise RepaymentExceedsDebt(f"{account} owes no {repay_asset}")
        collateral_balance = 0
        if collateral_asset in self.ledger.collateral.enabled_collateral(state, account):
            collateral_balance = self.ledger.balance_of(state, collateral_asset, account)
        if collateral_balance == 0:
            raise InsufficientBalance(f"{account} holds no {collateral_asset} collateral")

        max_value = calculate_max_repay_value(
            before,
            self.params.target_health_factor,
            self.params.liquidation_bonus,
            collateral_record.config.lend_factor,
            repay_record.config.borrow_factor,
        )
        max_repay = debt
        if max_value is not None:
            max_repay = min(debt, mul_div_down(max_value, repay_record.base_unit, repay_price))

        repay = max_repay if repay_amount is None else min(repay_amount, max_repay)
        pricing = (repay_price, repay_record.base_unit, collateral_price, collateral_record.base_unit,
                   self.params.liquidation_bonus)
        seize = calculate_seize_amount(repay, *pricing)
        seizes_all = seize >= collateral_balance
        if seizes_all:
            seize = collateral_balance
            repay = min(repay, calculate_repay_for_seize(seize, *pricing))
        return LiquidationQuote(repay_amount=repay, seize_amount=seize, seizes_all_collateral=seizes_all)

    def liquidate(
        self,
        state: LedgerState,
        liquidator: str,
        account: str,
        repay_asset: str,
        collateral_asset: str,
        repay_amount: int,
    ) -> LiquidationResult:
        """
        Repay up to repay_amount of the account's debt and seize collateral.

        Returns:
            LiquidationResult with the amounts actually applied

        Raises:
            ValueError: If liquidator and account are the same
            InvalidAmount: If repay_amount is not positive, or nothing can be repaid
                or seized
            HealthyAccount: If the account is not below the minimum health factor
            InsufficientHealthFactor: If the liquidation would lower the account's health
        """
        require_positive_amount(repay_amount)
        if liquidator == account:
            raise ValueError("An account cannot liquidate itself")

        self.ledger.accrual.accrue(state, repay_asset)
        self.ledger.accrual.accrue(state, collateral_asset)
        before = self.risk.snapshot(state, account)

        quote = self.quote(state, account, repay_asset, collateral_asset, repay_amount)
        if quote.repay_amount == 0 or quote.seize_amount == 0:
            raise InvalidAmount(f"Liquidation of {account} would repay {quote.repay_amount}, seize {quote.seize_amount}")

        position = state.position(collateral_asset, account)
        if quote.seizes_all_collateral:
            seize_units = position.balance_units
        else:
            seize_units = self.ledger.to_balance_units(state, collateral_asset, quote.seize_amount)
            if seize_units == 0:
                raise InvalidAmount(
                    f"Seizing {quote.seize_amount} {collateral_asset} from {account} is below one balance unit"
                )

        self.ledger.burn_debt(state, account, repay_asset, quote.repay_amount)
        self.ledger.transfer_balance_units(state, collateral_asset, account, liquidator, seize_units)

        written_off = self._close_if_insolvent(state, account)
        after = self.risk.snapshot(state, account)
        if after.has_debt and after.health_factor < before.health_factor:
            raise InsufficientHealthFactor(
                f"Liquidation would lower {account} health factor from "
                f"{before.health_factor} to {after.health_factor}"
            )

        self.ledger.collect_underlying(state.asset(repay_asset), liquidator, quote.repay_amount)
        return LiquidationResult(
            account=account,
            liquidator=liquidator,
            repay_asset=repay_asset,
            collateral_asset=collateral_asset,
            repay_amount=quote.repay_amount,
            seize_amount=quote.seize_amount,
            seize_units=seize_units,
            health_before=before.health_factor,
            health_after=after.health_factor,
            written_off=written_off,
        )

    def _close_if_insolvent(self, state: LedgerState, account: str) -> Dict[str, int]:
        """Write off remaining debt when no collateral is left."""
        collateral = self.ledger.collateral
        if collateral.enabled_collateral(state, account):
            return {}
        written_off = {}
        for asset in collateral.enabled_loans(state, account):
            self.ledger.accrual.accrue(state, asset)
            amount = self.ledger.write_off_debt(state, account, asset)
            if amount:
                written_off[asset] = amount
        return written_off
