"""
ledger.py - Balance and debt unit ledger

Accounts hold internal units, never underlying amounts. Units convert to
underlying through an exchange rate derived from pool totals:

    balance side:  rate = total_underlying * base_unit / total_balance_units
    debt side:     rate = cached_total_borrows * base_unit / total_debt_units

Either rate is base_unit (1:1) while its unit total is zero.

Rounding always favors the pool:
    - deposit:  amount -> balance units, round down (mint fewer)
    - withdraw: amount -> balance units, round up   (burn more)
    - borrow:   amount -> debt units,    round up   (owe more)
    - repay:    amount -> debt units,    round down (forgive fewer)
    - reads:    balances round down, debts round up

Conversions use the totals directly (mul_div) rather than a rounded
exchange rate, so small base units keep full precision.

cached_total_borrows moves by the value of the debt units minted (rounded
up) or burned or written off (rounded down), not by the requested amount,
so the debt exchange rate never decreases; the rounding dust stays in the pool.

Operation order: accrue, validate, mutate units and totals, health check,
then move underlying through the external capability. The caller (the
pool) wraps the whole sequence in an atomic scope.
"""

from __future__ import annotations
from typing import Callable, Optional

from .core import (
    POOL_WALLET, Side, AssetTotals, AssetTransfer,
    InvalidAmount, InsufficientBalance, InsufficientLiquidity,
    RepaymentExceedsDebt, TransferFailed,
)
from .collateral import CollateralManager
from .fixed_point import mul_div_down, mul_div_up, checked_sub
from .interest import InterestAccrualModule, available_liquidity
from .state import AssetRecord, LedgerState


# check_health(state, account, hypothetical_asset=None, hypothetical_delta=0)
HealthCheck = Callable[..., None]


def require_positive_amount(amount: int) -> None:
    if not isinstance(amount, int) or isinstance(amount, bool):
        raise InvalidAmount(f"Amount must be an int, got {type(amount).__name__}")
    if amount <= 0:
        raise InvalidAmount(f"Amount must be positive, got {amount}")


class LedgerEngine:
    """
    Deposit, withdraw, borrow and repay against the unit ledger.

    Args:
        accrual: Interest accrual module
        collateral: Enablement-set manager
        transfer: External asset-transfer capability
        pool_wallet: The pool's own wallet id at the transfer and vault layer
        check_health: Solvency gate, normally RiskEngine.check_health
    """

    def __init__(
        self,
        accrual: InterestAccrualModule,
        collateral: CollateralManager,
        transfer: AssetTransfer,
        pool_wallet: str = POOL_WALLET,
        check_health: Optional[HealthCheck] = None,
    ):
        self.accrual = accrual
        self.collateral = collateral
        self.transfer = transfer
        self.pool_wallet = pool_wallet
        self.check_health = check_health

    # ========================================================================
    # READS (projected to state.current_time, never mutate)
    # ========================================================================

    def totals(self, state: LedgerState, asset: str) -> AssetTotals:
        return self.accrual.project(state, asset)

    def cash(self, state: LedgerState, asset: str) -> int:
        """Idle underlying, net of the in-flight operation's pending movements."""
        record = state.asset(asset)
        return max(0, available_liquidity(record, self.pool_wallet) + record.totals.pending_cash_delta)

    def total_underlying(self, state: LedgerState, asset: str) -> int:
        """Underlying owed to suppliers: cash + borrows - reserves."""
        totals = self.totals(state, asset)
        return max(0, self.cash(state, asset) + totals.cached_total_borrows - totals.total_reserves)

    def exchange_rate(self, state: LedgerState, asset: str, side: Side) -> int:
        """Underlying per whole unit (scaled by base_unit)."""
        base_unit = state.asset(asset).base_unit
        totals = self.totals(state, asset)
        if side is Side.BALANCE:
            if totals.total_balance_units == 0:
                return base_unit
            return mul_div_down(self.total_underlying(state, asset), base_unit, totals.total_balance_units)
        if totals.total_debt_units == 0:
            return base_unit
        return mul_div_up(totals.cached_total_borrows, base_unit, totals.total_debt_units)

    def to_balance_units(self, state: LedgerState, asset: str, amount: int, round_up: bool = False) -> int:
        totals = self.totals(state, asset)
        if totals.total_balance_units == 0:
            return amount
        convert = mul_div_up if round_up else mul_div_down
        return convert(amount, totals.total_balance_units, self.total_underlying(state, asset))

    def balance_units_to_amount(self, state: LedgerState, asset: str, units: int) -> int:
        totals = self.totals(state, asset)
        if totals.total_balance_units == 0:
            return units
        return mul_div_down(units, self.total_underlying(state, asset), totals.total_balance_units)

    def to_debt_units(self, state: LedgerState, asset: str, amount: int, round_up: bool = True) -> int:
        totals = self.totals(state, asset)
        if totals.total_debt_units == 0:
            return amount
        convert = mul_div_up if round_up else mul_div_down
        return convert(amount, totals.total_debt_units, totals.cached_total_borrows)

    def debt_units_to_amount(self, state: LedgerState, asset: str, units: int) -> int:
        totals = self.totals(state, asset)
        if totals.total_debt_units == 0:
            return units
        return mul_div_up(units, totals.cached_total_borrows, totals.total_debt_units)

    def balance_of(self, state: LedgerState, asset: str, account: str) -> int:
        """Underlying value of the account's balance units (rounded down)."""
        state.asset(asset)
        position = state.find_position(asset, account)
        if position is None or position.balance_units == 0:
            return 0
        return self.balance_units_to_amount(state, asset, position.balance_units)

    def borrow_balance(self, state: LedgerState, asset: str, account: str) -> int:
        """Underlying owed by the account (rounded up)."""
        state.asset(asset)
        position = state.find_position(asset, account)
        if position is None or position.debt_units == 0:
            return 0
        return self.debt_units_to_amount(state, asset, position.debt_units)

    # ========================================================================
    # USER OPERATIONS (mutating)
    # ========================================================================

    def deposit(self, state: LedgerState, account: str, asset: str, amount: int) -> int:
        """
        Supply underlying and mint balance units.

        The asset is enabled as the account's collateral.

        Returns:
            Balance units minted

        Raises:
            InvalidAmount: If amount is not positive or mints zero units
            AssetNotConfigured: If the asset is unknown
            TransferFailed: If the underlying cannot be collected
        """
        require_positive_amount(amount)
        record = state.asset(asset)
        self.accrual.accrue(state, asset)

        units = self.to_balance_units(state, asset, amount)
        if units == 0:
            raise InvalidAmount(f"Deposit of {amount} {asset} is below one balance unit")

        position = state.position(asset, account)
        position.balance_units += units
        record.totals.total_balance_units += units
        record.totals.pending_cash_delta += amount
        self.collateral.enable_collateral(state, account, asset)

        self.collect_underlying(record, account, amount)
        return units

    def withdraw(self, state: LedgerState, account: str, asset: str, amount: int) -> int:
        """
        Redeem balance units for underlying.

        Returns:
            Balance units burned

        Raises:
            InvalidAmount: If amount is not positive
            InsufficientBalance: If amount exceeds the account's balance
            InsufficientLiquidity: If the vault cannot release amount
            InsufficientHealthFactor: If the account would become unhealthy
            TransferFailed: If the underlying cannot be released
        """
        require_positive_amount(amount)
        record = state.asset(asset)
        self.accrual.accrue(state, asset)

        position = state.position(asset, account)
        units = self.to_balance_units(state, asset, amount, round_up=True)
        if units > position.balance_units:
            raise InsufficientBalance(
                f"{account} cannot withdraw {amount} {asset}: needs {units} units, "
                f"holds {position.balance_units}"
            )
        self._require_liquidity(state, asset, amount)

        position.balance_units -= units
        record.totals.total_balance_units = checked_sub(record.totals.total_balance_units, units)
        record.totals.pending_cash_delta -= amount
        if position.balance_units == 0:
            self.collateral.disable_collateral(state, account, asset)

        self._check_health(state, account)
        self.release_underlying(record, account, amount)
        return units

    def borrow(self, state: LedgerState, account: str, asset: str, amount: int) -> int:
        """
        Borrow underlying, minting debt units.

        The post-borrow health factor is evaluated hypothetically before any
        unit is minted, then confirmed on the committed state.

        Returns:
            Debt units minted

        Raises:
            InvalidAmount: If amount is not positive
            RateModelUnset: If the asset has no interest rate model
            InsufficientLiquidity: If the vault cannot release amount
            InsufficientHealthFactor: If the account would become unhealthy
            TransferFailed: If the underlying cannot be released
        """
        require_positive_amount(amount)
        record = state.asset(asset)
        self.accrual.requires_rate_model(record.config, asset)
        self.accrual.accrue(state, asset)
        self._require_liquidity(state, asset, amount)

        self.collateral.enable_loan(state, account, asset)
        self._check_health(state, account, asset, amount)

        units = self.to_debt_units(state, asset, amount, round_up=True)
        owed = self.debt_units_to_amount(state, asset, units)
        position = state.position(asset, account)
        position.debt_units += units
        record.totals.total_debt_units += units
        record.totals.cached_total_borrows += owed
        record.totals.pending_cash_delta -= amount

        self._check_health(state, account)
        self.release_underlying(record, account, amount)
        return units

    def repay(
        self,
        state: LedgerState,
        account: str,
        asset: str,
        amount: int,
        payer: Optional[str] = None,
    ) -> int:
        """
        Repay debt on behalf of account (payer defaults to the account).

        Returns:
            Debt units burned

        Raises:
            InvalidAmount: If amount is not positive or burns zero units
            RepaymentExceedsDebt: If amount converts to more units than owed
            TransferFailed: If the underlying cannot be collected
        """
        require_positive_amount(amount)
        record = state.asset(asset)
        self.accrual.accrue(state, asset)

        units = self.burn_debt(state, account, asset, amount)
        self.collect_underlying(record, payer or account, amount)
        return units

    # ========================================================================
    # INTERNAL MUTATIONS (shared with liquidation)
    # ========================================================================

    def burn_debt(self, state: LedgerState, account: str, asset: str, amount: int) -> int:
        """
        Reduce the account's debt by amount of underlying, pending its collection.

        Caller must have accrued the asset and must collect amount afterwards.
        """
        record = state.asset(asset)
        position = state.position(asset, account)
        units = self.to_debt_units(state, asset, amount, round_up=False)
        if units > position.debt_units:
            raise RepaymentExceedsDebt(
                f"Repayment of {amount} {asset} is {units} units; {account} owes {position.debt_units}"
            )
        if units == 0:
            raise InvalidAmount(f"Repayment of {amount} {asset} is below one debt unit")

        totals = record.totals
        released = mul_div_down(units, totals.cached_total_borrows, totals.total_debt_units)
        position.debt_units -= units
        totals.total_debt_units = checked_sub(totals.total_debt_units, units)
        totals.cached_total_borrows = checked_sub(totals.cached_total_borrows, released)
        if totals.total_debt_units == 0:
            totals.cached_total_borrows = 0
        totals.pending_cash_delta += amount
        if position.debt_units == 0:
            self.collateral.disable_loan(state, account, asset)
        return units

    def write_off_debt(self, state: LedgerState, account: str, asset: str) -> int:
        """
        Erase the account's entire debt in asset without repayment.

        The loss is absorbed by suppliers through a lower total_underlying.

        Returns:
            Underlying amount written off
        """
        record = state.asset(asset)
        position = state.position(asset, account)
        if position.debt_units == 0:
            return 0
        totals = record.totals
        amount = mul_div_down(position.debt_units, totals.cached_total_borrows, totals.total_debt_units)
        totals.total_debt_units = checked_sub(totals.total_debt_units, position.debt_units)
        totals.cached_total_borrows = checked_sub(totals.cached_total_borrows, amount)
        if totals.total_debt_units == 0:
            totals.cached_total_borrows = 0
        position.debt_units = 0
        self.collateral.disable_loan(state, account, asset)
        return amount

    def transfer_balance_units(
        self,
        state: LedgerState,
        asset: str,
        source: str,
        dest: str,
        units: int,
    ) -> None:
        """Move balance units between accounts; dest gets the asset enabled as collateral."""
        source_position = state.position(asset, source)
        if units > source_position.balance_units:
            raise InsufficientBalance(
                f"{source} holds {source_position.balance_units} {asset} units, cannot move {units}"
            )
        source_position.balance_units -= units
        state.position(asset, dest).balance_units += units
        self.collateral.enable_collateral(state, dest, asset)
        if source_position.balance_units == 0:
            self.collateral.disable_collateral(state, source, asset)

    # ========================================================================
    # HELPERS
    # ========================================================================

    def _check_health(
        self,
        state: LedgerState,
        account: str,
        hypothetical_asset: Optional[str] = None,
        hypothetical_delta: int = 0,
    ) -> None:
        if self.check_health is not None:
            self.check_health(state, account, hypothetical_asset, hypothetical_delta)

    def _require_liquidity(self, state: LedgerState, asset: str, amount: int) -> None:
        cash = self.cash(state, asset)
        if amount > cash:
            raise InsufficientLiquidity(f"Pool holds {cash} {asset}, cannot release {amount}")

    def collect_underlying(self, record: AssetRecord, source: str, amount: int) -> None:
        """
        Pull underlying from source into the vault; clears the pending delta.

        If the vault rejects the deposit the tokens are refunded to source.
        A refund that also fails is booked in custody.unrefunded.
        """
        asset = record.symbol
        custody = record.custody
        try:
            self.transfer.transfer_in(asset, source, amount)
        except TransferFailed:
            raise
        except Exception as exc:
            raise TransferFailed(f"transfer_in of {amount} {asset} from {source} failed: {exc}") from exc
        try:
            record.vault.deposit(self.pool_wallet, amount)
        except Exception as exc:
            try:
                self.transfer.transfer_out(asset, source, amount)
            except Exception:
                custody.unrefunded[source] = custody.unrefunded.get(source, 0) + amount
                raise TransferFailed(
                    f"vault deposit of {amount} {asset} failed and the refund to {source} "
                    f"failed; {amount} held unrefunded: {exc}"
                ) from exc
            raise TransferFailed(f"vault deposit of {amount} {asset} failed: {exc}") from exc
        record.totals.pending_cash_delta -= amount

    def release_underlying(self, record: AssetRecord, dest: str, amount: int) -> None:
        """
        Send underlying to dest; clears the pending delta.

        Idle custody is paid out first and the vault covers the rest. If the
        outgoing transfer fails, whatever left the vault stays in the pool
        wallet as idle custody, so available liquidity is unchanged.
        """
        asset = record.symbol
        custody = record.custody
        from_vault = amount - min(custody.idle, amount)
        if from_vault:
            try:
                record.vault.withdraw(self.pool_wallet, from_vault)
            except TransferFailed:
                raise
            except Exception as exc:
                raise TransferFailed(f"vault withdrawal of {from_vault} {asset} failed: {exc}") from exc
            custody.idle += from_vault
        try:
            self.transfer.transfer_out(asset, dest, amount)
        except TransferFailed:
            raise
        except Exception as exc:
            raise TransferFailed(f"transfer_out of {amount} {asset} to {dest} failed: {exc}") from exc
        custody.idle -= amount
        record.totals.pending_cash_delta += amount
