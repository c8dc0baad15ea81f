"""
lendpool - Multi-asset over-collateralized lending pool

Accounts deposit assets as collateral, borrow other assets against them and
must keep their health factor at or above the pool minimum; unhealthy
accounts can be liquidated by third parties.

Usage:
    from lendpool import (
        LendingPool, AssetConfig, ConstantRateModel, StaticPriceOracle,
        TokenBank, ShareVault, WAD,
    )

    bank = TokenBank()
    bank.register_token("ETH", 18)
    bank.register_token("USDC", 6)
    oracle = StaticPriceOracle({"ETH": 2_000 * WAD, "USDC": WAD})

    pool = LendingPool("main", oracle, bank)
    pool.configure_asset("ETH", ShareVault(bank, "ETH"), AssetConfig(8 * 10**17, WAD))
    pool.configure_asset(
        "USDC", ShareVault(bank, "USDC"),
        AssetConfig(9 * 10**17, WAD, ConstantRateModel(10**10)),
    )

    bank.mint("ETH", "alice", WAD)
    bank.mint("USDC", "bob", 10_000 * 10**6)
    pool.deposit("bob", "USDC", 10_000 * 10**6)
    pool.deposit("alice", "ETH", WAD)
    pool.borrow("alice", "USDC", 1_000 * 10**6)
    pool.health_factor("alice")
"""

# Core types
from .core import (
    WAD,
    MAX_UINT256,
    MAX_HEALTH_FACTOR,
    POOL_WALLET,
    Side,
    EventType,
    PriceOracle,
    InterestRateModel,
    AssetTransfer,
    YieldVault,
    AssetConfig,
    PoolParameters,
    AssetTotals,
    AccountAssetState,
    PoolEvent,
    LendingError,
    AlreadyConfigured,
    NotConfigured,
    InvalidAmount,
    AssetNotConfigured,
    InsufficientHealthFactor,
    RepaymentExceedsDebt,
    InsufficientBalance,
    HealthyAccount,
    RateModelUnset,
    TransferFailed,
    InsufficientLiquidity,
    PriceUnavailable,
    InternalInvariantViolated,
    ReentrantCall,
)

# Fixed-point math
from .fixed_point import mul_div_down, mul_div_up, wad_mul, wad_div, rpow

# State and engines
from .state import LedgerState, AssetRecord, AccountRecord, PoolCustody
from .collateral import IndexedSet, CollateralManager
from .registry import AssetRegistry
from .interest import (
    ConstantRateModel,
    KinkedRateModel,
    InterestAccrualModule,
    calculate_accrual,
)
from .ledger import LedgerEngine
from .risk import (
    AssetValuation,
    HealthSnapshot,
    RiskEngine,
    calculate_collateral_value,
    calculate_debt_value,
    calculate_health_factor,
)
from .liquidation import (
    LiquidationEngine,
    LiquidationQuote,
    LiquidationResult,
    calculate_max_repay_value,
    calculate_seize_amount,
    calculate_repay_for_seize,
)

# Pool facade
from .pool import LendingPool

# Reference capabilities
from .pricing_source import StaticPriceOracle, TimeSeriesPriceOracle
from .custody import TokenBank, ShareVault

__all__ = [
    'WAD', 'MAX_UINT256', 'MAX_HEALTH_FACTOR', 'POOL_WALLET',
    'Side', 'EventType',
    'PriceOracle', 'InterestRateModel', 'AssetTransfer', 'YieldVault',
    'AssetConfig', 'PoolParameters', 'AssetTotals', 'AccountAssetState', 'PoolEvent',
    'LendingError', 'AlreadyConfigured', 'NotConfigured', 'InvalidAmount',
    'AssetNotConfigured', 'InsufficientHealthFactor', 'RepaymentExceedsDebt',
    'InsufficientBalance', 'HealthyAccount', 'RateModelUnset', 'TransferFailed',
    'InsufficientLiquidity', 'PriceUnavailable', 'InternalInvariantViolated', 'ReentrantCall',
    'mul_div_down', 'mul_div_up', 'wad_mul', 'wad_div', 'rpow',
    'LedgerState', 'AssetRecord', 'AccountRecord', 'PoolCustody',
    'IndexedSet', 'CollateralManager', 'AssetRegistry',
    'ConstantRateModel', 'KinkedRateModel', 'InterestAccrualModule', 'calculate_accrual',
    'LedgerEngine',
    'AssetValuation', 'HealthSnapshot', 'RiskEngine',
    'calculate_collateral_value', 'calculate_debt_value', 'calculate_health_factor',
    'LiquidationEngine', 'LiquidationQuote', 'LiquidationResult',
    'calculate_max_repay_value', 'calculate_seize_amount', 'calculate_repay_for_seize',
    'LendingPool',
    'StaticPriceOracle', 'TimeSeriesPriceOracle',
    'TokenBank', 'ShareVault',
]
