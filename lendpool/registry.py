"""
registry.py - Per-asset configuration

An asset is configured exactly once, binding it to a yield vault and
fixing its base unit (10 ** decimals). Afterwards only the risk factors
may change; vault and base unit stay fixed for the life of the pool.
"""

from __future__ import annotations
from dataclasses import replace
from typing import Optional

from .core import (
    AssetConfig, AssetTotals, AssetTransfer, YieldVault,
    AlreadyConfigured, NotConfigured,
)
from .state import AssetRecord, LedgerState


class AssetRegistry:
    """
    Creates and updates AssetRecords in a LedgerState.

    Args:
        transfer: Asset-transfer capability, queried for token decimals
    """

    def __init__(self, transfer: AssetTransfer):
        self.transfer = transfer

    def configure(
        self,
        state: LedgerState,
        asset: str,
        vault_ref: YieldVault,
        config: AssetConfig,
    ) -> AssetRecord:
        """
        Register an asset.

        Raises:
            AlreadyConfigured: If the asset already has a vault reference
            ValueError: If vault_ref is None or the token reports negative decimals
        """
        existing = state.assets.get(asset)
        if existing is not None and existing.vault is not None:
            raise AlreadyConfigured(f"Asset {asset} is already configured")
        if vault_ref is None:
            raise ValueError(f"Asset {asset} needs a vault reference")

        decimals = self.transfer.decimals(asset)
        if decimals < 0:
            raise ValueError(f"Asset {asset} reports negative decimals: {decimals}")

        record = AssetRecord(
            symbol=asset,
            config=config,
            base_unit=10 ** decimals,
            vault=vault_ref,
            totals=AssetTotals(last_accrual_time=state.current_time),
        )
        state.assets[asset] = record
        return record

    def update(
        self,
        state: LedgerState,
        asset: str,
        lend_factor: Optional[int] = None,
        borrow_factor: Optional[int] = None,
    ) -> AssetConfig:
        """
        Overwrite an asset's lend and/or borrow factor.

        Returns:
            The new AssetConfig

        Raises:
            NotConfigured: If the asset is unknown
        """
        record = state.assets.get(asset)
        if record is None:
            raise NotConfigured(f"Asset {asset} is not configured")
        changes = {}
        if lend_factor is not None:
            changes["lend_factor"] = lend_factor
        if borrow_factor is not None:
            changes["borrow_factor"] = borrow_factor
        # replace() re-runs AssetConfig validation
        record.config = replace(record.config, **changes)
        return record.config

    def get(self, state: LedgerState, asset: str) -> AssetConfig:
        return state.asset(asset).config
