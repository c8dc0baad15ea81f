"""
custody.py - In-memory asset transfer and yield vault

Reference implementations of the pool's custody capabilities:

    TokenBank   - per-wallet token balances (AssetTransfer)
    ShareVault  - share-based vault holding one token in a TokenBank (YieldVault)

Tokens move between user wallets and the pool wallet through the bank;
the pool then parks them in the asset's vault in exchange for shares.
Both raise ValueError on any rejected movement, which the pool reports as
TransferFailed.
"""

from __future__ import annotations
from collections import defaultdict
from typing import Dict

from .core import POOL_WALLET


class TokenBank:
    """
    Token balances per (asset, wallet).

    Args:
        pool_wallet: Wallet that transfer_in credits and transfer_out debits
    """

    def __init__(self, pool_wallet: str = POOL_WALLET):
        self.pool_wallet = pool_wallet
        self.token_decimals: Dict[str, int] = {}
        self.balances: Dict[str, Dict[str, int]] = {}

    def register_token(self, asset: str, decimals: int) -> None:
        if asset in self.token_decimals:
            raise ValueError(f"Token {asset} already registered")
        if decimals < 0:
            raise ValueError(f"Token {asset} decimals cannot be negative: {decimals}")
        self.token_decimals[asset] = decimals
        self.balances[asset] = defaultdict(int)

    def decimals(self, asset: str) -> int:
        if asset not in self.token_decimals:
            raise ValueError(f"Token {asset} is not registered")
        return self.token_decimals[asset]

    def balance(self, asset: str, wallet: str) -> int:
        return self._ledger(asset).get(wallet, 0)

    def total_supply(self, asset: str) -> int:
        return sum(self._ledger(asset).values())

    def mint(self, asset: str, wallet: str, amount: int) -> None:
        if amount <= 0:
            raise ValueError(f"Mint amount must be positive, got {amount}")
        self._ledger(asset)[wallet] += amount

    def transfer(self, asset: str, source: str, dest: str, amount: int) -> None:
        """Move amount of asset between wallets, or raise without moving anything."""
        if amount < 0:
            raise ValueError(f"Transfer amount cannot be negative, got {amount}")
        balances = self._ledger(asset)
        available = balances.get(source, 0)
        if amount > available:
            raise ValueError(f"{source} holds {available} {asset}, cannot send {amount}")
        balances[source] = available - amount
        balances[dest] += amount

    def transfer_in(self, asset: str, source: str, amount: int) -> None:
        self.transfer(asset, source, self.pool_wallet, amount)

    def transfer_out(self, asset: str, dest: str, amount: int) -> None:
        self.transfer(asset, self.pool_wallet, dest, amount)

    def _ledger(self, asset: str) -> Dict[str, int]:
        balances = self.balances.get(asset)
        if balances is None:
            raise ValueError(f"Token {asset} is not registered")
        return balances

    def __repr__(self):
        return f"TokenBank({len(self.token_decimals)} tokens, pool={self.pool_wallet})"


class ShareVault:
    """
    Share-based vault for one token.

    Depositors receive shares at the current share price
    (total_assets / total_shares); shares round down on deposit and up on
    withdrawal. accrue_yield() grows total_assets without minting shares,
    so every depositor's redeemable amount rises.

    Args:
        bank: Token bank holding the vault's assets
        asset: Token the vault custodies
        wallet: The vault's own wallet in the bank (default "vault:<asset>")
    """

    def __init__(self, bank: TokenBank, asset: str, wallet: str = None):
        self.bank = bank
        self.asset = asset
        self.wallet = wallet or f"vault:{asset}"
        self.shares: Dict[str, int] = defaultdict(int)
        self.total_shares = 0

    def total_assets(self) -> int:
        return self.bank.balance(self.asset, self.wallet)

    def convert_to_shares(self, assets: int, round_up: bool = False) -> int:
        total_assets = self.total_assets()
        if self.total_shares == 0 or total_assets == 0:
            return assets
        numerator = assets * self.total_shares
        if round_up:
            return -(-numerator // total_assets)
        return numerator // total_assets

    def max_withdraw(self, owner: str) -> int:
        owned = self.shares.get(owner, 0)
        if owned == 0:
            return 0
        return owned * self.total_assets() // self.total_shares

    def deposit(self, owner: str, assets: int) -> int:
        """Pull assets from owner's wallet and mint shares. Returns shares minted."""
        if assets <= 0:
            raise ValueError(f"Vault deposit must be positive, got {assets}")
        shares = self.convert_to_shares(assets)
        if shares == 0:
            raise ValueError(f"Vault deposit of {assets} {self.asset} mints no shares")
        self.bank.transfer(self.asset, owner, self.wallet, assets)
        self.shares[owner] += shares
        self.total_shares += shares
        return shares

    def withdraw(self, owner: str, assets: int) -> int:
        """Burn owner's shares and send assets to owner's wallet. Returns shares burned."""
        if assets <= 0:
            raise ValueError(f"Vault withdrawal must be positive, got {assets}")
        if assets > self.max_withdraw(owner):
            raise ValueError(
                f"{owner} can withdraw at most {self.max_withdraw(owner)} {self.asset}, asked {assets}"
            )
        shares = min(self.convert_to_shares(assets, round_up=True), self.shares[owner])
        self.bank.transfer(self.asset, self.wallet, owner, assets)
        self.shares[owner] -= shares
        self.total_shares -= shares
        return shares

    def accrue_yield(self, amount: int) -> None:
        """Mint amount of the underlying into the vault (external yield)."""
        self.bank.mint(self.asset, self.wallet, amount)

    def __repr__(self):
        return f"ShareVault({self.asset}, assets={self.total_assets()}, shares={self.total_shares})"
