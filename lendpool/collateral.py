"""
collateral.py - Per-account collateral and loan enablement

Each account carries two enumerable sets of asset symbols: the assets
enabled as collateral and the assets currently borrowed. The risk engine
iterates these sets, so membership must track the ledger exactly:

    asset disabled  =>  the account's units for that role are zero

Disabling is therefore a no-op while units remain.
"""

from __future__ import annotations
from typing import Dict, Iterable, Iterator, List, Optional

from .state import LedgerState


class IndexedSet:
    """
    Dense array plus value-to-index map.

    Append and removal are O(1); removal swaps the last element into the
    freed slot, so iteration order carries no meaning.
    """

    __slots__ = ("_items", "_index")

    def __init__(self, items: Optional[Iterable[str]] = None):
        self._items: List[str] = []
        self._index: Dict[str, int] = {}
        for item in items or ():
            self.add(item)

    def add(self, item: str) -> bool:
        """Append item. Returns False if it was already present."""
        if item in self._index:
            return False
        self._index[item] = len(self._items)
        self._items.append(item)
        return True

    def remove(self, item: str) -> bool:
        """Swap-and-pop removal. Returns False if item was absent."""
        position = self._index.pop(item, None)
        if position is None:
            return False
        last = self._items.pop()
        if position < len(self._items):
            self._items[position] = last
            self._index[last] = position
        return True

    def copy(self) -> IndexedSet:
        cloned = IndexedSet()
        cloned._items = list(self._items)
        cloned._index = dict(self._index)
        return cloned

    def __contains__(self, item: object) -> bool:
        return item in self._index

    def __iter__(self) -> Iterator[str]:
        return iter(list(self._items))

    def __len__(self) -> int:
        return len(self._items)

    def __repr__(self) -> str:
        return f"IndexedSet({self._items!r})"


class CollateralManager:
    """Enable/disable collateral and loan participation for accounts."""

    def enable_collateral(self, state: LedgerState, account: str, asset: str) -> bool:
        """Add asset to the account's collateral set. Idempotent."""
        return state.account(account).collateral.add(asset)

    def enable_loan(self, state: LedgerState, account: str, asset: str) -> bool:
        """Add asset to the account's loan set. Idempotent."""
        return state.account(account).loans.add(asset)

    def disable_collateral(self, state: LedgerState, account: str, asset: str) -> bool:
        """
        Remove asset from the collateral set.

        No-op (returns False) while the account still holds balance units.
        """
        position = state.find_position(asset, account)
        if position is not None and position.balance_units != 0:
            return False
        return state.account(account).collateral.remove(asset)

    def disable_loan(self, state: LedgerState, account: str, asset: str) -> bool:
        """
        Remove asset from the loan set.

        No-op (returns False) while the account still owes debt units.
        """
        position = state.find_position(asset, account)
        if position is not None and position.debt_units != 0:
            return False
        return state.account(account).loans.remove(asset)

    def enabled_collateral(self, state: LedgerState, account: str) -> List[str]:
        record = state.accounts.get(account)
        return list(record.collateral) if record else []

    def enabled_loans(self, state: LedgerState, account: str) -> List[str]:
        record = state.accounts.get(account)
        return list(record.loans) if record else []
