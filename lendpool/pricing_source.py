"""
pricing_source.py - Reference price oracles

Classes:
- StaticPriceOracle: Time-independent prices, updated by hand
- TimeSeriesPriceOracle: Step-function price history read at a clock's time

Prices are wads: the value of one whole token (base_unit smallest units)
in the pool's common unit of account. A missing price is reported as 0.
"""

from __future__ import annotations
from bisect import bisect_right
from datetime import datetime
from typing import Callable, Dict, List, Optional, Tuple


class StaticPriceOracle:
    """
    Price oracle with static prices (time-independent).

    Prices change only through update_price/update_prices.
    """

    def __init__(self, prices: Optional[Dict[str, int]] = None):
        self.prices: Dict[str, int] = dict(prices or {})

    def price(self, asset: str) -> int:
        return self.prices.get(asset, 0)

    def update_price(self, asset: str, price: int) -> None:
        if price < 0:
            raise ValueError(f"Price for {asset} cannot be negative: {price}")
        self.prices[asset] = price

    def update_prices(self, prices: Dict[str, int]) -> None:
        for asset, price in prices.items():
            self.update_price(asset, price)

    def __repr__(self):
        return f"StaticPriceOracle({len(self.prices)} prices)"


class TimeSeriesPriceOracle:
    """
    Price oracle with time-varying prices.

    Stores historical observations and answers with the most recent price
    at or before clock(). Pass the pool's current_time accessor as the
    clock so prices follow LendingPool.advance_time.

    Examples:
        oracle = TimeSeriesPriceOracle(clock=lambda: pool.current_time)
        oracle.add_price("ETH", datetime(2025, 1, 15), 2_000 * WAD)
    """

    def __init__(
        self,
        price_paths: Optional[Dict[str, List[Tuple[datetime, int]]]] = None,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        self.clock = clock
        self.price_history: Dict[str, List[Tuple[datetime, int]]] = {}
        for asset, path in (price_paths or {}).items():
            if path:
                self.price_history[asset] = sorted(path, key=lambda x: x[0])

    def add_price(self, asset: str, timestamp: datetime, price: int) -> None:
        if price < 0:
            raise ValueError(f"Price for {asset} cannot be negative: {price}")
        history = self.price_history.setdefault(asset, [])
        history.append((timestamp, price))
        history.sort(key=lambda x: x[0])

    def add_prices(self, prices: Dict[str, int], timestamp: datetime) -> None:
        for asset, price in prices.items():
            self.add_price(asset, timestamp, price)

    def price_at(self, asset: str, timestamp: datetime) -> int:
        """Most recent price at or before timestamp, 0 if none."""
        history = self.price_history.get(asset)
        if not history:
            return 0
        idx = bisect_right([ts for ts, _ in history], timestamp)
        if idx == 0:
            return 0
        return history[idx - 1][1]

    def price(self, asset: str) -> int:
        if self.clock is None:
            raise ValueError("TimeSeriesPriceOracle needs a clock to answer price()")
        return self.price_at(asset, self.clock())

    def __repr__(self):
        total_observations = sum(len(history) for history in self.price_history.values())
        return f"TimeSeriesPriceOracle({len(self.price_history)} assets, {total_observations} observations)"
