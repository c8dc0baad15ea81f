"""
conftest.py - Shared pytest fixtures for lending pool tests

Provides common fixtures used across unit, functional and conformance tests:
- Token bank with registered tokens
- Static price oracle
- Pools with configured assets (empty, supplied, with an open borrow)
"""

import pytest

from lendpool import WAD, StaticPriceOracle

from tests.fakes import fund, make_bank, make_pool, supply


@pytest.fixture
def bank():
    return make_bank()


@pytest.fixture
def oracle():
    return StaticPriceOracle({"A": WAD, "B": 2 * WAD})


@pytest.fixture
def pool(bank, oracle):
    """Pool with A and B configured, nothing supplied."""
    return make_pool(bank, oracle)


@pytest.fixture
def supplied_pool(pool, bank):
    """Lender supplies 10 B; alice supplies 1 A as collateral."""
    supply(pool, bank, "lender", "B", 10 * WAD)
    supply(pool, bank, "alice", "A", WAD)
    return pool


@pytest.fixture
def borrowed_pool(supplied_pool, bank):
    """Alice borrows 0.25 B, exactly at the minimum health factor; the liquidator holds 10 B."""
    supplied_pool.borrow("alice", "B", WAD // 4)
    fund(bank, "liquidator", "B", 10 * WAD)
    return supplied_pool
