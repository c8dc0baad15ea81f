"""
Round-Trip Conformance Tests

INVARIANT: Converting underlying to units and back loses at most one unit's
worth, and always in the pool's favor.

    Balance side (supplier claims):
        back ≤ a  ∧  a - back ≤ T/U + 1

    Debt side (borrower obligations):
        back ≥ a  ∧  back - a ≤ B/U + 1

where T is the total underlying, B the total borrows and U the units
outstanding on that side.
"""

from hypothesis import given, settings
from hypothesis import strategies as st

from lendpool import WAD, Side, StaticPriceOracle

from tests.fakes import make_bank, make_pool, seeded_pool

totals_value = st.integers(min_value=1, max_value=10 ** 30)
amounts = st.integers(min_value=0, max_value=10 ** 30)


def pool_with_totals(underlying: int = 0, units: int = 0, borrows: int = 0, debt_units: int = 0):
    """
    Empty-vault pool whose asset A totals are set directly.

    With no cash in the vault, total_underlying equals the cached borrows.
    """
    pool = make_pool(make_bank(), StaticPriceOracle({"A": WAD, "B": WAD}))
    totals = pool.state.asset("A").totals
    totals.total_balance_units = units
    totals.cached_total_borrows = borrows or underlying
    totals.total_debt_units = debt_units or 1
    return pool


class TestRoundTripProperties:
    """Property-based round-trip tests."""

    @given(totals_value, totals_value, amounts)
    @settings(max_examples=300)
    def test_balance_round_trip_rounds_down(self, underlying, units, amount):
        """
        PROPERTY: amount → balance units → amount never gains and loses at
        most one unit's worth.
        """
        pool = pool_with_totals(underlying=underlying, units=units)
        ledger, state = pool.ledger, pool.state
        assert ledger.total_underlying(state, "A") == underlying

        minted = ledger.to_balance_units(state, "A", amount)
        back = ledger.balance_units_to_amount(state, "A", minted)
        assert back <= amount
        assert amount - back <= underlying // units + 1

    @given(totals_value, totals_value, amounts)
    @settings(max_examples=300)
    def test_debt_round_trip_rounds_up(self, borrows, debt_units, amount):
        """
        PROPERTY: amount → debt units → amount never loses and gains at most
        one unit's worth.
        """
        pool = pool_with_totals(borrows=borrows, debt_units=debt_units)
        ledger, state = pool.ledger, pool.state

        minted = ledger.to_debt_units(state, "A", amount, round_up=True)
        back = ledger.debt_units_to_amount(state, "A", minted)
        assert back >= amount
        assert back - amount <= borrows // debt_units + 1


class TestRoundTripExamples:
    """Explicit round-trip examples."""

    def test_empty_side_is_one_to_one(self):
        pool, _ = seeded_pool()
        assert pool.exchange_rate("A", Side.DEBT) == WAD
        assert pool.ledger.to_debt_units(pool.state, "A", 12345) == 12345

    def test_repay_units_round_down(self):
        # 3 units owe 10: 1 underlying is 0.3 units
        pool = pool_with_totals(borrows=10, debt_units=3)
        ledger, state = pool.ledger, pool.state
        assert ledger.to_debt_units(state, "A", 1, round_up=False) == 0
        assert ledger.to_debt_units(state, "A", 1, round_up=True) == 1
        assert ledger.debt_units_to_amount(state, "A", 1) == 4

    def test_withdraw_units_round_up(self):
        # 3 units claim 10
        pool = pool_with_totals(underlying=10, units=3)
        ledger, state = pool.ledger, pool.state
        assert ledger.to_balance_units(state, "A", 4) == 1
        assert ledger.to_balance_units(state, "A", 4, round_up=True) == 2
        assert ledger.balance_units_to_amount(state, "A", 1) == 3
