"""
Enablement Conformance Tests

INVARIANT: The enabled sets track exactly the nonzero unit balances.

    ∀ account a, asset x:
        balance_units(a, x) > 0 ⟺ x ∈ enabled_collateral(a)
        debt_units(a, x) > 0 ⟺ x ∈ enabled_loan(a)
"""

from hypothesis import given, settings

from lendpool import WAD

from tests.fakes import ACCOUNTS, apply_op, fund, operations, seeded_pool, supply


def assert_enablement_matches(pool):
    for account in ACCOUNTS:
        collateral = pool.enabled_collateral(account)
        loans = pool.enabled_loan(account)
        for asset in ("A", "B"):
            position = pool.state.find_position(asset, account)
            balance_units = position.balance_units if position else 0
            debt_units = position.debt_units if position else 0
            assert (balance_units > 0) == (asset in collateral)
            assert (debt_units > 0) == (asset in loans)
        assert len(collateral) == len(set(collateral))
        assert len(loans) == len(set(loans))


class TestEnablementProperties:
    """Property-based enablement tests."""

    @given(operations())
    @settings(max_examples=100, deadline=None)
    def test_enabled_sets_match_units(self, ops):
        """
        PROPERTY: After every operation, committed or rejected, the enabled
        sets equal the assets with nonzero units.
        """
        pool, bank = seeded_pool()
        for op in ops:
            apply_op(pool, bank, op)
            assert_enablement_matches(pool)


class TestEnablementExamples:
    """Explicit enablement examples."""

    def test_full_withdraw_disables_collateral(self):
        pool, bank = seeded_pool()
        supply(pool, bank, "alice", "A", WAD)
        assert pool.enabled_collateral("alice") == ["A"]
        pool.withdraw("alice", "A", WAD)
        assert pool.enabled_collateral("alice") == []

    def test_full_repay_disables_loan(self):
        pool, bank = seeded_pool()
        supply(pool, bank, "alice", "A", 10 * WAD)
        pool.borrow("alice", "B", WAD)
        assert pool.enabled_loan("alice") == ["B"]
        fund(bank, "alice", "B", WAD)
        pool.repay("alice", "B", WAD)
        assert pool.enabled_loan("alice") == []

    def test_rejected_borrow_leaves_loan_disabled(self):
        pool, bank = seeded_pool()
        supply(pool, bank, "alice", "A", WAD)
        assert not apply_op(pool, bank, ("borrow", "alice", "B", WAD))
        assert pool.enabled_loan("alice") == []
        assert_enablement_matches(pool)
