"""
test_pool.py - Unit tests for the LendingPool facade

Tests:
- Atomic rollback on every failure path (validation, health, transfer, vault)
- Custody left in the pool wallet by a failed transfer or refund
- Non-reentrant entry points
- Event log: committed events only, contiguous sequence numbers
- Verbose output
- Clock and snapshots
"""

import pytest
from datetime import timedelta

from lendpool import (
    WAD,
    AssetConfig,
    ConstantRateModel,
    EventType,
    LendingPool,
    ShareVault,
    StaticPriceOracle,
    InsufficientHealthFactor,
    InvalidAmount,
    ReentrantCall,
    TransferFailed,
)

from tests.fakes import (
    START,
    CallbackOracle,
    FailingTransfer,
    FailingVault,
    after_periods,
    fund,
    make_bank,
    make_pool,
    supply,
)


def ledger_view(pool):
    """Comparable copy of everything an operation may touch."""
    snapshot = pool.snapshot()
    return (
        {asset: (record.totals, dict(record.positions), record.config) for asset, record in snapshot.assets.items()},
        {account: (list(record.collateral), list(record.loans)) for account, record in snapshot.accounts.items()},
        len(pool.event_log),
    )


class TestAtomicity:
    """Failed operations leave no trace."""

    def test_rejected_borrow(self, borrowed_pool):
        before = ledger_view(borrowed_pool)
        with pytest.raises(InsufficientHealthFactor):
            borrowed_pool.borrow("alice", "B", 1)
        assert ledger_view(borrowed_pool) == before

    def test_rejected_withdraw_after_interest(self, borrowed_pool):
        borrowed_pool.advance_time(after_periods(borrowed_pool, 3))
        before = ledger_view(borrowed_pool)
        with pytest.raises(InsufficientHealthFactor):
            borrowed_pool.withdraw("alice", "A", WAD // 2)
        assert ledger_view(borrowed_pool) == before

    def test_failed_transfer_out_rolls_back_borrow(self, oracle):
        bank = make_bank()
        transfer = FailingTransfer(bank)
        pool = make_pool(bank, oracle, transfer=transfer)
        supply(pool, bank, "lender", "B", 10 * WAD)
        supply(pool, bank, "alice", "A", WAD)
        before = ledger_view(pool)

        transfer.fail_on = {"transfer_out"}
        with pytest.raises(TransferFailed):
            pool.borrow("alice", "B", WAD // 10)

        assert ledger_view(pool) == before
        assert pool.enabled_loan("alice") == []
        assert bank.balance("B", "alice") == 0
        # The withdrawn tokens wait in the pool wallet and still count as cash
        assert bank.balance("B", "vault:B") == 10 * WAD - WAD // 10
        assert bank.balance("B", pool.pool_wallet) == WAD // 10
        assert pool.state.asset("B").custody.idle == WAD // 10
        assert pool.total_underlying("B") == 10 * WAD

    def test_failed_transfer_out_keeps_vault_yield(self, oracle):
        bank = make_bank()
        transfer = FailingTransfer(bank)
        pool = make_pool(bank, oracle, transfer=transfer)
        supply(pool, bank, "lender", "B", 3)
        vault = pool.state.asset("B").vault
        vault.accrue_yield(1)
        supply(pool, bank, "alice", "A", WAD)
        before = ledger_view(pool)
        assert pool.balance_of("B", "lender") == 4

        transfer.fail_on = {"transfer_out"}
        with pytest.raises(TransferFailed) as excinfo:
            pool.borrow("alice", "B", 1)
        assert isinstance(excinfo.value.__cause__, RuntimeError)
        assert ledger_view(pool) == before
        assert pool.balance_of("B", "lender") == 4
        assert pool.total_underlying("B") == 4

        # The next payout is served from the pool wallet before the vault
        transfer.fail_on = set()
        assert pool.borrow("alice", "B", 1) == 1
        assert bank.balance("B", "alice") == 1
        assert bank.balance("B", pool.pool_wallet) == 0
        assert vault.max_withdraw(pool.pool_wallet) == 3
        assert pool.state.asset("B").custody.idle == 0
        assert pool.balance_of("B", "lender") == 4

    def test_failed_transfer_in_rolls_back_deposit(self, oracle):
        bank = make_bank()
        transfer = FailingTransfer(bank, fail_on={"transfer_in"})
        pool = make_pool(bank, oracle, transfer=transfer)
        fund(bank, "alice", "A", WAD)
        with pytest.raises(TransferFailed) as excinfo:
            pool.deposit("alice", "A", WAD)
        assert isinstance(excinfo.value.__cause__, RuntimeError)
        assert pool.balance_of("A", "alice") == 0
        assert pool.enabled_collateral("alice") == []
        assert bank.balance("A", "alice") == WAD

    def test_failed_vault_deposit_refunds(self, oracle):
        bank = make_bank()
        pool = LendingPool("test", oracle, bank, initial_time=START, verbose=False)
        vault = FailingVault(bank, "A")
        pool.configure_asset("A", vault, AssetConfig(WAD // 2, WAD, ConstantRateModel(0)))
        fund(bank, "alice", "A", WAD)

        vault.fail_deposits = True
        with pytest.raises(TransferFailed):
            pool.deposit("alice", "A", WAD)
        assert bank.balance("A", "alice") == WAD
        assert bank.balance("A", pool.pool_wallet) == 0
        assert pool.state.asset("A").totals.total_balance_units == 0

        vault.fail_deposits = False
        assert pool.deposit("alice", "A", WAD) == WAD

    def test_failed_refund_is_booked(self, oracle):
        bank = make_bank()
        transfer = FailingTransfer(bank)
        pool = LendingPool("test", oracle, transfer, initial_time=START, verbose=False)
        vault = FailingVault(bank, "A")
        pool.configure_asset("A", vault, AssetConfig(WAD // 2, WAD, ConstantRateModel(0)))
        fund(bank, "alice", "A", WAD)

        vault.fail_deposits = True
        transfer.fail_on = {"transfer_out"}
        with pytest.raises(TransferFailed) as excinfo:
            pool.deposit("alice", "A", WAD)
        assert str(excinfo.value.__cause__) == "vault paused"
        assert str(excinfo.value.__context__) == "transfer_out rejected"

        assert pool.balance_of("A", "alice") == 0
        assert pool.enabled_collateral("alice") == []
        assert pool.state.asset("A").custody.unrefunded == {"alice": WAD}
        assert bank.balance("A", pool.pool_wallet) == WAD
        assert pool.total_underlying("A") == 0

    def test_failed_configuration_update(self, pool):
        before = ledger_view(pool)
        with pytest.raises(ValueError):
            pool.update_configuration("A", lend_factor=2 * WAD)
        assert ledger_view(pool) == before


class TestReentrancy:
    """Entry points cannot be re-entered."""

    @pytest.fixture
    def reentrant_setup(self):
        bank = make_bank()
        oracle = CallbackOracle({"A": WAD, "B": 2 * WAD})
        pool = make_pool(bank, oracle)
        supply(pool, bank, "lender", "B", 10 * WAD)
        supply(pool, bank, "alice", "A", WAD)
        return pool, oracle, bank

    def test_reentrant_deposit_rejected(self, reentrant_setup):
        pool, oracle, bank = reentrant_setup
        fund(bank, "alice", "A", WAD)
        oracle.on_price = lambda: pool.deposit("alice", "A", WAD)
        before = ledger_view(pool)
        with pytest.raises(ReentrantCall):
            pool.borrow("alice", "B", WAD // 10)
        assert ledger_view(pool) == before

    def test_pool_usable_after_reentry(self, reentrant_setup):
        pool, oracle, _ = reentrant_setup
        oracle.on_price = lambda: pool.withdraw("alice", "A", 1)
        with pytest.raises(ReentrantCall):
            pool.borrow("alice", "B", WAD // 10)
        assert pool.borrow("alice", "B", WAD // 10) == WAD // 10

    def test_clock_frozen_during_operation(self, reentrant_setup):
        pool, oracle, _ = reentrant_setup
        oracle.on_price = lambda: pool.advance_time(after_periods(pool, 1))
        with pytest.raises(ReentrantCall):
            pool.borrow("alice", "B", WAD // 10)
        assert pool.current_time == START


class TestEventLog:
    """Tests for the committed-event audit trail."""

    def test_configuration_events(self, pool):
        events = pool.event_log
        assert [e.event_type for e in events] == [EventType.CONFIGURED, EventType.CONFIGURED]
        assert events[0].asset == "A"
        assert events[0].details["base_unit"] == WAD

    def test_operation_events(self, borrowed_pool):
        kinds = [e.event_type for e in borrowed_pool.event_log[2:]]
        assert kinds == [EventType.DEPOSIT, EventType.DEPOSIT, EventType.BORROW]
        borrow = borrowed_pool.event_log[-1]
        assert borrow.account == "alice"
        assert borrow.amount == WAD // 4
        assert borrow.units == WAD // 4

    def test_sequence_is_contiguous(self, borrowed_pool):
        assert [e.sequence for e in borrowed_pool.event_log] == list(range(len(borrowed_pool.event_log)))

    def test_interest_event_precedes_repay(self, borrowed_pool):
        borrowed_pool.advance_time(after_periods(borrowed_pool, 5))
        borrowed_pool.repay("alice", "B", WAD // 10)
        accrued, repay = borrowed_pool.event_log[-2:]
        assert accrued.event_type is EventType.INTEREST_ACCRUED
        assert accrued.amount == 319_070_390_625_000_000 - WAD // 4
        assert repay.event_type is EventType.REPAY
        assert repay.timestamp == borrowed_pool.current_time

    def test_failed_operation_emits_nothing(self, borrowed_pool):
        borrowed_pool.advance_time(after_periods(borrowed_pool, 5))
        count = len(borrowed_pool.event_log)
        with pytest.raises(InsufficientHealthFactor):
            borrowed_pool.borrow("alice", "B", WAD)
        assert len(borrowed_pool.event_log) == count

    def test_update_event(self, pool):
        pool.update_configuration("A", borrow_factor=WAD // 2)
        event = pool.event_log[-1]
        assert event.event_type is EventType.CONFIGURATION_UPDATED
        assert event.details == {"lend_factor": WAD // 2, "borrow_factor": WAD // 2}

    def test_event_repr(self, borrowed_pool):
        assert repr(borrowed_pool.event_log[-1]).startswith("PoolEvent(#4, borrow, asset=B, account=alice")


class TestVerbose:
    """Tests for verbose console output."""

    def test_prints_committed_and_rejected(self, capsys):
        bank = make_bank()
        pool = LendingPool("loud", StaticPriceOracle({"A": WAD}), bank, initial_time=START)
        pool.configure_asset("A", ShareVault(bank, "A"), AssetConfig(WAD, WAD))
        with pytest.raises(InvalidAmount):
            pool.deposit("alice", "A", 0)
        out = capsys.readouterr().out
        assert "✓ PoolEvent(#0, configured, asset=A)" in out
        assert "✗ REJECTED deposit 0 A by alice: InvalidAmount" in out

    def test_quiet_pool_prints_nothing(self, borrowed_pool, capsys):
        borrowed_pool.repay("alice", "B", 1)
        assert capsys.readouterr().out == ""


class TestClockAndSnapshots:
    """Tests for advance_time and snapshot."""

    def test_time_cannot_go_backwards(self, pool):
        with pytest.raises(ValueError):
            pool.advance_time(START - timedelta(seconds=1))

    def test_advance_time(self, pool):
        pool.advance_time(START + timedelta(days=1))
        assert pool.current_time == START + timedelta(days=1)

    def test_reads_do_not_accrue(self, borrowed_pool):
        borrowed_pool.advance_time(after_periods(borrowed_pool, 5))
        borrowed_pool.borrow_balance("B", "alice")
        assert borrowed_pool.state.asset("B").totals.last_accrual_time == START

    def test_snapshot_is_independent(self, supplied_pool, bank):
        snapshot = supplied_pool.snapshot()
        supply(supplied_pool, bank, "alice", "A", WAD)
        assert snapshot.asset("A").positions["alice"].balance_units == WAD
        assert supplied_pool.state.asset("A").positions["alice"].balance_units == 2 * WAD

    def test_repr(self, supplied_pool):
        assert repr(supplied_pool).startswith("LendingPool(test, 2 assets, 2 accounts")
