"""
Conformance Test Suite

This suite defines the NORMATIVE behavior of the lending pool.
Any compliant implementation MUST pass these tests.

The tests are organized by invariant:
1. test_solvency.py - Accounts stay healthy after their own withdraw/borrow
2. test_round_trip.py - Unit/underlying conversion loses at most one unit
3. test_monotonicity.py - The debt exchange rate never decreases
4. test_enablement.py - Enabled sets track nonzero unit balances
5. test_atomicity.py - Failed operations leave no trace

These tests use hypothesis for property-based testing.
"""
