"""
Conformance Test Suite

This suite defines the NORMATIVE behavior of the loan lifecycle.
Any compliant implementation MUST pass these tests.

The tests are organized by invariant:
1. escrow_conservation.py - Escrow wallet matches loan records; payouts sum to approvals
2. transition_atomicity.py - Rejected actions leave no trace
3. state_machine.py - Allowed transitions and terminal states

These tests use hypothesis for property-based testing.
"""
