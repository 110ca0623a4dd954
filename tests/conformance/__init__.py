"""
Conformance Test Suite

This suite defines the NORMATIVE behavior of the prediction-market core.
Any compliant implementation MUST pass these tests.

The tests are organized by invariant:
1. conservation.py - Split sums and issued - voided = owing per issuer
2. atomicity.py - Failed operations change nothing
3. no_self_debt.py - No IOU is ever held by its issuer
4. priority.py - Price then time priority, pair selection tie-breaks
5. clearing_price.py - Midpoint lies within the crossing bid and ask
6. resolution.py - Settle / void correctness and idempotent resolution
7. determinism.py - Identical inputs give identical ids, journal and trades
8. concurrency.py - Per-condition serialisation, atomic settlement

These tests use hypothesis for property-based testing.
"""
