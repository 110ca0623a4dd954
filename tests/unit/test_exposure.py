"""
test_exposure.py - Unit tests for exposure analysis

Pure functions are tested against FakeView; no ledger required.
"""

import pytest
from decimal import Decimal

from predmarket import IouState, exposure, outcome_table
from tests.fake_view import FakeView, make_iou


@pytest.fixture
def view():
    return FakeView([
        # alice bought c1 from bob at 0.45
        make_iou("i1", "bob", "alice", "0.55", condition="c1"),
        make_iou("i2", "alice", "bob", "0.45", condition="c1", negated=True),
        # alice sold c2 to carol at 0.30
        make_iou("i3", "alice", "carol", "0.70", condition="c2"),
        make_iou("i4", "carol", "alice", "0.30", condition="c2", negated=True),
        # plain debts
        make_iou("i5", "dave", "alice", "2"),
        make_iou("i6", "alice", "dave", "5", state=IouState.SETTLED),
        make_iou("i7", "alice", "erin", "100", state=IouState.VOID),
    ])


class TestExposure:

    def test_buckets(self, view):
        exp = exposure(view, "alice")
        assert exp.unconditional == Decimal("-3")
        assert exp.if_true("c1") == Decimal("0.55")
        assert exp.if_false("c1") == Decimal("-0.45")
        assert exp.if_true("c2") == Decimal("-0.70")
        assert exp.if_false("c2") == Decimal("0.30")
        assert exp.conditions() == ["c1", "c2"]

    def test_void_ignored(self, view):
        assert exposure(view, "erin").unconditional == Decimal("0")

    def test_unknown_condition_is_zero(self, view):
        exp = exposure(view, "alice")
        assert exp.if_true("c9") == Decimal("0")
        assert exp.worst_case("c9") == Decimal("0")

    def test_worst_case(self, view):
        exp = exposure(view, "alice")
        assert exp.worst_case("c1") == Decimal("-0.45")
        assert exp.worst_case("c2") == Decimal("-0.70")
        assert exp.worst_case_total() == Decimal("-3") - Decimal("0.45") - Decimal("0.70")

    def test_counterparty_mirror(self, view):
        alice = exposure(view, "alice")
        bob = exposure(view, "bob")
        assert alice.if_true("c1") + bob.if_true("c1") == Decimal("0")
        assert alice.if_false("c1") + bob.if_false("c1") == Decimal("0")


class TestOutcomeTable:

    def test_mutually_exclusive_outcomes(self, view):
        table = outcome_table(view, "alice", ["c1", "c2"])
        # c1 wins: -3 + 0.55 + 0.30 ; c2 wins: -3 - 0.70 - 0.45 ; neither: -3 - 0.45 + 0.30
        assert table["c1"] == Decimal("-2.15")
        assert table["c2"] == Decimal("-4.15")
        assert table[None] == Decimal("-3.15")

    def test_exposure_methods_agree(self, view):
        exp = exposure(view, "alice")
        assert exp.exclusive_outcome("c1") == Decimal("-2.15")
        assert exp.otherwise_outcome() == Decimal("-3.15")


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
