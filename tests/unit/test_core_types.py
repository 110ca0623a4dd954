"""
test_core_types.py - Unit tests for core records and validation helpers

Tests:
- ConditionRef negation and evaluation
- Iou construction invariants
- Offer normalisation against a negated condition
- Trade leg amounts
- Price and amount validation
"""

import pytest
from dataclasses import FrozenInstanceError
from decimal import Decimal

from predmarket import (
    ConditionRef, Condition, ConditionState, Iou, IouState, Offer, Trade, Balance,
    InvalidPrice, InvalidAmount, MarketError,
    validate_price, validate_amount, complement_price, as_condition_ref,
    MAX_IOU_AMOUNT,
)


class TestConditionRef:
    """Tests for condition references and negation."""

    def test_negate_flips_polarity(self):
        ref = ConditionRef("c1")
        assert ref.negate() == ConditionRef("c1", True)
        assert ref.negate().negate() == ref

    def test_evaluate_is_outcome_xor_negated(self):
        assert ConditionRef("c1").evaluate(True) is True
        assert ConditionRef("c1").evaluate(False) is False
        assert ConditionRef("c1", True).evaluate(True) is False
        assert ConditionRef("c1", True).evaluate(False) is True

    def test_str(self):
        assert str(ConditionRef("c1")) == "c1"
        assert str(ConditionRef("c1", True)) == "NOT c1"

    def test_empty_id_rejected(self):
        with pytest.raises(ValueError):
            ConditionRef("  ")

    def test_condition_ref_helper(self):
        cond = Condition("c1", "desc")
        assert cond.ref() == ConditionRef("c1")
        assert cond.ref(negated=True) == ConditionRef("c1", True)
        assert cond.is_pending
        assert not ConditionState.PENDING.is_terminal
        assert ConditionState.EXPIRED.is_terminal


class TestAsConditionRef:

    def test_none_is_unconditional(self):
        assert as_condition_ref(None) is None

    def test_string_id(self):
        assert as_condition_ref("c1") == ConditionRef("c1")
        assert as_condition_ref("c1", negated=True) == ConditionRef("c1", True)

    def test_ref_negated_flag_flips(self):
        assert as_condition_ref(ConditionRef("c1", True), negated=True) == ConditionRef("c1")

    def test_negated_without_condition_rejected(self):
        with pytest.raises(ValueError):
            as_condition_ref(None, negated=True)

    def test_wrong_type_rejected(self):
        with pytest.raises(TypeError):
            as_condition_ref(42)


class TestIou:
    """Tests for Iou record invariants."""

    def test_valid_iou(self):
        iou = Iou("i1", "bob", "alice", Decimal("10"))
        assert not iou.is_conditional
        assert iou.is_outstanding
        assert iou.state is IouState.ACTIVE

    def test_self_debt_rejected(self):
        with pytest.raises(ValueError):
            Iou("i1", "alice", "alice", Decimal("10"))

    def test_non_positive_rejected(self):
        with pytest.raises(ValueError):
            Iou("i1", "bob", "alice", Decimal("0"))

    def test_float_amount_rejected(self):
        with pytest.raises(ValueError):
            Iou("i1", "bob", "alice", 10.0)

    def test_frozen(self):
        iou = Iou("i1", "bob", "alice", Decimal("10"))
        with pytest.raises(FrozenInstanceError):
            iou.amount = Decimal("5")

    def test_void_is_not_outstanding(self):
        iou = Iou("i1", "bob", "alice", Decimal("10"), state=IouState.VOID)
        assert not iou.is_outstanding

    def test_references(self):
        iou = Iou("i1", "bob", "alice", Decimal("1"), ConditionRef("c1", True))
        assert iou.references("c1")
        assert not iou.references("c2")


class TestOffer:
    """Tests for offers and negated-condition normalisation."""

    def test_on_base_condition_keeps_prices(self):
        offer = Offer.on("p1", ConditionRef("c1"), Decimal("0.3"), Decimal("0.4"))
        assert offer.condition_id == "c1"
        assert offer.buy_price == Decimal("0.3")
        assert offer.sell_price == Decimal("0.4")

    def test_on_negation_swaps_and_complements(self):
        # Buying NOT C at 0.3 is selling C at 0.7; selling NOT C at 0.4 is buying C at 0.6
        offer = Offer.on("p1", ConditionRef("c1", True), Decimal("0.3"), Decimal("0.4"))
        assert offer.buy_price == Decimal("0.6")
        assert offer.sell_price == Decimal("0.7")

    def test_default_prices_are_not_live(self):
        offer = Offer("p1", "c1", Decimal("0"), Decimal("1"))
        assert not offer.has_bid
        assert not offer.has_ask

    def test_live_sides(self):
        offer = Offer("p1", "c1", Decimal("0.2"), Decimal("1"))
        assert offer.has_bid
        assert not offer.has_ask


class TestTradeAndBalance:

    def test_trade_leg_amounts(self):
        trade = Trade(1, "c1", "p1", "p2", Decimal("0.45"), Decimal("1"),
                      "iou_00000001", "iou_00000002", 1, 2)
        assert trade.buyer_amount == Decimal("0.55")
        assert trade.seller_amount == Decimal("0.45")
        assert trade.buyer_amount + trade.seller_amount == trade.contract_size

    def test_balance_net(self):
        assert Balance(Decimal("3"), Decimal("5")).net == Decimal("-2")


class TestValidation:
    """Tests for price and amount validation."""

    @pytest.mark.parametrize("value", ["0", "1", "0.5", 0.45, 1, Decimal("0.1234")])
    def test_valid_prices(self, value):
        assert Decimal("0") <= validate_price(value) <= Decimal("1")

    def test_float_converted_via_str(self):
        assert validate_price(0.45) == Decimal("0.45")

    @pytest.mark.parametrize("value", ["-0.01", "1.01", "abc", "NaN", "Infinity", None, True, "0.12345"])
    def test_invalid_prices(self, value):
        with pytest.raises(InvalidPrice):
            validate_price(value)

    @pytest.mark.parametrize("value", ["0", "-1", "0.0000001", MAX_IOU_AMOUNT + 1, "x", False])
    def test_invalid_amounts(self, value):
        with pytest.raises(InvalidAmount):
            validate_amount(value)

    def test_valid_amount_at_bounds(self):
        assert validate_amount("0.000001") == Decimal("0.000001")
        assert validate_amount(MAX_IOU_AMOUNT) == MAX_IOU_AMOUNT

    def test_trailing_zeros_do_not_count_as_precision(self):
        assert validate_price("0.450000") == Decimal("0.45")

    def test_errors_share_base_class(self):
        assert issubclass(InvalidPrice, MarketError)
        assert issubclass(InvalidAmount, MarketError)

    def test_complement_price(self):
        assert complement_price(Decimal("0.3")) == Decimal("0.7")


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
