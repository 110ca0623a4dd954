"""
test_offer_book.py - Unit tests for OfferBook and ConditionBook

Tests:
- Timestamp assignment and replacement
- Bid / ask priority ordering
- Idempotent cancellation
- Spreads with the implicit 0 / 1 default
"""

import pytest
from decimal import Decimal

from predmarket import Offer, OfferBook


def _offer(player, buy, sell, cid="c1"):
    return Offer(player, cid, Decimal(buy), Decimal(sell))


class TestPost:

    def test_post_assigns_increasing_timestamps(self, book):
        a = book.post(_offer("p1", "0.4", "0.6"))
        b = book.post(_offer("p2", "0.3", "0.7", cid="c2"))
        assert 0 < a.timestamp < b.timestamp

    def test_repost_replaces_and_loses_priority(self, book):
        first = book.post(_offer("p1", "0.5", "0.9"))
        book.post(_offer("p2", "0.5", "0.9"))
        again = book.post(_offer("p1", "0.5", "0.9"))
        assert again.timestamp > first.timestamp
        assert len(book.offers("c1")) == 2
        assert [o.player for o in book.book("c1").bids()] == ["p2", "p1"]

    def test_get(self, book):
        posted = book.post(_offer("p1", "0.4", "0.6"))
        assert book.get("p1", "c1") == posted
        assert book.get("p2", "c1") is None
        assert book.get("p1", "c9") is None


class TestPriority:

    def test_bids_by_price_desc_then_time(self, book):
        book.post(_offer("a", "0.5", "1"))
        book.post(_offer("b", "0.6", "1"))
        book.post(_offer("c", "0.6", "1"))
        assert [o.player for o in book.book("c1").bids()] == ["b", "c", "a"]

    def test_asks_by_price_asc_then_time(self, book):
        book.post(_offer("a", "0", "0.7"))
        book.post(_offer("b", "0", "0.4"))
        book.post(_offer("c", "0", "0.4"))
        assert [o.player for o in book.book("c1").asks()] == ["b", "c", "a"]

    def test_default_sides_not_indexed(self, book):
        book.post(_offer("a", "0", "1"))
        assert book.book("c1").bids() == []
        assert book.book("c1").asks() == []
        assert len(book.offers("c1")) == 1

    def test_best(self, book):
        assert book.best("c1") == (None, None)
        book.post(_offer("a", "0.3", "0.9"))
        book.post(_offer("b", "0.2", "0.8"))
        top_bid, top_ask = book.best("c1")
        assert top_bid.player == "a"
        assert top_ask.player == "b"


class TestCancel:

    def test_cancel_removes(self, book):
        book.post(_offer("a", "0.3", "0.9"))
        assert book.cancel("a", "c1") is not None
        assert book.offers("c1") == []
        assert book.best("c1") == (None, None)

    def test_cancel_is_idempotent(self, book):
        assert book.cancel("a", "c1") is None
        book.post(_offer("a", "0.3", "0.9"))
        book.cancel("a", "c1")
        assert book.cancel("a", "c1") is None

    def test_remove_ignores_superseded_offer(self, book):
        old = book.post(_offer("a", "0.3", "0.9"))
        new = book.post(_offer("a", "0.4", "0.8"))
        book.remove(old)
        assert book.get("a", "c1") == new

    def test_clear(self, book):
        book.post(_offer("a", "0.3", "0.9"))
        book.post(_offer("b", "0.2", "0.8"))
        book.post(_offer("a", "0.2", "0.8", cid="c2"))
        removed = book.clear("c1")
        assert {o.player for o in removed} == {"a", "b"}
        assert book.offers("c1") == []
        assert len(book.offers("c2")) == 1


class TestSpread:

    def test_default_spread(self, book):
        assert book.spread("c1") == (Decimal("0"), Decimal("1"))

    def test_spread_tracks_best(self, book):
        book.post(_offer("a", "0.3", "1"))
        book.post(_offer("b", "0", "0.8"))
        book.post(_offer("c", "0.35", "0.9"))
        assert book.spread("c1") == (Decimal("0.35"), Decimal("0.8"))

    def test_spreads_only_lists_active_conditions(self, book):
        book.post(_offer("a", "0.3", "0.9"))
        book.post(_offer("a", "0.1", "0.2", cid="c2"))
        book.cancel("a", "c2")
        assert book.spreads() == {"c1": (Decimal("0.3"), Decimal("0.9"))}

    def test_offers_across_conditions_in_time_order(self, book):
        book.post(_offer("a", "0.3", "0.9", cid="c2"))
        book.post(_offer("b", "0.3", "0.9", cid="c1"))
        assert [o.player for o in book.offers()] == ["a", "b"]


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
