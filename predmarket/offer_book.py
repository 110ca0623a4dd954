"""
offer_book.py - Per-condition Offer Book

Each condition has its own ConditionBook holding at most one live offer per
player, indexed twice:

    bids: buy_price descending, then timestamp ascending
    asks: sell_price ascending, then timestamp ascending

An offer only appears on a side it can trade from: a buy price of 0 or a sell
price of 1 is the implicit default and is not indexed.

The book does no matching and never touches the ledger. Callers serialise
access per condition (the MatchingEngine holds a lock per condition); the
OfferBook itself only guards its map of books and its timestamp counter.
"""

from __future__ import annotations
from bisect import insort
from dataclasses import replace
from decimal import Decimal
from typing import Dict, Iterator, List, Optional, Tuple
import itertools
import logging
import threading

from .core import (
    Offer, PlayerId, ConditionId,
    DEFAULT_BUY_PRICE, DEFAULT_SELL_PRICE,
)

logger = logging.getLogger(__name__)

# (sort price, timestamp, player); timestamps are unique so player never decides
_Key = Tuple[Decimal, int, PlayerId]


class ConditionBook:
    """Resting offers for a single condition."""

    def __init__(self, condition_id: ConditionId):
        self.condition_id = condition_id
        self._offers: Dict[PlayerId, Offer] = {}
        self._bids: List[_Key] = []
        self._asks: List[_Key] = []

    def __len__(self) -> int:
        return len(self._offers)

    def __contains__(self, player: object) -> bool:
        return player in self._offers

    def get(self, player: PlayerId) -> Optional[Offer]:
        return self._offers.get(player)

    def add(self, offer: Offer) -> Optional[Offer]:
        """Insert an offer, replacing the player's previous one. Returns the replaced offer."""
        previous = self.remove(offer.player)
        self._offers[offer.player] = offer
        if offer.has_bid:
            insort(self._bids, (-offer.buy_price, offer.timestamp, offer.player))
        if offer.has_ask:
            insort(self._asks, (offer.sell_price, offer.timestamp, offer.player))
        return previous

    def remove(self, player: PlayerId) -> Optional[Offer]:
        offer = self._offers.pop(player, None)
        if offer is None:
            return None
        if offer.has_bid:
            self._bids.remove((-offer.buy_price, offer.timestamp, offer.player))
        if offer.has_ask:
            self._asks.remove((offer.sell_price, offer.timestamp, offer.player))
        return offer

    def bids(self) -> List[Offer]:
        """Offers with a live bid, in priority order."""
        return [self._offers[player] for _, _, player in self._bids]

    def asks(self) -> List[Offer]:
        """Offers with a live ask, in priority order."""
        return [self._offers[player] for _, _, player in self._asks]

    def best(self) -> Tuple[Optional[Offer], Optional[Offer]]:
        top_bid = self._offers[self._bids[0][2]] if self._bids else None
        top_ask = self._offers[self._asks[0][2]] if self._asks else None
        return top_bid, top_ask

    def spread(self) -> Tuple[Decimal, Decimal]:
        """Best bid and ask prices, falling back to the implicit 0 / 1 offer."""
        top_bid, top_ask = self.best()
        return (
            top_bid.buy_price if top_bid else DEFAULT_BUY_PRICE,
            top_ask.sell_price if top_ask else DEFAULT_SELL_PRICE,
        )

    def offers(self) -> List[Offer]:
        """All resting offers in timestamp order."""
        return sorted(self._offers.values(), key=lambda o: o.timestamp)


class OfferBook:
    """
    Offer book partitioned by condition id.

    Every posted offer is stamped with a timestamp from a single monotonic
    counter, so time priority is comparable across players.

    Example:
        book = OfferBook()
        offer = book.post(Offer("alice", "cond_000001", Decimal("0.5"), Decimal("0.6")))
        top_bid, top_ask = book.best("cond_000001")
    """

    def __init__(self):
        self._books: Dict[ConditionId, ConditionBook] = {}
        self._clock = itertools.count(1)
        self._lock = threading.Lock()

    def book(self, condition_id: ConditionId) -> ConditionBook:
        """The condition's book, created empty on first use."""
        with self._lock:
            book = self._books.get(condition_id)
            if book is None:
                book = self._books[condition_id] = ConditionBook(condition_id)
            return book

    def next_timestamp(self) -> int:
        with self._lock:
            return next(self._clock)

    def post(self, offer: Offer) -> Offer:
        """
        Stamp and insert an offer, superseding the player's previous one.

        Args:
            offer: Offer with validated Decimal prices. Its timestamp is ignored.

        Returns:
            The offer as stored, carrying its assigned timestamp.
        """
        stamped = replace(offer, timestamp=self.next_timestamp())
        previous = self.book(offer.condition_id).add(stamped)
        if previous is not None:
            logger.debug("Offer %s replaced %s on %s", stamped.timestamp,
                         previous.timestamp, offer.condition_id)
        logger.debug("Posted %s", stamped)
        return stamped

    def cancel(self, player: PlayerId, condition_id: ConditionId) -> Optional[Offer]:
        """
        Remove the player's offer on the condition.

        Idempotent: returns None when there was nothing to cancel.
        """
        with self._lock:
            book = self._books.get(condition_id)
        removed = book.remove(player) if book is not None else None
        if removed is not None:
            logger.debug("Cancelled %s", removed)
        return removed

    def remove(self, offer: Offer) -> None:
        """Remove a specific resting offer (used when a match consumes it)."""
        book = self.book(offer.condition_id)
        if book.get(offer.player) == offer:
            book.remove(offer.player)

    def clear(self, condition_id: ConditionId) -> List[Offer]:
        """Drop every offer on a condition. Returns the removed offers."""
        with self._lock:
            book = self._books.pop(condition_id, None)
        return book.offers() if book is not None else []

    def get(self, player: PlayerId, condition_id: ConditionId) -> Optional[Offer]:
        with self._lock:
            book = self._books.get(condition_id)
        return book.get(player) if book is not None else None

    def best(self, condition_id: ConditionId) -> Tuple[Optional[Offer], Optional[Offer]]:
        """(top bid, top ask) for the condition; either may be None."""
        with self._lock:
            book = self._books.get(condition_id)
        return book.best() if book is not None else (None, None)

    def spread(self, condition_id: ConditionId) -> Tuple[Decimal, Decimal]:
        """(best bid price, best ask price), defaulting to (0, 1)."""
        with self._lock:
            book = self._books.get(condition_id)
        if book is None:
            return DEFAULT_BUY_PRICE, DEFAULT_SELL_PRICE
        return book.spread()

    def spreads(self) -> Dict[ConditionId, Tuple[Decimal, Decimal]]:
        """Spread of every condition with resting offers."""
        return {cid: self.spread(cid) for cid in self.condition_ids()}

    def offers(self, condition_id: Optional[ConditionId] = None) -> List[Offer]:
        """Resting offers on one condition (or all), in timestamp order."""
        if condition_id is not None:
            with self._lock:
                book = self._books.get(condition_id)
            return book.offers() if book is not None else []
        return sorted(
            (o for cid in self.condition_ids() for o in self.book(cid).offers()),
            key=lambda o: o.timestamp,
        )

    def condition_ids(self) -> List[ConditionId]:
        with self._lock:
            return sorted(cid for cid, book in self._books.items() if len(book))

    def __iter__(self) -> Iterator[Offer]:
        return iter(self.offers())
