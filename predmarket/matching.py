"""
matching.py - Continuous Double-Auction Matching Engine

Runs on every posted offer:

    1. Post the offer into the condition's book (replacing the player's
       previous offer).
    2. Among all (bid, ask) pairs from different players with
       bid.buy_price >= ask.sell_price, pick the pair with the largest
       spread; ties go to the lower combined timestamp, then the earlier bid.
    3. Clear at the midpoint and mint the complementary IOU pair:
         buyer  <- seller: contract_size * (1 - p)  if C
         seller <- buyer:  contract_size * p        if NOT C
    4. Remove both offers (all-or-nothing) and repeat from 2.

Pair selection and pricing are pure functions so they can be tested without
a book or ledger. The engine serialises all work on one condition behind that
condition's lock; different conditions proceed in parallel.
"""

from __future__ import annotations
from decimal import Decimal
from typing import Any, Dict, List, NoReturn, Optional, Sequence, Tuple, TYPE_CHECKING
import itertools
import logging
import threading

from .core import (
    Offer, Trade, ConditionId, PlayerId,
    ZERO, ONE, DEFAULT_CONTRACT_SIZE,
    AMOUNT_DECIMAL_PLACES, PRICE_DECIMAL_PLACES,
    ConditionState, InvalidAmount, UnknownCondition, MarketError,
    validate_price, validate_amount, decimal_places, as_condition_ref,
)
from .offer_book import OfferBook

if TYPE_CHECKING:
    from .conditions import ConditionRegistry
    from .ledger import IouLedger

logger = logging.getLogger(__name__)

# The midpoint of two quotes carries at most one extra place.
_MAX_CONTRACT_SIZE_PLACES = AMOUNT_DECIMAL_PLACES - PRICE_DECIMAL_PLACES - 1


# ============================================================================
# PURE FUNCTIONS
# ============================================================================

def clearing_price(bid_price: Decimal, ask_price: Decimal) -> Decimal:
    """
    Midpoint of a crossing bid and ask, clamped to [0, 1].

    Example:
        >>> clearing_price(Decimal("0.50"), Decimal("0.40"))
        Decimal('0.45')
    """
    price = (bid_price + ask_price) / 2
    return min(max(price, ZERO), ONE)


def crosses(bid: Offer, ask: Offer) -> bool:
    """True if the two offers can trade: different players and bid >= ask."""
    return (bid.player != ask.player
            and bid.has_bid and ask.has_ask
            and bid.buy_price >= ask.sell_price)


def find_crossing_pair(
    bids: Sequence[Offer],
    asks: Sequence[Offer],
) -> Optional[Tuple[Offer, Offer]]:
    """
    Select the pair to execute next.

    Args:
        bids: Offers with a live bid, highest buy price first.
        asks: Offers with a live ask, lowest sell price first.

    Returns:
        (bid offer, ask offer) maximising ``buy_price - sell_price``; ties
        broken by lower ``bid.timestamp + ask.timestamp``, then lower
        ``bid.timestamp``. None if nothing crosses.
    """
    best: Optional[Tuple[Offer, Offer]] = None
    best_key: Optional[Tuple[Decimal, int, int]] = None
    for bid in bids:
        for ask in asks:
            if ask.sell_price > bid.buy_price:
                break  # asks are sorted; nothing further crosses this bid
            if not crosses(bid, ask):
                continue
            key = (ask.sell_price - bid.buy_price,
                   bid.timestamp + ask.timestamp,
                   bid.timestamp)
            if best_key is None or key < best_key:
                best, best_key = (bid, ask), key
    return best


# ============================================================================
# ENGINE
# ============================================================================

class MatchingEngine:
    """
    Posts offers and executes every trade they make possible.

    Attributes:
        ledger: IouLedger that mints trade IOUs.
        book: OfferBook holding resting offers.
        registry: ConditionRegistry consulted before accepting an offer.
        contract_size: Dollar notional of each trade.
        trades: Executed trades in execution order.

    Thread Safety:
        One re-entrant lock per condition. Settlement of a condition takes the
        same lock (see lock_for), so matching never races resolution.
    """

    def __init__(
        self,
        ledger: IouLedger,
        book: OfferBook,
        registry: Optional[ConditionRegistry] = None,
        contract_size: Any = DEFAULT_CONTRACT_SIZE,
    ):
        size = validate_amount(contract_size, "contract_size")
        if decimal_places(size) > _MAX_CONTRACT_SIZE_PLACES:
            raise InvalidAmount(
                f"contract_size {size} exceeds {_MAX_CONTRACT_SIZE_PLACES} decimal places"
            )
        self.ledger = ledger
        self.book = book
        self.registry = registry
        self.contract_size = size
        self.trades: List[Trade] = []
        self._trade_sequence = itertools.count(1)
        self._trades_lock = threading.Lock()
        self._locks: Dict[ConditionId, threading.RLock] = {}
        self._locks_guard = threading.Lock()

    def lock_for(self, condition_id: ConditionId) -> threading.RLock:
        """
        The condition's critical-section lock.

        A lock is created and kept only while the condition is open. A
        settled condition whose lock has been released gets a fresh,
        unshared lock: work under it can only be rejected.

        Raises:
            UnknownCondition: If a registry is attached and does not know the id.
        """
        with self._locks_guard:
            lock = self._locks.get(condition_id)
            if lock is not None:
                return lock
            if self.registry is None or self.registry.state(condition_id) is ConditionState.PENDING:
                lock = self._locks[condition_id] = threading.RLock()
                return lock
        return threading.RLock()

    def release_lock(self, condition_id: ConditionId) -> None:
        """Forget a settled condition's lock."""
        with self._locks_guard:
            self._locks.pop(condition_id, None)

    def submit(
        self,
        player: PlayerId,
        condition: Any,
        buy_price: Any,
        sell_price: Any,
    ) -> List[Trade]:
        """
        Post an offer and match it.

        Args:
            player: Offering player.
            condition: Condition id or ConditionRef (negated refs are
                normalised onto the base condition).
            buy_price: Highest price the player will pay, in [0, 1].
            sell_price: Lowest price the player will sell at, in [0, 1].

        Returns:
            Trades executed before returning (possibly empty).

        Raises:
            InvalidPrice: If either price is outside [0, 1] or too precise.
            UnknownCondition: If the condition is not open for trading.
        """
        if not player or not str(player).strip():
            raise ValueError("player cannot be empty")
        buy = validate_price(buy_price, "buy_price")
        sell = validate_price(sell_price, "sell_price")
        ref = as_condition_ref(condition)
        if ref is None:
            raise UnknownCondition("An offer needs a condition")
        offer = Offer.on(player, ref, buy, sell)
        condition_id = ref.condition_id

        try:
            lock = self.lock_for(condition_id)
        except UnknownCondition as e:
            self._reject(player, condition_id, e)
        with lock:
            self._require_open(condition_id, player)
            posted = self.book.post(offer)
            trades = self.match(condition_id)
        if not trades:
            logger.debug("No match for %s on %s", posted.player, condition_id)
        return trades

    def cancel(self, player: PlayerId, condition: Any) -> bool:
        """Cancel the player's offer. Returns True if one was removed."""
        ref = as_condition_ref(condition)
        if ref is None or (self.registry is not None and ref.condition_id not in self.registry):
            return False
        with self.lock_for(ref.condition_id):
            return self.book.cancel(player, ref.condition_id) is not None

    def match(self, condition_id: ConditionId) -> List[Trade]:
        """
        Execute trades on the condition until no crossing pair remains.

        Runs under ``lock_for(condition_id)``.
        """
        executed: List[Trade] = []
        with self.lock_for(condition_id):
            book = self.book.book(condition_id)
            while True:
                pair = find_crossing_pair(book.bids(), book.asks())
                if pair is None:
                    break
                executed.append(self._execute(condition_id, *pair))
        return executed

    def trades_for(self, condition_id: ConditionId) -> List[Trade]:
        with self._trades_lock:
            return [t for t in self.trades if t.condition_id == condition_id]

    def _execute(self, condition_id: ConditionId, bid: Offer, ask: Offer) -> Trade:
        price = clearing_price(bid.buy_price, ask.sell_price)
        buyer_iou, seller_iou = self.ledger.mint_trade(
            condition_id, bid.player, ask.player, price, self.contract_size,
        )
        self.book.remove(bid)
        self.book.remove(ask)
        with self._trades_lock:
            trade = Trade(
                sequence=next(self._trade_sequence),
                condition_id=condition_id,
                buyer=bid.player,
                seller=ask.player,
                price=price,
                contract_size=self.contract_size,
                buyer_iou_id=buyer_iou,
                seller_iou_id=seller_iou,
                bid_timestamp=bid.timestamp,
                ask_timestamp=ask.timestamp,
            )
            self.trades.append(trade)
        logger.info("%r (bid %s, ask %s)", trade, bid.buy_price, ask.sell_price)
        return trade

    def _require_open(self, condition_id: ConditionId, player: PlayerId) -> None:
        if self.registry is None:
            return
        try:
            self.registry.require_pending(condition_id)
        except MarketError as e:
            self._reject(player, condition_id, e)

    def _reject(self, player: PlayerId, condition_id: ConditionId, error: MarketError) -> NoReturn:
        logger.warning("Rejected offer from %s on %s: %s", player, condition_id, error)
        raise UnknownCondition(
            f"Condition {condition_id} is not open for trading: {error}"
        ) from error
