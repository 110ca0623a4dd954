"""
market.py - Market Facade

Wires the components together and exposes the operation-level API:

    registry  -> ConditionRegistry   condition lifecycle
    ledger    -> IouLedger           IOU records and journal
    book      -> OfferBook           resting offers per condition
    engine    -> MatchingEngine      post / match / cancel
    settlement-> Settlement          registry listener, settles ledger and book

Every failure kind of the operation table is a MarketError subclass raised
before anything changes. Malformed arguments (an empty player id, a non-bool
outcome) are programming errors; they raise ValueError or TypeError, also
before anything changes.
"""

from __future__ import annotations
from datetime import datetime
from decimal import Decimal
from typing import Any, Dict, Iterable, List, Optional, Sequence, Tuple
import logging

from .core import (
    Balance, Condition, ConditionId, ConditionState, Iou, IouId, IouState,
    JournalEntry, Offer, PlayerId, Resolution, Trade,
    DEFAULT_CONTRACT_SIZE,
    as_condition_ref,
)
from .conditions import ConditionRegistry
from .ledger import IouLedger
from .offer_book import OfferBook
from .matching import MatchingEngine
from .settlement import Settlement
from .exposure import Exposure, exposure, outcome_table

logger = logging.getLogger(__name__)


class Market:
    """
    A prediction market: conditions, conditional IOUs, offers and trades.

    Example:
        market = Market("elections")
        c = market.register_condition("Candidate X wins")
        market.post_offer("p1", c, "0.50", "0.60")
        trades = market.post_offer("p2", c, "0.30", "0.40")
        trades[0].price                      # Decimal('0.45')
        market.resolve_condition(c, True)
        market.query_balance("p1")           # owed 0.55 from p2
    """

    def __init__(
        self,
        name: str = "market",
        verbose: bool = False,
        contract_size: Any = DEFAULT_CONTRACT_SIZE,
    ):
        """
        Create an empty market.

        Args:
            name: Label used in logs and summaries.
            verbose: Log every journal entry at INFO.
            contract_size: Dollar notional of each matched trade.

        Raises:
            InvalidAmount: If contract_size is not a positive amount with at
                most one decimal place.
        """
        self.name = name
        self.verbose = verbose
        self.registry = ConditionRegistry()
        self.ledger = IouLedger(registry=self.registry, verbose=verbose)
        self.book = OfferBook()
        self.engine = MatchingEngine(self.ledger, self.book, self.registry, contract_size)
        self.settlement = Settlement(self.ledger, self.book, self.engine)
        self.registry.subscribe(self.settlement)

    # ========================================================================
    # CONDITIONS
    # ========================================================================

    def register_condition(self, description: str, expiry: Optional[datetime] = None) -> ConditionId:
        """
        Register a new condition.

        Raises:
            DuplicateCondition: If an open condition has the same description.
        """
        return self.registry.register(description, expiry)

    def resolve_condition(
        self,
        condition_id: ConditionId,
        outcome: bool,
        at: Optional[datetime] = None,
    ) -> Resolution:
        """
        Resolve a condition; the ledger and book are settled on return.

        Returns:
            Which IOUs were settled and which voided.

        Raises:
            UnknownCondition: If the condition was never registered.
            AlreadyResolved: If it is no longer PENDING.
        """
        with self.engine.lock_for(condition_id):
            self.registry.resolve(condition_id, outcome, at)
            return self.settlement.resolution(condition_id)

    def check_expiry(self, now: datetime) -> List[ConditionId]:
        """
        Expire and settle every PENDING condition whose expiry is at or before ``now``.

        Each condition expires under its engine lock, as in resolve_condition().

        Returns:
            Ids of the conditions that expired during this call, in id order.
        """
        expired = []
        for cid in self.registry.due_for_expiry(now):
            with self.engine.lock_for(cid):
                if self.registry.expire(cid, now):
                    expired.append(cid)
        if expired:
            logger.info("%s: expired %s", self.name, expired)
        return expired

    def get_condition(self, condition_id: ConditionId) -> Condition:
        return self.registry.get(condition_id)

    def list_conditions(self, state: Optional[ConditionState] = None) -> List[Condition]:
        return self.registry.list_conditions(state)

    # ========================================================================
    # IOUS
    # ========================================================================

    def issue_iou(
        self,
        issuer: PlayerId,
        holder: PlayerId,
        amount: Any,
        condition: Any = None,
        negated: bool = False,
    ) -> IouId:
        """
        Issue an IOU, optionally conditional on a condition or its negation.

        Raises:
            InvalidAmount: If amount is not a representable positive value.
            SelfDebt: If issuer == holder.
            UnknownCondition, AlreadyResolved: If the condition is not open.
        """
        return self.ledger.issue(issuer, holder, amount, as_condition_ref(condition, negated))

    def transfer_iou(
        self,
        iou_id: IouId,
        from_holder: PlayerId,
        to_player: PlayerId,
        amount: Any = None,
    ) -> List[IouId]:
        """
        Transfer all (default) or part of an IOU.

        Returns:
            Ids of the resulting pieces, transferred piece first.

        Raises:
            NotHolder: If from_holder does not hold the IOU.
            InsufficientAmount: If amount exceeds the IOU amount.
        """
        return self.ledger.transfer(iou_id, from_holder, to_player, amount)

    def split_iou(self, iou_id: IouId, holder: PlayerId, amounts: Sequence[Any]) -> List[IouId]:
        """Split an IOU into pieces summing to its amount. Returns the child ids."""
        return self.ledger.split(iou_id, holder, amounts)

    def get_iou(self, iou_id: IouId) -> Iou:
        return self.ledger.get_iou(iou_id)

    def list_ious(
        self,
        player: Optional[PlayerId] = None,
        state: Optional[IouState] = None,
    ) -> List[Iou]:
        return self.ledger.list_ious(player, state)

    def ious_for_condition(self, condition_id: ConditionId) -> List[Iou]:
        return self.ledger.ious_for_condition(condition_id)

    def query_balance(self, player: PlayerId) -> Balance:
        """Informational {owed, owing} over the player's outstanding IOUs."""
        return self.ledger.balance(player)

    @property
    def journal(self) -> List[JournalEntry]:
        return self.ledger.journal

    def verify_integrity(self) -> Dict[str, Any]:
        return self.ledger.verify_integrity()

    # ========================================================================
    # OFFERS AND TRADES
    # ========================================================================

    def post_offer(
        self,
        player: PlayerId,
        condition: Any,
        buy_price: Any,
        sell_price: Any,
        negated: bool = False,
    ) -> List[Trade]:
        """
        Post (or replace) the player's offer and execute any resulting trades.

        Args:
            player: Offering player.
            condition: Condition id or ConditionRef.
            buy_price: Highest price the player pays for a $1 claim, in [0, 1].
            sell_price: Lowest price the player sells a $1 claim for, in [0, 1].
            negated: Quote on the negation of ``condition``.

        Returns:
            Trades executed immediately, in execution order.

        Raises:
            InvalidPrice: If either price is invalid.
            UnknownCondition: If the condition is not open for trading.
        """
        ref = as_condition_ref(condition, negated) if condition is not None else None
        return self.engine.submit(player, ref, buy_price, sell_price)

    def cancel_offer(self, player: PlayerId, condition: Any) -> None:
        """Withdraw the player's offer on the condition. A no-op if there is none."""
        self.engine.cancel(player, condition)

    def offers(self, condition_id: Optional[ConditionId] = None) -> List[Offer]:
        return self.book.offers(condition_id)

    def spread(self, condition_id: ConditionId) -> Tuple[Decimal, Decimal]:
        """(best bid, best ask) on the condition, defaulting to (0, 1)."""
        return self.book.spread(condition_id)

    def spreads(self) -> Dict[ConditionId, Tuple[Decimal, Decimal]]:
        return self.book.spreads()

    @property
    def trades(self) -> List[Trade]:
        return list(self.engine.trades)

    # ========================================================================
    # ANALYSIS
    # ========================================================================

    def exposure(self, player: PlayerId) -> Exposure:
        return exposure(self.ledger, player)

    def outcome_table(
        self,
        player: PlayerId,
        condition_ids: Iterable[ConditionId],
    ) -> Dict[Optional[ConditionId], Decimal]:
        return outcome_table(self.ledger, player, condition_ids)

    def players(self) -> List[PlayerId]:
        """Every player appearing in an IOU or a resting offer."""
        names = set()
        for iou in self.ledger.list_ious():
            names.add(iou.issuer)
            names.add(iou.holder)
        names.update(o.player for o in self.book.offers())
        return sorted(names)

    def summary(self) -> str:
        """Multi-line text report of conditions, spreads and balances."""
        lines = [f"Market {self.name}"]
        lines.append("  Conditions:")
        for c in self.list_conditions():
            bid, ask = self.spread(c.condition_id)
            lines.append(f"    {c.condition_id} [{c.state.value}] {c.description!r}"
                         + (f"  bid {bid} / ask {ask}" if c.is_pending else ""))
        lines.append("  Balances:")
        for player in self.players():
            bal = self.query_balance(player)
            lines.append(f"    {player}: owed {bal.owed}, owing {bal.owing}, net {bal.net}")
        lines.append(f"  Trades: {len(self.engine.trades)}  Journal entries: {len(self.journal)}")
        return "\n".join(lines)
