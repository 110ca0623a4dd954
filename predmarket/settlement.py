"""
settlement.py - Condition Settlement

Settlement subscribes to the ConditionRegistry. When a condition reaches a
terminal state it:

    1. Settles or voids every ACTIVE IOU referencing the condition
       (IouLedger.resolve_for_condition, atomic).
    2. Removes every resting offer on the condition.

Both steps run under the matching engine's lock for the condition, so no
trade on that condition can interleave with its settlement. The engine then
forgets the lock.
"""

from __future__ import annotations
from typing import Dict, List, Optional, TYPE_CHECKING
import contextlib
import logging

from .core import Condition, ConditionId, Resolution

if TYPE_CHECKING:
    from .ledger import IouLedger
    from .offer_book import OfferBook
    from .matching import MatchingEngine

logger = logging.getLogger(__name__)


class Settlement:
    """
    Registry listener that applies a condition's outcome to ledger and book.

    Example:
        settlement = Settlement(ledger, book, engine)
        registry.subscribe(settlement)
        registry.resolve(cid, True)      # ledger is settled on return
        settlement.resolution(cid).settled
    """

    def __init__(
        self,
        ledger: IouLedger,
        book: OfferBook,
        engine: Optional[MatchingEngine] = None,
    ):
        self.ledger = ledger
        self.book = book
        self.engine = engine
        self.resolutions: Dict[ConditionId, Resolution] = {}

    def __call__(self, condition: Condition) -> Resolution:
        return self.settle(condition)

    def settle(self, condition: Condition) -> Resolution:
        """
        Apply a terminal condition to the ledger and drop its offers.

        Raises:
            ValueError: If the condition is still PENDING.
        """
        if not condition.state.is_terminal:
            raise ValueError(f"Condition {condition.condition_id} is still pending")

        cid = condition.condition_id
        lock = self.engine.lock_for(cid) if self.engine is not None else contextlib.nullcontext()
        with lock:
            resolution = self.ledger.resolve_for_condition(cid, condition.state)
            dropped = self.book.clear(cid)
            self.resolutions[cid] = resolution
        if self.engine is not None:
            self.engine.release_lock(cid)

        logger.info(
            "Settled %s as %s: %d IOUs settled, %d voided, %d offers removed",
            cid, condition.state.value,
            len(resolution.settled), len(resolution.voided), len(dropped),
        )
        return resolution

    def resolution(self, condition_id: ConditionId) -> Optional[Resolution]:
        """The recorded settlement of a condition, or None if not yet settled."""
        return self.resolutions.get(condition_id)

    def settled_conditions(self) -> List[ConditionId]:
        return sorted(self.resolutions)
