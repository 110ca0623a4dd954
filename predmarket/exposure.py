"""
exposure.py - Player Exposure Analysis

Pure functions over a LedgerView. Nothing here mutates the ledger.

For one player, each outstanding IOU contributes +amount when the player
holds it and -amount when the player issued it, bucketed by what it depends on:

    unconditional   condition is None (includes SETTLED IOUs)
    on_true[C]      conditional on C
    on_false[C]     conditional on NOT C

Two views are derived from the buckets:

    Independent conditions:  payoff(C, outcome), worst_case(C)
    Mutually exclusive set:  exclusive_outcome(C) if C alone comes true,
                             otherwise_outcome() if none of them does
"""

from __future__ import annotations
from collections import defaultdict
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Dict, Iterable, List, Optional

from .core import (
    LedgerView, ConditionId, PlayerId, IouState, ZERO,
)


@dataclass(frozen=True)
class Exposure:
    """
    A player's signed net position, split by condition and polarity.

    Attributes:
        player: The player analysed.
        unconditional: Net of unconditional and SETTLED IOUs.
        on_true: Net of ACTIVE IOUs conditional on each condition.
        on_false: Net of ACTIVE IOUs conditional on each condition's negation.
    """
    player: PlayerId
    unconditional: Decimal = ZERO
    on_true: Dict[ConditionId, Decimal] = field(default_factory=dict)
    on_false: Dict[ConditionId, Decimal] = field(default_factory=dict)

    def conditions(self) -> List[ConditionId]:
        return sorted(set(self.on_true) | set(self.on_false))

    def payoff(self, condition_id: ConditionId, outcome: bool) -> Decimal:
        """Net that becomes unconditional if the condition resolves ``outcome``."""
        bucket = self.on_true if outcome else self.on_false
        return bucket.get(condition_id, ZERO)

    def if_true(self, condition_id: ConditionId) -> Decimal:
        return self.payoff(condition_id, True)

    def if_false(self, condition_id: ConditionId) -> Decimal:
        return self.payoff(condition_id, False)

    def worst_case(self, condition_id: ConditionId) -> Decimal:
        """Least favourable settlement of one condition (an EXPIRED outcome gives zero)."""
        return min(self.if_true(condition_id), self.if_false(condition_id), ZERO)

    def worst_case_total(self) -> Decimal:
        """Unconditional net plus the worst settlement of every condition, taken independently."""
        return self.unconditional + sum(
            (self.worst_case(cid) for cid in self.conditions()), ZERO
        )

    def exclusive_outcome(
        self,
        condition_id: ConditionId,
        among: Optional[Iterable[ConditionId]] = None,
    ) -> Decimal:
        """
        Final net if ``condition_id`` comes true and every other condition in
        ``among`` (default: all the player is exposed to) comes false.
        """
        others = set(self.conditions() if among is None else among)
        others.discard(condition_id)
        return (self.unconditional
                + self.if_true(condition_id)
                + sum((self.if_false(cid) for cid in others), ZERO))

    def otherwise_outcome(self, among: Optional[Iterable[ConditionId]] = None) -> Decimal:
        """Final net if none of the conditions in ``among`` comes true."""
        cids = self.conditions() if among is None else among
        return self.unconditional + sum((self.if_false(cid) for cid in cids), ZERO)


def exposure(view: LedgerView, player: PlayerId) -> Exposure:
    """
    Compute a player's exposure from their outstanding IOUs.

    Args:
        view: Read-only ledger access.
        player: Player to analyse.

    Returns:
        Exposure with signed totals.

    Example:
        >>> exp = exposure(ledger, "alice")
        >>> exp.if_true("cond_000001")
        Decimal('0.55')
    """
    unconditional = ZERO
    on_true: Dict[ConditionId, Decimal] = defaultdict(lambda: ZERO)
    on_false: Dict[ConditionId, Decimal] = defaultdict(lambda: ZERO)

    for iou in view.list_ious(player=player):
        if iou.state is IouState.VOID:
            continue
        signed = iou.amount if iou.holder == player else -iou.amount
        if iou.condition is None:
            unconditional += signed
        elif iou.condition.negated:
            on_false[iou.condition.condition_id] += signed
        else:
            on_true[iou.condition.condition_id] += signed

    return Exposure(
        player=player,
        unconditional=unconditional,
        on_true=dict(on_true),
        on_false=dict(on_false),
    )


def outcome_table(
    view: LedgerView,
    player: PlayerId,
    condition_ids: Iterable[ConditionId],
) -> Dict[Optional[ConditionId], Decimal]:
    """
    Final net for each way a mutually exclusive set of conditions can resolve.

    Returns:
        {condition_id: net if that one comes true, None: net if none does}
    """
    cids = list(condition_ids)
    exp = exposure(view, player)
    table: Dict[Optional[ConditionId], Decimal] = {
        cid: exp.exclusive_outcome(cid, among=cids) for cid in cids
    }
    table[None] = exp.otherwise_outcome(among=cids)
    return table
