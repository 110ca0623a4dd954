"""
ledger.py - Conditional IOU Ledger

The IouLedger owns every IOU record. It is the only component that creates,
rewrites or extinguishes debt.

Key responsibilities:
    - Implements the LedgerView protocol for read-only analysis functions
    - Issues, transfers and splits IOUs, validating fully before mutating
    - Mints the complementary IOU pair for a matched trade atomically
    - Settles or voids every IOU referencing a condition in one pass
    - Journals every applied mutation; rejected operations leave no trace
"""

from __future__ import annotations
from collections import defaultdict
from dataclasses import replace
from decimal import Decimal
from typing import Any, Dict, List, Optional, Sequence, Set, Tuple, TYPE_CHECKING
import logging
import threading

from .core import (
    # Types
    Iou, IouState, ConditionRef, ConditionState, EntryKind, JournalEntry,
    Balance, Resolution,
    IouId, PlayerId, ConditionId,
    # Constants
    ZERO, ONE,
    # Exceptions
    SelfDebt, NotHolder, InsufficientAmount, InvalidAmount, InvalidPrice,
    UnknownIou, IouNotOutstanding,
    # Helpers
    validate_amount, to_decimal, as_condition_ref,
)

if TYPE_CHECKING:
    from .conditions import ConditionRegistry

logger = logging.getLogger(__name__)


class IouLedger:
    """
    Ledger of conditional IOUs with full validation and a journal.

    Implements the LedgerView protocol, allowing the ledger to be passed to
    pure functions that only read IOU records.

    Design Principles:
        - Always validates: amounts, holders and condition references are
          checked before any record changes. A raised error means nothing
          changed.
        - Always journals: every applied mutation appends a JournalEntry.
        - Unconstrained issuance: no solvency check is made against the
          issuer's existing obligations.

    Thread Safety:
        Record access is serialised by one re-entrant lock. Bulk settlement
        prepares every replacement record first and swaps them in under the
        lock, so readers see a condition either wholly unsettled or wholly
        settled.

    Example:
        ledger = IouLedger()
        iou_id = ledger.issue("alice", "bob", Decimal("10"))
        pieces = ledger.transfer(iou_id, "bob", "carol", Decimal("4"))
    """

    def __init__(
        self,
        registry: Optional[ConditionRegistry] = None,
        verbose: bool = False,
    ):
        """
        Create a ledger.

        Args:
            registry: Condition registry used to validate condition references.
                Without one, any condition id is accepted.
            verbose: Log journal entries at INFO instead of DEBUG.
        """
        self.registry = registry
        self.verbose = verbose
        self.ious: Dict[IouId, Iou] = {}
        self.journal: List[JournalEntry] = []
        # Split lineage: retired parent -> children
        self.retired: Dict[IouId, Tuple[IouId, ...]] = {}
        self._next_iou: int = 1
        self._next_sequence: int = 0
        # ACTIVE conditional IOUs by base condition id, for settlement
        self._by_condition: Dict[ConditionId, Set[IouId]] = defaultdict(set)
        self._issued: Dict[PlayerId, Decimal] = defaultdict(lambda: ZERO)
        self._voided: Dict[PlayerId, Decimal] = defaultdict(lambda: ZERO)
        self._lock = threading.RLock()

    # ========================================================================
    # LedgerView PROTOCOL IMPLEMENTATION (read-only methods)
    # ========================================================================

    def get_iou(self, iou_id: IouId) -> Iou:
        """
        Return the IOU record.

        Raises:
            UnknownIou: If the id is not present (never issued, or retired by a split).
        """
        with self._lock:
            try:
                return self.ious[iou_id]
            except KeyError:
                if iou_id in self.retired:
                    raise UnknownIou(
                        f"IOU {iou_id} was split into {list(self.retired[iou_id])}"
                    ) from None
                raise UnknownIou(f"IOU {iou_id} not found") from None

    def list_ious(
        self,
        player: Optional[PlayerId] = None,
        state: Optional[IouState] = None,
    ) -> List[Iou]:
        """Return IOUs the player issued or holds (all if None), optionally by state, ordered by id."""
        with self._lock:
            records = [self.ious[k] for k in sorted(self.ious)]
        return [
            iou for iou in records
            if (player is None or player in (iou.issuer, iou.holder))
            and (state is None or iou.state is state)
        ]

    def ious_for_condition(self, condition_id: ConditionId) -> List[Iou]:
        """Return ACTIVE IOUs referencing the condition in either polarity."""
        with self._lock:
            return [self.ious[k] for k in sorted(self._by_condition.get(condition_id, ()))]

    def children_of(self, iou_id: IouId) -> Tuple[IouId, ...]:
        """Ids of the pieces a retired IOU was split into (empty if not split)."""
        return self.retired.get(iou_id, ())

    def balance(self, player: PlayerId) -> Balance:
        """
        Aggregate of the player's outstanding (ACTIVE or SETTLED) IOUs.

        Informational only; no ledger operation consults it.
        """
        owed = ZERO
        owing = ZERO
        with self._lock:
            for iou in self.ious.values():
                if not iou.is_outstanding:
                    continue
                if iou.holder == player:
                    owed += iou.amount
                elif iou.issuer == player:
                    owing += iou.amount
        return Balance(owed=owed, owing=owing)

    def total_issued(self, player: PlayerId) -> Decimal:
        """Total amount ever issued by the player (directly or through trades)."""
        return self._issued.get(player, ZERO)

    def total_voided(self, player: PlayerId) -> Decimal:
        """Total amount of the player's debt that has been voided."""
        return self._voided.get(player, ZERO)

    def outstanding_total(self) -> Decimal:
        """Sum of all outstanding IOU amounts."""
        with self._lock:
            return sum((i.amount for i in self.ious.values() if i.is_outstanding), ZERO)

    def verify_integrity(self) -> Dict[str, Any]:
        """
        Check the ledger-wide invariants.

        Checks:
            - every IOU has a positive amount and issuer != holder
            - every ACTIVE conditional IOU references a PENDING condition
              (when a registry is attached) and is indexed for settlement
            - per issuer: total issued - total voided == currently owing

        Returns:
            Dict with keys:
            - 'valid': bool - True if no violations were found
            - 'violations': List[str] - description of each violation

        Example:
            result = ledger.verify_integrity()
            assert result['valid'], result['violations']
        """
        violations: List[str] = []
        with self._lock:
            owing: Dict[PlayerId, Decimal] = defaultdict(lambda: ZERO)
            for iou_id in sorted(self.ious):
                iou = self.ious[iou_id]
                if iou.amount <= ZERO:
                    violations.append(f"{iou_id}: non-positive amount {iou.amount}")
                if iou.issuer == iou.holder:
                    violations.append(f"{iou_id}: held by its issuer {iou.issuer}")
                if iou.is_outstanding:
                    owing[iou.issuer] += iou.amount
                if iou.state is IouState.ACTIVE and iou.condition is not None:
                    cid = iou.condition.condition_id
                    if iou_id not in self._by_condition.get(cid, ()):
                        violations.append(f"{iou_id}: not indexed under {cid}")
                    if self.registry is not None and cid in self.registry:
                        state = self.registry.state(cid)
                        if state is not ConditionState.PENDING:
                            violations.append(
                                f"{iou_id}: ACTIVE but {cid} is {state.value}"
                            )
                if iou.state is IouState.SETTLED and iou.condition is not None:
                    violations.append(f"{iou_id}: SETTLED but still conditional")

            for player in sorted(set(self._issued) | set(owing)):
                expected = self._issued.get(player, ZERO) - self._voided.get(player, ZERO)
                if expected != owing.get(player, ZERO):
                    violations.append(
                        f"{player}: issued - voided = {expected}, owing = {owing.get(player, ZERO)}"
                    )

        return {
            'valid': len(violations) == 0,
            'violations': violations,
        }

    # ========================================================================
    # MUTATIONS
    # ========================================================================

    def issue(
        self,
        issuer: PlayerId,
        holder: PlayerId,
        amount: Any,
        condition: Any = None,
    ) -> IouId:
        """
        Issue a new IOU from ``issuer`` to ``holder``.

        There is no check against the issuer's existing obligations.

        Args:
            issuer: Player taking on the debt.
            holder: Player the debt is owed to.
            amount: Positive amount.
            condition: None, a condition id, or a ConditionRef.

        Returns:
            Id of the new IOU.

        Raises:
            InvalidAmount: If amount is not a representable positive value.
            SelfDebt: If issuer == holder.
            UnknownCondition, AlreadyResolved: If the condition is not open.
        """
        amount = validate_amount(amount)
        _require_player(issuer, "issuer")
        _require_player(holder, "holder")
        if issuer == holder:
            raise SelfDebt(f"{issuer} cannot issue an IOU to themselves")
        ref = as_condition_ref(condition)

        with self._lock:
            self._require_open(ref)
            iou = self._new_iou(issuer, holder, amount, ref)
            self._add(iou)
            self._issued[issuer] += amount
            self._record(EntryKind.ISSUE, (iou.iou_id,), ref, f"{issuer} -> {holder} {amount}")
        return iou.iou_id

    def transfer(
        self,
        iou_id: IouId,
        from_holder: PlayerId,
        to_player: PlayerId,
        amount: Any = None,
    ) -> List[IouId]:
        """
        Transfer all or part of an IOU to another player.

        A full transfer rewrites the holder in place. A partial transfer
        retires the IOU and mints two pieces: ``amount`` for ``to_player``
        and the remainder for ``from_holder``. Transferring to the issuer
        voids the transferred portion, since nobody can hold their own debt.

        Args:
            iou_id: IOU to transfer.
            from_holder: Current holder (must match).
            to_player: Recipient.
            amount: Portion to transfer; defaults to the whole IOU.

        Returns:
            Ids of the resulting pieces, transferred piece first.

        Raises:
            UnknownIou: If the IOU does not exist.
            IouNotOutstanding: If the IOU is VOID.
            NotHolder: If from_holder is not the current holder.
            InvalidAmount: If amount is not a representable positive value.
            InsufficientAmount: If amount exceeds the IOU amount.
        """
        _require_player(to_player, "to_player")
        with self._lock:
            iou = self._require_outstanding(iou_id)
            if iou.holder != from_holder:
                raise NotHolder(f"{from_holder} does not hold {iou_id} (holder is {iou.holder})")
            amount = iou.amount if amount is None else validate_amount(amount)
            if amount > iou.amount:
                raise InsufficientAmount(
                    f"Cannot transfer {amount} of {iou_id}: only {iou.amount} outstanding"
                )
            if to_player == from_holder:
                raise ValueError(f"{from_holder} already holds {iou_id}")

            cancels = to_player == iou.issuer
            if amount == iou.amount:
                if cancels:
                    self._void(iou)
                    self._record(EntryKind.VOID, (iou_id,), iou.condition,
                                 f"returned to issuer {iou.issuer}")
                else:
                    self.ious[iou_id] = replace(iou, holder=to_player)
                    self._record(EntryKind.TRANSFER, (iou_id,), iou.condition,
                                 f"{from_holder} -> {to_player} {amount}")
                return [iou_id]

            moved, kept = self._split(iou, [
                (amount, from_holder if cancels else to_player),
                (iou.amount - amount, from_holder),
            ])
            if cancels:
                self._void(moved)
                self._record(EntryKind.VOID, (iou_id, moved.iou_id, kept.iou_id), iou.condition,
                             f"returned {amount} to issuer {iou.issuer}")
            else:
                self._record(EntryKind.TRANSFER, (iou_id, moved.iou_id, kept.iou_id), iou.condition,
                             f"{from_holder} -> {to_player} {amount}")
            return [moved.iou_id, kept.iou_id]

    def split(
        self,
        iou_id: IouId,
        holder: PlayerId,
        amounts: Sequence[Any],
    ) -> List[IouId]:
        """
        Split an IOU into pieces that sum exactly to its amount.

        The parent is retired; each child gets a fresh id and inherits
        issuer, holder and condition.

        Returns:
            Child ids in the order of ``amounts``.

        Raises:
            UnknownIou, IouNotOutstanding, NotHolder: As for transfer().
            InvalidAmount: If any piece is invalid or the pieces do not sum
                to the IOU amount.
            InsufficientAmount: If the pieces sum to more than the IOU amount.
        """
        if len(amounts) < 2:
            raise ValueError("A split needs at least two pieces")
        pieces = [validate_amount(a, f"piece {i}") for i, a in enumerate(amounts)]
        total = sum(pieces, ZERO)

        with self._lock:
            iou = self._require_outstanding(iou_id)
            if iou.holder != holder:
                raise NotHolder(f"{holder} does not hold {iou_id} (holder is {iou.holder})")
            if total > iou.amount:
                raise InsufficientAmount(
                    f"Pieces total {total} exceeds {iou_id} amount {iou.amount}"
                )
            if total != iou.amount:
                raise InvalidAmount(
                    f"Pieces total {total} must equal {iou_id} amount {iou.amount}"
                )
            children = self._split(iou, [(p, holder) for p in pieces])
            child_ids = tuple(c.iou_id for c in children)
            self._record(EntryKind.SPLIT, (iou_id,) + child_ids, iou.condition,
                         f"{len(children)} pieces")
            return list(child_ids)

    def mint_trade(
        self,
        condition_id: ConditionId,
        buyer: PlayerId,
        seller: PlayerId,
        price: Any,
        contract_size: Any = ONE,
    ) -> Tuple[IouId, IouId]:
        """
        Mint the IOU pair for one matched trade, atomically.

        The buyer receives ``contract_size * (1 - price)`` from the seller,
        conditional on the condition; the seller receives
        ``contract_size * price`` from the buyer, conditional on its negation.

        Returns:
            (buyer_iou_id, seller_iou_id)

        Raises:
            InvalidPrice: If price is not strictly inside (0, 1).
            InvalidAmount: If either leg is not representable.
            SelfDebt: If buyer == seller.
            UnknownCondition, AlreadyResolved: If the condition is not open.
        """
        price = to_decimal(price, InvalidPrice, "trade price")
        if price <= ZERO or price >= ONE:
            raise InvalidPrice(f"Trade price must be strictly between 0 and 1, got {price}")
        size = validate_amount(contract_size, "contract_size")
        buyer_amount = validate_amount(size * (ONE - price), "buyer leg")
        seller_amount = validate_amount(size * price, "seller leg")
        if buyer == seller:
            raise SelfDebt(f"{buyer} cannot trade with themselves")
        ref = ConditionRef(condition_id)

        with self._lock:
            self._require_open(ref)
            buyer_iou = self._new_iou(seller, buyer, buyer_amount, ref)
            self._add(buyer_iou)
            seller_iou = self._new_iou(buyer, seller, seller_amount, ref.negate())
            self._add(seller_iou)
            self._issued[seller] += buyer_amount
            self._issued[buyer] += seller_amount
            self._record(EntryKind.TRADE, (buyer_iou.iou_id, seller_iou.iou_id), ref,
                         f"{buyer} buys from {seller} @ {price}")
        return buyer_iou.iou_id, seller_iou.iou_id

    def resolve_for_condition(
        self,
        condition_id: ConditionId,
        outcome: ConditionState,
    ) -> Resolution:
        """
        Settle every ACTIVE IOU referencing a resolved condition.

        An IOU whose reference evaluates true becomes SETTLED and
        unconditional. One that evaluates false becomes VOID. EXPIRED voids
        every referencing IOU in both polarities.

        The pass is atomic: replacement records are built first, then
        swapped in under the lock. Running it again finds nothing to do.

        Raises:
            ValueError: If outcome is PENDING.
        """
        if outcome is ConditionState.PENDING:
            raise ValueError("Cannot settle a PENDING condition")

        with self._lock:
            snapshot = [self.ious[k] for k in sorted(self._by_condition.get(condition_id, ()))]
            updates: Dict[IouId, Iou] = {}
            settled: List[IouId] = []
            voided: List[IouId] = []
            for iou in snapshot:
                wins = (outcome is not ConditionState.EXPIRED
                        and iou.condition.evaluate(outcome is ConditionState.TRUE))
                if wins:
                    updates[iou.iou_id] = replace(iou, state=IouState.SETTLED, condition=None)
                    settled.append(iou.iou_id)
                else:
                    updates[iou.iou_id] = replace(iou, state=IouState.VOID)
                    voided.append(iou.iou_id)

            self.ious.update(updates)
            self._by_condition.pop(condition_id, None)
            for iou_id in voided:
                self._voided[updates[iou_id].issuer] += updates[iou_id].amount

            ref = ConditionRef(condition_id)
            if settled:
                self._record(EntryKind.SETTLE, tuple(settled), ref, outcome.value)
            if voided:
                self._record(EntryKind.VOID, tuple(voided), ref, outcome.value)

        return Resolution(
            condition_id=condition_id,
            state=outcome,
            settled=tuple(settled),
            voided=tuple(voided),
        )

    # ========================================================================
    # INTERNALS
    # ========================================================================

    def _require_open(self, ref: Optional[ConditionRef]) -> None:
        if ref is not None and self.registry is not None:
            self.registry.require_pending(ref.condition_id)

    def _require_outstanding(self, iou_id: IouId) -> Iou:
        iou = self.get_iou(iou_id)
        if not iou.is_outstanding:
            raise IouNotOutstanding(f"IOU {iou_id} is void")
        return iou

    def _new_iou(
        self,
        issuer: PlayerId,
        holder: PlayerId,
        amount: Decimal,
        condition: Optional[ConditionRef],
        state: IouState = IouState.ACTIVE,
        parent_id: Optional[IouId] = None,
    ) -> Iou:
        iou_id = f"iou_{self._next_iou:08d}"
        self._next_iou += 1
        return Iou(
            iou_id=iou_id,
            issuer=issuer,
            holder=holder,
            amount=amount,
            condition=condition,
            state=state,
            parent_id=parent_id,
        )

    def _add(self, iou: Iou) -> None:
        self.ious[iou.iou_id] = iou
        if iou.state is IouState.ACTIVE and iou.condition is not None:
            self._by_condition[iou.condition.condition_id].add(iou.iou_id)

    def _remove(self, iou: Iou) -> None:
        del self.ious[iou.iou_id]
        if iou.condition is not None:
            self._by_condition.get(iou.condition.condition_id, set()).discard(iou.iou_id)

    def _split(self, parent: Iou, pieces: List[Tuple[Decimal, PlayerId]]) -> List[Iou]:
        """Retire ``parent`` and add one child per (amount, holder) piece."""
        children = [
            self._new_iou(parent.issuer, holder, amount, parent.condition,
                          state=parent.state, parent_id=parent.iou_id)
            for amount, holder in pieces
        ]
        self._remove(parent)
        for child in children:
            self._add(child)
        self.retired[parent.iou_id] = tuple(c.iou_id for c in children)
        return children

    def _void(self, iou: Iou) -> None:
        self.ious[iou.iou_id] = replace(iou, state=IouState.VOID)
        if iou.condition is not None:
            self._by_condition.get(iou.condition.condition_id, set()).discard(iou.iou_id)
        self._voided[iou.issuer] += iou.amount

    def _record(
        self,
        kind: EntryKind,
        iou_ids: Tuple[IouId, ...],
        condition: Optional[ConditionRef],
        detail: str,
    ) -> JournalEntry:
        entry = JournalEntry(
            sequence=self._next_sequence,
            kind=kind,
            iou_ids=iou_ids,
            condition_id=condition.condition_id if condition else None,
            detail=detail,
        )
        self._next_sequence += 1
        self.journal.append(entry)
        logger.log(logging.INFO if self.verbose else logging.DEBUG, "%r %s", entry, detail)
        return entry

    # ========================================================================
    # LEDGER OPERATIONS
    # ========================================================================

    def clone(self) -> IouLedger:
        """
        Create an independent copy of this ledger.

        IOU and journal records are immutable, so copying the containers is
        enough. The clone shares the condition registry.
        """
        with self._lock:
            cloned = IouLedger(registry=self.registry, verbose=self.verbose)
            cloned.ious = dict(self.ious)
            cloned.journal = list(self.journal)
            cloned.retired = dict(self.retired)
            cloned._next_iou = self._next_iou
            cloned._next_sequence = self._next_sequence
            for cid, ids in self._by_condition.items():
                cloned._by_condition[cid] = set(ids)
            cloned._issued.update(self._issued)
            cloned._voided.update(self._voided)
        return cloned


def _require_player(player: PlayerId, what: str) -> None:
    if not player or not str(player).strip():
        raise ValueError(f"{what} cannot be empty")
