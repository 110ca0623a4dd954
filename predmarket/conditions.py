"""
conditions.py - Condition Registry

Tracks the lifecycle of every condition the market trades on.

State machine:
    PENDING -> TRUE
    PENDING -> FALSE
    PENDING -> EXPIRED   (only if an expiry is set and has passed)

All three targets are terminal. Every transition is reported synchronously to
subscribed listeners (Settlement) before the transition call returns, so a
caller of resolve() or check_expiry() always observes a settled ledger.

The registry has no clock: check_expiry(now) is a pure function of the
supplied time.
"""

from __future__ import annotations
from dataclasses import replace
from datetime import datetime
from typing import Callable, Dict, List, Optional
import logging
import threading

from .core import (
    Condition, ConditionId, ConditionState,
    UnknownCondition, DuplicateCondition, AlreadyResolved,
)

logger = logging.getLogger(__name__)

# Called with the condition in its new terminal state.
ResolutionListener = Callable[[Condition], None]


class ConditionRegistry:
    """
    Registry of conditions and their lifecycle state.

    Conditions are free-form propositions keyed by description. Two open
    (PENDING) conditions may not share a description; once a condition
    resolves, its description may be registered again.

    Thread Safety:
        State changes happen under an internal lock. Listeners are invoked
        after the lock is released.
    """

    def __init__(self):
        self._conditions: Dict[ConditionId, Condition] = {}
        self._open_by_description: Dict[str, ConditionId] = {}
        self._listeners: List[ResolutionListener] = []
        self._next_sequence: int = 1
        self._lock = threading.RLock()

    def subscribe(self, listener: ResolutionListener) -> None:
        """Register a callable to be told about every terminal transition."""
        self._listeners.append(listener)

    # ========================================================================
    # QUERIES
    # ========================================================================

    def get(self, condition_id: ConditionId) -> Condition:
        """
        Return the condition record.

        Raises:
            UnknownCondition: If the id was never registered.
        """
        with self._lock:
            try:
                return self._conditions[condition_id]
            except KeyError:
                raise UnknownCondition(f"Condition {condition_id} not registered") from None

    def __contains__(self, condition_id: object) -> bool:
        return condition_id in self._conditions

    def state(self, condition_id: ConditionId) -> ConditionState:
        return self.get(condition_id).state

    def require_pending(self, condition_id: ConditionId) -> Condition:
        """
        Return the condition if it is still open.

        Raises:
            UnknownCondition: If the id was never registered.
            AlreadyResolved: If the condition has left PENDING.
        """
        condition = self.get(condition_id)
        if not condition.is_pending:
            raise AlreadyResolved(
                f"Condition {condition_id} already {condition.state.value}"
            )
        return condition

    def list_conditions(self, state: Optional[ConditionState] = None) -> List[Condition]:
        """Return conditions (optionally only those in ``state``), ordered by id."""
        with self._lock:
            conditions = sorted(self._conditions.values(), key=lambda c: c.condition_id)
        if state is None:
            return conditions
        return [c for c in conditions if c.state is state]

    def due_for_expiry(self, now: datetime) -> List[ConditionId]:
        """Ids of PENDING conditions whose expiry is at or before ``now``."""
        with self._lock:
            return sorted(
                c.condition_id for c in self._conditions.values()
                if c.is_pending and c.expiry is not None and c.expiry <= now
            )

    # ========================================================================
    # TRANSITIONS
    # ========================================================================

    def register(self, description: str, expiry: Optional[datetime] = None) -> ConditionId:
        """
        Register a new PENDING condition.

        Args:
            description: Proposition text. Leading/trailing whitespace is ignored.
            expiry: Optional time after which check_expiry() expires it.

        Returns:
            The new condition id.

        Raises:
            ValueError: If the description is empty.
            DuplicateCondition: If an open condition has the same description.
        """
        key = (description or "").strip()
        if not key:
            raise ValueError("Condition description cannot be empty")

        with self._lock:
            existing = self._open_by_description.get(key)
            if existing is not None:
                raise DuplicateCondition(
                    f"Open condition {existing} already registered for {key!r}"
                )
            condition_id = f"cond_{self._next_sequence:06d}"
            self._next_sequence += 1
            self._conditions[condition_id] = Condition(
                condition_id=condition_id,
                description=key,
                expiry=expiry,
            )
            self._open_by_description[key] = condition_id

        logger.info("Registered condition %s: %r (expiry=%s)", condition_id, key, expiry)
        return condition_id

    def resolve(
        self,
        condition_id: ConditionId,
        outcome: bool,
        at: Optional[datetime] = None,
    ) -> Condition:
        """
        Resolve a PENDING condition to TRUE or FALSE and settle it.

        Returns only after every listener has run.

        Raises:
            TypeError: If outcome is not a bool.
            UnknownCondition: If the id was never registered.
            AlreadyResolved: If the condition is not PENDING.
        """
        if not isinstance(outcome, bool):
            raise TypeError(f"outcome must be bool, got {type(outcome).__name__}")
        new_state = ConditionState.TRUE if outcome else ConditionState.FALSE
        resolved = self._transition(condition_id, new_state, at)
        self._notify(resolved)
        return resolved

    def expire(self, condition_id: ConditionId, now: datetime) -> bool:
        """
        Expire one condition if it is PENDING and its expiry has passed.

        Returns:
            True if the condition transitioned to EXPIRED.
        """
        with self._lock:
            condition = self.get(condition_id)
            if not condition.is_pending or condition.expiry is None or condition.expiry > now:
                return False
            expired = self._transition(condition_id, ConditionState.EXPIRED, now)
        self._notify(expired)
        return True

    def check_expiry(self, now: datetime) -> List[ConditionId]:
        """
        Expire every PENDING condition whose expiry is at or before ``now``.

        Returns:
            Ids of the conditions that expired during this call, in id order.
        """
        return [cid for cid in self.due_for_expiry(now) if self.expire(cid, now)]

    def _transition(
        self,
        condition_id: ConditionId,
        new_state: ConditionState,
        at: Optional[datetime],
    ) -> Condition:
        with self._lock:
            condition = self.require_pending(condition_id)
            updated = replace(condition, state=new_state, resolved_at=at)
            self._conditions[condition_id] = updated
            self._open_by_description.pop(condition.description, None)
        logger.info("Condition %s -> %s", condition_id, new_state.value)
        return updated

    def _notify(self, condition: Condition) -> None:
        for listener in self._listeners:
            listener(condition)
