"""
Core types and pure functions for the prediction-market trading core.

This module provides the foundational data structures and protocols:
1. Protocols: LedgerView for read-only access to IOU records
2. Immutable data structures: ConditionRef, Condition, Iou, Offer, Trade,
   Balance, JournalEntry
3. Exceptions: MarketError and the domain-specific failure kinds
4. Type aliases: PlayerId, ConditionId, IouId
5. Validation: pure functions that normalise prices and amounts to Decimal

All functions in this module are pure. State lives in the registry, the
ledger and the offer book; records defined here are replaced, never mutated.
"""

from __future__ import annotations
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal, InvalidOperation, ROUND_HALF_EVEN, getcontext
from enum import Enum
from typing import (
    Any, List, Optional, Protocol, Tuple, Type, runtime_checkable
)


# ============================================================================
# DECIMAL CONTEXT CONFIGURATION
# ============================================================================
#
# Prices and amounts are Decimal throughout. The global context is configured
# once at import so that every component computes identical results.
#
# PRECONDITION: No other code should modify the global Decimal context.
# If thread-local contexts are needed, use decimal.localcontext().
#
_MARKET_DECIMAL_CONTEXT = getcontext()
_MARKET_DECIMAL_CONTEXT.prec = 50
_MARKET_DECIMAL_CONTEXT.rounding = ROUND_HALF_EVEN


# ============================================================================
# CONSTANTS
# ============================================================================

# Prices are probabilities in [0, 1] quoted to four places. A clearing
# midpoint of two quotes may carry a fifth.
PRICE_DECIMAL_PLACES = 4

# Finest amount the ledger can represent (micro-dollars).
AMOUNT_DECIMAL_PLACES = 6

# Practical upper bound on a single IOU.
MAX_IOU_AMOUNT = Decimal("1000000000")

# Dollar notional of one matched trade.
DEFAULT_CONTRACT_SIZE = Decimal("1")

# The implicit offer every player holds on every condition.
DEFAULT_BUY_PRICE = Decimal("0")
DEFAULT_SELL_PRICE = Decimal("1")

ZERO = Decimal("0")
ONE = Decimal("1")


# ============================================================================
# TYPE ALIASES
# ============================================================================

# Opaque player identity; only equality matters.
PlayerId = str

ConditionId = str

IouId = str


# ============================================================================
# ENUMS
# ============================================================================

class ConditionState(Enum):
    """
    Lifecycle state of a condition.

    PENDING is the only non-terminal state. TRUE, FALSE and EXPIRED are
    reached at most once and never left.
    """
    PENDING = "pending"
    TRUE = "true"
    FALSE = "false"
    EXPIRED = "expired"

    @property
    def is_terminal(self) -> bool:
        return self is not ConditionState.PENDING


class IouState(Enum):
    """
    Lifecycle state of an IOU.

    ACTIVE: outstanding, possibly conditional.
    SETTLED: its condition came true; now an unconditional debt still owed.
    VOID: extinguished; the issuer owes nothing.
    """
    ACTIVE = "active"
    VOID = "void"
    SETTLED = "settled"


class EntryKind(Enum):
    """Classification of journal entries written by the ledger."""
    ISSUE = "issue"
    TRANSFER = "transfer"
    SPLIT = "split"
    VOID = "void"
    SETTLE = "settle"
    TRADE = "trade"


# ============================================================================
# EXCEPTIONS
# ============================================================================

class MarketError(Exception):
    """Base exception for all market-core errors."""
    pass


class InvalidPrice(MarketError):
    """Raised when a price is not a finite decimal in [0, 1] at supported precision."""
    pass


class InvalidAmount(MarketError):
    """Raised when an amount is not positive, too large, or too precise to represent."""
    pass


class SelfDebt(MarketError):
    """Raised when an IOU would be issued by a player to themselves."""
    pass


class NotHolder(MarketError):
    """Raised when a player acts on an IOU they do not currently hold."""
    pass


class InsufficientAmount(MarketError):
    """Raised when a transfer or split asks for more than the IOU carries."""
    pass


class UnknownCondition(MarketError):
    """Raised when a condition id is not registered (or not open for trading)."""
    pass


class DuplicateCondition(MarketError):
    """Raised when registering a description that matches an open condition."""
    pass


class AlreadyResolved(MarketError):
    """Raised when resolving, or issuing against, a condition that has left PENDING."""
    pass


class UnknownIou(MarketError):
    """Raised when an IOU id is not present in the ledger."""
    pass


class IouNotOutstanding(MarketError):
    """Raised when transferring or splitting an IOU that has been voided."""
    pass


# ============================================================================
# CONDITIONS
# ============================================================================

@dataclass(frozen=True, slots=True)
class ConditionRef:
    """
    Reference to a condition, directly or in negated form.

    Negation is a view, not a separate condition: ``ConditionRef(c, True)``
    holds exactly when condition ``c`` resolves false.

    Attributes:
        condition_id: Id of the referenced condition.
        negated: True if this reference is to the logical complement.
    """
    condition_id: ConditionId
    negated: bool = False

    def __post_init__(self):
        if not self.condition_id or not str(self.condition_id).strip():
            raise ValueError("ConditionRef condition_id cannot be empty")

    def negate(self) -> ConditionRef:
        """Return the complementary reference."""
        return ConditionRef(self.condition_id, not self.negated)

    def evaluate(self, outcome: bool) -> bool:
        """Truth value of this reference given the base condition's outcome."""
        return outcome != self.negated

    def __str__(self) -> str:
        return f"NOT {self.condition_id}" if self.negated else self.condition_id


@dataclass(frozen=True, slots=True)
class Condition:
    """
    A proposition whose resolution gates conditional IOUs.

    Attributes:
        condition_id: Registry-assigned identifier.
        description: Free-form text; the registry key for duplicate detection.
        expiry: Optional time after which the condition expires unresolved.
        state: Current lifecycle state.
        resolved_at: Time of the terminal transition, if known.
    """
    condition_id: ConditionId
    description: str
    expiry: Optional[datetime] = None
    state: ConditionState = ConditionState.PENDING
    resolved_at: Optional[datetime] = None

    @property
    def is_pending(self) -> bool:
        return self.state is ConditionState.PENDING

    def ref(self, negated: bool = False) -> ConditionRef:
        """Reference to this condition (or its negation)."""
        return ConditionRef(self.condition_id, negated)


# ============================================================================
# IOUS
# ============================================================================

@dataclass(frozen=True, slots=True)
class Iou:
    """
    A debt record: ``issuer`` owes ``holder`` ``amount`` dollars, optionally
    only if ``condition`` holds.

    Attributes:
        iou_id: Ledger-assigned identifier.
        issuer: Player who owes.
        holder: Player who is owed.
        amount: Positive dollar amount.
        condition: None for an unconditional IOU.
        state: ACTIVE, SETTLED or VOID.
        parent_id: Id of the IOU this one was split from, if any.
    """
    iou_id: IouId
    issuer: PlayerId
    holder: PlayerId
    amount: Decimal
    condition: Optional[ConditionRef] = None
    state: IouState = IouState.ACTIVE
    parent_id: Optional[IouId] = None

    def __post_init__(self):
        if not isinstance(self.amount, Decimal):
            raise ValueError(f"Iou amount must be Decimal, got {type(self.amount)}")
        if self.amount <= ZERO:
            raise ValueError(f"Iou amount must be positive, got {self.amount}")
        if self.issuer == self.holder:
            raise ValueError("Iou issuer and holder must be different")

    @property
    def is_conditional(self) -> bool:
        return self.condition is not None

    @property
    def is_outstanding(self) -> bool:
        """True while the issuer still owes something (ACTIVE or SETTLED)."""
        return self.state is not IouState.VOID

    def references(self, condition_id: ConditionId) -> bool:
        return self.condition is not None and self.condition.condition_id == condition_id

    def __repr__(self) -> str:
        cond = f" if {self.condition}" if self.condition else ""
        return (f"Iou({self.iou_id}: {self.issuer} owes {self.amount} to "
                f"{self.holder}{cond} [{self.state.value}])")


# ============================================================================
# OFFERS AND TRADES
# ============================================================================

@dataclass(frozen=True, slots=True)
class Offer:
    """
    A player's standing willingness to trade $1 claims on a condition.

    The book stores offers against the base (non-negated) condition; an
    offer made against a negation is normalised by ``Offer.on``.

    Attributes:
        player: Offering player.
        condition_id: Base condition the offer trades.
        buy_price: Highest price the player pays for a claim on the condition.
        sell_price: Lowest price the player sells a claim on the condition for.
        timestamp: Monotonic submission sequence number assigned by the book.
    """
    player: PlayerId
    condition_id: ConditionId
    buy_price: Decimal
    sell_price: Decimal
    timestamp: int = 0

    @classmethod
    def on(
        cls,
        player: PlayerId,
        condition: ConditionRef,
        buy_price: Decimal,
        sell_price: Decimal,
        timestamp: int = 0,
    ) -> Offer:
        """
        Build an offer against a condition reference.

        Buying NOT C at ``b`` is selling C at ``1 - b``, so a negated
        reference swaps and complements the two prices.
        """
        if condition.negated:
            buy_price, sell_price = complement_price(sell_price), complement_price(buy_price)
        return cls(player, condition.condition_id, buy_price, sell_price, timestamp)

    @property
    def has_bid(self) -> bool:
        """A buy price of zero is the implicit default, not a bid."""
        return self.buy_price > DEFAULT_BUY_PRICE

    @property
    def has_ask(self) -> bool:
        """A sell price of one is the implicit default, not an ask."""
        return self.sell_price < DEFAULT_SELL_PRICE


@dataclass(frozen=True, slots=True)
class Trade:
    """
    Result of one match: two conditional IOUs with complementary conditions.

    Attributes:
        sequence: Monotonic trade number within the market.
        condition_id: Condition traded.
        buyer: Player whose bid matched.
        seller: Player whose ask matched.
        price: Clearing price p.
        contract_size: Dollar notional of the trade.
        buyer_iou_id: IOU held by the buyer, issued by the seller, for
            ``contract_size * (1 - p)`` conditional on the condition.
        seller_iou_id: IOU held by the seller, issued by the buyer, for
            ``contract_size * p`` conditional on its negation.
        bid_timestamp: Timestamp of the consumed bid offer.
        ask_timestamp: Timestamp of the consumed ask offer.
    """
    sequence: int
    condition_id: ConditionId
    buyer: PlayerId
    seller: PlayerId
    price: Decimal
    contract_size: Decimal
    buyer_iou_id: IouId
    seller_iou_id: IouId
    bid_timestamp: int
    ask_timestamp: int

    @property
    def buyer_amount(self) -> Decimal:
        return self.contract_size * (ONE - self.price)

    @property
    def seller_amount(self) -> Decimal:
        return self.contract_size * self.price

    def __repr__(self) -> str:
        return (f"Trade(#{self.sequence} {self.condition_id} @ {self.price}: "
                f"{self.buyer} buys from {self.seller})")


@dataclass(frozen=True, slots=True)
class Balance:
    """
    Informational aggregate of a player's outstanding IOUs.

    Attributes:
        owed: Total of outstanding IOUs the player holds.
        owing: Total of outstanding IOUs the player issued.
    """
    owed: Decimal
    owing: Decimal

    @property
    def net(self) -> Decimal:
        return self.owed - self.owing


@dataclass(frozen=True, slots=True)
class JournalEntry:
    """
    Immutable record of one applied ledger mutation.

    Attributes:
        sequence: Monotonic sequence within the ledger.
        kind: What happened.
        iou_ids: IOUs created or rewritten by the mutation.
        condition_id: Condition involved, for settlement and trade entries.
        detail: Short human-readable description.
    """
    sequence: int
    kind: EntryKind
    iou_ids: Tuple[IouId, ...]
    condition_id: Optional[ConditionId] = None
    detail: str = ""

    def __repr__(self) -> str:
        cond = f" {self.condition_id}" if self.condition_id else ""
        return f"JournalEntry(#{self.sequence} {self.kind.value}{cond} {list(self.iou_ids)})"


@dataclass(frozen=True, slots=True)
class Resolution:
    """
    Outcome of settling one condition across the ledger.

    Attributes:
        condition_id: The resolved condition.
        state: Terminal state it resolved to.
        settled: IOUs that became unconditional (now SETTLED).
        voided: IOUs that were extinguished (now VOID).
    """
    condition_id: ConditionId
    state: ConditionState
    settled: Tuple[IouId, ...] = ()
    voided: Tuple[IouId, ...] = ()

    def is_empty(self) -> bool:
        return not self.settled and not self.voided


# ============================================================================
# PROTOCOLS
# ============================================================================

@runtime_checkable
class LedgerView(Protocol):
    """
    Read-only interface to IOU records.

    Analysis functions (exposure, outcome tables) accept a LedgerView to
    declare that they never mutate the ledger. IouLedger implements it; tests
    use FakeView.
    """

    def get_iou(self, iou_id: IouId) -> Iou:
        """Return the IOU with the given id. Raises UnknownIou if absent."""
        ...

    def list_ious(
        self,
        player: Optional[PlayerId] = None,
        state: Optional[IouState] = None,
    ) -> List[Iou]:
        """Return IOUs (optionally those a player issued or holds, in a state), ordered by id."""
        ...

    def ious_for_condition(self, condition_id: ConditionId) -> List[Iou]:
        """Return ACTIVE IOUs referencing the condition in either polarity."""
        ...


# ============================================================================
# VALIDATION
# ============================================================================

def decimal_places(value: Decimal) -> int:
    """Number of significant fractional digits (trailing zeros ignored)."""
    exponent = value.normalize().as_tuple().exponent
    return max(0, -exponent) if isinstance(exponent, int) else 0


def to_decimal(value: Any, error: Type[MarketError], what: str) -> Decimal:
    """
    Convert a user-supplied number to a finite Decimal.

    Floats go through ``str`` so that 0.45 becomes Decimal("0.45").

    Raises:
        error: If the value is not a finite number.
    """
    if isinstance(value, bool):
        raise error(f"{what} must be a number, got {value!r}")
    if isinstance(value, Decimal):
        result = value
    elif isinstance(value, (int, float, str)):
        try:
            result = Decimal(str(value).strip())
        except InvalidOperation:
            raise error(f"{what} is not a number: {value!r}") from None
    else:
        raise error(f"{what} must be a number, got {type(value).__name__}")
    if not result.is_finite():
        raise error(f"{what} must be finite, got {value!r}")
    return result


def validate_price(value: Any, what: str = "price") -> Decimal:
    """
    Normalise a price to Decimal and check it lies in [0, 1].

    Raises:
        InvalidPrice: If outside [0, 1], non-finite, or finer than
            PRICE_DECIMAL_PLACES.
    """
    price = to_decimal(value, InvalidPrice, what)
    if price < ZERO or price > ONE:
        raise InvalidPrice(f"{what} must be in [0, 1], got {price}")
    if decimal_places(price) > PRICE_DECIMAL_PLACES:
        raise InvalidPrice(
            f"{what} {price} exceeds {PRICE_DECIMAL_PLACES} decimal places"
        )
    return price


def validate_amount(value: Any, what: str = "amount") -> Decimal:
    """
    Normalise an IOU amount to Decimal and check it is representable.

    Raises:
        InvalidAmount: If not positive, above MAX_IOU_AMOUNT, or finer than
            AMOUNT_DECIMAL_PLACES.
    """
    amount = to_decimal(value, InvalidAmount, what)
    if amount <= ZERO:
        raise InvalidAmount(f"{what} must be positive, got {amount}")
    if amount > MAX_IOU_AMOUNT:
        raise InvalidAmount(f"{what} {amount} exceeds maximum {MAX_IOU_AMOUNT}")
    if decimal_places(amount) > AMOUNT_DECIMAL_PLACES:
        raise InvalidAmount(
            f"{what} {amount} exceeds {AMOUNT_DECIMAL_PLACES} decimal places"
        )
    return amount


def complement_price(price: Decimal) -> Decimal:
    """Price of the negated claim: a $1 claim on NOT C costs 1 - p."""
    return ONE - price


def as_condition_ref(value: Any, negated: bool = False) -> Optional[ConditionRef]:
    """
    Coerce a condition argument to a ConditionRef.

    Accepts None (unconditional), a condition id, or a ConditionRef. When a
    ConditionRef is given, ``negated=True`` flips it.
    """
    if value is None:
        if negated:
            raise ValueError("negated requires a condition")
        return None
    if isinstance(value, ConditionRef):
        return value.negate() if negated else value
    if isinstance(value, str):
        return ConditionRef(value, negated)
    raise TypeError(f"condition must be an id or ConditionRef, got {type(value).__name__}")
