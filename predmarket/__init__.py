"""
predmarket - Prediction-Market Trading Core

Participants trade conditional IOUs to express beliefs about future events.
Crossing offers clear at the midpoint; resolving a condition settles or voids
every IOU that depends on it.

Usage:
    from predmarket import Market

    market = Market("weather")
    rain = market.register_condition("Rain in Boston on 2026-11-01")

    market.post_offer("alice", rain, "0.50", "0.60")
    trades = market.post_offer("bob", rain, "0.30", "0.40")
    # one trade at 0.45:
    #   alice holds 0.55 from bob if rain
    #   bob holds 0.45 from alice if NOT rain

    market.resolve_condition(rain, True)
    market.query_balance("alice")   # Balance(owed=0.55, owing=0)
"""

# Core types
from .core import (
    LedgerView,
    ConditionRef,
    Condition,
    ConditionState,
    Iou,
    IouState,
    Offer,
    Trade,
    Balance,
    JournalEntry,
    EntryKind,
    Resolution,
    PlayerId,
    ConditionId,
    IouId,
    # Constants
    PRICE_DECIMAL_PLACES,
    AMOUNT_DECIMAL_PLACES,
    MAX_IOU_AMOUNT,
    DEFAULT_CONTRACT_SIZE,
    DEFAULT_BUY_PRICE,
    DEFAULT_SELL_PRICE,
    # Exceptions
    MarketError,
    InvalidPrice,
    InvalidAmount,
    SelfDebt,
    NotHolder,
    InsufficientAmount,
    UnknownCondition,
    DuplicateCondition,
    AlreadyResolved,
    UnknownIou,
    IouNotOutstanding,
    # Helpers
    validate_price,
    validate_amount,
    complement_price,
    as_condition_ref,
)

# Components
from .conditions import ConditionRegistry
from .ledger import IouLedger
from .offer_book import OfferBook, ConditionBook
from .matching import MatchingEngine, clearing_price, crosses, find_crossing_pair
from .settlement import Settlement
from .exposure import Exposure, exposure, outcome_table
from .market import Market

__all__ = [
    # Core
    'LedgerView', 'ConditionRef', 'Condition', 'ConditionState', 'Iou', 'IouState',
    'Offer', 'Trade', 'Balance', 'JournalEntry', 'EntryKind', 'Resolution',
    'PlayerId', 'ConditionId', 'IouId',
    # Constants
    'PRICE_DECIMAL_PLACES', 'AMOUNT_DECIMAL_PLACES', 'MAX_IOU_AMOUNT',
    'DEFAULT_CONTRACT_SIZE', 'DEFAULT_BUY_PRICE', 'DEFAULT_SELL_PRICE',
    # Exceptions
    'MarketError', 'InvalidPrice', 'InvalidAmount', 'SelfDebt', 'NotHolder',
    'InsufficientAmount', 'UnknownCondition', 'DuplicateCondition',
    'AlreadyResolved', 'UnknownIou', 'IouNotOutstanding',
    # Helpers
    'validate_price', 'validate_amount', 'complement_price', 'as_condition_ref',
    # Components
    'ConditionRegistry', 'IouLedger', 'OfferBook', 'ConditionBook',
    'MatchingEngine', 'clearing_price', 'crosses', 'find_crossing_pair',
    'Settlement',
    # Analysis
    'Exposure', 'exposure', 'outcome_table',
    # Facade
    'Market',
]

__version__ = '0.1.0'
