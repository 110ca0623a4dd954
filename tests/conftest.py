"""
conftest.py - Shared pytest fixtures for predmarket tests

Provides common fixtures used across unit, conformance and functional tests:
- Bare components (registry, ledger, book, engine)
- A fully wired Market with an open condition
- Snapshot helpers for all-or-nothing comparisons
"""

import pytest
from datetime import datetime, timedelta
from decimal import Decimal
from typing import Any, Dict, Tuple

from predmarket import (
    Market, ConditionRegistry, IouLedger, OfferBook, MatchingEngine, Settlement,
)


# =============================================================================
# HELPER FUNCTIONS
# =============================================================================

T0 = datetime(2026, 1, 1, 12, 0, 0)


def ledger_snapshot(ledger: IouLedger) -> Tuple[Dict[str, Any], int, Dict[str, Any]]:
    """Everything a failed operation must leave untouched."""
    return dict(ledger.ious), len(ledger.journal), dict(ledger.retired)


def book_snapshot(book: OfferBook) -> list:
    return list(book.offers())


def total_outstanding_by_issuer(ledger: IouLedger) -> Dict[str, Decimal]:
    totals: Dict[str, Decimal] = {}
    for iou in ledger.list_ious():
        if iou.is_outstanding:
            totals[iou.issuer] = totals.get(iou.issuer, Decimal("0")) + iou.amount
    return totals


# =============================================================================
# COMPONENT FIXTURES
# =============================================================================

@pytest.fixture
def registry():
    """Empty condition registry."""
    return ConditionRegistry()


@pytest.fixture
def ledger(registry):
    """Ledger validating conditions against ``registry``."""
    return IouLedger(registry=registry)


@pytest.fixture
def bare_ledger():
    """Ledger with no registry; any condition id is accepted."""
    return IouLedger()


@pytest.fixture
def book():
    return OfferBook()


@pytest.fixture
def wired(registry, ledger, book):
    """Registry, ledger, book, engine and settlement connected as in Market."""
    engine = MatchingEngine(ledger, book, registry)
    settlement = Settlement(ledger, book, engine)
    registry.subscribe(settlement)
    return registry, ledger, book, engine, settlement


# =============================================================================
# MARKET FIXTURES
# =============================================================================

@pytest.fixture
def market():
    """Fresh market with no conditions."""
    return Market("test")


@pytest.fixture
def condition(market):
    """An open condition on ``market``."""
    return market.register_condition("It rains tomorrow")


@pytest.fixture
def expiring_condition(market):
    """An open condition expiring one day after T0."""
    return market.register_condition("Launch happens this week", expiry=T0 + timedelta(days=1))


@pytest.fixture
def traded_market(market, condition):
    """Market after the canonical two-offer trade at 0.45."""
    market.post_offer("p1", condition, "0.50", "0.60")
    market.post_offer("p2", condition, "0.30", "0.40")
    return market
