#!/usr/bin/env python3
"""
demo.py - Interactive Tutorial: Learn the Prediction Market Step by Step

Each step builds on the previous one. Press Enter to advance.

WHAT YOU'LL LEARN:
  1-3:  Foundation   - Conditions, offers, the first trade
  4-6:  IOUs         - Rejections, transfers and splits, debt cancellation
  7-8:  Risk         - Exposure per condition, the outcome table
  9-11: Settlement   - Resolution, expiry, conservation proof

Run:
    python demo.py             # Interactive mode (press Enter for each step)
    python demo.py --quick     # Run all steps without pausing
    python demo.py --verbose   # Also log every journal entry
"""

from dataclasses import dataclass
from datetime import datetime, timedelta
from decimal import Decimal
import logging
import sys

from predmarket import (
    Market, MarketError, IouState,
)


# ============================================================================
# CONFIGURATION
# ============================================================================

@dataclass
class DemoConfig:
    """Configuration for the tutorial. Modify these to experiment."""
    start_time: datetime = datetime(2026, 3, 1, 9, 0, 0)

    alice_quote: tuple = ("0.50", "0.60")
    bob_home_quote: tuple = ("0.30", "0.40")
    bob_away_quote: tuple = ("0.35", "0.40")
    carol_away_quote: tuple = ("0.20", "0.30")

    transfer_amount: Decimal = Decimal("0.25")


CONFIG = DemoConfig()

QUICK_MODE = "--quick" in sys.argv
VERBOSE = "--verbose" in sys.argv


def wait_for_enter():
    """Pause for user input unless in quick mode."""
    if not QUICK_MODE:
        input("\n[Press Enter to continue...]")


def step_header(number: int, title: str, objective: str):
    print(f"\n{'='*70}")
    print(f"STEP {number}: {title}")
    print(f"{'='*70}")
    print(f"\nObjective: {objective}\n")


def section_header(text: str):
    print(f"\n--- {text} ---\n")


def show_ious(market: Market, state=None):
    for iou in market.list_ious(state=state):
        cond = ""
        if iou.condition is not None:
            neg = "NOT " if iou.condition.negated else ""
            cond = f" if {neg}{market.get_condition(iou.condition.condition_id).description}"
        print(f"    {iou.iou_id}: {iou.holder} holds ${iou.amount} from {iou.issuer}{cond}"
              f"  [{iou.state.value}]")


# ============================================================================
# PHASE 1: FOUNDATION
# ============================================================================

def step_01_conditions():
    step_header(1, "Registering Conditions",
        "A condition is a yes/no question the market will settle on.")

    market = Market("demo", verbose=VERBOSE)
    home = market.register_condition("Home team wins")
    away = market.register_condition("Away team wins")

    for c in market.list_conditions():
        print(f"  {c.condition_id}: {c.description!r} [{c.state.value}]")

    print("""
    Every condition starts PENDING. It ends exactly once: TRUE, FALSE,
    or EXPIRED when its deadline passes unresolved. A draw here means
    neither condition comes true.
    """)
    return market, home, away


def step_02_resting_offers(market: Market, home: str):
    step_header(2, "Posting Offers",
        "An offer is a (buy, sell) pair of prices for a $1 claim on the condition.")

    buy, sell = CONFIG.alice_quote
    trades = market.post_offer("alice", home, buy, sell)
    print(f"  alice posts buy {buy} / sell {sell} on Home -> {len(trades)} trades")
    bid, ask = market.spread(home)
    print(f"  Book for Home: best bid {bid}, best ask {ask}")

    print("""
    Prices are probabilities. alice would pay up to 0.50 for "$1 if the
    home team wins" and would sell that claim for 0.60 or more.
    Nothing crosses yet, so the offer rests on the book.
    """)
    return market


def step_03_first_trade(market: Market, home: str, away: str):
    step_header(3, "The First Trade",
        "A crossing offer trades at the midpoint and mints a pair of conditional IOUs.")

    buy, sell = CONFIG.bob_home_quote
    [trade] = market.post_offer("bob", home, buy, sell)
    print(f"  bob posts buy {buy} / sell {sell} on Home")
    print(f"  Trade #{trade.sequence}: {trade.buyer} buys from {trade.seller} @ {trade.price}")

    section_header("The IOU pair")
    show_ious(market)
    print("""
    Neither side pays anything now. alice (the buyer) holds 1 - p from bob
    if the home team wins, and bob holds p from alice if it does not.
    Both offers are consumed, so the Home book is empty again.
    """)
    print(f"  Offers left on Home: {market.offers(home)}")

    section_header("A second market")
    buy, sell = CONFIG.carol_away_quote
    market.post_offer("carol", away, buy, sell)
    buy, sell = CONFIG.bob_away_quote
    [trade] = market.post_offer("bob", away, buy, sell)
    print(f"  Trade #{trade.sequence}: {trade.buyer} buys Away from {trade.seller} @ {trade.price}")
    return market


# ============================================================================
# PHASE 2: IOUS
# ============================================================================

def step_04_rejections(market: Market, home: str):
    step_header(4, "Rejected Operations",
        "Invalid requests raise a MarketError and change nothing.")

    journal_before = len(market.journal)
    attempts = [
        ("alice owes herself", lambda: market.issue_iou("alice", "alice", "1")),
        ("price above 1", lambda: market.post_offer("dave", home, "1.5", "1")),
        ("negative amount", lambda: market.issue_iou("dave", "erin", "-3")),
        ("unknown condition", lambda: market.post_offer("dave", "cond_999999", "0.1", "0.9")),
    ]
    for label, attempt in attempts:
        try:
            attempt()
            print(f"  {label}: accepted?!")
        except MarketError as exc:
            print(f"  {label}: {type(exc).__name__}: {exc}")

    print(f"\n  Journal entries before: {journal_before}, after: {len(market.journal)}")
    return market


def step_05_transfer_and_split(market: Market):
    step_header(5, "Transfers and Splits",
        "IOUs are assets: the holder can pass all or part of one to someone else.")

    [alice_claim] = [i for i in market.list_ious("alice") if i.holder == "alice"]
    moved, kept = market.transfer_iou(alice_claim.iou_id, "alice", "carol", CONFIG.transfer_amount)
    print(f"  alice passes ${CONFIG.transfer_amount} of {alice_claim.iou_id} to carol")
    print(f"    -> {moved} (carol), {kept} (alice); {alice_claim.iou_id} is retired")

    [bob_claim] = [i for i in market.list_ious("bob")
                   if i.holder == "bob" and i.issuer == "alice"]
    pieces = market.split_iou(bob_claim.iou_id, "bob", ["0.20", bob_claim.amount - Decimal("0.20")])
    print(f"  bob splits {bob_claim.iou_id} into {pieces}")

    section_header("Outstanding IOUs")
    show_ious(market, IouState.ACTIVE)
    print("""
    The condition travels with every piece: carol's claim still pays only
    if the home team wins.
    """)
    return market


def step_06_cancellation(market: Market):
    step_header(6, "Debt Cancellation",
        "An IOU that reaches its own issuer is void: nobody owes themselves.")

    iou_id = market.issue_iou("erin", "dave", "5")
    print(f"  erin owes dave $5 ({iou_id})")
    market.transfer_iou(iou_id, "dave", "erin")
    print(f"  dave hands it back to erin -> {market.get_iou(iou_id).state.value}")
    print(f"  erin owing: {market.query_balance('erin').owing}")
    return market


# ============================================================================
# PHASE 3: RISK
# ============================================================================

def step_07_exposure(market: Market, home: str, away: str):
    step_header(7, "Exposure",
        "What each player nets if each condition resolves one way or the other.")

    for player in market.players():
        exp = market.exposure(player)
        if not exp.conditions():
            continue
        print(f"  {player}:")
        for cid in exp.conditions():
            desc = market.get_condition(cid).description
            print(f"    {desc:<16} if true {exp.if_true(cid):>8}   if false {exp.if_false(cid):>8}")
    return market


def step_08_outcome_table(market: Market, home: str, away: str):
    step_header(8, "The Outcome Table",
        "For mutually exclusive conditions, the net position under each result.")

    print(f"  {'player':<8} {'home':>8} {'away':>8} {'draw':>8}")
    for player in market.players():
        table = market.outcome_table(player, [home, away])
        print(f"  {player:<8} {table[home]:>8} {table[away]:>8} {table[None]:>8}")
    print("""
    Each column sums to zero: every dollar one player collects is a
    dollar another player owes.
    """)
    return market


# ============================================================================
# PHASE 4: SETTLEMENT
# ============================================================================

def step_09_resolution(market: Market, home: str, away: str):
    step_header(9, "Resolution",
        "Resolving a condition settles or voids every IOU that depends on it.")

    at = CONFIG.start_time + timedelta(hours=3)
    for cid, outcome in ((home, False), (away, True)):
        res = market.resolve_condition(cid, outcome, at)
        print(f"  {market.get_condition(cid).description} -> {res.state.value}: "
              f"{len(res.settled)} settled, {len(res.voided)} voided")

    section_header("Balances")
    for player in market.players():
        bal = market.query_balance(player)
        print(f"  {player:<8} owed {bal.owed:>8}  owing {bal.owing:>8}  net {bal.net:>8}")
    print("""
    Settled IOUs are ordinary debts now. How they are paid off in the
    real world is up to the players.
    """)
    return market


def step_10_expiry(market: Market):
    step_header(10, "Expiry",
        "A condition nobody resolves by its deadline expires, voiding both sides.")

    deadline = CONFIG.start_time + timedelta(days=7)
    rain = market.register_condition("Rain on opening day", expiry=deadline)
    market.post_offer("dave", rain, "0.70", "0.80")
    [trade] = market.post_offer("erin", rain, "0.50", "0.60")
    print(f"  dave buys rain from erin @ {trade.price}")

    print(f"  check_expiry(day 6) -> {market.check_expiry(deadline - timedelta(days=1))}")
    print(f"  check_expiry(day 7) -> {market.check_expiry(deadline)}")
    for iou_id in (trade.buyer_iou_id, trade.seller_iou_id):
        print(f"    {iou_id}: {market.get_iou(iou_id).state.value}")
    return market


def step_11_conservation(market: Market):
    step_header(11, "Conservation Proof",
        "Every debt has a creditor: net positions sum to zero.")

    total = sum((market.query_balance(p).net for p in market.players()), Decimal("0"))
    print(f"  Sum of net positions: {total}")
    report = market.verify_integrity()
    print(f"  Integrity check: {'valid' if report['valid'] else report['violations']}")

    section_header("Summary")
    print(market.summary())


# ============================================================================
# MAIN
# ============================================================================

def main():
    if VERBOSE:
        logging.basicConfig(level=logging.INFO, format="%(name)s: %(message)s")

    print("=" * 70)
    print("       PREDICTION MARKET TUTORIAL")
    print("=" * 70)
    if QUICK_MODE:
        print("Running in QUICK mode")
    else:
        print("Running in INTERACTIVE mode (press Enter to advance)")
    wait_for_enter()

    market, home, away = step_01_conditions()
    wait_for_enter()
    market = step_02_resting_offers(market, home)
    wait_for_enter()
    market = step_03_first_trade(market, home, away)
    wait_for_enter()

    market = step_04_rejections(market, home)
    wait_for_enter()
    market = step_05_transfer_and_split(market)
    wait_for_enter()
    market = step_06_cancellation(market)
    wait_for_enter()

    market = step_07_exposure(market, home, away)
    wait_for_enter()
    market = step_08_outcome_table(market, home, away)
    wait_for_enter()

    market = step_09_resolution(market, home, away)
    wait_for_enter()
    market = step_10_expiry(market)
    wait_for_enter()
    step_11_conservation(market)

    print("\n" + "=" * 70)
    print("       TUTORIAL COMPLETE!")
    print("=" * 70)
    print("""
    Next steps:
      - Run tests: pytest tests/
      - See tests/functional/ for multi-player sessions
    """)


if __name__ == "__main__":
    main()
