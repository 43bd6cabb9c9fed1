"""
Sell and buy trigger conditions.

Pure functions: no I/O, no state. The registry snapshot and the current
basket value (or clock) go in, a decision comes out.
"""
from decimal import Decimal
from enum import Enum
from typing import List

from state.strategies import BuyStrategy, SellStrategy


class TriggerState(Enum):
    """Lifecycle of one sell threshold (or one buy) within a cycle."""
    PENDING = "PENDING"                        # Condition not met
    TRIGGERED = "TRIGGERED"                    # Condition met, not yet submitted
    SUBMITTED = "SUBMITTED"                    # Sent, awaiting confirmation
    EXECUTED = "EXECUTED"                      # Registry shows it done (terminal)
    SKIPPED_THIS_CYCLE = "SKIPPED_THIS_CYCLE"  # Retried next cycle


def sell_index_state(strategy: SellStrategy, index: int, valuation_usd: Decimal) -> TriggerState:
    """Classify a single threshold index against the current basket value."""
    if strategy.executed[index]:
        return TriggerState.EXECUTED
    if valuation_usd >= strategy.thresholds_usd[index]:
        return TriggerState.TRIGGERED
    return TriggerState.PENDING


def triggered_sell_indices(strategy: SellStrategy, valuation_usd: Decimal) -> List[int]:
    """
    Indices whose threshold the basket value has reached and that have not
    executed yet, ascending.

    e.g. thresholds [1000, 2000, 3000] at a value of 2500 -> [0, 1]
    """
    return [
        i for i in range(len(strategy))
        if sell_index_state(strategy, i, valuation_usd) is TriggerState.TRIGGERED
    ]


def buy_is_due(strategy: BuyStrategy, now: int) -> bool:
    """True once inter_buy_delay seconds have passed since the last buy."""
    return now >= strategy.next_buy_at
