"""
Strategy evaluation for the relayer.
Values baskets, decides which sell thresholds and buys are due, and drives
each due trigger through allowance check and submission.
"""

from strategy.engine import process_buy_strategy, process_sell_strategy
from strategy.triggers import TriggerState, buy_is_due, triggered_sell_indices
from strategy.valuation import Valuation, value_basket

__all__ = [
    'process_buy_strategy',
    'process_sell_strategy',
    'TriggerState',
    'buy_is_due',
    'triggered_sell_indices',
    'Valuation',
    'value_basket',
]
