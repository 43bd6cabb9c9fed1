"""
Strategy engine.
Runs one strategy through valuation, trigger, allowance and submission.

Errors are contained here: a chain read or valuation failure skips the
strategy for this cycle, and a failure on one sell index never stops the
remaining indices.
"""
import logging
from dataclasses import dataclass, field
from decimal import Decimal
from typing import List, Optional

from chain.types import BuyArgs, SellArgs
from errors import ChainReadError, ValuationError
from execution.authorization import check_allowance
from execution.tx_state import SubmissionOutcome, SubmissionResult, TriggerKey, buy_key, format_key, sell_key
from state.context import RelayerContext
from state.strategies import Basket, BuyStrategy, SellStrategy
from state.units import to_whole_units
from strategy.triggers import TriggerState, buy_is_due, sell_index_state, triggered_sell_indices
from strategy.valuation import value_basket

logger = logging.getLogger(__name__)


@dataclass
class TriggerOutcome:
    """What happened to one sell index or one buy this cycle."""
    key: TriggerKey
    state: TriggerState
    reason: str = ""
    submission: Optional[SubmissionResult] = None


@dataclass
class StrategyReport:
    side: str
    strategy_id: int
    valuation_usd: Optional[Decimal] = None
    outcomes: List[TriggerOutcome] = field(default_factory=list)
    error: str = ""

    @property
    def submissions(self) -> List[SubmissionResult]:
        return [o.submission for o in self.outcomes if o.submission and o.submission.outcome.submitted]


async def load_basket(ctx: RelayerContext, strategy_id: int) -> Basket:
    address = await ctx.chain.basket_of(strategy_id)
    manager = await ctx.chain.basket_manager(address)
    return Basket(address=address, manager=manager)


def _state_after(result: SubmissionResult) -> TriggerState:
    if result.outcome in (SubmissionOutcome.CONFIRMED, SubmissionOutcome.PENDING):
        return TriggerState.SUBMITTED
    return TriggerState.SKIPPED_THIS_CYCLE


# =============================================================================
# SELL
# =============================================================================

async def process_sell_strategy(ctx: RelayerContext, strategy: SellStrategy) -> StrategyReport:
    """
    Evaluate one sell strategy against its basket's current USD value.

    Every threshold at or below the value that has not executed yet is
    processed in ascending index order.
    """
    report = StrategyReport(side="sell", strategy_id=strategy.strategy_id)
    guard = ctx.submitter.guard

    # Release guards whose sell the registry now shows as executed
    for i, executed in enumerate(strategy.executed):
        guard.settle(sell_key(strategy.strategy_id, i), executed)

    if all(strategy.executed):
        logger.debug(f"[SELL] Strategy {strategy.strategy_id}: all {len(strategy)} thresholds executed")
        return report

    pending = [i for i, executed in enumerate(strategy.executed) if not executed]
    if all(guard.is_held(sell_key(strategy.strategy_id, i)) for i in pending):
        logger.info(f"[SELL] Strategy {strategy.strategy_id}: every open threshold is in flight, not valuing")
        report.outcomes.extend(
            TriggerOutcome(sell_key(strategy.strategy_id, i), TriggerState.SUBMITTED, reason="in flight")
            for i in pending
        )
        return report

    try:
        basket = await load_basket(ctx, strategy.strategy_id)
        valuation = await value_basket(ctx.chain, ctx.oracle, basket.address, ctx.balance_concurrency)
    except ValuationError as e:
        logger.warning(f"[SELL] Strategy {strategy.strategy_id}: cannot value basket, skipping this cycle: {e}")
        report.error = str(e)
        return report
    except ChainReadError as e:
        logger.warning(f"[SELL] Strategy {strategy.strategy_id}: chain read failed, skipping this cycle: {e}")
        report.error = str(e)
        return report

    report.valuation_usd = valuation.total_usd

    for i in range(len(strategy)):
        state = sell_index_state(strategy, i, valuation.total_usd)
        logger.info(
            f"[SELL] Strategy {strategy.strategy_id} index {i}: "
            f"threshold=${strategy.thresholds_usd[i]:,.2f} value=${valuation.total_usd:,.2f} -> {state.value}"
        )

    for i in triggered_sell_indices(strategy, valuation.total_usd):
        report.outcomes.append(await _execute_sell_index(ctx, strategy, basket, i))

    return report


async def _execute_sell_index(
    ctx: RelayerContext,
    strategy: SellStrategy,
    basket: Basket,
    index: int
) -> TriggerOutcome:
    key = sell_key(strategy.strategy_id, index)
    label = format_key(key)

    if ctx.submitter.guard.is_held(key):
        logger.info(f"[SELL] {label}: previous submission still in flight, skipping")
        return TriggerOutcome(key, TriggerState.SUBMITTED, reason="in flight")

    try:
        decimals = await ctx.chain.token_decimals(basket.address)
        auth = await check_allowance(
            ctx.chain,
            token=basket.address,
            owner=basket.manager,
            spender=ctx.spender,
            required_whole=strategy.thresholds_usd[index],
            decimals=decimals,
        )
    except ChainReadError as e:
        logger.warning(f"[SELL] {label}: allowance read failed, skipping: {e}")
        return TriggerOutcome(key, TriggerState.SKIPPED_THIS_CYCLE, reason=str(e))

    if not auth.sufficient:
        logger.warning(
            f"[AUTH] {label}: not enough allowance from Chakra manager {basket.manager} "
            f"({auth.allowance_whole} < {auth.required_whole}), skipping"
        )
        return TriggerOutcome(key, TriggerState.SKIPPED_THIS_CYCLE, reason="insufficient allowance")

    args = SellArgs(
        basket=basket.address,
        sell_token=strategy.sell_tokens[index],
        strategy_id=strategy.strategy_id,
        token_index=index,
    )
    result = await ctx.submitter.execute_sell(key, args, snapshot=strategy.executed[index])
    return TriggerOutcome(key, _state_after(result), reason=result.reason, submission=result)


# =============================================================================
# BUY
# =============================================================================

async def process_buy_strategy(ctx: RelayerContext, strategy: BuyStrategy) -> StrategyReport:
    """
    Buy buy_amount_raw of buy_token into the basket once the inter-buy delay
    has passed since the registry's last buy timestamp.
    """
    report = StrategyReport(side="buy", strategy_id=strategy.strategy_id)
    key = buy_key(strategy.strategy_id)
    label = format_key(key)
    guard = ctx.submitter.guard

    # A confirmed buy stays guarded until the registry timestamp moves
    guard.settle(key, strategy.last_buy_timestamp)

    now = ctx.clock()
    if not buy_is_due(strategy, now):
        logger.debug(f"[BUY] {label}: next buy in {strategy.next_buy_at - now}s")
        report.outcomes.append(TriggerOutcome(key, TriggerState.PENDING))
        return report

    logger.info(f"[BUY] {label}: inter-buy delay passed (last buy {strategy.last_buy_timestamp})")

    if guard.is_held(key):
        logger.info(f"[BUY] {label}: previous submission still in flight, skipping")
        report.outcomes.append(TriggerOutcome(key, TriggerState.SUBMITTED, reason="in flight"))
        return report

    try:
        basket = await load_basket(ctx, strategy.strategy_id)
        decimals = await ctx.chain.token_decimals(strategy.buy_token)
        auth = await check_allowance(
            ctx.chain,
            token=strategy.buy_token,
            owner=basket.manager,
            spender=ctx.spender,
            required_whole=to_whole_units(strategy.buy_amount_raw, decimals),
            decimals=decimals,
        )
    except ChainReadError as e:
        logger.warning(f"[BUY] {label}: chain read failed, skipping this cycle: {e}")
        report.error = str(e)
        report.outcomes.append(TriggerOutcome(key, TriggerState.SKIPPED_THIS_CYCLE, reason=str(e)))
        return report

    logger.info(f"[BUY] {label}: Chakra {basket.address} manager {basket.manager}")

    if not auth.sufficient:
        logger.warning(
            f"[AUTH] {label}: not enough allowance from Chakra manager {basket.manager} "
            f"({auth.allowance_whole} < {auth.required_whole}), skipping"
        )
        report.outcomes.append(TriggerOutcome(key, TriggerState.SKIPPED_THIS_CYCLE, reason="insufficient allowance"))
        return report

    args = BuyArgs(
        basket=basket.address,
        buy_token=strategy.buy_token,
        buy_amount=strategy.buy_amount_raw,
        strategy_id=strategy.strategy_id,
    )
    result = await ctx.submitter.execute_buy(key, args, snapshot=strategy.last_buy_timestamp)
    report.outcomes.append(TriggerOutcome(key, _state_after(result), reason=result.reason, submission=result))
    return report
