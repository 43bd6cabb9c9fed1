"""
Basket valuation.

Balances are raw integers in each token's base units; prices are USD per
whole token. Every balance is scaled by 10^decimals before it is multiplied
by its price, and all arithmetic is Decimal.
"""
import asyncio
import logging
from dataclasses import dataclass
from decimal import Decimal, localcontext
from typing import Dict, Mapping, Sequence, Tuple

from errors import ValuationError
from state.units import PRECISION, to_whole_units

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class TokenHolding:
    token: str
    raw_balance: int
    decimals: int
    price_usd: Decimal

    @property
    def whole_units(self) -> Decimal:
        return to_whole_units(self.raw_balance, self.decimals)

    @property
    def value_usd(self) -> Decimal:
        with localcontext() as ctx:
            ctx.prec = PRECISION
            return self.whole_units * self.price_usd


@dataclass(frozen=True)
class Valuation:
    basket: str
    holdings: Tuple[TokenHolding, ...]
    total_usd: Decimal


def compute_valuation(
    basket: str,
    tokens: Sequence[str],
    balances: Mapping[str, int],
    decimals: Mapping[str, int],
    prices: Mapping[str, Decimal]
) -> Valuation:
    """
    Sum balance x price over the basket's tokens.

    Raises:
        ValuationError: if any token has no price. A missing price is never
            treated as zero.
    """
    missing = [t for t in tokens if prices.get(t) is None]
    if missing:
        raise ValuationError(
            f"No USD price for {len(missing)} token(s) in basket {basket}: {', '.join(missing)}",
            basket=basket,
            missing_tokens=missing,
        )

    holdings = tuple(
        TokenHolding(
            token=t,
            raw_balance=balances[t],
            decimals=decimals[t],
            price_usd=Decimal(prices[t]),
        )
        for t in tokens
    )
    with localcontext() as ctx:
        ctx.prec = PRECISION
        total = sum((h.value_usd for h in holdings), Decimal(0))
    return Valuation(basket=basket, holdings=holdings, total_usd=total)


async def value_basket(chain, oracle, basket: str, concurrency: int) -> Valuation:
    """
    Value a basket in USD.

    1. Read the basket's current token set
    2. Read each token's balance and decimals (bounded concurrency)
    3. Fetch all prices in one oracle request
    4. Compute the Decimal total

    Raises:
        ChainReadError: token set or balance read failed
        ValuationError: price missing or price feed failed
    """
    tokens = list(dict.fromkeys(await chain.basket_tokens(basket)))
    if not tokens:
        logger.info(f"[VALUATION] Basket {basket} holds no tokens")
        return Valuation(basket=basket, holdings=(), total_usd=Decimal(0))

    semaphore = asyncio.Semaphore(concurrency)

    async def read_token(token: str) -> Tuple[int, int]:
        async with semaphore:
            balance = await chain.token_balance(token, basket)
            token_decimals = await chain.token_decimals(token)
            return balance, token_decimals

    # Let every read finish before surfacing a failure
    results = await asyncio.gather(*(read_token(t) for t in tokens), return_exceptions=True)
    for result in results:
        if isinstance(result, BaseException):
            raise result

    balances: Dict[str, int] = {}
    decimals: Dict[str, int] = {}
    for token, (balance, token_decimals) in zip(tokens, results):
        balances[token] = balance
        decimals[token] = token_decimals

    prices = await oracle.get_usd_prices(tokens)

    valuation = compute_valuation(basket, tokens, balances, decimals, prices)
    for h in valuation.holdings:
        logger.debug(f"[VALUATION] {h.token} amount={h.whole_units} price=${h.price_usd} value=${h.value_usd}")
    logger.info(f"[VALUATION] Basket {basket} value: ${valuation.total_usd:,.2f}")
    return valuation
