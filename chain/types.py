"""
Typed request/response contracts for the chain client.

Registry structs come back from web3 as positional tuples; decode_* turns
them into strategy snapshots and raises ChainReadError on malformed data.
"""
from dataclasses import dataclass
from decimal import Decimal
from typing import Any, Optional, Sequence

from web3 import Web3

from errors import ChainReadError
from state.strategies import BuyStrategy, SellStrategy


def _checksum(value: str, field_name: str) -> str:
    if not isinstance(value, str) or not Web3.is_address(value):
        raise ValueError(f"{field_name} is not a valid address: {value!r}")
    return Web3.to_checksum_address(value)


def _non_negative(value: int, field_name: str) -> int:
    if isinstance(value, bool) or not isinstance(value, int):
        raise ValueError(f"{field_name} must be an int, got {type(value).__name__}")
    if value < 0:
        raise ValueError(f"{field_name} must be non-negative, got {value}")
    return value


@dataclass(frozen=True)
class SellArgs:
    """Arguments for MindfulProxy.fromChakra (DCA out)."""
    basket: str
    sell_token: str
    strategy_id: int
    token_index: int
    pool_amount: int = 0
    min_output: int = 0  # Irrelevant when the relayer is the sender

    def __post_init__(self):
        object.__setattr__(self, "basket", _checksum(self.basket, "basket"))
        object.__setattr__(self, "sell_token", _checksum(self.sell_token, "sell_token"))
        for name in ("strategy_id", "token_index", "pool_amount", "min_output"):
            _non_negative(getattr(self, name), name)

    def to_struct(self) -> tuple:
        """Positional struct expected by fromChakra."""
        return (
            self.basket,
            self.sell_token,
            self.strategy_id,
            self.token_index,
            self.pool_amount,
            self.min_output,
        )


@dataclass(frozen=True)
class BuyArgs:
    """Arguments for MindfulProxy.toChakra (DCA in)."""
    basket: str
    buy_token: str
    buy_amount: int
    strategy_id: int
    pool_amount: int = 0

    def __post_init__(self):
        object.__setattr__(self, "basket", _checksum(self.basket, "basket"))
        object.__setattr__(self, "buy_token", _checksum(self.buy_token, "buy_token"))
        for name in ("buy_amount", "strategy_id", "pool_amount"):
            _non_negative(getattr(self, name), name)

    def to_call_args(self) -> tuple:
        """Argument order of toChakra."""
        return (self.basket, self.buy_token, self.pool_amount, self.buy_amount, self.strategy_id)


@dataclass(frozen=True)
class TxReceipt:
    tx_hash: str
    status: int
    block_number: Optional[int] = None
    gas_used: Optional[int] = None

    @property
    def succeeded(self) -> bool:
        return self.status == 1


def threshold_to_usd(raw: int, decimals: int) -> Decimal:
    return Decimal(raw).scaleb(-decimals)


def decode_sell_strategy(raw: Sequence[Any], threshold_decimals: int) -> SellStrategy:
    """
    Decode a SellStrategy struct:
    (sellStrategyId, sellTokens[], prices[], isExecuted[], isActive)
    """
    try:
        strategy_id, tokens, prices, executed, active = raw
        return SellStrategy(
            strategy_id=int(strategy_id),
            sell_tokens=tuple(Web3.to_checksum_address(t) for t in tokens),
            thresholds_usd=tuple(threshold_to_usd(int(p), threshold_decimals) for p in prices),
            executed=tuple(bool(e) for e in executed),
            active=bool(active),
        )
    except (TypeError, ValueError) as e:
        raise ChainReadError(f"Malformed sell strategy {raw!r}: {e}") from e


def decode_buy_strategy(raw: Sequence[Any]) -> BuyStrategy:
    """
    Decode a BuyStrategy struct:
    (buyStrategyId, buyToken, buyAmount, interBuyDelay, lastBuyTimestamp, isActive)
    """
    try:
        strategy_id, token, amount, delay, last_buy, active = raw
        return BuyStrategy(
            strategy_id=int(strategy_id),
            buy_token=Web3.to_checksum_address(token),
            buy_amount_raw=int(amount),
            inter_buy_delay=int(delay),
            last_buy_timestamp=int(last_buy),
            active=bool(active),
        )
    except (TypeError, ValueError) as e:
        raise ChainReadError(f"Malformed buy strategy {raw!r}: {e}") from e
