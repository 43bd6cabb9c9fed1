"""
Strategy and basket snapshots read from the registry.

These are per-cycle, read-only copies. The registry contract owns the
authoritative state (executed flags, last buy timestamps).
"""
from dataclasses import dataclass
from decimal import Decimal
from typing import Tuple


@dataclass(frozen=True)
class SellStrategy:
    """
    DCA-out strategy: sell sell_tokens[i] once the basket is worth at least
    thresholds_usd[i].

    Attributes:
        strategy_id: Registry id
        sell_tokens: Token sold at each threshold
        thresholds_usd: Basket value (whole USD) that triggers each index
        executed: Per-index flag, set on-chain once the sell went through
        active: Inactive strategies are never evaluated
    """
    strategy_id: int
    sell_tokens: Tuple[str, ...]
    thresholds_usd: Tuple[Decimal, ...]
    executed: Tuple[bool, ...]
    active: bool

    def __post_init__(self):
        n = len(self.sell_tokens)
        if not (len(self.thresholds_usd) == len(self.executed) == n):
            raise ValueError(
                f"Sell strategy {self.strategy_id}: token/threshold/executed lengths differ "
                f"({n}/{len(self.thresholds_usd)}/{len(self.executed)})"
            )

    def __len__(self) -> int:
        return len(self.sell_tokens)


@dataclass(frozen=True)
class BuyStrategy:
    """DCA-in strategy: buy buy_amount_raw of buy_token every inter_buy_delay seconds."""
    strategy_id: int
    buy_token: str
    buy_amount_raw: int
    inter_buy_delay: int
    last_buy_timestamp: int
    active: bool

    @property
    def next_buy_at(self) -> int:
        return self.last_buy_timestamp + self.inter_buy_delay


@dataclass(frozen=True)
class Basket:
    """A Chakra and the manager whose allowance funds its trades."""
    address: str
    manager: str
