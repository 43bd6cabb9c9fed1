"""
Relayer context - the clients and settings every component works with.
Passed explicitly so tests can swap in fakes.
"""
import time
from dataclasses import dataclass, field
from typing import Callable

import config


@dataclass
class RelayerContext:
    """
    Attributes:
        chain: ChainClient
        oracle: PriceFeedClient
        submitter: TransactionSubmitter
        spender: Address allowances must be granted to (the registry)
        balance_concurrency: Parallel token reads per basket
        clock: Returns the current Unix time in seconds
    """
    chain: object
    oracle: object
    submitter: object
    spender: str
    balance_concurrency: int = config.BALANCE_CONCURRENCY
    clock: Callable[[], int] = field(default=lambda: int(time.time()))
