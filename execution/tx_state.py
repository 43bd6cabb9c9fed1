"""
Transaction state - tracks a relayer transaction through its lifecycle.
"""
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Optional, Tuple
import time


# ("sell", strategy_id, index) or ("buy", strategy_id)
TriggerKey = Tuple[Any, ...]


def sell_key(strategy_id: int, index: int) -> TriggerKey:
    return ("sell", strategy_id, index)


def buy_key(strategy_id: int) -> TriggerKey:
    return ("buy", strategy_id)


def format_key(key: TriggerKey) -> str:
    if key[0] == "sell":
        return f"sell#{key[1]}[{key[2]}]"
    return f"{key[0]}#{key[1]}"


class InFlightStatus(Enum):
    """Status of a guarded trigger."""
    SIMULATING = "SIMULATING"   # Dry run / send in progress
    SUBMITTED = "SUBMITTED"     # Sent, receipt not seen yet
    CONFIRMED = "CONFIRMED"     # Mined OK, registry not yet showing it


class SubmissionOutcome(Enum):
    """Result of one execute() attempt."""
    SKIPPED_IN_FLIGHT = "SKIPPED_IN_FLIGHT"
    SIMULATE_REVERTED = "SIMULATE_REVERTED"
    FAILED = "FAILED"          # Rejected by the node
    REVERTED = "REVERTED"      # Mined with status 0
    PENDING = "PENDING"        # Sent, no receipt within the timeout
    CONFIRMED = "CONFIRMED"

    @property
    def submitted(self) -> bool:
        return self in (SubmissionOutcome.REVERTED, SubmissionOutcome.PENDING, SubmissionOutcome.CONFIRMED)


@dataclass
class InFlightEntry:
    """
    Attributes:
        key: Trigger key
        snapshot: Registry value seen when the trigger fired (executed flag
            for a sell, last buy timestamp for a buy)
        status: Current status
        tx_hash: Set once the transaction is sent
        created_at: Unix seconds when the guard was taken
    """
    key: TriggerKey
    snapshot: Any
    status: InFlightStatus = InFlightStatus.SIMULATING
    tx_hash: Optional[str] = None
    created_at: float = field(default_factory=time.time)


@dataclass(frozen=True)
class SubmissionResult:
    key: TriggerKey
    outcome: SubmissionOutcome
    tx_hash: Optional[str] = None
    reason: str = ""
