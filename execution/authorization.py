"""
Spending allowance check performed before any simulate/send.
"""
import logging
from dataclasses import dataclass
from decimal import Decimal
from enum import Enum

from state.units import to_whole_units

logger = logging.getLogger(__name__)


class AllowanceStatus(Enum):
    SUFFICIENT = "SUFFICIENT"
    INSUFFICIENT = "INSUFFICIENT"


@dataclass(frozen=True)
class AllowanceCheck:
    status: AllowanceStatus
    token: str
    owner: str
    spender: str
    allowance_whole: Decimal
    required_whole: Decimal

    @property
    def sufficient(self) -> bool:
        return self.status is AllowanceStatus.SUFFICIENT


async def check_allowance(
    chain,
    token: str,
    owner: str,
    spender: str,
    required_whole: Decimal,
    decimals: int
) -> AllowanceCheck:
    """
    Compare owner's allowance to spender against the required amount.

    Both sides are compared in whole-token units; the raw on-chain allowance
    is scaled by the token's decimals first.

    Raises:
        ChainReadError: if the allowance cannot be read
    """
    raw = await chain.allowance(token, owner, spender)
    allowance_whole = to_whole_units(raw, decimals)
    status = (
        AllowanceStatus.SUFFICIENT if allowance_whole >= required_whole
        else AllowanceStatus.INSUFFICIENT
    )
    logger.debug(
        f"[AUTH] {token} owner={owner} spender={spender} "
        f"allowance={allowance_whole} required={required_whole} -> {status.value}"
    )
    return AllowanceCheck(
        status=status,
        token=token,
        owner=owner,
        spender=spender,
        allowance_whole=allowance_whole,
        required_whole=required_whole,
    )
