"""
Token amount units.

On-chain amounts are integers in base units (wei-like); prices and
thresholds are per whole token. Convert before combining them.
"""
from decimal import Decimal, localcontext

# Enough digits for uint256 amounts times prices without rounding
PRECISION = 100


def to_whole_units(raw: int, decimals: int) -> Decimal:
    """Convert a base-unit integer amount to whole tokens."""
    if decimals < 0:
        raise ValueError(f"decimals must be non-negative, got {decimals}")
    with localcontext() as ctx:
        ctx.prec = PRECISION
        return Decimal(int(raw)).scaleb(-decimals)
