"""
Exception types raised by the relayer.

Per-strategy and per-trigger errors are caught by the strategy engine and
logged; only ConfigurationError is fatal, and only at startup.
"""


class RelayerError(Exception):
    """Base class for relayer errors."""


class ConfigurationError(RelayerError):
    """Missing or invalid process configuration."""


class ChainReadError(RelayerError):
    """RPC failure or malformed decode while reading registry/token state."""


class ValuationError(RelayerError):
    """A basket could not be valued (e.g. a constituent has no price)."""

    def __init__(self, message: str, basket: str = "", missing_tokens=()):
        super().__init__(message)
        self.basket = basket
        self.missing_tokens = tuple(missing_tokens)


class PriceFeedError(ValuationError):
    """The price feed request itself failed."""


class SimulateRevert(RelayerError):
    """The read-only dry run of a state-changing call reverted."""


class SubmissionFailure(RelayerError):
    """The real transaction was rejected by the network or reverted on-chain."""

    def __init__(self, message: str, tx_hash: str = ""):
        super().__init__(message)
        self.tx_hash = tx_hash
