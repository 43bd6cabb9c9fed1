"""
Configuration constants for the relayer.
"""
import os
from dataclasses import dataclass
from typing import Mapping, Optional

from web3 import Web3

from errors import ConfigurationError

# Polling
POLL_INTERVAL_SECONDS = 60  # One evaluation cycle per tick

# Concurrency limits (protect the shared RPC connection)
BALANCE_CONCURRENCY = 8   # Parallel balance/decimals reads per basket
STRATEGY_CONCURRENCY = 4  # Strategies evaluated in parallel per cycle

# Execution Constants
GAS_LIMIT = 3_000_000           # Gas ceiling for fromChakra / toChakra
RECEIPT_TIMEOUT_SECONDS = 120   # How long a cycle waits for a receipt
INFLIGHT_TTL_SECONDS = 1800     # Release a stuck in-flight marker after this

# Registry thresholds are stored as 18-decimal fixed point USD
THRESHOLD_DECIMALS = 18

# Price feed
COINGECKO_API_BASE = "https://api.coingecko.com/api/v3"
COINGECKO_PLATFORM = "ethereum"
PRICE_REQUEST_TIMEOUT_SECONDS = 10

# RPC
RPC_REQUEST_TIMEOUT_SECONDS = 30
INFURA_URL_TEMPLATE = "https://{network}.infura.io/v3/{key}"

# Logging
LOG_DIR = "logs"


@dataclass(frozen=True)
class RelayerSettings:
    """Process settings resolved once at startup."""
    rpc_url: str
    private_key: str
    registry_address: str
    coingecko_api_key: Optional[str] = None
    poll_interval: int = POLL_INTERVAL_SECONDS
    gas_limit: int = GAS_LIMIT


def _int_setting(env: Mapping[str, str], name: str, default: int) -> int:
    raw = env.get(name)
    if raw is None or raw == "":
        return default
    try:
        value = int(raw)
    except ValueError:
        raise ConfigurationError(f"{name} must be an integer, got {raw!r}")
    if value <= 0:
        raise ConfigurationError(f"{name} must be positive, got {value}")
    return value


def load_settings(environ: Optional[Mapping[str, str]] = None) -> RelayerSettings:
    """
    Build settings from the environment.

    Raises:
        ConfigurationError: if the node endpoint, signing key or registry
            address is missing or malformed.
    """
    env = os.environ if environ is None else environ

    rpc_url = env.get("RPC_URL")
    if not rpc_url and env.get("INFURA_KEY"):
        rpc_url = INFURA_URL_TEMPLATE.format(
            network=env.get("INFURA_NETWORK", "mainnet"),
            key=env["INFURA_KEY"]
        )
    if not rpc_url:
        raise ConfigurationError("RPC_URL (or INFURA_KEY) environment variable not set")

    private_key = env.get("PRIVATE_KEY")
    if not private_key:
        raise ConfigurationError("PRIVATE_KEY environment variable not set")

    registry = env.get("REGISTRY_ADDRESS") or env.get("MINDFUL_PROXY_ADDRESS")
    if not registry:
        raise ConfigurationError("REGISTRY_ADDRESS environment variable not set")
    if not Web3.is_address(registry):
        raise ConfigurationError(f"REGISTRY_ADDRESS is not a valid address: {registry}")

    return RelayerSettings(
        rpc_url=rpc_url,
        private_key=private_key,
        registry_address=Web3.to_checksum_address(registry),
        coingecko_api_key=env.get("COINGECKO_API_KEY") or None,
        poll_interval=_int_setting(env, "POLL_INTERVAL_SECONDS", POLL_INTERVAL_SECONDS),
        gas_limit=_int_setting(env, "GAS_LIMIT", GAS_LIMIT),
    )
