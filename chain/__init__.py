"""
Chain access: the MindfulProxy registry, Chakra baskets and ERC-20 tokens.
"""
from chain.client import ChainClient
from chain.types import BuyArgs, SellArgs, TxReceipt

__all__ = [
    "ChainClient",
    "BuyArgs",
    "SellArgs",
    "TxReceipt",
]
