"""
Nonce assignment for the relayer's single signing account.
"""
import asyncio
import logging
from typing import Optional

logger = logging.getLogger(__name__)


class NonceManager:
    """
    Hands out strictly increasing nonces.

    Seeded from the chain's pending transaction count; if the chain is ahead
    of the local counter (e.g. a tx sent by another process) the chain wins.
    """

    def __init__(self, chain):
        self.chain = chain
        self._lock = asyncio.Lock()
        self._next_nonce: Optional[int] = None

    async def next_nonce(self) -> int:
        async with self._lock:
            chain_nonce = await self.chain.pending_nonce()
            if self._next_nonce is None or self._next_nonce < chain_nonce:
                self._next_nonce = chain_nonce
            nonce = self._next_nonce
            self._next_nonce += 1
            return nonce

    async def reset_from_chain(self):
        """Drop the local counter after a failed send."""
        async with self._lock:
            self._next_nonce = await self.chain.pending_nonce()
            logger.info(f"[NONCE] Resynced from chain: next={self._next_nonce}")
