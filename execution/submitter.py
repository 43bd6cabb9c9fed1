"""
Transaction submitter - dry run, serialized send, confirmation.

Every state-changing call goes through here:
1. In-flight guard (skip if a previous attempt for the key is outstanding)
2. Simulate (eth_call with identical arguments; revert -> skip the send)
3. Send under a single lock that owns the signer's nonce
4. Wait a bounded time for the receipt

Nothing here writes executed flags; the registry does that when the
transaction succeeds.
"""
import asyncio
import logging
from typing import Awaitable, Callable

from chain.types import BuyArgs, SellArgs
from errors import ChainReadError, SimulateRevert, SubmissionFailure
from execution.inflight import InFlightGuard
from execution.nonce import NonceManager
from execution.tx_state import SubmissionOutcome, SubmissionResult, TriggerKey, format_key

logger = logging.getLogger(__name__)


class TransactionSubmitter:
    """
    Serializes all sends for the relayer's signing account.
    """

    def __init__(
        self,
        chain,
        guard: InFlightGuard,
        gas_limit: int,
        receipt_timeout: float
    ):
        """
        Args:
            chain: ChainClient (or a test double with the same methods)
            guard: Shared in-flight guard
            gas_limit: Explicit gas ceiling for every transaction
            receipt_timeout: Seconds to wait for a receipt before leaving the
                transaction pending for a later cycle
        """
        self.chain = chain
        self.guard = guard
        self.gas_limit = gas_limit
        self.receipt_timeout = receipt_timeout
        self.nonces = NonceManager(chain)

        # Only one nonce assignment + send at a time
        self._send_lock = asyncio.Lock()

    async def execute_sell(self, key: TriggerKey, args: SellArgs, snapshot) -> SubmissionResult:
        return await self._execute(
            key,
            simulate=lambda: self.chain.simulate_sell(args),
            send=lambda nonce: self.chain.send_sell(args, self.gas_limit, nonce),
            snapshot=snapshot,
        )

    async def execute_buy(self, key: TriggerKey, args: BuyArgs, snapshot) -> SubmissionResult:
        return await self._execute(
            key,
            simulate=lambda: self.chain.simulate_buy(args),
            send=lambda nonce: self.chain.send_buy(args, self.gas_limit, nonce),
            snapshot=snapshot,
        )

    async def _execute(
        self,
        key: TriggerKey,
        simulate: Callable[[], Awaitable[None]],
        send: Callable[[int], Awaitable[str]],
        snapshot
    ) -> SubmissionResult:
        label = format_key(key)

        if not self.guard.acquire(key, snapshot):
            entry = self.guard.get(key)
            reason = f"previous attempt still {entry.status.value.lower()}" if entry else "in flight"
            logger.info(f"[SUBMIT] {label} skipped: {reason} (tx={entry.tx_hash if entry else None})")
            return SubmissionResult(key, SubmissionOutcome.SKIPPED_IN_FLIGHT, reason=reason)

        # Phase 1: dry run
        try:
            await simulate()
        except (SimulateRevert, ChainReadError) as e:
            self.guard.release(key)
            logger.warning(f"[SUBMIT] {label} dry run failed, not sending: {e}")
            return SubmissionResult(key, SubmissionOutcome.SIMULATE_REVERTED, reason=str(e))

        # Phase 2: send (a failed send resyncs the nonce under the same lock)
        async with self._send_lock:
            try:
                nonce = await self.nonces.next_nonce()
                tx_hash = await send(nonce)
            except (SubmissionFailure, ChainReadError) as e:
                self.guard.release(key)
                logger.error(f"[SUBMIT] {label} submission failed: {e}")
                await self._resync_nonce()
                return SubmissionResult(key, SubmissionOutcome.FAILED, reason=str(e))

        self.guard.mark_submitted(key, tx_hash)
        logger.info(f"[SUBMIT] {label} sent tx={tx_hash} nonce={nonce} gas_limit={self.gas_limit}")

        # Phase 3: confirmation
        try:
            receipt = await self.chain.wait_for_receipt(tx_hash, self.receipt_timeout)
        except ChainReadError as e:
            logger.warning(f"[SUBMIT] {label} receipt check failed, will retry next cycle: {e}")
            return SubmissionResult(key, SubmissionOutcome.PENDING, tx_hash=tx_hash, reason=str(e))

        if receipt is None:
            logger.warning(f"[SUBMIT] {label} tx={tx_hash} not mined after {self.receipt_timeout:.0f}s, still pending")
            return SubmissionResult(key, SubmissionOutcome.PENDING, tx_hash=tx_hash)

        return self._apply_receipt(key, receipt)

    def _apply_receipt(self, key: TriggerKey, receipt) -> SubmissionResult:
        label = format_key(key)
        if receipt.succeeded:
            self.guard.mark_confirmed(key)
            logger.info(
                f"[SUBMIT] ✅ {label} confirmed tx={receipt.tx_hash} "
                f"block={receipt.block_number} gas_used={receipt.gas_used}"
            )
            return SubmissionResult(key, SubmissionOutcome.CONFIRMED, tx_hash=receipt.tx_hash)

        self.guard.release(key)
        error = SubmissionFailure(f"{label} reverted on-chain", tx_hash=receipt.tx_hash)
        logger.error(f"[SUBMIT] ❌ {error} tx={receipt.tx_hash} - will retry next cycle")
        return SubmissionResult(key, SubmissionOutcome.REVERTED, tx_hash=receipt.tx_hash, reason=str(error))

    async def _resync_nonce(self):
        try:
            await self.nonces.reset_from_chain()
        except ChainReadError as e:
            logger.warning(f"[NONCE] Resync failed: {e}")

    async def refresh_pending(self):
        """
        Poll receipts for transactions left pending by earlier cycles.
        Called at the start of every cycle. Stale guard entries are dropped
        first, including those of strategies that are no longer evaluated.
        """
        self.guard.sweep_expired()
        for entry in self.guard.submitted():
            try:
                receipt = await self.chain.get_receipt(entry.tx_hash)
            except ChainReadError as e:
                logger.warning(f"[SUBMIT] {format_key(entry.key)} receipt poll failed: {e}")
                continue
            if receipt is None:
                logger.info(f"[SUBMIT] {format_key(entry.key)} tx={entry.tx_hash} still pending")
                continue
            self._apply_receipt(entry.key, receipt)
