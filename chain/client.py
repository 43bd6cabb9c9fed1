"""
Chain client for the MindfulProxy registry and ERC-20 / Chakra tokens.

web3.py is blocking, so every call runs in the default executor. Reads raise
ChainReadError; simulate raises SimulateRevert on revert; sends raise
SubmissionFailure.
"""
import asyncio
import logging
from functools import partial
from typing import Any, Callable, Dict, List, Optional, TypeVar

from eth_account import Account
from web3 import Web3
from web3.exceptions import ContractLogicError, TimeExhausted, TransactionNotFound

import config
from chain.abi import CHAKRA_ABI, ERC20_ABI, MINDFUL_PROXY_ABI
from chain.types import (
    BuyArgs,
    SellArgs,
    TxReceipt,
    decode_buy_strategy,
    decode_sell_strategy,
)
from errors import ChainReadError, SimulateRevert, SubmissionFailure
from state.strategies import BuyStrategy, SellStrategy

logger = logging.getLogger(__name__)

T = TypeVar("T")


class ChainClient:
    """
    Async facade over a web3 HTTP connection and the relayer's signing account.
    """

    def __init__(
        self,
        w3: Web3,
        account,
        registry_address: str,
        threshold_decimals: int = config.THRESHOLD_DECIMALS
    ):
        """
        Args:
            w3: Connected Web3 instance
            account: eth_account LocalAccount used to sign transactions
            registry_address: MindfulProxy address (also the allowance spender)
            threshold_decimals: Fixed-point precision of on-chain sell thresholds
        """
        self.w3 = w3
        self.account = account
        self.registry_address = Web3.to_checksum_address(registry_address)
        self.threshold_decimals = threshold_decimals
        self.registry = w3.eth.contract(address=self.registry_address, abi=MINDFUL_PROXY_ABI)

        # Token decimals never change
        self._decimals: Dict[str, int] = {}

    @classmethod
    def from_settings(cls, settings) -> "ChainClient":
        w3 = Web3(Web3.HTTPProvider(
            settings.rpc_url,
            request_kwargs={"timeout": config.RPC_REQUEST_TIMEOUT_SECONDS}
        ))
        account = Account.from_key(settings.private_key)
        return cls(w3, account, settings.registry_address)

    @property
    def signer_address(self) -> str:
        return self.account.address

    # =========================================================================
    # HELPERS
    # =========================================================================

    async def _run(self, fn: Callable[[], T]) -> T:
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(None, fn)

    async def _read(self, what: str, fn: Callable[[], T]) -> T:
        try:
            return await self._run(fn)
        except Exception as e:
            raise ChainReadError(f"{what} failed: {e}") from e

    def _token(self, address: str):
        return self.w3.eth.contract(address=Web3.to_checksum_address(address), abi=CHAKRA_ABI)

    # =========================================================================
    # READS
    # =========================================================================

    async def list_sell_strategies(self) -> List[SellStrategy]:
        raw = await self._read("getSellStrategies", self.registry.functions.getSellStrategies().call)
        return self._decode_each(
            "sell", raw, lambda r: decode_sell_strategy(r, self.threshold_decimals)
        )

    async def list_buy_strategies(self) -> List[BuyStrategy]:
        raw = await self._read("getBuyStrategies", self.registry.functions.getBuyStrategies().call)
        return self._decode_each("buy", raw, decode_buy_strategy)

    @staticmethod
    def _decode_each(side: str, raw, decode: Callable[[Any], T]) -> List[T]:
        """Decode registry structs one by one; a malformed entry is dropped, not fatal."""
        strategies = []
        for r in raw:
            try:
                strategies.append(decode(r))
            except ChainReadError as e:
                strategy_id = r[0] if isinstance(r, (list, tuple)) and r else "?"
                logger.warning(f"[CHAIN] Skipping {side} strategy {strategy_id}: {e}")
        return strategies

    async def basket_of(self, strategy_id: int) -> str:
        """
        Chakra address a strategy trades against.

        The registry keeps one strategy-id -> Chakra mapping, read through
        sellStrategyChakra for buy strategies as well.
        """
        fn = self.registry.functions.sellStrategyChakra(strategy_id)
        address = await self._read(f"sellStrategyChakra({strategy_id})", fn.call)
        return Web3.to_checksum_address(address)

    async def basket_manager(self, basket: str) -> str:
        fn = self.registry.functions.chakraManager(Web3.to_checksum_address(basket))
        address = await self._read(f"chakraManager({basket})", fn.call)
        return Web3.to_checksum_address(address)

    async def basket_tokens(self, basket: str) -> List[str]:
        fn = self._token(basket).functions.getTokens()
        tokens = await self._read(f"getTokens({basket})", fn.call)
        return [Web3.to_checksum_address(t) for t in tokens]

    async def token_balance(self, token: str, holder: str) -> int:
        fn = self._token(token).functions.balanceOf(Web3.to_checksum_address(holder))
        return int(await self._read(f"balanceOf({token}, {holder})", fn.call))

    async def token_decimals(self, token: str) -> int:
        key = Web3.to_checksum_address(token)
        if key not in self._decimals:
            fn = self._token(key).functions.decimals()
            self._decimals[key] = int(await self._read(f"decimals({token})", fn.call))
        return self._decimals[key]

    async def allowance(self, token: str, owner: str, spender: str) -> int:
        fn = self._token(token).functions.allowance(
            Web3.to_checksum_address(owner),
            Web3.to_checksum_address(spender)
        )
        return int(await self._read(f"allowance({token}, {owner}, {spender})", fn.call))

    async def pending_nonce(self) -> int:
        return await self._read(
            "getTransactionCount",
            partial(self.w3.eth.get_transaction_count, self.signer_address, "pending")
        )

    async def get_receipt(self, tx_hash: str) -> Optional[TxReceipt]:
        """Receipt for a mined transaction, or None while it is still pending."""
        def fetch():
            try:
                return self.w3.eth.get_transaction_receipt(tx_hash)
            except TransactionNotFound:
                return None

        receipt = await self._read(f"getTransactionReceipt({tx_hash})", fetch)
        return self._to_receipt(tx_hash, receipt) if receipt is not None else None

    async def wait_for_receipt(self, tx_hash: str, timeout: float) -> Optional[TxReceipt]:
        """Block until mined; None if it is not mined within timeout."""
        def wait():
            try:
                return self.w3.eth.wait_for_transaction_receipt(tx_hash, timeout=timeout)
            except TimeExhausted:
                return None

        receipt = await self._read(f"waitForTransactionReceipt({tx_hash})", wait)
        return self._to_receipt(tx_hash, receipt) if receipt is not None else None

    @staticmethod
    def _to_receipt(tx_hash: str, receipt) -> TxReceipt:
        return TxReceipt(
            tx_hash=tx_hash,
            status=int(receipt["status"]),
            block_number=receipt.get("blockNumber"),
            gas_used=receipt.get("gasUsed"),
        )

    # =========================================================================
    # WRITES
    # =========================================================================

    def _sell_fn(self, args: SellArgs):
        return self.registry.functions.fromChakra(args.to_struct())

    def _buy_fn(self, args: BuyArgs):
        return self.registry.functions.toChakra(*args.to_call_args())

    async def _simulate(self, what: str, fn) -> None:
        try:
            await self._run(partial(fn.call, {"from": self.signer_address}))
        except ContractLogicError as e:
            raise SimulateRevert(f"{what} reverted in dry run: {e}") from e
        except Exception as e:
            raise ChainReadError(f"{what} dry run failed: {e}") from e

    async def _send(self, what: str, fn, gas_limit: int, nonce: int) -> str:
        def build_sign_send():
            tx = fn.build_transaction({
                "from": self.signer_address,
                "nonce": nonce,
                "gas": gas_limit,
            })
            signed = self.account.sign_transaction(tx)
            return self.w3.eth.send_raw_transaction(signed.raw_transaction)

        try:
            tx_hash = await self._run(build_sign_send)
        except Exception as e:
            raise SubmissionFailure(f"{what} send failed (nonce={nonce}): {e}") from e
        return Web3.to_hex(tx_hash)

    async def simulate_sell(self, args: SellArgs) -> None:
        await self._simulate(f"fromChakra(strategy={args.strategy_id}, index={args.token_index})", self._sell_fn(args))

    async def send_sell(self, args: SellArgs, gas_limit: int, nonce: int) -> str:
        return await self._send(
            f"fromChakra(strategy={args.strategy_id}, index={args.token_index})",
            self._sell_fn(args), gas_limit, nonce
        )

    async def simulate_buy(self, args: BuyArgs) -> None:
        await self._simulate(f"toChakra(strategy={args.strategy_id})", self._buy_fn(args))

    async def send_buy(self, args: BuyArgs, gas_limit: int, nonce: int) -> str:
        return await self._send(f"toChakra(strategy={args.strategy_id})", self._buy_fn(args), gas_limit, nonce)
