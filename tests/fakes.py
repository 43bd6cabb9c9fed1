"""
In-memory stand-ins for the chain client and price feed.
"""
import asyncio
from collections import Counter
from decimal import Decimal

from web3 import Web3

from chain.types import TxReceipt
from errors import ChainReadError, SimulateRevert
from execution.inflight import InFlightGuard
from execution.submitter import TransactionSubmitter
from state.context import RelayerContext


def addr(n: int) -> str:
    """Deterministic checksummed address for tests."""
    return Web3.to_checksum_address(f"0x{n:040x}")


REGISTRY = addr(0xAAAA)
SIGNER = addr(0xBBBB)


class FakeChainClient:
    """
    Registry + token state held in dicts. Sends are recorded and mined
    immediately unless mine is False.
    """

    def __init__(self):
        self.registry_address = REGISTRY
        self.signer_address = SIGNER

        self.sell_strategies = []
        self.buy_strategies = []
        self.baskets = {}        # strategy_id -> basket
        self.managers = {}       # basket -> manager
        self.tokens = {}         # basket -> [token]
        self.balances = {}       # (token, holder) -> raw
        self.decimals = {}       # token -> decimals
        self.allowances = {}     # (token, owner, spender) -> raw

        self.nonce = 0
        self.mine = True
        self.receipt_status = 1
        self.receipts = {}

        self.read_errors = {}         # method name -> exception
        self.simulate_reverts = set()  # ("sell", id, index) / ("buy", id)
        self.send_error = None

        self.simulated = []
        self.sent = []
        self.calls = Counter()

        self.read_delay = 0.0
        self.active_reads = 0
        self.max_active_reads = 0

    def _check(self, method: str):
        self.calls[method] += 1
        error = self.read_errors.get(method)
        if error is not None:
            raise error

    # Reads

    async def list_sell_strategies(self):
        self._check("list_sell_strategies")
        return list(self.sell_strategies)

    async def list_buy_strategies(self):
        self._check("list_buy_strategies")
        return list(self.buy_strategies)

    async def basket_of(self, strategy_id):
        self._check("basket_of")
        try:
            return self.baskets[strategy_id]
        except KeyError:
            raise ChainReadError(f"no basket for strategy {strategy_id}")

    async def basket_manager(self, basket):
        self._check("basket_manager")
        return self.managers[basket]

    async def basket_tokens(self, basket):
        self._check("basket_tokens")
        return list(self.tokens.get(basket, []))

    async def token_balance(self, token, holder):
        self._check("token_balance")
        self.active_reads += 1
        self.max_active_reads = max(self.max_active_reads, self.active_reads)
        try:
            await asyncio.sleep(self.read_delay)
            return self.balances.get((token, holder), 0)
        finally:
            self.active_reads -= 1

    async def token_decimals(self, token):
        self._check("token_decimals")
        return self.decimals.get(token, 18)

    async def allowance(self, token, owner, spender):
        self._check("allowance")
        return self.allowances.get((token, owner, spender), 0)

    async def pending_nonce(self):
        self._check("pending_nonce")
        return self.nonce

    async def get_receipt(self, tx_hash):
        self._check("get_receipt")
        return self.receipts.get(tx_hash)

    async def wait_for_receipt(self, tx_hash, timeout):
        self._check("wait_for_receipt")
        return self.receipts.get(tx_hash)

    # Writes

    async def simulate_sell(self, args):
        self.simulated.append(("sell", args))
        if ("sell", args.strategy_id, args.token_index) in self.simulate_reverts:
            raise SimulateRevert(f"fromChakra({args.strategy_id}, {args.token_index}) reverted")

    async def simulate_buy(self, args):
        self.simulated.append(("buy", args))
        if ("buy", args.strategy_id) in self.simulate_reverts:
            raise SimulateRevert(f"toChakra({args.strategy_id}) reverted")

    async def _send(self, kind, args, gas_limit, nonce):
        # Yield so concurrent senders would interleave without the submit lock
        await asyncio.sleep(0)
        if self.send_error is not None:
            raise self.send_error
        tx_hash = f"0x{len(self.sent) + 1:064x}"
        self.sent.append((kind, args, gas_limit, nonce, tx_hash))
        if self.mine:
            self.mine_tx(tx_hash, self.receipt_status)
        return tx_hash

    def mine_tx(self, tx_hash, status=1):
        self.receipts[tx_hash] = TxReceipt(tx_hash=tx_hash, status=status, block_number=1, gas_used=21000)

    async def send_sell(self, args, gas_limit, nonce):
        return await self._send("sell", args, gas_limit, nonce)

    async def send_buy(self, args, gas_limit, nonce):
        return await self._send("buy", args, gas_limit, nonce)


class FakePriceFeed:
    def __init__(self, prices=None):
        self.prices = dict(prices or {})
        self.requests = []
        self.error = None

    async def get_usd_prices(self, tokens):
        tokens = list(tokens)
        self.requests.append(tokens)
        if self.error is not None:
            raise self.error
        return {t: Decimal(self.prices[t]) for t in tokens if t in self.prices}


class FakeClock:
    def __init__(self, now=0):
        self.now = now

    def __call__(self):
        return self.now


def make_context(chain=None, oracle=None, now=0, gas_limit=500_000, ttl=1800):
    chain = chain or FakeChainClient()
    oracle = oracle or FakePriceFeed()
    clock = FakeClock(now)
    guard = InFlightGuard(ttl_seconds=ttl, clock=clock)
    submitter = TransactionSubmitter(chain, guard, gas_limit=gas_limit, receipt_timeout=1)
    return RelayerContext(
        chain=chain,
        oracle=oracle,
        submitter=submitter,
        spender=REGISTRY,
        balance_concurrency=4,
        clock=clock,
    )
