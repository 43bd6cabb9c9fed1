import unittest
from unittest.mock import MagicMock

from eth_account import Account
from web3.exceptions import ContractLogicError, TransactionNotFound

from chain.client import ChainClient
from chain.types import SellArgs
from errors import ChainReadError, SimulateRevert, SubmissionFailure
from tests.fakes import REGISTRY, addr

KEY = "0x" + "22" * 32
BASKET = addr(0x100)
TOKEN = addr(0x10)


class TestChainClient(unittest.IsolatedAsyncioTestCase):
    def setUp(self):
        self.w3 = MagicMock()
        self.account = Account.from_key(KEY)
        self.client = ChainClient(self.w3, self.account, REGISTRY.lower())
        self.registry = self.client.registry
        self.token = self.w3.eth.contract.return_value
        self.args = SellArgs(basket=BASKET, sell_token=TOKEN, strategy_id=1, token_index=0)

    async def test_registry_address_checksummed(self):
        self.assertEqual(self.client.registry_address, REGISTRY)

    async def test_decimals_cached(self):
        self.token.functions.decimals.return_value.call.return_value = 6

        self.assertEqual(await self.client.token_decimals(TOKEN), 6)
        self.assertEqual(await self.client.token_decimals(TOKEN.lower()), 6)
        self.assertEqual(self.token.functions.decimals.return_value.call.call_count, 1)

    async def test_read_failure_wrapped(self):
        self.token.functions.balanceOf.return_value.call.side_effect = ConnectionError("reset")
        with self.assertRaises(ChainReadError):
            await self.client.token_balance(TOKEN, BASKET)

    async def test_sell_strategies_decoded(self):
        self.registry.functions.getSellStrategies.return_value.call.return_value = [
            (1, [TOKEN], [1000 * 10**18], [False], True),
        ]
        strategies = await self.client.list_sell_strategies()
        self.assertEqual(len(strategies), 1)
        self.assertEqual(strategies[0].thresholds_usd[0], 1000)

    async def test_malformed_strategy_does_not_hide_the_others(self):
        self.registry.functions.getSellStrategies.return_value.call.return_value = [
            (1, [TOKEN], [1000 * 10**18], [False], True),
            (2, [TOKEN, TOKEN], [1], [False, False], True),
            (3, [TOKEN], [2000 * 10**18], [False], True),
        ]
        strategies = await self.client.list_sell_strategies()
        self.assertEqual([s.strategy_id for s in strategies], [1, 3])

    async def test_malformed_buy_strategy_skipped(self):
        self.registry.functions.getBuyStrategies.return_value.call.return_value = [
            (4, "not-an-address", 1, 60, 0, True),
            (5, TOKEN, 10**18, 60, 0, True),
        ]
        strategies = await self.client.list_buy_strategies()
        self.assertEqual([s.strategy_id for s in strategies], [5])

    async def test_basket_lookup_uses_strategy_chakra_mapping(self):
        self.registry.functions.sellStrategyChakra.return_value.call.return_value = BASKET.lower()

        self.assertEqual(await self.client.basket_of(7), BASKET)
        self.registry.functions.sellStrategyChakra.assert_called_with(7)

    async def test_unknown_receipt_is_pending(self):
        self.w3.eth.get_transaction_receipt.side_effect = TransactionNotFound("not found")
        self.assertIsNone(await self.client.get_receipt("0xabc"))

    async def test_receipt_mapped(self):
        self.w3.eth.get_transaction_receipt.return_value = {"status": 1, "blockNumber": 9, "gasUsed": 50_000}
        receipt = await self.client.get_receipt("0xabc")
        self.assertTrue(receipt.succeeded)
        self.assertEqual(receipt.block_number, 9)

    async def test_simulate_revert(self):
        self.registry.functions.fromChakra.return_value.call.side_effect = ContractLogicError("execution reverted")
        with self.assertRaises(SimulateRevert):
            await self.client.simulate_sell(self.args)

    async def test_simulate_uses_signer_as_sender(self):
        await self.client.simulate_sell(self.args)
        self.registry.functions.fromChakra.assert_called_with(self.args.to_struct())
        self.registry.functions.fromChakra.return_value.call.assert_called_with(
            {"from": self.account.address}
        )

    async def test_send_sets_nonce_and_gas(self):
        fn = self.registry.functions.fromChakra.return_value
        fn.build_transaction.return_value = {
            "to": REGISTRY,
            "from": self.account.address,
            "nonce": 4,
            "gas": 500_000,
            "gasPrice": 10**9,
            "value": 0,
            "data": "0x",
            "chainId": 1,
        }
        self.w3.eth.send_raw_transaction.return_value = b"\x12" * 32

        tx_hash = await self.client.send_sell(self.args, gas_limit=500_000, nonce=4)

        fn.build_transaction.assert_called_with({"from": self.account.address, "nonce": 4, "gas": 500_000})
        self.assertEqual(tx_hash, "0x" + "12" * 32)

    async def test_send_rejection(self):
        fn = self.registry.functions.fromChakra.return_value
        fn.build_transaction.side_effect = ValueError("nonce too low")
        with self.assertRaises(SubmissionFailure):
            await self.client.send_sell(self.args, gas_limit=500_000, nonce=4)


if __name__ == '__main__':
    unittest.main()
