import unittest

from web3 import Web3

import config
from errors import ConfigurationError

REGISTRY = "0x000000000000000000000000000000000000aaaa"
KEY = "0x" + "11" * 32


class TestLoadSettings(unittest.TestCase):
    def base_env(self, **overrides):
        env = {"RPC_URL": "http://localhost:8545", "PRIVATE_KEY": KEY, "REGISTRY_ADDRESS": REGISTRY}
        env.update(overrides)
        return env

    def test_defaults(self):
        settings = config.load_settings(self.base_env())
        self.assertEqual(settings.rpc_url, "http://localhost:8545")
        self.assertEqual(settings.registry_address, Web3.to_checksum_address(REGISTRY))
        self.assertEqual(settings.poll_interval, config.POLL_INTERVAL_SECONDS)
        self.assertEqual(settings.gas_limit, config.GAS_LIMIT)
        self.assertIsNone(settings.coingecko_api_key)

    def test_infura_fallback(self):
        env = self.base_env(INFURA_KEY="abc", INFURA_NETWORK="sepolia")
        del env["RPC_URL"]
        settings = config.load_settings(env)
        self.assertEqual(settings.rpc_url, "https://sepolia.infura.io/v3/abc")

    def test_overrides(self):
        settings = config.load_settings(self.base_env(POLL_INTERVAL_SECONDS="15", GAS_LIMIT="800000"))
        self.assertEqual(settings.poll_interval, 15)
        self.assertEqual(settings.gas_limit, 800_000)

    def test_missing_key(self):
        env = self.base_env()
        del env["PRIVATE_KEY"]
        with self.assertRaises(ConfigurationError):
            config.load_settings(env)

    def test_missing_rpc(self):
        env = self.base_env()
        del env["RPC_URL"]
        with self.assertRaises(ConfigurationError):
            config.load_settings(env)

    def test_bad_registry(self):
        with self.assertRaises(ConfigurationError):
            config.load_settings(self.base_env(REGISTRY_ADDRESS="0x123"))

    def test_bad_integer(self):
        with self.assertRaises(ConfigurationError):
            config.load_settings(self.base_env(GAS_LIMIT="lots"))
        with self.assertRaises(ConfigurationError):
            config.load_settings(self.base_env(POLL_INTERVAL_SECONDS="0"))


if __name__ == '__main__':
    unittest.main()
