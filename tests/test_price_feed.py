import unittest
from decimal import Decimal

import aiohttp
from aiohttp import web
from aiohttp.test_utils import TestServer

from errors import PriceFeedError, ValuationError
from ingestion.price_feed import PriceFeedClient, parse_price_response
from tests.fakes import addr

TOKEN_A = addr(0xA)
TOKEN_B = addr(0xB)


class TestParsePriceResponse(unittest.TestCase):
    def test_matches_lowercased_keys(self):
        payload = {TOKEN_A.lower(): {"usd": Decimal("1.25")}}
        self.assertEqual(parse_price_response([TOKEN_A], payload), {TOKEN_A: Decimal("1.25")})

    def test_missing_entries_are_absent_not_zero(self):
        payload = {TOKEN_A.lower(): {"usd": 2}, TOKEN_B.lower(): {}}
        prices = parse_price_response([TOKEN_A, TOKEN_B], payload)
        self.assertEqual(prices, {TOKEN_A: Decimal(2)})


class TestPriceFeedClient(unittest.IsolatedAsyncioTestCase):
    async def asyncSetUp(self):
        self.requests = []
        self.status = 200

        async def handler(request):
            self.requests.append(request)
            if self.status != 200:
                return web.Response(status=self.status, text="rate limited")
            # Raw body so the 18-digit price is not rounded through a float
            body = (
                f'{{"{TOKEN_A.lower()}": {{"usd": 0.123456789012345678}}, '
                f'"{TOKEN_B.lower()}": {{"usd": 20}}}}'
            )
            return web.Response(text=body, content_type="application/json")

        app = web.Application()
        app.router.add_get("/simple/token_price/ethereum", handler)
        self.server = TestServer(app)
        await self.server.start_server()
        self.session = aiohttp.ClientSession()
        self.client = PriceFeedClient(
            self.session,
            api_key="demo-key",
            base_url=str(self.server.make_url("/")),
        )

    async def asyncTearDown(self):
        await self.session.close()
        await self.server.close()

    async def test_single_request_for_all_tokens(self):
        prices = await self.client.get_usd_prices([TOKEN_A, TOKEN_B, TOKEN_A])

        self.assertEqual(len(self.requests), 1)
        request = self.requests[0]
        self.assertEqual(
            set(request.query["contract_addresses"].split(",")),
            {TOKEN_A.lower(), TOKEN_B.lower()},
        )
        self.assertEqual(request.query["vs_currencies"], "usd")
        self.assertEqual(request.headers["x-cg-demo-api-key"], "demo-key")
        self.assertEqual(prices[TOKEN_B], Decimal(20))

    async def test_prices_parsed_as_decimal(self):
        prices = await self.client.get_usd_prices([TOKEN_A])
        self.assertIsInstance(prices[TOKEN_A], Decimal)
        self.assertEqual(prices[TOKEN_A], Decimal("0.123456789012345678"))

    async def test_http_error_raises(self):
        self.status = 429
        with self.assertRaises(PriceFeedError) as ctx:
            await self.client.get_usd_prices([TOKEN_A])
        self.assertIsInstance(ctx.exception, ValuationError)

    async def test_empty_token_set_makes_no_request(self):
        self.assertEqual(await self.client.get_usd_prices([]), {})
        self.assertEqual(self.requests, [])


if __name__ == '__main__':
    unittest.main()
