"""
Minimal ABI fragments for the calls the relayer makes.
"""

_SELL_STRATEGY_COMPONENTS = [
    {"name": "sellStrategyId", "type": "uint256"},
    {"name": "sellTokens", "type": "address[]"},
    {"name": "prices", "type": "uint256[]"},
    {"name": "isExecuted", "type": "bool[]"},
    {"name": "isActive", "type": "bool"},
]

_BUY_STRATEGY_COMPONENTS = [
    {"name": "buyStrategyId", "type": "uint256"},
    {"name": "buyToken", "type": "address"},
    {"name": "buyAmount", "type": "uint256"},
    {"name": "interBuyDelay", "type": "uint256"},
    {"name": "lastBuyTimestamp", "type": "uint256"},
    {"name": "isActive", "type": "bool"},
]

_FROM_CHAKRA_COMPONENTS = [
    {"name": "_chakra", "type": "address"},
    {"name": "_sellToken", "type": "address"},
    {"name": "_sellStrategyId", "type": "uint256"},
    {"name": "_sellTokenIndex", "type": "uint256"},
    {"name": "_poolAmount", "type": "uint256"},
    {"name": "_minQuoteToken", "type": "uint256"},
]


def _view(name, inputs, outputs):
    return {
        "type": "function",
        "name": name,
        "stateMutability": "view",
        "inputs": inputs,
        "outputs": outputs,
    }


MINDFUL_PROXY_ABI = [
    _view("getSellStrategies", [], [
        {"name": "", "type": "tuple[]", "components": _SELL_STRATEGY_COMPONENTS},
    ]),
    _view("getBuyStrategies", [], [
        {"name": "", "type": "tuple[]", "components": _BUY_STRATEGY_COMPONENTS},
    ]),
    _view("sellStrategyChakra", [{"name": "", "type": "uint256"}], [{"name": "", "type": "address"}]),
    _view("chakraManager", [{"name": "", "type": "address"}], [{"name": "", "type": "address"}]),
    {
        "type": "function",
        "name": "fromChakra",
        "stateMutability": "nonpayable",
        "inputs": [{"name": "arg", "type": "tuple", "components": _FROM_CHAKRA_COMPONENTS}],
        "outputs": [],
    },
    {
        "type": "function",
        "name": "toChakra",
        "stateMutability": "nonpayable",
        "inputs": [
            {"name": "_chakra", "type": "address"},
            {"name": "_buyToken", "type": "address"},
            {"name": "_poolAmount", "type": "uint256"},
            {"name": "_buyAmount", "type": "uint256"},
            {"name": "_buyStrategyId", "type": "uint256"},
        ],
        "outputs": [],
    },
]

ERC20_ABI = [
    _view("balanceOf", [{"name": "owner", "type": "address"}], [{"name": "", "type": "uint256"}]),
    _view("decimals", [], [{"name": "", "type": "uint8"}]),
    _view("allowance", [
        {"name": "owner", "type": "address"},
        {"name": "spender", "type": "address"},
    ], [{"name": "", "type": "uint256"}]),
]

# A Chakra is an ERC-20 that also reports its constituents
CHAKRA_ABI = ERC20_ABI + [
    _view("getTokens", [], [{"name": "", "type": "address[]"}]),
]
