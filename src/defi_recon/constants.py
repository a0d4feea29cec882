"""Chain, token and protocol constants."""

from typing import Optional, TypedDict


class WalletToken(TypedDict):
    symbol: str
    address: Optional[str]  # None for the native asset
    decimals: Optional[int]  # None to read decimals() from the contract


class ChainWalletTokens(TypedDict):
    """Wallet scan catalog for a single chain."""

    stable: list[WalletToken]
    assets: list[WalletToken]


class AaveReserve(TypedDict):
    symbol: str
    underlying: str
    a_token: str
    decimals: int


class CompoundMarket(TypedDict):
    name: str
    comet: str
    base_symbol: str
    base_underlying: str
    base_decimals: int


class PendleMarket(TypedDict):
    name: str
    address: str
    pt: str
    underlying: str
    underlying_symbol: str


ETH_ASSET = "0xEeeeeEeeeEeEeeEeEeEeeEEEeeeeEeeeeeeeEEeE"

# keccak256("Transfer(address,address,uint256)")
TRANSFER_TOPIC = "0xddf252ad1be2c89b69c2b068fc378daa952ba7f163c4a11628f55a4df523b3ef"

ETHERSCAN_API_V2_URL = "https://api.etherscan.io/v2/api"
DEFILLAMA_API_URL = "https://coins.llama.fi"

DEFAULT_PRICE_CACHE_TTL_MS = 60_000
DEFAULT_MAX_BLOCK_SPAN = 5_000
MIN_ENGINE_BLOCK_SPAN = 50
MIN_BLOCK_SPAN = 20
LOG_PAGE_SIZE = 1_000
USD_DECIMAL_PLACES = 6

DEFAULT_PROTOCOLS: tuple[str, ...] = ("aave", "compound", "pendle")

DEFAULT_STABLECOIN_SYMBOLS: frozenset[str] = frozenset(
    {
        "USDC",
        "USDT",
        "DAI",
        "USDBC",
        "USDP",
        "USDS",
        "PAX",
        "BUSD",
        "TUSD",
        "FRAX",
        "LUSD",
        "GUSD",
        "SUSD",
        "USD+",
        "YOUSD",
        "PYUSD",
        "USDE",
        "USDL",
        "USX",
        "USDD",
    }
)

# https://defillama.com/docs/api (coins endpoint chain keys)
DEFILLAMA_CHAIN_KEYS: dict[int, str] = {
    1: "ethereum",
    10: "optimism",
    56: "bsc",
    137: "polygon",
    8453: "base",
    42161: "arbitrum",
    43114: "avax",
    59144: "linea",
}

# Wrapped native token used to price the native balance of a chain
NATIVE_PRICE_ADDRESSES: dict[int, str] = {
    1: "0xC02aaA39b223FE8D0A0e5C4F27eAD9083C756Cc2",
    10: "0x4200000000000000000000000000000000000006",
    8453: "0x4200000000000000000000000000000000000006",
}

DEFAULT_RPC_URLS: dict[int, str] = {
    1: "https://eth.drpc.org",
    10: "https://mainnet.optimism.io",
    8453: "https://mainnet.base.org",
}

# Router and adapter contracts whose transfers are protocol plumbing rather
# than genuine wallet movements.
DEFAULT_TRANSFER_EXCLUSIONS: dict[str, list[str]] = {
    "global": [
        "0xd4F480965D2347d421F1bEC7F545682E5Ec2151D",  # Pendle router (Base)
        "0x888888888889758F76e7103c6CbF23ABbF58F946",  # Pendle reward distributor
        "0xA238Dd80C259a72e81d7e4664a9801593F98d1c5",  # Aave pool (Base)
    ],
}

PORTFOLIO_TOKENS: dict[int, ChainWalletTokens] = {
    1: {
        "stable": [
            {
                "symbol": "USDC",
                "address": "0xA0b86991c6218b36c1d19D4a2e9Eb0cE3606eB48",
                "decimals": 6,
            },
            {
                "symbol": "USDT",
                "address": "0xdAC17F958D2ee523a2206206994597C13D831ec7",
                "decimals": 6,
            },
            {
                "symbol": "DAI",
                "address": "0x6B175474E89094C44Da98b954EedeAC495271d0F",
                "decimals": 18,
            },
        ],
        "assets": [
            {"symbol": "ETH", "address": None, "decimals": 18},
            {
                "symbol": "WETH",
                "address": "0xC02aaA39b223FE8D0A0e5C4F27eAD9083C756Cc2",
                "decimals": 18,
            },
            {
                "symbol": "WBTC",
                "address": "0x2260FAC5E5542a773Aa44fBCfeDf7C193bc2C599",
                "decimals": 8,
            },
            {
                "symbol": "WSTETH",
                "address": "0x7f39C581F595B53c5cbAd5aBdcBAc420B74A6c6C",
                "decimals": 18,
            },
        ],
    },
    10: {
        "stable": [
            {
                "symbol": "USDC",
                "address": "0x7F5c764cBc14f9669B88837ca1490cCa17c31607",
                "decimals": 6,
            },
            {
                "symbol": "USDT",
                "address": "0x94b008aA00579c1307B0EF2c499aD98a8ce58e58",
                "decimals": 6,
            },
            {
                "symbol": "DAI",
                "address": "0xda10009cBd5D07dd0CeCc66161FC93D7c9000da1",
                "decimals": 18,
            },
        ],
        "assets": [
            {"symbol": "ETH", "address": None, "decimals": 18},
            {
                "symbol": "WETH",
                "address": "0x4200000000000000000000000000000000000006",
                "decimals": 18,
            },
            {
                "symbol": "WBTC",
                "address": "0x68f180fcCe6836688e9084f035309E29Bf0A2095",
                "decimals": 8,
            },
            {
                "symbol": "OP",
                "address": "0x4200000000000000000000000000000000000042",
                "decimals": 18,
            },
        ],
    },
    8453: {
        "stable": [
            {
                "symbol": "USDC",
                "address": "0x833589fCD6eDb6E08f4c7C32D4f71b54bdA02913",
                "decimals": 6,
            },
            {
                "symbol": "USDBC",
                "address": "0xd9aAEc86B65D86f6A7B5B1b0c42FFA531710b6CA",
                "decimals": 6,
            },
        ],
        "assets": [
            {"symbol": "ETH", "address": None, "decimals": 18},
            {
                "symbol": "WETH",
                "address": "0x4200000000000000000000000000000000000006",
                "decimals": 18,
            },
            {
                "symbol": "CBETH",
                "address": "0x2Ae3F1Ec7F1F5012CFEab0185bfc7aa3cf0DEc22",
                "decimals": 18,
            },
            {
                "symbol": "CBBTC",
                "address": "0xcbB7C0000aB88B473b1f5aFd9ef808440eed33Bf",
                "decimals": 8,
            },
            {
                "symbol": "WSTETH",
                "address": "0xc1CBa3fCea344f92D9239c08C0568f6F2F0ee452",
                "decimals": 18,
            },
        ],
    },
}

AAVE_RESERVES: dict[int, list[AaveReserve]] = {
    8453: [
        {
            "symbol": "USDC",
            "underlying": "0x833589fCD6eDb6E08f4c7C32D4f71b54bdA02913",
            "a_token": "0x4e65fE4DbA92790696d040ac24Aa414708F5c0AB",
            "decimals": 6,
        },
    ],
}

COMPOUND_MARKETS: dict[int, list[CompoundMarket]] = {
    8453: [
        {
            "name": "usdc",
            "comet": "0xb125E6687d4313864e53df431d5425969c15Eb2F",
            "base_symbol": "USDC",
            "base_underlying": "0x833589fCD6eDb6E08f4c7C32D4f71b54bdA02913",
            "base_decimals": 6,
        },
        {
            "name": "usdbc",
            "comet": "0x9c4ec768c28520B50860ea7a15bd7213a9fF58bf",
            "base_symbol": "USDBC",
            "base_underlying": "0xd9aAEc86B65D86f6A7B5B1b0c42FFA531710b6CA",
            "base_decimals": 6,
        },
        {
            "name": "weth",
            "comet": "0x46e6B241b524310239732D51387075E0e70970bf",
            "base_symbol": "WETH",
            "base_underlying": "0x4200000000000000000000000000000000000006",
            "base_decimals": 18,
        },
    ],
}

PENDLE_MARKETS: dict[int, list[PendleMarket]] = {
    8453: [
        {
            "name": "yoUSD-Base",
            "address": "0x44e2b05b2c17a12b37f11de18000922e64e23faa",
            "pt": "0xb04cee9901c0a8d783fe280ded66e60c13a4e296",
            "underlying": "0x0000000f2eb9f69274678c76222b35eec7588a65",
            "underlying_symbol": "YOUSD",
        },
        {
            "name": "USDe-Base 11 Dec 2025",
            "address": "0x8991847176b1d187e403dd92a4e55fc8d7684538",
            "pt": "0x194b8fed256c02ef1036ed812cae0c659ee6f7fd",
            "underlying": "0x5d3a1ff2b6bab83b63cd9ad0787074081a52ef34",
            "underlying_symbol": "USDE",
        },
    ],
}
