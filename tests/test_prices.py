from __future__ import annotations

from unittest.mock import MagicMock

import pytest

from conftest import BASE_CHAIN_ID, BASE_USDC, BASE_WETH
from defi_recon.errors import PriceNotFoundError, UnsupportedChainError
from defi_recon.prices import PriceResolver, resolve_price_override


class FakeClock:
    def __init__(self, now: float = 1_700_000_000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now


def _client(prices: dict[str, float]) -> MagicMock:
    client = MagicMock()
    client.fetch_prices.side_effect = lambda identifiers: {
        identifier: prices[identifier] for identifier in identifiers if identifier in prices
    }
    return client


WETH_ID = f"base:{BASE_WETH.lower()}"


@pytest.mark.asyncio
async def test_stable_symbol_skips_the_network():
    client = _client({})
    resolver = PriceResolver(client)

    price = await resolver.get_usd_price(BASE_CHAIN_ID, BASE_USDC, symbol="usdc")

    assert price == 1.0
    client.fetch_prices.assert_not_called()


@pytest.mark.asyncio
async def test_price_is_cached_until_ttl_expires():
    client = _client({WETH_ID: 3000.0})
    clock = FakeClock()
    resolver = PriceResolver(client, cache_ttl_ms=60_000, clock=clock)

    assert await resolver.get_usd_price(BASE_CHAIN_ID, BASE_WETH) == 3000.0
    clock.now += 30
    assert await resolver.get_usd_price(BASE_CHAIN_ID, BASE_WETH.lower()) == 3000.0
    assert client.fetch_prices.call_count == 1

    clock.now += 31
    await resolver.get_usd_price(BASE_CHAIN_ID, BASE_WETH)
    assert client.fetch_prices.call_count == 2


@pytest.mark.asyncio
async def test_skip_cache_forces_refetch():
    client = _client({WETH_ID: 3000.0})
    resolver = PriceResolver(client, clock=FakeClock())

    await resolver.get_usd_price(BASE_CHAIN_ID, BASE_WETH)
    await resolver.get_usd_price(BASE_CHAIN_ID, BASE_WETH, skip_cache=True)

    assert client.fetch_prices.call_count == 2


@pytest.mark.asyncio
async def test_unsupported_chain_raises():
    resolver = PriceResolver(_client({}))

    with pytest.raises(UnsupportedChainError, match="Unsupported chain 999"):
        await resolver.get_usd_price(999, BASE_WETH)


@pytest.mark.asyncio
async def test_missing_price_raises_and_is_not_cached():
    client = _client({})
    resolver = PriceResolver(client)

    for _ in range(2):
        with pytest.raises(PriceNotFoundError):
            await resolver.get_usd_price(BASE_CHAIN_ID, BASE_WETH)
    assert client.fetch_prices.call_count == 2


@pytest.mark.asyncio
async def test_address_required_for_volatile_tokens():
    resolver = PriceResolver(_client({}))

    with pytest.raises(ValueError, match="address is required"):
        await resolver.get_usd_price(BASE_CHAIN_ID, symbol="WETH")


def test_resolve_price_override_lookup_order():
    overrides = {"WETH": 3000.0, BASE_WETH.lower(): 2900.0, "0xABC": 5.0}

    assert resolve_price_override(overrides, "WETH", BASE_WETH) == 3000.0
    assert resolve_price_override(overrides, None, BASE_WETH) == 2900.0
    assert resolve_price_override(overrides, "CBETH", "0xABC") == 5.0
    assert resolve_price_override(overrides, "CBETH", "0xdef") is None
    assert resolve_price_override(None, "WETH", BASE_WETH) is None


@pytest.mark.asyncio
async def test_clear_cache_forces_refetch():
    client = _client({WETH_ID: 3000.0})
    resolver = PriceResolver(client, clock=FakeClock())

    await resolver.get_usd_price(BASE_CHAIN_ID, BASE_WETH)
    resolver.clear_cache()
    await resolver.get_usd_price(BASE_CHAIN_ID, BASE_WETH)

    assert client.fetch_prices.call_count == 2
