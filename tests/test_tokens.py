from __future__ import annotations

from unittest.mock import MagicMock

import pytest

from conftest import BASE_CHAIN_ID, BASE_USDC, BASE_WETH, FakeRpc
from defi_recon.models import TokenCandidate, TokenRole
from defi_recon.settings import ReconSettings
from defi_recon.tokens import StableRegistry, TokenMetadataResolver

UNKNOWN_TOKEN = "0x9999999999999999999999999999999999999999"


def _token_web3(decimals=None, symbol="TKN") -> MagicMock:
    w3 = MagicMock()
    w3.to_checksum_address.side_effect = lambda address: address
    contract = MagicMock()
    if isinstance(decimals, BaseException):
        contract.functions.decimals.return_value.call.side_effect = decimals
    else:
        contract.functions.decimals.return_value.call.return_value = decimals
    if isinstance(symbol, BaseException):
        contract.functions.symbol.return_value.call.side_effect = symbol
    else:
        contract.functions.symbol.return_value.call.return_value = symbol
    w3.eth.contract.return_value = contract
    return w3


class TestStableRegistry:
    def test_default_symbols_are_stable(self):
        registry = StableRegistry()
        assert registry.is_stable("usdc", None, 1)
        assert registry.is_stable("yoUSD", None, 1)
        assert not registry.is_stable("WETH", BASE_WETH, 1)

    def test_address_allow_list_is_per_chain(self):
        registry = StableRegistry(stable_token_map={10: [UNKNOWN_TOKEN.upper()]})
        assert registry.is_stable(None, UNKNOWN_TOKEN, 10)
        assert not registry.is_stable(None, UNKNOWN_TOKEN, 1)

    def test_custom_lists_widen_a_single_call(self):
        registry = StableRegistry()
        assert registry.is_stable("GHO", None, 1, custom_symbols=["gho"])
        assert registry.is_stable(None, UNKNOWN_TOKEN, 1, custom_addresses=[UNKNOWN_TOKEN])
        assert not registry.is_stable("GHO", None, 1)

    def test_from_settings_includes_wallet_stables_and_extras(self):
        registry = StableRegistry.from_settings(
            ReconSettings(extra_stable_symbols=["gho"])
        )
        assert registry.is_stable("GHO", None, 1)
        assert BASE_USDC.lower() in registry.stable_addresses(BASE_CHAIN_ID)
        assert registry.role_of("CBETH", None, BASE_CHAIN_ID) is TokenRole.VOLATILE


@pytest.mark.asyncio
async def test_trusted_metadata_skips_contract_reads():
    rpc = FakeRpc(_token_web3(decimals=6))
    resolver = TokenMetadataResolver(rpc, StableRegistry())

    info = await resolver.resolve(
        BASE_CHAIN_ID, TokenCandidate(address=BASE_USDC, symbol="usdc", decimals=6)
    )

    assert info.address == BASE_USDC.lower()
    assert info.symbol == "USDC"
    assert info.decimals == 6
    assert info.role is TokenRole.STABLE
    assert rpc.calls == 0


@pytest.mark.asyncio
async def test_missing_metadata_is_read_and_cached():
    rpc = FakeRpc(_token_web3(decimals=8, symbol="cbBTC"))
    resolver = TokenMetadataResolver(rpc)

    first = await resolver.resolve(BASE_CHAIN_ID, TokenCandidate(address=UNKNOWN_TOKEN))
    second = await resolver.resolve(BASE_CHAIN_ID, TokenCandidate(address=UNKNOWN_TOKEN))

    assert first == second
    assert first.symbol == "CBBTC"
    assert first.decimals == 8
    assert rpc.calls == 2


@pytest.mark.asyncio
async def test_decimals_failure_falls_back_to_18():
    rpc = FakeRpc(_token_web3(decimals=ValueError("execution reverted"), symbol="odd"))
    resolver = TokenMetadataResolver(rpc)

    info = await resolver.resolve(BASE_CHAIN_ID, TokenCandidate(address=UNKNOWN_TOKEN))

    assert info.decimals == 18
    assert info.symbol == "ODD"


@pytest.mark.asyncio
async def test_role_is_recomputed_for_cached_metadata():
    rpc = FakeRpc(_token_web3(decimals=18, symbol="GHO"))
    registry = StableRegistry()
    resolver = TokenMetadataResolver(rpc, registry)

    before = await resolver.resolve(1, TokenCandidate(address=UNKNOWN_TOKEN))
    registry._symbols.add("GHO")
    after = await resolver.resolve(1, TokenCandidate(address=UNKNOWN_TOKEN))

    assert before.role is TokenRole.VOLATILE
    assert after.role is TokenRole.STABLE


@pytest.mark.asyncio
async def test_invalid_address_is_skipped():
    resolver = TokenMetadataResolver(FakeRpc(None))

    assert await resolver.resolve(1, TokenCandidate(address="not-an-address")) is None
    infos = await resolver.resolve_many(
        1,
        [
            TokenCandidate(address="nope"),
            TokenCandidate(address=UNKNOWN_TOKEN, symbol="abc"),
        ],
    )
    assert [info.symbol for info in infos] == ["ABC"]
    assert infos[0].decimals == 18
