from __future__ import annotations

from typing import Any
from unittest.mock import MagicMock

import pytest

from defi_recon.amount import Amount
from defi_recon.models import TokenInfo, TransferLogEntry

BASE_CHAIN_ID = 8453
BASE_USDC = "0x833589fCD6eDb6E08f4c7C32D4f71b54bdA02913"
BASE_WETH = "0x4200000000000000000000000000000000000006"

ALICE = "0x1111111111111111111111111111111111111111"
BOB = "0x2222222222222222222222222222222222222222"
CAROL = "0x3333333333333333333333333333333333333333"


@pytest.fixture(autouse=True)
def isolated_env(tmp_path, monkeypatch):
    """Keep the developer's config file and env out of ReconSettings."""
    monkeypatch.setenv("DEFI_RECON_CONFIG", str(tmp_path / "absent.toml"))
    for name in (
        "DEFI_RECON_ETHERSCAN_API_KEY",
        "DEFI_RECON_DEFAULT_CHAIN_ID",
        "DEFI_RECON_DEFAULT_ACCOUNT",
        "DEFI_RECON_MAX_BLOCK_SPAN",
        "DEFI_RECON_LOG_LEVEL",
    ):
        monkeypatch.delenv(name, raising=False)


class FakeRpc:
    """RpcPool stand-in: runs the call inline and hands out one mocked Web3."""

    def __init__(self, w3: Any = None):
        self.w3 = w3
        self.calls = 0

    def has_rpc(self, chain_id: int) -> bool:
        return self.w3 is not None

    def web3_for(self, chain_id: int):
        return self.w3

    def web3_required(self, chain_id: int):
        if self.w3 is None:
            from defi_recon.errors import ConfigurationError

            raise ConfigurationError(f"No RPC URL configured for chain {chain_id}")
        return self.w3

    async def call(self, fn, *args, **kwargs):
        self.calls += 1
        return fn(*args, **kwargs)


def make_web3(
    balances: dict[str, Any],
    native_balance: int = 0,
    decimals: dict[str, Any] | None = None,
) -> MagicMock:
    """Mocked Web3 whose contracts answer ``balanceOf`` from ``balances``
    and ``decimals`` from ``decimals`` (default 18).

    A value that is an exception instance is raised instead of returned.
    """
    w3 = MagicMock()
    w3.to_checksum_address.side_effect = lambda address: address
    w3.eth.get_balance.return_value = native_balance

    def contract(address: str, abi: Any):
        instance = MagicMock()
        value = balances.get(address.lower(), 0)

        def balance_of(_owner):
            call = MagicMock()
            if isinstance(value, BaseException):
                call.call.side_effect = value
            else:
                call.call.return_value = value
            return call

        instance.functions.balanceOf.side_effect = balance_of

        token_decimals = (decimals or {}).get(address.lower(), 18)
        if isinstance(token_decimals, BaseException):
            instance.functions.decimals.return_value.call.side_effect = token_decimals
        else:
            instance.functions.decimals.return_value.call.return_value = token_decimals
        return instance

    w3.eth.contract.side_effect = contract
    return w3


class FakePriceResolver:
    def __init__(self, prices: dict[str, float] | None = None):
        self.prices = {k.lower(): v for k, v in (prices or {}).items()}
        self.requests: list[tuple[int, str | None, str | None]] = []

    async def get_usd_price(self, chain_id, address=None, symbol=None, skip_cache=False):
        self.requests.append((chain_id, address, symbol))
        if address and address.lower() in self.prices:
            return self.prices[address.lower()]
        from defi_recon.errors import PriceNotFoundError

        raise PriceNotFoundError(f"Unable to resolve USD price for {address}")


class FakeTokenResolver:
    def __init__(self, decimals: int = 18):
        self.decimals = decimals

    async def resolve(self, chain_id, candidate):
        return TokenInfo(
            address=candidate.address.lower(),
            symbol=(candidate.symbol or candidate.address).upper(),
            decimals=self.decimals,
        )


def transfer(
    sender: str,
    recipient: str,
    raw: int,
    timestamp: int,
    *,
    token: str = BASE_USDC,
    decimals: int = 6,
    tx: str | None = None,
    log_index: int = 0,
) -> TransferLogEntry:
    return TransferLogEntry(
        token_address=token.lower(),
        sender=sender.lower(),
        recipient=recipient.lower(),
        amount=Amount(raw, decimals),
        block_number=timestamp,
        transaction_hash=tx or f"0x{timestamp:064x}",
        timestamp=timestamp,
        log_index=log_index,
    )
