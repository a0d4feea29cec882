"""Direct wallet holdings of the configured stable and volatile tokens."""

from __future__ import annotations

import asyncio
from typing import Literal

from web3 import Web3

from .abi import load_erc20_abi
from .amount import Amount
from .constants import ETH_ASSET, NATIVE_PRICE_ADDRESSES, WalletToken
from .logger import get_logger
from .models import (
    ItemResult,
    TokenCandidate,
    UnifiedBalanceItem,
    WalletBalance,
    WalletFailure,
)
from .prices import PriceResolver, resolve_price_override
from .rpc import RpcPool
from .settings import ReconSettings
from .tokens import DEFAULT_DECIMALS, TokenMetadataResolver

logger = get_logger(__name__)

Category = Literal["stable", "asset"]


def is_native(token: WalletToken) -> bool:
    address = token.get("address")
    return address is None or address.lower() == ETH_ASSET.lower()


class WalletPortfolioScanner:
    """Reads an account's balance of every catalog token on a chain.

    Stable tokens are valued at 1.0; volatile ones through the price override
    map, else the Price Resolver. Decimals missing from the catalog are read
    through the Token Metadata Resolver. A token that cannot be read or priced
    is reported as a failure and the scan carries on.
    """

    def __init__(
        self,
        settings: ReconSettings,
        *,
        rpc: RpcPool,
        price_resolver: PriceResolver,
        token_resolver: TokenMetadataResolver,
    ):
        self.settings = settings
        self._rpc = rpc
        self._price_resolver = price_resolver
        self._token_resolver = token_resolver

    async def get_wallet_portfolio_balances(
        self, chain_id: int, account: str, include_items: bool = True
    ) -> WalletBalance:
        catalog = self.settings.wallet_tokens_for(chain_id)
        if not catalog:
            return WalletBalance()

        w3 = self._rpc.web3_for(chain_id)
        if w3 is None:
            return WalletBalance(
                failures=[
                    WalletFailure(
                        token=None, error=f"No RPC URL configured for chain {chain_id}"
                    )
                ]
            )

        owner = Web3.to_checksum_address(account)
        tokens: list[tuple[WalletToken, Category]] = [
            (token, "stable") for token in catalog.get("stable", [])
        ] + [(token, "asset") for token in catalog.get("assets", [])]

        outcomes = await asyncio.gather(
            *[
                self._read_token(w3, chain_id, token, owner, category)
                for token, category in tokens
            ],
            return_exceptions=True,
        )

        balance = WalletBalance(tokens_evaluated=len(tokens))
        for (token, category), outcome in zip(tokens, outcomes):
            result: ItemResult[UnifiedBalanceItem] = ItemResult.from_outcome(outcome)
            label = token.get("symbol") or token.get("address")
            if not result.ok:
                logger.warning("Wallet balance failed for %s: %s", label, result.error)
                balance.failures.append(WalletFailure(token=label, error=result.error or ""))
                continue
            item = result.value
            if item is None:
                continue
            if category == "stable":
                balance.stable_usd += item.usd_value
                if include_items:
                    balance.stable.append(item)
            else:
                balance.asset_usd += item.usd_value
                if include_items:
                    balance.assets.append(item)

        balance.usd = balance.stable_usd + balance.asset_usd
        return balance

    async def _read_token(
        self,
        w3: Web3,
        chain_id: int,
        token: WalletToken,
        owner: str,
        category: Category,
    ) -> UnifiedBalanceItem | None:
        symbol = token["symbol"].upper() if token.get("symbol") else None

        if is_native(token):
            decimals = token.get("decimals")
            if decimals is None:
                decimals = DEFAULT_DECIMALS
            raw = await self._rpc.call(w3.eth.get_balance, owner)
            address = None
        else:
            address = token["address"]
            info = await self._token_resolver.resolve(
                chain_id,
                TokenCandidate(address=address, symbol=symbol, decimals=token.get("decimals")),
            )
            if info is None:
                raise ValueError(f"Invalid token address {address!r}")
            decimals = info.decimals
            symbol = symbol or info.symbol
            contract = w3.eth.contract(
                address=Web3.to_checksum_address(address), abi=load_erc20_abi()
            )
            raw = await self._rpc.call(contract.functions.balanceOf(owner).call)

        amount = Amount(int(raw), decimals)
        if amount.is_zero:
            return None

        stable = category == "stable"
        if stable:
            price = 1.0
        else:
            price = await self._price(chain_id, symbol, address)

        return UnifiedBalanceItem(
            protocol="wallet",
            category=category,
            symbol=symbol or (address or ""),
            address=address.lower() if address else None,
            amount=amount.value,
            usd_value=amount.value * price,
            price=price,
            decimals=decimals,
            is_stable=stable,
        )

    async def _price(self, chain_id: int, symbol: str | None, address: str | None) -> float:
        override = resolve_price_override(self.settings.price_overrides, symbol, address)
        if override is not None:
            return override
        price_address = address or NATIVE_PRICE_ADDRESSES.get(chain_id)
        if price_address is None:
            raise ValueError(f"No price source for native asset on chain {chain_id}")
        return await self._price_resolver.get_usd_price(
            chain_id, address=price_address, symbol=symbol
        )
