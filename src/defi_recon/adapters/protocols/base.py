from __future__ import annotations

import asyncio
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any

from ...abi import load_erc20_abi
from ...amount import Amount
from ...errors import ConfigurationError
from ...logger import get_logger
from ...models import ItemResult, ProtocolBalanceResult, TokenCandidate, UnifiedBalanceItem
from ...prices import PriceResolver, resolve_price_override
from ...rpc import RpcPool
from ...settings import ProtocolChainSettings, ReconSettings
from ...tokens import StableRegistry, TokenMetadataResolver

logger = get_logger(__name__)


@dataclass(frozen=True)
class ProtocolMarket:
    """A single position source: ``holding.balanceOf(account)`` in ``symbol`` units."""

    key: str  # lookup key for get_balance and failure records
    market: str  # reported as the item's market
    holding: str  # contract whose balanceOf is read
    symbol: str
    address: str | None  # underlying asset, lower-cased
    decimals: int | None = None  # None reads decimals from the holding contract
    fixed_price: float | None = None
    extra: dict[str, Any] = field(default_factory=dict)


class BaseProtocolAdapter(ABC):
    """Abstract base class for protocol balance adapters.

    Subclasses describe their markets for a chain; reading balances and
    valuing them is shared.
    """

    def __init__(
        self,
        settings: ReconSettings,
        *,
        rpc: RpcPool,
        price_resolver: PriceResolver,
        token_resolver: TokenMetadataResolver,
        stable_registry: StableRegistry,
    ):
        self.settings = settings
        self._rpc = rpc
        self._price_resolver = price_resolver
        self._token_resolver = token_resolver
        self._stable_registry = stable_registry

    @property
    @abstractmethod
    def protocol_name(self) -> str:
        """Return the registry name of this protocol."""
        ...

    @abstractmethod
    def markets_for(self, chain_id: int) -> list[ProtocolMarket]:
        """Markets configured for ``chain_id``, empty when unconfigured."""
        ...

    @abstractmethod
    def chain_options(self, chain_id: int) -> ProtocolChainSettings:
        """Stable allow-lists and price overrides for ``chain_id``."""
        ...

    def balance_abi(self) -> list[dict[str, Any]]:
        return load_erc20_abi()

    def is_configured(self, chain_id: int) -> bool:
        return bool(self.markets_for(chain_id))

    def describe(self, chain_id: int, markets: list[ProtocolMarket]) -> dict[str, Any]:
        return {
            "protocol": self.protocol_name,
            "markets": [market.market for market in markets],
        }

    def _market(self, chain_id: int, market_id: str) -> ProtocolMarket:
        wanted = market_id.lower()
        for market in self.markets_for(chain_id):
            if wanted in (market.key.lower(), market.market.lower(), market.symbol.lower()):
                return market
        raise ValueError(
            f"Unknown {self.protocol_name} market '{market_id}' on chain {chain_id}"
        )

    async def get_balance(
        self, chain_id: int, market_id: str, account: str
    ) -> UnifiedBalanceItem | None:
        """Position of ``account`` in one market, or None when it holds nothing.

        Args:
            chain_id: Chain to query
            market_id: Market key, market address or asset symbol
            account: Account address

        Raises:
            ValueError: If the market is unknown
            ConfigurationError: If the chain has no RPC URL
        """
        return await self._read_market(chain_id, self._market(chain_id, market_id), account)

    async def get_balances(self, chain_id: int, account: str) -> ProtocolBalanceResult:
        """Every non-zero position of ``account``.

        Failures of single markets are listed under ``metadata["failures"]``
        and do not abort the others.

        Raises:
            ConfigurationError: If the protocol has no markets on ``chain_id``
        """
        markets = self.markets_for(chain_id)
        if not markets:
            raise ConfigurationError(
                f"{self.protocol_name.capitalize()} configuration not provided for chain {chain_id}"
            )

        outcomes = await asyncio.gather(
            *[self._read_market(chain_id, market, account) for market in markets],
            return_exceptions=True,
        )

        items: list[UnifiedBalanceItem] = []
        failures: list[dict[str, Any]] = []
        for market, outcome in zip(markets, outcomes):
            result: ItemResult[UnifiedBalanceItem] = ItemResult.from_outcome(outcome)
            if not result.ok:
                logger.warning(
                    "%s balance failed for market %s: %s",
                    self.protocol_name,
                    market.key,
                    result.error,
                )
                failures.append(
                    {"market": market.key, "asset": market.symbol, "error": result.error}
                )
            elif result.value is not None:
                items.append(result.value)

        metadata = self.describe(chain_id, markets)
        metadata["positionsCount"] = len(items)
        metadata["failures"] = failures
        return ProtocolBalanceResult(items=items, metadata=metadata)

    async def get_total_value_usd(self, chain_id: int, account: str) -> float:
        result = await self.get_balances(chain_id, account)
        return sum(item.usd_value for item in result.items)

    async def _read_market(
        self, chain_id: int, market: ProtocolMarket, account: str
    ) -> UnifiedBalanceItem | None:
        w3 = self._rpc.web3_required(chain_id)
        contract = w3.eth.contract(
            address=w3.to_checksum_address(market.holding), abi=self.balance_abi()
        )

        decimals = market.decimals
        if decimals is None:
            info = await self._token_resolver.resolve(
                chain_id, TokenCandidate(address=market.holding, symbol=market.symbol)
            )
            decimals = info.decimals if info is not None else 18

        raw = await self._rpc.call(
            contract.functions.balanceOf(w3.to_checksum_address(account)).call
        )
        amount = Amount(int(raw), decimals)
        if amount.is_zero:
            return None

        price, is_stable = await self._value(chain_id, market)
        return UnifiedBalanceItem(
            protocol=self.protocol_name,
            market=market.market,
            symbol=market.symbol,
            address=market.address,
            amount=amount.value,
            usd_value=amount.value * price,
            price=price,
            decimals=decimals,
            is_stable=is_stable,
            extra=dict(market.extra),
        )

    async def _value(self, chain_id: int, market: ProtocolMarket) -> tuple[float, bool]:
        options = self.chain_options(chain_id)
        is_stable = self._stable_registry.is_stable(
            market.symbol,
            market.address,
            chain_id,
            custom_symbols=options.stable_symbols,
            custom_addresses=options.stable_addresses,
        )
        if market.fixed_price is not None:
            return market.fixed_price, is_stable
        if is_stable:
            return 1.0, True

        override = resolve_price_override(
            {**self.settings.price_overrides, **options.price_overrides},
            market.symbol,
            market.address,
        )
        if override is not None:
            return override, False
        price = await self._price_resolver.get_usd_price(
            chain_id, address=market.address, symbol=market.symbol
        )
        return price, False
