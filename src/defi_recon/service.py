"""Owned-state facade wiring every reconciliation component together."""

from __future__ import annotations

from functools import cached_property
from typing import Any, Iterable

from .adapters.protocols import PROTOCOL_REGISTRY, BaseProtocolAdapter
from .aggregator import UnifiedBalanceAggregator
from .blocks import BlockTimeIndex
from .clients.defillama import DefiLlamaClient
from .clients.etherscan import EtherscanClient
from .logger import get_logger
from .models import (
    NetTransferBatchResult,
    NetTransferResult,
    ProtocolBalance,
    UnifiedBalanceSummary,
    WalletBalance,
)
from .prices import PriceResolver
from .rpc import RpcPool
from .settings import ReconSettings
from .tokens import StableRegistry, TokenMetadataResolver
from .transfers import (
    NetTransferEngine,
    NetTransferRequest,
    TokenTransfer,
    TokenTransferHistory,
    TransferLogCollector,
)
from .wallet import WalletPortfolioScanner

logger = get_logger(__name__)


class ReconService:
    """One instance per process or request context.

    The price cache, token metadata cache and block-time index live exactly
    as long as the service. Components that need Etherscan are built on first
    use, so balance queries work without an API key.
    """

    def __init__(self, settings: ReconSettings):
        self.settings = settings
        self.rpc = RpcPool(settings)
        self.stable_registry = StableRegistry.from_settings(settings)
        self.price_resolver = PriceResolver(
            DefiLlamaClient(settings.defillama_base_url, settings.request_timeout),
            cache_ttl_ms=settings.price_cache_ttl_ms,
            stable_symbols=self.stable_registry.symbols,
        )
        self.token_resolver = TokenMetadataResolver(self.rpc, self.stable_registry)
        self.adapters: dict[str, BaseProtocolAdapter] = {
            name: adapter_cls(
                settings,
                rpc=self.rpc,
                price_resolver=self.price_resolver,
                token_resolver=self.token_resolver,
                stable_registry=self.stable_registry,
            )
            for name, adapter_cls in PROTOCOL_REGISTRY.items()
        }
        self.wallet_scanner = WalletPortfolioScanner(
            settings,
            rpc=self.rpc,
            price_resolver=self.price_resolver,
            token_resolver=self.token_resolver,
        )
        self.aggregator = UnifiedBalanceAggregator(
            settings, adapters=self.adapters, wallet_scanner=self.wallet_scanner
        )

    @cached_property
    def etherscan(self) -> EtherscanClient:
        return EtherscanClient(
            self.settings.etherscan_api_key_required,
            page_size=self.settings.log_page_size,
            request_timeout=self.settings.request_timeout,
        )

    @cached_property
    def block_index(self) -> BlockTimeIndex:
        return BlockTimeIndex(
            self.etherscan, zero_block_policy=self.settings.zero_block_policy
        )

    @cached_property
    def collector(self) -> TransferLogCollector:
        return TransferLogCollector(
            self.etherscan,
            max_block_span=self.settings.max_block_span,
            min_block_span=self.settings.min_block_span,
        )

    @cached_property
    def net_transfers(self) -> NetTransferEngine:
        return NetTransferEngine(
            self.settings,
            rpc=self.rpc,
            block_index=self.block_index,
            collector=self.collector,
            token_resolver=self.token_resolver,
            stable_registry=self.stable_registry,
            price_resolver=self.price_resolver,
        )

    @cached_property
    def transfer_history(self) -> TokenTransferHistory:
        return TokenTransferHistory(
            self.settings,
            client=self.etherscan,
            block_index=self.block_index,
            token_resolver=self.token_resolver,
        )

    async def get_usd_price(
        self,
        chain_id: int | None,
        address: str | None = None,
        symbol: str | None = None,
        skip_cache: bool = False,
    ) -> float:
        return await self.price_resolver.get_usd_price(
            self.settings.resolve_chain_id(chain_id),
            address=address,
            symbol=symbol,
            skip_cache=skip_cache,
        )

    async def get_user_balance(
        self,
        chain_id: int | None,
        protocol: str,
        account: str | None = None,
        currency: str = "usd",
        include_items: bool = True,
    ) -> ProtocolBalance:
        return await self.aggregator.get_user_balance(
            chain_id, protocol, account, currency=currency, include_items=include_items
        )

    async def get_unified_balance_summary(
        self,
        chain_id: int | None,
        account: str | None = None,
        protocols: Iterable[str] | None = None,
        currency: str = "usd",
        include_items: bool = True,
    ) -> UnifiedBalanceSummary:
        return await self.aggregator.get_unified_balance_summary(
            chain_id,
            account,
            protocols=protocols,
            currency=currency,
            include_items=include_items,
        )

    async def get_wallet_portfolio_balances(
        self, chain_id: int | None, account: str | None = None, include_items: bool = True
    ) -> WalletBalance:
        return await self.wallet_scanner.get_wallet_portfolio_balances(
            self.settings.resolve_chain_id(chain_id),
            account or self.settings.default_account_required,
            include_items=include_items,
        )

    async def get_net_transfer(self, request: NetTransferRequest) -> NetTransferResult:
        return await self.net_transfers.get_net_transfer(request)

    async def get_net_transfers(self, request: NetTransferRequest) -> NetTransferBatchResult:
        return await self.net_transfers.get_net_transfers(request)

    async def get_token_transfers(
        self, account: str | None = None, **kwargs: Any
    ) -> list[TokenTransfer]:
        return await self.transfer_history.get_token_transfers(
            account or self.settings.default_account_required, **kwargs
        )
