"""Unified view of protocol deposits plus wallet holdings."""

from __future__ import annotations

import time
from typing import Callable, Iterable

from .adapters.protocols import BaseProtocolAdapter, get_protocol_class
from .constants import DEFAULT_PROTOCOLS
from .errors import ConfigurationError, UnsupportedProtocolError
from .logger import get_logger
from .models import (
    BalanceFailure,
    ProtocolBalance,
    SymbolTotal,
    UnifiedBalanceItem,
    UnifiedBalanceSummary,
    WalletBalance,
)
from .settings import ReconSettings
from .wallet import WalletPortfolioScanner

logger = get_logger(__name__)

UNSUPPORTED_PROTOCOL = "Unsupported protocol"
PROTOCOL_NOT_CONFIGURED = "Protocol not configured for requested chain"


def summarize(items: Iterable[UnifiedBalanceItem]) -> tuple[float, dict[str, SymbolTotal]]:
    """Total USD value plus per-symbol amount and USD value."""
    total = 0.0
    by_symbol: dict[str, SymbolTotal] = {}
    for item in items:
        total += item.usd_value or 0.0
        key = (item.symbol or item.address or "unknown").upper()
        entry = by_symbol.setdefault(key, SymbolTotal())
        entry.amount += item.amount or 0.0
        entry.usd_value += item.usd_value or 0.0
    return total, by_symbol


class UnifiedBalanceAggregator:
    """Composes protocol balances and the wallet scan into one summary.

    ``get_user_balance`` raises on any failure. ``get_unified_balance_summary``
    never raises for data-source failures; it lists them under ``failures``.
    """

    def __init__(
        self,
        settings: ReconSettings,
        *,
        adapters: dict[str, BaseProtocolAdapter],
        wallet_scanner: WalletPortfolioScanner,
        clock: Callable[[], float] = time.time,
    ):
        self.settings = settings
        self._adapters = adapters
        self._wallet_scanner = wallet_scanner
        self._clock = clock

    def _now_ms(self) -> int:
        return int(self._clock() * 1000)

    def adapter_for(self, protocol: str) -> BaseProtocolAdapter:
        get_protocol_class(protocol)
        adapter = self._adapters.get(protocol.lower())
        if adapter is None:
            raise UnsupportedProtocolError(f"Unsupported protocol: {protocol}")
        return adapter

    async def get_user_balance(
        self,
        chain_id: int | None,
        protocol: str,
        account: str | None = None,
        currency: str = "usd",
        include_items: bool = True,
    ) -> ProtocolBalance:
        """Balance of ``account`` in one protocol.

        Raises:
            ValueError: If the chain, protocol or account is missing
            UnsupportedProtocolError: If ``protocol`` is not in the registry
            ConfigurationError: If the protocol has no markets on the chain
        """
        resolved_chain = self.settings.resolve_chain_id(chain_id)
        normalized = (protocol or "").lower()
        if not normalized:
            raise ValueError("protocol is required")
        resolved_account = account or self.settings.default_account_required

        adapter = self.adapter_for(normalized)
        result = await adapter.get_balances(resolved_chain, resolved_account)

        usd, breakdown = summarize(result.items)
        stable_usd = sum(item.usd_value or 0.0 for item in result.items if item.is_stable)
        return ProtocolBalance(
            protocol=normalized,
            chain_id=resolved_chain,
            account=resolved_account,
            currency=currency,
            usd=usd,
            breakdown=breakdown,
            items=result.items if include_items else [],
            metadata=result.metadata,
            timestamp=self._now_ms(),
            stable_usd=stable_usd,
        )

    async def get_unified_balance_summary(
        self,
        chain_id: int | None,
        account: str | None = None,
        protocols: Iterable[str] | None = None,
        currency: str = "usd",
        include_items: bool = True,
    ) -> UnifiedBalanceSummary:
        """Deposits across ``protocols`` (default: all) plus the wallet scan."""
        resolved_chain = self.settings.resolve_chain_id(chain_id)
        resolved_account = account or self.settings.default_account_required

        requested = [p.lower() for p in protocols or []] or list(DEFAULT_PROTOCOLS)

        balances: list[ProtocolBalance] = []
        failures: list[BalanceFailure] = []
        deposits_usd = 0.0
        stable_usd = 0.0

        for protocol in requested:
            try:
                adapter = self.adapter_for(protocol)
            except UnsupportedProtocolError:
                failures.append(BalanceFailure(protocol=protocol, error=UNSUPPORTED_PROTOCOL))
                continue

            try:
                configured = adapter.is_configured(resolved_chain)
            except (ConfigurationError, ValueError) as e:
                failures.append(BalanceFailure(protocol=protocol, error=str(e)))
                continue
            if not configured:
                failures.append(BalanceFailure(protocol=protocol, error=PROTOCOL_NOT_CONFIGURED))
                continue

            try:
                balance = await self.get_user_balance(
                    resolved_chain,
                    protocol,
                    resolved_account,
                    currency=currency,
                    include_items=include_items,
                )
            except Exception as e:
                logger.warning("Balance for %s failed: %s", protocol, e)
                failures.append(BalanceFailure(protocol=protocol, error=str(e) or type(e).__name__))
                continue

            balances.append(balance)
            deposits_usd += balance.usd
            stable_usd += balance.stable_usd

        try:
            wallet = await self._wallet_scanner.get_wallet_portfolio_balances(
                resolved_chain, resolved_account, include_items=include_items
            )
        except Exception as e:
            logger.warning("Wallet scan failed: %s", e)
            failures.append(BalanceFailure(protocol="wallet", error=str(e) or type(e).__name__))
            wallet = WalletBalance()

        for failure in wallet.failures:
            failures.append(
                BalanceFailure(protocol="wallet", token=failure.token, error=failure.error)
            )

        return UnifiedBalanceSummary(
            account=resolved_account,
            chain_id=resolved_chain,
            currency=currency,
            usd=deposits_usd + wallet.usd,
            deposits_usd=deposits_usd,
            wallet_usd=wallet.usd,
            stable_usd=stable_usd + wallet.stable_usd,
            protocols=balances,
            wallet=wallet,
            failures=failures,
            timestamp=self._now_ms(),
        )
