from __future__ import annotations

from typing import Any

from ...constants import PENDLE_MARKETS
from ...logger import get_logger
from ...settings import PendleMarketSettings, ProtocolChainSettings
from .base import BaseProtocolAdapter, ProtocolMarket

logger = get_logger(__name__)

# PT redeems 1:1 for the underlying at maturity
PT_PAR_PRICE = 1.0


class PendleAdapter(BaseProtocolAdapter):
    """Pendle principal-token holdings, valued at par."""

    @property
    def protocol_name(self) -> str:
        return "pendle"

    def _markets(self, chain_id: int) -> list[PendleMarketSettings]:
        configured = self.settings.protocols.pendle.get(chain_id)
        if configured is not None:
            return configured.markets
        if self.settings.protocols.use_default_catalogs:
            return [
                PendleMarketSettings.model_validate(market)
                for market in PENDLE_MARKETS.get(chain_id, [])
            ]
        return []

    def chain_options(self, chain_id: int) -> ProtocolChainSettings:
        return self.settings.protocols.pendle.get(chain_id) or ProtocolChainSettings()

    def markets_for(self, chain_id: int) -> list[ProtocolMarket]:
        return [
            ProtocolMarket(
                key=market.name,
                market=market.address.lower(),
                holding=market.pt,
                symbol=(market.underlying_symbol or market.name or "PT").upper(),
                address=market.underlying.lower() if market.underlying else None,
                fixed_price=PT_PAR_PRICE,
                extra={"ptToken": market.pt},
            )
            for market in self._markets(chain_id)
        ]

    def describe(self, chain_id: int, markets: list[ProtocolMarket]) -> dict[str, Any]:
        return {
            "protocol": self.protocol_name,
            "markets": [market.market for market in markets],
            "ptTokens": [market.holding for market in markets],
        }
