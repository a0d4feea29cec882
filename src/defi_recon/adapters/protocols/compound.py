from __future__ import annotations

from typing import Any

from ...abi import load_comet_abi
from ...constants import COMPOUND_MARKETS
from ...logger import get_logger
from ...settings import CompoundMarketSettings, ProtocolChainSettings
from .base import BaseProtocolAdapter, ProtocolMarket

logger = get_logger(__name__)


class CompoundAdapter(BaseProtocolAdapter):
    """Compound v3 (Comet) base-asset supply positions.

    ``Comet.balanceOf`` returns the present value of the account's base
    supply, in base-asset units.
    """

    @property
    def protocol_name(self) -> str:
        return "compound"

    def balance_abi(self) -> list[dict[str, Any]]:
        return load_comet_abi()

    def _markets(self, chain_id: int) -> list[CompoundMarketSettings]:
        configured = self.settings.protocols.compound.get(chain_id)
        if configured is not None:
            return configured.markets
        if self.settings.protocols.use_default_catalogs:
            return [
                CompoundMarketSettings.model_validate(market)
                for market in COMPOUND_MARKETS.get(chain_id, [])
            ]
        return []

    def chain_options(self, chain_id: int) -> ProtocolChainSettings:
        return self.settings.protocols.compound.get(chain_id) or ProtocolChainSettings()

    def markets_for(self, chain_id: int) -> list[ProtocolMarket]:
        configured = self.settings.protocols.compound.get(chain_id)
        allowed = {symbol.upper() for symbol in configured.assets} if configured else set()

        markets: list[ProtocolMarket] = []
        for market in self._markets(chain_id):
            symbol = market.base_symbol.upper()
            if allowed and symbol not in allowed:
                logger.debug("Skipping Compound market %s: %s not in asset filter", market.name, symbol)
                continue
            markets.append(
                ProtocolMarket(
                    key=market.name,
                    market=market.name,
                    holding=market.comet,
                    symbol=symbol,
                    address=market.base_underlying.lower() if market.base_underlying else None,
                    decimals=market.base_decimals,
                )
            )
        return markets
