from __future__ import annotations

from ...constants import AAVE_RESERVES
from ...logger import get_logger
from ...settings import AaveReserveSettings, ProtocolChainSettings
from .base import BaseProtocolAdapter, ProtocolMarket

logger = get_logger(__name__)


class AaveAdapter(BaseProtocolAdapter):
    """Aave v3 supply positions, read as the account's aToken balance.

    aTokens rebase, so ``balanceOf`` already includes accrued interest and is
    denominated in the underlying reserve asset.
    """

    @property
    def protocol_name(self) -> str:
        return "aave"

    def _reserves(self, chain_id: int) -> list[AaveReserveSettings]:
        configured = self.settings.protocols.aave.get(chain_id)
        if configured is not None:
            return configured.reserves
        if self.settings.protocols.use_default_catalogs:
            return [
                AaveReserveSettings.model_validate(reserve)
                for reserve in AAVE_RESERVES.get(chain_id, [])
            ]
        return []

    def chain_options(self, chain_id: int) -> ProtocolChainSettings:
        return self.settings.protocols.aave.get(chain_id) or ProtocolChainSettings()

    def markets_for(self, chain_id: int) -> list[ProtocolMarket]:
        return [
            ProtocolMarket(
                key=reserve.symbol.upper(),
                market=reserve.a_token.lower(),
                holding=reserve.a_token,
                symbol=reserve.symbol.upper(),
                address=reserve.underlying.lower(),
                decimals=reserve.decimals,
            )
            for reserve in self._reserves(chain_id)
        ]
