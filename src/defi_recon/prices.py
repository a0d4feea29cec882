"""USD price resolution with a stablecoin fast path and a short-lived cache."""

from __future__ import annotations

import asyncio
import time
from typing import Callable, Iterable, Mapping

from .clients.defillama import DefiLlamaClient
from .constants import (
    DEFAULT_PRICE_CACHE_TTL_MS,
    DEFAULT_STABLECOIN_SYMBOLS,
    DEFILLAMA_CHAIN_KEYS,
)
from .errors import PriceNotFoundError, UnsupportedChainError
from .logger import get_logger
from .models import PriceQuote

logger = get_logger(__name__)

STABLE_PRICE = 1.0


def resolve_price_override(
    overrides: Mapping[str, float] | None,
    symbol: str | None,
    address: str | None,
) -> float | None:
    """Look up a fixed price by symbol, then address, then lower-cased address."""
    if not overrides:
        return None
    if symbol and overrides.get(symbol):
        return float(overrides[symbol])
    if address and overrides.get(address):
        return float(overrides[address])
    if address and overrides.get(address.lower()):
        return float(overrides[address.lower()])
    return None


class PriceResolver:
    """Resolves token USD prices from DeFiLlama.

    Quotes are cached per ``"{chain_id}:{address}"`` for ``cache_ttl_ms``.
    Tokens whose symbol is a known stablecoin are priced at exactly 1.0
    without touching the network or the cache.
    """

    def __init__(
        self,
        client: DefiLlamaClient,
        *,
        cache_ttl_ms: int = DEFAULT_PRICE_CACHE_TTL_MS,
        stable_symbols: Iterable[str] = DEFAULT_STABLECOIN_SYMBOLS,
        clock: Callable[[], float] = time.time,
    ):
        self._client = client
        self._cache_ttl_ms = cache_ttl_ms
        self._stable_symbols = {symbol.upper() for symbol in stable_symbols}
        self._clock = clock
        self._cache: dict[str, PriceQuote] = {}

    def is_stable_symbol(self, symbol: str | None) -> bool:
        return bool(symbol) and symbol.upper() in self._stable_symbols  # type: ignore[union-attr]

    async def get_usd_price(
        self,
        chain_id: int,
        address: str | None = None,
        symbol: str | None = None,
        skip_cache: bool = False,
    ) -> float:
        quote = await self.get_quote(
            chain_id, address=address, symbol=symbol, skip_cache=skip_cache
        )
        return quote.usd_price

    async def get_quote(
        self,
        chain_id: int,
        address: str | None = None,
        symbol: str | None = None,
        skip_cache: bool = False,
    ) -> PriceQuote:
        """Resolve a USD quote for a token.

        Args:
            chain_id: Chain the token lives on
            address: Token contract address, required unless ``symbol`` is a stablecoin
            symbol: Optional token symbol, used for the stablecoin fast path
            skip_cache: Bypass a fresh cached quote and refetch

        Returns:
            The resolved quote

        Raises:
            ValueError: If no address is given for a non-stable token
            UnsupportedChainError: If DeFiLlama has no key for ``chain_id``
            PriceNotFoundError: If DeFiLlama returns no price for the token
        """
        now = self._clock()

        if self.is_stable_symbol(symbol):
            return PriceQuote(
                chain_id=chain_id,
                address=(address or "").lower(),
                usd_price=STABLE_PRICE,
                resolved_at=now,
            )

        if not address:
            raise ValueError("Token address is required for price lookup")

        normalized = address.lower()
        cache_key = f"{chain_id}:{normalized}"
        cached = self._cache.get(cache_key)
        if not skip_cache and cached is not None and cached.is_fresh(now, self._cache_ttl_ms):
            logger.debug("Price cache hit for %s", cache_key)
            return cached

        chain_key = DEFILLAMA_CHAIN_KEYS.get(chain_id)
        if chain_key is None:
            raise UnsupportedChainError(
                f"Unsupported chain {chain_id} for default price oracle"
            )

        identifier = f"{chain_key}:{normalized}"
        prices = await asyncio.to_thread(self._client.fetch_prices, [identifier])
        price = prices.get(identifier)
        if price is None or price <= 0:
            raise PriceNotFoundError(f"Unable to resolve USD price for {identifier}")

        quote = PriceQuote(
            chain_id=chain_id, address=normalized, usd_price=price, resolved_at=now
        )
        self._cache[cache_key] = quote
        logger.debug("Resolved %s at %s USD", identifier, price)
        return quote

    def clear_cache(self) -> None:
        self._cache.clear()
