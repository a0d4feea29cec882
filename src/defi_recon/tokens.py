"""Stablecoin classification and token metadata resolution."""

from __future__ import annotations

import asyncio
from typing import Iterable, Mapping

from web3.exceptions import Web3Exception

from .abi import load_erc20_abi
from .constants import DEFAULT_STABLECOIN_SYMBOLS, ChainWalletTokens
from .logger import get_logger
from .models import TokenCandidate, TokenInfo, TokenRole, normalize_address
from .rpc import RpcPool
from .settings import ReconSettings

logger = get_logger(__name__)

DEFAULT_DECIMALS = 18

# Reverts and decode errors from web3, plus transport failures
TOKEN_READ_ERRORS = (Web3Exception, ValueError, OSError)


class StableRegistry:
    """Decides whether a token is priced at a fixed 1.0 USD.

    A token is stable when its symbol is in the global symbol allow-list or
    its address is in the per-chain address allow-list. Callers may widen
    both lists per call; the answer is computed on every lookup.
    """

    def __init__(
        self,
        *,
        extra_symbols: Iterable[str] = (),
        stable_token_map: Mapping[int, Iterable[str]] | None = None,
        wallet_catalogs: Mapping[int, ChainWalletTokens] | None = None,
    ):
        self._symbols: set[str] = {s.upper() for s in DEFAULT_STABLECOIN_SYMBOLS}
        self._symbols.update(s.upper() for s in extra_symbols if s)
        self._addresses: dict[int, set[str]] = {}

        for chain_id, addresses in (stable_token_map or {}).items():
            self._addresses.setdefault(int(chain_id), set()).update(
                addr.lower() for addr in addresses if addr
            )

        for chain_id, tokens in (wallet_catalogs or {}).items():
            bucket = self._addresses.setdefault(int(chain_id), set())
            for token in tokens.get("stable", []):
                if token.get("symbol"):
                    self._symbols.add(token["symbol"].upper())
                if token.get("address"):
                    bucket.add(token["address"].lower())

    @classmethod
    def from_settings(cls, settings: ReconSettings) -> "StableRegistry":
        catalogs: dict[int, ChainWalletTokens] = {}
        for chain_id in settings.all_wallet_chains():
            tokens = settings.wallet_tokens_for(chain_id)
            if tokens is not None:
                catalogs[chain_id] = tokens
        return cls(
            extra_symbols=settings.extra_stable_symbols,
            stable_token_map=settings.stable_token_map,
            wallet_catalogs=catalogs,
        )

    @property
    def symbols(self) -> frozenset[str]:
        return frozenset(self._symbols)

    def stable_addresses(self, chain_id: int) -> set[str]:
        return set(self._addresses.get(chain_id, ()))

    def is_stable(
        self,
        symbol: str | None,
        address: str | None,
        chain_id: int,
        *,
        custom_symbols: Iterable[str] = (),
        custom_addresses: Iterable[str] = (),
    ) -> bool:
        if symbol:
            upper = symbol.upper()
            if upper in self._symbols or upper in {s.upper() for s in custom_symbols}:
                return True

        if address:
            normalized = address.lower()
            if normalized in {a.lower() for a in custom_addresses}:
                return True
            if normalized in self._addresses.get(chain_id, ()):
                return True

        return False

    def role_of(self, symbol: str | None, address: str | None, chain_id: int) -> TokenRole:
        if self.is_stable(symbol, address, chain_id):
            return TokenRole.STABLE
        return TokenRole.VOLATILE


class TokenMetadataResolver:
    """Fills in missing symbol/decimals for token candidates.

    Known configuration values are trusted as-is. Anything missing is read
    from the token contract; read failures fall back to 18 decimals and to the
    symbol hint (or the address) so that a single odd token never blocks a scan.
    Resolved metadata is cached for the lifetime of the resolver.
    """

    def __init__(self, rpc: RpcPool, stable_registry: StableRegistry | None = None):
        self._rpc = rpc
        self._stable_registry = stable_registry
        self._cache: dict[tuple[int, str], TokenInfo] = {}

    def _with_role(self, chain_id: int, info: TokenInfo) -> TokenInfo:
        if self._stable_registry is None:
            return info
        role = self._stable_registry.role_of(info.symbol, info.address, chain_id)
        return TokenInfo(
            address=info.address, symbol=info.symbol, decimals=info.decimals, role=role
        )

    async def resolve(self, chain_id: int, candidate: TokenCandidate) -> TokenInfo | None:
        """Resolve ``candidate`` to complete metadata.

        Returns:
            Token metadata with a lower-cased address and upper-cased symbol, or
            None when the candidate address is not a valid address.
        """
        address = normalize_address(candidate.address)
        if address is None:
            logger.warning("Skipping token with invalid address %r", candidate.address)
            return None

        symbol = candidate.symbol.upper() if candidate.symbol else None
        decimals = candidate.decimals

        if symbol and decimals is not None:
            return self._with_role(
                chain_id, TokenInfo(address=address, symbol=symbol, decimals=int(decimals))
            )

        cached = self._cache.get((chain_id, address))
        if cached is not None:
            return self._with_role(chain_id, cached)

        w3 = self._rpc.web3_for(chain_id)
        if w3 is None:
            return self._with_role(
                chain_id,
                TokenInfo(
                    address=address,
                    symbol=symbol or address,
                    decimals=int(decimals) if decimals is not None else DEFAULT_DECIMALS,
                ),
            )

        contract = w3.eth.contract(
            address=w3.to_checksum_address(address), abi=load_erc20_abi()
        )

        if decimals is None:
            try:
                decimals = int(await self._rpc.call(contract.functions.decimals().call))
            except TOKEN_READ_ERRORS as e:
                logger.warning(
                    "Failed to read decimals for token %s on chain %d, assuming %d: %s",
                    address,
                    chain_id,
                    DEFAULT_DECIMALS,
                    e,
                )
                decimals = DEFAULT_DECIMALS

        if symbol is None:
            try:
                raw_symbol = await self._rpc.call(contract.functions.symbol().call)
                symbol = str(raw_symbol).upper() if raw_symbol else None
            except TOKEN_READ_ERRORS as e:
                logger.warning(
                    "Failed to read symbol for token %s on chain %d: %s",
                    address,
                    chain_id,
                    e,
                )
                symbol = None

        info = TokenInfo(address=address, symbol=symbol or address, decimals=int(decimals))
        self._cache[(chain_id, address)] = info
        return self._with_role(chain_id, info)

    async def resolve_many(
        self, chain_id: int, candidates: Iterable[TokenCandidate]
    ) -> list[TokenInfo]:
        results = await asyncio.gather(
            *[self.resolve(chain_id, candidate) for candidate in candidates]
        )
        return [info for info in results if info is not None]
