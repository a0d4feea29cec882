"""Timestamp to block number resolution."""

from __future__ import annotations

import asyncio
from typing import Literal

import requests

from .clients.etherscan import EtherscanClient, EtherscanError, EtherscanRateLimitError
from .errors import BlockLookupError
from .logger import get_logger
from .settings import ZeroBlockPolicy

logger = get_logger(__name__)

BlockPreference = Literal["floor", "ceil"]

_CLOSEST: dict[str, Literal["before", "after"]] = {"floor": "before", "ceil": "after"}


class BlockTimeIndex:
    """Maps unix timestamps to block numbers through Etherscan.

    Answers are memoized per ``(chain_id, timestamp)`` for the lifetime of the
    index and never invalidated, since historical blocks are final. The
    preference only matters for the first lookup of a given instant.
    """

    def __init__(
        self,
        client: EtherscanClient,
        *,
        zero_block_policy: ZeroBlockPolicy = ZeroBlockPolicy.MISS,
    ):
        self._client = client
        self._zero_block_policy = zero_block_policy
        self._cache: dict[tuple[int, int], int] = {}
        self._locks: dict[tuple[int, int], asyncio.Lock] = {}

    def cached_block(self, chain_id: int, timestamp: int) -> int | None:
        return self._cache.get((chain_id, timestamp))

    async def find_block_by_timestamp(
        self,
        chain_id: int,
        timestamp: int,
        preference: BlockPreference = "floor",
    ) -> int:
        """Resolve the block closest to ``timestamp``.

        Args:
            chain_id: Chain to query
            timestamp: Unix timestamp in seconds
            preference: ``"floor"`` for the last block at or before the
                timestamp, ``"ceil"`` for the first block at or after it

        Returns:
            The block number

        Raises:
            ValueError: If the timestamp or preference is invalid
            BlockLookupError: If the lookup fails, or returns block 0 while the
                zero-block policy treats zero as a miss
        """
        if timestamp is None or timestamp < 0:
            raise ValueError(f"Invalid target timestamp: {timestamp!r}")
        if preference not in _CLOSEST:
            raise ValueError(f"Unknown block preference '{preference}'")

        key = (chain_id, int(timestamp))
        cached = self._cache.get(key)
        if cached is not None:
            return cached

        lock = self._locks.setdefault(key, asyncio.Lock())
        async with lock:
            cached = self._cache.get(key)
            if cached is not None:
                return cached

            try:
                block = await asyncio.to_thread(
                    self._client.get_block_number_by_time,
                    chain_id,
                    key[1],
                    _CLOSEST[preference],
                )
            except (
                requests.RequestException,
                ValueError,
                EtherscanRateLimitError,
                EtherscanError,
            ) as e:
                raise BlockLookupError(
                    f"Block lookup failed for chain {chain_id} at timestamp {timestamp}: {e}"
                ) from e

            if block is None:
                raise BlockLookupError(
                    f"No block found for chain {chain_id} at timestamp {timestamp}"
                )
            if block == 0 and self._zero_block_policy == ZeroBlockPolicy.MISS:
                raise BlockLookupError(
                    f"Block lookup for chain {chain_id} at timestamp {timestamp} returned block 0"
                )

            logger.debug(
                "Resolved chain %d timestamp %d (%s) to block %d",
                chain_id,
                timestamp,
                preference,
                block,
            )
            self._cache[key] = block
            return block
