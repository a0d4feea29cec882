"""Per-chain Web3 providers with throttled, retried calls."""

from __future__ import annotations

import asyncio
import random
from typing import Any, Callable, TypeVar

import backoff
from eth_typing import URI
from web3 import Web3
from web3.exceptions import ProviderConnectionError

from .errors import ConfigurationError
from .logger import get_logger
from .settings import ReconSettings

logger = get_logger(__name__)

R = TypeVar("R")


class RpcPool:
    """Lazily builds one Web3 client per chain and serializes access to it.

    Blocking web3 calls run in a worker thread behind a semaphore so that a
    burst of balance reads does not trip provider rate limits.
    """

    def __init__(self, settings: ReconSettings):
        self._settings = settings
        self._providers: dict[int, Web3] = {}
        self._rpc_sem = asyncio.Semaphore(max(1, settings.rpc_max_concurrent_calls))
        self._rpc_delay = settings.rpc_delay
        self._rpc_jitter = settings.rpc_jitter

    def has_rpc(self, chain_id: int) -> bool:
        return self._settings.rpc_url_for(chain_id) is not None

    def web3_for(self, chain_id: int) -> Web3 | None:
        cached = self._providers.get(chain_id)
        if cached is not None:
            return cached
        rpc_url = self._settings.rpc_url_for(chain_id)
        if not rpc_url:
            return None
        logger.debug("Creating Web3 provider for chain %d", chain_id)
        w3 = Web3(
            Web3.HTTPProvider(
                URI(rpc_url),
                request_kwargs={"timeout": self._settings.request_timeout},
            )
        )
        self._providers[chain_id] = w3
        return w3

    def web3_required(self, chain_id: int) -> Web3:
        w3 = self.web3_for(chain_id)
        if w3 is None:
            raise ConfigurationError(f"No RPC URL configured for chain {chain_id}")
        return w3

    @backoff.on_exception(
        backoff.expo, (ProviderConnectionError,), max_time=30, jitter=backoff.full_jitter
    )
    async def call(self, fn: Callable[..., R], *args: Any, **kwargs: Any) -> R:
        """Throttle + backoff a single RPC."""
        async with self._rpc_sem:
            try:
                return await asyncio.to_thread(fn, *args, **kwargs)
            finally:
                delay = self._rpc_delay + random.random() * self._rpc_jitter
                if delay > 0:
                    await asyncio.sleep(delay)
