"""DeFiLlama coins API client."""

from __future__ import annotations

import json
from typing import Any

import backoff
import requests

from ..constants import DEFILLAMA_API_URL
from ..logger import get_logger

logger = get_logger(__name__)

RETRYABLE_STATUS_CODES = {429, 500, 502, 503, 504}


class DefiLlamaClient:
    """Fetches current USD prices keyed by ``"{chain}:{address}"`` identifiers."""

    def __init__(self, base_url: str = DEFILLAMA_API_URL, request_timeout: float = 10.0):
        self._base_url = base_url.rstrip("/")
        self._request_timeout = request_timeout
        self._session = requests.Session()

    @backoff.on_exception(
        backoff.expo,
        requests.exceptions.RequestException,
        max_tries=5,
        giveup=lambda e: (
            isinstance(e, requests.exceptions.HTTPError)
            and e.response is not None
            and e.response.status_code not in RETRYABLE_STATUS_CODES
        ),
        jitter=backoff.full_jitter,
    )
    def fetch_prices(self, identifiers: list[str]) -> dict[str, float]:
        """Fetch current prices for one or more coin identifiers.

        Args:
            identifiers: Coin identifiers such as ``"base:0x8335..."``

        Returns:
            Mapping of identifier to USD price. Identifiers DeFiLlama does not
            know are absent from the mapping.

        Raises:
            ValueError: If the response is not valid JSON or has the wrong shape
            requests.exceptions.RequestException: If the request fails
        """
        if not identifiers:
            return {}

        url = f"{self._base_url}/prices/current/{','.join(identifiers)}"
        logger.debug("Calling %s", url)
        response = self._session.get(url, timeout=self._request_timeout)
        response.raise_for_status()

        try:
            data: Any = response.json()
        except json.JSONDecodeError as e:
            raise ValueError("Invalid JSON from DeFiLlama API") from e

        coins = data.get("coins") if isinstance(data, dict) else None
        if not isinstance(coins, dict):
            raise ValueError(f"Invalid response structure: {data}")

        prices: dict[str, float] = {}
        for identifier, entry in coins.items():
            price = entry.get("price") if isinstance(entry, dict) else None
            if isinstance(price, (int, float)) and not isinstance(price, bool):
                prices[identifier.lower()] = float(price)
        return prices
