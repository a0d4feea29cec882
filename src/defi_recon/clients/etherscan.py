"""Etherscan API v2 client for event logs, block lookups and token transfers.

One client serves every chain: the v2 API selects the network through the
``chainid`` query parameter.
"""

from typing import Any, Literal, TypedDict

import backoff
import requests

from ..constants import ETHERSCAN_API_V2_URL, LOG_PAGE_SIZE
from ..logger import get_logger

logger = get_logger(__name__)

NO_RECORDS = "no records found"


class EtherscanRateLimitError(Exception):
    """Raised when Etherscan returns a rate limit error."""

    pass


class EtherscanError(Exception):
    """Raised when Etherscan rejects a query (status 0) for a reason other
    than an empty result, e.g. a block window that is too large."""

    pass


class EtherscanLogsResult(TypedDict, total=False):
    """Raw Etherscan API response for a single log entry."""

    address: str
    topics: list[str]
    data: str
    blockNumber: str
    blockHash: str
    timeStamp: str
    gasPrice: str
    gasUsed: str
    logIndex: str
    transactionHash: str
    transactionIndex: str


# Raw entry of the ``account/tokentx`` endpoint ("from" is a keyword)
EtherscanTokenTransfer = TypedDict(
    "EtherscanTokenTransfer",
    {
        "blockNumber": str,
        "timeStamp": str,
        "hash": str,
        "from": str,
        "to": str,
        "value": str,
        "contractAddress": str,
        "tokenName": str,
        "tokenSymbol": str,
        "tokenDecimal": str,
    },
    total=False,
)


class EtherscanResponse(TypedDict):
    """Complete Etherscan API response."""

    status: str
    message: str
    result: list[Any] | str


class EtherscanClient:
    """Client for the Etherscan API v2.

    Provides:
    - Paginated ``logs/getLogs`` queries with OR-combined topic filters
    - ``block/getblocknobytime`` lookups
    - ``account/tokentx`` transfer history
    - Exponential backoff retry on transport errors and rate limits
    """

    def __init__(
        self,
        api_key: str,
        *,
        page_size: int = LOG_PAGE_SIZE,
        request_timeout: float = 15,
        api_url: str = ETHERSCAN_API_V2_URL,
    ):
        """Initialize the Etherscan client.

        Args:
            api_key: Etherscan API key
            page_size: Number of results per page (max 1000)
            request_timeout: HTTP request timeout in seconds
            api_url: Base API URL (defaults to Etherscan v2 API)
        """
        self._api_key = api_key
        self._page_size = max(1, min(page_size, LOG_PAGE_SIZE))
        self._request_timeout = request_timeout
        self._api_url = api_url
        self._session = requests.Session()

    @property
    def page_size(self) -> int:
        return self._page_size

    def fetch_logs(
        self,
        chain_id: int,
        contract_address: str,
        topics: dict[str, str],
        from_block: int,
        to_block: int,
    ) -> list[EtherscanLogsResult]:
        """Fetch every log matching ``topics`` in one block window.

        Pages are requested until one comes back shorter than the page size.

        Args:
            chain_id: Chain ID for the network (1 for mainnet, etc.)
            contract_address: Contract whose logs are searched
            topics: Raw topic parameters (``topic0``, ``topic1``,
                ``topic1_2_opr`` ...) passed through to the API
            from_block: Starting block number (inclusive)
            to_block: Ending block number (inclusive)

        Returns:
            Raw log entries in API order

        Raises:
            EtherscanError: If the API rejects the query
        """
        logs: list[EtherscanLogsResult] = []
        page = 1

        while True:
            params: dict[str, Any] = {
                "chainid": str(chain_id),
                "module": "logs",
                "action": "getLogs",
                "address": contract_address,
                "fromBlock": str(from_block),
                "toBlock": str(to_block),
                "page": page,
                "offset": self._page_size,
                **topics,
            }
            result = self._result_list(self._call(params))
            logs.extend(result)

            if len(result) < self._page_size:
                break
            page += 1

        logger.debug(
            "Etherscan logs: chain=%d address=%s blocks=[%d,%d] found=%d pages=%d",
            chain_id,
            contract_address,
            from_block,
            to_block,
            len(logs),
            page,
        )
        return logs

    def get_block_number_by_time(
        self,
        chain_id: int,
        timestamp: int,
        closest: Literal["before", "after"] = "before",
    ) -> int | None:
        """Return the block closest to ``timestamp``, or None when Etherscan has no answer."""
        payload = self._call(
            {
                "chainid": str(chain_id),
                "module": "block",
                "action": "getblocknobytime",
                "timestamp": str(timestamp),
                "closest": closest,
            }
        )
        status = str(payload.get("status", "")).strip()
        result = payload.get("result")
        if status != "1" or not isinstance(result, str):
            logger.warning(
                "Etherscan block lookup failed: chain=%d timestamp=%d closest=%s error=%s",
                chain_id,
                timestamp,
                closest,
                result or payload.get("message"),
            )
            return None
        try:
            return int(result)
        except ValueError:
            logger.warning("Unexpected Etherscan block number: %r", result)
            return None

    def get_token_transfers(
        self,
        chain_id: int,
        address: str,
        *,
        start_block: int | None = None,
        end_block: int | None = None,
        page: int = 1,
        offset: int = 1000,
        sort: Literal["asc", "desc"] = "desc",
    ) -> list[EtherscanTokenTransfer]:
        """Fetch one page of ERC20 transfers touching ``address``."""
        params: dict[str, Any] = {
            "chainid": str(chain_id),
            "module": "account",
            "action": "tokentx",
            "address": address,
            "page": page,
            "offset": offset,
            "sort": sort,
        }
        if start_block:
            params["startblock"] = str(start_block)
        if end_block:
            params["endblock"] = str(end_block)
        return self._result_list(self._call(params))

    @staticmethod
    def _result_list(payload: EtherscanResponse) -> list[Any]:
        status = str(payload.get("status", "")).strip()
        message = str(payload.get("message", "")).strip().lower()
        result = payload.get("result")

        if status != "1":
            if isinstance(result, str) and result.strip().lower() == NO_RECORDS:
                return []
            if message == NO_RECORDS or result == []:
                return []
            raise EtherscanError(str(result or payload.get("message") or "unknown error"))

        if not isinstance(result, list):
            raise EtherscanError(f"Unexpected Etherscan result: {result!r}")
        return result

    @backoff.on_exception(
        backoff.expo,
        (requests.RequestException, ValueError, EtherscanRateLimitError),
        max_time=30,
        jitter=backoff.full_jitter,
    )
    def _call(self, params: dict[str, Any]) -> EtherscanResponse:
        """Make a single request to the Etherscan API."""
        response = self._session.get(
            self._api_url,
            params={**params, "apikey": self._api_key},
            timeout=self._request_timeout,
        )
        response.raise_for_status()

        payload = response.json()
        if not isinstance(payload, dict):
            raise ValueError("Unexpected Etherscan payload format")

        result = payload.get("result", "")
        if isinstance(result, str) and "rate limit" in result.lower():
            raise EtherscanRateLimitError(result)

        return payload  # type: ignore[return-value]
