"""ERC20 Transfer log retrieval with adaptive block chunking."""

from __future__ import annotations

import asyncio
from functools import lru_cache
from typing import Any

import requests
from eth_typing import HexStr
from web3 import Web3
from web3.contract.contract import ContractEvent

from ..abi import load_erc20_abi
from ..amount import Amount
from ..clients.etherscan import (
    EtherscanClient,
    EtherscanError,
    EtherscanLogsResult,
    EtherscanRateLimitError,
)
from ..constants import DEFAULT_MAX_BLOCK_SPAN, MIN_BLOCK_SPAN, TRANSFER_TOPIC
from ..errors import LogCollectionError
from ..logger import get_logger
from ..models import TransferLogEntry

logger = get_logger(__name__)

FETCH_ERRORS = (
    requests.RequestException,
    ValueError,
    EtherscanRateLimitError,
    EtherscanError,
)


def address_to_topic(address: str) -> str:
    """Left-pad a 20-byte address into a 32-byte log topic."""
    if not Web3.is_address(address.lower()):
        raise ValueError(f"Invalid address: {address!r}")
    return Web3.to_hex(Web3.to_bytes(hexstr=HexStr(address)).rjust(32, b"\x00"))


@lru_cache(maxsize=None)
def transfer_event() -> ContractEvent:
    """ERC20 Transfer event used to decode raw logs; needs no provider."""
    return Web3().eth.contract(abi=load_erc20_abi()).events.Transfer()


def _to_int(value: str | None) -> int:
    if not value:
        return 0
    return Web3.to_int(hexstr=HexStr(value))


def _format_log(raw: EtherscanLogsResult) -> dict[str, Any]:
    """Convert an Etherscan log entry to the web3 log shape."""
    return {
        "address": raw.get("address"),
        "blockHash": raw.get("blockHash") or "0x0",
        "blockNumber": _to_int(raw.get("blockNumber")),
        "data": raw.get("data") or "0x",
        "logIndex": _to_int(raw.get("logIndex")),
        "topics": [
            Web3.to_bytes(hexstr=HexStr(topic)) for topic in raw.get("topics") or [] if topic
        ],
        "transactionHash": raw.get("transactionHash") or "0x0",
        "transactionIndex": _to_int(raw.get("transactionIndex")),
    }


def decode_transfer_log(
    raw: EtherscanLogsResult, token_address: str, decimals: int
) -> TransferLogEntry | None:
    """Decode a raw Etherscan log into a TransferLogEntry.

    Entries that do not decode as an ERC20 Transfer, or whose block metadata
    is unreadable, are logged and skipped.
    """
    try:
        formatted = _format_log(raw)
        event = transfer_event().process_log(formatted)
        timestamp = _to_int(raw.get("timeStamp"))
    except Exception as e:
        logger.warning(
            "Skipping undecodable transfer log in tx %s: %s",
            raw.get("transactionHash"),
            e,
        )
        return None

    args = event["args"]
    return TransferLogEntry(
        token_address=(raw.get("address") or token_address).lower(),
        sender=args["from"].lower(),
        recipient=args["to"].lower(),
        amount=Amount(int(args["value"]), decimals),
        block_number=formatted["blockNumber"],
        transaction_hash=raw.get("transactionHash") or "",
        timestamp=timestamp,
        log_index=formatted["logIndex"],
    )


class TransferLogCollector:
    """Collects Transfer events for a token where an account is sender or receiver.

    The block range is walked in chunks of at most ``max_block_span`` blocks.
    When a chunk fails, the span is halved and the same window retried; once
    the span is down to ``min_block_span`` a failure is fatal.
    """

    def __init__(
        self,
        client: EtherscanClient,
        *,
        max_block_span: int = DEFAULT_MAX_BLOCK_SPAN,
        min_block_span: int = MIN_BLOCK_SPAN,
    ):
        self._client = client
        self._max_block_span = max_block_span
        self._min_block_span = min_block_span

    async def collect(
        self,
        chain_id: int,
        token_address: str,
        account: str,
        from_block: int,
        to_block: int,
        *,
        decimals: int = 18,
        max_block_span: int | None = None,
    ) -> list[TransferLogEntry]:
        """Collect and decode Transfer logs, in block order."""
        raw_logs = await self.collect_raw(
            chain_id,
            token_address,
            account,
            from_block,
            to_block,
            max_block_span=max_block_span,
        )
        entries: list[TransferLogEntry] = []
        for raw in raw_logs:
            entry = decode_transfer_log(raw, token_address, decimals)
            if entry is not None:
                entries.append(entry)
        return entries

    async def collect_raw(
        self,
        chain_id: int,
        token_address: str,
        account: str,
        from_block: int,
        to_block: int,
        *,
        max_block_span: int | None = None,
    ) -> list[EtherscanLogsResult]:
        """Collect raw Etherscan log entries for ``[from_block, to_block]``.

        Raises:
            ValueError: If ``account`` is not a 20-byte address
            LogCollectionError: If a chunk keeps failing at the minimum span
        """
        if from_block > to_block:
            return []

        topic = address_to_topic(account)
        topics = {
            "topic0": TRANSFER_TOPIC,
            "topic1": topic,
            "topic1_2_opr": "or",
            "topic2": topic,
        }

        span = max(1, int(max_block_span or self._max_block_span))
        start = from_block
        logs: list[EtherscanLogsResult] = []

        while start <= to_block:
            end = min(start + span - 1, to_block)
            try:
                chunk = await asyncio.to_thread(
                    self._client.fetch_logs,
                    chain_id,
                    token_address,
                    topics,
                    start,
                    end,
                )
            except FETCH_ERRORS as e:
                if span <= self._min_block_span:
                    raise LogCollectionError(
                        f"Unable to fetch logs for {token_address} between blocks {start}-{end}: {e}"
                    ) from e
                span = max(self._min_block_span, span // 2)
                logger.warning(
                    "Reducing block span to %d for %s: %s", span, token_address, e
                )
                continue

            logs.extend(chunk)
            start = end + 1

        logger.debug(
            "Collected %d transfer logs for %s on chain %d (blocks %d-%d)",
            len(logs),
            token_address,
            chain_id,
            from_block,
            to_block,
        )
        return logs
