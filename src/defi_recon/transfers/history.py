"""Paged ERC20 transfer history of one account, limited to catalog tokens."""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
from typing import Any

import requests

from ..blocks import BlockTimeIndex
from ..clients.etherscan import (
    EtherscanClient,
    EtherscanError,
    EtherscanRateLimitError,
    EtherscanTokenTransfer,
)
from ..errors import BlockRangeError, ConfigurationError, LogCollectionError
from ..logger import get_logger
from ..models import AccountRef, TokenCandidate, normalize_address
from ..settings import ReconSettings
from ..tokens import TokenMetadataResolver
from .engine import normalize_timestamp

logger = get_logger(__name__)

# Etherscan rejects page * offset above this window
MAX_RESULT_WINDOW = 10_000


@dataclass(frozen=True)
class TokenTransfer:
    sender: str
    recipient: str
    contract_address: str
    inbound: bool
    value: str  # raw integer amount, as a decimal string
    decimals: int
    timestamp: int

    def to_dict(self) -> dict[str, Any]:
        return {
            "from": self.sender,
            "to": self.recipient,
            "contractAddress": self.contract_address,
            "input": self.inbound,
            "value": self.value,
            "decimal": self.decimals,
            "timestamp": self.timestamp,
        }


class TokenTransferHistory:
    """Most recent transfers of the chain's catalog assets for one account.

    Only the first ``MAX_RESULT_WINDOW`` transfers reported by Etherscan are
    considered; ``page``/``size`` slice the filtered list locally.
    """

    def __init__(
        self,
        settings: ReconSettings,
        *,
        client: EtherscanClient,
        block_index: BlockTimeIndex,
        token_resolver: TokenMetadataResolver,
    ):
        self._settings = settings
        self._client = client
        self._block_index = block_index
        self._token_resolver = token_resolver

    async def get_token_transfers(
        self,
        account: str,
        *,
        chain_id: int | None = None,
        start_time: Any = None,
        end_time: Any = None,
        page: int = 1,
        size: int = 20,
    ) -> list[TokenTransfer]:
        """Fetch one page of transfers, newest first.

        Raises:
            ValueError: If ``account`` is invalid or ``page``/``size`` < 1
            ConfigurationError: If the chain has no asset catalog
            BlockRangeError: If the time window resolves to an inverted range
            LogCollectionError: If Etherscan rejects the query
        """
        if page < 1 or size < 1:
            raise ValueError("page and size must be positive")
        resolved_chain = self._settings.resolve_chain_id(chain_id)
        ref = AccountRef.parse(account)

        catalog = self._settings.wallet_tokens_for(resolved_chain) or {}
        candidates = [
            TokenCandidate(
                address=token["address"],
                symbol=token.get("symbol"),
                decimals=token.get("decimals"),
            )
            for token in catalog.get("assets", [])
            if token.get("address")
        ]
        tokens = await self._token_resolver.resolve_many(resolved_chain, candidates)
        if not tokens:
            raise ConfigurationError(f"No catalog tokens available for chain {resolved_chain}")
        token_addresses = {token.address for token in tokens if token.address}

        from_block = 0
        to_block = 0
        if start_time:
            from_block = await self._block_index.find_block_by_timestamp(
                resolved_chain, normalize_timestamp(start_time, "start"), "floor"
            )
        if end_time:
            to_block = await self._block_index.find_block_by_timestamp(
                resolved_chain, normalize_timestamp(end_time, "end"), "ceil"
            )
            if to_block < from_block:
                raise BlockRangeError("Unable to resolve block range for requested timestamps")

        try:
            raw = await asyncio.to_thread(
                self._client.get_token_transfers,
                resolved_chain,
                ref.checksum,
                start_block=from_block or None,
                end_block=to_block or None,
                page=1,
                offset=MAX_RESULT_WINDOW,
                sort="desc",
            )
        except (
            requests.RequestException,
            ValueError,
            EtherscanRateLimitError,
            EtherscanError,
        ) as e:
            raise LogCollectionError(
                f"Unable to fetch token transfers between blocks {from_block}-{to_block}: {e}"
            ) from e

        transfers = [
            transfer
            for transfer in (
                self._to_transfer(entry, ref, token_addresses) for entry in raw
            )
            if transfer is not None
        ]
        logger.debug(
            "Token transfer history for %s on chain %d: %d of %d entries match the catalog",
            ref.checksum,
            resolved_chain,
            len(transfers),
            len(raw),
        )

        offset = (page - 1) * size
        return transfers[offset : offset + size]

    @staticmethod
    def _to_transfer(
        entry: EtherscanTokenTransfer, ref: AccountRef, token_addresses: set[str]
    ) -> TokenTransfer | None:
        contract = normalize_address(entry.get("contractAddress"))
        if contract is None or contract not in token_addresses:
            return None
        try:
            decimals = int(entry.get("tokenDecimal") or 18)
            timestamp = int(entry.get("timeStamp") or 0)
        except ValueError:
            logger.warning("Skipping malformed token transfer %s", entry.get("hash"))
            return None
        recipient = entry.get("to") or ""
        return TokenTransfer(
            sender=entry.get("from") or "",
            recipient=recipient,
            contract_address=entry.get("contractAddress") or contract,
            inbound=recipient.lower() == ref.normalized,
            value=str(entry.get("value") or "0"),
            decimals=decimals,
            timestamp=timestamp,
        )
