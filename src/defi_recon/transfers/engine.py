"""Net inbound/outbound USD flow of watched accounts over a time window."""

from __future__ import annotations

import math
import time
from dataclasses import dataclass, field, replace
from datetime import datetime
from typing import Any, Callable, Iterable, Mapping, Sequence

from ..blocks import BlockTimeIndex
from ..constants import MIN_ENGINE_BLOCK_SPAN
from ..errors import BlockRangeError, ConfigurationError
from ..logger import get_logger
from ..models import (
    AccountRef,
    NetTransferAccountSummary,
    NetTransferBatchResult,
    NetTransferResult,
    TokenCandidate,
    TokenInfo,
    TokenRole,
    TransferLogEntry,
    normalize_address,
)
from ..prices import PriceResolver, resolve_price_override
from ..rpc import RpcPool
from ..settings import (
    GLOBAL_EXCLUSION_KEY,
    ReconSettings,
    normalize_transfer_exclusions,
)
from ..tokens import StableRegistry, TokenMetadataResolver
from .collector import TransferLogCollector

logger = get_logger(__name__)

MILLISECOND_THRESHOLD = 1e12


@dataclass
class NetTransferRequest:
    """Inputs of a net-transfer computation.

    ``accounts`` accepts addresses, mappings with an ``address`` or
    ``account`` key, and arbitrarily nested lists of those. ``tokens``
    accepts a list of addresses or token mappings, or a mapping of symbol to
    address or token mapping.
    """

    start_time: Any
    end_time: Any = None
    chain_id: int | None = None
    primary: str | None = None
    accounts: Any = None
    tokens: Sequence[Any] | Mapping[str, Any] | None = None
    exclude_addresses: Any = None
    include_breakdown: bool = False
    max_block_span: int | None = None
    price_overrides: dict[str, float] = field(default_factory=dict)


def normalize_accounts(*sources: Any) -> list[AccountRef]:
    """Flatten account inputs into unique refs, in first-seen order.

    Raises:
        ValueError: If an entry is not a valid address
    """
    ordered: list[AccountRef] = []
    seen: set[str] = set()

    def add(value: Any) -> None:
        if not value:
            return
        if isinstance(value, (list, tuple, set, frozenset)):
            for entry in value:
                add(entry)
            return
        if isinstance(value, Mapping):
            add(value.get("address") or value.get("account"))
            return
        ref = AccountRef.parse(value)
        if ref.normalized not in seen:
            seen.add(ref.normalized)
            ordered.append(ref)

    for source in sources:
        add(source)
    return ordered


def normalize_timestamp(value: Any, role: str = "timestamp") -> int:
    """Coerce ``value`` to whole unix seconds.

    Accepts datetimes, ISO-8601 strings, numeric strings, ints and floats.
    Values above 1e12 are taken as milliseconds.

    Raises:
        ValueError: If the value is negative, non-finite or unparseable
    """
    if isinstance(value, datetime):
        numeric = value.timestamp()
    elif isinstance(value, str):
        text = value.strip()
        try:
            numeric = float(text)
        except ValueError:
            try:
                numeric = datetime.fromisoformat(text).timestamp()
            except ValueError as e:
                raise ValueError(f"Invalid {role}: {value!r}") from e
    elif isinstance(value, bool) or not isinstance(value, (int, float)):
        raise ValueError(f"Invalid {role}: {value!r}")
    else:
        numeric = float(value)

    if not math.isfinite(numeric) or numeric < 0:
        raise ValueError(f"Invalid {role}: {value!r}")

    if numeric > MILLISECOND_THRESHOLD:
        numeric = numeric / 1000
    return int(math.floor(numeric))


def token_candidates(tokens: Sequence[Any] | Mapping[str, Any] | None) -> list[TokenCandidate]:
    """Turn explicit token overrides into candidates, merged by address."""
    merged: dict[str, TokenCandidate] = {}

    def add(entry: Any, symbol_hint: str | None = None) -> None:
        if not entry:
            return
        if isinstance(entry, str):
            address = normalize_address(entry)
            symbol, decimals = symbol_hint, None
        elif isinstance(entry, Mapping):
            address = normalize_address(
                entry.get("address") or entry.get("token") or entry.get("addr")
            )
            symbol = entry.get("symbol") or symbol_hint
            decimals = entry.get("decimals")
        else:
            raise ValueError(f"Unsupported token entry: {entry!r}")

        if address is None:
            logger.warning("Ignoring token override with invalid address: %r", entry)
            return

        current = merged.get(address)
        merged[address] = TokenCandidate(
            address=address,
            symbol=(str(symbol).upper() if symbol else None)
            or (current.symbol if current else None),
            decimals=int(decimals)
            if decimals is not None
            else (current.decimals if current else None),
        )

    if isinstance(tokens, Mapping):
        for key, value in tokens.items():
            add(value, symbol_hint=str(key))
    elif tokens:
        for entry in tokens:
            add(entry)
    return list(merged.values())


class NetTransferEngine:
    """Sums USD value moving in and out of a set of watched accounts.

    Transfers are read from ERC20 Transfer logs between the blocks bracketing
    ``[start_time, end_time)``. A transfer counts inbound for a watched
    recipient and outbound for a watched sender; transfers between two
    watched accounts count on both sides. Self-transfers and transfers with
    an excluded address on either side are ignored.
    """

    def __init__(
        self,
        settings: ReconSettings,
        *,
        rpc: RpcPool,
        block_index: BlockTimeIndex,
        collector: TransferLogCollector,
        token_resolver: TokenMetadataResolver,
        stable_registry: StableRegistry,
        price_resolver: PriceResolver | None = None,
        clock: Callable[[], float] = time.time,
    ):
        self._settings = settings
        self._rpc = rpc
        self._block_index = block_index
        self._collector = collector
        self._token_resolver = token_resolver
        self._stable_registry = stable_registry
        self._price_resolver = price_resolver
        self._clock = clock

    async def get_net_transfer(self, request: NetTransferRequest) -> NetTransferResult:
        """Net transfer of the primary account (the first one listed)."""
        if request.primary is None and not request.accounts:
            request = replace(request, primary=self._settings.default_account_required)

        computed = await self._compute(request)
        summary = computed.accounts[0]
        return NetTransferResult(
            chain_id=computed.chain_id,
            account=summary.account,
            start_time=computed.start_time,
            end_time=computed.end_time,
            inbound_usd=summary.inbound_usd,
            outbound_usd=summary.outbound_usd,
            net_transfer=summary.net_transfer,
            tokens_evaluated=computed.tokens_evaluated,
            from_block=computed.from_block,
            to_block=computed.to_block,
            logs_evaluated=computed.logs_evaluated,
            breakdown=list(summary.breakdown.values())
            if summary.breakdown is not None
            else None,
        )

    async def get_net_transfers(self, request: NetTransferRequest) -> NetTransferBatchResult:
        """Net transfer of every watched account, in request order."""
        return await self._compute(request)

    async def resolve_tokens(
        self, chain_id: int, tokens: Sequence[Any] | Mapping[str, Any] | None
    ) -> list[TokenInfo]:
        """Tokens to evaluate: explicit overrides, else the chain's stablecoins."""
        candidates = token_candidates(tokens)
        if not candidates:
            candidates = self._default_candidates(chain_id)
        return await self._token_resolver.resolve_many(chain_id, candidates)

    def _default_candidates(self, chain_id: int) -> list[TokenCandidate]:
        merged: dict[str, TokenCandidate] = {}
        catalog = self._settings.wallet_tokens_for(chain_id)
        for token in (catalog or {}).get("stable", []):
            address = normalize_address(token.get("address"))
            if address is None:
                continue
            merged.setdefault(
                address,
                TokenCandidate(
                    address=address,
                    symbol=token.get("symbol"),
                    decimals=token.get("decimals"),
                ),
            )
        for address in sorted(self._stable_registry.stable_addresses(chain_id)):
            merged.setdefault(address, TokenCandidate(address=address))
        return list(merged.values())

    def exclusion_set(self, chain_id: int, extra: Any = None) -> set[str]:
        exclusions = self._settings.exclusions_for(chain_id)
        if extra:
            extra_map = normalize_transfer_exclusions(extra)
            exclusions |= extra_map[GLOBAL_EXCLUSION_KEY]
            exclusions |= extra_map.get(str(chain_id), set())
        return exclusions

    async def _token_price(
        self, chain_id: int, token: TokenInfo, overrides: Mapping[str, float]
    ) -> float:
        if token.role == TokenRole.STABLE:
            return 1.0
        override = resolve_price_override(
            {**self._settings.price_overrides, **overrides}, token.symbol, token.address
        )
        if override is not None:
            return override
        if self._price_resolver is None:
            raise ConfigurationError(f"No price source for non-stable token {token.symbol}")
        return await self._price_resolver.get_usd_price(
            chain_id, address=token.address, symbol=token.symbol
        )

    async def _compute(self, request: NetTransferRequest) -> NetTransferBatchResult:
        chain_id = self._settings.resolve_chain_id(request.chain_id)

        refs = normalize_accounts(request.primary, request.accounts)
        if not refs and self._settings.default_account:
            refs = normalize_accounts(self._settings.default_account)
        if not refs:
            raise ValueError("At least one account is required for net transfer analysis")

        start = normalize_timestamp(request.start_time, "start")
        end = normalize_timestamp(
            request.end_time if request.end_time is not None else self._clock(), "end"
        )
        if end <= start:
            raise ValueError("endTime must be greater than startTime")

        if not self._rpc.has_rpc(chain_id):
            raise ConfigurationError(f"No RPC URL configured for chain {chain_id}")

        span_limit = max(
            MIN_ENGINE_BLOCK_SPAN,
            int(request.max_block_span or self._settings.max_block_span),
        )

        tokens = await self.resolve_tokens(chain_id, request.tokens)
        if not tokens:
            raise ConfigurationError(f"No stable tokens available for chain {chain_id}")

        exclusions = self.exclusion_set(chain_id, request.exclude_addresses)

        from_block = await self._block_index.find_block_by_timestamp(chain_id, start, "floor")
        to_block = await self._block_index.find_block_by_timestamp(chain_id, end, "ceil")
        if to_block < from_block:
            raise BlockRangeError("Unable to resolve block range for requested timestamps")

        summaries: dict[str, NetTransferAccountSummary] = {
            ref.normalized: NetTransferAccountSummary(
                account=ref.checksum,
                breakdown={} if request.include_breakdown else None,
            )
            for ref in refs
        }

        logger.info(
            "Computing net transfers for %d account(s) over %d token(s) on chain %d, blocks %d-%d",
            len(refs),
            len(tokens),
            chain_id,
            from_block,
            to_block,
        )

        total_logs = 0
        for token in tokens:
            entries = await self._collect_token_logs(
                chain_id, token, refs, from_block, to_block, span_limit
            )
            total_logs += len(entries)
            relevant = [
                entry
                for entry in entries
                if self._counts(entry, start, end, exclusions)
            ]
            if not relevant:
                continue

            price = await self._token_price(chain_id, token, request.price_overrides)
            for entry in relevant:
                usd = entry.amount.value * price
                if not math.isfinite(usd) or usd <= 0:
                    continue
                recipient = summaries.get(entry.recipient)
                if recipient is not None:
                    recipient.apply("in", usd, token, entry, counterparty=entry.sender)
                sender = summaries.get(entry.sender)
                if sender is not None:
                    sender.apply("out", usd, token, entry, counterparty=entry.recipient)

        return NetTransferBatchResult(
            chain_id=chain_id,
            start_time=start,
            end_time=end,
            tokens_evaluated=len(tokens),
            from_block=from_block,
            to_block=to_block,
            logs_evaluated=total_logs,
            accounts=[summaries[ref.normalized].finalize() for ref in refs],
        )

    async def _collect_token_logs(
        self,
        chain_id: int,
        token: TokenInfo,
        refs: Iterable[AccountRef],
        from_block: int,
        to_block: int,
        span_limit: int,
    ) -> list[TransferLogEntry]:
        """Logs touching any watched account, each (tx hash, log index) once."""
        unique: dict[tuple[str, int], TransferLogEntry] = {}
        for ref in refs:
            entries = await self._collector.collect(
                chain_id,
                token.address or "",
                ref.normalized,
                from_block,
                to_block,
                decimals=token.decimals,
                max_block_span=span_limit,
            )
            for entry in entries:
                unique.setdefault(entry.key, entry)
        return list(unique.values())

    @staticmethod
    def _counts(
        entry: TransferLogEntry, start: int, end: int, exclusions: set[str]
    ) -> bool:
        if entry.timestamp < start or entry.timestamp >= end:
            return False
        if entry.sender in exclusions or entry.recipient in exclusions:
            return False
        if entry.sender == entry.recipient:
            return False
        return entry.amount.raw > 0
