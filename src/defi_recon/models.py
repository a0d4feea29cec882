"""Domain models and the JSON shapes of reconciliation results."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Generic, Literal, TypeVar

from web3 import Web3

from .amount import Amount, round_usd

T = TypeVar("T")

Direction = Literal["in", "out"]


class TokenRole(str, Enum):
    STABLE = "stable"
    VOLATILE = "volatile"
    UNKNOWN = "unknown"


def to_checksum(address: Any) -> str | None:
    """Checksum ``address``.

    A 42-character hex string that fails checksumming is returned unchanged,
    anything else that is not an address yields None.
    """
    if not isinstance(address, str) or not address:
        return None
    try:
        return Web3.to_checksum_address(address)
    except (TypeError, ValueError):
        if address.startswith("0x") and len(address) == 42:
            return address
        return None


def normalize_address(address: Any) -> str | None:
    checksum = to_checksum(address)
    return checksum.lower() if checksum else None


@dataclass(frozen=True)
class AccountRef:
    """A watched account: checksummed for display, lower-cased for identity."""

    checksum: str
    normalized: str

    @classmethod
    def parse(cls, address: str) -> "AccountRef":
        checksum = to_checksum(address)
        if checksum is None:
            raise ValueError(f"Invalid account address: {address!r}")
        return cls(checksum=checksum, normalized=checksum.lower())


@dataclass(frozen=True)
class TokenCandidate:
    """A token to evaluate, possibly missing symbol or decimals."""

    address: str
    symbol: str | None = None
    decimals: int | None = None


@dataclass(frozen=True)
class TokenInfo:
    address: str | None  # lower-cased, None for the native asset
    symbol: str
    decimals: int
    role: TokenRole = TokenRole.UNKNOWN


@dataclass(frozen=True)
class PriceQuote:
    chain_id: int
    address: str
    usd_price: float
    resolved_at: float  # unix seconds

    def is_fresh(self, now: float, ttl_ms: int) -> bool:
        return (now - self.resolved_at) * 1000 < ttl_ms


@dataclass(frozen=True)
class TransferLogEntry:
    """A decoded ERC20 Transfer event. Addresses are lower-cased."""

    token_address: str
    sender: str
    recipient: str
    amount: Amount
    block_number: int
    transaction_hash: str
    timestamp: int
    log_index: int = 0

    @property
    def key(self) -> tuple[str, int]:
        return (self.transaction_hash.lower(), self.log_index)


@dataclass
class TransferRecord:
    direction: Direction
    counterparty: str | None
    amount: float
    block_number: int
    transaction_hash: str
    timestamp: int

    def to_dict(self) -> dict[str, Any]:
        return {
            "direction": self.direction,
            "counterparty": self.counterparty,
            "amount": self.amount,
            "blockNumber": self.block_number,
            "transactionHash": self.transaction_hash,
            "timestamp": self.timestamp,
        }


@dataclass
class TokenBreakdown:
    symbol: str
    address: str | None
    decimals: int
    inbound_usd: float = 0.0
    outbound_usd: float = 0.0
    transfers: list[TransferRecord] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "symbol": self.symbol,
            "address": self.address,
            "decimals": self.decimals,
            "inboundUsd": self.inbound_usd,
            "outboundUsd": self.outbound_usd,
            "transfers": [record.to_dict() for record in self.transfers],
        }


@dataclass
class NetTransferAccountSummary:
    """Running inbound/outbound totals for one account.

    Deltas are folded in with ``apply`` and the figures are rounded by
    ``finalize``, which may only run once.
    """

    account: str
    inbound_usd: float = 0.0
    outbound_usd: float = 0.0
    net_transfer: float = 0.0
    breakdown: dict[str, TokenBreakdown] | None = None
    finalized: bool = field(default=False, repr=False, compare=False)

    def apply(
        self,
        direction: Direction,
        amount: float,
        token: TokenInfo,
        entry: TransferLogEntry,
        counterparty: str | None,
    ) -> None:
        if self.finalized:
            raise RuntimeError(f"Net transfer summary for {self.account} is finalized")

        if direction == "in":
            self.inbound_usd += amount
        else:
            self.outbound_usd += amount

        if self.breakdown is None:
            return

        key = token.address or token.symbol
        detail = self.breakdown.get(key)
        if detail is None:
            detail = TokenBreakdown(
                symbol=token.symbol, address=token.address, decimals=token.decimals
            )
            self.breakdown[key] = detail

        if direction == "in":
            detail.inbound_usd += amount
        else:
            detail.outbound_usd += amount

        detail.transfers.append(
            TransferRecord(
                direction=direction,
                counterparty=to_checksum(counterparty) if counterparty else None,
                amount=amount,
                block_number=entry.block_number,
                transaction_hash=entry.transaction_hash,
                timestamp=entry.timestamp,
            )
        )

    def finalize(self) -> "NetTransferAccountSummary":
        if self.finalized:
            raise RuntimeError(
                f"Net transfer summary for {self.account} was already finalized"
            )
        self.inbound_usd = round_usd(self.inbound_usd)
        self.outbound_usd = round_usd(self.outbound_usd)
        self.net_transfer = round_usd(self.inbound_usd - self.outbound_usd)
        if self.breakdown is not None:
            for detail in self.breakdown.values():
                detail.inbound_usd = round_usd(detail.inbound_usd)
                detail.outbound_usd = round_usd(detail.outbound_usd)
                for record in detail.transfers:
                    record.amount = round_usd(record.amount)
        self.finalized = True
        return self

    def to_dict(self) -> dict[str, Any]:
        return {
            "account": self.account,
            "inboundUsd": self.inbound_usd,
            "outboundUsd": self.outbound_usd,
            "netTransfer": self.net_transfer,
            "breakdown": (
                [detail.to_dict() for detail in self.breakdown.values()]
                if self.breakdown is not None
                else None
            ),
        }


@dataclass
class NetTransferResult:
    chain_id: int
    account: str
    start_time: int
    end_time: int
    inbound_usd: float
    outbound_usd: float
    net_transfer: float
    tokens_evaluated: int
    from_block: int
    to_block: int
    logs_evaluated: int
    breakdown: list[TokenBreakdown] | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "chainId": self.chain_id,
            "account": self.account,
            "startTime": self.start_time,
            "endTime": self.end_time,
            "inboundUsd": self.inbound_usd,
            "outboundUsd": self.outbound_usd,
            "netTransfer": self.net_transfer,
            "tokensEvaluated": self.tokens_evaluated,
            "fromBlock": self.from_block,
            "toBlock": self.to_block,
            "logsEvaluated": self.logs_evaluated,
            "breakdown": (
                [detail.to_dict() for detail in self.breakdown]
                if self.breakdown is not None
                else None
            ),
        }


@dataclass
class NetTransferBatchResult:
    chain_id: int
    start_time: int
    end_time: int
    tokens_evaluated: int
    from_block: int
    to_block: int
    logs_evaluated: int
    accounts: list[NetTransferAccountSummary]

    def to_dict(self) -> dict[str, Any]:
        return {
            "chainId": self.chain_id,
            "startTime": self.start_time,
            "endTime": self.end_time,
            "tokensEvaluated": self.tokens_evaluated,
            "fromBlock": self.from_block,
            "toBlock": self.to_block,
            "logsEvaluated": self.logs_evaluated,
            "accounts": [summary.to_dict() for summary in self.accounts],
        }


@dataclass
class UnifiedBalanceItem:
    """One non-zero position held in a protocol or directly in the wallet."""

    protocol: str
    symbol: str
    address: str | None
    amount: float
    usd_value: float
    price: float | None
    decimals: int | None
    is_stable: bool
    market: str | None = None
    category: str | None = None
    extra: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {"protocol": self.protocol}
        if self.market is not None:
            data["market"] = self.market
        if self.category is not None:
            data["category"] = self.category
        data.update(
            {
                "symbol": self.symbol,
                "address": self.address,
                "amount": self.amount,
                "usdValue": self.usd_value,
                "price": self.price,
                "decimals": self.decimals,
                "isStable": self.is_stable,
            }
        )
        data.update(self.extra)
        return data


@dataclass
class ProtocolBalanceResult:
    """Raw adapter output before totals are attached."""

    items: list[UnifiedBalanceItem]
    metadata: dict[str, Any] = field(default_factory=dict)


@dataclass
class SymbolTotal:
    amount: float = 0.0
    usd_value: float = 0.0


@dataclass
class ProtocolBalance:
    protocol: str
    chain_id: int
    account: str
    currency: str
    usd: float
    breakdown: dict[str, SymbolTotal]
    items: list[UnifiedBalanceItem]
    metadata: dict[str, Any]
    timestamp: int  # unix milliseconds
    stable_usd: float = 0.0

    def to_dict(self) -> dict[str, Any]:
        totals: dict[str, Any] = {
            self.currency: self.usd,
            "usd": self.usd,
            "breakdown": {
                symbol: {"amount": total.amount, "usdValue": total.usd_value}
                for symbol, total in self.breakdown.items()
            },
        }
        return {
            "protocol": self.protocol,
            "chainId": self.chain_id,
            "account": self.account,
            "currency": self.currency,
            "totals": totals,
            "items": [item.to_dict() for item in self.items],
            "metadata": self.metadata,
            "timestamp": self.timestamp,
        }


@dataclass(frozen=True)
class WalletFailure:
    token: str | None
    error: str

    def to_dict(self) -> dict[str, Any]:
        return {"token": self.token, "error": self.error}


@dataclass
class WalletBalance:
    stable: list[UnifiedBalanceItem] = field(default_factory=list)
    assets: list[UnifiedBalanceItem] = field(default_factory=list)
    usd: float = 0.0
    stable_usd: float = 0.0
    asset_usd: float = 0.0
    failures: list[WalletFailure] = field(default_factory=list)
    tokens_evaluated: int = 0

    def to_dict(self) -> dict[str, Any]:
        return {
            "stable": [item.to_dict() for item in self.stable],
            "assets": [item.to_dict() for item in self.assets],
            "totals": {
                "usd": self.usd,
                "stableUsd": self.stable_usd,
                "assetUsd": self.asset_usd,
            },
            "failures": [failure.to_dict() for failure in self.failures],
            "metadata": {"tokensEvaluated": self.tokens_evaluated},
        }


@dataclass(frozen=True)
class BalanceFailure:
    protocol: str
    error: str
    token: str | None = None

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {"protocol": self.protocol}
        if self.token is not None:
            data["token"] = self.token
        data["error"] = self.error
        return data


@dataclass
class UnifiedBalanceSummary:
    account: str
    chain_id: int
    currency: str
    usd: float
    deposits_usd: float
    wallet_usd: float
    stable_usd: float
    protocols: list[ProtocolBalance]
    wallet: WalletBalance
    failures: list[BalanceFailure]
    timestamp: int  # unix milliseconds

    def to_dict(self) -> dict[str, Any]:
        return {
            "account": self.account,
            "chainId": self.chain_id,
            "currency": self.currency,
            "totals": {
                "usd": self.usd,
                "depositsUsd": self.deposits_usd,
                "walletUsd": self.wallet_usd,
                "stableUsd": self.stable_usd,
            },
            "protocols": [balance.to_dict() for balance in self.protocols],
            "wallet": self.wallet.to_dict(),
            "failures": [failure.to_dict() for failure in self.failures],
            "timestamp": self.timestamp,
        }


@dataclass(frozen=True)
class ItemResult(Generic[T]):
    """Outcome of reading one item: a value, a failure message, or neither (skipped)."""

    value: T | None = None
    error: str | None = None

    @property
    def ok(self) -> bool:
        return self.error is None

    @classmethod
    def from_outcome(cls, outcome: T | BaseException | None) -> "ItemResult[T]":
        """Wrap an ``asyncio.gather(..., return_exceptions=True)`` entry."""
        if isinstance(outcome, BaseException):
            return cls(error=str(outcome) or type(outcome).__name__)
        return cls(value=outcome)
