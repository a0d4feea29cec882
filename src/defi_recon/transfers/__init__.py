from .collector import TransferLogCollector, address_to_topic
from .engine import (
    NetTransferEngine,
    NetTransferRequest,
    normalize_accounts,
    normalize_timestamp,
)
from .history import TokenTransfer, TokenTransferHistory

__all__ = [
    "NetTransferEngine",
    "NetTransferRequest",
    "TokenTransfer",
    "TokenTransferHistory",
    "TransferLogCollector",
    "address_to_topic",
    "normalize_accounts",
    "normalize_timestamp",
]
