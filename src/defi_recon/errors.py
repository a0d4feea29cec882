"""Exception taxonomy shared across the reconciliation core."""

from __future__ import annotations


class ReconError(Exception):
    """Base class for reconciliation failures."""

    pass


class ConfigurationError(ReconError):
    """Raised when a chain, protocol or token catalog is not configured."""

    pass


class UnsupportedChainError(ConfigurationError):
    """Raised when an external service has no mapping for a chain."""

    pass


class UnsupportedProtocolError(ReconError, ValueError):
    """Raised when a protocol name is not part of the adapter registry."""

    pass


class BlockRangeError(ReconError):
    """Raised when a time window resolves to an inverted block range."""

    pass


class BlockLookupError(ReconError):
    """Raised when a timestamp cannot be mapped to a block number."""

    pass


class LogCollectionError(ReconError):
    """Raised when transfer logs cannot be fetched even at the minimum span."""

    pass


class PriceNotFoundError(ReconError):
    """Raised when the price feed has no USD price for a token."""

    pass
