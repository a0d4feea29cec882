from __future__ import annotations

from ...errors import UnsupportedProtocolError
from .aave import AaveAdapter
from .base import BaseProtocolAdapter, ProtocolMarket
from .compound import CompoundAdapter
from .pendle import PendleAdapter

PROTOCOL_REGISTRY: dict[str, type[BaseProtocolAdapter]] = {
    "aave": AaveAdapter,
    "compound": CompoundAdapter,
    "pendle": PendleAdapter,
}


def get_protocol_class(protocol_name: str) -> type[BaseProtocolAdapter]:
    """Get adapter class by protocol name.

    Args:
        protocol_name: Name of the protocol (case-insensitive)

    Returns:
        Adapter class

    Raises:
        UnsupportedProtocolError: If protocol_name is not recognized
    """
    normalized = protocol_name.lower()
    if normalized not in PROTOCOL_REGISTRY:
        raise UnsupportedProtocolError(
            f"Unsupported protocol '{protocol_name}'. "
            f"Available: {', '.join(PROTOCOL_REGISTRY.keys())}"
        )
    return PROTOCOL_REGISTRY[normalized]


__all__ = [
    "AaveAdapter",
    "BaseProtocolAdapter",
    "CompoundAdapter",
    "PROTOCOL_REGISTRY",
    "PendleAdapter",
    "ProtocolMarket",
    "get_protocol_class",
]
