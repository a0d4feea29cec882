from __future__ import annotations

from .protocols import PROTOCOL_REGISTRY, get_protocol_class

__all__ = ["PROTOCOL_REGISTRY", "get_protocol_class"]
