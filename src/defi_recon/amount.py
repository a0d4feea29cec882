from __future__ import annotations

import math
from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal

from .constants import USD_DECIMAL_PLACES


@dataclass(frozen=True)
class Amount:
    """A token quantity in raw integer units plus the decimals needed to read it.

    Built once where data enters the system (log decoding, contract reads) and
    passed around unchanged; ``value`` is the only conversion to a float.
    """

    raw: int
    decimals: int

    def __post_init__(self) -> None:
        if self.raw < 0:
            raise ValueError(f"Amount cannot be negative: {self.raw}")
        if self.decimals < 0:
            raise ValueError(f"Decimals cannot be negative: {self.decimals}")

    @property
    def value(self) -> float:
        return float(Decimal(self.raw).scaleb(-self.decimals))

    @property
    def is_zero(self) -> bool:
        return self.raw == 0


def round_usd(value: float) -> float:
    """Round a USD figure half-up to the reporting precision.

    Non-finite values collapse to 0.
    """
    if not math.isfinite(value):
        return 0.0
    quantum = Decimal(1).scaleb(-USD_DECIMAL_PLACES)
    return float(Decimal(repr(value)).quantize(quantum, rounding=ROUND_HALF_UP))
