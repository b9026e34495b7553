"""Data models for hedge trimming.

This module defines the immutable snapshot types the trim logic reads
(positions, hedging analysis, per-position metrics) and the request/result
types exchanged with the close executor and the broker.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import List, Optional, Union

PositionId = Union[int, str]


class TradeSide(Enum):
    """Position direction."""
    LONG = "long"
    SHORT = "short"

    @classmethod
    def from_value(cls, value: Union[str, "TradeSide"]) -> "TradeSide":
        """Parse a side from common broker spellings ('buy', 'long', 'sell', ...)."""
        if isinstance(value, cls):
            return value
        normalized = str(value).strip().lower()
        if normalized in ('long', 'buy'):
            return cls.LONG
        if normalized in ('short', 'sell'):
            return cls.SHORT
        raise ValueError(f"Unknown position side: {value!r}")


@dataclass(frozen=True)
class Position:
    """Read-only snapshot of an open position as reported by the broker."""
    id: PositionId
    symbol: str
    side: TradeSide
    volume: int  # units, 1 lot = 100000
    entry_price: float
    net_profit: float
    pips: float = 0.0

    def __post_init__(self):
        if not isinstance(self.side, TradeSide):
            object.__setattr__(self, 'side', TradeSide.from_value(self.side))
        if int(self.volume) != self.volume or self.volume <= 0:
            raise ValueError(
                f"Position {self.id} has invalid volume {self.volume!r}; "
                "expected a positive whole number of units"
            )
        object.__setattr__(self, 'volume', int(self.volume))
        if self.entry_price <= 0:
            raise ValueError(
                f"Position {self.id} has invalid entry price {self.entry_price!r}"
            )

    @property
    def is_long(self) -> bool:
        return self.side is TradeSide.LONG

    @property
    def is_short(self) -> bool:
        return self.side is TradeSide.SHORT


@dataclass(frozen=True)
class HedgingInfo:
    """Result of partitioning a position set by direction."""
    long_positions: List[Position] = field(default_factory=list)
    short_positions: List[Position] = field(default_factory=list)
    total_long_volume: int = 0
    total_short_volume: int = 0
    net_exposure: int = 0
    total_profit: float = 0.0
    is_hedged: bool = False


@dataclass(frozen=True)
class PositionMetric:
    """Trim-priority metrics for a single losing position."""
    position: Position
    distance_from_current_price: float
    loss_percentage: float
    priority: float


@dataclass(frozen=True)
class CloseRequest:
    """Request to close a position fully (volume is None) or partially."""
    position_id: PositionId
    volume: Optional[int] = None
    description: str = ""

    @property
    def is_partial(self) -> bool:
        return self.volume is not None


@dataclass
class TradeResult:
    """Broker answer to a single close call."""
    is_successful: bool
    error: Optional[str] = None
    position_id: Optional[PositionId] = None
    closed_volume: Optional[int] = None
