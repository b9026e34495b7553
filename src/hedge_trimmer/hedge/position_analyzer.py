"""Position analysis functions for hedge trimming.

Pure functions over immutable position snapshots:
- Hedging detection (long/short partition and aggregates)
- Trim threshold evaluation
- Losing-position priority scoring and ordering
- Lot-based close volume computation
- Text summaries used in diagnostic logs
"""

import logging
from decimal import Decimal, ROUND_HALF_EVEN
from typing import Iterable, List

from .models import HedgingInfo, Position, PositionMetric

logger = logging.getLogger(__name__)


UNITS_PER_LOT = 100000
MIN_VOLUME_UNITS = 1000  # 0.01 lot
LOT_STEP = Decimal('0.01')

# Priority weights. Distance is in price units and loss in account currency;
# the two are not normalized against each other.
DISTANCE_WEIGHT = 0.6
LOSS_WEIGHT = 0.4


def analyze_hedging(positions: Iterable[Position]) -> HedgingInfo:
    """Partition positions into long and short groups.

    Args:
        positions: Positions for a single symbol

    Returns:
        HedgingInfo with aggregates; is_hedged is True only when both
        groups are non-empty
    """
    position_list = list(positions)
    long_positions = [p for p in position_list if p.is_long]
    short_positions = [p for p in position_list if p.is_short]

    total_long_volume = sum(p.volume for p in long_positions)
    total_short_volume = sum(p.volume for p in short_positions)

    return HedgingInfo(
        long_positions=long_positions,
        short_positions=short_positions,
        total_long_volume=total_long_volume,
        total_short_volume=total_short_volume,
        net_exposure=total_long_volume - total_short_volume,
        total_profit=sum(p.net_profit for p in position_list),
        is_hedged=bool(long_positions) and bool(short_positions),
    )


def calculate_distance_from_current_price(position: Position, current_price: float) -> float:
    """Absolute distance between entry price and the current price."""
    return abs(position.entry_price - current_price)


def calculate_loss_percentage(position: Position) -> float:
    """Loss as a percentage of the invested amount (0 for non-losing positions)."""
    if position.net_profit >= 0:
        return 0.0

    invested_amount = position.volume * position.entry_price
    return abs(position.net_profit) / invested_amount * 100


def calculate_priority(position: Position, current_price: float) -> float:
    """Weighted trim priority: 0.6 x price distance + 0.4 x loss magnitude."""
    distance = calculate_distance_from_current_price(position, current_price)
    loss_magnitude = abs(position.net_profit)
    return distance * DISTANCE_WEIGHT + loss_magnitude * LOSS_WEIGHT


def calculate_position_metrics(
    positions: Iterable[Position],
    current_price: float
) -> List[PositionMetric]:
    """Compute distance, loss percentage and priority for each position."""
    return [
        PositionMetric(
            position=p,
            distance_from_current_price=calculate_distance_from_current_price(p, current_price),
            loss_percentage=calculate_loss_percentage(p),
            priority=calculate_priority(p, current_price),
        )
        for p in positions
    ]


def prioritize_losing_positions(
    losing_positions: Iterable[Position],
    current_price: float
) -> List[Position]:
    """Order losing positions for trimming.

    Highest priority first; equal priorities are ordered by position id
    ascending so the result is reproducible.

    Args:
        losing_positions: Positions to rank
        current_price: Current reference (bid) price

    Returns:
        Positions sorted by descending priority
    """
    metrics = calculate_position_metrics(losing_positions, current_price)
    metrics.sort(key=lambda m: (-m.priority, m.position.id))
    return [m.position for m in metrics]


def calculate_required_profit(losing_positions: Iterable[Position], trim_fraction: float) -> float:
    """Profit the winning side must reach before a trim is triggered."""
    total_losing_loss = abs(sum(p.net_profit for p in losing_positions))
    return total_losing_loss * trim_fraction


def should_trim_positions(
    winning_positions: Iterable[Position],
    losing_positions: Iterable[Position],
    trim_fraction: float
) -> bool:
    """Check whether winning profit covers the required share of the losing loss.

    The comparison is inclusive: exact equality triggers a trim.
    """
    total_winning_profit = sum(p.net_profit for p in winning_positions)
    return total_winning_profit >= calculate_required_profit(losing_positions, trim_fraction)


def calculate_volume_to_close(position: Position, trim_fraction: float) -> int:
    """Compute how many units of a losing position to close.

    The target is trim_fraction of the position, rounded to the nearest
    0.01 lot (half-to-even). The full volume is returned instead of a
    partial amount when the rounded target reaches the whole position or
    the unrounded target is below the minimum tradeable size.

    Args:
        position: Losing position to trim
        trim_fraction: Fraction of the position to close

    Returns:
        Units to close, never more than position.volume
    """
    position_lots = Decimal(position.volume) / Decimal(UNITS_PER_LOT)
    target_lots = position_lots * Decimal(str(trim_fraction))
    target_units = target_lots * UNITS_PER_LOT
    rounded_lots = target_lots.quantize(LOT_STEP, rounding=ROUND_HALF_EVEN)
    volume_to_close = int(rounded_lots * UNITS_PER_LOT)

    if volume_to_close >= position.volume:
        return position.volume

    if target_units < MIN_VOLUME_UNITS:
        logger.debug(
            f"Trim of {target_units:f} units for {position.id} is below the minimum "
            f"of {MIN_VOLUME_UNITS}; closing entire position"
        )
        return position.volume

    return volume_to_close


def is_position_profitable(position: Position, minimum_profit: float = 0.0) -> bool:
    return position.net_profit > minimum_profit


def is_position_losing(position: Position, maximum_loss: float = 0.0) -> bool:
    return position.net_profit < maximum_loss


def get_break_even_price(positions: Iterable[Position]) -> float:
    """Volume-weighted average entry price (0.0 for no positions)."""
    position_list = list(positions)
    if not position_list:
        return 0.0

    total_weighted_price = sum(p.entry_price * p.volume for p in position_list)
    total_volume = sum(p.volume for p in position_list)
    return total_weighted_price / total_volume


def get_position_summary(position: Position) -> str:
    return (
        f"ID: {position.id}, Type: {position.side.value}, Volume: {position.volume:,}, "
        f"Entry: {position.entry_price:.5f}, P&L: {position.net_profit:.2f}, "
        f"Pips: {position.pips:.1f}"
    )


def get_hedging_summary(hedging_info: HedgingInfo) -> str:
    return (
        f"Long Volume: {hedging_info.total_long_volume:,}, "
        f"Short Volume: {hedging_info.total_short_volume:,}, "
        f"Net Exposure: {hedging_info.net_exposure:,}, "
        f"Total P&L: {hedging_info.total_profit:.2f}, "
        f"Is Hedged: {hedging_info.is_hedged}"
    )
