"""Hedge trimming module.

This module provides the decision and execution logic for hedged position
sets on a single instrument:
- Hedging detection (long/short partition and aggregates)
- Trim threshold evaluation per winning/losing scenario
- Losing-position priority scoring
- Lot-based partial close sizing
- Bounded-retry close execution with cancelable backoff

Example Usage:
    ```python
    from hedge_trimmer.hedge import (
        analyze_hedging, CloseExecutor, CloseExecutorConfig, TrimDecisionEngine
    )

    positions = await broker.get_positions('EURUSD')
    hedging_info = analyze_hedging(positions)

    executor = CloseExecutor(broker, CloseExecutorConfig(max_retries=3))
    engine = TrimDecisionEngine(executor, trim_fraction=0.75)

    for decision in engine.evaluate(hedging_info):
        if decision.should_trim:
            await engine.execute(decision, lambda: broker.get_current_price('EURUSD'))
    ```
"""

from .models import (
    Position,
    PositionId,
    TradeSide,
    HedgingInfo,
    PositionMetric,
    CloseRequest,
    TradeResult,
)

from .position_analyzer import (
    analyze_hedging,
    calculate_distance_from_current_price,
    calculate_loss_percentage,
    calculate_priority,
    calculate_position_metrics,
    prioritize_losing_positions,
    calculate_required_profit,
    should_trim_positions,
    calculate_volume_to_close,
    is_position_profitable,
    is_position_losing,
    get_break_even_price,
    get_position_summary,
    get_hedging_summary,
    UNITS_PER_LOT,
    MIN_VOLUME_UNITS,
)

from .close_executor import (
    CloseExecutor,
    CloseExecutorConfig,
    CloseOutcome,
    CloseState,
)

from .trim_engine import (
    TrimDecisionEngine,
    TrimDecision,
    TrimExecutionResult,
    LONG_WINNING_SCENARIO,
    SHORT_WINNING_SCENARIO,
)

__all__ = [
    # Models
    'Position',
    'PositionId',
    'TradeSide',
    'HedgingInfo',
    'PositionMetric',
    'CloseRequest',
    'TradeResult',

    # Position analysis
    'analyze_hedging',
    'calculate_distance_from_current_price',
    'calculate_loss_percentage',
    'calculate_priority',
    'calculate_position_metrics',
    'prioritize_losing_positions',
    'calculate_required_profit',
    'should_trim_positions',
    'calculate_volume_to_close',
    'is_position_profitable',
    'is_position_losing',
    'get_break_even_price',
    'get_position_summary',
    'get_hedging_summary',
    'UNITS_PER_LOT',
    'MIN_VOLUME_UNITS',

    # Close execution
    'CloseExecutor',
    'CloseExecutorConfig',
    'CloseOutcome',
    'CloseState',

    # Trim decisions
    'TrimDecisionEngine',
    'TrimDecision',
    'TrimExecutionResult',
    'LONG_WINNING_SCENARIO',
    'SHORT_WINNING_SCENARIO',
]
