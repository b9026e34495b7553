"""Trim decision engine for hedged position sets.

This module provides the TrimDecisionEngine class, which evaluates the two
winning/losing scenarios of a hedged position set and, when winning profit
covers the configured fraction of the losing loss, closes the winners and
trims the losers in priority order.
"""

import inspect
from dataclasses import dataclass, field
from typing import Awaitable, Callable, List, Optional, Union

from ..utils import get_logger
from .close_executor import CloseExecutor, CloseOutcome
from .models import CloseRequest, HedgingInfo, Position
from .position_analyzer import (
    calculate_required_profit,
    calculate_volume_to_close,
    prioritize_losing_positions,
    should_trim_positions,
)

logger = get_logger(__name__)

LONG_WINNING_SCENARIO = "Long winning, Short losing"
SHORT_WINNING_SCENARIO = "Short winning, Long losing"

PriceProvider = Callable[[], Union[float, Awaitable[float]]]


@dataclass
class TrimDecision:
    """Evaluation of one winning/losing scenario."""
    scenario: str
    winning_positions: List[Position]
    losing_positions: List[Position]
    total_winning_profit: float = 0.0
    total_losing_loss: float = 0.0
    required_profit: float = 0.0
    should_trim: bool = False
    skipped: bool = False


@dataclass
class TrimExecutionResult:
    """Outcome of executing a triggered trim decision."""
    decision: TrimDecision
    current_price: Optional[float] = None
    winning_outcomes: List[CloseOutcome] = field(default_factory=list)
    losing_outcomes: List[CloseOutcome] = field(default_factory=list)
    cancelled: bool = False

    @property
    def outcomes(self) -> List[CloseOutcome]:
        return self.winning_outcomes + self.losing_outcomes

    @property
    def success(self) -> bool:
        return not self.cancelled and all(o.success for o in self.outcomes)

    @property
    def failed_count(self) -> int:
        return sum(1 for o in self.outcomes if not o.success)


class TrimDecisionEngine:
    """Decides when to realize hedge profit and executes the trim.

    Attributes:
        trim_fraction: Share of the losing loss the winning profit must cover,
            and share of each losing position's volume to close
        executor: CloseExecutor used for every close
        detailed_logging: Emit per-close diagnostic lines
    """

    def __init__(
        self,
        executor: CloseExecutor,
        trim_fraction: float,
        enable_logging: bool = True,
        detailed_logging: bool = False
    ):
        self.executor = executor
        self.trim_fraction = trim_fraction
        self.enable_logging = enable_logging
        self.detailed_logging = detailed_logging

    def evaluate_scenario(
        self,
        winning_candidates: List[Position],
        losing_candidates: List[Position],
        scenario: str
    ) -> TrimDecision:
        """Evaluate one direction pairing.

        Args:
            winning_candidates: Positions on the side expected to be in profit
            losing_candidates: Positions on the opposite side
            scenario: Human-readable scenario label

        Returns:
            TrimDecision (skipped when either filtered set is empty)
        """
        winning = [p for p in winning_candidates if p.net_profit > 0]
        losing = [p for p in losing_candidates if p.net_profit <= 0]

        decision = TrimDecision(
            scenario=scenario,
            winning_positions=winning,
            losing_positions=losing,
        )

        if not winning or not losing:
            decision.skipped = True
            return decision

        decision.total_winning_profit = sum(p.net_profit for p in winning)
        decision.total_losing_loss = abs(sum(p.net_profit for p in losing))
        decision.required_profit = calculate_required_profit(losing, self.trim_fraction)
        decision.should_trim = should_trim_positions(winning, losing, self.trim_fraction)
        return decision

    def evaluate(self, hedging_info: HedgingInfo) -> List[TrimDecision]:
        """Evaluate both scenarios for a hedged position set.

        Returns an empty list when the set is not hedged.
        """
        if not hedging_info.is_hedged:
            return []

        return [
            self.evaluate_scenario(
                hedging_info.long_positions,
                hedging_info.short_positions,
                LONG_WINNING_SCENARIO
            ),
            self.evaluate_scenario(
                hedging_info.short_positions,
                hedging_info.long_positions,
                SHORT_WINNING_SCENARIO
            ),
        ]

    async def execute(
        self,
        decision: TrimDecision,
        price_provider: PriceProvider
    ) -> TrimExecutionResult:
        """Close all winners, then trim losers in descending priority.

        Closes are issued one at a time. The current price is read after the
        winners are closed and before the losers are ranked.

        Args:
            decision: A triggered TrimDecision
            price_provider: Callable returning the current (bid) price

        Returns:
            TrimExecutionResult with one outcome per close request
        """
        result = TrimExecutionResult(decision=decision)

        if not decision.should_trim:
            return result

        if self.enable_logging:
            logger.log_hedge_event(
                {
                    'scenario': decision.scenario,
                    'winning_profit': decision.total_winning_profit,
                    'required_profit': decision.required_profit,
                },
                msg=(
                    f"Trim opportunity detected: {decision.scenario}. "
                    f"Winning profit: {decision.total_winning_profit:.2f}, "
                    f"Required: {decision.required_profit:.2f}"
                ),
            )

        for position in decision.winning_positions:
            outcome = await self.executor.execute(CloseRequest(
                position_id=position.id,
                description=f"winning position {position.id}"
            ))
            result.winning_outcomes.append(outcome)
            if outcome.success and self.enable_logging:
                logger.log_order_event(
                    {'position_id': position.id, 'volume': position.volume, 'net_profit': position.net_profit},
                    msg=(
                        f"Closed winning position {position.id}: Volume: {position.volume}, "
                        f"Profit: {position.net_profit:.2f}"
                    ),
                )
            if outcome.is_cancelled:
                result.cancelled = True
                return result

        current_price = price_provider()
        if inspect.isawaitable(current_price):
            current_price = await current_price
        result.current_price = current_price

        for position in prioritize_losing_positions(decision.losing_positions, current_price):
            volume_to_close = calculate_volume_to_close(position, self.trim_fraction)
            if volume_to_close <= 0:
                continue
            # Full-volume results go out as full closes
            is_full_close = volume_to_close >= position.volume

            outcome = await self.executor.execute(CloseRequest(
                position_id=position.id,
                volume=None if is_full_close else volume_to_close,
                description=f"losing position {position.id}"
            ))
            result.losing_outcomes.append(outcome)
            if outcome.success and self.enable_logging:
                logger.log_order_event(
                    {
                        'position_id': position.id,
                        'volume': volume_to_close,
                        'remaining': position.volume - volume_to_close,
                        'net_profit': position.net_profit,
                    },
                    msg=(
                        f"Trimmed losing position {position.id}: Closed Volume: {volume_to_close}, "
                        f"Remaining: {position.volume - volume_to_close}, "
                        f"Loss: {position.net_profit:.2f}"
                    ),
                )
            if outcome.is_cancelled:
                result.cancelled = True
                return result

        return result
