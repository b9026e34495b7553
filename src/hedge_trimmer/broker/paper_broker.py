"""
Paper broker for simulated hedge trimming.

This module provides an in-memory broker that holds simulated positions and
prices and executes close requests locally. It implements the same interface
as the live broker adapter but:
- Keeps positions and prices in memory
- Marks profit to the current price (or to a fixed profit when one is given)
- Simulates network latency per call
- Injects random or scripted close failures
- Fires position opened/closed notifications
- Does not make any network calls
"""

import asyncio
import itertools
import logging
import random
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

from ..hedge.models import Position, PositionId, TradeResult, TradeSide
from .base import BrokerClient
from .exceptions import InvalidOrderError, NetworkError, PositionNotFoundError, SymbolNotFoundError

logger = logging.getLogger(__name__)


DEFAULT_PIP_SIZE = 0.0001


@dataclass
class PaperPosition:
    """Mutable broker-side record of a simulated position."""
    id: PositionId
    symbol: str
    side: TradeSide
    volume: int
    entry_price: float
    fixed_profit: Optional[float] = None

    def net_profit(self, current_price: Optional[float]) -> float:
        if self.fixed_profit is not None:
            return self.fixed_profit
        if current_price is None:
            return 0.0
        direction = 1 if self.side is TradeSide.LONG else -1
        return (current_price - self.entry_price) * self.volume * direction

    def pips(self, current_price: Optional[float], pip_size: float) -> float:
        if current_price is None:
            return 0.0
        direction = 1 if self.side is TradeSide.LONG else -1
        return (current_price - self.entry_price) / pip_size * direction

    def snapshot(self, current_price: Optional[float], pip_size: float) -> Position:
        return Position(
            id=self.id,
            symbol=self.symbol,
            side=self.side,
            volume=self.volume,
            entry_price=self.entry_price,
            net_profit=self.net_profit(current_price),
            pips=self.pips(current_price, pip_size),
        )


class PaperBroker(BrokerClient):
    """
    In-memory broker that simulates positions, prices and close execution.

    Example:
        ```python
        broker = PaperBroker(prices={'EURUSD': 1.1150})
        broker.open_position('EURUSD', 'long', 100000, 1.1100, net_profit=50.0)
        broker.open_position('EURUSD', 'short', 100000, 1.1200, net_profit=-60.0)

        positions = await broker.get_positions('EURUSD')
        result = await broker.close_position(positions[1].id, 75000)
        ```
    """

    def __init__(
        self,
        prices: Optional[Dict[str, float]] = None,
        latency_seconds: float = 0.0,
        failure_rate: float = 0.0,
        pip_size: float = DEFAULT_PIP_SIZE,
        seed: Optional[int] = None
    ):
        """
        Initialize the paper broker.

        Args:
            prices: Initial symbol -> bid price map
            latency_seconds: Simulated round-trip latency per call
            failure_rate: Probability (0-1) that a close call fails
            pip_size: Price increment of one pip
            seed: Optional random seed for reproducible failure injection
        """
        super().__init__()
        self.prices: Dict[str, float] = dict(prices or {})
        self.latency_seconds = latency_seconds
        self.failure_rate = failure_rate
        self.pip_size = pip_size

        self._positions: Dict[PositionId, PaperPosition] = {}
        self._id_counter = itertools.count(1)
        self._random = random.Random(seed)
        self._scripted_failures: Dict[PositionId, List[Any]] = {}
        self.close_calls: List[Dict[str, Any]] = []

        self._stats = {
            'positions_opened': 0,
            'positions_closed': 0,
            'partial_closes': 0,
            'failed_closes': 0,
            'api_calls': 0,
        }

        logger.info("PaperBroker initialized")

    @classmethod
    def from_settings(cls, settings: Any, symbol: str) -> 'PaperBroker':
        """
        Create a paper broker from BrokerSettings.

        Args:
            settings: BrokerSettings with paper broker fields
            symbol: Monitored symbol, used for the initial price

        Returns:
            Seeded PaperBroker instance
        """
        broker = cls(
            prices={symbol: settings.initial_price},
            latency_seconds=settings.latency_seconds,
            failure_rate=settings.failure_rate,
            seed=settings.seed,
        )
        for position in settings.positions:
            broker.open_position(
                symbol=position.symbol or symbol,
                side=position.side,
                volume=position.volume,
                entry_price=position.entry_price,
                net_profit=position.net_profit,
                position_id=position.id,
            )
        return broker

    async def _simulate_latency(self) -> None:
        self._stats['api_calls'] += 1
        if self.latency_seconds > 0:
            await asyncio.sleep(self.latency_seconds)

    def set_price(self, symbol: str, price: float) -> None:
        """Set the current bid price for a symbol."""
        self.prices[symbol] = price

    def open_position(
        self,
        symbol: str,
        side: Any,
        volume: int,
        entry_price: float,
        net_profit: Optional[float] = None,
        position_id: Optional[PositionId] = None
    ) -> Position:
        """
        Open a simulated position.

        Args:
            symbol: Instrument symbol
            side: 'long'/'buy' or 'short'/'sell' (or TradeSide)
            volume: Volume in units
            entry_price: Entry price
            net_profit: Fixed profit to report instead of marking to market
            position_id: Explicit id (auto-assigned when omitted)

        Returns:
            Snapshot of the opened position
        """
        if position_id is None:
            position_id = next(self._id_counter)
            while position_id in self._positions:
                position_id = next(self._id_counter)
        elif position_id in self._positions:
            raise ValueError(f"Position id {position_id} already exists")

        record = PaperPosition(
            id=position_id,
            symbol=symbol,
            side=TradeSide.from_value(side),
            volume=int(volume),
            entry_price=entry_price,
            fixed_profit=net_profit,
        )
        snapshot = record.snapshot(self.prices.get(symbol), self.pip_size)

        self._positions[position_id] = record
        self._stats['positions_opened'] += 1
        self._notify_callbacks('on_position_opened', snapshot)
        return snapshot

    def fail_next_closes(self, position_id: PositionId, *failures: Any) -> None:
        """
        Script the results of the next close calls for a position.

        Each failure is either an error string (returned as an unsuccessful
        TradeResult) or an exception instance (raised).
        """
        self._scripted_failures.setdefault(position_id, []).extend(failures)

    async def get_positions(self, symbol: str) -> List[Position]:
        await self._simulate_latency()
        price = self.prices.get(symbol)
        return [
            record.snapshot(price, self.pip_size)
            for record in self._positions.values()
            if record.symbol == symbol
        ]

    async def get_current_price(self, symbol: str) -> float:
        await self._simulate_latency()
        if symbol not in self.prices:
            raise SymbolNotFoundError(f"No price available for {symbol}", symbol=symbol)
        return self.prices[symbol]

    async def close_position(
        self,
        position_id: PositionId,
        volume: Optional[int] = None
    ) -> TradeResult:
        """
        Close a simulated position fully or partially.

        Args:
            position_id: Position to close
            volume: Units to close (None closes everything)

        Returns:
            TradeResult describing the close
        """
        await self._simulate_latency()
        self.close_calls.append({'position_id': position_id, 'volume': volume})

        scripted = self._scripted_failures.get(position_id)
        if scripted:
            failure = scripted.pop(0)
            self._stats['failed_closes'] += 1
            if isinstance(failure, BaseException):
                raise failure
            return TradeResult(is_successful=False, error=str(failure), position_id=position_id)

        if self.failure_rate > 0 and self._random.random() < self.failure_rate:
            self._stats['failed_closes'] += 1
            raise NetworkError(f"Simulated network failure closing {position_id}")

        record = self._positions.get(position_id)
        if record is None:
            raise PositionNotFoundError(
                f"Position {position_id} not found",
                position_id=str(position_id)
            )

        if volume is not None and volume > record.volume:
            raise InvalidOrderError(
                f"Cannot close {volume} units of position {position_id} "
                f"holding {record.volume}",
                symbol=record.symbol
            )

        price = self.prices.get(record.symbol)

        if volume is None or volume == record.volume:
            closed_volume = record.volume
            snapshot = record.snapshot(price, self.pip_size)
            del self._positions[position_id]
            self._stats['positions_closed'] += 1
            self._notify_callbacks('on_position_closed', snapshot)
        else:
            closed_volume = volume
            if record.fixed_profit is not None:
                record.fixed_profit *= (record.volume - volume) / record.volume
            record.volume -= volume
            self._stats['partial_closes'] += 1

        logger.debug(f"Paper close of {position_id}: {closed_volume} units")

        return TradeResult(
            is_successful=True,
            position_id=position_id,
            closed_volume=closed_volume,
        )

    def get_position(self, position_id: PositionId) -> Optional[Position]:
        record = self._positions.get(position_id)
        if record is None:
            return None
        return record.snapshot(self.prices.get(record.symbol), self.pip_size)

    def get_stats(self) -> Dict[str, Any]:
        return {**self._stats, 'open_positions': len(self._positions)}
