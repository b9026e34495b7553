"""Broker client interface.

This module defines the BrokerClient base class: the only surface through
which the trim logic reads positions and prices and issues closes. It also
carries the observer registry used for position opened/closed notifications.
"""

import asyncio
import logging
from abc import ABC, abstractmethod
from typing import Callable, Dict, List, Optional

from ..hedge.models import Position, PositionId, TradeResult

logger = logging.getLogger(__name__)


POSITION_EVENTS = ('on_position_opened', 'on_position_closed')


class BrokerClient(ABC):
    """Abstract host broker collaborator.

    Subclasses implement position snapshots, price lookup and close calls.
    Each close call is a complete unit of work from the caller's view and
    returns a TradeResult (or raises an ExchangeError subclass).
    """

    def __init__(self):
        self._callbacks: Dict[str, List[Callable]] = {event: [] for event in POSITION_EVENTS}

    async def connect(self) -> None:
        """Open any underlying connection. No-op by default."""

    async def close(self) -> None:
        """Release any underlying connection. No-op by default."""

    @abstractmethod
    async def get_positions(self, symbol: str) -> List[Position]:
        """Return the current open positions for a symbol."""

    @abstractmethod
    async def get_current_price(self, symbol: str) -> float:
        """Return the current reference (bid) price for a symbol."""

    @abstractmethod
    async def close_position(
        self,
        position_id: PositionId,
        volume: Optional[int] = None
    ) -> TradeResult:
        """Close a position entirely (volume None) or partially."""

    def register_callback(self, event: str, callback: Callable) -> None:
        """Register a callback for position events.

        Args:
            event: 'on_position_opened' or 'on_position_closed'
            callback: Function called with the Position
        """
        if event in self._callbacks:
            self._callbacks[event].append(callback)
        else:
            logger.warning(f"Unknown event type: {event}")

    def unregister_callback(self, event: str, callback: Callable) -> None:
        if callback in self._callbacks.get(event, []):
            self._callbacks[event].remove(callback)

    def _notify_callbacks(self, event: str, *args) -> None:
        """Notify all callbacks for an event.

        Args:
            event: Event name
            *args: Arguments to pass to callbacks
        """
        for callback in self._callbacks.get(event, []):
            try:
                if asyncio.iscoroutinefunction(callback):
                    asyncio.create_task(callback(*args))
                else:
                    callback(*args)
            except Exception as e:
                logger.error(f"Error in {event} callback: {e}")
