"""Close executor module for closing positions with bounded retries.

This module provides the CloseExecutor class, a small state machine that
issues a full or partial close to the broker, retries failed attempts with
linear backoff, and reports a terminal outcome. Backoff waits can be
cancelled so shutdown never blocks on a pending retry.
"""

import asyncio
import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import List, Optional

from ..utils import get_logger
from .models import CloseRequest, TradeResult

logger = get_logger(__name__)


class CloseState(Enum):
    """Close execution states."""
    PENDING = "pending"
    ATTEMPTING = "attempting"
    RETRYING = "retrying"
    SUCCESS = "success"
    EXHAUSTED = "exhausted"
    CANCELLED = "cancelled"


TERMINAL_STATES = frozenset({CloseState.SUCCESS, CloseState.EXHAUSTED, CloseState.CANCELLED})


@dataclass
class CloseExecutorConfig:
    """Configuration for CloseExecutor."""
    max_retries: int = 3
    backoff_unit_seconds: float = 1.0
    detailed_logging: bool = False


@dataclass
class CloseOutcome:
    """Terminal result of executing a CloseRequest."""
    success: bool
    request: CloseRequest
    attempts: int = 0
    state: CloseState = CloseState.PENDING
    error_message: Optional[str] = None
    backoff_delays: List[float] = field(default_factory=list)

    @property
    def is_exhausted(self) -> bool:
        return self.state is CloseState.EXHAUSTED

    @property
    def is_cancelled(self) -> bool:
        return self.state is CloseState.CANCELLED


class CloseExecutor:
    """Executes close requests against a broker with bounded, linear retries.

    Each request runs PENDING -> ATTEMPTING -> SUCCESS, or through
    RETRYING back to ATTEMPTING until max_retries attempts have failed
    (EXHAUSTED). cancel() aborts a pending backoff wait and every later
    attempt (CANCELLED).

    Attributes:
        broker: Object exposing async close_position(position_id, volume)
        config: CloseExecutorConfig with retry parameters
    """

    def __init__(self, broker, config: Optional[CloseExecutorConfig] = None):
        """Initialize the close executor.

        Args:
            broker: Broker client used to close positions
            config: Optional configuration (uses defaults if not provided)
        """
        self.broker = broker
        self.config = config or CloseExecutorConfig()
        self._cancel_event = asyncio.Event()

        logger.debug(
            f"CloseExecutor initialized with max_retries={self.config.max_retries}, "
            f"backoff_unit={self.config.backoff_unit_seconds}s"
        )

    @property
    def cancelled(self) -> bool:
        return self._cancel_event.is_set()

    def cancel(self) -> None:
        """Abort pending backoff waits and prevent further attempts."""
        if not self._cancel_event.is_set():
            logger.info("Close executor cancelled; pending retries aborted")
        self._cancel_event.set()

    def reset(self) -> None:
        """Allow the executor to run again after cancel()."""
        self._cancel_event.clear()

    async def execute(self, request: CloseRequest) -> CloseOutcome:
        """Run a close request to a terminal state.

        Args:
            request: Close request (full close when volume is None)

        Returns:
            CloseOutcome with the terminal state and attempts consumed
        """
        outcome = CloseOutcome(success=False, request=request)
        attempts = 0

        while True:
            if self.cancelled:
                outcome.state = CloseState.CANCELLED
                outcome.error_message = outcome.error_message or "Cancelled before attempt"
                logger.warning(f"Close of {request.description} cancelled after {attempts} attempts")
                break

            outcome.state = CloseState.ATTEMPTING
            error_message = await self._attempt(request, attempts + 1)
            attempts += 1
            outcome.attempts = attempts

            if error_message is None:
                outcome.state = CloseState.SUCCESS
                outcome.success = True
                outcome.error_message = None
                logger.log_order_event(
                    self._order_data(request, outcome),
                    msg=f"Successfully processed {request.description} on attempt {attempts}",
                    level=logging.INFO if self.config.detailed_logging else logging.DEBUG,
                )
                break

            outcome.error_message = error_message

            if attempts >= self.config.max_retries:
                outcome.state = CloseState.EXHAUSTED
                logger.log_order_event(
                    self._order_data(request, outcome),
                    msg=f"Failed to close {request.description} after {attempts} attempts: {error_message}",
                    level=logging.ERROR,
                )
                break

            outcome.state = CloseState.RETRYING
            delay = self.config.backoff_unit_seconds * attempts
            outcome.backoff_delays.append(delay)
            logger.warning(f"Retrying close of {request.description} in {delay}s")

            if not await self._wait_backoff(delay):
                outcome.state = CloseState.CANCELLED
                logger.warning(
                    f"Retry wait for {request.description} cancelled after {attempts} attempts"
                )
                break

        return outcome

    @staticmethod
    def _order_data(request: CloseRequest, outcome: CloseOutcome) -> dict:
        return {
            'position_id': request.position_id,
            'volume': request.volume,
            'state': outcome.state.value,
            'attempts': outcome.attempts,
            'error': outcome.error_message,
        }

    async def _attempt(self, request: CloseRequest, attempt_number: int) -> Optional[str]:
        """Issue one close call.

        Returns:
            None on success, otherwise the error description
        """
        try:
            result: TradeResult = await self.broker.close_position(
                request.position_id,
                request.volume
            )
        except asyncio.CancelledError:
            raise
        except Exception as e:
            logger.error(
                f"Exception closing {request.description} on attempt {attempt_number}: {e}"
            )
            return str(e) or e.__class__.__name__

        if result.is_successful:
            return None

        error = result.error or "unknown error"
        logger.error(f"Failed to close {request.description} on attempt {attempt_number}: {error}")
        return error

    async def _wait_backoff(self, delay: float) -> bool:
        """Wait for the backoff delay unless cancelled.

        Returns:
            True if the full delay elapsed, False if cancelled
        """
        try:
            await asyncio.wait_for(self._cancel_event.wait(), timeout=delay)
            return False
        except asyncio.TimeoutError:
            return True
