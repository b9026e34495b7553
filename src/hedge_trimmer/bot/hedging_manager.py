"""
Hedging Manager Bot for a single monitored symbol.

This module provides the HedgingManagerBot class that wires the broker,
the trim decision engine and the close executor into a periodic
monitoring loop. Each cycle reads a position snapshot, detects hedging,
evaluates both winning/losing scenarios and executes triggered trims.

Cycles are single-flight: a tick arriving while a cycle is still running
is skipped, never queued.
"""

import asyncio
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Dict, List, Optional

from ..broker import BrokerClient
from ..config import HedgeTrimmerConfig
from ..hedge import (
    CloseExecutor,
    CloseExecutorConfig,
    Position,
    TrimDecision,
    TrimDecisionEngine,
    TrimExecutionResult,
    analyze_hedging,
    get_hedging_summary,
    get_position_summary,
)
from ..utils import get_logger

logger = get_logger(__name__)


class CycleStatus(Enum):
    """Result status of one monitoring cycle."""
    COMPLETED = "completed"
    SKIPPED = "skipped"
    FAILED = "failed"


@dataclass
class CycleResult:
    """Summary of one monitoring cycle."""
    status: CycleStatus
    cycle_number: int = 0
    positions_count: int = 0
    hedged: bool = False
    decisions: List[TrimDecision] = field(default_factory=list)
    executions: List[TrimExecutionResult] = field(default_factory=list)
    error: Optional[str] = None

    @property
    def trimmed(self) -> bool:
        return bool(self.executions)


class HedgingManagerBot:
    """
    Periodic hedge trimming bot.

    The bot exposes two entry points to its host: run_cycle(), safe to call
    repeatedly from any scheduler, and shutdown(), which cancels pending
    retry waits, stops the periodic loop and lets the in-flight cycle
    finish.

    Attributes:
        config: HedgeTrimmerConfig instance
        broker: Broker collaborator
        engine: TrimDecisionEngine used every cycle
        running: Whether the periodic loop is active
    """

    def __init__(
        self,
        config: HedgeTrimmerConfig,
        broker: BrokerClient,
        clock: Callable[[], float] = time.monotonic,
        shutdown_timeout: float = 10.0
    ):
        """
        Initialize the bot.

        Args:
            config: Validated configuration
            broker: Broker client for the monitored account
            clock: Monotonic clock used to rate-limit status messages
            shutdown_timeout: Seconds to wait for the in-flight cycle on shutdown
        """
        self.config = config
        self.broker = broker
        self.symbol = config.monitor.symbol
        self.check_interval = config.monitor.check_interval_seconds
        self.log_interval = config.monitor.log_interval_seconds
        self.enable_logging = config.logging.enable_logging
        self.detailed_logging = config.logging.enable_detailed_logging
        self.shutdown_timeout = shutdown_timeout

        self.executor = CloseExecutor(
            broker,
            CloseExecutorConfig(
                max_retries=config.monitor.max_retries,
                backoff_unit_seconds=config.monitor.retry_backoff_seconds,
                detailed_logging=self.detailed_logging,
            )
        )
        self.engine = TrimDecisionEngine(
            self.executor,
            trim_fraction=config.monitor.trim_fraction,
            enable_logging=self.enable_logging,
            detailed_logging=self.detailed_logging,
        )

        # State
        self.running = False
        self.initialized = False
        self._cycle_lock = asyncio.Lock()
        self._shutdown_event = asyncio.Event()
        self._loop_task: Optional[asyncio.Task] = None
        self._clock = clock
        self._last_log_time: Optional[float] = None
        self._cycle_count = 0

        self._stats = {
            'cycles_completed': 0,
            'cycles_skipped': 0,
            'cycles_failed': 0,
            'trims_executed': 0,
            'closes_failed': 0,
        }

        self.broker.register_callback('on_position_opened', self._on_position_opened)
        self.broker.register_callback('on_position_closed', self._on_position_closed)

        logger.info(
            f"HedgingManagerBot initialized for {self.symbol} "
            f"(trim_fraction={self.engine.trim_fraction}, "
            f"max_retries={self.executor.config.max_retries})"
        )

    async def initialize(self) -> bool:
        """
        Connect the broker.

        Returns:
            True if the broker connected, False otherwise
        """
        try:
            await self.broker.connect()
        except Exception as e:
            logger.error(f"Failed to connect broker: {e}", exc_info=True)
            return False

        self.initialized = True
        logger.log_system_event({
            'event_type': 'bot_initialized',
            'symbol': self.symbol,
            'check_interval_seconds': self.check_interval,
        }, msg=f"Hedging manager ready for {self.symbol}")
        return True

    async def start(self) -> bool:
        """
        Start the periodic monitoring loop.

        Returns:
            True if the loop is running
        """
        if self._shutdown_event.is_set():
            logger.error("Cannot start: bot has been shut down")
            return False

        if self.running:
            logger.warning("Bot is already running")
            return True

        self.running = True
        self._loop_task = asyncio.create_task(self._monitoring_loop())
        logger.info(f"Monitoring loop started (interval {self.check_interval}s)")
        return True

    async def shutdown(self) -> None:
        """
        Stop the bot.

        Cancels pending retry waits, stops scheduling cycles and waits for
        the in-flight cycle to return. Positions are left in whatever state
        the last successful close produced.
        """
        if self._shutdown_event.is_set():
            return

        logger.info("Shutting down hedging manager...")
        self.running = False
        self.executor.cancel()
        self._shutdown_event.set()

        if self._loop_task:
            try:
                await asyncio.wait_for(self._loop_task, timeout=self.shutdown_timeout)
            except asyncio.TimeoutError:
                logger.warning("Monitoring loop did not stop in time and was cancelled")
            except asyncio.CancelledError:
                pass
            self._loop_task = None

        if self._cycle_lock.locked():
            try:
                await asyncio.wait_for(self._wait_idle(), timeout=self.shutdown_timeout)
            except asyncio.TimeoutError:
                logger.warning("In-flight cycle did not finish before shutdown")

        self.broker.unregister_callback('on_position_opened', self._on_position_opened)
        self.broker.unregister_callback('on_position_closed', self._on_position_closed)

        await self.broker.close()
        logger.info("Hedging manager stopped")

    async def _wait_idle(self) -> None:
        async with self._cycle_lock:
            pass

    async def _monitoring_loop(self) -> None:
        """Run a cycle every check_interval seconds until shutdown."""
        while self.running:
            await self.run_cycle()

            try:
                await asyncio.wait_for(
                    self._shutdown_event.wait(),
                    timeout=self.check_interval
                )
                break  # Shutdown requested
            except asyncio.TimeoutError:
                pass

        logger.info("Monitoring loop ended")

    async def run_cycle(self) -> CycleResult:
        """
        Run one monitoring cycle.

        Returns SKIPPED without doing anything when another cycle is still
        in progress or the bot has been shut down. Unexpected errors are
        logged and reported as FAILED; they are never raised.
        """
        if self._shutdown_event.is_set():
            return CycleResult(status=CycleStatus.SKIPPED)

        if self._cycle_lock.locked():
            self._stats['cycles_skipped'] += 1
            logger.debug("Previous cycle still in progress, skipping tick")
            return CycleResult(status=CycleStatus.SKIPPED)

        async with self._cycle_lock:
            self._cycle_count += 1
            with logger.correlation_context(f"cycle-{self._cycle_count}"):
                return await self._run_cycle_body(self._cycle_count)

    async def _run_cycle_body(self, cycle_number: int) -> CycleResult:
        result = CycleResult(status=CycleStatus.COMPLETED, cycle_number=cycle_number)

        try:
            positions = await self.broker.get_positions(self.symbol)
            result.positions_count = len(positions)

            if not positions:
                self._log_periodically("No positions found for monitored symbol")
                self._stats['cycles_completed'] += 1
                return result

            hedging_info = analyze_hedging(positions)
            result.hedged = hedging_info.is_hedged

            if not hedging_info.is_hedged:
                self._log_periodically(
                    f"No hedging detected - Long: {len(hedging_info.long_positions)}, "
                    f"Short: {len(hedging_info.short_positions)}"
                )
                self._stats['cycles_completed'] += 1
                return result

            if self.detailed_logging:
                logger.log_hedge_event({
                    'long_volume': hedging_info.total_long_volume,
                    'short_volume': hedging_info.total_short_volume,
                    'net_exposure': hedging_info.net_exposure,
                    'total_profit': hedging_info.total_profit,
                }, msg=get_hedging_summary(hedging_info))

            result.decisions = self.engine.evaluate(hedging_info)

            for decision in result.decisions:
                if not decision.should_trim:
                    continue

                execution = await self.engine.execute(
                    decision,
                    lambda: self.broker.get_current_price(self.symbol)
                )
                result.executions.append(execution)
                self._stats['trims_executed'] += 1
                self._stats['closes_failed'] += execution.failed_count

                if execution.cancelled:
                    break

            self._stats['cycles_completed'] += 1

        except asyncio.CancelledError:
            raise
        except Exception as e:
            result.status = CycleStatus.FAILED
            result.error = str(e) or e.__class__.__name__
            self._stats['cycles_failed'] += 1
            logger.error(f"Error in monitoring cycle: {e}", exc_info=self.detailed_logging)

        return result

    def _log_periodically(self, message: str) -> None:
        """Log an informational status message at most once per log interval."""
        if not self.enable_logging:
            return

        now = self._clock()
        if self._last_log_time is not None and now - self._last_log_time < self.log_interval:
            return

        self._last_log_time = now
        logger.info(message)

    def _on_position_opened(self, position: Position) -> None:
        if position.symbol != self.symbol or not self.enable_logging:
            return

        logger.log_position_event({
            'event_type': 'opened',
            'position_id': position.id,
            'side': position.side.value,
            'volume': position.volume,
            'entry_price': position.entry_price,
        }, msg=f"Position opened: {position.side.value} {position.volume} at {position.entry_price}")

        if self.detailed_logging:
            logger.debug(get_position_summary(position))

    def _on_position_closed(self, position: Position) -> None:
        if position.symbol != self.symbol or not self.enable_logging:
            return

        logger.log_position_event({
            'event_type': 'closed',
            'position_id': position.id,
            'side': position.side.value,
            'volume': position.volume,
            'net_profit': position.net_profit,
        }, msg=f"Position closed: {position.side.value} {position.volume}, Profit: {position.net_profit:.2f}")

        if self.detailed_logging:
            logger.debug(get_position_summary(position))

    @property
    def cycle_in_progress(self) -> bool:
        return self._cycle_lock.locked()

    def get_status(self) -> Dict[str, Any]:
        """Get current bot status."""
        return {
            'symbol': self.symbol,
            'running': self.running,
            'initialized': self.initialized,
            'shutting_down': self._shutdown_event.is_set(),
            'cycle_in_progress': self.cycle_in_progress,
            'cycles': self._cycle_count,
            **self._stats,
        }
