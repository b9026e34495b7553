"""
Command-line entry point for the hedge trimmer.

This module loads and validates configuration, sets up logging, builds the
broker and runs the hedging manager with signal handling.

Usage:
    hedge-trimmer --config config/config.yaml
    hedge-trimmer --config config/config.yaml --symbol EURUSD --trim-fraction 0.6
    hedge-trimmer --config config/config.yaml --once --log-level DEBUG
"""

import argparse
import asyncio
import signal
import sys
from typing import List, Optional

from . import __version__
from .bot import HedgingManagerBot, CycleStatus
from .broker import create_broker
from .config import (
    ConfigManager,
    ConfigurationError,
    HedgeTrimmerConfig,
    build_logging_config,
)
from .utils import get_logger, setup_logging, shutdown_logging

logger = get_logger(__name__)


class BotRunner:
    """
    Manages the hedging manager lifecycle and handles signals.
    """

    def __init__(self):
        self.bot: Optional[HedgingManagerBot] = None
        self._shutdown_event = asyncio.Event()

    def setup_signal_handlers(self) -> None:
        """Setup signal handlers for graceful shutdown."""
        try:
            loop = asyncio.get_running_loop()

            for sig in (signal.SIGINT, signal.SIGTERM):
                loop.add_signal_handler(sig, self._signal_handler)

            logger.debug("Signal handlers registered")

        except NotImplementedError:
            # Windows doesn't support add_signal_handler
            logger.warning("Signal handlers not supported on this platform")

    def _signal_handler(self) -> None:
        """Handle shutdown signals."""
        logger.info("Shutdown signal received, stopping bot...")
        self._shutdown_event.set()
        if self.bot:
            self.bot.executor.cancel()

    async def run(self, config: HedgeTrimmerConfig, once: bool = False) -> int:
        """
        Run the hedging manager.

        Args:
            config: Validated configuration
            once: Run a single cycle and exit

        Returns:
            Process exit code
        """
        self.bot = HedgingManagerBot(config, create_broker(config))

        try:
            if not await self.bot.initialize():
                logger.error("Failed to initialize bot")
                return 1

            if once:
                result = await self.bot.run_cycle()
                logger.info(
                    f"Cycle {result.cycle_number} {result.status.value}: "
                    f"{result.positions_count} positions, {len(result.executions)} trims"
                )
                return 1 if result.status is CycleStatus.FAILED else 0

            if not await self.bot.start():
                logger.error("Failed to start bot")
                return 1

            logger.info("Bot is running. Press Ctrl+C to stop.")
            await self._shutdown_event.wait()
            return 0

        except Exception as e:
            logger.error(f"Error running bot: {e}", exc_info=True)
            return 1
        finally:
            await self.bot.shutdown()
            logger.info(f"Final status: {self.bot.get_status()}")


def parse_arguments(argv: Optional[List[str]] = None) -> argparse.Namespace:
    """Parse command line arguments."""
    parser = argparse.ArgumentParser(
        description='Hedged position trimmer',
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  hedge-trimmer --config config/config.yaml
  hedge-trimmer --config config/config.yaml --symbol EURUSD
  hedge-trimmer --config config/config.yaml --trim-fraction 0.6 --once
  hedge-trimmer --config config/config.yaml --log-level DEBUG
        """
    )

    parser.add_argument(
        '--config', '-c',
        type=str,
        default='config/config.yaml',
        help='Path to configuration file (default: config/config.yaml)'
    )

    parser.add_argument(
        '--symbol',
        type=str,
        help='Monitored symbol (overrides config)'
    )

    parser.add_argument(
        '--trim-fraction',
        type=float,
        help='Trim fraction between 0.1 and 0.95 (overrides config)'
    )

    parser.add_argument(
        '--log-level',
        type=str,
        choices=['DEBUG', 'INFO', 'WARNING', 'ERROR', 'CRITICAL'],
        help='Logging level (overrides config)'
    )

    parser.add_argument(
        '--once',
        action='store_true',
        help='Run a single monitoring cycle and exit'
    )

    parser.add_argument(
        '--version', '-v',
        action='version',
        version=f'%(prog)s {__version__}'
    )

    return parser.parse_args(argv)


def build_config(args: argparse.Namespace) -> HedgeTrimmerConfig:
    """
    Load the configuration file and apply command line overrides.

    Raises:
        ConfigurationError: If the resulting configuration is invalid
    """
    config = ConfigManager(args.config).load_config()

    if args.symbol is None and args.trim_fraction is None and args.log_level is None:
        return config

    data = config.dict()
    if args.symbol is not None:
        data['monitor']['symbol'] = args.symbol
    if args.trim_fraction is not None:
        data['monitor']['trim_fraction'] = args.trim_fraction
    if args.log_level is not None:
        data['logging']['level'] = args.log_level

    return ConfigManager.validate(data)


async def async_main(argv: Optional[List[str]] = None) -> int:
    """Async entry point."""
    args = parse_arguments(argv)

    try:
        config = build_config(args)
    except ConfigurationError as e:
        logger.critical(f"Invalid configuration: {e}")
        return 1

    setup_logging(build_logging_config(config))
    logger.info(f"Loaded configuration from {args.config}")

    runner = BotRunner()
    runner.setup_signal_handlers()

    try:
        return await runner.run(config, once=args.once)
    finally:
        shutdown_logging()


def main(argv: Optional[List[str]] = None) -> int:
    """Console script entry point."""
    try:
        return asyncio.run(async_main(argv))
    except KeyboardInterrupt:
        logger.info("Interrupted by user")
        return 0


if __name__ == '__main__':
    sys.exit(main())
