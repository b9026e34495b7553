"""
Utilities package for the hedge trimmer.

Category-based structured logging with per-cycle correlation ids,
plus the formatters and handlers it installs.

Example Usage:
    from hedge_trimmer.utils import get_logger, setup_logging

    setup_logging({'logging': {'level': 'INFO', 'console': True}})

    logger = get_logger('hedge_trimmer.bot')
    logger.log_hedge_event({
        'scenario': 'Long winning, Short losing',
        'winning_profit': 150.0,
        'required_profit': 135.0
    })
"""

from .logger import (
    setup_logging,
    get_logger,
    shutdown_logging,
    correlation_context,
    current_correlation_id,
    CorrelationFilter,
    LoggerAdapter,
    LoggerManager,
    LogCategory,
)

from .log_formatter import (
    CATEGORY_PAYLOADS,
    JsonFormatter,
    ColoredFormatter,
    DetailedFormatter,
    CategoryFilter,
    event_payload,
)

from .log_handlers import (
    TimedRotatingFileHandler,
    SizeRotatingFileHandler,
    ColoredConsoleHandler,
    ErrorFileHandler,
)

__all__ = [
    'setup_logging',
    'get_logger',
    'shutdown_logging',
    'correlation_context',
    'current_correlation_id',
    'CorrelationFilter',
    'LoggerAdapter',
    'LoggerManager',
    'LogCategory',
    'CATEGORY_PAYLOADS',
    'JsonFormatter',
    'ColoredFormatter',
    'DetailedFormatter',
    'CategoryFilter',
    'event_payload',
    'TimedRotatingFileHandler',
    'SizeRotatingFileHandler',
    'ColoredConsoleHandler',
    'ErrorFileHandler',
]
