"""
Logging system for the hedge trimmer.

Structured, category-based logging on top of the standard library:

- ``get_logger(name)`` returns a LoggerAdapter with helpers for the four
  event categories the trimmer emits (hedge analysis, close orders,
  position open/close notifications and system lifecycle).
- A correlation id (one per monitoring cycle) is held in a context
  variable. Every record emitted while it is set, including records from
  plain ``logging.getLogger`` loggers in the hedge package, is tagged with
  it by the handlers ``setup_logging`` installs.
- ``setup_logging`` installs console, rotating JSON file and error file
  handlers on the root logger; ``shutdown_logging`` removes exactly those.

Example Usage:
    from hedge_trimmer.config import load_config, build_logging_config
    from hedge_trimmer.utils import get_logger, setup_logging

    config = load_config('config/config.yaml')
    setup_logging(build_logging_config(config))

    logger = get_logger('hedge_trimmer.bot')
    with logger.correlation_context('cycle-42'):
        logger.log_order_event({'position_id': 7, 'volume': 75000})
"""

import logging
import sys
import threading
import uuid
from contextlib import contextmanager
from contextvars import ContextVar
from enum import Enum
from pathlib import Path
from typing import Any, Dict, Iterator, List, Optional, Union

from .log_formatter import (
    CATEGORY_PAYLOADS,
    CategoryFilter,
    ColoredFormatter,
    DetailedFormatter,
    JsonFormatter,
)
from .log_handlers import (
    ColoredConsoleHandler,
    ErrorFileHandler,
    SizeRotatingFileHandler,
    TimedRotatingFileHandler,
)

_correlation_id: ContextVar[Optional[str]] = ContextVar('correlation_id', default=None)


class LogCategory(Enum):
    """Categories of trimmer log events."""
    HEDGE = "HEDGE"
    ORDERS = "ORDERS"
    POSITIONS = "POSITIONS"
    SYSTEM = "SYSTEM"
    GENERAL = "GENERAL"


def current_correlation_id() -> Optional[str]:
    return _correlation_id.get()


@contextmanager
def correlation_context(correlation_id: Optional[str] = None) -> Iterator[str]:
    """
    Tag every record logged in this block (and in tasks it starts) with an id.

    A random id is generated when none is given.
    """
    token = _correlation_id.set(correlation_id or uuid.uuid4().hex[:12])
    try:
        yield _correlation_id.get()
    finally:
        _correlation_id.reset(token)


class CorrelationFilter(logging.Filter):
    """Copy the active correlation id onto records that do not carry one."""

    def filter(self, record: logging.LogRecord) -> bool:
        if not getattr(record, 'correlation_id', None):
            correlation_id = _correlation_id.get()
            if correlation_id:
                record.correlation_id = correlation_id
        return True


class LoggerAdapter(logging.LoggerAdapter):
    """
    Adapter adding the active correlation id and category event helpers.
    """

    def __init__(self, logger: logging.Logger, extra: Optional[Dict[str, Any]] = None):
        super().__init__(logger, extra or {})

    def process(self, msg, kwargs):
        extra = dict(self.extra)
        extra.update(kwargs.get('extra') or {})
        correlation_id = _correlation_id.get()
        if correlation_id:
            extra.setdefault('correlation_id', correlation_id)
        kwargs['extra'] = extra
        return msg, kwargs

    @property
    def correlation_id(self) -> Optional[str]:
        return _correlation_id.get()

    def correlation_context(self, correlation_id: Optional[str] = None):
        return correlation_context(correlation_id)

    def _log_event(self, category: LogCategory, event_data: Dict[str, Any],
                   msg: str, level: int) -> None:
        self.log(level, msg, extra={
            'category': category.value,
            CATEGORY_PAYLOADS[category.value]: event_data,
        })

    def log_hedge_event(self, event_data: Dict[str, Any], msg: str = "", level: int = logging.INFO) -> None:
        """Log a hedging analysis or trim decision."""
        msg = msg or f"Hedge: {event_data.get('scenario', 'unknown')}"
        self._log_event(LogCategory.HEDGE, event_data, msg, level)

    def log_order_event(self, event_data: Dict[str, Any], msg: str = "", level: int = logging.INFO) -> None:
        """Log a close order (attempt, success or failure)."""
        msg = msg or f"Close: position {event_data.get('position_id', 'unknown')}"
        self._log_event(LogCategory.ORDERS, event_data, msg, level)

    def log_position_event(self, event_data: Dict[str, Any], msg: str = "", level: int = logging.INFO) -> None:
        """Log a broker position opened/closed notification."""
        msg = msg or (
            f"Position {event_data.get('event_type', 'event')}: "
            f"{event_data.get('position_id', 'unknown')}"
        )
        self._log_event(LogCategory.POSITIONS, event_data, msg, level)

    def log_system_event(self, event_data: Dict[str, Any], msg: str = "", level: int = logging.INFO) -> None:
        """Log a lifecycle event (startup, shutdown, connection)."""
        msg = msg or f"System: {event_data.get('event_type', 'unknown')}"
        self._log_event(LogCategory.SYSTEM, event_data, msg, level)


class LoggerManager:
    """
    Process-wide owner of the trimmer's handlers and adapters.

    Handlers are attached to the root logger so module loggers created with
    ``logging.getLogger(__name__)`` are captured too. Only the handlers this
    manager created are ever removed.
    """

    _instance = None
    _lock = threading.Lock()

    def __new__(cls):
        if cls._instance is None:
            with cls._lock:
                if cls._instance is None:
                    instance = super().__new__(cls)
                    instance._loggers = {}
                    instance._handlers = []
                    instance._setup_done = False
                    cls._instance = instance
        return cls._instance

    @property
    def handlers(self) -> List[logging.Handler]:
        return list(self._handlers)

    @property
    def is_setup(self) -> bool:
        return self._setup_done

    @staticmethod
    def _level(level: Union[str, int, None], default: int = logging.INFO) -> int:
        if isinstance(level, int):
            return level
        value = logging.getLevelName(str(level or '').upper())
        return value if isinstance(value, int) else default

    def setup_logging(self, config: Optional[Dict[str, Any]] = None) -> None:
        """
        Install handlers described by ``config['logging']``.

        Recognised keys: level, console, console_config (colors, level,
        categories), file, file_config (directory, filename, rotation
        'time'|'size', when, interval, max_bytes, backup_count, level),
        error_file, error_file_config (directory, filename).
        Calling it again before shutdown_logging() is a no-op.
        """
        if self._setup_done:
            return

        log_config = (config or {}).get('logging', {})
        logging.getLogger().setLevel(self._level(log_config.get('level')))

        if log_config.get('console', True):
            self._install(self._console_handler(log_config.get('console_config', {})))
        if log_config.get('file', False):
            self._install(self._file_handler(log_config.get('file_config', {})))
        if log_config.get('error_file', False):
            self._install(self._error_handler(log_config.get('error_file_config', {})))

        self._setup_done = True
        self.get_logger('hedge_trimmer.system').log_system_event(
            {'event_type': 'logging_initialized', 'handlers': len(self._handlers)},
            msg="Logging system initialized",
            level=logging.DEBUG,
        )

    def _install(self, handler: logging.Handler) -> None:
        handler.addFilter(CorrelationFilter())
        logging.getLogger().addHandler(handler)
        self._handlers.append(handler)

    def _console_handler(self, config: Dict[str, Any]) -> logging.Handler:
        handler = ColoredConsoleHandler(sys.stdout)
        handler.setLevel(self._level(config.get('level'), logging.DEBUG))
        handler.setFormatter(ColoredFormatter(use_colors=config.get('colors', True)))
        if config.get('categories'):
            handler.addFilter(CategoryFilter(*config['categories']))
        return handler

    def _file_handler(self, config: Dict[str, Any]) -> logging.Handler:
        path = Path(config.get('directory', 'logs')) / config.get('filename', 'hedge_trimmer.log')
        if config.get('rotation', 'time') == 'size':
            handler = SizeRotatingFileHandler(
                path,
                maxBytes=config.get('max_bytes', 5 * 1024 * 1024),
                backupCount=config.get('backup_count', 5),
            )
        else:
            handler = TimedRotatingFileHandler(
                path,
                when=config.get('when', 'midnight'),
                interval=config.get('interval', 1),
                backupCount=config.get('backup_count', 14),
            )
        handler.setLevel(self._level(config.get('level'), logging.DEBUG))
        handler.setFormatter(JsonFormatter())
        return handler

    def _error_handler(self, config: Dict[str, Any]) -> logging.Handler:
        path = Path(config.get('directory', 'logs')) / config.get('filename', 'errors.log')
        handler = ErrorFileHandler(path)
        handler.setFormatter(DetailedFormatter())
        return handler

    def get_logger(self, name: str) -> LoggerAdapter:
        if name not in self._loggers:
            self._loggers[name] = LoggerAdapter(logging.getLogger(name))
        return self._loggers[name]

    def shutdown(self) -> None:
        """Detach and close the handlers installed by setup_logging()."""
        root = logging.getLogger()
        for handler in self._handlers:
            root.removeHandler(handler)
            handler.close()
        self._handlers = []
        self._setup_done = False


_logger_manager = LoggerManager()


def setup_logging(config: Optional[Dict[str, Any]] = None) -> None:
    """
    Setup the logging system.

    Example:
        setup_logging({
            'logging': {
                'level': 'INFO',
                'console': True,
                'file': True,
                'file_config': {'directory': 'logs', 'filename': 'hedge_trimmer.log'}
            }
        })
    """
    _logger_manager.setup_logging(config)


def get_logger(name: str) -> LoggerAdapter:
    return _logger_manager.get_logger(name)


def shutdown_logging() -> None:
    _logger_manager.shutdown()
