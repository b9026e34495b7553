"""
Log formatters for the hedge trimmer.

Every record carries a category (HEDGE, ORDERS, POSITIONS, SYSTEM or
GENERAL) and, for event helpers, a payload dict stored under the
category's payload attribute (``hedge_data``, ``order_data`` ...).
The formatters here render that payload:
- JsonFormatter: one JSON object per line for the rotating log file
- ColoredFormatter: single-line console output
- DetailedFormatter: multi-line blocks for the error file
"""

import json
import logging
from datetime import datetime, timezone
from typing import Any, Dict, Optional

DEFAULT_CATEGORY = 'GENERAL'

# Category -> record attribute holding the event payload
CATEGORY_PAYLOADS = {
    'HEDGE': 'hedge_data',
    'ORDERS': 'order_data',
    'POSITIONS': 'position_data',
    'SYSTEM': 'system_data',
}

# Attributes every LogRecord has, plus the ones the logger adds itself
_RECORD_ATTRS = set(vars(logging.makeLogRecord({}))) | {
    'message', 'asctime', 'category', 'correlation_id', 'taskName',
}


def record_category(record: logging.LogRecord) -> str:
    return getattr(record, 'category', None) or DEFAULT_CATEGORY


def event_payload(record: logging.LogRecord) -> Dict[str, Any]:
    """
    Collect user supplied data from a log record.

    Payload attributes (``order_data`` etc.) are returned under their own
    name, as is any other ``extra`` key.
    """
    return {
        key: value
        for key, value in vars(record).items()
        if key not in _RECORD_ATTRS and not key.startswith('_')
    }


class JsonFormatter(logging.Formatter):
    """
    Render records as single-line JSON.

    Example output:
    {"timestamp": "2026-01-27T10:30:00.123456+00:00", "level": "INFO",
     "logger": "hedge_trimmer.hedge.trim_engine", "category": "ORDERS",
     "message": "Trimmed losing position 7", "correlation_id": "cycle-12",
     "data": {"order_data": {"position_id": 7, "volume": 75000}}}
    """

    def __init__(self, indent: Optional[int] = None):
        super().__init__()
        self.indent = indent

    def format(self, record: logging.LogRecord) -> str:
        entry = {
            'timestamp': datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
            'level': record.levelname,
            'logger': record.name,
            'category': record_category(record),
            'message': record.getMessage(),
        }

        correlation_id = getattr(record, 'correlation_id', None)
        if correlation_id:
            entry['correlation_id'] = correlation_id

        data = event_payload(record)
        if data:
            entry['data'] = data

        if record.exc_info:
            entry['exception'] = self.formatException(record.exc_info)

        return json.dumps(entry, indent=self.indent, default=str)


class ColoredFormatter(logging.Formatter):
    """
    Console formatter: ``time | LEVEL | CATEGORY | logger | message``.

    The level name is colored by severity when ``use_colors`` is set and
    the cycle correlation id, if any, is appended in brackets.
    """

    LEVEL_COLORS = {
        logging.DEBUG: '\033[36m',
        logging.INFO: '\033[32m',
        logging.WARNING: '\033[33m',
        logging.ERROR: '\033[31m',
        logging.CRITICAL: '\033[1;31m',
    }
    RESET = '\033[0m'

    def __init__(self, datefmt: str = '%Y-%m-%d %H:%M:%S',
                 use_colors: bool = True, show_category: bool = True):
        super().__init__(datefmt=datefmt)
        self.use_colors = use_colors
        self.show_category = show_category

    def _level(self, record: logging.LogRecord) -> str:
        name = f"{record.levelname:<8}"
        if not self.use_colors:
            return name
        color = self.LEVEL_COLORS.get(record.levelno, '')
        return f"{color}{name}{self.RESET}" if color else name

    def format(self, record: logging.LogRecord) -> str:
        parts = [self.formatTime(record, self.datefmt), self._level(record)]
        if self.show_category:
            parts.append(record_category(record))
        parts.extend([record.name, record.getMessage()])
        line = ' | '.join(parts)

        correlation_id = getattr(record, 'correlation_id', None)
        if correlation_id:
            line += f" [{correlation_id}]"

        if record.exc_info:
            line += '\n' + self.formatException(record.exc_info)
        return line


class DetailedFormatter(logging.Formatter):
    """Multi-line formatter for the error file, with source, payload and traceback."""

    def __init__(self, max_data_length: int = 2000):
        super().__init__()
        self.max_data_length = max_data_length

    def format(self, record: logging.LogRecord) -> str:
        timestamp = datetime.fromtimestamp(record.created, tz=timezone.utc)
        header = (
            f"[{timestamp:%Y-%m-%d %H:%M:%S}.{int(record.msecs):03d}] "
            f"{record.levelname} {record.name} [{record_category(record)}]"
        )
        correlation_id = getattr(record, 'correlation_id', None)
        if correlation_id:
            header += f" corr_id={correlation_id}"

        lines = [
            header,
            f"  at {record.pathname}:{record.lineno} in {record.funcName}()",
            f"  {record.getMessage()}",
        ]

        data = event_payload(record)
        if data:
            text = json.dumps(data, indent=2, default=str)
            if len(text) > self.max_data_length:
                text = text[:self.max_data_length] + " ..."
            lines.append("  data: " + text.replace('\n', '\n  '))

        if record.exc_info:
            lines.append('  ' + self.formatException(record.exc_info).replace('\n', '\n  '))

        return '\n'.join(lines)


class CategoryFilter(logging.Filter):
    """Pass only records whose category is one of ``categories``."""

    def __init__(self, *categories: str):
        super().__init__()
        self.categories = {c.upper() for c in categories}

    def filter(self, record: logging.LogRecord) -> bool:
        return record_category(record) in self.categories
