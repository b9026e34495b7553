"""
Log handlers for the hedge trimmer.

File handlers create their parent directory before opening the file, so
``logs/`` does not have to exist when the trimmer starts.
"""

import logging
import logging.handlers
from pathlib import Path
from typing import Union

PathLike = Union[str, Path]


def _prepare(filename: PathLike) -> str:
    path = Path(filename)
    path.parent.mkdir(parents=True, exist_ok=True)
    return str(path)


class TimedRotatingFileHandler(logging.handlers.TimedRotatingFileHandler):
    """Rotates at ``when`` (midnight UTC by default) and keeps ``backupCount`` files."""

    def __init__(self, filename: PathLike, when: str = 'midnight', interval: int = 1,
                 backupCount: int = 14, utc: bool = True):
        super().__init__(_prepare(filename), when=when, interval=interval,
                         backupCount=backupCount, encoding='utf-8', utc=utc)


class SizeRotatingFileHandler(logging.handlers.RotatingFileHandler):
    """Rotates once the file reaches ``maxBytes``."""

    def __init__(self, filename: PathLike, maxBytes: int = 5 * 1024 * 1024,
                 backupCount: int = 5):
        super().__init__(_prepare(filename), maxBytes=maxBytes,
                         backupCount=backupCount, encoding='utf-8')


class ColoredConsoleHandler(logging.StreamHandler):
    """
    Stream handler that strips colors when the stream is not a terminal.

    Redirected output (``hedge-trimmer > run.log``) stays free of ANSI codes
    even when colors are enabled in the config.
    """

    def __init__(self, stream=None):
        super().__init__(stream)
        isatty = getattr(self.stream, 'isatty', None)
        self.is_tty = bool(isatty and isatty())

    def setFormatter(self, fmt) -> None:
        if fmt is not None and not self.is_tty and getattr(fmt, 'use_colors', False):
            fmt.use_colors = False
        super().setFormatter(fmt)


class ErrorFileHandler(logging.FileHandler):
    """Appends ERROR and CRITICAL records only."""

    def __init__(self, filename: PathLike):
        super().__init__(_prepare(filename), encoding='utf-8')
        self.setLevel(logging.ERROR)
