"""
Console logging for frpsetup.

Every operator-facing message goes through the ``frpsetup`` logger and is
printed with a severity tag (``[INFO]``, ``[WARN]``, ``[ERROR]``), coloured
when the stream is a terminal.
"""
import logging
import sys
from typing import Optional, TextIO

RED = '\033[0;31m'
GREEN = '\033[0;32m'
YELLOW = '\033[1;33m'
NC = '\033[0m'

_TAGS = {
    logging.DEBUG: ('DEBUG', ''),
    logging.INFO: ('INFO', GREEN),
    logging.WARNING: ('WARN', YELLOW),
    logging.ERROR: ('ERROR', RED),
    logging.CRITICAL: ('ERROR', RED),
}


class SeverityFormatter(logging.Formatter):
    def __init__(self, color: bool = False):
        super().__init__('%(message)s')
        self.color = color

    def format(self, record: logging.LogRecord) -> str:
        message = super().format(record)
        tag, color = _TAGS.get(record.levelno, (record.levelname, ''))
        if self.color and color:
            return f'{color}[{tag}]{NC} {message}'
        return f'[{tag}] {message}'


def setup_logging(level: str = 'INFO', stream: Optional[TextIO] = None) -> logging.Logger:
    stream = stream or sys.stdout
    logger = logging.getLogger('frpsetup')
    logger.setLevel(getattr(logging, str(level).upper(), logging.INFO))
    # Clear existing handlers to avoid duplicate lines on repeated setup
    logger.handlers = []
    handler = logging.StreamHandler(stream)
    isatty = getattr(stream, 'isatty', None)
    handler.setFormatter(SeverityFormatter(color=bool(isatty and isatty())))
    logger.addHandler(handler)
    return logger
