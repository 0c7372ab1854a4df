"""
Logging setup
key=value formatted records on stdout
"""

import logging
import sys

from amicus_drafter import config

# Extra fields callers may attach with logger.info(..., extra={...})
CONTEXT_FIELDS = ('case_id', 'job_id', 'wave')


class KeyValueFormatter(logging.Formatter):
    """Render a record as space separated key=value pairs."""

    def format(self, record: logging.LogRecord) -> str:
        parts = {
            'timestamp': self.formatTime(record, self.datefmt),
            'level': record.levelname,
            'module': record.module,
            'message': record.getMessage(),
        }
        for field in CONTEXT_FIELDS:
            if hasattr(record, field):
                parts[field] = getattr(record, field)

        line = ' '.join(f'{k}={v}' for k, v in parts.items())
        if record.exc_info:
            line += '\n' + self.formatException(record.exc_info)
        return line


def configure_logging(level: str = None) -> None:
    """Attach the key=value handler to the package and app loggers once."""
    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(KeyValueFormatter())

    for name in ('amicus_drafter', 'app'):
        logger = logging.getLogger(name)
        if logger.handlers:
            continue
        logger.addHandler(handler)
        logger.setLevel((level or config.LOG_LEVEL).upper())
        logger.propagate = False
