"""
Logging setup.

Services log through module-level loggers and pass structured
fields with ``extra=``. The formatter appends those fields as
key=value pairs so a log line stays greppable.
"""

import logging
import sys

# Attributes every LogRecord has; anything else came in through extra=
_RESERVED = set(vars(logging.makeLogRecord({}))) | {"message", "asctime"}


class KeyValueFormatter(logging.Formatter):

    def format(self, record: logging.LogRecord) -> str:
        line = super().format(record)
        fields = {
            key: value for key, value in vars(record).items()
            if key not in _RESERVED
        }
        if fields:
            pairs = " ".join(f"{k}={v}" for k, v in sorted(fields.items()))
            line = f"{line} | {pairs}"
        return line


def configure_logging(level: str = "INFO") -> None:
    """Install a single stream handler on the package logger."""
    logger = logging.getLogger("dairy_ledger")
    logger.setLevel(level.upper())

    if any(getattr(h, "_dairy_ledger", False) for h in logger.handlers):
        return

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(KeyValueFormatter(
        "%(asctime)s | %(levelname)-8s | %(name)s | %(message)s"
    ))
    handler._dairy_ledger = True
    logger.addHandler(handler)
