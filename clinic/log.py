"""
JSON line formatting for the category log files.

Each record becomes one JSON object holding the timestamp, level,
logger, message and whatever structured payload was passed through
``extra``.  Keys that look like credentials are redacted before the
line is written.
"""
from __future__ import annotations

import json
import logging
from datetime import datetime, timezone

SENSITIVE_MARKERS = ('password', 'token', 'secret')

# Attributes every LogRecord carries; anything else came in through ``extra``.
_RESERVED = set(vars(logging.LogRecord('', 0, '', 0, '', (), None))) | {'message', 'asctime'}


def redact(value):
    if isinstance(value, dict):
        return {
            k: ('[REDACTED]' if any(m in str(k).lower() for m in SENSITIVE_MARKERS) else redact(v))
            for k, v in value.items()
        }
    if isinstance(value, (list, tuple)):
        return [redact(v) for v in value]
    return value


class JsonFormatter(logging.Formatter):

    def format(self, record: logging.LogRecord) -> str:
        entry = {
            'timestamp': datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
            'level': record.levelname,
            'logger': record.name,
            'message': record.getMessage(),
        }
        for key, value in record.__dict__.items():
            if key not in _RESERVED and not key.startswith('_'):
                entry[key] = value
        if record.exc_info:
            entry['exception'] = self.formatException(record.exc_info)
        return json.dumps(redact(entry), ensure_ascii=False, default=str)
