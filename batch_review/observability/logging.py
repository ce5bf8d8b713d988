"""
Logging setup for the review service.

JSON or plain-text output on stdout, a context variable that tags
records with the current run and batch, and a filter that masks API
keys and tokens before anything is written.
"""

import json
import logging
import re
import sys
from contextvars import ContextVar
from datetime import datetime, timezone
from typing import Any, Dict, List, Pattern

from batch_review.config import Settings


# Fields attached to every record, set through LogContext
log_context: ContextVar[Dict[str, Any]] = ContextVar('log_context', default={})

# Attributes every LogRecord carries; anything else was passed via ``extra=``
_RESERVED_ATTRS = set(vars(logging.LogRecord('', 0, '', 0, '', (), None))) | {'message', 'asctime'}

SECRET_PATTERNS: List[Pattern[str]] = [
    re.compile(r'(?:api[_-]?key|token|password)["\']?\s*[:=]\s*["\']?[A-Za-z0-9\-._~+/]+=*["\']?', re.IGNORECASE),
    re.compile(r'secret["\']?\s*[:=]\s*["\']?[A-Za-z0-9\-._~+/]+=*["\']?', re.IGNORECASE),
    re.compile(r'Bearer\s+[A-Za-z0-9\-._~+/]+=*', re.IGNORECASE),
    re.compile(r'\bsk-[A-Za-z0-9\-_]{8,}'),
]


def mask_secrets(text: str, visible_chars: int = 4) -> str:
    """
    Mask anything that looks like a credential.

    Keeps the first few characters of each match so log lines stay
    recognisable, and replaces the rest with asterisks.

    Args:
        text: Text to scrub
        visible_chars: Number of leading characters left readable

    Returns:
        Scrubbed text
    """
    masked = text
    for pattern in SECRET_PATTERNS:
        masked = pattern.sub(
            lambda m: m.group(0)[:visible_chars] + '*' * max(8, len(m.group(0)) - visible_chars),
            masked,
        )
    return masked


class SecretMaskingFilter(logging.Filter):
    """Rewrites record messages so API keys and tokens never get logged."""

    def filter(self, record: logging.LogRecord) -> bool:
        message = record.getMessage()
        masked = mask_secrets(message)
        if masked != message:
            record.msg = masked
            record.args = None
        return True


def _extra_fields(record: logging.LogRecord) -> Dict[str, Any]:
    return {
        key: value
        for key, value in record.__dict__.items()
        if key not in _RESERVED_ATTRS and not key.startswith('_')
    }


class JSONFormatter(logging.Formatter):
    """
    One JSON object per record.

    Carries the active ``LogContext`` (run strategy, batch id) under
    ``context`` and every ``extra=`` field at the top level.
    """

    def format(self, record: logging.LogRecord) -> str:
        payload: Dict[str, Any] = {
            'timestamp': datetime.now(timezone.utc).isoformat(),
            'level': record.levelname,
            'logger': record.name,
            'message': record.getMessage(),
        }

        active = log_context.get()
        if active:
            payload['context'] = active

        if record.exc_info and record.exc_info[0] is not None:
            exc_type, exc_value, _ = record.exc_info
            payload['exception'] = {
                'type': exc_type.__name__,
                'message': str(exc_value),
                'traceback': self.formatException(record.exc_info),
            }

        payload.update(_extra_fields(record))

        if record.levelno >= logging.ERROR:
            payload['source'] = {
                'file': record.pathname,
                'line': record.lineno,
                'function': record.funcName,
            }

        return json.dumps(payload, default=str)


class ContextFormatter(logging.Formatter):
    """Plain-text formatter that appends the active log context as ``key=value`` pairs."""

    def format(self, record: logging.LogRecord) -> str:
        text = super().format(record)
        active = log_context.get()
        if not active:
            return text
        pairs = ' '.join(f'{key}={value}' for key, value in active.items())
        return f"{text} [{pairs}]"


# Provider SDKs and their HTTP stack log every request at INFO
NOISY_LOGGERS = ('httpx', 'httpcore', 'anthropic', 'openai')


def setup_logging(settings: Settings) -> None:
    """
    Install the root handler.

    JSON output in production or when LOG_FORMAT is ``json``, plain
    text otherwise. With MASK_SECRETS the handler scrubs credentials
    from every message before it is formatted.

    Args:
        settings: Application settings
    """
    level = getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO)

    handler = logging.StreamHandler(sys.stdout)
    handler.setLevel(level)
    if settings.ENVIRONMENT == "production" or settings.LOG_FORMAT == "json":
        handler.setFormatter(JSONFormatter())
    else:
        handler.setFormatter(ContextFormatter(
            fmt='%(asctime)s %(levelname)s %(name)s: %(message)s',
            datefmt='%Y-%m-%d %H:%M:%S',
        ))
    if settings.MASK_SECRETS:
        handler.addFilter(SecretMaskingFilter())

    root = logging.getLogger()
    root.setLevel(level)
    root.handlers = [handler]

    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)

    root.info(
        f"Logging configured: level={settings.LOG_LEVEL}, environment={settings.ENVIRONMENT}, "
        f"format={'json' if isinstance(handler.formatter, JSONFormatter) else 'text'}"
    )


def get_logger(name: str) -> logging.Logger:
    return logging.getLogger(name)


class LogContext:
    """
    Adds key/value pairs to every record logged inside the block.

    Nested contexts merge with the enclosing one and restore it on exit:

        with LogContext(strategy="batch"):
            with LogContext(batch_id="high-2-1"):
                logger.info("Calling review port")
    """

    def __init__(self, **fields: Any):
        self.fields = fields
        self._token = None

    def __enter__(self) -> "LogContext":
        self._token = log_context.set({**log_context.get(), **self.fields})
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        if self._token is not None:
            log_context.reset(self._token)
            self._token = None


def get_log_context() -> Dict[str, Any]:
    """Copy of the fields currently attached to log records."""
    return dict(log_context.get())


def clear_log_context() -> None:
    log_context.set({})
