"""
Structured logging with key=value and JSON output support.

Wraps the standard library ``logging`` module to provide structured output
in two formats: human-readable key=value pairs (default) and machine-parseable
JSON for headless deployments.

Values whose key names key material (``private_key``, ``secret``, ``nsec``
and friends) are replaced with a fixed marker before they reach any handler,
so a careless ``logger.debug(..., secret=s)`` never leaks a session secret.
Long values are truncated to a configurable maximum length.

The ``StructuredFormatter`` is a stdlib ``logging.Formatter`` that reads
structured data from the ``structured_kv`` extra field (attached by Logger)
and appends it as key=value pairs. When installed on the root handler it
unifies output from ``Logger`` and plain ``logging.getLogger()`` calls.

Examples:
    ```python
    from nostrtv.core.logger import Logger

    logger = Logger("pool")
    logger.info("relay_connected", url="wss://relay.damus.io", open=1)
    # Output: relay_connected url=wss://relay.damus.io open=1

    logger.debug("session_restored", secret="abc")
    # Output: session_restored secret=<redacted>
    ```
"""

from __future__ import annotations

import datetime
import json
import logging
from typing import Any, ClassVar


REDACTED = "<redacted>"

_SENSITIVE_KEYS: frozenset[str] = frozenset(
    {
        "private_key",
        "privkey",
        "client_private_key",
        "secret",
        "nsec",
        "conversation_key",
        "shared_secret",
    }
)


def short_hex(value: str | None, length: int = 16) -> str:
    """Truncate a hex identifier (pubkey, event id) for log output."""
    if not value:
        return ""
    return value if len(value) <= length else value[:length]


def redact(kwargs: dict[str, Any]) -> dict[str, Any]:
    """Return a copy of *kwargs* with sensitive values replaced."""
    return {k: (REDACTED if k.lower() in _SENSITIVE_KEYS else v) for k, v in kwargs.items()}


def format_kv_pairs(
    kwargs: dict[str, Any],
    max_value_length: int | None = 1000,
    prefix: str = " ",
) -> str:
    """Format a dictionary as space-separated key=value pairs.

    Values are truncated to ``max_value_length`` characters, and values
    containing whitespace, equals signs, or quotes are escaped and quoted.

    Args:
        kwargs: Key-value pairs to format.
        max_value_length: Maximum characters per value before truncation.
            Pass None to disable truncation.
        prefix: String prepended to the output (default: single space).

    Returns:
        Formatted string, e.g. ' key1=value1 key2="value with spaces"'.
        Returns empty string if kwargs is empty.
    """
    if not kwargs:
        return ""

    parts = []
    for k, v in redact(kwargs).items():
        s = _truncate(str(v), max_value_length)
        if not s or " " in s or "=" in s or '"' in s or "'" in s:
            escaped = s.replace("\\", "\\\\").replace('"', '\\"')
            parts.append(f'{k}="{escaped}"')
        else:
            parts.append(f"{k}={s}")

    return prefix + " ".join(parts)


def _truncate(s: str, max_value_length: int | None) -> str:
    if max_value_length and len(s) > max_value_length:
        return s[:max_value_length] + f"...<truncated {len(s) - max_value_length} chars>"
    return s


class StructuredFormatter(logging.Formatter):
    """Formats all log records as structured key=value output.

    Records without ``structured_kv`` (plain ``logging.getLogger()`` calls)
    are emitted with the same ``level name message`` prefix.
    """

    def format(self, record: logging.LogRecord) -> str:
        base = f"{record.levelname.lower()} {record.name} {record.getMessage()}"
        extra: dict[str, Any] = getattr(record, "structured_kv", {})
        if extra:
            base += format_kv_pairs(extra)
        if record.exc_info:
            base += "\n" + self.formatException(record.exc_info)
        return base


def configure_logging(level: str = "INFO", *, json_output: bool = False) -> None:
    """Install a single root handler with the structured formatter.

    In JSON mode every ``Logger`` renders the whole record itself, so the
    handler only prints the message.
    """
    handler = logging.StreamHandler()
    if json_output:
        handler.setFormatter(logging.Formatter("%(message)s"))
    else:
        handler.setFormatter(StructuredFormatter())
    Logger.json_default = json_output
    root = logging.getLogger()
    root.handlers.clear()
    root.addHandler(handler)
    root.setLevel(level.upper())


class Logger:
    """Structured logger that appends keyword arguments as extra fields.

    All public methods mirror the standard logging API with an added
    ``**kwargs`` parameter.

    Examples:
        ```python
        logger = Logger("signer")
        logger.info("rpc_sent", method="sign_event", request_id="5f0c...")
        # Output: rpc_sent method=sign_event request_id=5f0c...
        ```
    """

    _DEFAULT_MAX_VALUE_LENGTH: ClassVar[int] = 1000
    json_default: ClassVar[bool] = False

    def __init__(
        self,
        name: str,
        *,
        json_output: bool | None = None,
        max_value_length: int | None = None,
    ) -> None:
        """Initialize a structured logger.

        Args:
            name: Logger name, typically the component name.
            json_output: If True, emit JSON objects instead of key=value pairs.
                Defaults to the process-wide setting of ``configure_logging()``.
            max_value_length: Maximum character length for individual values
                before truncation. Defaults to 1000.
        """
        if max_value_length is None:
            max_value_length = self._DEFAULT_MAX_VALUE_LENGTH
        self._logger = logging.getLogger(name)
        self._json_output = json_output
        self._max_value_length = max_value_length

    @property
    def name(self) -> str:
        return self._logger.name

    def _format_json(self, msg: str, level: str, kwargs: dict[str, Any]) -> str:
        record = {
            "timestamp": datetime.datetime.now(datetime.UTC).isoformat(),
            "level": level,
            "component": self._logger.name,
            "message": msg,
            **redact(kwargs),
        }
        return json.dumps(record, default=str)

    def _make_extra(self, kwargs: dict[str, Any]) -> dict[str, Any]:
        if not kwargs:
            return {}
        cleaned: dict[str, Any] = {}
        for k, v in redact(kwargs).items():
            s = str(v)
            if self._max_value_length and len(s) > self._max_value_length:
                cleaned[k] = _truncate(s, self._max_value_length)
            else:
                cleaned[k] = v
        return {"structured_kv": cleaned}

    def _log(self, level: int, msg: str, kwargs: dict[str, Any], *, exc_info: bool = False) -> None:
        if not self._logger.isEnabledFor(level):
            return
        json_output = Logger.json_default if self._json_output is None else self._json_output
        if json_output:
            name = logging.getLevelName(level).lower()
            self._logger.log(level, self._format_json(msg, name, kwargs), exc_info=exc_info)
        else:
            self._logger.log(level, msg, extra=self._make_extra(kwargs), exc_info=exc_info)

    def debug(self, msg: str, **kwargs: Any) -> None:
        """Log a DEBUG level message with optional key=value pairs."""
        self._log(logging.DEBUG, msg, kwargs)

    def info(self, msg: str, **kwargs: Any) -> None:
        """Log an INFO level message with optional key=value pairs."""
        self._log(logging.INFO, msg, kwargs)

    def warning(self, msg: str, **kwargs: Any) -> None:
        """Log a WARNING level message with optional key=value pairs."""
        self._log(logging.WARNING, msg, kwargs)

    def error(self, msg: str, **kwargs: Any) -> None:
        """Log an ERROR level message with optional key=value pairs."""
        self._log(logging.ERROR, msg, kwargs)

    def exception(self, msg: str, **kwargs: Any) -> None:
        """Log an ERROR level message with the active exception traceback."""
        self._log(logging.ERROR, msg, kwargs, exc_info=True)
