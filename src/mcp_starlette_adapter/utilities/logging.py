"""Logging utilities for the adapter."""

import logging
from collections.abc import Mapping
from typing import Any, Literal

from rich.console import Console
from rich.logging import RichHandler

LogLevel = Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]

PACKAGE_LOGGER = "mcp_starlette_adapter"

DEFAULT_SENSITIVE_KEYS = frozenset(
    {
        "authorization",
        "proxy-authorization",
        "cookie",
        "set-cookie",
        "x-api-key",
        "api-key",
    }
)


def get_logger(name: str) -> logging.Logger:
    """Get a logger nested under the adapter namespace.

    Args:
        name: the module name, usually ``__name__``

    Returns:
        a logger instance
    """
    return logging.getLogger(name)


def configure_logging(level: LogLevel = "INFO") -> None:
    """Configure logging for the adapter.

    Installs a rich handler on stderr for the adapter's loggers only, so that
    mounting the adapter inside an application does not reconfigure the
    application's root logger. Calling it again can only make logging more
    verbose, so one adapter created with debug enabled keeps its debug output
    when another is created without it.

    Args:
        level: the log level to use
    """
    logger = logging.getLogger(PACKAGE_LOGGER)
    level_no = logging.getLevelName(level)
    if logger.level == logging.NOTSET or level_no < logger.level:
        logger.setLevel(level_no)
    if not any(isinstance(h, RichHandler) for h in logger.handlers):
        handler = RichHandler(console=Console(stderr=True), rich_tracebacks=True)
        handler.setFormatter(logging.Formatter("%(message)s"))
        logger.addHandler(handler)


def redact_sensitive_data(
    data: Mapping[str, Any] | None,
    sensitive_keys: set[str] | frozenset[str] | None = None,
) -> Mapping[str, Any] | None:
    """Return a shallow copy with sensitive values replaced by "***".

    Used before request headers are written to the debug log.

    Parameters
    ----------
    data:
        Original mapping (typically request headers). If *None* the function
        simply returns *None*.
    sensitive_keys:
        Optional set of lower-case keys that should be hidden; defaults to the
        usual credential-bearing headers.
    """

    if data is None:
        return None

    sensitive_keys = sensitive_keys or DEFAULT_SENSITIVE_KEYS

    redacted: dict[str, Any] = {}
    for key, value in data.items():
        if key.lower() in sensitive_keys:
            redacted[key] = "***"
        else:
            redacted[key] = value

    return redacted
