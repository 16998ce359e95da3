"""Stderr logging for the receiptfix process.

Everything logs under the ``receiptfix`` logger. Runtime, application and CLI
code obtain loggers through ``get_logger``, which installs the stderr handler
on first use. Domain and receipt code stays free of process setup and calls
``logging.getLogger(__name__)`` directly; the records still reach the handler
because module names share the package prefix.

``RECEIPTFIX_LOG_LEVEL`` picks the starting level (DEBUG, INFO, WARNING or
ERROR, INFO when unset or unrecognized). ``--verbose`` on the CLI raises it to
DEBUG after startup.
"""

import logging
import os
import sys

LOGGER_NAMESPACE = "receiptfix"
LOG_LEVEL_ENV_VAR = "RECEIPTFIX_LOG_LEVEL"

DEFAULT_LOG_LEVEL = logging.INFO

LOG_FORMAT = "%(levelname)s [%(name)s] %(message)s"
# Debug output carries the source line so trust-gate decisions can be traced.
LOG_FORMAT_DEBUG = "%(levelname)s [%(name)s:%(lineno)d] %(message)s"

_LEVEL_NAMES = {
    "DEBUG": logging.DEBUG,
    "INFO": logging.INFO,
    "WARNING": logging.WARNING,
    "WARN": logging.WARNING,
    "ERROR": logging.ERROR,
}

_handler: logging.Handler | None = None


def parse_log_level(value: str | None) -> int:
    """Map a level name such as ``"debug"`` to its ``logging`` constant."""
    if not value:
        return DEFAULT_LOG_LEVEL
    return _LEVEL_NAMES.get(value.strip().upper(), DEFAULT_LOG_LEVEL)


def _formatter_for(level: int) -> logging.Formatter:
    return logging.Formatter(LOG_FORMAT_DEBUG if level <= logging.DEBUG else LOG_FORMAT)


def configure_logging(level: int | None = None) -> None:
    """Attach the stderr handler to the ``receiptfix`` logger once per process.

    Later calls are no-ops; use ``set_log_level`` to change the level afterwards.
    """
    global _handler

    if _handler is not None:
        return

    if level is None:
        level = parse_log_level(os.environ.get(LOG_LEVEL_ENV_VAR))

    _handler = logging.StreamHandler(sys.stderr)
    _handler.setFormatter(_formatter_for(level))

    package_logger = logging.getLogger(LOGGER_NAMESPACE)
    package_logger.setLevel(level)
    package_logger.addHandler(_handler)
    package_logger.propagate = False


def get_logger(name: str) -> logging.Logger:
    """Return the logger for ``name``, nested under ``receiptfix`` when it is not already."""
    configure_logging()

    if name == LOGGER_NAMESPACE or name.startswith(f"{LOGGER_NAMESPACE}."):
        return logging.getLogger(name)
    return logging.getLogger(f"{LOGGER_NAMESPACE}.{name}")


def set_log_level(level: int) -> None:
    configure_logging(level)

    package_logger = logging.getLogger(LOGGER_NAMESPACE)
    package_logger.setLevel(level)
    for handler in package_logger.handlers:
        handler.setFormatter(_formatter_for(level))
