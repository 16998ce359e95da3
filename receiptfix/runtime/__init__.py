"""Runtime infrastructure for receiptfix.

This package provides process/runtime services including:
- Logging setup via get_logger()
- Settings resolution via load_settings(), CorrectionSettings
- Tabscanner OCR access via scan_receipt()

Usage:
    from receiptfix.runtime import get_logger, load_settings

    logger = get_logger(__name__)
    settings = load_settings()
"""

from receiptfix.runtime.logging import (
    DEFAULT_LOG_LEVEL,
    LOG_FORMAT,
    LOG_FORMAT_DEBUG,
    configure_logging,
    get_logger,
    parse_log_level,
    set_log_level,
)
from receiptfix.runtime.settings import (
    CORRECTION_MODES,
    CorrectionMode,
    CorrectionSettings,
    clear_settings_cache,
    load_settings,
)
from receiptfix.runtime.tabscanner_client import (
    TabscannerNotConfigured,
    TabscannerUnavailable,
    scan_receipt,
)

__all__ = [
    "CORRECTION_MODES",
    "DEFAULT_LOG_LEVEL",
    "LOG_FORMAT",
    "LOG_FORMAT_DEBUG",
    "CorrectionMode",
    "CorrectionSettings",
    "TabscannerNotConfigured",
    "TabscannerUnavailable",
    "clear_settings_cache",
    "configure_logging",
    "get_logger",
    "load_settings",
    "parse_log_level",
    "scan_receipt",
    "set_log_level",
]
