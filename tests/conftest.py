"""Shared pytest fixtures for receiptfix tests."""

from __future__ import annotations

import pytest
from receiptfix.runtime import clear_settings_cache

_SETTINGS_ENV_VARS = (
    "RECEIPTFIX_CONFIG",
    "RECEIPT_POST_OCR_CORRECTION_ENABLED",
    "RECEIPT_POST_OCR_CORRECTION_MODE",
    "RECEIPT_CORRECTION_ENFORCE_REQUIRE_TOTALS_PASS",
    "RECEIPT_CORRECTION_ENFORCE_ALLOW_TAX_WARN",
    "RECEIPT_CORRECTION_ENFORCE_MAX_LOW_CONFIDENCE_LINES",
    "TABSCANNER_API_KEY",
    "TABSCANNER_API_URL",
)


@pytest.fixture(autouse=True)
def _isolated_settings(monkeypatch: pytest.MonkeyPatch):
    """Keep the developer's shell environment and config file out of every test."""
    for name in _SETTINGS_ENV_VARS:
        monkeypatch.delenv(name, raising=False)
    clear_settings_cache()
    yield
    clear_settings_cache()
