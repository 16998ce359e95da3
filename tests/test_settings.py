from __future__ import annotations

from pathlib import Path

import pytest
from receiptfix.runtime import CorrectionSettings, clear_settings_cache, load_settings
from receiptfix.runtime.settings import parse_bool

CONFIG = """
[correction]
mode = "shadow"
enforce_require_totals_pass = false
enforce_allow_tax_warn = true
enforce_max_low_confidence_lines = 2

[tabscanner]
api_url = "https://eu.tabscanner.test"
api_key = "from-file"
poll_attempts = 5
poll_interval = 1
"""


def _write_config(tmp_path: Path, text: str = CONFIG) -> Path:
    path = tmp_path / "receiptfix.toml"
    path.write_text(text, encoding="utf-8")
    return path


def test_defaults_without_config_or_environment() -> None:
    assert load_settings(environ={}) == CorrectionSettings()
    assert CorrectionSettings().mode == "off"


def test_config_file_values(tmp_path: Path) -> None:
    settings = load_settings(config_path=_write_config(tmp_path), environ={})

    assert settings.mode == "shadow"
    assert settings.enforce_require_totals_pass is False
    assert settings.enforce_allow_tax_warn is True
    assert settings.enforce_max_low_confidence_lines == 2
    assert settings.tabscanner_api_url == "https://eu.tabscanner.test"
    assert settings.tabscanner_api_key == "from-file"
    assert settings.tabscanner_poll_attempts == 5
    assert settings.tabscanner_poll_interval == 1.0
    assert settings.tabscanner_initial_delay == 3.0


def test_config_path_from_environment(tmp_path: Path) -> None:
    path = _write_config(tmp_path)

    settings = load_settings(environ={"RECEIPTFIX_CONFIG": str(path)})

    assert settings.mode == "shadow"


def test_missing_config_file_uses_defaults(tmp_path: Path) -> None:
    assert load_settings(config_path=tmp_path / "absent.toml", environ={}) == CorrectionSettings()


def test_environment_overrides_config_file(tmp_path: Path) -> None:
    settings = load_settings(
        config_path=_write_config(tmp_path),
        environ={
            "RECEIPT_POST_OCR_CORRECTION_MODE": "enforce",
            "RECEIPT_CORRECTION_ENFORCE_REQUIRE_TOTALS_PASS": "yes",
            "RECEIPT_CORRECTION_ENFORCE_MAX_LOW_CONFIDENCE_LINES": "0",
            "TABSCANNER_API_KEY": "from-env",
        },
    )

    assert settings.mode == "enforce"
    assert settings.enforce_require_totals_pass is True
    assert settings.enforce_max_low_confidence_lines == 0
    assert settings.tabscanner_api_key == "from-env"
    assert settings.enforce_allow_tax_warn is True


@pytest.mark.parametrize(
    ("environ", "mode"),
    [
        ({"RECEIPT_POST_OCR_CORRECTION_ENABLED": "true"}, "shadow"),
        ({"RECEIPT_POST_OCR_CORRECTION_ENABLED": "1", "RECEIPT_POST_OCR_CORRECTION_MODE": "enforce"}, "enforce"),
        ({"RECEIPT_POST_OCR_CORRECTION_ENABLED": "false", "RECEIPT_POST_OCR_CORRECTION_MODE": "enforce"}, "off"),
        ({"RECEIPT_POST_OCR_CORRECTION_MODE": "shadow"}, "shadow"),
        ({"RECEIPT_POST_OCR_CORRECTION_MODE": "sometimes"}, "off"),
    ],
)
def test_mode_resolution_from_environment(environ: dict[str, str], mode: str) -> None:
    assert load_settings(environ=environ).mode == mode


def test_enabled_flag_keeps_configured_enforce_mode(tmp_path: Path) -> None:
    path = _write_config(tmp_path, '[correction]\nmode = "enforce"\n')

    settings = load_settings(config_path=path, environ={"RECEIPT_POST_OCR_CORRECTION_ENABLED": "true"})

    assert settings.mode == "enforce"


def test_invalid_environment_values_are_ignored() -> None:
    settings = load_settings(
        environ={
            "RECEIPT_CORRECTION_ENFORCE_ALLOW_TAX_WARN": "maybe",
            "RECEIPT_CORRECTION_ENFORCE_MAX_LOW_CONFIDENCE_LINES": "-3",
        }
    )

    assert settings.enforce_allow_tax_warn is False
    assert settings.enforce_max_low_confidence_lines == 0


@pytest.mark.parametrize(
    "text",
    [
        '[correction]\nmode = "always"\n',
        "[correction]\nenforce_max_low_confidence_lines = true\n",
        "[correction]\nenforce_max_low_confidence_lines = -1\n",
        '[correction]\nenforce_allow_tax_warn = "yes"\n',
        "[tabscanner]\npoll_attempts = 0\n",
        'correction = "shadow"\n',
    ],
)
def test_invalid_config_file_values_raise(tmp_path: Path, text: str) -> None:
    with pytest.raises(ValueError):
        load_settings(config_path=_write_config(tmp_path, text), environ={})


def test_config_file_is_cached_until_cleared(tmp_path: Path) -> None:
    path = _write_config(tmp_path, '[correction]\nmode = "shadow"\n')
    assert load_settings(config_path=path, environ={}).mode == "shadow"

    path.write_text('[correction]\nmode = "enforce"\n', encoding="utf-8")
    assert load_settings(config_path=path, environ={}).mode == "shadow"

    clear_settings_cache()
    assert load_settings(config_path=path, environ={}).mode == "enforce"


@pytest.mark.parametrize(
    ("raw", "expected"),
    [
        ("true", True),
        (" YES ", True),
        ("on", True),
        ("0", False),
        ("Off", False),
        ("", None),
        (None, None),
        ("sometimes", None),
    ],
)
def test_parse_bool(raw: str | None, expected: bool | None) -> None:
    assert parse_bool(raw) is expected
