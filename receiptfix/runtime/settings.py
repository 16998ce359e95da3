"""Runtime settings for post-OCR correction and the Tabscanner client.

Precedence, lowest to highest: built-in defaults, TOML config file, environment.

Config file (``RECEIPTFIX_CONFIG`` or an explicit path)::

    [correction]
    mode = "shadow"
    enforce_require_totals_pass = true
    enforce_allow_tax_warn = false
    enforce_max_low_confidence_lines = 0

    [tabscanner]
    api_url = "https://api.tabscanner.com"
    api_key = "..."
    poll_attempts = 15
"""

from __future__ import annotations

import os
from collections.abc import Mapping
from dataclasses import dataclass, replace
from functools import lru_cache
from pathlib import Path
from typing import Any, Literal

from receiptfix.runtime.logging import get_logger

logger = get_logger(__name__)

CorrectionMode = Literal["off", "shadow", "enforce"]
CORRECTION_MODES: tuple[CorrectionMode, ...] = ("off", "shadow", "enforce")

DEFAULT_TABSCANNER_API_URL = "https://api.tabscanner.com"

TRUE_VALUES = frozenset({"1", "true", "yes", "on"})
FALSE_VALUES = frozenset({"0", "false", "no", "off"})


@dataclass(frozen=True)
class CorrectionSettings:
    """Resolved settings; ``mode`` is the requested correction mode."""

    mode: CorrectionMode = "off"
    enforce_require_totals_pass: bool = True
    enforce_allow_tax_warn: bool = False
    enforce_max_low_confidence_lines: int = 0
    tabscanner_api_url: str = DEFAULT_TABSCANNER_API_URL
    tabscanner_api_key: str | None = None
    tabscanner_poll_attempts: int = 15
    tabscanner_initial_delay: float = 3.0
    tabscanner_poll_interval: float = 2.0
    tabscanner_timeout: float = 60.0


def _load_toml(path: Path) -> dict[str, Any]:
    """Load TOML file and return parsed dict; missing files map to empty dict."""
    try:
        import tomllib
    except ImportError:
        import tomli as tomllib  # type: ignore[no-redef]

    if not path.exists():
        return {}

    with open(path, "rb") as f:
        data = tomllib.load(f)
    return data if isinstance(data, dict) else {}


def parse_bool(value: str | None) -> bool | None:
    """Parse a boolean-ish env string; None when blank or unrecognized."""
    if not value:
        return None
    normalized = value.strip().lower()
    if normalized in TRUE_VALUES:
        return True
    if normalized in FALSE_VALUES:
        return False
    return None


def _table(config: Mapping[str, Any], name: str) -> Mapping[str, Any]:
    table = config.get(name, {})
    if not isinstance(table, Mapping):
        raise ValueError(f"[{name}] must be a table")
    return table


def _expect(table: Mapping[str, Any], key: str, expected: type | tuple[type, ...], section: str) -> Any:
    value = table[key]
    # bool is an int subclass; never accept it for numeric keys
    if isinstance(value, bool) and expected is not bool:
        raise ValueError(f"[{section}].{key} must be {expected}, got {value!r}")
    if not isinstance(value, expected):
        raise ValueError(f"[{section}].{key} must be {expected}, got {value!r}")
    return value


def _apply_file_config(settings: CorrectionSettings, config: Mapping[str, Any]) -> CorrectionSettings:
    correction = _table(config, "correction")
    tabscanner = _table(config, "tabscanner")
    updates: dict[str, Any] = {}

    if "mode" in correction:
        mode = _expect(correction, "mode", str, "correction").strip().lower()
        if mode not in CORRECTION_MODES:
            raise ValueError(f"[correction].mode must be one of {CORRECTION_MODES}, got {mode!r}")
        updates["mode"] = mode
    for key in ("enforce_require_totals_pass", "enforce_allow_tax_warn"):
        if key in correction:
            updates[key] = _expect(correction, key, bool, "correction")
    if "enforce_max_low_confidence_lines" in correction:
        max_low = _expect(correction, "enforce_max_low_confidence_lines", int, "correction")
        if max_low < 0:
            raise ValueError("[correction].enforce_max_low_confidence_lines must be >= 0")
        updates["enforce_max_low_confidence_lines"] = max_low

    for key in ("api_url", "api_key"):
        if key in tabscanner:
            updates[f"tabscanner_{key}"] = _expect(tabscanner, key, str, "tabscanner")
    if "poll_attempts" in tabscanner:
        attempts = _expect(tabscanner, "poll_attempts", int, "tabscanner")
        if attempts < 1:
            raise ValueError("[tabscanner].poll_attempts must be >= 1")
        updates["tabscanner_poll_attempts"] = attempts
    for key in ("initial_delay", "poll_interval", "timeout"):
        if key in tabscanner:
            value = _expect(tabscanner, key, (int, float), "tabscanner")
            if value < 0:
                raise ValueError(f"[tabscanner].{key} must be >= 0")
            updates[f"tabscanner_{key}"] = float(value)

    return replace(settings, **updates)


def _apply_env(settings: CorrectionSettings, environ: Mapping[str, str]) -> CorrectionSettings:
    updates: dict[str, Any] = {}

    enabled = parse_bool(environ.get("RECEIPT_POST_OCR_CORRECTION_ENABLED"))
    raw_mode = environ.get("RECEIPT_POST_OCR_CORRECTION_MODE", "").strip().lower()
    if enabled is False:
        updates["mode"] = "off"
    elif raw_mode in ("shadow", "enforce"):
        updates["mode"] = raw_mode
    elif enabled is True:
        updates["mode"] = "shadow" if settings.mode == "off" else settings.mode
    elif raw_mode == "off":
        updates["mode"] = "off"
    elif raw_mode:
        logger.warning("Ignoring invalid RECEIPT_POST_OCR_CORRECTION_MODE=%r", raw_mode)

    for env_key, field_name in (
        ("RECEIPT_CORRECTION_ENFORCE_REQUIRE_TOTALS_PASS", "enforce_require_totals_pass"),
        ("RECEIPT_CORRECTION_ENFORCE_ALLOW_TAX_WARN", "enforce_allow_tax_warn"),
    ):
        raw = environ.get(env_key)
        if raw is None or raw.strip() == "":
            continue
        parsed = parse_bool(raw)
        if parsed is None:
            logger.warning("Ignoring invalid %s=%r", env_key, raw)
            continue
        updates[field_name] = parsed

    raw_max_low = environ.get("RECEIPT_CORRECTION_ENFORCE_MAX_LOW_CONFIDENCE_LINES", "").strip()
    if raw_max_low:
        try:
            max_low = int(raw_max_low)
        except ValueError:
            max_low = -1
        if max_low < 0:
            logger.warning("Ignoring invalid RECEIPT_CORRECTION_ENFORCE_MAX_LOW_CONFIDENCE_LINES=%r", raw_max_low)
        else:
            updates["enforce_max_low_confidence_lines"] = max_low

    if environ.get("TABSCANNER_API_KEY"):
        updates["tabscanner_api_key"] = environ["TABSCANNER_API_KEY"]
    if environ.get("TABSCANNER_API_URL"):
        updates["tabscanner_api_url"] = environ["TABSCANNER_API_URL"]

    return replace(settings, **updates)


@lru_cache(maxsize=8)
def _load_file_settings(config_path: str | None) -> CorrectionSettings:
    settings = CorrectionSettings()
    if config_path is None:
        return settings
    path = Path(config_path).expanduser()
    config = _load_toml(path)
    if not config:
        logger.debug("No correction config at %s; using defaults", path)
        return settings
    return _apply_file_config(settings, config)


def load_settings(
    config_path: str | Path | None = None,
    environ: Mapping[str, str] | None = None,
) -> CorrectionSettings:
    """
    Resolve correction settings from defaults, an optional TOML file, and the environment.

    Args:
        config_path: TOML file to read. Defaults to ``$RECEIPTFIX_CONFIG`` when set.
        environ: Environment mapping; defaults to ``os.environ``.

    Raises:
        ValueError: If the config file holds invalid values.
    """
    env = os.environ if environ is None else environ
    if config_path is None:
        config_path = env.get("RECEIPTFIX_CONFIG") or None
    file_settings = _load_file_settings(None if config_path is None else str(config_path))
    return _apply_env(file_settings, env)


def clear_settings_cache() -> None:
    """Forget cached config files (tests edit them in place)."""
    _load_file_settings.cache_clear()
