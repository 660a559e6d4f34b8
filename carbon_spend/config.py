"""
config.py – Load and validate runtime settings from environment variables.

All configuration is loaded from environment variables (or a .env file at
the repository root).  Every variable is optional; call `get_config()` once
at startup to obtain a validated Config object.
"""
from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from pathlib import Path

from dotenv import load_dotenv

from carbon_spend.constants import (
    ALLOWED_METHODS,
    BUNDLED_DATA_DIR,
    DEFAULT_METHOD,
    DEFAULT_TOP_CATEGORIES,
)

# Package root: carbon_spend/
_PACKAGE_ROOT = Path(__file__).resolve().parent
# Repository root (so .env can live beside pyproject.toml)
_REPO_ROOT = _PACKAGE_ROOT.parent

# Load .env from the repository root first, then the package (package overrides).
_env_repo = _REPO_ROOT / ".env"
_env_package = _PACKAGE_ROOT / ".env"
if _env_repo.exists():
    load_dotenv(_env_repo)
if _env_package.exists():
    load_dotenv(_env_package, override=True)

_TRUE = {"1", "true", "yes", "on"}
_FALSE = {"0", "false", "no", "off"}


@dataclass
class Config:
    """Validated runtime configuration."""

    data_dir: Path = BUNDLED_DATA_DIR
    method: str = DEFAULT_METHOD
    use_fallback: bool = True
    top_categories: int = DEFAULT_TOP_CATEGORIES
    log_level: str = "INFO"


def _parse_bool(name: str, raw: str) -> bool:
    value = raw.strip().lower()
    if value in _TRUE:
        return True
    if value in _FALSE:
        return False
    raise EnvironmentError(f"{name} must be a boolean (true/false), got {raw!r}")


def _parse_positive_int(name: str, raw: str) -> int:
    try:
        value = int(raw)
    except ValueError as exc:
        raise EnvironmentError(f"{name} must be an integer, got {raw!r}") from exc
    if value <= 0:
        raise EnvironmentError(f"{name} must be > 0, got {value}")
    return value


def _resolve_data_dir(raw: str) -> Path:
    # Relative paths are taken from the working directory, like the CLI file flags.
    path = Path(raw).expanduser().resolve()
    if not path.is_dir():
        raise EnvironmentError(f"CARBON_SPEND_DATA_DIR does not exist: {path}")
    return path


def get_config(method: str | None = None, data_dir: str | None = None) -> Config:
    """
    Read environment variables, validate them, and return a Config.

    Parameters
    ----------
    method:
        Override the footprint accounting method (e.g. from a CLI flag).
    data_dir:
        Override the demo data directory (e.g. from a CLI flag).

    Raises
    ------
    EnvironmentError
        If any variable holds an invalid value.
    """
    cfg = Config()

    raw_dir = data_dir or os.environ.get("CARBON_SPEND_DATA_DIR")
    if raw_dir:
        cfg.data_dir = _resolve_data_dir(raw_dir)

    cfg.method = method or os.environ.get("CARBON_SPEND_METHOD") or DEFAULT_METHOD
    if cfg.method not in ALLOWED_METHODS:
        raise EnvironmentError(
            f"CARBON_SPEND_METHOD must be one of {', '.join(ALLOWED_METHODS)}, "
            f"got {cfg.method!r}"
        )

    raw_fallback = os.environ.get("CARBON_SPEND_USE_FALLBACK")
    if raw_fallback:
        cfg.use_fallback = _parse_bool("CARBON_SPEND_USE_FALLBACK", raw_fallback)

    raw_top = os.environ.get("CARBON_SPEND_TOP_CATEGORIES")
    if raw_top:
        cfg.top_categories = _parse_positive_int("CARBON_SPEND_TOP_CATEGORIES", raw_top)

    level = (os.environ.get("CARBON_SPEND_LOG_LEVEL") or "INFO").strip().upper()
    if not isinstance(logging.getLevelName(level), int):
        raise EnvironmentError(f"CARBON_SPEND_LOG_LEVEL is not a logging level: {level!r}")
    cfg.log_level = level

    return cfg
