"""Application configuration helpers for the Streamlit surface."""

from __future__ import annotations

import os
from dataclasses import dataclass
from typing import Any

import streamlit as st


DEFAULT_API_BASE = "http://localhost:54321"
DEFAULT_DATA_DIR = ".ally-data"
DEFAULT_TIMEOUT = 15.0
PREDICTION_MODES = ("remote", "local")


@dataclass(frozen=True)
class AppSettings:
    """Immutable configuration bundle for the wellness app."""

    api_base: str
    api_key: str | None
    data_dir: str
    seed_demo_data: bool
    request_timeout: float
    prediction_mode: str

    @property
    def use_remote_prediction(self) -> bool:
        return self.prediction_mode == "remote"


def _safe_secret(key: str) -> Any:
    """Return a Streamlit secret when available."""

    try:
        return st.secrets.get(key)
    except Exception:
        return None


def _setting(key: str) -> Any:
    return _safe_secret(key) or os.getenv(key)


def _coerce_bool(value: Any, default: bool = False) -> bool:
    """Parse truthy/falsey strings and primitives into booleans."""

    if isinstance(value, bool):
        return value
    if value is None:
        return default
    if isinstance(value, (int, float)):
        return bool(value)
    text = str(value).strip().lower()
    if not text:
        return default
    if text in {"1", "true", "yes", "on", "enabled", "enable"}:
        return True
    if text in {"0", "false", "no", "off", "disabled", "disable"}:
        return False
    return default


def _coerce_timeout(value: Any, default: float = DEFAULT_TIMEOUT) -> float:
    try:
        timeout = float(value)
    except (TypeError, ValueError):
        return default
    return timeout if timeout > 0 else default


def load_settings() -> AppSettings:
    """Collect runtime configuration from secrets and environment."""

    api_base = str(_setting("ALLY_API_BASE") or DEFAULT_API_BASE)
    prediction_mode = str(_setting("PREDICTION_MODE") or "remote").strip().lower()
    if prediction_mode not in PREDICTION_MODES:
        prediction_mode = "remote"
    return AppSettings(
        api_base=api_base.rstrip("/"),
        api_key=_setting("ALLY_API_KEY") or None,
        data_dir=str(_setting("ALLY_DATA_DIR") or DEFAULT_DATA_DIR),
        seed_demo_data=_coerce_bool(_setting("ALLY_SEED_DEMO_DATA"), default=True),
        request_timeout=_coerce_timeout(_setting("ALLY_REQUEST_TIMEOUT")),
        prediction_mode=prediction_mode,
    )


__all__ = ["AppSettings", "DEFAULT_API_BASE", "DEFAULT_DATA_DIR", "PREDICTION_MODES", "load_settings"]
