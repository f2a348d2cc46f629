"""Streamlit helpers shared by the wellness tabs."""

from __future__ import annotations

import requests
import streamlit as st

from api_client import CreditsDepletedError, GatewayError, RateLimitedError


def error_message(error: Exception | str) -> str:
    """Return a user-facing message, with actionable wording for quota errors."""

    if isinstance(error, RateLimitedError):
        return f"{error} Try again shortly."
    if isinstance(error, CreditsDepletedError):
        return f"{error} The assistant is unavailable until credits are added."
    if isinstance(error, GatewayError) and error.status_code:
        return f"API request failed ({error.status_code}): {error}"
    if isinstance(error, requests.RequestException):
        return f"Request failed: {error}"
    return str(error)


def show_api_error(error: Exception | str, *, st_module=st) -> None:
    """Render a consistent error block in Streamlit."""

    if isinstance(error, RateLimitedError):
        st_module.warning(error_message(error))
        return
    st_module.error(error_message(error))


__all__ = ["error_message", "show_api_error"]
