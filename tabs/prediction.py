"""Prediction tab renderer."""

from __future__ import annotations

import streamlit as st

from services.app_helpers import AUTH_SESSION_KEY, get_prediction_service, get_record_store
from utils_streamlit import show_api_error

RISK_ICONS = {"Low": "🟢", "Medium": "🟡", "High": "🔴"}


def render_tab(session_state) -> None:
    service = get_prediction_service(session_state)
    records = get_record_store(session_state).snapshot()

    if st.button("Refresh prediction", key="refresh_prediction") or service.prediction is None:
        with st.spinner("Analyzing your week..."):
            service.fetch_prediction(records, session=session_state.get(AUTH_SESSION_KEY))

    if service.error:
        show_api_error(service.error)

    result = service.prediction
    if result is None:
        return
    left, right, third = st.columns(3)
    left.metric("Risk", f"{RISK_ICONS.get(result.risk_level, '')} {result.risk_level}")
    right.metric("Trend", result.trend)
    third.metric("Confidence", f"{result.confidence:.0f}%")
    st.write(result.prediction)
    st.info(f"Tip: {result.actionable_tip}")
