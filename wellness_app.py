"""Streamlit front end for the Ally wellness companion."""

from __future__ import annotations

from datetime import datetime

import streamlit as st

from services.app_helpers import get_record_store
from tabs import about, account, chat as chat_tab, dashboard, journal, prediction


def greeting(hour: int) -> str:
    if hour < 12:
        return "Good morning"
    if hour < 18:
        return "Good afternoon"
    return "Good evening"


def _render_app() -> None:
    st.set_page_config(page_title="Ally", layout="wide")
    session_state = st.session_state

    account.render_tab(session_state)
    store = get_record_store(session_state)
    if store.error:
        st.warning(f"Showing local entries; last sync failed: {store.error}")

    st.markdown(f"## {greeting(datetime.now().hour)} 👋")
    tabs = st.tabs(["Dashboard", "Journal", "Chat with Ally", "Prediction", "About"])
    with tabs[0]:
        dashboard.render_tab(session_state)
    with tabs[1]:
        journal.render_tab(session_state)
    with tabs[2]:
        chat_tab.render_tab(session_state)
    with tabs[3]:
        prediction.render_tab(session_state)
    with tabs[4]:
        about.render_tab()


def main() -> None:
    """Streamlit entry point for the wellness companion."""

    _render_app()


if __name__ == "__main__":
    main()
