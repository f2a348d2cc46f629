"""Sidebar account controls."""

from __future__ import annotations

import requests
import streamlit as st

from api_client import GatewayError
from services.app_helpers import AUTH_SESSION_KEY, get_record_store, sign_in, sign_out
from utils_streamlit import show_api_error


def render_tab(session_state) -> None:
    sidebar = st.sidebar
    sidebar.subheader("Account")

    session = session_state.get(AUTH_SESSION_KEY)
    if session is not None:
        sidebar.caption(f"Signed in as {session.email or session.user_id}")
        if sidebar.button("Sync now", key="sync_logs_btn"):
            store = get_record_store(session_state)
            try:
                store.refetch()
            except (requests.RequestException, GatewayError, ValueError) as exc:
                show_api_error(exc, st_module=sidebar)
            else:
                st.toast("Logs synced", icon="🔄")
        if sidebar.button("Sign out", key="sign_out_btn"):
            sign_out(session_state)
            st.toast("Signed out; showing this device's entries.", icon="👋")
        return

    sidebar.info("Entries are kept on this device until you sign in.")
    with sidebar.form("sign_in_form", clear_on_submit=True):
        email = st.text_input("Email")
        password = st.text_input("Password", type="password")
        submitted = st.form_submit_button("Sign in")
        if submitted:
            if not email.strip() or not password:
                st.error("Email and password are required.")
                return
            ok, error = sign_in(session_state, email.strip(), password)
            if not ok:
                st.error("Sign-in failed.")
                st.caption(str(error))
            elif error:
                st.warning(f"Signed in, but syncing failed: {error}")
            else:
                st.toast("Welcome back!", icon="✅")
