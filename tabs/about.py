"""About tab renderer."""

from __future__ import annotations

import streamlit as st


def render_tab() -> None:
    """Render the static about content."""

    col_left, col_right = st.columns(2)
    with col_left:
        st.markdown(
            """
            <div class="about-col about-col-left">
                <h2 class="about-heading" style="font-size: 1.2rem; font-weight: 400">Ally recovery companion</h2>
                <p class="about-text">Log sleep, mood, cravings and vitals once a day. Entries for the same day merge, so you can log sleep in the morning and a craving at night without losing either.</p>
                <hr>
            </div>
            """,
            unsafe_allow_html=True,
        )
    with col_right:
        st.markdown(
            """
            <div class="about-col about-col-right">
                <h2 class="metrics-heading" style="font-size: 1.25rem; font-weight: 400">Getting help</h2>
                <p class="metrics-paragraph">Ally is a supportive companion, not a clinician. If you are in crisis, call or text 988 (Suicide &amp; Crisis Lifeline) or text HOME to 741741.</p>
            </div>
            """,
            unsafe_allow_html=True,
        )
