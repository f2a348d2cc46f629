"""Daily journal tab: quick logger plus the recent log table."""

from __future__ import annotations

from datetime import date, time
from typing import Any

import streamlit as st

from analytics import sleep_debt, sleep_hours_between
from models import CRAVING_TRIGGERS, MOOD_TAGS
from services.app_helpers import get_record_store, submit_log
from utils_streamlit import show_api_error


def build_log_values(form: dict[str, Any]) -> dict[str, Any]:
    """Translate raw form widgets into a partial log; unchecked sections are left out."""

    values: dict[str, Any] = {"log_date": form["log_date"].isoformat()}
    if form.get("log_sleep"):
        bedtime: time = form["bedtime"]
        wake_time: time = form["wake_time"]
        hours = sleep_hours_between(bedtime.strftime("%H:%M"), wake_time.strftime("%H:%M"))
        values["sleep_hours"] = round(hours, 2)
        values["sleep_quality"] = int(form["sleep_quality"])
    if form.get("log_craving"):
        values["craving_intensity"] = int(form["craving_intensity"])
        values["craving_time"] = form["craving_time"].strftime("%H:%M")
        if form.get("craving_trigger"):
            values["craving_trigger"] = form["craving_trigger"]
    if form.get("mood_tag"):
        values["mood_tag"] = form["mood_tag"]
    if form.get("log_vitals"):
        values["water_glasses"] = int(form["water_glasses"])
        values["exercise_minutes"] = int(form["exercise_minutes"])
        values["meditation_minutes"] = int(form["meditation_minutes"])
        values["took_meds"] = bool(form["took_meds"])
    notes = (form.get("notes") or "").strip()
    if notes:
        values["notes"] = notes
    return values


def render_tab(session_state) -> None:
    store = get_record_store(session_state)

    with st.form("quick_logger", clear_on_submit=False):
        form: dict[str, Any] = {"log_date": st.date_input("Day", value=date.today())}

        form["log_sleep"] = st.checkbox("Log sleep", value=True)
        left, right = st.columns(2)
        form["bedtime"] = left.time_input("Bedtime", value=time(23, 0))
        form["wake_time"] = right.time_input("Wake time", value=time(7, 0))
        form["sleep_quality"] = st.slider("Sleep quality", 0, 100, 70)

        form["log_craving"] = st.checkbox("Log a craving")
        form["craving_intensity"] = st.slider("Craving intensity", 1, 10, 5)
        left, right = st.columns(2)
        form["craving_time"] = left.time_input("When", value=time(20, 0))
        form["craving_trigger"] = right.selectbox("Trigger", ("",) + CRAVING_TRIGGERS)

        form["mood_tag"] = st.selectbox("Mood", ("",) + MOOD_TAGS)

        form["log_vitals"] = st.checkbox("Log vitals")
        cols = st.columns(3)
        form["water_glasses"] = cols[0].number_input("Water (glasses)", min_value=0, max_value=30, value=0)
        form["exercise_minutes"] = cols[1].number_input("Exercise (min)", min_value=0, max_value=600, value=0)
        form["meditation_minutes"] = cols[2].number_input("Meditation (min)", min_value=0, max_value=600, value=0)
        form["took_meds"] = st.checkbox("Took medication")
        form["notes"] = st.text_area("Notes", placeholder="Anything worth remembering about today?")

        if st.form_submit_button("Save entry"):
            values = build_log_values(form)
            record, error = submit_log(session_state, values)
            if error:
                show_api_error(error)
            elif record is not None:
                st.toast(f"Saved {record.log_date}", icon="✅")
                if record.sleep_hours is not None:
                    debt = sleep_debt(record.sleep_hours)
                    if debt > 2:
                        st.warning(f"You're {debt:.1f}h behind on rest. Consider an earlier bedtime.")

    records = store.snapshot()
    st.subheader("Recent entries")
    if not records:
        st.info("No entries yet.")
    else:
        st.dataframe(
            [
                {
                    "date": r.log_date,
                    "sleep (h)": r.sleep_hours,
                    "quality": r.sleep_quality,
                    "craving": r.craving_intensity,
                    "mood": r.mood_tag,
                    "water": r.water_glasses,
                    "meds": r.took_meds,
                }
                for r in records
            ],
            hide_index=True,
        )

    if st.button("Clear all entries", key="clear_all_logs"):
        store.clear_all()
        st.toast("All local entries cleared", icon="🗑️")
