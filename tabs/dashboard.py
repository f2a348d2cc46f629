"""Dashboard tab: insights, risk by time of day, sleep and vitals."""

from __future__ import annotations

import streamlit as st

from analytics import (
    craving_risk_by_time_of_day,
    filter_by_recency,
    insight_rules,
    logging_streak,
    sleep_craving_correlation,
    sleep_debt,
    vitals_summary,
)
from services.app_helpers import get_record_store
from ui_components import highest_risk_bucket, render_insights, render_metrics_card


def render_tab(session_state) -> None:
    records = get_record_store(session_state).snapshot()

    st.markdown("### Smart insights")
    render_insights(insight_rules(records))

    render_metrics_card(
        "This week",
        {
            "Day streak": logging_streak(records),
            **{k.replace("_", " ").title(): v for k, v in vitals_summary(records).items()},
        },
    )

    st.markdown("### Risk radar")
    risk = craving_risk_by_time_of_day(filter_by_recency(records, 14))
    st.bar_chart(risk)
    peak = highest_risk_bucket(risk)
    if peak:
        st.caption(f"Highest risk: {peak} ({risk[peak]}/100)")

    st.markdown("### Sleep")
    recent = filter_by_recency(records, 7)
    debt = sum(sleep_debt(r.sleep_hours) for r in recent if r.sleep_hours is not None)
    correlation = sleep_craving_correlation(records)
    render_metrics_card(
        "Sleep and cravings (14 days)",
        {
            "Sleep debt (7d)": round(debt, 1),
            "Avg sleep quality": correlation["avg_sleep_quality"],
            "Avg craving": correlation["avg_craving"],
            "Calm after good sleep": f"{correlation['correlation_percent']}%",
        },
    )
    chart_rows = [
        {"date": r.log_date, "sleep quality": r.sleep_quality or 0, "craving x10": (r.craving_intensity or 0) * 10}
        for r in reversed(records[:14])
    ]
    if chart_rows:
        st.line_chart(chart_rows, x="date")
