"""Reusable Streamlit UI primitives."""

from __future__ import annotations

from typing import Any, Iterable, Mapping, Sequence

import streamlit as st

from models import Insight

SEVERITY_ICONS = {
    "critical": "🚨",
    "warning": "⚠️",
    "success": "✅",
    "info": "🧠",
}


def prepare_metric_rows(metrics: Mapping[str, Any] | Iterable[tuple[str, Any]]) -> list[tuple[str, str]]:
    """Normalize metric entries to ``(label, value)`` rows."""

    rows: list[tuple[str, str]] = []
    if isinstance(metrics, Mapping):
        items = metrics.items()
    else:
        items = metrics or []
    for label, value in items:
        if not label:
            continue
        if isinstance(value, float):
            rows.append((str(label), f"{value:.1f}"))
        else:
            rows.append((str(label), str(value)))
    return rows


def highest_risk_bucket(risk: Mapping[str, int]) -> str | None:
    """Return the bucket with the highest non-zero risk, first one on ties."""

    best: str | None = None
    best_value = 0
    for name, value in risk.items():
        if value > best_value:
            best, best_value = name, value
    return best


def format_insight(insight: Insight) -> str:
    icon = SEVERITY_ICONS.get(insight.severity, "•")
    headline = f"{icon} **{insight.title}**"
    if insight.metric:
        headline += f" · {insight.metric}"
    return f"{headline}\n\n{insight.description}"


def render_metrics_card(
    title: str,
    metrics: Mapping[str, Any] | Iterable[tuple[str, Any]],
    *,
    st_module=st,
) -> None:
    """Render a titled metric group."""

    rows = prepare_metric_rows(metrics)
    if not rows:
        return
    st_module.markdown(f"#### {title}")
    columns = st_module.columns(len(rows))
    for column, (label, value) in zip(columns, rows):
        column.metric(label, value)


def render_insights(insights: Sequence[Insight], *, st_module=st) -> None:
    renderers = {
        "critical": st_module.error,
        "warning": st_module.warning,
        "success": st_module.success,
    }
    for insight in insights:
        renderers.get(insight.severity, st_module.info)(format_insight(insight))


__all__ = [
    "SEVERITY_ICONS",
    "format_insight",
    "highest_risk_bucket",
    "prepare_metric_rows",
    "render_insights",
    "render_metrics_card",
]
