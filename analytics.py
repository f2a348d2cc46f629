"""Pure derivations over daily log records.

Every helper here is deterministic and side-effect free; callers pass the
current record snapshot and recompute on demand. ``today`` is injectable so the
date-relative helpers can be exercised without patching the clock.
"""

from __future__ import annotations

import math
from datetime import date, timedelta
from typing import Any, Dict, Iterable, List, Optional, Sequence

from models import DailyLogRecord, Insight, PredictionResult

IDEAL_SLEEP_HOURS = 8.0
INSIGHT_WINDOW = 7
MAX_INSIGHTS = 3

# Inclusive start hour of each bucket; Night wraps past midnight to 04:59.
TIME_BUCKETS: tuple[tuple[str, int, int], ...] = (
    ("Morning", 5, 12),
    ("Afternoon", 12, 17),
    ("Evening", 17, 21),
)
NIGHT_BUCKET = "Night"
BUCKET_ORDER: tuple[str, ...] = ("Morning", "Afternoon", "Evening", NIGHT_BUCKET)


def round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def _mean(values: Iterable[float]) -> float | None:
    items = list(values)
    if not items:
        return None
    return sum(items) / len(items)


def _parse_day(record: DailyLogRecord) -> date | None:
    try:
        return record.day
    except ValueError:
        return None


def most_recent(records: Iterable[DailyLogRecord], count: int) -> List[DailyLogRecord]:
    """Return the ``count`` records with the latest ``log_date``, newest first."""

    ordered = sorted(records, key=lambda record: record.log_date, reverse=True)
    return ordered[: max(0, count)]


def filter_by_recency(
    records: Iterable[DailyLogRecord],
    days: int,
    *,
    today: date | None = None,
) -> List[DailyLogRecord]:
    """Keep records logged on or after ``today - days`` (boundary included)."""

    cutoff = (today or date.today()) - timedelta(days=days)
    kept: List[DailyLogRecord] = []
    for record in records:
        day = _parse_day(record)
        if day is not None and day >= cutoff:
            kept.append(record)
    return kept


def sleep_debt(hours_slept: float, ideal_hours: float = IDEAL_SLEEP_HOURS) -> float:
    return max(0.0, ideal_hours - hours_slept)


def sleep_hours_between(bedtime: str, wake_time: str) -> float:
    """Hours between two ``HH:MM`` clock times, wrapping past midnight."""

    bed_h, bed_m = (int(part) for part in bedtime.split(":")[:2])
    wake_h, wake_m = (int(part) for part in wake_time.split(":")[:2])
    minutes = ((wake_h * 60 + wake_m) - (bed_h * 60 + bed_m)) % (24 * 60)
    return minutes / 60


def time_bucket(clock: str) -> str:
    hour = int(clock.split(":")[0])
    for name, start, end in TIME_BUCKETS:
        if start <= hour < end:
            return name
    return NIGHT_BUCKET


def craving_risk_by_time_of_day(records: Iterable[DailyLogRecord]) -> Dict[str, int]:
    """Average craving intensity per time-of-day bucket, scaled to 0-100."""

    totals = {name: 0 for name in BUCKET_ORDER}
    counts = {name: 0 for name in BUCKET_ORDER}
    for record in records:
        if not record.craving_time or record.craving_intensity is None:
            continue
        try:
            bucket = time_bucket(record.craving_time)
        except ValueError:
            continue
        totals[bucket] += record.craving_intensity
        counts[bucket] += 1
    return {
        name: round_half_up(totals[name] / counts[name] * 10) if counts[name] else 0
        for name in BUCKET_ORDER
    }


def insight_rules(records: Sequence[DailyLogRecord]) -> List[Insight]:
    """Evaluate the insight rules against the latest week of logs.

    Rules are checked in priority order and the first three matches win:
    critical sleep/craving combination, sleep-quality warning, consistent
    sleep, accumulated sleep debt, low cravings, and a downward craving trend.
    Means ignore records that do not carry the field and a rule whose mean
    inputs are all absent does not fire; sleep debt counts a missing night as
    zero hours.
    """

    if not records:
        return [
            Insight(
                id="no-data",
                severity="info",
                title="Start Tracking",
                description="Log your first entry to unlock personalized insights.",
            )
        ]

    window = most_recent(records, INSIGHT_WINDOW)
    avg_quality = _mean(r.sleep_quality for r in window if r.sleep_quality is not None)
    avg_craving = _mean(r.craving_intensity for r in window if r.craving_intensity is not None)
    consistent_days = sum(
        1 for r in window if r.sleep_hours is not None and 7 <= r.sleep_hours <= 9
    )
    # A missing sleep_hours counts as no sleep.
    debt = sum(sleep_debt(r.sleep_hours or 0) for r in window)

    low_quality = avg_quality is not None and avg_quality < 60
    insights: List[Insight] = []

    if low_quality and avg_craving is not None and avg_craving > 7:
        insights.append(
            Insight(
                id="critical-correlation",
                severity="critical",
                title="High Risk Alert",
                description=(
                    "Poor sleep is amplifying your cravings. Prioritize rest tonight "
                    "and keep your coping plan close."
                ),
                metric=f"{avg_craving:.1f}/10 cravings",
            )
        )

    if low_quality and avg_craving is not None and avg_craving > 5:
        insights.append(
            Insight(
                id="quality-warning",
                severity="warning",
                title="Sleep Quality Impact",
                description=(
                    f"Poor sleep quality ({avg_quality:.0f}%) is linked to elevated cravings. "
                    "Consider a calming bedtime routine."
                ),
                metric=f"{avg_quality:.0f}% quality",
            )
        )

    if consistent_days >= 3:
        insights.append(
            Insight(
                id="recovery-baseline",
                severity="success",
                title="Recovery Baseline Achieved",
                description=f"{consistent_days} days of optimal sleep! Your emotional stability is peaking.",
                metric=f"{consistent_days}-day streak",
            )
        )

    if debt > 5:
        insights.append(
            Insight(
                id="sleep-debt",
                severity="warning",
                title="Sleep Debt Accumulating",
                description=(
                    f"You've accumulated {debt:.1f}h of sleep debt this week. "
                    "Consider an earlier bedtime."
                ),
                metric=f"{debt:.1f}h debt",
            )
        )

    if avg_craving is not None and avg_craving < 4 and len(records) >= 3:
        insights.append(
            Insight(
                id="low-craving",
                severity="success",
                title="Craving Control Strong",
                description=f"Average intensity at {avg_craving:.1f}/10. Your coping strategies are working!",
                metric=f"{avg_craving:.1f}/10",
            )
        )

    if len(window) >= 3:
        # Missing intensities count as a neutral 5.
        recent_avg = sum(_intensity_or_neutral(r) for r in window[:3]) / 3
        older_avg = sum(_intensity_or_neutral(r) for r in window[-3:]) / 3
        if recent_avg < older_avg - 1:
            drop = (older_avg - recent_avg) / older_avg * 100
            insights.append(
                Insight(
                    id="improving-trend",
                    severity="success",
                    title="Positive Momentum",
                    description=f"Cravings trending down {drop:.0f}% compared to earlier this week.",
                    metric=f"-{older_avg - recent_avg:.1f} intensity",
                )
            )

    if not insights:
        insights.append(
            Insight(
                id="general-info",
                severity="info",
                title="Keep Tracking",
                description="Continue logging to unlock deeper insights about your patterns.",
            )
        )
    return insights[:MAX_INSIGHTS]


def _intensity_or_neutral(record: DailyLogRecord) -> int:
    return record.craving_intensity if record.craving_intensity is not None else 5


def logging_streak(records: Iterable[DailyLogRecord], *, today: date | None = None) -> int:
    """Consecutive logged days ending today, or yesterday if today is open."""

    today = today or date.today()
    days = {day for day in (_parse_day(r) for r in records) if day is not None}
    if today in days:
        cursor = today
    elif today - timedelta(days=1) in days:
        cursor = today - timedelta(days=1)
    else:
        return 0
    streak = 0
    while cursor in days:
        streak += 1
        cursor -= timedelta(days=1)
    return streak


def user_stats(
    records: Iterable[DailyLogRecord],
    *,
    today: date | None = None,
) -> Optional[Dict[str, Any]]:
    """Summarize the last week for the chat assistant's context block."""

    ordered = sorted(records, key=lambda record: record.log_date, reverse=True)
    recent = filter_by_recency(ordered, INSIGHT_WINDOW, today=today)
    if not recent:
        return None
    latest = recent[0]
    stats: Dict[str, Any] = {
        "sleepQuality": round_half_up(sum(r.sleep_quality or 0 for r in recent) / len(recent)),
        "currentStreak": logging_streak(recent, today=today),
    }
    if latest.mood_tag:
        stats["moodTag"] = latest.mood_tag
    if latest.craving_intensity is not None:
        stats["cravingIntensity"] = latest.craving_intensity
    return stats


def vitals_summary(
    records: Iterable[DailyLogRecord],
    *,
    today: date | None = None,
) -> Dict[str, int]:
    """Seven-day averages for hydration, activity and medication adherence."""

    recent = filter_by_recency(records, INSIGHT_WINDOW, today=today)
    if not recent:
        return {"water_glasses": 0, "exercise_minutes": 0, "meditation_minutes": 0, "med_adherence": 0}
    count = len(recent)
    return {
        "water_glasses": round_half_up(sum(r.water_glasses for r in recent) / count),
        "exercise_minutes": round_half_up(sum(r.exercise_minutes for r in recent) / count),
        "meditation_minutes": round_half_up(sum(r.meditation_minutes for r in recent) / count),
        "med_adherence": round_half_up(sum(1 for r in recent if r.took_meds) / count * 100),
    }


def sleep_craving_correlation(
    records: Iterable[DailyLogRecord],
    *,
    days: int = 14,
    today: date | None = None,
) -> Dict[str, int]:
    """Share of well-slept days (quality >= 70) that also had low cravings."""

    recent = filter_by_recency(records, days, today=today)
    if not recent:
        return {"avg_sleep_quality": 0, "avg_craving": 0, "correlation_percent": 0}
    count = len(recent)
    well_slept = [r for r in recent if (r.sleep_quality or 0) >= 70]
    calm_after_sleep = [r for r in well_slept if (r.craving_intensity or 0) <= 4]
    return {
        "avg_sleep_quality": round_half_up(sum(r.sleep_quality or 0 for r in recent) / count),
        "avg_craving": round_half_up(sum(r.craving_intensity or 0 for r in recent) / count),
        "correlation_percent": (
            round_half_up(len(calm_after_sleep) / len(well_slept) * 100) if well_slept else 0
        ),
    }


def heuristic_prediction(records: Sequence[DailyLogRecord]) -> PredictionResult:
    """Deterministic risk/trend estimate used when no model answer is available."""

    if not records:
        return PredictionResult(
            risk_level="Medium",
            trend="Stable",
            prediction="Start logging your daily wellness to get personalized predictions.",
            actionable_tip="Log your sleep, mood, and cravings daily for accurate forecasting.",
            confidence=0,
        )
    count = len(records)
    avg_craving = sum(r.craving_intensity or 0 for r in records) / count
    avg_sleep = sum(r.sleep_quality if r.sleep_quality is not None else 50 for r in records) / count

    if avg_craving > 6:
        risk = "High"
    elif avg_craving > 3:
        risk = "Medium"
    else:
        risk = "Low"

    if avg_sleep > 60:
        trend = "Improving"
    elif avg_sleep > 40:
        trend = "Stable"
    else:
        trend = "Declining"

    tip = (
        "Focus on improving sleep quality - aim for 7-8 hours tonight."
        if avg_sleep < 60
        else "Maintain your current wellness routine."
    )
    return PredictionResult(
        risk_level=risk,
        trend=trend,
        prediction=(
            f"Based on your data, your average craving level is {avg_craving:.1f}/10. "
            "Continue monitoring your triggers."
        ),
        actionable_tip=tip,
        confidence=60,
    )


__all__ = [
    "BUCKET_ORDER",
    "IDEAL_SLEEP_HOURS",
    "INSIGHT_WINDOW",
    "MAX_INSIGHTS",
    "craving_risk_by_time_of_day",
    "filter_by_recency",
    "heuristic_prediction",
    "insight_rules",
    "logging_streak",
    "most_recent",
    "round_half_up",
    "sleep_craving_correlation",
    "sleep_debt",
    "sleep_hours_between",
    "time_bucket",
    "user_stats",
    "vitals_summary",
]
