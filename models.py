"""Shared dataclasses for daily logs, insights, predictions and chat turns."""

from __future__ import annotations

import math
import re
from dataclasses import dataclass, field, fields as dataclass_fields, replace
from datetime import date, datetime, timezone
from typing import Any, Mapping


MOOD_TAGS: tuple[str, ...] = (
    "happy",
    "calm",
    "anxious",
    "sad",
    "angry",
    "hopeful",
    "tired",
    "grateful",
)
CRAVING_TRIGGERS: tuple[str, ...] = ("stress", "boredom", "social", "habit")
SEVERITIES: tuple[str, ...] = ("critical", "warning", "success", "info")
RISK_LEVELS: tuple[str, ...] = ("Low", "Medium", "High")
TRENDS: tuple[str, ...] = ("Improving", "Stable", "Declining")

_TIME_PATTERN = re.compile(r"^([01]\d|2[0-3]):([0-5]\d)(?::[0-5]\d)?$")

# camelCase aliases accepted from UI payloads and gateway responses.
_FIELD_ALIASES = {
    "userId": "user_id",
    "logDate": "log_date",
    "sleepHours": "sleep_hours",
    "sleepQuality": "sleep_quality",
    "cravingIntensity": "craving_intensity",
    "cravingTime": "craving_time",
    "cravingTrigger": "craving_trigger",
    "moodTag": "mood_tag",
    "waterGlasses": "water_glasses",
    "exerciseMinutes": "exercise_minutes",
    "meditationMinutes": "meditation_minutes",
    "tookMeds": "took_meds",
    "createdAt": "created_at",
    "updatedAt": "updated_at",
}


class InvalidLogError(ValueError):
    """Raised when a log field carries a value outside its declared range."""


class _Unset:
    _instance: "_Unset | None" = None

    def __new__(cls) -> "_Unset":
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __repr__(self) -> str:
        return "UNSET"

    def __bool__(self) -> bool:
        return False


UNSET: Any = _Unset()


def utc_now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def _normalize_keys(payload: Mapping[str, Any]) -> dict[str, Any]:
    normalized: dict[str, Any] = {}
    for key, value in payload.items():
        normalized[_FIELD_ALIASES.get(str(key), str(key))] = value
    return normalized


def _coerce_optional_float(value: Any) -> float | None:
    if value is None or value == "":
        return None
    try:
        return float(value)
    except (TypeError, ValueError):
        return None


def _coerce_optional_int(value: Any) -> int | None:
    if value is None or value == "":
        return None
    try:
        return int(round(float(value)))
    except (TypeError, ValueError):
        return None


def _coerce_count(value: Any) -> int:
    coerced = _coerce_optional_int(value)
    return coerced if coerced is not None else 0


def _optional_text(value: Any) -> str | None:
    if value is None:
        return None
    text = str(value)
    return text if text else None


@dataclass(frozen=True)
class DailyLogRecord:
    """One day's wellness log for a user; ``log_date`` is unique per user."""

    id: str
    user_id: str
    log_date: str
    sleep_hours: float | None = None
    sleep_quality: int | None = None
    craving_intensity: int | None = None
    craving_time: str | None = None
    craving_trigger: str | None = None
    mood_tag: str | None = None
    water_glasses: int = 0
    exercise_minutes: int = 0
    meditation_minutes: int = 0
    took_meds: bool = False
    notes: str | None = None
    created_at: str = ""
    updated_at: str = ""

    @classmethod
    def from_dict(cls, payload: Mapping[str, Any]) -> "DailyLogRecord":
        data = _normalize_keys(payload)
        return cls(
            id=str(data.get("id") or ""),
            user_id=str(data.get("user_id") or ""),
            log_date=str(data.get("log_date") or ""),
            sleep_hours=_coerce_optional_float(data.get("sleep_hours")),
            sleep_quality=_coerce_optional_int(data.get("sleep_quality")),
            craving_intensity=_coerce_optional_int(data.get("craving_intensity")),
            craving_time=_optional_text(data.get("craving_time")),
            craving_trigger=_optional_text(data.get("craving_trigger")),
            mood_tag=_optional_text(data.get("mood_tag")),
            water_glasses=_coerce_count(data.get("water_glasses")),
            exercise_minutes=_coerce_count(data.get("exercise_minutes")),
            meditation_minutes=_coerce_count(data.get("meditation_minutes")),
            took_meds=bool(data.get("took_meds") or False),
            notes=_optional_text(data.get("notes")),
            created_at=str(data.get("created_at") or ""),
            updated_at=str(data.get("updated_at") or ""),
        )

    def asdict(self) -> dict[str, Any]:
        return {item.name: getattr(self, item.name) for item in dataclass_fields(self)}

    def to_row(self, user_id: str) -> dict[str, Any]:
        """Return the column payload for a remote upsert (no local identity)."""

        row = self.asdict()
        for key in ("id", "created_at", "updated_at"):
            row.pop(key, None)
        row["user_id"] = user_id
        return row

    @property
    def day(self) -> date:
        return date.fromisoformat(self.log_date)


_UPDATABLE_FIELDS: tuple[str, ...] = (
    "log_date",
    "sleep_hours",
    "sleep_quality",
    "craving_intensity",
    "craving_time",
    "craving_trigger",
    "mood_tag",
    "water_glasses",
    "exercise_minutes",
    "meditation_minutes",
    "took_meds",
    "notes",
)


@dataclass(frozen=True)
class LogUpdate:
    """Partial daily log; fields left as ``UNSET`` keep their current value.

    ``None`` is a real value and clears an optional field.
    """

    log_date: Any = UNSET
    sleep_hours: Any = UNSET
    sleep_quality: Any = UNSET
    craving_intensity: Any = UNSET
    craving_time: Any = UNSET
    craving_trigger: Any = UNSET
    mood_tag: Any = UNSET
    water_glasses: Any = UNSET
    exercise_minutes: Any = UNSET
    meditation_minutes: Any = UNSET
    took_meds: Any = UNSET
    notes: Any = UNSET

    @classmethod
    def from_dict(cls, payload: Mapping[str, Any]) -> "LogUpdate":
        data = _normalize_keys(payload)
        unknown = sorted(set(data) - set(_UPDATABLE_FIELDS))
        if unknown:
            raise InvalidLogError(f"Unknown log fields: {', '.join(unknown)}")
        return cls(**data)

    def fields(self) -> dict[str, Any]:
        return {
            name: getattr(self, name)
            for name in _UPDATABLE_FIELDS
            if getattr(self, name) is not UNSET
        }

    def is_empty(self) -> bool:
        return not self.fields()

    def validate(self) -> "LogUpdate":
        """Raise :class:`InvalidLogError` for out-of-range values."""

        values = self.fields()

        if "log_date" in values:
            raw = values["log_date"]
            if not isinstance(raw, str):
                raise InvalidLogError("log_date must be an ISO date string")
            try:
                date.fromisoformat(raw)
            except ValueError as exc:
                raise InvalidLogError(f"log_date is not an ISO date: {raw!r}") from exc

        hours = values.get("sleep_hours")
        if hours is not None and "sleep_hours" in values:
            if (
                isinstance(hours, bool)
                or not isinstance(hours, (int, float))
                or not math.isfinite(hours)
                or hours < 0
            ):
                raise InvalidLogError(f"sleep_hours must be a finite non-negative number, got {hours!r}")

        _check_int_range(values, "sleep_quality", 0, 100)
        _check_int_range(values, "craving_intensity", 1, 10)

        craving_time = values.get("craving_time")
        if craving_time is not None and "craving_time" in values:
            if not isinstance(craving_time, str) or not _TIME_PATTERN.match(craving_time):
                raise InvalidLogError(f"craving_time must be HH:MM, got {craving_time!r}")

        mood = values.get("mood_tag")
        if mood is not None and "mood_tag" in values and mood not in MOOD_TAGS:
            raise InvalidLogError(f"Unknown mood tag {mood!r}")

        for counter in ("water_glasses", "exercise_minutes", "meditation_minutes"):
            if counter not in values:
                continue
            value = values[counter]
            if isinstance(value, bool) or not isinstance(value, int) or value < 0:
                raise InvalidLogError(f"{counter} must be a non-negative integer, got {value!r}")

        if "took_meds" in values and not isinstance(values["took_meds"], bool):
            raise InvalidLogError("took_meds must be a boolean")

        for text_field in ("craving_trigger", "notes"):
            value = values.get(text_field)
            if value is not None and text_field in values and not isinstance(value, str):
                raise InvalidLogError(f"{text_field} must be text")
        return self


def _check_int_range(values: Mapping[str, Any], name: str, low: int, high: int) -> None:
    if name not in values or values[name] is None:
        return
    value = values[name]
    if isinstance(value, bool) or not isinstance(value, int) or not low <= value <= high:
        raise InvalidLogError(f"{name} must be an integer in [{low}, {high}], got {value!r}")


def merge_log(base: DailyLogRecord, update: LogUpdate, *, now: str | None = None) -> DailyLogRecord:
    """Return ``base`` with every set field of ``update`` applied."""

    changes = update.fields()
    if not changes:
        return base
    return replace(base, **changes, updated_at=now or utc_now_iso())


@dataclass(frozen=True)
class Insight:
    """Rule-derived observation about recent trends."""

    id: str
    severity: str
    title: str
    description: str
    metric: str | None = None

    def asdict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "severity": self.severity,
            "title": self.title,
            "description": self.description,
            "metric": self.metric,
        }


@dataclass(frozen=True)
class PredictionResult:
    """Risk and trend summary returned by the prediction endpoint."""

    risk_level: str
    trend: str
    prediction: str
    actionable_tip: str
    confidence: float

    @classmethod
    def from_dict(cls, payload: Mapping[str, Any]) -> "PredictionResult":
        if not isinstance(payload, Mapping):
            raise ValueError("Prediction payload must be a JSON object")
        risk_level = payload.get("riskLevel")
        trend = payload.get("trend")
        if risk_level not in RISK_LEVELS:
            raise ValueError(f"Unexpected riskLevel {risk_level!r}")
        if trend not in TRENDS:
            raise ValueError(f"Unexpected trend {trend!r}")
        prediction = payload.get("prediction")
        tip = payload.get("actionableTip")
        if not isinstance(prediction, str) or not isinstance(tip, str):
            raise ValueError("prediction and actionableTip must be strings")
        confidence = payload.get("confidence")
        if isinstance(confidence, bool) or not isinstance(confidence, (int, float)):
            raise ValueError(f"confidence must be numeric, got {confidence!r}")
        if not 0 <= confidence <= 100:
            raise ValueError(f"confidence out of range: {confidence!r}")
        return cls(
            risk_level=risk_level,
            trend=trend,
            prediction=prediction,
            actionable_tip=tip,
            confidence=float(confidence),
        )

    def asdict(self) -> dict[str, Any]:
        return {
            "riskLevel": self.risk_level,
            "trend": self.trend,
            "prediction": self.prediction,
            "actionableTip": self.actionable_tip,
            "confidence": self.confidence,
        }


@dataclass(frozen=True)
class ChatMessage:
    """Single transcript entry."""

    id: str
    role: str
    content: str
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    def as_api_message(self) -> dict[str, str]:
        return {"role": self.role, "content": self.content}


__all__ = [
    "CRAVING_TRIGGERS",
    "ChatMessage",
    "DailyLogRecord",
    "Insight",
    "InvalidLogError",
    "LogUpdate",
    "MOOD_TAGS",
    "PredictionResult",
    "RISK_LEVELS",
    "SEVERITIES",
    "TRENDS",
    "UNSET",
    "merge_log",
    "utc_now_iso",
]
