"""Tests for :mod:`services.prediction_service`."""

from __future__ import annotations

import pytest
import requests

from api_client import CreditsDepletedError, GatewayError, RateLimitedError
from models import DailyLogRecord
from services.prediction_service import (
    FALLBACK_PREDICTION,
    PLACEHOLDER_PREDICTION,
    PredictionError,
    PredictionService,
)

VALID = {
    "riskLevel": "Low",
    "trend": "Improving",
    "prediction": "Steady week ahead.",
    "actionableTip": "Keep your evening walk.",
    "confidence": 81,
}


class FakeClient:
    def __init__(self, payload=None, error: Exception | None = None) -> None:
        self.payload = payload
        self.error = error
        self.calls: list[list[DailyLogRecord]] = []

    def request_prediction(self, logs, *, session=None):
        self.calls.append(list(logs))
        if self.error:
            raise self.error
        return self.payload


def _logs(count: int) -> list[DailyLogRecord]:
    return [
        DailyLogRecord(id=str(i), user_id="u", log_date=f"2024-05-{i + 1:02d}", craving_intensity=3)
        for i in range(count)
    ]


def test_empty_records_skip_network() -> None:
    client = FakeClient(VALID)
    service = PredictionService(client)
    assert service.fetch_prediction([]) == PLACEHOLDER_PREDICTION
    assert client.calls == []
    assert service.error is None


def test_sends_latest_week_only() -> None:
    client = FakeClient(VALID)
    service = PredictionService(client)
    result = service.fetch_prediction(_logs(10))

    assert result.risk_level == "Low"
    assert result.confidence == 81
    sent = client.calls[0]
    assert len(sent) == 7
    assert sent[0].log_date == "2024-05-10"
    assert service.is_loading is False


@pytest.mark.parametrize("error_type,status", [(RateLimitedError, 429), (CreditsDepletedError, 402)])
def test_quota_errors_pass_through_with_fallback(error_type, status) -> None:
    service = PredictionService(FakeClient(error=error_type("quota", status_code=status)))
    result = service.fetch_prediction(_logs(3))
    assert result == FALLBACK_PREDICTION
    assert isinstance(service.error, error_type)
    assert service.error_message == "quota"


@pytest.mark.parametrize(
    "error",
    [
        GatewayError("Internal error", status_code=500),
        requests.Timeout("timed out"),
    ],
)
def test_other_failures_become_prediction_error(error) -> None:
    service = PredictionService(FakeClient(error=error))
    result = service.fetch_prediction(_logs(3))
    assert result == FALLBACK_PREDICTION
    assert isinstance(service.error, PredictionError)


def test_malformed_answer_falls_back() -> None:
    service = PredictionService(FakeClient({"riskLevel": "Extreme"}))
    assert service.fetch_prediction(_logs(3)) == FALLBACK_PREDICTION
    assert isinstance(service.error, PredictionError)


def test_error_clears_on_next_success() -> None:
    client = FakeClient(error=GatewayError("down", status_code=503))
    service = PredictionService(client)
    service.fetch_prediction(_logs(3))
    client.error = None
    client.payload = VALID
    service.fetch_prediction(_logs(3))
    assert service.error is None
    assert service.prediction.trend == "Improving"


def test_local_mode_uses_heuristic() -> None:
    client = FakeClient(VALID)
    service = PredictionService(client, use_remote=False)
    result = service.fetch_prediction(_logs(3))
    assert client.calls == []
    assert result.confidence == 60
    assert result.risk_level == "Low"
