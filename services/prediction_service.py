"""Risk and trend predictions with a fallback that never leaves the UI empty."""

from __future__ import annotations

import logging
from typing import Optional, Sequence

import requests

from analytics import INSIGHT_WINDOW, heuristic_prediction, most_recent
from api_client import AuthSession, CreditsDepletedError, GatewayError, RateLimitedError, WellnessApiClient
from models import DailyLogRecord, PredictionResult


logger = logging.getLogger(__name__)

PLACEHOLDER_PREDICTION = PredictionResult(
    risk_level="Medium",
    trend="Stable",
    prediction="Start logging your daily wellness to unlock AI-powered predictions.",
    actionable_tip="Add your first journal entry to get started.",
    confidence=0,
)
FALLBACK_PREDICTION = PredictionResult(
    risk_level="Medium",
    trend="Stable",
    prediction="Continue tracking your wellness journey.",
    actionable_tip="Log your daily mood and cravings for better insights.",
    confidence=0,
)


class PredictionError(GatewayError):
    """Generic prediction failure (network, server error, malformed answer)."""


class PredictionService:
    """Fetches predictions for the latest week of logs.

    :meth:`fetch_prediction` always returns a usable result. Failures are kept
    on :attr:`error`: :class:`RateLimitedError` and
    :class:`CreditsDepletedError` pass through so the UI can phrase them,
    everything else becomes a :class:`PredictionError`.
    """

    def __init__(
        self,
        client: Optional[WellnessApiClient],
        *,
        use_remote: bool = True,
        window: int = INSIGHT_WINDOW,
    ) -> None:
        self._client = client
        self._use_remote = use_remote
        self._window = window
        self.prediction: PredictionResult | None = None
        self.error: GatewayError | None = None
        self.is_loading = False

    @property
    def error_message(self) -> str | None:
        return str(self.error) if self.error else None

    def fetch_prediction(
        self,
        records: Sequence[DailyLogRecord],
        *,
        session: AuthSession | None = None,
    ) -> PredictionResult:
        self.error = None
        if not records:
            self.prediction = PLACEHOLDER_PREDICTION
            return self.prediction

        recent = most_recent(records, self._window)
        if not self._use_remote or self._client is None:
            self.prediction = heuristic_prediction(recent)
            return self.prediction

        self.is_loading = True
        try:
            payload = self._client.request_prediction(recent, session=session)
            self.prediction = PredictionResult.from_dict(payload)
        except (RateLimitedError, CreditsDepletedError) as exc:
            self._fail(exc)
        except GatewayError as exc:
            self._fail(PredictionError(str(exc) or "Failed to get prediction", status_code=exc.status_code))
        except (requests.RequestException, ValueError) as exc:
            self._fail(PredictionError(str(exc) or "Failed to get prediction"))
        finally:
            self.is_loading = False
        return self.prediction

    def _fail(self, error: GatewayError) -> None:
        logger.warning("Prediction failed, using fallback: %s", error)
        self.error = error
        self.prediction = FALLBACK_PREDICTION


__all__ = [
    "FALLBACK_PREDICTION",
    "PLACEHOLDER_PREDICTION",
    "PredictionError",
    "PredictionService",
]
