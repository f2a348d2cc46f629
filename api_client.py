"""HTTP client helpers for the wellness backend (table API, auth, functions)."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Iterable, Mapping, Sequence

import requests

from models import DailyLogRecord


logger = logging.getLogger(__name__)

RATE_LIMIT_MESSAGE = "Rate limited. Please wait a moment."
CREDITS_MESSAGE = "AI credits depleted."


class GatewayError(RuntimeError):
    """Non-2xx answer from the backend or the AI gateway behind it."""

    def __init__(self, message: str, *, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class RateLimitedError(GatewayError):
    """HTTP 429: try again shortly."""


class CreditsDepletedError(GatewayError):
    """HTTP 402: the AI gateway has no credits left."""


@dataclass(frozen=True)
class AuthSession:
    """Authenticated user; gates every remote table call."""

    user_id: str
    access_token: str
    email: str | None = None


def _response_message(response: requests.Response) -> str:
    try:
        payload = response.json()
    except ValueError:
        payload = getattr(response, "text", "") or ""
    if isinstance(payload, Mapping):
        detail = (
            payload.get("error")
            or payload.get("message")
            or payload.get("msg")
            or payload.get("error_description")
            or payload.get("detail")
        )
        return str(detail) if detail else ""
    return str(payload).strip()


def raise_for_gateway_status(response: requests.Response) -> None:
    """Map error status codes onto :class:`GatewayError` subclasses."""

    status = response.status_code
    if 200 <= status < 300:
        return
    message = _response_message(response)
    if status == 429:
        raise RateLimitedError(message or RATE_LIMIT_MESSAGE, status_code=status)
    if status == 402:
        raise CreditsDepletedError(message or CREDITS_MESSAGE, status_code=status)
    raise GatewayError(message or f"Request failed with status {status}", status_code=status)


def _coerce_rows(payload: Any) -> list[DailyLogRecord]:
    if isinstance(payload, Mapping):
        payload = [payload]
    if not isinstance(payload, Sequence) or isinstance(payload, (str, bytes)):
        return []
    return [DailyLogRecord.from_dict(row) for row in payload if isinstance(row, Mapping)]


@dataclass
class WellnessApiClient:
    """Lightweight helper for the hosted backend behind the app."""

    base_url: str
    api_key: str | None = None
    timeout: float = 10
    table: str = "daily_logs"

    def __post_init__(self) -> None:
        self.base_url = self.base_url.rstrip("/")

    def _headers(
        self,
        session: AuthSession | None = None,
        *,
        prefer: str | None = None,
    ) -> dict[str, str]:
        headers: dict[str, str] = {"Content-Type": "application/json"}
        if self.api_key:
            headers["apikey"] = self.api_key
        token = session.access_token if session else self.api_key
        if token:
            headers["Authorization"] = f"Bearer {token}"
        if prefer:
            headers["Prefer"] = prefer
        return headers

    @property
    def table_url(self) -> str:
        return f"{self.base_url}/rest/v1/{self.table}"

    # Auth ---------------------------------------------------------------
    def sign_in(self, email: str, password: str) -> AuthSession:
        """Exchange email/password for an access token."""

        resp = requests.post(
            f"{self.base_url}/auth/v1/token",
            params={"grant_type": "password"},
            json={"email": email, "password": password},
            headers=self._headers(),
            timeout=self.timeout,
        )
        raise_for_gateway_status(resp)
        payload = resp.json()
        user = payload.get("user") if isinstance(payload, Mapping) else None
        token = payload.get("access_token") if isinstance(payload, Mapping) else None
        if not isinstance(user, Mapping) or not user.get("id") or not token:
            raise GatewayError("Sign-in response did not include a session")
        return AuthSession(user_id=str(user["id"]), access_token=str(token), email=user.get("email"))

    # Daily logs ---------------------------------------------------------
    def fetch_logs(self, session: AuthSession, *, limit: int = 30) -> list[DailyLogRecord]:
        """Return the user's most recent logs, newest ``log_date`` first."""

        resp = requests.get(
            self.table_url,
            params={
                "select": "*",
                "user_id": f"eq.{session.user_id}",
                "order": "log_date.desc",
                "limit": int(limit),
            },
            headers=self._headers(session),
            timeout=self.timeout,
        )
        raise_for_gateway_status(resp)
        rows = _coerce_rows(resp.json())
        logger.debug("Fetched %d logs for user %s", len(rows), session.user_id)
        return rows

    def upsert_log(self, session: AuthSession, row: Mapping[str, Any]) -> DailyLogRecord | None:
        """Insert or merge the row keyed on ``(user_id, log_date)``."""

        payload = dict(row)
        payload["user_id"] = session.user_id
        resp = requests.post(
            self.table_url,
            params={"on_conflict": "user_id,log_date"},
            json=payload,
            headers=self._headers(session, prefer="resolution=merge-duplicates,return=representation"),
            timeout=self.timeout,
        )
        raise_for_gateway_status(resp)
        rows = _coerce_rows(resp.json())
        return rows[0] if rows else None

    def update_log(
        self,
        session: AuthSession,
        record_id: str,
        fields: Mapping[str, Any],
    ) -> DailyLogRecord | None:
        resp = requests.patch(
            self.table_url,
            params={"id": f"eq.{record_id}"},
            json=dict(fields),
            headers=self._headers(session, prefer="return=representation"),
            timeout=self.timeout,
        )
        raise_for_gateway_status(resp)
        rows = _coerce_rows(resp.json())
        return rows[0] if rows else None

    # Functions ----------------------------------------------------------
    def open_chat_stream(
        self,
        messages: Iterable[Mapping[str, str]],
        user_stats: Mapping[str, Any] | None = None,
        *,
        session: AuthSession | None = None,
    ) -> requests.Response:
        """POST the conversation and return the streaming ``text/event-stream`` response.

        The caller owns the response and must close it.
        """

        body: dict[str, Any] = {"messages": [dict(message) for message in messages]}
        if user_stats:
            body["userStats"] = dict(user_stats)
        resp = requests.post(
            f"{self.base_url}/functions/v1/chat",
            json=body,
            headers=self._headers(session),
            timeout=self.timeout,
            stream=True,
        )
        try:
            raise_for_gateway_status(resp)
        except GatewayError:
            resp.close()
            raise
        return resp

    def request_prediction(
        self,
        logs: Sequence[DailyLogRecord],
        *,
        session: AuthSession | None = None,
    ) -> Any:
        """POST recent logs to the prediction function and return the decoded JSON."""

        resp = requests.post(
            f"{self.base_url}/functions/v1/predict",
            json={"logs": [record.asdict() for record in logs]},
            headers=self._headers(session),
            timeout=self.timeout,
        )
        raise_for_gateway_status(resp)
        return resp.json()


__all__ = [
    "AuthSession",
    "CREDITS_MESSAGE",
    "CreditsDepletedError",
    "GatewayError",
    "RATE_LIMIT_MESSAGE",
    "RateLimitedError",
    "WellnessApiClient",
    "raise_for_gateway_status",
]
