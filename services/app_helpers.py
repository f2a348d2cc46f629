"""Helper functions for Streamlit tabs to reach the per-session services."""

from __future__ import annotations

from typing import Any, Mapping, MutableMapping

import requests

from analytics import user_stats
from api_client import GatewayError, WellnessApiClient
from app_settings import AppSettings, load_settings
from log_store import LocalBlobStore
from models import DailyLogRecord, InvalidLogError, LogUpdate
from services.chat_service import ChatSession
from services.prediction_service import PredictionService
from services.record_store import RecordNotFoundError, RecordStore

SETTINGS_KEY = "__app_settings__"
_API_CLIENT_KEY = "__api_client__"
_RECORD_STORE_KEY = "__record_store__"
_CHAT_SESSION_KEY = "__chat_session__"
_PREDICTION_SERVICE_KEY = "__prediction_service__"
AUTH_SESSION_KEY = "auth_session"

_USER_FACING_ERRORS = (requests.RequestException, GatewayError, InvalidLogError, RecordNotFoundError)


def get_settings(session_state: MutableMapping[str, Any]) -> AppSettings:
    settings = session_state.get(SETTINGS_KEY)
    if not isinstance(settings, AppSettings):
        settings = load_settings()
        session_state[SETTINGS_KEY] = settings
    return settings


def get_api_client(session_state: MutableMapping[str, Any]) -> WellnessApiClient:
    settings = get_settings(session_state)
    client = session_state.get(_API_CLIENT_KEY)
    if not isinstance(client, WellnessApiClient) or client.base_url != settings.api_base:
        client = WellnessApiClient(
            settings.api_base,
            settings.api_key,
            timeout=settings.request_timeout,
        )
        session_state[_API_CLIENT_KEY] = client
    return client


def get_record_store(session_state: MutableMapping[str, Any]) -> RecordStore:
    store = session_state.get(_RECORD_STORE_KEY)
    if not isinstance(store, RecordStore):
        settings = get_settings(session_state)
        store = RecordStore(
            LocalBlobStore(settings.data_dir),
            get_api_client(session_state),
            session=session_state.get(AUTH_SESSION_KEY),
            seed_demo_data=settings.seed_demo_data,
        )
        store.load_initial()
        session_state[_RECORD_STORE_KEY] = store
    return store


def get_chat_session(session_state: MutableMapping[str, Any]) -> ChatSession:
    chat = session_state.get(_CHAT_SESSION_KEY)
    if not isinstance(chat, ChatSession):
        store = get_record_store(session_state)
        chat = ChatSession(
            get_api_client(session_state),
            stats_provider=lambda: user_stats(store.snapshot()),
        )
        session_state[_CHAT_SESSION_KEY] = chat
    return chat


def get_prediction_service(session_state: MutableMapping[str, Any]) -> PredictionService:
    service = session_state.get(_PREDICTION_SERVICE_KEY)
    if not isinstance(service, PredictionService):
        settings = get_settings(session_state)
        service = PredictionService(
            get_api_client(session_state),
            use_remote=settings.use_remote_prediction,
        )
        session_state[_PREDICTION_SERVICE_KEY] = service
    return service


def sign_in(
    session_state: MutableMapping[str, Any],
    email: str,
    password: str,
) -> tuple[bool, str | None]:
    """Authenticate, attach the session to the store and pull remote logs."""

    try:
        session = get_api_client(session_state).sign_in(email, password)
    except (requests.RequestException, GatewayError) as exc:
        return False, str(exc)
    session_state[AUTH_SESSION_KEY] = session
    store = get_record_store(session_state)
    store.start_session(session)
    try:
        store.refetch()
    except (requests.RequestException, GatewayError, ValueError) as exc:
        return True, str(exc)
    return True, None


def sign_out(session_state: MutableMapping[str, Any]) -> None:
    session_state.pop(AUTH_SESSION_KEY, None)
    store = session_state.get(_RECORD_STORE_KEY)
    if isinstance(store, RecordStore):
        store.end_session()


def submit_log(
    session_state: MutableMapping[str, Any],
    values: Mapping[str, Any],
) -> tuple[DailyLogRecord | None, str | None]:
    """Merge ``values`` into the day's log, returning ``(record, error)``."""

    store = get_record_store(session_state)
    try:
        record = store.add_or_merge_log(LogUpdate.from_dict(values))
    except _USER_FACING_ERRORS as exc:
        return None, str(exc)
    return record, None


def edit_log(
    session_state: MutableMapping[str, Any],
    record_id: str,
    values: Mapping[str, Any],
) -> tuple[DailyLogRecord | None, str | None]:
    store = get_record_store(session_state)
    try:
        record = store.update_log(record_id, LogUpdate.from_dict(values))
    except _USER_FACING_ERRORS as exc:
        return None, str(exc)
    return record, None


__all__ = [
    "AUTH_SESSION_KEY",
    "SETTINGS_KEY",
    "edit_log",
    "get_api_client",
    "get_chat_session",
    "get_prediction_service",
    "get_record_store",
    "get_settings",
    "sign_in",
    "sign_out",
    "submit_log",
]
