"""In-memory owner of the user's daily logs with local and remote persistence."""

from __future__ import annotations

import logging
import threading
import uuid
from contextlib import ExitStack
from datetime import date
from typing import Any, Callable, Dict, List, Optional, Tuple

import requests

from api_client import AuthSession, GatewayError, WellnessApiClient
from log_store import (
    LocalBlobStore,
    STORAGE_KEY,
    generate_demo_logs,
    load_records,
    save_records,
    storage_key_for,
)
from models import DailyLogRecord, InvalidLogError, LogUpdate, merge_log, utc_now_iso


logger = logging.getLogger(__name__)

LOCAL_USER_ID = "local-user"
REMOTE_FETCH_LIMIT = 30

Snapshot = Tuple[DailyLogRecord, ...]
Listener = Callable[[Snapshot], None]

# Errors that trigger rollback; anything else is a programming error.
REMOTE_ERRORS = (requests.RequestException, GatewayError, ValueError)


class RecordNotFoundError(LookupError):
    """Raised when ``update_log`` targets an id the store does not hold."""


def _sorted(records: List[DailyLogRecord]) -> List[DailyLogRecord]:
    return sorted(records, key=lambda record: record.log_date, reverse=True)


class RecordStore:
    """Owns the canonical list of daily logs for one session.

    Mutations follow a snapshot / speculative-apply / commit-or-revert
    protocol: the new state is applied and persisted locally right away, then
    synced remotely when a session exists. A failed remote call restores the
    prior state and re-raises so the caller can notify the user. Readers only
    ever see immutable snapshots; listeners registered with :meth:`subscribe`
    are called after every change.
    """

    def __init__(
        self,
        local_store: LocalBlobStore,
        api_client: Optional[WellnessApiClient] = None,
        *,
        session: Optional[AuthSession] = None,
        seed_demo_data: bool = True,
        storage_key: str = STORAGE_KEY,
    ) -> None:
        self._local = local_store
        self._api = api_client
        self._session = session
        self._seed_demo_data = seed_demo_data
        self._storage_key = storage_key
        self._records: Snapshot = tuple()
        self._listeners: List[Listener] = []
        self._state_lock = threading.RLock()
        self._date_locks: Dict[str, threading.Lock] = {}
        self.is_loading = False
        self.error: Optional[str] = None

    # Session -----------------------------------------------------------
    @property
    def session(self) -> Optional[AuthSession]:
        return self._session

    @property
    def is_authenticated(self) -> bool:
        return self._session is not None and self._api is not None

    @property
    def storage_key(self) -> str:
        """Blob key for the active owner; each signed-in user gets their own."""

        return storage_key_for(self._session.user_id if self._session else None, self._storage_key)

    def start_session(self, session: AuthSession) -> None:
        """Switch to ``session`` and show only that user's cached logs."""

        with self._state_lock:
            self._session = session
            self.error = None
            self.load_initial()

    def end_session(self) -> None:
        """Drop the session and listeners; state reverts to the anonymous device copy.

        The signed-out user's records stay under their own key and never reach
        the anonymous copy.
        """

        with self._state_lock:
            self._session = None
            self._listeners.clear()
            self.error = None
            self.load_initial()

    # Reading -----------------------------------------------------------
    def snapshot(self) -> Snapshot:
        return self._records

    def find_by_date(self, log_date: str) -> Optional[DailyLogRecord]:
        for record in self._records:
            if record.log_date == log_date:
                return record
        return None

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        """Register ``listener`` and return a callable that removes it."""

        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    # Loading -----------------------------------------------------------
    def load_initial(self) -> Snapshot:
        """Restore the owner's local copy, falling back to demo data or an empty list.

        Demo data is only seeded for the anonymous device copy.
        """

        try:
            restored = load_records(self._local, self.storage_key)
        except OSError as exc:
            logger.warning("Local log blob unavailable: %s", exc)
            restored = None
        if restored is None:
            seed = self._seed_demo_data and self._session is None
            restored = generate_demo_logs() if seed else []
        self._set_records(restored, persist=False)
        return self._records

    def refetch(self) -> None:
        """Replace local state with the remote copy when signed in.

        An empty remote result keeps the current state.
        """

        api, session = self._api, self._session
        if api is None or session is None:
            return
        self.is_loading = True
        self.error = None
        try:
            rows = api.fetch_logs(session, limit=REMOTE_FETCH_LIMIT)
        except REMOTE_ERRORS as exc:
            self.error = str(exc) or "Failed to fetch logs"
            logger.warning("Fetching logs failed: %s", exc)
            raise
        finally:
            self.is_loading = False
        with self._state_lock:
            if rows and self._session is session:
                self._set_records(rows)

    # Mutations ---------------------------------------------------------
    def add_or_merge_log(self, update: LogUpdate | Dict[str, Any]) -> DailyLogRecord:
        """Merge ``update`` into the record for its date, creating it if needed."""

        if not isinstance(update, LogUpdate):
            update = LogUpdate.from_dict(update)
        update.validate()
        log_date = update.log_date or date.today().isoformat()

        with self._lock_for(log_date):
            with self._state_lock:
                api, session = self._api, self._session
                owner = session.user_id if session else LOCAL_USER_ID
                previous = self.find_by_date(log_date)
                base = previous
                if session is not None and previous is not None and previous.user_id != owner:
                    logger.warning("Not merging into %s log owned by another user", log_date)
                    base = None
                now = utc_now_iso()
                base = base or DailyLogRecord(
                    id=f"temp-{uuid.uuid4().hex}",
                    user_id=owner,
                    log_date=log_date,
                    created_at=now,
                    updated_at=now,
                )
                merged = merge_log(base, update, now=now)
                self._replace_for_date(log_date, merged)

            if api is None or session is None:
                return merged
            try:
                saved = api.upsert_log(session, merged.to_row(session.user_id))
            except REMOTE_ERRORS as exc:
                logger.warning("Upserting log for %s failed, rolling back: %s", log_date, exc)
                with self._state_lock:
                    if self._session is session:
                        self._replace_for_date(log_date, previous)
                raise

            if saved is None:
                return merged
            with self._state_lock:
                if self._session is session:
                    self._replace_for_date(log_date, saved)
            return saved

    def update_log(self, record_id: str, update: LogUpdate | Dict[str, Any]) -> DailyLogRecord:
        """Shallow-merge ``update`` into the record with ``record_id``.

        Holds the lock of the record's date, and of the target date when the
        update moves it, so it never interleaves with a same-date write.
        """

        if not isinstance(update, LogUpdate):
            update = LogUpdate.from_dict(update)
        update.validate()

        current = next((r for r in self._records if r.id == record_id), None)
        if current is None:
            raise RecordNotFoundError(record_id)
        dates = {current.log_date}
        if update.log_date:
            dates.add(update.log_date)

        with ExitStack() as stack:
            for log_date in sorted(dates):
                stack.enter_context(self._lock_for(log_date))
            return self._update_locked(record_id, update)

    def _update_locked(self, record_id: str, update: LogUpdate) -> DailyLogRecord:
        with self._state_lock:
            api, session = self._api, self._session
            previous_snapshot = self._records
            current = next((r for r in previous_snapshot if r.id == record_id), None)
            if current is None:
                raise RecordNotFoundError(record_id)
            new_date = update.log_date
            if new_date and new_date != current.log_date and self.find_by_date(new_date):
                raise InvalidLogError(f"A log for {new_date} already exists")
            updated = merge_log(current, update)
            self._set_records([updated if r.id == record_id else r for r in previous_snapshot])

        if api is None or session is None:
            return updated
        try:
            saved = api.update_log(session, record_id, update.fields())
        except REMOTE_ERRORS as exc:
            logger.warning("Updating log %s failed, rolling back: %s", record_id, exc)
            with self._state_lock:
                if self._session is session:
                    self._set_records(list(previous_snapshot))
            raise

        if saved is None:
            return updated
        with self._state_lock:
            if self._session is session:
                self._set_records([saved if r.id == record_id else r for r in self._records])
        return saved

    def clear_all(self) -> None:
        """Empty the store for this session; the empty list is persisted."""

        with self._state_lock:
            self._set_records([])

    # Internals ---------------------------------------------------------
    def _lock_for(self, log_date: str) -> threading.Lock:
        with self._state_lock:
            return self._date_locks.setdefault(log_date, threading.Lock())

    def _replace_for_date(self, log_date: str, record: Optional[DailyLogRecord]) -> None:
        others = [r for r in self._records if r.log_date != log_date]
        if record is not None:
            others.append(record)
        self._set_records(others)

    def _set_records(self, records: List[DailyLogRecord], *, persist: bool = True) -> None:
        self._records = tuple(_sorted(list(records)))
        if persist:
            self._persist()
        self._notify()

    def _persist(self) -> None:
        try:
            save_records(self._local, self._records, self.storage_key)
        except (OSError, TypeError, ValueError) as exc:
            logger.warning("Persisting logs locally failed: %s", exc)

    def _notify(self) -> None:
        snapshot = self._records
        for listener in list(self._listeners):
            try:
                listener(snapshot)
            except Exception:
                logger.exception("Record store listener failed")


__all__ = ["LOCAL_USER_ID", "RecordNotFoundError", "RecordStore", "REMOTE_FETCH_LIMIT"]
