"""RocksDB-backed storage for the local copy of daily logs."""

from __future__ import annotations

import json
import logging
import os
import random
import threading
from contextlib import contextmanager
from dataclasses import dataclass
from datetime import date, datetime, time, timedelta, timezone
from typing import Dict, Iterable, Iterator, List, Optional

from rocksdict import Rdict

from models import CRAVING_TRIGGERS, DailyLogRecord

STORAGE_KEY = "ally.daily_logs"
DEMO_USER_ID = "demo-user"
DEMO_DAYS = 14

_DEMO_CRAVING_TIMES = ("08:00", "14:00", "20:00", "23:00")
_DEMO_MOODS = ("happy", "calm", "anxious", "sad", "angry")

# RocksDB allows one open handle per directory per process.
_PATH_LOCKS: Dict[str, threading.Lock] = {}
_PATH_LOCKS_GUARD = threading.Lock()


logger = logging.getLogger(__name__)


def storage_key_for(user_id: Optional[str], base: str = STORAGE_KEY) -> str:
    """Blob key for ``user_id``; the anonymous device copy uses the bare key."""

    return f"{base}.{user_id}" if user_id else base


@dataclass
class KV:
    store: Rdict

    def get(self, key: str) -> Optional[str]:
        raw = self.store.get(key.encode("utf-8"))
        return raw.decode("utf-8") if raw is not None else None

    def put(self, key: str, value: str) -> None:
        self.store[key.encode("utf-8")] = value.encode("utf-8")

    def delete(self, key: str) -> None:
        encoded = key.encode("utf-8")
        if self.store.get(encoded) is not None:
            del self.store[encoded]

    def close(self) -> None:
        self.store.close()


def open_kv(path: str) -> KV:
    os.makedirs(path, exist_ok=True)
    try:
        store = Rdict(path)
    except Exception as exc:  # rocksdict reports RocksDB failures as plain Exception
        raise OSError(f"Cannot open local store at {path}: {exc}") from exc
    return KV(store=store)


def _path_lock(path: str) -> threading.Lock:
    with _PATH_LOCKS_GUARD:
        return _PATH_LOCKS.setdefault(os.path.abspath(path), threading.Lock())


@dataclass
class LocalBlobStore:
    """One JSON document per key, kept in a RocksDB database at ``directory``."""

    directory: str

    @contextmanager
    def _open(self) -> Iterator[KV]:
        with _path_lock(self.directory):
            kv = open_kv(self.directory)
            try:
                yield kv
            finally:
                kv.close()

    def read(self, key: str) -> Optional[str]:
        with self._open() as kv:
            return kv.get(key)

    def write(self, key: str, value: str) -> None:
        with self._open() as kv:
            kv.put(key, value)

    def delete(self, key: str) -> None:
        with self._open() as kv:
            kv.delete(key)


def load_records(store: LocalBlobStore, key: str = STORAGE_KEY) -> Optional[List[DailyLogRecord]]:
    """Return the persisted records, or ``None`` when nothing usable is stored."""

    raw = store.read(key)
    if raw is None:
        return None
    try:
        data = json.loads(raw)
    except json.JSONDecodeError:
        logger.warning("Ignoring unreadable local log blob under %s", key)
        return None
    if not isinstance(data, list):
        logger.warning("Ignoring local log blob under %s: expected a list", key)
        return None
    return [DailyLogRecord.from_dict(item) for item in data if isinstance(item, dict)]


def save_records(
    store: LocalBlobStore,
    records: Iterable[DailyLogRecord],
    key: str = STORAGE_KEY,
) -> None:
    payload = json.dumps([record.asdict() for record in records])
    store.write(key, payload)


def generate_demo_logs(
    days: int = DEMO_DAYS,
    *,
    today: date | None = None,
    rng: random.Random | None = None,
) -> List[DailyLogRecord]:
    """Build ``days`` consecutive synthetic records, most recent first."""

    today = today or date.today()
    rng = rng or random.Random()
    records: List[DailyLogRecord] = []
    for offset in range(days):
        day = today - timedelta(days=offset)
        stamp = datetime.combine(day, time(hour=9), tzinfo=timezone.utc).isoformat()
        records.append(
            DailyLogRecord(
                id=f"demo-{offset}",
                user_id=DEMO_USER_ID,
                log_date=day.isoformat(),
                sleep_hours=round(5 + rng.random() * 4, 1),
                sleep_quality=rng.randint(50, 99),
                craving_intensity=rng.randint(1, 9),
                craving_time=rng.choice(_DEMO_CRAVING_TIMES),
                craving_trigger=rng.choice(CRAVING_TRIGGERS),
                mood_tag=rng.choice(_DEMO_MOODS),
                water_glasses=rng.randint(0, 9),
                exercise_minutes=rng.randint(0, 59),
                meditation_minutes=rng.randint(0, 29),
                took_meds=rng.random() > 0.3,
                notes=None,
                created_at=stamp,
                updated_at=stamp,
            )
        )
    return records


__all__ = [
    "DEMO_DAYS",
    "DEMO_USER_ID",
    "KV",
    "LocalBlobStore",
    "STORAGE_KEY",
    "generate_demo_logs",
    "load_records",
    "open_kv",
    "save_records",
    "storage_key_for",
]
