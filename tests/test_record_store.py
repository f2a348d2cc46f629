"""Tests for :mod:`services.record_store`."""

from __future__ import annotations

import json
import threading
from datetime import date

import pytest
import requests

from api_client import AuthSession, GatewayError
from log_store import STORAGE_KEY, LocalBlobStore, load_records
from models import DailyLogRecord, InvalidLogError, LogUpdate
from services.record_store import LOCAL_USER_ID, RecordNotFoundError, RecordStore

SESSION = AuthSession(user_id="user-1", access_token="tok")


class FakeClient:
    def __init__(self) -> None:
        self.rows: list[DailyLogRecord] = []
        self.fail_with: Exception | None = None
        self.upserts: list[dict] = []
        self.patches: list[tuple[str, dict]] = []

    def fetch_logs(self, session, *, limit=30):
        if self.fail_with:
            raise self.fail_with
        return list(self.rows)

    def upsert_log(self, session, row):
        self.upserts.append(dict(row))
        if self.fail_with:
            raise self.fail_with
        return DailyLogRecord.from_dict(dict(row, id=f"server-{row['log_date']}"))

    def update_log(self, session, record_id, fields):
        self.patches.append((record_id, dict(fields)))
        if self.fail_with:
            raise self.fail_with
        return None


def _store(tmp_path, client=None, session=None, seed=False) -> RecordStore:
    store = RecordStore(LocalBlobStore(str(tmp_path)), client, session=session, seed_demo_data=seed)
    store.load_initial()
    return store


def test_load_initial_seeds_demo_data_when_empty(tmp_path) -> None:
    store = _store(tmp_path, seed=True)
    records = store.snapshot()
    assert len(records) == 14
    assert records[0].log_date == date.today().isoformat()


def test_load_initial_restores_persisted_copy(tmp_path) -> None:
    blob = LocalBlobStore(str(tmp_path))
    blob.write(STORAGE_KEY, json.dumps([{"id": "a", "user_id": "u", "log_date": "2024-05-10"}]))
    store = _store(tmp_path, seed=True)
    assert [r.id for r in store.snapshot()] == ["a"]


def test_add_merges_disjoint_fields_for_same_day(tmp_path) -> None:
    store = _store(tmp_path)
    first = store.add_or_merge_log({"log_date": "2024-05-10", "sleep_hours": 7.0, "sleep_quality": 80})
    second = store.add_or_merge_log(LogUpdate(log_date="2024-05-10", craving_intensity=4))

    assert len(store.snapshot()) == 1
    assert second.id == first.id
    assert second.id.startswith("temp-")
    assert second.user_id == LOCAL_USER_ID
    assert (second.sleep_hours, second.sleep_quality, second.craving_intensity) == (7.0, 80, 4)
    assert load_records(LocalBlobStore(str(tmp_path))) == list(store.snapshot())


def test_add_defaults_to_today(tmp_path) -> None:
    store = _store(tmp_path)
    record = store.add_or_merge_log({"mood_tag": "calm"})
    assert record.log_date == date.today().isoformat()


def test_add_rejects_invalid_values_without_mutating(tmp_path) -> None:
    store = _store(tmp_path)
    with pytest.raises(InvalidLogError):
        store.add_or_merge_log({"log_date": "2024-05-10", "sleep_quality": 140})
    assert store.snapshot() == ()


def test_snapshot_stays_sorted_newest_first(tmp_path) -> None:
    store = _store(tmp_path)
    for day in ("2024-05-08", "2024-05-10", "2024-05-09"):
        store.add_or_merge_log({"log_date": day})
    assert [r.log_date for r in store.snapshot()] == ["2024-05-10", "2024-05-09", "2024-05-08"]


def test_remote_upsert_replaces_temp_record(tmp_path) -> None:
    client = FakeClient()
    store = _store(tmp_path, client, SESSION)
    saved = store.add_or_merge_log({"log_date": "2024-05-10", "sleep_quality": 75})

    assert saved.id == "server-2024-05-10"
    assert client.upserts[0]["user_id"] == "user-1"
    assert "id" not in client.upserts[0]
    assert store.snapshot() == (saved,)


def test_failed_upsert_rolls_back_and_reraises(tmp_path) -> None:
    client = FakeClient()
    store = _store(tmp_path, client, SESSION)
    store.add_or_merge_log({"log_date": "2024-05-10", "sleep_quality": 75})
    store.add_or_merge_log({"log_date": "2024-05-09", "sleep_quality": 60})
    before = store.snapshot()

    client.fail_with = requests.ConnectionError("offline")
    with pytest.raises(requests.ConnectionError):
        store.add_or_merge_log({"log_date": "2024-05-10", "craving_intensity": 9})
    assert store.snapshot() == before

    with pytest.raises(requests.ConnectionError):
        store.add_or_merge_log({"log_date": "2024-05-11", "craving_intensity": 9})
    assert store.snapshot() == before
    assert load_records(LocalBlobStore(str(tmp_path)), store.storage_key) == list(before)


def test_update_log_merges_by_id(tmp_path) -> None:
    store = _store(tmp_path)
    record = store.add_or_merge_log({"log_date": "2024-05-10", "notes": "first"})
    updated = store.update_log(record.id, {"notes": None, "water_glasses": 6})
    assert updated.notes is None
    assert updated.water_glasses == 6
    assert store.snapshot() == (updated,)


def test_update_log_unknown_id(tmp_path) -> None:
    store = _store(tmp_path)
    with pytest.raises(RecordNotFoundError):
        store.update_log("missing", {"notes": "x"})


def test_update_log_rejects_date_collision(tmp_path) -> None:
    store = _store(tmp_path)
    store.add_or_merge_log({"log_date": "2024-05-09"})
    record = store.add_or_merge_log({"log_date": "2024-05-10"})
    with pytest.raises(InvalidLogError):
        store.update_log(record.id, {"log_date": "2024-05-09"})


def test_failed_update_restores_snapshot(tmp_path) -> None:
    client = FakeClient()
    store = _store(tmp_path, client, SESSION)
    record = store.add_or_merge_log({"log_date": "2024-05-10", "sleep_quality": 75})
    before = store.snapshot()

    client.fail_with = GatewayError("boom", status_code=500)
    with pytest.raises(GatewayError):
        store.update_log(record.id, {"sleep_quality": 20})
    assert store.snapshot() == before
    assert client.patches == [(record.id, {"sleep_quality": 20})]


def test_refetch_without_session_is_noop(tmp_path) -> None:
    client = FakeClient()
    client.rows = [DailyLogRecord(id="x", user_id="user-1", log_date="2024-05-10")]
    store = _store(tmp_path, client)
    store.refetch()
    assert store.snapshot() == ()


def test_refetch_replaces_state(tmp_path) -> None:
    client = FakeClient()
    client.rows = [
        DailyLogRecord(id="a", user_id="user-1", log_date="2024-05-09"),
        DailyLogRecord(id="b", user_id="user-1", log_date="2024-05-10"),
    ]
    store = _store(tmp_path, client, SESSION)
    store.add_or_merge_log({"log_date": "2024-05-01"})
    store.refetch()
    assert [r.id for r in store.snapshot()] == ["b", "a"]
    assert store.is_loading is False


def test_refetch_with_empty_result_keeps_state(tmp_path) -> None:
    client = FakeClient()
    store = _store(tmp_path, client, SESSION)
    store.add_or_merge_log({"log_date": "2024-05-01"})
    before = store.snapshot()
    store.refetch()
    assert store.snapshot() == before


def test_refetch_failure_records_error(tmp_path) -> None:
    client = FakeClient()
    store = _store(tmp_path, client, SESSION)
    client.fail_with = GatewayError("server down", status_code=503)
    with pytest.raises(GatewayError):
        store.refetch()
    assert store.error == "server down"
    assert store.is_loading is False


def test_listeners_receive_snapshots_until_unsubscribed(tmp_path) -> None:
    store = _store(tmp_path)
    seen: list[int] = []
    unsubscribe = store.subscribe(lambda snapshot: seen.append(len(snapshot)))

    store.add_or_merge_log({"log_date": "2024-05-10"})
    store.add_or_merge_log({"log_date": "2024-05-11"})
    unsubscribe()
    store.add_or_merge_log({"log_date": "2024-05-12"})
    assert seen == [1, 2]


def test_failing_listener_does_not_block_mutation(tmp_path) -> None:
    store = _store(tmp_path)

    def broken(snapshot):
        raise RuntimeError("listener bug")

    store.subscribe(broken)
    record = store.add_or_merge_log({"log_date": "2024-05-10"})
    assert store.snapshot() == (record,)


def test_clear_all_persists_empty_list(tmp_path) -> None:
    store = _store(tmp_path, seed=True)
    store.clear_all()
    assert store.snapshot() == ()
    assert load_records(LocalBlobStore(str(tmp_path))) == []

    reloaded = _store(tmp_path, seed=True)
    assert reloaded.snapshot() == ()


def test_persistence_failure_keeps_memory_state(tmp_path, monkeypatch) -> None:
    store = _store(tmp_path)

    def broken_write(self, key, value):
        raise OSError("quota exceeded")

    monkeypatch.setattr(LocalBlobStore, "write", broken_write)
    record = store.add_or_merge_log({"log_date": "2024-05-10"})
    assert store.snapshot() == (record,)


def test_sign_out_hides_remote_records(tmp_path) -> None:
    client = FakeClient()
    client.rows = [DailyLogRecord(id="alice-1", user_id="alice", log_date="2024-05-10", notes="alice private")]
    store = _store(tmp_path, client)
    store.add_or_merge_log({"log_date": "2024-05-01", "mood_tag": "happy"})
    store.start_session(AuthSession(user_id="alice", access_token="a"))
    store.refetch()
    calls: list[int] = []
    store.subscribe(lambda snapshot: calls.append(1))

    store.end_session()
    assert store.session is None
    assert not store.is_authenticated
    assert [r.log_date for r in store.snapshot()] == ["2024-05-01"]
    assert all(r.user_id != "alice" for r in load_records(LocalBlobStore(str(tmp_path))))
    assert calls == []


def test_next_user_never_merges_into_previous_users_log(tmp_path) -> None:
    client = FakeClient()
    client.rows = [
        DailyLogRecord(id="alice-1", user_id="alice", log_date="2024-05-10", sleep_quality=30, notes="alice private")
    ]
    store = _store(tmp_path, client)
    store.start_session(AuthSession(user_id="alice", access_token="a"))
    store.refetch()
    store.end_session()

    client.rows = []
    store.start_session(AuthSession(user_id="bob", access_token="b"))
    store.refetch()
    assert store.snapshot() == ()

    saved = store.add_or_merge_log({"log_date": "2024-05-10", "mood_tag": "calm"})
    row = client.upserts[-1]
    assert row["user_id"] == "bob"
    assert row["notes"] is None
    assert row["sleep_quality"] is None
    assert saved.user_id == "bob"


def test_user_cache_is_restored_on_next_sign_in(tmp_path) -> None:
    client = FakeClient()
    client.rows = [DailyLogRecord(id="alice-1", user_id="alice", log_date="2024-05-10")]
    store = _store(tmp_path, client, seed=True)
    alice = AuthSession(user_id="alice", access_token="a")
    store.start_session(alice)
    assert store.snapshot() == ()
    store.refetch()
    store.end_session()
    assert len(store.snapshot()) == 14

    store.start_session(alice)
    assert [r.id for r in store.snapshot()] == ["alice-1"]
    assert store.storage_key == "ally.daily_logs.alice"


def test_foreign_record_is_replaced_not_merged(tmp_path) -> None:
    client = FakeClient()
    blob = LocalBlobStore(str(tmp_path))
    blob.write(
        "ally.daily_logs.user-1",
        json.dumps([{"id": "x", "user_id": "someone-else", "log_date": "2024-05-10", "notes": "theirs"}]),
    )
    store = _store(tmp_path, client, SESSION)
    saved = store.add_or_merge_log({"log_date": "2024-05-10", "mood_tag": "calm"})
    assert client.upserts[-1]["notes"] is None
    assert store.snapshot() == (saved,)


class SlowClient(FakeClient):
    def __init__(self) -> None:
        super().__init__()
        self.entered = threading.Event()
        self.release = threading.Event()
        self._first = True

    def upsert_log(self, session, row):
        if self._first:
            self._first = False
            self.entered.set()
            assert self.release.wait(timeout=5)
        return super().upsert_log(session, row)


def test_same_date_writes_are_serialized(tmp_path) -> None:
    client = SlowClient()
    store = _store(tmp_path, client, SESSION)

    first = threading.Thread(
        target=store.add_or_merge_log, args=({"log_date": "2024-05-10", "sleep_quality": 70},)
    )
    second = threading.Thread(
        target=store.add_or_merge_log, args=({"log_date": "2024-05-10", "craving_intensity": 6},)
    )
    first.start()
    assert client.entered.wait(timeout=5)
    second.start()
    second.join(timeout=0.2)
    assert second.is_alive()
    client.release.set()
    first.join(timeout=5)
    second.join(timeout=5)

    (record,) = store.snapshot()
    assert record.sleep_quality == 70
    assert record.craving_intensity == 6
    assert len(client.upserts) == 2


def test_update_log_waits_for_same_date_lock(tmp_path) -> None:
    store = _store(tmp_path)
    record = store.add_or_merge_log({"log_date": "2024-05-10"})

    lock = store._lock_for("2024-05-10")
    lock.acquire()
    worker = threading.Thread(target=store.update_log, args=(record.id, {"notes": "later"}))
    try:
        worker.start()
        worker.join(timeout=0.2)
        assert worker.is_alive()
        assert store.snapshot()[0].notes is None
    finally:
        lock.release()
    worker.join(timeout=5)
    assert store.snapshot()[0].notes == "later"
