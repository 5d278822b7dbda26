"""Tests for core.state_store."""

import json
import logging

import pytest

from core.state_store import LogEntry, RunStatus, StateStore


@pytest.fixture
def store(tmp_path):
    return StateStore(tmp_path / "data")


# ---------------------------------------------------------------------------
# Status
# ---------------------------------------------------------------------------

def test_status_defaults_to_idle(store):
    assert store.get_status() is RunStatus.IDLE


def test_status_is_persisted(tmp_path):
    StateStore(tmp_path).set_status(RunStatus.RUNNING)
    assert StateStore(tmp_path).get_status() is RunStatus.RUNNING


def test_reset_status_to_idle(store):
    store.set_status(RunStatus.STOPPED)
    store.reset_status_to_idle()
    assert store.get_status() is RunStatus.IDLE


def test_unknown_status_reads_as_idle(tmp_path):
    (tmp_path / "sync_status.json").write_text(json.dumps({"status": "paused"}))
    assert StateStore(tmp_path).get_status() is RunStatus.IDLE


def test_corrupt_status_file_is_moved_aside(tmp_path):
    (tmp_path / "sync_status.json").write_text("{not json")
    store = StateStore(tmp_path)
    assert store.get_status() is RunStatus.IDLE
    assert list(tmp_path.glob("sync_status.json.corrupt.*"))


def test_non_object_status_document_reads_as_idle(tmp_path):
    (tmp_path / "sync_status.json").write_text(json.dumps(["running"]))
    assert StateStore(tmp_path).get_status() is RunStatus.IDLE


# ---------------------------------------------------------------------------
# Log
# ---------------------------------------------------------------------------

def test_append_log_adds_timestamped_entry(store):
    entry = store.append_log("Token obtained successfully.")
    assert isinstance(entry, LogEntry)
    assert str(entry).endswith(" - Token obtained successfully.")
    assert len(entry.timestamp) == len("2024-01-01 00:00:00")
    assert [e.message for e in store.read_log()] == ["Token obtained successfully."]


def test_log_never_exceeds_max_entries_and_evicts_oldest_first(store):
    for i in range(105):
        store.append_log(f"message {i}")
        assert len(store.read_log()) <= 100

    messages = [e.message for e in store.read_log()]
    assert len(messages) == 100
    assert messages[0] == "message 5"
    assert messages[-1] == "message 104"


def test_smaller_limit_trims_existing_log(tmp_path):
    big = StateStore(tmp_path, max_entries=10)
    for i in range(10):
        big.append_log(f"message {i}")

    small = StateStore(tmp_path, max_entries=3)
    small.append_log("message 10")
    assert [e.message for e in small.read_log()] == ["message 8", "message 9", "message 10"]


def test_read_recent_log_is_newest_first_and_truncated(store):
    for i in range(30):
        store.append_log(f"message {i}")

    recent = store.read_recent_log(20)
    assert len(recent) == 20
    assert recent[0].message == "message 29"
    assert recent[-1].message == "message 10"


def test_read_recent_log_zero(store):
    store.append_log("message")
    assert store.read_recent_log(0) == []


def test_clear_log(store):
    store.append_log("message")
    store.clear_log()
    assert store.read_log() == []


def test_log_is_shared_between_instances(tmp_path):
    StateStore(tmp_path).append_log("from job")
    StateStore(tmp_path).append_log("from cli")
    assert [e.message for e in StateStore(tmp_path).read_log()] == ["from job", "from cli"]


def test_invalid_max_entries():
    with pytest.raises(ValueError):
        StateStore("/tmp/unused", max_entries=0)


def test_log_entries_are_mirrored_to_logging(store, caplog):
    caplog.set_level(logging.INFO, logger="core.state_store")
    store.append_log("ERROR: API returned an error")
    store.append_log("All products have been processed.")

    levels = {r.getMessage(): r.levelno for r in caplog.records}
    assert levels["ERROR: API returned an error"] == logging.ERROR
    assert levels["All products have been processed."] == logging.INFO


# ---------------------------------------------------------------------------
# Secure key
# ---------------------------------------------------------------------------

def test_secure_key_round_trip(store):
    assert store.get_secure_key() == ""
    store.set_secure_key("  s3cr3t  ")
    assert store.get_secure_key() == "s3cr3t"


def test_non_object_settings_document_has_no_key(tmp_path):
    (tmp_path / "settings.json").write_text(json.dumps("s3cr3t"))
    assert StateStore(tmp_path).get_secure_key() == ""


# ---------------------------------------------------------------------------
# Run lock
# ---------------------------------------------------------------------------

def test_run_lock_is_single_slot(store):
    assert store.run_lock.acquire() is True
    assert store.run_lock.locked
    assert store.run_lock.acquire() is False
    store.run_lock.release()
    assert not store.run_lock.locked
    assert store.run_lock.acquire() is True
    store.run_lock.release()


def test_run_lock_excludes_other_store_instances(tmp_path):
    first = StateStore(tmp_path)
    second = StateStore(tmp_path)
    assert first.run_lock.acquire() is True
    try:
        assert second.run_lock.acquire() is False
    finally:
        first.run_lock.release()
    assert second.run_lock.acquire() is True
    second.run_lock.release()


def test_release_without_acquire_is_noop(store):
    store.run_lock.release()
    assert store.run_lock.acquire() is True
    store.run_lock.release()
