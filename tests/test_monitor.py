import json
import sqlite3
from datetime import datetime, timezone
from unittest.mock import Mock, patch

import pytest
from prometheus_client import REGISTRY

from drivewatch.models import ChangeRecord
from drivewatch.monitor import TICK_LEASE, Monitor, next_watermark
from drivewatch.run_log import read_runs
from drivewatch.state import WatermarkStore
from drivewatch.util import EPOCH


def _utc(*args) -> datetime:
    return datetime(*args, tzinfo=timezone.utc)


def _ticks(status: str) -> float:
    return REGISTRY.get_sample_value("drivewatch_ticks_total", {"status": status}) or 0.0


def test_next_watermark_is_max_plus_one_second():
    changes = [
        ChangeRecord("a", "u", _utc(2024, 1, 1, 0, 0, 0)),
        ChangeRecord("b", "u", _utc(2024, 1, 1, 0, 0, 5, 250000)),
    ]
    assert next_watermark(changes, EPOCH) == _utc(2024, 1, 1, 0, 0, 6)


def test_next_watermark_never_moves_backwards():
    since = _utc(2024, 6, 1)
    changes = [ChangeRecord("a", "u", _utc(2024, 1, 1))]
    assert next_watermark(changes, since) > since


def test_report_scenario_advances_watermark_and_notifies_discord(backend, store, make_config):
    """Epoch watermark, one file -> one record, watermark +1s, Discord POST"""
    backend.tree = {"F1": []}
    backend.add_file("F1", "1", "report.pdf", "2024-01-01T00:00:00Z", url="https://x/1")
    cfg = make_config(
        root_folder_id="F1",
        notifications={"discord": {"enabled": True, "webhook_url": "https://discord.example/hook"}},
    )

    with patch("requests.post") as mock_post:
        mock_post.return_value = Mock(status_code=204)
        result = Monitor(cfg, backend, store).check_folder_files_updates()

    assert result.status == "notified"
    assert len(result.changes) == 1
    assert store.get_property("lastCheckTime") == "2024-01-01T00:00:01Z"
    mock_post.assert_called_once()
    assert mock_post.call_args[0][0] == "https://discord.example/hook"
    content = mock_post.call_args[1]["json"]["content"]
    assert "report.pdf" in content
    assert "https://x/1" in content


def test_empty_tick_is_idempotent(backend, store, make_config):
    WatermarkStore(store).set(_utc(2024, 1, 1))
    sender = Mock(return_value=True)

    result = Monitor(make_config(), backend, store, sender=sender).check_folder_files_updates()

    assert result.status == "no_changes"
    assert store.get_property("lastCheckTime") == "2024-01-01T00:00:00Z"
    sender.assert_not_called()


def test_no_duplicate_on_next_tick(backend, store, make_config):
    backend.add_file("sub1", "1", "a.txt", "2024-01-01T10:00:00Z")
    sender = Mock(return_value=True)
    monitor = Monitor(make_config(), backend, store, sender=sender)

    first = monitor.check_folder_files_updates()
    second = monitor.check_folder_files_updates()

    assert [c.name for c in first.changes] == ["a.txt"]
    assert second.status == "no_changes"
    assert sender.call_count == 3  # one tick, three channels


def test_no_skip_across_ticks(backend, store, make_config):
    """Files modified after the last commit are all reported on the next tick"""
    backend.add_file("root", "1", "first.txt", "2024-01-01T10:00:00Z")
    monitor = Monitor(make_config(), backend, store, sender=Mock(return_value=True))
    monitor.check_folder_files_updates()

    backend.add_file("sub1a", "2", "deep.txt", "2024-01-01T10:00:01Z")
    backend.add_file("sub2", "3", "later.txt", "2024-01-02T08:00:00Z")
    result = monitor.check_folder_files_updates()

    assert sorted(c.name for c in result.changes) == ["deep.txt", "later.txt"]
    assert store.get_property("lastCheckTime") == "2024-01-02T08:00:01Z"


def test_backend_unavailable_aborts_without_touching_watermark(backend, store, make_config):
    WatermarkStore(store).set(_utc(2024, 1, 1))
    backend.add_file("root", "1", "a.txt", "2024-02-01T00:00:00Z")
    backend.fail_search = True
    sender = Mock(return_value=True)
    before = _ticks("backend_unavailable")

    result = Monitor(make_config(), backend, store, sender=sender).check_folder_files_updates()

    assert result.status == "backend_unavailable"
    assert "503" in result.error
    assert store.get_property("lastCheckTime") == "2024-01-01T00:00:00Z"
    sender.assert_not_called()
    assert _ticks("backend_unavailable") == before + 1


def test_unknown_root_aborts_tick(backend, store, make_config):
    sender = Mock(return_value=True)
    result = Monitor(make_config(root_folder_id="gone"), backend, store, sender=sender).check_folder_files_updates()

    assert result.status == "backend_unavailable"
    sender.assert_not_called()


def test_persistence_failure_skips_notification(backend, store, make_config):
    backend.add_file("root", "1", "a.txt", "2024-02-01T00:00:00Z")
    sender = Mock(return_value=True)
    monitor = Monitor(make_config(), backend, store, sender=sender)

    with patch.object(store, "set_property", side_effect=sqlite3.OperationalError("readonly database")):
        result = monitor.check_folder_files_updates()

    assert result.status == "persistence_failure"
    assert store.get_property("lastCheckTime") is None
    sender.assert_not_called()


def test_delivery_failure_keeps_committed_watermark(backend, store, make_config):
    backend.add_file("root", "1", "a.txt", "2024-02-01T00:00:00Z")
    sender = Mock(return_value=False)

    result = Monitor(make_config(), backend, store, sender=sender).check_folder_files_updates()

    assert result.status == "notified"
    assert result.deliveries == {"discord": False, "slack": False, "telegram": False}
    assert store.get_property("lastCheckTime") == "2024-02-01T00:00:01Z"


def test_overlapping_tick_is_skipped(backend, store, make_config):
    store.acquire_lease(TICK_LEASE, "other-process", ttl_seconds=600)
    backend.add_file("root", "1", "a.txt", "2024-02-01T00:00:00Z")
    sender = Mock(return_value=True)

    result = Monitor(make_config(), backend, store, sender=sender).check_folder_files_updates()

    assert result.status == "skipped_locked"
    assert backend.queries == []
    sender.assert_not_called()


def test_lease_released_after_tick(backend, store, make_config):
    Monitor(make_config(), backend, store, sender=Mock(return_value=True)).check_folder_files_updates()
    assert store.acquire_lease(TICK_LEASE, "next", ttl_seconds=600)


def test_tick_recorded_in_run_log(backend, store, make_config):
    cfg = make_config()
    backend.add_file("root", "1", "a.txt", "2024-02-01T00:00:00Z")
    monitor = Monitor(cfg, backend, store, sender=Mock(return_value=True))

    monitor.check_folder_files_updates()
    monitor.check_folder_files_updates()

    runs = read_runs(cfg.run_log)
    assert [r["status"] for r in runs] == ["notified", "no_changes"]
    assert runs[0]["changes"] == 1
    assert runs[0]["previous_watermark"] is None
    assert runs[0]["watermark"] == "2024-02-01T00:00:01Z"
    assert runs[0]["deliveries"] == {"discord": True, "slack": True, "telegram": True}
    json.dumps(runs)  # entries stay plain JSON


def test_unexpected_error_is_contained(backend, store, make_config):
    cfg = make_config()
    sender = Mock(return_value=True)
    before = _ticks("error")

    with patch.object(backend, "search_files", side_effect=RuntimeError("boom")):
        result = Monitor(cfg, backend, store, sender=sender).check_folder_files_updates()

    assert result.status == "error"
    assert result.error == "boom"
    sender.assert_not_called()
    assert store.get_property("lastCheckTime") is None
    assert _ticks("error") == before + 1
    assert read_runs(cfg.run_log)[-1]["status"] == "error"
    assert store.acquire_lease(TICK_LEASE, "next", ttl_seconds=600)


def test_close_closes_store(backend, store, make_config):
    monitor = Monitor(make_config(), backend, store)
    monitor.close()
    with pytest.raises(sqlite3.ProgrammingError):
        store.get_property("lastCheckTime")
