import json
import uuid
from pathlib import Path

from tdd_tracker.sequence import append_commit_marker, append_test_run, next_test_run_id


def _is_uuid(value: str) -> bool:
    return str(uuid.UUID(value)) == value


def test_absent_log_is_created_and_mints(tmp_path: Path):
    path = tmp_path / "history.json"
    test_id = next_test_run_id(path)
    assert _is_uuid(test_id)
    assert json.loads(path.read_text()) == []


def test_empty_log_mints(tmp_path: Path):
    path = tmp_path / "history.json"
    path.write_text("[]")
    assert _is_uuid(next_test_run_id(path))


def test_commit_marker_mints_fresh_id(tmp_path: Path):
    path = tmp_path / "history.json"
    path.write_text(json.dumps([{"testId": "T1"}, {"commitId": "abc"}]))
    test_id = next_test_run_id(path)
    assert test_id != "T1"
    assert _is_uuid(test_id)


def test_test_run_marker_is_reused(tmp_path: Path):
    path = tmp_path / "history.json"
    path.write_text(json.dumps([{"commitId": "abc"}, {"testId": "T1"}]))
    assert next_test_run_id(path) == "T1"
    assert next_test_run_id(path) == "T1"


def test_test_run_marker_without_id_mints(tmp_path: Path):
    path = tmp_path / "history.json"
    path.write_text(json.dumps([{"testId": None, "passed": 3}]))
    assert _is_uuid(next_test_run_id(path))


def test_only_last_entry_matters(tmp_path: Path):
    path = tmp_path / "history.json"
    path.write_text(json.dumps([{"testId": "OLD"}, {"commitId": "a"}, {"testId": "T2"}]))
    assert next_test_run_id(path) == "T2"


def test_appended_markers_drive_allocation(tmp_path: Path):
    path = tmp_path / "history.json"
    first = next_test_run_id(path)
    append_test_run(path, first, passed=4, failed=0)
    assert next_test_run_id(path) == first
    append_commit_marker(path, "abc")
    assert next_test_run_id(path) != first
    assert json.loads(path.read_text()) == [
        {"testId": first, "passed": 4, "failed": 0},
        {"commitId": "abc"},
    ]
