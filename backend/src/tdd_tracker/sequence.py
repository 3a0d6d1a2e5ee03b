"""Test-run identities derived from a small append-only JSON log.

The log is an array whose entries are either commit markers
(``{"commitId": ...}``) or test-run markers (``{"testId": ..., ...}``).
Only the last entry decides the next identity.
"""

from __future__ import annotations

import json
import logging
import uuid
from pathlib import Path
from typing import Any, Dict, List

log = logging.getLogger(__name__)


def _read(path: Path) -> List[Dict[str, Any]]:
    return json.loads(path.read_text(encoding="utf-8"))


def _write(path: Path, entries: List[Dict[str, Any]]) -> None:
    path.write_text(json.dumps(entries, indent=2), encoding="utf-8")


def ensure_log(log_path: str | Path) -> Path:
    path = Path(log_path)
    if not path.exists():
        _write(path, [])
        log.debug("Initialised sequence log at %s", path)
    return path


def new_id() -> str:
    return str(uuid.uuid4())


def next_test_run_id(log_path: str | Path) -> str:
    """Identity for the next test run.

    After a commit marker (or in an empty log) a fresh id starts a new run;
    after a test-run marker its ``testId`` is reused.
    """
    entries = _read(ensure_log(log_path))
    if not entries:
        return new_id()
    last = entries[-1]
    if "commitId" in last:
        return new_id()
    return last.get("testId") or new_id()


def _append(log_path: str | Path, entry: Dict[str, Any]) -> None:
    path = ensure_log(log_path)
    entries = _read(path)
    entries.append(entry)
    _write(path, entries)


def append_commit_marker(log_path: str | Path, commit_id: str) -> None:
    _append(log_path, {"commitId": commit_id})


def append_test_run(log_path: str | Path, test_id: str, **extra: Any) -> None:
    _append(log_path, {"testId": test_id, **extra})
