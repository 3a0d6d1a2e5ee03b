from __future__ import annotations

import datetime as dt
import json
from pathlib import Path
from typing import Any, Dict, Optional, Tuple

import pytest

from tdd_tracker.db import open_store
from tdd_tracker.schemas import CommitMetrics, Conclusion, DiffStats

SHA = "3f2a9c1e4b5d6f708192a3b4c5d6e7f8091a2b3c"
PARENT = "1111111111111111111111111111111111111111"
WHEN = dt.datetime(2024, 5, 17, 22, 30, tzinfo=dt.timezone(dt.timedelta(hours=-3)))


@pytest.fixture
def anyio_backend():
    return "asyncio"


@pytest.fixture
async def store(tmp_path: Path):
    async with open_store(f"sqlite+aiosqlite:///{tmp_path / 'history.db'}") as s:
        yield s


class FakeGit:
    """In-memory stand-in for GitRepo; ``None`` means the lookup fails."""

    def __init__(self, **overrides: Any) -> None:
        self.head: Optional[str] = SHA
        self.branch: Optional[str] = "feature/login"
        self.messages: Dict[str, str] = {SHA: "Add login form"}
        self.authors: Dict[str, str] = {SHA: "Ada Lovelace"}
        self.dates: Dict[str, dt.datetime] = {SHA: WHEN}
        self.remote: Optional[str] = "https://github.com/ada/engine"
        self.diffs: Dict[Tuple[str, str], Tuple[int, int]] = {(f"{SHA}~1", SHA): (12, 3)}
        for key, value in overrides.items():
            setattr(self, key, value)

    def rev_parse(self, ref: str) -> Optional[str]:
        return self.head if ref == "HEAD" else ref

    def current_branch(self) -> Optional[str]:
        return self.branch

    def message(self, sha: str) -> Optional[str]:
        return self.messages.get(sha)

    def author(self, sha: str) -> Optional[str]:
        return self.authors.get(sha)

    def committed_at(self, sha: str) -> Optional[dt.datetime]:
        return self.dates.get(sha)

    def remote_url(self) -> Optional[str]:
        return self.remote

    def diff_counts(self, base: str, head: str) -> Optional[Tuple[int, int]]:
        return self.diffs.get((base, head))


class FakeRunner:
    """Writes ``report`` to the requested output path instead of running tests."""

    def __init__(self, report: Optional[dict] = None, build_file: bool = True, runs: bool = True) -> None:
        self.report = report
        self.build_file = "package.json"
        self._has_build_file = build_file
        self.runs = runs
        self.paths: list[Path] = []

    def has_build_file(self) -> bool:
        return self._has_build_file

    def run(self, output_path: Path) -> bool:
        self.paths.append(output_path)
        if not self.runs:
            return False
        if self.report is not None:
            output_path.write_text(json.dumps(self.report), encoding="utf-8")
        return True


def jest_report(total: int, failed: int, hits: Optional[list[int]] = None) -> dict:
    s = {str(i): h for i, h in enumerate(hits or [])}
    return {
        "numTotalTests": total,
        "numFailedTests": failed,
        "coverageMap": {"/src/app.js": {"path": "/src/app.js", "s": s}},
    }


def make_metrics(**overrides: Any) -> CommitMetrics:
    fields: Dict[str, Any] = dict(
        commit_id=SHA,
        author="Ada Lovelace",
        message="Add login form",
        timestamp=WHEN.astimezone(dt.timezone.utc),
        source_url="https://github.com/ada/engine",
        diff_stats=DiffStats.of(12, 3, dt.date(2024, 5, 18)),
        coverage=50.0,
        test_count=4,
        failed_tests=0,
        conclusion=Conclusion.success,
    )
    fields.update(overrides)
    return CommitMetrics(**fields)
