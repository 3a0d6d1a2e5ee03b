"""Assemble a CommitMetrics record for one resolved commit.

Commit message, author and date are mandatory: if git cannot answer any of
them the assembly fails with CommitLookupError. Everything else degrades to
a zero or empty value, is logged, and is remembered on ``degraded`` so the
caller can report what was missing.
"""

from __future__ import annotations

import datetime as dt
import logging
from typing import List, Optional

from .errors import CommitLookupError, DegradedError, DiffComputationFailure, RemoteUrlUnavailable
from .schemas import CommitMetrics, Conclusion, DiffStats
from .testrunner import RunnerReport, TestRunner, collect
from .vcs import GitRepo

log = logging.getLogger(__name__)


class MetricsAssembler:
    def __init__(self, git: GitRepo, runner: TestRunner, report_dir: Optional[str] = None) -> None:
        self.git = git
        self.runner = runner
        self.report_dir = report_dir
        self.degraded: List[DegradedError] = []

    def _degrade(self, err: DegradedError) -> None:
        self.degraded.append(err)
        log.warning("%s", err)

    def commit_facts(self, sha: str) -> tuple[str, str, dt.datetime]:
        message = self.git.message(sha)
        author = self.git.author(sha)
        committed_at = self.git.committed_at(sha)
        missing = [
            name
            for name, value in (("message", message), ("author", author), ("date", committed_at))
            if value is None
        ]
        if missing:
            raise CommitLookupError(f"could not read {', '.join(missing)} of commit {sha}", ref=sha)
        return message, author, committed_at.astimezone(dt.timezone.utc)  # type: ignore[union-attr,return-value]

    def source_url(self) -> str:
        url = self.git.remote_url()
        if url is None:
            self._degrade(RemoteUrlUnavailable("no remote repository configured; storing an empty URL"))
            return ""
        return url

    def diff_counts(self, sha: str) -> tuple[int, int]:
        counts = self.git.diff_counts(f"{sha}~1", sha)
        if counts is None:
            # root commits have no predecessor to diff against
            self.degraded.append(DiffComputationFailure(f"no diff for {sha}", ref=sha))
            log.info("No diff statistics for %s; recording zero", sha)
            return 0, 0
        return counts

    def test_report(self, sha: str) -> Optional[RunnerReport]:
        if not self.runner.has_build_file():
            log.info("No %s found; skipping tests for %s", self.runner.build_file, sha)
            return None
        try:
            report = collect(self.runner, self.report_dir)
        except DegradedError as e:
            e.ref = sha
            self._degrade(e)
            return None
        if report is None:
            log.warning("Test runner produced no report for %s", sha)
        return report

    def assemble(self, sha: str) -> CommitMetrics:
        self.degraded = []
        message, author, committed_at = self.commit_facts(sha)
        source_url = self.source_url()
        additions, deletions = self.diff_counts(sha)
        report = self.test_report(sha)

        test_count = report.test_count if report else 0
        failed_tests = report.failed_tests if report else 0
        return CommitMetrics(
            commit_id=sha,
            author=author,
            message=message,
            timestamp=committed_at,
            source_url=source_url,
            diff_stats=DiffStats.of(additions, deletions, committed_at.date()),
            coverage=report.coverage() if report else 0.0,
            test_count=test_count,
            failed_tests=failed_tests,
            conclusion=Conclusion.from_counts(test_count, failed_tests),
        )
