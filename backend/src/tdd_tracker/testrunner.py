"""Test-runner collaborator: run the project's tests with coverage and read
the machine-readable report they leave behind.
"""

from __future__ import annotations

import logging
import secrets
import subprocess
import tempfile
from decimal import ROUND_HALF_UP, Decimal
from pathlib import Path
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, ValidationError, model_validator

from .errors import ReportUnreadable, TestRunnerFailure

log = logging.getLogger(__name__)


class FileCoverage(BaseModel):
    """Per-statement hit counters of one file in an istanbul coverage map."""

    model_config = ConfigDict(extra="ignore")

    s: Dict[str, int] = Field(default_factory=dict)

    @model_validator(mode="before")
    @classmethod
    def _unwrap(cls, value: Any) -> Any:
        # istanbul FileCoverage objects serialise either bare or under "data"
        if isinstance(value, dict) and "data" in value:
            return value["data"]
        return value


class RunnerReport(BaseModel):
    """The subset of a Jest ``--json`` report that feeds a commit record."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    test_count: int = Field(default=0, ge=0, alias="numTotalTests")
    failed_tests: int = Field(default=0, ge=0, alias="numFailedTests")
    coverage_map: Dict[str, FileCoverage] = Field(default_factory=dict, alias="coverageMap")

    @model_validator(mode="after")
    def _check_counts(self) -> "RunnerReport":
        if self.failed_tests > self.test_count:
            raise ValueError("numFailedTests exceeds numTotalTests")
        return self

    def statement_hits(self) -> List[int]:
        return [hit for entry in self.coverage_map.values() for hit in entry.s.values()]

    def coverage(self) -> float:
        """Percentage of statements hit at least once, rounded half-up to 2 places."""
        hits = self.statement_hits()
        if not hits:
            return 0.0
        covered = sum(1 for h in hits if h > 0)
        ratio = Decimal(covered * 100) / Decimal(len(hits))
        return float(ratio.quantize(Decimal("0.01"), rounding=ROUND_HALF_UP))


def report_path(directory: Optional[str] = None) -> Path:
    """A fresh report location; the random token keeps concurrent runs apart."""
    base = Path(directory or tempfile.gettempdir())
    return base / f"jest-results-{secrets.token_hex(8)}.json"


class TestRunner:
    __test__ = False  # not a pytest class

    def __init__(self, command: List[str], build_file: str = "package.json", cwd: str | Path = ".", timeout: int = 600) -> None:
        self.command = list(command)
        self.build_file = build_file
        self.cwd = Path(cwd)
        self.timeout = timeout

    def has_build_file(self) -> bool:
        return (self.cwd / self.build_file).exists()

    def run(self, output_path: Path) -> bool:
        """Invoke the runner. A non-zero exit is fine: failing tests cause one."""
        argv = self.command + [f"--outputFile={output_path}"]
        try:
            result = subprocess.run(
                argv,
                cwd=str(self.cwd),
                capture_output=True,
                text=True,
                timeout=self.timeout,
                check=False,
            )
        except (subprocess.TimeoutExpired, FileNotFoundError, OSError) as e:
            log.warning("Test runner %s could not run: %s", argv[0], e)
            return False
        log.debug("Test runner exited %s", result.returncode)
        return True


def read_report(path: Path) -> RunnerReport:
    try:
        return RunnerReport.model_validate_json(path.read_bytes())
    except (OSError, ValueError, ValidationError) as e:
        raise ReportUnreadable(f"unreadable test report {path}: {e}") from e


def collect(runner: TestRunner, directory: Optional[str] = None) -> Optional[RunnerReport]:
    """Run the tests and return their report, or ``None`` if there is none.

    Raises ``TestRunnerFailure``/``ReportUnreadable`` for the caller to
    degrade on; the report file is removed in every case.
    """
    path = report_path(directory)
    try:
        if not runner.run(path):
            raise TestRunnerFailure("test runner could not be invoked")
        if not path.exists():
            return None
        return read_report(path)
    finally:
        path.unlink(missing_ok=True)
