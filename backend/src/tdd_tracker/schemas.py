from __future__ import annotations

import datetime as dt
import enum
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field, model_validator


class Conclusion(str, enum.Enum):
    success = "success"
    failure = "failure"
    neutral = "neutral"

    @classmethod
    def from_counts(cls, test_count: int, failed_tests: int) -> "Conclusion":
        if test_count == 0:
            return cls.neutral
        return cls.failure if failed_tests > 0 else cls.success


class DiffStats(BaseModel):
    model_config = ConfigDict(frozen=True)

    additions: int = Field(default=0, ge=0)
    deletions: int = Field(default=0, ge=0)
    total: int = Field(default=0, ge=0)
    date: dt.date

    @classmethod
    def of(cls, additions: int, deletions: int, date: dt.date) -> "DiffStats":
        return cls(additions=additions, deletions=deletions, total=additions + deletions, date=date)

    @model_validator(mode="after")
    def _check_total(self) -> "DiffStats":
        if self.total != self.additions + self.deletions:
            raise ValueError("total must equal additions + deletions")
        return self


class CommitMetrics(BaseModel):
    """One commit's metrics, validated once and never mutated afterwards."""

    model_config = ConfigDict(frozen=True)

    commit_id: str = Field(min_length=1)
    author: str
    message: str
    timestamp: dt.datetime
    source_url: str = ""
    diff_stats: DiffStats
    coverage: float = Field(default=0.0, ge=0, le=100)
    test_count: int = Field(default=0, ge=0)
    failed_tests: int = Field(default=0, ge=0)
    conclusion: Conclusion = Conclusion.neutral

    @model_validator(mode="after")
    def _check_tests(self) -> "CommitMetrics":
        if self.failed_tests > self.test_count:
            raise ValueError("failed_tests cannot exceed test_count")
        if self.conclusion != Conclusion.from_counts(self.test_count, self.failed_tests):
            raise ValueError(f"conclusion {self.conclusion.value!r} does not match test counts")
        return self

    @property
    def commit_url(self) -> str:
        if not self.source_url:
            return ""
        return f"{self.source_url}/commit/{self.commit_id}"

    @property
    def repo_name(self) -> str:
        return self.source_url.rstrip("/").split("/")[-1] if self.source_url else ""

    def metrics_fields(self) -> dict:
        """The fields an upsert may overwrite on an already-stored commit."""
        return {
            "stats": self.diff_stats.model_dump(mode="json"),
            "coverage": self.coverage,
            "test_count": self.test_count,
            "failed_tests": self.failed_tests,
            "conclusion": self.conclusion.value,
        }


class BranchContext(BaseModel):
    branch_name: str = "main"
    user_id: str = ""


class CommitOut(BaseModel):
    sha: str
    author: Optional[str]
    message: str
    url: str
    timestamp: dt.datetime
    stats: dict
    coverage: float
    test_count: int
    failed_tests: int
    conclusion: Conclusion


class BranchOut(BaseModel):
    repo: str
    branch_name: str
    last_commit: Optional[str]
    commits: List[CommitOut]
