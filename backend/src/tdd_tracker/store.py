"""History store adapters.

Both variants share one contract, ``upsert(session, metrics, branch)``, and
converge to the same stored state when called again with the same record:

* NormalizedHistoryStore keeps developers, repositories, branches and
  commits in separate tables. A commit is scoped to its branch, and a
  re-ingested commit only has its metrics fields refreshed: message, url
  and timestamp are kept as first written.
* DenormalizedHistoryStore keeps one document per branch holding the set of
  its commit ids, and one document per commit keyed by sha which is
  overwritten in full on every ingestion.
"""

from __future__ import annotations

import abc
import datetime as dt
import logging
from typing import Any, Dict, List, Optional

from sqlalchemy import select
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from .config import StoreShape
from .db import Branch, BranchDocument, Commit, CommitDocument, Developer, Repository
from .errors import AmbiguousRepositoryError, StorePersistenceError
from .schemas import BranchContext, BranchOut, CommitMetrics, CommitOut

log = logging.getLogger(__name__)


def _insert_for_dialect(session: AsyncSession, model: Any):
    dialect = session.get_bind().dialect.name
    if dialect == "sqlite":
        return sqlite_insert(model)
    if dialect in ("postgres", "postgresql"):
        return pg_insert(model)
    raise StorePersistenceError(f"Unsupported SQL dialect for upserts: {dialect}")


class HistoryStoreAdapter(abc.ABC):
    shape: StoreShape

    async def upsert(self, session: AsyncSession, metrics: CommitMetrics, branch: BranchContext) -> None:
        """Write ``metrics`` into ``branch``'s history and commit, or write nothing."""
        try:
            await self._upsert(session, metrics, branch)
            await session.commit()
        except SQLAlchemyError as e:
            await session.rollback()
            raise StorePersistenceError(
                f"could not store commit {metrics.commit_id} on {branch.branch_name}: {e}",
                ref=metrics.commit_id,
            ) from e
        log.info("Commit %s stored on %s (%s)", metrics.commit_id, branch.branch_name, self.shape)

    @abc.abstractmethod
    async def _upsert(self, session: AsyncSession, metrics: CommitMetrics, branch: BranchContext) -> None: ...

    @abc.abstractmethod
    async def branch_history(self, session: AsyncSession, repo: str, branch_name: str, user_id: str = "") -> Optional[BranchOut]:
        """Stored commits of one branch, newest first; ``None`` if the branch is unknown."""


def _branch_select(repository_id: int, name: str):
    return (
        select(Branch)
        .where(Branch.repository_id == repository_id, Branch.name == name)
        .with_for_update()
        .execution_options(populate_existing=True)
    )


def _branch_document_select(key: Dict[str, str]):
    return select(BranchDocument).filter_by(**key).with_for_update().execution_options(populate_existing=True)


async def _insert_missing(session: AsyncSession, model: Any, values: Dict[str, Any], keys: List[str]) -> None:
    """Insert ``values`` unless a row with the same ``keys`` already exists.

    Concurrent writers racing on the same key both succeed; one of them
    inserts, the other finds the row.
    """
    stmt = _insert_for_dialect(session, model).values(**values)
    await session.execute(stmt.on_conflict_do_nothing(index_elements=keys))


class NormalizedHistoryStore(HistoryStoreAdapter):
    shape: StoreShape = "normalized"

    async def _developer(self, session: AsyncSession, full_name: str) -> Developer:
        await _insert_missing(session, Developer, {"full_name": full_name}, ["full_name"])
        res = await session.execute(select(Developer).where(Developer.full_name == full_name))
        return res.scalar_one()

    async def _repository(self, session: AsyncSession, url: str, name: str) -> Repository:
        await _insert_missing(session, Repository, {"name": name, "url": url}, ["url"])
        res = await session.execute(select(Repository).where(Repository.url == url))
        return res.scalar_one()

    async def _branch(self, session: AsyncSession, repo: Repository, name: str, sha: str) -> Branch:
        await _insert_missing(
            session,
            Branch,
            {"repository_id": repo.id, "name": name, "last_commit_sha": sha},
            ["repository_id", "name"],
        )
        res = await session.execute(_branch_select(repo.id, name))
        branch = res.scalar_one()
        branch.last_commit_sha = sha
        branch.updated_at = dt.datetime.now(dt.timezone.utc)
        await session.flush()
        return branch

    async def _upsert(self, session: AsyncSession, metrics: CommitMetrics, branch: BranchContext) -> None:
        dev = await self._developer(session, metrics.author)
        repo = await self._repository(session, metrics.source_url, metrics.repo_name)
        row = await self._branch(session, repo, branch.branch_name, metrics.commit_id)

        # message, url and timestamp are written once; later runs refresh the metrics only
        fields = metrics.metrics_fields()
        stmt = _insert_for_dialect(session, Commit).values(
            sha=metrics.commit_id,
            branch_id=row.id,
            author_id=dev.id,
            message=metrics.message,
            url=metrics.commit_url,
            timestamp=metrics.timestamp,
            **fields,
        )
        stmt = stmt.on_conflict_do_update(
            index_elements=[Commit.branch_id, Commit.sha],
            set_={key: getattr(stmt.excluded, key) for key in fields},
        )
        await session.execute(stmt)

    async def _find_branch(self, session: AsyncSession, repo: str, branch_name: str) -> Optional[Branch]:
        if "://" in repo:
            match = Repository.url == repo
        else:
            match = Repository.name == repo
        res = await session.execute(
            select(Branch, Repository.url)
            .join(Repository, Branch.repository_id == Repository.id)
            .where(Branch.name == branch_name, match)
        )
        rows = res.all()
        if len(rows) > 1:
            urls = sorted(url for _, url in rows)
            raise AmbiguousRepositoryError(f"{repo!r} names several repositories: {', '.join(urls)}", ref=repo)
        return rows[0][0] if rows else None

    async def branch_history(self, session: AsyncSession, repo: str, branch_name: str, user_id: str = "") -> Optional[BranchOut]:
        branch = await self._find_branch(session, repo, branch_name)
        if branch is None:
            return None
        res = await session.execute(
            select(Commit, Developer.full_name)
            .join(Developer, Commit.author_id == Developer.id)
            .where(Commit.branch_id == branch.id)
            .order_by(Commit.timestamp.desc())
            .execution_options(populate_existing=True)
        )
        commits = [_commit_out(c, author) for c, author in res.all()]
        return BranchOut(repo=repo, branch_name=branch.name, last_commit=branch.last_commit_sha, commits=commits)


class DenormalizedHistoryStore(HistoryStoreAdapter):
    shape: StoreShape = "denormalized"

    async def _upsert(self, session: AsyncSession, metrics: CommitMetrics, branch: BranchContext) -> None:
        doc: Dict[str, Any] = {
            "id": metrics.commit_id,
            "author": metrics.author,
            "message": metrics.message,
            "url": metrics.commit_url,
            "timestamp": metrics.timestamp,
            **metrics.metrics_fields(),
        }
        stmt = _insert_for_dialect(session, CommitDocument).values(**doc)
        stmt = stmt.on_conflict_do_update(
            index_elements=[CommitDocument.id],
            set_={key: getattr(stmt.excluded, key) for key in doc if key != "id"},
        )
        await session.execute(stmt)

        key = {"user_id": branch.user_id, "repo_name": metrics.repo_name, "branch_name": branch.branch_name}
        stmt = _insert_for_dialect(session, BranchDocument).values(commit_ids=[], **key)
        await session.execute(stmt.on_conflict_do_nothing(index_elements=list(key)))

        res = await session.execute(_branch_document_select(key))
        branch_doc = res.scalar_one()
        if metrics.commit_id not in branch_doc.commit_ids:
            # reassign so the JSON column is flagged dirty
            branch_doc.commit_ids = [*branch_doc.commit_ids, metrics.commit_id]
        branch_doc.last_commit = metrics.commit_id
        branch_doc.updated_at = dt.datetime.now(dt.timezone.utc)

    async def branch_history(self, session: AsyncSession, repo: str, branch_name: str, user_id: str = "") -> Optional[BranchOut]:
        res = await session.execute(
            select(BranchDocument).filter_by(user_id=user_id, repo_name=repo, branch_name=branch_name).execution_options(
                populate_existing=True
            )
        )
        branch_doc = res.scalar_one_or_none()
        if branch_doc is None:
            return None
        commits: List[CommitOut] = []
        if branch_doc.commit_ids:
            res = await session.execute(
                select(CommitDocument)
                .where(CommitDocument.id.in_(branch_doc.commit_ids))
                .order_by(CommitDocument.timestamp.desc())
                .execution_options(populate_existing=True)
            )
            commits = [_commit_out(c, c.author, sha=c.id) for c in res.scalars().all()]
        return BranchOut(repo=repo, branch_name=branch_name, last_commit=branch_doc.last_commit, commits=commits)


def _commit_out(row: Any, author: Optional[str], sha: Optional[str] = None) -> CommitOut:
    return CommitOut(
        sha=sha or row.sha,
        author=author,
        message=row.message,
        url=row.url,
        timestamp=row.timestamp,
        stats=row.stats,
        coverage=row.coverage,
        test_count=row.test_count,
        failed_tests=row.failed_tests,
        conclusion=row.conclusion,
    )


_ADAPTERS = {
    "normalized": NormalizedHistoryStore,
    "denormalized": DenormalizedHistoryStore,
}


def get_adapter(shape: StoreShape) -> HistoryStoreAdapter:
    try:
        return _ADAPTERS[shape]()
    except KeyError:
        raise ValueError(f"unknown store shape {shape!r}; expected one of {sorted(_ADAPTERS)}") from None
