from __future__ import annotations

import datetime as dt
import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator

from sqlalchemy import JSON, DateTime, Float, ForeignKey, Integer, String, Text, UniqueConstraint
from sqlalchemy.ext.asyncio import AsyncAttrs, AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship

log = logging.getLogger(__name__)


def _now() -> dt.datetime:
    return dt.datetime.now(dt.timezone.utc)


class Base(AsyncAttrs, DeclarativeBase):
    pass


# Normalized shape: developers, repositories, branches and commits linked by id.


class Developer(Base):
    __tablename__ = "developers"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    full_name: Mapped[str] = mapped_column(String(255), unique=True, index=True)


class Repository(Base):
    __tablename__ = "repositories"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(String(255))
    url: Mapped[str] = mapped_column(String(512), unique=True, index=True)

    branches: Mapped[list["Branch"]] = relationship(back_populates="repo", cascade="all, delete-orphan")


class Branch(Base):
    __tablename__ = "branches"
    __table_args__ = (
        UniqueConstraint("repository_id", "name", name="uq_branches_repo_name"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    repository_id: Mapped[int] = mapped_column(ForeignKey("repositories.id", ondelete="CASCADE"), index=True)
    name: Mapped[str] = mapped_column(String(255))
    last_commit_sha: Mapped[str] = mapped_column(String(64))
    updated_at: Mapped[dt.datetime] = mapped_column(DateTime(timezone=True), default=_now, onupdate=_now)

    repo: Mapped[Repository] = relationship(back_populates="branches")


class Commit(Base):
    __tablename__ = "commits"
    __table_args__ = (
        UniqueConstraint("branch_id", "sha", name="uq_commits_branch_sha"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    sha: Mapped[str] = mapped_column(String(64), index=True)
    branch_id: Mapped[int] = mapped_column(ForeignKey("branches.id", ondelete="CASCADE"), index=True)
    author_id: Mapped[int] = mapped_column(ForeignKey("developers.id"), index=True)
    message: Mapped[str] = mapped_column(Text)
    url: Mapped[str] = mapped_column(String(512), default="")
    timestamp: Mapped[dt.datetime] = mapped_column(DateTime(timezone=True), index=True)
    stats: Mapped[dict] = mapped_column(JSON)
    coverage: Mapped[float] = mapped_column(Float, default=0.0)
    test_count: Mapped[int] = mapped_column(Integer, default=0)
    failed_tests: Mapped[int] = mapped_column(Integer, default=0)
    conclusion: Mapped[str] = mapped_column(String(16))

    author: Mapped[Developer] = relationship()


# Denormalized shape: a branch document embedding its commit ids, plus
# commit documents keyed by sha.


class BranchDocument(Base):
    __tablename__ = "branch_documents"
    __table_args__ = (
        UniqueConstraint("user_id", "repo_name", "branch_name", name="uq_branch_documents_key"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    user_id: Mapped[str] = mapped_column(String(255), default="")
    repo_name: Mapped[str] = mapped_column(String(255))
    branch_name: Mapped[str] = mapped_column(String(255))
    commit_ids: Mapped[list] = mapped_column(JSON, default=list)
    last_commit: Mapped[str | None] = mapped_column(String(64), nullable=True)
    updated_at: Mapped[dt.datetime] = mapped_column(DateTime(timezone=True), default=_now)


class CommitDocument(Base):
    __tablename__ = "commit_documents"

    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    author: Mapped[str] = mapped_column(String(255))
    message: Mapped[str] = mapped_column(Text)
    url: Mapped[str] = mapped_column(String(512), default="")
    timestamp: Mapped[dt.datetime] = mapped_column(DateTime(timezone=True))
    stats: Mapped[dict] = mapped_column(JSON)
    coverage: Mapped[float] = mapped_column(Float, default=0.0)
    test_count: Mapped[int] = mapped_column(Integer, default=0)
    failed_tests: Mapped[int] = mapped_column(Integer, default=0)
    conclusion: Mapped[str] = mapped_column(String(16))


class Store:
    """An open connection to the history store, passed explicitly to callers."""

    def __init__(self, engine: AsyncEngine) -> None:
        self.engine = engine
        self.sessions = async_sessionmaker(engine, expire_on_commit=False, class_=AsyncSession)

    async def init_db(self) -> None:
        async with self.engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)

    @asynccontextmanager
    async def session(self) -> AsyncIterator[AsyncSession]:
        async with self.sessions() as session:
            yield session


@asynccontextmanager
async def open_store(database_url: str, echo: bool = False) -> AsyncIterator[Store]:
    """Connect, create missing tables, and always release the engine on exit."""
    engine = create_async_engine(database_url, echo=echo, future=True)
    store = Store(engine)
    try:
        await store.init_db()
        yield store
    finally:
        await engine.dispose()
        log.debug("Store connection released")
