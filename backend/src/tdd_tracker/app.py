from __future__ import annotations

from contextlib import asynccontextmanager
from typing import AsyncIterator

from fastapi import Depends, FastAPI, HTTPException, Query, Request
from sqlalchemy.ext.asyncio import AsyncSession

from .config import get_settings
from .db import open_store
from .errors import AmbiguousRepositoryError
from .schemas import BranchOut
from .store import HistoryStoreAdapter, get_adapter


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    settings = get_settings()
    async with open_store(settings.database_url) as store:
        app.state.store = store
        yield


app = FastAPI(title="TDD Tracker commit history", lifespan=lifespan)


async def get_session(request: Request) -> AsyncIterator[AsyncSession]:
    async with request.app.state.store.session() as session:
        yield session


def get_history_adapter() -> HistoryStoreAdapter:
    return get_adapter(get_settings().store_shape)


@app.get("/health")
async def health() -> dict:
    return {"status": "ok"}


@app.get("/history/{repo}/{branch:path}", response_model=BranchOut)
async def branch_history(
    repo: str,
    branch: str,
    user_id: str = Query(""),
    session: AsyncSession = Depends(get_session),
    adapter: HistoryStoreAdapter = Depends(get_history_adapter),
):
    try:
        out = await adapter.branch_history(session, repo, branch, user_id=user_id)
    except AmbiguousRepositoryError as e:
        raise HTTPException(409, detail=str(e)) from e
    if out is None:
        raise HTTPException(404, detail="branch not found")
    return out
