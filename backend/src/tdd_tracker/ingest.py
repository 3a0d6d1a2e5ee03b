from __future__ import annotations

import logging
from typing import Optional

from .db import Store
from .metrics import MetricsAssembler
from .resolver import HEAD_MARKER, resolve_reference
from .schemas import BranchContext, CommitMetrics
from .store import HistoryStoreAdapter

log = logging.getLogger(__name__)


def branch_context(assembler: MetricsAssembler, branch: Optional[str], default_branch: str, user_id: str = "") -> BranchContext:
    name = branch or assembler.git.current_branch() or default_branch
    return BranchContext(branch_name=name, user_id=user_id)


async def ingest_commit(
    store: Store,
    adapter: HistoryStoreAdapter,
    assembler: MetricsAssembler,
    ref: str = HEAD_MARKER,
    branch: Optional[str] = None,
    default_branch: str = "main",
    user_id: str = "",
) -> CommitMetrics:
    """Resolve ``ref``, assemble its metrics and upsert them into ``store``.

    Safe to repeat for the same commit: the adapters converge to the same
    stored state.
    """
    sha = resolve_reference(assembler.git, ref)
    metrics = assembler.assemble(sha)
    ctx = branch_context(assembler, branch, default_branch, user_id)
    if assembler.degraded:
        log.info("Commit %s assembled with %d degraded fact(s)", sha, len(assembler.degraded))

    async with store.session() as session:
        await adapter.upsert(session, metrics, ctx)
    return metrics
