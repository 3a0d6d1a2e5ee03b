from __future__ import annotations

import logging
from typing import Optional, Protocol

from .errors import ReferenceResolutionError

log = logging.getLogger(__name__)

HEAD_MARKER = "HEAD"


class RevParser(Protocol):
    def rev_parse(self, ref: str) -> Optional[str]: ...


def is_symbolic(ref: str) -> bool:
    return ref == HEAD_MARKER


def resolve_reference(git: RevParser, ref: str = HEAD_MARKER) -> str:
    """Return the concrete commit hash for ``ref``.

    A concrete hash is returned unchanged; the ``HEAD`` marker must be
    resolved by git or the ingestion attempt stops here.
    """
    if not is_symbolic(ref):
        return ref
    sha = git.rev_parse(ref)
    if not sha:
        raise ReferenceResolutionError(f"could not resolve {ref} to a commit", ref=ref)
    log.debug("Resolved %s to %s", ref, sha)
    return sha
