"""Git facts for one working tree, read through the ``git`` CLI.

Every lookup returns ``None`` when git fails (no remote, no parent,
detached HEAD, unknown revision), so callers decide whether that is fatal.
"""

from __future__ import annotations

import datetime as dt
import logging
import re
import subprocess
from pathlib import Path
from typing import List, Optional, Tuple

log = logging.getLogger(__name__)

_SCP_REMOTE = re.compile(r"^git@([^:]+):(.+)$")
_INSERTIONS = re.compile(r"(\d+) insertion")
_DELETIONS = re.compile(r"(\d+) deletion")


def canonical_url(url: str) -> str:
    """Normalise a remote URL: SSH form to HTTPS, no trailing ``.git``."""
    url = url.strip()
    if url.endswith(".git"):
        url = url[: -len(".git")]
    m = _SCP_REMOTE.match(url)
    if m:
        url = f"https://{m.group(1)}/{m.group(2)}"
    return url


def parse_shortstat(out: str) -> Tuple[int, int]:
    adds = _INSERTIONS.search(out)
    dels = _DELETIONS.search(out)
    return (int(adds.group(1)) if adds else 0, int(dels.group(1)) if dels else 0)


class GitRepo:
    def __init__(self, path: str | Path = ".", timeout: int = 30) -> None:
        self.path = Path(path)
        self.timeout = timeout

    def _git(self, args: List[str]) -> Optional[str]:
        try:
            result = subprocess.run(
                ["git"] + args,
                cwd=str(self.path),
                capture_output=True,
                text=True,
                timeout=self.timeout,
                check=False,
            )
        except (subprocess.TimeoutExpired, FileNotFoundError, OSError) as e:
            log.debug("git %s failed: %s", " ".join(args), e)
            return None
        if result.returncode != 0:
            log.debug("git %s exited %s: %s", " ".join(args), result.returncode, result.stderr.strip())
            return None
        return result.stdout.strip()

    def rev_parse(self, ref: str) -> Optional[str]:
        return self._git(["rev-parse", "--verify", f"{ref}^{{commit}}"]) or None

    def current_branch(self) -> Optional[str]:
        name = self._git(["rev-parse", "--abbrev-ref", "HEAD"])
        if not name or name == "HEAD":
            return None
        return name

    def message(self, sha: str) -> Optional[str]:
        return self._git(["log", "-1", "--pretty=%B", sha])

    def author(self, sha: str) -> Optional[str]:
        return self._git(["log", "-1", "--pretty=format:%an", sha])

    def committed_at(self, sha: str) -> Optional[dt.datetime]:
        out = self._git(["log", "-1", "--format=%cI", sha])
        if not out:
            return None
        try:
            return dt.datetime.fromisoformat(out)
        except ValueError:
            return None

    def remote_url(self) -> Optional[str]:
        out = self._git(["config", "--get", "remote.origin.url"])
        return canonical_url(out) if out else None

    def diff_counts(self, base: str, head: str) -> Optional[Tuple[int, int]]:
        out = self._git(["diff", "--shortstat", base, head])
        if out is None:
            return None
        return parse_shortstat(out)
