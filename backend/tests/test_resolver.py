import shutil
import subprocess
from pathlib import Path

import pytest

from tdd_tracker.errors import ReferenceResolutionError
from tdd_tracker.resolver import HEAD_MARKER, resolve_reference
from tdd_tracker.vcs import GitRepo, canonical_url, parse_shortstat

from conftest import SHA, FakeGit

need_git = pytest.mark.skipif(shutil.which("git") is None, reason="git not installed")


def _git(repo: Path, *args: str) -> str:
    out = subprocess.run(
        ["git", "-c", "user.name=Ada Lovelace", "-c", "user.email=ada@example.com", *args],
        cwd=repo, capture_output=True, text=True, check=True,
    )
    return out.stdout.strip()


@pytest.fixture
def repo(tmp_path: Path) -> Path:
    _git(tmp_path, "init", "-q", "-b", "main")
    (tmp_path / "a.txt").write_text("one\ntwo\n")
    _git(tmp_path, "add", "a.txt")
    _git(tmp_path, "commit", "-q", "-m", "root")
    (tmp_path / "a.txt").write_text("one\nthree\nfour\n")
    _git(tmp_path, "commit", "-q", "-am", "second")
    return tmp_path


def test_concrete_hash_is_returned_unchanged():
    git = FakeGit(head=None)
    assert resolve_reference(git, SHA) == SHA


def test_head_marker_resolves_through_git():
    assert resolve_reference(FakeGit(), HEAD_MARKER) == SHA


def test_unresolvable_head_raises():
    with pytest.raises(ReferenceResolutionError) as exc:
        resolve_reference(FakeGit(head=None), HEAD_MARKER)
    assert exc.value.ref == HEAD_MARKER


@pytest.mark.parametrize(
    "raw,expected",
    [
        ("git@github.com:ada/engine.git", "https://github.com/ada/engine"),
        ("https://github.com/ada/engine.git", "https://github.com/ada/engine"),
        ("https://gitlab.com/ada/engine", "https://gitlab.com/ada/engine"),
    ],
)
def test_canonical_url(raw, expected):
    assert canonical_url(raw) == expected


def test_parse_shortstat():
    assert parse_shortstat(" 2 files changed, 10 insertions(+), 4 deletions(-)") == (10, 4)
    assert parse_shortstat(" 1 file changed, 1 insertion(+)") == (1, 0)
    assert parse_shortstat("") == (0, 0)


@need_git
def test_resolving_head_twice_is_stable(repo: Path):
    git = GitRepo(repo)
    first = resolve_reference(git, HEAD_MARKER)
    assert len(first) == 40
    assert resolve_reference(git, HEAD_MARKER) == first
    assert resolve_reference(git, first) == first


@need_git
def test_git_repo_facts(repo: Path):
    git = GitRepo(repo)
    head = git.rev_parse("HEAD")
    assert git.message(head) == "second"
    assert git.author(head) == "Ada Lovelace"
    assert git.committed_at(head) is not None
    assert git.current_branch() == "main"
    assert git.diff_counts(f"{head}~1", head) == (2, 1)


@need_git
def test_root_commit_has_no_diff(repo: Path):
    git = GitRepo(repo)
    root = _git(repo, "rev-list", "--max-parents=0", "HEAD")
    assert git.diff_counts(f"{root}~1", root) is None


@need_git
def test_remote_url_missing_then_canonical(repo: Path):
    git = GitRepo(repo)
    assert git.remote_url() is None
    _git(repo, "remote", "add", "origin", "git@github.com:ada/engine.git")
    assert git.remote_url() == "https://github.com/ada/engine"


@need_git
def test_detached_head_has_no_branch(repo: Path):
    _git(repo, "checkout", "-q", "--detach")
    assert GitRepo(repo).current_branch() is None


def test_outside_repository_nothing_resolves(tmp_path: Path):
    git = GitRepo(tmp_path)
    with pytest.raises(ReferenceResolutionError):
        resolve_reference(git, HEAD_MARKER)
