"""CLI entry point for tdd_tracker.

Usage:
  python -m tdd_tracker ingest [--ref HEAD] [--branch NAME] [--shape normalized|denormalized]
  python -m tdd_tracker next-test-id [--log PATH]
  python -m tdd_tracker record-commit [--ref HEAD] [--log PATH]
  python -m tdd_tracker record-test-run [--test-id ID] [--log PATH]

``ingest`` exits 0 once the commit is stored and 1 on any failure; the store
connection is released either way.
"""

from __future__ import annotations

import argparse
import asyncio
import logging
import sys

from tdd_tracker.config import Settings, get_settings
from tdd_tracker.db import open_store
from tdd_tracker.errors import TrackerError
from tdd_tracker.ingest import ingest_commit
from tdd_tracker.metrics import MetricsAssembler
from tdd_tracker.resolver import HEAD_MARKER, resolve_reference
from tdd_tracker.sequence import append_commit_marker, append_test_run, next_test_run_id
from tdd_tracker.store import get_adapter
from tdd_tracker.testrunner import TestRunner
from tdd_tracker.vcs import GitRepo

log = logging.getLogger("tdd_tracker")


async def _ingest(settings: Settings, args: argparse.Namespace) -> None:
    git = GitRepo(settings.repo_path, timeout=settings.git_timeout_seconds)
    runner = TestRunner(
        settings.test_argv,
        build_file=settings.build_file,
        cwd=settings.repo_path,
        timeout=settings.test_timeout_seconds,
    )
    adapter = get_adapter(args.shape or settings.store_shape)
    async with open_store(settings.database_url) as store:
        await ingest_commit(
            store,
            adapter,
            MetricsAssembler(git, runner),
            ref=args.ref,
            branch=args.branch,
            default_branch=settings.default_branch,
            user_id=settings.user_id,
        )


def cmd_ingest(settings: Settings, args: argparse.Namespace) -> int:
    try:
        asyncio.run(_ingest(settings, args))
    except TrackerError as e:
        log.error("Ingestion of %s failed: %s", e.ref or args.ref, e)
        return 1
    return 0


def cmd_next_test_id(settings: Settings, args: argparse.Namespace) -> int:
    print(next_test_run_id(args.log or settings.test_log_path))
    return 0


def cmd_record_commit(settings: Settings, args: argparse.Namespace) -> int:
    git = GitRepo(settings.repo_path, timeout=settings.git_timeout_seconds)
    try:
        sha = resolve_reference(git, args.ref)
    except TrackerError as e:
        log.error("Could not record commit %s: %s", args.ref, e)
        return 1
    append_commit_marker(args.log or settings.test_log_path, sha)
    print(sha)
    return 0


def cmd_record_test_run(settings: Settings, args: argparse.Namespace) -> int:
    path = args.log or settings.test_log_path
    test_id = args.test_id or next_test_run_id(path)
    append_test_run(path, test_id)
    print(test_id)
    return 0


_COMMANDS = {
    "ingest": cmd_ingest,
    "next-test-id": cmd_next_test_id,
    "record-commit": cmd_record_commit,
    "record-test-run": cmd_record_test_run,
}


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(prog="tdd_tracker", description="Record per-commit development metrics")
    parser.add_argument("-v", "--verbose", action="store_true", help="Debug logging")
    sub = parser.add_subparsers(dest="command", required=True)

    ingest_parser = sub.add_parser("ingest", help="Assemble and store metrics for one commit")
    ingest_parser.add_argument("--ref", default=HEAD_MARKER, help="Commit hash or HEAD (default)")
    ingest_parser.add_argument("--branch", default=None, help="Branch to record under (default: current)")
    ingest_parser.add_argument("--shape", choices=["normalized", "denormalized"], default=None)

    next_parser = sub.add_parser("next-test-id", help="Print the identity for the next test run")
    next_parser.add_argument("--log", default=None, help="Sequence log path")

    commit_parser = sub.add_parser("record-commit", help="Append a commit marker to the sequence log")
    commit_parser.add_argument("--ref", default=HEAD_MARKER, help="Commit hash or HEAD (default)")
    commit_parser.add_argument("--log", default=None, help="Sequence log path")

    run_parser = sub.add_parser("record-test-run", help="Append a test-run marker to the sequence log")
    run_parser.add_argument("--test-id", default=None, help="Identity to record (default: next-test-id)")
    run_parser.add_argument("--log", default=None, help="Sequence log path")

    args = parser.parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    settings = get_settings()
    return _COMMANDS[args.command](settings, args)


if __name__ == "__main__":
    sys.exit(main())
