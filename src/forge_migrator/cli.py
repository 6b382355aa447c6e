"""
Command-line interface: migrate a remote repository into a local JSON dump.
"""

from __future__ import annotations

import argparse
import logging
import signal
import sys
from pathlib import Path
from typing import TYPE_CHECKING

from .cancellation import CancelToken
from .config import MigrationSettings, get_token
from .dump import DumpUploader, LocalTaskStore
from .options import GitServiceType, MigrateOptions
from .registry import default_registry
from .tasks import LocalRepository, MigrationTask, MigrationTaskRunner, TaskStatus, User
from .utils import sanitize_url, setup_logging

if TYPE_CHECKING:
    from collections.abc import Sequence
    from types import FrameType

logger: logging.Logger = logging.getLogger(__name__)

_LOCAL_OWNER_ID = 1
_LOCAL_REPO_ID = 1
_TASK_ID = 1


def parse_arguments(argv: Sequence[str] | None = None) -> argparse.Namespace:
    """Parse command line arguments."""
    parser = argparse.ArgumentParser(description="Download a repository's issues, labels, milestones, releases and pull requests")

    # Positional arguments
    _ = parser.add_argument("clone_addr", help="Clone address of the remote repository (https://host/owner/repo.git)")
    _ = parser.add_argument("output_dir", help="Directory the repository dump is written to")

    # Optional arguments with short forms
    _ = parser.add_argument(
        "--service",
        "-s",
        choices=[service.value for service in GitServiceType],
        default=GitServiceType.PLAIN.value,
        help="Platform hosting the repository (default: detect from the URL)",
    )
    _ = parser.add_argument("--username", "-u", default="", help="Username for basic authentication")
    _ = parser.add_argument("--password", default="", help="Password for basic authentication")
    _ = parser.add_argument("--token", default="", help="Access token (default: FORGE_MIGRATOR_TOKEN)")
    _ = parser.add_argument("--token-pass-path", help="Path of the access token in the pass utility")
    _ = parser.add_argument("--owner", default="local", help="Local owner name (default: local)")
    _ = parser.add_argument("--repo-name", default="", help="Local repository name (default: remote name)")

    for facet in ("issues", "comments", "milestones", "labels", "releases", "pull-requests"):
        _ = parser.add_argument(f"--no-{facet}", action="store_true", help=f"Do not migrate {facet.replace('-', ' ')}")

    _ = parser.add_argument("--verbose", "-v", action="store_true", help="Enable verbose logging")

    return parser.parse_args(argv)


def build_options(args: argparse.Namespace) -> MigrateOptions:
    """Turn parsed arguments into MigrateOptions, resolving the access token."""
    token: str = args.token or get_token(args.token_pass_path) or ""
    return MigrateOptions(
        clone_addr=args.clone_addr,
        git_service_type=GitServiceType.from_name(args.service),
        auth_username=args.username,
        auth_password=args.password,
        auth_token=token,
        repo_name=args.repo_name,
        issues=not args.no_issues,
        comments=not args.no_comments,
        milestones=not args.no_milestones,
        labels=not args.no_labels,
        releases=not args.no_releases,
        pull_requests=not args.no_pull_requests,
    )


def run(args: argparse.Namespace, cancel: CancelToken) -> MigrationTask:
    """Run one migration into args.output_dir and return the finished task."""
    opts = build_options(args)
    settings = MigrationSettings.from_env()

    store = LocalTaskStore()
    owner = User(id=_LOCAL_OWNER_ID, name=args.owner)
    store.add_user(owner)
    store.add_repository(LocalRepository(id=_LOCAL_REPO_ID, owner_id=owner.id, name=opts.repo_name))

    task = MigrationTask(
        id=_TASK_ID,
        doer_id=owner.id,
        owner_id=owner.id,
        repo_id=_LOCAL_REPO_ID,
        options=opts,
    )
    output_dir = Path(args.output_dir)
    runner = MigrationTaskRunner(
        default_registry(),
        store,
        lambda t, _opts: DumpUploader(store, t, output_dir),
        settings=settings,
    )
    runner.run_migration(task, cancel)
    return task


def main(argv: Sequence[str] | None = None) -> None:
    """Main entry point."""
    args = parse_arguments(argv)

    # Setup logging
    verbose: bool = getattr(args, "verbose", False)
    setup_logging(verbose=verbose)

    cancel = CancelToken()

    def _cancel_on_signal(signum: int, _frame: FrameType | None) -> None:
        logger.warning(f"Received signal {signum}, cancelling migration")
        cancel.cancel(f"interrupted by signal {signum}")

    previous_handler = signal.signal(signal.SIGINT, _cancel_on_signal)
    try:
        task = run(args, cancel)
    except Exception:
        logger.exception("Migration failed")
        sys.exit(1)
    finally:
        signal.signal(signal.SIGINT, previous_handler)

    if task.status is TaskStatus.FINISHED:
        print(f"Migrated {sanitize_url(args.clone_addr)} into {args.output_dir}")
        sys.exit(0)

    print(f"Migration failed: {task.errors}", file=sys.stderr)
    sys.exit(1)
