"""File based persistence used by the command line tool.

DumpUploader writes every canonical entity as JSON below a directory per
repository; LocalTaskStore keeps task, user and repository records in
memory. Together they let a migration run without a database.
"""

from __future__ import annotations

import datetime as dt
import fnmatch
import json
import logging
import shutil
from dataclasses import asdict, replace
from pathlib import Path
from typing import TYPE_CHECKING, Any, Final

from .exceptions import (
    MigrationError,
    NamePatternNotAllowedError,
    NameReservedError,
    ReachLimitOfRepoError,
    RepoAlreadyExistError,
)
from .tasks import LocalRepository, RepositoryStatus, User
from .utils import sanitize_url

if TYPE_CHECKING:
    from .models import Comment, Issue, Label, Milestone, PullRequest, Release, Repository
    from .options import MigrateOptions
    from .tasks import MigrationTask

logger: logging.Logger = logging.getLogger(__name__)

RESERVED_REPO_NAMES: Final[frozenset[str]] = frozenset({".", "..", "-"})
RESERVED_REPO_PATTERNS: Final[tuple[str, ...]] = ("*.git", "*.wiki", "*.rss", "*.atom")


def validate_repo_name(name: str) -> None:
    """Reject reserved names and disallowed name patterns.

    Raises:
        NameReservedError: If the name is reserved
        NamePatternNotAllowedError: If the name matches a reserved pattern
    """
    if not name or name.lower() in RESERVED_REPO_NAMES:
        raise NameReservedError(name)
    for pattern in RESERVED_REPO_PATTERNS:
        if fnmatch.fnmatch(name.lower(), pattern):
            raise NamePatternNotAllowedError(pattern)


def _json_default(value: Any) -> Any:  # noqa: ANN401
    if isinstance(value, dt.datetime):
        return value.isoformat()
    msg = f"Object of type {type(value).__name__} is not JSON serializable"
    raise TypeError(msg)


class LocalTaskStore:
    """In-memory TaskStore for single-process runs."""

    def __init__(self) -> None:
        self.users: dict[int, User] = {}
        self.repositories: dict[int, LocalRepository] = {}
        self.repository_dirs: dict[int, Path] = {}
        self.task_updates: list[tuple[int, tuple[str, ...]]] = []

    def add_user(self, user: User) -> None:
        self.users[user.id] = user

    def add_repository(self, repo: LocalRepository) -> None:
        self.repositories[repo.id] = repo

    def get_repository(self, repo_id: int) -> LocalRepository | None:
        return self.repositories.get(repo_id)

    def get_user(self, user_id: int) -> User:
        try:
            return self.users[user_id]
        except KeyError:
            msg = f"User {user_id} does not exist"
            raise MigrationError(msg) from None

    def update_task(self, task: MigrationTask, *fields: str) -> None:
        self.task_updates.append((task.id, fields))
        logger.debug(f"Task {task.id} updated: {', '.join(f'{name}={getattr(task, name)}' for name in fields)}")

    def delete_repository(self, doer: User | None, owner_id: int, repo_id: int) -> None:
        repo = self.repositories.pop(repo_id, None)
        directory = self.repository_dirs.pop(repo_id, None)
        if directory is not None and directory.exists():
            shutil.rmtree(directory)
        doer_name = doer.name if doer is not None else "system"
        logger.info(f"Deleted repository {repo_id} of owner {owner_id} (by {doer_name}): {repo.name if repo else '<unknown>'}")


class DumpUploader:
    """Uploader writing one JSON file per facet into `base_dir/<owner>/<repo>/`.

    Entities are keyed by their remote identity, so a retried batch
    overwrites instead of duplicating.
    """

    def __init__(self, store: LocalTaskStore, task: MigrationTask, base_dir: Path) -> None:
        self._store: LocalTaskStore = store
        self._task: MigrationTask = task
        self._base_dir: Path = base_dir
        self._dir: Path | None = None
        self._created_dir: bool = False
        self._issues: dict[int, dict[str, Any]] = {}
        self._comments: dict[int, list[dict[str, Any]]] = {}
        self._pull_requests: dict[int, dict[str, Any]] = {}

    @property
    def directory(self) -> Path:
        if self._dir is None:
            msg = "Repository not created yet. Call create_repo() first."
            raise MigrationError(msg)
        return self._dir

    def create_repo(self, repo: Repository, opts: MigrateOptions) -> None:
        owner = self._store.get_user(self._task.owner_id)
        name = opts.repo_name or repo.name
        validate_repo_name(name)

        owned = [r for r in self._store.repositories.values() if r.owner_id == owner.id and r.id != self._task.repo_id]
        if owner.max_repo_creation >= 0 and len(owned) >= owner.max_repo_creation:
            raise ReachLimitOfRepoError(owner.max_repo_creation)

        directory = self._base_dir / owner.name / name
        if directory.exists() and any(directory.iterdir()):
            raise RepoAlreadyExistError(owner.name, name)

        directory.mkdir(parents=True, exist_ok=True)
        self._dir = directory
        self._created_dir = True
        self._store.repository_dirs[self._task.repo_id] = directory

        local_repo = self._store.get_repository(self._task.repo_id)
        if local_repo is not None:
            local_repo.name = name

        self._write("repo.json", {**asdict(repo), "clone_url": sanitize_url(repo.clone_url)})
        logger.info(f"Created local repository {owner.name}/{name} in {directory}")

    def create_topics(self, *topics: str) -> None:
        self._write("topics.json", list(topics))

    def create_milestones(self, *milestones: Milestone) -> None:
        self._write("milestones.json", [asdict(m) for m in milestones])

    def create_labels(self, *labels: Label) -> None:
        self._write("labels.json", [asdict(label) for label in labels])

    def create_releases(self, *releases: Release) -> None:
        self._write("releases.json", [asdict(release) for release in releases])

    def create_issues(self, *issues: Issue) -> None:
        for issue in issues:
            self._issues[issue.number] = asdict(issue)
        self._write("issues.json", [self._issues[number] for number in sorted(self._issues)])

    def create_comments(self, issue_number: int, *comments: Comment) -> None:
        if issue_number not in self._issues:
            msg = f"Comments for unknown issue #{issue_number}"
            raise MigrationError(msg)
        self._comments[issue_number] = [asdict(comment) for comment in comments]
        self._write(f"comments/{issue_number}.json", self._comments[issue_number])

    def create_pull_requests(self, *pull_requests: PullRequest) -> None:
        for pr in pull_requests:
            self._pull_requests[pr.number] = asdict(pr)
        self._write("pull_requests.json", [self._pull_requests[number] for number in sorted(self._pull_requests)])

    def finish(self) -> LocalRepository:
        local_repo = self._store.get_repository(self._task.repo_id)
        if local_repo is None:
            msg = f"Repository {self._task.repo_id} disappeared during migration"
            raise MigrationError(msg)
        local_repo.status = RepositoryStatus.READY
        return replace(local_repo)

    def rollback(self) -> None:
        if self._created_dir and self._dir is not None and self._dir.exists():
            shutil.rmtree(self._dir)
            logger.info(f"Removed partially migrated repository {self._dir}")
        self._store.repository_dirs.pop(self._task.repo_id, None)
        self._dir = None
        self._created_dir = False

    def _write(self, relative_path: str, payload: Any) -> None:  # noqa: ANN401
        path = self.directory / relative_path
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(json.dumps(payload, indent=2, default=_json_default), encoding="utf-8")
