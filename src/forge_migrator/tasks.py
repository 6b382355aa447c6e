"""Migration task records and the task runner state machine.

A task moves Queued -> Running -> Finished or Failed. The runner is the only
entry point the task scheduler calls; it never raises, the outcome is
recorded on the task itself.
"""

from __future__ import annotations

import datetime as dt
import logging
import traceback
from dataclasses import dataclass, replace
from enum import Enum
from typing import TYPE_CHECKING

from .cancellation import CancelToken
from .config import MigrationSettings
from .exceptions import (
    AuthenticationError,
    MigrationCancelledError,
    MigrationError,
    NamePatternNotAllowedError,
    NameReservedError,
    ReachLimitOfRepoError,
    RepoAlreadyExistError,
)
from .migrate import migrate_repository
from .utils import sanitize_credentials

if TYPE_CHECKING:
    from collections.abc import Callable

    from .options import MigrateOptions
    from .protocols import Notifier, TaskStore, Uploader
    from .registry import DownloaderRegistry

logger: logging.Logger = logging.getLogger(__name__)


class TaskStatus(Enum):
    QUEUED = "queued"
    RUNNING = "running"
    FINISHED = "finished"
    FAILED = "failed"


class RepositoryStatus(Enum):
    BEING_MIGRATED = "being_migrated"
    READY = "ready"


@dataclass
class User:
    """A local user or organization."""

    id: int
    name: str
    max_repo_creation: int = -1  # -1 means no limit


@dataclass
class LocalRepository:
    """The local repository a migration fills."""

    id: int
    owner_id: int
    name: str
    status: RepositoryStatus = RepositoryStatus.BEING_MIGRATED


@dataclass
class MigrationTask:
    """The persisted record of one migration attempt.

    repo, doer and owner are loaded by the runner; they are not persisted.
    """

    id: int
    doer_id: int
    owner_id: int
    repo_id: int
    options: MigrateOptions
    status: TaskStatus = TaskStatus.QUEUED
    start_time: dt.datetime | None = None
    end_time: dt.datetime | None = None
    errors: str = ""

    repo: LocalRepository | None = None
    doer: User | None = None
    owner: User | None = None


def handle_create_error(owner: User | None, err: Exception) -> str | None:
    """Return the user-facing message for a local policy error, or None."""
    if isinstance(err, ReachLimitOfRepoError):
        limit = owner.max_repo_creation if owner is not None and owner.max_repo_creation >= 0 else err.limit
        return f"You have already reached your limit of {limit} repositories"
    if isinstance(err, RepoAlreadyExistError):
        return "The repository name is already used"
    if isinstance(err, NameReservedError):
        return f"The repository name '{err.name}' is reserved"
    if isinstance(err, NamePatternNotAllowedError):
        return f"The pattern '{err.pattern}' is not allowed in a repository name"
    return None


def classify_error(err: Exception, clone_addr: str, owner: User | None = None) -> str:
    """Build the sanitized, user-facing message recorded on a failed task.

    Local policy errors win over everything else: they say the local side
    rejected the repository, not that the remote failed.
    """
    policy_message = handle_create_error(owner, err)
    if policy_message is not None:
        return policy_message

    # The clone address may contain credentials
    message = sanitize_credentials(str(err), clone_addr)
    if isinstance(err, MigrationCancelledError):
        return f"Migration cancelled: {message}"
    if (
        isinstance(err, AuthenticationError)
        or "Authentication failed" in message
        or "could not read Username" in message
    ):
        if message.startswith("Authentication failed"):
            return message
        return f"Authentication failed: {message}"
    if "fatal:" in message:
        return f"Migration failed: {message}"
    return message


def _now() -> dt.datetime:
    return dt.datetime.now(dt.UTC)


class MigrationTaskRunner:
    """Drives migration tasks from Queued to Finished or Failed.

    Usage:
        runner = MigrationTaskRunner(default_registry(), store, uploader_factory, notifier)
        runner.run_migration(task, cancel)

    One runner may serve many worker threads: it keeps no per-task state,
    every run builds its own downloader and uploader.
    """

    def __init__(
        self,
        registry: DownloaderRegistry,
        store: TaskStore,
        uploader_factory: Callable[[MigrationTask, MigrateOptions], Uploader],
        notifier: Notifier | None = None,
        settings: MigrationSettings | None = None,
    ) -> None:
        self._registry: DownloaderRegistry = registry
        self._store: TaskStore = store
        self._uploader_factory: Callable[[MigrationTask, MigrateOptions], Uploader] = uploader_factory
        self._notifier: Notifier | None = notifier
        self._settings: MigrationSettings = settings if settings is not None else MigrationSettings()

    def run_migration(self, task: MigrationTask, cancel: CancelToken | None = None) -> None:
        """Run one migration task to completion. Never raises."""
        cancel = cancel if cancel is not None else CancelToken()
        try:
            self._run(task, cancel)
            self._finish(task)
        except MigrationError as e:
            message = classify_error(e, task.options.clone_addr, task.owner)
            logger.error(
                f"Migration task[{task.id}] by DoerID[{task.doer_id}] to RepoID[{task.repo_id}] "
                f"for OwnerID[{task.owner_id}] failed: {message}"
            )
            self._fail(task, message)
        except Exception as e:  # noqa: BLE001
            stack = sanitize_credentials(traceback.format_exc(), task.options.clone_addr)
            logger.critical(
                f"PANIC during migration task[{task.id}] by DoerID[{task.doer_id}] to RepoID[{task.repo_id}] "
                f"for OwnerID[{task.owner_id}]: {sanitize_credentials(repr(e), task.options.clone_addr)}\n"
                f"Stacktrace: {stack}"
            )
            message = sanitize_credentials(f"PANIC whilst trying to do migrate task: {e}", task.options.clone_addr)
            self._fail(task, message)

    def _run(self, task: MigrationTask, cancel: CancelToken) -> None:
        task.repo = self._store.get_repository(task.repo_id)
        if task.repo is None:
            msg = f"Repository {task.repo_id} of migration task {task.id} does not exist"
            raise MigrationError(msg)

        task.doer = self._store.get_user(task.doer_id)
        task.owner = self._store.get_user(task.owner_id)

        # A duplicate dispatch of a task whose repository is already complete
        if task.repo.status is RepositoryStatus.READY:
            logger.info(f"Repository {task.repo.name} is already migrated, finishing task {task.id}")
            return

        task.start_time = _now()
        task.status = TaskStatus.RUNNING
        self._store.update_task(task, "start_time", "status")

        opts = replace(task.options, migrate_to_repo_id=task.repo_id)
        uploader = self._uploader_factory(task, opts)
        result = migrate_repository(self._registry, uploader, opts, settings=self._settings, cancel=cancel)

        if result.repository.status is not RepositoryStatus.READY:
            msg = f"Repository {result.repository.name} is not ready after migration"
            raise MigrationError(msg)
        task.repo = result.repository
        logger.debug(f"Repository migrated [{result.repository.id}]: {task.owner.name}/{result.repository.name}")

    def _finish(self, task: MigrationTask) -> None:
        task.end_time = _now()
        task.status = TaskStatus.FINISHED
        self._store.update_task(task, "status", "end_time")
        logger.info(f"Migration task {task.id} finished")

        if self._notifier is None or task.doer is None or task.owner is None or task.repo is None:
            return
        try:
            self._notifier.notify_migrate_repository(task.doer, task.owner, task.repo)
        except Exception as e:  # noqa: BLE001
            logger.error(f"Notification for migration task {task.id} failed: {e}")

    def _fail(self, task: MigrationTask, message: str) -> None:
        task.end_time = _now()
        task.status = TaskStatus.FAILED
        task.errors = message
        task.repo_id = 0
        try:
            self._store.update_task(task, "status", "errors", "repo_id", "end_time")
        except Exception as e:  # noqa: BLE001
            logger.error(f"Updating failed migration task {task.id} failed: {e}")

        if task.repo is not None:
            try:
                self._store.delete_repository(task.doer, task.owner_id, task.repo.id)
            except Exception as e:  # noqa: BLE001
                logger.error(f"Deleting repository {task.repo.id} of failed migration task {task.id} failed: {e}")
