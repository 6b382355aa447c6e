"""Protocols defining the contracts around a repository migration.

The migration architecture separates concerns into these components:

1. Downloader: Fetches canonical entities from one remote platform (Gogs, GitHub, GitLab, ...)
2. DownloaderFactory: Decides whether it handles a remote address and builds the Downloader
3. Uploader: Persists canonical entities locally (external collaborator)
4. TaskStore / Notifier: Persist task state and announce finished migrations (external collaborators)

This separation allows:
- Adding new platforms without touching the driver or the task runner
- Testing the runner with a registry containing only fake downloaders
- Clear boundaries for platform-specific logic (auth, pagination, field names)
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Protocol

if TYPE_CHECKING:
    from .cancellation import CancelToken
    from .config import MigrationSettings
    from .models import Comment, Issue, Label, Milestone, PullRequest, Release, Repository
    from .options import GitServiceType, MigrateOptions
    from .tasks import LocalRepository, MigrationTask, User


class Downloader(Protocol):
    """Protocol for fetching a repository's history from a remote platform.

    Every method is idempotent and safe to call again after a failure. A
    method either returns data or raises:

    - NotSupportedError: the platform cannot provide this facet (not fatal)
    - AuthenticationError: credentials were rejected (fatal)
    - NotFoundError: the entity does not exist on the remote
    - TransportError: a transient failure; the caller may retry

    Implementations never retry by themselves; see retry.RetryDownloader.
    """

    def get_repo_info(self) -> Repository:
        """Return the repository description. Nothing else is fetched if this fails."""
        ...

    def get_topics(self) -> list[str]:
        """Return repository topics, or [] on platforms without topics."""
        ...

    def get_milestones(self) -> list[Milestone]: ...

    def get_labels(self) -> list[Label]: ...

    def get_releases(self) -> list[Release]:
        """Return all releases. May raise NotSupportedError."""
        ...

    def get_issues(self, page: int, per_page: int) -> tuple[list[Issue], bool]:
        """Return one page of issues (1-based) and whether pagination is done.

        The done flag is True when the platform returned an empty page.
        per_page is advisory: platforms with a fixed page size ignore it.
        Pull requests are never returned here.
        """
        ...

    def get_comments(self, issue_number: int) -> list[Comment]:
        """Return all comments of one issue in chronological order."""
        ...

    def get_pull_requests(self, page: int, per_page: int) -> list[PullRequest]:
        """Return one page of pull requests (1-based). May raise NotSupportedError."""
        ...


class DownloaderFactory(Protocol):
    """Protocol for building a Downloader for a migration request."""

    @property
    def git_service_type(self) -> GitServiceType:
        """The platform this factory handles."""
        ...

    def match(self, opts: MigrateOptions) -> bool:
        """Return True if this factory handles the request. Must not do network I/O."""
        ...

    def new(self, opts: MigrateOptions, settings: MigrationSettings, cancel: CancelToken) -> Downloader:
        """Build a Downloader bound to the request's owner, name and credentials.

        Raises:
            InvalidCloneAddressError: If the clone address cannot be parsed
        """
        ...


class Uploader(Protocol):
    """Protocol for persisting canonical entities (external collaborator).

    The driver calls methods in this order, once per batch:
    1. create_repo()
    2. create_topics()
    3. create_milestones()
    4. create_labels()
    5. create_releases()
    6. create_issues() followed by create_comments() for each issue of the page
    7. create_pull_requests()
    8. finish() on success, rollback() on failure

    Every call must be idempotent: the same remote entity maps to the same local record.
    """

    def create_repo(self, repo: Repository, opts: MigrateOptions) -> None:
        """Create (or fill) the local repository.

        Raises:
            LocalPolicyError: If the local side rejects the repository
        """
        ...

    def create_topics(self, *topics: str) -> None: ...

    def create_milestones(self, *milestones: Milestone) -> None: ...

    def create_labels(self, *labels: Label) -> None: ...

    def create_releases(self, *releases: Release) -> None: ...

    def create_issues(self, *issues: Issue) -> None: ...

    def create_comments(self, issue_number: int, *comments: Comment) -> None: ...

    def create_pull_requests(self, *pull_requests: PullRequest) -> None: ...

    def finish(self) -> LocalRepository:
        """Mark the import complete and return the local repository."""
        ...

    def rollback(self) -> None:
        """Discard whatever was persisted by this uploader."""
        ...


class TaskStore(Protocol):
    """Protocol for loading and persisting migration task records (external collaborator)."""

    def get_repository(self, repo_id: int) -> LocalRepository | None: ...

    def get_user(self, user_id: int) -> User: ...

    def update_task(self, task: MigrationTask, *fields: str) -> None:
        """Persist the named task fields in one atomic update."""
        ...

    def delete_repository(self, doer: User | None, owner_id: int, repo_id: int) -> None: ...


class Notifier(Protocol):
    """Protocol for announcing finished migrations (external collaborator)."""

    def notify_migrate_repository(self, doer: User, owner: User, repo: LocalRepository) -> None: ...
