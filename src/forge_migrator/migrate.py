"""Migration driver pushing every facet from a Downloader into an Uploader.

Migration Flow
--------------
The facets are fetched sequentially, in a fixed order. Later facets depend
on nothing from earlier ones except that a failure stops the run, and one
request at a time keeps us within the remote service's rate limits.

Phase 1: Repository
    - get_repo_info() -> Uploader.create_repo()
    - Fatal on failure: nothing else is fetched without a repository

Phase 2: Repository metadata
    - topics, milestones, labels, releases (each optional per MigrateOptions)

Phase 3: Issues and Comments
    For each page of issues (1, 2, ... until the downloader reports done):
        a. Uploader.create_issues() with the whole page
        b. For each issue of the page: get_comments() -> Uploader.create_comments()
    Comments are only fetched once their issue was accepted, so the issue
    they reference always exists on the local side.

Phase 4: Pull requests
    - Pages until an empty page is returned

Unsupported facets
------------------
A NotSupportedError from any facet is not an error: the facet is recorded
in MigrationStats.not_migrated and the run continues. Comments of an issue
deleted while migrating (NotFoundError) are dropped.

Error Handling
--------------
Every call goes through RetryDownloader. Anything still failing aborts the
run; the uploader is rolled back and the error propagates to the caller.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, TypeVar

from .exceptions import NotFoundError, NotSupportedError
from .retry import RetryDownloader

if TYPE_CHECKING:
    from collections.abc import Callable

    from .cancellation import CancelToken
    from .config import MigrationSettings
    from .models import Issue
    from .options import MigrateOptions
    from .protocols import Downloader, Uploader
    from .registry import DownloaderRegistry
    from .tasks import LocalRepository

logger: logging.Logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass
class MigrationStats:
    """Statistics collected during migration."""

    topics: int = 0
    milestones: int = 0
    labels: int = 0
    releases: int = 0
    issues: int = 0
    comments: int = 0
    pull_requests: int = 0
    orphaned_comment_issues: list[int] = field(default_factory=list)
    not_migrated: list[str] = field(default_factory=list)  # facets the platform cannot provide


@dataclass
class MigrationResult:
    """Result of a migration run."""

    repository: LocalRepository
    stats: MigrationStats


def migrate_repository(
    registry: DownloaderRegistry,
    uploader: Uploader,
    opts: MigrateOptions,
    *,
    settings: MigrationSettings,
    cancel: CancelToken,
) -> MigrationResult:
    """Migrate one remote repository through `uploader`.

    Raises:
        InvalidCloneAddressError: If no downloader can be built for the clone address
        MigrationError: If a facet could not be migrated (after retries)
    """
    downloader = RetryDownloader(registry.new_downloader(opts, settings, cancel), cancel, settings.retry_delays)
    driver = _MigrationDriver(downloader, uploader, opts, settings, cancel)

    try:
        stats = driver.run()
        repository = uploader.finish()
    except Exception:
        try:
            uploader.rollback()
        except Exception as rollback_error:  # noqa: BLE001
            logger.error(f"Rollback failed: {rollback_error}")
        raise

    logger.info(
        f"Migrated {stats.milestones} milestones, {stats.labels} labels, {stats.releases} releases, "
        f"{stats.issues} issues, {stats.comments} comments and {stats.pull_requests} pull requests"
    )
    if stats.not_migrated:
        logger.info(f"Not supported by the remote: {', '.join(stats.not_migrated)}")
    return MigrationResult(repository=repository, stats=stats)


class _MigrationDriver:
    """Runs the phases of one migration and collects statistics."""

    def __init__(
        self,
        downloader: Downloader,
        uploader: Uploader,
        opts: MigrateOptions,
        settings: MigrationSettings,
        cancel: CancelToken,
    ) -> None:
        self._downloader: Downloader = downloader
        self._uploader: Uploader = uploader
        self._opts: MigrateOptions = opts
        self._settings: MigrationSettings = settings
        self._cancel: CancelToken = cancel
        self.stats: MigrationStats = MigrationStats()

    def run(self) -> MigrationStats:
        self._cancel.raise_if_cancelled()
        logger.info("Migrating repository")
        repo = self._downloader.get_repo_info()
        self._uploader.create_repo(repo, self._opts)

        self._migrate_topics()
        if self._opts.milestones:
            self._migrate_milestones()
        if self._opts.labels:
            self._migrate_labels()
        if self._opts.releases:
            self._migrate_releases()
        if self._opts.issues:
            self._migrate_issues()
        if self._opts.pull_requests:
            self._migrate_pull_requests()
        return self.stats

    def _fetch(self, facet: str, fn: Callable[[], T]) -> T | None:
        """Call `fn`, returning None (and recording the facet) if it is unsupported."""
        self._cancel.raise_if_cancelled()
        try:
            return fn()
        except NotSupportedError:
            logger.info(f"Remote does not support {facet}, skipping")
            if facet not in self.stats.not_migrated:
                self.stats.not_migrated.append(facet)
            return None

    def _migrate_topics(self) -> None:
        topics = self._fetch("topics", self._downloader.get_topics)
        if topics:
            self._uploader.create_topics(*topics)
            self.stats.topics = len(topics)

    def _migrate_milestones(self) -> None:
        logger.info("Migrating milestones")
        milestones = self._fetch("milestones", self._downloader.get_milestones)
        if milestones:
            self._uploader.create_milestones(*milestones)
            self.stats.milestones = len(milestones)

    def _migrate_labels(self) -> None:
        logger.info("Migrating labels")
        labels = self._fetch("labels", self._downloader.get_labels)
        if labels:
            self._uploader.create_labels(*labels)
            self.stats.labels = len(labels)

    def _migrate_releases(self) -> None:
        logger.info("Migrating releases")
        releases = self._fetch("releases", self._downloader.get_releases)
        if releases:
            self._uploader.create_releases(*releases)
            self.stats.releases = len(releases)

    def _migrate_issues(self) -> None:
        logger.info("Migrating issues")
        seen: set[int] = set()
        migrate_comments = self._opts.comments
        page = 1
        while True:
            result = self._fetch("issues", lambda: self._downloader.get_issues(page, self._settings.issue_batch_size))
            if result is None:
                return
            issues, is_done = result

            # A retried page may overlap with one already migrated
            new_issues = [issue for issue in issues if issue.number not in seen]
            if issues and not new_issues:
                logger.warning(f"Issues page {page} only repeats already migrated issues, stopping")
                return

            if new_issues:
                self._uploader.create_issues(*new_issues)
                self.stats.issues += len(new_issues)
                seen.update(issue.number for issue in new_issues)
                logger.debug(f"Migrated issues page {page}: {len(new_issues)} issues")

            if migrate_comments:
                migrate_comments = self._migrate_comments(new_issues)

            if is_done:
                return
            page += 1

    def _migrate_comments(self, issues: list[Issue]) -> bool:
        """Migrate comments of a page of issues. Returns False if comments are unsupported."""
        for issue in issues:
            try:
                comments = self._fetch("comments", lambda number=issue.number: self._downloader.get_comments(number))
            except NotFoundError:
                # The issue was deleted after its page was fetched
                logger.debug(f"Issue #{issue.number} disappeared, dropping its comments")
                self.stats.orphaned_comment_issues.append(issue.number)
                continue
            if comments is None:
                return False
            if comments:
                self._uploader.create_comments(issue.number, *comments)
                self.stats.comments += len(comments)
        return True

    def _migrate_pull_requests(self) -> None:
        logger.info("Migrating pull requests")
        seen: set[int] = set()
        page = 1
        while True:
            pull_requests = self._fetch(
                "pull requests",
                lambda: self._downloader.get_pull_requests(page, self._settings.pull_request_batch_size),
            )
            if not pull_requests:
                return

            new_pull_requests = [pr for pr in pull_requests if pr.number not in seen]
            if not new_pull_requests:
                logger.warning(f"Pull requests page {page} only repeats already migrated pull requests, stopping")
                return

            self._uploader.create_pull_requests(*new_pull_requests)
            self.stats.pull_requests += len(new_pull_requests)
            seen.update(pr.number for pr in new_pull_requests)
            page += 1
