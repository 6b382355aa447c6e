"""Retry policy applied around every Downloader.

Adapters never retry themselves; wrapping them here keeps the retry budget
identical for every platform.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, TypeVar

from .config import DEFAULT_RETRY_DELAYS
from .exceptions import TransportError

if TYPE_CHECKING:
    from collections.abc import Callable, Sequence

    from .cancellation import CancelToken
    from .models import Comment, Issue, Label, Milestone, PullRequest, Release, Repository
    from .protocols import Downloader

logger: logging.Logger = logging.getLogger(__name__)

T = TypeVar("T")


def with_retry(
    cancel: CancelToken,
    operation_name: str,
    fn: Callable[[], T],
    retry_delays: Sequence[float] = DEFAULT_RETRY_DELAYS,
) -> T:
    """Call `fn`, retrying on TransportError after each delay in `retry_delays`.

    Any other exception (authentication, not found, unsupported, cancelled)
    propagates immediately. The back-off sleeps on the cancel token, so a
    cancellation interrupts it.

    Raises:
        TransportError: If every attempt failed
        MigrationCancelledError: If cancelled while waiting
    """
    for attempt in range(len(retry_delays) + 1):
        cancel.raise_if_cancelled()
        try:
            result = fn()
        except TransportError as e:
            if attempt == len(retry_delays):
                logger.error(f"Failed after {attempt + 1} attempts: {operation_name}: {e}")
                raise

            delay = retry_delays[attempt]
            logger.warning(f"Retry {attempt + 1} after {delay}s: {operation_name}: {e}")
            cancel.sleep(delay)
        else:
            if attempt > 0:
                logger.info(f"Success on retry {attempt}: {operation_name}")
            return result

    msg = "Retry logic error"
    raise AssertionError(msg)


class RetryDownloader:
    """Downloader decorator applying with_retry() to every call."""

    def __init__(self, downloader: Downloader, cancel: CancelToken, retry_delays: Sequence[float] = DEFAULT_RETRY_DELAYS) -> None:
        self.downloader: Downloader = downloader
        self._cancel: CancelToken = cancel
        self._retry_delays: Sequence[float] = retry_delays

    def _retry(self, operation_name: str, fn: Callable[[], T]) -> T:
        return with_retry(self._cancel, operation_name, fn, self._retry_delays)

    def get_repo_info(self) -> Repository:
        return self._retry("get repository info", self.downloader.get_repo_info)

    def get_topics(self) -> list[str]:
        return self._retry("get topics", self.downloader.get_topics)

    def get_milestones(self) -> list[Milestone]:
        return self._retry("get milestones", self.downloader.get_milestones)

    def get_labels(self) -> list[Label]:
        return self._retry("get labels", self.downloader.get_labels)

    def get_releases(self) -> list[Release]:
        return self._retry("get releases", self.downloader.get_releases)

    def get_issues(self, page: int, per_page: int) -> tuple[list[Issue], bool]:
        return self._retry(f"get issues page {page}", lambda: self.downloader.get_issues(page, per_page))

    def get_comments(self, issue_number: int) -> list[Comment]:
        return self._retry(f"get comments of issue #{issue_number}", lambda: self.downloader.get_comments(issue_number))

    def get_pull_requests(self, page: int, per_page: int) -> list[PullRequest]:
        return self._retry(f"get pull requests page {page}", lambda: self.downloader.get_pull_requests(page, per_page))
