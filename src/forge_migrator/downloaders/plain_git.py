"""Fallback downloader for remotes no platform factory recognizes."""

from __future__ import annotations

from typing import TYPE_CHECKING

from ..exceptions import NotSupportedError
from ..models import Comment, Issue, Label, Milestone, PullRequest, Release, Repository
from ..utils import sanitize_url

if TYPE_CHECKING:
    from ..options import MigrateOptions


class PlainGitDownloader:
    """Only knows what the migration request says; everything else is unsupported.

    Used when the remote is a bare git server: the git data itself is
    transferred elsewhere, and no metadata facet is migrated.
    """

    def __init__(self, opts: MigrateOptions, owner: str, name: str) -> None:
        self._opts: MigrateOptions = opts
        self.repo_owner: str = owner
        self.repo_name: str = name

    def get_repo_info(self) -> Repository:
        return Repository(
            owner=self.repo_owner,
            name=self.repo_name,
            is_private=self._opts.private,
            description=self._opts.description,
            clone_url=self._opts.clone_addr,
            original_url=sanitize_url(self._opts.clone_addr),
        )

    def get_topics(self) -> list[str]:
        return []

    def get_milestones(self) -> list[Milestone]:
        raise NotSupportedError("milestones")

    def get_labels(self) -> list[Label]:
        raise NotSupportedError("labels")

    def get_releases(self) -> list[Release]:
        raise NotSupportedError("releases")

    def get_issues(self, page: int, per_page: int) -> tuple[list[Issue], bool]:  # noqa: ARG002
        raise NotSupportedError("issues")

    def get_comments(self, issue_number: int) -> list[Comment]:  # noqa: ARG002
        raise NotSupportedError("comments")

    def get_pull_requests(self, page: int, per_page: int) -> list[PullRequest]:  # noqa: ARG002
        raise NotSupportedError("pull requests")
