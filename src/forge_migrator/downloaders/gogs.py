"""Downloader for Gogs instances, using the Gogs REST API (v1) directly."""

from __future__ import annotations

import datetime as dt
import logging
from typing import TYPE_CHECKING, Any
from urllib.parse import quote

from ..cancellation import CancelToken
from ..exceptions import NotSupportedError
from ..models import Comment, Issue, Label, Milestone, PullRequest, Release, Repository
from ..options import GitServiceType
from ..transport import HttpClient, build_auth
from ..utils import normalize_color, parse_clone_address, parse_timestamp, synthesize_email

if TYPE_CHECKING:
    import requests

    from ..config import MigrationSettings
    from ..options import MigrateOptions

logger: logging.Logger = logging.getLogger(__name__)


class GogsDownloaderFactory:
    """Builds GogsDownloader instances.

    Gogs URLs look like any other, so only an explicit hint matches. Gitea
    serves the same /api/v1 endpoints and is read with this downloader too.
    """

    @property
    def git_service_type(self) -> GitServiceType:
        return GitServiceType.GOGS

    def match(self, opts: MigrateOptions) -> bool:
        return opts.git_service_type in (GitServiceType.GOGS, GitServiceType.GITEA)

    def new(self, opts: MigrateOptions, settings: MigrationSettings, cancel: CancelToken) -> GogsDownloader:
        base_url, owner, name = parse_clone_address(opts.clone_addr)
        logger.debug(f"Create gogs downloader: {owner}/{name}")
        return GogsDownloader(
            base_url,
            owner,
            name,
            username=opts.auth_username,
            password=opts.auth_password,
            token=opts.auth_token,
            timeout=settings.request_timeout,
            cancel=cancel,
        )


class GogsDownloader:
    """Fetches repository history from Gogs.

    Gogs has no releases or pull request API, no topics, and does not report
    when an issue was closed. Its issue listing has a fixed page size and
    returns either open or closed issues, so pages walk all open issues first
    and then all closed ones.
    """

    def __init__(
        self,
        base_url: str,
        repo_owner: str,
        repo_name: str,
        *,
        username: str = "",
        password: str = "",
        token: str = "",
        timeout: float = 30.0,
        cancel: CancelToken | None = None,
        session: requests.Session | None = None,
    ) -> None:
        self.base_url: str = base_url.rstrip("/")
        self.repo_owner: str = repo_owner
        self.repo_name: str = repo_name
        self._client: HttpClient = HttpClient(
            f"{self.base_url}/api/v1",
            auth=build_auth(username, password, token),
            timeout=timeout,
            cancel=cancel if cancel is not None else CancelToken(),
            session=session,
        )
        self._repo_path: str = f"/repos/{quote(repo_owner, safe='')}/{quote(repo_name, safe='')}"
        # Number of pages of open issues, known once an empty open page was seen
        self._open_issue_pages: int | None = None

    def get_repo_info(self) -> Repository:
        data: dict[str, Any] = self._client.get_json(self._repo_path)
        return Repository(
            owner=self.repo_owner,
            name=self.repo_name,
            is_private=bool(data.get("private", False)),
            description=data.get("description") or "",
            clone_url=data.get("clone_url") or "",
            original_url=data.get("html_url") or "",
        )

    def get_topics(self) -> list[str]:
        return []

    def get_milestones(self) -> list[Milestone]:
        # Gogs does not expose milestone timestamps
        fetched_at = dt.datetime.now(dt.UTC)
        return [
            Milestone(
                title=m["title"],
                description=m.get("description") or "",
                deadline=parse_timestamp(m.get("due_on")),
                state="closed" if m.get("state") == "closed" else "open",
                created=fetched_at,
                updated=fetched_at,
                closed=parse_timestamp(m.get("closed_at")),
            )
            for m in self._client.get_json(f"{self._repo_path}/milestones")
        ]

    def get_labels(self) -> list[Label]:
        return [_convert_label(label) for label in self._client.get_json(f"{self._repo_path}/labels")]

    def get_releases(self) -> list[Release]:
        raise NotSupportedError("gogs releases")

    def get_issues(self, page: int, per_page: int) -> tuple[list[Issue], bool]:  # noqa: ARG002 - Gogs has a fixed page size
        if self._open_issue_pages is None or page <= self._open_issue_pages:
            raw_issues = self._list_issues("open", page)
            if raw_issues or self._open_issue_pages is not None:
                return self._convert_issues(raw_issues), False
            self._open_issue_pages = page - 1
            logger.debug(f"Open issues exhausted after {self._open_issue_pages} page(s), continuing with closed issues")

        raw_issues = self._list_issues("closed", page - self._open_issue_pages)
        return self._convert_issues(raw_issues), len(raw_issues) == 0

    def get_comments(self, issue_number: int) -> list[Comment]:
        comments: list[Comment] = []
        for comment in self._client.get_json(f"{self._repo_path}/issues/{issue_number}/comments"):
            poster_name, poster_email = self._poster(comment.get("user"))
            comments.append(
                Comment(
                    issue_number=issue_number,
                    poster_name=poster_name,
                    poster_email=poster_email,
                    content=comment.get("body") or "",
                    created=parse_timestamp(comment.get("created_at")),
                    updated=parse_timestamp(comment.get("updated_at")),
                )
            )
        return comments

    def get_pull_requests(self, page: int, per_page: int) -> list[PullRequest]:  # noqa: ARG002
        raise NotSupportedError("gogs pull requests")

    def _list_issues(self, state: str, page: int) -> list[dict[str, Any]]:
        return self._client.get_json(f"{self._repo_path}/issues", params={"page": page, "state": state})

    def _convert_issues(self, raw_issues: list[dict[str, Any]]) -> list[Issue]:
        issues: list[Issue] = []
        for issue in raw_issues:
            # The issues endpoint also lists pull requests
            if issue.get("pull_request") is not None:
                continue

            milestone = issue.get("milestone")
            poster_name, poster_email = self._poster(issue.get("user"))
            state = "closed" if issue.get("state") == "closed" else "open"
            updated = parse_timestamp(issue.get("updated_at"))

            issues.append(
                Issue(
                    number=int(issue["number"]),
                    title=issue.get("title") or "",
                    poster_name=poster_name,
                    poster_email=poster_email,
                    content=issue.get("body") or "",
                    milestone=milestone["title"] if milestone else "",
                    labels=[_convert_label(label) for label in issue.get("labels") or []],
                    state=state,
                    created=parse_timestamp(issue.get("created_at")),
                    updated=updated,
                    # Gogs does not report the close time; the last update is the closest approximation
                    closed=updated if state == "closed" else None,
                )
            )
        return issues

    def _poster(self, user: dict[str, Any] | None) -> tuple[str, str]:
        if not user:
            return "", ""
        login = user.get("login") or user.get("username") or ""
        email = user.get("email") or (synthesize_email(login, self.base_url) if login else "")
        return login, email


def _convert_label(label: dict[str, Any]) -> Label:
    return Label(name=label["name"], color=normalize_color(label.get("color")))
