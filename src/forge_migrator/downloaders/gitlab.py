"""Downloader for GitLab (gitlab.com and self-managed), built on python-gitlab."""

from __future__ import annotations

import logging
from contextlib import contextmanager
from typing import TYPE_CHECKING, Any
from urllib.parse import urlsplit

import requests
from gitlab import Gitlab
from gitlab.exceptions import GitlabAuthenticationError, GitlabError

from ..cancellation import CancelToken
from ..exceptions import AuthenticationError, MigrationError, NotFoundError, TransportError
from ..models import (
    Comment,
    Issue,
    Label,
    Milestone,
    PullRequest,
    PullRequestBranch,
    Release,
    ReleaseAsset,
    Repository,
    ReviewRequest,
)
from ..options import GitServiceType
from ..utils import normalize_color, parse_clone_address, parse_timestamp, synthesize_email

if TYPE_CHECKING:
    from collections.abc import Iterator

    from gitlab.v4.objects import Project as GitlabProject

    from ..config import MigrationSettings
    from ..options import MigrateOptions

logger: logging.Logger = logging.getLogger(__name__)

_GITLAB_HOST = "gitlab.com"

# python-gitlab sleeps and retries on 429 and 5xx unless told otherwise per request
_SINGLE_ATTEMPT: dict[str, Any] = {"obey_rate_limit": False, "retry_transient_errors": False}


@contextmanager
def _gitlab_errors(operation: str) -> Iterator[None]:
    """Translate python-gitlab and requests exceptions into migration errors."""
    try:
        yield
    except GitlabAuthenticationError as e:
        msg = f"Authentication failed while trying to {operation}: {e.response_code}"
        raise AuthenticationError(msg) from e
    except GitlabError as e:
        code = e.response_code
        if code in (401, 403):
            msg = f"Authentication failed while trying to {operation}: {code}"
            raise AuthenticationError(msg) from e
        if code == 404:
            msg = f"Not found while trying to {operation}"
            raise NotFoundError(msg) from e
        if code is not None and (code == 429 or code >= 500):
            msg = f"GitLab API error while trying to {operation}: {code}"
            raise TransportError(msg) from e
        msg = f"Failed to {operation}: {e}"
        raise MigrationError(msg) from e
    except requests.RequestException as e:
        msg = f"Request failed while trying to {operation}: {e}"
        raise TransportError(msg) from e


class GitlabDownloaderFactory:
    """Builds GitlabDownloader instances. Project paths may contain nested groups."""

    @property
    def git_service_type(self) -> GitServiceType:
        return GitServiceType.GITLAB

    def match(self, opts: MigrateOptions) -> bool:
        if opts.git_service_type is GitServiceType.GITLAB:
            return True
        if opts.git_service_type is not GitServiceType.PLAIN:
            return False
        try:
            host = urlsplit(opts.clone_addr).hostname or ""
        except ValueError:
            return False
        return host == _GITLAB_HOST or host.startswith("gitlab.")

    def new(self, opts: MigrateOptions, settings: MigrationSettings, cancel: CancelToken) -> GitlabDownloader:
        base_url, owner, name = parse_clone_address(opts.clone_addr, nested_owner=True)
        logger.debug(f"Create gitlab downloader: {owner}/{name}")
        return GitlabDownloader(
            base_url,
            owner,
            name,
            username=opts.auth_username,
            password=opts.auth_password,
            token=opts.auth_token,
            timeout=settings.request_timeout,
            cancel=cancel,
        )


def get_client(base_url: str, *, username: str = "", password: str = "", token: str = "", timeout: float = 30.0) -> Gitlab:
    """Get a GitLab client. Falls back to anonymous access without credentials."""
    if token:
        return Gitlab(url=base_url, private_token=token, timeout=timeout, retry_transient_errors=False)
    if username and password:
        # Basic auth is attached by requests to every call, not stored as a token
        return Gitlab(
            url=base_url, http_username=username, http_password=password, timeout=timeout, retry_transient_errors=False
        )
    if username:
        return Gitlab(url=base_url, private_token=username, timeout=timeout, retry_transient_errors=False)
    return Gitlab(url=base_url, timeout=timeout, retry_transient_errors=False)


class GitlabDownloader:
    """Fetches repository history from GitLab.

    Merge requests come from their own endpoint, so get_issues() needs no
    filtering. GitLab does not report when a milestone was closed; its last
    update is used instead.
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
    ) -> None:
        self.base_url: str = base_url.rstrip("/")
        self.repo_owner: str = repo_owner
        self.repo_name: str = repo_name
        self._cancel: CancelToken = cancel if cancel is not None else CancelToken()
        self.client: Gitlab = get_client(self.base_url, username=username, password=password, token=token, timeout=timeout)
        self._project: GitlabProject | None = None

    @property
    def project_path(self) -> str:
        return f"{self.repo_owner}/{self.repo_name}"

    @property
    def project(self) -> GitlabProject:
        """Lazy project handle: managers (issues, labels, ...) work without fetching it."""
        if self._project is None:
            self._project = self.client.projects.get(self.project_path, lazy=True)
        return self._project

    def get_repo_info(self) -> Repository:
        self._cancel.raise_if_cancelled()
        with _gitlab_errors(f"get project {self.project_path}"):
            project = self.client.projects.get(self.project_path, **_SINGLE_ATTEMPT)
            self._project = project
            return Repository(
                owner=self.repo_owner,
                name=self.repo_name,
                is_private=project.visibility != "public",
                description=project.description or "",
                clone_url=project.http_url_to_repo,
                original_url=project.web_url,
            )

    def get_topics(self) -> list[str]:
        self._cancel.raise_if_cancelled()
        with _gitlab_errors("list topics"):
            project = self.client.projects.get(self.project_path, **_SINGLE_ATTEMPT)
            # Older GitLab versions call them tag_list
            topics = getattr(project, "topics", None) or getattr(project, "tag_list", None) or []
            return list(topics)

    def get_milestones(self) -> list[Milestone]:
        milestones: list[Milestone] = []
        with _gitlab_errors("list milestones"):
            for m in self.project.milestones.list(iterator=True, **_SINGLE_ATTEMPT):
                self._cancel.raise_if_cancelled()
                state = "closed" if m.state == "closed" else "open"
                updated = parse_timestamp(m.updated_at)
                milestones.append(
                    Milestone(
                        title=m.title,
                        description=m.description or "",
                        deadline=parse_timestamp(m.due_date),
                        state=state,
                        created=parse_timestamp(m.created_at),
                        updated=updated,
                        closed=updated if state == "closed" else None,
                    )
                )
        return milestones

    def get_labels(self) -> list[Label]:
        labels: list[Label] = []
        with _gitlab_errors("list labels"):
            for label in self.project.labels.list(iterator=True, **_SINGLE_ATTEMPT):
                self._cancel.raise_if_cancelled()
                labels.append(_convert_label(label.name, label.color, label.description))
        return labels

    def get_releases(self) -> list[Release]:
        releases: list[Release] = []
        with _gitlab_errors("list releases"):
            for release in self.project.releases.list(iterator=True, **_SINGLE_ATTEMPT):
                self._cancel.raise_if_cancelled()
                author = getattr(release, "author", None) or {}
                publisher_name = author.get("username", "")
                links = (getattr(release, "assets", None) or {}).get("links", [])
                commit = getattr(release, "commit", None) or {}
                releases.append(
                    Release(
                        tag_name=release.tag_name,
                        name=release.name or "",
                        body=release.description or "",
                        target_commitish=commit.get("id", ""),
                        prerelease=bool(getattr(release, "upcoming_release", False)),
                        publisher_name=publisher_name,
                        publisher_email=synthesize_email(publisher_name, self.base_url) if publisher_name else "",
                        assets=[
                            ReleaseAsset(name=link["name"], download_url=link.get("direct_asset_url") or link["url"])
                            for link in links
                        ],
                        created=parse_timestamp(release.created_at),
                        published=parse_timestamp(getattr(release, "released_at", None)),
                    )
                )
        return releases

    def get_issues(self, page: int, per_page: int) -> tuple[list[Issue], bool]:
        self._cancel.raise_if_cancelled()
        with _gitlab_errors(f"list issues page {page}"):
            raw_issues = self.project.issues.list(
                page=page,
                per_page=per_page,
                order_by="created_at",
                sort="asc",
                with_labels_details=True,
                **_SINGLE_ATTEMPT,
            )
            issues: list[Issue] = []
            for issue in raw_issues:
                poster_name, poster_email = self._poster(issue.author)
                issues.append(
                    Issue(
                        number=issue.iid,
                        title=issue.title,
                        poster_name=poster_name,
                        poster_email=poster_email,
                        content=issue.description or "",
                        milestone=issue.milestone["title"] if issue.milestone else "",
                        labels=[_convert_label_details(label) for label in issue.labels],
                        state="closed" if issue.state == "closed" else "open",
                        is_locked=bool(getattr(issue, "discussion_locked", False)),
                        created=parse_timestamp(issue.created_at),
                        updated=parse_timestamp(issue.updated_at),
                        closed=parse_timestamp(issue.closed_at),
                    )
                )
        return issues, len(raw_issues) == 0

    def get_comments(self, issue_number: int) -> list[Comment]:
        self._cancel.raise_if_cancelled()
        comments: list[Comment] = []
        with _gitlab_errors(f"list notes of issue #{issue_number}"):
            issue = self.project.issues.get(issue_number, lazy=True)
            for note in issue.notes.list(iterator=True, order_by="created_at", sort="asc", **_SINGLE_ATTEMPT):
                self._cancel.raise_if_cancelled()
                # System notes ("changed the description", ...) are events, not comments
                if note.system:
                    continue
                poster_name, poster_email = self._poster(note.author)
                comments.append(
                    Comment(
                        issue_number=issue_number,
                        poster_name=poster_name,
                        poster_email=poster_email,
                        content=note.body or "",
                        created=parse_timestamp(note.created_at),
                        updated=parse_timestamp(note.updated_at),
                    )
                )
        return comments

    def get_pull_requests(self, page: int, per_page: int) -> list[PullRequest]:
        self._cancel.raise_if_cancelled()
        pull_requests: list[PullRequest] = []
        with _gitlab_errors(f"list merge requests page {page}"):
            for mr in self.project.mergerequests.list(
                page=page,
                per_page=per_page,
                state="all",
                order_by="created_at",
                sort="asc",
                with_labels_details=True,
                **_SINGLE_ATTEMPT,
            ):
                poster_name, poster_email = self._poster(mr.author)
                merged = mr.state == "merged"
                diff_refs = getattr(mr, "diff_refs", None) or {}
                pull_requests.append(
                    PullRequest(
                        number=mr.iid,
                        title=mr.title,
                        poster_name=poster_name,
                        poster_email=poster_email,
                        content=mr.description or "",
                        milestone=mr.milestone["title"] if mr.milestone else "",
                        labels=[_convert_label_details(label) for label in mr.labels],
                        state="open" if mr.state in ("opened", "locked") else "closed",
                        is_locked=bool(getattr(mr, "discussion_locked", False)),
                        created=parse_timestamp(mr.created_at),
                        updated=parse_timestamp(mr.updated_at),
                        closed=parse_timestamp(mr.merged_at if merged else mr.closed_at),
                        merged=merged,
                        merged_time=parse_timestamp(mr.merged_at),
                        merge_commit_sha=mr.merge_commit_sha or "",
                        head=self._branch(mr.source_branch, mr.sha or "", same_project=mr.source_project_id == mr.project_id),
                        base=self._branch(mr.target_branch, diff_refs.get("base_sha") or "", same_project=True),
                        patch_url=f"{mr.web_url}.patch",
                        review_requests=[
                            ReviewRequest(reviewer_name=reviewer["username"])
                            for reviewer in getattr(mr, "reviewers", None) or []
                        ],
                    )
                )
        return pull_requests

    def _branch(self, ref: str, sha: str, *, same_project: bool) -> PullRequestBranch:
        if not same_project:
            # Forked source project: only the ref and commit are known without another request
            return PullRequestBranch(ref=ref, sha=sha)
        return PullRequestBranch(
            ref=ref,
            sha=sha,
            repo_name=self.repo_name,
            owner_name=self.repo_owner,
            clone_url=f"{self.base_url}/{self.project_path}.git",
        )

    def _poster(self, author: dict[str, Any] | None) -> tuple[str, str]:
        if not author:
            return "", ""
        login = author.get("username", "")
        # The REST API only exposes public emails on user endpoints
        email = author.get("public_email") or (synthesize_email(login, self.base_url) if login else "")
        return login, email


def _convert_label(name: str, color: str | None, description: str | None) -> Label:
    return Label(
        name=name,
        color=normalize_color(color),
        description=description or "",
        # Scoped labels (scope::value) are mutually exclusive within their scope
        exclusive="::" in name,
    )


def _convert_label_details(label: dict[str, Any] | str) -> Label:
    if isinstance(label, str):
        return _convert_label(label, None, None)
    return _convert_label(label["name"], label.get("color"), label.get("description"))
