"""Downloader for GitHub and GitHub Enterprise, built on PyGithub."""

from __future__ import annotations

import logging
from contextlib import contextmanager
from typing import TYPE_CHECKING, Any
from urllib.parse import urlsplit

import requests
from github import (
    Auth,
    BadCredentialsException,
    Github,
    GithubException,
    RateLimitExceededException,
    UnknownObjectException,
)

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

    import github.Repository
    from github.NamedUser import NamedUser

    from ..config import MigrationSettings
    from ..options import MigrateOptions

logger: logging.Logger = logging.getLogger(__name__)

_GITHUB_HOST = "github.com"
_GITHUB_API_URL = "https://api.github.com"


@contextmanager
def _github_errors(operation: str) -> Iterator[None]:
    """Translate PyGithub and requests exceptions into migration errors."""
    try:
        yield
    except BadCredentialsException as e:
        msg = f"Authentication failed while trying to {operation}: {e.status}"
        raise AuthenticationError(msg) from e
    except RateLimitExceededException as e:
        msg = f"GitHub rate limit exceeded while trying to {operation}"
        raise TransportError(msg) from e
    except UnknownObjectException as e:
        msg = f"Not found while trying to {operation}"
        raise NotFoundError(msg) from e
    except GithubException as e:
        if e.status in (401, 403):
            msg = f"Authentication failed while trying to {operation}: {e.status}"
            raise AuthenticationError(msg) from e
        if e.status == 429 or e.status >= 500:
            msg = f"GitHub API error while trying to {operation}: {e.status}"
            raise TransportError(msg) from e
        msg = f"Failed to {operation}: {e.status} {e.data}"
        raise MigrationError(msg) from e
    except requests.RequestException as e:
        msg = f"Request failed while trying to {operation}: {e}"
        raise TransportError(msg) from e


class GithubDownloaderFactory:
    """Builds GithubDownloader instances for github.com and GitHub Enterprise."""

    @property
    def git_service_type(self) -> GitServiceType:
        return GitServiceType.GITHUB

    def match(self, opts: MigrateOptions) -> bool:
        if opts.git_service_type is GitServiceType.GITHUB:
            return True
        if opts.git_service_type is not GitServiceType.PLAIN:
            return False
        try:
            host = urlsplit(opts.clone_addr).hostname
        except ValueError:
            return False
        return host == _GITHUB_HOST

    def new(self, opts: MigrateOptions, settings: MigrationSettings, cancel: CancelToken) -> GithubDownloader:
        base_url, owner, name = parse_clone_address(opts.clone_addr)
        logger.debug(f"Create github downloader: {owner}/{name}")
        return GithubDownloader(
            base_url,
            owner,
            name,
            username=opts.auth_username,
            password=opts.auth_password,
            token=opts.auth_token,
            timeout=settings.request_timeout,
            per_page=settings.issue_batch_size,
            cancel=cancel,
        )


def _api_url(base_url: str) -> str:
    if urlsplit(base_url).hostname == _GITHUB_HOST:
        return _GITHUB_API_URL
    return f"{base_url.rstrip('/')}/api/v3"


def _build_auth(username: str, password: str, token: str) -> Auth.Auth | None:
    if token:
        return Auth.Token(token)
    if username and password:
        return Auth.Login(username, password)
    if username:
        # A lone username is an access token, as for the other platforms
        return Auth.Token(username)
    return None


class GithubDownloader:
    """Fetches repository history from GitHub.

    GitHub lists pull requests on its issues endpoint as well; those are
    skipped in get_issues() and fetched through get_pull_requests().
    PyGithub pages are fetched with the per_page configured on the client,
    so the per_page arguments are advisory. The factory sizes the client from
    issue_batch_size; pull request pages use that size as well.
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
        per_page: int = 100,
        cancel: CancelToken | None = None,
    ) -> None:
        self.base_url: str = base_url.rstrip("/")
        self.repo_owner: str = repo_owner
        self.repo_name: str = repo_name
        self._cancel: CancelToken = cancel if cancel is not None else CancelToken()
        # Lazy: no request is sent until an attribute of a fetched object is read
        # retry=None disables the GithubRetry PyGithub installs by default
        self.client: Github = Github(
            auth=_build_auth(username, password, token),
            base_url=_api_url(self.base_url),
            timeout=int(timeout),
            per_page=per_page,
            retry=None,
            lazy=True,
        )
        self._repo: github.Repository.Repository | None = None

    @property
    def full_name(self) -> str:
        return f"{self.repo_owner}/{self.repo_name}"

    @property
    def repo(self) -> github.Repository.Repository:
        """The remote repository, loaded lazily (no request until an attribute is needed)."""
        if self._repo is None:
            self._repo = self.client.get_repo(self.full_name)
        return self._repo

    def get_repo_info(self) -> Repository:
        self._cancel.raise_if_cancelled()
        with _github_errors(f"get repository {self.full_name}"):
            gh_repo = self.client.get_repo(self.full_name)
            return Repository(
                owner=self.repo_owner,
                name=self.repo_name,
                is_private=gh_repo.private,
                description=gh_repo.description or "",
                clone_url=gh_repo.clone_url,
                original_url=gh_repo.html_url,
            )

    def get_topics(self) -> list[str]:
        self._cancel.raise_if_cancelled()
        with _github_errors("list topics"):
            return list(self.repo.get_topics())

    def get_milestones(self) -> list[Milestone]:
        milestones: list[Milestone] = []
        with _github_errors("list milestones"):
            for m in self.repo.get_milestones(state="all", sort="due_on", direction="asc"):
                self._cancel.raise_if_cancelled()
                milestones.append(
                    Milestone(
                        title=m.title,
                        description=m.description or "",
                        deadline=parse_timestamp(m.due_on),
                        state="closed" if m.state == "closed" else "open",
                        created=parse_timestamp(m.created_at),
                        updated=parse_timestamp(m.updated_at),
                        closed=parse_timestamp(m.closed_at),
                    )
                )
        return milestones

    def get_labels(self) -> list[Label]:
        labels: list[Label] = []
        with _github_errors("list labels"):
            for label in self.repo.get_labels():
                self._cancel.raise_if_cancelled()
                labels.append(_convert_label(label))
        return labels

    def get_releases(self) -> list[Release]:
        releases: list[Release] = []
        with _github_errors("list releases"):
            for release in self.repo.get_releases():
                self._cancel.raise_if_cancelled()
                publisher_name, publisher_email = self._poster(release.author)
                assets = [
                    ReleaseAsset(
                        name=asset.name,
                        download_url=asset.browser_download_url,
                        content_type=asset.content_type or "",
                        size=asset.size,
                        download_count=asset.download_count,
                        created=parse_timestamp(asset.created_at),
                        updated=parse_timestamp(asset.updated_at),
                    )
                    for asset in release.get_assets()
                ]
                releases.append(
                    Release(
                        tag_name=release.tag_name,
                        name=release.title or "",
                        body=release.body or "",
                        target_commitish=release.target_commitish or "",
                        draft=release.draft,
                        prerelease=release.prerelease,
                        publisher_name=publisher_name,
                        publisher_email=publisher_email,
                        assets=assets,
                        created=parse_timestamp(release.created_at),
                        published=parse_timestamp(release.published_at),
                    )
                )
        return releases

    def get_issues(self, page: int, per_page: int) -> tuple[list[Issue], bool]:  # noqa: ARG002 - set on the client
        self._cancel.raise_if_cancelled()
        with _github_errors(f"list issues page {page}"):
            raw_issues = self.repo.get_issues(state="all", sort="created", direction="asc").get_page(page - 1)
            issues: list[Issue] = []
            for issue in raw_issues:
                if issue.pull_request is not None:
                    continue
                poster_name, poster_email = self._poster(issue.user)
                issues.append(
                    Issue(
                        number=issue.number,
                        title=issue.title,
                        poster_name=poster_name,
                        poster_email=poster_email,
                        content=issue.body or "",
                        milestone=issue.milestone.title if issue.milestone else "",
                        labels=[_convert_label(label) for label in issue.labels],
                        state="closed" if issue.state == "closed" else "open",
                        is_locked=issue.locked,
                        created=parse_timestamp(issue.created_at),
                        updated=parse_timestamp(issue.updated_at),
                        closed=parse_timestamp(issue.closed_at),
                    )
                )
        return issues, len(raw_issues) == 0

    def get_comments(self, issue_number: int) -> list[Comment]:
        self._cancel.raise_if_cancelled()
        comments: list[Comment] = []
        with _github_errors(f"list comments of issue #{issue_number}"):
            for comment in self.repo.get_issue(issue_number).get_comments():
                self._cancel.raise_if_cancelled()
                poster_name, poster_email = self._poster(comment.user)
                comments.append(
                    Comment(
                        issue_number=issue_number,
                        poster_name=poster_name,
                        poster_email=poster_email,
                        content=comment.body or "",
                        created=parse_timestamp(comment.created_at),
                        updated=parse_timestamp(comment.updated_at),
                    )
                )
        return comments

    def get_pull_requests(self, page: int, per_page: int) -> list[PullRequest]:  # noqa: ARG002
        self._cancel.raise_if_cancelled()
        pull_requests: list[PullRequest] = []
        with _github_errors(f"list pull requests page {page}"):
            for pr in self.repo.get_pulls(state="all", sort="created", direction="asc").get_page(page - 1):
                poster_name, poster_email = self._poster(pr.user)
                pull_requests.append(
                    PullRequest(
                        number=pr.number,
                        title=pr.title,
                        poster_name=poster_name,
                        poster_email=poster_email,
                        content=pr.body or "",
                        milestone=pr.milestone.title if pr.milestone else "",
                        labels=[_convert_label(label) for label in pr.labels],
                        state="closed" if pr.state == "closed" else "open",
                        is_locked=pr.locked,
                        created=parse_timestamp(pr.created_at),
                        updated=parse_timestamp(pr.updated_at),
                        closed=parse_timestamp(pr.closed_at),
                        # `merged` is not part of the list payload; merged_at is
                        merged=pr.merged_at is not None,
                        merged_time=parse_timestamp(pr.merged_at),
                        merge_commit_sha=pr.merge_commit_sha or "",
                        head=_convert_branch(pr.head),
                        base=_convert_branch(pr.base),
                        patch_url=pr.patch_url or "",
                        review_requests=[ReviewRequest(reviewer_name=user.login) for user in pr.requested_reviewers],
                    )
                )
        return pull_requests

    def _poster(self, user: NamedUser | None) -> tuple[str, str]:
        # Deleted accounts are shown as "ghost" on GitHub
        login = user.login if user is not None else "ghost"
        # Reading NamedUser.email would cost one request per user and is usually empty
        return login, synthesize_email(login, self.base_url)


def _convert_label(label: Any) -> Label:  # noqa: ANN401 - github.Label.Label
    return Label(name=label.name, color=normalize_color(label.color), description=label.description or "")


def _convert_branch(part: Any) -> PullRequestBranch:  # noqa: ANN401 - github.PullRequestPart.PullRequestPart
    repo = part.repo
    return PullRequestBranch(
        ref=part.ref,
        sha=part.sha,
        repo_name=repo.name if repo is not None else "",
        owner_name=part.user.login if part.user is not None else "",
        clone_url=repo.clone_url if repo is not None else "",
    )
