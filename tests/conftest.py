"""
Pytest configuration and fixtures.

This module configures pytest behavior for different test types:
- Integration tests: Fail on any warnings from the code under test
- Unit tests: Allow warnings (retries and skipped pages are expected there)

It also provides in-memory fakes for the Downloader and Uploader contracts.
"""

from __future__ import annotations

import logging
from dataclasses import replace
from typing import TYPE_CHECKING, Any

from typing_extensions import override
from unittest.mock import Mock

import pytest

from forge_migrator.exceptions import NotSupportedError
from forge_migrator.models import Comment, Issue, Label, Milestone, PullRequest, Release, Repository
from forge_migrator.options import GitServiceType
from forge_migrator.registry import DownloaderRegistry
from forge_migrator.tasks import LocalRepository, RepositoryStatus

if TYPE_CHECKING:
    from collections.abc import Callable, Generator, Sequence

    from forge_migrator.cancellation import CancelToken
    from forge_migrator.config import MigrationSettings
    from forge_migrator.options import MigrateOptions

# Store warning records during test execution
_integration_test_warnings: dict[str, list[logging.LogRecord]] = {}


class IntegrationTestWarningHandler(logging.Handler):
    """Custom logging handler to capture warnings during integration tests."""

    test_nodeid: str

    def __init__(self, test_nodeid: str) -> None:
        super().__init__()
        self.test_nodeid = test_nodeid
        self.setLevel(logging.WARNING)

    @override
    def emit(self, record: logging.LogRecord) -> None:
        """Capture WARNING and above level logs."""
        if self.test_nodeid not in _integration_test_warnings:
            _integration_test_warnings[self.test_nodeid] = []
        _integration_test_warnings[self.test_nodeid].append(record)


@pytest.fixture(autouse=True)
def fail_on_log_warnings_for_integration_tests(
    request: pytest.FixtureRequest,
) -> Generator[None]:
    """
    Automatically fail integration tests if any WARNING level logs are emitted from the code under test.

    A complete migration against a well-behaved remote must not retry, skip
    pages or fail to roll back, so any logger.warning() or logger.error()
    call indicates a problem in the migrator.
    """
    is_integration_test = request.node.get_closest_marker("integration") is not None

    if not is_integration_test:
        yield
        return

    test_nodeid = request.node.nodeid
    _integration_test_warnings[test_nodeid] = []

    # Add handler to root logger to capture all warnings
    handler = IntegrationTestWarningHandler(test_nodeid)
    root_logger = logging.getLogger()
    root_logger.addHandler(handler)

    try:
        yield
    finally:
        root_logger.removeHandler(handler)


@pytest.hookimpl(tryfirst=True, hookwrapper=True)
def pytest_runtest_makereport(
    item: pytest.Item, call: pytest.CallInfo[None]
) -> Generator[None]:  # type: ignore[misc]
    """
    Hook to check for warnings after test execution and mark test as failed if warnings were detected.

    This runs after the test completes but before pytest generates the final report.
    """
    outcome = yield
    report = outcome.get_result()

    # Only check during the test call phase (not setup or teardown)
    if call.when == "call" and report.outcome == "passed":
        test_nodeid = item.nodeid
        warning_records = _integration_test_warnings.get(test_nodeid, [])

        if warning_records:
            warning_messages = [
                f"{record.levelname}: {record.getMessage()} (in {record.name}:{record.lineno})"
                for record in warning_records
            ]

            report.outcome = "failed"
            report.longrepr = f"Integration test failed: {len(warning_records)} warning(s) detected:\n" + "\n".join(
                f"  - {msg}" for msg in warning_messages
            )

        _integration_test_warnings.pop(test_nodeid, None)


class FakeDownloader:
    """Downloader serving canned pages and recording every call.

    releases=None or pull_request_pages=None make that facet unsupported.
    on_issue_page is called with the page number before a page is served.
    """

    def __init__(
        self,
        repo: Repository,
        *,
        topics: Sequence[str] = (),
        milestones: Sequence[Milestone] = (),
        labels: Sequence[Label] = (),
        releases: Sequence[Release] | None = (),
        issue_pages: Sequence[Sequence[Issue]] = (),
        comments: dict[int, list[Comment]] | None = None,
        pull_request_pages: Sequence[Sequence[PullRequest]] | None = (),
        on_issue_page: Callable[[int], None] | None = None,
    ) -> None:
        self.repo: Repository = repo
        self.topics: list[str] = list(topics)
        self.milestones: list[Milestone] = list(milestones)
        self.labels: list[Label] = list(labels)
        self.releases: list[Release] | None = None if releases is None else list(releases)
        self.issue_pages: list[list[Issue]] = [list(page) for page in issue_pages]
        self.comments: dict[int, list[Comment]] = comments or {}
        self.pull_request_pages: list[list[PullRequest]] | None = (
            None if pull_request_pages is None else [list(page) for page in pull_request_pages]
        )
        self.on_issue_page: Callable[[int], None] | None = on_issue_page
        self.calls: list[tuple[str, tuple[object, ...]]] = []

    def get_repo_info(self) -> Repository:
        self.calls.append(("get_repo_info", ()))
        return self.repo

    def get_topics(self) -> list[str]:
        self.calls.append(("get_topics", ()))
        return self.topics

    def get_milestones(self) -> list[Milestone]:
        self.calls.append(("get_milestones", ()))
        return self.milestones

    def get_labels(self) -> list[Label]:
        self.calls.append(("get_labels", ()))
        return self.labels

    def get_releases(self) -> list[Release]:
        self.calls.append(("get_releases", ()))
        if self.releases is None:
            raise NotSupportedError("releases")
        return self.releases

    def get_issues(self, page: int, per_page: int) -> tuple[list[Issue], bool]:
        self.calls.append(("get_issues", (page, per_page)))
        if self.on_issue_page is not None:
            self.on_issue_page(page)
        if page > len(self.issue_pages):
            return [], True
        return self.issue_pages[page - 1], False

    def get_comments(self, issue_number: int) -> list[Comment]:
        self.calls.append(("get_comments", (issue_number,)))
        return self.comments.get(issue_number, [])

    def get_pull_requests(self, page: int, per_page: int) -> list[PullRequest]:
        self.calls.append(("get_pull_requests", (page, per_page)))
        if self.pull_request_pages is None:
            raise NotSupportedError("pull requests")
        if page > len(self.pull_request_pages):
            return []
        return self.pull_request_pages[page - 1]

    def called(self, name: str) -> list[tuple[object, ...]]:
        return [args for call, args in self.calls if call == name]


class FakeDownloaderFactory:
    """Factory handing out a prepared downloader for one service type."""

    def __init__(self, downloader: FakeDownloader, service: GitServiceType = GitServiceType.GOGS) -> None:
        self.downloader: FakeDownloader = downloader
        self.service: GitServiceType = service
        self.new_calls: int = 0

    @property
    def git_service_type(self) -> GitServiceType:
        return self.service

    def match(self, opts: MigrateOptions) -> bool:
        return opts.git_service_type is self.service

    def new(self, opts: MigrateOptions, settings: MigrationSettings, cancel: CancelToken) -> FakeDownloader:  # noqa: ARG002
        self.new_calls += 1
        return self.downloader


class RecordingUploader:
    """Uploader recording every call in order. fail_on names a method that raises."""

    def __init__(self, repository: LocalRepository | None = None, fail_on: str = "", error: Exception | None = None) -> None:
        self.repository: LocalRepository = repository or LocalRepository(id=1, owner_id=1, name="widgets")
        self.fail_on: str = fail_on
        self.error: Exception = error or RuntimeError(f"{fail_on} failed")
        self.calls: list[tuple[str, tuple[object, ...]]] = []
        self.rolled_back: bool = False

    def _record(self, name: str, *args: object) -> None:
        self.calls.append((name, args))
        if name == self.fail_on:
            raise self.error

    def create_repo(self, repo: Repository, opts: MigrateOptions) -> None:
        self._record("create_repo", repo, opts)

    def create_topics(self, *topics: str) -> None:
        self._record("create_topics", *topics)

    def create_milestones(self, *milestones: Milestone) -> None:
        self._record("create_milestones", *milestones)

    def create_labels(self, *labels: Label) -> None:
        self._record("create_labels", *labels)

    def create_releases(self, *releases: Release) -> None:
        self._record("create_releases", *releases)

    def create_issues(self, *issues: Issue) -> None:
        self._record("create_issues", *issues)

    def create_comments(self, issue_number: int, *comments: Comment) -> None:
        self._record("create_comments", issue_number, *comments)

    def create_pull_requests(self, *pull_requests: PullRequest) -> None:
        self._record("create_pull_requests", *pull_requests)

    def finish(self) -> LocalRepository:
        self._record("finish")
        self.repository.status = RepositoryStatus.READY
        return replace(self.repository)

    def rollback(self) -> None:
        self.calls.append(("rollback", ()))
        self.rolled_back = True

    def names(self) -> list[str]:
        return [name for name, _ in self.calls]


def make_issue(number: int, **kwargs: object) -> Issue:
    fields: dict[str, object] = {"title": f"Issue {number}", "poster_name": "alice", **kwargs}
    return Issue(number=number, **fields)  # type: ignore[arg-type]


@pytest.fixture
def remote_repository() -> Repository:
    return Repository(
        owner="alice",
        name="widgets",
        description="Widgets for everyone",
        clone_url="https://git.example.com/alice/widgets.git",
        original_url="https://git.example.com/alice/widgets",
    )


@pytest.fixture
def issue() -> Callable[..., Issue]:
    """Factory for issues: issue(3, state="closed")."""
    return make_issue


@pytest.fixture
def make_downloader(remote_repository: Repository) -> Callable[..., FakeDownloader]:
    def _make(**kwargs: object) -> FakeDownloader:
        return FakeDownloader(remote_repository, **kwargs)  # type: ignore[arg-type]

    return _make


@pytest.fixture
def registry_for() -> Callable[..., DownloaderRegistry]:
    """Build a registry holding a single fake factory for the given downloader."""

    def _build(downloader: FakeDownloader, service: GitServiceType = GitServiceType.GOGS) -> DownloaderRegistry:
        registry = DownloaderRegistry()
        registry.register(FakeDownloaderFactory(downloader, service))
        return registry

    return _build


@pytest.fixture
def uploader() -> RecordingUploader:
    return RecordingUploader()


@pytest.fixture
def make_uploader() -> Callable[..., RecordingUploader]:
    """Factory for uploaders: make_uploader(fail_on="create_issues")."""
    return RecordingUploader


_REASONS: dict[int, str] = {200: "OK", 401: "Unauthorized", 403: "Forbidden", 404: "Not Found", 503: "Service Unavailable"}


def json_response(payload: Any, status: int = 200) -> Mock:  # noqa: ANN401
    response = Mock(status_code=status, reason=_REASONS.get(status, "Error"))
    response.json.return_value = payload
    return response


class FakeGogsApi:
    """Serves canned Gogs API v1 payloads for alice/widgets on git.example.com.

    Issue listings honour the `state` and `page` parameters the way Gogs
    does; status_code != 200 makes every request fail with that status.
    """

    base_url: str = "https://git.example.com"

    def __init__(self) -> None:
        self.prefix: str = f"{self.base_url}/api/v1/repos/alice/widgets"
        self.repo: dict[str, Any] = {
            "name": "widgets",
            "private": False,
            "description": "Widgets for everyone",
            "clone_url": f"{self.base_url}/alice/widgets.git",
            "html_url": f"{self.base_url}/alice/widgets",
        }
        self.milestones: list[dict[str, Any]] = []
        self.labels: list[dict[str, Any]] = []
        self.open_pages: list[list[dict[str, Any]]] = []
        self.closed_pages: list[list[dict[str, Any]]] = []
        self.comments: dict[int, list[dict[str, Any]]] = {}
        self.status_code: int = 200
        self.requests: list[tuple[str, dict[str, Any]]] = []

    def get(self, url: str, params: dict[str, Any] | None = None, auth: object = None, timeout: float | None = None) -> Mock:  # noqa: ARG002
        self.requests.append((url, dict(params or {})))
        if self.status_code != 200:
            return json_response({"message": "error"}, self.status_code)

        path = url.removeprefix(self.prefix)
        if path == "":
            return json_response(self.repo)
        if path == "/milestones":
            return json_response(self.milestones)
        if path == "/labels":
            return json_response(self.labels)
        if path == "/issues":
            assert params is not None
            pages = self.open_pages if params["state"] == "open" else self.closed_pages
            page = params["page"]
            return json_response(pages[page - 1] if page <= len(pages) else [])
        if path.startswith("/issues/") and path.endswith("/comments"):
            number = int(path.split("/")[2])
            if number not in self.comments:
                return json_response({"message": "Not Found"}, 404)
            return json_response(self.comments[number])
        return json_response({"message": "Not Found"}, 404)

    def issue_requests(self) -> list[tuple[str, int]]:
        return [(params["state"], params["page"]) for url, params in self.requests if url.endswith("/issues")]

    def session(self) -> Mock:
        session = Mock()
        session.headers = {}
        session.get.side_effect = self.get
        return session


def gogs_issue(number: int, state: str = "open", **kwargs: Any) -> dict[str, Any]:  # noqa: ANN401
    return {
        "number": number,
        "title": f"Issue {number}",
        "body": f"Body of issue {number}",
        "user": {"login": "bob", "email": ""},
        "labels": [],
        "milestone": None,
        "state": state,
        "created_at": "2024-01-01T10:00:00Z",
        "updated_at": "2024-01-02T10:00:00Z",
        "pull_request": None,
        **kwargs,
    }


@pytest.fixture
def gogs_api() -> FakeGogsApi:
    return FakeGogsApi()


@pytest.fixture
def gogs_issue_payload() -> Callable[..., dict[str, Any]]:
    """Factory for Gogs issue payloads: gogs_issue_payload(4, state="closed")."""
    return gogs_issue
