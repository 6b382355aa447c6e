"""Canonical data models produced by the downloaders.

These models represent the platform-independent entities handed from a
Downloader to the persistence side (Uploader). They are intentionally simple
and frozen: an entity is created once per migration attempt and discarded
after the uploader consumed it.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Literal


@dataclass(frozen=True)
class Repository:
    """The remote repository being migrated. One per migration."""

    owner: str
    name: str
    is_private: bool = False
    description: str = ""
    clone_url: str = ""
    original_url: str = ""


@dataclass(frozen=True)
class Milestone:
    """A milestone for grouping issues."""

    title: str
    description: str = ""
    deadline: datetime | None = None
    state: Literal["open", "closed"] = "open"
    created: datetime | None = None
    updated: datetime | None = None
    closed: datetime | None = None


@dataclass(frozen=True)
class Label:
    """A label/tag that can be applied to issues and pull requests."""

    name: str
    color: str  # Hex color without '#' prefix, lowercase (e.g., "ff0000")
    description: str = ""
    exclusive: bool = False  # Only one label of the same scope may be applied


@dataclass(frozen=True)
class ReleaseAsset:
    """A file attached to a release."""

    name: str
    download_url: str
    content_type: str = ""
    size: int = 0
    download_count: int = 0
    created: datetime | None = None
    updated: datetime | None = None


@dataclass(frozen=True)
class Release:
    """A release (tag with notes and assets)."""

    tag_name: str
    name: str = ""
    body: str = ""
    target_commitish: str = ""
    draft: bool = False
    prerelease: bool = False
    publisher_name: str = ""
    publisher_email: str = ""
    assets: list[ReleaseAsset] = field(default_factory=list)
    created: datetime | None = None
    published: datetime | None = None


@dataclass(frozen=True)
class Issue:
    """An issue from the source platform.

    `number` is the platform-native sequential number. `milestone` is the
    milestone title, not an id: linking is resolved by the persistence side.
    """

    number: int
    title: str
    poster_name: str
    poster_email: str = ""
    content: str = ""
    milestone: str = ""
    labels: list[Label] = field(default_factory=list)
    state: Literal["open", "closed"] = "open"
    is_locked: bool = False
    created: datetime | None = None
    updated: datetime | None = None
    closed: datetime | None = None


@dataclass(frozen=True)
class Comment:
    """A comment on an issue or pull request."""

    issue_number: int
    poster_name: str
    poster_email: str = ""
    content: str = ""
    created: datetime | None = None
    updated: datetime | None = None


@dataclass(frozen=True)
class PullRequestBranch:
    """One side (head or base) of a pull request."""

    ref: str
    sha: str = ""
    repo_name: str = ""
    owner_name: str = ""
    clone_url: str = ""


@dataclass(frozen=True)
class ReviewRequest:
    """A reviewer requested on a pull request."""

    reviewer_name: str


@dataclass(frozen=True)
class PullRequest:
    """A pull/merge request. Carries every Issue field plus branch and merge state."""

    number: int
    title: str
    poster_name: str
    head: PullRequestBranch
    base: PullRequestBranch
    poster_email: str = ""
    content: str = ""
    milestone: str = ""
    labels: list[Label] = field(default_factory=list)
    state: Literal["open", "closed"] = "open"
    is_locked: bool = False
    created: datetime | None = None
    updated: datetime | None = None
    closed: datetime | None = None
    merged: bool = False
    merged_time: datetime | None = None
    merge_commit_sha: str = ""
    patch_url: str = ""
    review_requests: list[ReviewRequest] = field(default_factory=list)
