"""
Repository migration downloaders

Fetches the history of a repository hosted on Gogs, GitHub or GitLab
(issues, comments, labels, milestones, releases, pull requests, topics) as
platform-independent entities, and drives a migration task to Finished or
Failed.
"""

from __future__ import annotations

from .cancellation import CancelToken
from .cli import main
from .config import MigrationSettings
from .exceptions import (
    AuthenticationError,
    MigrationCancelledError,
    MigrationError,
    NotFoundError,
    NotSupportedError,
    TransportError,
)
from .migrate import MigrationResult, MigrationStats, migrate_repository
from .options import GitServiceType, MigrateOptions
from .registry import DownloaderRegistry, default_registry
from .tasks import MigrationTask, MigrationTaskRunner, TaskStatus
from .utils import setup_logging

# Package version
__version__ = "0.1.0"

__all__ = [
    "AuthenticationError",
    "CancelToken",
    "DownloaderRegistry",
    "GitServiceType",
    "MigrateOptions",
    "MigrationCancelledError",
    "MigrationError",
    "MigrationResult",
    "MigrationSettings",
    "MigrationStats",
    "MigrationTask",
    "MigrationTaskRunner",
    "NotFoundError",
    "NotSupportedError",
    "TaskStatus",
    "TransportError",
    "default_registry",
    "main",
    "migrate_repository",
    "setup_logging",
]
