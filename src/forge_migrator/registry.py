"""Registry resolving a migration request to a platform Downloader."""

from __future__ import annotations

import logging
import threading
from typing import TYPE_CHECKING

from .downloaders import GithubDownloaderFactory, GitlabDownloaderFactory, GogsDownloaderFactory, PlainGitDownloader
from .exceptions import InvalidCloneAddressError
from .utils import parse_clone_address, sanitize_url

if TYPE_CHECKING:
    from .cancellation import CancelToken
    from .config import MigrationSettings
    from .options import MigrateOptions
    from .protocols import Downloader, DownloaderFactory

logger: logging.Logger = logging.getLogger(__name__)


class DownloaderRegistry:
    """Ordered, append-only list of downloader factories.

    Factories are registered once at process start. The first factory whose
    match() accepts a request wins, so registration order decides between
    factories that could claim the same host.
    """

    def __init__(self) -> None:
        self._lock: threading.Lock = threading.Lock()
        self._factories: tuple[DownloaderFactory, ...] = ()

    def register(self, factory: DownloaderFactory) -> None:
        with self._lock:
            self._factories = (*self._factories, factory)
        logger.debug(f"Registered downloader factory for {factory.git_service_type.value}")

    @property
    def factories(self) -> tuple[DownloaderFactory, ...]:
        """Snapshot of the registered factories in registration order."""
        return self._factories

    def match(self, opts: MigrateOptions) -> DownloaderFactory | None:
        """Return the first factory accepting the request, or None."""
        for factory in self._factories:
            if factory.match(opts):
                return factory
        return None

    def new_downloader(self, opts: MigrateOptions, settings: MigrationSettings, cancel: CancelToken) -> Downloader:
        """Build the Downloader for a request.

        Falls back to PlainGitDownloader when no factory matches; only the
        repository itself is migrated then.

        Raises:
            InvalidCloneAddressError: If the clone address cannot be parsed
        """
        factory = self.match(opts)
        if factory is not None:
            logger.info(f"Using {factory.git_service_type.value} downloader for {sanitize_url(opts.clone_addr)}")
            return factory.new(opts, settings, cancel)

        logger.info(f"No downloader matches {sanitize_url(opts.clone_addr)}, migrating git data only")
        try:
            _, owner, name = parse_clone_address(opts.clone_addr)
        except InvalidCloneAddressError:
            if not opts.repo_name:
                raise
            owner, name = "", opts.repo_name
        return PlainGitDownloader(opts, owner, name)


def default_registry() -> DownloaderRegistry:
    """Build the registry with every bundled platform.

    GitHub and GitLab also claim unlabeled requests by host name, Gogs only
    answers to an explicit service type.
    """
    registry = DownloaderRegistry()
    registry.register(GithubDownloaderFactory())
    registry.register(GitlabDownloaderFactory())
    registry.register(GogsDownloaderFactory())
    return registry
