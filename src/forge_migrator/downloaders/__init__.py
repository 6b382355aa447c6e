"""Platform specific Downloader implementations and their factories."""

from __future__ import annotations

from .github import GithubDownloader, GithubDownloaderFactory
from .gitlab import GitlabDownloader, GitlabDownloaderFactory
from .gogs import GogsDownloader, GogsDownloaderFactory
from .plain_git import PlainGitDownloader

__all__ = [
    "GithubDownloader",
    "GithubDownloaderFactory",
    "GitlabDownloader",
    "GitlabDownloaderFactory",
    "GogsDownloader",
    "GogsDownloaderFactory",
    "PlainGitDownloader",
]
