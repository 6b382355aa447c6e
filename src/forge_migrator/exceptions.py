"""
Custom exception classes for the repository migration downloaders.
"""

from __future__ import annotations


class MigrationError(Exception):
    """Base exception for migration errors."""


class NotSupportedError(MigrationError):
    """Raised when a platform cannot provide a facet (releases, pull requests, ...).

    This is a normal outcome, not a failure: the facet is recorded as not
    migrated and the migration continues.
    """

    def __init__(self, operation: str = "") -> None:
        self.operation: str = operation
        msg = f"{operation} is not supported" if operation else "operation is not supported"
        super().__init__(msg)


class TransportError(MigrationError):
    """Raised on transient network or server failures. Retriable."""


class AuthenticationError(MigrationError):
    """Raised when the remote service rejects the supplied credentials."""


class NotFoundError(MigrationError):
    """Raised when a remote entity does not exist (or no longer exists)."""


class InvalidCloneAddressError(MigrationError):
    """Raised when a clone address cannot be parsed into owner and repository."""


class MigrationCancelledError(MigrationError):
    """Raised when the caller cancelled the migration."""


class LocalPolicyError(MigrationError):
    """Base class for errors where the local side rejects the repository."""


class RepoAlreadyExistError(LocalPolicyError):
    """Raised when the target repository name is already taken."""

    def __init__(self, owner: str, name: str) -> None:
        self.owner: str = owner
        self.name: str = name
        super().__init__(f"repository already exists [uname: {owner}, name: {name}]")


class NameReservedError(LocalPolicyError):
    """Raised when the target repository name is reserved."""

    def __init__(self, name: str) -> None:
        self.name: str = name
        super().__init__(f"name is reserved [name: {name}]")


class NamePatternNotAllowedError(LocalPolicyError):
    """Raised when the target repository name matches a disallowed pattern."""

    def __init__(self, pattern: str) -> None:
        self.pattern: str = pattern
        super().__init__(f"name pattern is not allowed [pattern: {pattern}]")


class ReachLimitOfRepoError(LocalPolicyError):
    """Raised when the owner cannot create more repositories."""

    def __init__(self, limit: int) -> None:
        self.limit: int = limit
        super().__init__(f"user has reached maximum limit of repositories [limit: {limit}]")
