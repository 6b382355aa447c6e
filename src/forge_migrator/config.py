"""
Settings and credential lookup for the migration downloaders.
"""

from __future__ import annotations

import logging
import os
import re
import subprocess
from dataclasses import dataclass, field
from subprocess import CompletedProcess
from typing import Final

# Module-wide logger
logger: logging.Logger = logging.getLogger(__name__)

_ENV_PREFIX: Final[str] = "FORGE_MIGRATOR_"
_TOKEN_ENV_VAR: Final[str] = f"{_ENV_PREFIX}TOKEN"  # noqa: S105

DEFAULT_BATCH_SIZE: Final[int] = 100
DEFAULT_RETRY_DELAYS: Final[tuple[float, ...]] = (1.0, 2.0, 4.0)
DEFAULT_REQUEST_TIMEOUT: Final[float] = 30.0


class PassError(Exception):
    """Base class for pass-related errors."""


class InvalidPassPathError(PassError):
    """Raised when the pass path format is invalid or not in the store."""


class PassphraseRequiredError(PassError):
    """Raised when a GPG passphrase is required for the pass utility."""


@dataclass(frozen=True)
class MigrationSettings:
    """Tunables shared by every migration run in the process.

    Attributes:
        issue_batch_size: Issues requested per page (advisory for the platform)
        pull_request_batch_size: Pull requests requested per page
        retry_delays: Back-off delays in seconds; one retry per entry
        request_timeout: Timeout for a single HTTP request in seconds
    """

    issue_batch_size: int = DEFAULT_BATCH_SIZE
    pull_request_batch_size: int = DEFAULT_BATCH_SIZE
    retry_delays: tuple[float, ...] = field(default=DEFAULT_RETRY_DELAYS)
    request_timeout: float = DEFAULT_REQUEST_TIMEOUT

    @classmethod
    def from_env(cls, environ: dict[str, str] | None = None) -> MigrationSettings:
        """Read settings from FORGE_MIGRATOR_* environment variables.

        FORGE_MIGRATOR_RETRY_DELAYS is a comma separated list of seconds; an
        empty value disables retries.
        """
        env = os.environ if environ is None else environ

        def _int(name: str, default: int) -> int:
            raw = env.get(f"{_ENV_PREFIX}{name}")
            if raw is None or raw == "":
                return default
            value = int(raw)
            if value <= 0:
                msg = f"{_ENV_PREFIX}{name} must be positive, got {value}"
                raise ValueError(msg)
            return value

        raw_delays = env.get(f"{_ENV_PREFIX}RETRY_DELAYS")
        if raw_delays is None:
            retry_delays = DEFAULT_RETRY_DELAYS
        else:
            retry_delays = tuple(float(delay) for delay in raw_delays.split(",") if delay.strip())

        raw_timeout = env.get(f"{_ENV_PREFIX}REQUEST_TIMEOUT")
        request_timeout = float(raw_timeout) if raw_timeout else DEFAULT_REQUEST_TIMEOUT

        return cls(
            issue_batch_size=_int("ISSUE_BATCH_SIZE", DEFAULT_BATCH_SIZE),
            pull_request_batch_size=_int("PULL_REQUEST_BATCH_SIZE", DEFAULT_BATCH_SIZE),
            retry_delays=retry_delays,
            request_timeout=request_timeout,
        )


def _validate_pass_path(pass_path: str) -> None:
    if not re.fullmatch(r"(?:[A-Za-z0-9_-]+)(?:/[A-Za-z0-9_-]+)*", pass_path):
        msg = f"Invalid pass path: {pass_path}"
        raise ValueError(msg)


def _run_pass(pass_path: str, *, passphrase: str | None = None) -> CompletedProcess[str]:
    env = None
    if passphrase is not None:
        env = os.environ.copy() | {"PASSWORD_STORE_GPG_OPTS": "--pinentry-mode=loopback --passphrase-fd 0"}
    return subprocess.run(  # noqa: S603
        ["pass", pass_path], input=passphrase, capture_output=True, text=True, check=True, env=env
    )


def get_pass_value(pass_path: str) -> str:
    """Get a secret from the `pass` password store.

    When GPG needs a passphrase that no agent provides, ask for it on stdin
    and retry once with loopback pinentry.
    """
    _validate_pass_path(pass_path)

    try:
        result = _run_pass(pass_path)
    except subprocess.CalledProcessError as e:
        stderr = e.stderr.lower()
        if e.returncode == 1 and "not in the password store" in stderr:
            msg = f"Pass path '{pass_path}' not found or invalid."
            raise InvalidPassPathError(msg) from e
        if not (e.returncode == 2 and "gpg" in stderr and "public key decryption failed" in stderr):
            msg = f"Failed to get value from pass at '{pass_path}'.\nError: {e.stderr.strip()}\nReturn code: {e.returncode}"
            raise PassError(msg) from e

        # Non-interactive sessions (e.g. pytest) end up here with EOFError
        try:
            passphrase = input("Enter passphrase for GPG key used by pass: ")
        except EOFError as eof:
            msg = "Passphrase input was interrupted. Please run the command in an interactive session."
            raise PassphraseRequiredError(msg) from eof

        try:
            result = _run_pass(pass_path, passphrase=passphrase)
        except subprocess.CalledProcessError as retry_error:
            msg = (
                f"Failed to get value from pass at '{pass_path}' with passphrase.\n"
                f"Error: {retry_error.stderr.strip()}\n"
                f"Return code: {retry_error.returncode}"
            )
            raise PassphraseRequiredError(msg) from retry_error

    return result.stdout.strip()


def get_token(pass_path: str | None = None, environ: dict[str, str] | None = None) -> str | None:
    """Get the remote access token from a pass path or FORGE_MIGRATOR_TOKEN.

    Returns None when neither is set; the migration then runs anonymously.
    """
    if pass_path:
        return get_pass_value(pass_path)

    env = os.environ if environ is None else environ
    token = env.get(_TOKEN_ENV_VAR)
    if token:
        return token

    logger.debug("No access token specified, using anonymous access")
    return None
