"""
Utility functions for the repository migration downloaders.
"""

from __future__ import annotations

import datetime as dt
import logging
import re
from urllib.parse import urlsplit, urlunsplit

from .exceptions import InvalidCloneAddressError

# scheme://user[:password]@  ->  scheme://
_URL_USERINFO_RE: re.Pattern[str] = re.compile(r"\b([a-zA-Z][a-zA-Z0-9+.-]*://)[^/?#\s]+@")
# Bare user:password@host without a scheme
_BARE_USERINFO_RE: re.Pattern[str] = re.compile(r"(?<![\w/:@.-])[^\s/@:'\"]+:[^\s/@'\"]+@(?=[\w.-])")


def setup_logging(*, verbose: bool = False) -> None:
    """Configure logging for the migration process."""
    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(
        level=level,
        format="%(asctime)s - %(levelname)s - %(name)s - %(message)s",
        handlers=[logging.StreamHandler(), logging.FileHandler("migration.log", mode="a")],
    )


def sanitize_url(url: str) -> str:
    """Remove user info (username, password, token) from a URL.

    Returns the input unchanged when it is not an absolute URL.
    """
    try:
        parts = urlsplit(url)
    except ValueError:
        return url
    if not parts.scheme or "@" not in parts.netloc:
        return url
    netloc = parts.netloc.rsplit("@", 1)[1]
    return urlunsplit((parts.scheme, netloc, parts.path, parts.query, parts.fragment))


def sanitize_credentials(text: str, clone_addr: str | None = None) -> str:
    """Strip credentials from every URL appearing in `text`.

    The clone address is replaced first so that tokens containing characters
    the generic patterns do not recognize are still removed.
    """
    result = text
    if clone_addr:
        sanitized_addr = sanitize_url(clone_addr)
        if sanitized_addr != clone_addr:
            result = result.replace(clone_addr, sanitized_addr)
    result = _URL_USERINFO_RE.sub(r"\1", result)
    return _BARE_USERINFO_RE.sub("", result)


def parse_clone_address(clone_addr: str, *, nested_owner: bool = False) -> tuple[str, str, str]:
    """Split a clone address into (base_url, owner, name).

    By default the last two path segments are owner and name and any leading
    segments belong to the base URL (services installed under a sub-path).
    With nested_owner=True (GitLab groups) everything before the name is the
    owner and the base URL is the bare host.

    Raises:
        InvalidCloneAddressError: If the address is not a URL with at least two path segments
    """
    try:
        parts = urlsplit(clone_addr.strip())
        port = parts.port
    except ValueError as e:
        msg = f"Invalid clone address: {sanitize_url(clone_addr)}"
        raise InvalidCloneAddressError(msg) from e

    if not parts.scheme or not parts.hostname:
        msg = f"Invalid clone address: {sanitize_url(clone_addr)}"
        raise InvalidCloneAddressError(msg)

    segments = [segment for segment in parts.path.split("/") if segment]
    if len(segments) < 2:
        msg = f"Clone address must contain owner and repository name: {sanitize_url(clone_addr)}"
        raise InvalidCloneAddressError(msg)

    name = segments[-1].removesuffix(".git")
    if not name:
        msg = f"Clone address has an empty repository name: {sanitize_url(clone_addr)}"
        raise InvalidCloneAddressError(msg)

    host = parts.hostname if port is None else f"{parts.hostname}:{port}"
    if nested_owner:
        owner = "/".join(segments[:-1])
        base_path = ""
    else:
        owner = segments[-2]
        base_path = "/".join(segments[:-2])

    base_url = f"{parts.scheme}://{host}"
    if base_path:
        base_url = f"{base_url}/{base_path}"
    return base_url, owner, name


def normalize_color(color: str | None) -> str:
    """Normalize a label color to lowercase hex without the '#' prefix."""
    if not color:
        return ""
    return color.strip().lstrip("#").lower()


def parse_timestamp(value: str | dt.datetime | None) -> dt.datetime | None:
    """Parse an ISO 8601 timestamp (or date) into an aware datetime.

    Naive values are assumed to be UTC. Empty values give None.
    """
    if value is None or value == "":
        return None
    if isinstance(value, dt.datetime):
        timestamp = value
    else:
        timestamp = dt.datetime.fromisoformat(value.replace("Z", "+00:00"))
    if timestamp.tzinfo is None:
        timestamp = timestamp.replace(tzinfo=dt.UTC)
    return timestamp


def synthesize_email(login: str, base_url: str) -> str:
    """Build a placeholder email for platforms that do not expose one."""
    host = urlsplit(base_url).hostname or "localhost"
    return f"{login}@noreply.{host}"
