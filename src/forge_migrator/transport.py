"""HTTP transport shared by the REST based downloaders.

Credentials are attached per request by a `requests.auth.AuthBase` wrapper
instead of being stored on the session, so a session can be shared and
logged without leaking them.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any

from typing_extensions import override

import requests
from requests.auth import AuthBase, HTTPBasicAuth

from .exceptions import AuthenticationError, MigrationError, NotFoundError, TransportError

if TYPE_CHECKING:
    from .cancellation import CancelToken

logger: logging.Logger = logging.getLogger(__name__)

_RETRIABLE_STATUS_CODES: frozenset[int] = frozenset({408, 429, 500, 502, 503, 504})


class TokenAuth(AuthBase):
    """Attach an access token as `Authorization: <scheme> <token>`."""

    def __init__(self, token: str, scheme: str = "token") -> None:
        self._token: str = token
        self._scheme: str = scheme

    @override
    def __call__(self, r: requests.PreparedRequest) -> requests.PreparedRequest:
        r.headers["Authorization"] = f"{self._scheme} {self._token}"
        return r

    @override
    def __repr__(self) -> str:
        return f"TokenAuth(scheme={self._scheme!r}, token=***)"


def build_auth(username: str = "", password: str = "", token: str = "") -> AuthBase | None:
    """Pick the authentication wrapper for the given credentials.

    A username without a password is treated as an access token, the way
    Gogs clients accept it.
    """
    if token:
        return TokenAuth(token)
    if username and password:
        return HTTPBasicAuth(username, password)
    if username:
        return TokenAuth(username)
    return None


class HttpClient:
    """Minimal JSON-over-HTTP client bound to one API base URL."""

    def __init__(
        self,
        base_url: str,
        *,
        cancel: CancelToken,
        auth: AuthBase | None = None,
        timeout: float = 30.0,
        session: requests.Session | None = None,
    ) -> None:
        self.base_url: str = base_url.rstrip("/")
        self._auth: AuthBase | None = auth
        self._timeout: float = timeout
        self._cancel: CancelToken = cancel
        self._session: requests.Session = session if session is not None else requests.Session()
        self._session.headers.update({"Accept": "application/json"})

    def get_json(self, path: str, params: dict[str, Any] | None = None) -> Any:  # noqa: ANN401 - JSON payload
        """GET `path` relative to the base URL and decode the JSON body.

        Raises:
            MigrationCancelledError: If the migration was cancelled
            AuthenticationError: On 401/403
            NotFoundError: On 404
            TransportError: On connection problems, timeouts, 429 and 5xx
            MigrationError: On any other unexpected status
        """
        self._cancel.raise_if_cancelled()

        url = f"{self.base_url}{path}"
        try:
            response = self._session.get(url, params=params, auth=self._auth, timeout=self._timeout)
        except requests.RequestException as e:
            msg = f"Request to {url} failed: {e}"
            raise TransportError(msg) from e

        self._raise_for_status(response, url)

        try:
            return response.json()
        except ValueError as e:
            msg = f"Invalid JSON response from {url}"
            raise TransportError(msg) from e

    @staticmethod
    def _raise_for_status(response: requests.Response, url: str) -> None:
        status = response.status_code
        if status < 400:
            return
        if status in (401, 403):
            msg = f"Authentication failed: {status} {response.reason} for {url}"
            raise AuthenticationError(msg)
        if status == 404:
            msg = f"Not found: {url}"
            raise NotFoundError(msg)
        if status in _RETRIABLE_STATUS_CODES:
            msg = f"Remote service error: {status} {response.reason} for {url}"
            raise TransportError(msg)
        msg = f"Unexpected response: {status} {response.reason} for {url}"
        raise MigrationError(msg)
