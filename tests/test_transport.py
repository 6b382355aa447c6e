"""Tests for the authenticating HTTP transport."""

from unittest.mock import Mock

import pytest
import requests
from requests.auth import HTTPBasicAuth

from forge_migrator.cancellation import CancelToken
from forge_migrator.exceptions import (
    AuthenticationError,
    MigrationCancelledError,
    MigrationError,
    NotFoundError,
    TransportError,
)
from forge_migrator.transport import HttpClient, TokenAuth, build_auth


def _client(session: Mock, auth: TokenAuth | None = None, cancel: CancelToken | None = None) -> HttpClient:
    return HttpClient(
        "https://git.example.com/api/v1/",
        cancel=cancel or CancelToken(),
        auth=auth,
        timeout=5.0,
        session=session,
    )


def _session(status: int = 200, payload: object = None, reason: str = "OK") -> Mock:
    session = Mock()
    session.headers = {}
    response = Mock(status_code=status, reason=reason)
    response.json.return_value = payload
    session.get.return_value = response
    return session


@pytest.mark.unit
class TestTokenAuth:
    def test_sets_authorization_header(self) -> None:
        request = requests.Request("GET", "https://git.example.com/api/v1/user").prepare()
        TokenAuth("abc123")(request)
        assert request.headers["Authorization"] == "token abc123"

    def test_custom_scheme(self) -> None:
        request = requests.Request("GET", "https://git.example.com").prepare()
        TokenAuth("abc123", scheme="Bearer")(request)
        assert request.headers["Authorization"] == "Bearer abc123"

    def test_repr_hides_token(self) -> None:
        assert "abc123" not in repr(TokenAuth("abc123"))


@pytest.mark.unit
class TestBuildAuth:
    def test_token_preferred(self) -> None:
        assert isinstance(build_auth("bob", "pw", "abc123"), TokenAuth)

    def test_basic_auth(self) -> None:
        auth = build_auth("bob", "pw")
        assert isinstance(auth, HTTPBasicAuth)
        assert (auth.username, auth.password) == ("bob", "pw")

    def test_username_alone_is_a_token(self) -> None:
        request = requests.Request("GET", "https://git.example.com").prepare()
        auth = build_auth("abc123")
        assert auth is not None
        auth(request)
        assert request.headers["Authorization"] == "token abc123"

    def test_anonymous(self) -> None:
        assert build_auth() is None


@pytest.mark.unit
class TestHttpClient:
    def test_get_json_passes_auth_per_request(self) -> None:
        session = _session(payload={"name": "widgets"})
        auth = TokenAuth("abc123")
        client = _client(session, auth)

        assert client.get_json("/repos/alice/widgets", params={"page": 1}) == {"name": "widgets"}
        session.get.assert_called_once_with(
            "https://git.example.com/api/v1/repos/alice/widgets",
            params={"page": 1},
            auth=auth,
            timeout=5.0,
        )
        assert "Authorization" not in session.headers
        assert session.headers["Accept"] == "application/json"

    @pytest.mark.parametrize(
        ("status", "error"),
        [
            (401, AuthenticationError),
            (403, AuthenticationError),
            (404, NotFoundError),
            (429, TransportError),
            (502, TransportError),
            (503, TransportError),
        ],
    )
    def test_status_mapping(self, status: int, error: type[Exception]) -> None:
        client = _client(_session(status=status, reason="Error"))
        with pytest.raises(error):
            client.get_json("/repos/alice/widgets")

    def test_authentication_message(self) -> None:
        client = _client(_session(status=401, reason="Unauthorized"))
        with pytest.raises(AuthenticationError, match="^Authentication failed: 401 Unauthorized"):
            client.get_json("/repos/alice/widgets")

    def test_unexpected_status_is_not_retriable(self) -> None:
        client = _client(_session(status=422, reason="Unprocessable Entity"))
        with pytest.raises(MigrationError) as exc_info:
            client.get_json("/repos/alice/widgets")
        assert not isinstance(exc_info.value, TransportError)

    def test_connection_error(self) -> None:
        session = _session()
        session.get.side_effect = requests.ConnectionError("connection reset")
        with pytest.raises(TransportError, match="connection reset"):
            _client(session).get_json("/repos/alice/widgets")

    def test_invalid_json(self) -> None:
        session = _session()
        session.get.return_value.json.side_effect = ValueError("no JSON")
        with pytest.raises(TransportError, match="Invalid JSON"):
            _client(session).get_json("/repos/alice/widgets")

    def test_cancelled_before_request(self) -> None:
        session = _session()
        cancel = CancelToken()
        cancel.cancel("shutting down")
        with pytest.raises(MigrationCancelledError, match="shutting down"):
            _client(session, cancel=cancel).get_json("/repos/alice/widgets")
        session.get.assert_not_called()
