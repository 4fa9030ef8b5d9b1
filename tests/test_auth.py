"""
Tests for the auth service client with a mocked HTTP session.
"""
from unittest.mock import MagicMock

import pytest
import requests

from lifereboot.auth import AuthClient, AuthError


def _response(status=200, body=None):
    resp = MagicMock()
    resp.status_code = status
    resp.json.return_value = body
    resp.content = b"x" if body is not None else b""
    return resp


@pytest.fixture
def http():
    session = MagicMock()
    session.headers = {}
    return session


@pytest.fixture
def client(http):
    return AuthClient("https://auth.example.com", "anon-key",
                      site_url="https://app.example.com", session=http)


def test_sign_in_with_password(client, http):
    """Password grant stores the session"""
    http.request.return_value = _response(body={
        "access_token": "jwt", "refresh_token": "r", "expires_in": 3600,
        "user": {"id": "u1", "email": "a@example.com"},
    })

    session = client.sign_in_with_password("a@example.com ", "pw")

    method, url = http.request.call_args[0]
    kwargs = http.request.call_args[1]
    assert (method, url) == ("POST", "https://auth.example.com/auth/v1/token")
    assert kwargs["params"] == {"grant_type": "password"}
    assert kwargs["json"] == {"email": "a@example.com", "password": "pw"}
    assert session.user.id == "u1"
    assert client.get_session() is session
    assert http.headers["apikey"] == "anon-key"


def test_sign_in_error_message(client, http):
    """The service's description becomes the error text"""
    http.request.return_value = _response(400, {
        "error": "invalid_grant", "error_description": "Invalid login credentials",
    })
    with pytest.raises(AuthError, match="Invalid login credentials") as exc:
        client.sign_in_with_password("a@example.com", "bad")
    assert exc.value.status == 400
    assert client.get_session() is None


def test_sign_in_requires_credentials(client, http):
    with pytest.raises(AuthError):
        client.sign_in_with_password("", "pw")
    http.request.assert_not_called()


def test_network_failure(client, http):
    http.request.side_effect = requests.Timeout("slow")
    with pytest.raises(AuthError, match="Could not reach"):
        client.get_user("jwt")


def test_get_user(client, http):
    """Tokens are resolved with a bearer header"""
    http.request.return_value = _response(body={"id": "u1", "email": "a@example.com"})
    user = client.get_user("jwt")
    assert user.id == "u1"
    assert http.request.call_args[1]["headers"] == {"Authorization": "Bearer jwt"}


def test_get_user_without_token(client):
    with pytest.raises(AuthError) as exc:
        client.get_user("")
    assert exc.value.status == 401


def test_sign_up_waiting_for_confirmation(client, http):
    """No session until the email is confirmed"""
    http.request.return_value = _response(body={"id": "u2", "email": "b@example.com"})
    assert client.sign_up("b@example.com", "pw") is None


def test_oauth_url(client):
    """OAuth returns the provider's authorize URL"""
    url = client.sign_in_with_oauth("Google")
    assert url.startswith("https://auth.example.com/auth/v1/authorize?provider=google")
    assert "redirect_to=https%3A%2F%2Fapp.example.com%2Fauth%2Fcallback" in url
    with pytest.raises(AuthError):
        client.sign_in_with_oauth("myspace")


def test_reset_password(client, http):
    """Recovery mail redirects to the reset page"""
    http.request.return_value = _response()
    client.reset_password_for_email("a@example.com")
    kwargs = http.request.call_args[1]
    assert http.request.call_args[0][1].endswith("/auth/v1/recover")
    assert kwargs["params"]["redirect_to"] == "https://app.example.com/reset-password"


def test_sign_out_clears_session(client, http):
    http.request.return_value = _response(body={"access_token": "jwt"})
    client.sign_in_with_password("a@example.com", "pw")
    http.request.return_value = _response()
    client.sign_out()
    assert client.get_session() is None
    assert http.request.call_args[1]["headers"] == {"Authorization": "Bearer jwt"}


def test_refresh_replaces_session(client, http):
    """A refresh-token grant yields a new session"""
    http.request.return_value = _response(body={"access_token": "jwt2", "refresh_token": "r2"})
    session = client.refresh("r1")
    assert http.request.call_args[1]["params"] == {"grant_type": "refresh_token"}
    assert client.get_session() is session
    assert session.access_token == "jwt2"
