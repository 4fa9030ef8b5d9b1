"""Shared test fixtures for the Life Reboot stores and board server."""

import sys
from pathlib import Path

import pytest

# Ensure the project root (lifereboot/, board_server.py) is importable
sys.path.insert(0, str(Path(__file__).parent.parent))

from lifereboot.auth import AuthError, AuthUser, Session
from lifereboot.events import StoreEvents
from lifereboot.offline import Connectivity
from lifereboot.remote import RemoteStore, RemoteError, SQLiteRemote

USER_ID = "user-1"
DAY = "2024-01-01"


class FlakyRemote(RemoteStore):
    """
    Wraps a real remote, counting calls. With ``fail`` set every call raises
    RemoteError (``fail_on`` limits the failure to some operations, ``fail_table``
    to one table).
    """

    def __init__(self, inner: RemoteStore):
        self.inner = inner
        self.fail = False
        self.fail_on = None
        self.fail_table = None
        self.calls = []

    def _call(self, op, *args, **kwargs):
        self.calls.append((op, args[0] if args else None))
        if (self.fail and (self.fail_on is None or op in self.fail_on)
                and (self.fail_table is None or args[:1] == (self.fail_table,))):
            raise RemoteError("network down")
        return getattr(self.inner, op)(*args, **kwargs)

    def select(self, *args, **kwargs):
        return self._call("select", *args, **kwargs)

    def select_one(self, *args, **kwargs):
        return self._call("select_one", *args, **kwargs)

    def insert(self, *args, **kwargs):
        return self._call("insert", *args, **kwargs)

    def update(self, *args, **kwargs):
        return self._call("update", *args, **kwargs)

    def delete(self, *args, **kwargs):
        return self._call("delete", *args, **kwargs)

    def writes(self):
        return [c for c in self.calls if c[0] in ("insert", "update", "delete")]


class FakeAuth:
    """In-memory auth service: ``token-<user>`` resolves to ``<user>``."""

    def __init__(self):
        self.users = {"a@example.com": ("secret", USER_ID)}
        self.signed_out = []
        self.reset_requests = []

    def get_user(self, access_token):
        if not access_token.startswith("token-"):
            raise AuthError("Invalid JWT", status=401)
        user_id = access_token[len("token-"):]
        return AuthUser(id=user_id, email=f"{user_id}@example.com")

    def sign_in_with_password(self, email, password):
        known = self.users.get(email)
        if not known or known[0] != password:
            raise AuthError("Invalid login credentials", status=400)
        return Session(access_token=f"token-{known[1]}", user=AuthUser(id=known[1], email=email))

    def sign_in_with_oauth(self, provider, redirect_to=None):
        return f"https://auth.example.com/authorize?provider={provider}"

    def sign_up(self, email, password):
        self.users[email] = (password, f"new-{len(self.users)}")
        return None

    def sign_out(self, access_token=None):
        self.signed_out.append(access_token)

    def reset_password_for_email(self, email, redirect_to=None):
        if not email:
            raise AuthError("Email is required")
        self.reset_requests.append(email)


@pytest.fixture
def sqlite_remote(tmp_path):
    return SQLiteRemote(str(tmp_path / "remote.db"))


@pytest.fixture
def remote(sqlite_remote):
    return FlakyRemote(sqlite_remote)


@pytest.fixture
def events():
    return StoreEvents()


@pytest.fixture
def connectivity(tmp_path, remote, events):
    return Connectivity(str(tmp_path / "local.db"), remote, events=events)


@pytest.fixture
def fake_auth():
    return FakeAuth()
