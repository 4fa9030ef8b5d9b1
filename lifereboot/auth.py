"""
Auth service client (GoTrue-compatible endpoints under ``<url>/auth/v1``).

Sign-in, sign-up, sign-out, password reset and session lookup. Every call
either returns data or raises AuthError with a message fit to show a user.
"""
import logging
import time
from dataclasses import dataclass, field
from typing import Optional, Dict, Any
from urllib.parse import urlencode

import requests

logger = logging.getLogger(__name__)

OAUTH_PROVIDERS = ("google", "github", "apple", "facebook")


class AuthError(Exception):
    """Auth call failed; ``str(e)`` is human-readable."""

    def __init__(self, message: str, status: Optional[int] = None):
        super().__init__(message)
        self.message = message
        self.status = status


@dataclass
class AuthUser:
    id: str
    email: str = ""
    metadata: Dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "AuthUser":
        return cls(
            id=str(data.get("id", "")),
            email=data.get("email") or "",
            metadata=data.get("user_metadata") or {},
        )

    def to_dict(self) -> Dict[str, Any]:
        return {"id": self.id, "email": self.email}


@dataclass
class Session:
    access_token: str
    refresh_token: str = ""
    expires_at: Optional[float] = None
    user: Optional[AuthUser] = None

    @property
    def expired(self) -> bool:
        return self.expires_at is not None and time.time() >= self.expires_at

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Session":
        expires_at = data.get("expires_at")
        if expires_at is None and data.get("expires_in"):
            expires_at = time.time() + float(data["expires_in"])
        user = data.get("user")
        return cls(
            access_token=data.get("access_token", ""),
            refresh_token=data.get("refresh_token", ""),
            expires_at=expires_at,
            user=AuthUser.from_dict(user) if user else None,
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "access_token": self.access_token,
            "refresh_token": self.refresh_token,
            "expires_at": self.expires_at,
            "user": self.user.to_dict() if self.user else None,
        }


class AuthClient:
    """Talks to the hosted auth service; holds the current session, if any."""

    def __init__(self, url: str, api_key: str, site_url: str = "http://localhost:3000",
                 timeout: float = 10.0, session: Optional[requests.Session] = None):
        self.base_url = url.rstrip("/") + "/auth/v1"
        self.site_url = site_url.rstrip("/")
        self.timeout = timeout
        self.http = session or requests.Session()
        self.http.headers.update({"apikey": api_key, "Content-Type": "application/json"})
        self.session: Optional[Session] = None

    def _request(self, method: str, path: str, json=None, params=None,
                 token: Optional[str] = None) -> Dict[str, Any]:
        headers = {"Authorization": f"Bearer {token}"} if token else None
        try:
            resp = self.http.request(
                method,
                f"{self.base_url}/{path}",
                json=json,
                params=params,
                headers=headers,
                timeout=self.timeout,
            )
        except requests.RequestException as e:
            logger.error(f"Auth request {path} failed: {e}")
            raise AuthError("Could not reach the authentication service. Please try again.")

        if resp.status_code >= 400:
            try:
                body = resp.json() or {}
            except ValueError:
                body = {}
            message = (
                body.get("error_description")
                or body.get("msg")
                or body.get("message")
                or body.get("error")
                or f"Authentication failed (HTTP {resp.status_code})"
            )
            raise AuthError(message, status=resp.status_code)

        if not resp.content:
            return {}
        return resp.json()

    # ── sessions ──

    def get_session(self) -> Optional[Session]:
        """The current session, or None when signed out or expired."""
        if self.session and self.session.expired:
            self.session = None
        return self.session

    def get_user(self, access_token: str) -> AuthUser:
        """Resolve an access token to its user (raises AuthError when invalid)."""
        if not access_token:
            raise AuthError("Not signed in", status=401)
        return AuthUser.from_dict(self._request("GET", "user", token=access_token))

    def refresh(self, refresh_token: str) -> Session:
        data = self._request("POST", "token", params={"grant_type": "refresh_token"},
                             json={"refresh_token": refresh_token})
        self.session = Session.from_dict(data)
        return self.session

    # ── sign-in / sign-up ──

    def sign_in_with_password(self, email: str, password: str) -> Session:
        if not email or not password:
            raise AuthError("Email and password are required")
        data = self._request("POST", "token", params={"grant_type": "password"},
                             json={"email": email.strip(), "password": password})
        self.session = Session.from_dict(data)
        logger.info(f"Signed in {email}")
        return self.session

    def sign_in_with_oauth(self, provider: str, redirect_to: Optional[str] = None) -> str:
        """Return the provider's authorize URL; the browser completes the flow."""
        provider = (provider or "").lower()
        if provider not in OAUTH_PROVIDERS:
            raise AuthError(f"Unsupported sign-in provider: {provider}")
        query = urlencode({
            "provider": provider,
            "redirect_to": redirect_to or f"{self.site_url}/auth/callback",
        })
        return f"{self.base_url}/authorize?{query}"

    def sign_up(self, email: str, password: str) -> Optional[Session]:
        """
        Register an account. Returns a session when the service signs the user
        in immediately, None when it waits for email confirmation.
        """
        if not email or not password:
            raise AuthError("Email and password are required")
        data = self._request("POST", "signup", json={"email": email.strip(), "password": password})
        if data.get("access_token"):
            self.session = Session.from_dict(data)
            return self.session
        return None

    def sign_out(self, access_token: Optional[str] = None) -> None:
        token = access_token or (self.session.access_token if self.session else None)
        self.session = None
        if token:
            self._request("POST", "logout", token=token)

    def reset_password_for_email(self, email: str, redirect_to: Optional[str] = None) -> None:
        if not email:
            raise AuthError("Email is required")
        self._request(
            "POST", "recover",
            params={"redirect_to": redirect_to or f"{self.site_url}/reset-password"},
            json={"email": email.strip()},
        )
        logger.info(f"Password reset requested for {email}")
