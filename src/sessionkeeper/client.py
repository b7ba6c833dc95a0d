"""HTTP session client for the backend's cookie-based login/logout API.

The client never stores the session credential. ``login`` returns a
``SessionCredential`` and every later call takes it as an argument, sending it
as an explicit ``Cookie`` header.

Example::

    client = SessionClient("https://api.example.com")
    credential = client.login(LoginCredentials("ops@example.com", "secret"))
    client.verify(credential)
    client.logout(credential)
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

import requests

from sessionkeeper.config import DEFAULT_USER_AGENT
from sessionkeeper.exceptions import RejectedError, TransportError
from sessionkeeper.logging import get_logger

if TYPE_CHECKING:
    from sessionkeeper.config import KeepAliveSettings

LOG = get_logger(__name__)

NO_CACHE_HEADERS = {
    "Cache-Control": "no-cache, no-store, must-revalidate",
    "Pragma": "no-cache",
    "Expires": "0",
}


@dataclass(frozen=True)
class LoginCredentials:
    """Identity and secret sent to the login endpoint.

    Attributes:
        identity: Email address or username.
        password: Account password.
        identity_field: JSON field name carrying the identity.
        remember_me: Whether to ask the backend for a long-lived session.
    """

    identity: str
    password: str = field(repr=False)
    identity_field: str = "email"
    remember_me: bool = False

    def to_payload(self) -> dict[str, Any]:
        payload: dict[str, Any] = {
            self.identity_field: self.identity,
            "password": self.password,
        }
        if self.remember_me:
            payload["rememberMe"] = True
        return payload


@dataclass(frozen=True)
class SessionCredential:
    """Opaque session cookie returned by a successful login."""

    cookie: str = field(repr=False)

    def __post_init__(self) -> None:
        if not self.cookie:
            raise ValueError("session credential must not be empty")

    def headers(self) -> dict[str, str]:
        return {"Cookie": self.cookie}


def _backend_message(response: requests.Response) -> str | None:
    """Extract an error message from a JSON response body, if present."""
    try:
        data = response.json()
    except ValueError:
        return None
    if isinstance(data, dict):
        for key in ("message", "error"):
            value = data.get(key)
            if isinstance(value, str) and value:
                return value
    return None


# A comma only starts a new cookie when a name=value pair follows; commas
# inside attributes such as "Expires=Wed, 21 Oct 2026" do not.
_COOKIE_BOUNDARY = re.compile(r",\s*(?=[^;,=\s]+=)")


def _extract_cookie(response: requests.Response) -> str | None:
    """Join response cookies into a single ``Cookie`` header value."""
    pairs = [f"{name}={value}" for name, value in response.cookies.items()]
    if pairs:
        return "; ".join(pairs)
    raw = response.headers.get("Set-Cookie")
    if not raw:
        return None
    # requests folds repeated Set-Cookie headers into one comma-separated value.
    pairs = [
        cookie.split(";", 1)[0].strip() for cookie in _COOKIE_BOUNDARY.split(raw)
    ]
    return "; ".join(pair for pair in pairs if "=" in pair) or None


class SessionClient:
    """Login, verify and logout calls against the backend.

    Args:
        base_url: Backend base URL without trailing slash.
        login_path: Path of the authentication endpoint.
        verify_path: Path of the "who am I" endpoint.
        logout_path: Path of the logout endpoint.
        login_timeout: Seconds allowed for login and verify calls.
        logout_timeout: Seconds allowed for logout calls.
        user_agent: User-Agent header sent on every request.
        http: Optional pre-built ``requests.Session`` (used by tests).
    """

    def __init__(
        self,
        base_url: str,
        *,
        login_path: str = "/api/auth/login",
        verify_path: str = "/api/auth/me",
        logout_path: str = "/api/auth/logout",
        login_timeout: float = 10.0,
        logout_timeout: float = 5.0,
        user_agent: str = DEFAULT_USER_AGENT,
        http: requests.Session | None = None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.login_path = login_path
        self.verify_path = verify_path
        self.logout_path = logout_path
        self.login_timeout = login_timeout
        self.logout_timeout = logout_timeout
        self.http = http or requests.Session()
        self.http.headers.update(
            {
                "User-Agent": user_agent,
                "Accept": "application/json, text/plain, */*",
                "Accept-Language": "en-US,en;q=0.9",
                "X-Requested-With": "XMLHttpRequest",
            }
        )

    @classmethod
    def from_settings(cls, settings: KeepAliveSettings) -> SessionClient:
        return cls(
            settings.api_base_url,
            login_path=settings.login_path,
            verify_path=settings.verify_path,
            logout_path=settings.logout_path,
            login_timeout=settings.login_timeout_ms / 1000,
            logout_timeout=settings.logout_timeout_ms / 1000,
            user_agent=settings.user_agent,
        )

    def _url(self, path: str) -> str:
        return f"{self.base_url}/{path.lstrip('/')}"

    def _request(
        self,
        method: str,
        path: str,
        *,
        timeout: float,
        **kwargs: Any,
    ) -> requests.Response:
        """Send a request, mapping transport failures and non-2xx answers."""
        try:
            response = self.http.request(method, self._url(path), timeout=timeout, **kwargs)
        except requests.Timeout as exc:
            raise TransportError(f"{method} {path} timed out after {timeout}s") from exc
        except requests.RequestException as exc:
            raise TransportError(f"{method} {path} failed: {exc}") from exc

        if not response.ok:
            message = _backend_message(response) or response.reason or "request failed"
            raise RejectedError(message, status_code=response.status_code)
        return response

    def login(self, credentials: LoginCredentials) -> SessionCredential:
        """Authenticate and return the session credential.

        Raises:
            TransportError: On network failure or timeout.
            RejectedError: On non-2xx, ``success: false`` or a missing cookie.
        """
        response = self._request(
            "POST",
            self.login_path,
            json=credentials.to_payload(),
            timeout=self.login_timeout,
        )

        try:
            data = response.json()
        except ValueError:
            data = None
        if isinstance(data, dict) and data.get("success") is False:
            raise RejectedError(
                _backend_message(response) or "Login failed: invalid response from server",
                status_code=response.status_code,
            )

        cookie = _extract_cookie(response)
        if not cookie:
            raise RejectedError(
                "Login response did not set a session cookie",
                status_code=response.status_code,
            )

        LOG.debug("login_response_ok", status_code=response.status_code)
        return SessionCredential(cookie)

    def verify(self, credential: SessionCredential) -> str:
        """Confirm the credential is accepted; return the account label.

        Raises:
            TransportError: On network failure or timeout.
            RejectedError: On non-2xx or ``success: false``.
        """
        response = self._request(
            "GET",
            self.verify_path,
            headers={**credential.headers(), **NO_CACHE_HEADERS},
            timeout=self.login_timeout,
        )
        try:
            data = response.json()
        except ValueError:
            return "N/A"
        if not isinstance(data, dict):
            return "N/A"
        if data.get("success") is False:
            raise RejectedError(
                _backend_message(response) or "Session verification failed",
                status_code=response.status_code,
            )
        user = data.get("user") if isinstance(data.get("user"), dict) else data
        for key in ("email", "username"):
            value = user.get(key)
            if isinstance(value, str) and value:
                return value
        return "N/A"

    def logout(self, credential: SessionCredential, timeout: float | None = None) -> None:
        """Invalidate the session on the backend.

        Raises:
            TransportError: On network failure or timeout.
            RejectedError: On non-2xx.
        """
        self._request(
            "POST",
            self.logout_path,
            json={},
            headers=credential.headers(),
            timeout=timeout if timeout is not None else self.logout_timeout,
        )

    def close(self) -> None:
        self.http.close()
