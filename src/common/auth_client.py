from __future__ import annotations

from typing import Any, Dict, Optional, Tuple, Type, TypeVar

import httpx
from loguru import logger
from pydantic import BaseModel, ValidationError

from state.cookie_store import SharedCookieJar
from state.models import AuthResponse, IdentityRecord, VerifyResponse

from .config import AuthConfig


_ACCEPT_JSON = {"Accept": "application/json"}

M = TypeVar("M", bound=BaseModel)


class AuthClientError(RuntimeError):
    """Base error for the login flow's remote calls."""


class AuthTransportError(AuthClientError):
    """Connection-level failure; the request never produced a response."""


class AuthDecodeError(AuthClientError):
    """Response body did not match the expected JSON shape."""


class AuthHttpError(AuthClientError):
    """Server answered with a non-2xx status that could not be used."""


class AuthClient:
    """
    Client for the email + one-time-code login flow.

    Notes
    - `login`, `claim` and `whoami` talk to the identity service (`rpc_addr`);
      `confirm` talks to the broker (`broker_addr`).
    - The underlying `httpx.Client` uses the shared jar as its cookie store, so
      the session cookie set by `claim` is captured into the jar and sent on
      every later request without further handling here.
    - One attempt per call. Any failure raises and ends the flow.
    """

    def __init__(
        self,
        config: AuthConfig,
        jar: SharedCookieJar,
        *,
        client: Optional[httpx.Client] = None,
    ) -> None:
        self._config = config
        self._jar = jar
        self._owns_client = client is None
        self._client = client or httpx.Client(timeout=config.timeout)
        # Bind the jar by reference; httpx wraps a CookieJar without copying it
        self._client.cookies = jar

    def close(self) -> None:
        if self._owns_client:
            self._client.close()

    def __enter__(self) -> "AuthClient":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    # --------------- Public API ---------------
    def check_existing_session(self) -> Tuple[bool, str]:
        """Look up the session cookie in the jar. No network access."""
        token = self._jar.lookup(self._config.rpc_endpoint, "/", self._config.session_cookie_name)
        if token:
            return (True, token)
        return (False, "")

    def login(self, email: str) -> AuthResponse:
        """Start a login for `email`; returns the pending-session id."""
        resp = self._send("POST", f"{self._config.rpc_addr}/login", "send login request", data={"email": email})
        return self._decode(resp, AuthResponse, "login response")

    def confirm(self, session: str, code: str) -> VerifyResponse:
        """Exchange the pending session and the emailed code for an id_token at the broker."""
        resp = self._send(
            "POST",
            f"{self._config.broker_addr}/confirm",
            "confirm session",
            data={"session": session, "code": code},
        )
        return self._decode(resp, VerifyResponse, "confirmation response")

    def claim(self, id_token: str) -> str:
        """
        Exchange `id_token` for a session cookie.

        The cookie lands in the shared jar as a side effect of the response.
        The returned text body is informational only.
        """
        resp = self._send("POST", f"{self._config.rpc_addr}/claim", "claim session", data={"id_token": id_token})
        if not resp.is_success:
            raise AuthHttpError(f"HTTP {resp.status_code} from claim: {resp.text[:200]}")
        return resp.text

    def whoami(self) -> IdentityRecord:
        """Ask the identity service who the current session belongs to."""
        resp = self._send("GET", f"{self._config.rpc_addr}/whoami", "send whoami request")
        return self._decode(resp, IdentityRecord, "user data")

    # --------------- Internal ---------------
    def _send(
        self,
        method: str,
        url: str,
        what: str,
        *,
        data: Optional[Dict[str, Any]] = None,
    ) -> httpx.Response:
        logger.debug("{} {}", method, url)
        try:
            resp = self._client.request(method, url, data=data, headers=_ACCEPT_JSON)
        except httpx.TransportError as exc:
            raise AuthTransportError(f"Failed to {what}") from exc
        logger.debug("{} {} -> HTTP {}", method, url, resp.status_code)
        return resp

    @staticmethod
    def _decode(resp: httpx.Response, model: Type[M], what: str) -> M:
        try:
            return model.model_validate(resp.json())
        except (ValueError, ValidationError) as exc:
            if not resp.is_success:
                raise AuthHttpError(f"HTTP {resp.status_code} while reading {what}: {resp.text[:200]}") from exc
            raise AuthDecodeError(f"Failed to parse {what} as JSON") from exc


__all__ = [
    "AuthClient",
    "AuthClientError",
    "AuthDecodeError",
    "AuthHttpError",
    "AuthTransportError",
]
