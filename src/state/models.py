from __future__ import annotations

import time
from http.cookiejar import Cookie
from typing import List, Optional

from pydantic import BaseModel, Field


class AuthResponse(BaseModel):
    """Reply to `POST /login`: a pending-session id, not yet an authenticated token."""

    session: str


class VerifyResponse(BaseModel):
    """Reply to the broker's `POST /confirm`: bearer proof that the one-time code matched."""

    id_token: str


class IdentityRecord(BaseModel):
    """Reply to `GET /whoami`. `email` is None when the session did not authenticate."""

    email: Optional[str] = None

    @property
    def authenticated(self) -> bool:
        return bool(self.email)


class StoredCookie(BaseModel):
    """
    On-disk representation of a single cookie.

    Mirrors the subset of `http.cookiejar.Cookie` attributes needed to send the
    cookie back to the same host: identity (domain, path, name), value and the
    flags that govern whether the jar returns it for a request.
    """

    name: str
    value: Optional[str] = None
    domain: str
    path: str = "/"
    secure: bool = False
    expires: Optional[int] = Field(default=None, description="Unix timestamp; None for session cookies")
    http_only: bool = False
    domain_specified: bool = False
    path_specified: bool = True

    @classmethod
    def from_cookie(cls, cookie: Cookie) -> "StoredCookie":
        http_only = cookie.has_nonstandard_attr("HttpOnly") or cookie.has_nonstandard_attr("httponly")
        return cls(
            name=cookie.name,
            value=cookie.value,
            domain=cookie.domain,
            path=cookie.path,
            secure=bool(cookie.secure),
            expires=int(cookie.expires) if cookie.expires is not None else None,
            http_only=http_only,
            domain_specified=bool(cookie.domain_specified),
            path_specified=bool(cookie.path_specified),
        )

    def to_cookie(self) -> Cookie:
        return Cookie(
            version=0,
            name=self.name,
            value=self.value,
            port=None,
            port_specified=False,
            domain=self.domain,
            domain_specified=self.domain_specified,
            domain_initial_dot=self.domain.startswith("."),
            path=self.path,
            path_specified=self.path_specified,
            secure=self.secure,
            expires=self.expires,
            discard=self.expires is None,
            comment=None,
            comment_url=None,
            rest={"HttpOnly": None} if self.http_only else {},
        )

    def is_expired(self, now: Optional[float] = None) -> bool:
        if self.expires is None:
            return False
        return self.expires <= (time.time() if now is None else now)


class PersistedJar(BaseModel):
    """Top-level JSON document stored in the cookies file."""

    cookies: List[StoredCookie] = Field(default_factory=list)

    @classmethod
    def empty(cls) -> "PersistedJar":
        return cls()
