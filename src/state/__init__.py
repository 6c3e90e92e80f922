"""
Session state and its on-disk persistence.

This package holds the wire/response models of the login flow and the
cookie jar that carries the session credential between runs.
"""

from .cookie_store import CookieStore, PersistenceError, SharedCookieJar
from .models import AuthResponse, IdentityRecord, PersistedJar, StoredCookie, VerifyResponse

__all__ = [
    "AuthResponse",
    "CookieStore",
    "IdentityRecord",
    "PersistedJar",
    "PersistenceError",
    "SharedCookieJar",
    "StoredCookie",
    "VerifyResponse",
]
