from __future__ import annotations

import json
import os
import time
from http.cookiejar import Cookie, CookieJar
from pathlib import Path
from typing import List, Optional, Set

from loguru import logger
from pydantic import ValidationError

from .models import PersistedJar, StoredCookie


class PersistenceError(RuntimeError):
    """Raised when the cookies file cannot be read, parsed or written."""


def _host_aliases(host: str) -> Set[str]:
    # cookiejar stores "host.local" for dotless hosts and ".host" for Domain= cookies
    host = host.lower().lstrip(".")
    aliases = {host, "." + host}
    if "." not in host:
        aliases |= {host + ".local", "." + host + ".local"}
    return aliases


def _same_host(cookie_domain: str, host: str) -> bool:
    return cookie_domain.lower() in _host_aliases(host)


class SharedCookieJar(CookieJar):
    """
    Cookie jar shared between the HTTP transport and the login flow.

    `CookieJar` already guards its own mutations (`set_cookie`,
    `extract_cookies`, which httpx calls after every response) with an
    internal re-entrant lock. That same lock is exposed as `lock` so manual
    lookups and saves serialise with the transport instead of racing it.
    """

    @property
    def lock(self):
        return self._cookies_lock

    def lookup(self, domain: str, path: str, name: str) -> Optional[str]:
        """Return the value of the cookie for (host, path, name), or None.

        `domain` is a plain host; the cookiejar spellings of that same host
        (`.host`, and `host.local` for dotless hosts) also match.
        """
        with self.lock:
            for cookie in self:
                if _same_host(cookie.domain, domain) and cookie.path == path and cookie.name == name:
                    return cookie.value
        return None

    def snapshot(self) -> List[Cookie]:
        with self.lock:
            return list(self)


def _dump_jar_json(jar: SharedCookieJar) -> str:
    # Deterministic JSON so unchanged jars produce identical files
    doc = PersistedJar(cookies=[StoredCookie.from_cookie(c) for c in jar.snapshot()])
    return json.dumps(doc.model_dump(), indent=2, sort_keys=True)


def _load_jar_json(text: str) -> PersistedJar:
    if not text.strip():
        # Created by an earlier run that never completed a claim
        return PersistedJar.empty()
    return PersistedJar.model_validate(json.loads(text))


class CookieStore:
    """
    File-backed persistence for the session cookie jar.

    Usage
    - `load()` returns a `SharedCookieJar`. A missing file is created empty and
      yields an empty jar; an existing file that is not a valid jar document
      raises `PersistenceError` rather than silently starting over.
    - `save(jar)` rewrites the whole file from the jar and flushes it to disk.
      Only called after a successful claim.
    """

    def __init__(self, path: os.PathLike[str] | str) -> None:
        self._path = Path(path)

    @property
    def path(self) -> Path:
        return self._path

    def exists(self) -> bool:
        return self._path.exists()

    def load(self) -> SharedCookieJar:
        jar = SharedCookieJar()

        if not self._path.exists():
            try:
                self._path.parent.mkdir(parents=True, exist_ok=True)
                self._path.touch()
            except OSError as ex:
                raise PersistenceError(f"Failed to create cookie store at {self._path}") from ex
            logger.debug("Created empty cookie store at {}", self._path)
            return jar

        try:
            raw = self._path.read_bytes()
        except OSError as ex:
            raise PersistenceError(f"Failed to read cookie store at {self._path}") from ex

        try:
            doc = _load_jar_json(raw.decode("utf-8"))
        except (ValueError, ValidationError) as ex:
            raise PersistenceError(f"Cookie store at {self._path} is not a valid cookie jar") from ex

        now = time.time()
        loaded = 0
        for stored in doc.cookies:
            if stored.is_expired(now):
                continue
            jar.set_cookie(stored.to_cookie())
            loaded += 1
        logger.debug("Loaded {} cookie(s) from {}", loaded, self._path)
        return jar

    def save(self, jar: SharedCookieJar) -> None:
        # Lock is held only while the jar is serialized, not during file I/O
        payload = _dump_jar_json(jar)
        try:
            with self._path.open("w", encoding="utf-8") as f:
                f.write(payload)
                f.flush()
                os.fsync(f.fileno())
        except OSError as ex:
            raise PersistenceError(f"Failed to write cookie store at {self._path}") from ex
        logger.debug("Saved cookie jar to {}", self._path)


__all__ = ["CookieStore", "PersistenceError", "SharedCookieJar"]
