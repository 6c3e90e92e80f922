from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Optional

import httpx


DEFAULT_RPC_ADDR = "http://127.0.0.1:8000"
DEFAULT_BROKER_ADDR = "http://127.0.0.1:3333"
DEFAULT_SESSION_COOKIE_NAME = "id"
DEFAULT_COOKIES_PATH = "cookies.json"
DEFAULT_TIMEOUT = 15.0

# Environment variable names
ENV_RPC_ADDR = "OTP_RPC_ADDR"
ENV_BROKER_ADDR = "OTP_BROKER_ADDR"
ENV_RPC_ENDPOINT = "OTP_RPC_ENDPOINT"  # cookie scope host; defaults to host of RPC addr
ENV_SESSION_COOKIE = "OTP_SESSION_COOKIE"
ENV_COOKIES_PATH = "OTP_COOKIES_PATH"
ENV_TIMEOUT = "OTP_TIMEOUT"


def _getenv(name: str, default: Optional[str] = None) -> Optional[str]:
    val = os.environ.get(name)
    return val if val not in (None, "") else default


def _host_of(addr: str) -> str:
    try:
        host = httpx.URL(addr).host
    except httpx.InvalidURL as ex:
        raise ValueError(f"Invalid service address: {addr!r}") from ex
    if not host:
        raise ValueError(f"Service address has no host (missing http://?): {addr!r}")
    return host


@dataclass(frozen=True)
class AuthConfig:
    """
    Endpoints and local paths used by the login flow.

    Fields
    - rpc_addr: base URL of the identity-issuing service (`/login`, `/claim`, `/whoami`).
    - broker_addr: base URL of the confirmation broker (`/confirm`).
    - rpc_endpoint: host the session cookie is scoped to (cookie domain).
    - session_cookie_name: name of the session cookie set by `/claim`.
    - cookies_path: JSON file holding the persisted cookie jar.
    - timeout: per-request transport timeout in seconds.
    """

    rpc_addr: str = DEFAULT_RPC_ADDR
    broker_addr: str = DEFAULT_BROKER_ADDR
    rpc_endpoint: str = "127.0.0.1"
    session_cookie_name: str = DEFAULT_SESSION_COOKIE_NAME
    cookies_path: Path = Path(DEFAULT_COOKIES_PATH)
    timeout: float = DEFAULT_TIMEOUT

    @classmethod
    def from_env(cls, **overrides: Any) -> "AuthConfig":
        """Build a config from `OTP_*` environment variables.

        Keyword overrides that are not None take precedence over the
        environment (CLI flags are passed through here).
        """
        values: dict[str, Any] = {
            "rpc_addr": _getenv(ENV_RPC_ADDR, DEFAULT_RPC_ADDR),
            "broker_addr": _getenv(ENV_BROKER_ADDR, DEFAULT_BROKER_ADDR),
            "rpc_endpoint": _getenv(ENV_RPC_ENDPOINT),
            "session_cookie_name": _getenv(ENV_SESSION_COOKIE, DEFAULT_SESSION_COOKIE_NAME),
            "cookies_path": _getenv(ENV_COOKIES_PATH, DEFAULT_COOKIES_PATH),
        }
        raw_timeout = _getenv(ENV_TIMEOUT)
        if raw_timeout is not None:
            try:
                values["timeout"] = float(raw_timeout)
            except ValueError as ex:
                raise ValueError(f"Invalid {ENV_TIMEOUT}: {raw_timeout!r}") from ex
        else:
            values["timeout"] = DEFAULT_TIMEOUT

        for name, val in overrides.items():
            if name not in values:
                raise TypeError(f"Unknown config field: {name}")
            if val is not None:
                values[name] = val

        rpc_addr = str(values["rpc_addr"]).rstrip("/")
        broker_addr = str(values["broker_addr"]).rstrip("/")
        rpc_host = _host_of(rpc_addr)
        _host_of(broker_addr)
        return cls(
            rpc_addr=rpc_addr,
            broker_addr=broker_addr,
            rpc_endpoint=values["rpc_endpoint"] or rpc_host,
            session_cookie_name=values["session_cookie_name"],
            cookies_path=Path(values["cookies_path"]),
            timeout=float(values["timeout"]),
        )


__all__ = [
    "AuthConfig",
    "DEFAULT_BROKER_ADDR",
    "DEFAULT_COOKIES_PATH",
    "DEFAULT_RPC_ADDR",
    "DEFAULT_SESSION_COOKIE_NAME",
]
