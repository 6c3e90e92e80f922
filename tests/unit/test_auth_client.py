from __future__ import annotations

from typing import Any, Dict, List
from urllib.parse import parse_qs

import httpx
import pytest

from common.auth_client import (
    AuthClient,
    AuthDecodeError,
    AuthHttpError,
    AuthTransportError,
)
from state.cookie_store import SharedCookieJar
from state.models import AuthResponse, StoredCookie, VerifyResponse


def _form(request: httpx.Request) -> Dict[str, str]:
    return {k: v[0] for k, v in parse_qs(request.content.decode()).items()}


def _client(handler) -> httpx.Client:
    return httpx.Client(transport=httpx.MockTransport(handler), timeout=10.0)


def test_check_existing_session_empty_jar(config):
    with AuthClient(config, SharedCookieJar(), client=_client(lambda r: httpx.Response(500))) as auth:
        assert auth.check_existing_session() == (False, "")


def test_check_existing_session_finds_cookie(config):
    jar = SharedCookieJar()
    jar.set_cookie(StoredCookie(name="id", value="tok-1", domain="127.0.0.1", path="/").to_cookie())

    with AuthClient(config, jar, client=_client(lambda r: httpx.Response(500))) as auth:
        assert auth.check_existing_session() == (True, "tok-1")


def test_check_existing_session_ignores_other_hosts(config):
    jar = SharedCookieJar()
    jar.set_cookie(StoredCookie(name="id", value="tok-1", domain="example.com", path="/").to_cookie())

    with AuthClient(config, jar, client=_client(lambda r: httpx.Response(500))) as auth:
        assert auth.check_existing_session() == (False, "")


def test_login_posts_form_and_parses_session(config):
    seen: List[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(200, json={"session": "abc123"})

    with AuthClient(config, SharedCookieJar(), client=_client(handler)) as auth:
        resp = auth.login("user@example.com")

    assert resp == AuthResponse(session="abc123")
    (req,) = seen
    assert req.method == "POST"
    assert str(req.url) == "http://127.0.0.1:8000/login"
    assert req.headers["accept"] == "application/json"
    assert req.headers["content-type"] == "application/x-www-form-urlencoded"
    assert _form(req) == {"email": "user@example.com"}


def test_login_non_json_raises_decode_error(config):
    def handler(_: httpx.Request) -> httpx.Response:
        return httpx.Response(200, text="<html>oops</html>")

    with AuthClient(config, SharedCookieJar(), client=_client(handler)) as auth:
        with pytest.raises(AuthDecodeError) as ei:
            auth.login("user@example.com")

    assert "login response" in str(ei.value)
    assert ei.value.__cause__ is not None


def test_login_missing_field_raises_decode_error(config):
    def handler(_: httpx.Request) -> httpx.Response:
        return httpx.Response(200, json={"unexpected": True})

    with AuthClient(config, SharedCookieJar(), client=_client(handler)) as auth:
        with pytest.raises(AuthDecodeError):
            auth.login("user@example.com")


def test_login_http_error_with_unusable_body(config):
    def handler(_: httpx.Request) -> httpx.Response:
        return httpx.Response(503, text="down for maintenance")

    with AuthClient(config, SharedCookieJar(), client=_client(handler)) as auth:
        with pytest.raises(AuthHttpError) as ei:
            auth.login("user@example.com")

    assert "HTTP 503" in str(ei.value)


def test_transport_failure_is_wrapped(config):
    calls = {"count": 0}

    def handler(request: httpx.Request) -> httpx.Response:
        calls["count"] += 1
        raise httpx.ConnectError("connection refused", request=request)

    with AuthClient(config, SharedCookieJar(), client=_client(handler)) as auth:
        with pytest.raises(AuthTransportError) as ei:
            auth.login("user@example.com")

    assert str(ei.value) == "Failed to send login request"
    assert isinstance(ei.value.__cause__, httpx.ConnectError)
    assert calls["count"] == 1  # single attempt, no retry


def test_confirm_goes_to_broker(config):
    seen: List[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(200, json={"id_token": "tok"})

    with AuthClient(config, SharedCookieJar(), client=_client(handler)) as auth:
        resp = auth.confirm("abc123", "000000")

    assert resp == VerifyResponse(id_token="tok")
    (req,) = seen
    assert str(req.url) == "http://127.0.0.1:3333/confirm"
    assert _form(req) == {"session": "abc123", "code": "000000"}


def test_confirm_decode_error_names_step(config):
    def handler(_: httpx.Request) -> httpx.Response:
        return httpx.Response(200, json={"session": "wrong-shape"})

    with AuthClient(config, SharedCookieJar(), client=_client(handler)) as auth:
        with pytest.raises(AuthDecodeError) as ei:
            auth.confirm("abc123", "000000")

    assert "confirmation response" in str(ei.value)


def test_claim_stores_session_cookie_in_shared_jar(config):
    def handler(request: httpx.Request) -> httpx.Response:
        assert _form(request) == {"id_token": "tok"}
        return httpx.Response(200, text="sess42", headers={"Set-Cookie": "id=sess42; Path=/"})

    jar = SharedCookieJar()
    with AuthClient(config, jar, client=_client(handler)) as auth:
        body = auth.claim("tok")
        assert auth.check_existing_session() == (True, "sess42")

    assert body == "sess42"
    assert jar.lookup("127.0.0.1", "/", "id") == "sess42"


def test_claim_rejected_raises(config):
    def handler(_: httpx.Request) -> httpx.Response:
        return httpx.Response(401, text="bad token")

    with AuthClient(config, SharedCookieJar(), client=_client(handler)) as auth:
        with pytest.raises(AuthHttpError):
            auth.claim("tok")


def test_whoami_sends_session_cookie_after_claim(config):
    seen: Dict[str, Any] = {}

    def handler(request: httpx.Request) -> httpx.Response:
        if request.url.path == "/claim":
            return httpx.Response(200, text="sess42", headers={"Set-Cookie": "id=sess42; Path=/"})
        seen["cookie"] = request.headers.get("cookie")
        seen["method"] = request.method
        return httpx.Response(200, json={"email": "a@b.com"})

    with AuthClient(config, SharedCookieJar(), client=_client(handler)) as auth:
        auth.claim("tok")
        identity = auth.whoami()

    assert identity.email == "a@b.com"
    assert identity.authenticated
    assert seen == {"cookie": "id=sess42", "method": "GET"}


def test_whoami_null_email_is_not_an_error(config):
    def handler(_: httpx.Request) -> httpx.Response:
        return httpx.Response(200, json={"email": None})

    with AuthClient(config, SharedCookieJar(), client=_client(handler)) as auth:
        identity = auth.whoami()

    assert identity.email is None
    assert not identity.authenticated


def test_whoami_absent_email_is_not_an_error(config):
    def handler(_: httpx.Request) -> httpx.Response:
        return httpx.Response(200, json={})

    with AuthClient(config, SharedCookieJar(), client=_client(handler)) as auth:
        assert auth.whoami().email is None


def test_whoami_non_json_raises_decode_error(config):
    def handler(_: httpx.Request) -> httpx.Response:
        return httpx.Response(200, text="not json")

    with AuthClient(config, SharedCookieJar(), client=_client(handler)) as auth:
        with pytest.raises(AuthDecodeError) as ei:
            auth.whoami()

    assert "user data" in str(ei.value)


def test_injected_client_is_not_closed(config):
    client = _client(lambda r: httpx.Response(200, json={}))
    with AuthClient(config, SharedCookieJar(), client=client):
        pass
    assert not client.is_closed
