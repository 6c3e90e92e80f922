import os
import sys

import pytest


def pytest_configure():
    # Ensure `src/` is importable as top-level for `common.*` / `state.*` imports
    root = os.path.abspath(os.path.dirname(os.path.dirname(__file__)))
    src_path = os.path.join(root, "src")
    if src_path not in sys.path:
        sys.path.insert(0, src_path)


@pytest.fixture
def config(tmp_path):
    from common.config import AuthConfig

    return AuthConfig(
        rpc_addr="http://127.0.0.1:8000",
        broker_addr="http://127.0.0.1:3333",
        rpc_endpoint="127.0.0.1",
        session_cookie_name="id",
        cookies_path=tmp_path / "cookies.json",
    )
