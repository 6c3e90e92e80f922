"""
Common utilities for the OTP login client.

Modules:
- auth_client: HTTP client for the login / confirm / claim / whoami calls
- config: endpoint and cookie-store configuration from the environment
- logger: loguru sink setup for the CLI
"""

__all__ = [
    "auth_client",
    "config",
    "logger",
]
