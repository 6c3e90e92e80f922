from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Optional, Protocol

import httpx
import typer
from loguru import logger

from common.auth_client import AuthClient, AuthClientError
from common.config import AuthConfig
from common.logger import setup_logging
from state.cookie_store import CookieStore, PersistenceError
from state.models import IdentityRecord


class Console(Protocol):
    def prompt(self, text: str) -> str: ...

    def echo(self, text: str) -> None: ...


class TyperConsole:
    """Interactive console backed by typer prompts (typer appends ": ")."""

    def prompt(self, text: str) -> str:
        return str(typer.prompt(text)).strip()

    def echo(self, text: str) -> None:
        typer.echo(text)


@dataclass
class LoginOutcome:
    identity: IdentityRecord
    session: str  # cached cookie value or claim body; informational only
    reused_session: bool


def run_once(
    config: AuthConfig,
    console: Console,
    *,
    email: Optional[str] = None,
    client: Optional[httpx.Client] = None,
) -> LoginOutcome:
    """
    Restore the saved session or run login -> confirm -> claim -> save, then whoami.

    `email` skips the email prompt when given. Remote and persistence errors
    propagate; an unauthenticated whoami is reported, not raised.
    """
    store = CookieStore(config.cookies_path)
    if store.exists():
        console.echo(f"Opening cookie store located in {store.path}")
    jar = store.load()

    with AuthClient(config, jar, client=client) as auth:
        has_session, session = auth.check_existing_session()

        if not has_session:
            console.echo(
                "[!] Unable to find valid session, please login "
                "(You'll receive an email with a code to input next):"
            )
            if email is None:
                email = console.prompt("[.] Email")
            email = email.strip()
            pending = auth.login(email).session
            console.echo(f"Initializing session: {pending}")

            code = console.prompt("[.] Authorization code").strip()
            id_token = auth.confirm(pending, code).id_token

            session = auth.claim(id_token)
            logger.debug("Claim returned {} byte(s)", len(session))
            store.save(jar)
            console.echo(f"Session cookie saved to {store.path}")
        else:
            console.echo(f"[~] Found active session: {session}")

        identity = auth.whoami()

    if identity.authenticated:
        console.echo(f"[~] Logged in as: {identity.email}")
    else:
        console.echo("[!] Unable to login. Please try again")

    return LoginOutcome(identity=identity, session=session, reused_session=has_session)


def _format_error_chain(exc: BaseException) -> list[str]:
    lines = [f"Error: {exc}"]
    cause = exc.__cause__
    while cause is not None:
        lines.append(f"Caused by: {cause}")
        cause = cause.__cause__
    return lines


app = typer.Typer(help="Log in with an email and a one-time code, then show who you are.")


@app.command()
def main(
    cookies: Optional[Path] = typer.Option(None, "--cookies", help="Cookie store file (default: cookies.json)"),
    rpc_addr: Optional[str] = typer.Option(None, "--rpc-addr", help="Identity service base URL"),
    broker_addr: Optional[str] = typer.Option(None, "--broker-addr", help="Confirmation broker base URL"),
    email: Optional[str] = typer.Option(None, "--email", help="Email to log in with (skips the prompt)"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable verbose logging (DEBUG level)"),
):
    """Restore the saved session or run the login flow, then print the identity."""
    setup_logging(verbose)
    try:
        config = AuthConfig.from_env(cookies_path=cookies, rpc_addr=rpc_addr, broker_addr=broker_addr)
    except ValueError as e:
        typer.echo(f"Error: {e}", err=True)
        raise typer.Exit(code=1)

    try:
        run_once(config, TyperConsole(), email=email)
    except (AuthClientError, PersistenceError) as e:
        for line in _format_error_chain(e):
            typer.echo(line, err=True)
        raise typer.Exit(code=1)


if __name__ == "__main__":
    app()
