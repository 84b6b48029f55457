"""Flortune CLI — bootstrap administrators and inspect sessions.

Usage:
    flortune setup-admin admin@example.com          # Create an administrator (asks for password + secret)
    flortune login user@example.com                 # Sign in, print the session token
    flortune whoami --token <session-token>         # Show the resolved session

All commands talk to a running backend (FLORTUNE_API_URL, default
http://localhost:8000). The session token can also be supplied through
FLORTUNE_SESSION_TOKEN.
"""

import asyncio
import concurrent.futures
import json
import os
import sys
from typing import Optional

import click
import httpx

# ---------------------------------------------------------------------------
# Config
# ---------------------------------------------------------------------------

DEFAULT_API_URL = "http://localhost:8000"


def _api_url() -> str:
    return os.environ.get("FLORTUNE_API_URL", DEFAULT_API_URL).rstrip("/")


def _client() -> httpx.AsyncClient:
    """Build an async HTTP client pointed at the Flortune backend."""
    return httpx.AsyncClient(base_url=_api_url(), timeout=30.0)


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _run(coro):
    """Run an async coroutine from a synchronous Click handler.

    Handles nested event loops (e.g. Click's CliRunner inside an async
    test) by offloading to a thread.
    """
    try:
        asyncio.get_running_loop()
    except RuntimeError:
        return asyncio.run(coro)
    else:
        with concurrent.futures.ThreadPoolExecutor(max_workers=1) as pool:
            return pool.submit(asyncio.run, coro).result()


def _fail(response: httpx.Response) -> None:
    try:
        detail = response.json().get("detail", response.text)
    except ValueError:
        detail = response.text
    click.secho(f"Error ({response.status_code}): {detail}", fg="red", err=True)
    sys.exit(1)


def _unreachable(e: httpx.HTTPError) -> None:
    click.secho(f"Backend not reachable at {_api_url()}: {e}", fg="red", err=True)
    sys.exit(1)


# ---------------------------------------------------------------------------
# CLI group
# ---------------------------------------------------------------------------


@click.group()
@click.version_option(version="0.1.0", prog_name="flortune")
def main():
    """Flortune — identity and session tooling."""


# ---------------------------------------------------------------------------
# flortune setup-admin
# ---------------------------------------------------------------------------


@main.command("setup-admin")
@click.argument("email")
@click.option("--name", "display_name", default="Administrator", help="Display name")
@click.password_option(help="Administrator password")
@click.option(
    "--secret-code",
    prompt=True,
    hide_input=True,
    envvar="FLORTUNE_ADMIN_SETUP_SECRET",
    help="Server setup secret (or set FLORTUNE_ADMIN_SETUP_SECRET)",
)
def setup_admin(email: str, display_name: str, password: str, secret_code: str):
    """Create an administrator account using the server's setup secret."""
    _run(_setup_admin_impl(email, display_name, password, secret_code))


async def _setup_admin_impl(email: str, display_name: str, password: str, secret_code: str):
    async with _client() as c:
        try:
            r = await c.post("/api/v1/auth/admin/setup", json={
                "email": email,
                "password": password,
                "display_name": display_name,
                "secret_code": secret_code,
            })
        except httpx.HTTPError as e:
            _unreachable(e)
    if r.status_code != 201:
        _fail(r)
    admin = r.json()
    click.secho(f"Administrator created: {admin['email']} ({admin['id']})", fg="green")


# ---------------------------------------------------------------------------
# flortune login
# ---------------------------------------------------------------------------


@main.command()
@click.argument("email")
@click.option("--password", prompt=True, hide_input=True, help="Account password")
def login(email: str, password: str):
    """Sign in with email and password; prints the session token."""
    _run(_login_impl(email, password))


async def _login_impl(email: str, password: str):
    async with _client() as c:
        try:
            r = await c.post("/api/v1/auth/login", json={"email": email, "password": password})
        except httpx.HTTPError as e:
            _unreachable(e)
    if r.status_code != 200:
        _fail(r)
    data = r.json()
    click.echo(data["session_token"])
    click.secho(f"Expires {data['expires_at']}", fg="cyan", err=True)


# ---------------------------------------------------------------------------
# flortune whoami
# ---------------------------------------------------------------------------


@main.command()
@click.option("--token", envvar="FLORTUNE_SESSION_TOKEN", help="Session token (or set FLORTUNE_SESSION_TOKEN)")
@click.option("--json", "as_json", is_flag=True, help="Print the raw session JSON")
def whoami(token: Optional[str], as_json: bool):
    """Show who the session token belongs to."""
    if not token:
        click.secho(
            "Error: --token required (or set FLORTUNE_SESSION_TOKEN env var)",
            fg="red",
            err=True,
        )
        sys.exit(1)
    _run(_whoami_impl(token, as_json))


async def _whoami_impl(token: str, as_json: bool):
    async with _client() as c:
        try:
            r = await c.get(
                "/api/v1/auth/session", headers={"Authorization": f"Bearer {token}"}
            )
        except httpx.HTTPError as e:
            _unreachable(e)
    if r.status_code != 200:
        _fail(r)
    session = r.json()

    if as_json:
        click.echo(json.dumps(session, indent=2, default=str))
        return

    user = session["user"]
    click.secho(f"{user['name']} <{user['email']}>", bold=True)
    click.echo(f"  id:       {user['id']}")
    click.echo(f"  kind:     {user['kind']}")
    click.echo(f"  role:     {user['role']}")
    click.echo(f"  provider: {user['provider']}")
    click.echo(f"  expires:  {session['expires']}")
    downstream = "yes" if session.get("downstream_access_token") else "no"
    click.echo(f"  data-store token: {downstream}")


# ---------------------------------------------------------------------------
# Entry point
# ---------------------------------------------------------------------------

if __name__ == "__main__":
    main()
