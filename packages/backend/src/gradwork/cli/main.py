"""Gradwork CLI — run the server, mint dev tokens, inspect chats.

Usage:
    gradwork serve --reload                       # Run the API with uvicorn
    gradwork token 6f1c…                          # Dev access token for a user
    gradwork conversations --token $TOKEN         # Your chats, newest first
    gradwork presence 9a2e… --token $TOKEN        # Who has a contract chat open
"""

from __future__ import annotations

import asyncio
import concurrent.futures
import json
import os
import sys
import uuid
from typing import Optional

import click
import httpx

from gradwork import __version__

# ---------------------------------------------------------------------------
# Config
# ---------------------------------------------------------------------------

DEFAULT_API_URL = "http://localhost:8080"


def _api_url() -> str:
    return os.environ.get("GRADWORK_API_URL", DEFAULT_API_URL).rstrip("/")


def _client(token: str) -> httpx.AsyncClient:
    """Build an async HTTP client pointed at the Gradwork backend."""
    return httpx.AsyncClient(
        base_url=_api_url(),
        timeout=30.0,
        headers={"Authorization": f"Bearer {token}"},
    )


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _run(coro):
    """Run an async coroutine from a synchronous Click handler.

    Offloads to a thread when a loop is already running (e.g. CliRunner
    inside an async test).
    """
    try:
        asyncio.get_running_loop()
    except RuntimeError:
        return asyncio.run(coro)
    with concurrent.futures.ThreadPoolExecutor(max_workers=1) as pool:
        return pool.submit(asyncio.run, coro).result()


def _token_from_ctx(token: Optional[str]) -> str:
    """Resolve the access token from the flag or GRADWORK_TOKEN."""
    tok = token or os.environ.get("GRADWORK_TOKEN")
    if not tok:
        click.secho(
            "Error: --token required (or set GRADWORK_TOKEN env var)",
            fg="red",
            err=True,
        )
        sys.exit(1)
    return tok


def _fail(resp: httpx.Response) -> None:
    try:
        detail = resp.json().get("detail", resp.text)
    except json.JSONDecodeError:
        detail = resp.text
    click.secho(f"Error {resp.status_code}: {detail}", fg="red", err=True)
    sys.exit(1)


# ---------------------------------------------------------------------------
# CLI group
# ---------------------------------------------------------------------------


@click.group()
@click.version_option(version=__version__, prog_name="gradwork")
def main():
    """Gradwork — freelance marketplace backend."""


@main.command()
@click.option("--host", default=None, help="Bind address (default: settings.host)")
@click.option("--port", default=None, type=int, help="Port (default: settings.port)")
@click.option("--reload", is_flag=True, help="Auto-reload on code changes")
def serve(host: Optional[str], port: Optional[int], reload: bool):
    """Run the API server."""
    import uvicorn

    from gradwork.config import settings

    uvicorn.run(
        "gradwork.main:app",
        host=host or settings.host,
        port=port or settings.port,
        reload=reload,
    )


@main.command()
@click.argument("user_id", type=click.UUID)
@click.option("--minutes", "-m", default=None, type=int, help="Lifetime in minutes")
@click.option("--email", default=None, help="Email claim to embed")
def token(user_id: uuid.UUID, minutes: Optional[int], email: Optional[str]):
    """Mint a development access token for USER_ID.

    Signed with GRADWORK_JWT_SECRET, so it's only accepted by a server
    sharing that secret.
    """
    from gradwork.auth.jwt import create_access_token

    click.echo(create_access_token(str(user_id), expires_minutes=minutes, email=email))


@main.command()
@click.option("--token", "-t", "tok", help="Access token (or set GRADWORK_TOKEN)")
def conversations(tok: Optional[str]):
    """List your chats, most recent activity first."""
    rows = _run(_get_json("/api/v1/chat/conversations", _token_from_ctx(tok)))
    if not rows:
        click.echo("No conversations.")
        return
    header = f"{'CONTRACT':<38}{'WITH':<22}{'UNREAD':>7}  LAST MESSAGE"
    click.secho(header, bold=True)
    click.echo("-" * len(header))
    for row in rows:
        name = row.get("other_user_name") or str(row["other_user_id"])[:8]
        last = (row.get("last_message") or "—").replace("\n", " ")[:40]
        unread = row["unread_count"]
        line = f"{row['contract_id']:<38}{name[:20]:<22}{unread:>7}  {last}"
        click.secho(line, fg="yellow" if unread else None)


@main.command()
@click.argument("contract_id", type=click.UUID)
@click.option("--token", "-t", "tok", help="Access token (or set GRADWORK_TOKEN)")
def presence(contract_id: uuid.UUID, tok: Optional[str]):
    """Show which parties of CONTRACT_ID have the chat open."""
    data = _run(_get_json(f"/api/v1/chat/{contract_id}/presence", _token_from_ctx(tok)))
    for party in data["parties"]:
        online = party["online"]
        click.secho(
            f"{party['user_id']}  {'online' if online else 'offline'}",
            fg="green" if online else "white",
        )
    click.echo(f"{data['connections']} live connection(s)")


async def _get_json(path: str, tok: str):
    async with _client(tok) as c:
        r = await c.get(path)
        if r.status_code >= 400:
            _fail(r)
        return r.json()


if __name__ == "__main__":
    main()
