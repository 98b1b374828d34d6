"""Mani CLI — log in and call the Mani Church API from a terminal.

Usage:
    mani login admin@example.com                 # Prompt for password, store tokens
    mani logout                                  # Forget stored tokens
    mani get /api/media                          # GET and pretty-print JSON
    mani post /api/events --data '{"title": "Vigil"}'
    mani put /api/events/42 --data '{"title": "Vigil (moved)"}'
    mani delete /api/events/42
    mani upload sermon.mp4 cover.jpg             # Multipart upload to /api/upload/media

Tokens live in MANI_CREDENTIALS_FILE (default ~/.config/mani/credentials.json)
and are refreshed automatically.
"""

from __future__ import annotations

import asyncio
import concurrent.futures
import json
import mimetypes
import sys
from pathlib import Path
from typing import Any, Optional

import click

from mani_client import __version__
from mani_client.auth.flow import AuthFlow
from mani_client.auth.store import FileTokenStore
from mani_client.client import ApiClient
from mani_client.config import settings
from mani_client.errors import AuthenticationError, ClientError, HttpError
from mani_client.log import configure_logging
from mani_client.models import Multipart
from mani_client.transport import HttpxTransport

UPLOAD_PATH = "/api/upload/media"
UPLOAD_FIELD = "media"
MAX_UPLOAD_FILES = 5


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _run(coro):
    """Run an async coroutine from synchronous Click handler.

    Handles nested event loops (e.g. when invoked via Click CliRunner
    inside an existing async context like tests) by offloading to a thread.
    """
    try:
        asyncio.get_running_loop()
    except RuntimeError:
        return asyncio.run(coro)
    else:
        with concurrent.futures.ThreadPoolExecutor(max_workers=1) as pool:
            return pool.submit(asyncio.run, coro).result()


def _pretty_json(data: Any) -> str:
    return json.dumps(data, indent=2, default=str)


def _on_logout(login_url: str) -> None:
    click.secho(
        f"Session expired: run `mani login` again ({login_url})",
        fg="yellow",
        err=True,
    )


def _fail(err: ClientError) -> None:
    """Print a client error and exit: 2 for auth failures, 1 otherwise."""
    if isinstance(err, HttpError) and err.body is not None:
        detail = err.body if isinstance(err.body, str) else _pretty_json(err.body)
        click.secho(f"Error: {err}\n{detail}", fg="red", err=True)
    else:
        click.secho(f"Error: {err}", fg="red", err=True)
    sys.exit(2 if isinstance(err, AuthenticationError) else 1)


def _parse_data(data: Optional[str]) -> Any:
    if data is None:
        return None
    try:
        return json.loads(data)
    except ValueError as e:
        raise click.BadParameter(f"not valid JSON: {e}", param_hint="--data")


async def _call(method: str, path: str, body: Any = None) -> None:
    store = FileTokenStore()
    async with HttpxTransport() as transport:
        flow = AuthFlow(store, transport, on_logout=_on_logout)
        client = ApiClient(store, flow, transport)
        try:
            client.url_for(path)
        except ValueError as e:
            raise click.BadParameter(str(e), param_hint="PATH")
        try:
            response = await client.request(method, path, body)
        except ClientError as e:
            _fail(e)
            return
    if response.data is None:
        click.secho(f"{response.status} (no content)", fg="green")
    else:
        click.echo(_pretty_json(response.data))


# ---------------------------------------------------------------------------
# CLI group
# ---------------------------------------------------------------------------


@click.group()
@click.version_option(version=__version__, prog_name="mani")
@click.option("--log-level", default=None, help="Log level (default: MANI_LOG_LEVEL)")
@click.option("--json-logs", is_flag=True, help="Emit JSON log lines")
def main(log_level: Optional[str], json_logs: bool):
    """Mani — authenticated access to the Mani Church API."""
    configure_logging(
        level=log_level or settings.log_level,
        json=json_logs or settings.log_json,
    )


# ---------------------------------------------------------------------------
# mani login / logout
# ---------------------------------------------------------------------------


@main.command()
@click.argument("email")
@click.password_option(confirmation_prompt=False)
def login(email: str, password: str):
    """Log in with EMAIL and store the issued tokens."""
    _run(_login_impl(email, password))


async def _login_impl(email: str, password: str):
    store = FileTokenStore()
    async with HttpxTransport() as transport:
        flow = AuthFlow(store, transport)
        try:
            await flow.login(email, password)
        except ClientError as e:
            _fail(e)
            return
    click.secho(f"Logged in as {email}", fg="green")


@main.command()
def logout():
    """Forget the stored tokens."""
    FileTokenStore().clear()
    click.secho("Logged out", fg="green")


# ---------------------------------------------------------------------------
# mani get / post / put / delete
# ---------------------------------------------------------------------------


@main.command()
@click.argument("path")
def get(path: str):
    """GET PATH and print the JSON response."""
    _run(_call("GET", path))


@main.command()
@click.argument("path")
@click.option("--data", "-d", help="JSON request body")
def post(path: str, data: Optional[str]):
    """POST a JSON body to PATH."""
    _run(_call("POST", path, _parse_data(data)))


@main.command()
@click.argument("path")
@click.option("--data", "-d", help="JSON request body")
def put(path: str, data: Optional[str]):
    """PUT a JSON body to PATH."""
    _run(_call("PUT", path, _parse_data(data)))


@main.command()
@click.argument("path")
def delete(path: str):
    """DELETE PATH."""
    _run(_call("DELETE", path))


# ---------------------------------------------------------------------------
# mani upload
# ---------------------------------------------------------------------------


@main.command()
@click.argument(
    "files",
    nargs=-1,
    required=True,
    type=click.Path(exists=True, dir_okay=False, path_type=Path),
)
def upload(files: tuple[Path, ...]):
    """Upload image/video FILES to the media library."""
    if len(files) > MAX_UPLOAD_FILES:
        raise click.UsageError(f"You can only upload up to {MAX_UPLOAD_FILES} files")

    items = []
    for f in files:
        content_type = mimetypes.guess_type(f.name)[0] or ""
        if not content_type.startswith(("image/", "video/")):
            raise click.BadParameter(f"{f.name} is not an image or video", param_hint="FILES")
        items.append((f.name, f.read_bytes(), content_type))

    _run(_call("POST", UPLOAD_PATH, Multipart(files={UPLOAD_FIELD: items})))


if __name__ == "__main__":
    main()
