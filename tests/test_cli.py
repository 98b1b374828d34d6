"""CLI tests — login/logout and verb commands against a mocked backend.

Learn: HttpxTransport is swapped at the CLI module level for one backed
by httpx.MockTransport, so commands run end to end (file store, auth
flow, request client) without a network.
"""

import json

import httpx
import pytest
from click.testing import CliRunner

from conftest import make_token
from mani_client.auth.store import Credential, FileTokenStore
from mani_client.cli import main as cli
from mani_client.transport import HttpxTransport


@pytest.fixture()
def backend(monkeypatch):
    """Install `handler` as the backend for every CLI transport."""

    def install(handler):
        monkeypatch.setattr(
            cli,
            "HttpxTransport",
            lambda: HttpxTransport(client=httpx.AsyncClient(transport=httpx.MockTransport(handler))),
        )

    return install


@pytest.fixture()
def runner():
    return CliRunner()


# ═══════════════════════════════════════════════════════════
# login / logout
# ═══════════════════════════════════════════════════════════


def test_login_writes_credentials(backend, runner):
    access = make_token()
    backend(lambda r: httpx.Response(200, json={"token": access, "refreshToken": "r-1"}))

    result = runner.invoke(cli.main, ["login", "admin@mani.church", "--password", "pw"])

    assert result.exit_code == 0, result.output
    assert "Logged in as admin@mani.church" in result.output
    assert FileTokenStore().credential == Credential(access, "r-1")


def test_login_rejected_exits_2(backend, runner):
    backend(lambda r: httpx.Response(401, json={"message": "Invalid credentials"}))

    result = runner.invoke(cli.main, ["login", "admin@mani.church", "--password", "bad"])

    assert result.exit_code == 2
    assert "Invalid credentials" in result.output
    assert FileTokenStore().credential is None


def test_logout_removes_credentials(runner):
    store = FileTokenStore()
    store.set(Credential(make_token(), "r-1"))

    result = runner.invoke(cli.main, ["logout"])

    assert result.exit_code == 0
    assert not store.path.exists()


# ═══════════════════════════════════════════════════════════
# Verbs
# ═══════════════════════════════════════════════════════════


def test_get_prints_json(backend, runner):
    token = make_token()
    FileTokenStore().set(Credential(token, "r-1"))
    seen = {}

    def handler(request):
        seen["auth"] = request.headers["authorization"]
        seen["url"] = str(request.url)
        return httpx.Response(200, json={"media": [{"name": "easter.mp4"}]})

    backend(handler)

    result = runner.invoke(cli.main, ["get", "/api/media"])

    assert result.exit_code == 0, result.output
    assert seen == {"auth": f"Bearer {token}", "url": "http://api.test/api/media"}
    assert '"easter.mp4"' in result.output


def test_post_sends_json_body(backend, runner):
    FileTokenStore().set(Credential(make_token(), "r-1"))
    seen = {}

    def handler(request):
        seen["body"] = json.loads(request.content)
        return httpx.Response(201, json={"id": 3})

    backend(handler)

    result = runner.invoke(cli.main, ["post", "/api/events", "--data", '{"title": "Vigil"}'])

    assert result.exit_code == 0, result.output
    assert seen["body"] == {"title": "Vigil"}


def test_post_rejects_invalid_json(runner):
    result = runner.invoke(cli.main, ["post", "/api/events", "--data", "{oops"])
    assert result.exit_code == 2
    assert "not valid JSON" in result.output


def test_delete_with_empty_response(backend, runner):
    FileTokenStore().set(Credential(make_token(), "r-1"))
    backend(lambda r: httpx.Response(204))

    result = runner.invoke(cli.main, ["delete", "/api/events/3"])

    assert result.exit_code == 0, result.output
    assert "204 (no content)" in result.output


def test_http_error_exits_1(backend, runner):
    FileTokenStore().set(Credential(make_token(), "r-1"))
    backend(lambda r: httpx.Response(404, json={"message": "Not found"}))

    result = runner.invoke(cli.main, ["get", "/api/events/999"])

    assert result.exit_code == 1
    assert "status: 404" in result.output
    assert "Not found" in result.output


def test_expired_session_logs_out(backend, runner):
    FileTokenStore().set(Credential(make_token(-60), "r-1"))
    backend(lambda r: httpx.Response(401, json={"message": "Refresh token expired"}))

    result = runner.invoke(cli.main, ["get", "/api/media"])

    assert result.exit_code == 2
    assert "Session expired" in result.output
    assert FileTokenStore().credential is None


# ═══════════════════════════════════════════════════════════
# upload
# ═══════════════════════════════════════════════════════════


def test_upload_sends_multipart(backend, runner, tmp_path):
    FileTokenStore().set(Credential(make_token(), "r-1"))
    video = tmp_path / "sermon.mp4"
    video.write_bytes(b"MP4DATA")
    seen = {}

    def handler(request):
        seen["path"] = request.url.path
        seen["content_type"] = request.headers["content-type"]
        seen["body"] = request.content
        return httpx.Response(200, json={"media": [{"name": "sermon.mp4"}]})

    backend(handler)

    result = runner.invoke(cli.main, ["upload", str(video)])

    assert result.exit_code == 0, result.output
    assert seen["path"] == "/api/upload/media"
    assert seen["content_type"].startswith("multipart/form-data; boundary=")
    assert b'name="media"; filename="sermon.mp4"' in seen["body"]


def test_upload_rejects_too_many_files(runner, tmp_path):
    files = []
    for i in range(cli.MAX_UPLOAD_FILES + 1):
        f = tmp_path / f"photo{i}.jpg"
        f.write_bytes(b"JPEG")
        files.append(str(f))

    result = runner.invoke(cli.main, ["upload", *files])

    assert result.exit_code == 2
    assert "up to 5 files" in result.output


def test_upload_rejects_non_media(runner, tmp_path):
    doc = tmp_path / "notes.txt"
    doc.write_text("hello")

    result = runner.invoke(cli.main, ["upload", str(doc)])

    assert result.exit_code == 2
    assert "not an image or video" in result.output


def test_absolute_url_is_a_usage_error(runner):
    FileTokenStore().set(Credential(make_token(), "r-1"))

    result = runner.invoke(cli.main, ["get", "https://evil.example/steal"])

    assert result.exit_code == 2
    assert "PATH" in result.output
    assert "Traceback" not in result.output
