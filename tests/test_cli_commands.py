import json
import re
from urllib.parse import parse_qs, urlsplit

import httpx
import pytest
from typer.testing import CliRunner

from niomon.cli import commands
from niomon.config.schema import Config
from niomon.utils.exceptions import ConfigurationError

runner = CliRunner()


@pytest.fixture
def token_server(monkeypatch):
    requests: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        requests.append(request)
        if request.url.path == "/oidc/token":
            return httpx.Response(200, json={
                "access_token": "cli-access-token",
                "token_type": "Bearer",
                "expires_in": 7200,
                "refresh_token": "cli-refresh",
            })
        if request.url.path == "/oidc/userinfo":
            return httpx.Response(200, json={"sub": "user-1", "name": "Ada"})
        return httpx.Response(404)

    transport = httpx.MockTransport(handler)
    build = commands.build_cli_client
    monkeypatch.setattr(commands, "build_cli_client", lambda config: build(config, transport=transport))
    return requests


@pytest.fixture
def config_file(tmp_path):
    path = tmp_path / "config.json"
    path.write_text(json.dumps({
        "client": {
            "baseUrl": "https://api.niomon.dev",
            "clientId": "cli-client",
            "redirectUri": "http://localhost:8765/callback",
        },
        "storageDir": str(tmp_path / "store"),
    }))
    return path


def test_version_flag():
    result = runner.invoke(commands.app, ["--version"])
    assert result.exit_code == 0
    assert "niomon v" in result.stdout


def test_login_round_trip_across_invocations(config_file, token_server, tmp_path):
    result = runner.invoke(commands.app, ["auth", "url", "-c", str(config_file), "-p", "prompt=login"])
    assert result.exit_code == 0, result.stdout
    url = re.search(r"https://\S+", result.stdout).group(0)
    params = {k: v[0] for k, v in parse_qs(urlsplit(url).query).items()}
    assert params["client_id"] == "cli-client"
    assert params["prompt"] == "login"
    assert (tmp_path / "store" / "auth_state.json").exists()

    callback = f"http://localhost:8765/callback?code=abc&state={params['state']}"
    result = runner.invoke(commands.app, ["auth", "callback", callback, "-c", str(config_file)])
    assert result.exit_code == 0, result.stdout
    assert "Logged in" in result.stdout
    body = json.loads(token_server[0].content)
    assert body["code"] == "abc"
    assert body["grant_type"] == "authorization_code"

    stored = json.loads((tmp_path / "store" / "storage.json").read_text())
    assert stored["authcore.tokenManager.cli-client.access_token"] == "cli-access-token"

    result = runner.invoke(commands.app, ["auth", "status", "--no-refresh", "-c", str(config_file)])
    assert result.exit_code == 0, result.stdout
    assert "Authentication status" in result.stdout
    assert "cli-ac..." in result.stdout

    result = runner.invoke(commands.app, ["auth", "user", "-c", str(config_file)])
    assert result.exit_code == 0, result.stdout
    assert "Ada" in result.stdout

    result = runner.invoke(commands.app, ["auth", "logout", "-c", str(config_file)])
    assert result.exit_code == 0
    assert "Logged out" in result.stdout

    result = runner.invoke(commands.app, ["auth", "status", "-c", str(config_file)])
    assert "Not authenticated" in result.stdout


def test_callback_with_foreign_state_fails(config_file, token_server):
    runner.invoke(commands.app, ["auth", "url", "-c", str(config_file)])
    result = runner.invoke(
        commands.app, ["auth", "callback", "http://localhost:8765/callback?code=abc&state=forged", "-c", str(config_file)]
    )
    assert result.exit_code == 1
    assert "auth state does not match" in result.stdout
    assert token_server == []


def test_refresh_without_token_reports_error(config_file, token_server):
    result = runner.invoke(commands.app, ["auth", "refresh", "-c", str(config_file)])
    assert result.exit_code == 1
    assert "No refresh token" in result.stdout


def test_missing_client_section_exits(tmp_path):
    path = tmp_path / "config.json"
    path.write_text(json.dumps({"storageDir": str(tmp_path / "store")}))
    result = runner.invoke(commands.app, ["auth", "status", "-c", str(path)])
    assert result.exit_code == 1
    assert "No client configured" in result.stdout


def test_bad_param_is_rejected(config_file):
    result = runner.invoke(commands.app, ["auth", "url", "-c", str(config_file), "-p", "novalue"])
    assert result.exit_code != 0


def test_build_cli_client_requires_client_section(tmp_path):
    with pytest.raises(ConfigurationError) as exc_info:
        commands.build_cli_client(Config(storage_dir=str(tmp_path)))
    assert exc_info.value.details == {"field": "client"}
