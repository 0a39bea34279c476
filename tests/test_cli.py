"""Tests for the Typer CLI."""

import json

import pytest
from typer.testing import CliRunner

from claudebox import __version__, cli
from claudebox.auth import token as token_mod
from claudebox.auth.storage import StoredCredential, TokenStore
from claudebox.auth.tier import TrustTier
from claudebox.sandbox.layout import SessionLayout
from claudebox.sandbox.resolver import SandboxEnvironmentResolver

runner = CliRunner()


@pytest.fixture
def layout(tmp_path, monkeypatch):
    layout = SessionLayout(tmp_path / "box")
    monkeypatch.setattr(cli, "_layout", lambda: layout)
    return layout


def _json_output(output: str) -> dict:
    return json.loads(output[output.index("{\n"):])


def test_version():
    result = runner.invoke(cli.app, ["--version"])

    assert result.exit_code == 0
    assert __version__ in result.output


def test_auth_status_and_logout(layout):
    TokenStore(layout.token_dir).save(TrustTier.ELEVATED, StoredCredential("gho_x", None))

    status = runner.invoke(cli.app, ["auth", "status"])
    assert status.exit_code == 0
    assert "standard: not authenticated" in status.output
    assert "no refresh token" in status.output

    logout = runner.invoke(cli.app, ["auth", "logout", "--dangerous-github-auth"])
    assert logout.exit_code == 0
    assert "removed" in logout.output
    assert TokenStore(layout.token_dir).load(TrustTier.ELEVATED).is_empty


def test_reset(layout):
    layout.ensure()

    result = runner.invoke(cli.app, ["reset"])
    assert result.exit_code == 0
    assert not layout.tools_prefix.exists()
    assert layout.settings_prefix.exists()

    result = runner.invoke(cli.app, ["reset", "--all"])
    assert result.exit_code == 0
    assert not layout.root.exists()


def test_plan_without_github_auth(layout, tmp_path, monkeypatch):
    project = tmp_path / "project"
    project.mkdir()
    monkeypatch.setenv("OPENAI_API_KEY", "sk-secret")

    async def no_lookup(token):
        raise AssertionError("no user lookup without a token")

    monkeypatch.setattr(token_mod, "get_user_info", no_lookup)

    sessions = []
    resolve = SandboxEnvironmentResolver.resolve

    def capture(self, session):
        sessions.append(session)
        return resolve(self, session)

    monkeypatch.setattr(SandboxEnvironmentResolver, "resolve", capture)

    result = runner.invoke(
        cli.app,
        ["plan", "--no-github-auth", "--json", "-w", str(project), "--model", "opus"],
    )

    assert result.exit_code == 0, result.output
    payload = _json_output(result.output)
    assert payload["mounts"]["/workspace"] == {"host": str(project.resolve()), "mode": "rw"}
    assert payload["argv"] == ["claude", "--dangerously-skip-permissions", "--model", "opus"]
    # Pass-through arguments belong to this invocation only.
    assert sessions[0].extra_args == ("--model", "opus")
    assert sessions[0].stored_args == ()
    # CLI not installed yet: plain login shell.
    assert payload["command"] == ["/bin/bash", "--login"]
    assert payload["env"]["OPENAI_API_KEY"] == "***"
    assert "GITHUB_TOKEN" not in payload["env"]
    assert "sk-secret" not in result.output
    assert "Sandbox User" in layout.gitconfig.read_text()
    assert "No GitHub authentication" in layout.instructions_file.read_text()


def test_plan_rejects_unknown_persona(layout, tmp_path):
    result = runner.invoke(
        cli.app, ["plan", "--no-github-auth", "-w", str(tmp_path), "--persona", "cursor"]
    )

    assert result.exit_code == 1
    assert "Unknown persona" in result.output
