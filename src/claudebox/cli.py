"""ClaudeBox CLI — powered by Typer."""

from __future__ import annotations

import asyncio
import json
import logging
from pathlib import Path
from typing import Optional

import typer
from rich.console import Console
from rich.table import Table

from claudebox import __version__

app = typer.Typer(
    name="claudebox",
    help="📦 ClaudeBox — assistant CLIs in a sandbox with scoped GitHub access",
    no_args_is_help=True,
    rich_markup_mode="rich",
)
auth_app = typer.Typer(help="🔐 GitHub authentication management")
app.add_typer(auth_app, name="auth")

console = Console()

_SECRET_SUFFIXES = ("_KEY", "_TOKEN")


def _layout():
    from claudebox.sandbox.layout import SessionLayout

    return SessionLayout()


def _token_manager():
    from claudebox.auth.storage import TokenStore
    from claudebox.auth.token import TokenManager

    return TokenManager(TokenStore(_layout().token_dir))


# ── Auth commands ───────────────────────────────────────────────────


@auth_app.command("login")
def auth_login(
    dangerous: bool = typer.Option(
        False, "--dangerous-github-auth", help="Use the app with broader permissions."
    ),
) -> None:
    """Authenticate with GitHub (device flow)."""
    from claudebox.auth.tier import TrustTier

    token = asyncio.run(_token_manager().acquire(TrustTier.from_flag(dangerous)))
    if token is None:
        console.print("[bold red]❌ Not authenticated[/]")
        raise typer.Exit(1)


@auth_app.command("status")
def auth_status() -> None:
    """Show stored credentials for both trust tiers."""
    from claudebox.auth.tier import TrustTier

    tm = _token_manager()
    for tier in TrustTier:
        status = tm.get_status(tier)
        if status["authenticated"]:
            refresh = "refreshable" if status["refreshable"] else "no refresh token"
            console.print(f"[bold green]✅ {tier.value}[/] [dim]({refresh}, {status['path']})[/]")
        else:
            console.print(f"[dim]— {tier.value}: not authenticated[/]")


@auth_app.command("logout")
def auth_logout(
    dangerous: bool = typer.Option(False, "--dangerous-github-auth"),
) -> None:
    """Remove the stored credential of one trust tier."""
    from claudebox.auth.tier import TrustTier

    if _token_manager().logout(TrustTier.from_flag(dangerous)):
        console.print("[bold green]✅ Credentials removed[/]")
    else:
        console.print("[dim]No credentials found[/]")


# ── Plan command ────────────────────────────────────────────────────


@app.command(
    "plan",
    context_settings={"allow_extra_args": True, "ignore_unknown_options": True},
)
def plan(
    ctx: typer.Context,
    work_dir: Optional[Path] = typer.Option(
        None, "--work-dir", "-w", help="Directory to mount as /workspace",
        exists=True, file_okay=False, resolve_path=True,
    ),
    persona: str = typer.Option("claude", "--persona", help="claude, gemini, opencode or codex"),
    no_github_auth: bool = typer.Option(False, "--no-github-auth", help="Skip GitHub authentication"),
    dangerous: bool = typer.Option(
        False, "--dangerous-github-auth", help="GitHub auth with broader permissions"
    ),
    keep_bash: bool = typer.Option(False, "--bash", help="Keep bash open after the CLI exits"),
    as_json: bool = typer.Option(False, "--json", help="Print the plan as JSON"),
) -> None:
    """Resolve mounts, environment and command for a sandbox session.

    Unrecognized arguments are passed through to the assistant CLI.
    """
    from claudebox.auth.tier import TrustTier
    from claudebox.sandbox.personas import Persona
    from claudebox.sandbox.resolver import (
        SandboxEnvironmentResolver,
        SandboxSession,
        shell_argv,
    )

    try:
        active = Persona(persona.lower())
    except ValueError:
        console.print(f"[bold red]❌ Unknown persona:[/] {persona}")
        raise typer.Exit(1)

    tier = TrustTier.from_flag(dangerous)
    layout = _layout()
    layout.ensure()

    github_token, repo_dir = asyncio.run(_prepare(layout, tier, no_github_auth))

    for tool in layout.missing_tools():
        console.print(f"[yellow]⚠ {tool.name} not provisioned ({tool.package})[/]")

    session = SandboxSession(
        work_dir=work_dir or Path.cwd(),
        persona=active,
        layout=layout,
        github_token=github_token,
        extra_args=tuple(ctx.args),
        sandbox_repo_dir=repo_dir,
    )
    result = SandboxEnvironmentResolver().resolve(session)
    command = shell_argv(result.argv, layout.persona_installed(active), keep_bash)
    env = {k: _mask(k, v) for k, v in sorted(result.env.items())}

    if as_json:
        payload = {
            "mounts": {
                path: {"host": str(m.host_path), "mode": m.mode.value}
                for path, m in sorted(result.mounts.items())
            },
            "env": env,
            "argv": result.argv,
            "command": command,
            "workdir": result.workdir,
            "hostname": result.hostname,
        }
        console.print_json(json.dumps(payload))
        return

    table = Table(title="📁 Mounts", show_lines=False)
    table.add_column("Container", style="cyan", no_wrap=True)
    table.add_column("Host", style="white")
    table.add_column("Mode", style="dim")
    for path, m in sorted(result.mounts.items()):
        table.add_row(path, str(m.host_path), m.mode.value)
    console.print(table)

    env_table = Table(title="🌱 Environment", show_lines=False)
    env_table.add_column("Variable", style="cyan", no_wrap=True)
    env_table.add_column("Value", style="white")
    for key, value in env.items():
        env_table.add_row(key, value)
    console.print(env_table)

    console.print(f"[bold]🤖 {active.value}:[/] {' '.join(result.argv)}")
    console.print(f"[dim]   via: {' '.join(command)}[/]")


async def _prepare(layout, tier, skip_auth: bool) -> tuple[str, Optional[Path]]:
    """Acquire a token and stage the GitHub-derived files."""
    from claudebox.auth.storage import TokenStore
    from claudebox.auth.token import (
        GitHubUser,
        TokenManager,
        check_sandbox_repo,
        get_user_info,
    )
    from claudebox.sandbox.files import (
        write_credential_helper,
        write_gitconfig,
        write_session_files,
    )

    token = None
    if not skip_auth:
        token = await TokenManager(TokenStore(layout.token_dir)).acquire(tier)
    github_token = token.access_token if token else ""

    user = await get_user_info(github_token) if github_token else GitHubUser()
    write_gitconfig(layout, user, overwrite=bool(github_token))
    write_credential_helper(layout)

    repo_dir = None
    if github_token:
        repo = await check_sandbox_repo(github_token)
        if repo is not None:
            console.print(f"[green]✓ Found .claude_sandbox repository for {repo.username}[/]")
            if layout.sandbox_repo_dir.is_dir():
                repo_dir = layout.sandbox_repo_dir
            else:
                console.print(
                    f"[dim]   Clone {repo.clone_url} into {layout.sandbox_repo_dir} to mount it[/]"
                )

    write_session_files(layout, bool(github_token), tier, repo_dir is not None)
    return github_token, repo_dir


def _mask(key: str, value: str) -> str:
    if value and key.endswith(_SECRET_SUFFIXES):
        return "***"
    return value


# ── Reset command ───────────────────────────────────────────────────


@app.command("reset")
def reset(
    everything: bool = typer.Option(
        False, "--all", help="Also remove persona settings and stored GitHub tokens"
    ),
) -> None:
    """Remove provisioned tools (and optionally everything else)."""
    from claudebox.sandbox.layout import reset_all, reset_tools

    layout = _layout()
    removed = reset_all(layout) if everything else reset_tools(layout)
    if removed:
        console.print("[bold green]✓ Reset complete[/]")
    else:
        console.print("[dim]Nothing to reset[/]")


# ── Version ─────────────────────────────────────────────────────────


@app.callback(invoke_without_command=True)
def main(
    ctx: typer.Context,
    version: bool = typer.Option(False, "--version", "-v", help="Show version and exit"),
    verbose: bool = typer.Option(False, "--verbose", help="Show debug logging"),
) -> None:
    if version:
        console.print(f"ClaudeBox v{__version__}")
        raise typer.Exit()
    if verbose:
        logging.basicConfig(
            level=logging.DEBUG,
            format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
            datefmt="%H:%M:%S",
        )
    if ctx.invoked_subcommand is None:
        console.print(ctx.get_help())
        raise typer.Exit()
