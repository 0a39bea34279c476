"""Files staged in the managed scratch area before they are mounted."""

from __future__ import annotations

import logging
import os
import shutil
from pathlib import Path
from typing import Iterable, Optional

from claudebox.auth.tier import TrustTier
from claudebox.auth.token import GitHubUser
from claudebox.config import SANDBOX_CA_FILE, SANDBOX_PATH_DIRS, SANDBOX_WORKSPACE
from claudebox.sandbox.layout import SessionLayout

logger = logging.getLogger(__name__)

DEFAULT_GIT_NAME = "Sandbox User"
DEFAULT_GIT_EMAIL = "sandbox@localhost"


# ── copies of host system files ─────────────────────────────────────


def stage_ca_bundle(layout: SessionLayout, candidates: Iterable[Path]) -> Optional[Path]:
    """Copy the first existing CA bundle into the scratch certs directory.

    Returns the staged directory, or None when no bundle could be copied.
    """
    for source in candidates:
        if not source.is_file():
            continue
        certs = layout.ssl_certs_dir
        try:
            certs.mkdir(parents=True, exist_ok=True)
            shutil.copyfile(source, certs / "ca-certificates.crt")
            # Some tools look for this name instead.
            link = certs / "ca-bundle.crt"
            if link.is_symlink() or link.exists():
                link.unlink()
            os.symlink("ca-certificates.crt", link)
        except OSError as e:
            logger.warning("Could not stage CA bundle from %s: %s", source, e)
            return None
        return certs
    logger.warning("No CA bundle found on host; HTTPS inside the sandbox may fail")
    return None


def stage_resolv_conf(layout: SessionLayout, source: Path) -> Optional[Path]:
    """Copy the host DNS configuration (following symlinks) into scratch."""
    if not source.is_file():
        return None
    target = layout.resolv_conf
    try:
        target.parent.mkdir(parents=True, exist_ok=True)
        shutil.copyfile(source, target)
    except OSError as e:
        logger.warning("Could not stage %s: %s", source, e)
        return None
    return target


# ── generated configuration ─────────────────────────────────────────


def git_identity(user: GitHubUser) -> tuple[str, str]:
    """Commit identity for the sandbox, derived from the GitHub profile."""
    name = user.name or user.login or DEFAULT_GIT_NAME
    if user.email:
        email = user.email
    elif user.login:
        email = f"{user.login}@users.noreply.github.com"
    else:
        email = DEFAULT_GIT_EMAIL
    return name, email


def render_gitconfig(user: GitHubUser) -> str:
    name, email = git_identity(user)
    return f"""[http]
    sslCAInfo = {SANDBOX_CA_FILE}
[user]
    name = {name}
    email = {email}
[credential]
    helper = /opt/build_tools/bin/git-credential-gh
[url "https://github.com/"]
    insteadOf = git@github.com:
[url "https://github.com/"]
    insteadOf = ssh://git@github.com/
"""


def write_gitconfig(layout: SessionLayout, user: GitHubUser, overwrite: bool) -> Path:
    """Write the sandbox gitconfig unless one exists and *overwrite* is False."""
    path = layout.gitconfig
    if overwrite or not path.exists():
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(render_gitconfig(user), encoding="utf-8")
    return path


CREDENTIAL_HELPER = """#!/bin/sh
# Git credential helper that uses GitHub CLI

case "$1" in
    get)
        echo "username=x-access-token"
        echo "password=$(gh auth token 2>/dev/null)"
        ;;
    store|erase)
        exit 0
        ;;
esac
"""


def write_credential_helper(layout: SessionLayout) -> Path:
    path = layout.tool_dir("build_tools") / "bin" / "git-credential-gh"
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(CREDENTIAL_HELPER, encoding="utf-8")
    path.chmod(0o755)
    return path


def render_bashrc() -> str:
    path = ":".join(SANDBOX_PATH_DIRS)
    return f"""# Claude Sandbox environment
export PS1="\\[\\033[32m\\][sandbox]\\[\\033[0m\\] \\w \\$ "
export PATH="{path}"

alias ll='ls -la'
alias la='ls -A'
alias l='ls -CF'
"""


def render_instructions(has_token: bool, tier: TrustTier, has_sandbox_repo: bool) -> str:
    """The CLAUDE.md document describing the sandbox to the assistant."""
    if not has_token:
        github = "- No GitHub authentication configured"
    elif tier is TrustTier.ELEVATED:
        github = (
            "- GitHub authenticated with **DANGEROUS** permissions (repository creation, etc.)\n"
            "- ⚠️  Use caution with these elevated permissions!"
        )
    else:
        github = (
            "- GitHub authenticated with standard permissions\n"
            "- You can use git and gh commands\n"
            "- Repository creation and most admin actions are disabled\n"
            "- For broader permissions, ask the user to restart with "
            "`claudebox --dangerous-github-auth`"
        )

    repo = ""
    if has_sandbox_repo:
        repo = """

## User Configuration

Your personal .claude_sandbox repository is mounted at `/root/.claude_sandbox`.
Check `/root/.claude_sandbox/CLAUDE_SANDBOX.md` for user-specific instructions."""

    return f"""# ClaudeBox Sandbox Environment

You are running inside a ClaudeBox sandbox - an isolated environment.

## Environment Details

- **Workspace**: Your files are mounted at `{SANDBOX_WORKSPACE}`
- **Tools**: Node.js, npm, git, gh, make, ripgrep, Python 3, Julia (juliaup), less, procps, curl

## Important Notes

- You have full read/write access to `{SANDBOX_WORKSPACE}`
- System directories are read-only or overlayed
- Network access is available

## GitHub Integration

{github}{repo}
"""


def write_session_files(
    layout: SessionLayout, has_token: bool, tier: TrustTier, has_sandbox_repo: bool
) -> None:
    """Render the instructions document and bashrc for this session."""
    layout.settings_prefix.mkdir(parents=True, exist_ok=True)
    layout.instructions_file.write_text(
        render_instructions(has_token, tier, has_sandbox_repo), encoding="utf-8"
    )
    layout.bashrc.write_text(render_bashrc(), encoding="utf-8")
