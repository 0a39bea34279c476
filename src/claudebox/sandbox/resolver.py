"""Sandbox environment resolver — decides what to mount, set and run.

The resolver never isolates anything itself. It produces a ``SandboxPlan``
that the external sandbox executor consumes.
"""

from __future__ import annotations

import logging
import os
import re
import shlex
from dataclasses import dataclass, field, replace
from enum import Enum
from pathlib import Path
from typing import Mapping, Optional, Sequence

from claudebox.config import (
    HOST_CA_BUNDLES,
    HOST_RESOLV_CONF,
    PROVIDER_API_KEY_VARS,
    SANDBOX_CA_DIR,
    SANDBOX_CA_FILE,
    SANDBOX_HOME,
    SANDBOX_HOSTNAME,
    SANDBOX_INSTRUCTIONS,
    SANDBOX_LANG,
    SANDBOX_NPM_PREFIX,
    SANDBOX_PATH_DIRS,
    SANDBOX_RESOLV_CONF,
    SANDBOX_TERMINFO,
    SANDBOX_USER,
    SANDBOX_WORKSPACE,
)
from claudebox.sandbox.files import stage_ca_bundle, stage_resolv_conf
from claudebox.sandbox.layout import SessionLayout
from claudebox.sandbox.personas import Persona, build_argv

logger = logging.getLogger(__name__)

_TOOLCHAIN_ENTRY = re.compile(r"^\d+-(?P<head>[^/]+)$")


class MountMode(str, Enum):
    READ_ONLY = "ro"
    READ_WRITE = "rw"
    OVERLAYED = "overlay"


@dataclass(frozen=True)
class MountSpec:
    container_path: str
    host_path: Path
    mode: MountMode


@dataclass
class SandboxPlan:
    """Everything the executor needs.  Rebuilt every session, never persisted."""

    mounts: dict[str, MountSpec] = field(default_factory=dict)
    env: dict[str, str] = field(default_factory=dict)
    argv: list[str] = field(default_factory=list)
    workdir: str = SANDBOX_WORKSPACE
    hostname: str = SANDBOX_HOSTNAME
    persist: bool = True

    def add_mount(self, container_path: str, host_path: Path, mode: MountMode) -> None:
        """Later mounts for the same container path replace earlier ones."""
        self.mounts[container_path] = MountSpec(container_path, Path(host_path), mode)


@dataclass(frozen=True)
class SandboxSession:
    """Read-only view of the session handed to the resolver."""

    work_dir: Path
    persona: Persona
    layout: SessionLayout
    github_token: str = ""
    stored_args: tuple[str, ...] = ()
    extra_args: tuple[str, ...] = ()
    sandbox_repo_dir: Optional[Path] = None


class SandboxEnvironmentResolver:
    """Computes mounts, environment and argv for a session.

    *host_home* and *host_env* default to the real user's home and
    ``os.environ``; tests substitute their own.
    """

    def __init__(
        self,
        host_home: Path | None = None,
        host_env: Mapping[str, str] | None = None,
        ca_bundles: Sequence[Path] = HOST_CA_BUNDLES,
        resolv_conf: Path = HOST_RESOLV_CONF,
    ) -> None:
        self.host_home = Path(host_home) if host_home is not None else Path.home()
        self.host_env = host_env if host_env is not None else os.environ
        self.ca_bundles = tuple(ca_bundles)
        self.resolv_conf = resolv_conf

    # ── public ──────────────────────────────────────────────────────

    def resolve(self, session: SandboxSession) -> SandboxPlan:
        """Build the plan for *session*.

        A relative work directory is taken relative to the current directory.
        """
        work_dir = Path(session.work_dir)
        if not work_dir.is_absolute():
            session = replace(session, work_dir=work_dir.resolve())

        plan = SandboxPlan()
        self._add_tool_mounts(plan, session.layout)
        self._add_persona_mounts(plan, session)
        self._add_session_mounts(plan, session)
        self._add_system_files(plan, session.layout)
        self._add_toolchain_overlays(plan, session.layout)
        plan.env = self.build_env(session)
        plan.argv = build_argv(session.persona, session.stored_args, session.extra_args)
        return plan

    def build_env(self, session: SandboxSession) -> dict[str, str]:
        """Environment for the sandbox.

        Every provider key is always present (empty when unset on the host)
        so switching persona inside a session needs no recomputation.
        """
        env = {
            "HOME": SANDBOX_HOME,
            "PATH": ":".join(SANDBOX_PATH_DIRS),
            "NODE_PATH": f"{SANDBOX_NPM_PREFIX}/lib/node_modules",
            "npm_config_prefix": SANDBOX_NPM_PREFIX,
            "npm_config_cache": f"{SANDBOX_NPM_PREFIX}/cache",
            "npm_config_userconfig": f"{SANDBOX_NPM_PREFIX}/.npmrc",
            "TERM": self.host_env.get("TERM", "xterm-256color"),
            "TERMINFO": SANDBOX_TERMINFO,
            "LANG": SANDBOX_LANG,
            "USER": SANDBOX_USER,
            "WORKSPACE": SANDBOX_WORKSPACE,
            "JULIA_DEPOT_PATH": f"{SANDBOX_HOME}/.julia",
            "SSL_CERT_FILE": SANDBOX_CA_FILE,
            "JULIA_SSL_CA_ROOTS_PATH": SANDBOX_CA_FILE,
        }
        for var in PROVIDER_API_KEY_VARS:
            env[var] = self.host_env.get(var, "")
        if session.github_token:
            env["GITHUB_TOKEN"] = session.github_token
            env["GH_TOKEN"] = session.github_token
        return env

    def persona_source(self, session: SandboxSession, persona: Persona) -> Path:
        """Host directory backing *persona*'s configuration mount.

        Only the active persona may use a pre-existing directory from the
        real home; inactive personas always get the managed directory.
        """
        if persona is session.persona:
            external = self.host_home / persona.profile.config_dir
            if external.is_dir():
                return external
        return session.layout.persona_home(persona)

    # ── private ─────────────────────────────────────────────────────

    def _add_tool_mounts(self, plan: SandboxPlan, layout: SessionLayout) -> None:
        for name in ("nodejs", "gh_cli", "build_tools", "juliaup"):
            plan.add_mount(f"/opt/{name}", layout.tool_dir(name), MountMode.READ_ONLY)
        plan.add_mount(SANDBOX_NPM_PREFIX, layout.npm_dir, MountMode.READ_WRITE)
        plan.add_mount(f"{SANDBOX_HOME}/.julia", layout.julia_dir, MountMode.READ_WRITE)

    def _add_persona_mounts(self, plan: SandboxPlan, session: SandboxSession) -> None:
        for persona in Persona:
            source = self.persona_source(session, persona)
            if source != session.layout.persona_home(persona):
                logger.info("Mounting external %s configuration: %s", persona.value, source)
            plan.add_mount(persona.container_path, source, MountMode.READ_WRITE)

    def _add_session_mounts(self, plan: SandboxPlan, session: SandboxSession) -> None:
        layout = session.layout
        plan.add_mount(SANDBOX_WORKSPACE, Path(session.work_dir), MountMode.READ_WRITE)
        plan.add_mount(f"{SANDBOX_HOME}/.claude.json", layout.claude_json, MountMode.READ_WRITE)
        if layout.gitconfig.is_file():
            plan.add_mount(f"{SANDBOX_HOME}/.gitconfig", layout.gitconfig, MountMode.READ_WRITE)
        if layout.instructions_file.is_file():
            plan.add_mount(SANDBOX_INSTRUCTIONS, layout.instructions_file, MountMode.READ_ONLY)
        if layout.bashrc.is_file():
            plan.add_mount(f"{SANDBOX_HOME}/.bashrc", layout.bashrc, MountMode.READ_ONLY)
        repo = session.sandbox_repo_dir
        if repo is not None and Path(repo).is_dir():
            plan.add_mount(f"{SANDBOX_HOME}/.claude_sandbox", Path(repo), MountMode.READ_WRITE)

    def _add_system_files(self, plan: SandboxPlan, layout: SessionLayout) -> None:
        resolv = stage_resolv_conf(layout, self.resolv_conf)
        if resolv is not None:
            plan.add_mount(SANDBOX_RESOLV_CONF, resolv, MountMode.READ_ONLY)
        certs = stage_ca_bundle(layout, self.ca_bundles)
        if certs is not None:
            plan.add_mount(SANDBOX_CA_DIR, certs, MountMode.READ_ONLY)

    def _add_toolchain_overlays(self, plan: SandboxPlan, layout: SessionLayout) -> None:
        """Mount each deployed toolchain prefix over its container path.

        A prefix such as ``/opt/bb2-tools`` is deployed to
        ``<toolchain>/<n>-opt/bb2-tools``; the index keeps trees for
        different prefixes apart on the host.
        """
        if not layout.toolchain_dir.is_dir():
            return
        for entry in sorted(layout.toolchain_dir.iterdir()):
            match = _TOOLCHAIN_ENTRY.match(entry.name)
            if not (entry.is_dir() and match):
                continue
            for tree in sorted(entry.iterdir()):
                if tree.is_dir():
                    prefix = f"/{match.group('head')}/{tree.name}"
                    plan.add_mount(prefix, tree, MountMode.OVERLAYED)


def shell_argv(argv: Sequence[str], installed: bool, keep_bash: bool) -> list[str]:
    """Wrap the CLI in a login shell, or start a plain shell if not installed."""
    shell = ["/bin/bash", "--login"]
    if not installed:
        return shell
    command = shlex.join(argv)
    if keep_bash:
        hint = f"🐚 Returned to bash shell. Run '{command}' to start {argv[0]} again."
        return shell + ["-c", f"{command}; echo {shlex.quote(hint)}; exec /bin/bash --login"]
    return shell + ["-c", command]
