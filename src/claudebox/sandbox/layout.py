"""Managed scratch layout — where tools, persona homes and tokens live on the host."""

from __future__ import annotations

import logging
import shutil
from dataclasses import dataclass
from pathlib import Path

from claudebox.config import CLAUDEBOX_DIR, SETTINGS_DIRNAME, TOOLS_DIRNAME
from claudebox.sandbox.personas import Persona

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ToolSpec:
    """A binary distribution the Artifact Provisioner installs into ``dirname``."""

    name: str
    package: str
    dirname: str
    markers: tuple[str, ...]


TOOLS = (
    ToolSpec("Node.js v22", "NodeJS_22_jll", "nodejs", ("bin/node",)),
    ToolSpec("GitHub CLI", "gh_cli_jll", "gh_cli", ("bin/gh",)),
    ToolSpec(
        "build tools",
        "ripgrep_jll,Python_jll,less_jll,procps_jll,CURL_jll",
        "build_tools",
        (
            "bin/git", "bin/make", "bin/rg", "bin/python3", "bin/less", "bin/ps",
            "bin/curl", "bin/ar", "bin/nm", "bin/objdump", "bin/ld", "bin/gcc",
            "tools/clang", "tools/lld",
        ),
    ),
    ToolSpec("juliaup", "juliaup_jll", "juliaup", ("bin/juliaup",)),
)


@dataclass(frozen=True)
class SessionLayout:
    """Paths under the managed scratch root.  Nothing is created until ``ensure``."""

    root: Path = CLAUDEBOX_DIR

    @property
    def tools_prefix(self) -> Path:
        return self.root / TOOLS_DIRNAME

    @property
    def settings_prefix(self) -> Path:
        return self.root / SETTINGS_DIRNAME

    def tool_dir(self, dirname: str) -> Path:
        return self.tools_prefix / dirname

    @property
    def npm_dir(self) -> Path:
        return self.tool_dir("npm")

    @property
    def toolchain_dir(self) -> Path:
        return self.tool_dir("toolchain")

    @property
    def julia_dir(self) -> Path:
        return self.tool_dir("julia")

    @property
    def ssl_certs_dir(self) -> Path:
        return self.tools_prefix / "ssl_certs"

    @property
    def resolv_conf(self) -> Path:
        return self.tools_prefix / "resolv.conf"

    @property
    def gitconfig(self) -> Path:
        return self.tools_prefix / "gitconfig"

    @property
    def instructions_file(self) -> Path:
        return self.settings_prefix / "CLAUDE.md"

    @property
    def bashrc(self) -> Path:
        return self.settings_prefix / "bashrc"

    @property
    def claude_json(self) -> Path:
        return self.settings_prefix / "claude.json"

    @property
    def sandbox_repo_dir(self) -> Path:
        return self.settings_prefix / "claude_sandbox_repo"

    @property
    def token_dir(self) -> Path:
        return self.settings_prefix

    def persona_home(self, persona: Persona) -> Path:
        return self.settings_prefix / persona.home_dirname

    # ── state on disk ───────────────────────────────────────────────

    def ensure(self) -> None:
        """Create every directory that will be mounted, otherwise the mount fails."""
        dirs = [self.tool_dir(t.dirname) for t in TOOLS]
        dirs += [self.npm_dir / "bin", self.npm_dir / "lib", self.npm_dir / "cache"]
        dirs += [self.toolchain_dir, self.julia_dir]
        dirs += [self.persona_home(p) for p in Persona]
        for d in dirs:
            d.mkdir(parents=True, exist_ok=True)
        if not self.claude_json.exists():
            self.claude_json.write_text("{}", encoding="utf-8")

    def missing_tools(self) -> list[ToolSpec]:
        """Tools whose marker executables are absent and need provisioning."""
        return [
            t
            for t in TOOLS
            if not all((self.tool_dir(t.dirname) / m).is_file() for m in t.markers)
        ]

    def persona_installed(self, persona: Persona) -> bool:
        return (self.npm_dir / "bin" / persona.profile.executable).is_file()


def reset_tools(layout: SessionLayout) -> bool:
    """Remove installed tools but keep persona settings and tokens."""
    if layout.tools_prefix.is_dir():
        shutil.rmtree(layout.tools_prefix, ignore_errors=True)
        logger.info("Removed %s", layout.tools_prefix)
        return True
    return False


def reset_all(layout: SessionLayout) -> bool:
    """Remove everything, stored GitHub tokens of both tiers included."""
    if layout.root.is_dir():
        shutil.rmtree(layout.root, ignore_errors=True)
        logger.info("Removed %s", layout.root)
        return True
    return False
