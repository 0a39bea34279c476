"""Assistant CLI personas and their command lines."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Optional, Sequence

from claudebox.config import SANDBOX_HOME


@dataclass(frozen=True)
class PersonaProfile:
    executable: str
    bypass_flag: Optional[str]
    config_dir: str  # relative to the user's home, on the host and in the sandbox
    npm_package: str


class Persona(str, Enum):
    CLAUDE = "claude"
    GEMINI = "gemini"
    OPENCODE = "opencode"
    CODEX = "codex"

    @property
    def profile(self) -> PersonaProfile:
        return _PROFILES[self]

    @property
    def container_path(self) -> str:
        return f"{SANDBOX_HOME}/{self.profile.config_dir}"

    @property
    def home_dirname(self) -> str:
        """Name of the managed directory under the settings scratch."""
        return f"{self.value}_home"


_PROFILES = {
    Persona.CLAUDE: PersonaProfile(
        executable="claude",
        bypass_flag="--dangerously-skip-permissions",
        config_dir=".claude",
        npm_package="@anthropic-ai/claude-code",
    ),
    Persona.GEMINI: PersonaProfile(
        executable="gemini",
        bypass_flag="--yolo",
        config_dir=".gemini",
        npm_package="@google/gemini-cli",
    ),
    Persona.OPENCODE: PersonaProfile(
        executable="opencode",
        bypass_flag=None,
        config_dir=".config/opencode",
        npm_package="opencode-ai",
    ),
    Persona.CODEX: PersonaProfile(
        executable="codex",
        bypass_flag="--dangerously-bypass-approvals-and-sandbox",
        config_dir=".codex",
        npm_package="@openai/codex",
    ),
}


def build_argv(
    persona: Persona,
    stored_args: Sequence[str] = (),
    extra_args: Sequence[str] = (),
) -> list[str]:
    """Build the CLI invocation for *persona*.

    The persona's bypass flag comes first unless the caller already passed
    it, then *stored_args* (session defaults), then *extra_args*.
    """
    profile = persona.profile
    present = set(stored_args) | set(extra_args)
    argv = [profile.executable]
    if profile.bypass_flag and profile.bypass_flag not in present:
        argv.append(profile.bypass_flag)
    argv.extend(stored_args)
    argv.extend(extra_args)
    return argv
