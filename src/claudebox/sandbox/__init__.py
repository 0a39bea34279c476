"""Sandbox package — persona commands, scratch layout and plan resolution."""

from claudebox.sandbox.layout import SessionLayout
from claudebox.sandbox.personas import Persona, build_argv
from claudebox.sandbox.resolver import (
    MountMode,
    MountSpec,
    SandboxEnvironmentResolver,
    SandboxPlan,
    SandboxSession,
)

__all__ = [
    "MountMode",
    "MountSpec",
    "Persona",
    "SandboxEnvironmentResolver",
    "SandboxPlan",
    "SandboxSession",
    "SessionLayout",
    "build_argv",
]
