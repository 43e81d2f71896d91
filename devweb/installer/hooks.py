"""Post-generation hooks.

Hooks run after the project files and dependencies are in place.  They are
advisory by default: the pipeline turns a :class:`HookError` into a warning
unless the post-hooks stage has been configured as fatal.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Protocol, runtime_checkable

from devweb.errors import GenerationError, HookError
from devweb.installer.packages import verify_manifest
from devweb.installer.process_runner import ProcessRunner
from devweb.models import ProjectConfig


@dataclass
class HookContext:
    """Everything a hook may look at or act on."""

    root: Path
    config: ProjectConfig
    runner: ProcessRunner
    timeout: float = 30.0
    installed: bool = False
    packages: list[str] = field(default_factory=list)
    # Set by a hook to tell the pipeline about paths it created.
    created: list[Path] = field(default_factory=list)


@runtime_checkable
class PostHook(Protocol):
    """A named, idempotent step run once the project is on disk."""

    name: str

    async def run(self, context: HookContext) -> str | None:
        """Run the hook.  Returns a short status line, or ``None`` if skipped."""
        ...


class VersionControlHook:
    """Initialise a git repository in the project root."""

    name = "git-init"

    async def run(self, context: HookContext) -> str | None:
        if not context.config.init_version_control:
            return None
        if (context.root / ".git").exists():
            return None

        git_dir = context.root / ".git"
        try:
            await context.runner.run("git", ["init"], cwd=context.root, timeout=context.timeout)
        except GenerationError as exc:
            # A half-initialised repository still belongs to this run.
            if git_dir.exists():
                context.created.append(git_dir)
            raise HookError(self.name, str(exc)) from exc

        context.created.append(git_dir)
        return "Initialized git repository"


class DependencyVerificationHook:
    """Check that ``package.json`` declares every requested package."""

    name = "verify-dependencies"

    async def run(self, context: HookContext) -> str | None:
        if not context.installed or not context.packages:
            return None

        missing = verify_manifest(context.root, context.packages)
        if missing:
            raise HookError(self.name, "missing from package.json: " + ", ".join(missing))
        return f"Verified {len(context.packages)} packages"


def default_hooks() -> list[PostHook]:
    """Return the built-in hooks in execution order."""
    return [VersionControlHook(), DependencyVerificationHook()]
