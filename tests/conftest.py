"""Shared pytest fixtures for the devweb test suite.

Provides reusable fixtures for:
- Output directories and engine settings
- Sample project configurations
- A scripted process runner that never spawns real processes
- Helpers for snapshotting a directory tree
"""

from __future__ import annotations

import sys
from pathlib import Path
from unittest.mock import AsyncMock, MagicMock

import pytest

from devweb.config import Settings
from devweb.installer.process_runner import ProcessResult, ProcessRunner
from devweb.models import Datastore, Feature, ProjectConfig, TemplateMode
from devweb.utils import console


# ---------------------------------------------------------------------------
# Console
# ---------------------------------------------------------------------------

@pytest.fixture(autouse=True)
def quiet_console():
    """Silence Rich output for every test."""
    previous = console.quiet
    console.quiet = True
    yield console
    console.quiet = previous


# ---------------------------------------------------------------------------
# Paths & settings
# ---------------------------------------------------------------------------

@pytest.fixture
def output_dir(tmp_path: Path) -> Path:
    """Existing, empty directory that projects are generated into."""
    out = tmp_path / "out"
    out.mkdir()
    return out


@pytest.fixture
def settings(output_dir: Path) -> Settings:
    """Settings pointing at *output_dir* with a short install timeout."""
    return Settings(output_dir=output_dir, package_manager="npm", install_timeout=5, hook_timeout=5)


# ---------------------------------------------------------------------------
# Configurations
# ---------------------------------------------------------------------------

@pytest.fixture
def minimal_config() -> ProjectConfig:
    """api-only, no datastore, no features, no git."""
    return ProjectConfig(project_name="demo", init_version_control=False)


@pytest.fixture
def full_config() -> ProjectConfig:
    """dynamic-template with a datastore and every feature enabled."""
    return ProjectConfig(
        project_name="full-app",
        description="Everything switched on",
        template_mode=TemplateMode.DYNAMIC_TEMPLATE,
        datastore=Datastore.POSTGRES,
        features=frozenset(Feature),
        port=8080,
    )


# ---------------------------------------------------------------------------
# Process runner
# ---------------------------------------------------------------------------

@pytest.fixture
def fake_runner():
    """A ``ProcessRunner`` double whose installs and commands succeed.

    ``install`` creates ``node_modules/`` and ``package-lock.json`` in the
    request's working directory, like ``npm install`` does.
    """
    runner = MagicMock(spec=ProcessRunner)
    runner.which = MagicMock(return_value="/usr/bin/npm")

    async def fake_install(request, manager, on_output=None):
        modules = Path(request.cwd) / "node_modules"
        modules.mkdir(exist_ok=True)
        for name in request.packages:
            (modules / name).mkdir(exist_ok=True)
        (Path(request.cwd) / "package-lock.json").write_text("{}\n", encoding="utf-8")
        return ProcessResult(command=f"{manager.value} install")

    async def fake_run(command, args=(), cwd=None, timeout=300.0, on_output=None):
        if command == "git" and list(args) == ["init"]:
            (Path(cwd) / ".git").mkdir(exist_ok=True)
        return ProcessResult(command=" ".join([command, *args]))

    runner.install = AsyncMock(side_effect=fake_install)
    runner.run = AsyncMock(side_effect=fake_run)
    return runner


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def _snapshot(root: Path) -> set[str]:
    return {p.relative_to(root).as_posix() for p in root.rglob("*")}


@pytest.fixture
def snapshot():
    """Return a function listing every path under a root, relative and POSIX-style."""
    return _snapshot


@pytest.fixture
def python_exe() -> str:
    """Interpreter used to spawn real child processes."""
    return sys.executable
