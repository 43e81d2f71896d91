"""devweb generation pipeline.

Runs the four generation stages in strict order:

Stage 1: STRUCTURE    -- Create the directory skeleton.
Stage 2: FILES        -- Write every generated file.
Stage 3: DEPENDENCIES -- Install runtime and development packages.
Stage 4: POST-HOOKS   -- git init, manifest verification.

Every filesystem mutation goes through one :class:`TransactionalFileStore`
per run.  A failure in a fatal stage rolls the store back and re-raises the
original error with the rollback report attached, so the output directory is
either a complete project or back to how it was before the run.

Usage::

    pipeline = GenerationPipeline(Settings(output_dir=Path("./out")))
    report = await pipeline.generate(ProjectConfig(project_name="my-api"))
"""

from __future__ import annotations

import asyncio
import time
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any, Awaitable, Callable, Sequence, TypeVar

from devweb.config import Settings
from devweb.errors import GenerationError, TargetExistsError
from devweb.installer.hooks import HookContext, PostHook, default_hooks
from devweb.installer.packages import MANAGER_OUTPUTS, resolve_packages
from devweb.installer.process_runner import ProcessRunner, detect_package_manager
from devweb.models import FileArtifact, InstallRequest, PackageManager, ProjectConfig, Stage
from devweb.scaffolder.artifacts import resolve_artifacts
from devweb.scaffolder.layout import directory_skeleton
from devweb.scaffolder.paths import PathGuard
from devweb.scaffolder.store import RollbackReport, TransactionalFileStore
from devweb.utils import (
    STAGE_TITLES,
    console,
    create_progress,
    format_duration,
    print_debug,
    print_error,
    print_stage_header,
    print_success,
    print_warning,
)

ArtifactResolver = Callable[[ProjectConfig], Sequence[FileArtifact]]

_T = TypeVar("_T")


# ---------------------------------------------------------------------------
# State machine
# ---------------------------------------------------------------------------


class PipelineState(str, Enum):
    """Lifecycle of one generation run."""

    IDLE = "idle"
    CREATING_STRUCTURE = "creating-structure"
    WRITING_FILES = "writing-files"
    INSTALLING_DEPENDENCIES = "installing-dependencies"
    RUNNING_POST_HOOKS = "running-post-hooks"
    COMMITTED = "committed"
    ROLLING_BACK = "rolling-back"
    FAILED = "failed"


_TRANSITIONS: dict[PipelineState, frozenset[PipelineState]] = {
    PipelineState.IDLE: frozenset(
        {PipelineState.CREATING_STRUCTURE, PipelineState.ROLLING_BACK}
    ),
    PipelineState.CREATING_STRUCTURE: frozenset(
        {PipelineState.WRITING_FILES, PipelineState.ROLLING_BACK}
    ),
    PipelineState.WRITING_FILES: frozenset(
        {PipelineState.INSTALLING_DEPENDENCIES, PipelineState.ROLLING_BACK}
    ),
    PipelineState.INSTALLING_DEPENDENCIES: frozenset(
        {PipelineState.RUNNING_POST_HOOKS, PipelineState.ROLLING_BACK}
    ),
    PipelineState.RUNNING_POST_HOOKS: frozenset(
        {PipelineState.COMMITTED, PipelineState.ROLLING_BACK}
    ),
    PipelineState.ROLLING_BACK: frozenset({PipelineState.FAILED}),
    PipelineState.COMMITTED: frozenset(),
    PipelineState.FAILED: frozenset(),
}

TERMINAL_STATES = frozenset({PipelineState.COMMITTED, PipelineState.FAILED})

_STAGE_STATES: dict[Stage, PipelineState] = {
    Stage.STRUCTURE: PipelineState.CREATING_STRUCTURE,
    Stage.FILES: PipelineState.WRITING_FILES,
    Stage.DEPENDENCIES: PipelineState.INSTALLING_DEPENDENCIES,
    Stage.POST_HOOKS: PipelineState.RUNNING_POST_HOOKS,
}


# ---------------------------------------------------------------------------
# Report
# ---------------------------------------------------------------------------


@dataclass
class GenerationReport:
    """What one ``generate()`` call did."""

    project_root: Path
    state: PipelineState = PipelineState.IDLE
    history: list[PipelineState] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)
    summary: dict[str, int] = field(default_factory=dict)
    package_manager: str | None = None
    packages: list[str] = field(default_factory=list)
    duration_seconds: float = 0.0
    rollback: RollbackReport | None = None
    error: str | None = None

    @property
    def success(self) -> bool:
        return self.state is PipelineState.COMMITTED


# ---------------------------------------------------------------------------
# Pipeline
# ---------------------------------------------------------------------------


class GenerationPipeline:
    """Transactional project generator.

    Attributes:
        settings: Engine settings (output directory, timeouts, fatal stages).
        runner: Process runner used for installs and hooks.
        hooks: Post-generation hooks, run in order.
        state: Current :class:`PipelineState`.
        history: Every state entered during the current run.
        report: Report of the current (or last) run.
        store: File store of the current run, ``None`` outside a run.
    """

    def __init__(
        self,
        settings: Settings | None = None,
        runner: ProcessRunner | None = None,
        hooks: Sequence[PostHook] | None = None,
        resolver: ArtifactResolver | None = None,
    ) -> None:
        self.settings = settings or Settings()
        self.runner = runner or ProcessRunner()
        self.hooks: list[PostHook] = list(hooks) if hooks is not None else default_hooks()
        self.resolver: ArtifactResolver = resolver or resolve_artifacts
        self.state = PipelineState.IDLE
        self.history: list[PipelineState] = [PipelineState.IDLE]
        self.report: GenerationReport | None = None
        self.store: TransactionalFileStore | None = None
        self._installed = False

    # ------------------------------------------------------------------
    # State machine
    # ------------------------------------------------------------------

    def _transition(self, target: PipelineState) -> None:
        if target not in _TRANSITIONS[self.state]:
            raise RuntimeError(
                f"Illegal pipeline transition: {self.state.value} -> {target.value}"
            )
        self.state = target
        self.history.append(target)
        if self.report is not None:
            self.report.state = target
            self.report.history = list(self.history)

    def _reset(self) -> None:
        if self.state not in TERMINAL_STATES and self.state is not PipelineState.IDLE:
            raise RuntimeError(f"Generation already in progress ({self.state.value})")
        self.state = PipelineState.IDLE
        self.history = [PipelineState.IDLE]
        self.report = None
        self.store = None
        self._installed = False

    def project_root(self, config: ProjectConfig) -> Path:
        """Return the confined root directory for *config*."""
        return PathGuard(self.settings.output_dir).normalize(config.project_name)

    def _require_store(self) -> TransactionalFileStore:
        if self.store is None:
            raise RuntimeError("No generation in progress")
        return self.store

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    async def generate(
        self,
        config: ProjectConfig,
        artifacts: Sequence[FileArtifact] | None = None,
    ) -> GenerationReport:
        """Generate the project described by *config*.

        Args:
            config: The frozen project configuration.
            artifacts: Files to write.  ``None`` resolves them from the
                bundled templates.

        Returns:
            A :class:`GenerationReport` for the committed run.

        Raises:
            TargetExistsError: If the project root exists and is not empty
                (unless ``settings.allow_existing``).  Nothing is touched.
            GenerationError: The error of the first fatal stage that failed,
                with ``error.rollback`` holding the rollback outcome.
        """
        self._reset()
        root = self.project_root(config)
        start = time.monotonic()

        if not self.settings.allow_existing and await asyncio.to_thread(_is_occupied, root):
            raise TargetExistsError(root)

        self.store = TransactionalFileStore(root, verbose=self.settings.verbose)
        self.report = GenerationReport(
            project_root=root, state=self.state, history=list(self.history)
        )

        try:
            await self._run_stage(Stage.STRUCTURE, self.create_structure(config))
            await self._run_stage(Stage.FILES, self._write_resolved(config, artifacts))
            await self._run_stage(Stage.DEPENDENCIES, self.install_dependencies(config))
            await self._run_stage(Stage.POST_HOOKS, self.run_post_hooks(config))
        except (Exception, asyncio.CancelledError) as exc:
            await self._rollback(exc)
            self.report.duration_seconds = time.monotonic() - start
            raise

        self.report.summary = self.store.summary()
        self.store.commit()
        self._transition(PipelineState.COMMITTED)
        self.report.duration_seconds = time.monotonic() - start
        print_success(
            f"Project {config.project_name} generated in "
            f"{format_duration(self.report.duration_seconds)}"
        )
        return self.report

    async def _run_stage(self, stage: Stage, work: Awaitable[object]) -> None:
        """Enter *stage*, await *work*, and apply the stage's fatality."""
        self._transition(_STAGE_STATES[stage])
        print_stage_header(stage)
        stage_start = time.monotonic()
        try:
            await work
        except (Exception, asyncio.CancelledError) as exc:
            if self.settings.is_fatal(stage) or isinstance(exc, asyncio.CancelledError):
                print_error(f"{STAGE_TITLES[stage]} failed: {exc}")
                raise
            message = f"{STAGE_TITLES[stage]}: {exc}"
            self._warn(message)
            return
        print_success(
            f"{STAGE_TITLES[stage]} completed in "
            f"{format_duration(time.monotonic() - stage_start)}"
        )

    # ------------------------------------------------------------------
    # Stage 1: STRUCTURE
    # ------------------------------------------------------------------

    async def create_structure(self, config: ProjectConfig) -> list[Path]:
        """Create the project root and its directory skeleton."""
        store = self._require_store()
        created: list[Path] = [await _in_thread(store.create_directory, store.root)]
        for rel in directory_skeleton(config):
            created.append(await _in_thread(store.create_directory, rel))
        console.print(f"  Created {len(created) - 1} directories under {store.root}")
        return created

    # ------------------------------------------------------------------
    # Stage 2: FILES
    # ------------------------------------------------------------------

    async def _write_resolved(
        self, config: ProjectConfig, artifacts: Sequence[FileArtifact] | None
    ) -> None:
        if artifacts is None:
            artifacts = await asyncio.to_thread(self.resolver, config)
        await self.write_artifacts(artifacts)

    async def write_artifacts(self, artifacts: Sequence[FileArtifact]) -> list[Path]:
        """Write each artifact, in the given order."""
        store = self._require_store()
        written: list[Path] = []
        for artifact in artifacts:
            written.append(
                await _in_thread(
                    store.write_file, artifact.path, artifact.content, artifact.mode
                )
            )
        console.print(f"  Wrote {len(written)} files")
        return written

    # ------------------------------------------------------------------
    # Stage 3: DEPENDENCIES
    # ------------------------------------------------------------------

    async def install_dependencies(self, config: ProjectConfig) -> list[str]:
        """Install runtime packages, then development packages.

        Output the package manager leaves in the project root (``node_modules``,
        lock files) is adopted into the ledger after every invocation, whether
        it succeeded or not.

        Returns:
            Every package requested.
        """
        store = self._require_store()
        runtime, dev = resolve_packages(config)
        requested = [*runtime, *dev]
        if self.report is not None:
            self.report.packages = requested

        if self.settings.skip_install:
            console.print("  [dim]Skipped (installation disabled)[/dim]")
            return requested

        manager = detect_package_manager(self.settings.package_manager, self.runner.which)
        if self.report is not None:
            self.report.package_manager = manager.value
        console.print(f"  Using [bold]{manager.value}[/bold]")

        for packages, dev_flag in ((runtime, False), (dev, True)):
            if not packages:
                continue
            request = InstallRequest(
                packages=tuple(packages),
                dev=dev_flag,
                cwd=store.root,
                timeout=self.settings.install_timeout,
            )
            await self._install(request, manager)

        self._installed = True
        return requested

    async def _install(self, request: InstallRequest, manager: PackageManager) -> None:
        store = self._require_store()
        outputs = [store.root / name for name in MANAGER_OUTPUTS[manager]]
        preexisting = {p for p in outputs if p.exists() or p.is_symlink()}
        label = "dev dependencies" if request.dev else "dependencies"

        try:
            if self.settings.verbose:
                await self.runner.install(request, manager, on_output=_echo_output)
            else:
                with create_progress() as progress:
                    progress.add_task(
                        f"Installing {len(request.packages)} {label}...", total=None
                    )
                    await self.runner.install(request, manager)
        finally:
            for path in outputs:
                if path not in preexisting:
                    await _in_thread(store.adopt, path)

        console.print(f"  [green]+[/green] Installed {label}: {', '.join(request.packages)}")

    # ------------------------------------------------------------------
    # Stage 4: POST-HOOKS
    # ------------------------------------------------------------------

    async def run_post_hooks(self, config: ProjectConfig) -> list[str]:
        """Run every post-hook in order.

        Hook failures are warnings unless the post-hooks stage is fatal, in
        which case the first failure is raised.

        Returns:
            Status lines of the hooks that ran.
        """
        store = self._require_store()
        runtime, dev = resolve_packages(config)
        context = HookContext(
            root=store.root,
            config=config,
            runner=self.runner,
            timeout=self.settings.hook_timeout,
            installed=self._installed,
            packages=[*runtime, *dev],
        )
        fatal = self.settings.is_fatal(Stage.POST_HOOKS)
        results: list[str] = []

        for hook in self.hooks:
            try:
                status = await hook.run(context)
            except GenerationError as exc:
                if fatal:
                    raise
                self._warn(str(exc))
                continue
            finally:
                for path in context.created:
                    await _in_thread(store.adopt, path)
                context.created.clear()

            if status is None:
                console.print(f"  [dim]{hook.name}: skipped[/dim]")
            else:
                console.print(f"  [green]+[/green] {status}")
                results.append(status)
        return results

    # ------------------------------------------------------------------
    # Rollback
    # ------------------------------------------------------------------

    async def _rollback(self, exc: BaseException) -> RollbackReport:
        store = self._require_store()
        self._transition(PipelineState.ROLLING_BACK)
        print_warning(f"Rolling back {len(store.ledger)} recorded entries...")

        report = await _in_thread(store.rollback)

        if isinstance(exc, GenerationError):
            exc.rollback = report
        if self.report is not None:
            self.report.rollback = report
            self.report.error = str(exc)
        self._transition(PipelineState.FAILED)

        if report.complete:
            print_success(report.summary())
        else:
            print_error(report.summary())
        return report

    def _warn(self, message: str) -> None:
        if self.report is not None:
            self.report.warnings.append(message)
        print_warning(message)


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _is_occupied(root: Path) -> bool:
    """Return ``True`` if *root* exists and is anything but an empty directory."""
    if not (root.exists() or root.is_symlink()):
        return False
    if not root.is_dir():
        return True
    return any(root.iterdir())


def _echo_output(stream: str, line: str) -> None:
    if line.strip():
        print_debug(f"[{stream}] {line}")


async def _in_thread(func: Callable[..., _T], *args: Any) -> _T:
    """Run a blocking store call in a worker thread.

    If the caller is cancelled, wait for the call to finish before the
    cancellation propagates, so nothing touches the disk after rollback.
    """
    future = asyncio.ensure_future(asyncio.to_thread(func, *args))
    try:
        return await asyncio.shield(future)
    except asyncio.CancelledError:
        await asyncio.wait({future})
        if not future.cancelled():
            # Retrieved so it is not logged as never retrieved.
            future.exception()
        raise
