"""Error taxonomy for the generation engine.

Every failure the engine reports derives from ``GenerationError``.  When a
fatal stage fails, the pipeline rolls back and re-raises the original error
with the rollback outcome attached as ``error.rollback`` so callers can list
any paths that could not be removed.
"""

from __future__ import annotations

from pathlib import Path
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from devweb.scaffolder.store import RollbackReport


class GenerationError(Exception):
    """Base class for all engine errors."""

    def __init__(self, message: str) -> None:
        self.rollback: RollbackReport | None = None
        super().__init__(message)


# ---------------------------------------------------------------------------
# Filesystem
# ---------------------------------------------------------------------------


class PathTraversal(GenerationError):
    """Raised when a path escapes the root it must stay confined to."""

    def __init__(self, path: str | Path, root: str | Path) -> None:
        self.path = str(path)
        self.root = str(root)
        super().__init__(f"Path traversal detected: '{self.path}' escapes '{self.root}'")


class DirectoryCreateError(GenerationError):
    """Raised when a directory cannot be created."""

    def __init__(self, path: str | Path, reason: str = "") -> None:
        self.path = Path(path)
        message = f"Directory creation failed: {self.path}"
        if reason:
            message += f" ({reason})"
        super().__init__(message)


class FileWriteError(GenerationError):
    """Raised when a file cannot be written."""

    def __init__(self, path: str | Path, reason: str = "") -> None:
        self.path = Path(path)
        message = f"File write failed: {self.path}"
        if reason:
            message += f" ({reason})"
        super().__init__(message)


class TargetExistsError(GenerationError):
    """Raised when the project root already exists and is not empty."""

    def __init__(self, path: str | Path) -> None:
        self.path = Path(path)
        super().__init__(
            f"Target directory already exists and is not empty: {self.path}"
        )


class StoreClosedError(GenerationError):
    """Raised when the file store is used after it has been rolled back."""

    def __init__(self, path: str | Path) -> None:
        self.path = Path(path)
        super().__init__(f"File store already rolled back, refusing to touch: {self.path}")


class RollbackPartialFailure(GenerationError):
    """Raised by a strict rollback that could not remove every ledger entry."""

    def __init__(self, report: RollbackReport) -> None:
        self.report = report
        super().__init__(
            f"Rollback left {report.failure_count} unresolved "
            f"entr{'y' if report.failure_count == 1 else 'ies'}: "
            + ", ".join(str(s.entry.path) for s in report.survivors)
        )


# ---------------------------------------------------------------------------
# External processes
# ---------------------------------------------------------------------------


class SpawnError(GenerationError):
    """Raised when an external command cannot be started at all."""

    def __init__(self, command: str, reason: str = "") -> None:
        self.command = command
        message = f"Could not start '{command}'"
        if reason:
            message += f": {reason}"
        super().__init__(message)


class InstallTimeout(GenerationError):
    """Raised when an external command exceeds its wall-clock timeout."""

    def __init__(self, command: str, timeout: float, stdout: str = "", stderr: str = "") -> None:
        self.command = command
        self.timeout = timeout
        self.stdout = stdout
        self.stderr = stderr
        super().__init__(f"Command timed out after {timeout:g}s: {command}")


class InstallFailed(GenerationError):
    """Raised when an external command exits with a non-zero status."""

    def __init__(self, command: str, exit_code: int, stdout: str = "", stderr: str = "") -> None:
        self.command = command
        self.exit_code = exit_code
        self.stdout = stdout
        self.stderr = stderr
        detail = (stderr or stdout).strip()
        message = f"Command failed (exit {exit_code}): {command}"
        if detail:
            message += f"\n{detail[-2000:]}"
        super().__init__(message)


class HookError(GenerationError):
    """Raised when a post-generation hook fails."""

    def __init__(self, hook: str, message: str) -> None:
        self.hook = hook
        super().__init__(f"Post-generation hook '{hook}' failed: {message}")
