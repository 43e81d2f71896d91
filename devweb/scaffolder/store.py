"""Transactional file store for project generation.

``TransactionalFileStore`` is the only component allowed to mutate the
filesystem while a project is being generated.  Every directory it creates
and every file it writes is appended to a ``GenerationLedger`` right after the
operation succeeds, so the ledger always mirrors what exists on disk in the
order it was created.  ``rollback()`` replays the ledger in reverse to undo a
failed run:

* files are deleted (already-absent counts as success);
* directories are deleted only when empty, so content the ledger does not
  own is never touched;
* replaced files (pre-existing files the run overwrote) get their original
  bytes and mode back;
* trees (output adopted from an external process, e.g. ``node_modules``)
  are removed recursively.

Individual deletion failures never stop the sweep; they are collected into
a ``RollbackReport``.  Once rolled back, the store refuses further writes;
every operation holds the store lock, so a rollback never interleaves with a
write still running in another thread.
"""

from __future__ import annotations

import contextlib
import os
import shutil
import stat
import threading
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Iterator

from devweb.errors import (
    DirectoryCreateError,
    FileWriteError,
    RollbackPartialFailure,
    StoreClosedError,
)
from devweb.scaffolder.paths import PathGuard
from devweb.utils import print_debug

DIRECTORY_MODE = 0o755
FILE_MODE = 0o644


# ---------------------------------------------------------------------------
# Ledger
# ---------------------------------------------------------------------------


class LedgerKind(str, Enum):
    """What a ledger entry created."""

    FILE = "file"
    DIRECTORY = "directory"
    TREE = "tree"
    REPLACED = "replaced"


@dataclass(frozen=True)
class LedgerEntry:
    """One filesystem creation, in the order it happened."""

    kind: LedgerKind
    path: Path
    # Only set for REPLACED entries.
    original: bytes | None = field(default=None, repr=False)
    original_mode: int | None = None


class GenerationLedger:
    """Ordered record of the creations made during one generation run."""

    def __init__(self) -> None:
        self._entries: list[LedgerEntry] = []
        self._paths: set[Path] = set()

    def append(
        self,
        kind: LedgerKind,
        path: Path,
        original: bytes | None = None,
        original_mode: int | None = None,
    ) -> LedgerEntry:
        entry = LedgerEntry(kind=kind, path=path, original=original, original_mode=original_mode)
        self._entries.append(entry)
        self._paths.add(path)
        return entry

    def has(self, path: Path) -> bool:
        return path in self._paths

    def entries(self) -> tuple[LedgerEntry, ...]:
        return tuple(self._entries)

    def count(self, kind: LedgerKind) -> int:
        return sum(1 for e in self._entries if e.kind is kind)

    def clear(self) -> None:
        self._entries.clear()
        self._paths.clear()

    def __iter__(self) -> Iterator[LedgerEntry]:
        return iter(tuple(self._entries))

    def __reversed__(self) -> Iterator[LedgerEntry]:
        return reversed(tuple(self._entries))

    def __len__(self) -> int:
        return len(self._entries)


# ---------------------------------------------------------------------------
# Rollback outcome
# ---------------------------------------------------------------------------


@dataclass
class RollbackSurvivor:
    """A ledger entry that rollback could not remove."""

    entry: LedgerEntry
    reason: str


@dataclass
class RollbackReport:
    """Outcome of one rollback sweep."""

    removed: list[LedgerEntry] = field(default_factory=list)
    survivors: list[RollbackSurvivor] = field(default_factory=list)

    @property
    def failure_count(self) -> int:
        return len(self.survivors)

    @property
    def complete(self) -> bool:
        """``True`` when every ledger entry was removed."""
        return not self.survivors

    def leftover_paths(self) -> list[Path]:
        """Paths the user must remove by hand."""
        return [s.entry.path for s in self.survivors]

    def summary(self) -> str:
        """Return a human-readable summary of the sweep."""
        if self.complete:
            return f"Rollback removed {len(self.removed)} entries"
        lines = [
            f"Rollback removed {len(self.removed)} entries, "
            f"{self.failure_count} could not be removed:"
        ]
        for survivor in self.survivors:
            lines.append(f"  - {survivor.entry.path} ({survivor.reason})")
        return "\n".join(lines)


# ---------------------------------------------------------------------------
# Store
# ---------------------------------------------------------------------------


class TransactionalFileStore:
    """Creates directories and files under *root*, recording each creation.

    Safe to call from worker threads: every public operation holds one lock,
    and after :meth:`rollback` every further write raises
    :class:`StoreClosedError`.

    Args:
        root: Project root.  Every path handed to the store is confined to
            it by a :class:`PathGuard`.  The root itself does not need to
            exist yet; it is created (and recorded) on first use.
        verbose: Print every creation and deletion.
    """

    def __init__(self, root: str | Path, *, verbose: bool = False) -> None:
        self.guard = PathGuard(root)
        self.ledger = GenerationLedger()
        self.verbose = verbose
        self.closed = False
        self._lock = threading.RLock()

    @property
    def root(self) -> Path:
        return self.guard.root

    # -- Creation ----------------------------------------------------------

    def create_directory(self, path: str | Path) -> Path:
        """Create *path* and any missing ancestors.

        Idempotent: an existing directory is left alone and nothing is
        recorded.  Each directory actually created is recorded separately,
        parents first.

        Raises:
            PathTraversal: If *path* escapes the root.
            StoreClosedError: If the store has already been rolled back.
            DirectoryCreateError: If something other than a directory is in
                the way, or the OS refuses the creation.
        """
        target = self.guard.normalize(path)
        with self._lock:
            self._ensure_open(target)
            return self._create_directory(target)

    def write_file(self, path: str | Path, content: bytes | str, mode: int = FILE_MODE) -> Path:
        """Write *content* to *path*, creating the parent directory if needed.

        A new file is recorded once it has been written and its mode applied,
        and removed again if the write fails.  A file that existed before the
        run is overwritten and recorded as ``replaced`` together with its
        original bytes and mode, which rollback puts back.

        Raises:
            PathTraversal: If *path* escapes the root.
            StoreClosedError: If the store has already been rolled back.
            DirectoryCreateError: If the parent directory cannot be created.
            FileWriteError: If the file cannot be written.
        """
        target = self.guard.normalize(path)
        with self._lock:
            self._ensure_open(target)
            return self._write_file(target, content, mode)

    def adopt(self, path: str | Path) -> LedgerEntry | None:
        """Record output an external process created under the root.

        Directories are recorded as trees and removed recursively on
        rollback.  Missing or already-recorded paths are ignored.

        Raises:
            StoreClosedError: If the store has already been rolled back.
        """
        target = self.guard.normalize(path)
        with self._lock:
            self._ensure_open(target)
            if self.ledger.has(target) or not (target.exists() or target.is_symlink()):
                return None
            kind = (
                LedgerKind.TREE if target.is_dir() and not target.is_symlink() else LedgerKind.FILE
            )
            entry = self.ledger.append(kind, target)
        if self.verbose:
            print_debug(f"Adopted {kind.value}: {target}")
        return entry

    # -- Commit / rollback -------------------------------------------------

    def commit(self) -> int:
        """Discard the ledger after a successful run.  Returns its length."""
        with self._lock:
            count = len(self.ledger)
            self.ledger.clear()
        return count

    def rollback(self, *, strict: bool = False) -> RollbackReport:
        """Undo every recorded creation, newest first.

        Waits for any operation still running in another thread, then
        closes the store.  Every entry is attempted even if earlier ones
        fail.  The ledger is empty afterwards.

        Args:
            strict: Raise :class:`RollbackPartialFailure` (after the full
                sweep) if any entry survived.

        Returns:
            A :class:`RollbackReport` listing removed entries and survivors.
        """
        report = RollbackReport()

        with self._lock:
            self.closed = True
            for entry in reversed(self.ledger):
                reason = self._undo(entry)
                if reason is None:
                    report.removed.append(entry)
                    if self.verbose:
                        print_debug(f"Undid {entry.kind.value}: {entry.path}")
                else:
                    report.survivors.append(RollbackSurvivor(entry=entry, reason=reason))
            self.ledger.clear()

        if strict and not report.complete:
            raise RollbackPartialFailure(report)
        return report

    def summary(self) -> dict[str, int]:
        """Counts of what the ledger currently records."""
        with self._lock:
            return {
                "files": self.ledger.count(LedgerKind.FILE),
                "directories": self.ledger.count(LedgerKind.DIRECTORY),
                "trees": self.ledger.count(LedgerKind.TREE),
                "replaced": self.ledger.count(LedgerKind.REPLACED),
            }

    # -- Internal ----------------------------------------------------------

    def _ensure_open(self, target: Path) -> None:
        if self.closed:
            raise StoreClosedError(target)

    def _create_directory(self, target: Path) -> Path:
        if target.is_dir():
            return target
        if target.exists() or target.is_symlink():
            raise DirectoryCreateError(target, "a non-directory already exists at this path")

        missing: list[Path] = []
        current = target
        while not current.exists() and not current.is_symlink():
            missing.append(current)
            if current.parent == current:
                break
            current = current.parent

        for directory in reversed(missing):
            try:
                directory.mkdir(mode=DIRECTORY_MODE)
            except FileExistsError as exc:
                if directory.is_dir():
                    continue
                raise DirectoryCreateError(directory, "a non-directory already exists at this path") from exc
            except OSError as exc:
                raise DirectoryCreateError(directory, exc.strerror or str(exc)) from exc
            self.ledger.append(LedgerKind.DIRECTORY, directory)
            if self.verbose:
                print_debug(f"Created directory: {directory}")

        return target

    def _write_file(self, target: Path, content: bytes | str, mode: int) -> Path:
        if target == self.root:
            raise FileWriteError(target, "the project root is a directory")

        self._create_directory(target.parent)

        if target.is_symlink():
            raise FileWriteError(target, "refusing to write through a symbolic link")
        if target.is_dir():
            raise FileWriteError(target, "a directory already exists at this path")

        data = content.encode("utf-8") if isinstance(content, str) else content
        existed = target.exists()
        recorded = self.ledger.has(target)

        original: bytes | None = None
        original_mode: int | None = None
        if existed and not recorded:
            try:
                original = target.read_bytes()
                original_mode = stat.S_IMODE(target.stat().st_mode)
            except OSError as exc:
                raise FileWriteError(target, exc.strerror or str(exc)) from exc

        try:
            with open(target, "wb") as fh:
                fh.write(data)
            os.chmod(target, mode)
        except OSError as exc:
            with contextlib.suppress(OSError):
                if not existed:
                    target.unlink()
                elif original is not None and original_mode is not None:
                    _restore(target, original, original_mode)
            raise FileWriteError(target, exc.strerror or str(exc)) from exc

        if not recorded:
            if existed:
                self.ledger.append(LedgerKind.REPLACED, target, original, original_mode)
            else:
                self.ledger.append(LedgerKind.FILE, target)
        if self.verbose:
            print_debug(f"Wrote file: {target} ({len(data)} bytes, mode {mode:o})")
        return target

    @staticmethod
    def _undo(entry: LedgerEntry) -> str | None:
        """Undo one entry.  Returns ``None`` on success, else the reason."""
        path = entry.path
        if entry.kind is LedgerKind.REPLACED:
            if path.is_symlink() or path.is_dir():
                return "no longer a regular file"
            try:
                mode = entry.original_mode if entry.original_mode is not None else FILE_MODE
                _restore(path, entry.original or b"", mode)
            except OSError as exc:
                return exc.strerror or str(exc)
            return None

        try:
            if entry.kind is LedgerKind.FILE:
                path.unlink()
            elif entry.kind is LedgerKind.DIRECTORY:
                if not path.is_dir():
                    return None if not path.exists() else "no longer a directory"
                if any(path.iterdir()):
                    return "directory not empty"
                path.rmdir()
            else:
                if path.is_symlink() or not path.is_dir():
                    path.unlink()
                else:
                    shutil.rmtree(path)
        except FileNotFoundError:
            return None
        except OSError as exc:
            return exc.strerror or str(exc)
        return None


def _restore(path: Path, data: bytes, mode: int) -> None:
    """Put back the bytes and permission bits a file had before the run."""
    with open(path, "wb") as fh:
        fh.write(data)
    os.chmod(path, mode)
