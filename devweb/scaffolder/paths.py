"""Path confinement for generated projects.

``PathGuard`` is the single check that keeps every write, and every
subprocess working directory, inside the project root.  It works purely
lexically (``os.path.normpath``) and never touches the filesystem.
"""

from __future__ import annotations

import os
from pathlib import Path

from devweb.errors import PathTraversal


class PathGuard:
    """Normalizes paths and rejects anything that escapes *root*."""

    def __init__(self, root: str | Path) -> None:
        self.root = Path(os.path.normpath(os.path.abspath(root)))

    def normalize(self, path: str | Path) -> Path:
        """Return *path* as an absolute path confined to the root.

        Relative input is joined onto the root before ``.``/``..`` segments
        are collapsed.  Absolute input is accepted only when it already lies
        inside the root.

        Raises:
            PathTraversal: If the normalized path is outside the root, or the
                input is empty or contains a NUL byte.
        """
        raw = os.fspath(path)
        if not raw or "\x00" in raw:
            raise PathTraversal(raw, self.root)

        joined = raw if os.path.isabs(raw) else os.path.join(self.root, raw)
        normalized = Path(os.path.normpath(joined))

        if normalized != self.root and self.root not in normalized.parents:
            raise PathTraversal(raw, self.root)
        return normalized

    def contains(self, path: str | Path) -> bool:
        """Return ``True`` if *path* normalizes to somewhere inside the root."""
        try:
            self.normalize(path)
        except PathTraversal:
            return False
        return True

    def relative(self, path: str | Path) -> Path:
        """Return *path* relative to the root (after confinement)."""
        return self.normalize(path).relative_to(self.root)

    def __repr__(self) -> str:
        return f"PathGuard(root={str(self.root)!r})"
