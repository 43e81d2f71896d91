"""devweb scaffolder -- everything that lands files on disk.

Quick usage::

    from devweb.scaffolder import TransactionalFileStore, resolve_artifacts

    store = TransactionalFileStore("/tmp/out/my-api")
    for artifact in resolve_artifacts(config):
        store.write_file(artifact.path, artifact.content, artifact.mode)
    store.commit()
"""

from devweb.scaffolder.artifacts import build_context, render_package_json, resolve_artifacts
from devweb.scaffolder.layout import directory_skeleton
from devweb.scaffolder.paths import PathGuard
from devweb.scaffolder.store import (
    GenerationLedger,
    LedgerEntry,
    LedgerKind,
    RollbackReport,
    RollbackSurvivor,
    TransactionalFileStore,
)
from devweb.scaffolder.templates import TemplateRenderer

__all__ = [
    "GenerationLedger",
    "LedgerEntry",
    "LedgerKind",
    "PathGuard",
    "RollbackReport",
    "RollbackSurvivor",
    "TemplateRenderer",
    "TransactionalFileStore",
    "build_context",
    "directory_skeleton",
    "render_package_json",
    "resolve_artifacts",
]
