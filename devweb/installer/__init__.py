"""devweb installer module.

Drives external processes for a generated project: package-manager installs
under a hard timeout, and the post-generation hooks (git init, manifest
verification).

Key classes:
    ProcessRunner               - Async subprocess execution with timeout and streaming
    VersionControlHook          - ``git init`` in the project root
    DependencyVerificationHook  - Confirms package.json lists every requested package
"""

from .hooks import (
    DependencyVerificationHook,
    HookContext,
    PostHook,
    VersionControlHook,
    default_hooks,
)
from .packages import MANAGER_OUTPUTS, install_args, resolve_packages, verify_manifest, versioned
from .process_runner import ProcessResult, ProcessRunner, detect_package_manager

__all__ = [
    # Process execution
    "ProcessRunner",
    "ProcessResult",
    "detect_package_manager",
    # Package catalogue
    "MANAGER_OUTPUTS",
    "install_args",
    "resolve_packages",
    "verify_manifest",
    "versioned",
    # Hooks
    "PostHook",
    "HookContext",
    "VersionControlHook",
    "DependencyVerificationHook",
    "default_hooks",
]
