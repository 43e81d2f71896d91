"""Dependency catalogue and package-manager command lines.

Maps a :class:`ProjectConfig` to the npm packages the generated project
needs, split into runtime and development lists.  The same catalogue (with
version ranges) is used to render ``package.json``, so the manifest and the
install commands never disagree.
"""

from __future__ import annotations

import json
from pathlib import Path

from devweb.models import (
    Datastore,
    Feature,
    PackageManager,
    ProjectConfig,
    SecurityLevel,
    TemplateMode,
)

# ---------------------------------------------------------------------------
# Catalogue
# ---------------------------------------------------------------------------

PACKAGE_VERSIONS: dict[str, str] = {
    "express": "^4.18.2",
    "cors": "^2.8.5",
    "dotenv": "^16.3.1",
    "helmet": "^7.1.0",
    "morgan": "^1.10.0",
    "ejs": "^3.1.9",
    "mysql2": "^3.6.5",
    "pg": "^8.11.3",
    "mongodb": "^6.3.0",
    "jsonwebtoken": "^9.0.2",
    "express-rate-limit": "^7.1.5",
    "multer": "^1.4.5-lts.1",
    "swagger-ui-express": "^5.0.0",
    "swagger-jsdoc": "^6.2.8",
    "nodemon": "^3.0.2",
    "eslint": "^8.55.0",
    "prettier": "^3.1.1",
    "jest": "^29.7.0",
    "supertest": "^6.3.3",
}

BASE_RUNTIME: tuple[str, ...] = ("express", "cors", "dotenv", "helmet", "morgan")
BASE_DEV: tuple[str, ...] = ("nodemon",)

DATASTORE_DRIVERS: dict[Datastore, str] = {
    Datastore.MYSQL: "mysql2",
    Datastore.POSTGRES: "pg",
    Datastore.MONGO: "mongodb",
}

FEATURE_RUNTIME: dict[Feature, tuple[str, ...]] = {
    Feature.AUTHENTICATION: ("jsonwebtoken",),
    Feature.FILE_UPLOAD: ("multer",),
    Feature.API_DOCS: ("swagger-ui-express", "swagger-jsdoc"),
}

FEATURE_DEV: dict[Feature, tuple[str, ...]] = {
    Feature.LINTING: ("eslint", "prettier"),
    Feature.TESTING: ("jest", "supertest"),
}

# Iteration order for feature-driven packages, so output is deterministic.
_FEATURE_ORDER: tuple[Feature, ...] = tuple(Feature)


def resolve_packages(config: ProjectConfig) -> tuple[list[str], list[str]]:
    """Return ``(runtime, dev)`` package names for *config*.

    Both lists are de-duplicated and in a stable order.
    """
    runtime: list[str] = list(BASE_RUNTIME)
    dev: list[str] = list(BASE_DEV)

    if config.template_mode is TemplateMode.DYNAMIC_TEMPLATE:
        runtime.append("ejs")

    driver = DATASTORE_DRIVERS.get(config.datastore)
    if driver:
        runtime.append(driver)

    if config.security in (SecurityLevel.STANDARD, SecurityLevel.ADVANCED):
        runtime.append("express-rate-limit")

    for feature in _FEATURE_ORDER:
        if not config.has(feature):
            continue
        runtime.extend(FEATURE_RUNTIME.get(feature, ()))
        dev.extend(FEATURE_DEV.get(feature, ()))

    return _dedupe(runtime), _dedupe(dev)


def versioned(packages: list[str]) -> dict[str, str]:
    """Map package names to their catalogue version ranges."""
    return {name: PACKAGE_VERSIONS.get(name, "latest") for name in packages}


def _dedupe(items: list[str]) -> list[str]:
    return list(dict.fromkeys(items))


# ---------------------------------------------------------------------------
# Package-manager command lines
# ---------------------------------------------------------------------------

_INSTALL_VERBS: dict[PackageManager, str] = {
    PackageManager.NPM: "install",
    PackageManager.YARN: "add",
    PackageManager.PNPM: "add",
}

_DEV_FLAGS: dict[PackageManager, str] = {
    PackageManager.NPM: "--save-dev",
    PackageManager.YARN: "--dev",
    PackageManager.PNPM: "--save-dev",
}

# Files and directories a package manager writes into the project root.
MANAGER_OUTPUTS: dict[PackageManager, tuple[str, ...]] = {
    PackageManager.NPM: ("node_modules", "package-lock.json"),
    PackageManager.YARN: ("node_modules", "yarn.lock", ".yarn", ".pnp.cjs"),
    PackageManager.PNPM: ("node_modules", "pnpm-lock.yaml"),
}

DETECTION_ORDER: tuple[PackageManager, ...] = (
    PackageManager.NPM,
    PackageManager.YARN,
    PackageManager.PNPM,
)


def install_args(manager: PackageManager, packages: list[str] | tuple[str, ...], dev: bool) -> list[str]:
    """Build the argument list (without the executable) for one install."""
    args = [_INSTALL_VERBS[manager]]
    if dev:
        args.append(_DEV_FLAGS[manager])
    args.extend(packages)
    return args


# ---------------------------------------------------------------------------
# Manifest verification
# ---------------------------------------------------------------------------


def verify_manifest(project_root: str | Path, packages: list[str]) -> list[str]:
    """Return the requested *packages* missing from ``package.json``.

    Both ``dependencies`` and ``devDependencies`` are consulted.  A missing
    or unreadable manifest reports every package as missing.
    """
    manifest = Path(project_root) / "package.json"
    try:
        data = json.loads(manifest.read_text(encoding="utf-8"))
    except (OSError, json.JSONDecodeError):
        return list(packages)

    declared: dict[str, str] = {}
    if isinstance(data, dict):
        for key in ("dependencies", "devDependencies"):
            section = data.get(key)
            if isinstance(section, dict):
                declared.update(section)

    return [pkg for pkg in packages if _package_name(pkg) not in declared]


def _package_name(spec: str) -> str:
    """Strip a version suffix: ``express@^4`` -> ``express``, ``@a/b@1`` -> ``@a/b``."""
    if spec.startswith("@"):
        return "@" + spec[1:].split("@", 1)[0]
    return spec.split("@", 1)[0]
