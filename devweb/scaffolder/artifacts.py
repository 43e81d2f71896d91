"""Artifact resolution: configuration in, list of generated files out.

Each entry of :data:`ARTIFACT_TABLE` pairs a destination path with the
template that produces it and the condition under which it is emitted.
Rendering happens entirely in memory; nothing here touches the project
directory.
"""

from __future__ import annotations

import json
import secrets
from dataclasses import dataclass
from typing import Any, Callable

from devweb.installer.packages import resolve_packages, versioned
from devweb.models import (
    Datastore,
    Feature,
    FileArtifact,
    ProjectConfig,
    SecurityLevel,
    TemplateMode,
)
from devweb.scaffolder.templates import TemplateRenderer

SECRET_FILE_MODE = 0o600


@dataclass(frozen=True)
class ArtifactSpec:
    """One row of the artifact table."""

    path: str
    template: str
    when: Callable[[ProjectConfig], bool] = lambda config: True
    mode: int = 0o644


def _feature(feature: Feature) -> Callable[[ProjectConfig], bool]:
    return lambda config: config.has(feature)


def _mode(mode: TemplateMode) -> Callable[[ProjectConfig], bool]:
    return lambda config: config.template_mode is mode


def _has_datastore(config: ProjectConfig) -> bool:
    return config.datastore is not Datastore.NONE


def _rate_limited(config: ProjectConfig) -> bool:
    return config.security in (SecurityLevel.STANDARD, SecurityLevel.ADVANCED)


DATABASE_TEMPLATES: dict[Datastore, str] = {
    Datastore.MYSQL: "source/config/database/mysql.js.j2",
    Datastore.POSTGRES: "source/config/database/postgres.js.j2",
    Datastore.MONGO: "source/config/database/mongo.js.j2",
}

# ``package.json`` is not in the table; it is built from the package
# catalogue by :func:`render_package_json`.
ARTIFACT_TABLE: tuple[ArtifactSpec, ...] = (
    ArtifactSpec(".env", ".env.j2", mode=SECRET_FILE_MODE),
    ArtifactSpec(".env.example", ".env.j2"),
    ArtifactSpec(".gitignore", ".gitignore.j2"),
    ArtifactSpec("README.md", "README.md.j2"),
    ArtifactSpec("source/app.js", "source/app.js.j2"),
    ArtifactSpec("source/server.js", "source/server.js.j2"),
    ArtifactSpec("source/routes/index.js", "source/routes/index.js.j2"),
    ArtifactSpec("source/middleware/error-handler.js", "source/middleware/error-handler.js.j2"),
    ArtifactSpec("source/utilities/logger.js", "source/utilities/logger.js.j2"),
    ArtifactSpec("source/config/database.js", "", _has_datastore),
    ArtifactSpec("source/middleware/auth.js", "source/middleware/auth.js.j2",
                 _feature(Feature.AUTHENTICATION)),
    ArtifactSpec("source/middleware/rate-limit.js", "source/middleware/rate-limit.js.j2",
                 _rate_limited),
    ArtifactSpec("source/middleware/upload.js", "source/middleware/upload.js.j2",
                 _feature(Feature.FILE_UPLOAD)),
    ArtifactSpec("source/config/swagger.js", "source/config/swagger.js.j2",
                 _feature(Feature.API_DOCS)),
    ArtifactSpec(".eslintrc.json", ".eslintrc.json.j2", _feature(Feature.LINTING)),
    ArtifactSpec(".prettierrc", ".prettierrc.j2", _feature(Feature.LINTING)),
    ArtifactSpec("jest.config.js", "jest.config.js.j2", _feature(Feature.TESTING)),
    ArtifactSpec("tests/app.test.js", "tests/app.test.js.j2", _feature(Feature.TESTING)),
    ArtifactSpec("Dockerfile", "Dockerfile.j2", _feature(Feature.CONTAINERIZATION)),
    ArtifactSpec(".dockerignore", ".dockerignore.j2", _feature(Feature.CONTAINERIZATION)),
    ArtifactSpec("docker-compose.yml", "docker-compose.yml.j2",
                 _feature(Feature.CONTAINERIZATION)),
    ArtifactSpec("views/layouts/main.ejs", "views/layouts/main.ejs.j2",
                 _mode(TemplateMode.DYNAMIC_TEMPLATE)),
    ArtifactSpec("views/pages/index.ejs", "views/pages/index.ejs.j2",
                 _mode(TemplateMode.DYNAMIC_TEMPLATE)),
    ArtifactSpec("views/pages/404.ejs", "views/pages/404.ejs.j2",
                 _mode(TemplateMode.DYNAMIC_TEMPLATE)),
    ArtifactSpec("assets/index.html", "assets/index.html.j2", _mode(TemplateMode.STATIC_HTML)),
    ArtifactSpec("assets/styles/main.css", "assets/styles/main.css.j2",
                 _mode(TemplateMode.STATIC_HTML)),
    ArtifactSpec("assets/scripts/main.js", "assets/scripts/main.js.j2",
                 _mode(TemplateMode.STATIC_HTML)),
)


# ---------------------------------------------------------------------------
# Context
# ---------------------------------------------------------------------------


def build_context(config: ProjectConfig) -> dict[str, Any]:
    """Build the template context for *config*.

    Every key is always present because templates render with
    ``StrictUndefined``.
    """
    runtime, dev = resolve_packages(config)
    return {
        "project_name": config.project_name,
        "package_name": config.package_name,
        "description": config.description or f"A Node.js web application - {config.project_name}",
        "port": config.port,
        "template_mode": config.template_mode.value,
        "use_views": config.template_mode is TemplateMode.DYNAMIC_TEMPLATE,
        "static_html": config.template_mode is TemplateMode.STATIC_HTML,
        "datastore": config.datastore.value,
        "has_datastore": _has_datastore(config),
        "db_name": config.package_name.replace("-", "_"),
        "security": config.security.value,
        "rate_limit": _rate_limited(config),
        "strict_security": config.security is SecurityLevel.ADVANCED,
        "auth": config.has(Feature.AUTHENTICATION),
        "linting": config.has(Feature.LINTING),
        "testing": config.has(Feature.TESTING),
        "containerization": config.has(Feature.CONTAINERIZATION),
        "api_docs": config.has(Feature.API_DOCS),
        "file_upload": config.has(Feature.FILE_UPLOAD),
        "runtime_packages": runtime,
        "dev_packages": dev,
        "example": False,
        "jwt_secret": "",
        "session_secret": "",
    }


# ---------------------------------------------------------------------------
# Resolution
# ---------------------------------------------------------------------------


def render_package_json(config: ProjectConfig) -> str:
    """Render ``package.json`` from the package catalogue."""
    runtime, dev = resolve_packages(config)
    linting = config.has(Feature.LINTING)
    testing = config.has(Feature.TESTING)
    manifest = {
        "name": config.package_name,
        "version": "1.0.0",
        "description": config.description or f"A Node.js web application - {config.project_name}",
        "main": "source/server.js",
        "scripts": {
            "start": "node source/server.js",
            "dev": "nodemon source/server.js",
            "test": "jest --coverage" if testing else 'echo "No tests specified"',
            "lint": 'eslint "source/**/*.js"' if linting else 'echo "No linter configured"',
            "format": 'prettier --write "source/**/*.js"' if linting else 'echo "No formatter configured"',
        },
        "keywords": ["nodejs", "express", config.template_mode.value, config.datastore.value],
        "author": "",
        "license": "MIT",
        "dependencies": versioned(runtime),
        "devDependencies": versioned(dev),
        "engines": {"node": ">=18.0.0"},
    }
    return json.dumps(manifest, indent=2) + "\n"


def resolve_artifacts(
    config: ProjectConfig,
    renderer: TemplateRenderer | None = None,
) -> list[FileArtifact]:
    """Return the files to write for *config*, in write order."""
    renderer = renderer or TemplateRenderer()
    context = build_context(config)
    secret_context = {
        **context,
        "jwt_secret": secrets.token_hex(32),
        "session_secret": secrets.token_hex(32),
    }
    example_context = {**context, "example": True}

    artifacts = [FileArtifact(path="package.json", content=render_package_json(config))]
    for spec in ARTIFACT_TABLE:
        if not spec.when(config):
            continue
        template = spec.template or DATABASE_TEMPLATES[config.datastore]
        if spec.path == ".env":
            ctx = secret_context
        elif spec.path == ".env.example":
            ctx = example_context
        else:
            ctx = context
        artifacts.append(
            FileArtifact(path=spec.path, content=renderer.render(template, ctx), mode=spec.mode)
        )
    return artifacts
