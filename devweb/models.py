"""Pydantic v2 models for the generation engine.

``ProjectConfig`` is the frozen record of choices handed to the pipeline by
whatever collected them (the CLI, a prompt flow, a test).  ``FileArtifact``
and ``InstallRequest`` are the units of work the pipeline hands to the file
store and the process runner.
"""

from __future__ import annotations

import re
from enum import Enum
from pathlib import Path

from pydantic import BaseModel, ConfigDict, Field, field_validator


MAX_PROJECT_NAME_LENGTH = 50

RESERVED_PROJECT_NAMES: frozenset[str] = frozenset(
    {"node_modules", "test", "src", "public", "views"}
)

_PROJECT_NAME_RE = re.compile(r"^[A-Za-z][A-Za-z0-9_-]*$")


# ---------------------------------------------------------------------------
# Enumerations
# ---------------------------------------------------------------------------

class TemplateMode(str, Enum):
    """How the generated server renders pages."""
    DYNAMIC_TEMPLATE = "dynamic-template"
    STATIC_HTML = "static-html"
    API_ONLY = "api-only"


class Datastore(str, Enum):
    """Database the generated project is wired to."""
    NONE = "none"
    MYSQL = "relational-mysql"
    POSTGRES = "relational-postgres"
    MONGO = "document-mongo"


class Feature(str, Enum):
    """Optional feature flags."""
    AUTHENTICATION = "authentication"
    LINTING = "linting"
    TESTING = "testing"
    CONTAINERIZATION = "containerization"
    API_DOCS = "api-docs"
    FILE_UPLOAD = "file-upload"


class SecurityLevel(str, Enum):
    """Middleware hardening level. ``standard`` and up add rate limiting."""
    BASIC = "basic"
    STANDARD = "standard"
    ADVANCED = "advanced"


class PackageManager(str, Enum):
    """Supported Node.js package managers."""
    NPM = "npm"
    YARN = "yarn"
    PNPM = "pnpm"


class Stage(str, Enum):
    """Ordered phases of one generation run."""
    STRUCTURE = "structure"
    FILES = "files"
    DEPENDENCIES = "dependencies"
    POST_HOOKS = "post-hooks"


# ---------------------------------------------------------------------------
# Configuration record
# ---------------------------------------------------------------------------

class ProjectConfig(BaseModel):
    """Immutable description of the project to generate."""

    model_config = ConfigDict(frozen=True)

    project_name: str = Field(..., description="Directory and package name")
    description: str = Field(default="", description="One-line project description")
    template_mode: TemplateMode = Field(default=TemplateMode.API_ONLY)
    datastore: Datastore = Field(default=Datastore.NONE)
    features: frozenset[Feature] = Field(default_factory=frozenset)
    security: SecurityLevel = Field(default=SecurityLevel.STANDARD)
    port: int = Field(default=3000, ge=1, le=65535)
    init_version_control: bool = Field(default=True)

    @field_validator("project_name")
    @classmethod
    def _check_project_name(cls, value: str) -> str:
        errors: list[str] = []
        if not value or not value.strip():
            raise ValueError("Project name cannot be empty")
        if len(value) > MAX_PROJECT_NAME_LENGTH:
            errors.append(
                f"Project name too long (max {MAX_PROJECT_NAME_LENGTH} characters)"
            )
        if value[0].isdigit():
            errors.append("Project name cannot start with a number")
        elif not _PROJECT_NAME_RE.match(value):
            errors.append(
                "Project name can only contain letters, numbers, hyphens, and underscores"
            )
        if value.lower() in RESERVED_PROJECT_NAMES:
            errors.append(f'"{value}" is a reserved name')
        if errors:
            raise ValueError("; ".join(errors))
        return value

    def has(self, feature: Feature) -> bool:
        """Return ``True`` if *feature* is enabled."""
        return feature in self.features

    @property
    def package_name(self) -> str:
        """Name used in ``package.json`` (lowercase, npm-safe)."""
        return self.project_name.lower().replace("_", "-")


# ---------------------------------------------------------------------------
# Units of work
# ---------------------------------------------------------------------------

class FileArtifact(BaseModel):
    """A single generated file: destination, bytes, and permission bits."""

    model_config = ConfigDict(frozen=True)

    path: str = Field(..., description="Destination, relative to the project root")
    content: bytes = Field(default=b"")
    mode: int = Field(default=0o644, ge=0, le=0o7777)

    @field_validator("content", mode="before")
    @classmethod
    def _encode_text(cls, value: object) -> object:
        if isinstance(value, str):
            return value.encode("utf-8")
        return value


class InstallRequest(BaseModel):
    """One package-manager invocation."""

    model_config = ConfigDict(frozen=True)

    packages: tuple[str, ...] = Field(default=())
    dev: bool = Field(default=False)
    cwd: Path
    timeout: float = Field(default=300.0, gt=0)
