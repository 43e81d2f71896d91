"""devweb engine settings.

Centralised, typed configuration for the generation engine: where projects are
written, which package manager to drive, how long installs may run, and which
stages are fatal.  Uses a Pydantic v2 model so it can be validated at
construction time and round-tripped through JSON or environment variables.

These settings govern *how* a project is generated.  *What* is generated is
described by :class:`devweb.models.ProjectConfig`.
"""

from __future__ import annotations

import os
from pathlib import Path
from typing import Any, Literal

from pydantic import BaseModel, Field

from devweb.models import Stage

DEFAULT_FATAL_STAGES: frozenset[Stage] = frozenset(
    {Stage.STRUCTURE, Stage.FILES, Stage.DEPENDENCIES}
)

_TRUTHY = {"1", "true", "yes", "on"}


class Settings(BaseModel):
    """Global devweb settings.

    Instances are typically created once by the CLI entry point (or by
    :meth:`from_env`) and passed to :class:`devweb.pipeline.GenerationPipeline`.
    """

    output_dir: Path = Field(default=Path("."))
    package_manager: Literal["auto", "npm", "yarn", "pnpm"] = Field(default="auto")
    install_timeout: float = Field(
        default=300.0, ge=1, description="Per-invocation package manager timeout in seconds"
    )
    hook_timeout: float = Field(
        default=30.0, ge=1, description="Timeout for each post-generation command in seconds"
    )
    skip_install: bool = Field(default=False, description="Skip the dependency stage entirely")
    fatal_stages: frozenset[Stage] = Field(
        default=DEFAULT_FATAL_STAGES,
        description="Stages whose failure triggers rollback; the rest only warn",
    )
    allow_existing: bool = Field(
        default=False, description="Generate into a non-empty existing directory"
    )
    verbose: bool = Field(default=False)

    def is_fatal(self, stage: Stage) -> bool:
        """Return ``True`` if a failure in *stage* must roll the run back."""
        return stage in self.fatal_stages

    # ------------------------------------------------------------------
    # Serialisation helpers
    # ------------------------------------------------------------------

    def save(self, path: Path) -> Path:
        """Persist the settings to a JSON file.

        Args:
            path: Destination file.

        Returns:
            The path where the file was written.
        """
        target = Path(path)
        target.parent.mkdir(parents=True, exist_ok=True)
        target.write_text(self.model_dump_json(indent=2), encoding="utf-8")
        return target

    @classmethod
    def load(cls, path: Path) -> "Settings":
        """Load previously-saved settings from JSON."""
        raw = Path(path).read_text(encoding="utf-8")
        return cls.model_validate_json(raw)

    @classmethod
    def from_env(cls) -> "Settings":
        """Build ``Settings`` from environment variables.

        Recognised variables (all optional):
            DEVWEB_OUTPUT_DIR, DEVWEB_PACKAGE_MANAGER, DEVWEB_INSTALL_TIMEOUT,
            DEVWEB_HOOK_TIMEOUT, DEVWEB_SKIP_INSTALL, DEVWEB_FATAL_STAGES,
            DEVWEB_ALLOW_EXISTING, DEVWEB_VERBOSE.

        ``DEVWEB_FATAL_STAGES`` is a comma-separated list of stage names, e.g.
        ``structure,files,dependencies,post-hooks``.
        """
        kwargs: dict[str, Any] = {}
        if os.environ.get("DEVWEB_OUTPUT_DIR"):
            kwargs["output_dir"] = Path(os.environ["DEVWEB_OUTPUT_DIR"])
        if os.environ.get("DEVWEB_PACKAGE_MANAGER"):
            kwargs["package_manager"] = os.environ["DEVWEB_PACKAGE_MANAGER"]
        if os.environ.get("DEVWEB_INSTALL_TIMEOUT"):
            kwargs["install_timeout"] = float(os.environ["DEVWEB_INSTALL_TIMEOUT"])
        if os.environ.get("DEVWEB_HOOK_TIMEOUT"):
            kwargs["hook_timeout"] = float(os.environ["DEVWEB_HOOK_TIMEOUT"])
        if os.environ.get("DEVWEB_FATAL_STAGES") is not None:
            stages_str = os.environ["DEVWEB_FATAL_STAGES"]
            kwargs["fatal_stages"] = frozenset(
                Stage(s.strip()) for s in stages_str.split(",") if s.strip()
            )

        for name, key in (
            ("skip_install", "DEVWEB_SKIP_INSTALL"),
            ("allow_existing", "DEVWEB_ALLOW_EXISTING"),
            ("verbose", "DEVWEB_VERBOSE"),
        ):
            if os.environ.get(key):
                kwargs[name] = os.environ[key].strip().lower() in _TRUTHY

        return cls(**kwargs)
