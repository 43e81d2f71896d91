"""Directory skeleton of a generated project."""

from __future__ import annotations

from devweb.models import ProjectConfig, TemplateMode

SKELETON_DIRS: tuple[str, ...] = (
    "source/services",
    "source/routes",
    "source/middleware",
    "source/utilities",
    "source/config",
    "assets/styles",
    "assets/scripts",
    "assets/media",
    "assets/uploads",
    "tests",
)

MODE_DIRS: dict[TemplateMode, tuple[str, ...]] = {
    TemplateMode.DYNAMIC_TEMPLATE: ("views/layouts", "views/pages", "views/components"),
    TemplateMode.STATIC_HTML: ("assets/pages", "assets/components"),
    TemplateMode.API_ONLY: (),
}


def directory_skeleton(config: ProjectConfig) -> list[str]:
    """Return the relative directories to create for *config*.

    Parents always precede their children and the order is stable for a
    given configuration.
    """
    dirs: list[str] = []
    seen: set[str] = set()
    for rel in (*SKELETON_DIRS, *MODE_DIRS[config.template_mode]):
        parts = rel.split("/")
        for depth in range(1, len(parts) + 1):
            prefix = "/".join(parts[:depth])
            if prefix not in seen:
                seen.add(prefix)
                dirs.append(prefix)
    return dirs
