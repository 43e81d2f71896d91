"""Command-line entry point for ``devweb`` / ``python -m devweb``."""

from __future__ import annotations

import argparse
import asyncio
import sys
from pathlib import Path

from pydantic import ValidationError
from rich.panel import Panel

from devweb import __version__
from devweb.config import Settings
from devweb.errors import GenerationError
from devweb.models import (
    Datastore,
    Feature,
    PackageManager,
    ProjectConfig,
    SecurityLevel,
    TemplateMode,
)
from devweb.pipeline import GenerationPipeline, GenerationReport
from devweb.utils import console, format_duration, print_error, print_summary_table

EXIT_FAILURE = 1
EXIT_INVALID_CONFIG = 2


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="devweb",
        description="devweb -- transactional Node.js/Express project generator",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=(
            "Examples:\n"
            "  devweb my-api\n"
            "  devweb shop --template dynamic-template --datastore relational-postgres \\\n"
            "      --feature authentication --feature testing\n"
            "  devweb site --template static-html --skip-install --no-git\n"
        ),
    )
    parser.add_argument("project_name", help="Name of the project directory to create")
    parser.add_argument(
        "--output", "-o",
        default=None,
        help="Directory the project is created in (default: $DEVWEB_OUTPUT_DIR or .)",
    )
    parser.add_argument("--description", default="", help="One-line project description")
    parser.add_argument(
        "--template",
        choices=[m.value for m in TemplateMode],
        default=TemplateMode.API_ONLY.value,
        help="Page rendering mode (default: api-only)",
    )
    parser.add_argument(
        "--datastore",
        choices=[d.value for d in Datastore],
        default=Datastore.NONE.value,
        help="Database driver to wire in (default: none)",
    )
    parser.add_argument(
        "--feature",
        action="append",
        choices=[f.value for f in Feature],
        default=[],
        help="Optional feature; repeat for several",
    )
    parser.add_argument(
        "--security",
        choices=[s.value for s in SecurityLevel],
        default=SecurityLevel.STANDARD.value,
        help="Middleware hardening level (default: standard)",
    )
    parser.add_argument("--port", type=int, default=3000, help="Server port (default: 3000)")
    parser.add_argument("--no-git", action="store_true", help="Do not run git init")
    parser.add_argument(
        "--package-manager",
        choices=["auto", *[m.value for m in PackageManager]],
        default=None,
        help="Package manager to use (default: auto-detect)",
    )
    parser.add_argument(
        "--timeout",
        type=float,
        default=None,
        help="Per-install timeout in seconds (default: 300)",
    )
    parser.add_argument("--skip-install", action="store_true", help="Skip dependency installation")
    parser.add_argument(
        "--allow-existing",
        action="store_true",
        help="Generate into an existing, non-empty directory",
    )
    parser.add_argument("--verbose", "-v", action="store_true", help="Print every step")
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    return parser


def _settings_from_args(args: argparse.Namespace) -> Settings:
    settings = Settings.from_env()
    overrides: dict[str, object] = {}
    if args.output is not None:
        overrides["output_dir"] = Path(args.output)
    if args.package_manager is not None:
        overrides["package_manager"] = args.package_manager
    if args.timeout is not None:
        overrides["install_timeout"] = args.timeout
    if args.skip_install:
        overrides["skip_install"] = True
    if args.allow_existing:
        overrides["allow_existing"] = True
    if args.verbose:
        overrides["verbose"] = True
    return Settings.model_validate({**settings.model_dump(), **overrides})


def _print_validation_errors(exc: ValidationError) -> None:
    print_error("Invalid configuration:")
    for err in exc.errors():
        location = ".".join(str(part) for part in err["loc"]) or "value"
        console.print(f"  [red]-[/red] {location}: {err['msg']}", highlight=False)


def _print_next_steps(config: ProjectConfig, report: GenerationReport) -> None:
    steps = [f"cd {report.project_root}"]
    if report.package_manager is None:
        steps.append("npm install")
    steps.append("npm run dev")
    if config.datastore is not Datastore.NONE:
        steps.append("Configure the database connection in .env")

    lines = [f"  {i}. {step}" for i, step in enumerate(steps, start=1)]
    lines.append("")
    lines.append(f"  Server: http://localhost:{config.port}")
    if config.has(Feature.API_DOCS):
        lines.append(f"  API docs: http://localhost:{config.port}/api-docs")

    console.print(
        Panel("\n".join(lines), title="[bold]Next steps[/bold]", border_style="green")
    )


def main(argv: list[str] | None = None) -> None:
    """CLI entry point."""
    parser = build_parser()
    args = parser.parse_args(argv)

    try:
        settings = _settings_from_args(args)
        config = ProjectConfig(
            project_name=args.project_name,
            description=args.description,
            template_mode=args.template,
            datastore=args.datastore,
            features=frozenset(args.feature),
            security=args.security,
            port=args.port,
            init_version_control=not args.no_git,
        )
    except ValidationError as exc:
        _print_validation_errors(exc)
        sys.exit(EXIT_INVALID_CONFIG)
    except ValueError as exc:
        print_error(f"Invalid configuration: {exc}")
        sys.exit(EXIT_INVALID_CONFIG)

    pipeline = GenerationPipeline(settings)
    try:
        report = asyncio.run(pipeline.generate(config))
    except GenerationError as exc:
        print_error(f"Generation failed: {exc}")
        if exc.rollback is not None and not exc.rollback.complete:
            print_error("Remove these paths by hand:")
            for path in exc.rollback.leftover_paths():
                console.print(f"  {path}", highlight=False)
        sys.exit(EXIT_FAILURE)
    except KeyboardInterrupt:
        print_error("Interrupted")
        sys.exit(EXIT_FAILURE)

    print_summary_table(
        {
            "Project": config.project_name,
            "Location": str(report.project_root),
            "Template": config.template_mode.value,
            "Datastore": config.datastore.value,
            "Features": ", ".join(sorted(f.value for f in config.features)) or "none",
            "Files": str(report.summary.get("files", 0)),
            "Directories": str(report.summary.get("directories", 0)),
            "Package manager": report.package_manager or "skipped",
            "Warnings": str(len(report.warnings)),
            "Duration": format_duration(report.duration_seconds),
        },
        title="Project generated",
    )
    _print_next_steps(config, report)
