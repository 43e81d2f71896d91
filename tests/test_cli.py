"""Tests for the ``devweb`` command line (devweb.cli).

Tests cover:
- Parser defaults and repeatable options
- Settings merged from the environment and flags
- Exit codes for invalid configuration and failed generation
- A real end-to-end run with installation and git disabled
"""

from __future__ import annotations

import os
from pathlib import Path
from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from devweb.cli import EXIT_FAILURE, EXIT_INVALID_CONFIG, _settings_from_args, build_parser, main
from devweb.errors import GenerationError, TargetExistsError


# ---------------------------------------------------------------------------
# Parser
# ---------------------------------------------------------------------------


class TestParser:
    @pytest.mark.unit
    def test_defaults(self):
        args = build_parser().parse_args(["my-api"])
        assert args.project_name == "my-api"
        assert args.template == "api-only"
        assert args.datastore == "none"
        assert args.security == "standard"
        assert args.feature == []
        assert args.port == 3000
        assert args.no_git is False
        assert args.package_manager is None

    @pytest.mark.unit
    def test_repeatable_feature(self):
        args = build_parser().parse_args(
            ["shop", "--feature", "testing", "--feature", "linting"]
        )
        assert args.feature == ["testing", "linting"]

    @pytest.mark.unit
    def test_unknown_choice_exits(self):
        with pytest.raises(SystemExit) as exc_info:
            build_parser().parse_args(["shop", "--datastore", "sqlite"])
        assert exc_info.value.code == 2


class TestSettingsFromArgs:
    @pytest.mark.unit
    def test_flags_override_environment(self, tmp_path: Path):
        env = {"DEVWEB_PACKAGE_MANAGER": "yarn", "DEVWEB_INSTALL_TIMEOUT": "60"}
        args = build_parser().parse_args(
            ["app", "-o", str(tmp_path), "--timeout", "12", "--skip-install"]
        )
        with patch.dict(os.environ, env, clear=True):
            settings = _settings_from_args(args)
        assert settings.output_dir == tmp_path
        assert settings.package_manager == "yarn"
        assert settings.install_timeout == 12.0
        assert settings.skip_install is True

    @pytest.mark.unit
    def test_environment_kept_without_flags(self):
        args = build_parser().parse_args(["app"])
        with patch.dict(os.environ, {"DEVWEB_VERBOSE": "1"}, clear=True):
            settings = _settings_from_args(args)
        assert settings.verbose is True
        assert settings.package_manager == "auto"


# ---------------------------------------------------------------------------
# main()
# ---------------------------------------------------------------------------


class TestMain:
    @pytest.mark.unit
    @pytest.mark.parametrize("argv", [["1bad"], ["node_modules"], ["ok", "--port", "0"]])
    def test_invalid_config_exits_2(self, tmp_path: Path, argv):
        with patch.dict(os.environ, {}, clear=True):
            with pytest.raises(SystemExit) as exc_info:
                main([*argv, "-o", str(tmp_path)])
        assert exc_info.value.code == EXIT_INVALID_CONFIG
        assert list(tmp_path.iterdir()) == []

    @pytest.mark.unit
    def test_bad_environment_exits_2(self, tmp_path: Path):
        with patch.dict(os.environ, {"DEVWEB_FATAL_STAGES": "deploy"}, clear=True):
            with pytest.raises(SystemExit) as exc_info:
                main(["app", "-o", str(tmp_path)])
        assert exc_info.value.code == EXIT_INVALID_CONFIG

    @pytest.mark.unit
    def test_generation_failure_lists_leftovers(self, tmp_path: Path, quiet_console):
        error = GenerationError("install exploded")
        error.rollback = MagicMock(complete=False)
        error.rollback.leftover_paths.return_value = [Path("/left/stuck")]
        pipeline = MagicMock()
        pipeline.generate = AsyncMock(side_effect=error)

        quiet_console.quiet = False
        with patch.dict(os.environ, {}, clear=True), patch(
            "devweb.cli.GenerationPipeline", return_value=pipeline
        ), quiet_console.capture() as capture:
            with pytest.raises(SystemExit) as exc_info:
                main(["app", "-o", str(tmp_path)])

        assert exc_info.value.code == EXIT_FAILURE
        output = capture.get()
        assert "install exploded" in output
        assert "/left/stuck" in output

    @pytest.mark.unit
    def test_existing_target_exits_1(self, tmp_path: Path):
        (tmp_path / "app").mkdir()
        (tmp_path / "app" / "keep.txt").write_text("mine")
        with patch.dict(os.environ, {}, clear=True):
            with pytest.raises(SystemExit) as exc_info:
                main(["app", "-o", str(tmp_path), "--skip-install", "--no-git"])
        assert exc_info.value.code == EXIT_FAILURE
        assert (tmp_path / "app" / "keep.txt").read_text() == "mine"

    @pytest.mark.unit
    def test_target_exists_error_is_generation_error(self):
        assert issubclass(TargetExistsError, GenerationError)


@pytest.mark.integration
class TestMainEndToEnd:
    def test_generates_project_without_install(self, tmp_path: Path):
        argv = [
            "shop",
            "-o", str(tmp_path),
            "--template", "dynamic-template",
            "--datastore", "relational-postgres",
            "--feature", "testing",
            "--feature", "api-docs",
            "--skip-install",
            "--no-git",
        ]
        with patch.dict(os.environ, {}, clear=True):
            main(argv)

        root = tmp_path / "shop"
        assert (root / "package.json").is_file()
        assert (root / "source" / "config" / "database.js").is_file()
        assert (root / "source" / "config" / "swagger.js").is_file()
        assert (root / "views" / "pages" / "index.ejs").is_file()
        assert (root / "tests" / "app.test.js").is_file()
        assert not (root / "node_modules").exists()
        assert not (root / ".git").exists()
