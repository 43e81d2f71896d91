"""Tests for artifact resolution and the directory skeleton.

Covers:
- directory_skeleton per template mode (parents first, stable order)
- build_context completeness
- resolve_artifacts: always-present files, conditional files, .env secrets
- package.json agrees with the package catalogue
- Every template renders for every datastore and mode
"""

from __future__ import annotations

import itertools
import json
import re

import pytest
import yaml

from devweb.installer.packages import resolve_packages
from devweb.models import (
    Datastore,
    Feature,
    FileArtifact,
    ProjectConfig,
    SecurityLevel,
    TemplateMode,
)
from devweb.scaffolder.artifacts import (
    ARTIFACT_TABLE,
    build_context,
    render_package_json,
    resolve_artifacts,
)
from devweb.scaffolder.layout import SKELETON_DIRS, directory_skeleton

pytestmark = pytest.mark.unit

ALWAYS = {
    "package.json",
    ".env",
    ".env.example",
    ".gitignore",
    "README.md",
    "source/app.js",
    "source/server.js",
    "source/routes/index.js",
    "source/middleware/error-handler.js",
    "source/utilities/logger.js",
}


def _paths(artifacts: list[FileArtifact]) -> set[str]:
    return {a.path for a in artifacts}


def _by_path(artifacts: list[FileArtifact]) -> dict[str, FileArtifact]:
    return {a.path: a for a in artifacts}


# ---------------------------------------------------------------------------
# Layout
# ---------------------------------------------------------------------------


class TestDirectorySkeleton:
    def test_api_only_has_no_view_dirs(self):
        dirs = directory_skeleton(ProjectConfig(project_name="api"))
        assert not any(d.startswith("views") for d in dirs)
        assert "assets/pages" not in dirs
        for rel in SKELETON_DIRS:
            assert rel in dirs

    def test_dynamic_template_adds_views(self):
        config = ProjectConfig(project_name="web", template_mode=TemplateMode.DYNAMIC_TEMPLATE)
        dirs = directory_skeleton(config)
        for rel in ("views", "views/layouts", "views/pages", "views/components"):
            assert rel in dirs

    def test_static_html_adds_asset_dirs(self):
        config = ProjectConfig(project_name="site", template_mode=TemplateMode.STATIC_HTML)
        dirs = directory_skeleton(config)
        assert "assets/pages" in dirs
        assert "assets/components" in dirs
        assert "views" not in dirs

    def test_parents_precede_children(self):
        config = ProjectConfig(project_name="web", template_mode=TemplateMode.DYNAMIC_TEMPLATE)
        dirs = directory_skeleton(config)
        for index, rel in enumerate(dirs):
            if "/" in rel:
                assert dirs.index(rel.rsplit("/", 1)[0]) < index

    def test_no_duplicates_and_stable(self):
        config = ProjectConfig(project_name="web")
        first = directory_skeleton(config)
        assert len(first) == len(set(first))
        assert first == directory_skeleton(config)


# ---------------------------------------------------------------------------
# Context & package.json
# ---------------------------------------------------------------------------


class TestContext:
    def test_flags_follow_config(self, full_config):
        ctx = build_context(full_config)
        assert ctx["use_views"] is True
        assert ctx["has_datastore"] is True
        assert ctx["auth"] and ctx["api_docs"] and ctx["file_upload"]
        assert ctx["db_name"] == "full_app"
        assert ctx["port"] == 8080

    def test_default_description(self):
        ctx = build_context(ProjectConfig(project_name="x1"))
        assert ctx["description"] == "A Node.js web application - x1"


class TestPackageJson:
    def test_dependencies_match_catalogue(self, full_config):
        manifest = json.loads(render_package_json(full_config))
        runtime, dev = resolve_packages(full_config)
        assert list(manifest["dependencies"]) == runtime
        assert list(manifest["devDependencies"]) == dev
        assert manifest["dependencies"]["express"] == "^4.18.2"

    def test_scripts_without_features(self, minimal_config):
        manifest = json.loads(render_package_json(minimal_config))
        assert manifest["name"] == "demo"
        assert manifest["main"] == "source/server.js"
        assert "No tests specified" in manifest["scripts"]["test"]

    def test_scripts_with_testing_and_linting(self):
        config = ProjectConfig(
            project_name="My_App", features=frozenset({Feature.TESTING, Feature.LINTING})
        )
        manifest = json.loads(render_package_json(config))
        assert manifest["name"] == "my-app"
        assert manifest["scripts"]["test"] == "jest --coverage"
        assert manifest["scripts"]["lint"].startswith("eslint")


# ---------------------------------------------------------------------------
# resolve_artifacts
# ---------------------------------------------------------------------------


class TestResolveArtifacts:
    def test_minimal_basic_security(self):
        config = ProjectConfig(project_name="tiny", security=SecurityLevel.BASIC)
        assert _paths(resolve_artifacts(config)) == ALWAYS

    def test_standard_security_adds_rate_limit(self, minimal_config):
        assert _paths(resolve_artifacts(minimal_config)) == ALWAYS | {
            "source/middleware/rate-limit.js"
        }

    def test_full_config(self, full_config):
        paths = _paths(resolve_artifacts(full_config))
        expected = ALWAYS | {
            "source/config/database.js",
            "source/middleware/auth.js",
            "source/middleware/rate-limit.js",
            "source/middleware/upload.js",
            "source/config/swagger.js",
            ".eslintrc.json",
            ".prettierrc",
            "jest.config.js",
            "tests/app.test.js",
            "Dockerfile",
            ".dockerignore",
            "docker-compose.yml",
            "views/layouts/main.ejs",
            "views/pages/index.ejs",
            "views/pages/404.ejs",
        }
        assert paths == expected

    def test_static_html_files(self):
        config = ProjectConfig(project_name="site", template_mode=TemplateMode.STATIC_HTML)
        paths = _paths(resolve_artifacts(config))
        assert {"assets/index.html", "assets/styles/main.css", "assets/scripts/main.js"} <= paths
        assert not any(p.startswith("views/") for p in paths)

    def test_package_json_first(self, minimal_config):
        assert resolve_artifacts(minimal_config)[0].path == "package.json"

    def test_env_secrets(self, minimal_config):
        artifacts = _by_path(resolve_artifacts(minimal_config))
        env = artifacts[".env"]
        assert env.mode == 0o600
        text = env.content.decode()
        jwt = re.search(r"^JWT_SECRET=([0-9a-f]+)$", text, re.MULTILINE)
        session = re.search(r"^SESSION_SECRET=([0-9a-f]+)$", text, re.MULTILINE)
        assert jwt and len(jwt.group(1)) == 64
        assert session and len(session.group(1)) == 64
        assert jwt.group(1) != session.group(1)

    def test_secrets_differ_between_runs(self, minimal_config):
        first = _by_path(resolve_artifacts(minimal_config))[".env"].content
        second = _by_path(resolve_artifacts(minimal_config))[".env"].content
        assert first != second

    def test_env_example_has_placeholders(self, minimal_config):
        artifacts = _by_path(resolve_artifacts(minimal_config))
        example = artifacts[".env.example"]
        assert example.mode == 0o644
        assert b"JWT_SECRET=change-me" in example.content
        assert b"SESSION_SECRET=change-me" in example.content

    @pytest.mark.parametrize(
        "datastore, marker",
        [
            (Datastore.MYSQL, b"require('mysql2/promise')"),
            (Datastore.POSTGRES, b"require('pg')"),
            (Datastore.MONGO, b"require('mongodb')"),
        ],
    )
    def test_database_driver(self, datastore, marker):
        config = ProjectConfig(project_name="db", datastore=datastore)
        artifacts = _by_path(resolve_artifacts(config))
        assert marker in artifacts["source/config/database.js"].content
        assert b"db.connect()" in artifacts["source/server.js"].content

    def test_dynamic_template_app_uses_views(self):
        config = ProjectConfig(project_name="web", template_mode=TemplateMode.DYNAMIC_TEMPLATE)
        app = _by_path(resolve_artifacts(config))["source/app.js"].content.decode()
        assert "app.set('view engine', 'ejs');" in app
        assert "render('pages/404'" in app

    def test_api_only_app_returns_json_404(self, minimal_config):
        app = _by_path(resolve_artifacts(minimal_config))["source/app.js"].content.decode()
        assert "view engine" not in app
        assert "json({ error: 'Not Found' })" in app

    def test_description_escaped_in_swagger(self):
        config = ProjectConfig(
            project_name="docs",
            description="It's \"quoted\"",
            features=frozenset({Feature.API_DOCS}),
        )
        swagger = _by_path(resolve_artifacts(config))["source/config/swagger.js"].content.decode()
        line = next(
            ln for ln in swagger.splitlines() if ln.strip().startswith("description:")
        )
        assert line.strip() == 'description: "It\\u0027s \\"quoted\\"",'


class TestEveryCombinationRenders:
    @pytest.mark.parametrize(
        "mode, datastore, security",
        list(itertools.product(TemplateMode, Datastore, SecurityLevel)),
    )
    def test_renders_without_leftover_markup(self, mode, datastore, security):
        config = ProjectConfig(
            project_name="combo",
            template_mode=mode,
            datastore=datastore,
            security=security,
            features=frozenset(Feature),
        )
        for artifact in resolve_artifacts(config):
            text = artifact.content.decode("utf-8")
            assert "{{" not in text, artifact.path
            assert "{%" not in text, artifact.path

    @pytest.mark.parametrize("datastore", list(Datastore))
    def test_docker_compose_is_valid_yaml(self, datastore):
        config = ProjectConfig(
            project_name="svc",
            datastore=datastore,
            features=frozenset({Feature.CONTAINERIZATION}),
        )
        compose = _by_path(resolve_artifacts(config))["docker-compose.yml"].content
        parsed = yaml.safe_load(compose)
        assert parsed["services"]["app"]["ports"] == ["3000:3000"]
        assert parsed["services"]["app"]["container_name"] == "svc"
        if datastore is Datastore.NONE:
            assert "db" not in parsed["services"]
        else:
            assert "db" in parsed["services"]
            assert parsed["services"]["app"]["depends_on"] == ["db"]

    @pytest.mark.parametrize("testing", [True, False])
    def test_eslintrc_is_valid_json(self, testing):
        features = {Feature.LINTING} | ({Feature.TESTING} if testing else set())
        config = ProjectConfig(project_name="lint", features=frozenset(features))
        artifacts = _by_path(resolve_artifacts(config))
        parsed = json.loads(artifacts[".eslintrc.json"].content)
        assert parsed["env"].get("jest", False) is testing
        json.loads(artifacts[".prettierrc"].content)

    def test_every_table_template_exists(self):
        from devweb.scaffolder.templates import TemplateRenderer

        available = set(TemplateRenderer().list_templates())
        for spec in ARTIFACT_TABLE:
            if spec.template:
                assert spec.template in available, spec.template
