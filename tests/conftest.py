"""
Shared test fixtures and configuration.

Most tests build a small workspace under ``tmp_path``::

    <root>/packages/core/pyproject.toml
    <root>/packages/core/src/modules/<id>/...
    <root>/apps/mercato/__pypackages__/mercato/core  →  <root>/packages/core
    <root>/apps/mercato/src/modules.yml
    <root>/apps/mercato/src/modules/<id>/...           (app overrides)
"""

from __future__ import annotations

import textwrap
from dataclasses import dataclass
from pathlib import Path

import pytest
import yaml

from mercato_cli.core.context import GenerationContext
from mercato_cli.core.resolver import PathResolver


def write(path: Path, text: str = "") -> Path:
    """Write dedented text, creating parent directories."""
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(textwrap.dedent(text), encoding="utf-8")
    return path


@dataclass
class Workspace:
    """A throwaway workspace-mode layout."""

    root: Path
    app: Path

    def package(self, short: str = "core") -> Path:
        pkg = self.root / "packages" / short
        manifest = pkg / "pyproject.toml"
        if not manifest.exists():
            write(manifest, f'[project]\nname = "mercato-{short}"\n')
        (pkg / "src" / "modules").mkdir(parents=True, exist_ok=True)
        return pkg

    def pkg_module(self, module_id: str, short: str = "core") -> Path:
        base = self.package(short) / "src" / "modules" / module_id
        base.mkdir(parents=True, exist_ok=True)
        return base

    def app_module(self, module_id: str) -> Path:
        base = self.app / "src" / "modules" / module_id
        base.mkdir(parents=True, exist_ok=True)
        return base

    def write_config(self, modules: list[dict]) -> Path:
        path = self.app / "src" / "modules.yml"
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(
            yaml.safe_dump({"version": 1, "modules": modules}, sort_keys=False),
            encoding="utf-8",
        )
        return path

    @property
    def output_dir(self) -> Path:
        return self.app / ".mercato" / "generated"

    def resolver(self) -> PathResolver:
        return PathResolver(cwd=self.app)

    def context(self) -> GenerationContext:
        return GenerationContext(resolver=self.resolver())


@pytest.fixture
def workspace(tmp_path: Path) -> Workspace:
    """Workspace mode: the app links to packages/core through __pypackages__."""
    root = tmp_path.resolve()
    ws = Workspace(root=root, app=root / "apps" / "mercato")
    core = ws.package("core")
    link = ws.app / "__pypackages__" / "mercato" / "core"
    link.parent.mkdir(parents=True)
    link.symlink_to(core, target_is_directory=True)
    (ws.app / "src").mkdir(parents=True)
    return ws


@pytest.fixture
def installed_app(tmp_path: Path) -> Path:
    """Installed mode: a real package directory under the app's __pypackages__."""
    app = tmp_path.resolve() / "app"
    core = app / "__pypackages__" / "mercato" / "core"
    write(core / "pyproject.toml", '[project]\nname = "mercato-core"\n')
    (core / "src" / "modules").mkdir(parents=True)
    (app / "src").mkdir(parents=True)
    return app
