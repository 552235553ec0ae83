"""
Path models — resolver conventions and resolved locations.

``ResolverSettings`` holds every layout convention the resolver relies
on.  The defaults describe the standard Mercato layout; tests and
unusual deployments override individual fields.
"""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path

from pydantic import BaseModel, Field

from mercato_cli.core.models.module import APP_MARKER, DEFAULT_PACKAGE


class ResolverSettings(BaseModel):
    """Layout conventions for both deployment topologies."""

    # Shared packages: "<scope>.<name>", installed under <deps_dir>/<scope>/<name>
    scope: str = "mercato"
    default_package: str = DEFAULT_PACKAGE
    app_marker: str = APP_MARKER
    deps_dir: str = "__pypackages__"

    # Workspace layout
    packages_dir: str = "packages"
    apps_dir: str = "apps"
    app_dir_candidates: list[str] = Field(
        default_factory=lambda: ["apps/mercato", "apps/app"],
    )
    ignored_app_dirs: list[str] = Field(default_factory=lambda: ["docs"])

    # Package shape
    package_manifest: str = "pyproject.toml"
    package_modules_root: str = "src/modules"

    # App shape
    app_modules_root: str = "src/modules"
    app_import_root: str = "modules"
    modules_config: str = "src/modules.yml"
    legacy_modules_config: str = "src/modules.py"

    # Generated output
    output_dir: str = ".mercato/generated"
    package_output_dir: str = "generated"

    @property
    def default_short_name(self) -> str:
        """``mercato.core`` → ``core``."""
        return self.short_name(self.default_package) or "core"

    def short_name(self, package: str) -> str | None:
        """Strip the scope prefix from a package name, or None if out of scope."""
        prefix = f"{self.scope}."
        if package.startswith(prefix) and len(package) > len(prefix):
            return package[len(prefix):]
        return None


@dataclass(frozen=True)
class PackageInfo:
    """A discovered shared package exposing a module source root."""

    name: str
    path: Path
    modules_root: Path

    def to_dict(self) -> dict:
        return {
            "name": self.name,
            "path": str(self.path),
            "modules_root": str(self.modules_root),
        }


@dataclass(frozen=True)
class ResolvedModulePaths:
    """App-override and package roots for one module.

    Used both for filesystem paths and for dotted import prefixes
    (``get_module_import_base``), hence ``str | Path``.
    """

    app_base: Path | str
    pkg_base: Path | str

    def to_dict(self) -> dict:
        return {"app_base": str(self.app_base), "pkg_base": str(self.pkg_base)}
