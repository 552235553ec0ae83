"""
Path resolver — where modules live, in both deployment topologies.

Workspace (development) mode
    The app depends on the shared packages through symlinks:
    ``__pypackages__/mercato/core`` → ``<root>/packages/core``.
    The workspace root is the symlink target's grandparent and the app
    lives in ``apps/mercato`` (or another folder under ``apps/``).

Installed (production) mode
    ``__pypackages__/mercato/core`` is a real directory, or absent.
    Root and app are the working directory.

Everything else (module source roots, import prefixes, output
directories) is derived from those two roots and ``ResolverSettings``.
The resolver is built once per run and holds no process-wide state.
"""

from __future__ import annotations

import logging
import tomllib
from pathlib import Path

from mercato_cli.core.config.modules_config import (
    find_modules_config,
    load_enabled_modules,
)
from mercato_cli.core.models.module import ModuleEntry
from mercato_cli.core.models.paths import (
    PackageInfo,
    ResolvedModulePaths,
    ResolverSettings,
)

logger = logging.getLogger(__name__)


def _find_deps_root(start_dir: Path, settings: ResolverSettings) -> Path | None:
    """Walk up looking for ``<dir>/__pypackages__/<scope>/<default>`` (may be hoisted)."""
    current = start_dir
    while True:
        marker = current / settings.deps_dir / settings.scope / settings.default_short_name
        if marker.exists() or marker.is_symlink():
            return current
        parent = current.parent
        if parent == current:
            return None
        current = parent


def detect_topology(
    cwd: Path, settings: ResolverSettings,
) -> tuple[bool, Path | None, Path | None]:
    """Return ``(is_monorepo, monorepo_root, deps_root)`` for a working directory."""
    deps_root = _find_deps_root(cwd, settings)
    if deps_root is None:
        return False, None, None

    marker = deps_root / settings.deps_dir / settings.scope / settings.default_short_name
    try:
        if marker.is_symlink():
            real = marker.resolve(strict=True)
            # real is <root>/packages/core
            return True, real.parent.parent, deps_root
    except OSError as e:
        logger.debug("Cannot resolve %s (%s) — assuming installed mode", marker, e)
    return False, None, deps_root


def detect_app_dir(root: Path, settings: ResolverSettings) -> Path:
    """Pick the app folder under a workspace root, falling back to the root."""
    for rel in settings.app_dir_candidates:
        candidate = root / rel
        if candidate.is_dir():
            return candidate

    apps = root / settings.apps_dir
    if apps.is_dir():
        for child in sorted(apps.iterdir(), key=lambda p: p.name):
            if (
                child.is_dir()
                and not child.name.startswith(".")
                and child.name not in settings.ignored_app_dirs
            ):
                return child

    return root


def _read_package_name(manifest: Path, fallback: str) -> str:
    """Read ``[project].name`` from a pyproject manifest."""
    with manifest.open("rb") as fh:
        data = tomllib.load(fh)
    name = (data.get("project") or {}).get("name")
    if not isinstance(name, str) or not name:
        return fallback
    # ``mercato-ai_assistant`` → ``mercato.ai_assistant``: only the scope
    # separator becomes a dot.
    return name.replace("-", ".", 1)


class PathResolver:
    """Resolve roots, module source paths and import prefixes.

    Args:
        cwd: Working directory the command was launched from.
        settings: Layout conventions (defaults to the standard layout).
    """

    def __init__(self, cwd: Path | None = None, settings: ResolverSettings | None = None):
        self.settings = settings or ResolverSettings()
        self.cwd = (cwd or Path.cwd()).resolve()

        self._is_monorepo, monorepo_root, deps_root = detect_topology(self.cwd, self.settings)
        self._root = monorepo_root or self.cwd
        # Installed packages may be hoisted above the working directory
        self._deps_root = deps_root or self._root

        candidate = detect_app_dir(self._root, self.settings)
        if self._is_monorepo:
            self._app_dir = candidate
        elif candidate != self._root:
            # Installed layout that still has an apps/ tree (e.g. a container
            # volume where the workspace symlinks were not preserved).
            self._app_dir = candidate
        else:
            self._app_dir = self.cwd

        logger.debug(
            "Resolver: mode=%s root=%s app=%s",
            "workspace" if self._is_monorepo else "installed",
            self._root, self._app_dir,
        )

    # ── Topology ────────────────────────────────────────────────

    def is_monorepo(self) -> bool:
        return self._is_monorepo

    def get_root_dir(self) -> Path:
        return self._root

    def get_app_dir(self) -> Path:
        return self._app_dir

    def get_output_dir(self) -> Path:
        """Generated output always lives under the app, whatever the topology."""
        return self._app_dir / self.settings.output_dir

    def get_modules_config_path(self) -> Path:
        found = find_modules_config(self._app_dir, self.settings)
        return found or self._app_dir / self.settings.modules_config

    def get_app_modules_root(self) -> Path:
        return self._app_dir / self.settings.app_modules_root

    def load_enabled_modules(self) -> list[ModuleEntry]:
        return load_enabled_modules(self._app_dir, self.settings)

    # ── Packages ────────────────────────────────────────────────

    def _package_dir_name(self, package: str | None) -> str:
        """``mercato.onboarding`` → ``onboarding``; unknown names → default."""
        package = package or self.settings.default_package
        short = self.settings.short_name(package)
        if short is None:
            logger.warning(
                "Unrecognized module source %r — using %s",
                package, self.settings.default_package,
            )
            return self.settings.default_short_name
        return short

    def get_package_root(self, from_: str | None = None) -> Path:
        short = self._package_dir_name(from_)
        if self._is_monorepo:
            return self._root / self.settings.packages_dir / short
        return self._deps_root / self.settings.deps_dir / self.settings.scope / short

    def get_package_modules_root(self, from_: str | None = None) -> Path:
        return self.get_package_root(from_) / self.settings.package_modules_root

    def get_package_output_dir(self, package_name: str) -> Path:
        if package_name == self.settings.app_marker:
            return self.get_output_dir()
        return self.get_package_root(package_name) / self.settings.package_output_dir

    def discover_packages(self) -> list[PackageInfo]:
        """List shared packages that expose a module source root."""
        if self._is_monorepo:
            container = self._root / self.settings.packages_dir
        else:
            container = self._deps_root / self.settings.deps_dir / self.settings.scope
        if not container.is_dir():
            return []

        packages: list[PackageInfo] = []
        for child in sorted(container.iterdir(), key=lambda p: p.name):
            if not child.is_dir():
                continue
            manifest = child / self.settings.package_manifest
            modules_root = child / self.settings.package_modules_root
            if not manifest.is_file() or not modules_root.is_dir():
                continue
            fallback = f"{self.settings.scope}.{child.name}"
            try:
                name = _read_package_name(manifest, fallback)
            except (OSError, tomllib.TOMLDecodeError) as e:
                logger.debug("Skipping package %s: %s", child, e)
                continue
            packages.append(PackageInfo(name=name, path=child, modules_root=modules_root))
        return packages

    # ── Modules ─────────────────────────────────────────────────

    def get_module_paths(self, entry: ModuleEntry) -> ResolvedModulePaths:
        app_base = self.get_app_modules_root() / entry.id
        if entry.is_app:
            # App-owned modules have no package copy; point at the default
            # package so that the pair stays well-formed.
            pkg_base = self.get_package_modules_root(None) / entry.id
        else:
            pkg_base = self.get_package_modules_root(entry.from_) / entry.id
        return ResolvedModulePaths(app_base=app_base, pkg_base=pkg_base)

    def get_module_package(self, entry: ModuleEntry) -> str:
        """Importable package providing ``entry`` (default package as fallback)."""
        package = self.settings.default_package if entry.is_app else entry.package_name
        if self.settings.short_name(package) is None:
            return self.settings.default_package
        return package

    def get_module_import_base(self, entry: ModuleEntry) -> ResolvedModulePaths:
        """Dotted import prefixes for generated code."""
        app_base = f"{self.settings.app_import_root}.{entry.id}"
        pkg_base = f"{self.get_module_package(entry)}.modules.{entry.id}"
        return ResolvedModulePaths(app_base=app_base, pkg_base=pkg_base)

