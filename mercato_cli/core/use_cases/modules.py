"""
Modules use cases — list enabled modules, clean generated output.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path

from mercato_cli.core.errors import MercatoError
from mercato_cli.core.models.paths import ResolverSettings
from mercato_cli.core.resolver import PathResolver
from mercato_cli.core.services.cleanup import safe_rmtree


@dataclass
class ModuleRow:
    id: str
    origin: str
    from_: str | None
    app_base: Path
    pkg_base: Path
    import_base: str

    @property
    def source_dir(self) -> Path:
        return self.app_base if self.origin == "app" else self.pkg_base

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "origin": self.origin,
            "from": self.from_,
            "app_base": str(self.app_base),
            "pkg_base": str(self.pkg_base),
            "import_base": self.import_base,
            "source_exists": self.source_dir.is_dir(),
        }


@dataclass
class ModulesResult:
    """Enabled modules with their origin and resolved paths."""

    mode: str = ""
    root_dir: Path | None = None
    app_dir: Path | None = None
    config_path: Path | None = None
    modules: list[ModuleRow] = field(default_factory=list)
    error: str | None = None

    def to_dict(self) -> dict:
        if self.error:
            return {"error": self.error}
        return {
            "mode": self.mode,
            "root_dir": str(self.root_dir),
            "app_dir": str(self.app_dir),
            "config_path": str(self.config_path),
            "modules": [m.to_dict() for m in self.modules],
        }


def list_modules(
    cwd: Path | None = None,
    settings: ResolverSettings | None = None,
) -> ModulesResult:
    try:
        resolver = PathResolver(cwd=cwd, settings=settings)
        entries = resolver.load_enabled_modules()
    except MercatoError as e:
        return ModulesResult(error=str(e))

    result = ModulesResult(
        mode="workspace" if resolver.is_monorepo() else "installed",
        root_dir=resolver.get_root_dir(),
        app_dir=resolver.get_app_dir(),
        config_path=resolver.get_modules_config_path(),
    )
    for entry in entries:
        paths = resolver.get_module_paths(entry)
        imports = resolver.get_module_import_base(entry)
        origin = entry.origin.value
        result.modules.append(ModuleRow(
            id=entry.id,
            origin=origin,
            from_=entry.from_,
            app_base=Path(paths.app_base),
            pkg_base=Path(paths.pkg_base),
            import_base=str(imports.app_base if entry.is_app else imports.pkg_base),
        ))
    return result


@dataclass
class CleanResult:
    output_dir: Path | None = None
    deleted: bool = False
    error: str | None = None

    def to_dict(self) -> dict:
        if self.error:
            return {"error": self.error}
        return {"output_dir": str(self.output_dir), "deleted": self.deleted}


def clean_generated(
    cwd: Path | None = None,
    settings: ResolverSettings | None = None,
) -> CleanResult:
    """Remove the generated output directory (guarded)."""
    resolver = PathResolver(cwd=cwd, settings=settings)
    result = CleanResult(output_dir=resolver.get_output_dir())
    try:
        result.deleted = safe_rmtree(result.output_dir)
    except MercatoError as e:
        result.error = str(e)
    return result
