"""
Eject — turn a package-provided module into an app-owned copy.

Staged sequence (nothing app-owned exists until the copy is complete):

    1. preconditions      listed, not already local, source present,
                          ejectable, destination free, config present
    2. stage              copy the package module into a temp dir that
                          sits next to the app modules root
    3. rewrite            cross-module relative imports → absolute
    4. verify             every staged .py file must still parse
    5. publish            rename the staged copy into place
    6. edit config        ``from: "@app"`` for the entry, other fields kept

If the config edit fails, the published directory is removed again.
The temp dir is always removed.
"""

from __future__ import annotations

import ast
import logging
import shutil
import tempfile
from dataclasses import dataclass, field
from pathlib import Path

from mercato_cli.core.config.modules_config import (
    load_modules_config,
    save_modules_config,
    set_module_origin,
)
from mercato_cli.core.errors import (
    AlreadyLocal,
    DestinationExists,
    EjectError,
    MercatoError,
    ModuleNotFound,
    NotEjectable,
    SourceMissing,
)
from mercato_cli.core.models.module import DEFAULT_PACKAGE
from mercato_cli.core.resolver import PathResolver
from mercato_cli.core.services.import_rewrite import rewrite_cross_module_imports
from mercato_cli.core.services.metadata import INDEX_FILE, read_module_metadata

logger = logging.getLogger(__name__)

SKIP_DIRS = ("__tests__", "__mocks__", "tests", "__pycache__")


@dataclass(frozen=True)
class EjectableModule:
    """An enabled, package-provided module that may be ejected."""

    id: str
    title: str | None
    description: str | None
    from_: str

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "title": self.title,
            "description": self.description,
            "from": self.from_,
        }


@dataclass
class EjectOutcome:
    """What an eject did."""

    module_id: str
    source: Path
    destination: Path
    config_path: Path
    files_copied: int = 0
    imports_rewritten: dict[str, int] = field(default_factory=dict)
    warnings: list[str] = field(default_factory=list)


def list_ejectable(resolver: PathResolver) -> list[EjectableModule]:
    """Enabled package modules whose metadata declares ``ejectable: True``."""
    ejectable: list[EjectableModule] = []
    for entry in resolver.load_enabled_modules():
        if entry.is_app:
            continue
        pkg_base = Path(resolver.get_module_paths(entry).pkg_base)
        try:
            metadata = read_module_metadata(pkg_base / INDEX_FILE)
        except (OSError, SyntaxError) as e:
            logger.warning("Cannot read metadata of %s: %s", entry.id, e)
            continue
        if metadata.ejectable:
            ejectable.append(EjectableModule(
                id=entry.id,
                title=metadata.title,
                description=metadata.description,
                from_=entry.from_ or DEFAULT_PACKAGE,
            ))
    return ejectable


def copy_module_tree(src: Path, dest: Path) -> int:
    """Copy a module tree without tests or bytecode; returns the file count."""
    shutil.copytree(src, dest, ignore=shutil.ignore_patterns(*SKIP_DIRS))
    return sum(1 for p in dest.rglob("*") if p.is_file())


def verify_python_tree(root: Path) -> None:
    """Every ``.py`` file under ``root`` must parse.

    Raises:
        EjectError: Naming the first file that does not.
    """
    for py_file in sorted(root.rglob("*.py")):
        try:
            ast.parse(py_file.read_text(encoding="utf-8"), filename=str(py_file))
        except (SyntaxError, UnicodeDecodeError) as e:
            rel = py_file.relative_to(root).as_posix()
            raise EjectError(f"Ejected copy of {rel} is not valid Python: {e}") from e


def eject_module(resolver: PathResolver, module_id: str) -> EjectOutcome:
    """Copy a package module into the app and mark it app-owned.

    Raises:
        ModuleNotFound, AlreadyLocal, SourceMissing, NotEjectable,
        DestinationExists: Precondition failures, checked in that order.
        ConfigNotFound: If there is no module configuration file to edit.
        EjectError: If copying, verifying or publishing the staged copy
            fails, or the config cannot be written.
    """
    entries = resolver.load_enabled_modules()
    entry = next((e for e in entries if e.id == module_id), None)
    if entry is None:
        raise ModuleNotFound(module_id, [e.id for e in entries])
    if entry.is_app:
        raise AlreadyLocal(module_id)

    paths = resolver.get_module_paths(entry)
    pkg_base, app_base = Path(paths.pkg_base), Path(paths.app_base)
    if not pkg_base.is_dir():
        raise SourceMissing(module_id, str(pkg_base))
    try:
        ejectable = read_module_metadata(pkg_base / INDEX_FILE).ejectable
    except (OSError, SyntaxError) as e:
        logger.warning("Cannot read metadata of %s: %s", module_id, e)
        ejectable = False
    if not ejectable:
        raise NotEjectable(module_id)
    if app_base.exists():
        raise DestinationExists(module_id, str(app_base))

    config_path = resolver.get_modules_config_path()
    config = load_modules_config(config_path)
    package_name = resolver.get_module_package(entry)

    # ── Stage ───────────────────────────────────────────────────
    app_modules_root = app_base.parent
    try:
        app_modules_root.mkdir(parents=True, exist_ok=True)
        stage_root = Path(tempfile.mkdtemp(prefix=f".eject-{module_id}-", dir=app_modules_root))
    except OSError as e:
        raise EjectError(f"Cannot create a staging directory in {app_modules_root}: {e}") from e

    try:
        staged = stage_root / module_id
        try:
            files_copied = copy_module_tree(pkg_base, staged)
            logger.info("Staged %d file(s) from %s", files_copied, pkg_base)
            report = rewrite_cross_module_imports(staged, pkg_base, module_id, package_name)
        except OSError as e:
            raise EjectError(f"Cannot copy {pkg_base}: {e}") from e

        verify_python_tree(staged)

        # ── Publish ─────────────────────────────────────────────
        try:
            staged.rename(app_base)
        except OSError as e:
            raise EjectError(f"Cannot move the ejected copy to {app_base}: {e}") from e
    finally:
        shutil.rmtree(stage_root, ignore_errors=True)
    logger.info("Published %s → %s", module_id, app_base)

    # ── Config edit ─────────────────────────────────────────────
    try:
        set_module_origin(config, module_id, resolver.settings.app_marker)
        save_modules_config(config, config_path)
    except (MercatoError, OSError) as e:
        logger.error("Config update failed — removing %s", app_base)
        shutil.rmtree(app_base, ignore_errors=True)
        if isinstance(e, MercatoError):
            raise
        raise EjectError(f"Cannot update {config_path}: {e}") from e

    return EjectOutcome(
        module_id=module_id,
        source=pkg_base,
        destination=app_base,
        config_path=config_path,
        files_copied=files_copied,
        imports_rewritten=report.rewritten,
        warnings=report.warnings,
    )
