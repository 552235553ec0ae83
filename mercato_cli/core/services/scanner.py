"""
Convention scanner — discover what each enabled module contributes.

Every module has two layers: the app override root
(``<app>/src/modules/<id>``) and the package root
(``<package>/src/modules/<id>``).  For each conventional location both
layers are probed; the app file wins whenever it exists, and the layer
a file came from decides the import path emitted for it.

Conventions (relative to a module root):

    __init__.py                       module metadata (title, requires, ejectable)
    frontend/**/page.py               end-user routes (legacy: frontend/**/<name>.py)
    backend/**/page.py                admin routes (legacy: backend/**/<name>.py)
    api/**/route.py                   API handlers (flat: api/**/<name>.py,
                                      legacy per-verb: api/<verb>/**/<name>.py)
    cli.py                            CLI command
    i18n/<locale>.json                translations (app keys override package keys)
    subscribers/**/*.py               event subscribers
    workers/**/*.py                   background workers (metadata with a queue)
    data/extensions.py, acl.py, ce.py, data/fields.py, search.py,
    notifications.py, ai_tools.py, events.py, analytics.py, setup.py,
    widgets/injection_table.py        single-file contributions
    widgets/dashboard/**/widget.py    dashboard widgets
    widgets/injection/**/widget.py    injection widgets

The scan produces plain data (``ScanResult``); turning it into source
text is the emitter's job.
"""

from __future__ import annotations

import json
import logging
from collections.abc import Callable, Iterator
from contextlib import contextmanager
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from mercato_cli.core.context import GenerationContext
from mercato_cli.core.models.module import ModuleEntry, ModuleMetadata
from mercato_cli.core.services.metadata import INDEX_FILE, read_module_metadata
from mercato_cli.core.services.probes import module_has_export

logger = logging.getLogger(__name__)

SKIP_DIRS = frozenset({"__tests__", "__mocks__", "tests", "__pycache__"})
HTTP_METHODS = ("GET", "POST", "PUT", "PATCH", "DELETE")

APP = "app"
PACKAGE = "package"

# (kind, path parts) — one optional file each, in emission order
SINGLE_FILE_CONVENTIONS: tuple[tuple[str, tuple[str, ...]], ...] = (
    ("setup", ("setup.py",)),
    ("extensions", ("data", "extensions.py")),
    ("features", ("acl.py",)),
    ("custom_entities", ("ce.py",)),
    ("search", ("search.py",)),
    ("notifications", ("notifications.py",)),
    ("ai_tools", ("ai_tools.py",)),
    ("events", ("events.py",)),
    ("analytics", ("analytics.py",)),
    ("fields", ("data", "fields.py")),
    ("injection_table", ("widgets", "injection_table.py")),
)


# ── Contributions ───────────────────────────────────────────────


@dataclass(frozen=True)
class RouteEntry:
    """A page route (frontend or backend)."""

    pattern: str
    import_path: str
    meta_import_path: str | None
    source: str


@dataclass(frozen=True)
class ApiEntry:
    """An API handler module; ``method`` is set for legacy per-verb files."""

    path: str
    import_path: str
    source: str
    method: str | None = None
    has_docs: bool = False


@dataclass(frozen=True)
class SubscriberEntry:
    id: str
    import_path: str
    source: str


@dataclass(frozen=True)
class WorkerEntry:
    id: str
    import_path: str
    source: str


@dataclass(frozen=True)
class WidgetEntry:
    module_id: str
    key: str
    source: str
    import_path: str


@dataclass(frozen=True)
class ConfigEntry:
    """A single-file contribution (acl, search, events, …)."""

    kind: str
    import_path: str
    source: str


@dataclass
class ModuleScan:
    """Everything one module contributes during one scan."""

    id: str
    info_import: str | None = None
    metadata: ModuleMetadata = field(default_factory=ModuleMetadata)
    frontend_routes: list[RouteEntry] = field(default_factory=list)
    backend_routes: list[RouteEntry] = field(default_factory=list)
    apis: list[ApiEntry] = field(default_factory=list)
    cli_import: str | None = None
    translations: dict[str, dict[str, Any]] = field(default_factory=dict)
    subscribers: list[SubscriberEntry] = field(default_factory=list)
    workers: list[WorkerEntry] = field(default_factory=list)
    configs: dict[str, ConfigEntry] = field(default_factory=dict)
    dashboard_widgets: list[WidgetEntry] = field(default_factory=list)
    injection_widgets: list[WidgetEntry] = field(default_factory=list)
    errors: list[str] = field(default_factory=list)

    @property
    def requires(self) -> list[str]:
        return self.metadata.requires

    def config(self, kind: str) -> ConfigEntry | None:
        return self.configs.get(kind)


def _merge_widgets(modules: list[ModuleScan], attr: str) -> list[WidgetEntry]:
    """Cross-module widget table: one entry per key, app copies win, sorted by key."""
    merged: dict[str, WidgetEntry] = {}
    for scan in modules:
        for widget in getattr(scan, attr):
            existing = merged.get(widget.key)
            if existing is None or (existing.source != APP and widget.source == APP):
                merged[widget.key] = widget
    return [merged[key] for key in sorted(merged)]


@dataclass
class ScanResult:
    """Result of scanning every enabled module."""

    modules: list[ModuleScan] = field(default_factory=list)
    tracked_roots: list[Path] = field(default_factory=list)
    enabled_ids: list[str] = field(default_factory=list)

    @property
    def requires_by_module(self) -> dict[str, list[str]]:
        return {m.id: list(m.requires) for m in self.modules if m.requires}

    @property
    def error_markers(self) -> list[str]:
        return [marker for m in self.modules for marker in m.errors]

    @property
    def dashboard_widgets(self) -> list[WidgetEntry]:
        return _merge_widgets(self.modules, "dashboard_widgets")

    @property
    def injection_widgets(self) -> list[WidgetEntry]:
        return _merge_widgets(self.modules, "injection_widgets")

    def get_module(self, module_id: str) -> ModuleScan | None:
        for m in self.modules:
            if m.id == module_id:
                return m
        return None

    def to_dict(self) -> dict:
        return {
            "modules": [
                {
                    "id": m.id,
                    "frontend_routes": [r.pattern for r in m.frontend_routes],
                    "backend_routes": [r.pattern for r in m.backend_routes],
                    "apis": [a.path for a in m.apis],
                    "subscribers": [s.id for s in m.subscribers],
                    "workers": [w.id for w in m.workers],
                    "configs": sorted(m.configs),
                    "errors": m.errors,
                }
                for m in self.modules
            ],
            "tracked_roots": [str(p) for p in self.tracked_roots],
        }


# ── File helpers ────────────────────────────────────────────────


def is_test_file(name: str) -> bool:
    return name.startswith("test_") or name.endswith("_test.py")


def is_source_file(name: str) -> bool:
    """A contribution candidate: public, non-test Python file."""
    return name.endswith(".py") and not name.startswith("_") and not is_test_file(name)


def is_meta_file(name: str) -> bool:
    return name == "meta.py" or name.endswith("_meta.py")


def is_page_candidate(name: str) -> bool:
    return is_source_file(name) and not is_meta_file(name)


def is_dynamic_page(rel: str) -> bool:
    return "/[" in rel or rel.startswith("[")


def is_dynamic_route(rel: str) -> bool:
    return any("[" in seg for seg in rel.split("/"))


def walk_files(
    root: Path,
    accept: Callable[[str], bool],
    skip_dirs: frozenset[str] = SKIP_DIRS,
) -> list[str]:
    """Relative POSIX paths of accepted files under ``root`` (name-sorted walk)."""
    found: list[str] = []

    def _walk(directory: Path, rel: list[str]) -> None:
        for entry in sorted(directory.iterdir(), key=lambda p: p.name):
            if entry.is_dir():
                if entry.name in skip_dirs or entry.name.startswith("."):
                    continue
                _walk(entry, [*rel, entry.name])
            elif entry.is_file() and accept(entry.name):
                found.append("/".join([*rel, entry.name]))

    _walk(root, [])
    return found


def _strip_py(name: str) -> str:
    return name[:-3] if name.endswith(".py") else name


@dataclass(frozen=True)
class ModuleLayers:
    """The app and package roots of one module, with their import prefixes."""

    module_id: str
    app_base: Path
    pkg_base: Path
    app_import: str
    pkg_import: str

    def root(self, source: str) -> Path:
        return self.app_base if source == APP else self.pkg_base

    def pick(self, *parts: str) -> tuple[Path, str] | None:
        """The file at ``parts``, app layer first."""
        app_file = self.app_base.joinpath(*parts)
        if app_file.is_file():
            return app_file, APP
        pkg_file = self.pkg_base.joinpath(*parts)
        if pkg_file.is_file():
            return pkg_file, PACKAGE
        return None

    def union(
        self,
        subdir: tuple[str, ...],
        accept: Callable[[str], bool],
        skip_dirs: frozenset[str] = SKIP_DIRS,
    ) -> list[str]:
        """Relative paths found under ``subdir`` in either layer, deduplicated."""
        found: set[str] = set()
        for base in (self.pkg_base, self.app_base):
            directory = base.joinpath(*subdir)
            if directory.is_dir():
                found.update(walk_files(directory, accept, skip_dirs))
        return sorted(found)

    def locate(self, subdir: tuple[str, ...], rel: str) -> tuple[Path, str]:
        """Which layer provides ``subdir/rel`` (app wins)."""
        parts = rel.split("/")
        app_file = self.app_base.joinpath(*subdir, *parts)
        if app_file.is_file():
            return app_file, APP
        return self.pkg_base.joinpath(*subdir, *parts), PACKAGE

    def dotted(self, source: str, *parts: str) -> str:
        """Import path for a file inside the module, e.g. ``….frontend.list.page``."""
        base = self.app_import if source == APP else self.pkg_import
        segments = [p for p in parts if p]
        if segments:
            segments[-1] = _strip_py(segments[-1])
        return ".".join([base, *segments])


@contextmanager
def _guard(scan: ModuleScan, where: Path) -> Iterator[None]:
    """A failing subtree contributes nothing and leaves an error marker."""
    try:
        yield
    except (OSError, ValueError, SyntaxError) as e:
        marker = f"error:{where}:{e}"
        scan.errors.append(marker)
        logger.warning("Skipping %s: %s", where, e)


# ── Per-convention scans ────────────────────────────────────────


def _scan_pages(layers: ModuleLayers, area: str) -> list[RouteEntry]:
    files = layers.union((area,), is_page_candidate)
    files.sort(key=lambda rel: (is_dynamic_page(rel), rel))

    page_style = [f for f in files if f == "page.py" or f.endswith("/page.py")]
    legacy = [f for f in files if f not in page_style]
    mod_id = layers.module_id

    routes: list[RouteEntry] = []
    for rel in page_style:
        segs = rel.split("/")[:-1]
        file, source = layers.locate((area,), rel)
        if area == "backend":
            pattern = "/backend/" + ("/".join(segs) or mod_id)
        else:
            pattern = "/" + "/".join(segs)
        meta = _find_meta(file.parent, ["page_meta.py", "meta.py"])
        routes.append(RouteEntry(
            pattern=pattern,
            import_path=layers.dotted(source, area, *segs, "page"),
            meta_import_path=layers.dotted(source, area, *segs, meta) if meta else None,
            source=source,
        ))

    for rel in legacy:
        *segs, filename = rel.split("/")
        name = _strip_py(filename)
        file, source = layers.locate((area,), rel)
        if area == "backend":
            pattern = "/backend/" + "/".join([mod_id, *segs, name])
        else:
            pattern = "/" + "/".join([*segs, name])
        meta = _find_meta(file.parent, [f"{name}_meta.py", "meta.py"])
        routes.append(RouteEntry(
            pattern=pattern,
            import_path=layers.dotted(source, area, *segs, name),
            meta_import_path=layers.dotted(source, area, *segs, meta) if meta else None,
            source=source,
        ))
    return routes


def _find_meta(directory: Path, candidates: list[str]) -> str | None:
    for name in candidates:
        if (directory / name).is_file():
            return name
    return None


async def _scan_apis(ctx: GenerationContext, layers: ModuleLayers) -> list[ApiEntry]:
    mod_id = layers.module_id
    apis: list[ApiEntry] = []

    # route.py aggregations
    route_files = layers.union(("api",), lambda name: name == "route.py")
    route_files.sort(key=lambda rel: (is_dynamic_route(rel), rel))
    for rel in route_files:
        segs = rel.split("/")[:-1]
        file, source = layers.locate(("api",), rel)
        apis.append(ApiEntry(
            path="/" + "/".join([mod_id, *segs]),
            import_path=layers.dotted(source, "api", *segs, "route"),
            source=source,
            has_docs=await module_has_export(ctx, file, "openapi"),
        ))

    # Single-file handlers (not inside per-verb directories)
    verb_dirs = frozenset(m.lower() for m in HTTP_METHODS)
    plain_files = layers.union(
        ("api",),
        lambda name: is_source_file(name) and name != "route.py",
        skip_dirs=SKIP_DIRS | verb_dirs,
    )
    plain_files.sort(key=lambda rel: (is_dynamic_route(rel), rel))
    for rel in plain_files:
        *segs, filename = rel.split("/")
        name = _strip_py(filename)
        file, source = layers.locate(("api",), rel)
        apis.append(ApiEntry(
            path="/" + "/".join([mod_id, *segs, name]),
            import_path=layers.dotted(source, "api", *segs, name),
            source=source,
            has_docs=await module_has_export(ctx, file, "openapi"),
        ))

    # Legacy per-verb directories: api/get/**, api/post/**, …
    for method in HTTP_METHODS:
        verb = method.lower()
        for rel in layers.union(("api", verb), is_source_file):
            *segs, filename = rel.split("/")
            name = _strip_py(filename)
            file, source = layers.locate(("api", verb), rel)
            apis.append(ApiEntry(
                path="/" + "/".join([mod_id, *segs, name]),
                import_path=layers.dotted(source, "api", verb, *segs, name),
                source=source,
                method=method,
                has_docs=await module_has_export(ctx, file, "openapi"),
            ))
    return apis


def _load_locale(path: Path) -> dict[str, Any]:
    data = json.loads(path.read_text(encoding="utf-8"))
    if not isinstance(data, dict):
        raise ValueError(f"expected a JSON object, got {type(data).__name__}")
    return data


def _scan_translations(scan: ModuleScan, layers: ModuleLayers) -> dict[str, dict[str, Any]]:
    pkg_dir = layers.pkg_base / "i18n"
    app_dir = layers.app_base / "i18n"
    locales: set[str] = set()
    for directory in (pkg_dir, app_dir):
        if directory.is_dir():
            locales.update(
                p.stem for p in directory.iterdir()
                if p.is_file() and p.suffix == ".json"
            )

    translations: dict[str, dict[str, Any]] = {}
    for locale in sorted(locales):
        with _guard(scan, app_dir / f"{locale}.json"):
            merged: dict[str, Any] = {}
            pkg_file = pkg_dir / f"{locale}.json"
            app_file = app_dir / f"{locale}.json"
            if pkg_file.is_file():
                merged.update(_load_locale(pkg_file))
            if app_file.is_file():
                merged.update(_load_locale(app_file))
            translations[locale] = merged
    return translations


def _scan_subscribers(layers: ModuleLayers) -> list[SubscriberEntry]:
    entries: list[SubscriberEntry] = []
    for rel in layers.union(("subscribers",), is_source_file):
        *segs, filename = rel.split("/")
        name = _strip_py(filename)
        _file, source = layers.locate(("subscribers",), rel)
        entries.append(SubscriberEntry(
            id=":".join([layers.module_id, *segs, name]),
            import_path=layers.dotted(source, "subscribers", *segs, name),
            source=source,
        ))
    return entries


async def _scan_workers(ctx: GenerationContext, layers: ModuleLayers) -> list[WorkerEntry]:
    entries: list[WorkerEntry] = []
    for rel in layers.union(("workers",), is_source_file):
        *segs, filename = rel.split("/")
        name = _strip_py(filename)
        file, source = layers.locate(("workers",), rel)
        # Only files declaring which queue they consume
        if not await module_has_export(ctx, file, "metadata", required_key="queue"):
            logger.debug("Skipping worker %s: no metadata queue", file)
            continue
        entries.append(WorkerEntry(
            id=":".join([layers.module_id, "workers", *segs, name]),
            import_path=layers.dotted(source, "workers", *segs, name),
            source=source,
        ))
    return entries


def _scan_widgets(layers: ModuleLayers, kind: str) -> list[WidgetEntry]:
    subdir = ("widgets", kind)
    entries: list[WidgetEntry] = []
    for rel in layers.union(subdir, lambda name: name == "widget.py"):
        segs = rel.split("/")[:-1]
        _file, source = layers.locate(subdir, rel)
        entries.append(WidgetEntry(
            module_id=layers.module_id,
            key=":".join([layers.module_id, *segs, "widget"]),
            source=source,
            import_path=layers.dotted(source, "widgets", kind, *segs, "widget"),
        ))
    return entries


# ── Module & run scans ──────────────────────────────────────────


async def scan_module(ctx: GenerationContext, entry: ModuleEntry) -> ModuleScan:
    """Scan one module across both layers."""
    resolver = ctx.resolver
    paths = resolver.get_module_paths(entry)
    imports = resolver.get_module_import_base(entry)
    layers = ModuleLayers(
        module_id=entry.id,
        app_base=Path(paths.app_base),
        pkg_base=Path(paths.pkg_base),
        app_import=str(imports.app_base),
        pkg_import=str(imports.pkg_base),
    )
    scan = ModuleScan(id=entry.id)

    # Index / metadata
    picked = layers.pick(INDEX_FILE)
    if picked:
        index_file, source = picked
        scan.info_import = layers.dotted(source)
        with _guard(scan, index_file):
            scan.metadata = read_module_metadata(index_file)

    for area in ("frontend", "backend"):
        with _guard(scan, layers.root(APP) / area):
            routes = _scan_pages(layers, area)
            if area == "frontend":
                scan.frontend_routes = routes
            else:
                scan.backend_routes = routes

    with _guard(scan, layers.pkg_base / "api"):
        scan.apis = await _scan_apis(ctx, layers)

    picked = layers.pick("cli.py")
    if picked:
        scan.cli_import = layers.dotted(picked[1], "cli.py")

    scan.translations = _scan_translations(scan, layers)

    with _guard(scan, layers.pkg_base / "subscribers"):
        scan.subscribers = _scan_subscribers(layers)

    with _guard(scan, layers.pkg_base / "workers"):
        scan.workers = await _scan_workers(ctx, layers)

    for kind, parts in SINGLE_FILE_CONVENTIONS:
        picked = layers.pick(*parts)
        if picked:
            scan.configs[kind] = ConfigEntry(
                kind=kind,
                import_path=layers.dotted(picked[1], *parts),
                source=picked[1],
            )

    with _guard(scan, layers.pkg_base / "widgets" / "dashboard"):
        scan.dashboard_widgets = _scan_widgets(layers, "dashboard")
    with _guard(scan, layers.pkg_base / "widgets" / "injection"):
        scan.injection_widgets = _scan_widgets(layers, "injection")

    logger.info(
        "Scanned %s: %d page(s), %d api(s), %d subscriber(s), %d worker(s)",
        entry.id,
        len(scan.frontend_routes) + len(scan.backend_routes),
        len(scan.apis), len(scan.subscribers), len(scan.workers),
    )
    return scan


async def scan_modules(ctx: GenerationContext, entries: list[ModuleEntry]) -> ScanResult:
    """Scan all enabled modules, in id order, one after another."""
    result = ScanResult(enabled_ids=[e.id for e in entries])
    tracked: set[Path] = set()

    for entry in sorted(entries, key=lambda e: e.id):
        paths = ctx.resolver.get_module_paths(entry)
        tracked.add(Path(paths.app_base))
        tracked.add(Path(paths.pkg_base))
        result.modules.append(await scan_module(ctx, entry))

    result.tracked_roots = sorted(tracked)
    return result
