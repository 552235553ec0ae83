"""
Artifact emitter — render a scan into generated Python registries.

Pure text generation: takes a ``ScanResult``, returns ``GeneratedFile``
objects.  Nothing here touches the filesystem; the generate use case
decides what actually gets written.

Generated modules:
    - import their targets with ``importlib.import_module`` (route
      segments such as ``[id]`` are not valid identifiers, so plain
      ``import`` statements cannot be used)
    - number their module aliases (``_m0``, ``_m1``, …) in scan order,
      one alias per distinct import path
    - carry only the small runtime helpers they actually call

The same scan always renders to byte-identical text.
"""

from __future__ import annotations

import logging

from mercato_cli.core.models.template import GeneratedFile
from mercato_cli.core.services.scanner import (
    ApiEntry,
    ModuleScan,
    RouteEntry,
    ScanResult,
    WidgetEntry,
)

logger = logging.getLogger(__name__)

GENERATED_BANNER = "# AUTO-GENERATED by mercato generate — do not edit."

MODULES_FILE = "modules_generated.py"
MODULES_CLI_FILE = "modules_cli_generated.py"
DASHBOARD_WIDGETS_FILE = "dashboard_widgets_generated.py"
INJECTION_WIDGETS_FILE = "injection_widgets_generated.py"
INJECTION_TABLES_FILE = "injection_tables_generated.py"
SEARCH_FILE = "search_generated.py"
NOTIFICATIONS_FILE = "notifications_generated.py"
AI_TOOLS_FILE = "ai_tools_generated.py"
EVENTS_FILE = "events_generated.py"
ANALYTICS_FILE = "analytics_generated.py"

ARTIFACT_FILES = (
    MODULES_FILE,
    MODULES_CLI_FILE,
    DASHBOARD_WIDGETS_FILE,
    INJECTION_WIDGETS_FILE,
    INJECTION_TABLES_FILE,
    SEARCH_FILE,
    NOTIFICATIONS_FILE,
    AI_TOOLS_FILE,
    EVENTS_FILE,
    ANALYTICS_FILE,
)

# How a single-file contribution is read from its module, e.g.
# ``acl.py`` exports ``default`` or ``features``.
CONFIG_EXPRESSIONS = {
    "setup": '_attr({m}, "default", "setup")',
    "extensions": '_attr({m}, "default", "extensions") or []',
    "features": '_attr({m}, "default", "features") or []',
    "custom_entities": '_attr({m}, "default", "entities") or []',
    "search": '_attr({m}, "default", "search_config", "config")',
    "notifications": '_attr({m}, "default", "notification_types", "types") or []',
    "ai_tools": '_attr({m}, "ai_tools", "default") or []',
    "events": '_attr({m}, "default", "events_config")',
    "analytics": '_attr({m}, "default", "analytics_config", "config")',
    "injection_table": '_attr({m}, "default", "injection_table") or {{}}',
}


# ── Runtime helpers (copied into generated modules) ─────────────

_HELPERS: dict[str, tuple[tuple[str, ...], str]] = {
    "_attr": ((), '''
def _attr(mod, *names):
    for name in names:
        value = getattr(mod, name, None)
        if value is not None:
            return value
    return None
'''),
    "_get": ((), '''
def _get(obj, *keys):
    """First non-None value among ``keys`` on a mapping or an object."""
    if obj is None:
        return None
    for key in keys:
        value = obj.get(key) if isinstance(obj, Mapping) else getattr(obj, key, None)
        if value is not None:
            return value
    return None
'''),
    "_default": (("_attr",), '''
def _default(mod, *names):
    value = _attr(mod, "default", *names)
    return mod if value is None else value
'''),
    "_meta": ((), '''
def _meta(mod):
    return getattr(mod, "metadata", None)
'''),
    "_info": ((), '''
def _info(module_id, meta):
    if isinstance(meta, Mapping):
        return {"id": module_id, **meta}
    return {"id": module_id}
'''),
    "_route": (("_get", "_meta", "_default"), '''
def _route(pattern, page, meta_mod=None):
    meta = _meta(meta_mod if meta_mod is not None else page)
    return {
        "pattern": pattern,
        "require_auth": _get(meta, "require_auth"),
        "require_roles": _get(meta, "require_roles"),
        "require_features": _get(meta, "require_features"),
        "title": _get(meta, "page_title", "title"),
        "title_key": _get(meta, "page_title_key", "title_key"),
        "group": _get(meta, "page_group", "group"),
        "group_key": _get(meta, "page_group_key", "group_key"),
        "icon": _get(meta, "icon"),
        "order": _get(meta, "page_order", "order"),
        "priority": _get(meta, "page_priority", "priority"),
        "nav_hidden": _get(meta, "nav_hidden"),
        "visible": _get(meta, "visible"),
        "enabled": _get(meta, "enabled"),
        "breadcrumb": _get(meta, "breadcrumb"),
        "component": _default(page, "page", "Page"),
    }
'''),
    "_api": (("_meta",), '''
def _api(path, mod, docs=False):
    entry = {"path": path, "metadata": _meta(mod), "handlers": mod}
    if docs:
        entry["docs"] = getattr(mod, "openapi", None)
    return entry
'''),
    "_api_handler": (("_meta", "_default"), '''
def _api_handler(method, path, mod, docs=False):
    entry = {
        "method": method,
        "path": path,
        "handler": _default(mod, "handler"),
        "metadata": _meta(mod),
    }
    if docs:
        entry["docs"] = getattr(mod, "openapi", None)
    return entry
'''),
    "_subscriber": (("_get", "_meta", "_default"), '''
def _subscriber(default_id, mod):
    meta = _meta(mod)
    return {
        "id": _get(meta, "id") or default_id,
        "event": _get(meta, "event"),
        "persistent": _get(meta, "persistent"),
        "handler": _default(mod, "handle", "handler"),
    }
'''),
    "_worker": (("_get", "_meta", "_default"), '''
def _worker(default_id, mod):
    meta = _meta(mod)
    return {
        "id": _get(meta, "id") or default_id,
        "queue": _get(meta, "queue"),
        "concurrency": _get(meta, "concurrency") or 1,
        "handler": _default(mod, "handle", "handler"),
    }
'''),
    "_lazy": (("_default",), '''
def _lazy(path):
    def loader():
        return _default(import_module(path))
    return loader
'''),
    "_ce_field_sets": (("_attr", "_get"), '''
def _ce_field_sets(module_id, fields=None, entities=None):
    sets = list(_attr(fields, "default", "field_sets") or [])
    for entity in _attr(entities, "default", "entities") or []:
        entity_fields = _get(entity, "fields")
        if entity_fields:
            sets.append({"entity": _get(entity, "id"), "fields": entity_fields, "source": module_id})
    return sets
'''),
}

# Helpers that need ``Mapping`` in the generated module
_MAPPING_HELPERS = frozenset({"_get", "_info"})


class SourceBuilder:
    """Accumulates one generated module: aliases, helpers, body lines."""

    def __init__(self, title: str):
        self.title = title
        self.body: list[str] = []
        self._aliases: dict[str, str] = {}
        self._helpers: set[str] = set()

    def module(self, import_path: str) -> str:
        """Alias for an imported module (one per distinct path)."""
        alias = self._aliases.get(import_path)
        if alias is None:
            alias = f"_m{len(self._aliases)}"
            self._aliases[import_path] = alias
        return alias

    def use(self, *helpers: str) -> None:
        for name in helpers:
            if name in self._helpers:
                continue
            self._helpers.add(name)
            self.use(*_HELPERS[name][0])

    def render(self) -> str:
        lines = [GENERATED_BANNER, f"# {self.title}", ""]
        if self._helpers & _MAPPING_HELPERS:
            lines.append("from collections.abc import Mapping")
        lines.append("from importlib import import_module")

        for name in _HELPERS:
            if name in self._helpers:
                lines.append("")
                lines.extend(_HELPERS[name][1].strip("\n").splitlines())
                lines.append("")

        if self._aliases:
            lines.append("")
            for import_path, alias in self._aliases.items():
                lines.append(f"{alias} = import_module({import_path!r})")

        lines.append("")
        lines.extend(self.body)
        return "\n".join(lines).rstrip("\n") + "\n"


def _list_block(name: str, items: list[str], indent: str = "    ") -> list[str]:
    if not items:
        return [f"{name} = []"]
    return [f"{name} = [", *(f"{indent}{item}," for item in items), "]"]


def _config_expr(b: SourceBuilder, scan: ModuleScan, kind: str) -> str | None:
    entry = scan.config(kind)
    if entry is None:
        return None
    b.use("_attr")
    return CONFIG_EXPRESSIONS[kind].format(m=b.module(entry.import_path))


# ── Module registry ─────────────────────────────────────────────


def _route_expr(b: SourceBuilder, route: RouteEntry) -> str:
    b.use("_route")
    page = b.module(route.import_path)
    if route.meta_import_path:
        meta = b.module(route.meta_import_path)
        return f"_route({route.pattern!r}, {page}, {meta})"
    return f"_route({route.pattern!r}, {page})"


def _api_expr(b: SourceBuilder, api: ApiEntry) -> str:
    mod = b.module(api.import_path)
    docs = ", docs=True" if api.has_docs else ""
    if api.method:
        b.use("_api_handler")
        return f"_api_handler({api.method!r}, {api.path!r}, {mod}{docs})"
    b.use("_api")
    return f"_api({api.path!r}, {mod}{docs})"


def _widget_expr(b: SourceBuilder, widget: WidgetEntry) -> str:
    b.use("_lazy")
    return (
        f"{{\"module_id\": {widget.module_id!r}, \"key\": {widget.key!r}, "
        f"\"source\": {widget.source!r}, \"loader\": _lazy({widget.import_path!r})}}"
    )


def _field_list(key: str, items: list[str]) -> list[str]:
    return [f"        {key!r}: [", *(f"            {item}," for item in items), "        ],"]


def _module_decl(b: SourceBuilder, scan: ModuleScan, cli: bool) -> list[str]:
    lines = ["    {", f"        \"id\": {scan.id!r},"]

    if scan.info_import:
        b.use("_meta")
        lines.append(f"        \"info\": _meta({b.module(scan.info_import)}),")

    if not cli:
        if scan.frontend_routes:
            lines += _field_list("frontend_routes", [_route_expr(b, r) for r in scan.frontend_routes])
        if scan.backend_routes:
            lines += _field_list("backend_routes", [_route_expr(b, r) for r in scan.backend_routes])
        if scan.apis:
            lines += _field_list("apis", [_api_expr(b, a) for a in scan.apis])

    if scan.cli_import:
        b.use("_default")
        lines.append(f"        \"cli\": _default({b.module(scan.cli_import)}, \"cli\", \"main\"),")

    if scan.translations:
        lines.append("        \"translations\": {")
        for locale, messages in scan.translations.items():
            lines.append(f"            {locale!r}: {messages!r},")
        lines.append("        },")

    if scan.subscribers:
        b.use("_subscriber")
        lines += _field_list("subscribers", [
            f"_subscriber({s.id!r}, {b.module(s.import_path)})" for s in scan.subscribers
        ])

    if scan.workers:
        b.use("_worker")
        lines += _field_list("workers", [
            f"_worker({w.id!r}, {b.module(w.import_path)})" for w in scan.workers
        ])

    extensions = _config_expr(b, scan, "extensions")
    if extensions:
        lines.append(f"        \"entity_extensions\": {extensions},")

    b.use("_ce_field_sets")
    fields = scan.config("fields")
    entities = scan.config("custom_entities")
    args = [repr(scan.id)]
    if fields or entities:
        args.append(b.module(fields.import_path) if fields else "None")
    if entities:
        args.append(b.module(entities.import_path))
    lines.append(f"        \"custom_field_sets\": _ce_field_sets({', '.join(args)}),")

    features = _config_expr(b, scan, "features")
    if features:
        lines.append(f"        \"features\": {features},")
    custom_entities = _config_expr(b, scan, "custom_entities")
    if custom_entities:
        lines.append(f"        \"custom_entities\": {custom_entities},")

    if scan.dashboard_widgets:
        lines += _field_list("dashboard_widgets", [_widget_expr(b, w) for w in scan.dashboard_widgets])

    setup = _config_expr(b, scan, "setup")
    if setup:
        lines.append(f"        \"setup\": {setup},")

    lines.append("    },")
    return lines


def render_modules_registry(result: ScanResult, cli: bool = False) -> str:
    """The full module registry, or the CLI variant without web-only parts."""
    title = (
        "Module registry (CLI): no page routes, API handlers or injection widgets."
        if cli else "Module registry."
    )
    b = SourceBuilder(title)
    if result.modules:
        b.body.append("modules = [")
        for scan in result.modules:
            b.body.extend(_module_decl(b, scan, cli))
        b.body.append("]")
    else:
        b.body.append("modules = []")
    b.use("_info")
    b.body.append("")
    b.body.append('modules_info = [_info(m["id"], m.get("info")) for m in modules]')
    return b.render()


# ── Widgets & injection tables ──────────────────────────────────


def render_widgets(widgets: list[WidgetEntry], variable: str, title: str) -> str:
    b = SourceBuilder(title)
    b.body.extend(_list_block(variable, [_widget_expr(b, w) for w in widgets]))
    return b.render()


def render_injection_tables(result: ScanResult) -> str:
    b = SourceBuilder("Widget injection tables.")
    items = []
    for scan in result.modules:
        expr = _config_expr(b, scan, "injection_table")
        if expr:
            items.append(f"{{\"module_id\": {scan.id!r}, \"table\": {expr}}}")
    b.body.extend(_list_block("injection_tables", items))
    return b.render()


# ── Per-concern configuration registries ────────────────────────


def _config_entries(b: SourceBuilder, result: ScanResult, kind: str, field: str) -> list[str]:
    items = []
    for scan in result.modules:
        expr = _config_expr(b, scan, kind)
        if expr:
            items.append(f"{{\"module_id\": {scan.id!r}, {field!r}: {expr}}}")
    return items


def render_search(result: ScanResult) -> str:
    b = SourceBuilder("Search configuration per module.")
    b.body.extend(_list_block("_entries_raw", _config_entries(b, result, "search", "config")))
    b.body += [
        "",
        'search_module_config_entries = [e for e in _entries_raw if e["config"] is not None]',
        'search_module_configs = [e["config"] for e in search_module_config_entries]',
    ]
    return b.render()


def render_analytics(result: ScanResult) -> str:
    b = SourceBuilder("Analytics configuration per module.")
    b.body.extend(_list_block("_entries_raw", _config_entries(b, result, "analytics", "config")))
    b.body += [
        "",
        'analytics_module_config_entries = [e for e in _entries_raw if e["config"] is not None]',
        'analytics_module_configs = [e["config"] for e in analytics_module_config_entries]',
    ]
    return b.render()


def render_events(result: ScanResult) -> str:
    b = SourceBuilder("Declared events per module.")
    b.use("_get")
    b.body.extend(_list_block("_entries_raw", _config_entries(b, result, "events", "config")))
    b.body += [
        "",
        'event_module_config_entries = [e for e in _entries_raw if e["config"] is not None]',
        'event_module_configs = [e["config"] for e in event_module_config_entries]',
        'all_events = [event for config in event_module_configs for event in (_get(config, "events") or [])]',
        "",
        '_declared_event_ids = {_get(event, "id") for event in all_events}',
        "",
        "",
        "def is_event_declared(event_id):",
        "    return event_id in _declared_event_ids",
    ]
    return b.render()


def render_notifications(result: ScanResult) -> str:
    b = SourceBuilder("Notification types per module.")
    b.use("_get")
    b.body.extend(_list_block(
        "notification_type_entries", _config_entries(b, result, "notifications", "types"),
    ))
    b.body += [
        "",
        'notification_types = [t for entry in notification_type_entries for t in entry["types"]]',
        "",
        "",
        "def get_notification_types():",
        "    return notification_types",
        "",
        "",
        "def get_notification_type(type_):",
        '    return next((t for t in notification_types if _get(t, "type") == type_), None)',
    ]
    return b.render()


def render_ai_tools(result: ScanResult) -> str:
    b = SourceBuilder("AI tools per module.")
    b.body.extend(_list_block("_entries_raw", _config_entries(b, result, "ai_tools", "tools")))
    b.body += [
        "",
        'ai_tool_config_entries = [e for e in _entries_raw if e["tools"]]',
        'all_ai_tools = [tool for entry in ai_tool_config_entries for tool in entry["tools"]]',
    ]
    return b.render()


# ── Public API ──────────────────────────────────────────────────


def emit_artifacts(result: ScanResult) -> list[GeneratedFile]:
    """Render every artifact for a scan, in a fixed order."""
    files = [
        GeneratedFile(
            path=MODULES_FILE,
            content=render_modules_registry(result),
            reason="module registry",
        ),
        GeneratedFile(
            path=MODULES_CLI_FILE,
            content=render_modules_registry(result, cli=True),
            reason="module registry for CLI contexts",
        ),
        GeneratedFile(
            path=DASHBOARD_WIDGETS_FILE,
            content=render_widgets(
                result.dashboard_widgets, "dashboard_widget_entries", "Dashboard widgets.",
            ),
            reason="dashboard widgets",
        ),
        GeneratedFile(
            path=INJECTION_WIDGETS_FILE,
            content=render_widgets(
                result.injection_widgets, "injection_widget_entries", "Injection widgets.",
            ),
            reason="injection widgets",
        ),
        GeneratedFile(
            path=INJECTION_TABLES_FILE,
            content=render_injection_tables(result),
            reason="injection tables",
        ),
        GeneratedFile(path=SEARCH_FILE, content=render_search(result), reason="search configs"),
        GeneratedFile(
            path=NOTIFICATIONS_FILE,
            content=render_notifications(result),
            reason="notification types",
        ),
        GeneratedFile(path=AI_TOOLS_FILE, content=render_ai_tools(result), reason="AI tools"),
        GeneratedFile(path=EVENTS_FILE, content=render_events(result), reason="declared events"),
        GeneratedFile(
            path=ANALYTICS_FILE,
            content=render_analytics(result),
            reason="analytics configs",
        ),
    ]
    logger.debug("Rendered %d artifact(s) for %d module(s)", len(files), len(result.modules))
    return files
