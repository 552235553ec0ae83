"""
Tests for the convention scanner — discovery, override precedence, ordering.
"""

import asyncio
import json

import pytest

from mercato_cli.core.models.module import ModuleEntry
from mercato_cli.core.services.scanner import (
    SINGLE_FILE_CONVENTIONS,
    is_dynamic_page,
    is_source_file,
    scan_modules,
)

from tests.conftest import write


@pytest.fixture
def customers(workspace):
    """A package module exercising most conventions, plus app overrides."""
    pkg = workspace.pkg_module("customers")
    write(pkg / "__init__.py", 'metadata = {"title": "Customers", "requires": ["auth"], "ejectable": True}\n')

    write(pkg / "frontend" / "customers" / "page.py", "def page(): ...\n")
    write(pkg / "frontend" / "customers" / "page_meta.py", 'metadata = {"title": "All"}\n')
    write(pkg / "frontend" / "customers" / "create" / "page.py", "def page(): ...\n")
    write(pkg / "frontend" / "customers" / "[id]" / "page.py", "def page(): ...\n")
    write(pkg / "frontend" / "login.py", "def page(): ...\n")
    write(pkg / "frontend" / "login_meta.py", "metadata = {}\n")

    write(pkg / "backend" / "page.py", "def page(): ...\n")
    write(pkg / "backend" / "list.py", "def page(): ...\n")

    write(pkg / "api" / "route.py", "def get(request): ...\n")
    write(pkg / "api" / "items" / "route.py", "def get(request): ...\nopenapi = {'summary': 'items'}\n")
    write(pkg / "api" / "items" / "[id]" / "route.py", "def get(request): ...\n")
    write(pkg / "api" / "ping.py", "def get(request): ...\n")
    write(pkg / "api" / "get" / "stats.py", "def handler(request): ...\n")
    write(pkg / "api" / "__tests__" / "route.py", "")

    write(pkg / "subscribers" / "created.py", 'metadata = {"event": "customers.created"}\n')
    write(pkg / "subscribers" / "nested" / "updated.py", "")
    write(pkg / "subscribers" / "_helpers.py", "")
    write(pkg / "subscribers" / "test_created.py", "")

    write(pkg / "workers" / "sync.py", 'metadata = {"queue": "sync", "concurrency": 2}\n')
    write(pkg / "workers" / "no_queue.py", 'metadata = {"id": "x"}\n')

    write(pkg / "i18n" / "en.json", json.dumps({"a": "pkg", "b": "pkg"}))
    write(pkg / "i18n" / "pl.json", json.dumps({"a": "pl"}))

    write(pkg / "acl.py", "features = ['customers.view']\n")
    write(pkg / "search.py", "search_config = {}\n")
    write(pkg / "cli.py", "def cli(): ...\n")
    write(pkg / "widgets" / "dashboard" / "stats" / "widget.py", "")
    write(pkg / "widgets" / "injection" / "banner" / "widget.py", "")

    app = workspace.app_module("customers")
    write(app / "frontend" / "customers" / "page.py", "def page(): ...\n")
    write(app / "i18n" / "en.json", json.dumps({"b": "app"}))
    write(app / "widgets" / "dashboard" / "stats" / "widget.py", "")
    return workspace


def _scan(workspace, entries):
    with workspace.context() as ctx:
        return asyncio.run(scan_modules(ctx, entries))


class TestFileRules:
    def test_source_file(self):
        assert is_source_file("created.py")
        assert not is_source_file("_private.py")
        assert not is_source_file("__init__.py")
        assert not is_source_file("test_created.py")
        assert not is_source_file("created_test.py")
        assert not is_source_file("notes.txt")

    def test_dynamic_page(self):
        assert is_dynamic_page("[id]/page.py")
        assert is_dynamic_page("items/[id]/page.py")
        assert not is_dynamic_page("items/create/page.py")


class TestRoutes:
    """Frontend and backend page discovery."""

    def test_frontend_order_static_first(self, customers):
        scan = _scan(customers, [ModuleEntry(id="customers")]).modules[0]
        assert [r.pattern for r in scan.frontend_routes] == [
            "/customers/create",
            "/customers",
            "/customers/[id]",
            "/login",
        ]

    def test_app_override_wins(self, customers):
        scan = _scan(customers, [ModuleEntry(id="customers")]).modules[0]
        route = next(r for r in scan.frontend_routes if r.pattern == "/customers")
        assert route.source == "app"
        assert route.import_path == "modules.customers.frontend.customers.page"
        # The sidecar only exists next to the package copy
        assert route.meta_import_path is None

    def test_package_route_imports(self, customers):
        scan = _scan(customers, [ModuleEntry(id="customers")]).modules[0]
        route = next(r for r in scan.frontend_routes if r.pattern == "/customers/[id]")
        assert route.source == "package"
        assert route.import_path == "mercato.core.modules.customers.frontend.customers.[id].page"

    def test_legacy_page_meta(self, customers):
        scan = _scan(customers, [ModuleEntry(id="customers")]).modules[0]
        login = next(r for r in scan.frontend_routes if r.pattern == "/login")
        assert login.meta_import_path == "mercato.core.modules.customers.frontend.login_meta"

    def test_backend_routes(self, customers):
        scan = _scan(customers, [ModuleEntry(id="customers")]).modules[0]
        assert [r.pattern for r in scan.backend_routes] == [
            "/backend/customers",
            "/backend/customers/list",
        ]


class TestApis:
    def test_api_paths(self, customers):
        scan = _scan(customers, [ModuleEntry(id="customers")]).modules[0]
        assert [(a.method, a.path) for a in scan.apis] == [
            (None, "/customers/items"),
            (None, "/customers"),
            (None, "/customers/items/[id]"),
            (None, "/customers/ping"),
            ("GET", "/customers/stats"),
        ]

    def test_docs_probe(self, customers):
        scan = _scan(customers, [ModuleEntry(id="customers")]).modules[0]
        docs = {a.path: a.has_docs for a in scan.apis}
        assert docs["/customers/items"] is True
        assert docs["/customers"] is False

    def test_per_verb_import_path(self, customers):
        scan = _scan(customers, [ModuleEntry(id="customers")]).modules[0]
        stats = next(a for a in scan.apis if a.method == "GET")
        assert stats.import_path == "mercato.core.modules.customers.api.get.stats"


class TestOtherConventions:
    def test_subscribers(self, customers):
        scan = _scan(customers, [ModuleEntry(id="customers")]).modules[0]
        assert [s.id for s in scan.subscribers] == [
            "customers:created",
            "customers:nested:updated",
        ]

    def test_workers_need_queue(self, customers):
        scan = _scan(customers, [ModuleEntry(id="customers")]).modules[0]
        assert [w.id for w in scan.workers] == ["customers:workers:sync"]

    def test_translations_merge(self, customers):
        scan = _scan(customers, [ModuleEntry(id="customers")]).modules[0]
        assert scan.translations == {"en": {"a": "pkg", "b": "app"}, "pl": {"a": "pl"}}

    def test_single_files(self, customers):
        scan = _scan(customers, [ModuleEntry(id="customers")]).modules[0]
        assert sorted(scan.configs) == ["features", "search"]
        assert scan.config("features").import_path == "mercato.core.modules.customers.acl"
        assert scan.cli_import == "mercato.core.modules.customers.cli"

    def test_metadata(self, customers):
        result = _scan(customers, [ModuleEntry(id="customers")])
        scan = result.modules[0]
        assert scan.info_import == "mercato.core.modules.customers"
        assert scan.metadata.title == "Customers"
        assert result.requires_by_module == {"customers": ["auth"]}

    def test_widgets_prefer_app(self, customers):
        result = _scan(customers, [ModuleEntry(id="customers")])
        widgets = result.dashboard_widgets
        assert [(w.key, w.source) for w in widgets] == [("customers:stats:widget", "app")]
        assert [w.key for w in result.injection_widgets] == ["customers:banner:widget"]


class TestOverridePrecedence:
    """An app copy shadows the package copy file by file, in every convention."""

    @pytest.fixture
    def layered(self, workspace):
        pkg = workspace.pkg_module("orders")
        app = workspace.app_module("orders")
        for base in (pkg, app):
            write(base / "api" / "items" / "route.py", "def get(request): ...\n")
            write(base / "api" / "post" / "import.py", "def handler(request): ...\n")
            write(base / "subscribers" / "paid.py", "")
            write(base / "workers" / "invoice.py", 'metadata = {"queue": "invoices"}\n')
            write(base / "cli.py", "def cli(): ...\n")
        # Package-only files stay package-sourced next to the overrides
        write(pkg / "api" / "post" / "cancel.py", "def handler(request): ...\n")
        write(pkg / "subscribers" / "refunded.py", "")
        return workspace

    def _orders(self, workspace):
        return _scan(workspace, [ModuleEntry(id="orders")]).modules[0]

    def test_route_file(self, layered):
        api = next(a for a in self._orders(layered).apis if a.path == "/orders/items")
        assert api.source == "app"
        assert api.import_path == "modules.orders.api.items.route"

    def test_per_verb_files(self, layered):
        posts = {a.path: a for a in self._orders(layered).apis if a.method == "POST"}
        assert posts["/orders/import"].source == "app"
        assert posts["/orders/import"].import_path == "modules.orders.api.post.import"
        assert posts["/orders/cancel"].source == "package"
        assert posts["/orders/cancel"].import_path == "mercato.core.modules.orders.api.post.cancel"

    def test_subscribers(self, layered):
        subs = {s.id: s for s in self._orders(layered).subscribers}
        assert subs["orders:paid"].import_path == "modules.orders.subscribers.paid"
        assert subs["orders:refunded"].import_path == "mercato.core.modules.orders.subscribers.refunded"

    def test_workers(self, layered):
        (worker,) = self._orders(layered).workers
        assert worker.source == "app"
        assert worker.import_path == "modules.orders.workers.invoice"

    def test_app_worker_without_queue_shadows_package(self, layered):
        write(layered.app_module("orders") / "workers" / "invoice.py", 'metadata = {"id": "x"}\n')
        assert self._orders(layered).workers == []

    def test_cli(self, layered):
        assert self._orders(layered).cli_import == "modules.orders.cli"

    @pytest.mark.parametrize("kind, parts", SINGLE_FILE_CONVENTIONS)
    def test_single_file(self, workspace, kind, parts):
        write(workspace.pkg_module("orders").joinpath(*parts), "")
        write(workspace.app_module("orders").joinpath(*parts), "")
        entry = self._orders(workspace).config(kind)
        assert entry.source == "app"
        assert entry.import_path == "modules.orders." + ".".join(parts)[:-3]

    @pytest.mark.parametrize("kind, parts", SINGLE_FILE_CONVENTIONS)
    def test_single_file_package_only(self, workspace, kind, parts):
        write(workspace.pkg_module("orders").joinpath(*parts), "")
        entry = self._orders(workspace).config(kind)
        assert entry.source == "package"
        assert entry.import_path == "mercato.core.modules.orders." + ".".join(parts)[:-3]


class TestScanRun:
    def test_modules_sorted_by_id(self, workspace):
        workspace.pkg_module("zeta")
        workspace.pkg_module("alpha")
        result = _scan(workspace, [ModuleEntry(id="zeta"), ModuleEntry(id="alpha")])
        assert [m.id for m in result.modules] == ["alpha", "zeta"]
        assert result.enabled_ids == ["zeta", "alpha"]

    def test_tracked_roots_cover_both_layers(self, workspace):
        workspace.pkg_module("alpha")
        result = _scan(workspace, [ModuleEntry(id="alpha")])
        assert workspace.app / "src" / "modules" / "alpha" in result.tracked_roots
        assert workspace.root / "packages" / "core" / "src" / "modules" / "alpha" in result.tracked_roots

    def test_app_module(self, workspace):
        app = workspace.app_module("mine")
        write(app / "frontend" / "mine" / "page.py", "")
        result = _scan(workspace, [ModuleEntry(id="mine", from_="@app")])
        route = result.modules[0].frontend_routes[0]
        assert route.source == "app"
        assert route.import_path == "modules.mine.frontend.mine.page"

    def test_bad_json_is_isolated(self, workspace):
        pkg = workspace.pkg_module("alpha")
        write(pkg / "i18n" / "en.json", "{not json")
        write(pkg / "i18n" / "de.json", '{"ok": "ja"}')
        write(pkg / "subscribers" / "created.py", "")
        scan = _scan(workspace, [ModuleEntry(id="alpha")]).modules[0]
        assert scan.translations == {"de": {"ok": "ja"}}
        assert [s.id for s in scan.subscribers] == ["alpha:created"]
        assert len(scan.errors) == 1
        assert scan.errors[0].startswith("error:")
        assert "en.json" in scan.errors[0]

    def test_broken_index_is_isolated(self, workspace):
        pkg = workspace.pkg_module("alpha")
        write(pkg / "__init__.py", "metadata = {\n")
        write(pkg / "acl.py", "features = []\n")
        result = _scan(workspace, [ModuleEntry(id="alpha")])
        scan = result.modules[0]
        assert scan.config("features") is not None
        assert scan.requires == []
        assert result.error_markers == scan.errors
        assert len(scan.errors) == 1
