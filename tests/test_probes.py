"""
Tests for capability probes and static metadata reading.
"""

import asyncio
import sys
from pathlib import Path

import pytest

from mercato_cli.core.services.metadata import parse_module_metadata, read_module_metadata
from mercato_cli.core.services.probes import module_has_export, static_export

from tests.conftest import write


class TestStaticExport:
    """Decisions made without running the file."""

    @pytest.mark.parametrize("source", [
        "openapi = {}\n",
        "def openapi(): ...\n",
        "class openapi: ...\n",
        "from .docs import spec as openapi\n",
        "openapi: dict = {}\n",
    ])
    def test_found(self, tmp_path: Path, source: str):
        path = write(tmp_path / "route.py", source)
        assert static_export(path, "openapi") is True

    def test_absent(self, tmp_path: Path):
        path = write(tmp_path / "route.py", "def get(request): ...\n")
        assert static_export(path, "openapi") is False

    def test_required_key(self, tmp_path: Path):
        with_queue = write(tmp_path / "a.py", 'metadata = {"queue": "q"}\n')
        without = write(tmp_path / "b.py", 'metadata = {"id": "x"}\n')
        call = write(tmp_path / "c.py", 'metadata = WorkerMeta(queue="q")\n')
        assert static_export(with_queue, "metadata", "queue") is True
        assert static_export(without, "metadata", "queue") is False
        assert static_export(call, "metadata", "queue") is True

    def test_undecidable(self, tmp_path: Path):
        star = write(tmp_path / "a.py", "from somewhere import *\n")
        computed = write(tmp_path / "b.py", "metadata = build()\n")
        getattr_mod = write(tmp_path / "c.py", "def __getattr__(name): ...\n")
        assert static_export(star, "openapi") is None
        assert static_export(computed, "metadata", "queue") is None
        assert static_export(getattr_mod, "openapi") is None

    def test_syntax_error_is_false(self, tmp_path: Path):
        path = write(tmp_path / "a.py", "def broken(:\n")
        assert static_export(path, "openapi") is False


class TestDynamicProbe:
    """Fallback that loads the file."""

    def test_star_import_resolved_by_loading(self, workspace, tmp_path: Path):
        path = write(tmp_path / "route.py", "from json import *\n")
        with workspace.context() as ctx:
            assert asyncio.run(module_has_export(ctx, path, "dumps")) is True
            assert asyncio.run(module_has_export(ctx, path, "openapi")) is False

    def test_results_cached_and_modules_unloaded(self, workspace, tmp_path: Path):
        path = write(
            tmp_path / "worker.py",
            'def build():\n    return {"queue": "q"}\n\n\nmetadata = build()\n',
        )
        ctx = workspace.context()
        try:
            assert asyncio.run(module_has_export(ctx, path, "metadata", "queue")) is True
            assert (str(path), "metadata:queue") in ctx.probe_cache
            assert len(ctx.loaded_modules) == 1
            loaded = ctx.loaded_modules[0]
            assert loaded in sys.modules

            # Cached: no second load
            assert asyncio.run(module_has_export(ctx, path, "metadata", "queue")) is True
            assert len(ctx.loaded_modules) == 1
        finally:
            ctx.close()
        assert loaded not in sys.modules
        assert ctx.probe_cache == {}

    def test_failing_file_is_false(self, workspace, tmp_path: Path):
        path = write(tmp_path / "worker.py", "raise RuntimeError('boom')\nmetadata = make()\n")
        with workspace.context() as ctx:
            assert asyncio.run(module_has_export(ctx, path, "metadata", "queue")) is False

    def test_no_bytecode_written(self, workspace, tmp_path: Path):
        path = write(tmp_path / "route.py", "from json import *\n")
        with workspace.context() as ctx:
            asyncio.run(module_has_export(ctx, path, "dumps"))
        assert not (tmp_path / "__pycache__").exists()


class TestModuleMetadata:
    def test_dict_literal(self):
        meta = parse_module_metadata(
            'metadata = {"title": "Sales", "description": "Orders", '
            '"ejectable": True, "requires": ["customers", "catalog"]}\n'
        )
        assert meta.title == "Sales"
        assert meta.description == "Orders"
        assert meta.ejectable is True
        assert meta.requires == ["customers", "catalog"]

    def test_call_form(self):
        meta = parse_module_metadata('metadata = ModuleInfo(title="Sales", ejectable=True)\n')
        assert meta.title == "Sales"
        assert meta.ejectable is True

    def test_non_literal_values_skipped(self):
        meta = parse_module_metadata(
            'metadata = {"title": _("Sales"), "requires": ["auth"]}\n'
        )
        assert meta.title is None
        assert meta.requires == ["auth"]

    def test_ejectable_must_be_true(self):
        assert parse_module_metadata('metadata = {"ejectable": "yes"}\n').ejectable is False

    def test_missing_file(self, tmp_path: Path):
        assert read_module_metadata(tmp_path / "__init__.py").title is None

    def test_syntax_error(self):
        with pytest.raises(SyntaxError):
            parse_module_metadata("metadata = {\n")
