"""
Module metadata — read ``metadata`` from a module's ``__init__.py``.

The index is parsed, never imported.  Both spellings are accepted::

    metadata = {"title": "Customers", "ejectable": True, "requires": ["auth"]}
    metadata = ModuleInfo(title="Customers", ejectable=True)

Values that are not literals are skipped individually, so a computed
``description`` does not hide a literal ``requires`` list.
"""

from __future__ import annotations

import ast
import logging
from pathlib import Path
from typing import Any

from mercato_cli.core.models.module import ModuleMetadata

logger = logging.getLogger(__name__)

INDEX_FILE = "__init__.py"


def _literal(node: ast.expr) -> tuple[bool, Any]:
    try:
        return True, ast.literal_eval(node)
    except (ValueError, TypeError, SyntaxError, RecursionError):
        return False, None


def _metadata_items(node: ast.expr) -> dict[str, Any]:
    items: dict[str, Any] = {}
    if isinstance(node, ast.Dict):
        for key, value in zip(node.keys, node.values):
            if not (isinstance(key, ast.Constant) and isinstance(key.value, str)):
                continue
            ok, literal = _literal(value)
            if ok:
                items[key.value] = literal
    elif isinstance(node, ast.Call):
        for kw in node.keywords:
            if kw.arg is None:
                continue
            ok, literal = _literal(kw.value)
            if ok:
                items[kw.arg] = literal
    return items


def parse_module_metadata(source: str, filename: str = "<index>") -> ModuleMetadata:
    """Extract metadata from index source text.

    Raises:
        SyntaxError: If the source is not valid Python.
    """
    tree = ast.parse(source, filename=filename)
    raw: dict[str, Any] = {}
    for node in tree.body:
        if isinstance(node, ast.Assign):
            targets = node.targets
        elif isinstance(node, ast.AnnAssign) and node.value is not None:
            targets = [node.target]
        else:
            continue
        if any(isinstance(t, ast.Name) and t.id == "metadata" for t in targets):
            raw = _metadata_items(node.value)

    requires = raw.get("requires")
    return ModuleMetadata(
        title=raw["title"] if isinstance(raw.get("title"), str) else None,
        description=raw["description"] if isinstance(raw.get("description"), str) else None,
        ejectable=raw.get("ejectable") is True,
        requires=[r for r in requires if isinstance(r, str)]
        if isinstance(requires, (list, tuple)) else [],
        raw=raw,
    )


def read_module_metadata(index_path: Path) -> ModuleMetadata:
    """Read metadata from an index file; a missing file yields empty metadata.

    Raises:
        SyntaxError: If the index is not valid Python.
        OSError: If the index exists but cannot be read.
    """
    if not index_path.is_file():
        return ModuleMetadata()
    return parse_module_metadata(index_path.read_text(encoding="utf-8"), str(index_path))
