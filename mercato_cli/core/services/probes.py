"""
Capability probes — does a module file export a given name?

Two phases:

1. Static: parse the file with ``ast`` and look for a top-level
   definition, assignment or import of the name.  This answers almost
   every case without running plugin code.
2. Dynamic: only when the static pass cannot decide (star imports,
   a module-level ``__getattr__``, a ``metadata`` value that is not a
   literal), load the file once and inspect it.  Dynamic probes are
   awaited one at a time and cached on the run context.

Any failure while loading means "not exported".
"""

from __future__ import annotations

import ast
import asyncio
import importlib.util
import logging
import sys
from collections.abc import Mapping
from pathlib import Path
from typing import Any

from mercato_cli.core.context import GenerationContext

logger = logging.getLogger(__name__)

UNKNOWN = None


def _literal_keys(node: ast.expr) -> set[str] | None:
    """String keys of a dict literal or keyword names of a call, else None."""
    if isinstance(node, ast.Dict):
        keys: set[str] = set()
        for key in node.keys:
            if key is None:
                return None  # ``**spread`` — cannot tell statically
            if isinstance(key, ast.Constant) and isinstance(key.value, str):
                keys.add(key.value)
        return keys
    if isinstance(node, ast.Call):
        # Only keyword-built values (``dict(queue=...)``) are readable
        if node.args or not node.keywords or any(kw.arg is None for kw in node.keywords):
            return None
        return {kw.arg for kw in node.keywords if kw.arg}
    return None


def static_export(path: Path, name: str, required_key: str | None = None) -> bool | None:
    """Statically decide whether ``path`` exports ``name``.

    Args:
        path: Python source file.
        name: Top-level name to look for.
        required_key: When set, the exported value must also be a mapping
            declaring this key (e.g. ``metadata`` with a ``queue``).

    Returns:
        True / False when decidable, None when only loading the file can tell.
    """
    try:
        tree = ast.parse(path.read_text(encoding="utf-8"), filename=str(path))
    except (OSError, UnicodeDecodeError, SyntaxError, ValueError) as e:
        logger.debug("Static probe cannot read %s: %s", path, e)
        return False

    undecidable = False
    for node in tree.body:
        if isinstance(node, (ast.FunctionDef, ast.AsyncFunctionDef, ast.ClassDef)):
            if node.name == "__getattr__":
                undecidable = True
            elif node.name == name:
                return True if required_key is None else False
        elif isinstance(node, (ast.Assign, ast.AnnAssign)):
            targets = node.targets if isinstance(node, ast.Assign) else [node.target]
            if not any(isinstance(t, ast.Name) and t.id == name for t in targets):
                continue
            if required_key is None:
                return True
            if node.value is None:
                return UNKNOWN
            keys = _literal_keys(node.value)
            if keys is None:
                return UNKNOWN
            return required_key in keys
        elif isinstance(node, ast.ImportFrom):
            for alias in node.names:
                if alias.name == "*":
                    undecidable = True
                elif (alias.asname or alias.name) == name:
                    return True if required_key is None else UNKNOWN
        elif isinstance(node, ast.Import):
            for alias in node.names:
                if (alias.asname or alias.name.split(".")[0]) == name:
                    return True if required_key is None else False

    return UNKNOWN if undecidable else False


def _has_key(value: Any, key: str) -> bool:
    if isinstance(value, Mapping):
        return key in value
    return hasattr(value, key)


def _load_and_check(
    ctx: GenerationContext,
    path: Path,
    name: str,
    required_key: str | None,
) -> bool:
    module_name = f"_mercato_probe_{len(ctx.loaded_modules)}"
    spec = importlib.util.spec_from_file_location(module_name, path)
    if spec is None or spec.loader is None:
        return False
    module = importlib.util.module_from_spec(spec)
    sys.modules[module_name] = module
    ctx.loaded_modules.append(module_name)

    # Bytecode caches would land inside tracked module roots
    previous = sys.dont_write_bytecode
    sys.dont_write_bytecode = True
    try:
        spec.loader.exec_module(module)
    except Exception as e:
        logger.debug("Dynamic probe of %s failed: %s", path, e)
        return False
    finally:
        sys.dont_write_bytecode = previous

    if not hasattr(module, name):
        return False
    if required_key is None:
        return True
    return _has_key(getattr(module, name), required_key)


async def module_has_export(
    ctx: GenerationContext,
    path: Path,
    name: str,
    required_key: str | None = None,
) -> bool:
    """Two-phase export check, cached per run."""
    decided = static_export(path, name, required_key)
    if decided is not None:
        return decided

    key = (str(path), f"{name}:{required_key or ''}")
    if key in ctx.probe_cache:
        return ctx.probe_cache[key]

    logger.debug("Dynamic probe: %s exports %s?", path, name)
    result = await asyncio.to_thread(_load_and_check, ctx, path, name, required_key)
    ctx.probe_cache[key] = result
    return result
