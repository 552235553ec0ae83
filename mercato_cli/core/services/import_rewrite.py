"""
Import rewriting for ejected modules.

A module copied out of a package keeps working only if its relative
imports still point somewhere real.  Relative imports that stay inside
the module are fine as they are.  Relative imports that reach into a
*sibling* module (``from ...sales.services import x``) must become
absolute package imports, because the sibling stays in the package::

    from ...sales.services import x
    →  from mercato.core.modules.sales.services import x

Recognised forms:
    - ``from <dots><path> import …``
    - ``import_module("<dots><path>", …)``

Other dynamic-loading idioms cannot be rewritten reliably and are
reported as warnings instead.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from pathlib import Path

logger = logging.getLogger(__name__)

_FROM_RE = re.compile(r"(?m)^([ \t]*from[ \t]+)(\.+)([\w.]*)(?=[ \t]+import\b)")
_IMPORT_MODULE_RE = re.compile(r"(\bimport_module\(\s*)(['\"])(\.+)([\w.]*)\2")

# (pattern, description) pairs flagged for manual review
_UNSUPPORTED_PATTERNS = (
    (re.compile(r"\b__import__\s*\("), "__import__() call"),
    (re.compile(r"\bimport_module\((?!\s*['\"])"), "import_module() with a non-literal name"),
    (re.compile(r"\bspec_from_file_location\s*\("), "spec_from_file_location() call"),
)


@dataclass
class RewriteReport:
    """What a rewrite pass changed and what it could not handle."""

    rewritten: dict[str, int] = field(default_factory=dict)
    warnings: list[str] = field(default_factory=list)

    @property
    def total(self) -> int:
        return sum(self.rewritten.values())

    def to_dict(self) -> dict:
        return {"rewritten": self.rewritten, "warnings": self.warnings}


def _line_of(text: str, pos: int) -> int:
    return text.count("\n", 0, pos) + 1


def resolve_relative_target(source_file: Path, dots: int, dotted: str) -> Path | None:
    """The file or package a relative import names, or None if nothing is there.

    One dot is the package containing ``source_file``; each extra dot
    goes one package up.  Returned paths have no ``.py`` suffix.
    """
    base = source_file.parent
    for _ in range(dots - 1):
        base = base.parent
    if not dotted:
        return base if base.is_dir() else None

    target = base.joinpath(*dotted.split("."))
    if target.with_name(target.name + ".py").is_file() or target.is_dir():
        return target
    return None


def rewrite_specifier(
    source_file: Path,
    dots: int,
    dotted: str,
    modules_root: Path,
    module_id: str,
    package_name: str,
) -> str | None:
    """Absolute replacement for a cross-module relative import, else None."""
    target = resolve_relative_target(source_file, dots, dotted)
    if target is None:
        return None
    try:
        rel = target.resolve().relative_to(modules_root.resolve())
    except ValueError:
        return None
    if not rel.parts or rel.parts[0] == module_id:
        return None
    return f"{package_name}.modules." + ".".join(rel.parts)


def rewrite_source(
    text: str,
    source_file: Path,
    modules_root: Path,
    module_id: str,
    package_name: str,
    display_name: str = "",
) -> tuple[str, int, list[str]]:
    """Rewrite one file's text.

    Args:
        text: Source of the copied file.
        source_file: Where the file lives in the *package* tree; relative
            imports are resolved from here.
        modules_root: The package's modules root.
        module_id: The module being ejected.
        package_name: Package the sibling modules stay in.
        display_name: Name used in warnings.

    Returns:
        ``(new_text, replacements, warnings)``.
    """
    count = 0
    name = display_name or source_file.name

    def _from_repl(match: re.Match) -> str:
        nonlocal count
        new = rewrite_specifier(
            source_file, len(match.group(2)), match.group(3),
            modules_root, module_id, package_name,
        )
        if new is None:
            return match.group(0)
        count += 1
        return f"{match.group(1)}{new}"

    def _import_module_repl(match: re.Match) -> str:
        nonlocal count
        new = rewrite_specifier(
            source_file, len(match.group(3)), match.group(4),
            modules_root, module_id, package_name,
        )
        if new is None:
            return match.group(0)
        count += 1
        quote = match.group(2)
        return f"{match.group(1)}{quote}{new}{quote}"

    updated = _FROM_RE.sub(_from_repl, text)
    updated = _IMPORT_MODULE_RE.sub(_import_module_repl, updated)

    warnings = []
    for pattern, description in _UNSUPPORTED_PATTERNS:
        for match in pattern.finditer(updated):
            warnings.append(
                f"{name}:{_line_of(updated, match.start())}: unsupported dynamic import "
                f"pattern ({description}); review it manually"
            )
    return updated, count, warnings


def rewrite_cross_module_imports(
    staged_dir: Path,
    pkg_base: Path,
    module_id: str,
    package_name: str,
) -> RewriteReport:
    """Rewrite every ``.py`` file of a staged copy in place.

    ``staged_dir`` mirrors ``pkg_base``; each file's package counterpart
    is the anchor for its relative imports.
    """
    modules_root = pkg_base.parent
    report = RewriteReport()

    for staged_file in sorted(staged_dir.rglob("*.py")):
        rel = staged_file.relative_to(staged_dir)
        source_file = pkg_base / rel
        if not source_file.is_file():
            continue

        text = staged_file.read_text(encoding="utf-8")
        updated, count, warnings = rewrite_source(
            text, source_file, modules_root, module_id, package_name,
            display_name=rel.as_posix(),
        )
        report.warnings.extend(warnings)
        if count:
            staged_file.write_text(updated, encoding="utf-8")
            report.rewritten[rel.as_posix()] = count
            logger.debug("Rewrote %d import(s) in %s", count, rel.as_posix())

    for warning in report.warnings:
        logger.warning(warning)
    return report
