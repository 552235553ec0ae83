"""
Module configuration loader — reads the enabled-module list.

The primary format is a versioned YAML file (``src/modules.yml``)
validated against the ``ModulesConfig`` Pydantic model.  Older apps
keep their list in ``src/modules.py`` as a literal::

    enabled_modules = [
        {"id": "customers"},
        {"id": "onboarding", "from": "mercato.onboarding"},
    ]

That file is never imported.  It is read through a compatibility
shim: the literal is located with ``ast`` and, when the file does not
even parse, picked apart with a regex as a last resort.

Edits (eject) always go through the model: load, mutate one entry,
serialize deterministically.
"""

from __future__ import annotations

import ast
import logging
import re
import tempfile
from pathlib import Path
from typing import Any

import yaml

from mercato_cli.core.errors import ConfigError, ConfigNotFound
from mercato_cli.core.models.module import (
    CONFIG_VERSION,
    ModuleEntry,
    ModulesConfig,
)
from mercato_cli.core.models.paths import ResolverSettings

logger = logging.getLogger(__name__)

SUPPORTED_VERSIONS = frozenset({CONFIG_VERSION})

LEGACY_VARIABLE = "enabled_modules"

_LEGACY_START_RE = re.compile(
    rf"^{LEGACY_VARIABLE}\b[^=\n]*=\s*\[", re.MULTILINE,
)
_LEGACY_OBJECT_RE = re.compile(
    r"""\{\s*['"]id['"]\s*:\s*['"]([^'"]+)['"]\s*"""
    r"""(?:,\s*['"]from['"]\s*:\s*['"]([^'"]+)['"]\s*)?,?\s*\}""",
)


# ── Locating the file ───────────────────────────────────────────


def find_modules_config(app_dir: Path, settings: ResolverSettings | None = None) -> Path | None:
    """Return the module configuration file for an app, or None.

    The YAML file wins over the legacy Python file when both exist.
    """
    settings = settings or ResolverSettings()
    for rel in (settings.modules_config, settings.legacy_modules_config):
        candidate = app_dir / rel
        if candidate.is_file():
            return candidate
    return None


# ── Parsing ─────────────────────────────────────────────────────


def parse_yaml_config(text: str, path: Path | None = None) -> ModulesConfig:
    """Parse the versioned YAML format."""
    where = path or "<string>"
    try:
        data = yaml.safe_load(text)
    except yaml.YAMLError as e:
        raise ConfigError(f"Invalid YAML in {where}: {e}") from e

    if data is None:
        data = {}
    if isinstance(data, list):
        # Bare list of entries: treat as version 1
        data = {"version": CONFIG_VERSION, "modules": data}
    if not isinstance(data, dict):
        raise ConfigError(f"Expected a YAML mapping in {where}, got {type(data).__name__}")

    version = data.get("version", CONFIG_VERSION)
    if version not in SUPPORTED_VERSIONS:
        raise ConfigError(
            f"Unsupported module configuration version {version!r} in {where} "
            f"(supported: {', '.join(str(v) for v in sorted(SUPPORTED_VERSIONS))})"
        )

    try:
        config = ModulesConfig.model_validate(
            {"version": version, "modules": data.get("modules") or []}
        )
    except Exception as e:
        raise ConfigError(f"Invalid module configuration in {where}: {e}") from e

    config.source_format = "yaml"
    config.path = path
    return config


def _legacy_literal_node(text: str) -> ast.expr | None:
    """Find the value node assigned to ``enabled_modules``."""
    tree = ast.parse(text)
    for node in tree.body:
        if isinstance(node, ast.Assign):
            targets = node.targets
        elif isinstance(node, ast.AnnAssign) and node.value is not None:
            targets = [node.target]
        else:
            continue
        for target in targets:
            if isinstance(target, ast.Name) and target.id == LEGACY_VARIABLE:
                return node.value
    return None


def _parse_legacy_regex(text: str) -> list[dict[str, Any]]:
    """Last-resort parse for files that are not valid Python."""
    start = _LEGACY_START_RE.search(text)
    if not start:
        return []
    records: list[dict[str, Any]] = []
    for match in _LEGACY_OBJECT_RE.finditer(text, start.end()):
        record: dict[str, Any] = {"id": match.group(1)}
        if match.group(2):
            record["from"] = match.group(2)
        records.append(record)
    return records


def parse_legacy_config(text: str, path: Path | None = None) -> ModulesConfig:
    """Parse a legacy ``modules.py`` without executing it."""
    where = path or "<string>"
    try:
        node = _legacy_literal_node(text)
    except SyntaxError as e:
        logger.warning("Cannot parse %s as Python (%s) — using pattern match", where, e)
        records = _parse_legacy_regex(text)
    else:
        if node is None:
            records = []
        else:
            try:
                value = ast.literal_eval(node)
            except (ValueError, TypeError, SyntaxError) as e:
                raise ConfigError(
                    f"{LEGACY_VARIABLE} in {where} must be a literal list: {e}"
                ) from e
            if not isinstance(value, (list, tuple)):
                raise ConfigError(f"{LEGACY_VARIABLE} in {where} must be a list")
            records = [r for r in value if isinstance(r, dict)]

    try:
        config = ModulesConfig.model_validate({"modules": records})
    except Exception as e:
        raise ConfigError(f"Invalid module configuration in {where}: {e}") from e

    config.source_format = "legacy"
    config.path = path
    return config


def load_modules_config(path: Path) -> ModulesConfig:
    """Load a module configuration file.

    Raises:
        ConfigNotFound: If the file does not exist.
        ConfigError: If the file cannot be read or is invalid.
    """
    if not path.is_file():
        raise ConfigNotFound(f"Module configuration not found: {path}")

    logger.debug("Loading module configuration from %s", path)
    try:
        text = path.read_text(encoding="utf-8")
    except OSError as e:
        raise ConfigError(f"Cannot read {path}: {e}") from e

    if path.suffix == ".py":
        config = parse_legacy_config(text, path)
    else:
        config = parse_yaml_config(text, path)

    logger.info("Loaded %d enabled module(s) from %s", len(config.modules), path)
    return config


def scan_app_modules(app_dir: Path, settings: ResolverSettings | None = None) -> list[ModuleEntry]:
    """Fallback: every directory under the app modules root is an app module."""
    settings = settings or ResolverSettings()
    modules_root = app_dir / settings.app_modules_root
    if not modules_root.is_dir():
        return []
    return [
        ModuleEntry(id=child.name, from_=settings.app_marker)
        for child in sorted(modules_root.iterdir(), key=lambda p: p.name)
        if child.is_dir() and not child.name.startswith((".", "_"))
    ]


def load_enabled_modules(app_dir: Path, settings: ResolverSettings | None = None) -> list[ModuleEntry]:
    """Read the enabled modules, falling back to a directory listing.

    A missing or unusable configuration is tolerated here: generation
    still runs against whatever app modules exist on disk.
    """
    settings = settings or ResolverSettings()
    path = find_modules_config(app_dir, settings)
    if path is not None:
        try:
            config = load_modules_config(path)
        except ConfigError as e:
            logger.warning("%s — falling back to %s/*", e, settings.app_modules_root)
        else:
            if config.modules:
                return list(config.modules)
    return scan_app_modules(app_dir, settings)


# ── Editing ─────────────────────────────────────────────────────


def set_module_origin(config: ModulesConfig, module_id: str, origin: str) -> ModuleEntry:
    """Point one entry at a new origin, keeping its other fields."""
    entry = config.get(module_id)
    if entry is None:
        where = config.path or "the module configuration"
        raise ConfigError(f'Could not find module entry for "{module_id}" in {where}.')
    entry.from_ = origin
    return entry


def dump_yaml_config(config: ModulesConfig) -> str:
    """Deterministic YAML serialization."""
    data = {
        "version": config.version,
        "modules": [entry.to_record() for entry in config.modules],
    }
    return yaml.safe_dump(data, sort_keys=False, default_flow_style=False, allow_unicode=True)


def _format_legacy_literal(config: ModulesConfig) -> str:
    if not config.modules:
        return "[]"
    lines = ["["]
    for entry in config.modules:
        lines.append(f"    {entry.to_record()!r},")
    lines.append("]")
    return "\n".join(lines)


def dump_legacy_config(config: ModulesConfig, original: str) -> str:
    """Replace only the ``enabled_modules`` literal in the original source."""
    try:
        node = _legacy_literal_node(original)
    except SyntaxError as e:
        raise ConfigError(f"Cannot rewrite {config.path}: not valid Python ({e})") from e
    if node is None or node.end_lineno is None or node.end_col_offset is None:
        raise ConfigError(f"Cannot rewrite {config.path}: no {LEGACY_VARIABLE} literal found")

    # ast offsets are UTF-8 byte columns
    raw = original.encode("utf-8")
    line_starts = [0]
    for line in raw.splitlines(keepends=True):
        line_starts.append(line_starts[-1] + len(line))
    start = line_starts[node.lineno - 1] + node.col_offset
    end = line_starts[node.end_lineno - 1] + node.end_col_offset

    literal = _format_legacy_literal(config).encode("utf-8")
    return (raw[:start] + literal + raw[end:]).decode("utf-8")


def save_modules_config(config: ModulesConfig, path: Path | None = None) -> Path:
    """Write the configuration back (atomic write).

    Uses write-to-temp-then-rename to prevent corruption.
    """
    path = path or config.path
    if path is None:
        raise ConfigError("No path to save the module configuration to")

    if config.source_format == "legacy":
        original = path.read_text(encoding="utf-8") if path.is_file() else f"{LEGACY_VARIABLE} = []\n"
        content = dump_legacy_config(config, original)
    else:
        content = dump_yaml_config(config)

    path.parent.mkdir(parents=True, exist_ok=True)
    _fd, tmp_path = tempfile.mkstemp(dir=path.parent, prefix=".modules_", suffix=".tmp")
    tmp = Path(tmp_path)
    try:
        with open(_fd, "w", encoding="utf-8") as fh:
            fh.write(content)
        tmp.replace(path)
    except Exception:
        tmp.unlink(missing_ok=True)
        raise
    logger.debug("Module configuration saved to %s", path)
    return path
