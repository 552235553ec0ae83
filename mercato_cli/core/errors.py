"""
Error taxonomy for the generator and eject commands.

Every failure the CLI reports with a specific message is one of these.
Use cases catch ``MercatoError`` and turn it into ``result.error``;
anything else propagates as a real bug.
"""

from __future__ import annotations


class MercatoError(Exception):
    """Base class for all expected, user-facing failures."""

    kind = "error"


class ConfigError(MercatoError):
    """Raised when the module configuration is invalid."""

    kind = "config_error"


class ConfigNotFound(ConfigError):
    """Raised when the module configuration file does not exist."""

    kind = "config_not_found"


class EjectError(MercatoError):
    """An eject that could not complete; subclasses name the failed precondition."""

    kind = "eject_error"


class ModuleNotFound(EjectError):
    kind = "module_not_found"

    def __init__(self, module_id: str, available: list[str]):
        self.module_id = module_id
        self.available = available
        listed = ", ".join(available) if available else "(none)"
        super().__init__(
            f'Module "{module_id}" is not listed in the module configuration. '
            f"Available modules: {listed}"
        )


class AlreadyLocal(EjectError):
    kind = "already_local"

    def __init__(self, module_id: str):
        self.module_id = module_id
        super().__init__(
            f'Module "{module_id}" is already local (from: \'@app\'). Nothing to eject.'
        )


class SourceMissing(EjectError):
    kind = "source_missing"

    def __init__(self, module_id: str, path: str):
        self.module_id = module_id
        self.path = path
        super().__init__(
            f"Package source directory not found: {path}. "
            "Make sure the package is installed."
        )


class NotEjectable(EjectError):
    kind = "not_ejectable"

    def __init__(self, module_id: str):
        self.module_id = module_id
        super().__init__(
            f'Module "{module_id}" is not marked as ejectable. '
            "Only modules with `ejectable: True` in their metadata can be ejected."
        )


class DestinationExists(EjectError):
    kind = "destination_exists"

    def __init__(self, module_id: str, path: str):
        self.module_id = module_id
        self.path = path
        super().__init__(
            f"Destination directory already exists: {path}. "
            "Remove it first or resolve the conflict manually."
        )


class DependencyUnmet(MercatoError):
    """Raised when enabled modules require modules that are not enabled."""

    kind = "dependency_unmet"

    def __init__(self, problems: dict[str, list[str]]):
        self.problems = problems
        lines = [f'- Module "{mod}" requires: {", ".join(missing)}'
                 for mod, missing in problems.items()]
        super().__init__("Module dependency check failed:\n" + "\n".join(lines))

    @property
    def missing_ids(self) -> list[str]:
        """All missing module ids, deduplicated, in first-seen order."""
        seen: dict[str, None] = {}
        for missing in self.problems.values():
            for mod_id in missing:
                seen.setdefault(mod_id, None)
        return list(seen)


class UnsafeDeleteError(MercatoError):
    """Raised when a recursive delete targets a path outside generated output."""

    kind = "unsafe_delete"
