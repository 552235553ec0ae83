"""
Eject use case — list and eject package modules.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path

from mercato_cli.core.errors import MercatoError
from mercato_cli.core.models.paths import ResolverSettings
from mercato_cli.core.resolver import PathResolver
from mercato_cli.core.services.eject import EjectableModule, eject_module, list_ejectable

logger = logging.getLogger(__name__)


@dataclass
class EjectResult:
    """Result of the eject use case."""

    module_id: str = ""
    destination: Path | None = None
    config_path: Path | None = None
    files_copied: int = 0
    imports_rewritten: dict[str, int] = field(default_factory=dict)
    warnings: list[str] = field(default_factory=list)
    error: str | None = None
    error_kind: str | None = None

    def to_dict(self) -> dict:
        if self.error:
            return {"module_id": self.module_id, "error": self.error, "error_kind": self.error_kind}
        return {
            "module_id": self.module_id,
            "destination": str(self.destination),
            "config_path": str(self.config_path),
            "files_copied": self.files_copied,
            "imports_rewritten": self.imports_rewritten,
            "warnings": self.warnings,
        }


@dataclass
class EjectableListResult:
    modules: list[EjectableModule] = field(default_factory=list)
    error: str | None = None

    def to_dict(self) -> dict:
        if self.error:
            return {"error": self.error}
        return {"modules": [m.to_dict() for m in self.modules]}


def run_list_ejectable(
    cwd: Path | None = None,
    settings: ResolverSettings | None = None,
) -> EjectableListResult:
    try:
        resolver = PathResolver(cwd=cwd, settings=settings)
        return EjectableListResult(modules=list_ejectable(resolver))
    except MercatoError as e:
        return EjectableListResult(error=str(e))


def run_eject(
    module_id: str,
    cwd: Path | None = None,
    settings: ResolverSettings | None = None,
) -> EjectResult:
    """Eject one module into the app.

    Returns:
        EjectResult with what was copied and rewritten, or ``error`` set.
    """
    result = EjectResult(module_id=module_id)
    try:
        resolver = PathResolver(cwd=cwd, settings=settings)
        outcome = eject_module(resolver, module_id)
    except MercatoError as e:
        result.error = str(e)
        result.error_kind = e.kind
        return result

    result.destination = outcome.destination
    result.config_path = outcome.config_path
    result.files_copied = outcome.files_copied
    result.imports_rewritten = outcome.imports_rewritten
    result.warnings = outcome.warnings
    logger.info("Ejected %s into %s", module_id, outcome.destination)
    return result
