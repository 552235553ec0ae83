"""
Domain models — Pydantic types for the generator.

All models are re-exported here for convenient access:

    from mercato_cli.core.models import ModuleEntry, ModulesConfig, ResolverSettings
"""

from mercato_cli.core.models.module import (
    APP_MARKER,
    DEFAULT_PACKAGE,
    ModuleEntry,
    ModuleMetadata,
    ModuleOrigin,
    ModulesConfig,
)
from mercato_cli.core.models.paths import (
    PackageInfo,
    ResolvedModulePaths,
    ResolverSettings,
)
from mercato_cli.core.models.template import GeneratedFile, GeneratorResult

__all__ = [
    "APP_MARKER",
    "DEFAULT_PACKAGE",
    "GeneratedFile",
    "GeneratorResult",
    "ModuleEntry",
    "ModuleMetadata",
    "ModuleOrigin",
    "ModulesConfig",
    "PackageInfo",
    "ResolvedModulePaths",
    "ResolverSettings",
]
