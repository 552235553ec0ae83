"""
Generate use case — orchestrate one registry generation run.

Ties together the resolver, the convention scanner, dependency
validation, the artifact emitter and the checksum gate.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from pathlib import Path

from mercato_cli.core.context import GenerationContext
from mercato_cli.core.errors import DependencyUnmet, MercatoError
from mercato_cli.core.models.paths import ResolverSettings
from mercato_cli.core.models.template import GeneratorResult
from mercato_cli.core.persistence.checksums import structure_hash, write_if_changed
from mercato_cli.core.services.dependencies import validate_dependencies
from mercato_cli.core.services.emitter import emit_artifacts
from mercato_cli.core.services.scanner import ScanResult, scan_modules

logger = logging.getLogger(__name__)


@dataclass
class ArtifactStatus:
    """Whether one artifact was (re)written."""

    path: Path
    changed: bool

    def to_dict(self) -> dict:
        return {"path": str(self.path), "changed": self.changed}


@dataclass
class GenerateResult:
    """Result of the generate use case."""

    output_dir: Path | None = None
    modules: list[str] = field(default_factory=list)
    artifacts: list[ArtifactStatus] = field(default_factory=list)
    scan_errors: list[str] = field(default_factory=list)
    structure: str = ""
    dependency_problems: dict[str, list[str]] = field(default_factory=dict)
    error: str | None = None
    error_kind: str | None = None

    @property
    def summary(self) -> GeneratorResult:
        return GeneratorResult(
            files_written=[str(a.path) for a in self.artifacts if a.changed],
            files_unchanged=[str(a.path) for a in self.artifacts if not a.changed],
            errors=list(self.scan_errors),
        )

    def to_dict(self) -> dict:
        result: dict = {}
        if self.error:
            result["error"] = self.error
            result["error_kind"] = self.error_kind
            if self.dependency_problems:
                result["dependency_problems"] = self.dependency_problems
            return result

        result["output_dir"] = str(self.output_dir)
        result["modules"] = self.modules
        result["artifacts"] = [a.to_dict() for a in self.artifacts]
        result["structure"] = self.structure
        result.update(self.summary.to_dict())
        return result


def _scan(ctx: GenerationContext) -> ScanResult:
    entries = ctx.resolver.load_enabled_modules()
    logger.info("Generating registries for %d module(s)", len(entries))
    return asyncio.run(scan_modules(ctx, entries))


def generate_in_context(ctx: GenerationContext) -> GenerateResult:
    """Run generation with an existing context (the caller owns its lifetime)."""
    result = GenerateResult(output_dir=ctx.resolver.get_output_dir())

    scan = _scan(ctx)
    result.modules = [m.id for m in scan.modules]
    result.scan_errors = scan.error_markers

    try:
        validate_dependencies(scan.requires_by_module, scan.enabled_ids)
    except DependencyUnmet as e:
        result.error = str(e)
        result.error_kind = e.kind
        result.dependency_problems = e.problems
        return result

    structure = structure_hash(scan.tracked_roots, scan.error_markers)
    result.structure = structure

    output_dir = ctx.resolver.get_output_dir()
    for generated in emit_artifacts(scan):
        path = output_dir / generated.path
        changed = write_if_changed(
            path, generated.content, output_dir / generated.checksum_path, structure,
        )
        result.artifacts.append(ArtifactStatus(path=path, changed=changed))

    written = sum(1 for a in result.artifacts if a.changed)
    logger.info(
        "Generation done: %d written, %d unchanged",
        written, len(result.artifacts) - written,
    )
    return result


def run_generate(
    cwd: Path | None = None,
    settings: ResolverSettings | None = None,
) -> GenerateResult:
    """Discover modules and (re)write the generated registries.

    Args:
        cwd: Directory to resolve the workspace from (default: current).
        settings: Optional layout overrides.

    Returns:
        GenerateResult with per-artifact status, or ``error`` set.
    """
    try:
        with GenerationContext.create(cwd=cwd, settings=settings) as ctx:
            return generate_in_context(ctx)
    except MercatoError as e:
        return GenerateResult(error=str(e), error_kind=e.kind)
