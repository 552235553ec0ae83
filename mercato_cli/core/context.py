"""
Run context — everything one command invocation shares.

Built once by the entry point and passed down explicitly:

    - CLI:     main.py   → GenerationContext.create(cwd)
    - Tests:   fixtures  → GenerationContext(resolver=PathResolver(tmp_path))

Design notes:
    - An explicit object, not a module-level singleton.  Two contexts
      never share caches, so tests can build as many as they like.
    - Dynamic export probes cache their answers here for the lifetime
      of the run; ``close()`` drops the cache and any modules the
      probes loaded.
    - Usable as a context manager so teardown happens on every exit path.
"""

from __future__ import annotations

import logging
import sys
from dataclasses import dataclass, field
from pathlib import Path

from mercato_cli.core.models.paths import ResolverSettings
from mercato_cli.core.resolver import PathResolver

logger = logging.getLogger(__name__)


@dataclass
class GenerationContext:
    """Per-run state: the resolver plus caches owned by this run."""

    resolver: PathResolver
    probe_cache: dict[tuple[str, str], bool] = field(default_factory=dict)
    loaded_modules: list[str] = field(default_factory=list)
    closed: bool = False

    @classmethod
    def create(
        cls,
        cwd: Path | None = None,
        settings: ResolverSettings | None = None,
    ) -> GenerationContext:
        return cls(resolver=PathResolver(cwd=cwd, settings=settings))

    @property
    def settings(self) -> ResolverSettings:
        return self.resolver.settings

    def close(self) -> None:
        """Drop caches and unload modules imported by probes."""
        if self.closed:
            return
        for name in self.loaded_modules:
            sys.modules.pop(name, None)
        logger.debug(
            "Context closed (%d probe result(s), %d probe module(s) unloaded)",
            len(self.probe_cache), len(self.loaded_modules),
        )
        self.loaded_modules.clear()
        self.probe_cache.clear()
        self.closed = True

    def __enter__(self) -> GenerationContext:
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()
