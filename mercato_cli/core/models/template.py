"""
Generated file model — used by all artifact emitters.
"""

from __future__ import annotations

from pydantic import BaseModel, Field


class GeneratedFile(BaseModel):
    """A file produced by the generate phase.

    Attributes:
        path:    File name relative to the output directory.
        content: Full file content.
        reason:  Why this file was generated.
    """

    path: str
    content: str
    reason: str = ""

    @property
    def checksum_path(self) -> str:
        """Sidecar name: ``modules_generated.py`` → ``modules_generated.checksum``."""
        stem = self.path[:-3] if self.path.endswith(".py") else self.path
        return f"{stem}.checksum"


class GeneratorResult(BaseModel):
    """Outcome of one generation pass."""

    files_written: list[str] = Field(default_factory=list)
    files_unchanged: list[str] = Field(default_factory=list)
    errors: list[str] = Field(default_factory=list)

    def to_dict(self) -> dict:
        return self.model_dump(mode="json")
