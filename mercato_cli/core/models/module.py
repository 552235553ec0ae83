"""
Module models — enabled module entries and their configuration file.

A ``ModuleEntry`` is a declaration from the module configuration:
"this module id is enabled, and its source comes from here."
Where the source lives on disk and how generated code imports it is
decided later by the resolver.
"""

from __future__ import annotations

from enum import Enum
from pathlib import Path
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

APP_MARKER = "@app"
DEFAULT_PACKAGE = "mercato.core"

CONFIG_VERSION = 1


class ModuleOrigin(str, Enum):
    """Where a module's source lives."""

    DEFAULT = "default"   # the default shared package
    APP = "app"           # app-owned, under <app>/src/modules
    PACKAGE = "package"   # another shared package


class ModuleEntry(BaseModel):
    """One enabled module.

    Unknown keys are kept (``extra="allow"``) so that a structured edit
    of the configuration never drops fields it does not understand.
    """

    model_config = ConfigDict(extra="allow", populate_by_name=True)

    id: str
    from_: str | None = Field(default=None, alias="from")

    @property
    def origin(self) -> ModuleOrigin:
        if self.from_ == APP_MARKER:
            return ModuleOrigin.APP
        if not self.from_ or self.from_ == DEFAULT_PACKAGE:
            return ModuleOrigin.DEFAULT
        return ModuleOrigin.PACKAGE

    @property
    def is_app(self) -> bool:
        return self.origin is ModuleOrigin.APP

    @property
    def package_name(self) -> str:
        """The package providing this module (default package unless set)."""
        return self.from_ or DEFAULT_PACKAGE

    def to_record(self) -> dict[str, Any]:
        """Serialize with a stable key order: id, from, then extras."""
        record: dict[str, Any] = {"id": self.id}
        if self.from_ is not None:
            record["from"] = self.from_
        for key, value in (self.model_extra or {}).items():
            record[key] = value
        return record


class ModulesConfig(BaseModel):
    """The module configuration: the single source of truth for enabled modules."""

    version: int = CONFIG_VERSION
    modules: list[ModuleEntry] = Field(default_factory=list)

    # Where this config was read from; not part of the file itself.
    source_format: str = Field(default="yaml", exclude=True)
    path: Path | None = Field(default=None, exclude=True)

    def get(self, module_id: str) -> ModuleEntry | None:
        for entry in self.modules:
            if entry.id == module_id:
                return entry
        return None

    @property
    def ids(self) -> list[str]:
        return [m.id for m in self.modules]


class ModuleMetadata(BaseModel):
    """Metadata declared in a module's ``__init__.py`` (``metadata = {...}``)."""

    title: str | None = None
    description: str | None = None
    ejectable: bool = False
    requires: list[str] = Field(default_factory=list)
    raw: dict[str, Any] = Field(default_factory=dict)
