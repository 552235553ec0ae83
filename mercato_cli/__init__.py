"""Mercato CLI — module discovery, registry generation and eject tooling."""

__version__ = "0.1.0"
