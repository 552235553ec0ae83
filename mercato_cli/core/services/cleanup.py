"""
Guarded recursive delete for generated output.
"""

from __future__ import annotations

import logging
import shutil
from collections.abc import Iterable
from pathlib import Path

from mercato_cli.core.errors import UnsafeDeleteError

logger = logging.getLogger(__name__)

# A deletable path must have one of these as a path component
ALLOWED_DIR_NAMES = ("generated", "dist", ".mercato")


def is_safe_to_delete(path: Path, allowed: Iterable[str] = ALLOWED_DIR_NAMES) -> bool:
    parts = set(path.resolve().parts)
    return any(name in parts for name in allowed)


def safe_rmtree(path: Path, allowed: Iterable[str] = ALLOWED_DIR_NAMES) -> bool:
    """Delete a generated directory tree.

    Returns:
        True if something was deleted, False if ``path`` did not exist.

    Raises:
        UnsafeDeleteError: If ``path`` is not inside a generated directory.
    """
    allowed = tuple(allowed)
    if not path.exists():
        return False
    if not is_safe_to_delete(path, allowed):
        raise UnsafeDeleteError(
            f"Refusing to delete directory outside allowed paths: {path.resolve()}. "
            f"Allowed directory names: {', '.join(allowed)}"
        )
    shutil.rmtree(path)
    logger.info("Deleted %s", path)
    return True
