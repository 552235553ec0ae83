"""
Dependency validation — every ``requires`` entry must be enabled.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable, Mapping

from mercato_cli.core.errors import DependencyUnmet

logger = logging.getLogger(__name__)


def find_unmet_dependencies(
    requires_by_module: Mapping[str, Iterable[str]],
    enabled_ids: Iterable[str],
) -> dict[str, list[str]]:
    """Map each module to the required ids that are not enabled.

    Modules whose requirements are all met are left out.  Order follows
    ``requires_by_module`` and each module's own ``requires`` list.
    """
    enabled = set(enabled_ids)
    problems: dict[str, list[str]] = {}
    for module_id, requires in requires_by_module.items():
        missing = [req for req in dict.fromkeys(requires) if req not in enabled]
        if missing:
            problems[module_id] = missing
    return problems


def validate_dependencies(
    requires_by_module: Mapping[str, Iterable[str]],
    enabled_ids: Iterable[str],
) -> None:
    """Raise ``DependencyUnmet`` listing every offending module at once."""
    problems = find_unmet_dependencies(requires_by_module, enabled_ids)
    if problems:
        for module_id, missing in problems.items():
            logger.debug("Module %s requires missing: %s", module_id, ", ".join(missing))
        raise DependencyUnmet(problems)
