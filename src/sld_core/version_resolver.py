"""
Runtime Version Resolver.

Matches a project's PHP version constraint against the versions installed on
the machine and picks the newest compatible one. The resolver never raises:
anything it cannot resolve comes back as ``""``, meaning "use the default".
"""

import re
from typing import Optional, Sequence

from .enums import ConstraintOperator

BASE_VERSION_PATTERN = re.compile(r"(\d+)\.(\d+)")


def parse_version(version: str) -> Optional[tuple[int, ...]]:
    """
    Parse a dotted numeric version into a tuple of ints.

    Returns:
        Tuple such as (8, 1), or None when the string is not purely numeric
    """
    if not version:
        return None
    parts = version.strip().split(".")
    try:
        return tuple(int(part) for part in parts)
    except ValueError:
        return None


def sort_versions_descending(versions: Sequence[str]) -> list[str]:
    """Sort version strings newest first; unparseable entries go last."""
    parsed = [v for v in versions if parse_version(v) is not None]
    rest = [v for v in versions if parse_version(v) is None]
    return sorted(parsed, key=lambda v: parse_version(v), reverse=True) + rest


def version_at_least(version: str, baseline: str) -> bool:
    """
    True when ``version`` >= ``baseline``.

    A version that cannot be parsed counts as at least the baseline, so it
    is never silently treated as legacy.
    """
    parsed = parse_version(version)
    base = parse_version(baseline)
    if parsed is None or base is None:
        return True
    return parsed >= base


def constraint_operator(constraint: str) -> ConstraintOperator:
    """Classify a constraint by its operator."""
    if ">=" in constraint:
        return ConstraintOperator.AT_LEAST
    if "^" in constraint:
        return ConstraintOperator.CARET
    return ConstraintOperator.EXACT


class VersionResolver:
    """Pure constraint → installed-version matcher."""

    def base_version(self, constraint: str) -> str:
        """Extract the first ``major.minor`` token, or ``""``."""
        match = BASE_VERSION_PATTERN.search(constraint or "")
        if not match:
            return ""
        return f"{match.group(1)}.{match.group(2)}"

    def is_compatible(self, candidate: str, constraint: str) -> bool:
        """Test one installed version against a constraint."""
        base = self.base_version(constraint)
        if not base:
            return False

        operator = constraint_operator(constraint)
        if operator == ConstraintOperator.EXACT:
            return candidate == base

        candidate_parts = parse_version(candidate)
        base_parts = parse_version(base)
        if candidate_parts is None or base_parts is None:
            return False

        if operator == ConstraintOperator.AT_LEAST:
            return candidate_parts >= base_parts

        return candidate_parts[0] == base_parts[0] and candidate_parts >= base_parts

    def resolve(
        self,
        constraint: str,
        installed_desc: Sequence[str],
        current_default: str,
    ) -> str:
        """
        Pick the newest installed version compatible with ``constraint``.

        Args:
            constraint: Version constraint such as ``^8.1``, ``>=7.4`` or ``8.2``
            installed_desc: Installed versions, newest first
            current_default: The globally configured version

        Returns:
            The chosen version, or ``""`` when the constraint is empty, cannot
            be parsed, matches nothing, or is already met by the default
        """
        if not constraint:
            return ""
        if not self.base_version(constraint):
            return ""

        for candidate in installed_desc:
            if self.is_compatible(candidate, constraint):
                if candidate == current_default:
                    return ""
                return candidate

        return ""
