"""
Site discovery over a state snapshot.

Turns parked roots and links into the list of servable sites. A directory
that is both under a parked root and explicitly linked is reported once,
as the link.
"""

import os
from pathlib import Path
from typing import Optional

from .audit_logger import AuditLogger
from .enums import SiteKind
from .models import ResolvedSite, State

COMPONENT = "SiteIndex"


def list_subdirectories(root: str, logger: Optional[AuditLogger] = None) -> list[str]:
    """
    Sorted names of the non-hidden immediate subdirectories of ``root``.

    An unreadable or missing root yields an empty list.
    """
    try:
        entries = list(os.scandir(root))
    except OSError as e:
        if logger:
            logger.debug(COMPONENT, "Skipping unreadable parked path", {
                "path": root,
                "error": str(e),
            })
        return []

    names: list[str] = []
    for entry in entries:
        if entry.name.startswith("."):
            continue
        try:
            if entry.is_dir():
                names.append(entry.name)
        except OSError:
            continue
    return sorted(names)


class SiteIndex:
    """Read-only view of the sites a state makes visible."""

    def __init__(self, state: State, logger: Optional[AuditLogger] = None) -> None:
        self._state = state
        self._logger = logger

    def _site(self, name: str, path: str, kind: SiteKind) -> ResolvedSite:
        domain = self._state.domain_for(name)
        php_version = self._state.php_version
        tags: list[str] = []
        category = ""
        conf = self._state.site_configs.get(domain)
        if conf is not None:
            if conf.php_version:
                php_version = conf.php_version
            tags = list(conf.tags)
            category = conf.category
        return ResolvedSite(
            name=name,
            path=path,
            domain=domain,
            php_version=php_version,
            secure=self._state.secure,
            kind=kind,
            tags=tags,
            category=category,
        )

    def parked_projects(self) -> list[tuple[str, str]]:
        """``(name, path)`` for every discoverable parked subdirectory."""
        ignored = set(self._state.ignored)
        projects: list[tuple[str, str]] = []
        for root in self._state.paths:
            for name in list_subdirectories(root, self._logger):
                full_path = os.path.join(root, name)
                if full_path in ignored:
                    continue
                projects.append((name, full_path))
        return projects

    def _live_links(self) -> dict[str, str]:
        """Links whose target still exists."""
        return {
            name: path
            for name, path in self._state.links.items()
            if os.path.exists(path)
        }

    def list_sites(self) -> list[ResolvedSite]:
        """
        Resolve every servable site, one per domain.

        Parked sites come first (roots in order, names sorted), then links
        sorted by name. A link owns its domain: parked directories sharing a
        link's name or path are skipped. Between parked roots the first root
        holding a name wins. Links whose target no longer exists are dropped
        and do not shadow parked directories.
        """
        links = self._live_links()
        linked_paths = set(links.values())
        seen = {self._state.domain_for(name) for name in links}
        sites: list[ResolvedSite] = []

        for name, path in self.parked_projects():
            domain = self._state.domain_for(name)
            if path in linked_paths or domain in seen:
                continue
            seen.add(domain)
            sites.append(self._site(name, path, SiteKind.PARKED))

        for name in sorted(links):
            sites.append(self._site(name, links[name], SiteKind.LINKED))

        return sites

    def find_project_path(self, domain: str) -> Optional[str]:
        """
        Locate the directory serving ``domain``.

        A live link with the domain's name wins; otherwise the first parked
        root holding a non-ignored directory of that name.
        """
        name = self._state.name_for(domain)
        links = self._live_links()
        if name in links:
            return links[name]

        ignored = set(self._state.ignored)
        for root in self._state.paths:
            candidate = Path(root) / name
            if candidate.is_dir() and str(candidate) not in ignored:
                return str(candidate)
        return None

    def hostnames(self) -> list[str]:
        """Domains of every listed site, in listing order."""
        return [site.domain for site in self.list_sites()]
