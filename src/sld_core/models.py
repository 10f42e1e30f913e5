"""
Data models for the sld-core reconciliation engine.

This module defines the persisted state document, the per-site override
record, the ephemeral detector and listing records, and the typed results
returned by synthesis and workflow operations.
"""

from dataclasses import dataclass, field
from typing import Optional

from .enums import HealthStatus, SiteKind
from .exceptions import SldError


@dataclass
class SiteConfig:
    """Per-domain override stored under ``site_configs``."""

    php_version: str = ""
    web_root: str = ""
    node_version: str = ""
    tags: list[str] = field(default_factory=list)
    category: str = ""


@dataclass
class State:
    """The single persisted source of truth."""

    tld: str = "test"
    paths: list[str] = field(default_factory=list)
    links: dict[str, str] = field(default_factory=dict)
    site_configs: dict[str, SiteConfig] = field(default_factory=dict)
    ignored: list[str] = field(default_factory=list)
    secure: bool = False
    port: str = "80"
    php_version: str = ""
    enabled_addons: list[str] = field(default_factory=list)
    services: dict[str, str] = field(default_factory=dict)
    certificates: list[str] = field(default_factory=list)

    def domain_for(self, name: str) -> str:
        """Build the fully-qualified domain for a site name."""
        return f"{name}.{self.tld}"

    def name_for(self, domain: str) -> str:
        """Strip the TLD suffix from a domain."""
        suffix = f".{self.tld}"
        if domain.endswith(suffix):
            return domain[: -len(suffix)]
        return domain


@dataclass
class RequirementRecord:
    """Requirements detected for one project directory."""

    php_constraint: str = ""
    node_constraint: str = ""
    web_root: str = ""
    errors: list[str] = field(default_factory=list)

    def has_opinion(self) -> bool:
        """True when the project asks for a runtime or a web root."""
        return bool(self.php_constraint or self.web_root)


@dataclass
class ResolvedSite:
    """A servable site as presented to listing workflows."""

    name: str
    path: str
    domain: str
    php_version: str
    secure: bool
    kind: SiteKind
    tags: list[str] = field(default_factory=list)
    category: str = ""

    def to_dict(self) -> dict:
        """Serialize with the listing keys used by the dashboard."""
        data = {
            "name": self.name,
            "path": self.path,
            "domain": self.domain,
            "phpVersion": self.php_version,
            "secure": self.secure,
            "type": self.kind.value,
        }
        if self.tags:
            data["tags"] = list(self.tags)
        if self.category:
            data["category"] = self.category
        return data


@dataclass
class SiteOverride:
    """Override produced by discovery, surfaced to the triggering caller."""

    domain: str
    resolved_version: str = ""
    web_root: str = ""
    tags: list[str] = field(default_factory=list)
    category: str = ""


@dataclass
class SynthesisResult:
    """Composed proxy configuration plus the warnings met while building it."""

    document: str
    warnings: list[str] = field(default_factory=list)
    isolated_domains: list[str] = field(default_factory=list)


@dataclass
class WorkflowResult:
    """
    Outcome of a state-mutating workflow.

    ``state_changed`` reports whether the request was recorded; ``reconciled``
    whether the proxy configuration was rewritten and reloaded afterwards.
    """

    state_changed: bool = False
    reconciled: bool = False
    warnings: list[str] = field(default_factory=list)
    error: Optional[SldError] = None
    overrides: list[SiteOverride] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return self.error is None


@dataclass
class ServiceStatus:
    """Running state of a system service as reported by the adapter."""

    name: str
    running: bool
    version: str = ""


@dataclass
class HealthCheck:
    """Result of a single doctor check."""

    name: str
    status: HealthStatus
    message: str
