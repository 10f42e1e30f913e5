"""
sld-core - reconciliation engine for local web development sites.

Keeps a declarative model of parked directories, links and per-site
overrides, and turns it into nginx virtual hosts, a shared TLS certificate
and hosts-file entries, resolving each project's PHP version constraint
against the versions installed on the machine.
"""

__version__ = "0.1.0"
__author__ = "sld Team"

from sld_core.exceptions import (
    SldError,
    ValidationError,
    StoreError,
    DetectionError,
    TemplateError,
    AdapterError,
    AddonError,
)
from sld_core.enums import (
    LogLevel,
    SiteKind,
    ConstraintOperator,
    AddonStatus,
    HealthStatus,
    EventType,
)
from sld_core.config import (
    PathsConfig,
    RuntimeConfig,
    AdapterConfig,
    DoctorConfig,
    LoggingConfig,
    EngineConfig,
    create_default_config,
    load_config_from_env,
    load_config_from_file,
    save_config_to_file,
)
from sld_core.models import (
    SiteConfig,
    State,
    RequirementRecord,
    ResolvedSite,
    SiteOverride,
    SynthesisResult,
    WorkflowResult,
    ServiceStatus,
    HealthCheck,
)
from sld_core.audit_logger import (
    AuditLogger,
    LogEntry,
)
from sld_core.validation import (
    normalize_hostname,
    validate_site_name,
    validate_tld,
    validate_php_version,
    validate_port,
)
from sld_core.state_store import (
    StateStore,
)
from sld_core.project_detector import (
    ProjectDetector,
)
from sld_core.version_resolver import (
    VersionResolver,
    parse_version,
    sort_versions_descending,
)
from sld_core.templates import (
    ConfigTemplate,
)
from sld_core.adapters import (
    SystemAdapter,
    LinuxAdapter,
    get_adapter,
)
from sld_core.addons import (
    Addon,
    ConfigContributor,
    AddonRegistry,
    ExampleProxyAddon,
    default_registry,
)
from sld_core.events import (
    EventBus,
)
from sld_core.sites import (
    SiteIndex,
)
from sld_core.synthesizer import (
    VirtualHostSynthesizer,
)
from sld_core.cert_domains import (
    CertificateDomainCollector,
)
from sld_core.engine import (
    ReconcileEngine,
)
from sld_core.doctor import (
    Doctor,
    DoctorReport,
)

__all__ = [
    # Exceptions
    "SldError",
    "ValidationError",
    "StoreError",
    "DetectionError",
    "TemplateError",
    "AdapterError",
    "AddonError",
    # Enums
    "LogLevel",
    "SiteKind",
    "ConstraintOperator",
    "AddonStatus",
    "HealthStatus",
    "EventType",
    # Configuration
    "PathsConfig",
    "RuntimeConfig",
    "AdapterConfig",
    "DoctorConfig",
    "LoggingConfig",
    "EngineConfig",
    "create_default_config",
    "load_config_from_env",
    "load_config_from_file",
    "save_config_to_file",
    # Models
    "SiteConfig",
    "State",
    "RequirementRecord",
    "ResolvedSite",
    "SiteOverride",
    "SynthesisResult",
    "WorkflowResult",
    "ServiceStatus",
    "HealthCheck",
    # Logging
    "AuditLogger",
    "LogEntry",
    # Validation
    "normalize_hostname",
    "validate_site_name",
    "validate_tld",
    "validate_php_version",
    "validate_port",
    # State Store
    "StateStore",
    # Detection and resolution
    "ProjectDetector",
    "VersionResolver",
    "parse_version",
    "sort_versions_descending",
    # Templates
    "ConfigTemplate",
    # Adapters
    "SystemAdapter",
    "LinuxAdapter",
    "get_adapter",
    # Add-ons
    "Addon",
    "ConfigContributor",
    "AddonRegistry",
    "ExampleProxyAddon",
    "default_registry",
    # Events
    "EventBus",
    # Pipeline
    "SiteIndex",
    "VirtualHostSynthesizer",
    "CertificateDomainCollector",
    "ReconcileEngine",
    # Health
    "Doctor",
    "DoctorReport",
]
