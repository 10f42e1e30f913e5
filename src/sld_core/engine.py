"""
Reconcile Engine for the sld-core package.

The engine is the one object workflow entry points talk to. It is built once
with its collaborators and passed around explicitly. Every workflow follows
the same shape under the store lock:

1. validate the request
2. record the change in the state store (durable intent)
3. detect requirements of newly visible projects
4. sync the hosts file, regenerate certificates when needed, then
   synthesize, write and reload the proxy configuration

Failures in step 2 mean nothing was recorded. Failures in step 4 leave the
recorded change in place and are reported separately so the caller can
retry reconciliation.
"""

import os
from typing import Callable, Optional

from .addons import AddonRegistry, default_registry
from .adapters import get_adapter
from .adapters.base import SystemAdapter
from .audit_logger import AuditLogger
from .cert_domains import CertificateDomainCollector
from .config import EngineConfig
from .enums import EventType
from .events import EventBus
from .exceptions import AdapterError, SldError, ValidationError
from .models import (
    ResolvedSite,
    SiteConfig,
    SiteOverride,
    State,
    WorkflowResult,
)
from .project_detector import ProjectDetector
from .sites import SiteIndex, list_subdirectories
from .state_store import StateStore
from .synthesizer import VirtualHostSynthesizer
from .validation import validate_php_version, validate_site_name
from .version_resolver import VersionResolver, parse_version, version_at_least

COMPONENT = "ReconcileEngine"


def clean_node_version(constraint: str) -> str:
    """Reduce a Node constraint such as ``>=18.0.0 <21`` to ``18.0.0``."""
    cleaned = constraint.strip().lstrip(">=^~v").strip()
    return cleaned.split()[0] if cleaned else ""


class ReconcileEngine:
    """
    Workflow context for parking, linking, securing and version switching.

    Holds the state store, the system adapter and the pipeline components;
    nothing here is module-level state.
    """

    def __init__(
        self,
        config: EngineConfig,
        store: StateStore,
        adapter: SystemAdapter,
        detector: Optional[ProjectDetector] = None,
        resolver: Optional[VersionResolver] = None,
        addons: Optional[AddonRegistry] = None,
        events: Optional[EventBus] = None,
        logger: Optional[AuditLogger] = None,
    ) -> None:
        """
        Initialize the engine.

        Args:
            config: Engine configuration
            store: State store owning the persisted document
            adapter: System adapter for the running platform
            detector: Project requirement detector
            resolver: Runtime version resolver
            addons: Add-on registry (empty registry when omitted)
            events: Event bus for change notifications
            logger: Optional logger shared with the components
        """
        self._config = config
        self._store = store
        self._adapter = adapter
        self._logger = logger
        self._detector = detector or ProjectDetector(logger)
        self._resolver = resolver or VersionResolver()
        self._addons = addons if addons is not None else AddonRegistry(logger)
        self._events = events or EventBus(logger)
        self._synthesizer = VirtualHostSynthesizer(adapter, config, self._addons, logger)
        self._cert_collector = CertificateDomainCollector(adapter, config, logger)

    @classmethod
    def from_config(
        cls, config: EngineConfig, logger: Optional[AuditLogger] = None
    ) -> "ReconcileEngine":
        """Build an engine with the platform adapter and built-in add-ons."""
        return cls(
            config=config,
            store=StateStore(config.paths.state_file, logger),
            adapter=get_adapter(config, logger),
            addons=default_registry(logger),
            logger=logger,
        )

    @property
    def store(self) -> StateStore:
        return self._store

    @property
    def events(self) -> EventBus:
        return self._events

    @property
    def addons(self) -> AddonRegistry:
        return self._addons

    @property
    def synthesizer(self) -> VirtualHostSynthesizer:
        return self._synthesizer

    @property
    def cert_collector(self) -> CertificateDomainCollector:
        return self._cert_collector

    # Lifecycle

    def start(self) -> WorkflowResult:
        """Start enabled add-ons and bring the proxy in line with the state."""
        with self._store.locked():
            failed = self._addons.start_enabled(self._store)
            result = self._reconcile_locked(WorkflowResult(), regenerate_certificates=False)
            result.warnings.extend(f"Add-on {addon_id} failed to start" for addon_id in failed)
            return result

    # Parked paths

    def park(self, path: str) -> WorkflowResult:
        """Register a directory whose subdirectories become sites."""
        root = os.path.abspath(path)
        return self._run_workflow(
            "park",
            lambda result: self._park(root, result),
            domains_changed=True,
            validate=lambda: self._require_directory(root),
        )

    def forget(self, path: str) -> WorkflowResult:
        root = os.path.abspath(path)
        return self._run_workflow(
            "forget",
            lambda result: self._store.remove_path(root),
            domains_changed=True,
        )

    # Links

    def link(self, name: str, path: str) -> WorkflowResult:
        """Serve ``path`` as ``<name>.<tld>``."""
        target = os.path.abspath(path)
        validated: dict[str, str] = {}

        def validate() -> None:
            validated["name"] = validate_site_name(name)
            self._require_directory(target)

        def mutate(result: WorkflowResult) -> None:
            site_name = validated["name"]
            self._store.add_link(site_name, target)
            result.state_changed = True
            self._discover(site_name, target, self._installed_versions(result), result)

        return self._run_workflow("link", mutate, domains_changed=True, validate=validate)

    def unlink(self, name: str) -> WorkflowResult:
        """Remove a link together with the override stored for its domain."""
        return self._run_workflow(
            "unlink",
            lambda result: self._store.remove_link(name),
            domains_changed=True,
        )

    # Ignore list

    def ignore(self, path: str) -> WorkflowResult:
        target = os.path.abspath(path)
        return self._run_workflow(
            "ignore",
            lambda result: self._store.add_ignore(target),
            domains_changed=True,
        )

    def unignore(self, path: str) -> WorkflowResult:
        target = os.path.abspath(path)
        return self._run_workflow(
            "unignore",
            lambda result: self._store.remove_ignore(target),
            domains_changed=True,
        )

    # Rescan

    def refresh(self) -> WorkflowResult:
        """Re-detect requirements of every parked and linked project."""

        def mutate(result: WorkflowResult) -> None:
            state = self._store.state
            installed = self._installed_versions(result)
            for root in list(state.paths):
                self._scan_root(root, installed, result)
            for name, target in sorted(state.links.items()):
                self._discover(name, target, installed, result)
            result.state_changed = True

        return self._run_workflow("refresh", mutate, domains_changed=True)

    # TLS

    def secure(self) -> WorkflowResult:
        """Turn TLS on and issue a certificate covering every site."""
        return self._run_workflow(
            "secure",
            lambda result: self._store.set_secure(True),
            domains_changed=True,
        )

    def unsecure(self) -> WorkflowResult:
        return self._run_workflow(
            "unsecure",
            lambda result: self._store.set_secure(False),
            domains_changed=False,
        )

    # Runtime version

    def switch_php(self, version: str) -> WorkflowResult:
        """
        Make ``version`` the default PHP version.

        The version must have a socket; a missing one triggers an install
        and a second lookup. Nothing is recorded when both fail.
        """
        validated: dict[str, str] = {}

        def validate() -> None:
            validated["version"] = validate_php_version(version)
            self._ensure_php_socket(validated["version"])

        return self._run_workflow(
            "switch_php",
            lambda result: self._store.set_php_version(validated["version"]),
            domains_changed=False,
            validate=validate,
        )

    def ensure_project_versions(self) -> WorkflowResult:
        """
        Install runtimes referenced by projects.

        PHP versions from overrides at or above the supported baseline are
        installed when their socket is missing; Node versions detected in
        projects are installed through the adapter. Failures are warnings.
        """
        result = WorkflowResult()
        with self._store.locked():
            state = self._store.snapshot()
            baseline = self._config.runtime.min_supported_php

            php_versions = sorted({
                conf.php_version
                for conf in state.site_configs.values()
                if conf.php_version and parse_version(conf.php_version) is not None
            })
            for version in php_versions:
                if not version_at_least(version, baseline):
                    continue
                try:
                    self._ensure_php_socket(version)
                except AdapterError as e:
                    result.warnings.append(f"Failed to install PHP {version}: {e.message}")

            node_versions: list[str] = []
            index = SiteIndex(state, self._logger)
            for site in index.list_sites():
                record = self._detector.detect(site.path)
                cleaned = clean_node_version(record.node_constraint)
                if cleaned and cleaned not in node_versions:
                    node_versions.append(cleaned)
            for version in node_versions:
                try:
                    self._adapter.install_node_version(version)
                except AdapterError as e:
                    result.warnings.append(f"Failed to install Node {version}: {e.message}")

        self._log_warnings(result)
        return result

    # Add-ons

    def set_addon_enabled(self, addon_id: str, enabled: bool) -> WorkflowResult:
        def validate() -> None:
            if self._addons.get(addon_id) is None:
                raise ValidationError(
                    code="unknown_addon",
                    message=f"No add-on registered as '{addon_id}'",
                    details={"addon": addon_id},
                )

        def mutate(result: WorkflowResult) -> None:
            self._addons.set_enabled(addon_id, enabled, self._store)
            result.state_changed = True
            topic = EventType.ADDON_STARTED if enabled else EventType.ADDON_STOPPED
            self._events.publish(topic, addon_id)

        return self._run_workflow(
            "set_addon_enabled", mutate, domains_changed=False, validate=validate
        )

    # Presentation metadata

    def tag_site(self, site: str, tags: list[str], category: str = "") -> WorkflowResult:
        """
        Store tags and a category for a site given by name or domain.

        Tags do not affect the proxy, so no reconciliation runs.
        """
        result = WorkflowResult()
        with self._store.locked():
            try:
                state = self._store.state
                domain = state.domain_for(validate_site_name(state.name_for(site)))
            except SldError as e:
                return self._fail("tag_site", result, e)
            conf = self._store.get_site_config(domain) or SiteConfig()
            conf.tags = list(dict.fromkeys(tag for tag in tags if tag))
            conf.category = category
            try:
                self._store.set_site_config(domain, conf)
            except SldError as e:
                return self._fail("tag_site", result, e)
            result.state_changed = True
        self._events.publish(EventType.SITES_UPDATED, domain)
        return result

    # Reconciliation

    def reconcile(self, regenerate_certificates: bool = False) -> WorkflowResult:
        """Re-apply the current state without changing it."""
        with self._store.locked():
            return self._reconcile_locked(
                WorkflowResult(), regenerate_certificates=regenerate_certificates
            )

    def list_sites(self) -> list[ResolvedSite]:
        """
        Resolve every servable site from the document on disk.

        Raises:
            StoreError: If the state document cannot be read
        """
        with self._store.locked():
            self._store.load()
            state = self._store.snapshot()
        return SiteIndex(state, self._logger).list_sites()

    # Internals

    def _run_workflow(
        self,
        name: str,
        mutate: Callable[[WorkflowResult], None],
        domains_changed: bool,
        validate: Optional[Callable[[], None]] = None,
    ) -> WorkflowResult:
        result = WorkflowResult()
        with self._store.locked():
            try:
                if validate is not None:
                    validate()
                mutate(result)
            except SldError as e:
                return self._fail(name, result, e)
            result.state_changed = True

            if self._logger:
                self._logger.info(COMPONENT, f"Workflow {name} recorded")
            if domains_changed:
                self._events.publish(EventType.SITES_UPDATED, name)

            state = self._store.snapshot()
            return self._reconcile_locked(
                result, regenerate_certificates=domains_changed and state.secure
            )

    def _reconcile_locked(
        self, result: WorkflowResult, regenerate_certificates: bool
    ) -> WorkflowResult:
        state = self._store.snapshot()
        self._sync_hosts(state, result)

        try:
            if regenerate_certificates and state.secure:
                self._cert_collector.regenerate(state)
            synthesis = self._synthesizer.apply(state)
        except SldError as e:
            return self._fail("reconcile", result, e)

        result.warnings.extend(synthesis.warnings)
        result.reconciled = True
        self._events.publish(EventType.CONFIG_CHANGED, synthesis.isolated_domains)
        self._log_warnings(result)
        return result

    def _sync_hosts(self, state: State, result: WorkflowResult) -> None:
        domains = [state.domain_for(self._config.runtime.dashboard_subdomain)]
        domains.extend(SiteIndex(state, self._logger).hostnames())
        try:
            self._adapter.update_hosts_file(domains)
        except AdapterError as e:
            result.warnings.append(f"Failed to update hosts file: {e.message}")

    def _fail(self, workflow: str, result: WorkflowResult, error: SldError) -> WorkflowResult:
        result.error = error
        if self._logger:
            self._logger.log_error(
                COMPONENT,
                f"Workflow {workflow} failed",
                error=error,
                additional_data={"state_changed": result.state_changed},
            )
        return result

    def _log_warnings(self, result: WorkflowResult) -> None:
        if self._logger:
            for warning in result.warnings:
                self._logger.warn(COMPONENT, warning)

    def _require_directory(self, path: str) -> None:
        if not os.path.isdir(path):
            raise ValidationError(
                code="not_a_directory",
                message=f"{path} is not a directory",
                details={"path": path},
            )

    def _ensure_php_socket(self, version: str) -> str:
        try:
            return self._adapter.socket_for(version)
        except AdapterError:
            if self._logger:
                self._logger.info(COMPONENT, "PHP socket missing, installing", {
                    "version": version,
                })
        self._adapter.install_php_version(version)
        return self._adapter.socket_for(version)

    def _installed_versions(self, result: WorkflowResult) -> list[str]:
        try:
            return self._adapter.installed_versions_descending()
        except AdapterError as e:
            result.warnings.append(f"Could not list installed PHP versions: {e.message}")
            return []

    def _park(self, root: str, result: WorkflowResult) -> None:
        self._store.add_path(root)
        result.state_changed = True
        self._scan_root(root, self._installed_versions(result), result)

    def _scan_root(self, root: str, installed: list[str], result: WorkflowResult) -> None:
        state = self._store.state
        index = SiteIndex(state, self._logger)
        linked_paths = set(state.links.values())
        for name in list_subdirectories(root, self._logger):
            project = os.path.join(root, name)
            if project in linked_paths:
                continue
            # Only the directory that serves the domain is detected
            if index.find_project_path(state.domain_for(name)) != project:
                continue
            self._discover(name, project, installed, result)

    def _discover(
        self, name: str, path: str, installed: list[str], result: WorkflowResult
    ) -> Optional[SiteOverride]:
        """Detect one project and store an override when it has an opinion."""
        record = self._detector.detect(path)
        result.warnings.extend(record.errors)
        if not record.has_opinion():
            return None

        state = self._store.state
        domain = state.domain_for(name)
        resolved = self._resolver.resolve(record.php_constraint, installed, state.php_version)
        existing = self._store.get_site_config(domain) or SiteConfig()

        self._store.set_site_config(domain, SiteConfig(
            php_version=resolved,
            web_root=record.web_root,
            node_version=record.node_constraint,
            tags=existing.tags,
            category=existing.category,
        ))

        override = SiteOverride(
            domain=domain,
            resolved_version=resolved,
            web_root=record.web_root,
            tags=list(existing.tags),
            category=existing.category,
        )
        result.overrides.append(override)
        if self._logger:
            self._logger.info(COMPONENT, "Detected project requirements", {
                "domain": domain,
                "constraint": record.php_constraint,
                "resolved": resolved or "default",
                "web_root": record.web_root,
            })
        return override
