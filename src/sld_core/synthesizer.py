"""
Virtual-Host Synthesizer.

Builds the complete nginx document from a state snapshot: the shared
wildcard block, add-on fragments, then one isolated block per site whose
override asks for a different PHP version or web root. Problems with a
single site become warnings; only template errors abort synthesis.
"""

import os
from typing import Optional

from .addons import AddonRegistry
from .adapters.base import SystemAdapter
from .audit_logger import AuditLogger
from .config import EngineConfig
from .exceptions import AdapterError, ValidationError
from .models import SiteConfig, State, SynthesisResult
from .sites import SiteIndex
from .templates import (
    BASE_HTTP,
    BASE_TLS,
    ISOLATED_HTTP,
    ISOLATED_REDIRECT,
    ISOLATED_TLS,
    SECTION_ADDONS,
    SECTION_ISOLATED,
    addon_fragment_header,
    listen_lines,
)
from .validation import validate_site_name
from .version_resolver import version_at_least

COMPONENT = "VirtualHostSynthesizer"


class VirtualHostSynthesizer:
    """Turns state into proxy configuration and hands it to the adapter."""

    def __init__(
        self,
        adapter: SystemAdapter,
        config: EngineConfig,
        addons: Optional[AddonRegistry] = None,
        logger: Optional[AuditLogger] = None,
    ) -> None:
        self._adapter = adapter
        self._config = config
        self._addons = addons
        self._logger = logger

    def _default_socket(self, state: State) -> str:
        if state.php_version:
            try:
                return self._adapter.socket_for(state.php_version)
            except AdapterError:
                pass
        return self._config.runtime.fallback_php_socket

    def _needs_isolation(self, state: State, conf: SiteConfig) -> bool:
        if conf.php_version and conf.php_version != state.php_version:
            return True
        return bool(conf.web_root)

    def _render_base(self, state: State, socket: str) -> str:
        paths = self._config.paths
        values = {
            "RUNTIME_PATH": str(paths.runtime_dir),
            "LISTEN_HTTP": listen_lines(state.port or "80"),
            "PHP_SOCKET": socket,
            "DASHBOARD_DOMAIN": state.domain_for(self._config.runtime.dashboard_subdomain),
            "TLD": state.tld,
        }
        if not state.secure:
            return BASE_HTTP.render(**values)
        return BASE_TLS.render(
            LISTEN_HTTPS=listen_lines(state.port, tls=True),
            CERT_FILE=str(paths.cert_file),
            KEY_FILE=str(paths.key_file),
            **values,
        )

    def _render_isolated(self, state: State, domain: str, web_root: str, socket: str) -> str:
        listen_http = listen_lines(state.port or "80")
        if not state.secure:
            return ISOLATED_HTTP.render(
                LISTEN_HTTP=listen_http,
                DOMAIN=domain,
                WEB_ROOT=web_root,
                PHP_SOCKET=socket,
            )

        paths = self._config.paths
        redirect = ISOLATED_REDIRECT.render(LISTEN_HTTP=listen_http, DOMAIN=domain)
        tls = ISOLATED_TLS.render(
            LISTEN_HTTPS=listen_lines(state.port, tls=True),
            DOMAIN=domain,
            WEB_ROOT=web_root,
            CERT_FILE=str(paths.cert_file),
            KEY_FILE=str(paths.key_file),
            PHP_SOCKET=socket,
        )
        return redirect + tls

    def _isolated_blocks(self, state: State, warnings: list[str]) -> tuple[str, list[str]]:
        index = SiteIndex(state, self._logger)
        baseline = self._config.runtime.min_supported_php
        blocks: list[str] = []
        domains: list[str] = []

        for domain in sorted(state.site_configs):
            conf = state.site_configs[domain]
            if not self._needs_isolation(state, conf):
                continue

            try:
                validate_site_name(state.name_for(domain))
            except ValidationError:
                warnings.append(f"Invalid site name in {domain}; skipping isolation")
                continue

            project_path = index.find_project_path(domain)
            if project_path is None:
                warnings.append(f"No project directory found for {domain}; skipping isolation")
                continue

            version = conf.php_version or state.php_version
            if version:
                try:
                    socket = self._adapter.socket_for(version)
                except AdapterError:
                    if version_at_least(version, baseline):
                        warnings.append(
                            f"PHP socket for {version} not found; skipping isolation for {domain}"
                        )
                    continue
            else:
                socket = self._config.runtime.fallback_php_socket

            web_root = project_path
            if conf.web_root:
                web_root = os.path.join(project_path, conf.web_root)
            if any(c in web_root + domain for c in ('"', "\n")):
                warnings.append(f"Unsupported characters in path of {domain}; skipping isolation")
                continue

            blocks.append(self._render_isolated(state, domain, web_root, socket))
            domains.append(domain)

        return "".join(blocks), domains

    def _addon_section(self, state: State, warnings: list[str]) -> str:
        if self._addons is None:
            return ""
        fragments, addon_warnings = self._addons.collect_fragments(state.enabled_addons)
        warnings.extend(addon_warnings)
        return "".join(
            f"\n{addon_fragment_header(addon_name, fragment_name)}\n{text}\n"
            for addon_name, fragment_name, text in fragments
        )

    def synthesize(self, state: State) -> SynthesisResult:
        """
        Compose the proxy document for ``state``.

        Output depends only on the state, the socket lookups and the enabled
        add-ons, so two calls over the same inputs are byte-identical.

        Raises:
            TemplateError: If a template cannot be rendered
        """
        warnings: list[str] = []
        base = self._render_base(state, self._default_socket(state))
        addon_section = self._addon_section(state, warnings)
        isolated, isolated_domains = self._isolated_blocks(state, warnings)

        document = (
            base
            + "\n" + SECTION_ADDONS + "\n"
            + addon_section
            + "\n" + SECTION_ISOLATED + "\n"
            + isolated
        )

        if self._logger:
            for warning in warnings:
                self._logger.warn(COMPONENT, warning)
            self._logger.debug(COMPONENT, "Synthesized proxy configuration", {
                "isolated": isolated_domains,
                "warnings": len(warnings),
            })

        return SynthesisResult(
            document=document,
            warnings=warnings,
            isolated_domains=isolated_domains,
        )

    def apply(self, state: State) -> SynthesisResult:
        """
        Synthesize, write and reload.

        Raises:
            TemplateError: If synthesis fails (nothing is written)
            AdapterError: If writing or reloading fails
        """
        result = self.synthesize(state)
        self._adapter.write_proxy_config(result.document)
        self._adapter.reload_proxy()
        if self._logger:
            self._logger.info(COMPONENT, "Proxy configuration applied", {
                "isolated_sites": len(result.isolated_domains),
            })
        return result
