"""
Certificate-Domain Collector.

Works out every hostname the shared certificate bundle must cover and asks
the adapter to issue it.
"""

import os
from typing import Optional

from .adapters.base import SystemAdapter
from .audit_logger import AuditLogger
from .config import EngineConfig
from .models import State
from .sites import list_subdirectories

COMPONENT = "CertificateDomainCollector"


class CertificateDomainCollector:
    def __init__(
        self,
        adapter: SystemAdapter,
        config: EngineConfig,
        logger: Optional[AuditLogger] = None,
    ) -> None:
        self._adapter = adapter
        self._config = config
        self._logger = logger

    def collect_domains(self, state: State) -> list[str]:
        """
        Domains for the certificate, in a stable order without duplicates.

        The dashboard domain and the TLD wildcard come first, then linked
        sites by name, then the subdirectories of each parked root. Ignored
        paths still get a name; unreadable roots are skipped.
        """
        domains = [
            state.domain_for(self._config.runtime.dashboard_subdomain),
            f"*.{state.tld}",
        ]
        domains.extend(state.domain_for(name) for name in sorted(state.links))
        for root in state.paths:
            for name in list_subdirectories(root, self._logger):
                domains.append(state.domain_for(name))

        unique: list[str] = []
        seen: set[str] = set()
        for domain in domains:
            if domain not in seen:
                seen.add(domain)
                unique.append(domain)
        return unique

    def regenerate(self, state: State) -> list[str]:
        """
        Issue a fresh bundle for the current domains.

        Returns:
            The domains covered

        Raises:
            AdapterError: If the certificate tool fails
        """
        domains = self.collect_domains(state)
        self._adapter.generate_certificate(domains)
        if self._logger:
            self._logger.info(COMPONENT, "Certificate bundle regenerated", {
                "domains": len(domains),
                "cert_file": os.fspath(self._config.paths.cert_file),
            })
        return domains
