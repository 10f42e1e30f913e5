"""
System adapter contract.

The engine never touches the proxy, the certificate tool, the hosts file or
package managers directly; it goes through an object implementing
``SystemAdapter``. Every operation that fails raises ``AdapterError``.
"""

from abc import abstractmethod
from pathlib import Path
from typing import Protocol, runtime_checkable

from ..models import ServiceStatus


@runtime_checkable
class SystemAdapter(Protocol):
    """Operating-system capabilities the engine relies on."""

    @abstractmethod
    def installed_versions_descending(self) -> list[str]:
        """Installed PHP versions, newest first."""
        ...

    @abstractmethod
    def socket_for(self, version: str) -> str:
        """
        Path of the FPM socket serving ``version``.

        Raises:
            AdapterError: If no socket exists for that version
        """
        ...

    @abstractmethod
    def default_php_version(self) -> str:
        """Version of the system ``php`` binary, or ``""`` when unknown."""
        ...

    @abstractmethod
    def write_proxy_config(self, text: str) -> None:
        ...

    @abstractmethod
    def reload_proxy(self) -> None:
        ...

    @abstractmethod
    def proxy_config_path(self) -> Path:
        ...

    @abstractmethod
    def generate_certificate(self, domains: list[str]) -> None:
        """Issue one certificate bundle covering every domain."""
        ...

    @abstractmethod
    def update_hosts_file(self, domains: list[str]) -> None:
        ...

    @abstractmethod
    def install_php_version(self, version: str) -> None:
        """Best-effort install; callers re-check the socket afterwards."""
        ...

    @abstractmethod
    def install_node_version(self, version: str) -> None:
        ...

    @abstractmethod
    def service_statuses(self) -> list[ServiceStatus]:
        ...
