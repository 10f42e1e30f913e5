"""
Add-on registry and the configuration-contribution hook.

An add-on is an optional service that can be enabled per machine. Add-ons
that also implement ``ConfigContributor`` hand named nginx fragments to the
synthesizer. The registry iterates add-ons in sorted identifier order and
fragments in sorted name order so the generated document is stable.
"""

from abc import abstractmethod
from typing import TYPE_CHECKING, Optional, Protocol, runtime_checkable

from .audit_logger import AuditLogger
from .enums import AddonStatus
from .exceptions import AddonError

if TYPE_CHECKING:
    from .state_store import StateStore

COMPONENT = "AddonRegistry"


@runtime_checkable
class Addon(Protocol):
    """Protocol every add-on implements."""

    id: str
    name: str
    description: str
    version: str

    @abstractmethod
    def status(self) -> AddonStatus:
        ...

    @abstractmethod
    def is_installed(self) -> bool:
        ...

    @abstractmethod
    def start(self) -> None:
        """Start the add-on. Raises on failure."""
        ...

    @abstractmethod
    def stop(self) -> None:
        """Stop the add-on. Raises on failure."""
        ...


@runtime_checkable
class ConfigContributor(Protocol):
    """Capability of add-ons that contribute proxy configuration."""

    @abstractmethod
    def nginx_config(self) -> dict[str, str]:
        """
        Return named configuration fragments.

        Returns:
            Mapping of fragment name to nginx text (empty when inactive)
        """
        ...


class AddonRegistry:
    """Identifier → add-on mapping with deterministic iteration."""

    def __init__(self, logger: Optional[AuditLogger] = None) -> None:
        self._addons: dict[str, Addon] = {}
        self._logger = logger

    def register(self, addon: Addon) -> None:
        """Register an add-on, replacing any previous one with the same id."""
        self._addons[addon.id] = addon

    def get(self, addon_id: str) -> Optional[Addon]:
        return self._addons.get(addon_id)

    def all(self) -> list[Addon]:
        """Registered add-ons sorted by identifier."""
        return [self._addons[key] for key in sorted(self._addons)]

    def set_enabled(self, addon_id: str, enabled: bool, store: "StateStore") -> bool:
        """
        Start or stop an add-on and persist the choice.

        The add-on is started (or stopped) before the flag is written, so a
        failed start leaves the persisted flag unchanged.

        Returns:
            False when no add-on with that id is registered

        Raises:
            AddonError: If the add-on fails to start or stop
        """
        addon = self.get(addon_id)
        if addon is None:
            return False

        try:
            if enabled:
                addon.start()
            else:
                addon.stop()
        except Exception as e:
            raise AddonError(
                code="start_failed" if enabled else "stop_failed",
                message=f"Add-on {addon_id} failed to {'start' if enabled else 'stop'}: {e}",
                details={"addon": addon_id},
            ) from e

        store.set_addon_enabled(addon_id, enabled)
        if self._logger:
            self._logger.info(
                COMPONENT,
                f"Add-on {'enabled' if enabled else 'disabled'}",
                {"addon": addon_id},
            )
        return True

    def start_enabled(self, store: "StateStore") -> list[str]:
        """
        Start every registered add-on whose id is enabled in the state.

        Returns:
            Identifiers of the add-ons that failed to start
        """
        failed: list[str] = []
        enabled = set(store.get_enabled_addons())
        for addon in self.all():
            if addon.id not in enabled:
                continue
            try:
                addon.start()
            except Exception as e:
                failed.append(addon.id)
                if self._logger:
                    self._logger.log_error(
                        COMPONENT,
                        "Failed to auto-start add-on",
                        error=e,
                        additional_data={"addon": addon.id},
                    )
        return failed

    def collect_fragments(
        self, enabled_ids: list[str]
    ) -> tuple[list[tuple[str, str, str]], list[str]]:
        """
        Gather configuration fragments from enabled contributors.

        Args:
            enabled_ids: Identifiers enabled in the state

        Returns:
            ``(fragments, warnings)`` where each fragment is
            ``(addon_name, fragment_name, text)``
        """
        fragments: list[tuple[str, str, str]] = []
        warnings: list[str] = []
        enabled = set(enabled_ids)

        for addon in self.all():
            if addon.id not in enabled or not isinstance(addon, ConfigContributor):
                continue
            try:
                contributed = addon.nginx_config()
            except Exception as e:
                warnings.append(f"Add-on {addon.id} failed to provide configuration: {e}")
                continue

            if not contributed:
                continue
            if not isinstance(contributed, dict):
                warnings.append(f"Add-on {addon.id} returned an unrecognized configuration")
                continue

            for fragment_name in sorted(contributed, key=str):
                text = contributed[fragment_name]
                if not isinstance(fragment_name, str) or not isinstance(text, str):
                    warnings.append(
                        f"Add-on {addon.id} fragment {fragment_name!r} dropped: not text"
                    )
                    continue
                fragments.append((addon.name, fragment_name, text))

        if self._logger:
            for warning in warnings:
                self._logger.warn(COMPONENT, warning)
        return fragments, warnings


class ExampleProxyAddon:
    """
    Built-in add-on proxying ``/api/`` to a local backend while running.

    Fragments land at http level, so the location lives in its own server
    block on ``listen`` rather than inside the sites' blocks.
    """

    id = "example-proxy"
    name = "Example Proxy"
    description = "Serves a /api proxy to a local backend on its own port"
    version = "1.0.0"

    def __init__(
        self,
        proxy_target: str = "http://127.0.0.1:3000",
        listen: str = "127.0.0.1:8099",
    ) -> None:
        self.proxy_target = proxy_target
        self.listen = listen
        self._status = AddonStatus.STOPPED

    def status(self) -> AddonStatus:
        return self._status

    def is_installed(self) -> bool:
        return True

    def start(self) -> None:
        self._status = AddonStatus.RUNNING

    def stop(self) -> None:
        self._status = AddonStatus.STOPPED

    def nginx_config(self) -> dict[str, str]:
        if self._status != AddonStatus.RUNNING:
            return {}
        return {
            "api-proxy": (
                "server {\n"
                f"    listen {self.listen};\n"
                "    server_name localhost;\n"
                "\n"
                "    location /api/ {\n"
                f"        proxy_pass {self.proxy_target};\n"
                "        proxy_http_version 1.1;\n"
                "        proxy_set_header Upgrade $http_upgrade;\n"
                "        proxy_set_header Connection 'upgrade';\n"
                "        proxy_set_header Host $host;\n"
                "        proxy_set_header X-Real-IP $remote_addr;\n"
                "        proxy_set_header X-Forwarded-For $proxy_add_x_forwarded_for;\n"
                "        proxy_set_header X-Forwarded-Proto $scheme;\n"
                "        proxy_cache_bypass $http_upgrade;\n"
                "    }\n"
                "}"
            ),
        }


def default_registry(logger: Optional[AuditLogger] = None) -> AddonRegistry:
    """Registry holding the built-in add-ons."""
    registry = AddonRegistry(logger)
    registry.register(ExampleProxyAddon())
    return registry
