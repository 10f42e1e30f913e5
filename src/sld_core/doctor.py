"""
Doctor: health checks for a local sld installation.

Checks that the state document loads, the proxy configuration exists, the
default PHP socket is present, the managed services run, and the dashboard
domain answers over HTTP. Network problems are warnings, not failures.
"""

import time
from dataclasses import dataclass, field
from typing import Optional

import httpx

from .adapters.base import SystemAdapter
from .audit_logger import AuditLogger
from .config import EngineConfig
from .enums import HealthStatus
from .exceptions import AdapterError, StoreError
from .models import HealthCheck, State
from .state_store import StateStore

COMPONENT = "Doctor"


@dataclass
class DoctorReport:
    """All health checks of one doctor run."""

    checks: list[HealthCheck] = field(default_factory=list)
    total_duration_ms: float = 0.0

    @property
    def success(self) -> bool:
        return all(check.status != HealthStatus.FAIL for check in self.checks)

    @property
    def failed(self) -> list[HealthCheck]:
        return [c for c in self.checks if c.status == HealthStatus.FAIL]

    @property
    def warnings(self) -> list[HealthCheck]:
        return [c for c in self.checks if c.status == HealthStatus.WARN]

    def to_dict(self) -> dict:
        return {
            "success": self.success,
            "total_duration_ms": self.total_duration_ms,
            "checks": [
                {"name": c.name, "status": c.status.value, "message": c.message}
                for c in self.checks
            ],
        }


class Doctor:
    """Runs the health checks against the live system."""

    def __init__(
        self,
        config: EngineConfig,
        store: StateStore,
        adapter: SystemAdapter,
        logger: Optional[AuditLogger] = None,
        http_client: Optional[httpx.Client] = None,
    ) -> None:
        """
        Initialize the doctor.

        Args:
            config: Engine configuration
            store: State store to check
            adapter: System adapter to query
            logger: Optional logger
            http_client: Client used for the dashboard check (one with the
                         configured timeout is created when omitted)
        """
        self._config = config
        self._store = store
        self._adapter = adapter
        self._logger = logger
        self._http_client = http_client
        self._state = State()

    def run(self) -> DoctorReport:
        start = time.monotonic()
        report = DoctorReport()

        state_check = self._check_state()
        report.checks.append(state_check)
        # Later checks fall back to defaults when the document is unreadable
        self._state = State() if state_check.status == HealthStatus.FAIL else self._store.snapshot()

        report.checks.append(self._check_proxy_config())
        report.checks.append(self._check_php_socket())
        report.checks.extend(self._check_services())
        report.checks.append(self._check_dashboard())

        report.total_duration_ms = (time.monotonic() - start) * 1000
        if self._logger:
            self._logger.info(COMPONENT, "Health check completed", {
                "success": report.success,
                "failed": [c.name for c in report.failed],
                "warnings": [c.name for c in report.warnings],
            })
        return report

    def _check_state(self) -> HealthCheck:
        try:
            state = self._store.load()
        except StoreError as e:
            return HealthCheck("state", HealthStatus.FAIL, e.message)
        return HealthCheck(
            "state",
            HealthStatus.PASS,
            f"{len(state.paths)} parked path(s), {len(state.links)} link(s)",
        )

    def _check_proxy_config(self) -> HealthCheck:
        path = self._adapter.proxy_config_path()
        if path.exists():
            return HealthCheck("proxy_config", HealthStatus.PASS, str(path))
        return HealthCheck("proxy_config", HealthStatus.FAIL, f"{path} is missing")

    def _check_php_socket(self) -> HealthCheck:
        version = self._state.php_version
        if not version:
            try:
                version = self._adapter.default_php_version()
            except AdapterError as e:
                return HealthCheck("php_socket", HealthStatus.WARN, e.message)
        if not version:
            return HealthCheck("php_socket", HealthStatus.WARN, "No PHP version detected")

        try:
            socket = self._adapter.socket_for(version)
        except AdapterError as e:
            return HealthCheck("php_socket", HealthStatus.FAIL, e.message)
        return HealthCheck("php_socket", HealthStatus.PASS, f"PHP {version}: {socket}")

    def _check_services(self) -> list[HealthCheck]:
        try:
            statuses = self._adapter.service_statuses()
        except AdapterError as e:
            return [HealthCheck("services", HealthStatus.WARN, e.message)]

        checks = []
        for status in statuses:
            label = f"{status.name} {status.version}".strip()
            if status.running:
                checks.append(HealthCheck(f"service:{status.name}", HealthStatus.PASS, f"{label} running"))
            else:
                checks.append(HealthCheck(f"service:{status.name}", HealthStatus.WARN, f"{label} not running"))
        return checks

    def dashboard_url(self) -> str:
        state = self._state
        host = state.domain_for(self._config.runtime.dashboard_subdomain)
        if state.secure:
            return f"https://{host}/"
        port = state.port or "80"
        return f"http://{host}/" if port == "80" else f"http://{host}:{port}/"

    def _check_dashboard(self) -> HealthCheck:
        url = self.dashboard_url()
        client = self._http_client or httpx.Client(
            timeout=httpx.Timeout(self._config.doctor.http_timeout_seconds),
            # mkcert roots are not in the default trust store
            verify=False,
            follow_redirects=True,
        )
        try:
            response = client.get(url)
        except httpx.HTTPError as e:
            return HealthCheck("dashboard", HealthStatus.WARN, f"{url} unreachable: {e}")
        finally:
            if self._http_client is None:
                client.close()

        if response.status_code >= 500:
            return HealthCheck(
                "dashboard", HealthStatus.WARN, f"{url} returned HTTP {response.status_code}"
            )
        return HealthCheck("dashboard", HealthStatus.PASS, f"{url} returned HTTP {response.status_code}")
