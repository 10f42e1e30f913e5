"""
Linux (Debian/Ubuntu) implementation of the system adapter.

Shells out to dpkg-query, nginx, systemctl, mkcert, apt-get and fnm. Every
command runs without a shell and with the configured timeout; privileged
steps are prefixed with ``sudo`` when enabled and not already root.
"""

import os
import re
import shutil
import subprocess
import tempfile
from pathlib import Path
from typing import Callable, Optional, Sequence

from ..audit_logger import AuditLogger
from ..config import EngineConfig
from ..exceptions import AdapterError
from ..hosts_file import replace_block
from ..models import ServiceStatus
from ..version_resolver import sort_versions_descending

COMPONENT = "LinuxAdapter"

DEFAULT_SOCKET_DIRS = ("/run/php", "/var/run/php")
FPM_PACKAGE_PATTERN = re.compile(r"^php(\d+\.\d+)-fpm$")
FPM_SOCKET_PATTERN = re.compile(r"^php(\d+\.\d+)-fpm\.sock$")
PHP_EXTENSIONS = (
    "mysql", "mbstring", "xml", "curl", "zip", "sqlite3", "bcmath", "intl",
)
CERT_EXTRA_NAMES = ("localhost", "127.0.0.1", "::1")

Runner = Callable[..., subprocess.CompletedProcess]


def _atomic_write(path: Path, text: str) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    tmp_path: Optional[Path] = None
    try:
        with tempfile.NamedTemporaryFile(
            "w",
            encoding="utf-8",
            dir=str(path.parent),
            prefix=f".{path.name}.",
            delete=False,
        ) as f:
            tmp_path = Path(f.name)
            f.write(text)
            f.flush()
            os.fsync(f.fileno())
        os.chmod(tmp_path, 0o644)
        os.replace(tmp_path, path)
        tmp_path = None
    finally:
        if tmp_path is not None and tmp_path.exists():
            tmp_path.unlink()


class LinuxAdapter:
    """System adapter for Debian-family distributions."""

    def __init__(
        self,
        config: EngineConfig,
        logger: Optional[AuditLogger] = None,
        runner: Optional[Runner] = None,
        socket_dirs: Sequence[str] = DEFAULT_SOCKET_DIRS,
    ) -> None:
        """
        Initialize the adapter.

        Args:
            config: Engine configuration (paths and command settings)
            logger: Optional logger
            runner: Replacement for ``subprocess.run``
            socket_dirs: Directories searched for FPM sockets, in order
        """
        self._config = config
        self._logger = logger
        self._runner = runner or subprocess.run
        self._socket_dirs = tuple(socket_dirs)

    # Command helpers

    def _needs_sudo(self) -> bool:
        return self._config.adapter.use_sudo and os.geteuid() != 0

    def _privileged(self, args: Sequence[str]) -> list[str]:
        return ["sudo", *args] if self._needs_sudo() else list(args)

    def _run(self, args: Sequence[str], code: str) -> subprocess.CompletedProcess:
        """
        Run a command, raising AdapterError on any failure.

        Args:
            args: Command and arguments
            code: Error code used when the command fails
        """
        try:
            return self._runner(
                list(args),
                capture_output=True,
                text=True,
                check=True,
                timeout=self._config.adapter.command_timeout_seconds,
            )
        except subprocess.CalledProcessError as e:
            raise AdapterError(
                code=code,
                message=f"Command failed: {' '.join(args)}",
                details={
                    "returncode": e.returncode,
                    "stderr": (e.stderr or "").strip(),
                },
            )
        except subprocess.TimeoutExpired:
            raise AdapterError(
                code="timeout",
                message=f"Command timed out: {' '.join(args)}",
                details={"timeout_seconds": self._config.adapter.command_timeout_seconds},
            )
        except OSError as e:
            raise AdapterError(
                code=code,
                message=f"Cannot execute {args[0]}: {e}",
                details={"command": list(args)},
            )

    def _write_file(self, path: Path, text: str, code: str) -> None:
        """Write a file, going through ``sudo mv`` when privileges are needed."""
        try:
            if not self._needs_sudo():
                _atomic_write(path, text)
                return

            with tempfile.NamedTemporaryFile(
                "w", encoding="utf-8", prefix="sld-", delete=False
            ) as f:
                f.write(text)
                staged = f.name
            os.chmod(staged, 0o644)
        except OSError as e:
            raise AdapterError(
                code=code,
                message=f"Failed to write {path}: {e}",
                details={"file_path": str(path)},
            )
        try:
            self._run(self._privileged(["mv", staged, str(path)]), code)
        finally:
            if os.path.exists(staged):
                os.unlink(staged)

    # Runtime discovery

    def installed_versions_descending(self) -> list[str]:
        versions: list[str] = []
        try:
            result = self._run(
                ["dpkg-query", "-W", "-f=${Package} ${Status}\n", "php*-fpm"],
                "list_failed",
            )
            for line in result.stdout.splitlines():
                parts = line.split()
                if not parts or not line.endswith("ok installed"):
                    continue
                match = FPM_PACKAGE_PATTERN.match(parts[0])
                if match and match.group(1) not in versions:
                    versions.append(match.group(1))
        except AdapterError as e:
            if self._logger:
                self._logger.debug(COMPONENT, "dpkg-query unavailable, scanning sockets", {
                    "error": e.message,
                })

        if not versions:
            versions = self._versions_from_sockets()
        return sort_versions_descending(versions)

    def _versions_from_sockets(self) -> list[str]:
        versions: list[str] = []
        for directory in self._socket_dirs:
            try:
                names = os.listdir(directory)
            except OSError:
                continue
            for name in names:
                match = FPM_SOCKET_PATTERN.match(name)
                if match and match.group(1) not in versions:
                    versions.append(match.group(1))
        return versions

    def socket_for(self, version: str) -> str:
        checked: list[str] = []
        for directory in self._socket_dirs:
            candidate = os.path.join(directory, f"php{version}-fpm.sock")
            checked.append(candidate)
            if os.path.exists(candidate):
                return candidate
        raise AdapterError(
            code="socket_not_found",
            message=(
                f"PHP {version} socket not found. "
                f"Is php{version}-fpm installed and running?"
            ),
            details={"version": version, "checked": checked},
        )

    def default_php_version(self) -> str:
        try:
            result = self._run(["php", "-r", "echo PHP_VERSION;"], "php_missing")
        except AdapterError:
            installed = self.installed_versions_descending()
            return installed[0] if installed else ""
        parts = result.stdout.strip().split(".")
        if len(parts) >= 2:
            return f"{parts[0]}.{parts[1]}"
        return result.stdout.strip()

    # Proxy

    def proxy_config_path(self) -> Path:
        return self._config.paths.nginx_available

    def write_proxy_config(self, text: str) -> None:
        available = self._config.paths.nginx_available
        enabled = self._config.paths.nginx_enabled
        self._write_file(available, text, "proxy_write_failed")

        if not os.path.lexists(enabled):
            if self._needs_sudo():
                self._run(
                    self._privileged(["ln", "-s", str(available), str(enabled)]),
                    "proxy_write_failed",
                )
            else:
                try:
                    enabled.parent.mkdir(parents=True, exist_ok=True)
                    os.symlink(available, enabled)
                except OSError as e:
                    raise AdapterError(
                        code="proxy_write_failed",
                        message=f"Failed to enable {available}: {e}",
                        details={"link": str(enabled)},
                    )

        if self._logger:
            self._logger.info(COMPONENT, "Wrote proxy configuration", {
                "file_path": str(available),
                "bytes": len(text.encode("utf-8")),
            })

    def reload_proxy(self) -> None:
        """Test the configuration, reload, and restart if reload fails."""
        self._run(self._privileged(["nginx", "-t"]), "proxy_config_invalid")
        try:
            self._run(self._privileged(["nginx", "-s", "reload"]), "proxy_reload_failed")
        except AdapterError as e:
            if self._logger:
                self._logger.warn(COMPONENT, "nginx reload failed, restarting", {
                    "error": e.message,
                })
            self._run(
                self._privileged(["systemctl", "restart", "nginx"]),
                "proxy_reload_failed",
            )

    # Certificates

    def generate_certificate(self, domains: list[str]) -> None:
        try:
            self._run(["mkcert", "-install"], "ca_install_failed")
        except AdapterError as e:
            if self._logger:
                self._logger.warn(COMPONENT, "mkcert -install failed", {"error": e.message})

        names: list[str] = []
        for name in [*domains, *CERT_EXTRA_NAMES]:
            if name not in names:
                names.append(name)

        paths = self._config.paths
        with tempfile.TemporaryDirectory(prefix="sld-certs-") as staging:
            cert_tmp = os.path.join(staging, paths.cert_file.name)
            key_tmp = os.path.join(staging, paths.key_file.name)
            self._run(
                ["mkcert", "-cert-file", cert_tmp, "-key-file", key_tmp, *names],
                "cert_generation_failed",
            )

            if self._needs_sudo():
                self._run(
                    self._privileged(["mkdir", "-p", str(paths.certs_dir)]),
                    "cert_install_failed",
                )
                for source, target in ((cert_tmp, paths.cert_file), (key_tmp, paths.key_file)):
                    self._run(self._privileged(["cp", source, str(target)]), "cert_install_failed")
                    self._run(
                        self._privileged(["chmod", "644", str(target)]),
                        "cert_install_failed",
                    )
            else:
                try:
                    paths.certs_dir.mkdir(parents=True, exist_ok=True)
                    shutil.copyfile(cert_tmp, paths.cert_file)
                    shutil.copyfile(key_tmp, paths.key_file)
                    os.chmod(paths.cert_file, 0o644)
                    os.chmod(paths.key_file, 0o644)
                except OSError as e:
                    raise AdapterError(
                        code="cert_install_failed",
                        message=f"Failed to install certificates: {e}",
                        details={"certs_dir": str(paths.certs_dir)},
                    )

        if self._logger:
            self._logger.info(COMPONENT, "Generated certificate bundle", {
                "domains": len(names),
                "cert_file": str(paths.cert_file),
            })

    # Hosts file

    def update_hosts_file(self, domains: list[str]) -> None:
        hosts_path = self._config.paths.hosts_file
        try:
            content = hosts_path.read_text(encoding="utf-8")
        except FileNotFoundError:
            content = ""
        except OSError as e:
            raise AdapterError(
                code="hosts_read_failed",
                message=f"Failed to read hosts file: {e}",
                details={"file_path": str(hosts_path)},
            )

        updated = replace_block(content, domains)
        if updated == content:
            return
        self._write_file(hosts_path, updated, "hosts_write_failed")

    # Installs

    def install_php_version(self, version: str) -> None:
        packages = [f"php{version}-fpm"]
        packages.extend(f"php{version}-{ext}" for ext in PHP_EXTENSIONS)
        if self._logger:
            self._logger.info(COMPONENT, "Installing PHP", {"version": version})
        self._run(
            self._privileged(["apt-get", "install", "-y", *packages]),
            "php_install_failed",
        )

    def install_node_version(self, version: str) -> None:
        if shutil.which("fnm") is None:
            raise AdapterError(
                code="node_install_failed",
                message="fnm is not installed",
                details={"version": version},
            )
        if self._logger:
            self._logger.info(COMPONENT, "Installing Node.js", {"version": version})
        self._run(["fnm", "install", version], "node_install_failed")

    # Services

    def _is_active(self, service: str) -> bool:
        try:
            self._run(["systemctl", "is-active", "--quiet", service], "status_failed")
        except AdapterError:
            return False
        return True

    def service_statuses(self) -> list[ServiceStatus]:
        statuses = [
            ServiceStatus(name="nginx", running=self._is_active("nginx")),
            ServiceStatus(name="dnsmasq", running=self._is_active("dnsmasq")),
        ]
        for version in self.installed_versions_descending():
            service = f"php{version}-fpm"
            statuses.append(
                ServiceStatus(name=service, running=self._is_active(service), version=version)
            )
        return statuses
