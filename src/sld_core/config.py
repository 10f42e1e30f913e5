"""
Configuration dataclasses for the sld-core reconciliation engine.

This module defines the filesystem layout the engine writes to, runtime
resolution settings, adapter behaviour, health-check settings and logging,
together with helpers to build a configuration from defaults, the
environment (``.env`` supported) or a JSON file.
"""

import json
import os
import sys
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv

DEFAULT_BASE_DIR = Path("/var/lib/sld")


@dataclass
class PathsConfig:
    """Filesystem locations used by the engine and the Linux adapter."""

    state_file: Path = DEFAULT_BASE_DIR / "state.json"
    runtime_dir: Path = DEFAULT_BASE_DIR / "runtime"
    certs_dir: Path = DEFAULT_BASE_DIR / "certs"
    nginx_available: Path = Path("/etc/nginx/sites-available/sld.conf")
    nginx_enabled: Path = Path("/etc/nginx/sites-enabled/sld.conf")
    hosts_file: Path = Path("/etc/hosts")

    @property
    def cert_file(self) -> Path:
        return self.certs_dir / "dev.pem"

    @property
    def key_file(self) -> Path:
        return self.certs_dir / "dev-key.pem"


@dataclass
class RuntimeConfig:
    """PHP runtime resolution settings."""

    min_supported_php: str = "7.4"
    fallback_php_socket: str = "/run/php/php-fpm.sock"
    dashboard_subdomain: str = "sld"


@dataclass
class AdapterConfig:
    """Behaviour of the OS adapter when it shells out."""

    command_timeout_seconds: float = 120.0
    use_sudo: bool = True


@dataclass
class DoctorConfig:
    """Health-check settings."""

    http_timeout_seconds: float = 3.0


@dataclass
class LoggingConfig:
    """Logging configuration."""

    level: str = "info"
    output_format: str = "text"  # 'json', 'text', 'both'


@dataclass
class EngineConfig:
    """Main configuration combining all sub-configurations."""

    paths: PathsConfig = field(default_factory=PathsConfig)
    runtime: RuntimeConfig = field(default_factory=RuntimeConfig)
    adapter: AdapterConfig = field(default_factory=AdapterConfig)
    doctor: DoctorConfig = field(default_factory=DoctorConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)


def create_default_config(base_dir: Optional[Path] = None) -> EngineConfig:
    """
    Create a default engine configuration.

    Args:
        base_dir: Root for state, runtime assets and certificates
                  (defaults to /var/lib/sld)

    Returns:
        EngineConfig with default settings
    """
    base = Path(base_dir) if base_dir is not None else DEFAULT_BASE_DIR
    return EngineConfig(
        paths=PathsConfig(
            state_file=base / "state.json",
            runtime_dir=base / "runtime",
            certs_dir=base / "certs",
        ),
    )


def _float_env(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return float(raw)
    except ValueError:
        print(f"Ignoring invalid {name}={raw!r}", file=sys.stderr)
        return default


def load_config_from_env(dotenv_path: Optional[Path] = None) -> EngineConfig:
    """
    Build a configuration from ``SLD_*`` environment variables.

    A ``.env`` file is loaded first (existing environment variables win).

    Recognised variables:
        SLD_HOME, SLD_STATE_FILE, SLD_CERTS_DIR, SLD_NGINX_CONFIG,
        SLD_NGINX_ENABLED, SLD_HOSTS_FILE, SLD_MIN_PHP_VERSION,
        SLD_COMMAND_TIMEOUT, SLD_USE_SUDO, SLD_LOG_LEVEL, SLD_LOG_FORMAT
    """
    if dotenv_path is not None:
        load_dotenv(dotenv_path)
    else:
        load_dotenv()

    home = os.getenv("SLD_HOME")
    config = create_default_config(Path(home) if home else None)

    if os.getenv("SLD_STATE_FILE"):
        config.paths.state_file = Path(os.environ["SLD_STATE_FILE"])
    if os.getenv("SLD_CERTS_DIR"):
        config.paths.certs_dir = Path(os.environ["SLD_CERTS_DIR"])
    if os.getenv("SLD_NGINX_CONFIG"):
        config.paths.nginx_available = Path(os.environ["SLD_NGINX_CONFIG"])
    if os.getenv("SLD_NGINX_ENABLED"):
        config.paths.nginx_enabled = Path(os.environ["SLD_NGINX_ENABLED"])
    if os.getenv("SLD_HOSTS_FILE"):
        config.paths.hosts_file = Path(os.environ["SLD_HOSTS_FILE"])
    if os.getenv("SLD_MIN_PHP_VERSION"):
        config.runtime.min_supported_php = os.environ["SLD_MIN_PHP_VERSION"].strip()

    config.adapter.command_timeout_seconds = _float_env(
        "SLD_COMMAND_TIMEOUT", config.adapter.command_timeout_seconds
    )
    use_sudo = os.getenv("SLD_USE_SUDO")
    if use_sudo is not None:
        config.adapter.use_sudo = use_sudo.strip().lower() in ("1", "true", "yes")

    config.logging.level = (os.getenv("SLD_LOG_LEVEL") or config.logging.level).lower()
    config.logging.output_format = (
        os.getenv("SLD_LOG_FORMAT") or config.logging.output_format
    ).lower()
    return config


def load_config_from_file(config_path: Path) -> Optional[EngineConfig]:
    """
    Load configuration from a JSON file.

    Missing sections fall back to defaults.

    Args:
        config_path: Path to the configuration file

    Returns:
        EngineConfig if successful, None otherwise
    """
    try:
        with open(config_path, "r", encoding="utf-8") as f:
            data = json.load(f)

        defaults = EngineConfig()

        paths_data = data.get("paths", {})
        paths = PathsConfig(
            state_file=Path(paths_data.get("state_file", defaults.paths.state_file)),
            runtime_dir=Path(paths_data.get("runtime_dir", defaults.paths.runtime_dir)),
            certs_dir=Path(paths_data.get("certs_dir", defaults.paths.certs_dir)),
            nginx_available=Path(
                paths_data.get("nginx_available", defaults.paths.nginx_available)
            ),
            nginx_enabled=Path(
                paths_data.get("nginx_enabled", defaults.paths.nginx_enabled)
            ),
            hosts_file=Path(paths_data.get("hosts_file", defaults.paths.hosts_file)),
        )

        runtime_data = data.get("runtime", {})
        runtime = RuntimeConfig(
            min_supported_php=runtime_data.get(
                "min_supported_php", defaults.runtime.min_supported_php
            ),
            fallback_php_socket=runtime_data.get(
                "fallback_php_socket", defaults.runtime.fallback_php_socket
            ),
            dashboard_subdomain=runtime_data.get(
                "dashboard_subdomain", defaults.runtime.dashboard_subdomain
            ),
        )

        adapter_data = data.get("adapter", {})
        adapter = AdapterConfig(
            command_timeout_seconds=adapter_data.get(
                "command_timeout_seconds", defaults.adapter.command_timeout_seconds
            ),
            use_sudo=adapter_data.get("use_sudo", defaults.adapter.use_sudo),
        )

        doctor_data = data.get("doctor", {})
        doctor = DoctorConfig(
            http_timeout_seconds=doctor_data.get(
                "http_timeout_seconds", defaults.doctor.http_timeout_seconds
            ),
        )

        logging_data = data.get("logging", {})
        logging_config = LoggingConfig(
            level=logging_data.get("level", defaults.logging.level),
            output_format=logging_data.get("output_format", defaults.logging.output_format),
        )

        return EngineConfig(
            paths=paths,
            runtime=runtime,
            adapter=adapter,
            doctor=doctor,
            logging=logging_config,
        )

    except (json.JSONDecodeError, AttributeError, TypeError) as e:
        print(f"Error loading config: {e}", file=sys.stderr)
        return None
    except FileNotFoundError:
        return None


def save_config_to_file(config: EngineConfig, config_path: Path) -> bool:
    """
    Save configuration to a JSON file.

    Args:
        config: EngineConfig to save
        config_path: Path to save the configuration

    Returns:
        True if successful, False otherwise
    """
    try:
        config_path.parent.mkdir(parents=True, exist_ok=True)

        data = {
            "paths": {
                "state_file": str(config.paths.state_file),
                "runtime_dir": str(config.paths.runtime_dir),
                "certs_dir": str(config.paths.certs_dir),
                "nginx_available": str(config.paths.nginx_available),
                "nginx_enabled": str(config.paths.nginx_enabled),
                "hosts_file": str(config.paths.hosts_file),
            },
            "runtime": {
                "min_supported_php": config.runtime.min_supported_php,
                "fallback_php_socket": config.runtime.fallback_php_socket,
                "dashboard_subdomain": config.runtime.dashboard_subdomain,
            },
            "adapter": {
                "command_timeout_seconds": config.adapter.command_timeout_seconds,
                "use_sudo": config.adapter.use_sudo,
            },
            "doctor": {
                "http_timeout_seconds": config.doctor.http_timeout_seconds,
            },
            "logging": {
                "level": config.logging.level,
                "output_format": config.logging.output_format,
            },
        }

        with open(config_path, "w", encoding="utf-8") as f:
            json.dump(data, f, indent=2, ensure_ascii=False)

        return True

    except (OSError, TypeError) as e:
        print(f"Error saving config: {e}", file=sys.stderr)
        return False
