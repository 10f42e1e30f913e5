"""
State Store module for the persisted site-serving state.

The whole state lives in one JSON document. Every mutation takes the store's
lock, changes the in-memory copy and rewrites the full document once. Writes
go to a temporary file in the same directory which then replaces the
document, so readers never observe a half-written file.
"""

import copy
import json
import os
import tempfile
import threading
from contextlib import contextmanager
from pathlib import Path
from typing import Iterator, Optional

from .audit_logger import AuditLogger
from .exceptions import StoreError, ValidationError
from .models import SiteConfig, State
from .validation import validate_port, validate_tld

COMPONENT = "StateStore"


def _as_str_list(value) -> list[str]:
    if not isinstance(value, list):
        return []
    out: list[str] = []
    for item in value:
        if isinstance(item, str) and item not in out:
            out.append(item)
    return out


def _as_str_dict(value) -> dict[str, str]:
    if not isinstance(value, dict):
        return {}
    return {
        str(key): val
        for key, val in value.items()
        if isinstance(val, str)
    }


def _validated_or(validator, value, default: str) -> str:
    if value in (None, ""):
        return default
    try:
        return validator(value)
    except ValidationError:
        return default


def site_config_from_dict(data) -> SiteConfig:
    """Rebuild a SiteConfig, tolerating absent or mistyped fields."""
    if not isinstance(data, dict):
        return SiteConfig()
    category = data.get("category")
    return SiteConfig(
        php_version=str(data.get("php_version") or ""),
        web_root=str(data.get("web_root") or ""),
        node_version=str(data.get("node_version") or ""),
        tags=_as_str_list(data.get("tags")),
        category=category if isinstance(category, str) else "",
    )


def site_config_to_dict(config: SiteConfig) -> dict:
    """Serialize a SiteConfig, omitting empty fields."""
    data: dict = {}
    if config.php_version:
        data["php_version"] = config.php_version
    if config.web_root:
        data["web_root"] = config.web_root
    if config.node_version:
        data["node_version"] = config.node_version
    if config.tags:
        data["tags"] = list(config.tags)
    if config.category:
        data["category"] = config.category
    return data


def state_from_dict(raw: dict) -> State:
    """Rebuild a State, supplying defaults for every absent field."""
    tld = raw.get("tld")
    port = raw.get("port")
    php_version = raw.get("php_version")
    site_configs_raw = raw.get("site_configs")
    site_configs: dict[str, SiteConfig] = {}
    if isinstance(site_configs_raw, dict):
        for domain, conf in site_configs_raw.items():
            site_configs[str(domain)] = site_config_from_dict(conf)

    return State(
        tld=_validated_or(validate_tld, tld, "test") if isinstance(tld, str) else "test",
        paths=_as_str_list(raw.get("paths")),
        links=_as_str_dict(raw.get("links")),
        site_configs=site_configs,
        ignored=_as_str_list(raw.get("ignored")),
        secure=bool(raw.get("secure", False)),
        port=_validated_or(validate_port, port, "80"),
        php_version=php_version if isinstance(php_version, str) else "",
        enabled_addons=_as_str_list(raw.get("enabled_plugins")),
        services=_as_str_dict(raw.get("services")),
        certificates=_as_str_list(raw.get("certificates")),
    )


def state_to_dict(state: State) -> dict:
    """Serialize a State using the on-disk key names."""
    return {
        "tld": state.tld,
        "paths": list(state.paths),
        "links": dict(state.links),
        "services": dict(state.services),
        "certificates": list(state.certificates),
        "php_version": state.php_version,
        "secure": state.secure,
        "port": state.port,
        "ignored": list(state.ignored),
        "enabled_plugins": list(state.enabled_addons),
        "site_configs": {
            domain: site_config_to_dict(conf)
            for domain, conf in state.site_configs.items()
        },
    }


class StateStore:
    """
    Lock-guarded owner of the persisted state document.

    Other components receive snapshots and ask the store to mutate; nothing
    else writes the file.
    """

    def __init__(self, file_path: Path, logger: Optional[AuditLogger] = None) -> None:
        """
        Initialize the state store.

        Args:
            file_path: Path to the state document (JSON)
            logger: Optional logger
        """
        self._file_path = Path(file_path)
        self._logger = logger
        self._lock = threading.RLock()
        self._state: Optional[State] = None

    @property
    def file_path(self) -> Path:
        return self._file_path

    @property
    def state(self) -> State:
        """The live in-memory state (loaded on first access)."""
        with self._lock:
            return self._ensure_loaded()

    @contextmanager
    def locked(self) -> Iterator[State]:
        """Hold the store lock across a multi-step workflow."""
        with self._lock:
            yield self._ensure_loaded()

    def snapshot(self) -> State:
        """Return a deep copy of the current state."""
        with self._lock:
            return copy.deepcopy(self._ensure_loaded())

    def load(self) -> State:
        """
        Read the document from disk, filling defaults for absent fields.

        A missing document is created with the default shape.

        Raises:
            StoreError: If the file cannot be read or is not a JSON object
        """
        with self._lock:
            if not self._file_path.exists():
                self._state = State()
                self.save()
                if self._logger:
                    self._logger.info(
                        COMPONENT,
                        "Initialized new state document",
                        {"file_path": str(self._file_path)},
                    )
                return self._state

            try:
                with open(self._file_path, "r", encoding="utf-8") as f:
                    raw = json.load(f)
            except json.JSONDecodeError as e:
                raise StoreError(
                    code="parse_error",
                    message=f"Failed to parse state file: {e}",
                    details={"file_path": str(self._file_path)},
                )
            except OSError as e:
                raise StoreError(
                    code="io_error",
                    message=f"Failed to read state file: {e}",
                    details={"file_path": str(self._file_path)},
                )

            if not isinstance(raw, dict):
                raise StoreError(
                    code="parse_error",
                    message="State file does not contain a JSON object",
                    details={"file_path": str(self._file_path)},
                )

            self._state = state_from_dict(raw)
            return self._state

    def save(self) -> None:
        """
        Serialize the whole in-memory document and replace the file.

        Raises:
            StoreError: If the file cannot be written
        """
        with self._lock:
            state = self._state if self._state is not None else State()
            self._state = state
            payload = json.dumps(state_to_dict(state), indent=2, ensure_ascii=False)

            tmp_path: Optional[Path] = None
            try:
                self._file_path.parent.mkdir(parents=True, exist_ok=True)
                with tempfile.NamedTemporaryFile(
                    "w",
                    encoding="utf-8",
                    dir=str(self._file_path.parent),
                    prefix=f".{self._file_path.name}.",
                    delete=False,
                ) as f:
                    tmp_path = Path(f.name)
                    f.write(payload + "\n")
                    f.flush()
                    os.fsync(f.fileno())
                os.chmod(tmp_path, 0o644)
                os.replace(tmp_path, self._file_path)
                tmp_path = None
            except OSError as e:
                raise StoreError(
                    code="io_error",
                    message=f"Failed to write state file: {e}",
                    details={"file_path": str(self._file_path)},
                )
            finally:
                if tmp_path is not None and tmp_path.exists():
                    tmp_path.unlink()

    # Parked paths

    def add_path(self, path: str) -> None:
        with self._lock:
            state = self._ensure_loaded()
            if path not in state.paths:
                state.paths.append(path)
            self.save()

    def remove_path(self, path: str) -> None:
        with self._lock:
            state = self._ensure_loaded()
            state.paths = [p for p in state.paths if p != path]
            self.save()

    # Links

    def add_link(self, name: str, path: str) -> None:
        with self._lock:
            state = self._ensure_loaded()
            state.links[name] = path
            self.save()

    def remove_link(self, name: str, drop_site_config: bool = True) -> None:
        """Remove a link and, by default, the override stored for its domain."""
        with self._lock:
            state = self._ensure_loaded()
            state.links.pop(name, None)
            if drop_site_config:
                state.site_configs.pop(state.domain_for(name), None)
            self.save()

    # Ignore list

    def add_ignore(self, path: str) -> None:
        with self._lock:
            state = self._ensure_loaded()
            if path not in state.ignored:
                state.ignored.append(path)
            self.save()

    def remove_ignore(self, path: str) -> None:
        with self._lock:
            state = self._ensure_loaded()
            state.ignored = [p for p in state.ignored if p != path]
            self.save()

    # Site overrides

    def set_site_config(self, domain: str, config: SiteConfig) -> None:
        """Store the override for a fully-qualified domain."""
        with self._lock:
            state = self._ensure_loaded()
            state.site_configs[domain] = copy.deepcopy(config)
            self.save()

    def remove_site_config(self, domain: str) -> None:
        with self._lock:
            state = self._ensure_loaded()
            state.site_configs.pop(domain, None)
            self.save()

    def get_site_config(self, domain: str) -> Optional[SiteConfig]:
        with self._lock:
            config = self._ensure_loaded().site_configs.get(domain)
            return copy.deepcopy(config) if config is not None else None

    # Add-ons

    def set_addon_enabled(self, addon_id: str, enabled: bool) -> None:
        with self._lock:
            state = self._ensure_loaded()
            if enabled:
                if addon_id not in state.enabled_addons:
                    state.enabled_addons.append(addon_id)
            else:
                state.enabled_addons = [a for a in state.enabled_addons if a != addon_id]
            self.save()

    def is_addon_enabled(self, addon_id: str) -> bool:
        with self._lock:
            return addon_id in self._ensure_loaded().enabled_addons

    def get_enabled_addons(self) -> list[str]:
        with self._lock:
            return list(self._ensure_loaded().enabled_addons)

    # Global flags

    def set_secure(self, secure: bool) -> None:
        with self._lock:
            self._ensure_loaded().secure = secure
            self.save()

    def set_php_version(self, version: str) -> None:
        with self._lock:
            self._ensure_loaded().php_version = version
            self.save()

    def set_port(self, port: str) -> None:
        """
        Set the HTTP port (empty means 80).

        Raises:
            ValidationError: If the port is not a number between 1 and 65535
        """
        port = validate_port(port) if port else "80"
        with self._lock:
            self._ensure_loaded().port = port
            self.save()

    def set_tld(self, tld: str) -> None:
        """
        Change the TLD, re-keying overrides so they stay fully-qualified.

        Raises:
            ValidationError: If the TLD is not a single hostname label
        """
        tld = validate_tld(tld)
        with self._lock:
            state = self._ensure_loaded()
            state.site_configs = {
                f"{state.name_for(domain)}.{tld}": conf
                for domain, conf in state.site_configs.items()
            }
            state.tld = tld
            self.save()

    def _ensure_loaded(self) -> State:
        if self._state is None:
            return self.load()
        return self._state
