"""
Enumeration types for the sld-core reconciliation engine.
"""

from enum import Enum


class LogLevel(Enum):
    """Logging severity levels."""

    DEBUG = "debug"
    INFO = "info"
    WARN = "warn"
    ERROR = "error"


class SiteKind(Enum):
    """How a site became visible."""

    PARKED = "parked"
    LINKED = "linked"


class ConstraintOperator(Enum):
    """Operator of a runtime version constraint such as ``^8.1`` or ``>=7.4``."""

    AT_LEAST = ">="
    CARET = "^"
    EXACT = ""


class AddonStatus(Enum):
    """Running state of an add-on."""

    RUNNING = "running"
    STOPPED = "stopped"
    ERROR = "error"
    INSTALLING = "installing"


class HealthStatus(Enum):
    """Outcome of a single health check."""

    PASS = "pass"
    WARN = "warn"
    FAIL = "fail"


class EventType(Enum):
    """Topics published on the event bus."""

    SITES_UPDATED = "sites:updated"
    CONFIG_CHANGED = "config:changed"
    ADDON_STARTED = "addon:started"
    ADDON_STOPPED = "addon:stopped"
