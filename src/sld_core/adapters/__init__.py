"""
System adapters.

``get_adapter`` picks the implementation for the running platform.
"""

import sys
from typing import Optional

from ..audit_logger import AuditLogger
from ..config import EngineConfig
from ..exceptions import AdapterError
from .base import SystemAdapter
from .linux import LinuxAdapter


def get_adapter(
    config: EngineConfig,
    logger: Optional[AuditLogger] = None,
    platform: Optional[str] = None,
) -> SystemAdapter:
    """
    Build the adapter for ``platform`` (defaults to ``sys.platform``).

    Raises:
        AdapterError: If the platform has no adapter
    """
    name = platform or sys.platform
    if name.startswith("linux"):
        return LinuxAdapter(config, logger)
    raise AdapterError(
        code="unsupported_platform",
        message=f"No system adapter for platform '{name}'",
        details={"platform": name},
    )


__all__ = ["SystemAdapter", "LinuxAdapter", "get_adapter"]
