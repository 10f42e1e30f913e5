"""
Exception classes for the sld-core reconciliation engine.

All exceptions inherit from SldError and carry a machine-readable code,
a human-readable message and optional structured details.
"""

from typing import Optional


class SldError(Exception):
    """Base exception for all sld-core errors."""

    def __init__(
        self,
        code: str,
        message: str,
        details: Optional[dict] = None,
    ) -> None:
        self.code = code
        self.message = message
        self.details = details or {}
        super().__init__(message)

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}(code={self.code!r}, message={self.message!r})"

    def to_dict(self) -> dict:
        """Convert exception to dictionary for serialization."""
        return {
            "error_type": self.__class__.__name__,
            "code": self.code,
            "message": self.message,
            "details": self.details,
        }


class ValidationError(SldError):
    """Raised when a site name, TLD or version string is not acceptable."""

    pass


class StoreError(SldError):
    """Raised when the state document cannot be read, parsed or written."""

    pass


class DetectionError(SldError):
    """Raised when a project manifest exists but cannot be parsed."""

    pass


class TemplateError(SldError):
    """Raised when a configuration template is rendered with bad placeholders."""

    pass


class AdapterError(SldError):
    """Raised when a system adapter operation fails (proxy, certs, hosts, sockets)."""

    pass


class AddonError(SldError):
    """Raised when an add-on fails to start or stop."""

    pass
