"""
Validation and normalization of user-supplied site names, TLDs and versions.

Site names become hostname labels (``<name>.<tld>``), so they are lowercased,
IDNA-encoded when they contain international characters, and rejected when
they contain characters nginx or the hosts file cannot carry.
"""

import re

import idna

from sld_core.exceptions import ValidationError


# Control characters, whitespace and symbols that cannot appear in a hostname
FORBIDDEN_CHARS_PATTERN = re.compile(
    r'[\x00-\x1f\x7f'
    r'\s'
    r'!@#$%^&*()+=\[\]{}|\\:;"\'<>,?/`~]'
)

LABEL_PATTERN = re.compile(r"^[a-z0-9_]([a-z0-9_-]{0,61}[a-z0-9_])?$")

PHP_VERSION_PATTERN = re.compile(r"^\d+\.\d+$")


def normalize_hostname(raw: str) -> str:
    """
    Convert a name to canonical form (lowercase, IDNA-encoded).

    Raises:
        ValidationError: If the name is empty, has forbidden characters,
                         or cannot be IDNA-encoded
    """
    if not raw or not raw.strip():
        raise ValidationError(
            code="empty_input",
            message="Name is empty",
            details={"raw_input": raw},
        )

    name = raw.strip()

    if FORBIDDEN_CHARS_PATTERN.search(name):
        raise ValidationError(
            code="forbidden_chars",
            message="Name contains forbidden characters",
            details={
                "raw_input": raw,
                "forbidden_chars": FORBIDDEN_CHARS_PATTERN.findall(name),
            },
        )

    lowered = name.lower()
    if any(ord(c) > 127 for c in lowered):
        try:
            lowered = idna.encode(lowered, uts46=True).decode("ascii")
        except idna.IDNAError as e:
            raise ValidationError(
                code="idna_error",
                message=f"IDNA encoding failed: {e}",
                details={"raw_input": raw, "idna_error": str(e)},
            )

    for label in lowered.split("."):
        if not LABEL_PATTERN.match(label):
            raise ValidationError(
                code="invalid_label",
                message=f"'{label}' is not a valid hostname label",
                details={"raw_input": raw, "label": label},
            )

    return lowered


def validate_site_name(raw: str) -> str:
    """Validate a link name and return its canonical form."""
    return normalize_hostname(raw)


def validate_tld(raw: str) -> str:
    """Validate a TLD (a single label, leading dot tolerated)."""
    tld = normalize_hostname(raw.strip().lstrip(".") if raw else raw)
    if "." in tld:
        raise ValidationError(
            code="invalid_tld",
            message="TLD must be a single label",
            details={"raw_input": raw},
        )
    return tld


def validate_php_version(raw: str) -> str:
    """Validate a ``major.minor`` PHP version string."""
    version = (raw or "").strip()
    if not PHP_VERSION_PATTERN.match(version):
        raise ValidationError(
            code="invalid_version",
            message=f"'{raw}' is not a major.minor version",
            details={"raw_input": raw},
        )
    return version


def validate_port(raw) -> str:
    """Validate an HTTP port (digits only, 1-65535)."""
    port = str(raw).strip() if raw is not None else ""
    if not port.isdigit() or not 1 <= int(port) <= 65535:
        raise ValidationError(
            code="invalid_port",
            message=f"'{raw}' is not a valid port",
            details={"raw_input": raw},
        )
    return str(int(port))
