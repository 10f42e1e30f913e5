"""
Rendering of the managed block inside the system hosts file.

The engine owns exactly the lines between ``# SLD-START`` and ``# SLD-END``;
everything else in the file is preserved as-is.
"""

from typing import Iterable

BLOCK_START = "# SLD-START"
BLOCK_END = "# SLD-END"
LOOPBACK_V4 = "127.0.0.1"
LOOPBACK_V6 = "::1"


def render_block(domains: Iterable[str]) -> str:
    """
    Render the managed block for ``domains``.

    Wildcard entries are skipped (the hosts file cannot express them) and
    duplicates are dropped while keeping the first occurrence's position.
    """
    seen: set[str] = set()
    lines = [BLOCK_START]
    for domain in domains:
        if not domain or domain.startswith("*") or domain in seen:
            continue
        seen.add(domain)
        lines.append(f"{LOOPBACK_V4} {domain}")
        lines.append(f"{LOOPBACK_V6} {domain}")
    lines.append(BLOCK_END)
    return "\n".join(lines) + "\n"


def strip_block(content: str) -> str:
    """Remove any managed block from hosts-file content."""
    kept: list[str] = []
    inside = False
    for line in content.splitlines():
        marker = line.strip()
        if marker == BLOCK_START:
            inside = True
            continue
        if marker == BLOCK_END:
            inside = False
            continue
        if not inside:
            kept.append(line)

    while kept and not kept[-1].strip():
        kept.pop()
    return "\n".join(kept) + "\n" if kept else ""


def replace_block(content: str, domains: Iterable[str]) -> str:
    """Return ``content`` with its managed block replaced by one for ``domains``."""
    base = strip_block(content)
    block = render_block(domains)
    if not base:
        return block
    return f"{base}\n{block}"


def managed_domains(content: str) -> list[str]:
    """List the domains currently inside the managed block."""
    domains: list[str] = []
    inside = False
    for line in content.splitlines():
        marker = line.strip()
        if marker == BLOCK_START:
            inside = True
            continue
        if marker == BLOCK_END:
            inside = False
            continue
        if inside:
            parts = marker.split()
            if len(parts) >= 2 and parts[1] not in domains:
                domains.append(parts[1])
    return domains
