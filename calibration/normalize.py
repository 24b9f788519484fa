"""Severity and file path normalization."""

from typing import Optional


CANONICAL_SEVERITIES = ('critical', 'high', 'medium', 'low')

_SEVERITY_PREFIXES = (
    ('crit', 'critical'),
    ('hi', 'high'),
    ('med', 'medium'),
    ('lo', 'low'),
)


def norm_severity(severity: Optional[str]) -> str:
    """Normalize a free-text severity. Unrecognized values pass through lower-cased."""
    if not severity:
        return 'unknown'
    lower = str(severity).lower()
    for prefix, canonical in _SEVERITY_PREFIXES:
        if lower.startswith(prefix):
            return canonical
    return lower


def norm_file(path: Optional[str]) -> str:
    """Canonicalize a file path for equality comparison."""
    if not path:
        return ''
    normalized = str(path).lower().replace('\\', '/')
    if normalized.startswith('./'):
        normalized = normalized[2:]
    return normalized
