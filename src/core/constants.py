"""Core application constants."""

# Time constants
MILLISECONDS_PER_SECOND = 1000

# Security and redaction
REDACTED = "[REDACTED]"
SENSITIVE_FIELD_PATTERNS = [
    r".*password.*",
    r".*secret.*",
    r".*token.*",
    r".*auth.*",
    r".*credential.*",
    r".*certificate.*",
    r".*private[-_]?key.*",
    r".*bearer.*",
    r".*cookie.*",
]
