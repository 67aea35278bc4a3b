"""Secret redaction for log lines and user-visible error text.

Any run of 20+ characters from ``[A-Za-z0-9_-]`` is treated as a possible
API key or token and replaced with a placeholder.
"""

import re

REDACTED = "***"

_SECRET_PATTERN = re.compile(r"[A-Za-z0-9_-]{20,}")


def redact(message: str | None) -> str:
    """Replace key-like substrings. ``None`` becomes a neutral placeholder."""
    if message is None:
        return "Unknown error"
    return _SECRET_PATTERN.sub(REDACTED, message)
