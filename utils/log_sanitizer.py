"""Log sanitizer - removes OAuth credentials from log messages.

Keeps access tokens, refresh tokens, authorization codes and PKCE
verifiers out of log files.
"""

import re
from typing import Union

# Patterns to detect and redact sensitive data
SENSITIVE_PATTERNS = [
    # Bearer / Basic authorization headers
    (r'(Bearer|Basic)\s+[A-Za-z0-9\-_\.~+/]+=*', r'\1 [REDACTED]'),

    # OAuth fields in query strings, form bodies or JSON
    (r'("?(?:access_token|refresh_token|id_token|code_verifier|client_secret|code)"?\s*[:=]\s*"?)'
     r'[^\s&",}]{6,}',
     r'\1[REDACTED]'),

    # Google access tokens (ya29.*) and refresh tokens (1//*)
    (r'\bya29\.[A-Za-z0-9\-_\.]+', '[ACCESS_TOKEN]'),
    (r'\b1//[A-Za-z0-9\-_]+', '[REFRESH_TOKEN]'),

    # JWT tokens (three base64 segments separated by dots)
    (r'eyJ[A-Za-z0-9\-_]+\.eyJ[A-Za-z0-9\-_]+\.[A-Za-z0-9\-_]+', '[JWT_TOKEN]'),

    # Generic secrets in key=value format
    (r'(password|secret|token|api_key|apikey)["\s:=]+[^\s,}"\'&]{8,}',
     r'\1=[REDACTED]'),
]

# Compiled patterns for efficiency
_COMPILED_PATTERNS = [(re.compile(p, re.IGNORECASE), r) for p, r in SENSITIVE_PATTERNS]


def sanitize_log(text: str) -> str:
    """Remove credentials from text for safe logging.

    Args:
        text: The text to sanitize

    Returns:
        Sanitized text with credentials replaced by placeholders
    """
    if not text:
        return text

    result = text
    for pattern, replacement in _COMPILED_PATTERNS:
        result = pattern.sub(replacement, result)

    return result


def sanitize_for_log(value: Union[str, bytes, None], max_length: int = 200) -> str:
    """Sanitize and truncate a response body for logging.

    Args:
        value: The value to sanitize (string or bytes)
        max_length: Maximum length of returned string

    Returns:
        Sanitized, truncated string safe for logging
    """
    if value is None:
        return "<None>"

    if isinstance(value, bytes):
        text = value.decode("utf-8", errors="replace")
    else:
        text = str(value)

    sanitized = sanitize_log(text)

    if len(sanitized) > max_length:
        return sanitized[:max_length] + f"... [{len(text)} chars total]"

    return sanitized
