"""Environment variable utilities for trackerkit.

Config values may reference environment variables as ``${VAR}`` so that
tokens do not have to be written to the config file. Keys that look like
secrets are never echoed in log or error messages.
"""

from __future__ import annotations

import logging
import os
import re

# Keys containing these substrings are considered sensitive and should not be logged
SENSITIVE_KEY_PATTERNS = ("TOKEN", "SECRET", "PASSWORD", "PAT", "CREDENTIAL")

_VAR_PATTERN = re.compile(r"\$\{([^}]+)\}")

logger = logging.getLogger(__name__)


class EnvVarExpansionError(Exception):
    """Raised when environment variable expansion fails in strict mode."""

    pass


def is_sensitive_key(key: str) -> bool:
    """Check if a configuration key contains sensitive data."""
    key_upper = key.upper()
    return any(pattern in key_upper for pattern in SENSITIVE_KEY_PATTERNS)


def expand_env_vars(value: str, strict: bool = False, context: str = "") -> str:
    """Expand ${VAR} references to environment variables.

    Args:
        value: String possibly containing ${VAR} references
        strict: If True, raises EnvVarExpansionError for missing env vars.
                If False, the ${VAR} text is kept as-is.
        context: Config key the value belongs to, used in messages unless
                 it names a secret

    Returns:
        The value with ${VAR} references replaced

    Raises:
        EnvVarExpansionError: If strict=True and an env var is not set
    """
    missing_vars: list[str] = []
    show_context = bool(context) and not is_sensitive_key(context)

    def replace(match: re.Match[str]) -> str:
        var_name = match.group(1)
        env_value = os.environ.get(var_name)
        if env_value is None:
            missing_vars.append(var_name)
            if not strict:
                if show_context:
                    logger.warning(f"Environment variable '{var_name}' not set in {context}")
                else:
                    logger.warning(f"Environment variable '{var_name}' not set")
            return match.group(0)
        return env_value

    result = _VAR_PATTERN.sub(replace, value)

    if strict and missing_vars:
        suffix = f" in {context}" if show_context else ""
        raise EnvVarExpansionError(
            f"Missing environment variable(s): {', '.join(missing_vars)}{suffix}"
        )
    return result


__all__ = [
    "SENSITIVE_KEY_PATTERNS",
    "EnvVarExpansionError",
    "expand_env_vars",
    "is_sensitive_key",
]
