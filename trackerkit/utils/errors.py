"""Exit codes for the trackerkit CLI.

Library code raises the typed TrackerError hierarchy; only the CLI turns
those errors into process exit codes.
"""

from enum import IntEnum

from trackerkit.config.client_config import ConfigValidationError
from trackerkit.integrations.errors import (
    Cancelled,
    CredentialValidationError,
    HttpError,
    NetworkError,
    NotConfiguredError,
)
from trackerkit.utils.env_utils import EnvVarExpansionError


class ExitCode(IntEnum):
    """Exit codes reported by the CLI.

    These codes can be checked by calling scripts or CI systems.
    """

    SUCCESS = 0
    GENERAL_ERROR = 1
    NOT_CONFIGURED = 2
    AUTH_ERROR = 3
    NOT_FOUND = 4
    NETWORK_ERROR = 5
    USER_CANCELLED = 6


def exit_code_for(error: BaseException) -> ExitCode:
    """Map an exception to the exit code the CLI reports for it."""
    if isinstance(
        error,
        NotConfiguredError | ConfigValidationError | CredentialValidationError | EnvVarExpansionError,
    ):
        return ExitCode.NOT_CONFIGURED
    if isinstance(error, HttpError):
        if error.is_auth_error:
            return ExitCode.AUTH_ERROR
        if error.is_not_found:
            return ExitCode.NOT_FOUND
        return ExitCode.GENERAL_ERROR
    if isinstance(error, NetworkError):
        return ExitCode.NETWORK_ERROR
    if isinstance(error, Cancelled | KeyboardInterrupt):
        return ExitCode.USER_CANCELLED
    return ExitCode.GENERAL_ERROR


__all__ = ["ExitCode", "exit_code_for"]
