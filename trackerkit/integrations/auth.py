"""Authentication context for tracker API requests.

Credentials are supplied by the caller (a secret-storage collaborator);
this module only turns them into request headers. Three schemes are
supported:

- BASIC: email (cloud) or username (server) plus API token or password
- PAT: server/data-center personal access token, sent as a bearer token
- BEARER: OAuth access token
"""

from __future__ import annotations

import base64
import logging
from collections.abc import Mapping
from dataclasses import dataclass, field
from enum import Enum
from types import MappingProxyType

from trackerkit.integrations.errors import CredentialValidationError

logger = logging.getLogger(__name__)


class AuthScheme(Enum):
    """Supported authentication schemes."""

    BASIC = "basic"
    PAT = "pat"
    BEARER = "bearer"

    @classmethod
    def from_string(cls, value: str) -> AuthScheme:
        """Parse a scheme name, case-insensitively."""
        try:
            return cls(value.strip().lower())
        except ValueError:
            valid = ", ".join(s.value for s in cls)
            raise ValueError(f"Unknown auth scheme '{value}'. Valid options: {valid}") from None


# Canonical credential key -> accepted aliases
CREDENTIAL_ALIASES: Mapping[str, tuple[str, ...]] = MappingProxyType(
    {
        "username": ("username", "email", "user", "login"),
        "secret": ("secret", "token", "api_token", "password", "pat", "access_token"),
    }
)

REQUIRED_CREDENTIALS: Mapping[AuthScheme, frozenset[str]] = MappingProxyType(
    {
        AuthScheme.BASIC: frozenset({"username", "secret"}),
        AuthScheme.PAT: frozenset({"secret"}),
        AuthScheme.BEARER: frozenset({"secret"}),
    }
)


def canonicalize_credentials(raw: Mapping[str, str]) -> dict[str, str]:
    """Map aliased credential keys onto canonical names.

    The first alias present (in declaration order) wins. Unknown keys are
    dropped.
    """
    lowered = {k.lower(): v for k, v in raw.items()}
    result: dict[str, str] = {}
    for canonical, aliases in CREDENTIAL_ALIASES.items():
        for alias in aliases:
            value = lowered.get(alias)
            if value:
                result[canonical] = value
                break
    return result


@dataclass(frozen=True)
class Credentials:
    """Credentials for one tracker account.

    Attributes:
        scheme: Authentication scheme
        secret: API token, password, PAT or OAuth token
        username: Email or username (required for BASIC)
    """

    scheme: AuthScheme
    secret: str = field(repr=False)
    username: str = ""

    def missing_keys(self) -> frozenset[str]:
        """Return the required credential keys that are empty."""
        present = {"secret": self.secret, "username": self.username}
        return frozenset(k for k in REQUIRED_CREDENTIALS[self.scheme] if not present[k])

    @classmethod
    def from_mapping(cls, scheme: AuthScheme, raw: Mapping[str, str]) -> Credentials:
        """Build credentials from a loosely keyed mapping (config file, env)."""
        creds = canonicalize_credentials(raw)
        return cls(
            scheme=scheme,
            secret=creds.get("secret", ""),
            username=creds.get("username", ""),
        )


class AuthContext:
    """Produce request headers from credentials.

    Raises CredentialValidationError on construction when a required
    credential value is missing.
    """

    def __init__(self, credentials: Credentials) -> None:
        missing = credentials.missing_keys()
        if missing:
            raise CredentialValidationError(scheme=credentials.scheme.value, missing_keys=missing)
        self._credentials = credentials
        logger.debug("Using %s authentication", credentials.scheme.value)

    @property
    def credentials(self) -> Credentials:
        return self._credentials

    @property
    def scheme(self) -> AuthScheme:
        return self._credentials.scheme

    def authorization(self) -> str:
        """Build the Authorization header value."""
        creds = self._credentials
        if creds.scheme is AuthScheme.BASIC:
            raw = f"{creds.username}:{creds.secret}".encode()
            return "Basic " + base64.b64encode(raw).decode("ascii")
        return f"Bearer {creds.secret}"

    def headers(self) -> dict[str, str]:
        """Headers merged into every request."""
        return {
            "Authorization": self.authorization(),
            "Accept": "application/json",
        }

    def __repr__(self) -> str:
        user = self._credentials.username or "-"
        return f"AuthContext(scheme={self.scheme.value}, user={user})"


__all__ = [
    "CREDENTIAL_ALIASES",
    "REQUIRED_CREDENTIALS",
    "AuthContext",
    "AuthScheme",
    "Credentials",
    "canonicalize_credentials",
]
