"""Tests for trackerkit.integrations.auth module."""

import base64

import pytest

from trackerkit.integrations.auth import (
    AuthContext,
    AuthScheme,
    Credentials,
    canonicalize_credentials,
)
from trackerkit.integrations.errors import CredentialValidationError


class TestAuthScheme:
    def test_from_string_is_case_insensitive(self):
        assert AuthScheme.from_string(" Basic ") == AuthScheme.BASIC
        assert AuthScheme.from_string("PAT") == AuthScheme.PAT

    def test_from_string_unknown(self):
        with pytest.raises(ValueError, match="Unknown auth scheme"):
            AuthScheme.from_string("kerberos")


class TestCanonicalizeCredentials:
    """Tests for credential key aliasing."""

    def test_aliases_map_to_canonical_keys(self):
        result = canonicalize_credentials({"email": "a@example.com", "api_token": "t0k"})
        assert result == {"username": "a@example.com", "secret": "t0k"}

    def test_first_alias_wins(self):
        result = canonicalize_credentials({"password": "pw", "token": "tok"})
        assert result["secret"] == "tok"

    def test_keys_are_case_insensitive(self):
        assert canonicalize_credentials({"TOKEN": "x"}) == {"secret": "x"}

    def test_empty_values_and_unknown_keys_are_dropped(self):
        assert canonicalize_credentials({"token": "", "org": "acme"}) == {}


class TestCredentials:
    def test_missing_keys_for_basic(self):
        creds = Credentials(scheme=AuthScheme.BASIC, secret="tok")
        assert creds.missing_keys() == frozenset({"username"})

    def test_pat_needs_only_secret(self):
        creds = Credentials(scheme=AuthScheme.PAT, secret="pat")
        assert creds.missing_keys() == frozenset()

    def test_secret_not_in_repr(self):
        creds = Credentials(scheme=AuthScheme.BEARER, secret="very-secret")
        assert "very-secret" not in repr(creds)

    def test_from_mapping(self):
        creds = Credentials.from_mapping(AuthScheme.BASIC, {"login": "bob", "pat": "p"})
        assert creds.username == "bob"
        assert creds.secret == "p"


class TestAuthContext:
    """Tests for header construction."""

    def test_basic_header(self):
        ctx = AuthContext(
            Credentials(scheme=AuthScheme.BASIC, secret="tok", username="user@example.com")
        )
        expected = base64.b64encode(b"user@example.com:tok").decode("ascii")
        assert ctx.authorization() == f"Basic {expected}"
        assert ctx.headers()["Accept"] == "application/json"

    @pytest.mark.parametrize("scheme", [AuthScheme.PAT, AuthScheme.BEARER])
    def test_bearer_header(self, scheme):
        ctx = AuthContext(Credentials(scheme=scheme, secret="abc123"))
        assert ctx.headers()["Authorization"] == "Bearer abc123"

    def test_missing_credentials_raise(self):
        with pytest.raises(CredentialValidationError) as exc_info:
            AuthContext(Credentials(scheme=AuthScheme.BASIC, secret=""))
        assert exc_info.value.missing_keys == frozenset({"username", "secret"})
        assert exc_info.value.scheme == "basic"

    def test_repr_hides_secret(self):
        ctx = AuthContext(Credentials(scheme=AuthScheme.BASIC, secret="s3cr3t", username="bob"))
        assert "s3cr3t" not in repr(ctx)
        assert "bob" in repr(ctx)
