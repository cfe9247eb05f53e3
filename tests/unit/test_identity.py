"""Unit tests for identity.py module."""

import jwt
import pytest

from oidcsign.errors import AuthError
from oidcsign.identity import IdentityToken, decode_jwt_claims

SECRET = "test-secret-key-long-enough-for-hs256"


class TestDecodeClaims:
    """Tests for decode_jwt_claims."""

    def test_decode(self, mock_id_token):
        """Test claims are decoded without verification."""
        token, payload = mock_id_token

        assert decode_jwt_claims(token) == payload

    def test_not_a_jwt(self):
        """Test tokens without three segments are rejected."""
        with pytest.raises(AuthError, match="not a JWT"):
            decode_jwt_claims("opaque-access-token")

    def test_invalid_claims(self):
        """Test undecodable claims are rejected."""
        with pytest.raises(AuthError, match="not valid JSON"):
            decode_jwt_claims("header.bm90LWpzb24.signature")


class TestIdentityToken:
    """Tests for IdentityToken class."""

    def test_from_jwt(self, mock_id_token):
        """Test identity fields come from the claims."""
        token, payload = mock_id_token

        identity = IdentityToken.from_jwt(token, expected_nonce="test-nonce")

        assert identity.token == token
        assert identity.email == "signer@example.com"
        assert identity.issuer == payload["iss"]
        assert identity.subject == payload["sub"]
        assert identity.nonce == "test-nonce"
        assert identity.claims == payload

    def test_missing_email(self):
        """Test tokens without an email claim are rejected."""
        token = jwt.encode({"iss": "https://issuer", "sub": "x"}, SECRET, algorithm="HS256")

        with pytest.raises(AuthError, match="email claim"):
            IdentityToken.from_jwt(token)

    def test_nonce_mismatch(self, mock_id_token):
        """Test a replayed token with another nonce is rejected."""
        token, _ = mock_id_token

        with pytest.raises(AuthError, match="nonce"):
            IdentityToken.from_jwt(token, expected_nonce="other-nonce")

    def test_nonce_not_checked_when_not_expected(self, mock_id_token):
        """Test nonce is optional when none was sent."""
        token, _ = mock_id_token

        assert IdentityToken.from_jwt(token).email == "signer@example.com"
