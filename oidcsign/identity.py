"""OIDC identity token claims."""

import base64
import json
from dataclasses import dataclass, field
from typing import Dict, Any, Optional

from .errors import AuthError


def decode_jwt_claims(token: str) -> Dict[str, Any]:
    """
    Decode the claims of a JWT without verifying its signature.

    The certificate authority verifies the token; the client only needs
    the claims to learn which identity it is about to bind.

    Raises:
        AuthError: If the token is not a well-formed JWT
    """
    parts = token.split(".")
    if len(parts) != 3:
        raise AuthError("Identity token is not a JWT")

    claims_b64 = parts[1]
    claims_b64 += "=" * (-len(claims_b64) % 4)
    try:
        claims = json.loads(base64.urlsafe_b64decode(claims_b64))
    except (ValueError, TypeError) as e:
        raise AuthError(f"Identity token claims are not valid JSON: {e}") from e

    if not isinstance(claims, dict):
        raise AuthError("Identity token claims must be a JSON object")
    return claims


@dataclass
class IdentityToken:
    """OIDC identity token bound to an email address."""

    token: str
    email: str
    issuer: str
    subject: str
    nonce: Optional[str] = None
    claims: Dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_jwt(cls, token: str, expected_nonce: Optional[str] = None) -> "IdentityToken":
        """
        Build an identity from a raw ID token.

        Args:
            token: Raw ID token string
            expected_nonce: Nonce sent in the authorization request, if any

        Returns:
            IdentityToken with claims

        Raises:
            AuthError: If the token is malformed, lacks an email claim,
                or carries a different nonce
        """
        claims = decode_jwt_claims(token)

        email = claims.get("email")
        if not email or not isinstance(email, str):
            raise AuthError("Identity token is missing the email claim")

        nonce = claims.get("nonce")
        if expected_nonce is not None and nonce != expected_nonce:
            raise AuthError("Identity token nonce does not match the authorization request")

        return cls(
            token=token,
            email=email,
            issuer=claims.get("iss", ""),
            subject=claims.get("sub", ""),
            nonce=nonce,
            claims=claims,
        )
