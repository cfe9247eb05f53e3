"""Client for the certificate authority's signing-certificate endpoint."""

import base64
from dataclasses import dataclass
from typing import Dict, Any, Optional

import requests

from .config import DEFAULT_FULCIO_URL, DEFAULT_HTTP_TIMEOUT
from .crypto import SigningChallenge
from .errors import NetworkError

SIGNING_CERT_PATH = "/api/v1/signingCert"


@dataclass
class CertificateRequest:
    """Body of a signing-certificate request."""

    public_key_pem: bytes
    signed_email_address: bytes

    def to_dict(self) -> Dict[str, Any]:
        return {
            "publicKey": {
                "algorithm": "ecdsa",
                "content": base64.b64encode(self.public_key_pem).decode("ascii"),
            },
            "signedEmailAddress": base64.b64encode(self.signed_email_address).decode(
                "ascii"
            ),
        }


class CertificateIssuerClient:
    """Requests short-lived signing certificates bound to an identity token."""

    def __init__(
        self,
        fulcio_url: str = DEFAULT_FULCIO_URL,
        timeout: float = DEFAULT_HTTP_TIMEOUT,
        session: Optional[requests.Session] = None,
    ):
        self.fulcio_url = fulcio_url.rstrip("/")
        self.timeout = timeout
        self.session = session or requests.Session()

    @property
    def endpoint(self) -> str:
        return f"{self.fulcio_url}{SIGNING_CERT_PATH}"

    def request_certificate(
        self, public_key_pem: bytes, challenge: SigningChallenge, bearer_token: str
    ) -> str:
        """
        Submit the public key and proof of possession to the CA.

        Args:
            public_key_pem: Ephemeral public key (PEM)
            challenge: Signature over the identity's email address
            bearer_token: Raw OIDC identity token

        Returns:
            Raw response body (PEM certificate bundle)

        Raises:
            NetworkError: On transport failure or a non-2xx/empty response
        """
        payload = CertificateRequest(
            public_key_pem=public_key_pem,
            signed_email_address=challenge.signature,
        ).to_dict()

        try:
            response = self.session.post(
                self.endpoint,
                json=payload,
                headers={
                    "Authorization": f"Bearer {bearer_token}",
                    "Content-Type": "application/json",
                },
                timeout=self.timeout,
            )
        except requests.RequestException as e:
            raise NetworkError(f"Certificate request to {self.endpoint} failed: {e}") from e

        if not response.ok:
            raise NetworkError(
                f"Certificate authority rejected the request ({response.status_code}): {response.text}",
                status_code=response.status_code,
            )

        if not response.text.strip():
            raise NetworkError(
                "Certificate authority returned an empty body",
                status_code=response.status_code,
            )

        return response.text
