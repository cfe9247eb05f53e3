"""Ephemeral ECDSA keys, proof-of-possession challenges and digests."""

import base64
import hashlib
import os
from dataclasses import dataclass, field
from typing import Optional, Union

from cryptography import x509
from cryptography.exceptions import InvalidSignature, UnsupportedAlgorithm
from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.asymmetric import ec

from .errors import ArtifactIOError, CryptoError

KEY_ALGORITHM = "ecdsa-p256"
CHUNK_SIZE = 64 * 1024


@dataclass
class KeyPair:
    """Ephemeral signing key. The private half never leaves this object."""

    algorithm: str
    public_key_pem: bytes
    _private_key: ec.EllipticCurvePrivateKey = field(repr=False)

    def __getstate__(self):
        raise TypeError("Ephemeral key pairs cannot be serialized")


@dataclass
class SigningChallenge:
    """Signature over the claimed email address."""

    email: str
    signature: bytes

    @property
    def base64(self) -> str:
        return base64.b64encode(self.signature).decode("ascii")


class EphemeralKeySigner:
    """ECDSA P-256 signer whose key exists only for the current run."""

    def __init__(self):
        self.key_pair: Optional[KeyPair] = None

    def generate(self) -> KeyPair:
        """
        Generate a fresh P-256 keypair, replacing any previous one.

        Raises:
            CryptoError: If the backend cannot create the key
        """
        try:
            private_key = ec.generate_private_key(ec.SECP256R1())
            public_key_pem = private_key.public_key().public_bytes(
                encoding=serialization.Encoding.PEM,
                format=serialization.PublicFormat.SubjectPublicKeyInfo,
            )
        except (ValueError, UnsupportedAlgorithm) as e:
            raise CryptoError(f"Key generation failed: {e}") from e

        self.key_pair = KeyPair(
            algorithm=KEY_ALGORITHM,
            public_key_pem=public_key_pem,
            _private_key=private_key,
        )
        return self.key_pair

    @property
    def public_key_pem(self) -> bytes:
        return self._require_key().public_key_pem

    def sign(self, data: bytes) -> bytes:
        """
        Sign data with ECDSA over SHA-256.

        Returns:
            ASN.1 DER encoded signature

        Raises:
            CryptoError: If no key was generated or signing fails
        """
        key_pair = self._require_key()
        try:
            return key_pair._private_key.sign(data, ec.ECDSA(hashes.SHA256()))
        except (ValueError, TypeError, UnsupportedAlgorithm) as e:
            raise CryptoError(f"Signing failed: {e}") from e

    def verify(
        self, data: bytes, signature: bytes, public_key_pem: Optional[bytes] = None
    ) -> bool:
        """
        Verify a signature against this signer's key or another public key.

        Returns:
            True if the signature is valid
        """
        if public_key_pem is None:
            public_key_pem = self.public_key_pem
        return verify_signature(public_key_pem, data, signature)

    def _require_key(self) -> KeyPair:
        if self.key_pair is None:
            raise CryptoError("No ephemeral key has been generated")
        return self.key_pair


def verify_signature(public_key_pem: bytes, data: bytes, signature: bytes) -> bool:
    """Check an ECDSA-SHA256 signature with a PEM public key."""
    try:
        public_key = serialization.load_pem_public_key(public_key_pem)
    except (ValueError, UnsupportedAlgorithm) as e:
        raise CryptoError(f"Invalid public key: {e}") from e

    if not isinstance(public_key, ec.EllipticCurvePublicKey):
        raise CryptoError("Public key is not an elliptic curve key")

    try:
        public_key.verify(signature, data, ec.ECDSA(hashes.SHA256()))
    except InvalidSignature:
        return False
    return True


def build_challenge(signer: EphemeralKeySigner, email: str) -> SigningChallenge:
    """Prove possession of the ephemeral key by signing the email address."""
    return SigningChallenge(email=email, signature=signer.sign(email.encode("utf-8")))


def sha256_digest(path: Union[str, os.PathLike]) -> str:
    """
    Compute the SHA-256 of a file.

    Returns:
        Hex encoded digest

    Raises:
        ArtifactIOError: If the file cannot be read
    """
    digest = hashlib.sha256()
    try:
        with open(path, "rb") as f:
            for chunk in iter(lambda: f.read(CHUNK_SIZE), b""):
                digest.update(chunk)
    except OSError as e:
        raise ArtifactIOError(f"Cannot read {path}: {e}") from e
    return digest.hexdigest()


def extract_public_key(cert_pem: bytes) -> str:
    """
    Extract the public key of a PEM certificate.

    Returns:
        SubjectPublicKeyInfo PEM string

    Raises:
        CryptoError: If the data is not a PEM certificate
    """
    try:
        certificate = x509.load_pem_x509_certificate(cert_pem)
    except ValueError as e:
        raise CryptoError(f"Invalid certificate: {e}") from e

    return certificate.public_key().public_bytes(
        encoding=serialization.Encoding.PEM,
        format=serialization.PublicFormat.SubjectPublicKeyInfo,
    ).decode("ascii")
