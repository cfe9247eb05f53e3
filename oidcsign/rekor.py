"""Transparency log client: submit hashedrekord entries and read them back."""

import base64
import binascii
import json
import os
from dataclasses import dataclass, field
from typing import Dict, Any, Optional, Union

import requests
from cryptography import x509
from cryptography.hazmat.primitives import serialization

from .config import DEFAULT_HTTP_TIMEOUT, DEFAULT_REKOR_URL
from .crypto import sha256_digest
from .errors import LogRetrievalError, LogSubmissionError

ENTRIES_PATH = "/api/v1/log/entries"


def _lookup(node: Any, *keys: str) -> Any:
    for key in keys:
        if not isinstance(node, dict):
            return None
        node = node.get(key)
    return node


def _b64decode(value: Any) -> Optional[bytes]:
    if not isinstance(value, str):
        return None
    try:
        return base64.b64decode(value, validate=True)
    except binascii.Error:
        return None


def _certificate_der(certificate_b64: Any) -> Optional[bytes]:
    """DER form of a base64-wrapped PEM certificate, None if unreadable."""
    pem = _b64decode(certificate_b64)
    if pem is None:
        return None
    try:
        certificate = x509.load_pem_x509_certificate(pem)
    except ValueError:
        return None
    return certificate.public_bytes(serialization.Encoding.DER)


@dataclass
class LogEntry:
    """A transparency log record."""

    uuid: str
    body: Dict[str, Any] = field(default_factory=dict)
    log_index: Optional[int] = None
    integrated_time: Optional[int] = None
    log_id: Optional[str] = None
    raw: Dict[str, Any] = field(default_factory=dict, repr=False)

    @classmethod
    def from_response(cls, payload: Any) -> "LogEntry":
        """
        Build an entry from a `{uuid: entry}` response document.

        Raises:
            ValueError: If the document does not hold exactly one entry, or
                the entry body is not a JSON object with an object `spec`
        """
        if not isinstance(payload, dict) or len(payload) != 1:
            raise ValueError("expected exactly one log entry in response")

        uuid, entry = next(iter(payload.items()))
        if not isinstance(entry, dict):
            raise ValueError(f"log entry {uuid} is not an object")

        body: Dict[str, Any] = {}
        encoded_body = entry.get("body")
        if encoded_body:
            if not isinstance(encoded_body, str):
                raise ValueError(f"log entry {uuid} body is not base64 text")
            body = json.loads(base64.b64decode(encoded_body))
            if not isinstance(body, dict):
                raise ValueError(f"log entry {uuid} body is not an object")
            if not isinstance(body.get("spec", {}), dict):
                raise ValueError(f"log entry {uuid} spec is not an object")

        return cls(
            uuid=uuid,
            body=body,
            log_index=entry.get("logIndex"),
            integrated_time=entry.get("integratedTime"),
            log_id=entry.get("logID"),
            raw=entry,
        )

    @property
    def digest(self) -> Optional[str]:
        return _lookup(self.body, "spec", "data", "hash", "value")

    @property
    def signature(self) -> Optional[str]:
        return _lookup(self.body, "spec", "signature", "content")

    @property
    def certificate(self) -> Optional[str]:
        return _lookup(self.body, "spec", "signature", "publicKey", "content")

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for ceremony log."""
        return {
            "uuid": self.uuid,
            "log_index": self.log_index,
            "integrated_time": self.integrated_time,
            "log_id": self.log_id,
        }


def hashedrekord(digest: str, certificate_b64: str, signature_b64: str) -> Dict[str, Any]:
    """Proposed entry for a signature over an artifact's SHA-256."""
    return {
        "apiVersion": "0.0.1",
        "kind": "hashedrekord",
        "spec": {
            "data": {"hash": {"algorithm": "sha256", "value": digest}},
            "signature": {
                "content": signature_b64,
                "publicKey": {"content": certificate_b64},
            },
        },
    }


class TransparencyLogClient:
    """Client for a Rekor-style transparency log."""

    def __init__(
        self,
        rekor_url: str = DEFAULT_REKOR_URL,
        timeout: float = DEFAULT_HTTP_TIMEOUT,
        session: Optional[requests.Session] = None,
    ):
        self.rekor_url = rekor_url.rstrip("/")
        self.timeout = timeout
        self.session = session or requests.Session()

    @property
    def entries_url(self) -> str:
        return f"{self.rekor_url}{ENTRIES_PATH}"

    def hash(self, artifact_path: Union[str, os.PathLike]) -> str:
        """SHA-256 hex digest used as the entry's content key."""
        return sha256_digest(artifact_path)

    def submit(self, digest: str, certificate_b64: str, signature_b64: str) -> LogEntry:
        """
        Add an entry to the log.

        Args:
            digest: Hex SHA-256 of the artifact
            certificate_b64: Base64 of the signing certificate PEM
            signature_b64: Base64 of the artifact signature

        Returns:
            The created LogEntry

        Raises:
            LogSubmissionError: On transport failure or rejection
        """
        try:
            response = self.session.post(
                self.entries_url,
                json=hashedrekord(digest, certificate_b64, signature_b64),
                timeout=self.timeout,
            )
        except requests.RequestException as e:
            raise LogSubmissionError(f"Cannot reach transparency log: {e}") from e

        if not response.ok:
            raise LogSubmissionError(
                f"Transparency log rejected the entry ({response.status_code}): {response.text}"
            )

        try:
            return LogEntry.from_response(response.json())
        except ValueError as e:
            raise LogSubmissionError(f"Malformed log submission response: {e}") from e

    def retrieve(self, uuid: str) -> LogEntry:
        """
        Fetch an entry by UUID.

        Raises:
            LogRetrievalError: If the UUID is unknown, the log is unreachable,
                or the response is malformed
        """
        url = f"{self.entries_url}/{uuid}"
        try:
            response = self.session.get(url, timeout=self.timeout)
        except requests.RequestException as e:
            raise LogRetrievalError(f"Cannot reach transparency log: {e}") from e

        if response.status_code == 404:
            raise LogRetrievalError(f"No log entry with UUID {uuid}")
        if not response.ok:
            raise LogRetrievalError(
                f"Transparency log returned {response.status_code} for {uuid}: {response.text}"
            )

        try:
            return LogEntry.from_response(response.json())
        except ValueError as e:
            raise LogRetrievalError(f"Malformed log entry for {uuid}: {e}") from e

    def verify_entry(
        self,
        submitted: LogEntry,
        retrieved: LogEntry,
        digest: str,
        certificate_b64: str,
        signature_b64: str,
    ) -> None:
        """
        Check that the log holds what was submitted.

        UUID and digest must match exactly. The log may re-encode the
        certificate PEM and the signature, so those are compared on their
        decoded bytes.

        Raises:
            LogRetrievalError: On UUID or content mismatch
        """
        if retrieved.uuid != submitted.uuid:
            raise LogRetrievalError(
                f"Log returned entry {retrieved.uuid} for UUID {submitted.uuid}"
            )

        mismatches = []
        if retrieved.digest != digest:
            mismatches.append("digest")
        retrieved_signature = _b64decode(retrieved.signature)
        if retrieved_signature is None or retrieved_signature != _b64decode(signature_b64):
            mismatches.append("signature")
        retrieved_der = _certificate_der(retrieved.certificate)
        if retrieved_der is None or retrieved_der != _certificate_der(certificate_b64):
            mismatches.append("certificate")
        if mismatches:
            raise LogRetrievalError(
                f"Log entry {retrieved.uuid} does not match submission: "
                + ", ".join(mismatches)
            )
