"""Ceremony log recording one signing run."""

import hashlib
import json
import os
from datetime import datetime, timezone
from typing import Any, Dict, Optional, Union

from cryptography import x509

from .crypto import sha256_digest
from .pipeline import SigningResult

CEREMONY_VERSION = "1.0"


def _file_record(path: str) -> Dict[str, Any]:
    return {"path": path, "sha256": sha256_digest(path)}


class CeremonyLog:
    """JSON record of what was signed, by whom, and where it was published."""

    def __init__(self, artifact_path: Union[str, os.PathLike], result: SigningResult):
        """
        Args:
            artifact_path: The file that was signed
            result: What the pipeline produced for it
        """
        self.artifact_path = os.fspath(artifact_path)
        self.result = result
        self.created_at = datetime.now(timezone.utc)

    def _certificate_record(self) -> Dict[str, Any]:
        certificate = x509.load_pem_x509_certificate(self.result.certificate_pem.encode())
        return {
            **_file_record(self.result.certificate_path),
            "serial": format(certificate.serial_number, "x"),
            "issuer": certificate.issuer.rfc4514_string(),
            "not_before": certificate.not_valid_before_utc.isoformat(),
            "not_after": certificate.not_valid_after_utc.isoformat(),
        }

    def to_dict(self) -> Dict[str, Any]:
        entry = self.result.log_entry
        return {
            "ceremony_version": CEREMONY_VERSION,
            "ceremony_type": "keyless_signing",
            "timestamp": self.created_at.isoformat(),
            "identity": {
                "email": self.result.identity_email,
                "issuer": self.result.issuer,
            },
            "artifact": {
                "path": self.artifact_path,
                "sha256": self.result.digest,
                "size": os.path.getsize(self.artifact_path),
            },
            "outputs": {
                "signature": _file_record(self.result.signature_path),
                "certificate": self._certificate_record(),
            },
            "transparency_log": entry.to_dict(),
        }

    def to_json(self, indent: int = 2) -> str:
        return json.dumps(self.to_dict(), indent=indent)

    def save(self, output_path: Optional[Union[str, os.PathLike]] = None) -> str:
        """
        Write the log as JSON.

        Args:
            output_path: Destination; `<artifact>.ceremony.json` when omitted

        Returns:
            The path written
        """
        destination = os.fspath(output_path) if output_path else self.artifact_path + ".ceremony.json"
        document = self.to_json()
        with open(destination, "w", encoding="utf-8") as f:
            f.write(document + "\n")
        return destination

    def get_log_fingerprint(self) -> str:
        """SHA-256 over the sorted, whitespace-free JSON form of the log."""
        canonical = json.dumps(self.to_dict(), sort_keys=True, separators=(",", ":"))
        return hashlib.sha256(canonical.encode("utf-8")).hexdigest()
