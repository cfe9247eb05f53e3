"""Signing of artifact contents with the ephemeral key."""

import base64
import hashlib
import os
from dataclasses import dataclass
from typing import Optional, Union

from .crypto import EphemeralKeySigner
from .errors import ArtifactIOError


@dataclass
class ArtifactSignature:
    """Signature over the raw bytes of an artifact."""

    data: bytes
    digest: str
    path: Optional[str] = None

    @property
    def base64(self) -> str:
        return base64.b64encode(self.data).decode("ascii")


class ArtifactSigner:
    """Signs whole files, not digests."""

    def sign(
        self,
        artifact_path: Union[str, os.PathLike],
        signer: EphemeralKeySigner,
        output_path: Optional[Union[str, os.PathLike]] = None,
    ) -> ArtifactSignature:
        """
        Sign the file contents and optionally persist the signature.

        The file is read once; the returned digest is the SHA-256 of the
        same bytes that were signed.

        Args:
            artifact_path: File to sign
            signer: Signer holding the ephemeral key
            output_path: Where to write the raw signature bytes

        Returns:
            ArtifactSignature

        Raises:
            ArtifactIOError: If the artifact cannot be read or the signature written
            CryptoError: If signing fails
        """
        try:
            with open(artifact_path, "rb") as f:
                artifact_data = f.read()
        except OSError as e:
            raise ArtifactIOError(f"Cannot read artifact {artifact_path}: {e}") from e

        signature = ArtifactSignature(
            data=signer.sign(artifact_data),
            digest=hashlib.sha256(artifact_data).hexdigest(),
        )

        if output_path is not None:
            try:
                with open(output_path, "wb") as f:
                    f.write(signature.data)
            except OSError as e:
                raise ArtifactIOError(
                    f"Cannot write signature to {output_path}: {e}"
                ) from e
            signature.path = str(output_path)

        return signature
