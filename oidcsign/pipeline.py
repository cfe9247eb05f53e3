"""Signing pipeline coordinating identity, CA, signing and transparency log."""

import base64
import enum
import os
import threading
from dataclasses import dataclass
from typing import Optional, Union

from .certificates import CertificateSelector
from .config import SigningConfig
from .crypto import EphemeralKeySigner, build_challenge
from .errors import SigningError
from .fulcio import CertificateIssuerClient
from .oauth import IdentityAuthenticator
from .rekor import LogEntry, TransparencyLogClient
from .signing import ArtifactSigner


class PipelineState(enum.Enum):
    UNAUTHENTICATED = "unauthenticated"
    AUTHENTICATED = "authenticated"
    KEY_GENERATED = "key_generated"
    CHALLENGE_SIGNED = "challenge_signed"
    CERT_REQUESTED = "cert_requested"
    CERT_SELECTED = "cert_selected"
    ARTIFACT_SIGNED = "artifact_signed"
    LOG_SUBMITTED = "log_submitted"
    LOG_VERIFIED = "log_verified"
    FAILED = "failed"


@dataclass(frozen=True)
class SigningResult:
    """Outcome of a successful run."""

    identity_email: str
    issuer: str
    digest: str
    certificate_path: str
    signature_path: str
    certificate_pem: str
    signature_b64: str
    log_entry: LogEntry


class SigningPipeline:
    """Runs one keyless signing ceremony end to end."""

    def __init__(
        self,
        authenticator: IdentityAuthenticator,
        issuer_client: CertificateIssuerClient,
        selector: CertificateSelector,
        log_client: TransparencyLogClient,
        artifact_signer: Optional[ArtifactSigner] = None,
        key_signer: Optional[EphemeralKeySigner] = None,
    ):
        """
        Initialize pipeline with its collaborators.

        Args:
            authenticator: Performs the OIDC identity proof
            issuer_client: Requests the signing certificate
            selector: Picks the leaf certificate from the CA bundle
            log_client: Transparency log client
            artifact_signer: Signs the artifact bytes
            key_signer: Holder of the ephemeral key (fresh one per pipeline)
        """
        self.authenticator = authenticator
        self.issuer_client = issuer_client
        self.selector = selector
        self.log_client = log_client
        self.artifact_signer = artifact_signer or ArtifactSigner()
        self.key_signer = key_signer or EphemeralKeySigner()

        self.state = PipelineState.UNAUTHENTICATED
        self.failed_stage: Optional[PipelineState] = None
        self.error: Optional[SigningError] = None

    def run(
        self,
        artifact_path: Union[str, os.PathLike],
        sig_out: Union[str, os.PathLike],
        cert_out: Union[str, os.PathLike],
        cancel: Optional[threading.Event] = None,
    ) -> SigningResult:
        """
        Sign an artifact and publish the signature.

        Args:
            artifact_path: File to sign
            sig_out: Where to write the raw signature
            cert_out: Where to write the selected certificate PEM
            cancel: Event aborting the identity proof when set

        Returns:
            SigningResult

        Raises:
            SigningError: The first failure, tagged with the stage it interrupted
            RuntimeError: If this pipeline has already run
        """
        if self.state is not PipelineState.UNAUTHENTICATED:
            raise RuntimeError("A signing pipeline can only run once")

        stage = PipelineState.AUTHENTICATED
        try:
            identity, bearer_token = self.authenticator.authenticate(cancel=cancel)
            self.state = stage
            print(f"✅ Received token for email: {identity.email}")

            stage = PipelineState.KEY_GENERATED
            key_pair = self.key_signer.generate()
            self.state = stage

            stage = PipelineState.CHALLENGE_SIGNED
            challenge = build_challenge(self.key_signer, identity.email)
            self.state = stage

            stage = PipelineState.CERT_REQUESTED
            print("Requesting signing certificate...")
            bundle = self.issuer_client.request_certificate(
                key_pair.public_key_pem, challenge, bearer_token
            )
            self.state = stage

            stage = PipelineState.CERT_SELECTED
            certificate = self.selector.select(bundle, output_path=cert_out)
            self.state = stage
            print(f"✅ Saved signing certificate to {cert_out}")

            stage = PipelineState.ARTIFACT_SIGNED
            signature = self.artifact_signer.sign(
                artifact_path, self.key_signer, output_path=sig_out
            )
            digest = signature.digest
            self.state = stage
            print(f"✅ Saved signature to {sig_out}")

            stage = PipelineState.LOG_SUBMITTED
            certificate_b64 = base64.b64encode(certificate.pem_bytes).decode("ascii")
            print("Sending signature artifacts to the transparency log...")
            submitted = self.log_client.submit(digest, certificate_b64, signature.base64)
            self.state = stage
            print(f"✅ Created log entry {submitted.uuid}")

            stage = PipelineState.LOG_VERIFIED
            retrieved = self.log_client.retrieve(submitted.uuid)
            self.log_client.verify_entry(
                submitted, retrieved, digest, certificate_b64, signature.base64
            )
            self.state = stage
            print(f"✅ Retrieved log entry {retrieved.uuid}")

        except SigningError as e:
            e.stage = stage.value
            self.failed_stage = stage
            self.error = e
            self.state = PipelineState.FAILED
            print(f"❌ Failed at {stage.value}: {e}")
            raise

        return SigningResult(
            identity_email=identity.email,
            issuer=identity.issuer,
            digest=digest,
            certificate_path=str(cert_out),
            signature_path=str(sig_out),
            certificate_pem=certificate.pem,
            signature_b64=signature.base64,
            log_entry=retrieved,
        )

    @classmethod
    def from_config(cls, config: SigningConfig) -> "SigningPipeline":
        """
        Create pipeline from configuration.

        Args:
            config: SigningConfig with endpoints and timeouts

        Returns:
            SigningPipeline wired to the configured services
        """
        authenticator = IdentityAuthenticator(
            issuer_url=config.oidc_issuer,
            client_id=config.oidc_client_id,
            client_secret=config.oidc_client_secret,
            redirect_url=config.redirect_url,
            listen_address=config.listen_address,
            timeout=config.auth_timeout,
            http_timeout=config.http_timeout,
        )
        return cls(
            authenticator=authenticator,
            issuer_client=CertificateIssuerClient(
                config.fulcio_url, timeout=config.http_timeout
            ),
            selector=CertificateSelector(config.expected_issuer),
            log_client=TransparencyLogClient(
                config.rekor_url, timeout=config.http_timeout
            ),
        )
