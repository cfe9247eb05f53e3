"""Error types raised by the signing pipeline."""

from typing import Optional


class SigningError(Exception):
    """Base class for all signing pipeline failures."""

    def __init__(self, message: str, stage: Optional[str] = None):
        super().__init__(message)
        self.stage = stage


class AuthError(SigningError):
    """Identity proof failed (listener bind, provider rejection, missing claims, timeout)."""
    pass


class CryptoError(SigningError):
    """Key generation, signing or key parsing failed."""
    pass


class NetworkError(SigningError):
    """Transport failure or unusable response from the certificate authority."""

    def __init__(
        self,
        message: str,
        status_code: Optional[int] = None,
        stage: Optional[str] = None,
    ):
        super().__init__(message, stage=stage)
        self.status_code = status_code


class CertificateSelectionError(SigningError):
    """No certificate in the CA bundle was issued by the expected authority."""
    pass


class CertificateBundleError(CertificateSelectionError):
    """The CA bundle contains malformed PEM blocks."""
    pass


class TransparencyLogError(SigningError):
    """Base class for transparency log failures."""
    pass


class LogSubmissionError(TransparencyLogError):
    """The log rejected the entry or could not be reached."""
    pass


class LogRetrievalError(TransparencyLogError):
    """The entry could not be read back or does not match what was submitted."""
    pass


class ArtifactIOError(SigningError):
    """Reading the artifact or writing an output file failed."""
    pass
