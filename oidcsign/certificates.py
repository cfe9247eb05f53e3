"""Parsing of CA certificate bundles and selection of the signing certificate."""

import os
from dataclasses import dataclass, field
from typing import List, Optional, Tuple, Union

from cryptography import x509

from .config import DEFAULT_EXPECTED_ISSUER
from .errors import ArtifactIOError, CertificateBundleError, CertificateSelectionError

PEM_BEGIN = "-----BEGIN CERTIFICATE-----"
PEM_END = "-----END CERTIFICATE-----"


@dataclass
class SelectedCertificate:
    """Leaf certificate chosen from a CA bundle."""

    pem: str
    certificate: x509.Certificate = field(repr=False)
    issuer_entries: List[str] = field(default_factory=list)
    path: Optional[str] = None

    @property
    def pem_bytes(self) -> bytes:
        return self.pem.encode("ascii")


def parse_bundle(bundle: str) -> List[Tuple[str, x509.Certificate]]:
    """
    Split a PEM bundle into discrete certificates.

    Text outside certificate blocks is ignored.

    Returns:
        List of (verbatim PEM block, parsed certificate) in bundle order

    Raises:
        CertificateBundleError: On unterminated, nested or stray markers,
            or a block that is not a valid certificate
    """
    blocks = []
    position = 0
    while True:
        begin = bundle.find(PEM_BEGIN, position)
        end = bundle.find(PEM_END, position)

        if begin == -1:
            if end != -1:
                raise CertificateBundleError(
                    f"END CERTIFICATE marker without BEGIN at offset {end}"
                )
            break
        if end != -1 and end < begin:
            raise CertificateBundleError(
                f"END CERTIFICATE marker without BEGIN at offset {end}"
            )
        if end == -1:
            raise CertificateBundleError(
                f"Unterminated certificate block at offset {begin}"
            )

        nested = bundle.find(PEM_BEGIN, begin + len(PEM_BEGIN), end)
        if nested != -1:
            raise CertificateBundleError(
                f"Nested BEGIN CERTIFICATE marker at offset {nested}"
            )

        position = end + len(PEM_END)
        pem = bundle[begin:position]
        try:
            certificate = x509.load_pem_x509_certificate(pem.encode("ascii"))
        except (ValueError, UnicodeEncodeError) as e:
            raise CertificateBundleError(
                f"Certificate block {len(blocks) + 1} is not a valid certificate: {e}"
            ) from e
        blocks.append((pem, certificate))

    return blocks


def issuer_entries(certificate: x509.Certificate) -> List[str]:
    """Values of every issuer distinguished-name attribute."""
    values = []
    for attribute in certificate.issuer:
        value = attribute.value
        if isinstance(value, bytes):
            value = value.decode("utf-8", errors="replace")
        values.append(value)
    return values


def is_ca_certificate(certificate: x509.Certificate) -> bool:
    try:
        constraints = certificate.extensions.get_extension_for_class(x509.BasicConstraints)
    except x509.ExtensionNotFound:
        return False
    return constraints.value.ca


class CertificateSelector:
    """Selects the certificate issued by the expected intermediate authority."""

    def __init__(self, expected_issuer: str = DEFAULT_EXPECTED_ISSUER):
        self.expected_issuer = expected_issuer

    def matches(self, certificate: x509.Certificate) -> bool:
        """Exact byte match of any issuer entry, CA certificates excluded."""
        expected = self.expected_issuer.encode("utf-8")
        for attribute in certificate.issuer:
            value = attribute.value
            if isinstance(value, str):
                value = value.encode("utf-8")
            if value == expected:
                return not is_ca_certificate(certificate)
        return False

    def select(
        self, bundle: str, output_path: Optional[Union[str, os.PathLike]] = None
    ) -> SelectedCertificate:
        """
        Pick the signing certificate from a CA bundle.

        Args:
            bundle: Raw CA response text
            output_path: Where to persist the selected PEM, if anywhere

        Returns:
            SelectedCertificate

        Raises:
            CertificateBundleError: If the bundle is malformed
            CertificateSelectionError: If no certificate matches
            ArtifactIOError: If the certificate cannot be written
        """
        certificates = parse_bundle(bundle)
        if not certificates:
            raise CertificateSelectionError("CA response contains no certificates")

        for pem, certificate in certificates:
            if not self.matches(certificate):
                continue

            selected = SelectedCertificate(
                pem=pem,
                certificate=certificate,
                issuer_entries=issuer_entries(certificate),
            )
            if output_path is not None:
                try:
                    with open(output_path, "w") as f:
                        f.write(pem)
                except OSError as e:
                    raise ArtifactIOError(
                        f"Cannot write certificate to {output_path}: {e}"
                    ) from e
                selected.path = str(output_path)
            return selected

        raise CertificateSelectionError(
            f"No certificate among {len(certificates)} was issued by "
            f"'{self.expected_issuer}'"
        )
