"""Shared pytest fixtures for all tests."""

import base64
import hashlib
import json
import os
import re
from datetime import datetime, timedelta, timezone

import jwt
import pytest
import responses
from cryptography import x509
from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.asymmetric import ec
from cryptography.x509.oid import NameOID

from oidcsign.crypto import verify_signature

FULCIO_URL = "https://fulcio.example.com"
REKOR_URL = "https://rekor.example.com"
ISSUER_URL = "https://oauth.example.com/auth"

HELLO_WORLD_SHA256 = "b94d27b9934d3e08a52e52d7da7dabfac484efe37a5380ee9088f7ace2efcde9"


class CertificateFactory:
    """Issues throwaway certificates with a chosen issuer common name."""

    def __init__(self):
        self.issuer_key = ec.generate_private_key(ec.SECP256R1())

    def issue(
        self,
        issuer_cn,
        public_key=None,
        ca=False,
        basic_constraints=True,
        email=None,
        subject_cn="signer",
    ):
        if public_key is None:
            public_key = ec.generate_private_key(ec.SECP256R1()).public_key()

        now = datetime.now(timezone.utc)
        builder = (
            x509.CertificateBuilder()
            .subject_name(x509.Name([x509.NameAttribute(NameOID.COMMON_NAME, subject_cn)]))
            .issuer_name(
                x509.Name(
                    [
                        x509.NameAttribute(NameOID.ORGANIZATION_NAME, "sigstore.dev"),
                        x509.NameAttribute(NameOID.COMMON_NAME, issuer_cn),
                    ]
                )
            )
            .public_key(public_key)
            .serial_number(x509.random_serial_number())
            .not_valid_before(now - timedelta(minutes=1))
            .not_valid_after(now + timedelta(minutes=10))
        )
        if basic_constraints:
            builder = builder.add_extension(
                x509.BasicConstraints(ca=ca, path_length=None), critical=True
            )
        if email:
            builder = builder.add_extension(
                x509.SubjectAlternativeName([x509.RFC822Name(email)]), critical=False
            )

        certificate = builder.sign(self.issuer_key, hashes.SHA256())
        return certificate.public_bytes(serialization.Encoding.PEM).decode("ascii")


class FakeFulcio:
    """Certificate authority double checking proof of possession."""

    def __init__(self, rsps, factory, base_url=FULCIO_URL):
        self.factory = factory
        self.requests = []
        rsps.add_callback(
            responses.POST,
            f"{base_url}/api/v1/signingCert",
            callback=self._issue,
            content_type="application/pem-certificate-chain",
        )

    def _issue(self, request):
        payload = json.loads(request.body)
        self.requests.append((request, payload))

        token = request.headers["Authorization"].split(" ", 1)[1]
        email = jwt.decode(token, options={"verify_signature": False})["email"]

        public_key_pem = base64.b64decode(payload["publicKey"]["content"])
        signed_email = base64.b64decode(payload["signedEmailAddress"])
        if not verify_signature(public_key_pem, email.encode(), signed_email):
            return (400, {}, "proof of possession failed")

        public_key = serialization.load_pem_public_key(public_key_pem)
        leaf = self.factory.issue("sigstore-intermediate", public_key=public_key, email=email)
        intermediate = self.factory.issue("sigstore", ca=True, subject_cn="sigstore-intermediate")
        return (201, {}, leaf + intermediate)


class FakeRekor:
    """In-memory transparency log behind the Rekor REST paths.

    Like Rekor, entries are canonicalized before storage: the certificate is
    parsed and re-encoded to PEM, which ends it with a newline.
    """

    def __init__(self, rsps, base_url=REKOR_URL):
        self.entries = {}
        rsps.add_callback(
            responses.POST,
            f"{base_url}/api/v1/log/entries",
            callback=self._create,
            content_type="application/json",
        )
        rsps.add_callback(
            responses.GET,
            re.compile(re.escape(base_url) + r"/api/v1/log/entries/[^/]+$"),
            callback=self._get,
            content_type="application/json",
        )

    def _create(self, request):
        proposed = json.loads(request.body)
        public_key = proposed["spec"]["signature"]["publicKey"]
        try:
            certificate = x509.load_pem_x509_certificate(
                base64.b64decode(public_key["content"])
            )
        except ValueError:
            return (400, {}, json.dumps({"message": "invalid certificate"}))
        public_key["content"] = base64.b64encode(
            certificate.public_bytes(serialization.Encoding.PEM)
        ).decode()

        canonical = json.dumps(proposed, sort_keys=True).encode()
        uuid = hashlib.sha256(canonical).hexdigest()
        if uuid in self.entries:
            return (409, {}, json.dumps({"message": "entry already exists"}))

        entry = {
            "body": base64.b64encode(canonical).decode(),
            "integratedTime": 1700000000,
            "logID": "c0d23d6ad406973f9559f3ba2d1ca01f84147d8ffc5b8445c224f98b9591801d",
            "logIndex": len(self.entries),
            "verification": {},
        }
        self.entries[uuid] = entry
        return (201, {}, json.dumps({uuid: entry}))

    def _get(self, request):
        uuid = request.url.rsplit("/", 1)[1]
        if uuid not in self.entries:
            return (404, {}, json.dumps({"code": 404, "message": "entry not found"}))
        return (200, {}, json.dumps({uuid: self.entries[uuid]}))


@pytest.fixture
def sample_artifact(tmp_path):
    """Create a temporary test artifact file."""
    artifact = tmp_path / "test-artifact.txt"
    artifact.write_text("Test artifact content for signing\n")
    return artifact


@pytest.fixture
def hello_artifact(tmp_path):
    """Artifact containing exactly b'hello world'."""
    artifact = tmp_path / "hello.txt"
    artifact.write_bytes(b"hello world")
    return artifact


@pytest.fixture
def mock_id_token():
    """Generate a mock OIDC ID token carrying an email claim."""
    now = datetime.now(timezone.utc)

    payload = {
        "iss": ISSUER_URL,
        "sub": "user-1234",
        "aud": "sigstore",
        "email": "signer@example.com",
        "email_verified": True,
        "nonce": "test-nonce",
        "exp": int((now + timedelta(hours=1)).timestamp()),
        "iat": int(now.timestamp()),
    }

    # unsigned for the verifier's purposes; HS256 keeps PyJWT happy
    token = jwt.encode(payload, "test-secret-key-long-enough-for-hs256", algorithm="HS256")
    return token, payload


@pytest.fixture
def certificate_factory():
    return CertificateFactory()


@pytest.fixture
def mocked_responses():
    with responses.RequestsMock(assert_all_requests_are_fired=False) as rsps:
        yield rsps


@pytest.fixture
def fake_fulcio(mocked_responses, certificate_factory):
    return FakeFulcio(mocked_responses, certificate_factory)


@pytest.fixture
def fake_rekor(mocked_responses):
    return FakeRekor(mocked_responses)


@pytest.fixture(autouse=True)
def reset_environment(monkeypatch):
    """Keep tests independent of the caller's SIGNER_* variables."""
    for name in ("SIGNER_FULCIO_URL", "SIGNER_REKOR_URL", "SIGNER_OIDC_ISSUER"):
        monkeypatch.delenv(name, raising=False)

    original_env = dict(os.environ)

    yield

    os.environ.clear()
    os.environ.update(original_env)
