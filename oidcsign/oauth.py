"""Interactive OIDC authorization-code flow with a local redirect listener."""

import base64
import concurrent.futures
import hashlib
import secrets
import threading
import time
import webbrowser
from dataclasses import dataclass
from http.server import BaseHTTPRequestHandler, HTTPServer
from typing import Any, Callable, Dict, Optional, Sequence, Tuple
from urllib.parse import parse_qs, urlencode, urlparse

import requests

from .config import (
    DEFAULT_AUTH_TIMEOUT,
    DEFAULT_HTTP_TIMEOUT,
    DEFAULT_LISTEN_ADDRESS,
    DEFAULT_OIDC_CLIENT_ID,
    DEFAULT_OIDC_ISSUER,
    DEFAULT_REDIRECT_URL,
)
from .errors import AuthError
from .identity import IdentityToken


CALLBACK_PAGE = (
    b"<html><body><h1>Authentication complete</h1>"
    b"<p>You may close this window and return to the terminal.</p></body></html>"
)

# an accepted client that sends nothing is dropped after this many seconds
CONNECTION_TIMEOUT = 1.0


def _b64url(data: bytes) -> str:
    return base64.urlsafe_b64encode(data).rstrip(b"=").decode("ascii")


@dataclass
class AuthSession:
    """Per-run secrets for one authorization request."""

    state: str
    nonce: str
    code_verifier: str

    @property
    def code_challenge(self) -> str:
        """PKCE S256 challenge for the verifier."""
        return _b64url(hashlib.sha256(self.code_verifier.encode("ascii")).digest())

    @classmethod
    def create(cls) -> "AuthSession":
        return cls(
            state=secrets.token_urlsafe(16),
            nonce=secrets.token_urlsafe(16),
            code_verifier=secrets.token_urlsafe(48),
        )


class _CallbackServer(HTTPServer):
    """HTTPServer that remembers the query of the first OAuth callback."""

    allow_reuse_port = False

    def __init__(self, address: Tuple[str, int], connection_timeout: float = CONNECTION_TIMEOUT):
        super().__init__(address, _CallbackHandler)
        self.connection_timeout = connection_timeout
        self.params: Optional[Dict[str, str]] = None

    def get_request(self):
        connection, client_address = super().get_request()
        connection.settimeout(self.connection_timeout)
        return connection, client_address


class _CallbackHandler(BaseHTTPRequestHandler):
    def do_GET(self):
        query = parse_qs(urlparse(self.path).query)
        params = {key: values[0] for key, values in query.items()}

        if "code" not in params and "error" not in params:
            # browsers also ask for /favicon.ico
            self.send_response(404)
            self.end_headers()
            return

        self.server.params = params
        self.send_response(200)
        self.send_header("Content-Type", "text/html")
        self.send_header("Content-Length", str(len(CALLBACK_PAGE)))
        self.end_headers()
        self.wfile.write(CALLBACK_PAGE)

    def log_message(self, format, *args):
        pass


class RedirectListener:
    """Local HTTP listener receiving the provider redirect."""

    def __init__(
        self,
        address: str = DEFAULT_LISTEN_ADDRESS,
        poll_interval: float = 0.2,
        connection_timeout: float = CONNECTION_TIMEOUT,
    ):
        """
        Args:
            address: host:port to listen on
            poll_interval: Seconds between cancellation/timeout checks
            connection_timeout: Socket timeout for each accepted connection
        """
        host, _, port = address.rpartition(":")
        self.host = host or "127.0.0.1"
        self.port = int(port)
        self.poll_interval = poll_interval
        self.connection_timeout = connection_timeout
        self._server: Optional[_CallbackServer] = None

    @property
    def address(self) -> Tuple[str, int]:
        """Address actually bound (resolves port 0)."""
        if self._server is None:
            raise RuntimeError("Listener is not bound")
        return self._server.server_address[:2]

    def bind(self) -> Tuple[str, int]:
        """
        Bind the listening socket.

        Raises:
            AuthError: If the address cannot be bound
        """
        try:
            self._server = _CallbackServer((self.host, self.port), self.connection_timeout)
        except OSError as e:
            raise AuthError(
                f"Cannot bind redirect listener on {self.host}:{self.port}: {e}"
            ) from e
        self._server.timeout = self.poll_interval
        return self.address

    def wait(
        self, timeout: float, cancel_events: Sequence[threading.Event] = ()
    ) -> Dict[str, str]:
        """
        Block until the provider redirects back, the timeout expires, or
        any of the cancellation events is set.

        Returns:
            Query parameters of the callback request

        Raises:
            AuthError: On timeout or cancellation
        """
        server = self._server
        if server is None:
            raise RuntimeError("Listener is not bound")

        deadline = time.monotonic() + timeout
        while server.params is None:
            if any(event.is_set() for event in cancel_events):
                raise AuthError("Authentication was cancelled")
            if time.monotonic() >= deadline:
                raise AuthError(
                    f"Timed out after {timeout:g}s waiting for the identity provider redirect"
                )
            server.handle_request()

        return server.params

    def close(self) -> None:
        if self._server is not None:
            self._server.server_close()
            self._server = None

    def __enter__(self) -> "RedirectListener":
        self.bind()
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()


class IdentityAuthenticator:
    """Obtains an identity token through the OIDC authorization-code flow."""

    # seconds allowed beyond the timeout for the redirect worker to report back
    join_grace = 5.0

    def __init__(
        self,
        issuer_url: str = DEFAULT_OIDC_ISSUER,
        client_id: str = DEFAULT_OIDC_CLIENT_ID,
        client_secret: str = "",
        redirect_url: str = DEFAULT_REDIRECT_URL,
        listen_address: str = DEFAULT_LISTEN_ADDRESS,
        timeout: float = DEFAULT_AUTH_TIMEOUT,
        http_timeout: float = DEFAULT_HTTP_TIMEOUT,
        executor: Optional[concurrent.futures.Executor] = None,
        open_browser: Callable[[str], Any] = webbrowser.open,
    ):
        """
        Initialize authenticator.

        Args:
            issuer_url: OIDC issuer, used for discovery
            client_id: OAuth client id registered with the issuer
            client_secret: OAuth client secret (empty for public clients)
            redirect_url: redirect_uri sent to the provider
            listen_address: host:port the redirect listener binds
            timeout: Seconds to wait for the user to finish in the browser
            http_timeout: Timeout for discovery and token requests
            executor: Executor running the blocking redirect wait; a
                dedicated single worker is used when omitted
            open_browser: Callable that opens a URL in the user's browser
        """
        self.issuer_url = issuer_url.rstrip("/")
        self.client_id = client_id
        self.client_secret = client_secret
        self.redirect_url = redirect_url
        self.listen_address = listen_address
        self.timeout = timeout
        self.http_timeout = http_timeout
        self.executor = executor
        self.open_browser = open_browser
        self.bound_address: Optional[Tuple[str, int]] = None

    def discover(self) -> Dict[str, Any]:
        """
        Fetch the provider's OpenID configuration.

        Raises:
            AuthError: If the document cannot be fetched or lacks endpoints
        """
        url = f"{self.issuer_url}/.well-known/openid-configuration"
        try:
            response = requests.get(url, timeout=self.http_timeout)
            response.raise_for_status()
            document = response.json()
        except (requests.RequestException, ValueError) as e:
            raise AuthError(f"OIDC discovery failed for {self.issuer_url}: {e}") from e

        for key in ("authorization_endpoint", "token_endpoint"):
            if not isinstance(document, dict) or not document.get(key):
                raise AuthError(f"OIDC discovery document is missing {key}")
        return document

    def authorization_url(self, discovery: Dict[str, Any], session: AuthSession) -> str:
        params = {
            "response_type": "code",
            "client_id": self.client_id,
            "redirect_uri": self.redirect_url,
            "scope": "openid email",
            "state": session.state,
            "nonce": session.nonce,
            "code_challenge": session.code_challenge,
            "code_challenge_method": "S256",
        }
        endpoint = discovery["authorization_endpoint"]
        separator = "&" if "?" in endpoint else "?"
        return f"{endpoint}{separator}{urlencode(params)}"

    def authenticate(
        self, cancel: Optional[threading.Event] = None
    ) -> Tuple[IdentityToken, str]:
        """
        Run the full identity proof.

        Args:
            cancel: Event that aborts the redirect wait when set

        Returns:
            Tuple of (IdentityToken, raw bearer token)

        Raises:
            AuthError: On any failure, including timeout and cancellation
        """
        discovery = self.discover()
        session = AuthSession.create()
        url = self.authorization_url(discovery, session)

        listener = RedirectListener(self.listen_address)
        self.bound_address = listener.bind()
        try:
            self._launch_browser(url)
            params = self._await_redirect(listener, cancel)
        finally:
            listener.close()

        code = self._check_callback(params, session)
        raw_token = self._exchange_code(discovery, code, session)
        identity = IdentityToken.from_jwt(raw_token, expected_nonce=session.nonce)
        return identity, raw_token

    def _launch_browser(self, url: str) -> None:
        print(f"Open this URL in a browser if it does not automatically open for you:\n{url}\n")
        try:
            self.open_browser(url)
        except webbrowser.Error:
            pass

    def _await_redirect(
        self, listener: RedirectListener, cancel: Optional[threading.Event]
    ) -> Dict[str, str]:
        """Run the blocking wait on the executor and join it once."""
        stop = threading.Event()
        events = [stop] if cancel is None else [stop, cancel]

        owned = self.executor is None
        executor = self.executor or concurrent.futures.ThreadPoolExecutor(
            max_workers=1, thread_name_prefix="oidc-redirect"
        )
        overran = False
        try:
            future = executor.submit(listener.wait, self.timeout, events)
            try:
                return future.result(timeout=self.timeout + self.join_grace)
            except concurrent.futures.TimeoutError as e:
                overran = True
                raise AuthError(
                    f"Timed out after {self.timeout:g}s waiting for the identity provider redirect"
                ) from e
        finally:
            stop.set()
            if owned:
                # a worker past its deadline is left to exit on the stop event
                executor.shutdown(wait=not overran)

    def _check_callback(self, params: Dict[str, str], session: AuthSession) -> str:
        if "error" in params:
            description = params.get("error_description", "")
            raise AuthError(
                f"Identity provider denied the request: {params['error']} {description}".strip()
            )
        if params.get("state") != session.state:
            raise AuthError("OAuth state mismatch in redirect")
        code = params.get("code")
        if not code:
            raise AuthError("Redirect did not carry an authorization code")
        return code

    def _exchange_code(
        self, discovery: Dict[str, Any], code: str, session: AuthSession
    ) -> str:
        data = {
            "grant_type": "authorization_code",
            "code": code,
            "redirect_uri": self.redirect_url,
            "client_id": self.client_id,
            "code_verifier": session.code_verifier,
        }
        if self.client_secret:
            data["client_secret"] = self.client_secret

        try:
            response = requests.post(
                discovery["token_endpoint"], data=data, timeout=self.http_timeout
            )
        except requests.RequestException as e:
            raise AuthError(f"Token request failed: {e}") from e

        if not response.ok:
            raise AuthError(
                f"Identity provider rejected the token request ({response.status_code}): {response.text}"
            )

        try:
            payload = response.json()
        except ValueError as e:
            raise AuthError("Token response is not valid JSON") from e

        id_token = payload.get("id_token") if isinstance(payload, dict) else None
        if not id_token:
            raise AuthError("Token response does not contain an id_token")
        return id_token
