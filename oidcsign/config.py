"""Configuration file loading and validation."""

import copy
import os
import yaml
from pathlib import Path
from typing import Dict, Any, Optional


DEFAULT_OIDC_ISSUER = "https://oauth2.sigstore.dev/auth"
DEFAULT_OIDC_CLIENT_ID = "sigstore"
DEFAULT_REDIRECT_URL = "http://localhost:8080"
DEFAULT_LISTEN_ADDRESS = "127.0.0.1:8080"
DEFAULT_AUTH_TIMEOUT = 300.0

DEFAULT_FULCIO_URL = "https://fulcio.sigstore.dev"
DEFAULT_EXPECTED_ISSUER = "sigstore-intermediate"

DEFAULT_REKOR_URL = "https://rekor.sigstore.dev"

DEFAULT_HTTP_TIMEOUT = 30.0

SECTIONS = ("oidc", "fulcio", "rekor")

DEFAULT_CONFIG_PATH = Path(".signing") / "config.yaml"


class ConfigError(Exception):
    """Configuration validation error."""
    pass


class SigningConfig:
    """Endpoints and timeouts for one signing run."""

    def __init__(self, data: Dict[str, Any]):
        """
        Initialize configuration from dictionary.

        Args:
            data: Configuration dictionary from YAML
        """
        self.data = data
        self._validate()

    def _validate(self) -> None:
        """Validate configuration schema."""
        for section in SECTIONS:
            if section not in self.data:
                continue

            values = self.data[section]
            if not isinstance(values, dict):
                raise ConfigError(f"{section} must be a dictionary")

            for key, value in values.items():
                if key.endswith("url") or key in ("issuer", "client_id", "expected_issuer"):
                    if not isinstance(value, str) or not value:
                        raise ConfigError(f"{section}.{key} must be a non-empty string")
                elif key == "client_secret":
                    if not isinstance(value, str):
                        raise ConfigError(f"{section}.{key} must be a string")
                elif key == "listen_address":
                    self._validate_address(section, key, value)
                elif key == "timeout":
                    if isinstance(value, bool) or not isinstance(value, (int, float)):
                        raise ConfigError(f"{section}.{key} must be a number")
                    if value <= 0:
                        raise ConfigError(f"{section}.{key} must be positive")

        if "http_timeout" in self.data:
            value = self.data["http_timeout"]
            if isinstance(value, bool) or not isinstance(value, (int, float)) or value <= 0:
                raise ConfigError("http_timeout must be a positive number")

    @staticmethod
    def _validate_address(section: str, key: str, value: Any) -> None:
        if not isinstance(value, str) or ":" not in value:
            raise ConfigError(f"{section}.{key} must be in host:port form")
        port = value.rsplit(":", 1)[1]
        if not port.isdigit():
            raise ConfigError(f"{section}.{key} has an invalid port: {port}")

    def _section(self, name: str) -> Dict[str, Any]:
        return self.data.get(name, {})

    @property
    def oidc_issuer(self) -> str:
        return self._section("oidc").get("issuer", DEFAULT_OIDC_ISSUER)

    @property
    def oidc_client_id(self) -> str:
        return self._section("oidc").get("client_id", DEFAULT_OIDC_CLIENT_ID)

    @property
    def oidc_client_secret(self) -> str:
        return self._section("oidc").get("client_secret", "")

    @property
    def redirect_url(self) -> str:
        return self._section("oidc").get("redirect_url", DEFAULT_REDIRECT_URL)

    @property
    def listen_address(self) -> str:
        return self._section("oidc").get("listen_address", DEFAULT_LISTEN_ADDRESS)

    @property
    def auth_timeout(self) -> float:
        return float(self._section("oidc").get("timeout", DEFAULT_AUTH_TIMEOUT))

    @property
    def fulcio_url(self) -> str:
        return self._section("fulcio").get("url", DEFAULT_FULCIO_URL)

    @property
    def expected_issuer(self) -> str:
        return self._section("fulcio").get("expected_issuer", DEFAULT_EXPECTED_ISSUER)

    @property
    def rekor_url(self) -> str:
        return self._section("rekor").get("url", DEFAULT_REKOR_URL)

    @property
    def http_timeout(self) -> float:
        return float(self.data.get("http_timeout", DEFAULT_HTTP_TIMEOUT))

    def merge_with_cli_args(
        self,
        fulcio_url: Optional[str] = None,
        rekor_url: Optional[str] = None,
        oidc_issuer: Optional[str] = None,
        auth_timeout: Optional[float] = None,
    ) -> "SigningConfig":
        """
        Overlay command-line values on this configuration.

        Unset arguments leave the file value in place.

        Returns:
            A new, revalidated SigningConfig
        """
        overrides = (
            ("fulcio", "url", fulcio_url),
            ("rekor", "url", rekor_url),
            ("oidc", "issuer", oidc_issuer),
            ("oidc", "timeout", auth_timeout),
        )
        merged = copy.deepcopy(self.data)
        for section, key, value in overrides:
            if value is None or value == "":
                continue
            merged.setdefault(section, {})[key] = value
        return SigningConfig(merged)

    def apply_environment_overrides(self) -> "SigningConfig":
        """Overlay SIGNER_FULCIO_URL, SIGNER_REKOR_URL and SIGNER_OIDC_ISSUER."""
        return self.merge_with_cli_args(
            fulcio_url=os.getenv("SIGNER_FULCIO_URL"),
            rekor_url=os.getenv("SIGNER_REKOR_URL"),
            oidc_issuer=os.getenv("SIGNER_OIDC_ISSUER"),
        )


def load_config(config_path: str) -> SigningConfig:
    """
    Read a YAML configuration file.

    An empty file yields the defaults.

    Raises:
        FileNotFoundError: If nothing exists at config_path
        ConfigError: If the file is not YAML, not a mapping, or fails validation
    """
    path = Path(config_path)
    if not path.is_file():
        raise FileNotFoundError(f"Config file not found: {config_path}")

    try:
        data = yaml.safe_load(path.read_text(encoding="utf-8"))
    except yaml.YAMLError as e:
        raise ConfigError(f"Invalid YAML in {path}: {e}") from e

    if data is None:
        return SigningConfig({})
    if not isinstance(data, dict):
        raise ConfigError(f"{path} must contain a mapping, not {type(data).__name__}")
    return SigningConfig(data)


def find_default_config() -> Optional[Path]:
    """
    Locate `.signing/config.yaml`.

    The working directory and its parents are searched, stopping at the
    first directory holding `.git`; the home directory is tried last.
    """
    cwd = Path.cwd()
    for directory in (cwd, *cwd.parents):
        candidate = directory / DEFAULT_CONFIG_PATH
        if candidate.is_file():
            return candidate
        if (directory / ".git").exists():
            break

    candidate = Path.home() / DEFAULT_CONFIG_PATH
    return candidate if candidate.is_file() else None


def load_default_config() -> Optional[SigningConfig]:
    config_path = find_default_config()
    return load_config(str(config_path)) if config_path else None
