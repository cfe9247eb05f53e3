"""Unit tests for config.py module."""

import pytest

from oidcsign.config import (
    ConfigError,
    SigningConfig,
    find_default_config,
    load_config,
    load_default_config,
)


class TestSigningConfig:
    """Tests for SigningConfig class."""

    def test_defaults(self):
        """Test an empty config falls back to public instance defaults."""
        config = SigningConfig({})

        assert config.oidc_issuer == "https://oauth2.sigstore.dev/auth"
        assert config.oidc_client_id == "sigstore"
        assert config.oidc_client_secret == ""
        assert config.redirect_url == "http://localhost:8080"
        assert config.listen_address == "127.0.0.1:8080"
        assert config.auth_timeout == 300.0
        assert config.fulcio_url == "https://fulcio.sigstore.dev"
        assert config.expected_issuer == "sigstore-intermediate"
        assert config.rekor_url == "https://rekor.sigstore.dev"
        assert config.http_timeout == 30.0

    def test_custom_values(self):
        """Test configured values are exposed."""
        config = SigningConfig(
            {
                "oidc": {"issuer": "https://idp.example.com", "timeout": 60},
                "fulcio": {"url": "https://ca.example.com", "expected_issuer": "my-ca"},
                "rekor": {"url": "https://log.example.com"},
                "http_timeout": 5,
            }
        )

        assert config.oidc_issuer == "https://idp.example.com"
        assert config.auth_timeout == 60.0
        assert config.fulcio_url == "https://ca.example.com"
        assert config.expected_issuer == "my-ca"
        assert config.rekor_url == "https://log.example.com"
        assert config.http_timeout == 5.0

    def test_validation_section_type(self):
        """Test sections must be dictionaries."""
        with pytest.raises(ConfigError, match="fulcio must be a dictionary"):
            SigningConfig({"fulcio": "https://ca.example.com"})

    def test_validation_empty_url(self):
        """Test URLs must be non-empty strings."""
        with pytest.raises(ConfigError, match="rekor.url must be a non-empty string"):
            SigningConfig({"rekor": {"url": ""}})

    def test_validation_timeout(self):
        """Test timeouts must be positive numbers."""
        with pytest.raises(ConfigError, match="oidc.timeout must be positive"):
            SigningConfig({"oidc": {"timeout": 0}})

        with pytest.raises(ConfigError, match="oidc.timeout must be a number"):
            SigningConfig({"oidc": {"timeout": "soon"}})

        with pytest.raises(ConfigError, match="http_timeout"):
            SigningConfig({"http_timeout": -1})

    def test_validation_listen_address(self):
        """Test listen address must be host:port."""
        with pytest.raises(ConfigError, match="host:port"):
            SigningConfig({"oidc": {"listen_address": "localhost"}})

        with pytest.raises(ConfigError, match="invalid port"):
            SigningConfig({"oidc": {"listen_address": "localhost:http"}})

    def test_merge_with_cli_args(self):
        """Test CLI values take precedence and the original is untouched."""
        original = SigningConfig({"fulcio": {"url": "https://file.example.com"}})

        merged = original.merge_with_cli_args(
            fulcio_url="https://cli.example.com",
            rekor_url="https://log.example.com",
            auth_timeout=10,
        )

        assert merged.fulcio_url == "https://cli.example.com"
        assert merged.rekor_url == "https://log.example.com"
        assert merged.auth_timeout == 10.0
        assert original.fulcio_url == "https://file.example.com"

    def test_merge_without_values(self):
        """Test empty CLI values keep the file values."""
        config = SigningConfig({"rekor": {"url": "https://log.example.com"}})

        assert config.merge_with_cli_args().rekor_url == "https://log.example.com"

    def test_environment_overrides(self, monkeypatch):
        """Test SIGNER_* variables override the file."""
        monkeypatch.setenv("SIGNER_FULCIO_URL", "https://env-ca.example.com")
        monkeypatch.setenv("SIGNER_REKOR_URL", "https://env-log.example.com")
        monkeypatch.setenv("SIGNER_OIDC_ISSUER", "https://env-idp.example.com")

        config = SigningConfig({"fulcio": {"url": "https://file.example.com"}})
        overridden = config.apply_environment_overrides()

        assert overridden.fulcio_url == "https://env-ca.example.com"
        assert overridden.rekor_url == "https://env-log.example.com"
        assert overridden.oidc_issuer == "https://env-idp.example.com"


class TestLoadConfig:
    """Tests for load_config and default lookup."""

    def test_load_config(self, tmp_path):
        """Test YAML file loading."""
        path = tmp_path / "config.yaml"
        path.write_text("fulcio:\n  url: https://ca.example.com\nhttp_timeout: 12\n")

        config = load_config(str(path))

        assert config.fulcio_url == "https://ca.example.com"
        assert config.http_timeout == 12.0

    def test_load_empty_config(self, tmp_path):
        """Test an empty file yields defaults."""
        path = tmp_path / "config.yaml"
        path.write_text("")

        assert load_config(str(path)).data == {}

    def test_load_missing(self, tmp_path):
        """Test missing file raises FileNotFoundError."""
        with pytest.raises(FileNotFoundError):
            load_config(str(tmp_path / "missing.yaml"))

    def test_load_invalid_yaml(self, tmp_path):
        """Test invalid YAML raises ConfigError."""
        path = tmp_path / "config.yaml"
        path.write_text("fulcio: [unclosed\n")

        with pytest.raises(ConfigError, match="Invalid YAML"):
            load_config(str(path))

    def test_load_non_mapping(self, tmp_path):
        """Test a YAML list is rejected."""
        path = tmp_path / "config.yaml"
        path.write_text("- a\n- b\n")

        with pytest.raises(ConfigError, match="mapping"):
            load_config(str(path))

    def test_find_default_config_in_parent(self, tmp_path, monkeypatch):
        """Test lookup walks up to the git root."""
        (tmp_path / ".git").mkdir()
        config_dir = tmp_path / ".signing"
        config_dir.mkdir()
        (config_dir / "config.yaml").write_text("rekor:\n  url: https://log.example.com\n")
        nested = tmp_path / "a" / "b"
        nested.mkdir(parents=True)
        monkeypatch.chdir(nested)

        assert find_default_config() == config_dir / "config.yaml"
        assert load_default_config().rekor_url == "https://log.example.com"

    def test_find_default_config_home(self, tmp_path, monkeypatch):
        """Test lookup falls back to the home directory."""
        project = tmp_path / "project"
        (project / ".git").mkdir(parents=True)
        home = tmp_path / "home"
        (home / ".signing").mkdir(parents=True)
        (home / ".signing" / "config.yaml").write_text("{}\n")
        monkeypatch.chdir(project)
        monkeypatch.setenv("HOME", str(home))

        assert find_default_config() == home / ".signing" / "config.yaml"

    def test_no_default_config(self, tmp_path, monkeypatch):
        """Test None when nothing is found."""
        (tmp_path / ".git").mkdir()
        monkeypatch.chdir(tmp_path)
        monkeypatch.setenv("HOME", str(tmp_path / "nohome"))

        assert find_default_config() is None
        assert load_default_config() is None
