# ABOUTME: Unit tests for configuration management
# ABOUTME: Tests settings loading, validation, and environment context resolution

import os
from unittest.mock import patch

import pytest
from pydantic import SecretStr, ValidationError

from anypoint_mcp.config import SecuritySettings, ServerSettings, load_settings
from anypoint_mcp.utils.client import EnvironmentContext


@pytest.mark.unit
class TestSecuritySettings:
    """Tests for SecuritySettings configuration."""

    def test_defaults(self):
        """Test default security settings."""
        with patch.dict(os.environ, {}, clear=True):
            settings = SecuritySettings()

        assert settings.read_only is True
        assert settings.disable_destructive is True
        assert settings.audit_log is None
        assert settings.rate_limit_calls == 100
        assert settings.rate_limit_window == 60

    def test_env_prefix(self):
        """Test environment variable prefix."""
        with patch.dict(os.environ, {"MCP_READ_ONLY": "false", "MCP_RATE_LIMIT_CALLS": "5"}):
            settings = SecuritySettings()

        assert settings.read_only is False
        assert settings.rate_limit_calls == 5

    def test_audit_log_path(self, tmp_path):
        """Test audit log path is parsed into a Path."""
        log_file = tmp_path / "audit.jsonl"
        with patch.dict(os.environ, {"MCP_AUDIT_LOG": str(log_file)}):
            settings = SecuritySettings()

        assert settings.audit_log == log_file


@pytest.mark.unit
class TestServerSettings:
    """Tests for ServerSettings configuration."""

    def test_defaults(self):
        """Test default server settings with an empty environment."""
        with patch.dict(os.environ, {}, clear=True):
            settings = ServerSettings()

        assert settings.anypoint_url == "https://anypoint.mulesoft.com"
        assert settings.anypoint_token.get_secret_value() == ""
        assert settings.org_id == ""
        assert settings.default_env_id == ""
        assert settings.server_name == "anypoint-mcp"
        assert settings.timeout == 30.0
        assert settings.log_level == "INFO"
        assert settings.json_logs is False
        assert settings.is_configured is False

    def test_anypoint_variables(self):
        """Test connection settings come from ANYPOINT_* variables."""
        env = {
            "ANYPOINT_URL": "eu1.anypoint.mulesoft.com/",
            "ANYPOINT_TOKEN": "Bearer abc",
            "ANYPOINT_ORG_ID": "org-9",
            "ANYPOINT_ENV_ID": "env-9",
        }
        with patch.dict(os.environ, env, clear=True):
            settings = ServerSettings()

        assert settings.anypoint_url == "https://eu1.anypoint.mulesoft.com"
        assert settings.anypoint_token.get_secret_value() == "Bearer abc"
        assert settings.org_id == "org-9"
        assert settings.default_env_id == "env-9"
        assert settings.is_configured is True

    def test_server_prefix(self):
        """Test ANYPOINT_MCP_ prefixed variables."""
        env = {
            "ANYPOINT_MCP_TIMEOUT": "12.5",
            "ANYPOINT_MCP_LOG_LEVEL": "DEBUG",
            "ANYPOINT_MCP_JSON_LOGS": "true",
        }
        with patch.dict(os.environ, env, clear=True):
            settings = ServerSettings()

        assert settings.timeout == 12.5
        assert settings.log_level == "DEBUG"
        assert settings.json_logs is True

    def test_url_keeps_http_scheme(self):
        """Test that an explicit http scheme is preserved."""
        settings = ServerSettings(anypoint_url="http://localhost:8081/")

        assert settings.anypoint_url == "http://localhost:8081"

    def test_token_is_secret(self):
        """Test the token does not appear in repr."""
        settings = ServerSettings(anypoint_token=SecretStr("Bearer abc"))

        assert "Bearer abc" not in repr(settings)

    def test_log_level_validation(self):
        """Test log level validation."""
        with pytest.raises(ValidationError):
            ServerSettings(log_level="VERBOSE")

    def test_timeout_must_be_positive(self):
        """Test a zero timeout is rejected."""
        with pytest.raises(ValidationError):
            ServerSettings(timeout=0)

    def test_nested_security_settings(self):
        """Test security settings via the nested delimiter."""
        with patch.dict(os.environ, {"ANYPOINT_MCP_SECURITY__READ_ONLY": "false"}, clear=True):
            settings = ServerSettings()

        assert settings.security.read_only is False


@pytest.mark.unit
class TestContextFor:
    """Tests for building environment contexts from settings."""

    def test_uses_defaults(self, mock_server_settings: ServerSettings):
        """Test defaults are used when nothing is passed."""
        ctx = mock_server_settings.context_for()

        assert ctx == EnvironmentContext(token="Bearer test-token", org_id="org-1", env_id="env-dev")

    def test_explicit_values_override_defaults(self, mock_server_settings: ServerSettings):
        """Test explicit organization and environment ids win."""
        ctx = mock_server_settings.context_for(env_id="env-prod", org_id="org-2")

        assert ctx.env_id == "env-prod"
        assert ctx.org_id == "org-2"
        assert ctx.token == "Bearer test-token"

    def test_missing_token_raises(self):
        """Test a context cannot be built without a token."""
        with patch.dict(os.environ, {}, clear=True):
            settings = ServerSettings(org_id="org-1", default_env_id="env-dev")

        with pytest.raises(ValueError, match="ANYPOINT_TOKEN"):
            settings.context_for()

    def test_missing_org_raises(self):
        """Test a context cannot be built without an organization."""
        with patch.dict(os.environ, {}, clear=True):
            settings = ServerSettings(anypoint_token=SecretStr("Bearer x"), default_env_id="env-dev")

        with pytest.raises(ValueError, match="ANYPOINT_ORG_ID"):
            settings.context_for()

    def test_missing_env_raises(self):
        """Test a context cannot be built without an environment."""
        with patch.dict(os.environ, {}, clear=True):
            settings = ServerSettings(anypoint_token=SecretStr("Bearer x"), org_id="org-1")

        with pytest.raises(ValueError, match="ANYPOINT_ENV_ID"):
            settings.context_for()


@pytest.mark.unit
class TestLoadSettings:
    """Tests for load_settings."""

    def test_reads_environment(self):
        """Test load_settings picks up the environment."""
        with patch.dict(os.environ, {"ANYPOINT_ORG_ID": "org-7"}, clear=True):
            settings = load_settings()

        assert settings.org_id == "org-7"

    def test_reads_env_file(self, tmp_path):
        """Test ANYPOINT_MCP_ENV_FILE points at a dotenv file."""
        env_file = tmp_path / ".env"
        env_file.write_text("ANYPOINT_ORG_ID=org-from-file\nANYPOINT_ENV_ID=env-from-file\n")

        with patch.dict(os.environ, {"ANYPOINT_MCP_ENV_FILE": str(env_file)}, clear=True):
            settings = load_settings()

        assert settings.org_id == "org-from-file"
        assert settings.default_env_id == "env-from-file"
