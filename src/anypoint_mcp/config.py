# ABOUTME: Configuration management for the Anypoint Runtime Manager MCP Server
# ABOUTME: Handles environment variables, default organization/environment, and safety modes

"""
Configuration management using pydantic-settings.

=============================================================================
WHAT IS THIS FILE?
=============================================================================

This module reads the server configuration from environment variables,
validates it, and turns it into EnvironmentContext objects for the client.

The Runtime Manager client never stores credentials: every call receives an
EnvironmentContext (token, organization id, environment id). The settings
here only provide the DEFAULTS the MCP tools use when an agent does not pass
an organization or environment explicitly.

=============================================================================
ENVIRONMENT VARIABLE MAPPING
=============================================================================

Anypoint connection:
    ANYPOINT_URL        -> Platform host (default https://anypoint.mulesoft.com)
    ANYPOINT_TOKEN      -> Authorization header value, e.g. "Bearer 3f2a..."
    ANYPOINT_ORG_ID     -> Default organization (business group) id
    ANYPOINT_ENV_ID     -> Default environment id (optional)

Server (ANYPOINT_MCP_ prefix):
    ANYPOINT_MCP_TIMEOUT    -> HTTP timeout in seconds (default: 30)
    ANYPOINT_MCP_LOG_LEVEL  -> DEBUG, INFO, WARNING, ERROR, CRITICAL
    ANYPOINT_MCP_JSON_LOGS  -> Emit JSON log lines instead of console output
    ANYPOINT_MCP_ENV_FILE   -> Optional .env file to read

Safety (MCP_ prefix):
    MCP_READ_ONLY           -> Block redeploy/promote/undeploy (default: true)
    MCP_DISABLE_DESTRUCTIVE -> Block undeploy even with writes on (default: true)
    MCP_AUDIT_LOG           -> Path to JSON-lines audit log file
    MCP_RATE_LIMIT_CALLS    -> Max tool calls per window (default: 100)
    MCP_RATE_LIMIT_WINDOW   -> Rate limit window in seconds (default: 60)
"""

from __future__ import annotations

import os
from pathlib import Path  # noqa: TC003 - Required at runtime for Pydantic
from typing import Annotated

from pydantic import Field, SecretStr, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from anypoint_mcp.utils.client import DEFAULT_BASE_URL, EnvironmentContext

# =============================================================================
# SECURITY SETTINGS
# =============================================================================


class SecuritySettings(BaseSettings):
    """
    Security-related configuration.

    Deployments change what runs in production, so the defaults are the
    safe ones: the server starts read-only and undeploy is disabled.

    Layer 1: MCP_READ_ONLY=true (default)
        - Only listing and lookups are allowed
    Layer 2: MCP_DISABLE_DESTRUCTIVE=true (default)
        - Even with writes enabled, undeploy stays blocked
    Layer 3: Rate limiting (MCP_RATE_LIMIT_*)
        - Caps tool calls per time window
    Layer 4: Confirmation (in SafetyGuard)
        - Undeploy needs confirm=true AND confirm_name matching the app id
    """

    model_config = SettingsConfigDict(env_prefix="MCP_")

    read_only: bool = Field(
        default=True,
        description="Block all deployment operations when true",
    )

    disable_destructive: bool = Field(
        default=True,
        description="Block undeploy operations when true",
    )

    audit_log: Path | None = Field(
        default=None,
        description="Path to audit log file",
    )
    # When None, audit entries go through structlog to stdout.

    rate_limit_calls: int = Field(
        default=100,
        description="Maximum tool calls per window",
    )

    rate_limit_window: int = Field(
        default=60,
        description="Rate limit window in seconds",
    )


# =============================================================================
# MAIN SERVER SETTINGS
# =============================================================================


class ServerSettings(BaseSettings):
    """
    Main server configuration.

    USAGE:
    ------
        settings = load_settings()
        ctx = settings.context_for("prod-env-id")
        async with RuntimeManagerClient(settings.anypoint_url) as client:
            await client.list_applications(ctx)
    """

    model_config = SettingsConfigDict(
        env_prefix="ANYPOINT_MCP_",
        env_nested_delimiter="__",
        extra="ignore",
        populate_by_name=True,
    )

    # -------------------------------------------------------------------------
    # ANYPOINT CONNECTION
    # -------------------------------------------------------------------------

    anypoint_url: str = Field(
        default=DEFAULT_BASE_URL,
        validation_alias="ANYPOINT_URL",
        description="Anypoint Platform host",
    )

    anypoint_token: SecretStr = Field(
        default=SecretStr(""),
        validation_alias="ANYPOINT_TOKEN",
        description="Value of the Authorization header",
    )
    # Sent as-is. Obtain one with the Anypoint CLI or the
    # /accounts/login endpoint and prefix it with "Bearer ".

    org_id: str = Field(
        default="",
        validation_alias="ANYPOINT_ORG_ID",
        description="Default organization id",
    )

    default_env_id: str = Field(
        default="",
        validation_alias="ANYPOINT_ENV_ID",
        description="Default environment id",
    )

    # -------------------------------------------------------------------------
    # SERVER
    # -------------------------------------------------------------------------

    server_name: str = Field(
        default="anypoint-mcp",
        description="MCP server name",
    )

    timeout: float = Field(
        default=30.0,
        gt=0,
        description="HTTP request timeout in seconds",
    )

    log_level: Annotated[str, Field(pattern=r"^(DEBUG|INFO|WARNING|ERROR|CRITICAL)$")] = Field(
        default="INFO",
        description="Logging level",
    )

    json_logs: bool = Field(
        default=False,
        description="Render logs as JSON lines",
    )

    security: SecuritySettings = Field(default_factory=SecuritySettings)

    @field_validator("anypoint_url")
    @classmethod
    def validate_url(cls, v: str) -> str:
        """
        Ensure URL has a scheme and no trailing slash.

        "anypoint.mulesoft.com" becomes "https://anypoint.mulesoft.com", and
        "https://eu1.anypoint.mulesoft.com/" loses its trailing slash so the
        API prefix can be appended safely.
        """
        if not v.startswith(("http://", "https://")):
            v = f"https://{v}"
        return v.rstrip("/")

    @property
    def is_configured(self) -> bool:
        """True when a token and an organization id are available."""
        return bool(self.anypoint_token.get_secret_value() and self.org_id)

    def context_for(
        self,
        env_id: str | None = None,
        org_id: str | None = None,
    ) -> EnvironmentContext:
        """
        Build an EnvironmentContext, falling back to configured defaults.

        Args:
            env_id: Environment id. Defaults to ANYPOINT_ENV_ID.
            org_id: Organization id. Defaults to ANYPOINT_ORG_ID.

        Raises:
            ValueError: If the token, organization or environment is missing.
        """
        token = self.anypoint_token.get_secret_value()
        resolved_org = org_id or self.org_id
        resolved_env = env_id or self.default_env_id

        if not token:
            raise ValueError("No Anypoint token configured. Set ANYPOINT_TOKEN.")
        if not resolved_org:
            raise ValueError("No organization id given and ANYPOINT_ORG_ID is not set.")
        if not resolved_env:
            raise ValueError("No environment id given and ANYPOINT_ENV_ID is not set.")

        return EnvironmentContext(token=token, org_id=resolved_org, env_id=resolved_env)


# =============================================================================
# SETTINGS LOADER
# =============================================================================


def load_settings() -> ServerSettings:
    """
    Load settings from environment with validation.

    If ANYPOINT_MCP_ENV_FILE is set, variables are also read from that file.

    Raises:
        pydantic.ValidationError: If configuration is invalid.
    """
    return ServerSettings(
        _env_file=os.environ.get("ANYPOINT_MCP_ENV_FILE"),
    )
