# ABOUTME: Pytest fixtures and configuration for Anypoint Runtime Manager MCP Server tests
# ABOUTME: Provides shared fixtures for unit and integration tests

import os
from typing import AsyncIterator
from unittest.mock import AsyncMock, MagicMock

import pytest
from pydantic import SecretStr

from anypoint_mcp.config import SecuritySettings, ServerSettings
from anypoint_mcp.utils.client import Application, EnvironmentContext, RuntimeManagerClient, Target
from anypoint_mcp.utils.safety import SafetyGuard


@pytest.fixture
def dev_env() -> EnvironmentContext:
    """Source environment context."""
    return EnvironmentContext(token="Bearer test-token", org_id="org-1", env_id="env-dev")


@pytest.fixture
def prod_env() -> EnvironmentContext:
    """Target environment context."""
    return EnvironmentContext(token="Bearer test-token", org_id="org-1", env_id="env-prod")


@pytest.fixture
def mock_security_settings() -> SecuritySettings:
    """Create security settings with writes and undeploy enabled."""
    return SecuritySettings(
        read_only=False,
        disable_destructive=False,
        audit_log=None,
        rate_limit_calls=100,
        rate_limit_window=60,
    )


@pytest.fixture
def read_only_security_settings() -> SecuritySettings:
    """Create read-only security settings for testing."""
    return SecuritySettings(
        read_only=True,
        disable_destructive=True,
        audit_log=None,
        rate_limit_calls=100,
        rate_limit_window=60,
    )


@pytest.fixture
def mock_server_settings(mock_security_settings: SecuritySettings) -> ServerSettings:
    """Create server settings pointing at a fake organization."""
    return ServerSettings(
        anypoint_url="https://anypoint.mulesoft.com",
        anypoint_token=SecretStr("Bearer test-token"),
        org_id="org-1",
        default_env_id="env-dev",
        security=mock_security_settings,
    )


@pytest.fixture
def safety_guard(mock_security_settings: SecuritySettings) -> SafetyGuard:
    """Create a safety guard for testing."""
    return SafetyGuard(mock_security_settings)


@pytest.fixture
def read_only_safety_guard(read_only_security_settings: SecuritySettings) -> SafetyGuard:
    """Create a read-only safety guard for testing."""
    return SafetyGuard(read_only_security_settings)


@pytest.fixture
def sample_application() -> Application:
    """Create a sample application for testing."""
    return Application(
        id=1001,
        name="orders-api",
        desired_status="STARTED",
        last_reported_status="STARTED",
    )


@pytest.fixture
def sample_server() -> Target:
    """Create a sample server for testing."""
    return Target(id=42, name="prod-server-1", kind="server", status="RUNNING")


@pytest.fixture
def mock_runtime_client(
    sample_application: Application,
    sample_server: Target,
) -> AsyncMock:
    """Create a mock Runtime Manager client."""
    client = AsyncMock(spec=RuntimeManagerClient)

    client.list_applications.return_value = [sample_application]
    client.list_servers.return_value = [sample_server]
    client.list_clusters.return_value = []
    client.get_applications.return_value = {"orders-api": 1001}
    client.get_target.return_value = 42
    client.redeploy_application.return_value = {"id": 2001, "name": "orders-api"}
    client.promote_applications.return_value = {"orders-api": {"id": 2001}}
    client.undeploy_application.return_value = "undeployed"

    return client


@pytest.fixture
def mock_context() -> MagicMock:
    """Create a mock MCP context."""
    ctx = MagicMock()
    ctx.request_id = "test-request-123"
    ctx.report_progress = AsyncMock()
    return ctx


# Integration test fixtures


@pytest.fixture
def live_env() -> EnvironmentContext | None:
    """Environment context from ANYPOINT_* variables, if all are set."""
    token = os.environ.get("ANYPOINT_TOKEN")
    org_id = os.environ.get("ANYPOINT_ORG_ID")
    env_id = os.environ.get("ANYPOINT_ENV_ID")
    if not token or not org_id or not env_id:
        return None
    return EnvironmentContext(token=token, org_id=org_id, env_id=env_id)


@pytest.fixture
async def live_client() -> AsyncIterator[RuntimeManagerClient]:
    """Create a live Runtime Manager client for integration tests."""
    url = os.environ.get("ANYPOINT_URL", "https://anypoint.mulesoft.com")
    async with RuntimeManagerClient(base_url=url) as client:
        yield client
