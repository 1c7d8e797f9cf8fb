# ABOUTME: Integration tests for the Runtime Manager API client against a live Anypoint organization
# ABOUTME: Read-only; requires ANYPOINT_TOKEN, ANYPOINT_ORG_ID and ANYPOINT_ENV_ID

"""Integration tests for RuntimeManagerClient against Anypoint Platform.

These tests require:
- ANYPOINT_TOKEN: Authorization header value, e.g. "Bearer 3f2a..."
- ANYPOINT_ORG_ID: Organization (business group) id
- ANYPOINT_ENV_ID: Environment id to read from
- ANYPOINT_URL (optional): Control plane host, e.g. https://eu1.anypoint.mulesoft.com

Only listings and lookups are exercised. Nothing is deployed, patched or
undeployed, so the tests are safe to run against any environment.
"""

from dataclasses import replace

import pytest

from anypoint_mcp.utils.client import (
    Application,
    EnvironmentContext,
    NotFoundError,
    RuntimeManagerClient,
    Target,
    TransportError,
)

pytestmark = pytest.mark.integration

MISSING_NAME = "anypoint-mcp-integration-does-not-exist"


@pytest.fixture
def env(live_env: EnvironmentContext | None) -> EnvironmentContext:
    if live_env is None:
        pytest.skip("ANYPOINT_TOKEN, ANYPOINT_ORG_ID and ANYPOINT_ENV_ID must be set")
    return live_env


class TestListing:
    """List endpoints return parsed entries."""

    async def test_list_applications(self, env: EnvironmentContext, live_client: RuntimeManagerClient):
        apps = await live_client.list_applications(env)

        assert isinstance(apps, list)
        assert all(isinstance(app, Application) for app in apps)
        assert all(app.id is not None and app.name for app in apps)

    async def test_list_servers(self, env: EnvironmentContext, live_client: RuntimeManagerClient):
        servers = await live_client.list_servers(env)

        assert all(isinstance(s, Target) and s.kind == "server" for s in servers)

    async def test_list_clusters(self, env: EnvironmentContext, live_client: RuntimeManagerClient):
        clusters = await live_client.list_clusters(env)

        assert all(isinstance(c, Target) and c.kind == "cluster" for c in clusters)


class TestLookups:
    """Name lookups agree with the listings."""

    async def test_get_applications_matches_listing(
        self, env: EnvironmentContext, live_client: RuntimeManagerClient
    ):
        apps = await live_client.list_applications(env)
        if not apps:
            pytest.skip("Environment has no applications")

        first = apps[0]
        ids = await live_client.get_applications(env, [first.name])

        assert ids == {first.name: first.id}

    async def test_get_applications_missing_name(
        self, env: EnvironmentContext, live_client: RuntimeManagerClient
    ):
        with pytest.raises(NotFoundError):
            await live_client.get_applications(env, [MISSING_NAME])

    async def test_find_application_id_missing(
        self, env: EnvironmentContext, live_client: RuntimeManagerClient
    ):
        assert await live_client.find_application_id(env, MISSING_NAME) is None

    async def test_get_server_matches_listing(
        self, env: EnvironmentContext, live_client: RuntimeManagerClient
    ):
        servers = await live_client.list_servers(env)
        if not servers:
            pytest.skip("Environment has no servers")

        assert await live_client.get_server(env, servers[0].name) == servers[0].id

    async def test_get_cluster_missing_name(
        self, env: EnvironmentContext, live_client: RuntimeManagerClient
    ):
        with pytest.raises(NotFoundError):
            await live_client.get_cluster(env, MISSING_NAME)


class TestAuthentication:
    """Bad credentials surface as TransportError."""

    async def test_invalid_token(self, env: EnvironmentContext, live_client: RuntimeManagerClient):
        bad = replace(env, token="Bearer 00000000-0000-0000-0000-000000000000")

        with pytest.raises(TransportError) as exc_info:
            await live_client.list_applications(bad)

        assert exc_info.value.code in (401, 403)

    async def test_unreachable_host(self, env: EnvironmentContext):
        async with RuntimeManagerClient(base_url="https://localhost:1", timeout=2.0) as client:
            with pytest.raises(TransportError) as exc_info:
                await client.list_applications(env)

        assert exc_info.value.code is None
