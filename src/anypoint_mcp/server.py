# ABOUTME: FastMCP server initialization and main entry point
# ABOUTME: Exposes Runtime Manager lookups, deployments and promotions as MCP tools

"""Anypoint Runtime Manager MCP Server - safety-first hybrid deployments."""

import json
import sys
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from typing import Any, Literal

import structlog
from mcp.server.fastmcp import Context, FastMCP
from pydantic import BaseModel, Field

from anypoint_mcp.config import ServerSettings, load_settings
from anypoint_mcp.utils.client import (
    DeploymentError,
    EnvironmentContext,
    RuntimeManagerClient,
    RuntimeManagerError,
)
from anypoint_mcp.utils.logging import AuditLogger, configure_logging, set_correlation_id
from anypoint_mcp.utils.safety import ConfirmationRequired, SafetyGuard

logger = structlog.get_logger(__name__)

# Global state (initialized in lifespan)
_settings: ServerSettings | None = None
_client: RuntimeManagerClient | None = None
_safety_guard: SafetyGuard | None = None
_audit_logger: AuditLogger | None = None


@asynccontextmanager
async def lifespan(_server: FastMCP) -> AsyncIterator[dict[str, Any]]:
    """Manage server lifecycle: load config, open the API client, close it on shutdown."""
    global _settings, _client, _safety_guard, _audit_logger

    logger.info("Starting Anypoint Runtime Manager MCP Server")

    _settings = load_settings()
    configure_logging(level=_settings.log_level, json_output=_settings.json_logs)
    _safety_guard = SafetyGuard(_settings.security)
    _audit_logger = AuditLogger(_settings.security.audit_log)

    if not _settings.is_configured:
        logger.warning("ANYPOINT_TOKEN or ANYPOINT_ORG_ID not set; tools will fail until configured")

    client = RuntimeManagerClient(base_url=_settings.anypoint_url, timeout=_settings.timeout)
    await client.__aenter__()
    _client = client
    logger.info("Runtime Manager client ready", url=_settings.anypoint_url)

    try:
        yield {"settings": _settings, "client": _client}
    finally:
        await client.__aexit__(None, None, None)
        _client = None
        logger.info("Anypoint Runtime Manager MCP Server stopped")


mcp = FastMCP("anypoint-mcp", lifespan=lifespan)


def get_client() -> RuntimeManagerClient:
    """Get the Runtime Manager client."""
    if not _client:
        raise RuntimeError("Server not initialized")
    return _client


def get_settings() -> ServerSettings:
    """Get server settings."""
    if not _settings:
        raise RuntimeError("Server not initialized")
    return _settings


def get_safety_guard() -> SafetyGuard:
    """Get safety guard for permission checking."""
    if not _safety_guard:
        raise RuntimeError("Server not initialized")
    return _safety_guard


def get_audit_logger() -> AuditLogger:
    """Get audit logger for recording operations."""
    if not _audit_logger:
        raise RuntimeError("Server not initialized")
    return _audit_logger


def _start(ctx: Context) -> None:
    set_correlation_id(ctx.request_id if hasattr(ctx, "request_id") else "")


def _label(env: EnvironmentContext | str | None, name: str) -> str:
    env_id = env.env_id if isinstance(env, EnvironmentContext) else env
    return f"{env_id or 'default'}/{name}"


def _format_payload(payload: Any) -> str:
    return json.dumps(payload, indent=2, sort_keys=True, default=str)


class EnvironmentParams(BaseModel):
    """Organization/environment selection shared by all tools."""

    env_id: str | None = Field(
        default=None, description="Environment id (defaults to ANYPOINT_ENV_ID)"
    )
    org_id: str | None = Field(
        default=None, description="Organization id (defaults to ANYPOINT_ORG_ID)"
    )


# =============================================================================
# READ OPERATIONS
# =============================================================================


class ListApplicationsParams(EnvironmentParams):
    """Parameters for list_applications tool."""


@mcp.tool()
async def list_applications(params: ListApplicationsParams, ctx: Context) -> str:
    """
    List applications deployed in a Runtime Manager environment.

    Shows each application's id, name and reported status.
    """
    _start(ctx)

    blocked = get_safety_guard().check_read_operation("list_applications")
    if blocked:
        get_audit_logger().log_blocked("list_applications", _label(params.env_id, "*"), blocked.reason)
        return blocked.format_message()

    try:
        env = get_settings().context_for(params.env_id, params.org_id)
        apps = await get_client().list_applications(env)

        get_audit_logger().log_read("list_applications", _label(env, "*"))

        if not apps:
            return f"No applications found in environment '{env.env_id}'."

        lines = [f"Found {len(apps)} application(s) in environment '{env.env_id}':", ""]
        for app in apps:
            status = app.last_reported_status or "UNKNOWN"
            lines.append(f"- {app.name} (id={app.id}) status={status}")
        return "\n".join(lines)

    except (RuntimeManagerError, ValueError) as e:
        get_audit_logger().log_error("list_applications", _label(params.env_id, "*"), str(e))
        return str(e)


class ListTargetsParams(EnvironmentParams):
    """Parameters for list_targets tool."""

    kind: Literal["server", "cluster"] = Field(
        default="server", description="List servers or clusters"
    )


@mcp.tool()
async def list_targets(params: ListTargetsParams, ctx: Context) -> str:
    """List the servers or clusters applications can be deployed to."""
    _start(ctx)

    blocked = get_safety_guard().check_read_operation("list_targets")
    if blocked:
        get_audit_logger().log_blocked("list_targets", _label(params.env_id, params.kind), blocked.reason)
        return blocked.format_message()

    try:
        env = get_settings().context_for(params.env_id, params.org_id)
        client = get_client()
        if params.kind == "cluster":
            targets = await client.list_clusters(env)
        else:
            targets = await client.list_servers(env)

        get_audit_logger().log_read("list_targets", _label(env, params.kind))

        if not targets:
            return f"No {params.kind}s found in environment '{env.env_id}'."

        lines = [f"Found {len(targets)} {params.kind}(s) in environment '{env.env_id}':", ""]
        for target in targets:
            lines.append(f"- {target.name} (id={target.id}) status={target.status or 'UNKNOWN'}")
        return "\n".join(lines)

    except (RuntimeManagerError, ValueError) as e:
        get_audit_logger().log_error("list_targets", _label(params.env_id, params.kind), str(e))
        return str(e)


class GetApplicationIdsParams(EnvironmentParams):
    """Parameters for get_application_ids tool."""

    names: list[str] = Field(min_length=1, description="Application names to resolve")


@mcp.tool()
async def get_application_ids(params: GetApplicationIdsParams, ctx: Context) -> str:
    """
    Resolve application names to Runtime Manager ids.

    Fails if any of the names does not exist in the environment.
    """
    _start(ctx)
    target = _label(params.env_id, ",".join(params.names))

    blocked = get_safety_guard().check_read_operation("get_application_ids")
    if blocked:
        get_audit_logger().log_blocked("get_application_ids", target, blocked.reason)
        return blocked.format_message()

    try:
        env = get_settings().context_for(params.env_id, params.org_id)
        ids = await get_client().get_applications(env, params.names)

        get_audit_logger().log_read("get_application_ids", target)

        lines = [f"Application ids in environment '{env.env_id}':", ""]
        lines.extend(f"- {name}: {app_id}" for name, app_id in ids.items())
        return "\n".join(lines)

    except (RuntimeManagerError, ValueError) as e:
        get_audit_logger().log_error("get_application_ids", target, str(e))
        return str(e)


class ResolveTargetParams(EnvironmentParams):
    """Parameters for resolve_target tool."""

    name: str = Field(description="Server or cluster name")
    kind: Literal["server", "cluster"] = Field(default="server", description="Target kind")


@mcp.tool()
async def resolve_target(params: ResolveTargetParams, ctx: Context) -> str:
    """Resolve a server or cluster name to its id."""
    _start(ctx)
    target = _label(params.env_id, params.name)

    blocked = get_safety_guard().check_read_operation("resolve_target")
    if blocked:
        get_audit_logger().log_blocked("resolve_target", target, blocked.reason)
        return blocked.format_message()

    try:
        env = get_settings().context_for(params.env_id, params.org_id)
        target_id = await get_client().get_target(env, params.name, params.kind)

        get_audit_logger().log_read("resolve_target", target)
        return f"{params.kind.capitalize()} '{params.name}' has id {target_id}"

    except (RuntimeManagerError, ValueError) as e:
        get_audit_logger().log_error("resolve_target", target, str(e))
        return str(e)


# =============================================================================
# WRITE OPERATIONS (require MCP_READ_ONLY=false)
# =============================================================================


class RedeployApplicationParams(EnvironmentParams):
    """Parameters for redeploy_application tool."""

    app_name: str = Field(description="Application name in the target environment")
    source_app_id: int | str = Field(description="Id of the application to copy the artifact from")
    target_id: int | str = Field(description="Server or cluster id used for a fresh deployment")


@mcp.tool()
async def redeploy_application(params: RedeployApplicationParams, ctx: Context) -> str:
    """
    Deploy or update an application from another application's artifact.

    If an application with this name exists in the environment its artifact
    is patched in place; otherwise a new application is deployed to the
    given server or cluster.
    """
    _start(ctx)
    target = _label(params.env_id, params.app_name)

    blocked = get_safety_guard().check_write_operation("redeploy_application")
    if blocked:
        get_audit_logger().log_blocked("redeploy_application", target, blocked.reason)
        return blocked.format_message()

    try:
        env = get_settings().context_for(params.env_id, params.org_id)
        payload = await get_client().redeploy_application(
            env, params.target_id, params.app_name, params.source_app_id
        )

        get_audit_logger().log_write(
            "redeploy_application",
            _label(env, params.app_name),
            {"source_app_id": params.source_app_id, "target_id": params.target_id},
        )
        return f"Application '{params.app_name}' deployed.\n\n{_format_payload(payload)}"

    except (RuntimeManagerError, ValueError) as e:
        get_audit_logger().log_error("redeploy_application", target, str(e))
        return str(e)


class PromoteApplicationsParams(BaseModel):
    """Parameters for promote_applications tool."""

    app_names: list[str] = Field(min_length=1, description="Applications to promote, in order")
    source_env_id: str = Field(description="Environment the artifacts are taken from")
    target_env_id: str = Field(description="Environment the applications are deployed to")
    target_name: str = Field(description="Server or cluster name in the target environment")
    target_kind: Literal["server", "cluster"] = Field(default="server", description="Target kind")
    org_id: str | None = Field(
        default=None, description="Organization id (defaults to ANYPOINT_ORG_ID)"
    )


@mcp.tool()
async def promote_applications(params: PromoteApplicationsParams, ctx: Context) -> str:
    """
    Promote applications from one environment to another.

    Each application is created on the target server/cluster, or patched
    if it already exists there. Stops at the first failing application.
    """
    _start(ctx)
    target = _label(params.target_env_id, ",".join(params.app_names))

    blocked = get_safety_guard().check_write_operation("promote_applications")
    if blocked:
        get_audit_logger().log_blocked("promote_applications", target, blocked.reason)
        return blocked.format_message()

    try:
        settings = get_settings()
        source = settings.context_for(params.source_env_id, params.org_id)
        destination = settings.context_for(params.target_env_id, params.org_id)

        await ctx.report_progress(0, 1, f"Promoting {len(params.app_names)} application(s)")

        results = await get_client().promote_applications(
            source,
            destination,
            params.app_names,
            params.target_name,
            params.target_kind,
        )

        await ctx.report_progress(1, 1, "Complete")

        get_audit_logger().log_write(
            "promote_applications",
            target,
            {
                "source_env_id": params.source_env_id,
                "target": f"{params.target_kind}:{params.target_name}",
            },
        )

        lines = [
            f"Promoted {len(results)} application(s) from '{params.source_env_id}' "
            f"to '{params.target_env_id}' ({params.target_kind} '{params.target_name}'):",
            "",
        ]
        lines.extend(f"- {name}" for name in results)
        return "\n".join(lines)

    except DeploymentError as e:
        get_audit_logger().log_error("promote_applications", _label(params.target_env_id, e.app_name), str(e))
        return f"{e}\n\nApplications after '{e.app_name}' were not promoted."

    except (RuntimeManagerError, ValueError) as e:
        get_audit_logger().log_error("promote_applications", target, str(e))
        return str(e)


# =============================================================================
# DESTRUCTIVE OPERATIONS (require explicit confirmation)
# =============================================================================


class UndeployApplicationParams(EnvironmentParams):
    """Parameters for undeploy_application tool."""

    app_id: str = Field(description="Id of the application to undeploy")
    confirm: bool = Field(default=False, description="Must be true to execute undeploy")
    confirm_name: str | None = Field(
        default=None, description="Repeat the application id to confirm"
    )


@mcp.tool()
async def undeploy_application(params: UndeployApplicationParams, ctx: Context) -> str:
    """
    Undeploy an application (DESTRUCTIVE).

    Requires confirm=true AND confirm_name equal to the application id.
    """
    _start(ctx)
    target = _label(params.env_id, params.app_id)

    blocked = get_safety_guard().check_destructive_operation(
        "undeploy_application",
        params.app_id,
        confirmed=params.confirm,
        confirm_name=params.confirm_name,
    )
    if blocked:
        reason = "confirmation required" if isinstance(blocked, ConfirmationRequired) else blocked.reason
        get_audit_logger().log_blocked("undeploy_application", target, reason)
        return blocked.format_message()

    try:
        env = get_settings().context_for(params.env_id, params.org_id)
        result = await get_client().undeploy_application(env, params.app_id)

        get_audit_logger().log_write("undeploy_application", _label(env, params.app_id))
        return f"Application {params.app_id} {result} from environment '{env.env_id}'."

    except (RuntimeManagerError, ValueError) as e:
        get_audit_logger().log_error("undeploy_application", target, str(e))
        return str(e)


# =============================================================================
# MCP RESOURCES
# =============================================================================


@mcp.resource("anypoint://settings")
async def get_settings_resource() -> str:
    """Get connection defaults and safety mode."""
    settings = get_settings()
    sec = settings.security

    return (
        "Anypoint Runtime Manager:\n"
        f"  URL: {settings.anypoint_url}\n"
        f"  Organization: {settings.org_id or '(not set)'}\n"
        f"  Default environment: {settings.default_env_id or '(not set)'}\n"
        f"  Token configured: {bool(settings.anypoint_token.get_secret_value())}\n"
        "\n"
        "Security Settings:\n"
        f"  Read-only mode: {sec.read_only}\n"
        f"  Destructive operations disabled: {sec.disable_destructive}\n"
        f"  Rate limit: {sec.rate_limit_calls} calls per {sec.rate_limit_window}s"
    )


# =============================================================================
# MAIN ENTRY POINT
# =============================================================================


def main() -> None:
    """Run the Anypoint Runtime Manager MCP server."""
    configure_logging(level="INFO")
    logger.info("Anypoint Runtime Manager MCP Server starting")

    try:
        mcp.run()
    except KeyboardInterrupt:
        logger.info("Server interrupted")
        sys.exit(0)
    except Exception as e:
        logger.error("Server error", error=str(e))
        sys.exit(1)


if __name__ == "__main__":
    main()
