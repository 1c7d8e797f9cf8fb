# ABOUTME: Anypoint Runtime Manager API client for hybrid application deployments
# ABOUTME: Provides async lookups, deploy/patch/undeploy calls and create-or-update orchestration

"""
Anypoint Runtime Manager API client.

=============================================================================
WHAT IS THIS FILE?
=============================================================================

This module is the HTTP client for the Runtime Manager "hybrid" REST API,
the part of Anypoint Platform that manages Mule applications running on
customer-hosted runtimes (servers and clusters). It handles:

1. LOOKUPS: Listing applications, servers and clusters, and resolving a
   human-readable name to the id the platform assigned
2. MUTATIONS: Deploying a new application, patching the artifact of an
   existing one, and undeploying
3. ORCHESTRATION: The create-or-update decision used to promote an
   application from one environment to another
4. ERROR HANDLING: Converting HTTP and parsing failures into structured
   Python exceptions

=============================================================================
RUNTIME MANAGER HYBRID API OVERVIEW
=============================================================================

All endpoints live under https://anypoint.mulesoft.com/hybrid/api/v1:

    GET    /applications                 - List applications
    POST   /applications                 - Deploy an application
    PATCH  /applications/{id}/artifact   - Replace an application's artifact
    DELETE /applications/{id}            - Undeploy an application
    GET    /servers                      - List servers
    GET    /clusters                     - List clusters

Every request is scoped by three headers:

    Authorization: <token>
    X-ANYPNT-ORG-ID: <organization id>
    X-ANYPNT-ENV-ID: <environment id>

List responses look like {"data": [{"id": 1, "name": "..."}, ...]}.

=============================================================================
ENVIRONMENT CONTEXT
=============================================================================

The client itself holds no credentials. Promotion touches two environments
(source and target) with possibly different tokens, so every call receives
an EnvironmentContext and the headers are built from it per request:

    source = EnvironmentContext(token, org_id, "dev-env-id")
    target = EnvironmentContext(token, org_id, "prod-env-id")

    async with RuntimeManagerClient() as client:
        ids = await client.get_applications(source, ["orders-api"])
        await client.redeploy_application(target, server_id, "orders-api", ids["orders-api"])

=============================================================================
NO RETRIES
=============================================================================

A deployment call is not safe to repeat blindly: a POST that timed out may
still have created the application. A single transport failure is therefore
terminal for the call and surfaces as TransportError. Timeouts and
connection handling belong to httpx.
"""

# =============================================================================
# IMPORTS
# =============================================================================

from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

import httpx
import structlog

if TYPE_CHECKING:
    from collections.abc import Iterable

logger = structlog.get_logger(__name__)

# =============================================================================
# CONSTANTS
# =============================================================================

DEFAULT_BASE_URL = "https://anypoint.mulesoft.com"
API_PREFIX = "/hybrid/api/v1"

# Artifact source type for applications copied between hybrid runtimes
HYBRID_SOURCE = "HYBRID"

# Value returned by undeploy_application; DELETE responds without a body
UNDEPLOYED = "undeployed"

# Methods that carry (or imply) a JSON payload and need a content-type header
MUTATING_METHODS = frozenset({"POST", "PATCH", "PUT", "DELETE"})

TARGET_KINDS = ("server", "cluster")


# =============================================================================
# EXCEPTIONS
# =============================================================================


class RuntimeManagerError(Exception):
    """Base class for all errors raised by the Runtime Manager client."""


class TransportError(RuntimeManagerError):
    """
    The request could not be completed or its response could not be read.

    Raised for:
    - Network failures (DNS, connection refused, timeouts) -> code is None
    - HTTP status >= 400 -> code is the status
    - A response body that is not valid JSON

    USAGE:
    ------
    try:
        await client.list_applications(ctx)
    except TransportError as e:
        print(f"Error {e.code}: {e.message}")  # Error 401: Unauthorized
    """

    def __init__(self, code: int | None, message: str, details: str | None = None) -> None:
        """
        Initialize transport error.

        Args:
            code: HTTP status code, or None when no response was received
            message: Primary error message
            details: Additional error details (optional)
        """
        self.code = code
        self.message = message
        self.details = details
        super().__init__(str(self))

    def __str__(self) -> str:
        code = self.code if self.code is not None else "no response"
        base = f"Runtime Manager API error ({code}): {self.message}"
        if self.details:
            base += f" - {self.details}"
        return base


class NotFoundError(RuntimeManagerError):
    """A named resource that the operation requires does not exist."""

    def __init__(self, kind: str, name: str) -> None:
        self.kind = kind
        self.name = name
        super().__init__(f"No {kind} named '{name}' found in the environment")


class DeploymentError(RuntimeManagerError):
    """
    The create-or-update procedure for an application failed.

    The underlying exception is kept both as `cause` and as __cause__, so
    tracebacks show the original transport or lookup failure.
    """

    def __init__(self, app_name: str, cause: Exception) -> None:
        self.app_name = app_name
        self.cause = cause
        super().__init__(f"Deployment of '{app_name}' failed: {cause}")


# =============================================================================
# DATA CLASSES
# =============================================================================


@dataclass(frozen=True)
class EnvironmentContext:
    """
    Organization, environment and token that scope a single API call.

    The token is sent verbatim as the Authorization header, so it must
    already carry its scheme (e.g. "Bearer 3f2a..."). It is left out of
    repr() to keep it out of logs and tracebacks.
    """

    token: str = field(repr=False)
    org_id: str
    env_id: str

    def headers(self) -> dict[str, str]:
        """Build the scoping headers required on every request."""
        return {
            "Authorization": self.token,
            "X-ANYPNT-ORG-ID": self.org_id,
            "X-ANYPNT-ENV-ID": self.env_id,
        }


@dataclass
class Application:
    """
    Runtime Manager application as returned by the applications list.

    Only `id` and `name` are relied on. The statuses are informational:
    - desired_status: "STARTED", "STOPPED", ...
    - last_reported_status: what the runtime last reported ("STARTED",
      "DEPLOYMENT_FAILED", ...)
    """

    id: int | str | None
    name: str
    desired_status: str | None = None
    last_reported_status: str | None = None

    @classmethod
    def from_api_response(cls, data: dict[str, Any]) -> Application:
        """Create Application from one entry of the `data` list."""
        return cls(
            id=data.get("id"),
            name=data.get("name", ""),
            desired_status=data.get("desiredStatus"),
            last_reported_status=data.get("lastReportedStatus"),
        )


@dataclass
class Target:
    """A server or cluster that applications can be deployed to."""

    id: int | str | None
    name: str
    kind: str
    status: str | None = None

    @classmethod
    def from_api_response(cls, data: dict[str, Any], kind: str) -> Target:
        """Create Target from one entry of the servers or clusters list."""
        return cls(
            id=data.get("id"),
            name=data.get("name", ""),
            kind=kind,
            status=data.get("status"),
        )


def _first_named(items: Iterable[dict[str, Any]], name: str) -> dict[str, Any] | None:
    """
    Return the first list entry whose name equals `name`, or None.

    Matching is exact and case-sensitive. If the platform ever returns two
    entries with the same name, the first one in response order wins.
    """
    for item in items:
        if item.get("name") == name:
            return item
    return None


# =============================================================================
# CLIENT
# =============================================================================


class RuntimeManagerClient:
    """
    Async Runtime Manager API client.

    LIFECYCLE:
    ----------
    Always use the context manager so the connection pool is closed:

        async with RuntimeManagerClient() as client:
            apps = await client.list_applications(ctx)

    TESTING WITHOUT A NETWORK:
    --------------------------
    Any httpx transport can be injected. httpx.MockTransport turns a plain
    function into a fake Runtime Manager:

        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(200, json={"data": []})

        client = RuntimeManagerClient(transport=httpx.MockTransport(handler))
    """

    def __init__(
        self,
        base_url: str = DEFAULT_BASE_URL,
        timeout: float = 30.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        """
        Initialize the client.

        NOTE: No connection is opened here. The httpx client is created in
        __aenter__.

        Args:
            base_url: Anypoint Platform host, without the API prefix.
            timeout: HTTP request timeout in seconds.
            transport: Optional httpx transport replacing the network layer.
        """
        self._base_url = base_url.rstrip("/")
        self._timeout = timeout
        self._transport = transport
        self._client: httpx.AsyncClient | None = None

    async def __aenter__(self) -> RuntimeManagerClient:
        self._client = httpx.AsyncClient(
            base_url=f"{self._base_url}{API_PREFIX}",
            timeout=self._timeout,
            transport=self._transport,
        )
        return self

    async def __aexit__(self, *args: object) -> None:
        if self._client:
            await self._client.aclose()
            self._client = None

    # =========================================================================
    # REQUEST PLUMBING
    # =========================================================================

    async def _request(
        self,
        method: str,
        path: str,
        ctx: EnvironmentContext,
        json_data: dict[str, Any] | None = None,
        parse_body: bool = True,
    ) -> Any:
        """
        Make one HTTP request to the Runtime Manager API.

        This is the CORE REQUEST METHOD. Every operation goes through it,
        and it is the only place that turns httpx behaviour into our
        exceptions:

        - httpx.HTTPError (connect errors, timeouts) -> TransportError(None)
        - status outside 2xx (redirects included)   -> TransportError(status)
        - body that is not JSON                     -> TransportError(status)

        An empty 2xx body is returned as {} rather than treated as an
        error. With parse_body=False the body is never read and any 2xx
        response returns {}; DELETE relies on that.

        Args:
            method: HTTP method ("GET", "POST", "PATCH", "DELETE")
            path: API path below /hybrid/api/v1 (e.g. "/applications")
            ctx: Organization, environment and token for the request
            json_data: JSON request body (optional)
            parse_body: Decode the response body as JSON (default True)

        Returns:
            Parsed JSON response

        Raises:
            TransportError: On any request or parsing failure
            RuntimeError: If the client is used outside 'async with'
        """
        if not self._client:
            raise RuntimeError("Client not initialized. Use 'async with' context manager.")

        headers = ctx.headers()
        if method in MUTATING_METHODS:
            headers["content-type"] = "application/json"

        log = logger.bind(method=method, path=path, org_id=ctx.org_id, env_id=ctx.env_id)
        log.debug("Making Runtime Manager API request")

        try:
            response = await self._client.request(
                method,
                path,
                headers=headers,
                json=json_data,
            )
        except httpx.HTTPError as e:
            log.warning("Runtime Manager request failed", error=str(e))
            raise TransportError(
                code=None,
                message=f"{method} {path} failed",
                details=str(e) or type(e).__name__,
            ) from e

        if not response.is_success:
            error_body = response.text
            log.warning("Runtime Manager API error", status=response.status_code, body=error_body[:200])

            message = f"HTTP {response.status_code}"
            details = None
            try:
                error_json = response.json()
                if isinstance(error_json, dict):
                    message = error_json.get("message", message)
                    details = error_json.get("error")
            except ValueError:
                details = error_body[:200] if error_body else None

            raise TransportError(
                code=response.status_code,
                message=message,
                details=details,
            )

        if not parse_body or not response.content:
            return {}

        try:
            return response.json()
        except ValueError as e:
            log.warning("Runtime Manager returned a non-JSON body", status=response.status_code)
            raise TransportError(
                code=response.status_code,
                message="Response body is not valid JSON",
                details=response.text[:200],
            ) from e

    async def _list(self, ctx: EnvironmentContext, path: str) -> list[dict[str, Any]]:
        """GET a list endpoint and return the entries of its `data` array."""
        body = await self._request("GET", path, ctx)
        items = body.get("data") if isinstance(body, dict) else None
        if not isinstance(items, list):
            return []
        return [item for item in items if isinstance(item, dict)]

    # =========================================================================
    # LISTING
    # =========================================================================

    async def list_applications(self, ctx: EnvironmentContext) -> list[Application]:
        """
        List applications deployed in the environment.

        API: GET /hybrid/api/v1/applications
        """
        items = await self._list(ctx, "/applications")
        return [Application.from_api_response(item) for item in items]

    async def list_servers(self, ctx: EnvironmentContext) -> list[Target]:
        """List servers registered in the environment."""
        items = await self._list(ctx, "/servers")
        return [Target.from_api_response(item, "server") for item in items]

    async def list_clusters(self, ctx: EnvironmentContext) -> list[Target]:
        """List clusters registered in the environment."""
        items = await self._list(ctx, "/clusters")
        return [Target.from_api_response(item, "cluster") for item in items]

    # =========================================================================
    # LOOKUPS
    # =========================================================================

    async def get_applications(
        self,
        ctx: EnvironmentContext,
        names: Iterable[str],
    ) -> dict[str, Any]:
        """
        Resolve application names to ids with a single list request.

        The result is ordered like `names`. Every name must exist: a single
        missing name fails the whole call, so callers never act on a
        partial mapping.

        The mapping is keyed by name, so a name requested more than once
        yields a single entry.

        Args:
            ctx: Environment to search
            names: Application names the caller cares about

        Returns:
            Mapping of name -> application id

        Raises:
            NotFoundError: If any name has no matching application
            TransportError: If the list request fails
        """
        items = await self._list(ctx, "/applications")

        ids: dict[str, Any] = {}
        for name in names:
            match = _first_named(items, name)
            if match is None:
                raise NotFoundError("application", name)
            ids[name] = match.get("id")
        return ids

    async def get_server(self, ctx: EnvironmentContext, name: str) -> Any:
        """
        Resolve a server name to its id.

        Raises:
            NotFoundError: If no server has this name
            TransportError: If the list request fails
        """
        match = _first_named(await self._list(ctx, "/servers"), name)
        if match is None:
            raise NotFoundError("server", name)
        return match.get("id")

    async def get_cluster(self, ctx: EnvironmentContext, name: str) -> Any:
        """
        Resolve a cluster name to its id.

        Raises:
            NotFoundError: If no cluster has this name
            TransportError: If the list request fails
        """
        match = _first_named(await self._list(ctx, "/clusters"), name)
        if match is None:
            raise NotFoundError("cluster", name)
        return match.get("id")

    async def get_target(self, ctx: EnvironmentContext, name: str, kind: str = "server") -> Any:
        """Resolve a server or cluster name, depending on `kind`."""
        if kind == "server":
            return await self.get_server(ctx, name)
        if kind == "cluster":
            return await self.get_cluster(ctx, name)
        raise ValueError(f"Unknown target kind '{kind}'. Expected one of {TARGET_KINDS}")

    async def find_application_id(self, ctx: EnvironmentContext, name: str) -> Any | None:
        """
        Return the id of the application called `name`, or None.

        Unlike get_applications, absence is not an error here: it is the
        normal "fresh deployment" case of redeploy_application.
        """
        match = _first_named(await self._list(ctx, "/applications"), name)
        if match is None:
            logger.info("Application not found in environment", app_name=name, env_id=ctx.env_id)
            return None
        logger.info(
            "Application already exists in environment",
            app_name=name,
            env_id=ctx.env_id,
            application_id=match.get("id"),
        )
        return match.get("id")

    # =========================================================================
    # MUTATIONS
    # =========================================================================

    async def update_application_artifact(
        self,
        ctx: EnvironmentContext,
        target_app_id: Any,
        source_app_id: Any,
    ) -> dict[str, Any]:
        """
        Replace the artifact of an existing application.

        The new artifact is taken from another hybrid application
        (`source_app_id`), typically the same app in a lower environment.

        API: PATCH /hybrid/api/v1/applications/{target_app_id}/artifact

        Returns:
            Parsed response body
        """
        body = {"applicationSource": {"id": source_app_id, "source": HYBRID_SOURCE}}
        result = await self._request(
            "PATCH",
            f"/applications/{target_app_id}/artifact",
            ctx,
            json_data=body,
        )
        logger.info("Application artifact updated", application_id=target_app_id)
        return result

    async def deploy_application(
        self,
        ctx: EnvironmentContext,
        source_app_id: Any,
        target_id: Any,
        app_name: str,
    ) -> dict[str, Any]:
        """
        Deploy a new application to a server or cluster.

        API: POST /hybrid/api/v1/applications

        Args:
            ctx: Environment to deploy into
            source_app_id: Hybrid application whose artifact is copied
            target_id: Server or cluster id to deploy to
            app_name: Artifact name of the new application

        Returns:
            Parsed response body (the created application)
        """
        body = {
            "applicationSource": {"source": HYBRID_SOURCE, "id": source_app_id},
            "targetId": target_id,
            "artifactName": app_name,
        }
        result = await self._request("POST", "/applications", ctx, json_data=body)
        logger.info("Application deployed", app_name=app_name, target_id=target_id)
        return result

    async def undeploy_application(self, ctx: EnvironmentContext, app_id: Any) -> str:
        """
        Undeploy (delete) an application.

        API: DELETE /hybrid/api/v1/applications/{app_id}

        Whatever body a 2xx response carries is ignored, so this resolves
        to UNDEPLOYED. Only a failed request raises.
        """
        await self._request("DELETE", f"/applications/{app_id}", ctx, parse_body=False)
        logger.info("Application undeployed", application_id=app_id)
        return UNDEPLOYED

    # =========================================================================
    # ORCHESTRATION
    # =========================================================================

    async def redeploy_application(
        self,
        ctx: EnvironmentContext,
        target_id: Any,
        app_name: str,
        source_app_id: Any,
    ) -> dict[str, Any]:
        """
        Create or update `app_name` in the environment, idempotently.

        DECISION PROCEDURE:
        -------------------
        1. Look up the current id of `app_name` (one GET)
        2. Found     -> patch its artifact from `source_app_id` (one PATCH)
        3. Not found -> deploy `source_app_id` to `target_id` (one POST)

        The mutation is only issued after the lookup resolves, and exactly
        one of PATCH/POST is sent. Running this twice in a row patches the
        second time, so it never creates duplicates.

        Args:
            ctx: Environment to deploy into
            target_id: Server or cluster id used for a fresh deployment
            app_name: Application name in the target environment
            source_app_id: Hybrid application whose artifact is deployed

        Returns:
            Response body of the PATCH or POST

        Raises:
            DeploymentError: Wrapping any lookup or mutation failure
        """
        log = logger.bind(app_name=app_name, env_id=ctx.env_id, target_id=target_id)

        try:
            existing_id = await self.find_application_id(ctx, app_name)
            if existing_id is not None:
                log.info("Redeploying existing application", application_id=existing_id)
                return await self.update_application_artifact(ctx, existing_id, source_app_id)

            log.info("Deploying new application")
            return await self.deploy_application(ctx, source_app_id, target_id, app_name)
        except RuntimeManagerError as e:
            log.error("Deployment failed", error=str(e))
            raise DeploymentError(app_name, e) from e

    async def promote_applications(
        self,
        source_ctx: EnvironmentContext,
        target_ctx: EnvironmentContext,
        app_names: Iterable[str],
        target_name: str,
        target_kind: str = "server",
    ) -> dict[str, dict[str, Any]]:
        """
        Promote applications from one environment to another.

        Resolves the application ids in the source environment and the
        server or cluster in the target environment, then runs
        redeploy_application for each application, one after the other,
        in the order given.

        Args:
            source_ctx: Environment the artifacts are taken from
            target_ctx: Environment the applications are deployed to
            app_names: Applications to promote
            target_name: Server or cluster name in the target environment
            target_kind: "server" or "cluster"

        Returns:
            Mapping of application name -> deployment response body

        Raises:
            NotFoundError: If an application or the target does not exist
            TransportError: If a lookup request fails
            DeploymentError: On the first failing deployment (later
                             applications are not attempted)
        """
        source_ids = await self.get_applications(source_ctx, app_names)
        target_id = await self.get_target(target_ctx, target_name, target_kind)

        logger.info(
            "Promoting applications",
            applications=list(source_ids),
            source_env_id=source_ctx.env_id,
            target_env_id=target_ctx.env_id,
            target=target_name,
        )

        results: dict[str, dict[str, Any]] = {}
        for name, source_app_id in source_ids.items():
            results[name] = await self.redeploy_application(target_ctx, target_id, name, source_app_id)
        return results
