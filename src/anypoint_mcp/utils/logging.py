# ABOUTME: Structured logging with correlation IDs for the Anypoint Runtime Manager MCP Server
# ABOUTME: Configures structlog and records an audit trail of deployments and lookups

"""
Structured logging with correlation IDs and a deployment audit trail.

=============================================================================
WHAT IS THIS FILE?
=============================================================================

1. STRUCTURED LOGGING: structlog renders every event as key/value pairs,
   either as colored console lines (development) or JSON (production).

2. CORRELATION IDs: A promotion can issue a dozen API calls (one lookup per
   environment, then one PATCH or POST per application). Every log line
   emitted while handling one MCP tool call carries the same short id, so
   the whole promotion can be pulled out of the log stream:

       jq 'select(.correlation_id == "a1b2c3d4")'

3. AUDIT LOGGING: One record per tool call saying who touched which
   application in which environment and how it ended:

       {"action": "redeploy_application", "target": "env-prod/orders-api",
        "result": "success", "details": {"source_app_id": 1234}}

The correlation id lives in a ContextVar, so concurrent tool calls on the
same event loop each see their own value.
"""

from __future__ import annotations

import json
import logging
import uuid
from contextvars import ContextVar
from datetime import UTC, datetime
from typing import TYPE_CHECKING, Any

import structlog

if TYPE_CHECKING:
    from collections.abc import MutableMapping
    from pathlib import Path


# =============================================================================
# CORRELATION ID MANAGEMENT
# =============================================================================

correlation_id: ContextVar[str] = ContextVar("correlation_id", default="")


def get_correlation_id() -> str:
    """
    Get current correlation ID or generate new one.

    Code running outside a tool call (startup, tests) still gets an id, so
    log lines are always correlatable.

    Returns:
        8-character correlation ID string.
    """
    cid = correlation_id.get()
    if not cid:
        cid = str(uuid.uuid4())[:8]
        correlation_id.set(cid)
    return cid


def set_correlation_id(cid: str) -> None:
    """
    Set correlation ID for current context.

    Each MCP tool calls this first with the request id it was given. An
    empty string makes the next get_correlation_id() generate a fresh id.
    """
    correlation_id.set(cid)


def add_correlation_id(
    logger: structlog.types.WrappedLogger,  # noqa: ARG001 - Required by structlog Processor API
    method_name: str,  # noqa: ARG001 - Required by structlog Processor API
    event_dict: MutableMapping[str, Any],
) -> MutableMapping[str, Any]:
    """structlog processor that stamps the correlation ID on every event."""
    event_dict["correlation_id"] = get_correlation_id()
    return event_dict


# =============================================================================
# LOGGING CONFIGURATION
# =============================================================================


def configure_logging(
    level: str = "INFO",
    json_output: bool = False,
) -> None:
    """
    Configure structured logging.

    Call once at startup. Calling again reconfigures (e.g. to change level).

    PROCESSOR PIPELINE:
    -------------------
    1. merge_contextvars: values bound with structlog.contextvars
    2. add_log_level: "level" field
    3. TimeStamper: ISO 8601 "timestamp"
    4. add_correlation_id: "correlation_id"
    5. JSONRenderer or ConsoleRenderer

    Args:
        level: "DEBUG", "INFO", "WARNING", "ERROR" or "CRITICAL". Unknown
               names fall back to INFO. DEBUG shows every API request.
        json_output: JSON lines when True, colored console output otherwise.
    """
    processors: list[structlog.types.Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.processors.add_log_level,
        structlog.processors.TimeStamper(fmt="iso"),
        add_correlation_id,
    ]

    if json_output:
        processors.append(structlog.processors.JSONRenderer())
    else:
        processors.append(structlog.dev.ConsoleRenderer())

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.make_filtering_bound_logger(
            getattr(logging, level.upper(), logging.INFO)
        ),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(),
        cache_logger_on_first_use=True,
    )


# =============================================================================
# AUDIT LOGGER
# =============================================================================


class AuditLogger:
    """
    Audit logger for deployment operations.

    Each entry records:
    - timestamp: UTC ISO 8601
    - correlation_id: links the entry to the regular log lines
    - action: tool name ("redeploy_application", "undeploy_application", ...)
    - target: what was touched, usually "<env_id>/<application>"
    - result: "success", "blocked" or "error"
    - details: optional extra context

    With a log path, entries are appended to that file as JSON lines.
    Without one, they go through structlog under the "audit" logger.
    """

    def __init__(self, log_path: Path | None = None) -> None:
        self._log_path = log_path
        self._logger = structlog.get_logger("audit")

    def log(
        self,
        action: str,
        target: str,
        result: str,
        details: dict[str, Any] | None = None,
    ) -> None:
        """
        Log an auditable action.

        Args:
            action: Operation performed (a tool name)
            target: Resource identifier, e.g. "env-prod/orders-api"
            result: "success", "blocked" or "error"
            details: Additional context, omitted from the entry when empty
        """
        entry: dict[str, Any] = {
            "timestamp": datetime.now(UTC).isoformat(),
            "correlation_id": get_correlation_id(),
            "action": action,
            "target": target,
            "result": result,
        }
        if details:
            entry["details"] = details

        if self._log_path:
            with self._log_path.open("a") as f:
                f.write(json.dumps(entry, default=str) + "\n")
        else:
            self._logger.info(
                "audit",
                action=action,
                target=target,
                result=result,
                details=details,
            )

    def log_read(self, action: str, target: str) -> None:
        """Log a successful lookup or listing."""
        self.log(action, target, "success")

    def log_write(
        self,
        action: str,
        target: str,
        details: dict[str, Any] | None = None,
    ) -> None:
        """Log a successful deploy, patch, promotion or undeploy."""
        self.log(action, target, "success", details)

    def log_blocked(self, action: str, target: str, reason: str) -> None:
        """Log an operation refused by the safety guard."""
        self.log(action, target, "blocked", {"reason": reason})

    def log_error(self, action: str, target: str, error: str) -> None:
        """Log an operation that failed against the Runtime Manager API."""
        self.log(action, target, "error", {"error": error})
