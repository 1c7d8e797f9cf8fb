# ABOUTME: Safety guards for deployment operations exposed over MCP
# ABOUTME: Read-only mode, undeploy confirmation, and per-tool rate limiting

"""Safety checks applied before a tool touches a Runtime Manager environment."""

from __future__ import annotations

import time
from collections import defaultdict
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

import structlog

if TYPE_CHECKING:
    from anypoint_mcp.config import SecuritySettings

logger = structlog.get_logger(__name__)

IMPACTS = {
    "undeploy_application": (
        "The application will be STOPPED and REMOVED from its server or cluster. "
        "Redeploying requires a source application to copy the artifact from."
    ),
}


@dataclass
class ConfirmationRequired:
    """Returned when a destructive operation has not been confirmed."""

    operation: str
    target: str
    impact: str
    confirmation_instructions: str
    details: dict[str, Any] = field(default_factory=dict)

    def format_message(self) -> str:
        """Format confirmation request for agent consumption."""
        lines = [
            f"CONFIRMATION REQUIRED: {self.operation}",
            "",
            f"Target: {self.target}",
            f"Impact: {self.impact}",
        ]
        if self.details:
            lines.extend(["", "Details:"])
            lines.extend(f"  {key}: {value}" for key, value in self.details.items())
        lines.extend(["", self.confirmation_instructions])
        return "\n".join(lines)


@dataclass
class OperationBlocked:
    """Returned when the server configuration forbids an operation."""

    operation: str
    reason: str
    setting: str

    def format_message(self) -> str:
        """Format blocked message for agent consumption."""
        return (
            f"OPERATION BLOCKED: {self.operation}\n"
            f"Reason: {self.reason}\n"
            f"Setting: {self.setting}"
        )


class RateLimiter:
    """Sliding-window call counter keyed by operation."""

    def __init__(self, max_calls: int = 100, window_seconds: int = 60) -> None:
        self._max_calls = max_calls
        self._window = window_seconds
        self._calls: dict[str, list[float]] = defaultdict(list)

    def check(self, key: str) -> bool:
        """Record a call under `key`; False if the window is already full."""
        now = time.monotonic()
        recent = [t for t in self._calls[key] if now - t < self._window]
        if len(recent) >= self._max_calls:
            self._calls[key] = recent
            logger.warning("Rate limit exceeded", key=key, calls=len(recent))
            return False
        recent.append(now)
        self._calls[key] = recent
        return True

    def reset(self, key: str | None = None) -> None:
        """Forget recorded calls for one key, or for all keys."""
        if key:
            self._calls.pop(key, None)
        else:
            self._calls.clear()


class SafetyGuard:
    """
    Decides whether a tool call may proceed.

    - Lookups and listings are only rate limited.
    - Redeploy and promote are writes: blocked in read-only mode.
    - Undeploy is destructive: blocked unless destructive operations are
      enabled, and even then it needs confirm=true plus confirm_name equal
      to the application id.
    """

    def __init__(self, settings: SecuritySettings) -> None:
        self._settings = settings
        self._rate_limiter = RateLimiter(
            max_calls=settings.rate_limit_calls,
            window_seconds=settings.rate_limit_window,
        )

    def _rate_limited(self, kind: str, operation: str) -> OperationBlocked | None:
        if self._rate_limiter.check(f"{kind}:{operation}"):
            return None
        return OperationBlocked(
            operation=operation,
            reason="Rate limit exceeded",
            setting="MCP_RATE_LIMIT_CALLS",
        )

    def check_read_operation(self, operation: str) -> OperationBlocked | None:
        """Return OperationBlocked if a lookup may not run, else None."""
        return self._rate_limited("read", operation)

    def check_write_operation(self, operation: str) -> OperationBlocked | None:
        """Return OperationBlocked if a deployment may not run, else None."""
        if self._settings.read_only:
            return OperationBlocked(
                operation=operation,
                reason="Server is running in read-only mode",
                setting="MCP_READ_ONLY",
            )
        return self._rate_limited("write", operation)

    def check_destructive_operation(
        self,
        operation: str,
        target: str,
        confirmed: bool = False,
        confirm_name: str | None = None,
    ) -> OperationBlocked | ConfirmationRequired | None:
        """
        Check an undeploy-style operation.

        Args:
            operation: Operation name
            target: Identifier the caller must repeat in confirm_name
            confirmed: Whether the caller set confirm=true
            confirm_name: Must equal `target`

        Returns:
            OperationBlocked, ConfirmationRequired, or None when allowed
        """
        blocked = self.check_write_operation(operation)
        if blocked:
            return blocked

        if self._settings.disable_destructive:
            return OperationBlocked(
                operation=operation,
                reason="Destructive operations are disabled",
                setting="MCP_DISABLE_DESTRUCTIVE",
            )

        if not confirmed or confirm_name != target:
            return ConfirmationRequired(
                operation=operation,
                target=target,
                impact=IMPACTS.get(operation, "This operation may have significant impact"),
                confirmation_instructions=(
                    f"To proceed, set confirm=true AND confirm_name='{target}'"
                ),
            )

        return None
