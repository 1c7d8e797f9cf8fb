# ABOUTME: Anypoint Runtime Manager MCP Server package initialization
# ABOUTME: Exposes version information

"""
Anypoint Runtime Manager MCP Server - promote hybrid Mule applications between environments.

=============================================================================
WHAT IS ANYPOINT RUNTIME MANAGER?
=============================================================================

Runtime Manager is the part of MuleSoft's Anypoint Platform that deploys and
monitors Mule applications. For "hybrid" deployments the Mule runtimes run
on customer infrastructure and are registered with the platform as SERVERS
(single runtimes) or CLUSTERS (groups of runtimes). Each business group
(organization) has several ENVIRONMENTS, typically dev, test and prod.

Promoting an application means copying the artifact of an application that
runs in a lower environment to a server or cluster in a higher one:

- if the application already exists in the target environment, its
  artifact is patched in place
- otherwise it is deployed fresh

=============================================================================
PACKAGE STRUCTURE OVERVIEW
=============================================================================

anypoint_mcp/
├── __init__.py          <- Package entry point
├── config.py            <- Settings from environment variables
├── server.py            <- MCP server and tool definitions
└── utils/
    ├── client.py        <- Runtime Manager REST client and deployment logic
    ├── logging.py       <- Structured logging and audit trail
    └── safety.py        <- Read-only mode, confirmations, rate limiting
"""

__version__ = "0.1.0"

__all__ = ["__version__"]
